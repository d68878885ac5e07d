"""Shared annotated field types."""
from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator


def naive_utc(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC; aware input is converted first."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


UtcDateTime = Annotated[datetime, AfterValidator(naive_utc)]
