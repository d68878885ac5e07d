"""Unit tests for mailbox volume pricing."""
import pytest

from usage_billing.config import VolumeTier
from usage_billing.services.volume_pricing import (
    build_order_line_items,
    format_cents,
    get_mailbox_pricing_tiers,
    mailbox_unit_price_for_quantity,
    quote_mailboxes,
)


@pytest.mark.parametrize(
    "quantity,expected_cents",
    [
        (1, 350),
        (99, 350),
        (100, 325),
        (249, 325),
        (250, 300),
        (999, 300),
        (1000, 280),
        (5000, 280),
    ],
)
def test_unit_price_at_tier_boundaries(quantity: int, expected_cents: int) -> None:
    """The highest threshold reached wins; below every threshold the base price applies."""
    assert mailbox_unit_price_for_quantity(quantity) == expected_cents


def test_custom_tiers_are_sorted_before_matching() -> None:
    tiers = [VolumeTier(min_quantity=10, unit_price_cents=90), VolumeTier(min_quantity=50, unit_price_cents=70)]

    assert mailbox_unit_price_for_quantity(9, tiers, base_price_cents=100) == 100
    assert mailbox_unit_price_for_quantity(10, tiers, base_price_cents=100) == 90
    assert mailbox_unit_price_for_quantity(60, tiers, base_price_cents=100) == 70


def test_quote_prices_new_mailboxes_at_combined_tier() -> None:
    """90 existing + 20 new reaches the 100+ tier, so the 20 new are charged at $3.25."""
    quote = quote_mailboxes(90, 20)

    assert quote.total_quantity == 110
    assert quote.unit_price_cents == 325
    assert quote.total_cents == 20 * 325


def test_published_tiers_cover_every_quantity() -> None:
    pricing = get_mailbox_pricing_tiers()

    assert pricing.base_unit_price_cents == 350
    assert [(t.min_quantity, t.max_quantity) for t in pricing.tiers] == [
        (1, 99),
        (100, 249),
        (250, 999),
        (1000, None),
    ]
    assert [t.price_formatted for t in pricing.tiers] == ["$3.50", "$3.25", "$3.00", "$2.80"]


def test_format_cents() -> None:
    assert format_cents(350) == "$3.50"
    assert format_cents(123456) == "$1,234.56"


def _cart_domain(name: str, price: float, provider: str, count: int) -> dict:
    return {
        "domain": name,
        "available": True,
        "price": price,
        "tld": name.rsplit(".", 1)[-1],
        "mailboxes": {"provider": provider, "count": count},
    }


def test_order_line_items_from_cart_snapshot() -> None:
    """Each domain is followed by its mailboxes, priced at the tier of the order's combined count."""
    snapshot = {
        "domains": [_cart_domain("acme.io", 12.99, "google", 60), _cart_domain("acme.dev", 9.5, "microsoft", 50)],
        "totals": {"domainTotal": 22.49, "totalGoogleMailboxes": 60, "totalMicrosoftMailboxes": 50},
    }

    lines = build_order_line_items(snapshot)

    assert [line.description for line in lines] == [
        "Domain: acme.io",
        "Google Workspace Mailbox (First Month) - acme.io",
        "Domain: acme.dev",
        "Microsoft 365 Mailbox (First Month) - acme.dev",
    ]
    assert [line.type for line in lines] == ["domain", "mailbox", "domain", "mailbox"]
    assert lines[0].total_cents == 1299
    assert (lines[1].provider, lines[1].quantity, lines[1].unit_price_cents) == ("google", 60, 325)
    assert lines[3].total_cents == 50 * 325


def test_order_line_items_skip_domains_without_mailboxes() -> None:
    snapshot = {
        "domains": [_cart_domain("acme.io", 12, "google", 0), _cart_domain("acme.dev", 10, "microsoft", 3)],
        "totals": {"totalGoogleMailboxes": 0, "totalMicrosoftMailboxes": 3},
    }

    lines = build_order_line_items(snapshot)

    assert [line.description for line in lines] == [
        "Domain: acme.io",
        "Domain: acme.dev",
        "Microsoft 365 Mailbox (First Month) - acme.dev",
    ]
    assert lines[2].unit_price_cents == 350
