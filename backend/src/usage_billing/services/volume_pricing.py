"""Mailbox volume pricing, independent of the pricing rule engine."""
from typing import Any

from usage_billing.config import VolumeTier, settings
from usage_billing.schemas.invoice import OrderLineItem
from usage_billing.schemas.pricebook import MailboxPricing, MailboxPricingTier, MailboxQuote

PROVIDER_NAMES = {"google": "Google Workspace", "microsoft": "Microsoft 365"}


def _tiers(tiers: list[VolumeTier] | None) -> list[VolumeTier]:
    return sorted(tiers if tiers is not None else settings.mailbox_volume_tiers, key=lambda t: t.min_quantity, reverse=True)


def format_cents(amount_cents: int) -> str:
    """Render cents as a dollar amount, e.g. 350 -> "$3.50"."""
    return f"${amount_cents / 100:,.2f}"


def mailbox_unit_price_for_quantity(
    total_quantity: int,
    tiers: list[VolumeTier] | None = None,
    base_price_cents: int | None = None,
) -> int:
    """
    Unit price for a mailbox when the organization holds ``total_quantity`` in total.

    The highest threshold the quantity reaches wins; below every threshold the
    base price applies.
    """
    for tier in _tiers(tiers):
        if total_quantity >= tier.min_quantity:
            return tier.unit_price_cents
    return settings.mailbox_base_price_cents if base_price_cents is None else base_price_cents


def quote_mailboxes(existing_quantity: int, new_quantity: int) -> MailboxQuote:
    """Price new mailboxes at the tier reached by existing + new."""
    total = existing_quantity + new_quantity
    unit_price = mailbox_unit_price_for_quantity(total)
    return MailboxQuote(
        existing_quantity=existing_quantity,
        new_quantity=new_quantity,
        total_quantity=total,
        unit_price_cents=unit_price,
        total_cents=unit_price * new_quantity,
    )


def get_mailbox_pricing_tiers() -> MailboxPricing:
    """Published tier table, cheapest volume last."""
    base = settings.mailbox_base_price_cents
    ascending = sorted(settings.mailbox_volume_tiers, key=lambda t: t.min_quantity)

    rows = []
    lower_bounds = [1] + [tier.min_quantity for tier in ascending]
    prices = [base] + [tier.unit_price_cents for tier in ascending]
    for index, (lower, price) in enumerate(zip(lower_bounds, prices)):
        upper = lower_bounds[index + 1] - 1 if index + 1 < len(lower_bounds) else None
        rows.append(
            MailboxPricingTier(
                min_quantity=lower,
                max_quantity=upper,
                unit_price_cents=price,
                price_formatted=format_cents(price),
            )
        )
    return MailboxPricing(base_unit_price_cents=base, tiers=rows)


def build_order_line_items(cart_snapshot: dict[str, Any]) -> list[OrderLineItem]:
    """
    Display lines for an order invoice.

    Each domain is charged at its listed dollar price, followed by its first
    month of mailboxes. Every mailbox line uses the volume price reached by the
    order's combined Google and Microsoft mailbox count.
    """
    totals = cart_snapshot.get("totals") or {}
    total_mailboxes = int(totals.get("totalGoogleMailboxes") or 0) + int(totals.get("totalMicrosoftMailboxes") or 0)
    unit_price = mailbox_unit_price_for_quantity(total_mailboxes)

    lines: list[OrderLineItem] = []
    for domain in cart_snapshot.get("domains") or []:
        name = domain.get("domain", "unknown")
        price_cents = round(float(domain.get("price") or 0) * 100)
        lines.append(
            OrderLineItem(
                type="domain",
                description=f"Domain: {name}",
                domain=name,
                quantity=1,
                unit_price_cents=price_cents,
                total_cents=price_cents,
            )
        )

        mailboxes = domain.get("mailboxes") or {}
        count = int(mailboxes.get("count") or 0)
        if count > 0:
            provider = mailboxes.get("provider")
            lines.append(
                OrderLineItem(
                    type="mailbox",
                    description=f"{PROVIDER_NAMES.get(provider, 'Microsoft 365')} Mailbox (First Month) - {name}",
                    domain=name,
                    provider=provider,
                    quantity=count,
                    unit_price_cents=unit_price,
                    total_cents=unit_price * count,
                )
            )
    return lines
