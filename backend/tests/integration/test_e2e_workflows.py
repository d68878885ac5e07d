"""End-to-end billing workflow through the HTTP API."""
import pytest
from httpx import AsyncClient

from usage_billing.models.organization import Organization
from usage_billing.models.pricebook_item import PricebookItem

from utils.fake_processor import FakePaymentProcessor


@pytest.mark.asyncio
async def test_usage_to_paid_invoice_with_org_override(
    async_client: AsyncClient,
    test_organization: Organization,
    mailbox_item: PricebookItem,
    fake_processor: FakePaymentProcessor,
) -> None:
    """
    Negotiated $3.00 mailbox price for 5+ mailboxes, billed and paid.

    Workflow:
    1. Create an organization-scoped override gated on quantity
    2. Record five mailbox events over the month
    3. Generate, sync and pay the invoice
    """
    organization_id = str(test_organization.id)

    rule = await async_client.post(
        "/v1/pricing-rules",
        json={
            "name": "Acme negotiated mailbox price",
            "scope_type": "organization",
            "organization_id": organization_id,
            "rule_type": "override_price",
            "value": 300,
            "priority": 10,
            "active_from": "2024-01-01T00:00:00Z",
            "conditions": [
                {
                    "condition_type": "pricebook_item",
                    "operator": "in",
                    "value": {"ids": [str(mailbox_item.id)]},
                    "group_id": 0,
                },
                {"condition_type": "min_quantity", "operator": "gte", "value": {"value": 5}, "group_id": 0},
            ],
        },
    )
    assert rule.status_code == 201

    for day in (3, 8, 13, 18, 23):
        response = await async_client.post(
            f"/v1/organizations/{organization_id}/usage-events",
            json={"code": "mailbox_created", "effective_at": f"2024-05-{day:02d}T09:00:00Z"},
        )
        assert response.status_code == 201

    summary = await async_client.get(
        f"/v1/organizations/{organization_id}/usage-summary",
        params={"period_start": "2024-05-01T00:00:00", "period_end": "2024-05-31T23:59:59"},
    )
    assert summary.json()["total_cents"] == 1500

    invoice = await async_client.post(
        f"/v1/organizations/{organization_id}/invoices",
        json={"period_start": "2024-05-01", "period_end": "2024-05-31"},
    )
    assert invoice.status_code == 201
    line = invoice.json()["items"][0]
    assert (line["quantity"], line["base_unit_price_cents"], line["final_unit_price_cents"]) == (5, 350, 300)
    assert line["discount_amount_cents"] == 50
    assert line["pricing_rule_id"] == rule.json()["id"]
    assert invoice.json()["total_cents"] == 1500

    invoice_id = invoice.json()["id"]
    synced = await async_client.post(f"/v1/invoices/{invoice_id}/sync", json={"auto_finalize": True})
    assert synced.json()["status"] == "open"
    assert [i["amount"] for i in fake_processor.invoice_items] == [1500]

    payment = await async_client.post(f"/v1/invoices/{invoice_id}/pay")
    assert payment.json()["status"] == "succeeded"
    assert payment.json()["amount_cents"] == 1500

    final = await async_client.get(f"/v1/invoices/{invoice_id}")
    assert final.json()["status"] == "paid"
    assert final.json()["paid_at"] is not None
