"""Business metrics for Prometheus monitoring."""
from prometheus_client import Counter

# Invoice metrics
invoices_generated_total = Counter(
    "invoices_generated_total",
    "Total number of invoices generated",
    labelnames=["currency"],
)

invoice_amount_total = Counter(
    "invoice_amount_total",
    "Total invoiced amount in cents",
    labelnames=["currency"],
)

invoices_synced_total = Counter(
    "invoices_synced_total",
    "Total invoices pushed to the payment processor",
    labelnames=["status"],  # status: open, paid
)

invoices_voided_total = Counter(
    "invoices_voided_total",
    "Total number of invoices voided or marked uncollectible",
    labelnames=["reason"],
)

# Payment metrics
payments_attempted_total = Counter(
    "payments_attempted_total",
    "Total payment attempts",
    labelnames=["status", "currency"],  # status: succeeded, failed, pending
)

payment_amount_total = Counter(
    "payment_amount_total",
    "Total payment amount in cents",
    labelnames=["status", "currency"],
)

# Usage metrics
usage_events_total = Counter(
    "usage_events_total",
    "Total usage events received",
    labelnames=["code"],
)

# Pricing metrics
pricing_rule_redemptions_total = Counter(
    "pricing_rule_redemptions_total",
    "Rule usage slots consumed by max_uses conditions",
    labelnames=["outcome"],  # outcome: consumed, exhausted
)

# Processor metrics
processor_errors_total = Counter(
    "processor_errors_total",
    "Failed calls to the payment processor",
    labelnames=["operation"],
)
