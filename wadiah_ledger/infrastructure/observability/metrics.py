"""Prometheus metrics for ledger mutations, checkouts and HTTP latency"""

from prometheus_client import Counter, Histogram

# Ledger metrics
transaction_counter = Counter(
    "wadiah_transactions_total",
    "Wadiah ledger mutations processed",
    ["kind", "outcome"],  # outcome: success | insufficient_balance | invalid | consent_required | rejected | failed
)

transaction_amount_histogram = Histogram(
    "wadiah_transaction_amount_rupiah",
    "Amount of committed wadiah transactions",
    ["kind"],
    buckets=[1_000, 5_000, 10_000, 25_000, 50_000, 100_000, 250_000, 500_000],
)

# Checkout metrics
checkout_counter = Counter(
    "checkout_total",
    "Checkouts by final state",
    ["outcome"],  # done | aborted | reconciliation_required
)

reconciliation_counter = Counter(
    "checkout_reconciliation_required_total",
    "Checkouts that committed ledger transactions but failed to mark bills paid",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_transaction(kind: str, outcome: str, amount: int) -> None:
    """Count a ledger mutation and, when committed, observe its amount"""
    transaction_counter.labels(kind=kind, outcome=outcome).inc()
    if outcome == "success":
        transaction_amount_histogram.labels(kind=kind).observe(amount)


def record_checkout(outcome: str) -> None:
    checkout_counter.labels(outcome=outcome).inc()
    if outcome == "reconciliation_required":
        reconciliation_counter.inc()
