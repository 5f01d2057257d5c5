"""Prometheus metrics for settlements, fees, float balances and rail performance"""

from prometheus_client import Counter, Histogram, Gauge

# Settlement metrics
settlement_counter = Counter(
    "float_ledger_settlements_total",
    "Settlement state transitions",
    ["settlement_type", "direction", "status"],
)

net_settlement_counter = Counter(
    "float_ledger_net_settlements_total",
    "Automatic net settlements raised for dual-role accounts",
    ["direction"],  # payout | collection
)

# Fee metrics
fee_charged_counter = Counter(
    "float_ledger_fee_charged_cents_total",
    "VAT-inclusive PayShap fees charged on completed settlements, in cents",
    ["transaction_class"],
)

# Balance metrics
float_balance_gauge = Gauge(
    "float_ledger_balance_cents",
    "Current float balance in cents",
    ["account_id", "role"],
)

balance_alert_counter = Counter(
    "float_ledger_balance_alerts_total",
    "Low float balance alerts raised",
    ["level"],  # warning | critical
)

invariant_violation_counter = Counter(
    "float_ledger_invariant_violations_total",
    "Detected balance/settlement invariant violations",
)

# Payment rail metrics
rail_latency_histogram = Histogram(
    "rail_dispatch_latency_seconds",
    "Payment rail dispatch response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

rail_failure_counter = Counter(
    "rail_dispatch_failures_total",
    "Failed or timed out payment rail dispatches",
    ["reason"],  # rejected | timeout
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_settlement(settlement_type: str, direction: str, status: str) -> None:
    settlement_counter.labels(settlement_type=settlement_type, direction=direction, status=status).inc()


def record_balance(account_id: str, role: str, balance_cents: int) -> None:
    float_balance_gauge.labels(account_id=account_id, role=role).set(balance_cents)
