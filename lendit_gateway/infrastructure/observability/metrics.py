"""Prometheus metrics for lifecycle transitions, repayments and webhook delivery"""

from decimal import Decimal

from prometheus_client import Counter, Histogram

# Lifecycle metrics
transition_counter = Counter(
    "lendit_transition_total",
    "Agreement lifecycle actions by outcome",
    ["action", "outcome"],  # outcome: applied | illegal | already_claimed
)

claim_conflict_counter = Counter(
    "lendit_claim_conflicts_total",
    "Claim/accept attempts that lost the race",
    ["action"],
)

repayment_counter = Counter(
    "lendit_repayments_total",
    "Repayments recorded by size bucket",
    ["bucket"],
)

# Webhook metrics
webhook_latency_histogram = Histogram(
    "notification_webhook_latency_seconds",
    "Notification webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "notification_webhook_failures_total",
    "Failed notification webhook deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_transition(action: str, outcome: str) -> None:
    transition_counter.labels(action=action, outcome=outcome).inc()


def record_repayment(amount: Decimal) -> None:
    """Bucket repayment sizes (INR) for distribution analysis"""
    if amount <= 1_000:
        bucket = "<=1k"
    elif amount <= 10_000:
        bucket = "1k-10k"
    elif amount <= 100_000:
        bucket = "10k-100k"
    else:
        bucket = "100k+"

    repayment_counter.labels(bucket=bucket).inc()
