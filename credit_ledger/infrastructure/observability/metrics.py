"""Prometheus metrics for ledger operations and interest accrual"""

from prometheus_client import Counter, Histogram

from credit_ledger.domain.models import AccrualSummary

# Ledger metrics
ledger_operation_counter = Counter(
    "ledger_operations_total",
    "Balance operations executed",
    ["operation", "outcome"],  # outcome: ok | <exception class name>
)

# Interest metrics
interest_applied_counter = Counter(
    "interest_applied_amount_total",
    "Interest added to outstanding debt",
    ["frequency"],
)

accrual_account_counter = Counter(
    "accrual_accounts_total",
    "Accounts visited by accrual runs",
    ["frequency", "outcome"],  # processed | skipped | failed
)

accrual_duration_histogram = Histogram(
    "accrual_run_duration_seconds",
    "Accrual batch duration",
    ["frequency"],
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_ledger_operation(operation: str, error: Exception | None = None) -> None:
    outcome = "ok" if error is None else type(error).__name__
    ledger_operation_counter.labels(operation=operation, outcome=outcome).inc()


def record_accrual_run(summary: AccrualSummary, duration_seconds: float) -> None:
    """Record accrual metrics; previews do not count as applied interest"""
    frequency = summary.frequency.value
    accrual_duration_histogram.labels(frequency=frequency).observe(duration_seconds)
    accrual_account_counter.labels(frequency=frequency, outcome="processed").inc(summary.processed_count)
    accrual_account_counter.labels(frequency=frequency, outcome="skipped").inc(summary.skipped_count)
    accrual_account_counter.labels(frequency=frequency, outcome="failed").inc(len(summary.errors))

    if not summary.dry_run:
        interest_applied_counter.labels(frequency=frequency).inc(float(summary.total_interest))
