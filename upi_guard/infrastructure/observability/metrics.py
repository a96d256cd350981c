"""Prometheus metrics for monitoring risk labels, payment gating, and scorer health"""

from prometheus_client import Counter, Histogram

# Evaluation metrics
evaluation_counter = Counter(
    "upi_guard_evaluation_total",
    "Total transaction risk evaluations",
    ["label"],  # LOW | MEDIUM | HIGH
)

payment_decision_counter = Counter(
    "upi_guard_payment_decision_total",
    "Payment gate outcomes",
    ["outcome"],  # allowed | blocked
)

low_confidence_counter = Counter(
    "upi_guard_low_confidence_scan_total",
    "Scans evaluated with a substituted fallback identifier",
)

# Scoring metrics
scoring_latency_histogram = Histogram(
    "scoring_latency_seconds",
    "Risk scorer response time",
    ["scorer"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

scoring_failure_counter = Counter(
    "scoring_failures_total",
    "Failed scoring calls",
    ["kind"],  # network_error | service_error | timeout_error
)

# Session metrics
dropped_scan_counter = Counter(
    "upi_guard_dropped_scan_events_total",
    "Scan events dropped because the session was not capturing",
)

stale_response_counter = Counter(
    "upi_guard_stale_scoring_responses_total",
    "Scoring responses discarded after the session moved on",
)

# Report webhook metrics
report_latency_histogram = Histogram(
    "report_webhook_latency_seconds",
    "Fraud report webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

report_failure_counter = Counter(
    "report_webhook_failures_total",
    "Failed fraud report deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_evaluation(label: str, allowed: bool, low_confidence: bool) -> None:
    """Record evaluation metrics for monitoring label distribution and block rate"""
    evaluation_counter.labels(label=label).inc()
    outcome = "allowed" if allowed else "blocked"
    payment_decision_counter.labels(outcome=outcome).inc()

    if low_confidence:
        low_confidence_counter.inc()
