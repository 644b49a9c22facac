"""Prometheus metrics for BizFlow.

Defines and exposes operational metrics for monitoring and alerting.
"""

from prometheus_client import Counter, Histogram

# HTTP metrics
http_requests_total = Counter(
    "bizflow_http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status_code"]
)

http_request_duration_seconds = Histogram(
    "bizflow_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "route"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Audit trail
audit_write_failures_total = Counter(
    "bizflow_audit_write_failures_total",
    "Audit log entries that could not be written",
    ["action"]
)

# Domain event fan-out
event_handler_failures_total = Counter(
    "bizflow_event_handler_failures_total",
    "Event handlers that raised and were rolled back",
    ["event", "handler"]
)

# Webhooks
webhook_deliveries_total = Counter(
    "bizflow_webhook_deliveries_total",
    "Webhook delivery attempts",
    ["module", "status"]  # status: success|failed
)

webhook_delivery_duration_seconds = Histogram(
    "bizflow_webhook_delivery_duration_seconds",
    "Webhook delivery latency in seconds",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

# Attendance sync
attendance_sync_runs_total = Counter(
    "bizflow_attendance_sync_runs_total",
    "ZKBioTime attendance sync runs",
    ["status"]  # status: success|error
)

attendance_records_synced_total = Counter(
    "bizflow_attendance_records_synced_total",
    "Attendance transactions processed by the sync",
    ["outcome"]  # outcome: created|skipped|missing_employee
)

# Workflows
workflow_runs_total = Counter(
    "bizflow_workflow_runs_total",
    "Workflow executions",
    ["event", "status"]  # status: completed|failed|skipped
)


def record_http_request(method: str, route: str, status_code: int, duration_seconds: float) -> None:
    http_requests_total.labels(method=method, route=route, status_code=str(status_code)).inc()
    http_request_duration_seconds.labels(method=method, route=route).observe(duration_seconds)
