"""
Prometheus metrics for the webhook service (default registry).
"""

from prometheus_client import Counter, Gauge, Histogram

WEBHOOK_REQUESTS = Counter(
    "pr_cli_webhook_requests_total",
    "Total number of webhook requests received",
    ["platform", "event_type", "status"],
)
PROCESSING_DURATION = Histogram(
    "pr_cli_webhook_processing_duration_seconds",
    "Time spent processing webhook commands",
    ["platform", "command"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)
COMMAND_EXECUTIONS = Counter(
    "pr_cli_command_execution_total",
    "Total number of command executions",
    ["platform", "command", "status"],
)
QUEUE_SIZE = Gauge(
    "pr_cli_queue_size",
    "Current number of jobs waiting in the queue",
)
ACTIVE_WORKERS = Gauge(
    "pr_cli_active_workers",
    "Number of workers currently processing a job",
)
PR_EVENTS = Counter(
    "pr_cli_pr_event_total",
    "Total number of pull request events handled",
    ["platform", "action", "status"],
)
WORKFLOW_DISPATCHES = Counter(
    "pr_cli_workflow_dispatch_total",
    "Total number of workflow dispatches triggered by pull request events",
    ["platform", "workflow", "status"],
)


def record_webhook_request(platform: str, event_type: str, status: str) -> None:
    WEBHOOK_REQUESTS.labels(platform=platform, event_type=event_type, status=status).inc()


def record_command_execution(platform: str, command: str, status: str) -> None:
    COMMAND_EXECUTIONS.labels(platform=platform, command=command, status=status).inc()


def record_processing_duration(platform: str, command: str, seconds: float) -> None:
    PROCESSING_DURATION.labels(platform=platform, command=command).observe(seconds)


def record_pr_event(platform: str, action: str, status: str) -> None:
    PR_EVENTS.labels(platform=platform, action=action, status=status).inc()


def record_workflow_dispatch(platform: str, workflow: str, status: str) -> None:
    WORKFLOW_DISPATCHES.labels(platform=platform, workflow=workflow, status=status).inc()
