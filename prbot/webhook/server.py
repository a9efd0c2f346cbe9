"""
Webhook Server State

Owns the job queue, the worker pool and the per-event processing paths
used by the HTTP routes.
"""

import logging
import queue
import time
from datetime import timedelta
from typing import Dict, Optional

from prbot.config import VERSION, Settings, WebhookSettings
from prbot.integrations.base import create_client
from prbot.models.webhook import PullRequestEvent, WebhookEvent, WebhookJob
from prbot.services.executor import ExecutionResult
from prbot.webhook import metrics
from prbot.webhook.worker import ClientFactory, WorkerPool, process_event

logger = logging.getLogger(__name__)

READY_QUEUE_USAGE_LIMIT = 0.95


class QueueFullError(Exception):
    pass


class WebhookServer:
    def __init__(
        self,
        webhook_settings: WebhookSettings,
        settings: Settings,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.webhook_settings = webhook_settings
        self.settings = settings
        self.client_factory = client_factory or create_client
        self.secret = webhook_settings.resolved_secret()
        self.queue: "queue.Queue[WebhookJob]" = queue.Queue(maxsize=webhook_settings.queue_size)
        self.pool = WorkerPool(self.queue, webhook_settings.worker_count, self.process_event)
        self.start_time = time.monotonic()

    # Lifecycle

    def start(self) -> None:
        self.start_time = time.monotonic()
        if self.webhook_settings.async_processing:
            self.pool.start()

    def stop(self) -> None:
        if self.webhook_settings.async_processing:
            self.pool.stop(self.webhook_settings.shutdown_grace_seconds)

    # Comment events

    def enqueue(self, event: WebhookEvent) -> None:
        try:
            self.queue.put_nowait(WebhookJob(event=event))
        except queue.Full:
            raise QueueFullError("job queue is full")
        metrics.QUEUE_SIZE.set(self.queue.qsize())
        logger.debug(f"Job for event {event.event_id} enqueued")

    def process_event(self, event: WebhookEvent) -> ExecutionResult:
        return process_event(event, self.settings, self.client_factory)

    # pull_request events

    def workflow_inputs(self, event: PullRequestEvent) -> Dict[str, str]:
        pr = event.pull_request
        inputs = {
            "pr_number": str(pr.number),
            "pr_action": event.action,
            "head_ref": pr.head_ref,
            "head_sha": pr.head_sha,
            "base_ref": pr.base_ref,
            "sender": event.sender,
        }
        inputs.update(self.webhook_settings.workflow_inputs)
        return inputs

    def handle_pull_request_event(self, event: PullRequestEvent) -> None:
        """Trigger the configured workflow for a pull_request event."""
        ws = self.webhook_settings
        settings = self.settings.model_copy(
            update={
                "platform": event.platform,
                "owner": event.repository.owner,
                "repo": event.repository.name,
                "pr_num": event.pull_request.number,
            }
        )
        client = self.client_factory(settings)
        try:
            client.trigger_workflow_dispatch(
                ws.workflow_file,
                ws.workflow_ref,
                self.workflow_inputs(event),
                repo=ws.workflow_repo or None,
            )
        except Exception:
            metrics.record_workflow_dispatch(event.platform, ws.workflow_file, "error")
            raise
        metrics.record_workflow_dispatch(event.platform, ws.workflow_file, "success")
        logger.info(
            f"Triggered workflow {ws.workflow_file} for PR #{event.pull_request.number} "
            f"({event.action})"
        )

    # Health

    def queue_usage(self) -> float:
        return self.queue.qsize() / self.webhook_settings.queue_size

    def health(self) -> dict:
        uptime = timedelta(seconds=int(time.monotonic() - self.start_time))
        return {
            "status": "healthy",
            "version": VERSION,
            "uptime": str(uptime),
            "queue_size": self.queue.qsize(),
            "queue_capacity": self.webhook_settings.queue_size,
            "workers": self.webhook_settings.worker_count,
        }

    def is_ready(self) -> bool:
        return self.queue_usage() <= READY_QUEUE_USAGE_LIMIT
