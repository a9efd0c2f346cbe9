"""
Webhook Workers

A fixed pool of threads drains the bounded job queue. Each job gets its
own settings snapshot, platform client and PRHandler, so workers share no
state besides the queue.
"""

import logging
import queue
import threading
import time
from typing import Callable, List, Optional

from prbot.config import Settings
from prbot.handlers.pr_handler import PRHandler
from prbot.integrations.base import PlatformClient, create_client
from prbot.models.webhook import WebhookEvent, WebhookJob
from prbot.services.executor import CommandExecutor, ExecutionConfig, ExecutionResult
from prbot.webhook import metrics

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Settings], PlatformClient]

POLL_INTERVAL_SECONDS = 0.5


def event_settings(base: Settings, event: WebhookEvent) -> Settings:
    """Settings for one comment event: the base settings plus the event's target PR."""
    return base.model_copy(
        update={
            "platform": event.platform,
            "owner": event.repository.owner,
            "repo": event.repository.name,
            "pr_num": event.pull_request.number,
            "comment_sender": event.comment.author or event.sender,
            "trigger_comment": event.comment.body,
            "pr_sender": event.pull_request.author,
        }
    )


def process_event(
    event: WebhookEvent,
    base_settings: Settings,
    client_factory: ClientFactory = create_client,
) -> ExecutionResult:
    """Execute the command carried by a comment event."""
    settings = event_settings(base_settings, event)
    client = client_factory(settings)
    handler = PRHandler(client, settings)
    executor = CommandExecutor(handler, ExecutionConfig.webhook())
    return executor.execute_comment(settings.trigger_comment)


class WorkerPool:
    """Threads consuming WebhookJobs from a shared queue."""

    def __init__(
        self,
        job_queue: "queue.Queue[WebhookJob]",
        worker_count: int,
        process: Callable[[WebhookEvent], object],
    ):
        self.queue = job_queue
        self.worker_count = worker_count
        self._process = process
        self._stopping = threading.Event()
        self._threads: List[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        if self._threads:
            return
        self._stopping.clear()
        for worker_id in range(1, self.worker_count + 1):
            thread = threading.Thread(
                target=self._run, args=(worker_id,), name=f"webhook-worker-{worker_id}", daemon=True
            )
            thread.start()
            self._threads.append(thread)
        logger.info(f"Started {self.worker_count} webhook workers")

    def stop(self, grace_seconds: float = 30.0) -> None:
        """Let workers drain the queue, waiting at most grace_seconds."""
        self._stopping.set()
        deadline = time.monotonic() + grace_seconds
        for thread in self._threads:
            thread.join(timeout=max(0.0, deadline - time.monotonic()))
        still_running = [t.name for t in self._threads if t.is_alive()]
        if still_running:
            logger.warning(
                f"Shutdown grace period expired with {self.queue.qsize()} queued jobs; "
                f"workers still running: {still_running}"
            )
        self._threads = []
        logger.info("Webhook workers stopped")

    def _run(self, worker_id: int) -> None:
        logger.info(f"Worker {worker_id} started")
        while True:
            try:
                job = self.queue.get(timeout=POLL_INTERVAL_SECONDS)
            except queue.Empty:
                if self._stopping.is_set():
                    logger.info(f"Worker {worker_id} stopping")
                    return
                continue

            metrics.QUEUE_SIZE.set(self.queue.qsize())
            metrics.ACTIVE_WORKERS.inc()
            try:
                self.process_job(worker_id, job)
            finally:
                metrics.ACTIVE_WORKERS.dec()
                self.queue.task_done()

    def process_job(self, worker_id: int, job: WebhookJob) -> Optional[object]:
        event = job.event
        wait = time.time() - job.enqueued_at.timestamp()
        logger.info(
            f"Worker {worker_id} processing {event.platform} event {event.event_id} "
            f"for {event.repository.full_name}#{event.pull_request.number} "
            f"from {event.sender} (queued {wait:.2f}s)"
        )
        try:
            return self._process(event)
        except Exception as e:
            logger.error(f"Worker {worker_id} failed to process event {event.event_id}: {e}")
            metrics.record_command_execution(event.platform, "unknown", "error")
            return None
