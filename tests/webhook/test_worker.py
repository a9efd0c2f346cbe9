"""
Unit Tests for the Webhook Worker Pool and Rate Limiter
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import queue
import threading

from prbot.models.platform import Comment
from prbot.models.webhook import CommentRef, PullRequestRef, RepositoryRef, WebhookEvent, WebhookJob
from prbot.webhook.middleware import RateLimiter
from prbot.webhook.worker import WorkerPool, event_settings, process_event


def comment_event(body="/label bug", author="alice", number=7):
    return WebhookEvent(
        platform="github",
        event_type="issue_comment",
        action="created",
        event_id="evt-1",
        repository=RepositoryRef(owner="acme", name="widgets"),
        pull_request=PullRequestRef(number=number, author="author"),
        comment=CommentRef(id=1, body=body, author=author),
        sender=author,
    )


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestRateLimiter:
    def test_burst_then_refill(self):
        """A fresh IP gets the full burst, then one token per 60/rate seconds."""
        clock = FakeClock()
        limiter = RateLimiter(3, clock=clock)

        assert [limiter.allow("1.2.3.4") for _ in range(4)] == [True, True, True, False]
        clock.now += 30
        assert limiter.allow("1.2.3.4")
        assert not limiter.allow("1.2.3.4")

    def test_ips_are_independent(self):
        limiter = RateLimiter(1, clock=FakeClock())
        assert limiter.allow("a")
        assert limiter.allow("b")
        assert not limiter.allow("a")

    def test_buckets_cleared_periodically(self):
        clock = FakeClock()
        limiter = RateLimiter(1, clock=clock)
        limiter.allow("a")
        limiter.allow("b")
        assert len(limiter) == 2

        clock.now += 300
        assert limiter.allow("a")
        assert len(limiter) == 1


def test_event_settings(settings_factory):
    settings = event_settings(settings_factory(owner="", repo="", pr_num=0), comment_event())

    assert (settings.owner, settings.repo, settings.pr_num) == ("acme", "widgets", 7)
    assert settings.comment_sender == "alice"
    assert settings.trigger_comment == "/label bug"
    assert settings.pr_sender == "author"
    assert settings.token == "test-token"


def test_process_event_runs_command(settings_factory, client_factory):
    client_factory.comments = [Comment(author="alice", body="/label bug")]

    result = process_event(comment_event(), settings_factory(), client_factory)

    assert result.success
    client = client_factory.created[0]
    assert client.settings.pr_num == 7
    assert client.labels == ["bug"]


def test_process_event_rejects_impersonated_trigger(settings_factory, client_factory):
    """The comment must have been posted by the sender it claims."""
    client_factory.comments = [Comment(author="mallory", body="/label bug")]

    result = process_event(comment_event(), settings_factory(), client_factory)

    assert not result.success
    assert client_factory.created[0].labels == []


class TestWorkerPool:
    def test_processes_jobs_and_drains_on_stop(self):
        jobs = queue.Queue(maxsize=10)
        seen = []
        lock = threading.Lock()

        def process(event):
            with lock:
                seen.append(event.pull_request.number)

        pool = WorkerPool(jobs, 2, process)
        for number in (1, 2, 3):
            jobs.put(WebhookJob(event=comment_event(number=number)))

        pool.start()
        jobs.join()
        pool.stop(grace_seconds=5)

        assert sorted(seen) == [1, 2, 3]
        assert not pool.running

    def test_failing_job_does_not_kill_worker(self):
        jobs = queue.Queue()
        seen = []

        def process(event):
            if event.pull_request.number == 1:
                raise RuntimeError("boom")
            seen.append(event.pull_request.number)

        pool = WorkerPool(jobs, 1, process)
        jobs.put(WebhookJob(event=comment_event(number=1)))
        jobs.put(WebhookJob(event=comment_event(number=2)))

        pool.start()
        jobs.join()
        pool.stop(grace_seconds=5)

        assert seen == [2]
