"""
Tests for /batch and /check.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import pytest

from prbot.handlers.batch import is_allowed_in_batch
from prbot.handlers.errors import CommandError
from prbot.models.platform import Review


def test_allowed_in_batch():
    assert is_allowed_in_batch("merge")
    assert not is_allowed_in_batch("batch")
    assert not is_allowed_in_batch("lgtm")
    assert not is_allowed_in_batch("remove-lgtm")
    assert not is_allowed_in_batch("__post-merge-cherry-pick")


class TestBatch:
    def test_lgtm_refused_merge_runs(self, make_handler, make_client, settings_factory):
        """/batch /lgtm /merge: lgtm is refused, merge runs, one summary comment."""
        settings = settings_factory(comment_sender="maintainer")
        client = make_client(settings)
        client.permissions = {"maintainer": "admin", "carol": "write"}
        client.reviews = [Review(author="carol", state="APPROVED", submitted_at="2024-01-01T00:00:00Z")]
        handler, _ = make_handler(client=client, comment_sender="maintainer")

        handler.execute_command("batch", ["/lgtm", "/merge"])

        assert "approve_pr" not in client.call_names()
        assert ("merge_pr", "squash") in client.calls
        summary = client.posted[-1]
        assert summary.startswith("**Batch Execution Results:** (⚠️ Some commands failed)")
        assert "❌ Command `/lgtm` is not allowed in batch execution" in summary
        assert "✅ Command `/merge` executed successfully" in summary

    def test_failures_do_not_stop_later_commands(self, make_handler):
        handler, client = make_handler(comment_sender="alice")

        handler.execute_command("batch", ["/assign", "/label", "bug"])

        summary = client.posted[-1]
        assert "❌ Command `/assign` failed: no users specified for assignment" in summary
        assert "✅ Command `/label bug` executed successfully" in summary
        assert client.labels == ["bug"]

    def test_all_successful_header(self, make_handler):
        handler, client = make_handler()

        handler.execute_command("batch", ["/label", "bug", "/unlabel", "bug"])

        assert client.posted[-1].startswith("**Batch Execution Results:**\n\n")

    def test_batch_without_commands(self, make_handler):
        handler, _ = make_handler()
        with pytest.raises(CommandError, match="no valid commands"):
            handler.execute_command("batch", ["just", "words"])

    def test_builtin_rejected_inside_batch(self, make_handler):
        handler, client = make_handler()

        handler.execute_command("batch", ["/__post-merge-cherry-pick", "/label", "x"])

        assert "❌ Command `/__post-merge-cherry-pick` is not allowed in batch execution" in client.posted[-1]
        assert client.labels == ["x"]


class TestCheck:
    def test_check_without_args_posts_status(self, make_handler):
        handler, client = make_handler()

        handler.execute_command("check", [])

        assert len(client.posted) == 1
        assert "**0/1**" in client.posted[0]
        assert "All checks are passing" in client.posted[0]

    def test_check_with_commands_uses_check_header(self, make_handler):
        handler, client = make_handler()

        handler.execute_command("check", ["/label", "bug"])

        assert client.posted[-1].startswith("**Check Command Results:**")
