"""
Tests for /help, /lgtm, /remove-lgtm, /assign and /unassign.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import pytest

from prbot.handlers.errors import CommandError, UnknownCommandError
from prbot.integrations.base import PlatformError
from prbot.models.platform import Comment, Review


class TestHelp:
    def test_help_posts_configuration(self, make_handler):
        """Scenario: /help by alice posts one comment with the command table and configuration."""
        handler, client = make_handler(comment_sender="alice", lgtm_threshold=2, merge_method="squash")

        handler.execute_command("help", [])

        assert len(client.posted) == 1
        body = client.posted[0]
        assert "| Command | Usage | Description | Example |" in body
        assert "**LGTM Threshold:** 2 approval(s) required" in body
        assert "**Required Permissions:** admin, write" in body
        assert "**Default Merge Method:** squash" in body


class TestLgtm:
    def test_lgtm_below_threshold(self, make_handler, make_client, settings_factory):
        """Scenario: threshold 2, bob (write) posts /lgtm, status reports 1/2 and 1 more needed."""
        settings = settings_factory(comment_sender="bob", lgtm_threshold=2)
        client = make_client(settings)
        client.permissions = {"bob": "write"}
        client.comments = [Comment(author="bob", body="/lgtm")]
        handler, _ = make_handler(client=client, comment_sender="bob", lgtm_threshold=2)

        handler.execute_command("lgtm", [])

        assert "approve_pr" not in client.call_names()
        assert len(client.posted) == 1
        body = client.posted[0]
        assert "**1/2**" in body
        assert "**1 more approval(s) needed**" in body
        assert "**Required permissions:** admin, write" in body
        assert "| @bob | `write` | ✅ |" in body

    def test_lgtm_reaches_threshold(self, make_handler, make_client, settings_factory):
        """Scenario: threshold 1, carol (admin) posts /lgtm on dave's PR, PR is approved."""
        settings = settings_factory(comment_sender="carol")
        client = make_client(settings, author="dave")
        client.permissions = {"carol": "admin"}
        client.comments = [Comment(author="carol", body="/lgtm")]
        handler, _ = make_handler(client=client, comment_sender="carol")

        handler.execute_command("lgtm", [])

        approvals = [c for c in client.calls if c[0] == "approve_pr"]
        assert len(approvals) == 1
        assert "LGTM Status - Ready to Merge" in approvals[0][1]
        assert "| @carol | `admin` | ✅ |" in approvals[0][1]
        assert client.posted == []

    def test_lgtm_permission_denied(self, make_handler, make_client, settings_factory):
        settings = settings_factory(comment_sender="guest")
        client = make_client(settings)
        client.permissions = {"guest": "read"}
        handler, _ = make_handler(client=client, comment_sender="guest")

        handler.execute_command("lgtm", [])

        assert "LGTM Permission Denied" in client.posted[0]
        assert "get_reviews" not in client.call_names()

    def test_pr_author_cannot_self_approve(self, make_handler, make_client, settings_factory):
        """The PR author gets a notice and the current status instead of an approval."""
        settings = settings_factory(comment_sender="author")
        client = make_client(settings)
        client.permissions = {"author": "admin"}
        client.comments = [Comment(author="author", body="/lgtm")]
        handler, _ = make_handler(client=client, comment_sender="author")

        handler.execute_command("lgtm", [])

        assert "approve_pr" not in client.call_names()
        assert "Self-approval not allowed" in client.posted[0]
        assert "**0/1**" in client.posted[0]


class TestRemoveLgtm:
    def test_dismisses_when_dropping_below_threshold(self, make_handler, make_client, settings_factory):
        settings = settings_factory(comment_sender="bob")
        client = make_client(settings)
        client.permissions = {"bob": "write"}
        client.comments = [
            Comment(author="bob", body="/lgtm"),
            Comment(author="bob", body="/remove-lgtm"),
        ]
        handler, _ = make_handler(client=client, comment_sender="bob")

        handler.execute_command("remove-lgtm", [])

        assert ("dismiss_approve", "LGTM removed by @bob") in client.calls
        assert "**0/1**" in client.posted[-1]

    def test_no_dismiss_when_threshold_still_met(self, make_handler, make_client, settings_factory):
        settings = settings_factory(comment_sender="bob")
        client = make_client(settings)
        client.permissions = {"bob": "write", "carol": "admin"}
        client.reviews = [Review(author="carol", state="APPROVED", submitted_at="2024-01-01T00:00:00Z")]
        client.comments = [
            Comment(author="bob", body="/lgtm"),
            Comment(author="bob", body="/remove-lgtm"),
        ]
        handler, _ = make_handler(client=client, comment_sender="bob")

        handler.execute_command("remove-lgtm", [])

        assert "dismiss_approve" not in client.call_names()
        assert len(client.posted) == 1

    def test_missing_approval_review_is_tolerated(self, make_handler, make_client, settings_factory):
        settings = settings_factory(comment_sender="bob")
        client = make_client(settings)
        client.permissions = {"bob": "write"}
        client.comments = [Comment(author="bob", body="/lgtm"), Comment(author="bob", body="/lgtm cancel")]

        def no_review(message):
            raise PlatformError("no approval review found for user bot to dismiss")

        client.dismiss_approve = no_review
        handler, _ = make_handler(client=client, comment_sender="bob")

        handler.execute_command("remove-lgtm", [])

        assert len(client.posted) == 1


class TestAssign:
    def test_assign_strips_mentions(self, make_handler):
        handler, client = make_handler(comment_sender="lead")

        handler.execute_command("assign", ["@alice", "bob"])

        assert ("assign_reviewers", ["alice", "bob"]) in client.calls
        assert "@alice" in client.posted[0] and "@bob" in client.posted[0]

    def test_assign_requires_users(self, make_handler):
        handler, _ = make_handler()
        with pytest.raises(CommandError, match="no users specified for assignment"):
            handler.execute_command("assign", [])

    def test_unassign(self, make_handler):
        handler, client = make_handler()
        client.reviewers = ["alice"]

        handler.execute_command("unassign", ["@alice"])

        assert client.reviewers == []
        assert "Removed @alice" in client.posted[0]


def test_unknown_command(make_handler):
    handler, _ = make_handler()
    with pytest.raises(UnknownCommandError, match="unknown command: nope"):
        handler.execute_command("nope", [])


def test_builtin_refused_from_user_path(make_handler):
    handler, _ = make_handler()
    with pytest.raises(CommandError, match="cannot be triggered from a comment"):
        handler.execute_command("__post-merge-cherry-pick", [])
