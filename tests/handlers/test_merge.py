"""
Tests for the /merge gate sequence.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import pytest

from prbot.handlers.errors import CommentedError, is_commented
from prbot.handlers.merge import (
    choose_merge_method,
    find_cherry_pick_branches,
    write_results,
)
from prbot.integrations.base import PlatformError
from prbot.models.platform import CheckRun, Comment, Commit, Review


def approved(user="carol"):
    return Review(author=user, state="APPROVED", submitted_at="2024-01-01T00:00:00Z")


def first_index(names, name):
    return names.index(name)


@pytest.fixture
def ready_handler(make_handler, make_client, settings_factory):
    """A PR with one valid approval, passing checks and an admin sender."""

    def _make(**overrides):
        overrides.setdefault("comment_sender", "maintainer")
        settings = settings_factory(**overrides)
        client = make_client(settings)
        client.permissions = {"maintainer": "admin", "carol": "write"}
        client.reviews = [approved()]
        return make_handler(client=client, **overrides)

    return _make


class TestMergeGate:
    def test_gates_run_in_order_then_merge(self, ready_handler):
        """Permission, checks, comments, reviews, then merge and a success comment."""
        handler, client = ready_handler(merge_method="squash")

        handler.execute_command("merge", [])

        names = client.call_names()
        assert names[0] == "check_user_permissions"
        assert (
            first_index(names, "check_runs_status")
            < first_index(names, "get_comments")
            < first_index(names, "get_reviews")
            < first_index(names, "merge_pr")
            < first_index(names, "post_comment")
        )
        assert ("merge_pr", "squash") in client.calls
        assert "get_commits" not in names
        assert "PR Successfully Merged" in client.posted[-1]
        assert "**Method:** squash" in client.posted[-1]

    def test_rebase_with_single_commit_merges(self, ready_handler):
        handler, client = ready_handler(merge_method="squash")

        handler.execute_command("merge", ["rebase"])

        assert "get_commits" in client.call_names()
        assert ("merge_pr", "rebase") in client.calls

    def test_rebase_with_multiple_commits_refused(self, ready_handler):
        """A rebase merge of a 3-commit PR posts the commits table and does not merge."""
        handler, client = ready_handler(merge_method="rebase")
        client.commits = [
            Commit(sha="aaaa1111111", message="first"),
            Commit(
                sha="bbbb2222222",
                message="Refactor the merge gate so every check reports its own failure reason\n\nBody line",
            ),
            Commit(sha="cccc3333333", message="third"),
        ]

        with pytest.raises(CommentedError):
            handler.execute_command("merge", [])

        assert "merge_pr" not in client.call_names()
        body = client.posted[-1]
        assert "PR has 3 commits" in body
        for short in ("aaaa111", "bbbb222", "cccc333"):
            assert f"`{short}`" in body
        assert "| `bbbb222` | Refactor the merge gate so every check reports its own fa... |" in body
        assert "Body line" not in body

    def test_not_enough_lgtm(self, ready_handler):
        handler, client = ready_handler(lgtm_threshold=2)

        with pytest.raises(CommentedError) as exc_info:
            handler.execute_command("merge", [])

        assert "merge_pr" not in client.call_names()
        assert "**1/2**" in client.posted[-1]
        assert "not enough LGTM approvals (1/2)" in str(exc_info.value.cause)

    def test_failing_checks_refused(self, ready_handler):
        handler, client = ready_handler()
        client.all_checks_passed = False
        client.check_runs = [CheckRun(name="CI / unit", conclusion="failure")]

        with pytest.raises(CommentedError):
            handler.execute_command("merge", [])

        assert "get_comments" not in client.call_names()
        assert "Some checks are not passing" in client.posted[-1]
        assert "CI / unit" in client.posted[-1]

    def test_permission_denied(self, ready_handler):
        handler, client = ready_handler(comment_sender="visitor")

        with pytest.raises(CommentedError):
            handler.execute_command("merge", [])

        assert client.call_names() == ["check_user_permissions", "post_comment"]
        assert "Insufficient Permissions" in client.posted[0]
        assert "**PR creator:** @author" in client.posted[0]

    def test_pr_author_may_merge_without_permission(self, ready_handler):
        handler, client = ready_handler(comment_sender="author")
        client.permissions["author"] = "read"

        handler.execute_command("merge", [])

        assert ("merge_pr", "squash") in client.calls

    def test_merge_failure_is_commented(self, ready_handler):
        handler, client = ready_handler()
        client.merge_error = PlatformError("Pull Request is not mergeable")

        with pytest.raises(CommentedError) as exc_info:
            handler.execute_command("merge", [])

        assert is_commented(exc_info.value)
        assert "Merge failed" in client.posted[-1]
        assert "not mergeable" in client.posted[-1]

    def test_ready_is_merge_alias(self, ready_handler):
        handler, client = ready_handler()
        handler.execute_command("ready", ["merge"])
        assert ("merge_pr", "merge") in client.calls

    def test_cherry_pick_requests_written_to_results(self, ready_handler, tmp_path):
        handler, client = ready_handler(results_dir=str(tmp_path))
        client.comments = [
            Comment(author="x", body="/cherry-pick release-1.0"),
            Comment(author="y", body="/cherrypick release-2.0"),
        ]

        handler.execute_command("merge", [])

        assert (tmp_path / "has-cherry-pick-comments").read_text() == "true"
        assert (tmp_path / "merge-successful").read_text() == "true"

    def test_no_cherry_pick_requests(self, ready_handler, tmp_path):
        handler, client = ready_handler(results_dir=str(tmp_path))

        handler.execute_command("merge", [])

        assert (tmp_path / "has-cherry-pick-comments").read_text() == "false"
        assert (tmp_path / "merge-successful").read_text() == "true"


class TestChooseMergeMethod:
    def test_argument_overrides_configured(self, make_client):
        assert choose_merge_method(["MERGE"], "squash", make_client()) == "merge"

    def test_invalid_argument_uses_configured(self, make_client):
        assert choose_merge_method(["fast"], "squash", make_client()) == "squash"

    def test_auto_prefers_rebase(self, make_client):
        client = make_client()
        client.merge_methods = ["merge", "squash", "rebase"]
        assert choose_merge_method(["auto"], "squash", client) == "rebase"

    def test_auto_with_only_merge(self, make_client):
        client = make_client()
        client.merge_methods = ["merge"]
        assert choose_merge_method([], "auto", client) == "merge"

    def test_auto_with_nothing_available(self, make_client):
        client = make_client()
        client.merge_methods = []
        assert choose_merge_method([], "auto", client) == "squash"


def test_find_cherry_pick_branches_dedupes():
    comments = [
        Comment(author="x", body="/cherrypick release-1.0"),
        Comment(author="x", body="some text\n/cherry-pick release-1.0"),
        Comment(author="x", body="/cherry-pick   hotfix"),
        Comment(author="x", body="please /cherrypick nope"),
    ]
    assert find_cherry_pick_branches(comments) == ["release-1.0", "hotfix"]


def test_write_results_skips_missing_directory(tmp_path):
    missing = tmp_path / "absent"
    write_results(str(missing), {"merge-successful": "true"})
    assert not missing.exists()
