"""
Unit Tests for Webhook Payload Parsing
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import json

import pytest

from prbot.webhook.parser import (
    SkipEvent,
    detect_platform,
    extract_command,
    parse_comment_event,
    parse_github_pull_request,
)


def github_comment(**overrides):
    payload = {
        "action": "created",
        "issue": {
            "number": 12,
            "state": "open",
            "title": "Add feature",
            "user": {"login": "author"},
            "pull_request": {"url": "https://api.github.com/repos/acme/widgets/pulls/12"},
        },
        "comment": {"id": 99, "body": "/merge squash", "user": {"login": "alice"}},
        "repository": {"name": "widgets", "owner": {"login": "acme"}},
        "sender": {"login": "alice"},
    }
    payload.update(overrides)
    return json.dumps(payload).encode()


def gitlab_note(action="create", noteable_type="MergeRequest"):
    return json.dumps(
        {
            "object_kind": "note",
            "user": {"username": "bob"},
            "project": {"name": "widgets", "namespace": "acme"},
            "object_attributes": {
                "id": 5,
                "note": "/lgtm",
                "noteable_type": noteable_type,
                "action": action,
            },
            "merge_request": {"iid": 4, "state": "opened", "title": "Fix", "author": {"username": "carol"}},
        }
    ).encode()


class TestDetectPlatform:
    def test_github(self):
        headers = {"X-GitHub-Event": "issue_comment", "X-GitHub-Delivery": "abc-123"}
        assert detect_platform(headers) == ("github", "issue_comment", "abc-123")

    def test_gitlab_without_delivery_generates_id(self):
        platform, event_type, event_id = detect_platform({"X-Gitlab-Event": "Note Hook"})
        assert (platform, event_type) == ("gitlab", "Note Hook")
        assert len(event_id) == 36

    def test_unknown_source(self):
        assert detect_platform({"User-Agent": "curl"}) is None


class TestGitHubComment:
    def test_parse(self):
        event = parse_comment_event("github", "issue_comment", github_comment())

        assert event.repository.full_name == "acme/widgets"
        assert event.pull_request.number == 12
        assert event.pull_request.author == "author"
        assert event.comment.body == "/merge squash"
        assert event.comment.author == "alice"
        assert event.sender == "alice"

    def test_comment_on_plain_issue_skipped(self):
        payload = github_comment(issue={"number": 3, "title": "bug"})
        with pytest.raises(SkipEvent, match="not on a pull request"):
            parse_comment_event("github", "issue_comment", payload)

    def test_edited_comment_skipped(self):
        with pytest.raises(SkipEvent, match="ignoring action: edited"):
            parse_comment_event("github", "issue_comment", github_comment(action="edited"))

    def test_other_event_type_skipped(self):
        with pytest.raises(SkipEvent, match="unsupported event type: push"):
            parse_comment_event("github", "push", b"{}")

    def test_invalid_json_skipped(self):
        with pytest.raises(SkipEvent, match="failed to parse webhook payload"):
            parse_comment_event("github", "issue_comment", b"{not json")


class TestGitLabNote:
    @pytest.mark.parametrize("action", ["", "create", "created"])
    def test_parse_new_note(self, action):
        event = parse_comment_event("gitlab", "Note Hook", gitlab_note(action=action))

        assert event.platform == "gitlab"
        assert event.repository.full_name == "acme/widgets"
        assert event.pull_request.number == 4
        assert event.pull_request.author == "carol"
        assert event.sender == "bob"
        assert event.comment.body == "/lgtm"

    def test_updated_note_skipped(self):
        with pytest.raises(SkipEvent, match="ignoring action: update"):
            parse_comment_event("gitlab", "Note Hook", gitlab_note(action="update"))

    def test_issue_note_skipped(self):
        with pytest.raises(SkipEvent, match="not on a merge request"):
            parse_comment_event("gitlab", "Note Hook", gitlab_note(noteable_type="Issue"))


class TestGitHubPullRequest:
    def payload(self, action="opened", draft=False):
        return json.dumps(
            {
                "action": action,
                "number": 8,
                "pull_request": {
                    "number": 8,
                    "state": "open",
                    "draft": draft,
                    "user": {"login": "author"},
                    "head": {"ref": "feature", "sha": "abc"},
                    "base": {"ref": "main"},
                },
                "repository": {"name": "widgets", "owner": {"login": "acme"}},
                "sender": {"login": "author"},
            }
        ).encode()

    def test_parse(self):
        event = parse_github_pull_request(self.payload(), ["opened"])
        assert event.pull_request.head_sha == "abc"
        assert event.pull_request.base_ref == "main"

    def test_action_not_allowed(self):
        with pytest.raises(SkipEvent, match='action "closed" not in allowed actions'):
            parse_github_pull_request(self.payload(action="closed"), ["opened"])

    def test_draft_skipped_unless_ready_for_review(self):
        with pytest.raises(SkipEvent, match="skipping draft PR"):
            parse_github_pull_request(self.payload(draft=True), ["opened"])
        event = parse_github_pull_request(
            self.payload(action="ready_for_review", draft=True), ["ready_for_review"]
        )
        assert event.pull_request.draft


def test_extract_command():
    assert extract_command("  /merge squash") == "merge"
    assert extract_command("hello") == "unknown"
    assert extract_command("/") == "unknown"
