"""
Tests for /retest: pipeline name extraction, check classification and reruns.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import pytest

from prbot.handlers.retest import classify_failed_checks, extract_pipeline_name
from prbot.models.platform import CheckRun


def failed(name, conclusion="failure", app_slug="", check_suite_id=0, status="completed"):
    return CheckRun(
        name=name,
        status=status,
        conclusion=conclusion,
        app_slug=app_slug,
        check_suite_id=check_suite_id,
    )


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Pipelines as Code CI / unit-tests", "unit-tests"),
        ("Pipelines as Code CI / backend / test", "backend"),
        ("Pipelines as Code CI / test", "test"),
        ("standalone", "standalone"),
        ("Codecov / patch", ""),
        ("Security scan / trivy", ""),
    ],
)
def test_extract_pipeline_name(name, expected):
    exclusions = ["codecov", "security"]
    assert extract_pipeline_name(name, exclusions) == expected


class TestClassifyFailedChecks:
    def test_self_check_is_skipped(self):
        """Only checks ending with "/ <self name>" are the bot's own."""
        plan = classify_failed_checks(
            [failed("CI / pr-cli"), failed("CI / pr-cli-tests")], "pr-cli", []
        )
        assert plan.pipelines == ["pr-cli-tests"]

    def test_only_retestable_conclusions(self):
        plan = classify_failed_checks(
            [
                failed("CI / a", conclusion="timed_out"),
                failed("CI / b", conclusion="cancelled"),
                failed("CI / c", conclusion="action_required"),
                failed("CI / d", conclusion=None, status="in_progress"),
            ],
            "pr-cli",
            [],
        )
        assert plan.pipelines == ["a", "b"]

    def test_github_actions_and_skipped(self):
        action = failed("build", app_slug="github-actions", check_suite_id=9)
        plan = classify_failed_checks(
            [action, failed("SonarCloud Code Analysis")], "pr-cli", ["sonarcloud"]
        )
        assert plan.actions == [action]
        assert plan.skipped == ["SonarCloud Code Analysis"]


class TestRetestCommand:
    def test_all_passing(self, make_handler):
        handler, client = make_handler()
        handler.execute_command("retest", [])
        assert client.posted == ["✅ All checks are passing. No failed tests to rerun."]

    def test_named_pipelines(self, make_handler):
        handler, client = make_handler()
        client.all_checks_passed = False

        handler.execute_command("retest", ["e2e", "unit"])

        assert client.posted[:2] == ["/test e2e", "/test unit"]
        assert "• e2e\n• unit" in client.posted[2]

    def test_failed_pipelines_and_actions(self, make_handler):
        handler, client = make_handler(retest_exclusions=[])
        client.all_checks_passed = False
        client.check_runs = [
            failed("Pipelines as Code CI / integration"),
            failed("lint", app_slug="github-actions", check_suite_id=5),
            failed("unit", app_slug="github-actions", check_suite_id=6),
        ]
        client.workflow_runs = {5: [501], 6: [501, 601]}

        handler.execute_command("retest", [])

        assert client.posted[0] == "/test integration"
        reruns = [c[1] for c in client.calls if c[0] == "rerun_workflow_run_failed_jobs"]
        assert reruns == [501, 601]
        assert "Retested GitHub Actions" in client.posted[-1]
        assert "• lint\n• unit" in client.posted[-1]

    def test_nothing_retestable_lists_skipped(self, make_handler):
        handler, client = make_handler(retest_exclusions=["codecov"])
        client.all_checks_passed = False
        client.check_runs = [failed("codecov/patch")]

        handler.execute_command("retest", [])

        assert client.posted[0].startswith("✅ No failed pipelines found that can be retested.")
        assert "• codecov/patch" in client.posted[0]
