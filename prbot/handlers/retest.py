"""
Retest Command

/retest [pipeline ...] reruns failed CI. Named pipelines are retriggered
with "/test <name>" comments; without names, failed checks are classified
into GitHub Actions workflow runs (rerun through the API) and other
pipelines (retriggered by comment).
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Sequence

from prbot.handlers import messages
from prbot.handlers.errors import CommandError
from prbot.models.platform import CheckRun

if TYPE_CHECKING:
    from prbot.handlers.pr_handler import PRHandler

logger = logging.getLogger(__name__)

GITHUB_ACTIONS_SLUG = "github-actions"
RETESTABLE_CONCLUSIONS = ("failure", "timed_out", "cancelled")
COMMON_TASK_NAMES = ("build", "test", "deploy", "lint", "check", "scan", "analyze")


@dataclass
class RetestPlan:
    pipelines: List[str] = field(default_factory=list)
    actions: List[CheckRun] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def extract_pipeline_name(check_name: str, exclusions: Sequence[str] = ()) -> str:
    """
    Pipeline name of a check run, or "" when the check is not a retestable
    pipeline.

    "Pipelines as Code CI / my-pipeline" gives "my-pipeline"; when the last
    segment is a generic task name and there are at least three segments,
    the segment before it is used.
    """
    name = check_name.strip()
    lower = name.lower()
    if any(excluded.lower() in lower for excluded in exclusions):
        return ""

    parts = name.split(" / ")
    if len(parts) < 2:
        return name
    last = parts[-1].strip()
    if last.lower() in COMMON_TASK_NAMES and len(parts) >= 3:
        return parts[-2].strip()
    return last


def _is_retestable(check: CheckRun) -> bool:
    return check.status == "completed" and check.conclusion in RETESTABLE_CONCLUSIONS


def classify_failed_checks(
    failed_checks: List[CheckRun], self_check_name: str, exclusions: Sequence[str]
) -> RetestPlan:
    plan = RetestPlan()
    for check in failed_checks:
        if self_check_name and check.name.strip().endswith(f"/ {self_check_name}"):
            continue
        if not _is_retestable(check):
            continue
        if check.app_slug == GITHUB_ACTIONS_SLUG:
            plan.actions.append(check)
            continue
        pipeline = extract_pipeline_name(check.name, exclusions)
        if pipeline:
            plan.pipelines.append(pipeline)
        else:
            plan.skipped.append(check.name)
    return plan


def _retest_pipelines(handler: "PRHandler", pipelines: List[str]) -> None:
    for pipeline in pipelines:
        comment = f"/test {pipeline}"
        try:
            handler.post_comment(comment)
        except Exception as e:
            logger.error(f"Failed to post retest comment '{comment}': {e}")
            raise CommandError(f"failed to trigger retest for pipeline {pipeline}: {e}") from e
        logger.info(f"Posted retest comment: {comment}")
    handler.post_comment(
        messages.RETEST_PIPELINES_TEMPLATE.format(items=messages.bullet_list(pipelines))
    )


def _retest_github_actions(handler: "PRHandler", actions: List[CheckRun]) -> None:
    client = handler.client
    if not client.supports_workflow_reruns:
        logger.warning("Platform client cannot rerun workflow runs, skipping GitHub Actions")
        return

    runs: Dict[int, str] = {}
    for action in actions:
        if not action.check_suite_id:
            logger.warning(f"Skipping GitHub Action {action.name}: no check suite ID")
            continue
        try:
            run_ids = client.get_workflow_run_ids_from_check_suite(action.check_suite_id)
        except Exception as e:
            logger.warning(f"Failed to get workflow runs for {action.name}: {e}")
            continue
        for run_id in run_ids:
            runs.setdefault(run_id, action.name)

    if not runs:
        logger.info("No GitHub Actions workflow runs found to retest")
        return

    retried, failed = [], []
    for run_id, name in runs.items():
        try:
            client.rerun_workflow_run_failed_jobs(run_id)
            retried.append(name)
        except Exception as e:
            logger.error(f"Failed to rerun GitHub Action {name} (run ID: {run_id}): {e}")
            failed.append(name)

    if retried:
        handler.post_comment(
            messages.RETEST_ACTIONS_TEMPLATE.format(items=messages.bullet_list(retried))
        )
    if failed:
        logger.warning(f"Failed to retest some GitHub Actions: {failed}")


def handle_retest(handler: "PRHandler", args: List[str]) -> None:
    all_passed, failed_checks = handler.client.check_runs_status()
    if all_passed:
        handler.post_comment(messages.RETEST_ALL_PASSING)
        return

    if args:
        _retest_pipelines(handler, args)
        return

    settings = handler.settings
    plan = classify_failed_checks(failed_checks, settings.self_check_name, settings.retest_exclusions)

    if plan.pipelines:
        _retest_pipelines(handler, plan.pipelines)
    if plan.actions:
        _retest_github_actions(handler, plan.actions)

    if not plan.pipelines and not plan.actions:
        message = messages.RETEST_NOTHING_FOUND
        if plan.skipped:
            message += messages.RETEST_SKIPPED_SUFFIX_TEMPLATE.format(
                items=messages.bullet_list(plan.skipped)
            )
        handler.post_comment(message)
