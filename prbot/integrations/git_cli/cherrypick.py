"""
Git CLI Cherry-Picker

Clones the repository into a temporary directory and replays commits on a
new branch cut from the target branch with the git command line. Used
instead of the API tree cherry-pick when `use_git_cli_for_cherrypick` is on,
since it handles merge commits and conflicts the API cannot.
"""

import logging
import shutil
import subprocess
import tempfile
from typing import List, Optional

from prbot.config import Settings
from prbot.models.platform import Commit
from prbot.utils.helpers import sanitize_secrets

logger = logging.getLogger(__name__)

BOT_EMAIL = "pr-cli@alaudadevops.com"
BOT_NAME = "PR CLI Bot"


class GitCommandError(RuntimeError):
    """A git command exited with a non-zero status."""


def cherry_pick_branch_name(pr_number: int, sha: str, target_branch: str) -> str:
    """cherry-pick-<PR>-to-<target>-<sha7>, with '/' and '.' in the target replaced."""
    safe_target = target_branch.replace("/", "-").replace(".", "-")
    return f"cherry-pick-{pr_number}-to-{safe_target}-{sha[:7]}"


def build_repo_url(settings: Settings) -> str:
    """Authenticated HTTPS clone URL for the configured repository."""
    path = f"{settings.owner}/{settings.repo}.git"
    base = settings.base_url.rstrip("/")
    if settings.platform == "gitlab":
        host = base.replace("/api/v4", "") if base else "https://gitlab.com"
        scheme, _, rest = host.partition("://")
        return f"{scheme}://oauth2:{settings.token}@{rest}/{path}"

    if not base or base == "https://api.github.com":
        return f"https://{settings.token}@github.com/{path}"
    host = base.replace("https://api.", "https://").replace("/api/v3", "")
    scheme, _, rest = host.partition("://")
    return f"{scheme}://{settings.token}@{rest}/{path}"


class GitCherryPicker:
    """Cherry-picks PR commits onto a target branch using the git CLI."""

    def __init__(self, settings: Settings, work_dir: Optional[str] = None):
        self.settings = settings
        self.repo_url = build_repo_url(settings)
        self.work_dir = work_dir

    def get_cherry_pick_branch_name(self, sha: str, target_branch: str) -> str:
        return cherry_pick_branch_name(self.settings.pr_num, sha, target_branch)

    def _git(self, repo_dir: Optional[str], *args: str, check: bool = True) -> subprocess.CompletedProcess:
        cmd = ["git", *args]
        logger.debug(f"Running: {sanitize_secrets(' '.join(cmd))}")
        result = subprocess.run(cmd, cwd=repo_dir, capture_output=True, text=True)
        if check and result.returncode != 0:
            output = sanitize_secrets((result.stderr or result.stdout).strip())
            raise GitCommandError(f"git {sanitize_secrets(args[0])} failed: {output}")
        return result

    def cherry_pick_commits(self, commits: List[Commit], target_branch: str) -> str:
        """
        Create the cherry-pick branch off `target_branch`, apply `commits` in
        order and push it.

        Returns:
            The pushed branch name
        """
        if not commits:
            raise ValueError("no commits to cherry-pick")

        branch = self.get_cherry_pick_branch_name(commits[-1].sha, target_branch)
        temp_dir = tempfile.mkdtemp(prefix="pr-cli-cherrypick-", dir=self.work_dir)
        repo_dir = f"{temp_dir}/repo"
        try:
            logger.info(f"Cloning repository for cherry-pick into {temp_dir}")
            self._git(None, "clone", "--no-tags", self.repo_url, repo_dir)
            self._git(repo_dir, "config", "user.email", BOT_EMAIL)
            self._git(repo_dir, "config", "user.name", BOT_NAME)

            self._git(repo_dir, "fetch", "origin", target_branch)
            self._git(repo_dir, "rev-parse", "--verify", f"origin/{target_branch}")
            self._git(repo_dir, "checkout", "-b", branch, f"origin/{target_branch}")

            for commit in commits:
                self._fetch_commit(repo_dir, commit.sha)
                self._apply(repo_dir, commit.sha)

            self._git(repo_dir, "push", "-u", "origin", branch)
            logger.info(f"Pushed cherry-pick branch {branch}")
            return branch
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

    def _fetch_commit(self, repo_dir: str, sha: str) -> None:
        if self._git(repo_dir, "fetch", "origin", sha, check=False).returncode != 0:
            logger.debug(f"Direct fetch of {sha[:7]} failed, fetching all refs")
            self._git(repo_dir, "fetch", "origin", "+refs/*:refs/remotes/origin/*")

    def _apply(self, repo_dir: str, sha: str) -> None:
        """Cherry-pick one commit, retrying conflicts with the theirs then ours strategy."""
        if self._git(repo_dir, "cherry-pick", "-m", "1", sha, check=False).returncode == 0:
            return
        self._git(repo_dir, "cherry-pick", "--abort", check=False)
        if self._git(repo_dir, "cherry-pick", sha, check=False).returncode == 0:
            return

        for strategy in ("theirs", "ours"):
            self._git(repo_dir, "cherry-pick", "--abort", check=False)
            result = self._git(
                repo_dir, "cherry-pick", "--strategy-option", strategy, sha, check=False
            )
            if result.returncode == 0:
                logger.warning(f"Cherry-picked {sha[:7]} with conflicts resolved as '{strategy}'")
                return
            if "empty" in (result.stdout + result.stderr).lower():
                logger.warning(f"Commit {sha[:7]} is empty on the target branch, skipping")
                self._git(repo_dir, "cherry-pick", "--skip", check=False)
                return

        self._git(repo_dir, "cherry-pick", "--abort", check=False)
        raise GitCommandError(f"git cherry-pick of {sha[:7]} failed with unresolved conflicts")
