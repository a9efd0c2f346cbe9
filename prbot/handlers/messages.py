"""
Comment Templates

Markdown bodies for every comment the bot posts, plus the table and
mention builders shared by the handlers.
"""

from typing import Dict, Iterable, List

from prbot.models.platform import CheckRun, Commit
from prbot.utils.helpers import first_line, format_user_mentions, truncate

HELP_TEMPLATE = """## 🤖 PR CLI Commands

Available commands for managing this Pull Request:

| Command | Usage | Description | Example |
|---------|-------|-------------|---------|
| **assign** | `/assign user1 user2 ...` | Assign reviewers to the PR | `/assign @alice @bob` |
| **unassign** | `/unassign user1 user2 ...` | Remove assigned reviewers | `/unassign @alice @bob` |
| **lgtm** | `/lgtm` | Approve the PR (requires permissions) | `/lgtm` |
| **remove-lgtm** | `/remove-lgtm` or `/lgtm cancel` | Dismiss your approval (requires permissions) | `/remove-lgtm` |
| **check** | `/check [/cmd1 args... /cmd2 args...]` | Check current LGTM status and check runs status, or execute multiple commands | `/check` or `/check /assign user1 /merge squash` |
| **batch** | `/batch /cmd1 args... /cmd2 args...` | Execute multiple commands in batch mode | `/batch /assign user1 /merge squash` |
| **merge** | `/merge [method]` | Merge the PR after checking permissions, checks, and LGTM status | `/merge squash` |
| **ready** | `/ready [method]` | Alias for merge command | `/ready` |
| **close** | `/close` | Close the PR without merging | `/close` |
| **rebase** | `/rebase` | Update the PR branch with the base branch | `/rebase` |
| **cherrypick** | `/cherrypick <branch>` | Create a cherrypick PR to a different branch | `/cherrypick release-3.9` |
| **label** | `/label label1 label2 ...` | Add labels to the PR | `/label bug enhancement` |
| **unlabel** | `/unlabel label1 label2 ...` | Remove labels from the PR | `/unlabel bug` |
| **retest** | `/retest [pipeline ...]` | Trigger retest of failed checks | `/retest` |
| **checkbox** | `/checkbox` | Check every unchecked box in the PR description | `/checkbox` |
| **checkbox-issue** | `/checkbox-issue [number] [--title T] [--author A]` | Check every unchecked box in an issue description | `/checkbox-issue 42` |
| **help** | `/help` | Display this help message | `/help` |

### 📋 Merge Methods

| Method | Description |
|--------|-------------|
| `auto` | Automatically select the best available method |
| `merge` | Create a merge commit |
| `squash` | Squash and merge all commits |
| `rebase` | Rebase and merge (only for PRs with a single commit) |

> 💡 **Auto Mode Priority**: When using `auto`, the system will automatically select the best available merge method in the following order: `rebase` > `squash` > `merge`.

### 🍒 Cherrypick Commands

| Command | Description | PR State |
|---------|-------------|----------|
| `/cherrypick <branch>` | Create a cherrypick PR to target branch | **Merged:** Creates immediately |
| `/cherry-pick <branch>` | Alternative syntax for cherrypick | **Open:** Schedules for after merge |

### 🔄 Batch Command Execution

**Restrictions:**
- Recursive batch calls are not allowed (`/batch` cannot be used within batch)
- LGTM commands (`/lgtm, /remove-lgtm`) are NOT supported in batch execution

### ⚙️ Configuration

- **LGTM Threshold:** {threshold} approval(s) required
- **Required Permissions:** {permissions}
- **Default Merge Method:** {merge_method}

> 💡 **Tip:** Use @username format for user mentions in assign/unassign commands"""

COMMAND_ERROR_TEMPLATE = (
    "❌ **Command Failed**\n\n"
    "Command: `{command}`\n"
    "Error: {error}\n\n"
    "Please check the command usage or contact support if the issue persists."
)

BUILTIN_NOT_ALLOWED = "built-in command {command} cannot be triggered from a comment"

# LGTM

LGTM_PERMISSION_DENIED_TEMPLATE = (
    "❌ **LGTM Permission Denied**\n\n"
    "@{user}, you don't have sufficient permissions to approve this PR.\n\n"
    "**Your permission:** `{permission}`\n"
    "**Required permissions:** {required}\n\n"
    "Only users with the required permissions can use the /lgtm command."
)

LGTM_STATUS_READY_TEMPLATE = (
    "✅ **LGTM Status - Ready to Merge**\n\n"
    "This PR has received **{votes}/{threshold}** valid LGTM approvals and meets the approval threshold.\n\n"
    "**LGTM Summary:**\n{table}\n\n"
    "The PR is now ready for merge! 🎉"
)

LGTM_STATUS_PENDING_TEMPLATE = (
    "⏳ **LGTM Status**\n\n"
    "This PR currently has **{votes}/{threshold}** valid LGTM approvals. "
    "**{needed} more approval(s) needed** to meet the threshold.\n\n"
    "**Current LGTM Votes:**\n{table}\n\n"
    "**Required permissions:** {required}"
)

LGTM_STATUS_TIP = (
    "\n\n>  **Tip:** Use `/lgtm` to approve this PR if you have the required permissions."
)

CHECK_RUNS_FAILED_HEADER = (
    "\n\n⚠️ **Check Runs Status - Some checks are not passing**\n\n"
    "| Check Name | Status |\n|------------|--------|"
)
CHECK_RUNS_FAILED_FOOTER = (
    "\n\n> **Note:** All checks must pass before this PR can be merged."
)
CHECK_RUNS_PASSED = (
    "\n\n✅ **Check Runs Status - All checks are passing**\n\n"
    "This PR is ready for merge from a technical perspective!"
)

# Remove LGTM

REMOVE_LGTM_PERMISSION_DENIED_TEMPLATE = (
    "❌ **Remove LGTM Permission Denied**\n\n"
    "@{user}, you don't have sufficient permissions to dismiss approvals on this PR.\n\n"
    "**Your permission:** `{permission}`\n"
    "**Required permissions:** {required}\n\n"
    "Only users with the required permissions can use the /remove-lgtm command."
)

REMOVE_LGTM_SUCCESS_TEMPLATE = (
    "✅ **Approval Dismissed**\n\n"
    "@{user} has successfully dismissed their approval review.\n\n"
    "**Permission:** `{permission}`\n\n"
    "Use `/lgtm` again to re-approve this PR if needed."
)

REMOVE_LGTM_STATUS_TEMPLATE = (
    "✅ **Approval Dismissed Successfully**\n\n"
    "@{user} has dismissed their approval review.\n\n"
    "**Updated LGTM Status:**\n"
    "- Current valid approvals: **{votes}/{threshold}**\n"
    "- Approvals needed: **{needed}**\n\n"
)

REMOVE_LGTM_DISMISS_MESSAGE = "LGTM removed by @{user}"

# Merge

MERGE_INSUFFICIENT_PERMISSIONS_TEMPLATE = (
    "❌ **Insufficient Permissions**\n\n"
    "@{user}, you don't have the required permissions to merge this PR.\n\n"
    "**Your permission:** {permission}\n"
    "**Required permissions:** {required}\n"
    "**PR creator:** @{author}\n\n"
    "You need either:\n"
    "- Required repository permissions ({required}), OR\n"
    "- Be the creator of this PR"
)

MERGE_CHECKS_NOT_PASSING_TEMPLATE = (
    "⚠️ **Cannot merge PR: Some checks are not passing**\n\n"
    "{table}\n\n"
    "Please wait for all checks to pass before merging."
)

MERGE_NOT_ENOUGH_LGTM_TEMPLATE = (
    "❌ **Cannot merge: Not enough LGTM approvals**\n\n"
    "This PR has **{votes}/{threshold}** valid LGTM approvals. **{needed} more approval(s) needed**.\n\n"
    "Please ensure the PR has sufficient approvals before merging."
)

MERGE_REBASE_MULTIPLE_COMMITS_TEMPLATE = (
    "❌ **Cannot rebase and merge: PR has {count} commits**\n\n"
    "The `rebase` merge method requires a single commit. This PR contains {count} commits:\n\n"
    "{table}\n\n"
    "Please squash the commits into one, or merge with `/merge squash`."
)

MERGE_FAILED_TEMPLATE = (
    "❌ **Merge failed**\n\n"
    "Failed to merge PR #{number}: {error}\n\n"
    "Please check the PR status and try again."
)

MERGE_SUCCESS_TEMPLATE = (
    "🎉 **PR Successfully Merged!**\n\n"
    "**Merge details:**\n"
    "- **Method:** {method}\n"
    "- **Merged by:** @{user}\n"
    "- **LGTM votes:** {votes}/{threshold}\n\n"
    "**Approvers:**\n{table}\n\n"
    "Thank you to all reviewers! 🙏"
)

# Close

CLOSE_SUCCESS_TEMPLATE = "✅ PR #{number} has been closed by @{user}."

CLOSE_ALREADY_CLOSED_TEMPLATE = (
    "❌ **PR #{number} is already closed**\n\n"
    "Cannot close a PR that is already in closed state."
)

# Rebase

REBASE_FAILED_TEMPLATE = "❌ **Rebase failed**: {error}"
REBASE_SUCCESS = "✅ **PR rebased successfully** on the base branch."

# Assignment and labels

ASSIGNMENT_GREETING_TEMPLATE = (
    "{greeting}\n\n"
    "@{user} has requested your review on this pull request. "
    "Please take a look when you have a moment. Thanks! 🙏"
)
UNASSIGNMENT_TEMPLATE = "♻️ Removed {users} from the review list. Thanks for your time!"

LABELS_ADDED_TEMPLATE = "🏷️ Labels `{labels}` have been added to this PR by @{user}"
LABELS_REMOVED_TEMPLATE = "🏷️ Labels `{labels}` have been removed from this PR by @{user}"

# Cherry-pick

CHERRY_PICK_INVALID = (
    "❌ **Invalid cherrypick command**\n\n"
    "Usage: `/cherrypick <target-branch>`\n\n"
    "Examples:\n"
    "- `/cherrypick release-3.9`\n"
    "- `/cherrypick release-1.15`\n\n"
    "Please specify the target branch for the cherrypick."
)

CHERRY_PICK_INSUFFICIENT_PERMISSIONS_TEMPLATE = (
    "❌ **Insufficient Permissions**\n\n"
    "@{user}, you don't have the required permissions to create a cherrypick PR.\n\n"
    "**Your permission:** {permission}\n"
    "**Required permissions:** {required}\n"
    "**PR creator:** @{author}\n\n"
    "You need either:\n"
    "- Required repository permissions ({required}), OR\n"
    "- Be the creator of this PR"
)

CHERRY_PICK_CLOSED_PR_TEMPLATE = (
    "❌ **Cannot cherrypick PR**\n\n"
    "PR #{number} has an unknown state. Cherrypick can be performed on:\n"
    "- **Merged PRs** (cherrypick is created immediately)\n"
    "- **Open PRs** (cherrypick is scheduled for when the PR merges)\n\n"
    "Current PR state: {state}"
)

CHERRY_PICK_BRANCH_NOT_FOUND_TEMPLATE = (
    "❌ **Cherry Pick Skipped**\n\n"
    "Target branch `{branch}` does not exist in this repository. "
    "Please check the branch name and try again."
)

CHERRY_PICK_ERROR_TEMPLATE = (
    "❌ **Cherry Pick Failed**\n\n"
    "Failed to cherry-pick changes from PR #{number} to branch `{branch}`:\n"
    "* Requested by: @{user}\n"
    "* Error: `{error}`\n\n"
    "*Possible causes:*\n"
    "* **🔀 Merge conflicts** - Changes conflict with target branch\n"
    "* **🍴 Fork PR** - Commits may not be available in target repository\n"
    "* **🔒 Branch protection rules** - Target branch has restrictions\n"
    "* **❌ Invalid branch name** - Target branch doesn't exist\n\n"
    "Please resolve any issues and try again."
)

CHERRY_PICK_SUCCESS_TEMPLATE = (
    "✅ **Cherry Pick Successful**\n\n"
    "Successfully cherry-picked changes from PR #{number} to branch `{branch}`.\n\n"
    "*Details:*\n"
    "* Source PR: #{number}\n"
    "* Cherry-pick PR: #{new_number}\n"
    "* Target Branch: `{branch}`\n"
    "* Cherry-picked by: @{user}\n"
    "* Latest commit SHA: `{sha}`"
)

CHERRY_PICK_SCHEDULED_TEMPLATE = (
    "✅ We will cherry-pick this PR to the branch `{branch}` upon merge."
)

CHERRY_PICK_PR_TITLE_TEMPLATE = "[Cherry-pick] {title}"
CHERRY_PICK_PR_BODY_TEMPLATE = (
    "Cherry-pick of PR #{number} to {branch}\n\n"
    "Original PR: #{number}\n"
    "Requested by: @{user}"
)

# Checkbox

CHECKBOX_DESCRIPTION_NOT_FOUND_TEMPLATE = (
    "❌ **No description found**\n\n"
    "Could not find a description for {target}, so there are no checkboxes to update."
)
CHECKBOX_ALREADY_CHECKED_TEMPLATE = (
    "ℹ️ **Nothing to update**\n\n"
    "All checkboxes in {target} are already checked."
)
CHECKBOX_UPDATE_SUCCESS_TEMPLATE = (
    "✅ @{user} checked all checkboxes in {target}."
)
CHECKBOX_ISSUE_NOT_FOUND_TEMPLATE = (
    "❌ **Issue not found**\n\n"
    "{detail}"
)
CHECKBOX_INVALID_OPTION_TEMPLATE = (
    "❌ **Invalid option** `{option}`\n\n"
    "Usage: `/checkbox-issue [number] [--title <title>] [--author <author>]`"
)
CHECKBOX_INVALID_NUMBER_TEMPLATE = (
    "❌ **Invalid issue number** `{value}`\n\n"
    "Usage: `/checkbox-issue [number] [--title <title>] [--author <author>]`"
)

# Retest

RETEST_ALL_PASSING = "✅ All checks are passing. No failed tests to rerun."
RETEST_NOTHING_FOUND = "✅ No failed pipelines found that can be retested."
RETEST_SKIPPED_SUFFIX_TEMPLATE = "\n\nSkipped checks (cannot extract pipeline name):\n{items}"
RETEST_PIPELINES_TEMPLATE = (
    "🔄 **Retesting failed pipelines**\n\nTriggered retests for:\n{items}"
)
RETEST_ACTIONS_TEMPLATE = (
    "🔄 **Retested GitHub Actions**\n\nTriggered retests for:\n{items}"
)

# Batch / multi-command summaries

BATCH_HEADER = "**Batch Execution Results:**"
CHECK_HEADER = "**Check Command Results:**"
MULTI_COMMAND_HEADER = "**Multi-Command Execution Results:**"
SOME_FAILED_SUFFIX = " (⚠️ Some commands failed)"

COMMAND_SUCCESS_LINE = "✅ Command `{command}` executed successfully"
COMMAND_FAILED_LINE = "❌ Command `{command}` failed: {error}"
COMMAND_NOT_ALLOWED_LINE = "❌ Command `{command}` is not allowed in batch execution"


def help_message(threshold: int, permissions: List[str], merge_method: str) -> str:
    return HELP_TEMPLATE.format(
        threshold=threshold,
        permissions=", ".join(permissions),
        merge_method=merge_method,
    )


def bullet_list(items: Iterable[str]) -> str:
    return "\n".join(f"• {item}" for item in items)


def build_users_table(
    users: Dict[str, str],
    required_permissions: List[str],
    robot_accounts: Iterable[str] = (),
) -> str:
    """
    Render LGTM voters as a markdown table. A vote is valid when the
    voter's permission is in `required_permissions`. Robot accounts are
    left out.
    """
    robots = {r.lower() for r in robot_accounts}
    table = "\n| User | Permission | Valid |\n|------|------------|-------|\n"
    for user, permission in users.items():
        if user.lower() in robots:
            continue
        valid = "✅" if permission in required_permissions else "❌"
        table += f"| @{user} | `{permission}` | {valid} |\n"
    return table


def build_check_status_table(failed_checks: List[CheckRun]) -> str:
    table = "\n| Check Name | Status |\n|------------|--------|\n"
    for check in failed_checks:
        name = f"[{check.name}]({check.url})" if check.url else check.name
        table += f"| {name} | `{check.display_status}` |\n"
    return table


def build_check_runs_section(all_passed: bool, failed_checks: List[CheckRun]) -> str:
    if all_passed:
        return CHECK_RUNS_PASSED
    section = CHECK_RUNS_FAILED_HEADER
    for check in failed_checks:
        section += f"\n| {check.name} | `{check.display_status}` |"
    return section + CHECK_RUNS_FAILED_FOOTER


def build_commits_table(commits: List[Commit]) -> str:
    table = "| Commit | Message |\n|--------|---------|\n"
    for commit in commits:
        message = truncate(first_line(commit.message), 60).replace("|", "\\|")
        table += f"| `{commit.sha[:7]}` | {message} |\n"
    return table


def assignment_greeting(reviewers: List[str], requester: str) -> str:
    greeting = "👋 Hello " + ", ".join(format_user_mentions(reviewers))
    return ASSIGNMENT_GREETING_TEMPLATE.format(greeting=greeting, user=requester)


def unassignment_message(reviewers: List[str]) -> str:
    return UNASSIGNMENT_TEMPLATE.format(users=", ".join(format_user_mentions(reviewers)))


def command_error(command: str, error: object) -> str:
    return COMMAND_ERROR_TEMPLATE.format(command=command, error=error)


def summarize_results(header: str, lines: List[str], failed: bool) -> str:
    """Join result lines under a header, flagging the header when anything failed."""
    if failed:
        header += SOME_FAILED_SUFFIX
    return f"{header}\n\n" + "\n".join(lines)
