"""
Command Registry

Maps command names to handler functions `(PRHandler, args) -> None`.
"""

from prbot.handlers.basic import (
    handle_close,
    handle_help,
    handle_label,
    handle_rebase,
    handle_unlabel,
)
from prbot.handlers.batch import handle_batch, handle_check
from prbot.handlers.checkbox import handle_checkbox, handle_checkbox_issue
from prbot.handlers.cherrypick import handle_cherry_pick, handle_post_merge_cherry_pick
from prbot.handlers.merge import handle_merge
from prbot.handlers.retest import handle_retest
from prbot.handlers.review import (
    handle_assign,
    handle_lgtm,
    handle_remove_lgtm,
    handle_unassign,
)

COMMANDS = {
    "help": handle_help,
    "assign": handle_assign,
    "unassign": handle_unassign,
    "lgtm": handle_lgtm,
    "remove-lgtm": handle_remove_lgtm,
    "merge": handle_merge,
    "ready": handle_merge,
    "close": handle_close,
    "rebase": handle_rebase,
    "check": handle_check,
    "batch": handle_batch,
    "cherry-pick": handle_cherry_pick,
    "cherrypick": handle_cherry_pick,
    "label": handle_label,
    "unlabel": handle_unlabel,
    "retest": handle_retest,
    "checkbox": handle_checkbox,
    "checkbox-issue": handle_checkbox_issue,
}

POST_MERGE_CHERRY_PICK = "__post-merge-cherry-pick"

BUILTIN_COMMANDS = {
    POST_MERGE_CHERRY_PICK: handle_post_merge_cherry_pick,
}
