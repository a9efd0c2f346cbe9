"""
Shared Utility Functions

Common helper functions used across multiple modules.
"""

import re
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Credentials that may appear in clone URLs or git output
_TOKEN_PATTERNS = [
    (re.compile(r"oauth2:[^@\s]+@"), "oauth2:***@"),
    (re.compile(r"https://[^:@/\s]+:[^@\s]+@"), "https://***@"),
    (re.compile(r"https://(gh[pousr]_[A-Za-z0-9_]+)@"), "https://***@"),
    (re.compile(r"gh[pousr]_[A-Za-z0-9_]+"), "***"),
    (re.compile(r"glpat-[A-Za-z0-9_-]{20,}"), "***"),
]


def split_comma_list(value: Any) -> List[str]:
    """
    Normalize a comma-separated string or a list into a list of trimmed,
    non-empty strings.

    - "a, b,,c" → ["a", "b", "c"]
    - ["a", " b "] → ["a", "b"]
    - None/"" → []
    """
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = list(value)
    else:
        return [str(value)]
    return [str(item).strip() for item in items if str(item).strip()]


def parse_key_value_pairs(value: str) -> Dict[str, str]:
    """
    Parse "k1=v1,k2=v2" into a dict. Entries without '=' or with an empty
    key are ignored; values may contain '='.
    """
    result: Dict[str, str] = {}
    for pair in split_comma_list(value):
        key, sep, val = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            logger.warning(f"Ignoring malformed key=value entry: {pair!r}")
            continue
        result[key] = val.strip()
    return result


def normalize_login(login: str) -> str:
    """
    Normalize a login for matching: lowercase, trimmed, and without a
    trailing "[bot]" or "-bot" suffix.
    """
    login = (login or "").strip().lower()
    for suffix in ("[bot]", "-bot"):
        if login.endswith(suffix):
            login = login[: -len(suffix)]
    return login


def format_user_mentions(users: List[str]) -> List[str]:
    """Prefix each user with '@' unless it already has one."""
    return [user if user.startswith("@") else f"@{user}" for user in users]


def strip_mention(user: str) -> str:
    return user.strip().lstrip("@")


def parse_timestamp(value: Optional[str]) -> datetime:
    """
    Parse an ISO-8601 timestamp ("2024-01-02T03:04:05Z" or with offset).
    Unparseable or empty values sort first.
    """
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug(f"Unparseable timestamp: {value!r}")
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def truncate(text: str, limit: int) -> str:
    """Truncate text to at most `limit` characters, ending with '...' when cut."""
    if len(text) <= limit:
        return text
    return text[: max(limit - 3, 0)] + "..."


def first_line(text: str) -> str:
    return (text or "").split("\n", 1)[0].strip()


def sanitize_secrets(text: str) -> str:
    """Mask tokens embedded in URLs or command output."""
    for pattern, replacement in _TOKEN_PATTERNS:
        text = pattern.sub(replacement, text)
    return text
