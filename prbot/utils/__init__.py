"""
Utility package exports
"""

from prbot.utils.helpers import (
    split_comma_list,
    parse_key_value_pairs,
    normalize_login,
    format_user_mentions,
    strip_mention,
    parse_timestamp,
    truncate,
    first_line,
    sanitize_secrets,
)

__all__ = [
    "split_comma_list",
    "parse_key_value_pairs",
    "normalize_login",
    "format_user_mentions",
    "strip_mention",
    "parse_timestamp",
    "truncate",
    "first_line",
    "sanitize_secrets",
]
