"""
ID generation utilities for aggregate documents and their nested entries.

IDs have the form ``{prefix}-{epochMillis}-{random6}`` so they sort roughly by
creation time and stay readable in the console.
"""

import secrets
import string
import time
from typing import Optional

ID_ALPHABET = string.digits + string.ascii_lowercase
RANDOM_SUFFIX_LENGTH = 6

# Entity prefixes
SPRINT = "sprint"
SPRINT_SESSION = "ses"
SUBMISSION = "sub"
FORUM_POST = "post"
REPLY = "reply"
GROUP = "group"
MESSAGE = "msg"
GROUP_SESSION = "session"
STORE_ITEM = "item"
ORDER = "order"


def random_suffix(length: int = RANDOM_SUFFIX_LENGTH) -> str:
    """Return ``length`` random lowercase base-36 characters."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def generate_id(prefix: str, now_ms: Optional[int] = None) -> str:
    """
    Generate a new entity ID.

    Args:
        prefix: Entity prefix (e.g., 'sprint', 'msg')
        now_ms: Optional epoch milliseconds, defaults to the current time

    Returns:
        ID string

    Examples:
        >>> generate_id('sprint', 1700000000000)  # doctest: +SKIP
        'sprint-1700000000000-k3x9qa'
    """
    if not prefix:
        raise ValueError("prefix is required")
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{prefix}-{timestamp}-{random_suffix()}"
