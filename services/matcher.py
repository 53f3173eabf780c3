"""URL scope matching for rules."""
from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

WILDCARD = "*"

BLOCKED_PREFIXES = (
    "chrome://",
    "chrome-extension://",
    "about:",
    "edge://",
    "brave://",
    "opera://",
    "vivaldi://",
    "devtools://",
    "view-source:",
)


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a scope pattern into a regular expression.

    ``*`` matches any substring and every other character matches itself.
    A pattern wrapped in slashes (``/.../``) is taken as a raw expression and
    may raise :class:`re.error`.
    """
    if len(pattern) > 2 and pattern.startswith("/") and pattern.endswith("/"):
        return re.compile(pattern[1:-1])
    literal_parts = (re.escape(part) for part in pattern.split(WILDCARD))
    return re.compile(".*".join(literal_parts))


def matches_url(url: str, pattern: str) -> bool:
    try:
        regex = compile_pattern(pattern)
    except re.error as exc:
        logger.debug("Pattern %r is not a valid expression (%s); using substring match", pattern, exc)
        return pattern in url
    return regex.search(url) is not None


def is_injectable_url(url: str | None) -> bool:
    if not url:
        return False
    return not url.startswith(BLOCKED_PREFIXES)
