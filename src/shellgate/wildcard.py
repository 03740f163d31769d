"""Wildcard patterns for policy rules.

``*`` matches any run of characters (including none) and ``?`` matches a
single character; everything else is literal. Matches are anchored to
the whole text.

Structured patterns are matched word by word against an invocation:
the first pattern word must match the head, each following word must
match the argument at the same position, and a lone ``*`` word matches
all remaining arguments (including none). ``rm *`` therefore matches
``rm``, ``rm -rf /etc`` and ``rm a b c``; ``git push *`` matches
``git push origin main`` but not ``git pull``.
"""

import re
from functools import lru_cache
from typing import Iterable, Sequence


@lru_cache(maxsize=512)
def _compile(pattern: str) -> re.Pattern[str]:
    escaped = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(f"^{escaped}$", re.DOTALL)


def match(text: str, pattern: str) -> bool:
    """Check whether ``text`` matches the wildcard ``pattern``."""
    return _compile(pattern).match(text) is not None


def match_any(text: str, patterns: Iterable[str]) -> bool:
    """Check whether ``text`` matches at least one pattern."""
    return any(match(text, p) for p in patterns)


def _match_sequence(items: Sequence[str], parts: Sequence[str]) -> bool:
    if not parts:
        return not items
    first, rest = parts[0], parts[1:]
    if first == "*":
        # Trailing star swallows everything; an inner star may skip any count
        if not rest:
            return True
        return any(_match_sequence(items[i:], rest) for i in range(len(items) + 1))
    if not items:
        return False
    return match(items[0], first) and _match_sequence(items[1:], rest)


def match_structured(head: str, tail: Sequence[str], pattern: str) -> bool:
    """Match an invocation ``{head, tail}`` against a structured pattern.

    A single-word pattern only constrains the head.
    """
    parts = pattern.split()
    if not parts or not match(head, parts[0]):
        return False
    if len(parts) == 1:
        return True
    return _match_sequence(list(tail), parts[1:])
