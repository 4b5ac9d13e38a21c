"""Glob patterns used to route file changes to agents.

``fnmatch`` lets ``*`` cross directory separators, so patterns are compiled
to regular expressions here instead:

- ``**`` matches any number of path segments (including none)
- ``*`` matches within a single segment
- ``?`` matches one character other than ``/``
"""

from __future__ import annotations

import functools
import re


@functools.lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile *pattern* into an anchored regular expression."""
    parts: list[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        char = pattern[i]
        if pattern.startswith("**", i):
            if pattern.startswith("**/", i):
                parts.append("(?:.*/)?")
                i += 3
            else:
                parts.append(".*")
                i += 2
        elif char == "*":
            parts.append("[^/]*")
            i += 1
        elif char == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(char))
            i += 1
    return re.compile("".join(parts))


def normalize_path(path: str) -> str:
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


def matches(pattern: str, path: str) -> bool:
    """True when the whole of *path* matches *pattern*."""
    return glob_to_regex(normalize_path(pattern)).fullmatch(normalize_path(path)) is not None
