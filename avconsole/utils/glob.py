"""Glob matching for remote file paths.

Supported syntax:
    *       any characters except "/"
    **      any characters including "/" ("**/" also matches zero segments)
    ?       one character except "/"
    [abc]   character class, ranges allowed ([a-z])
    [!abc]  negated character class

Backslashes are treated as path separators. An unmatched "[", an empty
"[]" and a bare "[!]" are literals.
"""

import re
from collections.abc import Iterable
from functools import lru_cache


def glob_to_regex(pattern: str) -> str:
    """Translate a glob pattern into an (unanchored) regular expression."""
    parts: list[str] = []
    i = 0
    length = len(pattern)

    while i < length:
        char = pattern[i]

        if char == "*":
            if i + 1 < length and pattern[i + 1] == "*":
                if i + 2 < length and pattern[i + 2] == "/":
                    # "**/" spans zero or more whole segments
                    parts.append("(?:.*/)?")
                    i += 2
                else:
                    parts.append(".*")
                    i += 1
            else:
                parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        elif char == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                parts.append(re.escape("["))
            else:
                body = pattern[i + 1 : end]
                if not body:
                    parts.append(re.escape("[]"))
                elif body == "!":
                    parts.append(re.escape("[!]"))
                elif body.startswith("!"):
                    parts.append(f"[^{body[1:]}]")
                else:
                    parts.append(f"[{body}]")
                i = end
        else:
            parts.append(re.escape(char))

        i += 1

    return "".join(parts)


@lru_cache(maxsize=256)
def _compile(pattern: str, case_sensitive: bool) -> re.Pattern[str]:
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(glob_to_regex(pattern), flags)


def is_match(pattern: str, path: str, case_sensitive: bool = False) -> bool:
    """Check whether a path matches a glob pattern.

    Args:
        pattern: Glob pattern
        path: Path to test
        case_sensitive: Match case exactly (default: case-insensitive)

    Returns:
        True if the whole path matches

    Raises:
        ValueError: If pattern is empty
    """
    if not pattern:
        raise ValueError("pattern must not be empty")
    if not path:
        return False

    pattern = pattern.replace("\\", "/")
    path = path.replace("\\", "/")
    return _compile(pattern, case_sensitive).fullmatch(path) is not None


def filter_matches(
    pattern: str, paths: Iterable[str], case_sensitive: bool = False
) -> list[str]:
    """Return the paths matching a glob pattern, preserving order."""
    return [path for path in paths if is_match(pattern, path, case_sensitive)]


def base_path(pattern: str) -> str:
    """Directory portion of a pattern before its first wildcard.

    Examples:
        >>> base_path("logs/**/*.txt")
        'logs'
        >>> base_path("*.txt")
        ''
    """
    pattern = pattern.replace("\\", "/")
    wildcard = min(
        (index for index in (pattern.find(c) for c in "*?[") if index != -1),
        default=-1,
    )
    search_end = len(pattern) if wildcard == -1 else wildcard
    slash = pattern.rfind("/", 0, search_end)
    return pattern[:slash] if slash >= 0 else ""
