"""Glob pattern matching for Stitch.

Watch bindings and asset lists are written as POSIX glob patterns relative
to the project root, in the dialect task runners use:

- ``*`` matches within one path segment, ``?`` one character.
- ``**`` matches any number of directories, including none.
- ``{a,b}`` expands to alternatives and may nest.
- A leading ``!`` in a pattern list excludes what the pattern matches.
- There are no character classes: ``[`` and ``]`` match themselves.

Key functions:
    expand_braces: Expand ``{a,b}`` alternations.
    match: Test a relative path against one pattern.
    match_any: Test a relative path against an include/exclude list.
    expand: List existing files selected by a pattern list.
"""

from __future__ import annotations

import functools
import re
from collections.abc import Iterable, Sequence
from pathlib import Path


def expand_braces(pattern: str) -> list[str]:
    """Expand brace alternations in ``pattern``.

    Examples:
        >>> expand_braces("src/{layouts,partials}/*.html")
        ['src/layouts/*.html', 'src/partials/*.html']
    """
    depth = 0
    start = None
    for index, char in enumerate(pattern):
        if char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}" and depth:
            depth -= 1
            if depth == 0:
                head, body, tail = pattern[:start], pattern[start + 1 : index], pattern[index + 1 :]
                results = []
                for option in _split_options(body):
                    results.extend(expand_braces(head + option + tail))
                return results
    return [pattern]


def _split_options(body: str) -> list[str]:
    options, depth, current = [], 0, []
    for char in body:
        if char == "," and depth == 0:
            options.append("".join(current))
            current = []
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        current.append(char)
    options.append("".join(current))
    return options


@functools.lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    parts: list[str] = []
    index = 0
    while index < len(pattern):
        char = pattern[index]
        if pattern.startswith("**/", index):
            parts.append("(?:.*/)?")
            index += 3
            continue
        if pattern.startswith("**", index):
            parts.append(".*")
            index += 2
            continue
        if char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(char))
        index += 1
    return re.compile("".join(parts) + r"\Z")


def _normalize(path: str) -> str:
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


def match(path: str, pattern: str) -> bool:
    """Check whether a root-relative path matches a single pattern.

    Args:
        path: Path relative to the project root (POSIX separators).
        pattern: Glob pattern, without a leading ``!``.

    Returns:
        True if any brace expansion of the pattern matches the whole path.
    """
    path = _normalize(path)
    return any(
        _compile(_normalize(option)).match(path) for option in expand_braces(pattern)
    )


def match_any(path: str, patterns: Sequence[str] | str) -> bool:
    """Check a path against an ordered include/exclude pattern list.

    A path is selected when it matches at least one positive pattern and
    no ``!`` pattern.
    """
    if isinstance(patterns, str):
        patterns = [patterns]
    positives = [p for p in patterns if not p.startswith("!")]
    negatives = [p[1:] for p in patterns if p.startswith("!")]
    if not any(match(path, p) for p in positives):
        return False
    return not any(match(path, p) for p in negatives)


def static_base(pattern: str) -> str:
    """Return the leading directory part of a pattern that has no wildcards.

    ``src/assets/**/*`` yields ``src/assets``; used to decide which
    directories to walk or watch.
    """
    segments = []
    for segment in _normalize(pattern.lstrip("!")).split("/"):
        if any(ch in segment for ch in "*?{"):
            break
        segments.append(segment)
    else:
        segments = segments[:-1]
    return "/".join(segments)


def expand(root: Path, patterns: Iterable[str] | str) -> list[Path]:
    """List existing files under ``root`` selected by ``patterns``.

    Args:
        root: Project root the patterns are relative to.
        patterns: Pattern or ordered include/exclude pattern list.

    Returns:
        Sorted list of absolute file paths.
    """
    if isinstance(patterns, str):
        patterns = [patterns]
    patterns = list(patterns)
    bases = {
        static_base(option)
        for pattern in patterns
        if not pattern.startswith("!")
        for option in expand_braces(pattern)
    }
    found: set[Path] = set()
    for base in bases:
        base_dir = root / base if base else root
        if base_dir.is_file():
            candidates: Iterable[Path] = [base_dir]
        elif base_dir.is_dir():
            candidates = base_dir.rglob("*")
        else:
            continue
        for candidate in candidates:
            if not candidate.is_file():
                continue
            rel = candidate.relative_to(root).as_posix()
            if match_any(rel, patterns):
                found.add(candidate)
    return sorted(found)
