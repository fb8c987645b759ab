"""Utility functions for Stitch.

Key functions:
    ensure_clean_dir: Ensure a directory exists and is empty.
    extract_frontmatter: Split YAML front matter from a template source.
    relative_posix: Render a path relative to the project root with forward slashes.
"""

from __future__ import annotations

import re
import shutil
from pathlib import Path
from typing import Any

import yaml

FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL)


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    If the directory exists, removes all contents. Creates the
    directory if it doesn't exist.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(str(path), ignore_errors=True)
        if path.exists():
            # Fallback for stubborn directories
            for item in path.rglob("*"):
                if item.is_file():
                    item.unlink()
            for item in sorted(
                [p for p in path.rglob("*") if p.is_dir()], reverse=True
            ):
                item.rmdir()
            path.rmdir()
    path.mkdir(parents=True, exist_ok=True)


def extract_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Extract YAML front matter from a page source.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (front matter dict, remaining content). Malformed or
        non-mapping front matter is treated as absent.
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError:
        return {}, text
    if not isinstance(data, dict):
        return {}, text
    return data, text[match.end() :]


def relative_posix(path: Path, root: Path) -> str | None:
    """Return ``path`` relative to ``root`` as a POSIX string.

    Args:
        path: Absolute or root-relative path.
        root: Project root.

    Returns:
        The relative path, or None when ``path`` lies outside ``root``.
    """
    if not path.is_absolute():
        return path.as_posix()
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return None
