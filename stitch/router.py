"""Change routing for Stitch.

Maps changed source files to the build steps that must rerun. The routing
table is an ordered list of WatchBindings evaluated top to bottom. Every
binding a path matches is scheduled, not only the first one, so a single
change can trigger several reruns.

Key classes:
- ReloadScope: How connected browsers should refresh after a rerun.
- WatchBinding: Glob patterns, the task list to rerun, and an optional
  pre-action (e.g. clearing the template cache) that runs first.
- ChangeRouter: Evaluates the table against paths and batches of paths.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from . import globs
from .graph import Node, Series, TaskNode, series
from .utils import relative_posix


class ReloadScope(str, Enum):
    """Reload notification scope.

    FULL navigates/refreshes the page; STREAM injects changed assets
    (stylesheets) without navigation.
    """

    FULL = "full"
    STREAM = "stream"


@dataclass(frozen=True)
class WatchBinding:
    """Binding of glob patterns to the tasks that rerun on a match.

    Attributes:
        name: Label used in progress output.
        patterns: Include/exclude glob patterns relative to the project root.
        tasks: Nodes to run, in order.
        pre_action: Optional node that must complete before ``tasks``.
        reload: Scope of the reload notification after a successful
            rerun, or None for no notification.
    """

    name: str
    patterns: tuple[str, ...]
    tasks: tuple[Node, ...]
    pre_action: TaskNode | None = None
    reload: ReloadScope | None = ReloadScope.FULL

    def matches(self, rel_path: str) -> bool:
        return globs.match_any(rel_path, self.patterns)

    def node(self) -> Series:
        """Return the rerun as one Series, with the pre-action as its prefix."""
        steps: list[Node] = [self.pre_action] if self.pre_action else []
        steps.extend(self.tasks)
        return series(*steps, name=self.name)


def binding(
    name: str,
    patterns: Sequence[str] | str,
    tasks: Sequence[Node],
    pre_action: TaskNode | None = None,
    reload: ReloadScope | None = ReloadScope.FULL,
) -> WatchBinding:
    """Build a WatchBinding from lists."""
    if isinstance(patterns, str):
        patterns = [patterns]
    return WatchBinding(
        name=name,
        patterns=tuple(patterns),
        tasks=tuple(tasks),
        pre_action=pre_action,
        reload=reload,
    )


class ChangeRouter:
    """Routes changed paths to matching watch bindings.

    Attributes:
        project_root: Root that binding patterns are relative to.
        bindings: Ordered routing table.
        ignored: Directories whose changes are never routed (the output root).
    """

    def __init__(
        self,
        project_root: Path,
        bindings: Iterable[WatchBinding],
        ignored: Iterable[Path] = (),
    ):
        self.project_root = project_root
        self.bindings: tuple[WatchBinding, ...] = tuple(bindings)
        self.ignored = tuple(ignored)

    def route(self, path: Path | str) -> list[WatchBinding]:
        """Return every binding matching ``path``, in declared order.

        Args:
            path: Changed file, absolute or relative to the project root.

        Returns:
            Matching bindings; empty when the path is outside the project,
            inside an ignored directory, or matches nothing.
        """
        path = Path(path)
        if path.is_absolute() and self._is_ignored(path):
            return []
        rel = relative_posix(path, self.project_root)
        if rel is None or "node_modules" in rel.split("/"):
            return []
        return [b for b in self.bindings if b.matches(rel)]

    def route_batch(self, paths: Iterable[Path | str]) -> list[WatchBinding]:
        """Route a burst of paths, scheduling each matched binding once.

        The result keeps the table's declared order.
        """
        matched: set[WatchBinding] = set()
        for path in paths:
            matched.update(self.route(path))
        return [b for b in self.bindings if b in matched]

    def _is_ignored(self, path: Path) -> bool:
        for ignored in self.ignored:
            try:
                path.relative_to(ignored)
            except ValueError:
                continue
            return True
        return False
