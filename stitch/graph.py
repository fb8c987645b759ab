"""Task graph model for Stitch.

A build is described as a tree of composites whose leaves are TaskNodes.
A Series runs its children one after another; a Parallel starts all of its
children together. Graphs are built once from a static description and
never edited afterwards.

Key classes:
- TaskNode: A named leaf wrapping one transform step.
- Series: Ordered composite; each child must succeed before the next starts.
- Parallel: Concurrent composite; completes when every child has finished.
- TaskGraph: Registry of named tasks and aggregates (e.g. "build").
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class TaskNode:
    """A named leaf of the task graph.

    Attributes:
        name: Task identity, shown in progress output and errors.
        step: Transform step callable; may be a plain function or a
            coroutine function. Called with no arguments.
        kind: Failure category reported when the step fails
            (``render``, ``transform``, ``bundle``, ...).
    """

    name: str
    step: Callable[[], Any]
    kind: str = "step"

    def leaves(self) -> Iterator[TaskNode]:
        yield self


@dataclass(frozen=True)
class Series:
    """Children run strictly in order; a failure stops the series."""

    children: tuple[Node, ...]
    name: str | None = None

    def leaves(self) -> Iterator[TaskNode]:
        for child in self.children:
            yield from child.leaves()


@dataclass(frozen=True)
class Parallel:
    """Children start together; the composite waits for all of them."""

    children: tuple[Node, ...]
    name: str | None = None

    def leaves(self) -> Iterator[TaskNode]:
        for child in self.children:
            yield from child.leaves()


Node = Union[TaskNode, Series, Parallel]


def task(name: str, step: Callable[[], Any], kind: str = "step") -> TaskNode:
    """Wrap a transform step as a graph leaf."""
    return TaskNode(name=name, step=step, kind=kind)


def series(*children: Node, name: str | None = None) -> Series:
    """Compose nodes to run one after another.

    Args:
        *children: Nodes in execution order.
        name: Optional label used in progress output.

    Returns:
        A Series composite.
    """
    return Series(tuple(_check(children)), name=name)


def parallel(*children: Node, name: str | None = None) -> Parallel:
    """Compose nodes to run concurrently.

    Args:
        *children: Nodes to start together.
        name: Optional label used in progress output.

    Returns:
        A Parallel composite.
    """
    return Parallel(tuple(_check(children)), name=name)


def _check(children: tuple[Any, ...]) -> tuple[Node, ...]:
    for child in children:
        if not isinstance(child, (TaskNode, Series, Parallel)):
            raise TypeError(f"Not a task graph node: {child!r}")
    return children


def describe(node: Node) -> str:
    """Render a node tree as a compact string, e.g. ``clean -> (pages | copy)``."""
    if isinstance(node, TaskNode):
        return node.name
    if isinstance(node, Series):
        return " -> ".join(describe(child) for child in node.children)
    return "(" + " | ".join(describe(child) for child in node.children) + ")"


class TaskGraph:
    """Named tasks and aggregates, fixed at construction.

    Attributes:
        tasks: Read-only mapping of task name to node.
    """

    def __init__(self, tasks: Mapping[str, Node]):
        self._tasks = dict(tasks)

    @property
    def tasks(self) -> Mapping[str, Node]:
        return dict(self._tasks)

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __getitem__(self, name: str) -> Node:
        try:
            return self._tasks[name]
        except KeyError:
            raise KeyError(f"Unknown task: {name}") from None

    def names(self) -> list[str]:
        return list(self._tasks)
