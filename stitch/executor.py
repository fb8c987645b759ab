"""Task graph executor for Stitch.

Runs a Series/Parallel/TaskNode tree on an asyncio event loop:

- A Series awaits each child before starting the next and stops at the
  first failure.
- A Parallel starts every child at once, waits for all of them, and
  reports the first failure it observes.
- A TaskNode runs its step. Coroutine functions are awaited; plain
  functions run in a worker thread so the loop stays responsive.

Step failures never escape as exceptions. They come back as a RunResult
carrying a StepExecutionError, which names the failing step and its cause.
Nothing is retried.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from dataclasses import dataclass

import click

from .graph import Node, Parallel, Series, TaskNode


class StepExecutionError(Exception):
    """A transform step failed.

    Attributes:
        step: Name of the failing task node.
        cause: Underlying exception, if any.
        kind: Failure category (``render``, ``transform``, ``bundle``, ...).
        message: Human-readable description of the failure.
    """

    def __init__(
        self,
        step: str,
        message: str,
        cause: BaseException | None = None,
        kind: str = "step",
    ):
        self.step = step
        self.message = message
        self.cause = cause
        self.kind = kind
        super().__init__(f"{step} ({kind}): {message}")


@dataclass(frozen=True)
class RunResult:
    """Outcome of executing a node.

    Attributes:
        error: The first step failure, or None on success.
    """

    error: StepExecutionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


SUCCESS = RunResult()


class Executor:
    """Executes task graph nodes with series/parallel semantics.

    Attributes:
        verbose: Whether to print gulp-style start/finish lines.
    """

    def __init__(self, verbose: bool = True):
        self.verbose = verbose

    async def execute(self, node: Node) -> RunResult:
        """Run ``node`` to completion.

        Args:
            node: Leaf or composite to execute.

        Returns:
            RunResult with ``error`` set when any step failed.
        """
        if isinstance(node, TaskNode):
            return await self._run_task(node)
        if isinstance(node, Series):
            return await self._run_series(node)
        if isinstance(node, Parallel):
            return await self._run_parallel(node)
        raise TypeError(f"Not a task graph node: {node!r}")

    def run(self, node: Node) -> RunResult:
        """Execute ``node`` on a fresh event loop (blocking entry point)."""
        return asyncio.run(self.execute(node))

    async def _run_series(self, node: Series) -> RunResult:
        for child in node.children:
            result = await self.execute(child)
            if not result.ok:
                return result
        return SUCCESS

    async def _run_parallel(self, node: Parallel) -> RunResult:
        pending = [asyncio.ensure_future(self.execute(child)) for child in node.children]
        first_failure: RunResult | None = None
        for next_done in asyncio.as_completed(pending):
            result = await next_done
            if not result.ok and first_failure is None:
                first_failure = result
        return first_failure or SUCCESS

    async def _run_task(self, node: TaskNode) -> RunResult:
        self._log(f"Starting '{click.style(node.name, fg='cyan')}'...")
        started = time.perf_counter()
        try:
            if _is_async(node.step):
                await node.step()
            else:
                await asyncio.to_thread(node.step)
        except StepExecutionError as exc:
            error = exc
        except Exception as exc:
            error = StepExecutionError(
                node.name, f"{type(exc).__name__}: {exc}", exc, kind=node.kind
            )
        else:
            elapsed = _format_elapsed(time.perf_counter() - started)
            self._log(
                f"Finished '{click.style(node.name, fg='cyan')}' after "
                f"{click.style(elapsed, fg='magenta')}"
            )
            return SUCCESS
        elapsed = _format_elapsed(time.perf_counter() - started)
        self._log(
            f"'{click.style(node.name, fg='cyan')}' "
            f"{click.style('errored', fg='red')} after {elapsed}",
            err=True,
        )
        self._log(f"  {error.message}", err=True)
        return RunResult(error=error)

    def _log(self, message: str, err: bool = False) -> None:
        if self.verbose:
            click.echo(message, err=err)


def _is_async(step) -> bool:
    return inspect.iscoroutinefunction(step) or inspect.iscoroutinefunction(
        getattr(step, "__call__", None)
    )


def _format_elapsed(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f} ms"
    return f"{seconds:.2f} s"
