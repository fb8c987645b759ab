"""Watch-triggered rebuild scheduling for Stitch.

The RebuildScheduler sits between the filesystem watcher and the executor:

- Watcher threads hand over changed paths with ``submit``. Paths arriving
  within one tick are batched and routed together.
- Each matched binding reruns its task list as a Series. A binding never
  has two reruns in flight: changes that arrive while it runs mark it
  pending, and all of them collapse into a single follow-up rerun.
- Bindings that share a task never run it at the same time: a rerun holds
  a lock per task name while it executes. A binding whose tasks are all
  part of another binding matched in the same batch is dropped from that
  batch, so a page edit plus a layout edit renders pages once.
- A successful rerun sends exactly one reload notification in the
  binding's scope. A failed rerun is reported and sends none, so browsers
  keep showing the last good output.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import deque
from collections.abc import Callable
from pathlib import Path

import click

from .executor import Executor, RunResult
from .router import ChangeRouter, ReloadScope, WatchBinding

Notifier = Callable[[ReloadScope], None]

RESULT_HISTORY = 100


class RebuildScheduler:
    """Coalesces change events and serializes reruns per binding.

    Attributes:
        router: Maps changed paths to bindings.
        executor: Runs each binding's task list.
        notify: Called with the reload scope after a successful rerun.
        tick: Seconds to wait for further events before routing a batch.
        results: The most recent (binding name, RunResult) pairs, oldest first.
    """

    def __init__(
        self,
        router: ChangeRouter,
        executor: Executor,
        notify: Notifier,
        tick: float = 0.05,
    ):
        self.router = router
        self.executor = executor
        self.notify = notify
        self.tick = tick
        self._loop: asyncio.AbstractEventLoop | None = None
        self._batch: list[Path] = []
        self._flush_handle: asyncio.TimerHandle | None = None
        self._running: dict[WatchBinding, asyncio.Task] = {}
        self._pending: set[WatchBinding] = set()
        self._idle: asyncio.Event | None = None
        self._task_locks: dict[str, asyncio.Lock] = {}
        self.results: deque[tuple[str, RunResult]] = deque(maxlen=RESULT_HISTORY)

    def attach(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Bind the scheduler to an event loop (the running one by default)."""
        self._loop = loop or asyncio.get_running_loop()
        self._idle = asyncio.Event()
        self._idle.set()

    def submit(self, path: Path | str) -> None:
        """Queue a changed path. Safe to call from any thread."""
        if self._loop is None:
            raise RuntimeError("RebuildScheduler.attach() must be called first")
        self._loop.call_soon_threadsafe(self._enqueue, Path(path))

    def _enqueue(self, path: Path) -> None:
        self._batch.append(path)
        self._idle.clear()
        if self._flush_handle is None:
            self._flush_handle = self._loop.call_later(self.tick, self.flush)

    def flush(self) -> list[WatchBinding]:
        """Route the current batch and start or queue the matched reruns.

        Returns:
            The bindings scheduled for the batch.
        """
        self._flush_handle = None
        batch, self._batch = self._batch, []
        matched = _drop_covered(self.router.route_batch(batch))
        for watch in matched:
            if watch in self._running:
                self._pending.add(watch)
            else:
                self._start(watch)
        self._update_idle()
        return matched

    def _start(self, watch: WatchBinding) -> None:
        self._running[watch] = self._loop.create_task(self._rerun(watch))

    async def _rerun(self, watch: WatchBinding) -> None:
        try:
            while True:
                result = await self._execute(watch)
                self.results.append((watch.name, result))
                if result.ok:
                    if watch.reload is not None:
                        self.notify(watch.reload)
                else:
                    error = result.error
                    click.echo(
                        click.style(f"Rebuild failed in '{error.step}': ", fg="red")
                        + error.message
                        + " (keeping previous output)",
                        err=True,
                    )
                if watch not in self._pending:
                    break
                self._pending.discard(watch)
        finally:
            self._running.pop(watch, None)
            self._update_idle()

    async def _execute(self, watch: WatchBinding) -> RunResult:
        node = watch.node()
        names = sorted({leaf.name for leaf in node.leaves()})
        locks = [self._task_locks.setdefault(name, asyncio.Lock()) for name in names]
        # acquired in name order so two bindings cannot deadlock
        async with contextlib.AsyncExitStack() as stack:
            for lock in locks:
                await stack.enter_async_context(lock)
            return await self.executor.execute(node)

    def _update_idle(self) -> None:
        if self._idle is None:
            return
        if self._running or self._pending or self._batch or self._flush_handle:
            self._idle.clear()
        else:
            self._idle.set()

    async def drain(self) -> None:
        """Wait until no batch, rerun, or queued rerun is outstanding."""
        # let callbacks queued by submit() land first
        await asyncio.sleep(0)
        if self._idle is not None:
            await self._idle.wait()


def _drop_covered(matched: list[WatchBinding]) -> list[WatchBinding]:
    """Remove bindings whose whole task list another matched binding runs.

    When two bindings run the same tasks, the one declared first is kept.
    """
    leaves = [frozenset(watch.node().leaves()) for watch in matched]
    kept = []
    for index, watch in enumerate(matched):
        covered = any(
            other != index
            and (leaves[index] < leaves[other] or (leaves[index] == leaves[other] and other < index))
            for other in range(len(matched))
        )
        if not covered:
            kept.append(watch)
    return kept
