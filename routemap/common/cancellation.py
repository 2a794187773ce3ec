"""Per-run cancellation scope for outstanding asyncio tasks."""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, TypeVar

T = TypeVar("T")


class CancellationScope:
    def __init__(self) -> None:
        self.tasks: set[asyncio.Task] = set()
        self.cancelled = False

    def spawn(self, coro: Coroutine[Any, Any, T]) -> "asyncio.Task[T]":
        if self.cancelled:
            coro.close()
            raise asyncio.CancelledError("scope already cancelled")
        task = asyncio.ensure_future(coro)
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    def adopt(self, task: asyncio.Task) -> None:
        if self.cancelled:
            task.cancel()
            return
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)

    def cancel(self, *, spare: asyncio.Task | None = None) -> int:
        """Cancel every outstanding task except ``spare``; returns how many were still running."""
        self.cancelled = True
        pending = [task for task in self.tasks if not task.done() and task is not spare]
        for task in pending:
            task.cancel()
        return len(pending)

    async def drain(self, *, spare: asyncio.Task | None = None) -> None:
        """Wait for cancelled tasks to unwind so their outcomes are collected."""
        others = [task for task in self.tasks if task is not spare]
        if others:
            await asyncio.gather(*others, return_exceptions=True)

    @property
    def outstanding(self) -> int:
        return sum(1 for task in self.tasks if not task.done())
