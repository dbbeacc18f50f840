"""Structured lifecycle manager for the presentation loop's asyncio tasks."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


class TaskManager:
    """Track named background tasks such as the relay listener and model listing."""

    def __init__(self) -> None:
        self._named: dict[str, asyncio.Task[Any]] = {}

    def spawn(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Schedule ``coro`` under ``name``.

        A still-running task with the same name is cancelled first, so at most
        one task per name is ever live.
        """
        previous = self._named.pop(name, None)
        if previous is not None and not previous.done():
            previous.cancel()
        task = asyncio.create_task(coro, name=name)
        self._named[name] = task
        task.add_done_callback(lambda done: self._forget(name, done))
        return task

    def _forget(self, name: str, task: asyncio.Task[Any]) -> None:
        if self._named.get(name) is task:
            del self._named[name]
        if not task.cancelled() and task.exception() is not None:
            LOGGER.warning(
                "task.failed",
                extra={
                    "event": "task.failed",
                    "task": name,
                    "error_type": type(task.exception()).__name__,
                },
            )

    def get(self, name: str) -> asyncio.Task[Any] | None:
        """Return the named task or ``None`` if not registered."""
        return self._named.get(name)

    def is_running(self, name: str) -> bool:
        task = self._named.get(name)
        return task is not None and not task.done()

    async def cancel(self, name: str) -> None:
        """Cancel a named task and await its completion."""
        task = self._named.pop(name, None)
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def cancel_all(self) -> None:
        """Cancel every tracked task and await them all."""
        tasks = [task for task in self._named.values() if not task.done()]
        self._named.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
