"""Per-document debounce timers running on an asyncio event loop."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Hashable

__all__ = ["DebounceScheduler"]

LOGGER = logging.getLogger(__name__)

Action = Callable[[], Any]


class DebounceScheduler:
    """Coalesces bursts of notifications into one delayed action per key.

    Scheduling a key that already has a pending timer cancels that timer
    first, so at most one action per key is ever pending. Keys are
    independent of each other.
    """

    def __init__(self, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._timers: dict[Hashable, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, key: Hashable, action: Action, delay: float) -> None:
        """(Re)start the quiescence window for ``key``; ``action`` runs once it elapses."""

        self.cancel(key)
        self._timers[key] = self.loop.call_later(max(0.0, float(delay)), self._fire, key, action)

    def cancel(self, key: Hashable) -> bool:
        """Cancel the pending action for ``key``. Unknown keys are ignored."""

        handle = self._timers.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> int:
        keys = list(self._timers)
        for key in keys:
            self.cancel(key)
        return len(keys)

    def is_pending(self, key: Hashable) -> bool:
        return key in self._timers

    def pending_keys(self) -> list[Hashable]:
        return list(self._timers)

    async def aclose(self) -> None:
        """Cancel every timer and wait for actions that are already running."""

        self.cancel_all()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self, key: Hashable, action: Action) -> None:
        # Drop the entry first so the action may schedule the same key again.
        self._timers.pop(key, None)
        try:
            result = action()
        except Exception:
            LOGGER.exception("Debounced action failed for %s", key)
            return
        if inspect.isawaitable(result):
            task = self.loop.create_task(self._await_result(key, result))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _await_result(key: Hashable, awaitable: Any) -> None:
        try:
            await awaitable
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except Exception:
            LOGGER.exception("Debounced action failed for %s", key)
