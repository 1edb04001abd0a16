"""One-shot restartable timer used for debouncing."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)


class CancelableTimer:
    """Runs an async callback once ``delay`` seconds after the last ``schedule()``.

    Invariants:
        - At most one pending callback at a time; ``schedule()`` cancels the
          previous one before arming a new one.
        - ``dispose()`` cancels the pending callback and refuses new ones.
        - A callback that has started running is never cancelled by
          ``schedule()``, ``cancel()`` or ``dispose()``.

    Must be used from a running event loop.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "debounce",
    ):
        if delay < 0:
            raise ValueError("delay must be >= 0")
        self.delay = delay
        self._callback = callback
        self._name = name
        self._pending: Optional[asyncio.Task] = None
        self._running: Set[asyncio.Task] = set()
        self._disposed = False

    @property
    def pending(self) -> bool:
        """True while a callback is armed and has not started."""
        return self._pending is not None and not self._pending.done()

    @property
    def running(self) -> bool:
        return bool(self._running)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def schedule(self) -> None:
        """(Re)arm the timer."""
        if self._disposed:
            raise RuntimeError(f"{self._name} timer is disposed")
        self.cancel()
        task = asyncio.get_running_loop().create_task(self._wait_then_fire())
        task.add_done_callback(self._log_failure)
        self._pending = task

    def cancel(self) -> bool:
        """Cancel the pending callback. Returns True if one was pending."""
        if self.pending:
            self._pending.cancel()
            self._pending = None
            return True
        self._pending = None
        return False

    def dispose(self) -> None:
        self.cancel()
        self._disposed = True

    async def wait(self) -> None:
        """Wait for the pending callback (if any) and every running one to finish."""
        while self.pending or self._running:
            tasks = list(self._running)
            if self.pending:
                tasks.append(self._pending)
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _wait_then_fire(self) -> None:
        await asyncio.sleep(self.delay)
        task = asyncio.current_task()
        # From here on the callback belongs to the "running" set and is no
        # longer reachable by cancel().
        self._pending = None
        self._running.add(task)
        try:
            await self._callback()
        finally:
            self._running.discard(task)

    def _log_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"{self._name} callback failed: {exc!r}", exc_info=exc)
