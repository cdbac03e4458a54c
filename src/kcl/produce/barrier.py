"""Completion barrier for in-flight deliveries."""

import asyncio
import threading
from typing import Optional, Dict, Any

from ..utils.logging import get_logger

logger = get_logger("kcl.barrier")


class CompletionBarrier:
    """
    Counts dispatched units that have not completed yet.

    ``add`` is called by the driver before each submission, ``done`` by the
    completion callback, possibly from a delivery client thread. ``wait``
    returns once the counter is back at zero.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._pending = 0
        self._submitted = 0
        self._completed = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def pending(self) -> int:
        with self._lock:
            return self._pending

    @property
    def submitted(self) -> int:
        with self._lock:
            return self._submitted

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    def add(self, count: int = 1) -> None:
        """Register ``count`` units about to be submitted. Loop thread only."""
        if count <= 0:
            raise ValueError("count must be positive")
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        with self._lock:
            self._pending += count
            self._submitted += count
            self._idle.clear()

    def done(self) -> None:
        """Mark one unit completed. Safe from any thread."""
        with self._lock:
            if self._pending <= 0:
                raise RuntimeError("completion barrier released more times than added")
            self._pending -= 1
            self._completed += 1
            idle = self._pending == 0

        if not idle:
            return

        loop = self._loop
        if loop is None or loop.is_closed():
            return
        if self._on_loop_thread(loop):
            self._set_if_idle()
        else:
            loop.call_soon_threadsafe(self._set_if_idle)

    def _on_loop_thread(self, loop: asyncio.AbstractEventLoop) -> bool:
        try:
            return asyncio.get_running_loop() is loop
        except RuntimeError:
            return False

    def _set_if_idle(self) -> None:
        # An add() may have run between done() and this callback
        with self._lock:
            if self._pending == 0:
                self._idle.set()

    async def wait(self) -> None:
        """Block until every added unit is done."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        while True:
            await self._idle.wait()
            with self._lock:
                if self._pending == 0:
                    break
                self._idle.clear()
        logger.debug("barrier_drained", completed=self.completed)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "pending": self._pending,
                "submitted": self._submitted,
                "completed": self._completed,
            }


__all__ = ['CompletionBarrier']
