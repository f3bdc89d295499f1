from __future__ import annotations

import logging
import queue
from typing import Any, Callable, Optional


class MainThreadDispatcher:
    """Hands work from host signal threads to the thread that owns the scoreboard.

    Host callbacks only ``post``; the plugin calls ``drain`` from a host UI timer.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._queue: "queue.Queue[Callable[[], Any]]" = queue.Queue()
        self._logger = logger
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return self._queue.qsize()

    def post(self, func: Callable[[], Any]) -> bool:
        if self._closed:
            return False
        self._queue.put(func)
        return True

    def drain(self, limit: Optional[int] = None) -> int:
        """Run queued calls on the caller's thread; returns how many ran."""
        ran = 0
        while limit is None or ran < limit:
            try:
                task = self._queue.get_nowait()
            except queue.Empty:
                break
            ran += 1
            try:
                task()
            except Exception as exc:
                self._logger.warning("Dispatched task failed: %s", exc, exc_info=exc)
        return ran

    def close(self) -> None:
        self._closed = True
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
