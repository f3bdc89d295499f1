"""Bookkeeping for the threads and handles Fly Score owns while loaded in OBS.

Unloading the script must leave nothing behind in the OBS process, so the
overlay server registers its thread and socket server here and the runtime
checks the report once teardown has finished.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple


@dataclass(frozen=True)
class ResourceReport:
    live_threads: Tuple[str, ...] = ()
    handles: Tuple[str, ...] = ()

    @property
    def clean(self) -> bool:
        return not self.live_threads and not self.handles


class LifecycleTracker:
    """Tracks server threads and host handles so unload can tear them down."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger
        self._lock = threading.Lock()
        self._threads: Dict[int, threading.Thread] = {}
        self._handles: Dict[int, Any] = {}

    @property
    def threads(self) -> Set[threading.Thread]:
        with self._lock:
            return set(self._threads.values())

    @property
    def handles(self) -> List[Any]:
        with self._lock:
            return list(self._handles.values())

    def track_thread(self, thread: Optional[threading.Thread]) -> None:
        if thread is not None:
            with self._lock:
                self._threads[id(thread)] = thread

    def untrack_thread(self, thread: Optional[threading.Thread]) -> None:
        if thread is not None:
            with self._lock:
                self._threads.pop(id(thread), None)

    def track_handle(self, handle: Any) -> None:
        if handle is not None:
            with self._lock:
                self._handles[id(handle)] = handle

    def untrack_handle(self, handle: Any) -> None:
        if handle is not None:
            with self._lock:
                self._handles.pop(id(handle), None)

    def join_thread(self, thread: Optional[threading.Thread], name: Optional[str] = None, *, timeout: float = 2.0) -> bool:
        """Join and forget ``thread``; ``False`` means it was still alive after ``timeout``."""
        if thread is None:
            return True
        thread.join(timeout=timeout)
        finished = not thread.is_alive()
        if not finished:
            self._logger.warning("Thread %s did not exit within %.1fs", name or thread.name, timeout)
        self.untrack_thread(thread)
        return finished

    def report(self) -> ResourceReport:
        with self._lock:
            live = tuple(thread.name or repr(thread) for thread in self._threads.values() if thread.is_alive())
            handles = tuple(type(handle).__name__ for handle in self._handles.values())
        return ResourceReport(live_threads=live, handles=handles)

    def log_state(self, label: str) -> ResourceReport:
        report = self.report()
        if not report.clean:
            self._logger.debug("Tracked resources %s: threads=%s handles=%s", label, report.live_threads, report.handles)
        return report
