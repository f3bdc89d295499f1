from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

DRAIN_INTERVAL_MS = 100


class _RuntimeLike(Protocol):
    server: Optional[Any]
    bridge: Any

    def _serve_overlay_enabled(self) -> bool: ...
    def _on_sources_changed(self) -> None: ...
    def _drain_pending(self) -> None: ...


def start_runtime_services(runtime: _RuntimeLike, logger: logging.Logger, *, drain_interval_ms: int = DRAIN_INTERVAL_MS) -> bool:
    """Start overlay server, drain timer and source signals in that order.

    Returns ``False`` when the overlay server could not start; the scoreboard
    keeps working in degraded mode with the browser source pointed at the file.
    """
    server_ok = True
    if runtime.server is not None and runtime._serve_overlay_enabled():
        if not runtime.server.start():
            logger.warning("Overlay server failed to start; running in degraded mode.")
            server_ok = False

    if not runtime.bridge.add_timer(runtime._drain_pending, drain_interval_ms):
        logger.debug("Host timers unavailable; queued host work will not be drained")
    if not runtime.bridge.connect_source_signals(runtime._on_sources_changed):
        logger.debug("Host source signals unavailable")
    return server_ok


def stop_runtime_services(runtime: _RuntimeLike, logger: logging.Logger, untrack_handle=None) -> None:
    """Stop in reverse order: signals, timers, hotkeys, then the server."""
    track_untracker = untrack_handle or (lambda handle: None)
    bridge = runtime.bridge
    try:
        bridge.disconnect_source_signals()
        bridge.remove_all_timers()
        bridge.unregister_all_hotkeys()
    finally:
        server = runtime.server
        if server is not None:
            try:
                server.stop()
            finally:
                track_untracker(server)
                logger.debug("Overlay server handle released")
