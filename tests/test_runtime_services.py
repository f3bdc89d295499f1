from __future__ import annotations

import logging

from scoreboard_plugin import runtime_services


class _DummyServer:
    def __init__(self, events, should_start: bool = True):
        self.events = events
        self.should_start = should_start

    def start(self) -> bool:
        self.events.append("server.start")
        return self.should_start

    def stop(self) -> None:
        self.events.append("server.stop")


class _DummyBridge:
    def __init__(self, events, *, host: bool = True, fail_on_disconnect: bool = False):
        self.events = events
        self.host = host
        self.fail_on_disconnect = fail_on_disconnect

    def add_timer(self, callback, interval_ms) -> bool:
        self.events.append(f"timer.add:{interval_ms}")
        return self.host

    def connect_source_signals(self, callback) -> bool:
        self.events.append("signals.connect")
        return self.host

    def disconnect_source_signals(self) -> None:
        self.events.append("signals.disconnect")
        if self.fail_on_disconnect:
            raise RuntimeError("signal handler gone")

    def remove_all_timers(self) -> None:
        self.events.append("timer.remove")

    def unregister_all_hotkeys(self) -> None:
        self.events.append("hotkeys.unregister")


class _DummyRuntime:
    def __init__(self, *, serve: bool = True, server_ok: bool = True, with_server: bool = True, **bridge_kwargs):
        self.events = []
        self.server = _DummyServer(self.events, should_start=server_ok) if with_server else None
        self.bridge = _DummyBridge(self.events, **bridge_kwargs)
        self._serve = serve

    def _serve_overlay_enabled(self) -> bool:
        return self._serve

    def _on_sources_changed(self) -> None:
        return None

    def _drain_pending(self) -> None:
        return None


def test_start_runs_server_then_timer_then_signals():
    runtime = _DummyRuntime()

    result = runtime_services.start_runtime_services(runtime, logging.getLogger("test"), drain_interval_ms=50)

    assert result is True
    assert runtime.events == ["server.start", "timer.add:50", "signals.connect"]


def test_start_skips_server_when_serving_disabled():
    runtime = _DummyRuntime(serve=False)

    result = runtime_services.start_runtime_services(runtime, logging.getLogger("test"))

    assert result is True
    assert "server.start" not in runtime.events
    assert runtime.events[0] == f"timer.add:{runtime_services.DRAIN_INTERVAL_MS}"


def test_server_failure_degrades_but_keeps_host_services(caplog):
    runtime = _DummyRuntime(server_ok=False)

    with caplog.at_level(logging.WARNING):
        result = runtime_services.start_runtime_services(runtime, logging.getLogger("test-runtime"))

    assert result is False
    assert "degraded mode" in caplog.text
    assert "signals.connect" in runtime.events


def test_start_without_host_is_quiet():
    runtime = _DummyRuntime(host=False)

    assert runtime_services.start_runtime_services(runtime, logging.getLogger("test")) is True


def test_stop_order_and_untrack():
    runtime = _DummyRuntime()
    untracked = []

    runtime_services.stop_runtime_services(runtime, logging.getLogger("test"), untrack_handle=untracked.append)

    assert runtime.events == ["signals.disconnect", "timer.remove", "hotkeys.unregister", "server.stop"]
    assert untracked == [runtime.server]


def test_stop_still_stops_server_when_bridge_fails():
    runtime = _DummyRuntime(fail_on_disconnect=True)

    try:
        runtime_services.stop_runtime_services(runtime, logging.getLogger("test"))
    except RuntimeError:
        pass

    assert runtime.events[-1] == "server.stop"


def test_stop_without_server():
    runtime = _DummyRuntime(with_server=False)

    runtime_services.stop_runtime_services(runtime, logging.getLogger("test"))

    assert runtime.events == ["signals.disconnect", "timer.remove", "hotkeys.unregister"]
