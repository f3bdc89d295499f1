from __future__ import annotations

import logging

import requests

from scoreboard_plugin.lifecycle import LifecycleTracker
from scoreboard_plugin.overlay_server import OverlayHttpServer


def _get(url: str) -> requests.Response:
    session = requests.Session()
    session.trust_env = False
    try:
        return session.get(url, timeout=2.0)
    finally:
        session.close()


def _server(docroot, **kwargs) -> OverlayHttpServer:
    return OverlayHttpServer(docroot, "127.0.0.1", 0, **kwargs)


def test_serves_docroot_without_caching(tmp_path):
    (tmp_path / "plugin.json").write_text('{"version": 3}', encoding="utf-8")
    server = _server(tmp_path)
    assert server.start() is True
    try:
        response = _get(server.url_for("plugin.json"))
    finally:
        server.stop()

    assert response.status_code == 200
    assert response.json() == {"version": 3}
    assert "no-cache" in response.headers["Cache-Control"]
    assert response.headers["Pragma"] == "no-cache"


def test_health_endpoint(tmp_path):
    server = _server(tmp_path)
    server.start()
    try:
        response = _get(server.url_for("health"))
    finally:
        server.stop()

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["service"] == "fly-score"


def test_stop_releases_thread_and_handle(tmp_path):
    lifecycle = LifecycleTracker(logging.getLogger("test-overlay-lifecycle"))
    server = _server(tmp_path, lifecycle=lifecycle)

    server.start()
    assert server.running is True
    assert lifecycle.handles

    server.stop()
    assert server.running is False
    assert lifecycle.handles == []
    assert not any(thread.is_alive() for thread in lifecycle.threads)
    server.stop()


def test_bind_failure_reports_degraded(tmp_path):
    first = _server(tmp_path)
    first.start()
    try:
        second = OverlayHttpServer(tmp_path, "127.0.0.1", first.bound_port)
        assert second.start() is False
        assert second.running is False
    finally:
        first.stop()


def test_restart_switches_docroot(tmp_path):
    old_root = tmp_path / "old"
    new_root = tmp_path / "new"
    new_root.mkdir()
    (new_root / "marker.txt").write_text("new", encoding="utf-8")
    server = _server(old_root)
    server.start()
    try:
        assert server.restart(new_root) is True
        response = _get(server.url_for("marker.txt"))
    finally:
        server.stop()

    assert response.text == "new"
    assert old_root.is_dir()
