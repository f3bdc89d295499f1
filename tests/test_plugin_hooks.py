from __future__ import annotations

import sys

import pytest

import fly_score


class DummySettings:
    def __init__(self, *_args, **_kwargs):
        self.saved = 0

    def save(self):
        self.saved += 1
        return True


class DummyBridge:
    module = None


class DummyRuntime:
    instances = []

    def __init__(self, *args, **kwargs):
        self.started = 0
        self.stopped = 0
        self.updates = []
        self.captured = 0
        self.running = False
        self.bridge = DummyBridge()
        DummyRuntime.instances.append(self)

    def start(self, obs_settings=None):
        self.started += 1
        self.running = True
        return fly_score.PLUGIN_NAME

    def stop(self):
        self.stopped += 1
        self.running = False

    def handle_settings_update(self, obs_settings):
        self.updates.append(obs_settings)

    def capture_hotkeys(self):
        self.captured += 1


@pytest.fixture(autouse=True)
def _isolated_hooks(monkeypatch):
    DummyRuntime.instances = []
    monkeypatch.setattr(fly_score, "_PluginRuntime", DummyRuntime)
    monkeypatch.setattr(fly_score, "PluginSettings", DummySettings)
    monkeypatch.setattr(fly_score, "_plugin", None)
    monkeypatch.setattr(fly_score, "_settings", None)
    monkeypatch.setitem(sys.modules, "obspython", None)
    yield


def test_script_load_unload_idempotent():
    fly_score.script_load({})
    fly_score.script_load({})

    assert len(DummyRuntime.instances) == 1
    runtime = fly_score._plugin
    assert runtime.started == 1

    fly_score.script_unload()
    fly_score.script_unload()

    assert fly_score._plugin is None
    assert fly_score._settings is None
    assert runtime.stopped == 1


def test_script_load_failure_is_logged(monkeypatch, caplog):
    class BrokenRuntime(DummyRuntime):
        def start(self, obs_settings=None):
            raise RuntimeError("boom")

    monkeypatch.setattr(fly_score, "_PluginRuntime", BrokenRuntime)

    fly_score.script_load({})

    assert "Failed to start" in caplog.text


def test_script_update_delegates_when_running():
    fly_score.script_update({"ignored": True})

    fly_score.script_load({})
    settings = {"swap_sides": True}
    fly_score.script_update(settings)

    assert fly_score._plugin.updates == [settings]


def test_script_update_swallows_errors(caplog):
    fly_score.script_load({})

    def explode(_settings):
        raise ValueError("bad value")

    fly_score._plugin.handle_settings_update = explode

    fly_score.script_update({})

    assert "Failed to apply script settings" in caplog.text


def test_script_save_captures_hotkeys():
    fly_score.script_save({})

    fly_score.script_load({})
    fly_score.script_save({})

    assert fly_score._plugin.captured == 1


def test_script_properties_without_host():
    assert fly_score.script_properties() is None

    fly_score.script_load({})
    assert fly_score.script_properties() is None


def test_script_defaults_without_host_is_noop():
    fly_score.script_defaults({})


def test_description_names_plugin():
    description = fly_score.script_description()

    assert fly_score.PLUGIN_NAME in description
    assert fly_score.PLUGIN_VERSION in description
