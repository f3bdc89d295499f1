from __future__ import annotations

import json

import pytest
from fake_obs import FakeObs

import fly_score
from scoreboard_plugin.controller import ScoreboardController
from scoreboard_plugin.host_bridge import ObsHostBridge
from scoreboard_plugin.settings import SETTINGS_FILE, PluginSettings


@pytest.fixture
def obs():
    return FakeObs()


@pytest.fixture
def runtime(tmp_path, obs):
    (tmp_path / SETTINGS_FILE).write_text(json.dumps({"serve_overlay": False}), encoding="utf-8")
    settings = PluginSettings(tmp_path)
    plugin = fly_score._PluginRuntime(tmp_path, settings, bridge=ObsHostBridge(obs))
    yield plugin
    plugin.stop()


def test_start_registers_default_hotkeys_and_renders(runtime, obs):
    obs_settings = {}

    assert runtime.start(obs_settings) == fly_score.PLUGIN_NAME

    assert len(obs.hotkeys) == 13
    assert obs.timers == [runtime._drain_pending]
    assert obs_settings["field_0_label"] == "Points"
    assert obs_settings["timer_0_time"] == "00:00"
    assert obs_settings["serve_overlay"] is False
    assert (runtime.controller.resources_dir / "plugin.json").is_file()


def test_start_is_idempotent(runtime, obs):
    runtime.start({})
    runtime.start({})

    assert len(obs.hotkeys) == 13
    assert len(obs.timers) == 1


def test_edited_value_is_applied_and_persisted(runtime):
    runtime.start({})

    runtime.apply_settings_values({"field_0_home": 4, "field_0_away": 0})

    assert runtime.controller.state.custom_fields[0].home == 4
    fresh = ScoreboardController(runtime.controller.resources_dir)
    fresh.load()
    assert fresh.state.custom_fields[0].home == 4


def test_settings_update_reads_host_values(runtime):
    obs_settings = {}
    runtime.start(obs_settings)
    obs_settings["home_title"] = "Falcons"

    runtime.handle_settings_update(obs_settings)

    assert runtime.controller.state.home.title == "Falcons"


def test_hotkey_acts_on_key_down_only(runtime, obs):
    runtime.start({})
    callback = obs.hotkey_by_name("fly_score.swap_sides")["callback"]

    callback(False)
    assert runtime.dispatcher.pending() == 0

    callback(True)
    assert runtime.controller.state.swap_sides is False
    runtime._drain_pending()
    assert runtime.controller.state.swap_sides is True


def test_half_typed_timer_text_waits_for_valid_input(runtime):
    obs_settings = {}
    runtime.start(obs_settings)

    runtime.apply_settings_values({"timer_0_time": "1:"})

    assert runtime.control_sync.has_pending_edit("timer_0_time")
    assert runtime.controller.state.timers[0].remaining_ms == 0

    runtime.apply_settings_values({"timer_0_time": "01:30"})

    assert not runtime.control_sync.has_pending_edit("timer_0_time")
    assert runtime.controller.state.timers[0].remaining_ms == 90000
    assert obs_settings["timer_0_time"] == "01:30"


def test_structural_add_registers_new_hotkeys(runtime, obs):
    runtime.start({})

    index = runtime.structural(runtime.controller.add_single_stat)

    assert index == 0
    assert len(obs.hotkeys) == 16
    obs.hotkey_by_name("fly_score.single_0_inc")


def test_captured_combos_survive_restart(tmp_path, obs):
    settings = PluginSettings(tmp_path)
    settings.serve_overlay = False
    first = fly_score._PluginRuntime(tmp_path, settings, bridge=ObsHostBridge(obs))
    first.start({})
    combo = {"key": "OBS_KEY_F1"}
    obs.hotkey_by_name("fly_score.timer_0_toggle")["combos"] = [combo]
    first.stop()

    second = fly_score._PluginRuntime(tmp_path, settings, bridge=ObsHostBridge(obs))
    second.start({})
    try:
        assert obs.hotkey_by_name("fly_score.timer_0_toggle")["combos"] == [combo]
    finally:
        second.stop()


def test_overlay_target_falls_back_to_file(runtime):
    runtime.start({})

    assert runtime.overlay_target() == str(runtime.controller.resources_dir / fly_score.OVERLAY_INDEX)
    assert runtime.add_browser_source() is True


def test_stop_releases_host_resources(runtime, obs):
    runtime.start({})

    runtime.stop()

    assert obs.hotkeys == {}
    assert obs.timers == []
    assert runtime.running is False
    assert runtime.dispatcher.closed is True


def test_rejected_edit_on_running_timer_shows_live_time(tmp_path, obs):
    now = [1000]
    settings = PluginSettings(tmp_path)
    settings.serve_overlay = False
    plugin = fly_score._PluginRuntime(tmp_path, settings, bridge=ObsHostBridge(obs), clock=lambda: now[0])
    obs_settings = {}
    plugin.start(obs_settings)
    try:
        plugin.apply_settings_values({"timer_0_time": "01:00"})
        assert plugin.controller.start_timer(0) is True

        now[0] = 16000
        plugin.apply_settings_values({"timer_0_time": "05:00"})

        assert plugin.controller.state.timers[0].remaining_ms == 60000
        assert obs_settings["timer_0_time"] == "00:45"
    finally:
        plugin.stop()


def test_unparseable_timer_text_reverts_on_next_change(runtime):
    obs_settings = {}
    runtime.start(obs_settings)
    obs_settings["timer_0_time"] = "abc"

    runtime.handle_settings_update(obs_settings)
    assert runtime.control_sync.has_pending_edit("timer_0_time")
    assert obs_settings["timer_0_time"] == "abc"

    runtime.controller.toggle_swap_sides()

    assert not runtime.control_sync.has_pending_edit("timer_0_time")
    assert obs_settings["timer_0_time"] == "00:00"


def test_properties_refresh_reverts_unparseable_text(runtime):
    obs_settings = {}
    runtime.start(obs_settings)
    runtime.apply_settings_values({"timer_0_time": "9:x"})
    obs_settings["timer_0_time"] = "9:x"

    changes = runtime.revert_pending_edits()

    assert changes == {"timer_0_time": "00:00"}
    assert obs_settings["timer_0_time"] == "00:00"


def test_timer_text_in_batch_survives_other_edits(runtime):
    runtime.start({})

    runtime.apply_settings_values({"timer_0_time": "1:", "field_0_home": 2})

    assert runtime.controller.state.custom_fields[0].home == 2
    assert runtime.control_sync.has_pending_edit("timer_0_time")
