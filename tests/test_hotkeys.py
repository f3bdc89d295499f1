from __future__ import annotations

import json

from scoreboard_plugin import hotkeys
from scoreboard_plugin.hotkeys import (
    HotkeyBinding,
    HotkeyStore,
    build_default_bindings,
    merge_bindings,
    parse_action_id,
    resolve_action,
    shift_bindings,
)
from scoreboard_plugin.state import make_defaults
from scoreboard_plugin.stat_mutators import add_single_stat


class RecordingTarget:
    def __init__(self) -> None:
        self.calls = []

    def toggle_swap_sides(self):
        self.calls.append(("swap",))
        return True

    def toggle_scoreboard(self):
        self.calls.append(("scoreboard",))
        return True

    def toggle_visible(self, kind, index):
        self.calls.append(("visible", kind, index))
        return True

    def bump_custom_field(self, index, side, delta):
        self.calls.append(("field", index, side, delta))
        return True

    def bump_single_stat(self, index, delta):
        self.calls.append(("single", index, delta))
        return True

    def toggle_timer(self, index):
        self.calls.append(("timer", index))
        return True


def test_default_bindings_for_default_state():
    bindings = build_default_bindings(make_defaults())

    assert len(bindings) == 13
    ids = [binding.action_id for binding in bindings]
    assert ids[:2] == ["swap_sides", "toggle_scoreboard"]
    assert "field_1_away_dec" in ids
    assert ids[-1] == "timer_0_toggle"
    labels = {binding.action_id: binding.label for binding in bindings}
    assert labels["field_0_home_inc"] == "Points: Home +1"
    assert labels["timer_0_toggle"] == "First Half: start / pause"


def test_adding_single_stat_adds_three_and_keeps_user_sequences():
    state = make_defaults()
    user = {"field_0_home_inc": "Ctrl+1", "timer_0_toggle": "F5"}
    before = merge_bindings(build_default_bindings(state), user)

    add_single_stat(state)
    after = merge_bindings(build_default_bindings(state), user)

    assert len(after) == len(before) + 3
    sequences = {binding.action_id: binding.sequence for binding in after}
    assert sequences["field_0_home_inc"] == "Ctrl+1"
    assert sequences["timer_0_toggle"] == "F5"
    assert sequences["single_0_inc"] is None
    assert {binding.label for binding in after if binding.action_id.startswith("single_0")} == {
        "Single stat 1: toggle visibility",
        "Single stat 1: +1",
        "Single stat 1: -1",
    }


def test_merge_drops_unknown_ids_and_accepts_binding_lists():
    defaults = build_default_bindings(make_defaults())
    user = [HotkeyBinding("field_7_toggle", "gone", "X"), HotkeyBinding("swap_sides", "Swap", "S")]

    merged = merge_bindings(defaults, user)

    assert "field_7_toggle" not in {binding.action_id for binding in merged}
    assert merged[0].sequence == "S"


def test_parse_action_id():
    assert parse_action_id("swap_sides") == hotkeys.ParsedAction(kind="swap_sides")
    assert parse_action_id("field_12_away_inc") == hotkeys.ParsedAction("field", 12, "away_inc")
    assert parse_action_id("single_0_home_inc") is None
    assert parse_action_id("timer_0_reset") is None
    assert parse_action_id("field_x_toggle") is None
    assert parse_action_id("bogus") is None
    assert parse_action_id(None) is None


def test_resolve_action_routes_to_target():
    target = RecordingTarget()

    for action in ("swap_sides", "toggle_scoreboard", "field_1_away_dec", "single_0_inc", "timer_2_toggle", "field_0_toggle"):
        call = resolve_action(action, target)
        assert call is not None
        call()

    assert target.calls == [
        ("swap",),
        ("scoreboard",),
        ("field", 1, "away", -1),
        ("single", 0, 1),
        ("timer", 2),
        ("visible", "field", 0),
    ]


def test_resolve_malformed_action_returns_none():
    assert resolve_action("field_0_explode", RecordingTarget()) is None


def test_shift_bindings_follows_entities():
    user = {
        "field_2_toggle": "A",
        "field_3_home_inc": "B",
        "field_1_toggle": "C",
        "timer_3_toggle": "D",
        "swap_sides": "E",
    }

    shifted = shift_bindings(user, "field", 2)

    assert shifted == {
        "field_2_home_inc": "B",
        "field_1_toggle": "C",
        "timer_3_toggle": "D",
        "swap_sides": "E",
    }


def test_store_round_trip(tmp_path):
    store = HotkeyStore.for_directory(tmp_path)

    assert store.save({"swap_sides": "Ctrl+S", "field_0_toggle": None}) is True
    payload = json.loads((tmp_path / hotkeys.HOTKEYS_FILE).read_text(encoding="utf-8"))
    assert payload == {"version": 1, "bindings": {"swap_sides": "Ctrl+S"}}
    assert store.load() == {"swap_sides": "Ctrl+S"}


def test_store_filters_invalid_entries(tmp_path):
    path = tmp_path / hotkeys.HOTKEYS_FILE
    path.write_text(
        json.dumps({"version": 1, "bindings": {"swap_sides": "S", "nope": "N", "timer_0_toggle": 5}}),
        encoding="utf-8",
    )

    assert HotkeyStore(path).load() == {"swap_sides": "S"}


def test_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / hotkeys.HOTKEYS_FILE
    path.write_text("{", encoding="utf-8")

    assert HotkeyStore(path).load() == {}
    assert HotkeyStore(tmp_path / "missing.json").load() == {}
