"""Bounded mutations over custom fields, single stats and timer lists.

Every function returns ``True`` when the state changed. Out-of-range indices are
ignored so stale hotkeys cannot raise inside the host.
"""
from __future__ import annotations

from typing import List, Sequence

from .state import (
    CUSTOM_FIELD_MAX,
    CUSTOM_FIELD_MIN,
    MODE_COUNTDOWN,
    RESERVED_CUSTOM_FIELDS,
    SINGLE_STAT_UI_MAX,
    SINGLE_STAT_UI_MIN,
    TIMER_MODES,
    CustomField,
    ScoreboardState,
    SingleStat,
    Timer,
    make_default_timer,
)

SIDES = ("home", "away")
KIND_FIELD = "field"
KIND_SINGLE = "single"
KIND_TIMER = "timer"
KINDS = (KIND_FIELD, KIND_SINGLE, KIND_TIMER)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def _in_range(items: Sequence[object], index: int) -> bool:
    return 0 <= index < len(items)


def _check_side(side: str) -> None:
    if side not in SIDES:
        raise ValueError(f"Unknown side '{side}'")


def _items_for(state: ScoreboardState, kind: str) -> List:
    if kind == KIND_FIELD:
        return state.custom_fields
    if kind == KIND_SINGLE:
        return state.single_stats
    if kind == KIND_TIMER:
        return state.timers
    raise ValueError(f"Unknown stat kind '{kind}'")


# Values -------------------------------------------------------------------


def set_custom_field_value(state: ScoreboardState, index: int, side: str, value: int) -> bool:
    _check_side(side)
    if not _in_range(state.custom_fields, index):
        return False
    field = state.custom_fields[index]
    new_value = _clamp(int(value), CUSTOM_FIELD_MIN, CUSTOM_FIELD_MAX)
    if getattr(field, side) == new_value:
        return False
    setattr(field, side, new_value)
    return True


def bump_custom_field(state: ScoreboardState, index: int, side: str, delta: int) -> bool:
    _check_side(side)
    if not _in_range(state.custom_fields, index):
        return False
    current = getattr(state.custom_fields[index], side)
    return set_custom_field_value(state, index, side, current + delta)


def bump_single_stat(state: ScoreboardState, index: int, delta: int) -> bool:
    if not _in_range(state.single_stats, index) or delta == 0:
        return False
    state.single_stats[index].value += int(delta)
    return True


def set_single_stat_value(state: ScoreboardState, index: int, value: int) -> bool:
    if not _in_range(state.single_stats, index):
        return False
    stat = state.single_stats[index]
    new_value = _clamp(int(value), SINGLE_STAT_UI_MIN, SINGLE_STAT_UI_MAX)
    if stat.value == new_value:
        return False
    stat.value = new_value
    return True


def toggle_visible(state: ScoreboardState, kind: str, index: int) -> bool:
    items = _items_for(state, kind)
    if not _in_range(items, index):
        return False
    items[index].visible = not items[index].visible
    return True


def set_visible(state: ScoreboardState, kind: str, index: int, visible: bool) -> bool:
    items = _items_for(state, kind)
    if not _in_range(items, index) or items[index].visible == bool(visible):
        return False
    items[index].visible = bool(visible)
    return True


def set_label(state: ScoreboardState, kind: str, index: int, label: str) -> bool:
    items = _items_for(state, kind)
    if not _in_range(items, index) or items[index].label == label:
        return False
    items[index].label = label
    return True


def toggle_swap_sides(state: ScoreboardState) -> bool:
    state.swap_sides = not state.swap_sides
    return True


def toggle_show_scoreboard(state: ScoreboardState) -> bool:
    state.show_scoreboard = not state.show_scoreboard
    return True


# Structure ----------------------------------------------------------------


def add_custom_field(state: ScoreboardState, label: str = "") -> int:
    state.custom_fields.append(CustomField(label=label))
    return len(state.custom_fields) - 1


def remove_custom_field(state: ScoreboardState, index: int) -> bool:
    if index < RESERVED_CUSTOM_FIELDS or not _in_range(state.custom_fields, index):
        return False
    del state.custom_fields[index]
    return True


def add_single_stat(state: ScoreboardState, label: str = "") -> int:
    state.single_stats.append(SingleStat(label=label))
    return len(state.single_stats) - 1


def remove_single_stat(state: ScoreboardState, index: int) -> bool:
    if not _in_range(state.single_stats, index):
        return False
    del state.single_stats[index]
    return True


def add_timer(state: ScoreboardState, label: str = "", mode: str = MODE_COUNTDOWN) -> int:
    state.timers.append(Timer(label=label, mode=mode if mode in TIMER_MODES else MODE_COUNTDOWN))
    return len(state.timers) - 1


def remove_timer(state: ScoreboardState, index: int) -> bool:
    if not _in_range(state.timers, index):
        return False
    del state.timers[index]
    if not state.timers:
        state.timers.append(make_default_timer())
    return True
