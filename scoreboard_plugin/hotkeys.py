"""Hotkey action identifiers, default binding sets and the user binding store.

Action ids encode the position of the stat or timer they drive, e.g.
``field_2_home_inc`` or ``timer_0_toggle``. Whenever the number of custom
fields, single stats or timers changes, the defaults are rebuilt and the user's
key sequences merged back in by id.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Union

from .state import ScoreboardState

LOGGER = logging.getLogger("FlyScore.hotkeys")

HOTKEYS_FILE = "hotkeys.json"
_STORE_VERSION = 1

ACTION_SWAP_SIDES = "swap_sides"
ACTION_TOGGLE_SCOREBOARD = "toggle_scoreboard"

FIXED_ACTIONS = (
    (ACTION_SWAP_SIDES, "Swap Home ↔ Guests"),
    (ACTION_TOGGLE_SCOREBOARD, "Show / hide scoreboard"),
)
FIELD_OPS = (
    ("toggle", "toggle visibility"),
    ("home_inc", "Home +1"),
    ("home_dec", "Home -1"),
    ("away_inc", "Guests +1"),
    ("away_dec", "Guests -1"),
)
SINGLE_OPS = (
    ("toggle", "toggle visibility"),
    ("inc", "+1"),
    ("dec", "-1"),
)
TIMER_OPS = (("toggle", "start / pause"),)

_OPS_BY_KIND = {
    "field": {op for op, _ in FIELD_OPS},
    "single": {op for op, _ in SINGLE_OPS},
    "timer": {op for op, _ in TIMER_OPS},
}
_ACTION_PATTERN = re.compile(r"^(field|single|timer)_(\d+)_([a-z_]+)$")


@dataclass
class HotkeyBinding:
    action_id: str
    label: str
    sequence: Optional[str] = None


@dataclass(frozen=True)
class ParsedAction:
    kind: str
    index: int = -1
    op: str = ""


class HotkeyTarget(Protocol):
    def toggle_swap_sides(self) -> bool: ...
    def toggle_scoreboard(self) -> bool: ...
    def toggle_visible(self, kind: str, index: int) -> bool: ...
    def bump_custom_field(self, index: int, side: str, delta: int) -> bool: ...
    def bump_single_stat(self, index: int, delta: int) -> bool: ...
    def toggle_timer(self, index: int) -> bool: ...


def action_id(kind: str, index: int, op: str) -> str:
    return f"{kind}_{index}_{op}"


def _display_name(label: str, fallback: str) -> str:
    text = (label or "").strip()
    return text or fallback


def build_default_bindings(state: ScoreboardState) -> List[HotkeyBinding]:
    bindings = [HotkeyBinding(action, label) for action, label in FIXED_ACTIONS]
    for index, cf in enumerate(state.custom_fields):
        name = _display_name(cf.label, f"Team stat {index + 1}")
        bindings.extend(
            HotkeyBinding(action_id("field", index, op), f"{name}: {suffix}") for op, suffix in FIELD_OPS
        )
    for index, ss in enumerate(state.single_stats):
        name = _display_name(ss.label, f"Single stat {index + 1}")
        bindings.extend(
            HotkeyBinding(action_id("single", index, op), f"{name}: {suffix}") for op, suffix in SINGLE_OPS
        )
    for index, timer in enumerate(state.timers):
        name = _display_name(timer.label, f"Timer {index + 1}")
        bindings.extend(
            HotkeyBinding(action_id("timer", index, op), f"{name}: {suffix}") for op, suffix in TIMER_OPS
        )
    return bindings


UserBindings = Union[Mapping[str, Optional[str]], Iterable[HotkeyBinding]]


def _user_sequences(user: UserBindings) -> Dict[str, Optional[str]]:
    if isinstance(user, Mapping):
        return dict(user)
    return {binding.action_id: binding.sequence for binding in user}


def merge_bindings(defaults: Iterable[HotkeyBinding], user: UserBindings) -> List[HotkeyBinding]:
    """Overlay user key sequences on ``defaults``; ids no longer present are dropped."""
    sequences = _user_sequences(user)
    merged: List[HotkeyBinding] = []
    for binding in defaults:
        sequence = sequences.get(binding.action_id, binding.sequence)
        merged.append(HotkeyBinding(binding.action_id, binding.label, sequence or None))
    return merged


def parse_action_id(value: str) -> Optional[ParsedAction]:
    if not isinstance(value, str):
        return None
    if value in (ACTION_SWAP_SIDES, ACTION_TOGGLE_SCOREBOARD):
        return ParsedAction(kind=value)
    match = _ACTION_PATTERN.match(value)
    if match is None:
        return None
    kind, index_text, op = match.groups()
    if op not in _OPS_BY_KIND[kind]:
        return None
    return ParsedAction(kind=kind, index=int(index_text), op=op)


def resolve_action(value: str, target: HotkeyTarget) -> Optional[Callable[[], Any]]:
    """Map an action id to a zero-argument call on ``target``."""
    parsed = parse_action_id(value)
    if parsed is None:
        LOGGER.debug("Ignoring malformed hotkey action id %r", value)
        return None
    if parsed.kind == ACTION_SWAP_SIDES:
        return target.toggle_swap_sides
    if parsed.kind == ACTION_TOGGLE_SCOREBOARD:
        return target.toggle_scoreboard

    index = parsed.index
    if parsed.op == "toggle":
        if parsed.kind == "timer":
            return lambda: target.toggle_timer(index)
        kind = parsed.kind
        return lambda: target.toggle_visible(kind, index)
    if parsed.kind == "field":
        side, direction = parsed.op.split("_")
        delta = 1 if direction == "inc" else -1
        return lambda: target.bump_custom_field(index, side, delta)
    delta = 1 if parsed.op == "inc" else -1
    return lambda: target.bump_single_stat(index, delta)


def shift_bindings(user: Mapping[str, Optional[str]], kind: str, removed_index: int) -> Dict[str, Optional[str]]:
    """Re-key user sequences after entity ``removed_index`` of ``kind`` was removed.

    Sequences bound to the removed entity are dropped; those bound to later
    entities move down one slot so they keep driving the same stat.
    """
    shifted: Dict[str, Optional[str]] = {}
    for key, sequence in user.items():
        parsed = parse_action_id(key)
        if parsed is None or parsed.kind != kind:
            shifted[key] = sequence
            continue
        if parsed.index == removed_index:
            continue
        if parsed.index > removed_index:
            key = action_id(kind, parsed.index - 1, parsed.op)
        shifted[key] = sequence
    return shifted


class HotkeyStore:
    """JSON-backed map of action id to key sequence for one resources folder."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    @classmethod
    def for_directory(cls, directory: Union[str, Path]) -> "HotkeyStore":
        return cls(Path(directory) / HOTKEYS_FILE)

    def load(self) -> Dict[str, str]:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            LOGGER.warning("Ignoring unreadable hotkey file %s: %s", self.path, exc)
            return {}
        raw = payload.get("bindings") if isinstance(payload, dict) else None
        if not isinstance(raw, dict):
            return {}
        return {
            str(key): value
            for key, value in raw.items()
            if isinstance(value, str) and value and parse_action_id(str(key)) is not None
        }

    def save(self, bindings: Union[Mapping[str, Optional[str]], Iterable[HotkeyBinding]]) -> bool:
        sequences = {key: value for key, value in _user_sequences(bindings).items() if value}
        payload = {"version": _STORE_VERSION, "bindings": sequences}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as exc:
            LOGGER.warning("Failed to write hotkey file %s: %s", self.path, exc)
            return False
        return True
