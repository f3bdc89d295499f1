"""JSON persistence for the scoreboard state.

The overlay reads ``plugin.json`` live, so field names and encodings here are a
wire contract: millisecond values travel as decimal strings (64-bit values do
not survive JavaScript numbers), every other integer is a JSON number.
"""
from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from .state import (
    DEFAULT_SERVER_PORT,
    MODE_COUNTDOWN,
    TIMER_MODES,
    CustomField,
    ScoreboardState,
    SingleStat,
    Team,
    Timer,
    ensure_default_custom_fields,
    ensure_default_timer,
    make_defaults,
)

PLUGIN_FILE = "plugin.json"
STATE_VERSION = 3

LOGGER = logging.getLogger("FlyScore.state")

PathLike = Union[str, Path]


def state_path(directory: PathLike) -> Path:
    return Path(directory) / PLUGIN_FILE


# Value coercion -----------------------------------------------------------


def _coerce_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        # json.loads accepts Infinity, NaN and 1e999.
        if not math.isfinite(value):
            return default
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def _coerce_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    return default


def _coerce_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


# Encoding -----------------------------------------------------------------


def _team_to_dict(team: Team) -> Dict[str, Any]:
    return {"title": team.title, "subtitle": team.subtitle, "logo": team.logo}


def _timer_to_dict(timer: Timer) -> Dict[str, Any]:
    return {
        "label": timer.label,
        "mode": timer.mode,
        "running": bool(timer.running),
        "initial_ms": str(int(timer.initial_ms)),
        "remaining_ms": str(int(timer.remaining_ms)),
        "last_tick_ms": str(int(timer.last_tick_ms)),
        "visible": bool(timer.visible),
    }


def state_to_dict(state: ScoreboardState) -> Dict[str, Any]:
    """Serialise a healed copy of ``state``; the argument is left untouched."""
    healed = state.copy()
    ensure_default_custom_fields(healed)
    ensure_default_timer(healed)
    return {
        "version": STATE_VERSION,
        "server": {"port": int(healed.server_port)},
        "home": _team_to_dict(healed.home),
        "away": _team_to_dict(healed.away),
        "swap_sides": bool(healed.swap_sides),
        "show_scoreboard": bool(healed.show_scoreboard),
        "custom_fields": [
            {
                "label": cf.label,
                "home": int(cf.home),
                "away": int(cf.away),
                "visible": bool(cf.visible),
            }
            for cf in healed.custom_fields
        ],
        "single_stats": [
            {"label": ss.label, "value": int(ss.value), "visible": bool(ss.visible)}
            for ss in healed.single_stats
        ],
        "timers": [_timer_to_dict(timer) for timer in healed.timers],
    }


# Decoding -----------------------------------------------------------------


def _team_from_dict(data: Any) -> Team:
    raw = _as_mapping(data)
    return Team(
        title=_coerce_str(raw.get("title")),
        subtitle=_coerce_str(raw.get("subtitle")),
        logo=_coerce_str(raw.get("logo")),
    )


def _timer_from_dict(data: Any) -> Timer:
    raw = _as_mapping(data)
    mode = _coerce_str(raw.get("mode")).strip().lower()
    return Timer(
        label=_coerce_str(raw.get("label")),
        mode=mode if mode in TIMER_MODES else MODE_COUNTDOWN,
        running=_coerce_bool(raw.get("running"), False),
        initial_ms=_coerce_int(raw.get("initial_ms"), 0),
        remaining_ms=_coerce_int(raw.get("remaining_ms"), 0),
        last_tick_ms=_coerce_int(raw.get("last_tick_ms"), 0),
        visible=_coerce_bool(raw.get("visible"), True),
    )


def state_from_dict(data: Mapping[str, Any]) -> ScoreboardState:
    """Build a state from a decoded document, filling defaults for drift."""
    state = ScoreboardState()
    state.server_port = _coerce_int(_as_mapping(data.get("server")).get("port"), DEFAULT_SERVER_PORT)
    state.home = _team_from_dict(data.get("home"))
    state.away = _team_from_dict(data.get("away"))
    state.swap_sides = _coerce_bool(data.get("swap_sides"), False)
    state.show_scoreboard = _coerce_bool(data.get("show_scoreboard"), True)

    for entry in _as_list(data.get("custom_fields")):
        raw = _as_mapping(entry)
        state.custom_fields.append(
            CustomField(
                label=_coerce_str(raw.get("label")),
                home=max(0, _coerce_int(raw.get("home"), 0)),
                away=max(0, _coerce_int(raw.get("away"), 0)),
                visible=_coerce_bool(raw.get("visible"), True),
            )
        )
    ensure_default_custom_fields(state)

    for entry in _as_list(data.get("single_stats")):
        raw = _as_mapping(entry)
        state.single_stats.append(
            SingleStat(
                label=_coerce_str(raw.get("label")),
                value=_coerce_int(raw.get("value"), 0),
                visible=_coerce_bool(raw.get("visible"), True),
            )
        )

    timers = _as_list(data.get("timers"))
    if timers:
        state.timers = [_timer_from_dict(entry) for entry in timers]
    else:
        legacy = data.get("timer")
        if isinstance(legacy, Mapping) and legacy:
            LOGGER.debug("Migrating legacy single timer into timers list")
            state.timers = [_timer_from_dict(legacy)]
    ensure_default_timer(state)
    return state


# Disk I/O -----------------------------------------------------------------


def load_state(directory: PathLike) -> Optional[ScoreboardState]:
    """Read ``plugin.json`` from ``directory``; ``None`` means "not found"."""
    path = state_path(directory)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as exc:
        LOGGER.warning("Failed to read %s: %s", path, exc)
        return None
    except json.JSONDecodeError as exc:
        LOGGER.warning("Ignoring corrupt %s: %s", path, exc)
        return None
    if not isinstance(raw, dict):
        LOGGER.warning("Ignoring %s: root is not a JSON object", path)
        return None
    return state_from_dict(raw)


def save_state(directory: PathLike, state: ScoreboardState) -> bool:
    path = state_path(directory)
    payload = json.dumps(state_to_dict(state), indent=2, ensure_ascii=False)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        tmp_path.replace(path)
    except OSError as exc:
        LOGGER.warning("Failed to write %s: %s", path, exc)
        return False
    return True


def reset_defaults(directory: PathLike) -> bool:
    path = state_path(directory)
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        LOGGER.warning("Failed to delete %s: %s", path, exc)
    return save_state(directory, make_defaults())
