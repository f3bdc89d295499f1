"""In-memory scoreboard state shared by the dock, hotkeys and dialogs."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import List

DEFAULT_SERVER_PORT = 8089

MODE_COUNTDOWN = "countdown"
MODE_COUNTUP = "countup"
TIMER_MODES = (MODE_COUNTDOWN, MODE_COUNTUP)

# Slots 0 and 1 back the main scoreboard and can be relabelled but never removed.
RESERVED_CUSTOM_FIELDS = 2
RESERVED_FIELD_LABELS = ("Points", "Score")

CUSTOM_FIELD_MIN = 0
CUSTOM_FIELD_MAX = 999
SINGLE_STAT_UI_MIN = -9999
SINGLE_STAT_UI_MAX = 9999

DEFAULT_TIMER_LABEL = "First Half"


@dataclass
class Team:
    title: str = ""
    subtitle: str = ""
    logo: str = ""


@dataclass
class CustomField:
    """Paired home/guest stat such as corners or fouls."""

    label: str = ""
    home: int = 0
    away: int = 0
    visible: bool = True


@dataclass
class SingleStat:
    """Stat with one signed value, e.g. period or possession."""

    label: str = ""
    value: int = 0
    visible: bool = True


@dataclass
class Timer:
    """Snapshot of one timer; the overlay animates between snapshots."""

    label: str = ""
    mode: str = MODE_COUNTDOWN
    running: bool = False
    initial_ms: int = 0
    remaining_ms: int = 0
    last_tick_ms: int = 0
    visible: bool = True


@dataclass
class ScoreboardState:
    """Root aggregate persisted to ``plugin.json``."""

    server_port: int = DEFAULT_SERVER_PORT
    home: Team = field(default_factory=Team)
    away: Team = field(default_factory=Team)
    swap_sides: bool = False
    show_scoreboard: bool = True
    custom_fields: List[CustomField] = field(default_factory=list)
    single_stats: List[SingleStat] = field(default_factory=list)
    timers: List[Timer] = field(default_factory=list)

    def copy(self) -> "ScoreboardState":
        return copy.deepcopy(self)

    def team(self, side: str) -> Team:
        if side == "home":
            return self.home
        if side == "away":
            return self.away
        raise ValueError(f"Unknown team side '{side}'")


def make_default_timer() -> Timer:
    return Timer(label=DEFAULT_TIMER_LABEL, mode=MODE_COUNTDOWN)


def ensure_default_custom_fields(state: ScoreboardState) -> ScoreboardState:
    """Guarantee the reserved slots exist and carry a label.

    Existing values are never overwritten, so calling this repeatedly is safe.
    """
    while len(state.custom_fields) < RESERVED_CUSTOM_FIELDS:
        state.custom_fields.append(CustomField())
    for index, label in enumerate(RESERVED_FIELD_LABELS):
        if not state.custom_fields[index].label:
            state.custom_fields[index].label = label
    return state


def ensure_default_timer(state: ScoreboardState) -> ScoreboardState:
    if not state.timers:
        state.timers.append(make_default_timer())
    return state


def make_defaults() -> ScoreboardState:
    state = ScoreboardState()
    ensure_default_custom_fields(state)
    ensure_default_timer(state)
    return state
