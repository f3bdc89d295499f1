"""Keep host controls in step with the state without clobbering in-progress edits.

The UI re-renders from a flat snapshot of control values. A control the user is
editing is flagged as pending; refreshes skip it until the edit is committed.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Set

from .state import ScoreboardState
from .timer_engine import format_mmss, live_remaining_ms

ControlSnapshot = Dict[str, Any]


def snapshot_controls(state: ScoreboardState, now_ms: Optional[int] = None) -> ControlSnapshot:
    """Flat control values; with ``now_ms`` running timers show their live time."""
    snapshot: ControlSnapshot = {
        "swap_sides": state.swap_sides,
        "show_scoreboard": state.show_scoreboard,
    }
    for index, cf in enumerate(state.custom_fields):
        snapshot[f"field_{index}_home"] = cf.home
        snapshot[f"field_{index}_away"] = cf.away
        snapshot[f"field_{index}_visible"] = cf.visible
    for index, ss in enumerate(state.single_stats):
        snapshot[f"single_{index}_value"] = ss.value
        snapshot[f"single_{index}_visible"] = ss.visible
    for index, timer in enumerate(state.timers):
        remaining = timer.remaining_ms if now_ms is None else live_remaining_ms(timer, now_ms)
        snapshot[f"timer_{index}_time"] = format_mmss(remaining)
        snapshot[f"timer_{index}_visible"] = timer.visible
        snapshot[f"timer_{index}_running"] = timer.running
    return snapshot


class ControlSync:
    def __init__(self) -> None:
        self._rendered: ControlSnapshot = {}
        self._editing: Set[str] = set()

    @property
    def rendered(self) -> ControlSnapshot:
        return dict(self._rendered)

    def mark_editing(self, key: str) -> None:
        self._editing.add(key)

    def clear_editing(self, key: str) -> None:
        self._editing.discard(key)

    def has_pending_edit(self, key: str) -> bool:
        return key in self._editing

    def render(self, snapshot: Mapping[str, Any]) -> ControlSnapshot:
        """Return the controls that need updating; pending edits are left alone."""
        changes: ControlSnapshot = {}
        for key, value in snapshot.items():
            if key in self._editing:
                continue
            if key not in self._rendered or self._rendered[key] != value:
                changes[key] = value
                self._rendered[key] = value
        for key in list(self._rendered):
            if key not in snapshot:
                del self._rendered[key]
        return changes

    def user_edits(self, current: Mapping[str, Any]) -> ControlSnapshot:
        """Return controls whose value differs from what was last rendered."""
        return {
            key: value
            for key, value in current.items()
            if key in self._rendered and self._rendered[key] != value
        }

    def release_pending(self) -> List[str]:
        """Drop every pending edit so the next render restores the last good values."""
        keys = sorted(self._editing)
        for key in keys:
            self._rendered.pop(key, None)
        self._editing.clear()
        return keys

    def invalidate(self, key: str) -> None:
        """Forget what was rendered for ``key`` so the next render rewrites it."""
        self._rendered.pop(key, None)

    def reset(self) -> None:
        self._rendered.clear()
        self._editing.clear()
