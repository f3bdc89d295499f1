"""Single-instance scoreboard service used by the dock, hotkeys and dialogs.

All mutation happens on the controlling (UI) thread. Each call that changes the
state writes the whole document to ``plugin.json`` before it returns and then
notifies subscribers with a :class:`StateChange` descriptor.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from . import logo_staging, stat_mutators, timer_engine
from .hotkeys import (
    HotkeyBinding,
    HotkeyStore,
    build_default_bindings,
    merge_bindings,
    parse_action_id,
    resolve_action,
    shift_bindings,
)
from .state import (
    MODE_COUNTDOWN,
    ScoreboardState,
    Timer,
    ensure_default_custom_fields,
    ensure_default_timer,
    make_defaults,
)
from .state_codec import PLUGIN_FILE, load_state, reset_defaults, save_state

LOGGER = logging.getLogger("FlyScore.controller")

CHANGE_FIELD = "field"
CHANGE_SINGLE = "single"
CHANGE_TIMER = "timer"
CHANGE_SCOREBOARD = "scoreboard"
CHANGE_TEAM = "team"
CHANGE_STRUCTURE = "structure"
CHANGE_BINDINGS = "bindings"
CHANGE_RELOAD = "reload"

_LOGO_PREFIXES = ("home", "away", "guest")


@dataclass(frozen=True)
class StateChange:
    kind: str
    index: int = -1


Observer = Callable[[StateChange, ScoreboardState], None]
StoreFactory = Callable[[Path], HotkeyStore]


class ScoreboardController:
    """Owns the state of one resources folder plus its hotkey bindings."""

    def __init__(
        self,
        resources_dir: Union[str, Path],
        *,
        clock: Callable[[], int] = timer_engine.now_ms,
        store_factory: StoreFactory = HotkeyStore.for_directory,
    ) -> None:
        self._resources_dir = Path(resources_dir)
        self._clock = clock
        self._store_factory = store_factory
        self._store = store_factory(self._resources_dir)
        self._state = make_defaults()
        self._user_bindings: Dict[str, Optional[str]] = {}
        self._bindings: List[HotkeyBinding] = build_default_bindings(self._state)
        self._observers: List[Observer] = []
        self._last_save_ok = True

    # Properties -----------------------------------------------------------

    @property
    def resources_dir(self) -> Path:
        return self._resources_dir

    @property
    def state(self) -> ScoreboardState:
        return self._state

    @property
    def bindings(self) -> List[HotkeyBinding]:
        return list(self._bindings)

    @property
    def last_save_ok(self) -> bool:
        return self._last_save_ok

    # Observers ------------------------------------------------------------

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)

        def _unsubscribe() -> None:
            try:
                self._observers.remove(observer)
            except ValueError:
                pass

        return _unsubscribe

    def _notify(self, change: StateChange) -> None:
        for observer in list(self._observers):
            try:
                observer(change, self._state)
            except Exception as exc:
                LOGGER.warning("State observer failed for %s: %s", change, exc, exc_info=exc)

    # Persistence ----------------------------------------------------------

    def load(self) -> bool:
        """Load the folder's state and bindings; returns ``True`` when defaults were created."""
        created = self._load_state_from_disk()
        self._store = self._store_factory(self._resources_dir)
        self._user_bindings = dict(self._store.load())
        self._rebuild_bindings()
        self._notify(StateChange(CHANGE_RELOAD))
        return created

    def reload(self) -> None:
        self._load_state_from_disk()
        self._rebuild_bindings()
        self._notify(StateChange(CHANGE_RELOAD))

    def save(self) -> bool:
        self._last_save_ok = save_state(self._resources_dir, self._state)
        if not self._last_save_ok:
            LOGGER.warning("Scoreboard change kept in memory only; the next save will retry")
        return self._last_save_ok

    def _load_state_from_disk(self) -> bool:
        loaded = load_state(self._resources_dir)
        if loaded is not None:
            self._state = loaded
            return False
        LOGGER.info("No usable %s in %s; creating defaults", PLUGIN_FILE, self._resources_dir)
        self._state = make_defaults()
        self.save()
        return True

    def _commit(self, change: StateChange) -> bool:
        saved = self.save()
        if change.kind == CHANGE_STRUCTURE:
            self._rebuild_bindings()
        self._notify(change)
        return saved

    def switch_resources_dir(self, resources_dir: Union[str, Path]) -> bool:
        target = Path(resources_dir)
        if target == self._resources_dir:
            return False
        LOGGER.info("Switching resources folder to %s", target)
        self._resources_dir = target
        self.load()
        return True

    # Scoreboard toggles ---------------------------------------------------

    def toggle_swap_sides(self) -> bool:
        stat_mutators.toggle_swap_sides(self._state)
        return self._commit(StateChange(CHANGE_SCOREBOARD))

    def toggle_scoreboard(self) -> bool:
        stat_mutators.toggle_show_scoreboard(self._state)
        return self._commit(StateChange(CHANGE_SCOREBOARD))

    def set_swap_sides(self, value: bool) -> bool:
        if self._state.swap_sides == bool(value):
            return False
        return self.toggle_swap_sides()

    def set_show_scoreboard(self, value: bool) -> bool:
        if self._state.show_scoreboard == bool(value):
            return False
        return self.toggle_scoreboard()

    def set_server_port(self, port: int) -> bool:
        port = int(port)
        if not 1 <= port <= 65535 or port == self._state.server_port:
            return False
        self._state.server_port = port
        return self._commit(StateChange(CHANGE_SCOREBOARD))

    # Stats ----------------------------------------------------------------

    def bump_custom_field(self, index: int, side: str, delta: int) -> bool:
        if not stat_mutators.bump_custom_field(self._state, index, side, delta):
            return False
        return self._commit(StateChange(CHANGE_FIELD, index))

    def set_custom_field_value(self, index: int, side: str, value: int) -> bool:
        if not stat_mutators.set_custom_field_value(self._state, index, side, value):
            return False
        return self._commit(StateChange(CHANGE_FIELD, index))

    def bump_single_stat(self, index: int, delta: int) -> bool:
        if not stat_mutators.bump_single_stat(self._state, index, delta):
            return False
        return self._commit(StateChange(CHANGE_SINGLE, index))

    def set_single_stat_value(self, index: int, value: int) -> bool:
        if not stat_mutators.set_single_stat_value(self._state, index, value):
            return False
        return self._commit(StateChange(CHANGE_SINGLE, index))

    def toggle_visible(self, kind: str, index: int) -> bool:
        if not stat_mutators.toggle_visible(self._state, kind, index):
            return False
        return self._commit(StateChange(kind, index))

    def set_visible(self, kind: str, index: int, visible: bool) -> bool:
        if not stat_mutators.set_visible(self._state, kind, index, visible):
            return False
        return self._commit(StateChange(kind, index))

    def set_label(self, kind: str, index: int, label: str) -> bool:
        if not stat_mutators.set_label(self._state, kind, index, label):
            return False
        # Binding display labels embed the stat label.
        self._rebuild_bindings()
        return self._commit(StateChange(kind, index))

    # Structure ------------------------------------------------------------

    def add_custom_field(self, label: str = "") -> int:
        index = stat_mutators.add_custom_field(self._state, label)
        self._commit(StateChange(CHANGE_STRUCTURE, index))
        return index

    def remove_custom_field(self, index: int) -> bool:
        if not stat_mutators.remove_custom_field(self._state, index):
            LOGGER.debug("Refusing to remove custom field %d", index)
            return False
        self._shift_user_bindings("field", index)
        return self._commit(StateChange(CHANGE_STRUCTURE, index))

    def add_single_stat(self, label: str = "") -> int:
        index = stat_mutators.add_single_stat(self._state, label)
        self._commit(StateChange(CHANGE_STRUCTURE, index))
        return index

    def remove_single_stat(self, index: int) -> bool:
        if not stat_mutators.remove_single_stat(self._state, index):
            return False
        self._shift_user_bindings("single", index)
        return self._commit(StateChange(CHANGE_STRUCTURE, index))

    def add_timer(self, label: str = "", mode: str = MODE_COUNTDOWN) -> int:
        index = stat_mutators.add_timer(self._state, label, mode)
        self._commit(StateChange(CHANGE_STRUCTURE, index))
        return index

    def remove_timer(self, index: int) -> bool:
        if not stat_mutators.remove_timer(self._state, index):
            return False
        self._shift_user_bindings("timer", index)
        return self._commit(StateChange(CHANGE_STRUCTURE, index))

    # Timers ---------------------------------------------------------------

    def _timer(self, index: int) -> Optional[Timer]:
        if 0 <= index < len(self._state.timers):
            return self._state.timers[index]
        return None

    def _apply_timer(self, index: int, transition: Callable[[Timer], bool]) -> bool:
        timer = self._timer(index)
        if timer is None or not transition(timer):
            return False
        return self._commit(StateChange(CHANGE_TIMER, index))

    def start_timer(self, index: int) -> bool:
        return self._apply_timer(index, lambda timer: timer_engine.start(timer, self._clock()))

    def pause_timer(self, index: int) -> bool:
        return self._apply_timer(index, lambda timer: timer_engine.pause(timer, self._clock()))

    def toggle_timer(self, index: int) -> bool:
        return self._apply_timer(index, lambda timer: timer_engine.toggle(timer, self._clock()))

    def reset_timer(self, index: int) -> bool:
        return self._apply_timer(index, timer_engine.reset)

    def set_timer_duration(self, index: int, ms: int) -> bool:
        return self._apply_timer(index, lambda timer: timer_engine.set_target_duration(timer, ms))

    def set_timer_mode(self, index: int, mode: str) -> bool:
        return self._apply_timer(index, lambda timer: timer_engine.set_mode(timer, mode))

    def set_timer_text(self, index: int, text: str) -> bool:
        """Apply an ``mm:ss`` edit; malformed text or a running timer changes nothing."""
        ms = timer_engine.parse_mmss(text)
        if ms == timer_engine.PARSE_FAILED:
            LOGGER.debug("Rejected timer %d text %r", index, text)
            return False
        return self.set_timer_duration(index, ms)

    def now(self) -> int:
        return self._clock()

    def timer_display(self, index: int) -> str:
        timer = self._timer(index)
        if timer is None:
            return timer_engine.format_mmss(0)
        return timer_engine.format_mmss(timer_engine.live_remaining_ms(timer, self._clock()))

    # Teams ----------------------------------------------------------------

    def set_team(self, side: str, title: str, subtitle: str) -> bool:
        team = self._state.team(side)
        if (team.title, team.subtitle) == (title, subtitle):
            return False
        team.title = title
        team.subtitle = subtitle
        return self._commit(StateChange(CHANGE_TEAM))

    def set_team_logo(self, side: str, source: Union[str, Path]) -> bool:
        team = self._state.team(side)
        staged = logo_staging.stage_logo(self._resources_dir, source, side)
        if staged is None:
            return False
        team.logo = staged
        return self._commit(StateChange(CHANGE_TEAM))

    def clear_team_logo(self, side: str) -> bool:
        team = self._state.team(side)
        if not team.logo:
            return False
        logo_staging.delete_logo(self._resources_dir, team.logo)
        team.logo = ""
        return self._commit(StateChange(CHANGE_TEAM))

    # Dialogs --------------------------------------------------------------

    def begin_edit(self) -> ScoreboardState:
        return self._state.copy()

    def commit_edit(self, working: ScoreboardState) -> bool:
        """Persist a dialog's working copy and reload from disk."""
        healed = working.copy()
        ensure_default_custom_fields(healed)
        ensure_default_timer(healed)
        if not save_state(self._resources_dir, healed):
            LOGGER.warning("Dialog changes kept in memory only; the next save will retry")
            self._last_save_ok = False
            self._state = healed
            self._rebuild_bindings()
            self._notify(StateChange(CHANGE_RELOAD))
            return False
        self._last_save_ok = True
        self.reload()
        return True

    def cancel_edit(self) -> None:
        self.reload()

    def reset_all(self) -> bool:
        """Clear teams, delete staged logos and rewrite ``plugin.json`` defaults."""
        for team in (self._state.home, self._state.away):
            logo_staging.delete_logo(self._resources_dir, team.logo)
        for prefix in _LOGO_PREFIXES:
            logo_staging.clean_logo_prefix(self._resources_dir, prefix)
        ok = reset_defaults(self._resources_dir)
        if not ok:
            LOGGER.warning("Failed to reset %s to defaults", PLUGIN_FILE)
        self.reload()
        LOGGER.info("Cleared teams, deleted logos and reset %s", PLUGIN_FILE)
        return ok

    # Hotkeys --------------------------------------------------------------

    def _rebuild_bindings(self) -> None:
        self._bindings = merge_bindings(build_default_bindings(self._state), self._user_bindings)

    def _shift_user_bindings(self, kind: str, removed_index: int) -> None:
        shifted = shift_bindings(self._user_bindings, kind, removed_index)
        if shifted != self._user_bindings:
            self._user_bindings = shifted
            self._store.save(self._user_bindings)

    def set_hotkey_sequence(self, action: str, sequence: Optional[str]) -> bool:
        if parse_action_id(action) is None:
            return False
        current = self._user_bindings.get(action)
        if (current or None) == (sequence or None):
            return False
        if sequence:
            self._user_bindings[action] = sequence
        else:
            self._user_bindings.pop(action, None)
        self._store.save(self._user_bindings)
        self._rebuild_bindings()
        self._notify(StateChange(CHANGE_BINDINGS))
        return True

    def user_sequences(self) -> Dict[str, Optional[str]]:
        return dict(self._user_bindings)

    def activate_hotkey(self, action: str) -> bool:
        call = resolve_action(action, self)
        if call is None:
            return False
        return bool(call())

    def structure_signature(self) -> Tuple[int, int, int]:
        return (len(self._state.custom_fields), len(self._state.single_stats), len(self._state.timers))
