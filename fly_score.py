"""OBS Studio script entry point for the Fly Score scoreboard overlay."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from scoreboard_plugin.control_sync import ControlSync, snapshot_controls
from scoreboard_plugin.controller import (
    CHANGE_RELOAD,
    CHANGE_STRUCTURE,
    ScoreboardController,
    StateChange,
)
from scoreboard_plugin.dispatch import MainThreadDispatcher
from scoreboard_plugin.host_bridge import BROWSER_SOURCE_ID, ObsHostBridge, load_obs_module
from scoreboard_plugin.lifecycle import LifecycleTracker
from scoreboard_plugin.logging_utils import LOGGER_NAME, HostLogHandler, build_rotating_file_handler
from scoreboard_plugin.overlay_server import OverlayHttpServer
from scoreboard_plugin.runtime_services import start_runtime_services, stop_runtime_services
from scoreboard_plugin.server_health import HealthStatus, probe_overlay_server
from scoreboard_plugin.settings import DEFAULT_BROWSER_SOURCE_NAME, PluginSettings
from scoreboard_plugin.state import (
    CUSTOM_FIELD_MAX,
    CUSTOM_FIELD_MIN,
    MODE_COUNTDOWN,
    MODE_COUNTUP,
    RESERVED_CUSTOM_FIELDS,
    SINGLE_STAT_UI_MAX,
    SINGLE_STAT_UI_MIN,
    ScoreboardState,
)
from scoreboard_plugin.timer_engine import PARSE_FAILED, now_ms, parse_mmss
from version import __version__ as FLY_SCORE_VERSION

PLUGIN_NAME = "Fly Score"
PLUGIN_VERSION = FLY_SCORE_VERSION
LOG_TAG = "fly-score"
SCRIPT_DIR = Path(__file__).resolve().parent
OVERLAY_INDEX = "index.html"
LOG_SUBDIR = "logs"
DRAIN_BATCH = 50

TEAM_KEYS = ("home_title", "home_subtitle", "away_title", "away_subtitle")
LOGO_KEYS = ("home_logo_file", "away_logo_file")
PLUGIN_SETTING_KEYS: Dict[str, type] = {
    "resources_dir": str,
    "serve_overlay": bool,
    "server_port": int,
    "browser_source_name": str,
    "file_logging": bool,
}


def _configure_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if logger.level == logging.NOTSET:
        logger.setLevel(logging.INFO)
    if not any(isinstance(handler, HostLogHandler) for handler in logger.handlers):
        obs = load_obs_module()
        handler = HostLogHandler(getattr(obs, "script_log", None) if obs is not None else None)
        handler.setFormatter(logging.Formatter(f"[{LOG_TAG}] %(message)s"))
        handler.setLevel(logging.INFO)
        logger.addHandler(handler)
    logger.propagate = False
    return logger


LOGGER = _configure_logger()


def _editable_controls(state: ScoreboardState) -> Dict[str, Any]:
    """Text and choice controls that sit alongside the snapshot of live values."""
    values: Dict[str, Any] = {
        "home_title": state.home.title,
        "home_subtitle": state.home.subtitle,
        "away_title": state.away.title,
        "away_subtitle": state.away.subtitle,
    }
    for index, cf in enumerate(state.custom_fields):
        values[f"field_{index}_label"] = cf.label
    for index, ss in enumerate(state.single_stats):
        values[f"single_{index}_label"] = ss.label
    for index, timer in enumerate(state.timers):
        values[f"timer_{index}_label"] = timer.label
        values[f"timer_{index}_mode"] = timer.mode
    return values


def _control_values(state: ScoreboardState, now: Optional[int] = None) -> Dict[str, Any]:
    values = snapshot_controls(state, now)
    values.update(_editable_controls(state))
    return values


def _settings_schema(state: ScoreboardState) -> Dict[str, type]:
    schema: Dict[str, type] = dict(PLUGIN_SETTING_KEYS)
    for key in LOGO_KEYS:
        schema[key] = str
    for key, value in _control_values(state).items():
        if key.endswith("_running"):
            continue
        schema[key] = type(value)
    return schema


class _PluginRuntime:
    """Encapsulates plugin state so OBS script globals stay tidy."""

    def __init__(
        self,
        script_dir: Path,
        settings: PluginSettings,
        bridge: Optional[ObsHostBridge] = None,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.script_dir = Path(script_dir)
        self.settings = settings
        self.bridge = bridge or ObsHostBridge()
        self.lifecycle = LifecycleTracker(LOGGER)
        self.controller = ScoreboardController(settings.resolved_resources_dir(), clock=clock)
        self.dispatcher = MainThreadDispatcher(LOGGER)
        self.control_sync = ControlSync()
        self.server: Optional[OverlayHttpServer] = OverlayHttpServer(
            self.controller.resources_dir,
            settings.server_host,
            self.controller.state.server_port,
            lifecycle=self.lifecycle,
        )
        self.browser_sources: List[str] = []
        self._obs_settings: Any = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._file_handler: Optional[logging.Handler] = None
        self._hotkey_signature: Optional[Tuple[int, int, int]] = None
        self._logo_sources: Dict[str, str] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # Lifecycle ------------------------------------------------------------

    def start(self, obs_settings: Any = None) -> str:
        if self._running:
            return PLUGIN_NAME
        self._obs_settings = obs_settings
        self._attach_host_log()
        if self.controller.load():
            LOGGER.info("Created a default scoreboard in %s", self.controller.resources_dir)
        self._apply_file_logging()
        self._unsubscribe = self.controller.subscribe(self._on_state_change)
        if self.server is not None:
            self.server.docroot = self.controller.resources_dir
            self.server.port = self.controller.state.server_port
        start_runtime_services(self, LOGGER)
        self._register_hotkeys()
        self._refresh_source_list()
        self._render_plugin_settings()
        self._render_controls()
        self._running = True
        LOGGER.info("%s %s started (resources: %s)", PLUGIN_NAME, PLUGIN_VERSION, self.controller.resources_dir)
        return PLUGIN_NAME

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        LOGGER.info("%s stopping", PLUGIN_NAME)
        self.capture_hotkeys()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        stop_runtime_services(self, LOGGER, untrack_handle=self.lifecycle.untrack_handle)
        self.dispatcher.close()
        report = self.lifecycle.log_state("after stop")
        if report.live_threads:
            LOGGER.warning("Threads still running after stop: %s", ", ".join(report.live_threads))
        self._detach_file_logging()
        self._obs_settings = None

    def _attach_host_log(self) -> None:
        sink = self.bridge.log_sink()
        for handler in logging.getLogger(LOGGER_NAME).handlers:
            if isinstance(handler, HostLogHandler):
                handler.set_sink(sink)

    def _apply_file_logging(self) -> None:
        logger = logging.getLogger(LOGGER_NAME)
        self._detach_file_logging()
        if not self.settings.file_logging:
            logger.setLevel(logging.INFO)
            return
        try:
            handler = build_rotating_file_handler(
                self.controller.resources_dir / LOG_SUBDIR,
                retention=self.settings.log_retention,
            )
        except OSError as exc:
            LOGGER.warning("File logging disabled; cannot open log file: %s", exc)
            return
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG)
        self._file_handler = handler

    def _detach_file_logging(self) -> None:
        handler, self._file_handler = self._file_handler, None
        if handler is None:
            return
        logging.getLogger(LOGGER_NAME).removeHandler(handler)
        handler.close()

    # Runtime service hooks ------------------------------------------------

    def _serve_overlay_enabled(self) -> bool:
        return bool(self.settings.serve_overlay)

    def _on_sources_changed(self) -> None:
        # Runs on an OBS signal thread.
        self.dispatcher.post(self._refresh_source_list)

    def _drain_pending(self) -> None:
        self.dispatcher.drain(DRAIN_BATCH)

    def _refresh_source_list(self) -> None:
        self.browser_sources = self.bridge.list_sources_by_type(BROWSER_SOURCE_ID)
        LOGGER.debug("Browser sources: %s", self.browser_sources)

    def _restart_server(self) -> bool:
        if self.server is None:
            return False
        if not self.settings.serve_overlay:
            self.server.stop()
            return False
        ok = self.server.restart(self.controller.resources_dir, self.controller.state.server_port)
        if not ok:
            LOGGER.warning("Overlay server failed to restart; running in degraded mode.")
        return ok

    # Hotkeys --------------------------------------------------------------

    def _hotkey_callback(self, action: str) -> Callable[[bool], None]:
        def _on_hotkey(pressed: bool) -> None:
            # Key-down only; OBS calls again on release.
            if pressed:
                self.dispatcher.post(lambda: self.controller.activate_hotkey(action))

        return _on_hotkey

    def _register_hotkeys(self) -> None:
        self.bridge.unregister_all_hotkeys()
        for binding in self.controller.bindings:
            description = f"{PLUGIN_NAME}: {binding.label}"
            if self.bridge.register_hotkey(binding.action_id, description, self._hotkey_callback(binding.action_id)):
                self.bridge.load_hotkey(binding.action_id, binding.sequence)
        self._hotkey_signature = self.controller.structure_signature()

    def capture_hotkeys(self) -> None:
        """Copy the key combinations OBS currently holds into the hotkey store."""
        for action in self.bridge.registered_hotkeys:
            sequence = self.bridge.save_hotkey(action)
            if sequence is None:
                continue
            self.controller.set_hotkey_sequence(action, sequence or None)

    # State -> controls ----------------------------------------------------

    def _on_state_change(self, change: StateChange, _state: ScoreboardState) -> None:
        # Unparseable text left in a control is dropped once the state moves on.
        self.control_sync.release_pending()
        if change.kind == CHANGE_RELOAD:
            self.control_sync.reset()
            self._register_hotkeys()
        elif change.kind == CHANGE_STRUCTURE and self.controller.structure_signature() != self._hotkey_signature:
            self._register_hotkeys()
        self._render_controls()

    def _render_controls(self) -> Dict[str, Any]:
        changes = self.control_sync.render(_control_values(self.controller.state, self.controller.now()))
        if changes and self._obs_settings is not None:
            self.bridge.write_values(self._obs_settings, changes)
        return changes

    def revert_pending_edits(self) -> Dict[str, Any]:
        """Put the last good value back into controls left holding unparseable text."""
        self.control_sync.release_pending()
        return self._render_controls()

    def _render_plugin_settings(self) -> None:
        if self._obs_settings is None:
            return
        values = {
            "resources_dir": str(self.controller.resources_dir),
            "serve_overlay": bool(self.settings.serve_overlay),
            "server_port": int(self.controller.state.server_port),
            "browser_source_name": self.settings.browser_source_name,
            "file_logging": bool(self.settings.file_logging),
        }
        self.bridge.write_values(self._obs_settings, values)

    # Controls -> state ----------------------------------------------------

    def handle_settings_update(self, obs_settings: Any) -> None:
        self._obs_settings = obs_settings
        values = self.bridge.read_values(obs_settings, _settings_schema(self.controller.state))
        self.apply_settings_values(values)

    def apply_settings_values(self, values: Mapping[str, Any]) -> None:
        """Apply values edited in the script properties; untouched controls are ignored."""
        self._apply_plugin_settings(values)
        self._apply_logo_paths(values)
        edits = self.control_sync.user_edits(values)
        # Timer text last, so other edits in the batch cannot revert it mid-typing.
        for key in sorted(edits, key=lambda name: name.endswith("_time")):
            self._apply_control(key, edits[key])
        self._render_controls()

    def _apply_plugin_settings(self, values: Mapping[str, Any]) -> None:
        settings = self.settings
        dirty = False

        name = str(values.get("browser_source_name") or "").strip()
        if name and name != settings.browser_source_name:
            settings.browser_source_name = name
            dirty = True

        if "file_logging" in values and bool(values["file_logging"]) != settings.file_logging:
            settings.file_logging = bool(values["file_logging"])
            self._apply_file_logging()
            dirty = True

        restart = False
        if "serve_overlay" in values and bool(values["serve_overlay"]) != settings.serve_overlay:
            settings.serve_overlay = bool(values["serve_overlay"])
            restart = True
            dirty = True

        port = values.get("server_port")
        if isinstance(port, int) and self.controller.set_server_port(port):
            restart = True

        raw_dir = str(values.get("resources_dir") or "").strip()
        if raw_dir and Path(raw_dir).expanduser() != self.controller.resources_dir:
            settings.resources_dir = raw_dir
            dirty = True
            self.switch_resources_dir(Path(raw_dir).expanduser())
            restart = False

        if restart:
            self._restart_server()
        if dirty:
            settings.save()

    def _apply_logo_paths(self, values: Mapping[str, Any]) -> None:
        for key in LOGO_KEYS:
            path = str(values.get(key) or "").strip()
            if not path or self._logo_sources.get(key) == path:
                continue
            self._logo_sources[key] = path
            side = key.split("_", 1)[0]
            if not self.controller.set_team_logo(side, path):
                LOGGER.warning("Could not use %s as the %s logo", path, side)

    def _apply_control(self, key: str, value: Any) -> None:
        state = self.controller.state
        changed = False
        if key == "swap_sides":
            changed = self.controller.set_swap_sides(bool(value))
        elif key == "show_scoreboard":
            changed = self.controller.set_show_scoreboard(bool(value))
        elif key in TEAM_KEYS:
            side, attr = key.split("_", 1)
            team = state.team(side)
            title = str(value) if attr == "title" else team.title
            subtitle = str(value) if attr == "subtitle" else team.subtitle
            changed = self.controller.set_team(side, title, subtitle)
        else:
            kind, index_text, attr = key.split("_", 2)
            index = int(index_text)
            if attr == "label":
                changed = self.controller.set_label(kind, index, str(value))
            elif attr == "visible":
                changed = self.controller.set_visible(kind, index, bool(value))
            elif kind == "field" and attr in ("home", "away"):
                changed = self.controller.set_custom_field_value(index, attr, int(value))
            elif kind == "single" and attr == "value":
                changed = self.controller.set_single_stat_value(index, int(value))
            elif kind == "timer" and attr == "mode":
                changed = self.controller.set_timer_mode(index, str(value))
            elif kind == "timer" and attr == "time":
                text = str(value)
                if parse_mmss(text) == PARSE_FAILED:
                    # Possibly half-typed; keep refreshes away from it.
                    self.control_sync.mark_editing(key)
                    return
                self.control_sync.clear_editing(key)
                changed = self.controller.set_timer_text(index, text)
        if not changed:
            self.control_sync.invalidate(key)

    # Actions --------------------------------------------------------------

    def switch_resources_dir(self, path: Path) -> bool:
        self.capture_hotkeys()
        if not self.controller.switch_resources_dir(path):
            return False
        self._apply_file_logging()
        self._restart_server()
        self._render_plugin_settings()
        return True

    def overlay_target(self) -> str:
        if self.server is not None and self.server.running:
            return self.server.url_for()
        return str(self.controller.resources_dir / OVERLAY_INDEX)

    def add_browser_source(self) -> bool:
        settings = self.settings
        ok = self.bridge.ensure_browser_source(
            self.overlay_target(), settings.browser_source_name, settings.browser_width, settings.browser_height
        )
        if not ok:
            LOGGER.warning("Could not add browser source '%s'", settings.browser_source_name)
        return ok

    def refresh_browser_source(self) -> bool:
        ok = self.bridge.refresh_source(self.settings.browser_source_name)
        if not ok:
            LOGGER.warning("Refresh failed for browser source: %s", self.settings.browser_source_name)
        return ok

    def check_server(self) -> HealthStatus:
        status = probe_overlay_server(self.controller.state.server_port, self.settings.server_host)
        if status.healthy:
            LOGGER.info("Overlay server is reachable at %s", status.url)
        else:
            LOGGER.warning("Overlay server check failed at %s: %s", status.url, status.error)
        return status

    def reset_all(self) -> bool:
        self.capture_hotkeys()
        self._logo_sources.clear()
        return self.controller.reset_all()

    def clear_logo(self, side: str) -> bool:
        self._logo_sources.pop(f"{side}_logo_file", None)
        return self.controller.clear_team_logo(side)

    def structural(self, operation: Callable[[], Any]) -> Any:
        """Run an add/remove after saving current key combinations."""
        self.capture_hotkeys()
        return operation()


# OBS properties -----------------------------------------------------------


def _button(obs, props, name: str, text: str, action: Callable[[], Any]) -> None:
    def _clicked(_props, _prop) -> bool:
        try:
            action()
        except Exception as exc:
            LOGGER.exception("Action '%s' failed: %s", text, exc)
        return True

    obs.obs_properties_add_button(props, name, text, _clicked)


def _build_properties(runtime: _PluginRuntime) -> Any:
    obs = runtime.bridge.module
    props = obs.obs_properties_create()
    controller = runtime.controller
    state = controller.state

    obs.obs_properties_add_path(
        props, "resources_dir", "Resources folder", obs.OBS_PATH_DIRECTORY, "", str(controller.resources_dir)
    )
    obs.obs_properties_add_bool(props, "serve_overlay", "Serve overlay over HTTP")
    obs.obs_properties_add_int(props, "server_port", "Overlay server port", 1, 65535, 1)
    obs.obs_properties_add_text(props, "browser_source_name", "Browser source name", obs.OBS_TEXT_DEFAULT)
    obs.obs_properties_add_bool(props, "file_logging", "Write log file")
    _button(obs, props, "add_source", "Add scoreboard browser source", runtime.add_browser_source)
    _button(obs, props, "refresh_source", "Refresh browser source", runtime.refresh_browser_source)
    _button(obs, props, "check_server", "Check overlay server", runtime.check_server)

    obs.obs_properties_add_bool(props, "show_scoreboard", "Show scoreboard")
    obs.obs_properties_add_bool(props, "swap_sides", "Swap Home ↔ Guests")

    image_filter = "Images (*.png *.jpg *.jpeg *.svg *.webp)"
    for side, caption in (("home", "Home"), ("away", "Guests")):
        obs.obs_properties_add_text(props, f"{side}_title", f"{caption} title", obs.OBS_TEXT_DEFAULT)
        obs.obs_properties_add_text(props, f"{side}_subtitle", f"{caption} subtitle", obs.OBS_TEXT_DEFAULT)
        obs.obs_properties_add_path(props, f"{side}_logo_file", f"{caption} logo", obs.OBS_PATH_FILE, image_filter, None)
        _button(obs, props, f"{side}_logo_clear", f"Clear {caption.lower()} logo", lambda side=side: runtime.clear_logo(side))

    for index, cf in enumerate(state.custom_fields):
        name = cf.label or f"Team stat {index + 1}"
        obs.obs_properties_add_text(props, f"field_{index}_label", f"{name}: label", obs.OBS_TEXT_DEFAULT)
        obs.obs_properties_add_int(props, f"field_{index}_home", f"{name}: Home", CUSTOM_FIELD_MIN, CUSTOM_FIELD_MAX, 1)
        obs.obs_properties_add_int(props, f"field_{index}_away", f"{name}: Guests", CUSTOM_FIELD_MIN, CUSTOM_FIELD_MAX, 1)
        obs.obs_properties_add_bool(props, f"field_{index}_visible", f"{name}: visible")
        if index >= RESERVED_CUSTOM_FIELDS:
            _button(
                obs, props, f"field_{index}_remove", f"Remove {name}",
                lambda index=index: runtime.structural(lambda: controller.remove_custom_field(index)),
            )
    _button(obs, props, "field_add", "Add team stat", lambda: runtime.structural(controller.add_custom_field))

    for index, ss in enumerate(state.single_stats):
        name = ss.label or f"Single stat {index + 1}"
        obs.obs_properties_add_text(props, f"single_{index}_label", f"{name}: label", obs.OBS_TEXT_DEFAULT)
        obs.obs_properties_add_int(
            props, f"single_{index}_value", f"{name}: value", SINGLE_STAT_UI_MIN, SINGLE_STAT_UI_MAX, 1
        )
        obs.obs_properties_add_bool(props, f"single_{index}_visible", f"{name}: visible")
        _button(
            obs, props, f"single_{index}_remove", f"Remove {name}",
            lambda index=index: runtime.structural(lambda: controller.remove_single_stat(index)),
        )
    _button(obs, props, "single_add", "Add single stat", lambda: runtime.structural(controller.add_single_stat))

    for index, timer in enumerate(state.timers):
        name = timer.label or f"Timer {index + 1}"
        obs.obs_properties_add_text(props, f"timer_{index}_label", f"{name}: label", obs.OBS_TEXT_DEFAULT)
        mode = obs.obs_properties_add_list(
            props, f"timer_{index}_mode", f"{name}: mode", obs.OBS_COMBO_TYPE_LIST, obs.OBS_COMBO_FORMAT_STRING
        )
        obs.obs_property_list_add_string(mode, "Countdown", MODE_COUNTDOWN)
        obs.obs_property_list_add_string(mode, "Count up", MODE_COUNTUP)
        obs.obs_properties_add_text(props, f"timer_{index}_time", f"{name}: time (mm:ss)", obs.OBS_TEXT_DEFAULT)
        obs.obs_properties_add_bool(props, f"timer_{index}_visible", f"{name}: visible")
        _button(obs, props, f"timer_{index}_toggle", f"{name}: start / pause", lambda index=index: controller.toggle_timer(index))
        _button(obs, props, f"timer_{index}_reset", f"{name}: reset", lambda index=index: controller.reset_timer(index))
        _button(
            obs, props, f"timer_{index}_remove", f"Remove {name}",
            lambda index=index: runtime.structural(lambda: controller.remove_timer(index)),
        )
    _button(obs, props, "timer_add", "Add timer", lambda: runtime.structural(controller.add_timer))

    _button(obs, props, "reset_all", "Clear teams and reset", runtime.reset_all)
    return props


# OBS script hooks ---------------------------------------------------------

_plugin: Optional[_PluginRuntime] = None
_settings: Optional[PluginSettings] = None


def script_description() -> str:
    return (
        f"<b>{PLUGIN_NAME}</b> {PLUGIN_VERSION}<br/>"
        "Live scoreboard overlay: team stats, single stats and timers driven by hotkeys "
        "and rendered by a browser source."
    )


def script_load(settings: Any) -> None:
    global _plugin, _settings
    if _plugin is not None:
        return
    LOGGER.info("Initialising %s from %s", PLUGIN_NAME, SCRIPT_DIR)
    try:
        _settings = PluginSettings(SCRIPT_DIR)
        _plugin = _PluginRuntime(SCRIPT_DIR, _settings)
        _plugin.start(settings)
    except Exception as exc:
        LOGGER.exception("Failed to start %s: %s", PLUGIN_NAME, exc)


def script_unload() -> None:
    global _plugin, _settings
    if _plugin:
        try:
            _plugin.stop()
        except Exception as exc:
            LOGGER.exception("Failed to stop %s cleanly: %s", PLUGIN_NAME, exc)
        finally:
            _plugin = None
    _settings = None


def script_update(settings: Any) -> None:
    if _plugin is None or not _plugin.running:
        return
    try:
        _plugin.handle_settings_update(settings)
    except Exception as exc:
        LOGGER.exception("Failed to apply script settings: %s", exc)


def script_save(settings: Any) -> None:
    if _plugin is None:
        return
    try:
        _plugin.capture_hotkeys()
    except Exception as exc:
        LOGGER.exception("Failed to save hotkeys: %s", exc)


def script_defaults(settings: Any) -> None:
    obs = load_obs_module()
    if obs is None:
        return
    obs.obs_data_set_default_bool(settings, "serve_overlay", True)
    obs.obs_data_set_default_bool(settings, "show_scoreboard", True)
    obs.obs_data_set_default_string(settings, "browser_source_name", DEFAULT_BROWSER_SOURCE_NAME)


def script_properties() -> Any:
    if _plugin is None or _plugin.bridge.module is None:
        return None
    try:
        _plugin.revert_pending_edits()
        return _build_properties(_plugin)
    except Exception as exc:
        LOGGER.exception("Failed to build script properties: %s", exc)
        return None
