"""Thin, failure-tolerant wrapper over the OBS ``obspython`` scripting module.

Every method returns ``False``/``None``/an empty list when OBS is unavailable or a
call fails, so the core never has to guard host calls itself.
"""
from __future__ import annotations

import importlib
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

LOGGER = logging.getLogger("FlyScore.host")

BROWSER_SOURCE_ID = "browser_source"
REFRESH_PROPERTY = "refreshnocache"
SIGNAL_SOURCE_CREATE = "source_create"
SIGNAL_SOURCE_DESTROY = "source_destroy"
NEW_SOURCE_POSITION = (40.0, 40.0)


def load_obs_module() -> Optional[Any]:
    """Import ``obspython`` lazily; returns ``None`` when not running inside OBS."""
    try:
        return importlib.import_module("obspython")
    except ImportError:
        return None


class ObsHostBridge:
    def __init__(self, obs: Optional[Any] = None) -> None:
        self._obs = obs if obs is not None else load_obs_module()
        self._signal_callbacks: List[Tuple[str, Callable[[Any], None]]] = []
        self._hotkeys: Dict[str, Any] = {}
        self._timers: List[Callable[[], None]] = []

    @property
    def available(self) -> bool:
        return self._obs is not None

    @property
    def module(self) -> Optional[Any]:
        return self._obs

    def log_sink(self) -> Optional[Callable[[int, str], None]]:
        if self._obs is None:
            return None
        return getattr(self._obs, "script_log", None)

    # Sources --------------------------------------------------------------

    def list_sources_by_type(self, type_id: str) -> List[str]:
        obs = self._obs
        if obs is None:
            return []
        names: List[str] = []
        sources = None
        try:
            sources = obs.obs_enum_sources()
            for source in sources or []:
                if obs.obs_source_get_unversioned_id(source) == type_id:
                    names.append(obs.obs_source_get_name(source))
        except Exception as exc:
            LOGGER.warning("Failed to enumerate sources: %s", exc)
            return []
        finally:
            if sources is not None:
                obs.source_list_release(sources)
        return sorted(names)

    def _browser_settings(self, target: str, width: int, height: int) -> Any:
        obs = self._obs
        settings = obs.obs_data_create()
        is_local = bool(target) and Path(target).exists()
        obs.obs_data_set_bool(settings, "is_local_file", is_local)
        if is_local:
            obs.obs_data_set_string(settings, "local_file", str(target))
        else:
            obs.obs_data_set_string(settings, "url", str(target))
        obs.obs_data_set_int(settings, "width", int(width))
        obs.obs_data_set_int(settings, "height", int(height))
        obs.obs_data_set_string(settings, "css", "")
        return settings

    def ensure_browser_source(self, target: str, name: str, width: int, height: int) -> bool:
        """Point ``name`` in the current scene at ``target``, creating the source if needed.

        ``target`` is used as a local file when it exists on disk, otherwise as a URL.
        """
        obs = self._obs
        if obs is None:
            LOGGER.warning("OBS is not available; cannot create browser source '%s'", name)
            return False
        scene_source = None
        settings = None
        try:
            scene_source = obs.obs_frontend_get_current_scene()
            scene = obs.obs_scene_from_source(scene_source) if scene_source is not None else None
            if scene is None:
                LOGGER.warning("No current scene; cannot place browser source '%s'", name)
                return False
            settings = self._browser_settings(target, width, height)
            item = obs.obs_scene_find_source(scene, name)
            if item is not None:
                obs.obs_source_update(obs.obs_sceneitem_get_source(item), settings)
                LOGGER.debug("Updated browser source '%s' -> %s", name, target)
            else:
                source = obs.obs_source_create(BROWSER_SOURCE_ID, name, settings, None)
                if source is None:
                    LOGGER.warning("OBS refused to create browser source '%s'", name)
                    return False
                try:
                    item = obs.obs_scene_add(scene, source)
                    if item is not None:
                        pos = obs.vec2()
                        pos.x, pos.y = NEW_SOURCE_POSITION
                        obs.obs_sceneitem_set_pos(item, pos)
                finally:
                    obs.obs_source_release(source)
                LOGGER.info("Created browser source '%s' -> %s", name, target)
        except Exception as exc:
            LOGGER.warning("Failed to ensure browser source '%s': %s", name, exc)
            return False
        finally:
            if settings is not None:
                obs.obs_data_release(settings)
            if scene_source is not None:
                obs.obs_source_release(scene_source)
        self.refresh_source(name)
        return True

    def refresh_source(self, name: str) -> bool:
        """Press the browser source's "refresh cache of current page" button."""
        obs = self._obs
        if obs is None:
            return False
        source = None
        props = None
        try:
            source = obs.obs_get_source_by_name(name)
            if source is None:
                return False
            props = obs.obs_source_properties(source)
            button = obs.obs_properties_get(props, REFRESH_PROPERTY) if props is not None else None
            if button is None:
                return False
            obs.obs_property_button_clicked(button, source)
        except Exception as exc:
            LOGGER.warning("Failed to refresh source '%s': %s", name, exc)
            return False
        finally:
            if props is not None:
                obs.obs_properties_destroy(props)
            if source is not None:
                obs.obs_source_release(source)
        return True

    # Signals --------------------------------------------------------------

    def connect_source_signals(self, on_change: Callable[[], None]) -> bool:
        """Call ``on_change`` (on an OBS thread) whenever a source is created or destroyed."""
        obs = self._obs
        if obs is None or self._signal_callbacks:
            return False

        def _handler(_calldata: Any) -> None:
            on_change()

        try:
            handler = obs.obs_get_signal_handler()
            for signal in (SIGNAL_SOURCE_CREATE, SIGNAL_SOURCE_DESTROY):
                obs.signal_handler_connect(handler, signal, _handler)
                self._signal_callbacks.append((signal, _handler))
        except Exception as exc:
            LOGGER.warning("Failed to connect source signals: %s", exc)
            self.disconnect_source_signals()
            return False
        return True

    def disconnect_source_signals(self) -> None:
        obs = self._obs
        callbacks, self._signal_callbacks = self._signal_callbacks, []
        if obs is None or not callbacks:
            return
        try:
            handler = obs.obs_get_signal_handler()
            for signal, callback in callbacks:
                obs.signal_handler_disconnect(handler, signal, callback)
        except Exception as exc:
            LOGGER.warning("Failed to disconnect source signals: %s", exc)

    # Hotkeys --------------------------------------------------------------

    @property
    def registered_hotkeys(self) -> List[str]:
        return list(self._hotkeys)

    def register_hotkey(self, action: str, description: str, callback: Callable[[bool], None]) -> bool:
        obs = self._obs
        if obs is None:
            return False
        self.unregister_hotkey(action)
        try:
            hotkey_id = obs.obs_hotkey_register_frontend(f"fly_score.{action}", description, callback)
        except Exception as exc:
            LOGGER.warning("Failed to register hotkey %s: %s", action, exc)
            return False
        self._hotkeys[action] = hotkey_id
        return True

    def unregister_hotkey(self, action: str) -> bool:
        hotkey_id = self._hotkeys.pop(action, None)
        if hotkey_id is None or self._obs is None:
            return False
        try:
            self._obs.obs_hotkey_unregister(hotkey_id)
        except Exception as exc:
            LOGGER.warning("Failed to unregister hotkey %s: %s", action, exc)
            return False
        return True

    def unregister_all_hotkeys(self) -> None:
        for action in list(self._hotkeys):
            self.unregister_hotkey(action)

    def save_hotkey(self, action: str) -> Optional[str]:
        """Return the key combination OBS holds for ``action`` as a JSON sequence.

        An unbound hotkey yields ``""``; ``None`` means the host could not be asked.
        """
        obs = self._obs
        hotkey_id = self._hotkeys.get(action)
        if obs is None or hotkey_id is None:
            return None
        array = None
        try:
            array = obs.obs_hotkey_save(hotkey_id)
            combos = []
            for index in range(obs.obs_data_array_count(array) if array is not None else 0):
                item = obs.obs_data_array_item(array, index)
                try:
                    combos.append(json.loads(obs.obs_data_get_json(item)))
                finally:
                    obs.obs_data_release(item)
        except Exception as exc:
            LOGGER.warning("Failed to save hotkey %s: %s", action, exc)
            return None
        finally:
            if array is not None:
                obs.obs_data_array_release(array)
        return json.dumps(combos, sort_keys=True) if combos else ""

    def load_hotkey(self, action: str, sequence: Optional[str]) -> bool:
        obs = self._obs
        hotkey_id = self._hotkeys.get(action)
        if obs is None or hotkey_id is None or not sequence:
            return False
        try:
            combos = json.loads(sequence)
        except ValueError:
            LOGGER.debug("Ignoring unreadable key sequence for %s", action)
            return False
        if not isinstance(combos, list):
            return False
        array = None
        try:
            array = obs.obs_data_array_create()
            for combo in combos:
                item = obs.obs_data_create_from_json(json.dumps(combo))
                obs.obs_data_array_push_back(array, item)
                obs.obs_data_release(item)
            obs.obs_hotkey_load(hotkey_id, array)
        except Exception as exc:
            LOGGER.warning("Failed to load hotkey %s: %s", action, exc)
            return False
        finally:
            if array is not None:
                obs.obs_data_array_release(array)
        return True

    # Script settings ------------------------------------------------------

    def read_values(self, settings: Any, schema: Mapping[str, type]) -> Dict[str, Any]:
        """Read typed values (``bool``, ``int`` or ``str``) out of the script settings."""
        obs = self._obs
        if obs is None or settings is None:
            return {}
        getters = {bool: obs.obs_data_get_bool, int: obs.obs_data_get_int, str: obs.obs_data_get_string}
        values: Dict[str, Any] = {}
        for key, kind in schema.items():
            getter = getters.get(kind)
            if getter is None:
                continue
            try:
                values[key] = getter(settings, key)
            except Exception as exc:
                LOGGER.debug("Failed to read setting %s: %s", key, exc)
        return values

    def write_values(self, settings: Any, values: Mapping[str, Any]) -> int:
        obs = self._obs
        if obs is None or settings is None:
            return 0
        written = 0
        for key, value in values.items():
            try:
                if isinstance(value, bool):
                    obs.obs_data_set_bool(settings, key, value)
                elif isinstance(value, int):
                    obs.obs_data_set_int(settings, key, value)
                else:
                    obs.obs_data_set_string(settings, key, str(value))
            except Exception as exc:
                LOGGER.debug("Failed to write setting %s: %s", key, exc)
                continue
            written += 1
        return written

    # Timers ---------------------------------------------------------------

    def add_timer(self, callback: Callable[[], None], interval_ms: int) -> bool:
        if self._obs is None:
            return False
        try:
            self._obs.timer_add(callback, int(interval_ms))
        except Exception as exc:
            LOGGER.warning("Failed to add host timer: %s", exc)
            return False
        self._timers.append(callback)
        return True

    def remove_timer(self, callback: Callable[[], None]) -> bool:
        if self._obs is None or callback not in self._timers:
            return False
        self._timers.remove(callback)
        try:
            self._obs.timer_remove(callback)
        except Exception as exc:
            LOGGER.warning("Failed to remove host timer: %s", exc)
            return False
        return True

    def remove_all_timers(self) -> None:
        for callback in list(self._timers):
            self.remove_timer(callback)
