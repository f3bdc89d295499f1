"""Plugin settings persisted next to the OBS script."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

LOGGER = logging.getLogger("FlyScore.settings")

SETTINGS_FILE = "fly_score_settings.json"
DEFAULT_RESOURCES_SUBDIR = "fly-score-data"
DEFAULT_BROWSER_SOURCE_NAME = "Fly Scoreboard"
DEFAULT_BROWSER_WIDTH = 1920
DEFAULT_BROWSER_HEIGHT = 1080
DEFAULT_SERVER_HOST = "127.0.0.1"
BROWSER_DIMENSION_MIN = 16
BROWSER_DIMENSION_MAX = 8192
LOG_RETENTION_MAX = 20


def _int_setting(data: Dict[str, Any], key: str, default: int, low: int, high: int) -> int:
    try:
        value = int(data.get(key, default))
    except (TypeError, ValueError):
        value = default
    return max(low, min(value, high))


def _str_setting(data: Dict[str, Any], key: str, default: str) -> str:
    value = data.get(key)
    if value is None:
        return default
    text = str(value).strip()
    return text or default


@dataclass
class PluginSettings:
    """Simple JSON-backed settings store."""

    script_dir: Path
    resources_dir: str = ""
    browser_source_name: str = DEFAULT_BROWSER_SOURCE_NAME
    browser_width: int = DEFAULT_BROWSER_WIDTH
    browser_height: int = DEFAULT_BROWSER_HEIGHT
    serve_overlay: bool = True
    server_host: str = DEFAULT_SERVER_HOST
    file_logging: bool = False
    log_retention: int = 3

    def __post_init__(self) -> None:
        self.script_dir = Path(self.script_dir)
        self._path = self.script_dir / SETTINGS_FILE
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def resolved_resources_dir(self) -> Path:
        if self.resources_dir:
            return Path(self.resources_dir).expanduser()
        return self.script_dir / DEFAULT_RESOURCES_SUBDIR

    # Persistence ---------------------------------------------------------

    def _load(self) -> None:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            LOGGER.warning("Ignoring unreadable settings file %s: %s", self._path, exc)
            return
        if not isinstance(data, dict):
            return
        raw_dir = data.get("resources_dir")
        self.resources_dir = str(raw_dir).strip() if isinstance(raw_dir, str) else ""
        self.browser_source_name = _str_setting(data, "browser_source_name", DEFAULT_BROWSER_SOURCE_NAME)
        self.browser_width = _int_setting(
            data, "browser_width", DEFAULT_BROWSER_WIDTH, BROWSER_DIMENSION_MIN, BROWSER_DIMENSION_MAX
        )
        self.browser_height = _int_setting(
            data, "browser_height", DEFAULT_BROWSER_HEIGHT, BROWSER_DIMENSION_MIN, BROWSER_DIMENSION_MAX
        )
        self.serve_overlay = bool(data.get("serve_overlay", True))
        self.server_host = _str_setting(data, "server_host", DEFAULT_SERVER_HOST)
        self.file_logging = bool(data.get("file_logging", False))
        self.log_retention = _int_setting(data, "log_retention", 3, 1, LOG_RETENTION_MAX)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resources_dir": str(self.resources_dir or ""),
            "browser_source_name": str(self.browser_source_name or DEFAULT_BROWSER_SOURCE_NAME),
            "browser_width": int(self.browser_width),
            "browser_height": int(self.browser_height),
            "serve_overlay": bool(self.serve_overlay),
            "server_host": str(self.server_host or DEFAULT_SERVER_HOST),
            "file_logging": bool(self.file_logging),
            "log_retention": int(self.log_retention),
        }

    def save(self) -> bool:
        try:
            self.script_dir.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        except OSError as exc:
            LOGGER.warning("Failed to write settings file %s: %s", self._path, exc)
            return False
        return True
