from __future__ import annotations

from dataclasses import dataclass
import json
import os
from pathlib import Path
import sys

APP_NAME = "Memoir"
SETTINGS_FILENAME = "settings.json"


def get_config_dir(app_name: str = APP_NAME) -> Path:
    home = Path.home()
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA", home / "AppData" / "Roaming"))
        return base / app_name
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / app_name
    base = Path(os.environ.get("XDG_CONFIG_HOME", home / ".config"))
    return base / app_name.lower()


def get_data_dir(app_name: str = APP_NAME) -> Path:
    home = Path.home()
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA", home / "AppData" / "Roaming"))
        return base / app_name
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / app_name
    base = Path(os.environ.get("XDG_DATA_HOME", home / ".local" / "share"))
    return base / app_name.lower()


def _int_setting(data: dict, key: str, minimum: int, maximum: int | None = None) -> int | None:
    value = data.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        return None
    if value < minimum or (maximum is not None and value > maximum):
        return None
    return value


@dataclass(slots=True)
class AppSettings:
    autosave_debounce_ms: int = 2000
    suppression_ms: int = 500
    close_timeout_ms: int = 5000
    flush_timeout_ms: int = 5000
    saved_hold_ms: int = 3000
    store_directory: str = ""

    @classmethod
    def load(cls) -> "AppSettings":
        path = get_config_dir() / SETTINGS_FILENAME
        if not path.exists():
            return cls()

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return cls()
        if not isinstance(data, dict):
            return cls()

        settings = cls()

        debounce = _int_setting(data, "autosave_debounce_ms", 100)
        if debounce is not None:
            settings.autosave_debounce_ms = debounce

        suppression = _int_setting(data, "suppression_ms", 0, 10000)
        if suppression is not None:
            settings.suppression_ms = suppression

        close_timeout = _int_setting(data, "close_timeout_ms", 0, 60000)
        if close_timeout is not None:
            settings.close_timeout_ms = close_timeout

        flush_timeout = _int_setting(data, "flush_timeout_ms", 0, 60000)
        if flush_timeout is not None:
            settings.flush_timeout_ms = flush_timeout

        saved_hold = _int_setting(data, "saved_hold_ms", 0)
        if saved_hold is not None:
            settings.saved_hold_ms = saved_hold

        if isinstance(data.get("store_directory"), str):
            settings.store_directory = data["store_directory"]

        return settings

    def save(self) -> None:
        target_dir = get_config_dir()
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / SETTINGS_FILENAME

        payload = {
            "autosave_debounce_ms": self.autosave_debounce_ms,
            "suppression_ms": self.suppression_ms,
            "close_timeout_ms": self.close_timeout_ms,
            "flush_timeout_ms": self.flush_timeout_ms,
            "saved_hold_ms": self.saved_hold_ms,
            "store_directory": self.store_directory,
        }
        path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    def resolve_store_directory(self) -> Path:
        if self.store_directory:
            return Path(self.store_directory).expanduser()
        return get_data_dir() / "store"
