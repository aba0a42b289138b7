"""
Scoped key-value persistence for operator preferences.
Reads and writes never raise; anything unreadable falls back to the default.
"""

import json
from pathlib import Path
from typing import Protocol

from chatlog_admin.utils.logger import get_logger

logger = get_logger(__name__)

VIEW_MODE_KEY = "chatLogs.viewMode"


def page_size_key(tier: str, view_mode: str) -> str:
    """Preference key for the page size of one (tier, view mode) context."""
    return f"chatLogs.pageSize.{tier}.{view_mode}"


class PreferenceStore(Protocol):
    def get(self, key: str, default: str | None = None) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class InMemoryPreferenceStore:
    """Preferences kept for the lifetime of the process."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._values.get(key, default)

    def set(self, key: str, value: str) -> None:
        self._values[key] = str(value)


class JsonFilePreferenceStore:
    """
    Preferences persisted as a flat JSON object on disk.
    A missing, corrupt or unwritable file degrades to defaults.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("preferences_unreadable", path=str(self.path), error=str(e))
            return {}

        if not isinstance(data, dict):
            logger.warning("preferences_unreadable", path=str(self.path), error="not an object")
            return {}
        return data

    def get(self, key: str, default: str | None = None) -> str | None:
        value = self._read().get(key)
        if value is None:
            return default
        return str(value)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = str(value)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
        except OSError as e:
            logger.warning("preferences_not_saved", path=str(self.path), key=key, error=str(e))
