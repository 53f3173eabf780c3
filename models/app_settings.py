"""User-level settings persisted in the shared store."""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Mapping

_STORE_KEYS = {
    "enable_notifications": "enableNotifications",
    "max_log_entries": "maxLogEntries",
}


@dataclass(frozen=True, slots=True)
class AppSettings:
    enable_notifications: bool = True
    max_log_entries: int = 500

    def merged(self, overrides: Mapping[str, Any]) -> AppSettings:
        """Return a copy with every known field of ``overrides`` applied.

        Keys may use either the attribute name or the camelCase store name;
        unknown keys are ignored.
        """
        changes: dict[str, Any] = {}
        for item in fields(self):
            store_key = _STORE_KEYS[item.name]
            if item.name in overrides:
                changes[item.name] = overrides[item.name]
            elif store_key in overrides:
                changes[item.name] = overrides[store_key]
        if "max_log_entries" in changes:
            changes["max_log_entries"] = int(changes["max_log_entries"])
        if "enable_notifications" in changes:
            changes["enable_notifications"] = bool(changes["enable_notifications"])
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {_STORE_KEYS[item.name]: getattr(self, item.name) for item in fields(self)}


DEFAULT_APP_SETTINGS = AppSettings()
