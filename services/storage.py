"""Persistent key-value store and the repositories built on top of it.

Every collection lives under a single key of one SQLite table and is stored
as JSON, so each write is a read-modify-write of the whole collection. Writers
go through :meth:`KeyValueStore.update`, which holds an immediate transaction
for the duration of the read-modify-write so concurrent writers from other
contexts cannot drop each other's updates.
"""
from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Callable

from config import settings
from models import DEFAULT_APP_SETTINGS, AppSettings, LogEntry, Rule
from models.rule import utc_now

logger = logging.getLogger(__name__)

RULES_KEY = "rules"
LOGS_KEY = "logs"
SNAPSHOTS_KEY = "snapshots"
SETTINGS_KEY = "settings"
PENDING_SELECTION_KEY = "pendingSelection"
PENDING_WIZARD_STATE_KEY = "pendingWizardState"


class KeyValueStore:
    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or settings.DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(
            self.db_path, timeout=5, check_same_thread=False, isolation_level=None
        )

    def _initialize(self) -> None:
        with self._connect() as connection:
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    @staticmethod
    def _decode(key: str, raw: str | None, default: Any) -> Any:
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt value stored under %r", key)
            return default

    def get(self, key: str, default: Any = None) -> Any:
        with self._connect() as connection:
            row = connection.execute(
                "SELECT value FROM kv WHERE key = ?", (key,)
            ).fetchone()
        return self._decode(key, row[0] if row else None, default)

    def set(self, key: str, value: Any) -> None:
        with self._connect() as connection:
            connection.execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                (key, json.dumps(value)),
            )

    def remove(self, key: str) -> None:
        with self._connect() as connection:
            connection.execute("DELETE FROM kv WHERE key = ?", (key,))

    def pop(self, key: str, default: Any = None) -> Any:
        """Return the stored value and remove it in the same transaction."""
        connection = self._connect()
        try:
            connection.execute("BEGIN IMMEDIATE")
            row = connection.execute(
                "SELECT value FROM kv WHERE key = ?", (key,)
            ).fetchone()
            connection.execute("DELETE FROM kv WHERE key = ?", (key,))
            connection.execute("COMMIT")
        except Exception:
            connection.execute("ROLLBACK")
            raise
        finally:
            connection.close()
        return self._decode(key, row[0] if row else None, default)

    def update(self, key: str, mutate: Callable[[Any], Any], default: Callable[[], Any]) -> Any:
        """Apply ``mutate`` to the latest stored value and write the result back."""
        connection = self._connect()
        try:
            connection.execute("BEGIN IMMEDIATE")
            row = connection.execute(
                "SELECT value FROM kv WHERE key = ?", (key,)
            ).fetchone()
            current = self._decode(key, row[0] if row else None, default())
            updated = mutate(current)
            connection.execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                (key, json.dumps(updated)),
            )
            connection.execute("COMMIT")
        except Exception:
            connection.execute("ROLLBACK")
            raise
        finally:
            connection.close()
        return updated


class SnapshotRepository:
    """Last observed text per content-change rule."""

    def __init__(self, store: KeyValueStore | None = None) -> None:
        self.store = store or KeyValueStore()

    def get_snapshot(self, rule_id: str) -> str | None:
        snapshots = self.store.get(SNAPSHOTS_KEY, {})
        value = snapshots.get(rule_id) if isinstance(snapshots, dict) else None
        return value if isinstance(value, str) else None

    def save_snapshot(self, rule_id: str, value: str) -> None:
        def apply(snapshots: dict[str, str]) -> dict[str, str]:
            snapshots[rule_id] = value
            return snapshots

        self.store.update(SNAPSHOTS_KEY, apply, dict)

    def delete_snapshot(self, rule_id: str) -> None:
        def apply(snapshots: dict[str, str]) -> dict[str, str]:
            snapshots.pop(rule_id, None)
            return snapshots

        self.store.update(SNAPSHOTS_KEY, apply, dict)

    def prune(self, valid_rule_ids: set[str]) -> list[str]:
        """Drop snapshots whose rule no longer exists."""
        removed: list[str] = []

        def apply(snapshots: dict[str, str]) -> dict[str, str]:
            for rule_id in list(snapshots):
                if rule_id not in valid_rule_ids:
                    removed.append(rule_id)
                    del snapshots[rule_id]
            return snapshots

        self.store.update(SNAPSHOTS_KEY, apply, dict)
        return removed


class RuleRepository:
    def __init__(
        self,
        store: KeyValueStore | None = None,
        snapshots: SnapshotRepository | None = None,
    ) -> None:
        self.store = store or KeyValueStore()
        self.snapshots = snapshots or SnapshotRepository(self.store)

    def list_rules(self) -> list[Rule]:
        rules: list[Rule] = []
        for raw in self.store.get(RULES_KEY, []):
            try:
                rules.append(Rule.from_dict(raw))
            except (AttributeError, KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed rule entry: %r", raw)
        return rules

    def get_rule(self, rule_id: str) -> Rule | None:
        for rule in self.list_rules():
            if rule.id == rule_id:
                return rule
        return None

    def get_enabled_rules(self) -> list[Rule]:
        return [rule for rule in self.list_rules() if rule.enabled]

    def save_rule(self, rule: Rule) -> Rule:
        rule.validate()
        rule.updated_at = utc_now()
        serialized = rule.to_dict()

        def apply(rules: list[dict[str, Any]]) -> list[dict[str, Any]]:
            for index, existing in enumerate(rules):
                if isinstance(existing, dict) and existing.get("id") == rule.id:
                    rules[index] = serialized
                    break
            else:
                rules.append(serialized)
            return rules

        self.store.update(RULES_KEY, apply, list)
        return rule

    def toggle_rule(self, rule_id: str) -> Rule:
        toggled: list[Rule] = []

        def apply(rules: list[dict[str, Any]]) -> list[dict[str, Any]]:
            for index, existing in enumerate(rules):
                if isinstance(existing, dict) and existing.get("id") == rule_id:
                    rule = Rule.from_dict(existing)
                    rule.enabled = not rule.enabled
                    rule.updated_at = utc_now()
                    rules[index] = rule.to_dict()
                    toggled.append(rule)
                    break
            return rules

        self.store.update(RULES_KEY, apply, list)
        if not toggled:
            raise ValueError("Rule with the given ID was not found")
        return toggled[0]

    def delete_rule(self, rule_id: str) -> Rule:
        removed: list[dict[str, Any]] = []

        def apply(rules: list[dict[str, Any]]) -> list[dict[str, Any]]:
            kept = []
            for existing in rules:
                if isinstance(existing, dict) and existing.get("id") == rule_id:
                    removed.append(existing)
                else:
                    kept.append(existing)
            return kept

        self.store.update(RULES_KEY, apply, list)
        self.snapshots.delete_snapshot(rule_id)
        if not removed:
            raise ValueError("Rule with the given ID was not found")
        return Rule.from_dict(removed[0])


class AppSettingsRepository:
    def __init__(self, store: KeyValueStore | None = None) -> None:
        self.store = store or KeyValueStore()

    def get_settings(self) -> AppSettings:
        stored = self.store.get(SETTINGS_KEY, {})
        if not isinstance(stored, dict):
            return DEFAULT_APP_SETTINGS
        try:
            return DEFAULT_APP_SETTINGS.merged(stored)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid stored settings: %r", stored)
            return DEFAULT_APP_SETTINGS

    def save_settings(self, **overrides: Any) -> AppSettings:
        updated = self.get_settings().merged(overrides)
        if updated.max_log_entries < 1:
            raise ValueError("Maximum log entries must be at least 1")
        self.store.set(SETTINGS_KEY, updated.to_dict())
        return updated


class LogRepository:
    """Delivery log kept newest first and capped by ``max_log_entries``."""

    def __init__(
        self,
        store: KeyValueStore | None = None,
        app_settings: AppSettingsRepository | None = None,
    ) -> None:
        self.store = store or KeyValueStore()
        self.app_settings = app_settings or AppSettingsRepository(self.store)

    def add_log(self, entry: LogEntry) -> None:
        limit = self.app_settings.get_settings().max_log_entries

        def apply(logs: list[dict[str, Any]]) -> list[dict[str, Any]]:
            logs.insert(0, entry.to_dict())
            return logs[:limit]

        self.store.update(LOGS_KEY, apply, list)

    def get_logs(self, limit: int | None = None) -> list[LogEntry]:
        if limit is not None and limit <= 0:
            return []
        raw_logs = self.store.get(LOGS_KEY, [])
        if limit is not None:
            raw_logs = raw_logs[:limit]
        entries: list[LogEntry] = []
        for raw in raw_logs:
            try:
                entries.append(LogEntry.from_dict(raw))
            except (AttributeError, KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed log entry: %r", raw)
        return entries

    def clear_logs(self) -> None:
        self.store.set(LOGS_KEY, [])


class PendingStateRepository:
    """Resume slots that let short-lived surfaces survive being torn down."""

    def __init__(self, store: KeyValueStore | None = None) -> None:
        self.store = store or KeyValueStore()

    def save_selection(self, selection: dict[str, Any]) -> None:
        self.store.set(PENDING_SELECTION_KEY, selection)

    def take_selection(self) -> dict[str, Any] | None:
        return self.store.pop(PENDING_SELECTION_KEY)

    def save_wizard_state(self, state: dict[str, Any]) -> None:
        self.store.set(PENDING_WIZARD_STATE_KEY, state)

    def load_wizard_state(self) -> dict[str, Any] | None:
        return self.store.get(PENDING_WIZARD_STATE_KEY)

    def clear_wizard_state(self) -> None:
        self.store.remove(PENDING_WIZARD_STATE_KEY)
