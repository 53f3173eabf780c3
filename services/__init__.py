"""Services package initialization"""
from .browser import Browser, Tab
from .coordinator import Coordinator
from .dispatch import WebhookDispatcher
from .loader import PageLoader
from .relay import Relay
from .storage import (
    AppSettingsRepository,
    KeyValueStore,
    LogRepository,
    PendingStateRepository,
    RuleRepository,
    SnapshotRepository,
)
from .watcher import PageWatcher
from .webhook import WebhookSender

__all__ = [
    "AppSettingsRepository",
    "Browser",
    "Coordinator",
    "KeyValueStore",
    "LogRepository",
    "PageLoader",
    "PageWatcher",
    "PendingStateRepository",
    "Relay",
    "RuleRepository",
    "SnapshotRepository",
    "Tab",
    "WebhookDispatcher",
    "WebhookSender",
]
