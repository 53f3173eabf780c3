"""Models package initialization"""
from .app_settings import DEFAULT_APP_SETTINGS, AppSettings
from .log_entry import STATUS_FAILURE, STATUS_SUCCESS, DeliveryResult, LogEntry
from .message import Message, MessageType
from .rule import Destination, PayloadFormat, Rule, TriggerKind

__all__ = [
    "AppSettings",
    "DEFAULT_APP_SETTINGS",
    "DeliveryResult",
    "Destination",
    "LogEntry",
    "Message",
    "MessageType",
    "PayloadFormat",
    "Rule",
    "STATUS_FAILURE",
    "STATUS_SUCCESS",
    "TriggerKind",
]
