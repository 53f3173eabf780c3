"""Relay message envelope."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MessageType(str, Enum):
    ELEMENT_SELECTED = "ELEMENT_SELECTED"
    DOM_CHANGED = "DOM_CHANGED"
    FORM_SUBMITTED = "FORM_SUBMITTED"
    CLICK_EVENT = "CLICK_EVENT"
    PAGE_VISITED = "PAGE_VISITED"
    INJECT_SELECTOR = "INJECT_SELECTOR"
    ACTIVATE_SELECTOR = "ACTIVATE_SELECTOR"
    DEACTIVATE_SELECTOR = "DEACTIVATE_SELECTOR"


@dataclass(slots=True)
class Message:
    type: MessageType
    payload: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.type, MessageType):
            try:
                self.type = MessageType(self.type)
            except ValueError as exc:
                raise ValueError(f"Unknown message type: {self.type}") from exc

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "payload": dict(self.payload)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        return cls(type=data.get("type", ""), payload=dict(data.get("payload") or {}))
