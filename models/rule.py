"""Rule and destination models."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from urllib.parse import urlparse

MAX_RULE_NAME_LENGTH = 100


class TriggerKind(str, Enum):
    PAGE_VISIT = "page_visit"
    DOM_CHANGE = "dom_change"
    CLICK = "click"
    FORM_SUBMIT = "form_submit"
    PERIODIC_CHECK = "periodic_check"

    @property
    def requires_selector(self) -> bool:
        return self in ELEMENT_TRIGGERS


ELEMENT_TRIGGERS = frozenset(
    {TriggerKind.DOM_CHANGE, TriggerKind.CLICK, TriggerKind.FORM_SUBMIT}
)


class PayloadFormat(str, Enum):
    JSON = "generic"
    TEXT = "text"


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True)
class Destination:
    """Webhook endpoint a rule delivers to."""

    url: str
    label: str = ""
    format: PayloadFormat = PayloadFormat.JSON
    headers: dict[str, str] = field(default_factory=dict)
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        if not isinstance(self.format, PayloadFormat):
            self.format = PayloadFormat(self.format)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.format.value,
            "url": self.url,
            "label": self.label,
        }
        if self.headers:
            data["headers"] = dict(self.headers)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Destination:
        return cls(
            id=str(data.get("id") or new_id()),
            url=str(data["url"]),
            label=str(data.get("label") or ""),
            format=PayloadFormat(data.get("type") or PayloadFormat.JSON.value),
            headers={str(k): str(v) for k, v in (data.get("headers") or {}).items()},
        )


@dataclass(slots=True)
class Rule:
    """A persisted binding between a page trigger and a webhook destination."""

    id: str
    name: str
    trigger: TriggerKind
    url_pattern: str
    destination: Destination
    enabled: bool = True
    selector: str | None = None
    interval_minutes: int | None = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if not isinstance(self.trigger, TriggerKind):
            self.trigger = TriggerKind(self.trigger)

    @classmethod
    def create(
        cls,
        name: str,
        trigger: TriggerKind | str,
        url_pattern: str,
        destination: Destination,
        selector: str | None = None,
        interval_minutes: int | None = None,
        enabled: bool = True,
    ) -> Rule:
        timestamp = utc_now()
        rule = cls(
            id=new_id(),
            name=name.strip(),
            trigger=TriggerKind(trigger),
            url_pattern=url_pattern.strip(),
            destination=destination,
            enabled=enabled,
            selector=selector.strip() if selector else None,
            interval_minutes=interval_minutes,
            created_at=timestamp,
            updated_at=timestamp,
        )
        rule.validate()
        return rule

    def validate(self) -> None:
        """Raise ValueError when the rule breaks a structural invariant."""
        if not self.name.strip():
            raise ValueError("Rule name is required")
        if len(self.name) > MAX_RULE_NAME_LENGTH:
            raise ValueError(
                f"Rule name must be {MAX_RULE_NAME_LENGTH} characters or less"
            )
        if not self.url_pattern.strip():
            raise ValueError("URL pattern is required")

        if self.trigger.requires_selector:
            if not self.selector or not self.selector.strip():
                raise ValueError("CSS selector is required")
        elif self.selector:
            raise ValueError(f"Trigger {self.trigger.value} does not take a selector")

        if self.trigger is TriggerKind.PERIODIC_CHECK:
            if not isinstance(self.interval_minutes, int) or self.interval_minutes <= 0:
                raise ValueError("Check interval must be a positive number of minutes")
        elif self.interval_minutes is not None:
            raise ValueError(f"Trigger {self.trigger.value} does not take an interval")

        validate_webhook_url(self.destination.url)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "enabled": self.enabled,
            "trigger": self.trigger.value,
            "urlPattern": self.url_pattern,
            "destination": self.destination.to_dict(),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.selector is not None:
            data["selector"] = self.selector
        if self.interval_minutes is not None:
            data["intervalMinutes"] = self.interval_minutes
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Rule:
        interval = data.get("intervalMinutes")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            enabled=bool(data.get("enabled", True)),
            trigger=TriggerKind(data["trigger"]),
            url_pattern=str(data.get("urlPattern") or ""),
            selector=data.get("selector") or None,
            interval_minutes=int(interval) if interval is not None else None,
            destination=Destination.from_dict(data["destination"]),
            created_at=str(data.get("createdAt") or utc_now()),
            updated_at=str(data.get("updatedAt") or utc_now()),
        )


def validate_webhook_url(url: str) -> None:
    if not url or not url.strip():
        raise ValueError("Webhook URL is required")
    parsed = urlparse(url.strip())
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Must be a valid URL (http:// or https://)")
