"""Delivery log records."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .rule import new_id, utc_now

STATUS_SUCCESS = "success"
STATUS_FAILURE = "failure"


@dataclass(slots=True)
class DeliveryResult:
    """Outcome of a single dispatch attempt."""

    success: bool
    status_code: int | None = None
    error: str | None = None
    skipped: bool = False

    @classmethod
    def skip(cls) -> DeliveryResult:
        return cls(success=False, skipped=True)

    def to_response(self) -> dict[str, Any]:
        if self.skipped:
            return {"skipped": True}
        return {"success": self.success}


@dataclass(slots=True)
class LogEntry:
    """Append-only audit record of one webhook delivery."""

    rule_id: str
    rule_name: str
    event: str
    status: str
    destination_url: str
    status_code: int | None = None
    payload: dict[str, Any] | None = None
    error: str | None = None
    timestamp: str = field(default_factory=utc_now)
    id: str = field(default_factory=new_id)

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "ruleId": self.rule_id,
            "ruleName": self.rule_name,
            "event": self.event,
            "status": self.status,
            "destinationUrl": self.destination_url,
            "timestamp": self.timestamp,
        }
        if self.status_code is not None:
            data["statusCode"] = self.status_code
        if self.payload is not None:
            data["payload"] = self.payload
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogEntry:
        status_code = data.get("statusCode")
        return cls(
            id=str(data["id"]),
            rule_id=str(data.get("ruleId") or ""),
            rule_name=str(data.get("ruleName") or ""),
            event=str(data.get("event") or ""),
            status=str(data.get("status") or STATUS_FAILURE),
            destination_url=str(data.get("destinationUrl") or ""),
            status_code=int(status_code) if status_code is not None else None,
            payload=data.get("payload"),
            error=data.get("error"),
            timestamp=str(data.get("timestamp") or utc_now()),
        )
