"""Webhook payload construction and delivery."""
from __future__ import annotations

import asyncio
import logging
import re
from datetime import UTC, datetime
from typing import Any, Optional

import aiohttp

from config import ENGINE_VERSION, PLATFORM_NAME, settings
from models import DeliveryResult, Destination, PayloadFormat, Rule

logger = logging.getLogger(__name__)

MAX_VALUE_LENGTH = 200
ELLIPSIS = "…"
POWERED_BY = "PageHook"


def build_payload(
    rule: Rule,
    event: str,
    change: dict[str, Any],
    timestamp: datetime | None = None,
) -> dict[str, Any]:
    source: dict[str, Any] = {"url": rule.url_pattern}
    if rule.selector is not None:
        source["selector"] = rule.selector
    return {
        "event": event,
        "rule": {"id": rule.id, "name": rule.name},
        "source": source,
        "change": {key: value for key, value in change.items() if value is not None},
        "timestamp": (timestamp or datetime.now(UTC)).isoformat(),
        "meta": {"platform": PLATFORM_NAME, "engineVersion": ENGINE_VERSION},
        "powered_by": POWERED_BY,
    }


def _sanitize(value: str) -> str:
    collapsed = re.sub(r"\s+", " ", value).strip()
    if len(collapsed) <= MAX_VALUE_LENGTH:
        return collapsed
    return collapsed[:MAX_VALUE_LENGTH] + ELLIPSIS


def format_message(payload: dict[str, Any]) -> str:
    """Short human summary for chat-style receivers."""
    change = payload.get("change", {})
    lines = [f"[{payload['rule']['name']}] {payload['event']}"]
    if change.get("current"):
        lines.append(_sanitize(change["current"]))
    if change.get("previous"):
        lines.append(f"Previous: {_sanitize(change['previous'])}")
    lines.append(f"Source: {payload['source']['url']}")
    return "\n".join(lines)


def build_body(destination: Destination, payload: dict[str, Any]) -> dict[str, Any]:
    if destination.format is PayloadFormat.TEXT:
        return {"text": format_message(payload)}
    return payload


class WebhookSender:
    """Posts payloads to destinations over a shared aiohttp session."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None) -> None:
        self.session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=settings.WEBHOOK_TIMEOUT)
            self.session = aiohttp.ClientSession(timeout=timeout)
        return self.session

    async def close(self) -> None:
        if self._owns_session and self.session is not None:
            await self.session.close()
            self.session = None

    async def send(self, destination: Destination, payload: dict[str, Any]) -> DeliveryResult:
        session = await self._get_session()
        headers = {"Content-Type": "application/json", **destination.headers}

        try:
            async with session.post(
                destination.url, json=build_body(destination, payload), headers=headers
            ) as response:
                if 200 <= response.status < 300:
                    return DeliveryResult(success=True, status_code=response.status)
                error = f"HTTP {response.status} {response.reason or ''}".rstrip()
                logger.warning("Webhook %s rejected delivery: %s", destination.url, error)
                return DeliveryResult(success=False, status_code=response.status, error=error)
        except asyncio.TimeoutError:
            logger.warning("Timeout delivering webhook to %s", destination.url)
            return DeliveryResult(success=False, error="Request timed out")
        except (aiohttp.ClientError, ValueError) as exc:
            logger.warning("Error delivering webhook to %s: %s", destination.url, exc)
            logger.debug("Webhook transport error details", exc_info=True)
            return DeliveryResult(success=False, error=str(exc) or "Unknown error")
