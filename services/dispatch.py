"""Dispatch engine: detected event + rule -> webhook delivery + log entry."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from models import STATUS_FAILURE, STATUS_SUCCESS, DeliveryResult, LogEntry, Rule
from services.storage import AppSettingsRepository, LogRepository, RuleRepository
from services.webhook import WebhookSender, build_payload

logger = logging.getLogger(__name__)

FailureNotifier = Callable[[Rule, LogEntry], Awaitable[None]]


class WebhookDispatcher:
    def __init__(
        self,
        rules: RuleRepository,
        logs: LogRepository,
        app_settings: AppSettingsRepository,
        sender: WebhookSender | None = None,
        notifier: FailureNotifier | None = None,
    ) -> None:
        self.rules = rules
        self.logs = logs
        self.app_settings = app_settings
        self.sender = sender or WebhookSender()
        self.notifier = notifier

    async def dispatch(self, rule: Rule, event: str, change: dict[str, Any]) -> DeliveryResult:
        current = self.rules.get_rule(rule.id)
        if current is None or not current.enabled:
            logger.info("Skipping %s for rule %s: rule missing or disabled", event, rule.id)
            return DeliveryResult.skip()

        payload = build_payload(current, event, change)
        try:
            result = await self.sender.send(current.destination, payload)
        except Exception as exc:
            logger.exception("Sender failed on %s for rule %s", event, current.id)
            result = DeliveryResult(success=False, error=str(exc) or exc.__class__.__name__)

        entry = LogEntry(
            rule_id=current.id,
            rule_name=current.name,
            event=event,
            status=STATUS_SUCCESS if result.success else STATUS_FAILURE,
            status_code=result.status_code,
            destination_url=current.destination.url,
            payload=payload,
            error=result.error,
        )
        self.logs.add_log(entry)

        if result.success:
            logger.info("Delivered %s for rule %s (%s)", event, current.name, result.status_code)
        else:
            logger.warning("Delivery of %s for rule %s failed: %s", event, current.name, result.error)
            await self._notify_failure(current, entry)
        return result

    async def _notify_failure(self, rule: Rule, entry: LogEntry) -> None:
        if self.notifier is None or not self.app_settings.get_settings().enable_notifications:
            return
        try:
            await self.notifier(rule, entry)
        except Exception:
            logger.exception("Failed to notify operators about rule %s", rule.id)
