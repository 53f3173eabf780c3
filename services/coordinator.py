"""Coordinator: the single owner of rule writes and webhook dispatch."""
from __future__ import annotations

import json
import logging
from typing import Any

from models import DeliveryResult, LogEntry, Message, MessageType, Rule, TriggerKind
from services.browser import Browser
from services.dispatch import WebhookDispatcher
from services.matcher import is_injectable_url
from services.relay import COORDINATOR, Relay, Response
from services.runtime import sync_periodic_jobs
from services.storage import (
    LogRepository,
    PendingStateRepository,
    RuleRepository,
    SnapshotRepository,
)

logger = logging.getLogger(__name__)

RESTRICTED_PAGE_ERROR = "Cannot inject into this page. Navigate to a regular web page first."


class Coordinator:
    def __init__(
        self,
        relay: Relay,
        rules: RuleRepository,
        snapshots: SnapshotRepository,
        logs: LogRepository,
        pending: PendingStateRepository,
        dispatcher: WebhookDispatcher,
        browser: Browser | None = None,
    ) -> None:
        self.relay = relay
        self.rules = rules
        self.snapshots = snapshots
        self.logs = logs
        self.pending = pending
        self.dispatcher = dispatcher
        self.browser = browser
        relay.register(COORDINATOR, self.handle_message)

    async def startup(self) -> None:
        rules = self.rules.list_rules()
        removed = self.snapshots.prune({rule.id for rule in rules})
        if removed:
            logger.info("Dropped %d snapshots of deleted rules", len(removed))
        self.sync_schedule(rules)

    def sync_schedule(self, rules: list[Rule] | None = None) -> set[str]:
        return sync_periodic_jobs(
            rules if rules is not None else self.rules.list_rules(),
            self.run_periodic_check,
        )

    async def handle_message(self, message: Message, origin: str) -> Response:
        payload = message.payload
        if message.type is MessageType.ELEMENT_SELECTED:
            return self._element_selected(payload)
        if message.type is MessageType.DOM_CHANGED:
            return await self._dispatch_for(
                payload.get("ruleId"),
                TriggerKind.DOM_CHANGE,
                {"type": "mutation", "previous": payload.get("previous"), "current": payload.get("current")},
            )
        if message.type is MessageType.FORM_SUBMITTED:
            return await self._dispatch_for(
                payload.get("ruleId"),
                TriggerKind.FORM_SUBMIT,
                {"type": "submit", "current": json.dumps(payload.get("formData") or {})},
            )
        if message.type is MessageType.CLICK_EVENT:
            return await self._dispatch_for(
                payload.get("ruleId"),
                TriggerKind.CLICK,
                {"type": "click", "current": payload.get("selector")},
            )
        if message.type is MessageType.PAGE_VISITED:
            return await self._dispatch_for(
                payload.get("ruleId"),
                TriggerKind.PAGE_VISIT,
                {"type": "visit", "current": payload.get("url")},
            )
        if message.type is MessageType.INJECT_SELECTOR:
            return self._inject_selector(payload.get("tabId"))
        return {"error": f"Unknown message type: {message.type.value}"}

    def _element_selected(self, payload: dict[str, Any]) -> Response:
        self.pending.save_selection(
            {key: payload[key] for key in ("selector", "textPreview", "url") if key in payload}
        )
        return {"success": True}

    def _inject_selector(self, tab_id: Any) -> Response:
        tab = self.browser.get_tab(tab_id) if self.browser is not None else None
        if tab is None:
            return {"error": f"No tab with id {tab_id}"}
        if not is_injectable_url(tab.url) or tab.page is None:
            logger.info("Refusing to inject picker into %s", tab.url)
            return {"error": RESTRICTED_PAGE_ERROR}
        tab.inject_picker()
        return {"success": True}

    async def _dispatch_for(
        self, rule_id: str | None, event: TriggerKind, change: dict[str, Any]
    ) -> Response:
        rule = self.rules.get_rule(rule_id) if rule_id else None
        if rule is None or not rule.enabled:
            return DeliveryResult.skip().to_response()
        result = await self.dispatcher.dispatch(rule, event.value, change)
        return result.to_response()

    async def run_periodic_check(self, rule_id: str) -> Response:
        rule = self.rules.get_rule(rule_id)
        if rule is None or not rule.enabled:
            logger.info("Periodic check for %s skipped", rule_id)
            return DeliveryResult.skip().to_response()
        result = await self.dispatcher.dispatch(
            rule, TriggerKind.PERIODIC_CHECK.value, {"type": "scheduled"}
        )
        return result.to_response()

    # rule store writes are serialized through the coordinator

    def list_rules(self) -> list[Rule]:
        return self.rules.list_rules()

    def save_rule(self, rule: Rule) -> Rule:
        saved = self.rules.save_rule(rule)
        self.sync_schedule()
        return saved

    def toggle_rule(self, rule_id: str) -> Rule:
        rule = self.rules.toggle_rule(rule_id)
        self.sync_schedule()
        return rule

    def delete_rule(self, rule_id: str) -> Rule:
        rule = self.rules.delete_rule(rule_id)
        self.sync_schedule()
        return rule

    def recent_logs(self, limit: int = 10) -> list[LogEntry]:
        return self.logs.get_logs(limit=limit)

    def clear_logs(self) -> None:
        self.logs.clear_logs()
