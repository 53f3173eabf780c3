"""Per-page-load watcher that turns page activity into detected events."""
from __future__ import annotations

import logging
from enum import Enum

from bs4 import Tag

from models import Message, MessageType, Rule, TriggerKind
from services.matcher import matches_url
from services.page import Event, MutationObserver, Page, collect_form_data
from services.relay import COORDINATOR, Relay
from services.storage import RuleRepository, SnapshotRepository

logger = logging.getLogger(__name__)


class WatcherState(str, Enum):
    IDLE = "idle"
    INSTALLING = "installing"
    OBSERVING = "observing"
    TORN_DOWN = "torn_down"


class PageWatcher:
    """Installs observers for every enabled rule whose scope covers the page.

    One instance lives exactly as long as one page load. The only state that
    outlives it is the snapshot store, which is what lets a fresh instance
    notice content that changed while nobody was watching.
    """

    def __init__(
        self,
        page: Page,
        relay: Relay,
        rules: RuleRepository,
        snapshots: SnapshotRepository,
        origin: str,
    ) -> None:
        self.page = page
        self.relay = relay
        self.rules = rules
        self.snapshots = snapshots
        self.origin = origin
        self.state = WatcherState.IDLE
        self._observers: dict[str, MutationObserver] = {}
        self._previous_values: dict[str, str] = {}
        self._listeners: dict[str, tuple[Tag, str, object]] = {}

    async def start_watching(self) -> None:
        if self.state is not WatcherState.IDLE:
            return
        self.state = WatcherState.INSTALLING

        for rule in self.rules.get_enabled_rules():
            if not matches_url(self.page.url, rule.url_pattern):
                continue
            try:
                self._install(rule)
            except Exception:
                logger.exception("Failed to install rule %s on %s", rule.id, self.page.url)

        self.state = WatcherState.OBSERVING
        logger.debug(
            "Watching %s: %d observers, %d listeners",
            self.page.url, len(self._observers), len(self._listeners),
        )

    def stop_watching(self) -> None:
        for observer in self._observers.values():
            observer.disconnect()
        self._observers.clear()
        self._previous_values.clear()
        for node, event_type, handler in self._listeners.values():
            self.page.remove_event_listener(node, event_type, handler)
        self._listeners.clear()
        self.state = WatcherState.TORN_DOWN

    def _install(self, rule: Rule) -> None:
        if rule.trigger is TriggerKind.DOM_CHANGE and rule.selector:
            self._observe_element(rule)
        elif rule.trigger is TriggerKind.FORM_SUBMIT and rule.selector:
            self._observe_form(rule)
        elif rule.trigger is TriggerKind.CLICK and rule.selector:
            self._observe_click(rule)
        elif rule.trigger is TriggerKind.PAGE_VISIT:
            self._emit(MessageType.PAGE_VISITED, {"ruleId": rule.id, "url": self.page.url})

    def _emit(self, message_type: MessageType, payload: dict) -> None:
        self.relay.post(Message(message_type, payload), origin=self.origin, target=COORDINATOR)

    def _emit_change(self, rule: Rule, previous: str, current: str) -> None:
        self._emit(
            MessageType.DOM_CHANGED,
            {
                "ruleId": rule.id,
                "selector": rule.selector,
                "previous": previous,
                "current": current,
                "url": self.page.url,
            },
        )

    def _observe_element(self, rule: Rule) -> None:
        element = self.page.query(rule.selector or "")
        if element is None:
            return

        current_text = self.page.text_of(element)
        saved_snapshot = self.snapshots.get_snapshot(rule.id)
        if saved_snapshot is not None and saved_snapshot != current_text:
            self._emit_change(rule, saved_snapshot, current_text)

        self.snapshots.save_snapshot(rule.id, current_text)
        self._previous_values[rule.id] = current_text

        def on_mutation(records) -> None:
            current = self.page.text_of(element)
            previous = self._previous_values.get(rule.id, "")
            if current == previous:
                return
            self._emit_change(rule, previous, current)
            self._previous_values[rule.id] = current
            self.snapshots.save_snapshot(rule.id, current)

        self._observers[rule.id] = self.page.observe(element, on_mutation)

    def _observe_form(self, rule: Rule) -> None:
        form = self.page.query(rule.selector or "")
        if form is None:
            return

        def on_submit(event: Event) -> None:
            self._emit(
                MessageType.FORM_SUBMITTED,
                {"ruleId": rule.id, "formData": collect_form_data(form), "url": self.page.url},
            )

        self.page.add_event_listener(form, "submit", on_submit)
        self._listeners[rule.id] = (form, "submit", on_submit)

    def _observe_click(self, rule: Rule) -> None:
        element = self.page.query(rule.selector or "")
        if element is None:
            return

        def on_click(event: Event) -> None:
            self._emit(
                MessageType.CLICK_EVENT,
                {"ruleId": rule.id, "selector": rule.selector, "url": self.page.url},
            )

        self.page.add_event_listener(element, "click", on_click)
        self._listeners[rule.id] = (element, "click", on_click)
