"""Interactive element picker injected into a tab."""
from __future__ import annotations

import logging

from models import Message, MessageType
from services.page import Event, Page
from services.relay import COORDINATOR, Relay
from services.selector import generate_selector

logger = logging.getLogger(__name__)

TEXT_PREVIEW_LENGTH = 200


class ElementPicker:
    """Turns the next click on the page into an ``ELEMENT_SELECTED`` message."""

    def __init__(self, page: Page, relay: Relay, origin: str) -> None:
        self.page = page
        self.relay = relay
        self.origin = origin
        self.active = False

    def activate(self) -> None:
        if self.active:
            return
        self.active = True
        self.page.add_event_listener(self.page.document, "click", self._on_click, capture=True)

    def deactivate(self) -> None:
        if not self.active:
            return
        self.active = False
        self.page.remove_event_listener(self.page.document, "click", self._on_click, capture=True)

    def _on_click(self, event: Event) -> None:
        event.prevent_default()
        event.stop_propagation()

        selector = generate_selector(event.target)
        text_preview = self.page.text_of(event.target).strip()[:TEXT_PREVIEW_LENGTH]
        logger.info("Picked %s on %s", selector, self.page.url)
        self.relay.post(
            Message(
                MessageType.ELEMENT_SELECTED,
                {"selector": selector, "textPreview": text_preview, "url": self.page.url},
            ),
            origin=self.origin,
            target=COORDINATOR,
        )
        self.deactivate()
