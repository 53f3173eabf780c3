"""Tabs hosting page loads, their watchers and the element picker."""
from __future__ import annotations

import itertools
import logging

from models import Message, MessageType
from services.loader import PageLoader
from services.matcher import is_injectable_url
from services.page import Page
from services.picker import ElementPicker
from services.relay import Relay, Response, tab_context
from services.storage import RuleRepository, SnapshotRepository
from services.watcher import PageWatcher

logger = logging.getLogger(__name__)


class Tab:
    def __init__(self, tab_id: int, browser: "Browser") -> None:
        self.id = tab_id
        self.browser = browser
        self.context = tab_context(tab_id)
        self.url: str | None = None
        self.page: Page | None = None
        self.watcher: PageWatcher | None = None
        self.picker: ElementPicker | None = None
        browser.relay.register(self.context, self.handle_message)

    async def navigate(self, url: str) -> Page:
        if not is_injectable_url(url):
            logger.info("Tab %s opened restricted page %s; nothing is watched", self.id, url)
            self._teardown()
            self.url = url
            self.page = Page.from_html(url, "")
            return self.page

        html = await self.browser.loader.fetch(url)
        if html is None:
            logger.warning("Tab %s could not load %s: %s", self.id, url, self.browser.loader.last_error)
            self._teardown()
            self.url = url
            self.page = Page.from_html(url, "")
            return self.page
        return await self.load_html(url, html)

    async def load_html(self, url: str, html: str) -> Page:
        """Start a new page load from already fetched HTML."""
        self._teardown()
        self.url = url
        self.page = Page.from_html(url, html)
        self.watcher = PageWatcher(
            self.page,
            self.browser.relay,
            self.browser.rules,
            self.browser.snapshots,
            origin=self.context,
        )
        await self.watcher.start_watching()
        return self.page

    async def reload(self) -> Page | None:
        if self.url is None:
            return None
        return await self.navigate(self.url)

    def inject_picker(self) -> ElementPicker:
        if self.page is None:
            raise ValueError(f"Tab {self.id} has no page loaded")
        if self.picker is None:
            self.picker = ElementPicker(self.page, self.browser.relay, origin=self.context)
        return self.picker

    async def handle_message(self, message: Message, origin: str) -> Response:
        if message.type is MessageType.ACTIVATE_SELECTOR:
            if self.picker is None:
                return {"error": "Element picker is not injected in this tab"}
            self.picker.activate()
            return {"success": True}
        if message.type is MessageType.DEACTIVATE_SELECTOR:
            if self.picker is not None:
                self.picker.deactivate()
            return {"success": True}
        return {"error": f"Unknown message type: {message.type.value}"}

    def _teardown(self) -> None:
        if self.picker is not None:
            self.picker.deactivate()
            self.picker = None
        if self.watcher is not None:
            self.watcher.stop_watching()
            self.watcher = None

    def close(self) -> None:
        self._teardown()
        self.page = None
        self.browser.relay.unregister(self.context)


class Browser:
    def __init__(
        self,
        relay: Relay,
        rules: RuleRepository,
        snapshots: SnapshotRepository,
        loader: PageLoader | None = None,
    ) -> None:
        self.relay = relay
        self.rules = rules
        self.snapshots = snapshots
        self.loader = loader or PageLoader()
        self.tabs: dict[int, Tab] = {}
        self._ids = itertools.count(1)

    def new_tab(self) -> Tab:
        tab = Tab(next(self._ids), self)
        self.tabs[tab.id] = tab
        return tab

    async def open_tab(self, url: str) -> Tab:
        tab = self.new_tab()
        await tab.navigate(url)
        return tab

    def get_tab(self, tab_id: int) -> Tab | None:
        return self.tabs.get(tab_id)

    def close_tab(self, tab_id: int) -> None:
        tab = self.tabs.pop(tab_id, None)
        if tab is not None:
            tab.close()

    async def reload_all(self) -> None:
        for tab in list(self.tabs.values()):
            try:
                await tab.reload()
            except Exception:
                logger.exception("Reload failed for tab %s (%s)", tab.id, tab.url)

    async def close(self) -> None:
        for tab_id in list(self.tabs):
            self.close_tab(tab_id)
        await self.loader.close()
