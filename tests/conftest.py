"""Pytest configuration and fixtures."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import settings
from models import DeliveryResult, Destination, Message, PayloadFormat, Rule, TriggerKind
from services.browser import Browser
from services.coordinator import Coordinator
from services.dispatch import WebhookDispatcher
from services.relay import COORDINATOR, Relay
from services.runtime import configure_scheduler
from services.storage import (
    AppSettingsRepository,
    KeyValueStore,
    LogRepository,
    PendingStateRepository,
    RuleRepository,
    SnapshotRepository,
)


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch) -> None:
    """Set up test environment variables"""
    monkeypatch.setenv("BOT_TOKEN", "")
    monkeypatch.setenv("ADMIN_CHAT_IDS", "123456789,987654321")
    monkeypatch.setenv("WATCH_URLS", "https://shop.example.com/item/1,https://shop.example.com/item/2")
    monkeypatch.setenv("PAGE_RELOAD_MINUTES", "0")
    monkeypatch.setenv("REQUEST_DELAY_SECONDS", "0")
    monkeypatch.setenv("WEBHOOK_TIMEOUT", "5")
    settings.reload()


@pytest.fixture
def temp_db(tmp_path, monkeypatch) -> Path:
    db_path = tmp_path / "pagehook.db"
    monkeypatch.setenv("DB_PATH", str(db_path))
    settings.reload()
    return db_path


@pytest.fixture
def store(temp_db) -> KeyValueStore:
    return KeyValueStore(temp_db)


@pytest.fixture
def snapshots(store) -> SnapshotRepository:
    return SnapshotRepository(store)


@pytest.fixture
def rules(store, snapshots) -> RuleRepository:
    return RuleRepository(store, snapshots)


@pytest.fixture
def app_settings(store) -> AppSettingsRepository:
    return AppSettingsRepository(store)


@pytest.fixture
def logs(store, app_settings) -> LogRepository:
    return LogRepository(store, app_settings)


@pytest.fixture
def pending(store) -> PendingStateRepository:
    return PendingStateRepository(store)


@pytest.fixture
def rule_factory() -> Callable[..., Rule]:
    def make(
        trigger: TriggerKind = TriggerKind.DOM_CHANGE,
        selector: str | None = "#price",
        url_pattern: str = "https://shop.example.com/*",
        destination_url: str = "https://hooks.example.com/incoming",
        payload_format: PayloadFormat = PayloadFormat.JSON,
        interval_minutes: int | None = None,
        enabled: bool = True,
        name: str = "Price watch",
        headers: dict[str, str] | None = None,
    ) -> Rule:
        if not trigger.requires_selector:
            selector = None
        if trigger is TriggerKind.PERIODIC_CHECK and interval_minutes is None:
            interval_minutes = 5
        return Rule.create(
            name=name,
            trigger=trigger,
            url_pattern=url_pattern,
            destination=Destination(
                url=destination_url,
                label="Test hook",
                format=payload_format,
                headers=headers or {},
            ),
            selector=selector,
            interval_minutes=interval_minutes,
            enabled=enabled,
        )

    return make


class RecordingEndpoint:
    """Relay endpoint that records every message it receives."""

    def __init__(self, response: dict[str, Any] | None = None) -> None:
        self.messages: list[tuple[Message, str]] = []
        self.response = response or {"success": True}

    async def __call__(self, message: Message, origin: str) -> dict[str, Any]:
        self.messages.append((message, origin))
        return self.response

    def of_type(self, message_type) -> list[Message]:
        return [message for message, _ in self.messages if message.type is message_type]


@pytest_asyncio.fixture
async def relay():
    relay = Relay()
    yield relay
    await relay.close()


@pytest.fixture
def coordinator_endpoint(relay) -> RecordingEndpoint:
    endpoint = RecordingEndpoint()
    relay.register(COORDINATOR, endpoint)
    return endpoint


@pytest.fixture
def sample_html() -> str:
    return """
    <html>
        <body>
            <header><h1 class="title">Vintage lamp</h1></header>
            <main>
                <span id="price">$10</span>
                <button data-testid="buy-button">Buy</button>
                <form id="subscribe">
                    <input type="email" name="email" value="ann@example.com" />
                    <input type="checkbox" name="weekly" value="yes" checked />
                    <input type="checkbox" name="daily" value="yes" />
                    <select name="plan">
                        <option value="free">Free</option>
                        <option value="pro" selected>Pro</option>
                    </select>
                    <textarea name="note">Hello</textarea>
                    <button type="submit">Subscribe</button>
                </form>
            </main>
        </body>
    </html>
    """


class WebhookReceiver:
    """Local HTTP endpoint answering with the status code found in the path."""

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        app = web.Application()
        app.router.add_post("/hook/{status}", self._handle)
        self.server = TestServer(app)

    async def _handle(self, request: web.Request) -> web.Response:
        self.requests.append(
            {
                "headers": dict(request.headers),
                "json": await request.json(),
            }
        )
        return web.Response(status=int(request.match_info["status"]))

    def url(self, status: int = 200) -> str:
        return str(self.server.make_url(f"/hook/{status}"))


@pytest_asyncio.fixture
async def webhook_receiver():
    receiver = WebhookReceiver()
    await receiver.server.start_server()
    yield receiver
    await receiver.server.close()


@pytest_asyncio.fixture
async def scheduler():
    """Paused scheduler registered for the duration of a test."""
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.start(paused=True)
    configure_scheduler(scheduler)
    yield scheduler
    configure_scheduler(None)
    scheduler.shutdown(wait=False)


@pytest.fixture
def sender() -> AsyncMock:
    """Webhook sender whose deliveries succeed without touching the network."""
    mock = AsyncMock()
    mock.send.return_value = DeliveryResult(success=True, status_code=200)
    return mock


@pytest.fixture
def page_loader(sample_html) -> MagicMock:
    loader = MagicMock()
    loader.fetch = AsyncMock(return_value=sample_html)
    loader.close = AsyncMock()
    loader.last_error = None
    return loader


@pytest.fixture
def browser(relay, rules, snapshots, page_loader) -> Browser:
    return Browser(relay, rules, snapshots, loader=page_loader)


@pytest.fixture
def coordinator(relay, rules, snapshots, logs, app_settings, pending, sender, browser) -> Coordinator:
    dispatcher = WebhookDispatcher(rules, logs, app_settings, sender=sender)
    return Coordinator(relay, rules, snapshots, logs, pending, dispatcher, browser=browser)
