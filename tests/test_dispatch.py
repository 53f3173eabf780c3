from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from models import DeliveryResult
from services.dispatch import WebhookDispatcher
from services.webhook import WebhookSender


@pytest.fixture
def notifier() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def dispatcher(rules, logs, app_settings, sender, notifier) -> WebhookDispatcher:
    return WebhookDispatcher(rules, logs, app_settings, sender=sender, notifier=notifier)


@pytest.mark.asyncio
async def test_successful_delivery_is_logged(dispatcher, rules, logs, sender, notifier, rule_factory):
    rule = rules.save_rule(rule_factory())
    change = {"type": "mutation", "previous": "$10", "current": "$12"}

    result = await dispatcher.dispatch(rule, "dom_change", change)

    assert result.success is True
    destination, payload = sender.send.await_args.args
    assert destination.url == "https://hooks.example.com/incoming"
    assert payload["change"] == change

    [entry] = logs.get_logs()
    assert entry.succeeded
    assert entry.rule_id == rule.id
    assert entry.rule_name == "Price watch"
    assert entry.event == "dom_change"
    assert entry.status_code == 200
    assert entry.payload == payload
    assert entry.error is None
    notifier.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_delivery_is_logged_and_reported(
    dispatcher, rules, logs, sender, notifier, rule_factory
):
    rule = rules.save_rule(rule_factory())
    sender.send.return_value = DeliveryResult(
        success=False, status_code=404, error="HTTP 404 Not Found"
    )

    result = await dispatcher.dispatch(rule, "click", {"type": "click", "current": "#buy"})

    assert result.success is False
    [entry] = logs.get_logs()
    assert entry.status == "failure"
    assert entry.to_dict()["statusCode"] == 404
    assert entry.error == "HTTP 404 Not Found"
    notifier.assert_awaited_once()
    notified_rule, notified_entry = notifier.await_args.args
    assert notified_rule.id == rule.id
    assert notified_entry.id == entry.id


@pytest.mark.asyncio
async def test_failure_notifications_respect_settings(
    dispatcher, rules, app_settings, sender, notifier, rule_factory
):
    rule = rules.save_rule(rule_factory())
    app_settings.save_settings(enable_notifications=False)
    sender.send.return_value = DeliveryResult(success=False, error="Request timed out")

    await dispatcher.dispatch(rule, "click", {"type": "click"})

    notifier.assert_not_awaited()


@pytest.mark.asyncio
async def test_notifier_errors_do_not_escape(dispatcher, rules, logs, sender, notifier, rule_factory):
    rule = rules.save_rule(rule_factory())
    sender.send.return_value = DeliveryResult(success=False, error="boom")
    notifier.side_effect = RuntimeError("telegram down")

    result = await dispatcher.dispatch(rule, "click", {"type": "click"})

    assert result.success is False
    assert len(logs.get_logs()) == 1


@pytest.mark.asyncio
async def test_disabled_rule_is_skipped(dispatcher, rules, logs, sender, rule_factory):
    rule = rules.save_rule(rule_factory())
    rules.toggle_rule(rule.id)

    result = await dispatcher.dispatch(rule, "dom_change", {"type": "mutation"})

    assert result.skipped is True
    assert result.to_response() == {"skipped": True}
    sender.send.assert_not_awaited()
    assert logs.get_logs() == []


@pytest.mark.asyncio
async def test_deleted_rule_is_skipped(dispatcher, rules, logs, sender, rule_factory):
    rule = rules.save_rule(rule_factory())
    rules.delete_rule(rule.id)

    result = await dispatcher.dispatch(rule, "dom_change", {"type": "mutation"})

    assert result.skipped is True
    sender.send.assert_not_awaited()
    assert logs.get_logs() == []


@pytest.mark.asyncio
async def test_dispatch_uses_latest_stored_rule(dispatcher, rules, sender, rule_factory):
    rule = rules.save_rule(rule_factory())
    stale = rules.get_rule(rule.id)
    rule.destination.url = "https://hooks.example.com/updated"
    rules.save_rule(rule)

    await dispatcher.dispatch(stale, "dom_change", {"type": "mutation"})

    destination, _ = sender.send.await_args.args
    assert destination.url == "https://hooks.example.com/updated"


@pytest.mark.asyncio
async def test_end_to_end_delivery_to_receiver(rules, logs, app_settings, rule_factory, webhook_receiver):
    sender = WebhookSender()
    dispatcher = WebhookDispatcher(rules, logs, app_settings, sender=sender)
    rule = rules.save_rule(rule_factory(destination_url=webhook_receiver.url(404)))

    try:
        result = await dispatcher.dispatch(rule, "dom_change", {"type": "mutation", "current": "$12"})
    finally:
        await sender.close()

    assert result.success is False
    [entry] = logs.get_logs()
    assert entry.status_code == 404
    assert entry.error == "HTTP 404 Not Found"
    assert webhook_receiver.requests[0]["json"]["rule"]["id"] == rule.id


@pytest.mark.asyncio
async def test_sender_crash_is_logged_as_failure(dispatcher, rules, logs, sender, notifier, rule_factory):
    rule = rules.save_rule(rule_factory())
    sender.send.side_effect = RuntimeError("Session is closed")

    result = await dispatcher.dispatch(rule, "dom_change", {"type": "mutation", "current": "$12"})

    assert result.success is False
    assert result.error == "Session is closed"
    [entry] = logs.get_logs()
    assert entry.status == "failure"
    assert entry.error == "Session is closed"
    assert entry.payload["change"]["current"] == "$12"
    notifier.assert_awaited_once()
