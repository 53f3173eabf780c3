"""Utilities for notifying operators about failed deliveries."""
from __future__ import annotations

import logging
from html import escape
from typing import Sequence

from aiogram import Bot

from models import LogEntry, Rule

logger = logging.getLogger(__name__)

MAX_ALERT_LENGTH = 3500


async def send_critical_alert(bot: Bot, admin_chat_ids: Sequence[int], message: str) -> None:
    """Send an HTML alert to every operator chat, ignoring unreachable chats."""
    if not admin_chat_ids:
        return

    full_message = f"🚨 <b>Delivery alert</b>\n\n{message}"[:MAX_ALERT_LENGTH]
    for chat_id in admin_chat_ids:
        try:
            await bot.send_message(chat_id, full_message, parse_mode="HTML")
        except Exception as exc:
            logger.warning("Failed to send alert to %s: %r", chat_id, exc)


def format_failure_alert(rule: Rule, entry: LogEntry) -> str:
    lines = [
        f"Rule: <b>{escape(rule.name)}</b>",
        f"Event: {escape(entry.event)}",
        f"Destination: {escape(entry.destination_url)}",
    ]
    if entry.status_code is not None:
        lines.append(f"Status: {entry.status_code}")
    lines.append(f"Error: {escape(entry.error or 'unknown')}")
    return "\n".join(lines)


class TelegramFailureNotifier:
    """Failure notifier for :class:`services.dispatch.WebhookDispatcher`."""

    def __init__(self, bot: Bot, admin_chat_ids: Sequence[int]) -> None:
        self.bot = bot
        self.admin_chat_ids = tuple(admin_chat_ids)

    async def __call__(self, rule: Rule, entry: LogEntry) -> None:
        await send_critical_alert(self.bot, self.admin_chat_ids, format_failure_alert(rule, entry))


__all__ = ["MAX_ALERT_LENGTH", "TelegramFailureNotifier", "format_failure_alert", "send_critical_alert"]
