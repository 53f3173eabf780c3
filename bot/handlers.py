"""Telegram command handlers for operators."""
from __future__ import annotations

import html
import logging
from typing import Sequence

from aiogram import F, Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command, CommandStart
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Message
from aiogram.utils.keyboard import InlineKeyboardBuilder

from bot.filters import IsAdmin
from config import settings
from models import LogEntry, Rule, TriggerKind
from services.coordinator import Coordinator

logger = logging.getLogger(__name__)
router = Router()

DEFAULT_LOG_LIMIT = 10
MAX_LOG_LIMIT = 50

TRIGGER_LABELS = {
    TriggerKind.PAGE_VISIT: "page visit",
    TriggerKind.DOM_CHANGE: "content change",
    TriggerKind.CLICK: "click",
    TriggerKind.FORM_SUBMIT: "form submit",
    TriggerKind.PERIODIC_CHECK: "periodic check",
}


def _short_label(label: str, limit: int = 40) -> str:
    if len(label) <= limit:
        return label
    return f"{label[:limit - 1]}…"


def _format_rule_line(rule: Rule) -> str:
    state = "✅" if rule.enabled else "🚫"
    trigger = TRIGGER_LABELS[rule.trigger]
    if rule.trigger is TriggerKind.PERIODIC_CHECK:
        trigger = f"{trigger} every {rule.interval_minutes} min"
    line = f"{state} <b>{html.escape(rule.name)}</b> · {trigger}\n    {html.escape(rule.url_pattern)}"
    if rule.selector:
        line += f"\n    <code>{html.escape(rule.selector)}</code>"
    return line


def _format_log_line(entry: LogEntry) -> str:
    icon = "✅" if entry.succeeded else "❌"
    status = f" {entry.status_code}" if entry.status_code is not None else ""
    line = f"{icon} {html.escape(entry.timestamp[:19])} <b>{html.escape(entry.rule_name)}</b> · {entry.event}{status}"
    if entry.error:
        line += f"\n    {html.escape(entry.error)}"
    return line


def _compose_rules_overview(rules: Sequence[Rule], notice: str | None = None) -> str:
    lines = ["📋 <b>Rules</b>", ""]
    if notice:
        lines.extend([notice, ""])
    if not rules:
        lines.append("No rules yet.")
    else:
        lines.extend(_format_rule_line(rule) for rule in rules)
    return "\n".join(lines)


def _build_rules_keyboard(rules: Sequence[Rule]) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    for rule in rules:
        builder.row(
            InlineKeyboardButton(
                text=f"{'⏸' if rule.enabled else '▶️'} {_short_label(rule.name, 28)}",
                callback_data=f"rules:toggle:{rule.id}",
            ),
            InlineKeyboardButton(text="🗑 Delete", callback_data=f"rules:delete:{rule.id}"),
        )
    builder.row(InlineKeyboardButton(text="🔄 Refresh", callback_data="rules:refresh"))
    return builder.as_markup()


def _parse_limit(text: str | None) -> int:
    parts = (text or "").split(maxsplit=1)
    if len(parts) < 2:
        return DEFAULT_LOG_LIMIT
    try:
        value = int(parts[1])
    except ValueError as exc:
        raise ValueError("Limit must be a number") from exc
    if value <= 0:
        raise ValueError("Limit must be positive")
    return min(value, MAX_LOG_LIMIT)


@router.message(CommandStart())
async def cmd_start(message: Message) -> None:
    user_id = message.from_user.id if message.from_user else None
    logger.info("User %s started the bot", user_id)

    if user_id in settings.ADMIN_CHAT_IDS:
        await message.answer(
            "✅ <b>PageHook is running.</b>\n\n"
            "/rules - Rules and their state\n"
            "/logs [n] - Latest deliveries\n"
            "/clearlogs - Clear the delivery log",
            parse_mode="HTML",
        )
    else:
        await message.answer("👋 This bot is reserved for operators.")


@router.message(Command("rules"), IsAdmin())
async def cmd_rules(message: Message, coordinator: Coordinator) -> None:
    rules = coordinator.list_rules()
    await message.answer(
        _compose_rules_overview(rules),
        parse_mode="HTML",
        reply_markup=_build_rules_keyboard(rules),
    )


@router.message(Command("logs"), IsAdmin())
async def cmd_logs(message: Message, coordinator: Coordinator) -> None:
    try:
        limit = _parse_limit(message.text)
    except ValueError as exc:
        await message.answer(f"❌ {html.escape(str(exc))}")
        return

    entries = coordinator.recent_logs(limit)
    if not entries:
        await message.answer("The delivery log is empty.")
        return
    lines = [f"🧾 <b>Last {len(entries)} deliveries</b>", ""]
    lines.extend(_format_log_line(entry) for entry in entries)
    await message.answer("\n".join(lines), parse_mode="HTML")


@router.message(Command("clearlogs"), IsAdmin())
async def cmd_clear_logs(message: Message, coordinator: Coordinator) -> None:
    coordinator.clear_logs()
    await message.answer("🧹 Delivery log cleared.")


@router.callback_query(IsAdmin(), F.data.startswith("rules:"))
async def rules_callback(call: CallbackQuery, coordinator: Coordinator) -> None:
    parts = (call.data or "").split(":", 2)
    action = parts[1] if len(parts) > 1 else ""
    rule_id = parts[2] if len(parts) > 2 else ""
    notice: str | None = None

    try:
        if action == "toggle":
            rule = coordinator.toggle_rule(rule_id)
            state = "enabled" if rule.enabled else "paused"
            notice = f"Rule <b>{html.escape(rule.name)}</b> {state}."
        elif action == "delete":
            rule = coordinator.delete_rule(rule_id)
            notice = f"Rule <b>{html.escape(rule.name)}</b> deleted."
        elif action != "refresh":
            raise ValueError("Unknown action")
    except ValueError as exc:
        await call.answer(str(exc), show_alert=True)
        return

    rules = coordinator.list_rules()
    if call.message is not None:
        try:
            await call.message.edit_text(
                _compose_rules_overview(rules, notice=notice),
                parse_mode="HTML",
                reply_markup=_build_rules_keyboard(rules),
            )
        except TelegramBadRequest as exc:
            if "message is not modified" not in (exc.message or "").lower():
                raise
    await call.answer()
