"""Access filters for operator handlers."""
from __future__ import annotations

from typing import Iterable, Union

from aiogram.filters import Filter
from aiogram.types import CallbackQuery, Message

from config import settings


class IsAdmin(Filter):
    """Pass only events sent by an operator chat.

    Without an explicit list the filter follows ``ADMIN_CHAT_IDS`` at call
    time, so reloaded settings take effect immediately.
    """

    def __init__(self, admin_ids: Iterable[int] | None = None) -> None:
        self._admin_ids = tuple(admin_ids) if admin_ids is not None else None

    async def __call__(self, event: Union[Message, CallbackQuery]) -> bool:
        if event.from_user is None:
            return False
        allowed = self._admin_ids if self._admin_ids is not None else settings.ADMIN_CHAT_IDS
        return event.from_user.id in allowed
