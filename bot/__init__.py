"""Telegram operator surface: rule overview, delivery log and alerts."""
from .filters import IsAdmin
from .handlers import router

__all__ = ["IsAdmin", "router"]
