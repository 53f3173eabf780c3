"""Configuration helpers for environment-driven settings."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv

if os.getenv("PYTEST_CURRENT_TEST") is None:
    load_dotenv()

ENGINE_VERSION = "0.1.0"
PLATFORM_NAME = "pagehook"


def _split_csv(value: str) -> Tuple[str, ...]:
    return tuple(entry.strip() for entry in value.split(",") if entry.strip())


def _read_float(name: str, default: str, minimum: float = 0.0) -> float:
    try:
        value = float(os.getenv(name, default))
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if value < minimum:
        raise ValueError(f"{name} cannot be lower than {minimum:g}")
    return value


@dataclass(slots=True)
class Settings:
    """Runtime application settings sourced from environment variables."""

    BOT_TOKEN: str = field(init=False)
    ADMIN_CHAT_IDS: Tuple[int, ...] = field(init=False)
    DB_PATH: Path = field(init=False)
    WATCH_URLS: Tuple[str, ...] = field(init=False)
    PAGE_RELOAD_MINUTES: int = field(init=False)
    HEADERS: dict[str, str] = field(init=False)
    REQUEST_TIMEOUT: float = field(init=False)
    REQUEST_DELAY_SECONDS: float = field(init=False)
    WEBHOOK_TIMEOUT: float | None = field(init=False)

    def __post_init__(self) -> None:
        self.reload()

    def reload(self) -> None:
        self.BOT_TOKEN = os.getenv("BOT_TOKEN", "").strip()
        try:
            self.ADMIN_CHAT_IDS = tuple(
                int(chat_id)
                for chat_id in _split_csv(os.getenv("ADMIN_CHAT_IDS", ""))
            )
        except ValueError as exc:
            raise ValueError("ADMIN_CHAT_IDS must be a comma separated list of integers") from exc

        db_path = Path(os.getenv("DB_PATH", "data/pagehook.db").strip())
        if not db_path.is_absolute():
            db_path = Path.cwd() / db_path
        self.DB_PATH = db_path

        self.WATCH_URLS = _split_csv(os.getenv("WATCH_URLS", ""))

        try:
            reload_minutes = int(os.getenv("PAGE_RELOAD_MINUTES", "0"))
        except ValueError as exc:
            raise ValueError("PAGE_RELOAD_MINUTES must be an integer") from exc
        if reload_minutes < 0:
            raise ValueError("PAGE_RELOAD_MINUTES cannot be negative")
        self.PAGE_RELOAD_MINUTES = reload_minutes

        self.HEADERS = {
            "User-Agent": (
                "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
                "AppleWebKit/537.36 (KHTML, like Gecko) "
                "Chrome/127.0.0.0 Safari/537.36"
            )
        }

        timeout = _read_float("REQUEST_TIMEOUT", "60")
        if timeout <= 0:
            raise ValueError("REQUEST_TIMEOUT must be positive")
        self.REQUEST_TIMEOUT = timeout

        self.REQUEST_DELAY_SECONDS = _read_float("REQUEST_DELAY_SECONDS", "1.0")

        # 0 keeps webhook requests without a timeout
        webhook_timeout = _read_float("WEBHOOK_TIMEOUT", "0")
        self.WEBHOOK_TIMEOUT = webhook_timeout or None

    def validate(self) -> None:
        if self.BOT_TOKEN and not self.ADMIN_CHAT_IDS:
            raise ValueError("ADMIN_CHAT_IDS is required when BOT_TOKEN is set")


settings = Settings()
