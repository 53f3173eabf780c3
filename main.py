import asyncio
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from bot import router
from config import settings
from services import (
    AppSettingsRepository,
    Browser,
    Coordinator,
    KeyValueStore,
    LogRepository,
    PendingStateRepository,
    Relay,
    RuleRepository,
    SnapshotRepository,
    WebhookDispatcher,
    WebhookSender,
)
from services.alerts import TelegramFailureNotifier
from services.runtime import configure_scheduler, schedule_page_reload

# ensure logs are recorded both to stdout and to a rotating file
def configure_logging() -> None:
    log_dir = Path(os.getenv("LOG_DIR", "logs"))
    if not log_dir.is_absolute():
        log_dir = Path.cwd() / log_dir
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        handlers=[
            logging.StreamHandler(),
            RotatingFileHandler(
                log_dir / "pagehook.log",
                maxBytes=5 * 1024 * 1024,
                backupCount=3,
                encoding="utf-8",
            ),
        ],
        force=True,
    )


configure_logging()
logger = logging.getLogger("pagehook")


async def main() -> None:
    settings.validate()

    store = KeyValueStore()
    snapshots = SnapshotRepository(store)
    rules = RuleRepository(store, snapshots)
    app_settings = AppSettingsRepository(store)
    logs = LogRepository(store, app_settings)
    pending = PendingStateRepository(store)

    bot = None
    notifier = None
    if settings.BOT_TOKEN:
        bot = Bot(
            token=settings.BOT_TOKEN,
            default=DefaultBotProperties(parse_mode=ParseMode.HTML),
        )
        notifier = TelegramFailureNotifier(bot, settings.ADMIN_CHAT_IDS)

    relay = Relay()
    sender = WebhookSender()
    dispatcher = WebhookDispatcher(rules, logs, app_settings, sender=sender, notifier=notifier)
    browser = Browser(relay, rules, snapshots)
    coordinator = Coordinator(relay, rules, snapshots, logs, pending, dispatcher, browser=browser)

    scheduler = AsyncIOScheduler()
    configure_scheduler(scheduler)
    await coordinator.startup()
    schedule_page_reload(browser.reload_all, settings.PAGE_RELOAD_MINUTES)
    scheduler.start()

    for url in settings.WATCH_URLS:
        await browser.open_tab(url)

    logger.info(
        "PageHook started: %d rules, %d tabs, reload every %s minutes",
        len(rules.list_rules()),
        len(browser.tabs),
        settings.PAGE_RELOAD_MINUTES or "-",
    )

    try:
        if bot is not None:
            tg_dispatcher = Dispatcher(coordinator=coordinator)
            tg_dispatcher.include_router(router)
            await tg_dispatcher.start_polling(bot)
        else:
            await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        await browser.close()
        await relay.close()
        await sender.close()
        if bot is not None:
            await bot.session.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Stopped by user")
    except Exception:
        logger.exception("Fatal error")
