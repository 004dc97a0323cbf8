"""
main.py

FastAPI entry point for the calendar bot.
Receives Telegram updates on a webhook; `python -m calbot.main` runs the
same handlers with long polling instead.
"""

import asyncio
import logging
from typing import Optional

from aiogram import Bot, Dispatcher
from aiogram.types import Update
from fastapi import FastAPI, Header, HTTPException, Request

from calbot.calendar.google_calendar import GoogleCalendarService
from calbot.config import Settings, settings
from calbot.dates.resolver import build_date_resolver
from calbot.handlers.callbacks import CallbackDispatcher
from calbot.handlers.commands import CommandHandlers
from calbot.storage.correlation import CorrelationStore
from calbot.storage.kv import KeyValueStore, build_store
from calbot.storage.sessions import SessionStore
from calbot.telegram.bot import TelegramMessenger, build_router, create_bot
from calbot.users import SettingsUserDirectory
from calbot.utils.logger import setup_logging

logger = logging.getLogger(__name__)


class BotApp:
    """Everything one running bot needs, wired from settings."""

    def __init__(self, config: Settings):
        self.store: KeyValueStore = build_store(config.REDIS_URL)
        self.bot: Bot = create_bot(config.TELEGRAM_BOT_TOKEN)

        deps = dict(
            messenger=TelegramMessenger(self.bot),
            sessions=SessionStore(self.store, config.SESSION_KEY_PREFIX),
            correlations=CorrelationStore(self.store, config.CORRELATION_KEY_PREFIX),
            calendar=GoogleCalendarService(config.GOOGLE_CALENDAR_ID, config.DEFAULT_TIMEZONE),
            users=SettingsUserDirectory.from_settings(config),
            resolver=build_date_resolver(config),
            timezone=config.DEFAULT_TIMEZONE,
        )
        self.commands = CommandHandlers(**deps)
        self.callbacks = CallbackDispatcher(commands=self.commands, **deps)

        self.dispatcher = Dispatcher()
        self.dispatcher.include_router(build_router(self.commands, self.callbacks))

    async def close(self) -> None:
        await self.store.close()
        await self.bot.session.close()


app = FastAPI(title="Calendar Bot")

bot_app: Optional[BotApp] = None


# Startup / Shutdown
@app.on_event("startup")
async def startup_event():
    global bot_app

    setup_logging()
    bot_app = BotApp(settings)

    if settings.TELEGRAM_WEBHOOK_URL:
        url = settings.TELEGRAM_WEBHOOK_URL.rstrip("/") + settings.TELEGRAM_WEBHOOK_PATH
        await bot_app.bot.set_webhook(
            url,
            secret_token=settings.TELEGRAM_WEBHOOK_SECRET or None,
            drop_pending_updates=True,
        )
        logger.info("Telegram webhook set to %s", url)
    else:
        logger.warning("TELEGRAM_WEBHOOK_URL not set, webhook not registered")


@app.on_event("shutdown")
async def shutdown_event():
    if bot_app is not None:
        await bot_app.close()


@app.get("/health")
async def health():
    return {"status": "ok"}


# Telegram webhook
@app.post(settings.TELEGRAM_WEBHOOK_PATH)
async def telegram_webhook(
    request: Request,
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
):
    if settings.TELEGRAM_WEBHOOK_SECRET and (
        x_telegram_bot_api_secret_token != settings.TELEGRAM_WEBHOOK_SECRET
    ):
        logger.warning("Rejected webhook call with a bad secret token")
        raise HTTPException(status_code=403, detail="Invalid secret token")

    if bot_app is None:
        raise HTTPException(status_code=503, detail="Bot is not ready")

    payload = await request.json()
    update = Update.model_validate(payload, context={"bot": bot_app.bot})
    try:
        await bot_app.dispatcher.feed_update(bot_app.bot, update)
    except Exception:
        # Telegram redelivers on non-2xx; a failed update is dropped instead
        logger.exception("Update %s failed", update.update_id)
    return {"ok": True}


# Polling runner
async def run_polling() -> None:
    setup_logging()
    polling = BotApp(settings)

    logger.info("Starting long polling")
    await polling.bot.delete_webhook(drop_pending_updates=True)
    try:
        await polling.dispatcher.start_polling(polling.bot)
    finally:
        await polling.close()


if __name__ == "__main__":
    asyncio.run(run_polling())
