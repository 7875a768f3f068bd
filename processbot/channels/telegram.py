"""Telegram notifier: posts escalation reminders into a group or channel chat."""

from __future__ import annotations

import structlog
from aiogram import Bot

from processbot.channels.telegram_render import split_message
from processbot.config.settings import TelegramSettings
from processbot.infra.errors import ChatError

logger = structlog.get_logger()


class TelegramNotifier:
    """Sends plain-text messages to a chat id via the Bot API."""

    def __init__(self, settings: TelegramSettings, bot: Bot | None = None) -> None:
        if bot is None and not settings.bot_token:
            raise ChatError("TELEGRAM_BOT_TOKEN is required for the telegram backend")
        self._bot = bot or Bot(token=settings.bot_token)
        self._max_length = settings.message_max_length

    async def check_ready(self) -> None:
        """Verify bot token and connectivity via getMe. Raises ChatError on failure."""
        try:
            me = await self._bot.get_me()
        except Exception as exc:
            raise ChatError(
                f"Telegram bot token verification failed: {exc}",
                code="TELEGRAM_AUTH_FAILED",
            ) from exc
        logger.info("telegram_bot_ready", username=me.username)

    async def send_channel_message(self, channel_id: str, text: str) -> None:
        for part in split_message(text, self._max_length):
            try:
                await self._bot.send_message(chat_id=channel_id, text=part)
            except Exception as exc:
                raise ChatError(f"Telegram send to {channel_id} failed: {exc}") from exc

    async def close(self) -> None:
        await self._bot.session.close()
