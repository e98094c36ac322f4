"""Telegram notification channel."""

import logging

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Sends Markdown messages to one chat. Failures are logged, never raised."""

    def __init__(self, bot: Bot, chat_id: str) -> None:
        self.bot = bot
        self.chat_id = chat_id

    async def send(self, text: str) -> bool:
        try:
            await self.bot.send_message(
                chat_id=self.chat_id, text=text, parse_mode=ParseMode.MARKDOWN
            )
        except BadRequest:
            # Usually unbalanced Markdown in data we don't control
            logger.warning("Markdown rejected, resending as plain text", exc_info=True)
            try:
                await self.bot.send_message(chat_id=self.chat_id, text=text)
            except TelegramError:
                logger.exception("Error sending Telegram notification")
                return False
        except TelegramError:
            logger.exception("Error sending Telegram notification")
            return False

        logger.info("Telegram notification sent successfully")
        return True
