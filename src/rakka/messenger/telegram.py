"""Telegram messenger adapter using python-telegram-bot v21+."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Optional

from telegram import Message, ReplyParameters, Update
from telegram.error import TelegramError
from telegram.ext import Application, MessageHandler as TGMessageHandler, filters

from rakka.core.types import Platform
from rakka.log import get_logger
from rakka.messenger.base import MessengerAdapter, truncate_text
from rakka.messenger.models import ImageAttachment, IncomingMessage, RepliedMessage

logger = get_logger(__name__)

TELEGRAM_MAX_TEXT = 4096


def rewrite_username_mention(text: str, username: str | None, bot_name: str) -> str:
    """Replace ``@<bot username>`` with the configured bot name."""
    if not username:
        return text
    return re.sub(rf"@{re.escape(username)}\b", bot_name, text, flags=re.IGNORECASE)


class TelegramAdapter(MessengerAdapter):
    """Telegram bot adapter using python-telegram-bot."""

    max_text_length = TELEGRAM_MAX_TEXT

    def __init__(self, adapter_id: str, config: dict, bot_name: str):
        super().__init__(adapter_id, config, bot_name)
        self._app: Application | None = None  # type: ignore[type-arg]

    @property
    def platform_name(self) -> str:
        return Platform.TELEGRAM

    async def start(self) -> None:
        token = self.config.get("token", "")
        if not token:
            raise ValueError(f"Telegram bot token not configured for '{self.adapter_id}'")

        self._app = Application.builder().token(token).build()
        self._app.add_handler(
            TGMessageHandler(filters.TEXT | filters.PHOTO, self._on_telegram_message)
        )

        await self._app.initialize()
        await self._app.start()
        await self._app.updater.start_polling(drop_pending_updates=True)  # type: ignore[union-attr]
        logger.info("telegram_adapter_started", adapter_id=self.adapter_id, username=self._app.bot.username)

    async def stop(self) -> None:
        if self._app:
            await self._app.updater.stop()  # type: ignore[union-attr]
            await self._app.stop()
            await self._app.shutdown()
            logger.info("telegram_adapter_stopped", adapter_id=self.adapter_id)

    # -- Responder ---------------------------------------------------------

    async def send_text(self, chat_id: str, text: str) -> Optional[str]:
        return await self._send(chat_id, text)

    async def reply_text(self, chat_id: str, original_id: str, text: str) -> Optional[str]:
        return await self._send(chat_id, text, reply_to=original_id)

    async def send_reaction(self, chat_id: str, message_id: str, emoji: str) -> bool:
        if not self._app:
            return False
        try:
            await self._app.bot.set_message_reaction(
                chat_id=int(chat_id), message_id=int(message_id), reaction=emoji
            )
        except (TelegramError, ValueError) as e:
            logger.warning("telegram_reaction_failed", chat_id=chat_id, emoji=emoji, error=str(e))
            return False
        return True

    async def _send(self, chat_id: str, text: str, reply_to: str | None = None) -> Optional[str]:
        if not self._app:
            return None
        reply_parameters = None
        if reply_to:
            reply_parameters = ReplyParameters(message_id=int(reply_to), allow_sending_without_reply=True)
        try:
            sent = await self._app.bot.send_message(
                chat_id=int(chat_id),
                text=truncate_text(text, self.max_text_length),
                reply_parameters=reply_parameters,
            )
        except (TelegramError, ValueError) as e:
            logger.error("telegram_send_failed", chat_id=chat_id, error=str(e))
            return None
        return str(sent.message_id)

    # -- inbound -----------------------------------------------------------

    async def _download_photo(self, msg: Message) -> ImageAttachment | None:
        # Highest resolution is the last size
        try:
            tg_file = await msg.photo[-1].get_file()
            data = await tg_file.download_as_bytearray()
        except TelegramError as e:
            logger.warning("telegram_photo_download_error", error=str(e))
            return None
        return ImageAttachment(data=bytes(data), media_type="image/jpeg")

    def _replied_message(self, msg: Message) -> RepliedMessage | None:
        replied = msg.reply_to_message
        if replied is None:
            return None
        sender = replied.from_user.full_name if replied.from_user else None
        return RepliedMessage(
            message_id=str(replied.message_id),
            sender=sender,
            text=replied.text or replied.caption,
        )

    async def _on_telegram_message(self, update: Update, context: Any) -> None:
        """Normalize a Telegram text or photo message and hand it to the router."""
        msg = update.message
        if msg is None or self._message_callback is None:
            return

        username = self._app.bot.username if self._app else None
        text = rewrite_username_mention(msg.text or msg.caption or "", username, self.bot_name)
        if not self._addressing.is_addressed(text):
            return
        image = await self._download_photo(msg) if msg.photo else None

        incoming = IncomingMessage(
            platform=Platform.TELEGRAM,
            chat_id=str(msg.chat_id),
            user_id=str(msg.from_user.id) if msg.from_user else "unknown",
            user_display_name=msg.from_user.full_name if msg.from_user else "Unknown",
            text=text,
            message_id=str(msg.message_id),
            image=image,
            reply_to=self._replied_message(msg),
            timestamp=msg.date or datetime.now(timezone.utc),
        )
        self._message_callback(incoming, self)
