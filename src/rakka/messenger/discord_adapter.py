"""Discord messenger adapter using discord.py v2+."""

from __future__ import annotations

import asyncio
import mimetypes
from datetime import datetime, timezone
from typing import Any, Optional

import discord

from rakka.core.types import Platform
from rakka.log import get_logger
from rakka.messenger.base import MessengerAdapter, truncate_text
from rakka.messenger.models import ImageAttachment, IncomingMessage, RepliedMessage

logger = get_logger(__name__)

DISCORD_MAX_TEXT = 2000
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp", ".gif")


def rewrite_user_mentions(text: str, bot_user_id: int | None, bot_name: str) -> str:
    """Replace ``<@id>`` / ``<@!id>`` mentions of the bot with its name."""
    if bot_user_id is None:
        return text
    for token in (f"<@{bot_user_id}>", f"<@!{bot_user_id}>"):
        text = text.replace(token, bot_name)
    return text


def is_image_attachment(filename: str, content_type: str | None) -> bool:
    if content_type and content_type.startswith("image/"):
        return True
    return filename.lower().endswith(IMAGE_EXTENSIONS)


class DiscordAdapter(MessengerAdapter):
    """Discord bot adapter using discord.py."""

    max_text_length = DISCORD_MAX_TEXT

    def __init__(self, adapter_id: str, config: dict, bot_name: str):
        super().__init__(adapter_id, config, bot_name)
        intents = discord.Intents.default()
        intents.message_content = True
        self._client = discord.Client(intents=intents)
        self._task: asyncio.Task[Any] | None = None
        self._ready = asyncio.Event()

        @self._client.event
        async def on_ready() -> None:
            logger.info("discord_bot_ready", user=str(self._client.user), adapter_id=self.adapter_id)
            self._ready.set()

        @self._client.event
        async def on_message(message: discord.Message) -> None:
            if message.author == self._client.user:
                return
            if message.author.bot:
                return
            await self._on_discord_message(message)

    @property
    def platform_name(self) -> str:
        return Platform.DISCORD

    async def start(self) -> None:
        token = self.config.get("token", "")
        if not token:
            raise ValueError(f"Discord bot token not configured for '{self.adapter_id}'")

        self._task = asyncio.create_task(self._client.start(token))
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=30)
        except asyncio.TimeoutError:
            logger.warning("discord_ready_timeout", adapter_id=self.adapter_id)

        logger.info("discord_adapter_started", adapter_id=self.adapter_id)

    async def stop(self) -> None:
        await self._client.close()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except discord.DiscordException as e:
                logger.warning("discord_client_exit_error", error=str(e))
        logger.info("discord_adapter_stopped", adapter_id=self.adapter_id)

    # -- Responder ---------------------------------------------------------

    async def _channel(self, chat_id: str) -> Any:
        channel = self._client.get_channel(int(chat_id))
        if channel is None:
            channel = await self._client.fetch_channel(int(chat_id))
        return channel

    async def send_text(self, chat_id: str, text: str) -> Optional[str]:
        try:
            channel = await self._channel(chat_id)
            sent = await channel.send(truncate_text(text, self.max_text_length))
        except (discord.DiscordException, ValueError) as e:
            logger.error("discord_send_failed", chat_id=chat_id, error=str(e))
            return None
        return str(sent.id)

    async def reply_text(self, chat_id: str, original_id: str, text: str) -> Optional[str]:
        try:
            channel = await self._channel(chat_id)
            reference = discord.MessageReference(
                message_id=int(original_id), channel_id=int(chat_id), fail_if_not_exists=False
            )
            sent = await channel.send(truncate_text(text, self.max_text_length), reference=reference)
        except (discord.DiscordException, ValueError) as e:
            logger.error("discord_reply_failed", chat_id=chat_id, error=str(e))
            return None
        return str(sent.id)

    async def send_reaction(self, chat_id: str, message_id: str, emoji: str) -> bool:
        try:
            channel = await self._channel(chat_id)
            await channel.get_partial_message(int(message_id)).add_reaction(emoji)
        except (discord.DiscordException, ValueError, AttributeError) as e:
            logger.warning("discord_reaction_failed", chat_id=chat_id, emoji=emoji, error=str(e))
            return False
        return True

    # -- inbound -----------------------------------------------------------

    async def _first_image(self, message: discord.Message) -> ImageAttachment | None:
        for att in message.attachments:
            if not is_image_attachment(att.filename, att.content_type):
                continue
            try:
                data = await att.read()
            except discord.DiscordException as e:
                logger.warning("discord_attachment_download_error", error=str(e))
                return None
            media_type = att.content_type or mimetypes.guess_type(att.filename)[0] or "image/jpeg"
            return ImageAttachment(data=data, media_type=media_type)
        return None

    @staticmethod
    def _replied_message(message: discord.Message) -> RepliedMessage | None:
        ref = message.reference
        if ref is None or ref.message_id is None:
            return None
        resolved = ref.resolved
        if isinstance(resolved, discord.Message):
            return RepliedMessage(
                message_id=str(resolved.id),
                sender=resolved.author.display_name,
                text=resolved.content or None,
            )
        return RepliedMessage(message_id=str(ref.message_id))

    async def _on_discord_message(self, message: discord.Message) -> None:
        """Normalize a Discord message and hand it to the router."""
        if self._message_callback is None:
            return

        bot_user_id = self._client.user.id if self._client.user else None
        text = rewrite_user_mentions(message.content or "", bot_user_id, self.bot_name)
        if not self._addressing.is_addressed(text):
            return
        image = await self._first_image(message)

        incoming = IncomingMessage(
            platform=Platform.DISCORD,
            chat_id=str(message.channel.id),
            user_id=str(message.author.id),
            user_display_name=message.author.display_name,
            text=text,
            message_id=str(message.id),
            image=image,
            reply_to=self._replied_message(message),
            timestamp=message.created_at or datetime.now(timezone.utc),
        )
        self._message_callback(incoming, self)
