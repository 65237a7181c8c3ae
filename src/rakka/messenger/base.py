"""Responder capability and abstract messenger adapter interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

from rakka.core.addressing import Addressing
from rakka.messenger.models import IncomingMessage

MessageCallback = Callable[[IncomingMessage, "Responder"], None]

TRUNCATION_MARKER = "..."


def truncate_text(text: str, limit: int) -> str:
    """Cut *text* to *limit* characters, ending with an ellipsis marker."""
    if limit <= 0 or len(text) <= limit:
        return text
    return text[: max(limit - len(TRUNCATION_MARKER), 0)] + TRUNCATION_MARKER


class Responder(ABC):
    """Delivers text and reactions back to a chat surface.

    Implementations report failure through their return value and never raise.
    """

    max_text_length: int = 4000

    @abstractmethod
    async def send_text(self, chat_id: str, text: str) -> Optional[str]:
        """Send a message; return the platform message id, or None on failure."""
        ...

    @abstractmethod
    async def reply_text(self, chat_id: str, original_id: str, text: str) -> Optional[str]:
        """Send a message threaded as a reply to *original_id*."""
        ...

    @abstractmethod
    async def send_reaction(self, chat_id: str, message_id: str, emoji: str) -> bool:
        """React to a message with an emoji."""
        ...


class MessengerAdapter(Responder):
    """Base class for all messenger platform adapters.

    To add a new messenger, subclass this and implement all abstract methods.
    """

    def __init__(self, adapter_id: str, config: dict, bot_name: str):
        self.adapter_id = adapter_id
        self.config = config
        self.bot_name = bot_name
        self._addressing = Addressing(bot_name)
        self._message_callback: MessageCallback | None = None

    @abstractmethod
    async def start(self) -> None:
        """Connect to the platform and begin receiving messages."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Gracefully disconnect."""
        ...

    def on_message(self, callback: MessageCallback) -> None:
        """Register the callback invoked for every incoming message."""
        self._message_callback = callback

    @property
    @abstractmethod
    def platform_name(self) -> str:
        """Return platform identifier string."""
        ...
