"""Unified message models for all messenger platforms."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


@dataclass(frozen=True, slots=True)
class ImageAttachment:
    """Image payload attached to an inbound message."""

    data: bytes
    media_type: str = "image/jpeg"


@dataclass(frozen=True, slots=True)
class RepliedMessage:
    """The message an inbound message replies to, as far as the platform knows it."""

    message_id: str
    sender: Optional[str] = None
    text: Optional[str] = None


@dataclass(frozen=True, slots=True)
class IncomingMessage:
    platform: str
    chat_id: str
    user_id: str
    user_display_name: str
    text: str
    message_id: Optional[str] = None
    image: Optional[ImageAttachment] = None
    reply_to: Optional[RepliedMessage] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_image(self) -> bool:
        return self.image is not None and bool(self.image.data)
