import asyncio
import os
import sys
from pathlib import Path

import pytest

# Ensure the project 'src' directory is importable when tests run without an install
root = Path(__file__).resolve().parents[1]
src = root / "src"
if str(src) not in sys.path:
    sys.path.insert(0, str(src))
os.environ.setdefault("PYTHONPATH", str(src))

from rakka.commands.registry import CommandRegistry
from rakka.config import BotConfig
from rakka.core.context import ContextStore
from rakka.core.credits import CreditStore
from rakka.core.router import MessageRouter
from rakka.llm.provider import GenerationResult, LLMProvider
from rakka.messenger.base import Responder
from rakka.messenger.models import IncomingMessage

MASTER_KEY = "test-master-secret"


class FakeResponder(Responder):
    def __init__(self, max_text_length=4000):
        self.max_text_length = max_text_length
        self.sent = []
        self.replies = []
        self.reactions = []
        self._next_id = 100

    def _id(self):
        self._next_id += 1
        return str(self._next_id)

    async def send_text(self, chat_id, text):
        self.sent.append((chat_id, text))
        return self._id()

    async def reply_text(self, chat_id, original_id, text):
        self.replies.append((chat_id, original_id, text))
        return self._id()

    async def send_reaction(self, chat_id, message_id, emoji):
        self.reactions.append((chat_id, message_id, emoji))
        return True

    @property
    def texts(self):
        return [t for _, t in self.sent] + [t for _, _, t in self.replies]


class FakeProvider(LLMProvider):
    def __init__(self, text="Four.", tokens=10, error=None, delay=0.0):
        super().__init__(api_key="shared-key", model="fake-model")
        self.text = text
        self.tokens = tokens
        self.error = error
        self.delay = delay
        self.calls = []

    @property
    def provider_id(self):
        return "fake"

    async def _answer(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return GenerationResult(text=self.text, tokens=self.tokens)

    async def generate_text(self, prompt, config):
        self.calls.append(("text", prompt, config))
        return await self._answer()

    async def generate_vision(self, prompt, image, media_type, config):
        self.calls.append(("vision", prompt, config))
        return await self._answer()


def make_message(text="rakka what is 2+2?", user_id="u1", chat_id="c1", **kwargs):
    kwargs.setdefault("platform", "telegram")
    kwargs.setdefault("user_display_name", "Alice")
    kwargs.setdefault("message_id", "m1")
    return IncomingMessage(chat_id=chat_id, user_id=user_id, text=text, **kwargs)


@pytest.fixture
def credits(tmp_path):
    return CreditStore(tmp_path / "credits.json", global_limit=1000, master_key=MASTER_KEY)


@pytest.fixture
def context():
    return ContextStore(max_history=5)


@pytest.fixture
def commands():
    registry = CommandRegistry()
    registry.discover_and_register()
    return registry


@pytest.fixture
def make_router(credits, context, commands):
    def _make(provider=None, request_timeout=5.0, **bot_kwargs):
        bot_kwargs.setdefault("name", "rakka")
        return MessageRouter(
            bot_config=BotConfig(**bot_kwargs),
            provider=provider or FakeProvider(),
            credits=credits,
            context=context,
            commands=commands,
            request_timeout=request_timeout,
        )

    return _make
