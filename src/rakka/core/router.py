"""Message router: addressing, command dispatch, quota, prompting, replies."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Optional

import structlog

from rakka.commands.registry import CommandContext, CommandRegistry
from rakka.config import BotConfig
from rakka.core.addressing import Addressing
from rakka.core.context import ContextStore
from rakka.core.credits import CreditStore
from rakka.core.types import Role
from rakka.errors import APIKeyNotFoundError, DecryptionFailedError, ProviderError, SafetyBlockedError
from rakka.llm.provider import GenerationResult, LLMProvider, RequestConfig
from rakka.log import get_logger
from rakka.messenger.base import Responder, truncate_text
from rakka.messenger.models import IncomingMessage

if TYPE_CHECKING:
    import httpx

    from rakka.services.scheduler import SchedulerService

logger = get_logger(__name__)

QUOTA_EXCEEDED_TEMPLATE = (
    "Sorry, you've reached your API usage limit. "
    "Use `!{name} setkey <your_api_key>` to add your own API key."
)
UNKNOWN_COMMAND_TEMPLATE = "Unknown command `{command}`. Try `!{name} help`."
PROVIDER_FAILURE_REPLY = "I'm having trouble thinking right now."
VISION_FAILURE_REPLY = "Error analyzing image."
ANALYZING_IMAGE_ACK = "👀 Analyzing image..."
DEFAULT_VISION_PROMPT = "Describe the image."


class MessageRouter:
    """Routes normalized messages from any platform adapter.

    Addressing is token based: a message is for the bot when its first token
    is the command prefix ``!<name>`` or when the bot name appears as a whole
    word (optionally ``@``-prefixed). Everything else is ignored silently.
    """

    def __init__(
        self,
        bot_config: BotConfig,
        provider: LLMProvider,
        credits: CreditStore,
        context: ContextStore,
        commands: CommandRegistry,
        http: Optional[httpx.AsyncClient] = None,
        scheduler: Optional[SchedulerService] = None,
        request_timeout: float = 60.0,
    ):
        self._config = bot_config
        self._provider = provider
        self._credits = credits
        self._context = context
        self._commands = commands
        self._http = http
        self._scheduler = scheduler
        self._request_timeout = request_timeout
        self._addressing = Addressing(bot_config.name)
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def bot_name(self) -> str:
        return self._config.name

    @property
    def quota_message(self) -> str:
        return QUOTA_EXCEEDED_TEMPLATE.format(name=self._config.name)

    # -- addressing --------------------------------------------------------

    def has_command_prefix(self, text: str) -> bool:
        return self._addressing.has_command_prefix(text)

    def is_addressed(self, text: str) -> bool:
        return self._addressing.is_addressed(text)

    def strip_addressing(self, text: str) -> str:
        return self._addressing.strip(text)

    # -- task boundary -----------------------------------------------------

    def dispatch(self, msg: IncomingMessage, responder: Responder) -> asyncio.Task[None]:
        """Handle *msg* on its own task without blocking the caller."""
        task = asyncio.create_task(self._guarded_route(msg, responder), name=f"route:{msg.platform}:{msg.chat_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guarded_route(self, msg: IncomingMessage, responder: Responder) -> None:
        with structlog.contextvars.bound_contextvars(
            platform=msg.platform, chat_id=msg.chat_id, user_id=msg.user_id
        ):
            try:
                await self.route(msg, responder)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("message_handling_failed", error=str(e), exc_info=True)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight message tasks; cancel whatever outlives *timeout*."""
        if not self._tasks:
            return
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("in_flight_cancelled", count=len(pending))

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # -- routing -----------------------------------------------------------

    async def route(self, msg: IncomingMessage, responder: Responder) -> None:
        """Process one inbound message end-to-end."""
        text = msg.text or ""
        if not self.is_addressed(text):
            return

        tokens = text.split()
        if self.has_command_prefix(text) and len(tokens) >= 2:
            await self._run_command(msg, responder, tokens[1], tokens[2:])
            return

        if not self._credits.can_use_api(msg.user_id):
            logger.info("quota_exceeded", user_id=msg.user_id)
            await responder.send_text(msg.chat_id, self.quota_message)
            return

        prompt = self.strip_addressing(text)
        if msg.is_image:
            prompt = prompt or DEFAULT_VISION_PROMPT
        elif not prompt:
            return

        await self._answer(msg, responder, prompt)

    async def _run_command(
        self, msg: IncomingMessage, responder: Responder, name: str, args: list[str]
    ) -> None:
        ctx = CommandContext(
            message=msg,
            responder=responder,
            args=args,
            bot_name=self._config.name,
            credits=self._credits,
            context=self._context,
            http=self._http,
            scheduler=self._scheduler,
            registry=self._commands,
        )
        logger.info("command_received", command=name.lower(), args=len(args))
        if not await self._commands.execute(name, ctx):
            await responder.send_text(
                msg.chat_id, UNKNOWN_COMMAND_TEMPLATE.format(command=name, name=self._config.name)
            )

    def _request_config(self, user_id: str) -> RequestConfig:
        try:
            user_key = self._credits.get_user_api_key(user_id)
        except APIKeyNotFoundError:
            user_key = ""
        except DecryptionFailedError:
            logger.warning("user_api_key_unreadable", user_id=user_id)
            user_key = ""

        return RequestConfig(
            temperature=self._config.temperature,
            max_tokens=self._config.max_response_tokens,
            system_prompt=self._config.system_prompt,
            use_search=self._credits.is_search_enabled(user_id),
            user_key_override=user_key,
        )

    def build_prompt(self, msg: IncomingMessage, prompt: str) -> str:
        sections = []
        history = self._context.get_history(msg.chat_id, msg.user_id)
        if history:
            sections.append(f"Conversation history:\n{history}")
        if msg.reply_to is not None and msg.reply_to.text:
            sender = msg.reply_to.sender or "someone"
            sections.append(f'[Replying to message from {sender}: "{msg.reply_to.text}"]')
        sections.append(prompt)
        return "\n\n".join(sections)

    async def _generate(self, msg: IncomingMessage, full_prompt: str, config: RequestConfig) -> GenerationResult:
        if msg.is_image:
            assert msg.image is not None
            call = self._provider.generate_vision(full_prompt, msg.image.data, msg.image.media_type, config)
        else:
            call = self._provider.generate_text(full_prompt, config)
        return await asyncio.wait_for(call, timeout=self._request_timeout)

    async def _answer(self, msg: IncomingMessage, responder: Responder, prompt: str) -> None:
        full_prompt = self.build_prompt(msg, prompt)
        config = self._request_config(msg.user_id)
        failure_reply = VISION_FAILURE_REPLY if msg.is_image else PROVIDER_FAILURE_REPLY

        if msg.is_image and self._config.analyze_image_ack:
            await responder.send_text(msg.chat_id, ANALYZING_IMAGE_ACK)

        try:
            result = await self._generate(msg, full_prompt, config)
        except SafetyBlockedError as e:
            logger.warning("provider_safety_block", reason=e.reason, provider=self._provider.provider_id)
            await responder.send_text(msg.chat_id, failure_reply)
            return
        except ProviderError as e:
            logger.error("provider_error", error=str(e), provider=self._provider.provider_id)
            await responder.send_text(msg.chat_id, failure_reply)
            return
        except TimeoutError:
            logger.error("provider_timeout", timeout=self._request_timeout, provider=self._provider.provider_id)
            await responder.send_text(msg.chat_id, failure_reply)
            return
        except asyncio.CancelledError:
            logger.warning("provider_call_cancelled", provider=self._provider.provider_id)
            await responder.send_text(msg.chat_id, failure_reply)
            raise
        except Exception as e:
            logger.error("provider_unexpected_error", error=str(e), error_type=type(e).__name__)
            await responder.send_text(msg.chat_id, failure_reply)
            return

        self._context.add_message(msg.chat_id, msg.user_id, Role.USER, prompt)
        self._context.add_message(msg.chat_id, msg.user_id, Role.ASSISTANT, result.text)
        self._credits.record_usage(msg.user_id, result.tokens)
        logger.info(
            "reply_generated",
            tokens=result.tokens,
            estimated=result.estimated,
            vision=msg.is_image,
            search=config.use_search,
            own_key=bool(config.user_key_override),
        )

        reply = truncate_text(result.text, responder.max_text_length)
        if msg.message_id:
            sent = await responder.reply_text(msg.chat_id, msg.message_id, reply)
        else:
            sent = await responder.send_text(msg.chat_id, reply)
        if sent is None:
            logger.warning("reply_delivery_failed")
