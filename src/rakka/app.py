"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

import httpx

from rakka.commands.registry import CommandRegistry
from rakka.config import AppConfig, PlatformConfig
from rakka.core.bot_registry import AdapterRegistry
from rakka.core.context import ContextStore
from rakka.core.credits import CreditStore
from rakka.core.router import MessageRouter
from rakka.errors import CreditStoreError
from rakka.llm.factory import create_provider
from rakka.log import get_logger
from rakka.messenger.base import MessengerAdapter
from rakka.services.scheduler import SchedulerService

logger = get_logger(__name__)

LOOKUP_TIMEOUT = 15.0
CREDIT_FLUSH_JOB_ID = "credits-flush"


class RakkaApp:
    """Top-level application orchestrator."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.credits = CreditStore(
            config.credits.file_path, config.credits.global_limit, config.credits.master_key
        )
        self.context = ContextStore(config.bot.max_history, config.bot.max_conversations)
        self.provider = create_provider(config.llm)
        self.commands = CommandRegistry()
        self.scheduler = SchedulerService(config.scheduler)
        self.http = httpx.AsyncClient(timeout=LOOKUP_TIMEOUT, follow_redirects=True)
        self.router = MessageRouter(
            bot_config=config.bot,
            provider=self.provider,
            credits=self.credits,
            context=self.context,
            commands=self.commands,
            http=self.http,
            scheduler=self.scheduler,
            request_timeout=config.llm.request_timeout,
        )
        self.adapters = AdapterRegistry()

    async def start(self) -> None:
        """Initialize and start all components."""
        # 1. Commands
        self.commands.discover_and_register()

        # 2. Scheduler and the periodic credit flush
        await self.scheduler.start()
        self.scheduler.add_interval_job(
            self._flush_credits, self.config.credits.flush_interval, job_id=CREDIT_FLUSH_JOB_ID
        )

        # 3. Platform adapters
        for platform_cfg in self.config.platforms:
            if not platform_cfg.enabled:
                logger.info("platform_disabled", adapter_id=platform_cfg.id)
                continue
            try:
                adapter = self._create_adapter(platform_cfg)
                adapter.on_message(self.router.dispatch)
                await adapter.start()
                self.adapters.register(platform_cfg.id, adapter)
                logger.info("platform_started", adapter_id=platform_cfg.id, platform=platform_cfg.platform)
            except Exception as e:
                logger.error("platform_start_failed", adapter_id=platform_cfg.id, error=str(e))

        if not len(self.adapters):
            logger.warning("no_platforms_running")
        logger.info(
            "rakka_started",
            name=self.config.bot.name,
            provider=self.provider.provider_id,
            model=self.provider.model_name,
            platforms=self.adapters.ids(),
        )

    async def stop(self) -> None:
        """Gracefully shut down all components."""
        for adapter in self.adapters.all():
            try:
                await adapter.stop()
            except Exception as e:
                logger.error("platform_stop_error", platform=adapter.platform_name, error=str(e))
        self.adapters.clear()

        await self.router.drain(timeout=self.config.llm.request_timeout)
        await self.scheduler.stop()

        try:
            self.credits.flush(force=True)
        except CreditStoreError as e:
            logger.error("final_credit_flush_failed", error=str(e))

        await self.provider.aclose()
        await self.http.aclose()
        logger.info("rakka_stopped")

    def _flush_credits(self) -> None:
        try:
            self.credits.flush()
        except CreditStoreError as e:
            logger.warning("credit_flush_deferred", error=str(e))

    def _create_adapter(self, cfg: PlatformConfig) -> MessengerAdapter:
        match cfg.platform:
            case "telegram":
                from rakka.messenger.telegram import TelegramAdapter

                return TelegramAdapter(cfg.id, cfg.model_dump(), self.config.bot.name)
            case "discord":
                from rakka.messenger.discord_adapter import DiscordAdapter

                return DiscordAdapter(cfg.id, cfg.model_dump(), self.config.bot.name)
            case _:
                raise ValueError(f"Unknown platform: {cfg.platform}")
