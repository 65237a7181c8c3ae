"""CLI entry point for rakka."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from rakka.app import RakkaApp
from rakka.config import load_config
from rakka.log import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="rakka",
        description="Multi-platform chat bot with pluggable LLM backends",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # start command
    start_parser = subparsers.add_parser("start", help="Start the bot")
    start_parser.add_argument(
        "-c", "--config", default="config.yaml", help="Path to config file"
    )
    start_parser.add_argument(
        "-e", "--env", default=".env", help="Path to .env file"
    )

    # config-check command
    check_parser = subparsers.add_parser("config-check", help="Validate configuration")
    check_parser.add_argument(
        "-c", "--config", default="config.yaml", help="Path to config file"
    )
    check_parser.add_argument(
        "-e", "--env", default=".env", help="Path to .env file"
    )

    args = parser.parse_args()

    if args.command is None:
        # Default to start
        args.command = "start"
        args.config = "config.yaml"
        args.env = ".env"

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "start":
        _run(args.config, args.env)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    try:
        config = load_config(config_path, env_path)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Configuration valid: {config_path}")
    print(f"  Bot name: {config.bot.name} (history: {config.bot.max_history} exchanges)")
    print(f"  LLM: {config.llm.provider} [{config.llm.model}]")
    print(f"  Shared API key: {'set' if config.llm.api_key else 'missing'}")
    print(f"  Credits: {config.credits.file_path} (limit {config.credits.global_limit} tokens)")
    print(f"  Platforms configured: {len(config.platforms)}")
    for platform in config.platforms:
        state = "enabled" if platform.enabled else "disabled"
        print(f"    - {platform.id} ({platform.platform}) [{state}]")


def _run(config_path: str, env_path: str) -> None:
    """Load config and start the application."""
    try:
        config = load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'python install.py' first or copy config.example.yaml to config.yaml")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_level)

    async def _async_main() -> None:
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        def _signal_handler() -> None:
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _signal_handler)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(_signal_handler))

        app = RakkaApp(config)
        try:
            await app.start()
            await stop_event.wait()
        finally:
            await app.stop()

    try:
        asyncio.run(_async_main())
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
