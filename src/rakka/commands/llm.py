"""Commands managing a user's LLM access: personal keys, usage, history, features."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rakka.errors import CreditStoreError
from rakka.log import get_logger

if TYPE_CHECKING:
    from rakka.commands.registry import CommandContext, CommandHandler, CommandRegistry

logger = get_logger(__name__)

FEATURES = ("search",)


async def setkey(ctx: CommandContext) -> None:
    if len(ctx.args) != 1:
        await ctx.reply(f"Usage: `{ctx.prefix} setkey <your_api_key>`")
        return
    try:
        ctx.credits.set_user_api_key(ctx.message.user_id, ctx.args[0])
    except CreditStoreError:
        await ctx.reply("Failed to securely save API key. Please try again later.")
        return
    await ctx.reply("✅ Your API key has been set securely.")


async def stats(ctx: CommandContext) -> None:
    tokens, has_key = ctx.credits.get_user_stats(ctx.message.user_id)
    text = f"Tokens used: {tokens}"
    if has_key:
        text += " (using your own API key)"
    else:
        text += f" (global limit: {ctx.credits.global_limit})"
    await ctx.reply(text)


async def clear(ctx: CommandContext) -> None:
    ctx.context.clear(ctx.message.chat_id, ctx.message.user_id)
    await ctx.reply("✅ Your conversation history has been cleared.")


async def _toggle(ctx: CommandContext, enabled: bool) -> None:
    verb = "enable" if enabled else "disable"
    if len(ctx.args) != 1:
        await ctx.reply(f"Usage: `{ctx.prefix} {verb} <feature>` (available: {', '.join(FEATURES)})")
        return
    feature = ctx.args[0].lower()
    if feature not in FEATURES:
        await ctx.reply(f"Unknown feature. Available: {', '.join(f'`{f}`' for f in FEATURES)}")
        return
    try:
        ctx.credits.set_search_enabled(ctx.message.user_id, enabled)
    except CreditStoreError:
        await ctx.reply("Failed to save your settings. Please try again later.")
        return
    icon = "✅" if enabled else "🚫"
    await ctx.reply(f"{icon} Feature `{feature}` has been {verb}d for you.")


async def enable(ctx: CommandContext) -> None:
    await _toggle(ctx, True)


async def disable(ctx: CommandContext) -> None:
    await _toggle(ctx, False)


SUBCOMMANDS: dict[str, CommandHandler] = {
    "setkey": setkey,
    "stats": stats,
    "clear": clear,
    "enable": enable,
    "disable": disable,
}


async def llm(ctx: CommandContext) -> None:
    """`llm <subcommand> ...` grouping of the commands above."""
    if not ctx.args:
        await ctx.reply(
            f"Usage: `{ctx.prefix} llm <subcommand> <args>`\n"
            f"Subcommands: {', '.join(f'`{s}`' for s in SUBCOMMANDS)}"
        )
        return
    handler = SUBCOMMANDS.get(ctx.args[0].lower())
    if handler is None:
        await ctx.reply("Unknown llm subcommand.")
        return
    await handler(ctx.with_args(ctx.args[1:]))


def register(registry: CommandRegistry) -> None:
    registry.register("setkey", setkey, "setkey <your_api_key>")
    registry.register("stats", stats, "stats")
    registry.register("clear", clear, "clear")
    registry.register("enable", enable, "enable search")
    registry.register("disable", disable, "disable search")
    registry.register("llm", llm, "llm <setkey|stats|clear|enable|disable> ...")
