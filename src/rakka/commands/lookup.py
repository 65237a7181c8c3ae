"""Pass-through commands for the stateless lookup and fun collaborators."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from rakka.log import get_logger
from rakka.lookups import anilist, fun, urban, wiki
from rakka.lookups.poll import NUMBER_EMOJIS, parse_poll
from rakka.lookups.reminders import REMINDER_USAGE, format_duration, parse_duration, reminder_text

if TYPE_CHECKING:
    from rakka.commands.registry import CommandContext, CommandRegistry
    from rakka.messenger.base import Responder

logger = get_logger(__name__)


async def help_command(ctx: CommandContext) -> None:
    commands = ctx.registry.all_commands() if ctx.registry else []
    lines = ["Commands:"]
    lines.extend(f"`{ctx.prefix} {c.usage or c.name}`" for c in commands)
    lines.append(f"Or just mention {ctx.bot_name} to chat with me!")
    await ctx.reply("\n".join(lines))


async def anime(ctx: CommandContext) -> None:
    if not ctx.args:
        await ctx.reply(f"Usage: `{ctx.prefix} anime <title>`")
        return
    await ctx.reply(await anilist.get_anime_info(ctx.http, " ".join(ctx.args)))


async def manga(ctx: CommandContext) -> None:
    if not ctx.args:
        await ctx.reply(f"Usage: `{ctx.prefix} manga <title>`")
        return
    await ctx.reply(await anilist.get_manga_info(ctx.http, " ".join(ctx.args)))


async def wiki_command(ctx: CommandContext) -> None:
    if not ctx.args:
        await ctx.reply(f"Usage: `{ctx.prefix} wiki <term>`")
        return
    await ctx.reply(await wiki.get_wiki_summary(ctx.http, " ".join(ctx.args)))


async def urban_command(ctx: CommandContext) -> None:
    if not ctx.args:
        await ctx.reply(f"Usage: `{ctx.prefix} urban <term>`")
        return
    await ctx.reply(await urban.get_urban_definition(ctx.http, " ".join(ctx.args)))


async def eight_ball(ctx: CommandContext) -> None:
    if not ctx.args:
        await ctx.reply(f"Usage: `{ctx.prefix} 8ball <question>`")
        return
    await ctx.reply(fun.magic_8ball(" ".join(ctx.args)))


async def roulette(ctx: CommandContext) -> None:
    await ctx.reply(fun.russian_roulette(ctx.message.user_display_name))


async def _deliver_reminder(responder: Responder, chat_id: str, text: str) -> None:
    if await responder.send_text(chat_id, text) is None:
        logger.warning("reminder_delivery_failed", chat_id=chat_id)


async def remind(ctx: CommandContext) -> None:
    if len(ctx.args) < 2:
        await ctx.reply(REMINDER_USAGE)
        return
    if ctx.scheduler is None:
        await ctx.reply("Reminders are not available right now.")
        return
    try:
        delay = parse_duration(ctx.args[0])
    except ValueError as e:
        await ctx.reply(f"⚠️ {e}")
        return

    message = " ".join(ctx.args[1:])
    ctx.scheduler.add_one_shot_job(
        run_at=datetime.now(timezone.utc) + delay,
        callback=_deliver_reminder,
        responder=ctx.responder,
        chat_id=ctx.message.chat_id,
        text=reminder_text(ctx.message.user_display_name, message),
    )
    await ctx.reply(f'⏰ I\'ll remind you in {format_duration(delay)}: "{message}"')


async def poll(ctx: CommandContext) -> None:
    try:
        parsed = parse_poll(ctx.args)
    except ValueError as e:
        await ctx.reply(str(e))
        return

    message_id = await ctx.reply(parsed.render())
    if message_id is None:
        return
    for emoji in NUMBER_EMOJIS[: len(parsed.options)]:
        await ctx.responder.send_reaction(ctx.message.chat_id, message_id, emoji)


def register(registry: CommandRegistry) -> None:
    registry.register("help", help_command, "help")
    registry.register("anime", anime, "anime <title>")
    registry.register("manga", manga, "manga <title>")
    registry.register("wiki", wiki_command, "wiki <term>")
    registry.register("urban", urban_command, "urban <term>")
    registry.register("8ball", eight_ball, "8ball <question>")
    registry.register("roulette", roulette, "roulette")
    registry.register("remind", remind, "remind <duration> <message>")
    registry.register("poll", poll, 'poll "Question" "Option 1" "Option 2" ...')
