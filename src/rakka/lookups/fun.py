"""Random-answer generators."""

from __future__ import annotations

import random

MAGIC_ANSWERS = (
    "It is certain.", "It is decidedly so.", "Without a doubt.", "Yes definitely.",
    "You may rely on it.", "As I see it, yes.", "Most likely.", "Outlook good.",
    "Yes.", "Signs point to yes.", "Reply hazy, try again.", "Ask again later.",
    "Better not tell you now.", "Cannot predict now.", "Concentrate and ask again.",
    "Don't count on it.", "My reply is no.", "My sources say no.",
    "Outlook not so good.", "Very doubtful.",
)


def magic_8ball(question: str, rng: random.Random | None = None) -> str:
    answer = (rng or random).choice(MAGIC_ANSWERS)
    return f"🎱 **Question:** {question}\n**Answer:** {answer}"


def russian_roulette(user: str, rng: random.Random | None = None) -> str:
    if (rng or random).randrange(6) == 0:
        return f"💥 **BANG!** {user} is dead. (F in chat)"
    return f"😌 **Click.** {user} survives... for now."
