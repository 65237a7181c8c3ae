"""Emoji-reaction polls."""

from __future__ import annotations

import shlex
from dataclasses import dataclass

NUMBER_EMOJIS = ("1️⃣", "2️⃣", "3️⃣", "4️⃣", "5️⃣", "6️⃣", "7️⃣", "8️⃣", "9️⃣", "🔟")
POLL_USAGE = 'Usage: `poll "Question" "Option 1" "Option 2" ...`'


@dataclass(frozen=True, slots=True)
class Poll:
    question: str
    options: tuple[str, ...]

    def render(self) -> str:
        lines = [f"📊 **{self.question}**", ""]
        lines.extend(f"{NUMBER_EMOJIS[i]} {opt}" for i, opt in enumerate(self.options))
        return "\n".join(lines)


def parse_poll(args: list[str]) -> Poll:
    """Parse quoted poll arguments; raises ValueError with a user-facing message."""
    try:
        parts = [p.strip() for p in shlex.split(" ".join(args))]
    except ValueError:
        raise ValueError(POLL_USAGE) from None
    parts = [p for p in parts if p]
    if len(parts) < 3:
        raise ValueError(POLL_USAGE)
    options = tuple(parts[1:])
    if len(options) > len(NUMBER_EMOJIS):
        raise ValueError(f"Max {len(NUMBER_EMOJIS)} options allowed.")
    return Poll(question=parts[0], options=options)
