"""Rules deciding whether a chat message is meant for the bot."""

from __future__ import annotations

import re


class Addressing:
    """Matches the `!<name>` command prefix and whole-word name mentions."""

    def __init__(self, bot_name: str):
        self.prefix = "!" + bot_name.lower()
        self._name_pattern = re.compile(rf"(?<![\w@])@?{re.escape(bot_name)}(?!\w)[:,]?", re.IGNORECASE)

    def has_command_prefix(self, text: str) -> bool:
        tokens = text.split(maxsplit=1)
        return bool(tokens) and tokens[0].lower() == self.prefix

    def is_addressed(self, text: str) -> bool:
        return self.has_command_prefix(text) or self._name_pattern.search(text) is not None

    def strip(self, text: str) -> str:
        """Remove the command prefix and name mentions, leaving the question."""
        if self.has_command_prefix(text):
            parts = text.split(maxsplit=1)
            text = parts[1] if len(parts) > 1 else ""
        text = self._name_pattern.sub("", text)
        return re.sub(r"[ \t]{2,}", " ", text).strip()
