"""Per-(chat, user) rolling conversation memory."""

from __future__ import annotations

import threading
from collections import OrderedDict, deque
from dataclasses import dataclass

from rakka.log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Turn:
    role: str
    content: str


class ContextStore:
    """Bounded in-memory history, one thread per (chat, user) pair.

    Each conversation keeps at most ``2 * max_history`` turns (one user and one
    assistant turn per exchange), dropping the oldest first. The number of
    tracked conversations is capped at ``max_conversations``; the least
    recently used one is forgotten when the cap is exceeded. Nothing is
    persisted.
    """

    def __init__(self, max_history: int, max_conversations: int = 1000):
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self._max_turns = max_history * 2
        self._max_conversations = max_conversations
        self._conversations: OrderedDict[str, deque[Turn]] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def conversation_key(chat_id: str, user_id: str) -> str:
        return f"{chat_id}|{user_id}"

    @property
    def max_turns(self) -> int:
        return self._max_turns

    def add_message(self, chat_id: str, user_id: str, role: str, content: str) -> None:
        key = self.conversation_key(chat_id, user_id)
        with self._lock:
            turns = self._conversations.get(key)
            if turns is None:
                turns = deque(maxlen=self._max_turns)
                self._conversations[key] = turns
                if len(self._conversations) > self._max_conversations:
                    evicted, _ = self._conversations.popitem(last=False)
                    logger.debug("conversation_evicted", key=evicted)
            else:
                self._conversations.move_to_end(key)
            turns.append(Turn(role=role, content=content))

    def turns(self, chat_id: str, user_id: str) -> list[Turn]:
        key = self.conversation_key(chat_id, user_id)
        with self._lock:
            turns = self._conversations.get(key)
            if turns is None:
                return []
            self._conversations.move_to_end(key)
            return list(turns)

    def get_history(self, chat_id: str, user_id: str) -> str:
        """Render the history as ``role: content`` lines, oldest first."""
        return "\n".join(f"{t.role}: {t.content}" for t in self.turns(chat_id, user_id))

    def clear(self, chat_id: str, user_id: str) -> None:
        key = self.conversation_key(chat_id, user_id)
        with self._lock:
            self._conversations.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._conversations)
