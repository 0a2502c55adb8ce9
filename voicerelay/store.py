"""Conversation store — per-chat transcript and prompt-edit state.

One store is created at process start and handed to the dispatcher.
State lives for the process lifetime; nothing is persisted or evicted.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from .prompts import build_system_prompt

logger = logging.getLogger("voicerelay.store")

ROLES = ("user", "assistant")


@dataclass(frozen=True)
class Turn:
    role: str           # 'user' or 'assistant'
    content: str

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Invalid role: {self.role!r}")
        if not self.content:
            raise ValueError("Turn content must not be empty")

    def to_message(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class ConversationState:
    """State for a single chat."""
    history: list[Turn] = field(default_factory=list)
    prompt_override: Optional[str] = None
    awaiting_prompt: bool = False

    @property
    def effective_prompt(self) -> str:
        """System prompt for the next completion call."""
        return build_system_prompt(self.prompt_override)


class ConversationStore:
    """In-memory conversation state keyed by chat id.

    Also hands out one asyncio.Lock per chat so events for the same chat
    are processed one at a time while different chats run in parallel.
    """

    def __init__(self):
        self._states: dict[str, ConversationState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @staticmethod
    def _key(chat_id) -> str:
        return str(chat_id)

    def get(self, chat_id) -> ConversationState:
        """Get the state for a chat, creating the default state if unseen."""
        key = self._key(chat_id)
        state = self._states.get(key)
        if state is None:
            state = ConversationState()
            self._states[key] = state
            logger.debug(f"New conversation {key}")
        return state

    def append_turn(self, chat_id, role: str, content: str) -> Turn:
        turn = Turn(role=role, content=content)
        self.get(chat_id).history.append(turn)
        return turn

    def history(self, chat_id) -> list[Turn]:
        """Snapshot of the chat history, in insertion order."""
        return list(self.get(chat_id).history)

    def set_prompt_override(self, chat_id, text: Optional[str]):
        """Set the custom persona prompt. Empty or whitespace-only clears it."""
        value = text.strip() if text else ""
        self.get(chat_id).prompt_override = value or None

    def set_awaiting_prompt(self, chat_id, flag: bool):
        self.get(chat_id).awaiting_prompt = flag

    def lock(self, chat_id) -> asyncio.Lock:
        key = self._key(chat_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __contains__(self, chat_id) -> bool:
        return self._key(chat_id) in self._states

    def __len__(self) -> int:
        return len(self._states)
