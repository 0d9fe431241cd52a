"""Conversation state threaded through a pipeline: history plus a Store."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any

from memory.store import Store

logger = logging.getLogger(__name__)

MAX_HISTORY_LENGTH = 1000

# Messages written by static steps carry this actor id.
USER_ACTOR_ID = 0


class Role(enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"
    FUNCTION = "function"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Message:
    """A single conversation message.

    ``model_metadata`` belongs to whichever backend adapter produced the
    message (tool-call ids and the like); the engine never looks at it.
    ``actor_id`` is filled in by the engine when the message is written.
    """

    role: Role
    content: str
    model_metadata: Any = None
    actor_id: int = USER_ACTOR_ID


class Chat:
    """Mutable state of one conversation.

    The history is bounded: once it reaches ``MAX_HISTORY_LENGTH`` only the
    newest half is kept.  ``write``, ``trim`` and ``branch`` are meant for
    pipeline steps and combinators; callers read through ``history()``.
    """

    def __init__(self, store: Store | None = None) -> None:
        self._history: list[Message] = []
        self._store = store if store is not None else Store()
        # Index of the first message written since this chat was branched.
        self._offset_unique = 0

    def history(self) -> tuple[Message, ...]:
        """Return a snapshot of the history, unaffected by later writes."""
        return tuple(self._history)

    @property
    def store(self) -> Store:
        return self._store

    def write(self, message: Message) -> None:
        self._history.append(message)
        if len(self._history) < MAX_HISTORY_LENGTH:
            return

        keep = MAX_HISTORY_LENGTH // 2
        dropped = len(self._history) - keep
        self._history = self._history[dropped:]
        self._offset_unique = max(0, self._offset_unique - dropped)
        logger.debug("History truncated: dropped %d message(s)", dropped)

    def trim(self) -> None:
        self._history = []
        self._offset_unique = 0

    def branch(self) -> Chat:
        """Copy the history into a new chat that shares this chat's Store.

        Nothing in the copy counts as new until the branch writes to it.
        """
        clone = Chat(store=self._store)
        clone._history = list(self._history)
        clone._offset_unique = len(clone._history)
        return clone

    def unique_messages(self) -> list[Message]:
        """Messages written since the chat was branched (or last trimmed)."""
        return self._history[self._offset_unique:]

    def __len__(self) -> int:
        return len(self._history)
