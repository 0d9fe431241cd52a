"""Abstract pipeline node shared by steps and combinators."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from memory.store import ReadOnlyStore
from pipeline.chat import Chat

# Predicate over the store, used by While and If.
Condition = Callable[[ReadOnlyStore], bool]


class Pipeline(ABC):
    """A composable operation on a Chat.

    Pipelines are built once and may be executed against any number of
    chats.  ``execute`` raises on failure.
    """

    @abstractmethod
    def execute(self, chat: Chat) -> None:
        ...

    @abstractmethod
    def trims(self) -> bool:
        """Whether running this pipeline discards the prior history."""
