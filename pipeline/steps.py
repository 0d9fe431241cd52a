"""Leaf pipeline steps: fixed messages and actor invocations."""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Sequence
from typing import Callable

from memory.ids import actor_ids
from memory.store import Store, StoreTypeError
from pipeline.base import Pipeline
from pipeline.chat import USER_ACTOR_ID, Chat, Message, Role

logger = logging.getLogger(__name__)

# Backoff before retry n (0-based) is BACKOFF_BASE_SECONDS * 2**n.
BACKOFF_BASE_SECONDS = 1.0

ActorFn = Callable[[Sequence[Message], Store], list[Message]]
TextActorFn = Callable[[Sequence[Message], Store], str]
Echo = Callable[[Message], None]


class StaticStep(Pipeline):
    """Writes one fixed message, optionally after clearing the history."""

    def __init__(self, role: Role, content: str, trim: bool = False):
        self.role = role
        self.content = content
        self.trim = trim

    def execute(self, chat: Chat) -> None:
        if self.trim:
            chat.trim()
        chat.write(Message(role=self.role, content=self.content, actor_id=USER_ACTOR_ID))

    def trims(self) -> bool:
        return self.trim

    def __repr__(self) -> str:
        return f"StaticStep({self.role}, {self.content!r}, trim={self.trim})"


def user_prompt(message: str, trim: bool = False) -> StaticStep:
    """Return a step that writes *message* to the chat as the user."""
    return StaticStep(Role.USER, message, trim=trim)


class Actor:
    """A conversation participant.

    ``fn`` receives a snapshot of the history and the chat's Store and
    returns the new messages, raising on failure.  Every message the actor
    produces is stamped with its ``actor_id``.
    """

    def __init__(self, role: Role, fn: ActorFn):
        if fn is None:
            raise ValueError("Actor requires a function")
        self.actor_id = actor_ids.allocate()
        self.role = role
        self.fn = fn

    @classmethod
    def from_text(cls, role: Role, fn: TextActorFn) -> Actor:
        """Build an actor from a function returning a single reply string."""
        if fn is None:
            raise ValueError("Actor requires a function")

        def wrapped(history: Sequence[Message], store: Store) -> list[Message]:
            return [Message(role=role, content=fn(history, store))]

        return cls(role, wrapped)

    def pipeline(
        self,
        echo: Echo | None = None,
        trim: bool = False,
        retry_limit: int = 0,
    ) -> ActorStep:
        """Wrap the actor in an executable step.

        *retry_limit* below 1 means a single attempt.  *echo* is called
        with every message before it is written.
        """
        return ActorStep(self, echo=echo, trim=trim, retry_limit=retry_limit)

    def __repr__(self) -> str:
        return f"Actor(id={self.actor_id}, role={self.role})"


class ActorStep(Pipeline):
    """Runs an actor with retries and exponential backoff."""

    def __init__(
        self,
        actor: Actor,
        echo: Echo | None = None,
        trim: bool = False,
        retry_limit: int = 0,
    ):
        self.actor = actor
        self.echo = echo
        self.trim = trim
        self.retry_limit = retry_limit

    def execute(self, chat: Chat) -> None:
        history = chat.history()
        attempts = max(1, self.retry_limit)

        for attempt in range(attempts):
            try:
                messages = self.actor.fn(history, chat.store)
                break
            except StoreTypeError:
                raise
            except Exception as exc:
                logger.warning(
                    "Actor %d failed (attempt %d/%d): %s",
                    self.actor.actor_id,
                    attempt + 1,
                    attempts,
                    exc,
                )
                if attempt == attempts - 1:
                    raise
                time.sleep(BACKOFF_BASE_SECONDS * 2**attempt)

        if self.trim:
            chat.trim()

        for message in messages:
            if self.echo is not None:
                self.echo(message)
            chat.write(dataclasses.replace(message, actor_id=self.actor.actor_id))

    def trims(self) -> bool:
        return self.trim
