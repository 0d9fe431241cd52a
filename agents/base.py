"""OpenAI-backed actor: turns a conversation snapshot into model replies."""

from __future__ import annotations

import enum
import logging
import os
from collections.abc import Sequence
from typing import Any

from openai import OpenAI

from agents.functions import Function, FunctionCallId, ToolCallRecord, call_function
from memory.store import Store
from pipeline.chat import Message, Role
from pipeline.steps import Actor, ActorStep, Echo

logger = logging.getLogger(__name__)


class ChatModel(str, enum.Enum):
    GPT_4O = "gpt-4o"
    GPT_4O_MINI = "gpt-4o-mini"
    GPT_41 = "gpt-4.1"
    GPT_41_MINI = "gpt-4.1-mini"
    GPT_41_NANO = "gpt-4.1-nano"


class OpenAIActor:
    """Assistant actor that calls the chat-completions API.

    Tool functions registered with ``agents.functions.add_function`` are
    offered to the model; when the model calls one, the function runs
    locally and its result is appended after the assistant message.  The
    tool-call bookkeeping travels in ``Message.model_metadata`` so the next
    request can replay the exchange.

    Parameters
    ----------
    client:
        Optional OpenAI client.  A new client is created if omitted.
    model:
        Chat model name.
    system_prompt:
        Sent as the first message of every request when non-empty.
    temperature:
        Sampling temperature; the API default is used when ``None``.
    """

    def __init__(
        self,
        client: OpenAI | None = None,
        model: ChatModel | str = ChatModel.GPT_4O_MINI,
        system_prompt: str = "",
        temperature: float | None = None,
    ):
        self.client = client or OpenAI(api_key=os.environ.get("OPENAI_API_KEY", ""))
        self.model = model.value if isinstance(model, ChatModel) else model
        self.system_prompt = system_prompt
        self.temperature = temperature
        self.functions: dict[str, Function] = {}
        self._actor = Actor(Role.ASSISTANT, self._ask)

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @property
    def actor(self) -> Actor:
        return self._actor

    def pipeline(self, echo: Echo | None = None, trim: bool = False, retry_limit: int = 0) -> ActorStep:
        return self._actor.pipeline(echo=echo, trim=trim, retry_limit=retry_limit)

    def add_function(self, function: Function) -> None:
        if function.name in self.functions:
            logger.warning("Replacing function %r", function.name)
        self.functions[function.name] = function

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _to_wire(self, history: Sequence[Message]) -> list[dict[str, Any]]:
        """Translate the history into chat-completions messages."""
        messages: list[dict[str, Any]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})

        announced: set[str] = set()
        for msg in history:
            if msg.role == Role.ASSISTANT:
                wire: dict[str, Any] = {"role": "assistant", "content": msg.content}
                tool_calls = []
                if isinstance(msg.model_metadata, list):
                    for record in msg.model_metadata:
                        for i in range(record.responses):
                            call_id = f"{record.id}_{i}"
                            announced.add(call_id)
                            tool_calls.append(
                                {
                                    "id": call_id,
                                    "type": "function",
                                    "function": {"name": record.name, "arguments": record.arguments},
                                }
                            )
                if tool_calls:
                    wire["tool_calls"] = tool_calls
                messages.append(wire)
            elif msg.role == Role.FUNCTION:
                if not isinstance(msg.model_metadata, FunctionCallId):
                    raise ValueError("function message without a tool call id")
                if msg.model_metadata.id in announced:
                    messages.append(
                        {"role": "tool", "tool_call_id": msg.model_metadata.id, "content": msg.content}
                    )
                else:
                    # The announcing assistant message was trimmed away.
                    messages.append({"role": "user", "content": msg.content})
            else:
                messages.append({"role": "user", "content": msg.content})
        return messages

    def _chat(self, messages: list[dict[str, Any]]) -> Any:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
        }
        if self.functions:
            kwargs["tools"] = [
                {"type": "function", "function": fn.definition} for fn in self.functions.values()
            ]
            kwargs["tool_choice"] = "auto"
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        return self.client.chat.completions.create(**kwargs)

    def _ask(self, history: Sequence[Message], store: Store) -> list[Message]:
        response = self._chat(self._to_wire(history))
        if not response.choices:
            raise RuntimeError("model returned no choices")

        replies: list[Message] = []
        for choice in response.choices:
            records: list[ToolCallRecord] = []
            results: list[Message] = []
            for tool_call in choice.message.tool_calls or []:
                logger.debug("Model called %s(%s)", tool_call.function.name, tool_call.function.arguments)
                messages = call_function(
                    self.functions,
                    tool_call.id,
                    tool_call.function.name,
                    tool_call.function.arguments,
                    store,
                )
                records.append(
                    ToolCallRecord(
                        id=tool_call.id,
                        name=tool_call.function.name,
                        arguments=tool_call.function.arguments,
                        responses=len(messages),
                    )
                )
                results.extend(messages)

            replies.append(
                Message(
                    role=Role.ASSISTANT,
                    content=choice.message.content or "",
                    model_metadata=records,
                )
            )
            replies.extend(results)
        return replies
