"""Tool functions exposed to the model through OpenAI function calling.

Argument types are pydantic models.  Their JSON schema is flattened
(``$ref``s inlined, ``$defs`` dropped) and reduced to the subset of JSON
schema the chat-completions endpoint accepts.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel

from memory.store import Store, StoreTypeError
from pipeline.chat import Message, Role

if TYPE_CHECKING:
    from agents.base import OpenAIActor

M = TypeVar("M", bound=BaseModel)

_DEFS_PREFIX = "#/$defs/"
_COMPOSITE_KEYS = ("anyOf", "allOf", "oneOf")


class SchemaError(ValueError):
    """The argument schema cannot be converted for the model."""


class FunctionCallError(RuntimeError):
    """A tool call requested by the model could not be completed."""


@dataclass(frozen=True)
class FunctionCallId:
    """Metadata on a FUNCTION message: the tool call it answers."""

    id: str


@dataclass(frozen=True)
class ToolCallRecord:
    """Metadata on an ASSISTANT message: one tool call and its response count."""

    id: str
    name: str
    arguments: str
    responses: int


@dataclass
class Function:
    name: str
    definition: dict[str, Any]
    fn: Callable[[str, Store], list[Message]]


def call_function(functions: dict[str, Function], call_id: str, name: str, arguments: str, store: Store) -> list[Message]:
    """Run one tool call and tag each FUNCTION reply with its own call id.

    A call may yield several replies; the i-th is answered as
    ``{call_id}_{i}``, and the assistant message announcing the call is
    expanded the same way when the history is sent back.
    """
    function = functions.get(name)
    if function is None:
        raise FunctionCallError(f"function {name!r} not found")

    try:
        messages = function.fn(arguments, store)
    except StoreTypeError:
        raise
    except Exception as exc:
        raise FunctionCallError(f"error calling function {name}: {exc}") from exc

    tagged: list[Message] = []
    for i, message in enumerate(messages):
        if message.role == Role.FUNCTION:
            message = Message(
                role=message.role,
                content=message.content,
                model_metadata=FunctionCallId(f"{call_id}_{i}"),
            )
        tagged.append(message)
    return tagged


# ---------------------------------------------------------------------------
# Schema conversion
# ---------------------------------------------------------------------------


def _def_key(ref: str) -> str:
    if not ref.startswith(_DEFS_PREFIX) or len(ref) == len(_DEFS_PREFIX):
        raise SchemaError(f"unsupported ref format: {ref}")
    return ref[len(_DEFS_PREFIX):]


def _resolve(node: dict[str, Any], defs: dict[str, Any], seen: frozenset[str]) -> tuple[dict[str, Any], frozenset[str]]:
    ref = node.get("$ref")
    if ref is None:
        return node, seen
    key = _def_key(ref)
    if key in seen:
        raise SchemaError(f"recursive ref {ref!r} cannot be inlined")
    if key not in defs:
        raise SchemaError(f"ref {ref!r} not found in definitions")
    # Keywords next to the $ref (e.g. a field description) win.
    merged = {**defs[key], **{k: v for k, v in node.items() if k != "$ref"}}
    return _resolve(merged, defs, seen | {key})


def _inline(node: dict[str, Any], defs: dict[str, Any], seen: frozenset[str]) -> dict[str, Any]:
    node, seen = _resolve(node, defs, seen)
    out = {k: v for k, v in node.items() if k != "$defs"}

    if "properties" in node:
        out["properties"] = {
            name: _inline(prop, defs, seen) for name, prop in node["properties"].items()
        }
    if isinstance(node.get("items"), dict):
        out["items"] = _inline(node["items"], defs, seen)
    for key in _COMPOSITE_KEYS:
        if key in node:
            out[key] = [_inline(option, defs, seen) for option in node[key]]
    return out


def inline_refs(schema: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *schema* with every ``#/$defs/...`` ref inlined."""
    return _inline(schema, schema.get("$defs", {}), frozenset())


def to_openai_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Keep only the keywords the function-calling API understands."""
    if schema is None:
        raise SchemaError("schema is None")

    out: dict[str, Any] = {}
    for key in ("type", "description", "required", "enum", "format"):
        if schema.get(key):
            out[key] = schema[key]
    if schema.get("additionalProperties") is False:
        out["additionalProperties"] = False

    properties = schema.get("properties")
    if properties:
        out["properties"] = {name: to_openai_schema(prop) for name, prop in properties.items()}
    if schema.get("type") == "array" and isinstance(schema.get("items"), dict):
        out["items"] = to_openai_schema(schema["items"])
    if schema.get("anyOf"):
        out["anyOf"] = [to_openai_schema(option) for option in schema["anyOf"]]
    return out


def _close_objects(schema: dict[str, Any]) -> dict[str, Any]:
    out = dict(schema)
    if "properties" in out:
        out["additionalProperties"] = False
        out["properties"] = {name: _close_objects(prop) for name, prop in out["properties"].items()}
    if isinstance(out.get("items"), dict):
        out["items"] = _close_objects(out["items"])
    if "anyOf" in out:
        out["anyOf"] = [_close_objects(option) for option in out["anyOf"]]
    return out


def function_parameters(input_model: type[BaseModel]) -> dict[str, Any]:
    """Parameters schema for *input_model*; objects reject unknown fields."""
    return _close_objects(to_openai_schema(inline_refs(input_model.model_json_schema())))


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def add_function_multi(
    actor: OpenAIActor,
    name: str,
    description: str,
    input_model: type[M],
    fn: Callable[[M, Store], list[str]],
) -> None:
    """Register *fn*; every string it returns becomes one FUNCTION message."""

    def wrapped(arguments: str, store: Store) -> list[Message]:
        args = input_model.model_validate_json(arguments)
        return [Message(role=Role.FUNCTION, content=result) for result in fn(args, store)]

    actor.add_function(
        Function(
            name=name,
            definition={
                "name": name,
                "description": description,
                "parameters": function_parameters(input_model),
            },
            fn=wrapped,
        )
    )


def add_function(
    actor: OpenAIActor,
    name: str,
    description: str,
    input_model: type[M],
    fn: Callable[[M, Store], Any],
) -> None:
    """Register *fn*; its return value is sent back to the model as JSON."""

    def single(args: M, store: Store) -> list[str]:
        result = fn(args, store)
        if isinstance(result, BaseModel):
            return [result.model_dump_json()]
        return [json.dumps(result)]

    add_function_multi(actor, name, description, input_model, single)
