from agents.base import ChatModel, OpenAIActor
from agents.functions import (
    FunctionCallError,
    SchemaError,
    add_function,
    add_function_multi,
    inline_refs,
    to_openai_schema,
)

__all__ = [
    "ChatModel",
    "FunctionCallError",
    "OpenAIActor",
    "SchemaError",
    "add_function",
    "add_function_multi",
    "inline_refs",
    "to_openai_schema",
]
