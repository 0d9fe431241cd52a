"""Tests for the OpenAI actor and tool-function plumbing.

All OpenAI calls are mocked so the suite runs with no API keys.
"""

from __future__ import annotations

import json
import unittest
from unittest.mock import MagicMock, patch

from pydantic import BaseModel, Field

from agents import (
    ChatModel,
    FunctionCallError,
    OpenAIActor,
    SchemaError,
    add_function,
    add_function_multi,
    inline_refs,
    to_openai_schema,
)
from agents.functions import FunctionCallId, ToolCallRecord
from memory.store import StoreTypeError, fresh_var
from pipeline import Chain, Chat, Message, Role, user_prompt


# ---------------------------------------------------------------------------
# Helpers – build fake OpenAI response objects
# ---------------------------------------------------------------------------

def _make_text_response(content: str) -> MagicMock:
    """Return a minimal fake ChatCompletion whose first choice is a text reply."""
    msg = MagicMock()
    msg.content = content
    msg.tool_calls = None

    choice = MagicMock()
    choice.finish_reason = "stop"
    choice.message = msg

    resp = MagicMock()
    resp.choices = [choice]
    return resp


def _make_tool_call_response(tool_name: str, tool_args: dict, call_id: str = "call_1") -> MagicMock:
    """Return a fake ChatCompletion that requests one tool call."""
    tool_call = MagicMock()
    tool_call.id = call_id
    tool_call.function.name = tool_name
    tool_call.function.arguments = json.dumps(tool_args)

    msg = MagicMock()
    msg.content = None
    msg.tool_calls = [tool_call]

    choice = MagicMock()
    choice.finish_reason = "tool_calls"
    choice.message = msg

    resp = MagicMock()
    resp.choices = [choice]
    return resp


def _client(*responses) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create.side_effect = list(responses)
    return client


def _sent_messages(client: MagicMock, call_index: int = -1) -> list[dict]:
    return client.chat.completions.create.call_args_list[call_index].kwargs["messages"]


class AddArgs(BaseModel):
    a: int
    b: int


class Address(BaseModel):
    city: str = Field(description="City name")


class Person(BaseModel):
    name: str
    address: Address
    previous: list[Address] = []


# ---------------------------------------------------------------------------
# OpenAIActor
# ---------------------------------------------------------------------------

class TestOpenAIActor(unittest.TestCase):
    def test_text_reply_written_to_chat(self):
        client = _client(_make_text_response("Hi there"))
        assistant = OpenAIActor(client=client)
        chat = Chat()
        Chain(user_prompt("Hello"), assistant.pipeline()).execute(chat)

        reply = chat.history()[-1]
        self.assertEqual(reply.role, Role.ASSISTANT)
        self.assertEqual(reply.content, "Hi there")
        self.assertEqual(reply.actor_id, assistant.actor.actor_id)
        self.assertEqual(reply.model_metadata, [])

    def test_request_shape(self):
        client = _client(_make_text_response("ok"))
        assistant = OpenAIActor(client=client, model=ChatModel.GPT_41_NANO, system_prompt="Be brief.", temperature=0.2)
        Chain(user_prompt("Hello"), assistant.pipeline()).execute(Chat())

        kwargs = client.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["model"], "gpt-4.1-nano")
        self.assertEqual(kwargs["temperature"], 0.2)
        self.assertNotIn("tools", kwargs)
        self.assertEqual(
            kwargs["messages"],
            [
                {"role": "system", "content": "Be brief."},
                {"role": "user", "content": "Hello"},
            ],
        )

    def test_default_client_uses_env_key(self):
        with patch("agents.base.OpenAI") as MockOpenAI, patch.dict("os.environ", {"OPENAI_API_KEY": "sk-test"}):
            assistant = OpenAIActor()
        MockOpenAI.assert_called_once_with(api_key="sk-test")
        self.assertIs(assistant.client, MockOpenAI.return_value)

    def test_tool_call_round_trip(self):
        client = _client(
            _make_tool_call_response("add", {"a": 1, "b": 2}, call_id="call_1"),
            _make_text_response("The sum is 3."),
        )
        assistant = OpenAIActor(client=client)
        add_function(assistant, "add", "Add two numbers", AddArgs, lambda args, store: args.a + args.b)

        chat = Chat()
        Chain(user_prompt("1+2?"), assistant.pipeline(), assistant.pipeline()).execute(chat)

        call_msg, result_msg, final = chat.history()[1:]
        self.assertEqual(call_msg.model_metadata, [ToolCallRecord("call_1", "add", '{"a": 1, "b": 2}', 1)])
        self.assertEqual(result_msg.role, Role.FUNCTION)
        self.assertEqual(result_msg.content, "3")
        self.assertEqual(result_msg.model_metadata, FunctionCallId("call_1_0"))
        self.assertEqual(final.content, "The sum is 3.")

        first_kwargs = client.chat.completions.create.call_args_list[0].kwargs
        self.assertEqual(first_kwargs["tool_choice"], "auto")
        self.assertEqual(first_kwargs["tools"][0]["function"]["name"], "add")

        sent = _sent_messages(client)
        self.assertEqual(sent[1]["tool_calls"][0]["id"], "call_1_0")
        self.assertEqual(sent[1]["tool_calls"][0]["function"]["name"], "add")
        self.assertEqual(sent[2], {"role": "tool", "tool_call_id": "call_1_0", "content": "3"})

    def test_multi_result_function_expands_ids(self):
        class Query(BaseModel):
            q: str

        client = _client(
            _make_tool_call_response("lookup", {"q": "x"}, call_id="c9"),
            _make_text_response("done"),
        )
        assistant = OpenAIActor(client=client)
        add_function_multi(assistant, "lookup", "Look up", Query, lambda args, store: ["r1", "r2"])

        chat = Chat()
        Chain(user_prompt("go"), assistant.pipeline(), assistant.pipeline()).execute(chat)

        ids = [m.model_metadata.id for m in chat.history() if m.role == Role.FUNCTION]
        self.assertEqual(ids, ["c9_0", "c9_1"])
        sent = _sent_messages(client)
        self.assertEqual([tc["id"] for tc in sent[1]["tool_calls"]], ["c9_0", "c9_1"])

    def test_tool_can_use_store(self):
        var = fresh_var(str)

        class Note(BaseModel):
            text: str

        def remember(args, store):
            store.set(var, args.text)
            return {"stored": True}

        client = _client(_make_tool_call_response("remember", {"text": "milk"}))
        assistant = OpenAIActor(client=client)
        add_function(assistant, "remember", "Remember a note", Note, remember)

        chat = Chat()
        assistant.pipeline().execute(chat)
        self.assertEqual(chat.store.get(var), ("milk", True))
        self.assertEqual(chat.history()[-1].content, '{"stored": true}')

    def test_pydantic_result_serialised(self):
        client = _client(_make_tool_call_response("whoami", {"city": "Oslo"}))
        assistant = OpenAIActor(client=client)
        add_function(assistant, "whoami", "Echo address", Address, lambda args, store: args)

        chat = Chat()
        assistant.pipeline().execute(chat)
        self.assertEqual(json.loads(chat.history()[-1].content), {"city": "Oslo"})

    def test_unknown_function_fails_step(self):
        client = _client(_make_tool_call_response("missing", {}))
        chat = Chat()
        with self.assertRaises(FunctionCallError):
            OpenAIActor(client=client).pipeline().execute(chat)
        self.assertEqual(chat.history(), ())

    def test_tool_exception_wrapped(self):
        def broken(args, store):
            raise ZeroDivisionError("no")

        client = _client(_make_tool_call_response("add", {"a": 1, "b": 0}))
        assistant = OpenAIActor(client=client)
        add_function(assistant, "add", "Add", AddArgs, broken)

        with self.assertRaises(FunctionCallError) as ctx:
            assistant.pipeline().execute(Chat())
        self.assertIsInstance(ctx.exception.__cause__, ZeroDivisionError)

    @patch("pipeline.steps.time.sleep")
    def test_store_type_error_from_tool_not_retried(self, sleep):
        count = fresh_var(int)

        def bad_store(args, store):
            store.set(count, "three")
            return {}

        client = _client(_make_tool_call_response("add", {"a": 1, "b": 2}))
        assistant = OpenAIActor(client=client)
        add_function(assistant, "add", "Add", AddArgs, bad_store)

        with self.assertRaises(StoreTypeError):
            assistant.pipeline(retry_limit=3).execute(Chat())
        self.assertEqual(client.chat.completions.create.call_count, 1)
        sleep.assert_not_called()

    @patch("pipeline.steps.time.sleep")
    def test_retry_after_api_error(self, sleep):
        client = _client(RuntimeError("rate limited"), _make_text_response("finally"))
        chat = Chat()
        OpenAIActor(client=client).pipeline(retry_limit=2).execute(chat)
        self.assertEqual(chat.history()[-1].content, "finally")
        sleep.assert_called_once_with(1.0)

    def test_no_choices_is_an_error(self):
        resp = MagicMock()
        resp.choices = []
        with self.assertRaises(RuntimeError):
            OpenAIActor(client=_client(resp)).pipeline().execute(Chat())

    def test_orphaned_tool_result_sent_as_user(self):
        client = _client(_make_text_response("ok"))
        chat = Chat()
        chat.write(Message(role=Role.FUNCTION, content="42", model_metadata=FunctionCallId("gone_0")))
        OpenAIActor(client=client).pipeline().execute(chat)
        self.assertEqual(_sent_messages(client), [{"role": "user", "content": "42"}])

    def test_function_message_without_metadata_rejected(self):
        chat = Chat()
        chat.write(Message(role=Role.FUNCTION, content="42"))
        with self.assertRaises(ValueError):
            OpenAIActor(client=_client(_make_text_response("x"))).pipeline().execute(chat)


# ---------------------------------------------------------------------------
# Schema conversion
# ---------------------------------------------------------------------------

class TestSchema(unittest.TestCase):
    def test_inline_refs_removes_defs(self):
        schema = inline_refs(Person.model_json_schema())
        self.assertNotIn("$defs", schema)
        self.assertNotIn("$ref", json.dumps(schema))
        self.assertEqual(schema["properties"]["address"]["properties"]["city"]["type"], "string")
        self.assertEqual(schema["properties"]["previous"]["items"]["properties"]["city"]["type"], "string")

    def test_top_level_ref(self):
        schema = {"$ref": "#/$defs/A", "$defs": {"A": {"type": "object", "properties": {"x": {"type": "integer"}}}}}
        self.assertEqual(inline_refs(schema), {"type": "object", "properties": {"x": {"type": "integer"}}})

    def test_bad_refs(self):
        with self.assertRaises(SchemaError):
            inline_refs({"$ref": "#/definitions/A"})
        with self.assertRaises(SchemaError):
            inline_refs({"type": "object", "properties": {"a": {"$ref": "#/$defs/Missing"}}})

    def test_recursive_ref(self):
        schema = {
            "$defs": {"Node": {"type": "object", "properties": {"child": {"$ref": "#/$defs/Node"}}}},
            "$ref": "#/$defs/Node",
        }
        with self.assertRaises(SchemaError):
            inline_refs(schema)

    def test_openai_subset(self):
        schema = to_openai_schema(inline_refs(Person.model_json_schema()))
        self.assertNotIn("title", schema)
        self.assertEqual(schema["type"], "object")
        self.assertEqual(set(schema["required"]), {"name", "address"})
        self.assertEqual(
            schema["properties"]["address"],
            {
                "type": "object",
                "required": ["city"],
                "properties": {"city": {"type": "string", "description": "City name"}},
            },
        )

    def test_registered_parameters_reject_unknown_fields(self):
        assistant = OpenAIActor(client=MagicMock())
        add_function(assistant, "save", "Save a person", Person, lambda args, store: None)

        params = assistant.functions["save"].definition["parameters"]
        self.assertIs(params["additionalProperties"], False)
        self.assertIs(params["properties"]["address"]["additionalProperties"], False)
        self.assertIs(params["properties"]["previous"]["items"]["additionalProperties"], False)
        self.assertNotIn("additionalProperties", params["properties"]["name"])

    def test_optional_field_keeps_any_of(self):
        class Reminder(BaseModel):
            text: str
            minutes: int | None = None

        schema = to_openai_schema(inline_refs(Reminder.model_json_schema()))
        self.assertEqual(
            schema["properties"]["minutes"]["anyOf"],
            [{"type": "integer"}, {"type": "null"}],
        )

    def test_none_schema(self):
        with self.assertRaises(SchemaError):
            to_openai_schema(None)


if __name__ == "__main__":
    unittest.main(verbosity=2)
