"""Interactive chat demo built from pipeline combinators.

Usage
-----
    # With a real model:
    export OPENAI_API_KEY=sk-...
    python main.py --system-prompt "You are a terse assistant."

    # Offline / stub mode (no API key required):
    python main.py --stub

Each turn reads one line from stdin and answers it.  The conversation ends
on end of input, or when the model calls the ``end_conversation`` tool.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Sequence

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from agents import ChatModel, OpenAIActor, add_function
from memory.store import ReadOnlyStore, Store, fresh_var
from pipeline import Actor, Chain, Chat, Message, Role, While
from tools import echoln, stdin_actor

logger = logging.getLogger(__name__)

keep_going = fresh_var(bool, default=True)


class EndConversation(BaseModel):
    reason: str = Field(description="Why the conversation is over.")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Chat with a language model through a pipeline of actors",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--stub",
        action="store_true",
        default=False,
        help="Answer with a local echo actor instead of calling the API.",
    )
    parser.add_argument(
        "--model",
        default=ChatModel.GPT_4O_MINI.value,
        choices=[m.value for m in ChatModel],
        help="OpenAI model name (default: gpt-4o-mini).",
    )
    parser.add_argument(
        "--system-prompt",
        default="You are a helpful assistant.",
        dest="system_prompt",
        help="System prompt sent with every request.",
    )
    parser.add_argument(
        "--retry-limit",
        type=int,
        default=3,
        dest="retry_limit",
        help="Attempts per model call before giving up (default: 3).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug-level logging.",
    )
    return parser


def stub_actor() -> Actor:
    def reply(history: Sequence[Message], store: Store) -> str:
        return f"You said: {history[-1].content}" if history else "Hello."

    return Actor.from_text(Role.ASSISTANT, reply)


def model_actor(model: str, system_prompt: str) -> OpenAIActor:
    assistant = OpenAIActor(model=model, system_prompt=system_prompt)

    def end_conversation(args: EndConversation, store: Store) -> str:
        logger.info("Model ended the conversation: %s", args.reason)
        store.set(keep_going, False)
        return "ok"

    add_function(
        assistant,
        "end_conversation",
        "End the conversation when the user says goodbye.",
        EndConversation,
        end_conversation,
    )
    return assistant


def main() -> None:
    load_dotenv()

    parser = build_arg_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if not args.stub and not os.environ.get("OPENAI_API_KEY"):
        sys.exit("Error: OPENAI_API_KEY is not set. Use --stub for offline mode.")

    assistant = stub_actor() if args.stub else model_actor(args.model, args.system_prompt)

    def should_continue(store: ReadOnlyStore) -> bool:
        value, _ = store.get(keep_going)
        return value

    printer = echoln(sys.stdout, "assistant: ")

    def echo(message: Message) -> None:
        if message.role == Role.ASSISTANT and message.content:
            printer(message)

    pipeline = While(
        should_continue,
        Chain(
            stdin_actor().pipeline(),
            assistant.pipeline(
                echo=echo,
                retry_limit=args.retry_limit,
            ),
        ),
    )

    try:
        pipeline.execute(Chat())
    except (EOFError, KeyboardInterrupt):
        print()


if __name__ == "__main__":
    main()
