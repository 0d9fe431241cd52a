"""Terminal helpers: printing model output safely and reading user input.

* ``sanitize_output`` / ``sanitize_output_string`` strip control characters
  and ANSI escape sequences from untrusted text before it hits a terminal.
* ``echoln`` builds an echo callback for ``Actor.pipeline``.
* ``stdin_actor`` is a USER actor that reads one line per turn.
"""

from __future__ import annotations

import io
import re
import sys
import unicodedata
from collections.abc import Callable, Sequence
from typing import TextIO

from memory.store import Store
from pipeline.chat import Message, Role
from pipeline.steps import Actor

_UNSAFE = re.compile(r"\x1B\[[0-9;]*[a-zA-Z]|[\x00-\x08\x0B-\x1F\x7F]")


def sanitize_output(text: str, remove_newlines: bool, stream: TextIO) -> None:
    """Write a terminal-safe, NFC-normalised version of *text* to *stream*.

    With *remove_newlines* every newline becomes a space.
    """
    cleaned = unicodedata.normalize("NFC", _UNSAFE.sub("", text))

    chars: list[str] = []
    for ch in cleaned:
        if ch == "\n":
            chars.append(" " if remove_newlines else "\n")
        elif ch.isprintable() or ch.isspace():
            chars.append(ch)
    stream.write("".join(chars))


def sanitize_output_string(text: str, remove_newlines: bool = False) -> str:
    """Same as ``sanitize_output`` but returns the result."""
    buffer = io.StringIO()
    sanitize_output(text, remove_newlines, buffer)
    return buffer.getvalue()


def echoln(stream: TextIO, prefix: str) -> Callable[[Message], None]:
    """Return an echo callback printing each message on its own line."""

    def echo(message: Message) -> None:
        sanitize_output(prefix, False, stream)
        sanitize_output(message.content, False, stream)
        stream.write("\n")
        stream.flush()

    return echo


def stdin_actor(stream: TextIO | None = None) -> Actor:
    """USER actor that reads one line from *stream* (stdin by default).

    Raises ``EOFError`` once the input is exhausted.
    """

    def read_line(history: Sequence[Message], store: Store) -> str:
        line = (stream or sys.stdin).readline()
        if not line:
            raise EOFError("end of input")
        return line.strip()

    return Actor.from_text(Role.USER, read_line)
