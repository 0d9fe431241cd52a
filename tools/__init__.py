from tools.console import echoln, sanitize_output, sanitize_output_string, stdin_actor

__all__ = [
    "echoln",
    "sanitize_output",
    "sanitize_output_string",
    "stdin_actor",
]
