"""Pipeline combinators for multi-step conversations with a language model.

Build a tree out of steps (``user_prompt``, ``Actor.pipeline``) and
combinators (``Chain``, ``Parallel``, ``While``, ``If``), then run it with
``pipeline.execute(Chat())``.
"""

from pipeline.base import Condition, Pipeline
from pipeline.chat import MAX_HISTORY_LENGTH, Chat, Message, Role
from pipeline.combinators import Chain, If, Parallel, While
from pipeline.steps import Actor, ActorStep, StaticStep, user_prompt

__all__ = [
    "MAX_HISTORY_LENGTH",
    "Actor",
    "ActorStep",
    "Chain",
    "Chat",
    "Condition",
    "If",
    "Message",
    "Parallel",
    "Pipeline",
    "Role",
    "StaticStep",
    "While",
    "user_prompt",
]
