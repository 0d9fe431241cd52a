"""Pipeline combinators: sequencing, parallel fan-out and control flow."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from pipeline.base import Condition, Pipeline
from pipeline.chat import Chat

logger = logging.getLogger(__name__)


class Chain(Pipeline):
    """Runs pipelines one after another against the same chat.

    Each step sees everything the previous steps wrote.  The first failure
    stops the chain and propagates unchanged.
    """

    def __init__(self, *pipelines: Pipeline):
        self.pipelines = list(pipelines)

    def execute(self, chat: Chat) -> None:
        for pipeline in self.pipelines:
            pipeline.execute(chat)

    def trims(self) -> bool:
        return any(pipeline.trims() for pipeline in self.pipelines)


class Parallel(Pipeline):
    """Runs pipelines concurrently on private copies of the history.

    Every branch starts from a copy of the parent history and shares the
    parent's Store.  Once all branches have finished, the messages each one
    wrote are appended to the parent in branch order.  If any branch fails,
    nothing is merged and the failure of the lowest-indexed failing branch
    is raised.
    """

    def __init__(self, *pipelines: Pipeline):
        self.pipelines = list(pipelines)

    def execute(self, chat: Chat) -> None:
        if not self.pipelines:
            return

        branches = [chat.branch() for _ in self.pipelines]

        with ThreadPoolExecutor(
            max_workers=len(self.pipelines), thread_name_prefix="parallel-branch"
        ) as executor:
            futures = [
                executor.submit(pipeline.execute, branch)
                for pipeline, branch in zip(self.pipelines, branches)
            ]
            errors = [(idx, future.exception()) for idx, future in enumerate(futures)]

        errors = [(idx, exc) for idx, exc in errors if exc is not None]
        if errors:
            for idx, exc in errors:
                logger.error("Parallel branch %d/%d failed: %s", idx + 1, len(branches), exc)
            raise errors[0][1]

        if self.trims():
            logger.debug("All %d parallel branches trim; trimming parent history", len(branches))
            chat.trim()

        for branch in branches:
            for message in branch.unique_messages():
                chat.write(message)

    def trims(self) -> bool:
        return all(pipeline.trims() for pipeline in self.pipelines)


class While(Pipeline):
    """Repeats *body* for as long as *condition* holds before an iteration."""

    def __init__(self, condition: Condition, body: Pipeline):
        self.condition = condition
        self.body = body

    def execute(self, chat: Chat) -> None:
        while self.condition(chat.store.read_only()):
            self.body.execute(chat)

    def trims(self) -> bool:
        return self.body.trims()


class If(Pipeline):
    """Runs *left* if *condition* holds, otherwise *right* (if given)."""

    def __init__(self, condition: Condition, left: Pipeline, right: Pipeline | None = None):
        self.condition = condition
        self.left = left
        self.right = right

    def execute(self, chat: Chat) -> None:
        if self.condition(chat.store.read_only()):
            self.left.execute(chat)
        elif self.right is not None:
            self.right.execute(chat)

    def trims(self) -> bool:
        # Only certain when both outcomes trim.
        return self.left.trims() and self.right is not None and self.right.trims()
