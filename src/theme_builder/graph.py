"""Task lifecycle and the Sequence/Parallel combinators."""

from __future__ import annotations

import asyncio
import inspect
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger

from .models import BuildError, FileError, GraphResult, TaskResult, TaskState
from .pipeline import enter_branch, leave_branch

Listener = Callable[[TaskResult], None]


class TaskStateError(BuildError):
    """Raised on an illegal task state transition."""


class GraphError(BuildError):
    """Raised when a graph is assembled incorrectly."""


class TaskRun:
    """One invocation of a task: IDLE -> RUNNING -> COMPLETED | FAILED.

    Listeners are notified exactly once, when the run reaches a terminal
    state.
    """

    def __init__(self, name: str, listeners: Optional[List[Listener]] = None) -> None:
        self.name = name
        self.result = TaskResult(name=name)
        self._listeners = list(listeners or [])

    @property
    def state(self) -> TaskState:
        return self.result.state

    def start(self) -> None:
        if self.state != TaskState.IDLE:
            raise TaskStateError(f"Task '{self.name}' cannot start from state {self.state.value}")
        self.result.state = TaskState.RUNNING

    def complete(self) -> None:
        self._finish(TaskState.COMPLETED)

    def fail(self, message: str) -> None:
        self.result.error = message
        self._finish(TaskState.FAILED)

    def _finish(self, state: TaskState) -> None:
        if self.state != TaskState.RUNNING:
            raise TaskStateError(
                f"Task '{self.name}' cannot move to {state.value} from {self.state.value}"
            )
        self.result.state = state
        for listener in self._listeners:
            listener(self.result)

    def record_write(self, path: Path) -> None:
        self.result.written.append(path)

    def record_error(self, path: Path, stage: str, exc: BaseException) -> None:
        message = str(exc) or exc.__class__.__name__
        logger.error("[{}] {} failed for {}: {}", self.name, stage, path, message)
        self.result.file_errors.append(
            FileError(task=self.name, path=Path(path), stage=stage, message=message)
        )


class Node:
    """Anything that can be run as part of a graph."""

    name: str = "node"

    async def execute(self) -> GraphResult:
        raise NotImplementedError

    def tasks(self) -> List["Task"]:
        return []


class Task(Node):
    """A named unit of work.

    ``outputs`` names the path categories the task writes. Subclasses
    implement :meth:`perform`.
    """

    outputs: Tuple[str, ...] = ()

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: List[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def tasks(self) -> List["Task"]:
        return [self]

    async def execute(self) -> GraphResult:
        result = await self.run()
        return GraphResult(name=self.name, results=[result])

    async def run(self) -> TaskResult:
        run = TaskRun(self.name, self._listeners)
        run.start()
        logger.info("Starting '{}'", self.name)
        try:
            await self.perform(run)
        except BuildError as exc:
            logger.error("'{}' failed: {}", self.name, exc)
            run.fail(str(exc))
        except Exception as exc:
            logger.exception("'{}' failed unexpectedly", self.name)
            run.fail(f"{exc.__class__.__name__}: {exc}")
        else:
            result = run.result
            logger.info(
                "Finished '{}' ({} written, {} file error(s))",
                self.name,
                len(result.written),
                len(result.file_errors),
            )
            run.complete()
        return run.result

    async def perform(self, run: TaskRun) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name!r}>"


class Step(Task):
    """A task that wraps a plain callable, sync or async."""

    def __init__(self, name: str, func: Callable[[], Any]) -> None:
        super().__init__(name)
        self._func = func

    async def perform(self, run: TaskRun) -> None:
        outcome = self._func()
        if inspect.isawaitable(outcome):
            await outcome


class Sequence(Node):
    """Run nodes strictly in order, stopping at the first failure."""

    def __init__(self, *nodes: Node, name: Optional[str] = None) -> None:
        if not nodes:
            raise GraphError("A sequence needs at least one node")
        self.nodes = nodes
        self.name = name or "series(" + ", ".join(node.name for node in nodes) + ")"

    def tasks(self) -> List[Task]:
        return [task for node in self.nodes for task in node.tasks()]

    async def execute(self) -> GraphResult:
        result = GraphResult(name=self.name)
        for position, node in enumerate(self.nodes):
            child = await node.execute()
            result.extend(child)
            if not child.ok:
                remaining = self.nodes[position + 1 :]
                if remaining:
                    logger.error(
                        "'{}' stopped after a failure; skipped {}",
                        self.name,
                        ", ".join(item.name for item in remaining),
                    )
                break
        return result


class Parallel(Node):
    """Start every node at once and wait for all of them.

    A failing child does not stop its siblings. Siblings may not declare the
    same output category. They may not write the same destination file
    either; the second writer gets a per-file error.
    """

    def __init__(self, *nodes: Node, name: Optional[str] = None) -> None:
        if not nodes:
            raise GraphError("A parallel group needs at least one node")
        seen: set[int] = set()
        owners: Dict[str, str] = {}
        for task in (task for node in nodes for task in node.tasks()):
            if id(task) in seen:
                raise GraphError(f"Task '{task.name}' appears twice in one parallel group")
            seen.add(id(task))
            for category in task.outputs:
                if category in owners:
                    raise GraphError(
                        f"Tasks '{owners[category]}' and '{task.name}' both write '{category}' in one parallel group"
                    )
                owners[category] = task.name
        self.nodes = nodes
        self.name = name or "parallel(" + ", ".join(node.name for node in nodes) + ")"

    def tasks(self) -> List[Task]:
        return [task for node in self.nodes for task in node.tasks()]

    async def execute(self) -> GraphResult:
        owners: Dict[Path, str] = {}
        children = await asyncio.gather(
            *(
                self._run_branch(node, owners, f"{index}:{node.name}")
                for index, node in enumerate(self.nodes)
            )
        )
        result = GraphResult(name=self.name)
        for child in children:
            result.extend(child)
        return result

    @staticmethod
    async def _run_branch(node: Node, owners: Dict[Path, str], branch: str) -> GraphResult:
        token = enter_branch(owners, branch)
        try:
            return await node.execute()
        finally:
            leave_branch(token)


__all__ = [
    "GraphError",
    "Node",
    "Parallel",
    "Sequence",
    "Step",
    "Task",
    "TaskRun",
    "TaskStateError",
]
