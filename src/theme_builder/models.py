"""Shared models for files in flight and task outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional


class BuildError(Exception):
    """Base class for errors raised by the build pipeline."""


class TaskState(str, Enum):
    """Lifecycle of a single task invocation."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class FileUnit:
    """A single file flowing through a stage chain."""

    source: Path
    base: Path
    contents: bytes
    mtime: float = 0.0
    relative: Path = field(init=False)

    def __post_init__(self) -> None:
        self.relative = self.source.relative_to(self.base)

    @property
    def text(self) -> str:
        return self.contents.decode("utf-8")

    @text.setter
    def text(self, value: str) -> None:
        self.contents = value.encode("utf-8")

    def with_suffix(self, suffix: str) -> None:
        """Rename the unit in place, keeping its directory."""

        self.source = self.source.with_suffix(suffix)
        self.relative = self.relative.with_suffix(suffix)


@dataclass(slots=True)
class FileError:
    """A recovered per-file failure."""

    task: str
    path: Path
    stage: str
    message: str


@dataclass(slots=True)
class TaskResult:
    """Outcome of one task invocation."""

    name: str
    state: TaskState = TaskState.IDLE
    written: List[Path] = field(default_factory=list)
    file_errors: List[FileError] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state == TaskState.COMPLETED


@dataclass(slots=True)
class GraphResult:
    """Outcome of running a node of the task graph."""

    name: str
    results: List[TaskResult] = field(default_factory=list)

    def extend(self, other: "GraphResult") -> None:
        self.results.extend(other.results)

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.results)

    @property
    def failed(self) -> List[TaskResult]:
        return [result for result in self.results if not result.ok]

    def get(self, name: str) -> TaskResult | None:
        for result in self.results:
            if result.name == name:
                return result
        return None


__all__ = [
    "BuildError",
    "TaskState",
    "FileUnit",
    "FileError",
    "TaskResult",
    "GraphResult",
]
