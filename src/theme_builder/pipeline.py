"""Streaming stage chains that carry files from a source tree to a destination."""

from __future__ import annotations

import asyncio
import inspect
from contextvars import ContextVar, Token
from dataclasses import dataclass
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Tuple,
    Union,
)

from loguru import logger
from pathspec import PathSpec
from pathspec.patterns import GitWildMatchPattern

from .config import NAME_PLACEHOLDER, SLUG_PLACEHOLDER, ThemeConfig
from .models import BuildError, FileUnit
from .paths import AssetPaths

if TYPE_CHECKING:
    from .graph import TaskRun

Stream = AsyncIterator[FileUnit]
Stage = Callable[[Stream], Stream]


class FatalTaskError(BuildError):
    """An error that must abort the whole task rather than a single file."""


class InputRootError(FatalTaskError):
    """Raised when a task's source root cannot be read."""


class OutputRootError(FatalTaskError):
    """Raised when a task cannot write below its destination root."""


class TransformError(BuildError):
    """Raised by a stage that could not transform one file."""


class DestinationConflictError(BuildError):
    """Raised when two parallel branches write the same destination file."""


@dataclass
class ClaimScope:
    """Destination ownership for one branch of a parallel group.

    Scopes nest: a branch inside a nested group also checks every enclosing
    group, so siblings at any level cannot write the same file.
    """

    owners: Dict[Path, str]
    branch: str
    parent: Optional["ClaimScope"] = None

    def claim(self, path: Path) -> None:
        key = path.resolve()
        scope: Optional[ClaimScope] = self
        while scope is not None:
            owner = scope.owners.get(key)
            if owner is not None and owner != scope.branch:
                raise DestinationConflictError(
                    f"{path} is already written by parallel branch '{owner}'"
                )
            scope = scope.parent
        scope = self
        while scope is not None:
            scope.owners[key] = scope.branch
            scope = scope.parent


_claim_scope: ContextVar[Optional[ClaimScope]] = ContextVar("claim_scope", default=None)


def enter_branch(owners: Dict[Path, str], branch: str) -> Token:
    scope = ClaimScope(owners=owners, branch=branch, parent=_claim_scope.get())
    return _claim_scope.set(scope)


def leave_branch(token: Token) -> None:
    _claim_scope.reset(token)


def claim_destination(path: Path) -> None:
    scope = _claim_scope.get()
    if scope is not None:
        scope.claim(path)


def compile_patterns(patterns: Iterable[str]) -> PathSpec:
    return PathSpec.from_lines(GitWildMatchPattern, list(patterns))


def gather_files(root: Path, spec: PathSpec) -> List[Path]:
    """Return files below ``root`` matching ``spec``, sorted by path."""

    files: List[Path] = []
    for path in sorted(root.rglob("*")):
        if path.is_file() and spec.match_file(path.relative_to(root).as_posix()):
            files.append(path)
    return files


def write_output(run: "TaskRun", target: Path, contents: bytes) -> None:
    """Write a file on behalf of a task, enforcing destination ownership."""

    claim_destination(target)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(contents)
    except OSError as exc:
        raise OutputRootError(f"Cannot write {target}: {exc}") from exc
    run.record_write(target)


async def source(run: "TaskRun", paths: AssetPaths) -> Stream:
    """Yield every file of a category, one unit at a time."""

    root = paths.source
    if not root.is_dir():
        raise InputRootError(f"Source root {root} does not exist or is not a directory")
    try:
        files = gather_files(root, compile_patterns(paths.patterns))
    except OSError as exc:
        raise InputRootError(f"Cannot read source root {root}: {exc}") from exc

    logger.debug("[{}] {} file(s) matched below {}", run.name, len(files), root)
    for path in files:
        try:
            contents = path.read_bytes()
            mtime = path.stat().st_mtime
        except OSError as exc:
            run.record_error(path, "read", exc)
            continue
        yield FileUnit(source=path, base=root, contents=contents, mtime=mtime)
        # Let sibling tasks of a parallel group interleave.
        await asyncio.sleep(0)


def transform(
    run: "TaskRun",
    name: str,
    func: Callable[[FileUnit], Any],
) -> Stage:
    """Wrap a per-file function as a stage.

    The function returns the (possibly modified) unit, or ``None`` to drop it.
    Any error other than a fatal one is recorded against the file and the
    unit is skipped.
    """

    async def stage(stream: Stream) -> Stream:
        async for unit in stream:
            try:
                result = func(unit)
                if inspect.isawaitable(result):
                    result = await result
            except FatalTaskError:
                raise
            except Exception as exc:
                run.record_error(unit.source, name, exc)
                continue
            if result is not None:
                yield result

    stage.__name__ = name
    return stage


async def passthrough(stream: Stream) -> Stream:
    async for unit in stream:
        yield unit


class Branch:
    """Pick one of two stages.

    The predicate is evaluated once, when the chain is assembled for a run,
    not per file.
    """

    def __init__(
        self,
        predicate: Union[bool, Callable[[], bool]],
        then: Stage,
        otherwise: Optional[Stage] = None,
    ) -> None:
        self.predicate = predicate
        self.then = then
        self.otherwise = otherwise or passthrough

    def __call__(self, stream: Stream) -> Stream:
        taken = self.predicate() if callable(self.predicate) else self.predicate
        return (self.then if taken else self.otherwise)(stream)


def chain(stream: Stream, *stages: Stage) -> Stream:
    for stage in stages:
        stream = stage(stream)
    return stream


async def drain(stream: Stream) -> int:
    """Pull every unit through the chain and return how many came out."""

    count = 0
    async for _ in stream:
        count += 1
    return count


def newer(run: "TaskRun", directory: Path) -> Stage:
    """Drop units whose destination copy is at least as recent."""

    async def stage(stream: Stream) -> Stream:
        async for unit in stream:
            target = directory / unit.relative
            try:
                target_mtime = target.stat().st_mtime
            except FileNotFoundError:
                yield unit
                continue
            if unit.mtime > target_mtime:
                yield unit
            else:
                logger.trace("[{}] {} is up to date", run.name, unit.relative)

    return stage


def dest(run: "TaskRun", directory: Path) -> Stage:
    def _write(unit: FileUnit) -> FileUnit:
        write_output(run, directory / unit.relative, unit.contents)
        return unit

    return transform(run, f"write {directory.name}", _write)


def token_replacements(config: ThemeConfig) -> Tuple[Tuple[str, str], ...]:
    return ((SLUG_PLACEHOLDER, config.slug), (NAME_PLACEHOLDER, config.name))


def replace_tokens(run: "TaskRun", config: ThemeConfig) -> Stage:
    """Swap the placeholder theme slug and name for the configured ones."""

    replacements = token_replacements(config)

    def _replace(unit: FileUnit) -> FileUnit:
        # Undecodable bytes round-trip unchanged.
        text = unit.contents.decode("utf-8", errors="surrogateescape")
        for old, new in replacements:
            text = text.replace(old, new)
        unit.contents = text.encode("utf-8", errors="surrogateescape")
        return unit

    return transform(run, "replace tokens", _replace)


__all__ = [
    "Stage",
    "Stream",
    "FatalTaskError",
    "InputRootError",
    "OutputRootError",
    "TransformError",
    "DestinationConflictError",
    "Branch",
    "chain",
    "compile_patterns",
    "dest",
    "drain",
    "gather_files",
    "newer",
    "passthrough",
    "replace_tokens",
    "source",
    "transform",
    "write_output",
]
