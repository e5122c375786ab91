"""External linters and transpilers run as subprocesses."""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence

from loguru import logger

from .models import FileUnit
from .pipeline import Stage, TransformError, passthrough, transform

if TYPE_CHECKING:
    from .graph import TaskRun


@dataclass(slots=True)
class ToolOutput:
    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def findings(self) -> List[str]:
        text = self.stdout.decode("utf-8", errors="replace")
        return [line for line in text.splitlines() if line.strip()]


class ExternalTool:
    """A command line that reads a file on stdin.

    ``{path}`` in an argument is replaced with the file's source path.
    """

    def __init__(self, name: str, argv: Sequence[str], root: Path) -> None:
        self.name = name
        self.argv = list(argv)
        self.root = root

    @property
    def executable(self) -> Optional[str]:
        if not self.argv:
            return None
        program = self.argv[0]
        if "/" in program or "\\" in program:
            candidate = Path(program)
            if not candidate.is_absolute():
                candidate = self.root / candidate
            return str(candidate) if candidate.is_file() else None
        return shutil.which(program)

    @property
    def available(self) -> bool:
        return self.executable is not None

    async def run(self, unit: FileUnit) -> ToolOutput:
        executable = self.executable
        if executable is None:
            raise TransformError(f"{self.name} is not installed")
        args = [arg.format(path=unit.source) for arg in self.argv[1:]]
        process = await asyncio.create_subprocess_exec(
            executable,
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(self.root),
        )
        stdout, stderr = await process.communicate(unit.contents)
        return ToolOutput(returncode=process.returncode or 0, stdout=stdout, stderr=stderr)


def lint(run: "TaskRun", tool: ExternalTool) -> Stage:
    """Report a linter's findings without ever dropping a file."""

    if not tool.available:
        logger.debug("[{}] {} not found; skipping lint", run.name, tool.name)
        return passthrough

    async def _lint(unit: FileUnit) -> FileUnit:
        try:
            output = await tool.run(unit)
        except OSError as exc:
            logger.warning("[{}] {} could not check {}: {}", run.name, tool.name, unit.relative, exc)
            return unit
        for finding in output.findings:
            logger.warning("[{}] {}: {}", run.name, tool.name, finding)
        return unit

    return transform(run, tool.name, _lint)


def transpile(run: "TaskRun", tool: ExternalTool) -> Stage:
    """Replace each file's contents with the tool's stdout."""

    if not tool.available:
        logger.debug("[{}] {} not found; passing sources through", run.name, tool.name)
        return passthrough

    async def _transpile(unit: FileUnit) -> FileUnit:
        output = await tool.run(unit)
        if output.returncode != 0:
            message = output.stderr.decode("utf-8", errors="replace").strip()
            raise TransformError(message or f"{tool.name} exited with {output.returncode}")
        unit.contents = output.stdout
        return unit

    return transform(run, tool.name, _transpile)


__all__ = ["ExternalTool", "ToolOutput", "lint", "transpile"]
