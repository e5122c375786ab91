from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List

from conftest import write_file
from theme_builder.graph import TaskRun
from theme_builder.models import FileUnit
from theme_builder.pipeline import chain
from theme_builder.tools import ExternalTool, lint, transpile


def _script(root: Path, relative: str, body: str) -> Path:
    path = write_file(root / relative, "#!/bin/sh\n" + body)
    path.chmod(0o755)
    return path


async def _collect(stage, units: List[FileUnit]) -> List[FileUnit]:
    async def _stream():
        for unit in units:
            yield unit

    return [unit async for unit in chain(_stream(), stage)]


def _units(root: Path, *names: str) -> List[FileUnit]:
    return [
        FileUnit(source=root / "dev" / name, base=root / "dev", contents=f"var {name[0]} = 1;".encode())
        for name in names
    ]


def test_missing_tool_is_skipped(tmp_path: Path) -> None:
    tool = ExternalTool("babel", ["node_modules/.bin/babel"], tmp_path)
    run = TaskRun("scripts")

    kept = asyncio.run(_collect(transpile(run, tool), _units(tmp_path, "a.js")))

    assert tool.available is False
    assert [unit.contents for unit in kept] == [b"var a = 1;"]


def test_bare_executables_are_found_on_path(tmp_path: Path) -> None:
    assert ExternalTool("shell", ["sh"], tmp_path).available
    assert not ExternalTool("nothing", [], tmp_path).available


def test_transpile_replaces_contents_with_stdout(tmp_path: Path) -> None:
    _script(tmp_path, "node_modules/.bin/babel", "tr 'a-z' 'A-Z'\n")
    tool = ExternalTool("babel", ["node_modules/.bin/babel", "--filename={path}"], tmp_path)
    run = TaskRun("scripts")

    kept = asyncio.run(_collect(transpile(run, tool), _units(tmp_path, "a.js", "b.js")))

    assert [unit.contents for unit in kept] == [b"VAR A = 1;", b"VAR B = 1;"]


def test_transpile_failure_skips_only_that_file(tmp_path: Path) -> None:
    _script(
        tmp_path,
        "node_modules/.bin/babel",
        'case "$1" in\n'
        '  *bad.js) echo "SyntaxError: Unexpected token" >&2; exit 1 ;;\n'
        "esac\n"
        "cat\n",
    )
    tool = ExternalTool("babel", ["node_modules/.bin/babel", "--filename={path}"], tmp_path)
    run = TaskRun("scripts")

    kept = asyncio.run(_collect(transpile(run, tool), _units(tmp_path, "good.js", "bad.js")))

    assert [unit.source.name for unit in kept] == ["good.js"]
    [error] = run.result.file_errors
    assert error.stage == "babel"
    assert error.message == "SyntaxError: Unexpected token"


def test_lint_findings_never_drop_files(tmp_path: Path) -> None:
    _script(tmp_path, "vendor/bin/phpcs", 'cat > /dev/null\necho "$1:1:1: Missing file doc comment"\nexit 2\n')
    tool = ExternalTool("phpcs", ["vendor/bin/phpcs", "--stdin-path={path}"], tmp_path)
    run = TaskRun("php")
    units = _units(tmp_path, "a.php")

    output = asyncio.run(tool.run(units[0]))
    kept = asyncio.run(_collect(lint(run, tool), units))

    assert output.returncode == 2
    assert output.findings == [f"--stdin-path={tmp_path / 'dev' / 'a.php'}:1:1: Missing file doc comment"]
    assert [unit.source.name for unit in kept] == ["a.php"]
    assert run.result.file_errors == []
