"""Typer-based CLI for the theme builder."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .composer import TASK_NAMES, BuildGraphs
from .config import (
    ConfigError,
    ConfigProvider,
    CssVariables,
    default_config,
    save_config,
    save_css_vars,
)
from .graph import Node
from .models import GraphResult, TaskState
from .paths import resolve_paths
from .preview import PreviewService
from .tasks import BuildContext

app = typer.Typer(help="Build, watch and package a WordPress theme.")
console = Console()

TASK_HELP = {
    "php": "Lint PHP templates and stamp the theme slug and name.",
    "styles": "Compile, prefix and minify stylesheets.",
    "sassStyles": "Compile Sass sources in place with source maps.",
    "scripts": "Lint, transpile and minify scripts.",
    "jsLibs": "Copy script libraries untouched.",
    "jsMin": "Copy already minified scripts untouched.",
    "images": "Optimize images.",
    "watch": "Watch sources and rebuild on change.",
    "translate": "Generate the translation catalog template.",
    "bundle": "Package the build tree for distribution.",
    "testTheme": "Run the PHP lint pass.",
    "bundleTheme": "Build everything and package the theme.",
}

STATE_STYLE = {
    TaskState.COMPLETED: "green",
    TaskState.FAILED: "red",
    TaskState.RUNNING: "yellow",
    TaskState.IDLE: "dim",
}


@dataclass
class Settings:
    root: Path
    force: bool = False


def _console_sink(message: str) -> None:
    console.print(message.rstrip("\n"), markup=False, highlight=False)


def _configure_logging(level: str, log_file: Path | None) -> None:
    logger.remove()
    logger.add(_console_sink, level=level, format="{time:HH:mm:ss} | {level: <7} | {message}")
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(log_file, level=level)


def _print_summary(result: GraphResult) -> None:
    table = Table(title=f"Build Summary: {result.name}")
    table.add_column("Task")
    table.add_column("State")
    table.add_column("Written", justify="right")
    table.add_column("File errors", justify="right")
    for task in result.results:
        style = STATE_STYLE.get(task.state, "")
        table.add_row(
            task.name,
            f"[{style}]{task.state.value}[/{style}]",
            str(len(task.written)),
            str(len(task.file_errors)),
        )
    console.print(table)
    for task in result.failed:
        console.print(f"[red]FAILED:[/red] {task.name}: {escape(task.error or '')}")


async def _execute(node: Node, preview: PreviewService) -> GraphResult:
    try:
        return await node.execute()
    finally:
        await preview.stop()


def run_graph(settings: Settings, name: str) -> GraphResult:
    """Resolve paths, check config and run one named graph."""

    paths = resolve_paths(settings.root.resolve())
    provider = ConfigProvider(paths.theme_config, paths.css_vars)
    provider.load()
    preview = PreviewService(provider)
    graphs = BuildGraphs(BuildContext(paths=paths, provider=provider, force=settings.force), preview)
    return asyncio.run(_execute(graphs[name], preview))


def _run_command(settings: Settings, name: str) -> None:
    try:
        result = run_graph(settings, name)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=4)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted.[/yellow]")
        raise typer.Exit(code=130)

    _print_summary(result)
    if not result.ok:
        raise typer.Exit(code=1)
    console.print("[green]Build completed.[/green]")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    root: Path = typer.Option(Path("."), "--root", file_okay=False, dir_okay=True, help="Theme root directory"),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write the log to this file"),
    force: bool = typer.Option(False, "--force", help="Rebuild scripts even when they are up to date"),
) -> None:
    """Run the first-run graph when no task is given."""

    _configure_logging(log_level.upper(), log_file)
    ctx.obj = Settings(root=root, force=force)
    if ctx.invoked_subcommand is None:
        _run_command(ctx.obj, "default")


def _register(name: str) -> None:
    def command(ctx: typer.Context) -> None:
        _run_command(ctx.obj, name)

    command.__doc__ = TASK_HELP[name]
    app.command(name)(command)


for _name in TASK_NAMES:
    _register(_name)


@app.command("init-config")
def init_config(
    root: Path = typer.Argument(Path("."), file_okay=False, dir_okay=True, resolve_path=True),
) -> None:
    """Write default theme configuration and CSS variable files under ROOT."""

    paths = resolve_paths(root)
    for target in (paths.theme_config, paths.css_vars):
        if target.exists():
            console.print(f"[yellow]Keeping existing {target}[/yellow]")
    if not paths.theme_config.exists():
        save_config(default_config(), paths.theme_config)
        console.print(f"[green]Wrote configuration to {paths.theme_config}[/green]")
    if not paths.css_vars.exists():
        save_css_vars(
            CssVariables(
                variables={"--global-font-color": "#333", "--global-font-size": "16px"},
                queries={"--content-query": "(min-width: 37.5em)"},
            ),
            paths.css_vars,
        )
        console.print(f"[green]Wrote CSS variables to {paths.css_vars}[/green]")


if __name__ == "__main__":
    app()
