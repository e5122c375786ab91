"""Leaf build tasks, each a chain of stages over one asset category."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

import rjsmin
from loguru import logger

from .config import ConfigProvider, ThemeConfig
from .graph import Task, TaskRun
from .images import optimize_unit
from .models import FileUnit
from .paths import PathSet
from .pipeline import (
    Branch,
    InputRootError,
    chain,
    dest,
    drain,
    newer,
    replace_tokens,
    source,
    transform,
    write_output,
)
from .styles import compile_sass, minify_css, process_css
from .tools import ExternalTool, lint, transpile
from .translate import Catalog, render_catalog


@dataclass
class BuildContext:
    """What every task needs: where things live and how to read config."""

    paths: PathSet
    provider: ConfigProvider
    force: bool = False


class ThemeTask(Task):
    def __init__(self, name: str, context: BuildContext) -> None:
        super().__init__(name)
        self.context = context

    def tool(self, name: str, config: ThemeConfig) -> ExternalTool:
        return ExternalTool(name, getattr(config.tools, name), self.context.paths.root)


class PhpTask(ThemeTask):
    """Lint PHP templates and stamp the theme slug and name into them."""

    outputs = ("php",)

    def __init__(self, context: BuildContext) -> None:
        super().__init__("php", context)
        self._recorded: Optional[Tuple[str, str]] = None

    def check_rebuild(self, config: ThemeConfig) -> bool:
        """True on the first run or when the slug or name changed."""

        current = (config.slug, config.name)
        if self._recorded is None or self._recorded != current:
            self._recorded = current
            return True
        return False

    async def perform(self, run: TaskRun) -> None:
        config = self.context.provider.load()
        rebuild = self.check_rebuild(config)
        paths = self.context.paths["php"]
        if rebuild:
            logger.info("[php] Rebuilding every template for '{}'", config.slug)
        await drain(
            chain(
                source(run, paths),
                Branch(not rebuild, newer(run, paths.dest)),
                lint(run, self.tool("phpcs", config)),
                replace_tokens(run, config),
                dest(run, paths.verbose),
                dest(run, paths.dest),
            )
        )


class StyleTask(ThemeTask):
    outputs = ("styles",)

    def __init__(self, context: BuildContext) -> None:
        super().__init__("styles", context)

    async def perform(self, run: TaskRun) -> None:
        config = self.context.provider.load()
        css_vars = self.context.provider.load_css_vars()
        paths = self.context.paths["styles"]

        def _process(unit: FileUnit) -> FileUnit:
            unit.text = process_css(unit.text, css_vars, config.browser_targets)
            return unit

        def _minify(unit: FileUnit) -> FileUnit:
            unit.text = minify_css(unit.text)
            return unit

        await drain(
            chain(
                source(run, paths),
                lint(run, self.tool("phpcs", config)),
                transform(run, "postcss", _process),
                replace_tokens(run, config),
                dest(run, paths.verbose),
                Branch(not config.debug.styles, transform(run, "minify", _minify)),
                dest(run, paths.dest),
            )
        )


class SassTask(ThemeTask):
    """Compile Sass next to its sources, with maps under ``maps/``."""

    outputs = ("sass",)

    def __init__(self, context: BuildContext) -> None:
        super().__init__("sassStyles", context)

    async def perform(self, run: TaskRun) -> None:
        paths = self.context.paths["sass"]
        root = self.context.paths.root
        maps = self.context.paths.maps

        def _compile(unit: FileUnit) -> Optional[FileUnit]:
            if unit.source.name.startswith("_"):
                return None
            css_path = unit.source.with_suffix(".css")
            map_path = maps / css_path.relative_to(root).with_suffix(".css.map")
            css, source_map = compile_sass(unit.source, css_path, map_path)
            write_output(run, map_path, source_map.encode("utf-8"))
            unit.text = css
            unit.with_suffix(".css")
            return unit

        await drain(
            chain(
                source(run, paths),
                transform(run, "sass", _compile),
                dest(run, paths.dest),
            )
        )


class ScriptTask(ThemeTask):
    outputs = ("scripts",)

    def __init__(self, context: BuildContext) -> None:
        super().__init__("scripts", context)

    async def perform(self, run: TaskRun) -> None:
        config = self.context.provider.load()
        paths = self.context.paths["scripts"]

        def _minify(unit: FileUnit) -> FileUnit:
            unit.text = rjsmin.jsmin(unit.text)
            return unit

        await drain(
            chain(
                source(run, paths),
                Branch(not self.context.force, newer(run, paths.dest)),
                lint(run, self.tool("eslint", config)),
                transpile(run, self.tool("babel", config)),
                replace_tokens(run, config),
                dest(run, paths.verbose),
                Branch(not config.debug.scripts, transform(run, "uglify", _minify)),
                dest(run, paths.dest),
            )
        )


class CopyTask(ThemeTask):
    """Copy files untouched to the verbose and final trees."""

    def __init__(self, name: str, category: str, context: BuildContext, *, compare_verbose: bool = False) -> None:
        super().__init__(name, context)
        self.category = category
        self.compare_verbose = compare_verbose
        self.outputs = (category,)

    @classmethod
    def libraries(cls, context: BuildContext) -> "CopyTask":
        return cls("jsLibs", "scripts_libs", context, compare_verbose=True)

    @classmethod
    def minified(cls, context: BuildContext) -> "CopyTask":
        return cls("jsMin", "scripts_min", context)

    async def perform(self, run: TaskRun) -> None:
        paths = self.context.paths[self.category]
        reference = paths.verbose if self.compare_verbose and paths.verbose else paths.dest
        stages = [newer(run, reference)]
        if paths.verbose is not None:
            stages.append(dest(run, paths.verbose))
        stages.append(dest(run, paths.dest))
        await drain(chain(source(run, paths), *stages))


class ImageTask(ThemeTask):
    outputs = ("images",)

    def __init__(self, context: BuildContext) -> None:
        super().__init__("images", context)

    async def perform(self, run: TaskRun) -> None:
        paths = self.context.paths["images"]
        await drain(
            chain(
                source(run, paths),
                newer(run, paths.dest),
                transform(run, "optimize", optimize_unit),
                dest(run, paths.dest),
            )
        )


class TranslateTask(ThemeTask):
    """Write the ``.pot`` catalog for the built templates."""

    outputs = ("languages",)

    def __init__(self, context: BuildContext) -> None:
        super().__init__("translate", context)

    async def perform(self, run: TaskRun) -> None:
        config = self.context.provider.load()
        paths = self.context.paths["languages"]
        catalog = Catalog(domain=config.slug)
        scanned: List[str] = []

        def _scan(unit: FileUnit) -> FileUnit:
            catalog.scan(unit.text, unit.relative.as_posix())
            scanned.append(unit.relative.as_posix())
            return unit

        if not paths.source.is_dir():
            raise InputRootError(f"Nothing to translate: {paths.source} has not been built")
        await drain(chain(source(run, paths), transform(run, "extract", _scan)))

        rendered = render_catalog(
            catalog,
            package=config.name,
            bug_report=config.theme.bug_report or config.name,
            last_translator=config.theme.author,
        )
        target = paths.dest / f"{config.slug}.pot"
        write_output(run, target, rendered.encode("utf-8"))
        logger.info("[translate] {} string(s) from {} file(s) -> {}", len(catalog), len(scanned), target)


__all__ = [
    "BuildContext",
    "CopyTask",
    "ImageTask",
    "PhpTask",
    "SassTask",
    "ScriptTask",
    "StyleTask",
    "ThemeTask",
    "TranslateTask",
]
