"""The named graphs behind each command."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from .bundle import BundleTask
from .graph import Node, Parallel, Sequence, Step
from .preview import PreviewService
from .tasks import (
    BuildContext,
    CopyTask,
    ImageTask,
    PhpTask,
    SassTask,
    ScriptTask,
    StyleTask,
    TranslateTask,
)
from .watcher import WatchBinding, WatchDispatcher, watch

TASK_NAMES = (
    "php",
    "styles",
    "sassStyles",
    "scripts",
    "jsLibs",
    "jsMin",
    "images",
    "watch",
    "translate",
    "bundle",
    "testTheme",
    "bundleTheme",
)


@dataclass
class BuildGraphs:
    """Every task instance, the watch bindings and the named graphs."""

    context: BuildContext
    preview: PreviewService
    debounce: float = 0.2
    graphs: Dict[str, Node] = field(init=False)
    bindings: List[WatchBinding] = field(init=False)

    def __post_init__(self) -> None:
        context = self.context
        php = PhpTask(context)
        styles = StyleTask(context)
        sass = SassTask(context)
        scripts = ScriptTask(context)
        js_libs = CopyTask.libraries(context)
        js_min = CopyTask.minified(context)
        images = ImageTask(context)
        translate = TranslateTask(context)
        bundle = BundleTask(context)

        reload = Step("reload", self.preview.reload)
        serve = Step("serve", self.preview.start)
        watch_step = Step("watch", self.watch)

        paths = context.paths
        self.bindings = [
            WatchBinding("php", paths["php"], Sequence(php, reload)),
            WatchBinding("config", paths["config"], Sequence(php, reload)),
            WatchBinding("css_vars", paths["css_vars"], Sequence(styles, reload)),
            WatchBinding("sass", paths["sass"], sass),
            WatchBinding("styles", paths["styles"], Sequence(styles, reload)),
            WatchBinding("scripts", paths["scripts"], Sequence(scripts, reload)),
            WatchBinding("scripts_min", paths["scripts_min"], Sequence(js_min, reload)),
            WatchBinding("scripts_libs", paths["scripts_libs"], Sequence(js_libs, reload)),
            WatchBinding("images", paths["images"], Sequence(images, reload)),
        ]

        test_theme = Sequence(php, name="testTheme")
        self.graphs = {
            "default": Sequence(
                php,
                Parallel(scripts, js_min, js_libs),
                sass,
                styles,
                images,
                serve,
                watch_step,
                name="default",
            ),
            "php": php,
            "styles": styles,
            "sassStyles": sass,
            "scripts": scripts,
            "jsLibs": js_libs,
            "jsMin": js_min,
            "images": images,
            "watch": watch_step,
            "translate": translate,
            "bundle": bundle,
            "testTheme": test_theme,
            "bundleTheme": Sequence(
                test_theme,
                Parallel(scripts, js_min, js_libs),
                styles,
                images,
                translate,
                bundle,
                name="bundleTheme",
            ),
        }

    def dispatcher(self) -> WatchDispatcher:
        return WatchDispatcher(self.bindings, debounce=self.debounce)

    async def watch(self) -> None:
        await watch(self.dispatcher())

    def __getitem__(self, name: str) -> Node:
        return self.graphs[name]


__all__ = ["BuildGraphs", "TASK_NAMES"]
