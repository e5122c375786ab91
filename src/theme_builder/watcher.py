"""File watching: rerun the right part of the graph when a source changes."""

from __future__ import annotations

import asyncio
import os
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Deque, Dict, Iterable, List, Optional, Set

from loguru import logger
from pathspec import PathSpec
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .graph import Node
from .models import GraphResult
from .paths import AssetPaths
from .pipeline import compile_patterns


@dataclass
class WatchBinding:
    """A category's patterns and the graph to run when one of them changes."""

    name: str
    paths: AssetPaths
    node: Node
    spec: PathSpec = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.spec = compile_patterns(self.paths.patterns)

    def matches(self, path: Path) -> bool:
        try:
            relative = Path(path).resolve().relative_to(self.paths.source.resolve())
        except ValueError:
            return False
        return self.spec.match_file(relative.as_posix())


class WatchDispatcher:
    """Route changed paths to bindings and run their graphs.

    Runs of one binding never overlap. Events that arrive while a binding is
    waiting out its debounce delay are folded into the coming run; events
    that arrive while it runs schedule exactly one more run afterwards.
    Only the latest ``history`` results are kept.
    """

    def __init__(
        self,
        bindings: Iterable[WatchBinding],
        debounce: float = 0.2,
        history: int = 50,
    ) -> None:
        self.bindings = list(bindings)
        self.debounce = debounce
        self.results: Deque[GraphResult] = deque(maxlen=history)
        self._active: Dict[str, asyncio.Task[None]] = {}
        self._pending: Set[str] = set()

    def roots(self) -> List[Path]:
        """Directories to observe, without ones nested in another root."""

        candidates = sorted({binding.paths.source.resolve() for binding in self.bindings})
        roots: List[Path] = []
        for candidate in candidates:
            if not any(candidate.is_relative_to(root) for root in roots):
                roots.append(candidate)
        return roots

    def dispatch(self, path: Path) -> List[WatchBinding]:
        """Schedule every binding matching ``path``; must run on the loop."""

        matched = [binding for binding in self.bindings if binding.matches(path)]
        for binding in matched:
            logger.debug("Change in {} -> {}", path, binding.node.name)
            self._trigger(binding)
        return matched

    def _trigger(self, binding: WatchBinding) -> None:
        if binding.name in self._active:
            self._pending.add(binding.name)
            return
        self._active[binding.name] = asyncio.ensure_future(self._run(binding))

    async def _run(self, binding: WatchBinding) -> None:
        try:
            while True:
                await asyncio.sleep(self.debounce)
                self._pending.discard(binding.name)
                result = await binding.node.execute()
                self.results.append(result)
                if not result.ok:
                    logger.warning("'{}' failed; waiting for the next change", binding.node.name)
                if binding.name not in self._pending:
                    break
        finally:
            self._active.pop(binding.name, None)

    @property
    def busy(self) -> bool:
        return bool(self._active)

    async def drain(self) -> None:
        """Wait until no binding is running or scheduled."""

        while self._active:
            await asyncio.gather(*list(self._active.values()), return_exceptions=True)


class _ForwardingHandler(FileSystemEventHandler):
    """Hands watchdog events from the observer thread to the event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, dispatcher: WatchDispatcher) -> None:
        super().__init__()
        self._loop = loop
        self._dispatcher = dispatcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in ("created", "modified", "moved"):
            return
        raw = getattr(event, "dest_path", "") or event.src_path
        self._loop.call_soon_threadsafe(self._dispatcher.dispatch, Path(os.fsdecode(raw)))


async def watch(dispatcher: WatchDispatcher, stop: Optional[asyncio.Event] = None) -> None:
    """Observe the bindings' source roots until ``stop`` is set or cancelled."""

    loop = asyncio.get_running_loop()
    handler = _ForwardingHandler(loop, dispatcher)
    observer = Observer()
    for root in dispatcher.roots():
        if root.is_dir():
            observer.schedule(handler, str(root), recursive=True)
            logger.info("Watching {}", root)
        else:
            logger.warning("Not watching {}: directory does not exist", root)
    observer.start()
    try:
        if stop is None:
            await asyncio.Event().wait()
        else:
            await stop.wait()
    finally:
        observer.stop()
        observer.join()
        await dispatcher.drain()


__all__ = ["WatchBinding", "WatchDispatcher", "watch"]
