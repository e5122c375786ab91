"""Packaging of the built theme for distribution."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Tuple
from zipfile import ZIP_DEFLATED, ZipFile

from loguru import logger

from .graph import TaskRun
from .pipeline import (
    InputRootError,
    OutputRootError,
    claim_destination,
    compile_patterns,
    gather_files,
    write_output,
)
from .tasks import BuildContext, ThemeTask


def create_zip(zip_entries: Iterable[Tuple[Path, str]], zip_path: Path) -> None:
    with ZipFile(zip_path, "w", ZIP_DEFLATED) as archive:
        for source, arcname in zip_entries:
            archive.write(source, arcname=arcname)


class BundleTask(ThemeTask):
    """Export the build tree as ``<name>.zip`` or as a ``<name>/`` directory.

    Exactly one of the two forms is produced per run, chosen by
    ``export.compress``.
    """

    outputs = ("export",)

    def __init__(self, context: BuildContext) -> None:
        super().__init__("bundle", context)

    async def perform(self, run: TaskRun) -> None:
        config = self.context.provider.load()
        paths = self.context.paths["export"]
        if not paths.source.is_dir():
            raise InputRootError(f"Nothing to bundle: {paths.source} has not been built")
        files = gather_files(paths.source, compile_patterns(paths.patterns))
        if not files:
            logger.warning("[bundle] {} is empty", paths.source)

        if config.export.compress:
            zip_path = paths.dest / f"{config.name}.zip"
            entries: List[Tuple[Path, str]] = [
                (path, (Path(config.slug) / path.relative_to(paths.source)).as_posix())
                for path in files
            ]
            claim_destination(zip_path)
            try:
                zip_path.parent.mkdir(parents=True, exist_ok=True)
                create_zip(entries, zip_path)
            except OSError as exc:
                raise OutputRootError(f"Cannot write {zip_path}: {exc}") from exc
            run.record_write(zip_path)
            logger.info("[bundle] Archived {} file(s) into {}", len(entries), zip_path)
        else:
            target = paths.dest / config.name
            for path in files:
                write_output(run, target / path.relative_to(paths.source), path.read_bytes())
            logger.info("[bundle] Exported {} file(s) to {}", len(files), target)


__all__ = ["BundleTask", "create_zip"]
