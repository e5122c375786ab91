"""Logical asset categories and where they live on disk."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

SOURCE_DIR = "dev"
BUILD_DIR = "build"
VERBOSE_DIR = "verbose"
EXPORT_DIR = "export"
MAPS_DIR = "maps"
CONFIG_DIR = "config"
THEME_CONFIG_FILE = "themeConfig.yml"
CSS_VARS_FILE = "cssVariables.json"

_IMAGE_EXTENSIONS = ("jpg", "JPG", "jpeg", "JPEG", "png", "PNG", "gif", "GIF", "svg")


@dataclass(frozen=True)
class AssetPaths:
    """Source patterns plus the trees a category is written to.

    ``patterns`` are gitwildmatch lines evaluated relative to ``source``.
    """

    source: Path
    patterns: Tuple[str, ...]
    dest: Path
    verbose: Optional[Path] = None


@dataclass(frozen=True)
class PathSet:
    root: Path
    categories: Mapping[str, AssetPaths]
    theme_config: Path
    css_vars: Path
    verbose: Path
    build: Path
    export: Path
    maps: Path

    def __getitem__(self, name: str) -> AssetPaths:
        return self.categories[name]

    def __contains__(self, name: object) -> bool:
        return name in self.categories


def resolve_paths(root: Path) -> PathSet:
    """Derive every category's paths from the theme root."""

    root = Path(root)
    source = root / SOURCE_DIR
    build = root / BUILD_DIR
    verbose = root / VERBOSE_DIR
    config_dir = source / CONFIG_DIR

    categories = {
        "php": AssetPaths(
            source=source,
            patterns=("*.php", "!optional/", "!tests/", "!vendor/", f"!{CONFIG_DIR}/"),
            dest=build,
            verbose=verbose,
        ),
        "styles": AssetPaths(
            source=source,
            patterns=("*.css", "!optional/", "!vendor/", f"!{CONFIG_DIR}/"),
            dest=build,
            verbose=verbose,
        ),
        "sass": AssetPaths(
            source=source,
            patterns=("*.scss", "!optional/", "!vendor/"),
            dest=source,
        ),
        "scripts": AssetPaths(
            source=source,
            patterns=(
                "*.js",
                "!*.min.js",
                "!js/libs/",
                "!optional/",
                "!vendor/",
                f"!{CONFIG_DIR}/",
            ),
            dest=build,
            verbose=verbose,
        ),
        "scripts_min": AssetPaths(
            source=source,
            patterns=("*.min.js", "!js/libs/", "!optional/", "!vendor/"),
            dest=build,
            verbose=verbose,
        ),
        "scripts_libs": AssetPaths(
            source=source,
            patterns=("js/libs/**/*.js",),
            dest=build,
            verbose=verbose,
        ),
        "images": AssetPaths(
            source=source,
            patterns=tuple(f"images/**/*.{ext}" for ext in _IMAGE_EXTENSIONS),
            dest=build,
        ),
        "languages": AssetPaths(
            source=build,
            patterns=("*.php", "!languages/"),
            dest=build / "languages",
        ),
        "config": AssetPaths(
            source=config_dir,
            patterns=(THEME_CONFIG_FILE,),
            dest=build,
        ),
        "css_vars": AssetPaths(
            source=config_dir,
            patterns=(CSS_VARS_FILE,),
            dest=build,
        ),
        "export": AssetPaths(
            source=build,
            patterns=("*", "!.DS_Store", "!Thumbs.db", "!*.map", "!.git/"),
            dest=root / EXPORT_DIR,
        ),
    }

    return PathSet(
        root=root,
        categories=MappingProxyType(categories),
        theme_config=config_dir / THEME_CONFIG_FILE,
        css_vars=config_dir / CSS_VARS_FILE,
        verbose=verbose,
        build=build,
        export=root / EXPORT_DIR,
        maps=root / MAPS_DIR,
    )


__all__ = ["AssetPaths", "PathSet", "resolve_paths"]
