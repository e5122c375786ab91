from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import pytest
from PIL import Image

from theme_builder.config import (
    ConfigProvider,
    CssVariables,
    DebugFlags,
    ExportConfig,
    LiveReloadConfig,
    ThemeConfig,
    ThemeInfo,
    save_config,
    save_css_vars,
)
from theme_builder.paths import PathSet, resolve_paths
from theme_builder.tasks import BuildContext


PHP_TEMPLATE = """<?php
/**
 * Main template for WP Rig.
 *
 * @package wprig
 */

esc_html_e( 'Welcome to WP Rig', 'wprig' );
"""


STYLE_SHEET = """/*!
Theme Name: WP Rig
Text Domain: wprig
*/
:root {
\t--global-font-color: #333;
}
@custom-media --narrow (max-width: 600px);
body {
\tcolor: var(--global-font-color);
\tuser-select: none;
}
@media (--content-query) {
\tbody {
\t\tfont-size: var(--global-font-size);
\t}
}
"""


SCRIPT = """/* Navigation for wprig. */
var themeSlug = 'wprig';
function greet( name ) {
\treturn 'Hello ' + name;
}
"""


def make_config(**overrides: Any) -> ThemeConfig:
    theme = overrides.pop("theme", None) or ThemeInfo(
        slug=overrides.pop("slug", "demo"),
        name=overrides.pop("name", "Demo Theme"),
        author="Jane Doe",
    )
    return ThemeConfig(
        theme=theme,
        debug=overrides.pop("debug", DebugFlags()),
        export=overrides.pop("export", ExportConfig()),
        live_reload=overrides.pop("live_reload", LiveReloadConfig()),
        **overrides,
    )


def write_file(path: Path, contents: str | bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(contents, bytes):
        path.write_bytes(contents)
    else:
        path.write_text(contents)
    return path


@pytest.fixture()
def theme_root(tmp_path: Path) -> Path:
    root = tmp_path / "theme"
    paths = resolve_paths(root)
    save_config(make_config(), paths.theme_config)
    save_css_vars(
        CssVariables(
            variables={"--global-font-color": "#333", "global-font-size": "18px"},
            queries={"--content-query": "(min-width: 37.5em)"},
        ),
        paths.css_vars,
    )
    return root


@pytest.fixture()
def paths(theme_root: Path) -> PathSet:
    return resolve_paths(theme_root)


@pytest.fixture()
def provider(paths: PathSet) -> ConfigProvider:
    return ConfigProvider(paths.theme_config, paths.css_vars)


@pytest.fixture()
def context(paths: PathSet, provider: ConfigProvider) -> BuildContext:
    return BuildContext(paths=paths, provider=provider)


@pytest.fixture()
def configure(paths: PathSet):
    """Rewrite the theme config in place."""

    def _configure(**overrides: Any) -> ThemeConfig:
        config = make_config(**overrides)
        save_config(config, paths.theme_config)
        return config

    return _configure


@pytest.fixture()
def image_factory(paths: PathSet):
    def _factory(relative: str, size: tuple[int, int] = (48, 48)) -> Path:
        target = paths["images"].source / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", size, (200, 30, 30)).save(target, format="PNG", compress_level=0)
        return target

    return _factory


@pytest.fixture()
def sources(paths: PathSet) -> Dict[str, Path]:
    """A small theme: one template, one stylesheet and one script."""

    dev = paths["php"].source
    return {
        "php": write_file(dev / "index.php", PHP_TEMPLATE),
        "style": write_file(dev / "style.css", STYLE_SHEET),
        "script": write_file(dev / "js" / "navigation.js", SCRIPT),
    }
