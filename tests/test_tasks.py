from __future__ import annotations

import asyncio
import os
from pathlib import Path

from PIL import Image

from conftest import make_config, write_file
from theme_builder.config import DebugFlags
from theme_builder.models import TaskState
from theme_builder.tasks import (
    CopyTask,
    ImageTask,
    PhpTask,
    SassTask,
    ScriptTask,
    StyleTask,
    TranslateTask,
)


def _touch_later(path: Path) -> None:
    stamp = path.stat().st_mtime + 10
    os.utime(path, (stamp, stamp))


def test_php_rebuild_trigger_tracks_slug_and_name(context) -> None:
    task = PhpTask(context)

    assert task.check_rebuild(make_config()) is True
    assert task.check_rebuild(make_config()) is False
    assert task.check_rebuild(make_config(slug="other")) is True
    assert task.check_rebuild(make_config(slug="other")) is False
    assert task.check_rebuild(make_config(slug="other", name="Other")) is True
    assert task.check_rebuild(make_config(slug="other", name="Other")) is False


def test_php_task_stamps_tokens_into_both_trees(context, paths, sources) -> None:
    write_file(paths["php"].source / "optional" / "extra.php", "<?php // wprig")

    result = asyncio.run(PhpTask(context).run())

    assert result.state is TaskState.COMPLETED
    for tree in (paths.build, paths.verbose):
        text = (tree / "index.php").read_text()
        assert "Welcome to Demo Theme" in text
        assert "'demo'" in text
        assert "wprig" not in text
    assert not (paths.build / "optional").exists()


def test_php_task_stamps_tokens_into_latin1_templates(context, paths) -> None:
    write_file(paths["php"].source / "legacy.php", b"<?php // caf\xe9 wprig WP Rig\n")

    result = asyncio.run(PhpTask(context).run())

    assert result.state is TaskState.COMPLETED
    assert result.file_errors == []
    for tree in (paths.build, paths.verbose):
        assert (tree / "legacy.php").read_bytes() == b"<?php // caf\xe9 demo Demo Theme\n"


def test_php_task_is_incremental_until_identity_changes(context, configure, paths, sources) -> None:
    task = PhpTask(context)
    asyncio.run(task.run())

    again = asyncio.run(task.run())
    assert again.written == []

    _touch_later(sources["php"])
    touched = asyncio.run(task.run())
    assert touched.written == [paths.verbose / "index.php", paths.build / "index.php"]

    configure(name="Renamed Theme")
    renamed = asyncio.run(task.run())
    assert len(renamed.written) == 2
    assert "Welcome to Renamed Theme" in (paths.build / "index.php").read_text()


def test_style_task_resolves_variables_and_minifies(context, paths, sources) -> None:
    result = asyncio.run(StyleTask(context).run())

    assert result.state is TaskState.COMPLETED
    verbose = (paths.verbose / "style.css").read_text()
    assert "Theme Name: Demo Theme" in verbose
    assert "color: #333;" in verbose
    assert "font-size: 18px;" in verbose
    assert "@media (min-width: 37.5em) {" in verbose
    assert "-webkit-user-select: none;" in verbose
    assert "-ms-user-select: none;" in verbose
    for leftover in ("var(", ":root", "@custom-media", "--content-query"):
        assert leftover not in verbose

    final = (paths.build / "style.css").read_text()
    assert "Theme Name: Demo Theme" in final
    assert "color:#333" in final
    assert len(final) < len(verbose)


def test_style_debug_flag_skips_minification(context, configure, paths, sources) -> None:
    configure(debug=DebugFlags(styles=True))

    asyncio.run(StyleTask(context).run())

    assert (paths.build / "style.css").read_text() == (paths.verbose / "style.css").read_text()


def test_style_task_picks_up_css_variable_edits(context, paths, sources) -> None:
    asyncio.run(StyleTask(context).run())
    paths.css_vars.write_text('{"variables": {"--global-font-size": "21px"}, "queries": {}}')

    asyncio.run(StyleTask(context).run())

    assert "font-size: 21px;" in (paths.verbose / "style.css").read_text()


def test_broken_stylesheet_is_a_file_error_not_a_failure(context, paths, sources) -> None:
    write_file(paths["styles"].source / "broken.css", b"\xff\xfe not utf-8")

    result = asyncio.run(StyleTask(context).run())

    assert result.state is TaskState.COMPLETED
    assert [error.path.name for error in result.file_errors] == ["broken.css"]
    assert (paths.build / "style.css").exists()
    assert not (paths.build / "broken.css").exists()


def test_sass_compiles_next_to_sources_with_maps(context, paths) -> None:
    sass_dir = paths["sass"].source / "sass"
    write_file(sass_dir / "_colors.scss", "$accent: #123456;\n")
    write_file(sass_dir / "main.scss", "@import 'colors';\n.menu {\n  .item { color: $accent; }\n}\n")

    result = asyncio.run(SassTask(context).run())

    assert result.state is TaskState.COMPLETED
    css = (sass_dir / "main.css").read_text()
    assert ".menu .item {" in css
    assert "\tcolor: #123456;" in css
    assert (paths.maps / "dev" / "sass" / "main.css.map").exists()
    assert not (sass_dir / "_colors.css").exists()
    assert not paths.build.exists()


def test_sass_syntax_error_is_recorded_per_file(context, paths) -> None:
    sass_dir = paths["sass"].source / "sass"
    write_file(sass_dir / "ok.scss", ".a { color: red; }\n")
    write_file(sass_dir / "broken.scss", ".a { color: red;\n")

    result = asyncio.run(SassTask(context).run())

    assert result.state is TaskState.COMPLETED
    assert [error.path.name for error in result.file_errors] == ["broken.scss"]
    assert (sass_dir / "ok.css").exists()


def test_script_task_replaces_tokens_then_minifies(context, paths, sources) -> None:
    write_file(paths["scripts"].source / "js" / "vendor.min.js", "var a=1;")

    result = asyncio.run(ScriptTask(context).run())

    assert result.state is TaskState.COMPLETED
    verbose = (paths.verbose / "js" / "navigation.js").read_text()
    final = (paths.build / "js" / "navigation.js").read_text()
    assert "var themeSlug = 'demo';" in verbose
    assert "Navigation for demo." in verbose
    assert "themeSlug='demo'" in final
    assert "Navigation" not in final
    assert not (paths.build / "js" / "vendor.min.js").exists()


def test_script_debug_flag_keeps_readable_output(context, configure, paths, sources) -> None:
    configure(debug=DebugFlags(scripts=True))

    asyncio.run(ScriptTask(context).run())

    assert (paths.build / "js" / "navigation.js").read_text() == (
        paths.verbose / "js" / "navigation.js"
    ).read_text()


def test_script_task_honours_force(context, paths, sources) -> None:
    asyncio.run(ScriptTask(context).run())
    assert asyncio.run(ScriptTask(context).run()).written == []

    context.force = True
    forced = asyncio.run(ScriptTask(context).run())

    assert len(forced.written) == 2


def test_copy_tasks_are_idempotent(context, paths) -> None:
    dev = paths["scripts"].source
    write_file(dev / "js" / "libs" / "lazyload.js", "/* keep me */ var lazy = 1;")
    write_file(dev / "js" / "skip-link.min.js", "var s=1;")
    libs, minified = CopyTask.libraries(context), CopyTask.minified(context)

    first = [asyncio.run(libs.run()), asyncio.run(minified.run())]
    second = [asyncio.run(libs.run()), asyncio.run(minified.run())]

    assert [len(result.written) for result in first] == [2, 2]
    assert [result.written for result in second] == [[], []]
    assert (paths.build / "js" / "libs" / "lazyload.js").read_text() == "/* keep me */ var lazy = 1;"
    assert (paths.verbose / "js" / "skip-link.min.js").read_text() == "var s=1;"


def test_images_are_optimized_into_the_build_tree(context, paths, image_factory) -> None:
    original = image_factory("images/logo.png")
    write_file(
        paths["images"].source / "images" / "icon.svg",
        '<svg xmlns="http://www.w3.org/2000/svg">\n  <!-- icon -->\n  <rect width="1" height="1"/>\n</svg>\n',
    )

    result = asyncio.run(ImageTask(context).run())

    assert result.state is TaskState.COMPLETED
    built = paths.build / "images" / "logo.png"
    assert built.stat().st_size < original.stat().st_size
    with Image.open(built) as image:
        assert image.size == (48, 48)
    assert (paths.build / "images" / "icon.svg").read_text() == (
        '<svg xmlns="http://www.w3.org/2000/svg"><rect width="1" height="1"/></svg>'
    )
    assert not (paths.verbose / "images").exists()
    assert asyncio.run(ImageTask(context).run()).written == []


def test_translate_requires_a_build_tree(context) -> None:
    result = asyncio.run(TranslateTask(context).run())

    assert result.state is TaskState.FAILED
    assert "has not been built" in (result.error or "")


def test_translate_writes_catalog_for_built_templates(context, paths, sources) -> None:
    asyncio.run(PhpTask(context).run())

    result = asyncio.run(TranslateTask(context).run())

    assert result.state is TaskState.COMPLETED
    catalog = (paths.build / "languages" / "demo.pot").read_text()
    assert 'msgid "Welcome to Demo Theme"' in catalog
    assert "#: index.php:" in catalog
    assert '"X-Domain: demo\\n"' in catalog
    assert '"Project-Id-Version: Demo Theme\\n"' in catalog
