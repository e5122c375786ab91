"""Stylesheet transforms: custom properties, custom media, prefixes, Sass."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple

import rcssmin
import sass

from .config import CssVariables
from .pipeline import TransformError

_ROOT_RULE = re.compile(r":root\s*\{(?P<body>[^{}]*)\}")
_CUSTOM_DECLARATION = re.compile(r"(?P<name>--[\w-]+)\s*:\s*(?P<value>[^;{}]+?)\s*(?:;|(?=\})|$)")
_VAR_CALL = re.compile(r"var\(\s*(?P<name>--[\w-]+)\s*(?:,\s*(?P<fallback>[^()]*(?:\([^()]*\)[^()]*)*))?\)")
_CUSTOM_MEDIA = re.compile(r"@custom-media\s+(?P<name>--[\w-]+)\s+(?P<query>[^;]+);\s*")
_MEDIA_PRELUDE = re.compile(r"@media\s+(?P<prelude>[^{]+)\{")
_MEDIA_REFERENCE = re.compile(r"\(\s*(?P<name>--[\w-]+)\s*\)")

_MAX_VAR_DEPTH = 10

# Property -> vendor prefixes still needed by the browsers we target.
PREFIXED_PROPERTIES: Dict[str, Tuple[str, ...]] = {
    "appearance": ("-webkit-", "-moz-"),
    "backdrop-filter": ("-webkit-",),
    "hyphens": ("-webkit-", "-ms-"),
    "mask-image": ("-webkit-",),
    "tab-size": ("-moz-",),
    "text-size-adjust": ("-webkit-", "-ms-"),
    "user-select": ("-webkit-", "-moz-", "-ms-"),
}
_PREFIX_TARGET = re.compile(
    r"(?P<lead>[{;]\s*)(?P<prop>" + "|".join(map(re.escape, PREFIXED_PROPERTIES)) + r")\s*:\s*(?P<value>[^;{}]+)"
)


def collect_custom_properties(css: str) -> Dict[str, str]:
    """Return custom properties declared inside ``:root`` rules."""

    found: Dict[str, str] = {}
    for rule in _ROOT_RULE.finditer(css):
        for declaration in _CUSTOM_DECLARATION.finditer(rule.group("body")):
            found[declaration.group("name")] = declaration.group("value").strip()
    return found


def _strip_root_declarations(css: str) -> str:
    def _clean(match: re.Match[str]) -> str:
        body = _CUSTOM_DECLARATION.sub("", match.group("body"))
        if not body.strip():
            return ""
        return f":root {{{body}}}"

    return _ROOT_RULE.sub(_clean, css)


def _resolve(value: str, variables: Dict[str, str], depth: int = 0) -> str:
    if depth > _MAX_VAR_DEPTH:
        raise TransformError(f"Custom property references nest deeper than {_MAX_VAR_DEPTH}: {value}")

    def _substitute(match: re.Match[str]) -> str:
        name = match.group("name")
        if name in variables:
            return _resolve(variables[name], variables, depth + 1)
        fallback = match.group("fallback")
        if fallback is not None:
            return _resolve(fallback.strip(), variables, depth + 1)
        return match.group(0)

    return _VAR_CALL.sub(_substitute, value)


def substitute_custom_properties(css: str, extra: Dict[str, str] | None = None) -> str:
    """Inline ``var()`` references and drop the ``:root`` declarations."""

    variables = collect_custom_properties(css)
    variables.update(extra or {})
    css = _strip_root_declarations(css)
    return _resolve(css, variables)


def expand_custom_media(css: str, queries: Dict[str, str] | None = None) -> str:
    """Replace ``(--name)`` in media preludes with their definitions."""

    definitions: Dict[str, str] = {}
    for match in _CUSTOM_MEDIA.finditer(css):
        definitions[match.group("name")] = match.group("query").strip()
    definitions.update(queries or {})
    css = _CUSTOM_MEDIA.sub("", css)

    def _expand_prelude(match: re.Match[str]) -> str:
        prelude = _MEDIA_REFERENCE.sub(
            lambda ref: definitions.get(ref.group("name"), ref.group(0)),
            match.group("prelude"),
        )
        return f"@media {prelude}{{"

    return _MEDIA_PRELUDE.sub(_expand_prelude, css)


def wants_ms_prefix(targets: Iterable[str]) -> bool:
    return any(re.search(r"\b(ie|edge)\b", target, re.IGNORECASE) for target in targets)


def add_vendor_prefixes(css: str, targets: Sequence[str]) -> str:
    """Insert prefixed copies of declarations that still need them.

    The prefix table is fixed. ``targets`` only decides whether the
    ``-ms-`` prefixes are emitted (any IE or Edge target keeps them); it is
    not evaluated as a full browserslist query.
    """

    keep_ms = wants_ms_prefix(targets)

    def _prefix(match: re.Match[str]) -> str:
        prop = match.group("prop")
        value = match.group("value").strip()
        prefixed: List[str] = []
        for prefix in PREFIXED_PROPERTIES[prop]:
            if prefix == "-ms-" and not keep_ms:
                continue
            prefixed.append(f"{prefix}{prop}: {value};")
        indent = match.group("lead")[1:]
        lead = match.group("lead")[0]
        joined = "".join(f"{indent}{declaration}" for declaration in prefixed)
        return f"{lead}{joined}{indent}{prop}: {value}"

    return _PREFIX_TARGET.sub(_prefix, css)


def process_css(css: str, css_vars: CssVariables, targets: Sequence[str]) -> str:
    css = substitute_custom_properties(css, css_vars.variables)
    css = expand_custom_media(css, css_vars.queries)
    return add_vendor_prefixes(css, targets)


def minify_css(css: str) -> str:
    """Minify while keeping ``/*!`` comments such as the theme header."""

    return rcssmin.cssmin(css, keep_bang_comments=True)


def tabify(text: str, width: int = 2) -> str:
    """Turn leading runs of ``width`` spaces into tabs."""

    lines = []
    for line in text.splitlines(keepends=True):
        stripped = line.lstrip(" ")
        spaces = len(line) - len(stripped)
        lines.append("\t" * (spaces // width) + " " * (spaces % width) + stripped)
    return "".join(lines)


def compile_sass(path: Path, css_path: Path, map_path: Path) -> Tuple[str, str]:
    """Compile a Sass file, returning the CSS and its source map."""

    try:
        css, source_map = sass.compile(
            filename=str(path),
            output_style="expanded",
            include_paths=[str(path.parent)],
            source_map_filename=str(map_path),
            output_filename_hint=str(css_path),
        )
    except sass.CompileError as exc:
        raise TransformError(str(exc)) from exc
    return tabify(css), source_map


__all__ = [
    "add_vendor_prefixes",
    "collect_custom_properties",
    "compile_sass",
    "expand_custom_media",
    "minify_css",
    "process_css",
    "substitute_custom_properties",
    "tabify",
]
