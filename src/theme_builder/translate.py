"""Extraction of translatable strings into a gettext catalog template."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from jinja2 import Environment, FileSystemLoader

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
CATALOG_TEMPLATE = "catalog.pot.j2"

# Argument roles per gettext function.
KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "__": ("msgid", "domain"),
    "_e": ("msgid", "domain"),
    "esc_html__": ("msgid", "domain"),
    "esc_html_e": ("msgid", "domain"),
    "esc_attr__": ("msgid", "domain"),
    "esc_attr_e": ("msgid", "domain"),
    "_x": ("msgid", "context", "domain"),
    "_ex": ("msgid", "context", "domain"),
    "esc_html_x": ("msgid", "context", "domain"),
    "esc_attr_x": ("msgid", "context", "domain"),
    "_n": ("msgid", "plural", "count", "domain"),
    "_n_noop": ("msgid", "plural", "domain"),
    "_nx": ("msgid", "plural", "count", "context", "domain"),
    "_nx_noop": ("msgid", "plural", "context", "domain"),
}

_CALL = re.compile(r"(?<![\w$>:])(?P<func>" + "|".join(sorted(KEYWORDS, key=len, reverse=True)) + r")\s*\(")
_TRANSLATOR_COMMENT = re.compile(
    r"/\*\s*(?P<block>translators:.*?)\s*\*/|//\s*(?P<line>translators:[^\n]*)",
    re.DOTALL | re.IGNORECASE,
)
_SINGLE_ESCAPES = re.compile(r"\\([\\'])")
_DOUBLE_ESCAPES = re.compile(r"\\([\\\"$nrtv])")
_DOUBLE_MAP = {"n": "\n", "r": "\r", "t": "\t", "v": "\v", "\\": "\\", '"': '"', "$": "$"}


@dataclass(slots=True)
class CatalogEntry:
    msgid: str
    context: Optional[str] = None
    plural: Optional[str] = None
    references: List[str] = field(default_factory=list)
    comments: List[str] = field(default_factory=list)


def _unquote(literal: str) -> Optional[str]:
    literal = literal.strip()
    if len(literal) < 2 or literal[0] != literal[-1] or literal[0] not in "'\"":
        return None
    body = literal[1:-1]
    if literal[0] == "'":
        return _SINGLE_ESCAPES.sub(lambda m: m.group(1), body)
    if re.search(r"(?<!\\)\$", body):
        # Interpolated strings cannot be translated reliably.
        return None
    return _DOUBLE_ESCAPES.sub(lambda m: _DOUBLE_MAP[m.group(1)], body)


def split_arguments(source: str, start: int) -> Tuple[List[str], int]:
    """Split a PHP argument list beginning after ``(`` at ``start``.

    Returns the raw arguments and the index just past the closing paren.
    """

    args: List[str] = []
    depth = 0
    quote: Optional[str] = None
    current: List[str] = []
    index = start
    while index < len(source):
        char = source[index]
        if quote:
            current.append(char)
            if char == "\\" and index + 1 < len(source):
                current.append(source[index + 1])
                index += 2
                continue
            if char == quote:
                quote = None
        elif char in "'\"":
            quote = char
            current.append(char)
        elif char in "([{":
            depth += 1
            current.append(char)
        elif char in ")]}":
            if depth == 0:
                if "".join(current).strip():
                    args.append("".join(current))
                return args, index + 1
            depth -= 1
            current.append(char)
        elif char == "," and depth == 0:
            args.append("".join(current))
            current = []
        else:
            current.append(char)
        index += 1
    raise ValueError("Unterminated function call")


class Catalog:
    """Translatable strings collected across files, in first-seen order."""

    def __init__(self, domain: str) -> None:
        self.domain = domain
        self._entries: Dict[Tuple[Optional[str], str], CatalogEntry] = {}

    @property
    def entries(self) -> List[CatalogEntry]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def add(
        self,
        msgid: str,
        reference: str,
        *,
        context: Optional[str] = None,
        plural: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> None:
        key = (context, msgid)
        entry = self._entries.get(key)
        if entry is None:
            entry = CatalogEntry(msgid=msgid, context=context, plural=plural)
            self._entries[key] = entry
        if plural and not entry.plural:
            entry.plural = plural
        if reference not in entry.references:
            entry.references.append(reference)
        if comment and comment not in entry.comments:
            entry.comments.append(comment)

    def scan(self, source: str, relative: str) -> int:
        """Add every matching gettext call in ``source``; return how many."""

        comments: Dict[int, str] = {}
        for match in _TRANSLATOR_COMMENT.finditer(source):
            text = match.group("block") or match.group("line")
            end_line = source.count("\n", 0, match.end()) + 1
            comments[end_line] = " ".join(text.split())

        found = 0
        for match in _CALL.finditer(source):
            try:
                raw_args, _ = split_arguments(source, match.end())
            except ValueError:
                continue
            roles = KEYWORDS[match.group("func")]
            values: Dict[str, Optional[str]] = {}
            for role, raw in zip(roles, raw_args):
                values[role] = _unquote(raw)
            msgid = values.get("msgid")
            if not msgid:
                continue
            if "plural" in roles and not values.get("plural"):
                continue
            if "context" in roles and not values.get("context"):
                continue
            if values.get("domain") != self.domain:
                continue
            line = source.count("\n", 0, match.start()) + 1
            comment = comments.get(line) or comments.get(line - 1)
            self.add(
                msgid,
                f"{relative}:{line}",
                context=values.get("context"),
                plural=values.get("plural"),
                comment=comment,
            )
            found += 1
        return found


def po_escape(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\r", "\\r")
    )


def _environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    env.filters["po"] = po_escape
    return env


def render_catalog(
    catalog: Catalog,
    *,
    package: str,
    bug_report: str,
    last_translator: str,
    created: Optional[datetime] = None,
    team: Optional[str] = None,
) -> str:
    """Render the catalog template (``.pot``)."""

    created = created or datetime.now(timezone.utc)
    template = _environment().get_template(CATALOG_TEMPLATE)
    return template.render(
        package=package,
        domain=catalog.domain,
        bug_report=bug_report,
        last_translator=last_translator,
        team=team or last_translator,
        created=created.strftime("%Y-%m-%d %H:%M%z"),
        year=created.year,
        entries=catalog.entries,
    )



__all__ = [
    "Catalog",
    "CatalogEntry",
    "KEYWORDS",
    "po_escape",
    "render_catalog",
    "split_arguments",
]
