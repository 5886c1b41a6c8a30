"""Convert Atlassian Document Format (ADF) bodies into Markdown.

Jira Cloud returns descriptions and comment bodies as ADF, a JSON tree of typed
nodes. Conversion happens in two steps:

1. ``parse`` turns the raw JSON into an immutable tree of ``DocumentNode``
   objects. Every node gets a ``NodeKind``; types we do not render become
   ``NodeKind.IGNORED`` and anything nested deeper than ``max_depth`` becomes
   ``NodeKind.TRUNCATED``.
2. ``render`` walks the typed tree and produces Markdown.

Only the node types that matter for issue descriptions are supported (see
``NodeKind``). Mentions, emoji, tables, media and panels are dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Final

logger: logging.Logger = logging.getLogger(__name__)

MAX_DEPTH: Final[int] = 64
TRUNCATION_NOTICE: Final[str] = "[content truncated]"


class NodeKind(Enum):
    DOC = "doc"
    PARAGRAPH = "paragraph"
    HEADING = "heading"
    BULLET_LIST = "bulletList"
    ORDERED_LIST = "orderedList"
    LIST_ITEM = "listItem"
    CODE_BLOCK = "codeBlock"
    BLOCKQUOTE = "blockquote"
    HARD_BREAK = "hardBreak"
    TEXT = "text"
    IGNORED = "ignored"
    TRUNCATED = "truncated"

    @classmethod
    def from_type(cls, type_name: object) -> NodeKind:
        if not isinstance(type_name, str) or type_name in ("ignored", "truncated"):
            return cls.IGNORED
        try:
            return cls(type_name)
        except ValueError:
            return cls.IGNORED


@dataclass(frozen=True)
class Mark:
    """Inline formatting applied to a text node."""

    type: str
    href: str = ""


@dataclass(frozen=True)
class DocumentNode:
    kind: NodeKind
    text: str = ""
    marks: tuple[Mark, ...] = ()
    level: int = 1
    children: tuple[DocumentNode, ...] = ()


def _apply_marks(text: str, marks: tuple[Mark, ...]) -> str:
    for mark in marks:
        if mark.type == "strong":
            text = f"**{text}**"
        elif mark.type == "em":
            text = f"*{text}*"
        elif mark.type == "code":
            text = f"`{text}`"
        elif mark.type == "link":
            text = f"[{text}]({mark.href})"
    return text


def _prefix_lines(text: str, first_prefix: str) -> str:
    """Prefix the first line with ``first_prefix`` and indent continuation lines to match.

    Blank lines inside the text are kept (unindented) so that code blocks and
    paragraph breaks survive; leading and trailing blank lines are dropped.
    """
    lines = text.splitlines()
    while lines and not lines[-1].strip():
        lines.pop()
    while lines and not lines[0].strip():
        lines.pop(0)
    if not lines:
        return first_prefix.rstrip()
    indent = " " * len(first_prefix)
    rest = [indent + line if line.strip() else "" for line in lines[1:]]
    return "\n".join([first_prefix + lines[0], *rest])


class DocumentConverter:
    """Parses and renders one ADF document at a time."""

    max_depth: int
    truncated_nodes: int

    def __init__(self, max_depth: int = MAX_DEPTH) -> None:
        self.max_depth = max_depth
        self.truncated_nodes = 0

    def parse(self, raw: object, depth: int = 0) -> DocumentNode:
        if not isinstance(raw, Mapping):
            return DocumentNode(kind=NodeKind.IGNORED)
        if depth > self.max_depth:
            self.truncated_nodes += 1
            return DocumentNode(kind=NodeKind.TRUNCATED)

        kind = NodeKind.from_type(raw.get("type"))
        if kind is NodeKind.IGNORED:
            return DocumentNode(kind=kind)

        attrs: Mapping[str, Any] = raw.get("attrs") or {}
        raw_children = raw.get("content")
        children: tuple[DocumentNode, ...] = ()
        if isinstance(raw_children, list):
            children = tuple(self.parse(child, depth + 1) for child in raw_children)

        marks: list[Mark] = []
        for raw_mark in raw.get("marks") or []:
            if isinstance(raw_mark, Mapping) and isinstance(raw_mark.get("type"), str):
                mark_attrs: Mapping[str, Any] = raw_mark.get("attrs") or {}
                marks.append(Mark(type=raw_mark["type"], href=str(mark_attrs.get("href", ""))))

        level = attrs.get("level", 1)
        return DocumentNode(
            kind=kind,
            text=str(raw.get("text") or ""),
            marks=tuple(marks),
            level=level if isinstance(level, int) and level > 0 else 1,
            children=children,
        )

    def render(self, node: DocumentNode) -> str:  # noqa: PLR0911 - one branch per node kind
        kind = node.kind
        if kind is NodeKind.DOC:
            return self._render_children(node)
        if kind is NodeKind.LIST_ITEM:
            return self._render_list_item(node)
        if kind is NodeKind.PARAGRAPH:
            return f"{self._render_children(node)}\n\n"
        if kind is NodeKind.HEADING:
            return f"{'#' * node.level} {self._render_children(node)}\n\n"
        if kind is NodeKind.BULLET_LIST or kind is NodeKind.ORDERED_LIST:
            return self._render_list(node, ordered=kind is NodeKind.ORDERED_LIST)
        if kind is NodeKind.CODE_BLOCK:
            code = "".join(child.text for child in node.children if child.kind is NodeKind.TEXT)
            return f"```\n{code}\n```\n\n"
        if kind is NodeKind.BLOCKQUOTE:
            quoted = self._render_children(node).strip()
            return "\n".join(f"> {line}".rstrip() for line in quoted.splitlines()) + "\n\n"
        if kind is NodeKind.HARD_BREAK:
            return "\n"
        if kind is NodeKind.TEXT:
            return _apply_marks(node.text, node.marks)
        if kind is NodeKind.TRUNCATED:
            return f"{TRUNCATION_NOTICE}\n"
        # NodeKind.IGNORED
        return ""

    def _render_children(self, node: DocumentNode) -> str:
        return "".join(self.render(child) for child in node.children)

    def _render_list_item(self, node: DocumentNode) -> str:
        # A nested list hugs the line above it; other blocks keep a blank line between them
        text = ""
        for child in node.children:
            if child.kind in (NodeKind.TEXT, NodeKind.HARD_BREAK):
                text += self.render(child)
                continue
            block = self.render(child).strip("\n")
            if not block:
                continue
            if text:
                is_list = child.kind in (NodeKind.BULLET_LIST, NodeKind.ORDERED_LIST)
                text = text.rstrip("\n") + ("\n" if is_list else "\n\n")
            text += block
        return text

    def _render_list(self, node: DocumentNode, *, ordered: bool) -> str:
        items = [child for child in node.children if child.kind is NodeKind.LIST_ITEM]
        rendered: list[str] = []
        for number, item in enumerate(items, start=1):
            prefix = f"{number}. " if ordered else "- "
            rendered.append(_prefix_lines(self.render(item).strip(), prefix))
        if not rendered:
            return ""
        return "\n".join(rendered) + "\n\n"

    def convert(self, body: object) -> str:
        if body is None:
            return ""
        if isinstance(body, str):
            return body
        if not isinstance(body, Mapping) or body.get("type") != "doc":
            return ""

        self.truncated_nodes = 0
        text = self.render(self.parse(body)).rstrip()
        if self.truncated_nodes:
            logger.warning(
                f"Document nested deeper than {self.max_depth} levels; "
                f"{self.truncated_nodes} node(s) replaced with '{TRUNCATION_NOTICE}'"
            )
        return text


def convert_document(body: object, *, max_depth: int = MAX_DEPTH) -> str:
    """Convert a Jira description or comment body to Markdown.

    Plain strings are returned unchanged, ``None`` and non-document values
    become an empty string.
    """
    return DocumentConverter(max_depth=max_depth).convert(body)
