"""Rich-text document model.

The remote stores descriptions and comments as a recursive node tree
(document -> block nodes -> inline nodes with marks). This module provides
an immutable DocumentNode tree plus conversions:

- parse(raw) / serialize(node): wire dict <-> tree, loss-preserving
- to_plain_text(node) / from_plain_text(text)
- to_markdown(node) / from_markdown(text)

Node types outside the known vocabulary are kept verbatim and accepted under
any parent. For known types, a child that its parent does not accept raises
SchemaError with the path of the offending child.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from trackerkit.integrations.errors import SchemaError

DOCUMENT_SCHEMA_ID = "document"
DOCUMENT_VERSION = 1

INLINE_TYPES = frozenset(
    {
        "text",
        "hardBreak",
        "mention",
        "emoji",
        "inlineCard",
        "status",
        "date",
        "placeholder",
        "mediaInline",
        "inlineExtension",
    }
)
BLOCK_TYPES = frozenset(
    {
        "paragraph",
        "heading",
        "codeBlock",
        "bulletList",
        "orderedList",
        "blockquote",
        "rule",
        "panel",
        "table",
        "mediaSingle",
        "mediaGroup",
        "expand",
        "taskList",
        "decisionList",
        "blockCard",
        "embedCard",
        "extension",
        "bodiedExtension",
        "layoutSection",
    }
)
_LEAF: frozenset[str] = frozenset()

# Parent type -> node types it may contain
ALLOWED_CHILDREN: Mapping[str, frozenset[str]] = MappingProxyType(
    {
        "doc": BLOCK_TYPES,
        "paragraph": INLINE_TYPES,
        "heading": INLINE_TYPES,
        "codeBlock": frozenset({"text"}),
        "bulletList": frozenset({"listItem"}),
        "orderedList": frozenset({"listItem"}),
        "listItem": BLOCK_TYPES,
        "blockquote": BLOCK_TYPES,
        "panel": BLOCK_TYPES,
        "expand": BLOCK_TYPES | {"nestedExpand"},
        "nestedExpand": BLOCK_TYPES,
        "table": frozenset({"tableRow"}),
        "tableRow": frozenset({"tableHeader", "tableCell"}),
        "tableHeader": BLOCK_TYPES | {"nestedExpand"},
        "tableCell": BLOCK_TYPES | {"nestedExpand"},
        "taskList": frozenset({"taskItem", "taskList"}),
        "taskItem": INLINE_TYPES,
        "decisionList": frozenset({"decisionItem"}),
        "decisionItem": INLINE_TYPES,
        "mediaSingle": frozenset({"media", "caption"}),
        "caption": INLINE_TYPES,
        "bodiedExtension": BLOCK_TYPES,
        "layoutSection": frozenset({"layoutColumn"}),
        "layoutColumn": BLOCK_TYPES,
        "mediaGroup": frozenset({"media"}),
        "text": _LEAF,
        "hardBreak": _LEAF,
        "rule": _LEAF,
        "mention": _LEAF,
        "emoji": _LEAF,
        "inlineCard": _LEAF,
        "blockCard": _LEAF,
        "status": _LEAF,
        "date": _LEAF,
        "media": _LEAF,
        "placeholder": _LEAF,
        "mediaInline": _LEAF,
        "inlineExtension": _LEAF,
        "embedCard": _LEAF,
        "extension": _LEAF,
    }
)
KNOWN_TYPES = frozenset(ALLOWED_CHILDREN)

_NODE_KEYS = frozenset({"type", "text", "attrs", "marks", "content"})


def _join(path: str, part: str) -> str:
    return f"{path}.{part}" if path else part


def check_children(parent_type: str, child_types: Iterable[str], path: str = "") -> None:
    """Raise SchemaError if a known child type is not allowed under a known parent."""
    allowed = ALLOWED_CHILDREN.get(parent_type)
    if allowed is None:
        return
    for index, child_type in enumerate(child_types):
        if child_type in KNOWN_TYPES and child_type not in allowed:
            raise SchemaError(
                DOCUMENT_SCHEMA_ID,
                _join(path, f"content[{index}]"),
                f"'{child_type}' is not allowed inside '{parent_type}'",
            )


@dataclass(frozen=True)
class Mark:
    """Inline formatting applied to a text node (strong, em, link, ...)."""

    type: str
    attrs: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class DocumentNode:
    """One node of a rich-text tree.

    Attributes:
        type: Type tag (doc, paragraph, text, codeBlock, ...)
        text: Text of a text node
        attrs: Node attributes (heading level, code language, ...)
        marks: Formatting marks of a text node
        content: Ordered children, or None for nodes without a content key
        extra: Any other keys of the raw node (e.g. ``version``), kept verbatim
    """

    type: str
    text: str | None = None
    attrs: Mapping[str, Any] | None = None
    marks: tuple[Mark, ...] = ()
    content: tuple[DocumentNode, ...] | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.content is not None and not isinstance(self.content, tuple):
            object.__setattr__(self, "content", tuple(self.content))
        if not isinstance(self.marks, tuple):
            object.__setattr__(self, "marks", tuple(self.marks))
        if self.type == "text" and not isinstance(self.text, str):
            raise SchemaError(DOCUMENT_SCHEMA_ID, "text", "text node requires a string 'text'")
        if self.content:
            check_children(self.type, (child.type for child in self.content))

    @property
    def children(self) -> tuple[DocumentNode, ...]:
        return self.content or ()

    def walk(self) -> Iterable[DocumentNode]:
        """Yield this node and all descendants, depth-first."""
        yield self
        for child in self.children:
            yield from child.walk()


# ============================================================================
# Builders
# ============================================================================


def text_node(value: str, *marks: Mark) -> DocumentNode:
    return DocumentNode(type="text", text=value, marks=tuple(marks))


def paragraph(*inline: DocumentNode) -> DocumentNode:
    return DocumentNode(type="paragraph", content=tuple(inline))


def document(*blocks: DocumentNode) -> DocumentNode:
    """Build a doc node with the current document version."""
    return DocumentNode(type="doc", content=tuple(blocks), extra={"version": DOCUMENT_VERSION})


def is_document(node: DocumentNode | None) -> bool:
    return node is not None and node.type == "doc"


# ============================================================================
# Wire conversion
# ============================================================================


def parse(raw: Any) -> DocumentNode:
    """Parse a wire document (dict, or JSON string holding one) into a tree.

    Raises:
        SchemaError: If a node lacks a type, has malformed fields, or holds
            a child its type does not allow
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise SchemaError(DOCUMENT_SCHEMA_ID, "", "string is not serialized JSON") from e
    return _parse_node(raw, "")


def _parse_node(raw: Any, path: str) -> DocumentNode:
    if not isinstance(raw, Mapping):
        raise SchemaError(DOCUMENT_SCHEMA_ID, path, "node must be an object")
    node_type = raw.get("type")
    if not isinstance(node_type, str) or not node_type:
        raise SchemaError(DOCUMENT_SCHEMA_ID, _join(path, "type"), "node requires a string type")

    text = raw.get("text")
    if text is not None and not isinstance(text, str):
        raise SchemaError(DOCUMENT_SCHEMA_ID, _join(path, "text"), "text must be a string")
    if node_type == "text" and text is None:
        raise SchemaError(DOCUMENT_SCHEMA_ID, _join(path, "text"), "text node requires text")

    attrs = raw.get("attrs")
    if attrs is not None and not isinstance(attrs, Mapping):
        raise SchemaError(DOCUMENT_SCHEMA_ID, _join(path, "attrs"), "attrs must be an object")

    marks: list[Mark] = []
    raw_marks = raw.get("marks") or []
    if not isinstance(raw_marks, list):
        raise SchemaError(DOCUMENT_SCHEMA_ID, _join(path, "marks"), "marks must be a list")
    for index, raw_mark in enumerate(raw_marks):
        if not isinstance(raw_mark, Mapping) or not isinstance(raw_mark.get("type"), str):
            raise SchemaError(
                DOCUMENT_SCHEMA_ID, _join(path, f"marks[{index}]"), "mark requires a type"
            )
        mark_attrs = raw_mark.get("attrs")
        if mark_attrs is not None and not isinstance(mark_attrs, Mapping):
            raise SchemaError(
                DOCUMENT_SCHEMA_ID, _join(path, f"marks[{index}].attrs"), "attrs must be an object"
            )
        marks.append(
            Mark(type=raw_mark["type"], attrs=dict(mark_attrs) if mark_attrs is not None else None)
        )

    content: tuple[DocumentNode, ...] | None = None
    raw_content = raw.get("content")
    if raw_content is not None:
        if not isinstance(raw_content, list):
            raise SchemaError(DOCUMENT_SCHEMA_ID, _join(path, "content"), "content must be a list")
        children = [
            _parse_node(child, _join(path, f"content[{index}]"))
            for index, child in enumerate(raw_content)
        ]
        check_children(node_type, (c.type for c in children), path)
        content = tuple(children)

    extra = {k: v for k, v in raw.items() if k not in _NODE_KEYS}
    return DocumentNode(
        type=node_type,
        text=text,
        attrs=dict(attrs) if attrs is not None else None,
        marks=tuple(marks),
        content=content,
        extra=extra,
    )


def serialize(node: DocumentNode) -> dict[str, Any]:
    """Render a tree back to its wire dict."""
    raw: dict[str, Any] = {"type": node.type}
    raw.update(node.extra)
    if node.attrs is not None:
        raw["attrs"] = dict(node.attrs)
    if node.content is not None:
        raw["content"] = [serialize(child) for child in node.content]
    if node.text is not None:
        raw["text"] = node.text
    if node.marks:
        raw["marks"] = [
            {"type": m.type, "attrs": dict(m.attrs)} if m.attrs is not None else {"type": m.type}
            for m in node.marks
        ]
    return raw


# ============================================================================
# Plain text
# ============================================================================

_INLINE_CONTAINERS = frozenset({"paragraph", "heading", "codeBlock", "taskItem", "decisionItem"})


def _attr(node: DocumentNode, name: str, default: str = "") -> str:
    value = (node.attrs or {}).get(name)
    return str(value) if value is not None else default


def _inline_leaf_text(node: DocumentNode) -> str:
    if node.type == "text":
        return node.text or ""
    if node.type == "hardBreak":
        return "\n"
    if node.type == "mention":
        label = _attr(node, "text")
        return label if label else "@" + _attr(node, "id")
    if node.type == "emoji":
        return _attr(node, "text") or _attr(node, "shortName")
    if node.type in ("inlineCard", "blockCard"):
        return _attr(node, "url")
    if node.type == "status":
        return _attr(node, "text")
    if node.type == "date":
        return _attr(node, "timestamp")
    return node.text or ""


def to_plain_text(node: DocumentNode | None) -> str:
    """Flatten a tree to text, depth-first, with line breaks at block boundaries."""
    if node is None:
        return ""
    return _plain(node).strip("\n")


def _plain(node: DocumentNode) -> str:
    if node.content is None or node.type in INLINE_TYPES:
        return _inline_leaf_text(node)
    if node.type in _INLINE_CONTAINERS:
        return "".join(_plain(child) for child in node.children)
    return "\n".join(_plain(child) for child in node.children)


def from_plain_text(text: str | None) -> DocumentNode:
    """Build a document from a string.

    A string that already holds a serialized document is passed through
    (parsed, not re-wrapped). Anything else becomes one paragraph with a
    single text node; an empty string gives an empty paragraph.
    """
    text = text or ""
    stripped = text.strip()
    if stripped.startswith("{"):
        try:
            raw = json.loads(stripped)
        except ValueError:
            raw = None
        if isinstance(raw, dict) and raw.get("type") == "doc":
            return parse(raw)
    if not text:
        return document(paragraph())
    return document(paragraph(text_node(text)))


# ============================================================================
# Markdown
# ============================================================================

_MARK_WRAPPERS: Mapping[str, tuple[str, str]] = MappingProxyType(
    {
        "code": ("`", "`"),
        "strong": ("**", "**"),
        "em": ("*", "*"),
        "strike": ("~~", "~~"),
    }
)


def _inline_markdown(node: DocumentNode) -> str:
    if node.type != "text":
        return _inline_leaf_text(node).replace("\n", "  \n")
    value = node.text or ""
    link: str | None = None
    for mark in node.marks:
        if mark.type == "link":
            link = str((mark.attrs or {}).get("href", ""))
            continue
        wrapper = _MARK_WRAPPERS.get(mark.type)
        if wrapper:
            value = f"{wrapper[0]}{value}{wrapper[1]}"
    if link:
        value = f"[{value}]({link})"
    return value


_BLOCK_CONTAINERS = frozenset(
    {
        "doc",
        "panel",
        "expand",
        "nestedExpand",
        "listItem",
        "tableCell",
        "tableHeader",
        "bodiedExtension",
        "layoutSection",
        "layoutColumn",
    }
)


def _markdown_blocks(node: DocumentNode, depth: int = 0) -> list[str]:
    """Render a block-level node as a list of markdown blocks."""
    kind = node.type
    if kind in ("paragraph", "taskItem", "decisionItem"):
        return ["".join(_inline_markdown(c) for c in node.children)]
    if kind == "heading":
        level = int((node.attrs or {}).get("level", 1))
        return ["#" * level + " " + "".join(_inline_markdown(c) for c in node.children)]
    if kind == "codeBlock":
        language = _attr(node, "language")
        body = "".join(c.text or "" for c in node.children)
        return [f"```{language}\n{body}\n```"]
    if kind == "rule":
        return ["---"]
    if kind in ("bulletList", "orderedList"):
        start = int((node.attrs or {}).get("order", 1))
        lines: list[str] = []
        for index, item in enumerate(node.children):
            marker = f"{start + index}." if kind == "orderedList" else "-"
            lines.append(_list_item_markdown(item, marker, depth))
        return ["\n".join(lines)]
    if kind == "blockquote":
        inner = "\n\n".join(b for child in node.children for b in _markdown_blocks(child))
        return ["\n".join("> " + line if line else ">" for line in inner.split("\n"))]
    if kind in _BLOCK_CONTAINERS:
        return [b for child in node.children for b in _markdown_blocks(child, depth)]
    if kind in INLINE_TYPES:
        return [_inline_markdown(node)]
    text = _plain(node)
    return [text] if text else []


def _list_item_markdown(item: DocumentNode, marker: str, depth: int) -> str:
    indent = "  " * depth
    head = ""
    nested: list[str] = []
    for child in item.children:
        if child.type in ("bulletList", "orderedList"):
            nested.extend(_markdown_blocks(child, depth + 1))
        elif not head:
            head = " ".join(_markdown_blocks(child, depth))
        else:
            nested.append(indent + "  " + " ".join(_markdown_blocks(child, depth)))
    return "\n".join([f"{indent}{marker} {head}"] + nested)


def to_markdown(node: DocumentNode | None) -> str:
    """Render a tree as markdown; blocks are separated by blank lines."""
    if node is None:
        return ""
    return "\n\n".join(block for block in _markdown_blocks(node) if block)


_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
_BULLET_RE = re.compile(r"^[-*+]\s+(.+)$")
_ORDERED_RE = re.compile(r"^(\d+)[.)]\s+(.+)$")
_RULE_RE = re.compile(r"^(-{3,}|\*{3,}|_{3,})$")
_QUOTE_RE = re.compile(r"^>\s?(.*)$")

_INLINE_RE = re.compile(
    r"(?P<strong>\*\*(?P<strong_text>.+?)\*\*|__(?P<strong_alt>.+?)__)"
    r"|(?P<strike>~~(?P<strike_text>.+?)~~)"
    r"|(?P<code>`(?P<code_text>[^`]+)`)"
    r"|(?P<link>\[(?P<link_text>[^\]]+)\]\((?P<href>[^)\s]+)\))"
    r"|(?P<em>\*(?P<em_text>[^*]+?)\*|_(?P<em_alt>[^_]+?)_)"
)


def _parse_inline(text: str) -> list[DocumentNode]:
    nodes: list[DocumentNode] = []
    position = 0
    for match in _INLINE_RE.finditer(text):
        if match.start() > position:
            nodes.append(text_node(text[position : match.start()]))
        if match.group("strong"):
            value = match.group("strong_text") or match.group("strong_alt")
            nodes.append(text_node(value, Mark("strong")))
        elif match.group("strike"):
            nodes.append(text_node(match.group("strike_text"), Mark("strike")))
        elif match.group("code"):
            nodes.append(text_node(match.group("code_text"), Mark("code")))
        elif match.group("link"):
            nodes.append(
                text_node(match.group("link_text"), Mark("link", {"href": match.group("href")}))
            )
        else:
            value = match.group("em_text") or match.group("em_alt")
            nodes.append(text_node(value, Mark("em")))
        position = match.end()
    if position < len(text):
        nodes.append(text_node(text[position:]))
    return nodes


def _list_block(lines: list[str], start: int, ordered: bool) -> tuple[DocumentNode, int]:
    pattern = _ORDERED_RE if ordered else _BULLET_RE
    items: list[DocumentNode] = []
    first_number = 1
    i = start
    while i < len(lines):
        match = pattern.match(lines[i].strip())
        if not match:
            break
        if ordered and not items:
            first_number = int(match.group(1))
        value = match.group(2) if ordered else match.group(1)
        items.append(DocumentNode(type="listItem", content=(paragraph(*_parse_inline(value)),)))
        i += 1
    kind = "orderedList" if ordered else "bulletList"
    attrs = {"order": first_number} if ordered and first_number != 1 else None
    return DocumentNode(type=kind, attrs=attrs, content=tuple(items)), i


def _markdown_to_blocks(lines: list[str]) -> list[DocumentNode]:
    blocks: list[DocumentNode] = []
    pending: list[str] = []

    def flush() -> None:
        if not pending:
            return
        inline: list[DocumentNode] = []
        for index, line in enumerate(pending):
            if index:
                inline.append(DocumentNode(type="hardBreak"))
            inline.extend(_parse_inline(line))
        blocks.append(paragraph(*inline))
        pending.clear()

    i = 0
    while i < len(lines):
        line = lines[i]
        trimmed = line.strip()

        if not trimmed:
            flush()
            i += 1
            continue

        if trimmed.startswith("```") or trimmed.startswith("~~~"):
            flush()
            fence = trimmed[:3]
            language = trimmed[3:].strip()
            code_lines: list[str] = []
            i += 1
            while i < len(lines) and not lines[i].strip().startswith(fence):
                code_lines.append(lines[i])
                i += 1
            i += 1
            code = "\n".join(code_lines)
            blocks.append(
                DocumentNode(
                    type="codeBlock",
                    attrs={"language": language} if language else None,
                    content=(text_node(code),) if code else (),
                )
            )
            continue

        heading = _HEADING_RE.match(trimmed)
        if heading:
            flush()
            blocks.append(
                DocumentNode(
                    type="heading",
                    attrs={"level": len(heading.group(1))},
                    content=tuple(_parse_inline(heading.group(2))),
                )
            )
            i += 1
            continue

        if _RULE_RE.match(trimmed):
            flush()
            blocks.append(DocumentNode(type="rule"))
            i += 1
            continue

        if _QUOTE_RE.match(trimmed):
            flush()
            quoted: list[str] = []
            while i < len(lines):
                quote = _QUOTE_RE.match(lines[i].strip())
                if not quote:
                    break
                quoted.append(quote.group(1))
                i += 1
            blocks.append(DocumentNode(type="blockquote", content=tuple(_markdown_to_blocks(quoted))))
            continue

        if _BULLET_RE.match(trimmed) or _ORDERED_RE.match(trimmed):
            flush()
            block, i = _list_block(lines, i, ordered=bool(_ORDERED_RE.match(trimmed)))
            blocks.append(block)
            continue

        pending.append(trimmed)
        i += 1

    flush()
    return blocks


def from_markdown(markdown: str | None) -> DocumentNode:
    """Convert basic markdown to a document.

    Supports headings, fenced code blocks (``` or ~~~, with language),
    bullet and numbered lists, blockquotes, horizontal rules, and inline
    bold, italic, strikethrough, code and links.
    """
    markdown = markdown or ""
    blocks = _markdown_to_blocks(markdown.split("\n"))
    if not blocks:
        return from_plain_text(markdown)
    return document(*blocks)


__all__ = [
    "ALLOWED_CHILDREN",
    "BLOCK_TYPES",
    "DOCUMENT_VERSION",
    "INLINE_TYPES",
    "KNOWN_TYPES",
    "DocumentNode",
    "Mark",
    "check_children",
    "document",
    "from_markdown",
    "from_plain_text",
    "is_document",
    "paragraph",
    "parse",
    "serialize",
    "text_node",
    "to_markdown",
    "to_plain_text",
]
