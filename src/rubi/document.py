from __future__ import annotations

import re
from bisect import bisect_right
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Sequence

from markdown_it import MarkdownIt
from markdown_it.helpers import parseLinkDestination, parseLinkTitle
from markdown_it.tree import SyntaxTreeNode

__all__ = [
    "MarkdownParseError",
    "Node",
    "NodeKind",
    "parse_markdown",
]

_NEWLINE_RE = re.compile(r"\r\n|\r|\n")
_RUBY_OPEN_RE = re.compile(r"<ruby(?:\s[^>]*)?>\Z", re.IGNORECASE)
_RUBY_CLOSE_RE = re.compile(r"</ruby\s*>\Z", re.IGNORECASE)
_REFERENCE_LABEL_RE = re.compile(r"\[(?:\\.|[^\\\[\]])*\]", re.DOTALL)
_LINK_WHITESPACE = " \t\n"


class MarkdownParseError(ValueError):
    """Raised when the Markdown parser rejects a document."""


class NodeKind(Enum):
    DOCUMENT = "document"
    CODE_BLOCK = "code_block"
    HTML_BLOCK = "html_block"
    CODE_SPAN = "code_span"
    RAW_HTML = "raw_html"
    LINK = "link"
    AUTOLINK = "autolink"
    IMAGE = "image"
    TEXT = "text"
    OTHER = "other"


_BLOCK_KINDS = {
    "fence": NodeKind.CODE_BLOCK,
    "code_block": NodeKind.CODE_BLOCK,
    "html_block": NodeKind.HTML_BLOCK,
}


@dataclass(slots=True)
class Node:
    """
    One element of a parsed document.

    ``start``/``end`` are offsets into the parsed text. ``text`` is only set
    for ``TEXT`` nodes and always equals ``source[start:end]``. Link
    destinations, titles and reference labels have no node of their own.
    """

    kind: NodeKind
    start: int
    end: int
    children: list[Node] = field(default_factory=list)
    text: str = ""


@lru_cache(maxsize=1)
def _markdown() -> MarkdownIt:
    md = MarkdownIt("commonmark", {"html": True})
    # Keep escapes and entities as separate tokens so text tokens stay verbatim.
    md.disable("text_join")
    return md


def parse_markdown(text: str) -> Node:
    """Parse ``text`` as CommonMark and return the document tree with source offsets."""
    try:
        tokens = _markdown().parse(text)
    except Exception as exc:
        raise MarkdownParseError(f"failed to parse markdown: {exc}") from exc
    lines = _SourceLines(text)
    tree = SyntaxTreeNode(tokens)
    return Node(NodeKind.DOCUMENT, 0, len(text), _block_children(tree, lines))


class _SourceLines:
    def __init__(self, text: str) -> None:
        self.text = text
        self.starts = [0]
        self.ends: list[int] = []
        for match in _NEWLINE_RE.finditer(text):
            self.ends.append(match.start())
            self.starts.append(match.end())
        self.ends.append(len(text))

    def __len__(self) -> int:
        return len(self.starts)

    def offset(self, line: int) -> int:
        if line >= len(self.starts):
            return len(self.text)
        return self.starts[line]

    def line_text(self, line: int) -> str:
        # markdown-it replaces NUL with U+FFFD before parsing.
        return self.text[self.starts[line] : self.ends[line]].replace("\0", "\ufffd")

    def span(self, line_map: Sequence[int] | None) -> tuple[int, int]:
        if not line_map:
            return 0, len(self.text)
        return self.offset(line_map[0]), self.offset(line_map[1])


def _block_children(tree: SyntaxTreeNode, lines: _SourceLines) -> list[Node]:
    nodes: list[Node] = []
    for child in tree.children:
        if child.type == "inline":
            nodes.extend(_inline_nodes(child, lines))
        else:
            nodes.append(_block_node(child, lines))
    return nodes


def _block_node(tree: SyntaxTreeNode, lines: _SourceLines) -> Node:
    start, end = lines.span(tree.map)
    kind = _BLOCK_KINDS.get(tree.type, NodeKind.OTHER)
    if kind is not NodeKind.OTHER:
        return Node(kind, start, end)
    return Node(kind, start, end, _block_children(tree, lines))


def _inline_nodes(inline: SyntaxTreeNode, lines: _SourceLines) -> list[Node]:
    content = inline.content
    if not content or not inline.map:
        return []
    content_map = _ContentMap(content, inline.map[0], lines)
    return _InlineAligner(content, content_map, lines.text).build(inline.children)


class _ContentMap:
    """Map offsets in an inline token's content back to the document source.

    Block parsing strips container prefixes (``>``, list indentation, heading
    markers) from every line, so each content line is located inside its own
    source line. Lines that cannot be located map to ``None``.
    """

    def __init__(self, content: str, first_line: int, lines: _SourceLines) -> None:
        self._starts: list[int] = []
        self._bases: list[int | None] = []
        position = 0
        for row, piece in enumerate(content.split("\n")):
            self._starts.append(position)
            self._bases.append(self._locate(piece, first_line + row, lines))
            position += len(piece) + 1

    @staticmethod
    def _locate(piece: str, line: int, lines: _SourceLines) -> int | None:
        body = piece.lstrip(" \t")
        if not body or line >= len(lines):
            return None
        source = lines.line_text(line)
        if source.endswith(body):
            column = len(source) - len(body)
        else:
            column = source.rfind(body)
        if column < 0:
            return None
        return lines.offset(line) + column - (len(piece) - len(body))

    def to_source(self, index: int) -> int | None:
        row = bisect_right(self._starts, index) - 1
        base = self._bases[row]
        if base is None:
            return None
        return base + index - self._starts[row]


class _InlineAligner:
    """Walk inline tokens in order while tracking a cursor into the content.

    Every token advances the cursor past its own source form, which keeps
    text inside code spans, raw HTML and link destinations from ever being
    mistaken for a later text token.
    """

    def __init__(self, content: str, content_map: _ContentMap, source: str) -> None:
        self.content = content
        self.content_map = content_map
        self.source = source
        self.cursor = 0

    def build(self, trees: Sequence[SyntaxTreeNode]) -> list[Node]:
        nodes: list[Node] = []
        index = 0
        while index < len(trees):
            tree = trees[index]
            if tree.type == "html_inline" and _RUBY_OPEN_RE.match(tree.content):
                stop = _ruby_group_end(trees, index)
                group = [self._convert(item) for item in trees[index:stop]]
                spans = [node for node in group if node is not None]
                if spans:
                    nodes.append(Node(NodeKind.RAW_HTML, spans[0].start, spans[-1].end))
                index = stop
                continue
            node = self._convert(tree)
            if node is not None:
                nodes.append(node)
            index += 1
        return nodes

    def _convert(self, tree: SyntaxTreeNode) -> Node | None:
        kind = tree.type
        if kind == "text":
            return self._text(tree.content)
        if kind == "text_special":
            start = self._seek(tree.markup)
            return self._node(NodeKind.OTHER, start, self.cursor)
        if kind in ("softbreak", "hardbreak"):
            newline = self._seek("\n")
            return self._node(NodeKind.OTHER, newline, self.cursor)
        if kind == "code_inline":
            return self._code_span(tree.markup)
        if kind == "html_inline":
            start = self._seek(tree.content)
            return self._node(NodeKind.RAW_HTML, start, self.cursor)
        if kind == "link":
            return self._link(tree)
        if kind == "image":
            return self._image()
        if tree.children:
            start = self._seek(tree.markup) if tree.markup else self.cursor
            children = self.build(tree.children)
            if tree.markup:
                self._seek(tree.markup)
            return self._node(NodeKind.OTHER, start, self.cursor, children)
        return None

    def _seek(self, literal: str) -> int | None:
        index = self.content.find(literal, self.cursor)
        if index < 0:
            return None
        self.cursor = index + len(literal)
        return index

    def _node(
        self,
        kind: NodeKind,
        start: int | None,
        end: int,
        children: list[Node] | None = None,
    ) -> Node | None:
        if start is None:
            return None
        source_start = self.content_map.to_source(start)
        source_end = self.content_map.to_source(end - 1) if end > start else source_start
        if source_start is None or source_end is None:
            return None
        if end > start:
            source_end += 1
        return Node(kind, source_start, source_end, children or [])

    def _text(self, value: str) -> Node | None:
        if not value:
            return None
        start = self._seek(value)
        if start is None:
            return None
        source_start = self.content_map.to_source(start)
        if source_start is None:
            return None
        source_end = source_start + len(value)
        if self.source[source_start:source_end] != value:
            return None
        return Node(NodeKind.TEXT, source_start, source_end, text=value)

    def _code_span(self, fence: str) -> Node | None:
        start = self._seek(fence)
        if start is None:
            return None
        closing = re.compile(rf"(?<!`){re.escape(fence)}(?!`)").search(self.content, self.cursor)
        if closing is not None:
            self.cursor = closing.end()
        return self._node(NodeKind.CODE_SPAN, start, self.cursor)

    def _link(self, tree: SyntaxTreeNode) -> Node | None:
        if tree.markup == "autolink":
            start = self._seek("<")
            self._seek(">")
            return self._node(NodeKind.AUTOLINK, start, self.cursor)
        start = self._seek("[")
        children = self.build(tree.children)
        label_end = self._seek("]")
        if label_end is not None:
            self.cursor = self._skip_link_target(self.cursor)
        return self._node(NodeKind.LINK, start, self.cursor, children)

    def _image(self) -> Node | None:
        start = self._seek("![")
        if start is None:
            return None
        label_end = _matching_bracket(self.content, start + 1)
        if label_end is None:
            return None
        self.cursor = self._skip_link_target(label_end + 1)
        return self._node(NodeKind.IMAGE, start, self.cursor)

    def _skip_link_target(self, pos: int) -> int:
        content = self.content
        limit = len(content)
        if pos < limit and content[pos] == "(":
            cursor = _skip_whitespace(content, pos + 1)
            destination = parseLinkDestination(content, cursor, limit)
            if destination.ok:
                cursor = _skip_whitespace(content, destination.pos)
                title = parseLinkTitle(content, cursor, limit)
                if title.ok:
                    cursor = _skip_whitespace(content, title.pos)
            if cursor < limit and content[cursor] == ")":
                return cursor + 1
            return pos
        if pos < limit and content[pos] == "[":
            reference = _REFERENCE_LABEL_RE.match(content, pos)
            if reference is not None:
                return reference.end()
        return pos


def _ruby_group_end(trees: Sequence[SyntaxTreeNode], index: int) -> int:
    depth = 0
    for position in range(index, len(trees)):
        tree = trees[position]
        if tree.type != "html_inline":
            continue
        if _RUBY_OPEN_RE.match(tree.content):
            depth += 1
        elif _RUBY_CLOSE_RE.match(tree.content):
            depth -= 1
            if depth == 0:
                return position + 1
    return len(trees)


def _matching_bracket(content: str, pos: int) -> int | None:
    depth = 0
    index = pos
    while index < len(content):
        char = content[index]
        if char == "\\":
            index += 2
            continue
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return None


def _skip_whitespace(content: str, pos: int) -> int:
    while pos < len(content) and content[pos] in _LINK_WHITESPACE:
        pos += 1
    return pos
