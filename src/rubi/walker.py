from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterator, Mapping

from .document import Node, NodeKind

__all__ = ["NODE_VISIBILITY", "TextSpan", "Visibility", "iter_scannable_text"]


class Visibility(Enum):
    OPAQUE = "opaque"
    SCANNABLE = "scannable"
    TRANSPARENT = "transparent"


# Every exclusion rule lives here. Link destinations never become nodes, so
# a LINK only exposes its label.
NODE_VISIBILITY: Mapping[NodeKind, Visibility] = MappingProxyType(
    {
        NodeKind.DOCUMENT: Visibility.TRANSPARENT,
        NodeKind.CODE_BLOCK: Visibility.OPAQUE,
        NodeKind.HTML_BLOCK: Visibility.OPAQUE,
        NodeKind.CODE_SPAN: Visibility.OPAQUE,
        NodeKind.RAW_HTML: Visibility.OPAQUE,
        NodeKind.LINK: Visibility.TRANSPARENT,
        NodeKind.AUTOLINK: Visibility.OPAQUE,
        NodeKind.IMAGE: Visibility.OPAQUE,
        NodeKind.TEXT: Visibility.SCANNABLE,
        NodeKind.OTHER: Visibility.TRANSPARENT,
    }
)


@dataclass(frozen=True, slots=True)
class TextSpan:
    """Literal text eligible for substitution, starting at ``start`` in the source."""

    text: str
    start: int

    @property
    def end(self) -> int:
        return self.start + len(self.text)


def iter_scannable_text(root: Node) -> Iterator[TextSpan]:
    stack = [root]
    while stack:
        node = stack.pop()
        visibility = NODE_VISIBILITY[node.kind]
        if visibility is Visibility.OPAQUE:
            continue
        if visibility is Visibility.SCANNABLE:
            if node.text:
                yield TextSpan(node.text, node.start)
            continue
        stack.extend(reversed(node.children))
