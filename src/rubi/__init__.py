from .core import PatchPlan, plan_patches, process_markdown
from .dictionary import DictionaryError, Term, load_dictionary, parse_dictionary
from .document import MarkdownParseError, Node, NodeKind, parse_markdown
from .matcher import format_ruby
from .patches import Patch, PatchError, apply_patches
from .walker import TextSpan, iter_scannable_text

__all__ = [
    "PatchPlan",
    "plan_patches",
    "process_markdown",
    "Term",
    "DictionaryError",
    "load_dictionary",
    "parse_dictionary",
    "Node",
    "NodeKind",
    "MarkdownParseError",
    "parse_markdown",
    "TextSpan",
    "iter_scannable_text",
    "format_ruby",
    "Patch",
    "PatchError",
    "apply_patches",
]
