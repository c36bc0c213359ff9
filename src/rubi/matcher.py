from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Iterable, Mapping

from .dictionary import Term
from .patches import Patch
from .walker import TextSpan

__all__ = [
    "RUBY_MARKER",
    "Candidate",
    "TermScanner",
    "find_marked_terms",
    "format_ruby",
    "select_non_overlapping",
    "take_first_occurrences",
]

RUBY_MARKER = ":rubi"

# Word characters are ASCII so that "これはVite:rubi" still marks "Vite".
_MARKED_WORD_RE = re.compile(rf"(\w+){re.escape(RUBY_MARKER)}\b", re.ASCII)


@dataclass(frozen=True, slots=True)
class Candidate:
    """
    A proposed patch plus where it came from.

    ``surface`` is the matched word as written. ``term`` is ``None`` only for
    an explicit marker on a word the dictionary does not know, in which case
    the patch just strips the marker.
    """

    patch: Patch
    surface: str
    term: Term | None

    @property
    def start(self) -> int:
        return self.patch.start

    @property
    def end(self) -> int:
        return self.patch.end


def format_ruby(base: str, reading: str) -> str:
    return f"<ruby>{html.escape(base)}<rt>{html.escape(reading)}</rt></ruby>"


def find_marked_terms(span: TextSpan, dictionary: Mapping[str, Term]) -> list[Candidate]:
    candidates: list[Candidate] = []
    for match in _MARKED_WORD_RE.finditer(span.text):
        word = match.group(1)
        term = dictionary.get(word)
        if term is not None:
            patch = Patch(
                span.start + match.start(),
                span.start + match.end(),
                format_ruby(word, term.yomi),
            )
        else:
            patch = Patch(span.start + match.end(1), span.start + match.end(), "")
        candidates.append(Candidate(patch, word, term))
    return candidates


class TermScanner:
    """Find whole-word occurrences of every dictionary term.

    Patterns are compiled once per dictionary and kept in sorted term order,
    so results do not depend on how the mapping stores its keys.
    """

    def __init__(self, dictionary: Mapping[str, Term]) -> None:
        self._patterns = [
            (dictionary[key], re.compile(rf"(?<!\w){re.escape(key)}(?!\w)", re.ASCII))
            for key in sorted(dictionary)
        ]

    def scan(self, span: TextSpan) -> list[Candidate]:
        found: list[Candidate] = []
        for term, pattern in self._patterns:
            for match in pattern.finditer(span.text):
                surface = match.group(0)
                patch = Patch(
                    span.start + match.start(),
                    span.start + match.end(),
                    format_ruby(surface, term.yomi),
                )
                found.append(Candidate(patch, surface, term))
        found.sort(key=_candidate_order)
        return found


def _candidate_order(candidate: Candidate) -> tuple[int, int, str]:
    return candidate.start, candidate.start - candidate.end, candidate.surface


def select_non_overlapping(
    candidates: Iterable[Candidate],
) -> tuple[list[Candidate], list[Candidate]]:
    """
    Resolve collisions between terms: leftmost match first, longest on a tie.

    Returns ``(kept, dropped)``. Kept candidates never overlap each other.
    """
    kept: list[Candidate] = []
    dropped: list[Candidate] = []
    boundary = -1
    for candidate in sorted(candidates, key=_candidate_order):
        if candidate.start < boundary:
            dropped.append(candidate)
            continue
        kept.append(candidate)
        boundary = candidate.end
    return kept, dropped


def take_first_occurrences(
    candidates: Iterable[Candidate],
    seen: frozenset[str],
) -> tuple[list[Candidate], list[Candidate], frozenset[str]]:
    """
    Keep only surfaces not already in ``seen``.

    ``candidates`` must be in document order. Returns ``(kept, skipped,
    seen)`` where the new ``seen`` includes every kept surface.
    """
    recorded = set(seen)
    kept: list[Candidate] = []
    skipped: list[Candidate] = []
    for candidate in candidates:
        if candidate.surface in recorded:
            skipped.append(candidate)
            continue
        recorded.add(candidate.surface)
        kept.append(candidate)
    return kept, skipped, frozenset(recorded)
