from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Callable, Mapping, TypeVar

from .dictionary import Term
from .document import parse_markdown
from .matcher import (
    RUBY_MARKER,
    Candidate,
    TermScanner,
    find_marked_terms,
    select_non_overlapping,
    take_first_occurrences,
)
from .patches import Patch, apply_patches
from .walker import iter_scannable_text

__all__ = ["PatchPlan", "ReportCallback", "plan_patches", "process_markdown"]

ReportCallback = Callable[[str], None]
_Content = TypeVar("_Content", str, bytes)


@dataclass
class PatchPlan:
    """Everything one run decided, in document order.

    ``candidates`` are applied. ``skipped`` holds repeat occurrences removed by
    the first-only policy and ``dropped`` holds scan matches that lost an
    overlap against an earlier or longer term.
    """

    candidates: list[Candidate] = field(default_factory=list)
    skipped: list[Candidate] = field(default_factory=list)
    dropped: list[Candidate] = field(default_factory=list)

    def patches(self) -> list[Patch]:
        return [candidate.patch for candidate in self.candidates]

    @property
    def unknown_terms(self) -> list[str]:
        return [candidate.surface for candidate in self.candidates if candidate.term is None]


def plan_patches(
    text: str,
    dictionary: Mapping[str, Term],
    *,
    scan: bool = False,
    first_only: bool = False,
) -> PatchPlan:
    if first_only and not scan:
        raise ValueError("first_only is only valid in scan mode")
    root = parse_markdown(text)
    plan = PatchPlan()
    if not scan:
        for span in iter_scannable_text(root):
            plan.candidates.extend(find_marked_terms(span, dictionary))
        return plan

    scanner = TermScanner(dictionary)
    seen: frozenset[str] = frozenset()
    for span in iter_scannable_text(root):
        kept, dropped = select_non_overlapping(scanner.scan(span))
        plan.dropped.extend(dropped)
        if first_only:
            kept, skipped, seen = take_first_occurrences(kept, seen)
            plan.skipped.extend(skipped)
        plan.candidates.extend(kept)
    return plan


def _report_to_stderr(message: str) -> None:
    print(message, file=sys.stderr)


def _report_plan(
    plan: PatchPlan,
    text: str,
    *,
    scan: bool,
    dry_run: bool,
    report: ReportCallback,
) -> None:
    mode = "scan" if scan else "manual"
    for candidate in plan.candidates:
        if candidate.term is None:
            if dry_run:
                report(
                    f"warning: term '{candidate.surface}' not found in dictionary; "
                    f"the '{RUBY_MARKER}' suffix would be removed (dry run, no changes applied)"
                )
            else:
                report(
                    f"warning: term '{candidate.surface}' not found in dictionary; "
                    f"removing '{RUBY_MARKER}' suffix"
                )
        elif dry_run:
            found = text[candidate.start : candidate.end]
            report(
                f"patch ({mode}): '{found}' -> '{candidate.patch.replacement}' "
                f"at {candidate.start}-{candidate.end}"
            )
    if not dry_run:
        return
    for candidate in plan.skipped:
        report(
            f"skip ({mode}): '{candidate.surface}' at {candidate.start}-{candidate.end} "
            "was already annotated earlier"
        )
    for candidate in plan.dropped:
        report(
            f"skip ({mode}): '{candidate.surface}' at {candidate.start}-{candidate.end} "
            "overlaps an earlier or longer term"
        )


def process_markdown(
    content: _Content,
    dictionary: Mapping[str, Term],
    *,
    scan: bool = False,
    first_only: bool = False,
    dry_run: bool = False,
    report: ReportCallback | None = None,
) -> _Content:
    """
    Annotate dictionary terms in a Markdown document with ruby markup.

    Manual mode (the default) converts words written as ``word:rubi``; scan
    mode converts every whole-word occurrence of a dictionary term, or only
    the first one per term with ``first_only``. Code, raw HTML and link
    destinations are never touched. ``bytes`` in gives ``bytes`` out; bytes
    that are not valid UTF-8 are carried through unchanged.

    With ``dry_run`` the candidates are reported through ``report`` and the
    input is returned as-is. Raises ``MarkdownParseError`` or ``PatchError``
    without producing output.
    """
    if report is None:
        report = _report_to_stderr
    if isinstance(content, bytes):
        text = content.decode("utf-8", errors="surrogateescape")
    else:
        text = content

    plan = plan_patches(text, dictionary, scan=scan, first_only=first_only)
    _report_plan(plan, text, scan=scan, dry_run=dry_run, report=report)
    if dry_run or not plan.candidates:
        return content

    patched = apply_patches(text, plan.patches())
    if isinstance(content, bytes):
        return patched.encode("utf-8", errors="surrogateescape")
    return patched
