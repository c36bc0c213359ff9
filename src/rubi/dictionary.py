from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping

import yaml

__all__ = [
    "DictionaryError",
    "Term",
    "dump_dictionary",
    "load_dictionary",
    "parse_dictionary",
    "sort_dictionary_file",
    "sort_terms",
    "validate_dictionary",
]


class DictionaryError(ValueError):
    """Raised when a dictionary file cannot be read or fails validation."""


@dataclass(frozen=True, slots=True)
class Term:
    """One dictionary entry: the term as written, its reading, and an optional reference URL."""

    term: str
    yomi: str
    ref: str | None = None


def _required_string(entry: Mapping[object, object], key: str, index: int) -> str:
    value = entry.get(key)
    if value is None or value == "":
        raise DictionaryError(f"invalid entry #{index + 1}: term and yomi are required")
    if not isinstance(value, str):
        raise DictionaryError(
            f"invalid entry #{index + 1}: '{key}' must be a string (quote values such as {value!r})"
        )
    return value


def _parse_terms(text: str) -> list[Term]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise DictionaryError(f"failed to parse dictionary yaml: {exc}") from exc
    if data is None:
        return []
    if not isinstance(data, Mapping):
        raise DictionaryError("dictionary must be a mapping with a 'terms' list")
    raw_terms = data.get("terms")
    if raw_terms is None:
        return []
    if not isinstance(raw_terms, list):
        raise DictionaryError("'terms' must be a list")

    terms: list[Term] = []
    for index, entry in enumerate(raw_terms):
        if not isinstance(entry, Mapping):
            raise DictionaryError(f"invalid entry #{index + 1}: expected a mapping")
        term = _required_string(entry, "term", index)
        yomi = _required_string(entry, "yomi", index)
        ref = entry.get("ref")
        if ref == "":
            ref = None
        if ref is not None and not isinstance(ref, str):
            raise DictionaryError(f"invalid entry #{index + 1}: 'ref' must be a string")
        terms.append(Term(term=term, yomi=yomi, ref=ref))
    return terms


def parse_dictionary(text: str) -> Mapping[str, Term]:
    """Validate dictionary YAML and return a read-only ``term -> Term`` mapping in file order."""
    mapping: dict[str, Term] = {}
    for term in _parse_terms(text):
        if term.term in mapping:
            raise DictionaryError(f"duplicate term found: {term.term}")
        mapping[term.term] = term
    return MappingProxyType(mapping)


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DictionaryError(f"failed to read dictionary file '{path}': {exc}") from exc


def load_dictionary(path: str | Path) -> Mapping[str, Term]:
    return parse_dictionary(_read(Path(path)))


def validate_dictionary(path: str | Path) -> int:
    """Return the number of terms in ``path`` or raise ``DictionaryError``."""
    try:
        return len(load_dictionary(path))
    except DictionaryError as exc:
        raise DictionaryError(f"dictionary validation failed: {exc}") from exc


def _sort_key(term: Term) -> tuple[bool, str]:
    # Names such as ".NET" go last.
    return term.term.startswith("."), term.term.lower()


def sort_terms(terms: Iterable[Term]) -> list[Term]:
    return sorted(terms, key=_sort_key)


def dump_dictionary(terms: Iterable[Term]) -> str:
    payload: list[dict[str, str]] = []
    for term in terms:
        entry = {"term": term.term, "yomi": term.yomi}
        if term.ref:
            entry["ref"] = term.ref
        payload.append(entry)
    output = yaml.safe_dump(
        {"terms": payload},
        allow_unicode=True,
        sort_keys=False,
        default_flow_style=False,
    )
    lines: list[str] = []
    seen_entry = False
    for line in output.splitlines():
        if line.startswith("- term:"):
            if seen_entry:
                lines.append("")
            seen_entry = True
        lines.append(line)
    return "\n".join(lines) + "\n"


def sort_dictionary_file(input_path: str | Path, output_path: str | Path | None = None) -> int:
    """
    Sort the entries of a dictionary file and write them back.

    Without ``output_path`` the input file is rewritten in place. Entries are
    validated like any other load (duplicates included) before anything is
    written. Returns the number of entries written.
    """
    source = Path(input_path)
    terms = parse_dictionary(_read(source))
    target = Path(output_path) if output_path is not None else source
    ordered = sort_terms(terms.values())
    try:
        target.write_text(dump_dictionary(ordered), encoding="utf-8")
    except OSError as exc:
        raise DictionaryError(f"failed to write dictionary file '{target}': {exc}") from exc
    return len(ordered)
