from __future__ import annotations

from dataclasses import dataclass
from typing import AnyStr, Iterable

__all__ = ["Patch", "PatchError", "apply_patches"]


class PatchError(ValueError):
    """Raised when a patch set is out of bounds or overlaps."""


@dataclass(frozen=True, slots=True)
class Patch:
    """Replace ``original[start:end]`` with ``replacement``."""

    start: int
    end: int
    replacement: str

    def delta(self) -> int:
        return len(self.replacement) - (self.end - self.start)


def apply_patches(original: AnyStr, patches: Iterable[Patch]) -> AnyStr:
    """
    Rebuild ``original`` with every patch applied.

    Patches may arrive in any order; they are sorted by start offset and the
    whole set is validated before anything is written, so a bad patch never
    yields partial output. Adjacent patches are fine, overlapping ones are not.
    ``original`` may be ``str`` or ``bytes``; for ``bytes`` the replacements
    are UTF-8 encoded.
    """
    ordered = sorted(patches, key=lambda patch: patch.start)
    size = len(original)
    previous: Patch | None = None
    for patch in ordered:
        if patch.start < 0 or patch.end > size or patch.start > patch.end:
            raise PatchError(
                f"invalid patch bounds: {patch.start}-{patch.end}, original length: {size}"
            )
        if previous is not None and patch.start < previous.end:
            raise PatchError(
                "overlapping patches detected: "
                f"patch at {patch.start}-{patch.end} overlaps with patch at "
                f"{previous.start}-{previous.end}"
            )
        previous = patch

    encode = isinstance(original, (bytes, bytearray))
    pieces: list = []
    last_index = 0
    for patch in ordered:
        pieces.append(original[last_index : patch.start])
        pieces.append(patch.replacement.encode("utf-8") if encode else patch.replacement)
        last_index = patch.end
    pieces.append(original[last_index:])
    return original[:0].join(pieces)
