from __future__ import annotations

import pytest

from rubi.patches import Patch, PatchError, apply_patches

_VITE = "<ruby>Vite<rt>ヴィート</rt></ruby>"
_GRPC = "<ruby>gRPC<rt>ジーアールピーシー</rt></ruby>"


def test_no_patches_returns_original() -> None:
    original = "This is a test with Vite and gRPC."
    assert apply_patches(original, []) == original


def test_patches_are_sorted_before_applying() -> None:
    original = "gRPC is fast, Vite is great."
    patches = [Patch(14, 18, _VITE), Patch(0, 4, _GRPC)]
    assert apply_patches(original, patches) == f"{_GRPC} is fast, {_VITE} is great."


def test_adjacent_patches_are_allowed() -> None:
    assert apply_patches("abcd", [Patch(2, 4, "Y"), Patch(0, 2, "X")]) == "XY"


def test_shorter_replacement_and_empty_span() -> None:
    assert apply_patches("Hello Unknown:rubi.", [Patch(13, 18, "")]) == "Hello Unknown."
    assert apply_patches("ab", [Patch(1, 1, "-")]) == "a-b"


def test_bytes_buffers_get_utf8_replacements() -> None:
    original = "Hello Vite".encode("utf-8")
    assert apply_patches(original, [Patch(6, 10, _VITE)]) == f"Hello {_VITE}".encode("utf-8")


@pytest.mark.parametrize(
    "patches",
    [
        [Patch(-1, 2, "x")],
        [Patch(0, 16, "x")],
        [Patch(5, 4, "x")],
    ],
)
def test_out_of_bounds_patches_raise(patches: list[Patch]) -> None:
    with pytest.raises(PatchError, match="invalid patch bounds"):
        apply_patches("LongWordExample", patches)


def test_overlapping_patches_raise_without_output() -> None:
    with pytest.raises(PatchError, match="overlapping patches detected"):
        apply_patches("LongWordExample", [Patch(0, 8, "A"), Patch(4, 12, "B")])


def test_length_law_holds() -> None:
    original = "Vite is great, gRPC is fast."
    patches = [Patch(0, 4, _VITE), Patch(15, 19, _GRPC), Patch(27, 28, "")]
    result = apply_patches(original, patches)
    expected = len(original) + sum(patch.delta() for patch in patches)
    assert len(result) == expected
