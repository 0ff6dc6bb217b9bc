"""Version string extraction and comparison."""
from __future__ import annotations

from enum import Enum
from typing import List, NamedTuple
import re


_VERSION_RUN = re.compile(r"\d+(?:\.\d+)*")


class VersionOrder(str, Enum):
    EQUAL = "equal"
    A_GREATER = "a_greater"
    B_GREATER = "b_greater"


class VersionTriple(NamedTuple):
    major: int = 0
    minor: int = 0
    patch: int = 0

    @classmethod
    def parse(cls, text: str) -> "VersionTriple":
        components = _components(text)[:3]
        return cls(*components)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def _components(version: str) -> List[int]:
    parts: List[int] = []
    for raw in version.strip().split("."):
        # blank or non-numeric components count as zero
        parts.append(int(raw) if raw.isascii() and raw.isdigit() else 0)
    return parts


def compare_versions(a: str, b: str) -> VersionOrder:
    """Compare two dot-separated version strings component by component.

    The shorter version is right-padded with zeros, so ``3.5`` and ``3.5.0``
    are equal. Input without any numeric component is treated as ``0``.
    """

    left = _components(a)
    right = _components(b)
    width = max(len(left), len(right))
    left.extend([0] * (width - len(left)))
    right.extend([0] * (width - len(right)))

    for lhs, rhs in zip(left, right):
        if lhs > rhs:
            return VersionOrder.A_GREATER
        if lhs < rhs:
            return VersionOrder.B_GREATER
    return VersionOrder.EQUAL


def extract_version(text: str) -> str:
    """Return the first numeric/dot run of a raw ``--version`` blob.

    Anything from the word ``patch`` onward is ignored.
    """

    head = text.split("patch", 1)[0]
    match = _VERSION_RUN.search(head)
    return match.group(0) if match else "0"


def meets_minimum(detected: str, minimum: str) -> bool:
    return compare_versions(detected, minimum) is not VersionOrder.B_GREATER


__all__ = ["VersionOrder", "VersionTriple", "compare_versions", "extract_version", "meets_minimum"]
