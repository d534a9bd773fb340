"""
Version handling for drvcheck

Driver versions are dot separated decimal numbers ("552.12"), compared
numerically component by component. Sequences of different length are
compared as if the shorter one was padded with zeroes on the right, so
"552.12" and "552.12.0" are the same version.
"""

import re
from dataclasses import dataclass
from enum import Enum
from functools import total_ordering
from itertools import zip_longest

from drvcheck.errors import ParseError

VERSION_PATTERN = re.compile(r"^[0-9]+(?:\.[0-9]+)*$")


class Ordering(Enum):
    """Result of comparing two versions."""

    LESS = -1
    EQUAL = 0
    GREATER = 1


@total_ordering
@dataclass(frozen=True, eq=False)
class VersionIdentifier:
    """
    Data class to hold a parsed version number.

    Components are non-negative integers, most significant first.
    Equality and ordering follow `compare()`, hence trailing zero
    components are not significant.
    """

    components: tuple[int, ...]

    def __post_init__(self) -> None:
        if not self.components:
            raise ValueError("A version needs at least one component")

        if any(not isinstance(c, int) or c < 0 for c in self.components):
            raise ValueError(
                f"Version components must be non-negative integers: {self.components}"
            )

    def __str__(self) -> str:
        return ".".join(str(c) for c in self.components)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionIdentifier):
            return NotImplemented
        return compare(self, other) is Ordering.EQUAL

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, VersionIdentifier):
            return NotImplemented
        return compare(self, other) is Ordering.LESS

    def __hash__(self) -> int:
        # Must agree with __eq__, which ignores trailing zeroes
        significant = list(self.components)
        while len(significant) > 1 and significant[-1] == 0:
            significant.pop()
        return hash(tuple(significant))


def compare(a: VersionIdentifier, b: VersionIdentifier) -> Ordering:
    """
    Compare two versions component-wise, left to right.

    The shorter version is zero padded on the right.

    :param a: Left hand side version
    :param b: Right hand side version
    :return: Ordering of a relative to b
    """
    for left, right in zip_longest(a.components, b.components, fillvalue=0):
        if left < right:
            return Ordering.LESS
        if left > right:
            return Ordering.GREATER

    return Ordering.EQUAL


def parse_version(text: str) -> VersionIdentifier:
    """
    Parse a version string such as "552.12" into a VersionIdentifier.

    Surrounding whitespace is ignored, anything else that is not
    a dot separated list of decimal numbers is rejected outright.

    :param text: The version string
    :return: Parsed version
    :raises ParseError: If the string is not a well-formed version
    """
    if not isinstance(text, str):
        raise ParseError(f"Expected a version string, got {type(text).__name__}")

    candidate = text.strip()

    if not VERSION_PATTERN.match(candidate):
        raise ParseError(f"Malformed version string: '{text}'")

    return VersionIdentifier(tuple(int(c) for c in candidate.split(".")))
