from __future__ import annotations

import math
from enum import Enum
from fractions import Fraction


class Threshold(str, Enum):
    """Share of a voting group required for quorum."""

    ALL = "all"
    MAJORITY = "majority"
    TWO_THIRDS = "twothirds"
    FOUR_FIFTHS = "fourfifths"

    @property
    def fraction(self) -> Fraction:
        return _FRACTIONS[self]

    @property
    def label(self) -> str:
        return _LABELS[self]

    def required_votes(self, group_size: int) -> int:
        # whole people vote, not fractions: always round up
        return math.ceil(group_size * self.fraction)

    def has_quorum(self, group_size: int, votes_cast: int) -> bool:
        return votes_cast >= self.required_votes(group_size)

    @classmethod
    def from_string(cls, value: str | None) -> Threshold:
        """Lenient lookup by value, label or alias. Unknown values mean ``all``."""
        if value is None:
            return cls.ALL
        needle = value.strip().lower()
        for threshold in cls:
            if needle == threshold.value or needle == threshold.label:
                return threshold
        return _ALIASES.get(needle, cls.ALL)


_FRACTIONS: dict[Threshold, Fraction] = {
    Threshold.ALL: Fraction(1, 1),
    Threshold.MAJORITY: Fraction(1, 2),
    Threshold.TWO_THIRDS: Fraction(2, 3),
    Threshold.FOUR_FIFTHS: Fraction(4, 5),
}

_LABELS: dict[Threshold, str] = {
    Threshold.ALL: "all",
    Threshold.MAJORITY: "majority",
    Threshold.TWO_THIRDS: "2/3",
    Threshold.FOUR_FIFTHS: "4/5",
}

_ALIASES: dict[str, Threshold] = {
    "unanimous": Threshold.ALL,
    "supermajority-two-thirds": Threshold.TWO_THIRDS,
    "two-thirds": Threshold.TWO_THIRDS,
    "supermajority-four-fifths": Threshold.FOUR_FIFTHS,
    "four-fifths": Threshold.FOUR_FIFTHS,
}


def required_votes(threshold: Threshold, group_size: int) -> int:
    return threshold.required_votes(group_size)


def has_quorum(threshold: Threshold, group_size: int, votes_cast: int) -> bool:
    return threshold.has_quorum(group_size, votes_cast)
