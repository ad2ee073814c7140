"""Dice helpers built on ChaosEngine.

Rolls draw from an explicit engine when one is passed and from the
context's shared engine otherwise.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING

from klaw_chaos.errors import InvalidArgumentError, OutOfRangeError
from klaw_chaos.shared import shared

if TYPE_CHECKING:
    from klaw_chaos.engine import ChaosEngine

__all__ = [
    'Dice',
    'DieType',
    'roll',
    'rolls',
]

_NOTATION = re.compile(r'\s*(\d*)\s*[dD]\s*(\d+)\s*')


class DieType(IntEnum):
    """Standard die sizes, valued by their number of sides."""

    D4 = 4
    D6 = 6
    D8 = 8
    D10 = 10
    D12 = 12
    D20 = 20
    D100 = 100
    """A ten-sided die read together with a percentile die."""


def _check_dice(count: int, sides: int) -> None:
    if count < 1:
        raise OutOfRangeError('count', count, 'The number of dice being rolled cannot be less than 1')
    if sides < 1:
        raise OutOfRangeError('sides', sides, 'The number of sides on a die being rolled cannot be less than 1')


def roll(count: int, sides: int, modifier: int = 0, *, engine: ChaosEngine | None = None) -> int:
    """Roll ``count`` dice with ``sides`` sides and return the total plus ``modifier``.

    The total is drawn in one step from ``[count, count * sides]``.

    Raises:
        OutOfRangeError: If ``count`` or ``sides`` is less than 1.
    """
    _check_dice(count, sides)
    engine = engine if engine is not None else shared()
    return engine.next_int(count, count * sides + 1) + modifier


def rolls(count: int, sides: int, *, engine: ChaosEngine | None = None) -> list[int]:
    """Roll ``count`` dice with ``sides`` sides and return each result.

    Raises:
        OutOfRangeError: If ``count`` or ``sides`` is less than 1.
    """
    _check_dice(count, sides)
    engine = engine if engine is not None else shared()
    return engine.next_ints(count, 1, sides + 1)


@functools.total_ordering
@dataclass(frozen=True, slots=True, init=False)
class Dice:
    """A set of identical dice, e.g. ``Dice(3, 6)`` for 3d6.

    Count and sides are clamped to at least 1. Sets order by their maximum
    total (``count * sides``) first and by count second.
    """

    count: int
    sides: int

    def __init__(self, count: int, sides: int | DieType) -> None:
        object.__setattr__(self, 'count', max(1, count))
        object.__setattr__(self, 'sides', max(1, int(sides)))

    @classmethod
    def parse(cls, notation: str) -> Dice:
        """Parse dice notation such as ``'3d6'`` or ``'d20'``.

        Raises:
            InvalidArgumentError: If ``notation`` is not ``[count]d<sides>``.
        """
        match = _NOTATION.fullmatch(notation)
        if match is None:
            raise InvalidArgumentError('notation', f'{notation!r} is not dice notation like 3d6')
        count, sides = match.groups()
        return cls(int(count) if count else 1, int(sides))

    def __str__(self) -> str:
        return f'{self.count}d{self.sides}'

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Dice):
            return NotImplemented
        return (self.count * self.sides, self.count) < (other.count * other.sides, other.count)

    def roll(self, modifier: int = 0, *, engine: ChaosEngine | None = None) -> int:
        """Roll the set and return the total plus ``modifier``."""
        return roll(self.count, self.sides, modifier, engine=engine)

    def rolls(self, *, engine: ChaosEngine | None = None) -> list[int]:
        """Roll the set and return each die's result."""
        return rolls(self.count, self.sides, engine=engine)
