"""Subtractive generator core: state table, seeding and raw samples.

The generator keeps 56 signed 32-bit slots and two cursors. Slot 0 is never
written, which lets persisted state use it as a corruption sentinel. All
arithmetic follows signed 32-bit two's-complement semantics so that sequences
match the classic .NET ``System.Random`` for every seed.
"""

from __future__ import annotations

import re
import secrets
import zlib

__all__ = [
    'CURSOR_B_START',
    'MAX_I32',
    'MIN_I32',
    'SEED_MAGIC',
    'TABLE_SIZE',
    'GeneratorState',
    'parse_seed',
    'seed_state',
    'to_i32',
    'unpredictable_seed',
]

MAX_I32: int = 2**31 - 1
MIN_I32: int = -(2**31)

TABLE_SIZE: int = 56
"""Number of slots in the state table, including the unused sentinel slot 0."""

SEED_MAGIC: int = 161803398
"""Mixing constant of the subtractive construction (digits of the golden ratio)."""

CURSOR_B_START: int = 21
"""Lag between the two cursors right after seeding."""

_DECIMAL = re.compile(r'\s*[+-]?\d+\s*')


def to_i32(value: int) -> int:
    """Reinterpret an integer as a signed 32-bit value (two's-complement wrap)."""
    return ((value + 2**31) & 0xFFFFFFFF) - 2**31


def unpredictable_seed() -> int:
    """Draw a signed 32-bit seed from the OS entropy pool."""
    return to_i32(secrets.randbits(32))


def parse_seed(seed: str | None) -> int:
    """Turn a textual seed into an integer seed.

    Decimal strings that fit in 32 bits are used as-is; any other non-empty
    string is hashed with CRC-32 (stable across processes, unlike ``hash()``).
    Empty or missing seeds yield an unpredictable seed.
    """
    if not seed:
        return unpredictable_seed()
    if _DECIMAL.fullmatch(seed):
        value = int(seed)
        if MIN_I32 <= value <= MAX_I32:
            return value
    return to_i32(zlib.crc32(seed.encode('utf-8')))


class GeneratorState:
    """Mutable state of one subtractive generator.

    Not thread-safe on its own; the owning engine serializes access.

    Attributes:
        seed: Seed the table was last derived from.
        table: The 56-slot state table.
        cursor_a: Index of the slot written by the next sample.
        cursor_b: Index of the slot subtracted by the next sample.
    """

    __slots__ = ('cursor_a', 'cursor_b', 'seed', 'table')

    def __init__(self, seed: int, table: list[int], cursor_a: int, cursor_b: int) -> None:
        self.seed = seed
        self.table = table
        self.cursor_a = cursor_a
        self.cursor_b = cursor_b

    def __repr__(self) -> str:
        return f'GeneratorState(seed={self.seed}, cursor_a={self.cursor_a}, cursor_b={self.cursor_b})'

    def next_sample(self) -> int:
        """Advance both cursors and return the next raw sample in ``[0, MAX_I32)``."""
        cursor_a = self.cursor_a + 1
        if cursor_a >= TABLE_SIZE:
            cursor_a = 1
        cursor_b = self.cursor_b + 1
        if cursor_b >= TABLE_SIZE:
            cursor_b = 1

        table = self.table
        result = to_i32(table[cursor_a] - table[cursor_b])
        if result == MAX_I32:
            result -= 1
        if result < 0:
            result += MAX_I32

        table[cursor_a] = result
        self.cursor_a = cursor_a
        self.cursor_b = cursor_b
        return result

    def reseed(self, seed: int) -> None:
        """Rebuild the whole table and both cursors from ``seed``."""
        self.seed = seed
        self.table = _build_table(seed)
        self.cursor_a = 0
        self.cursor_b = CURSOR_B_START


def _build_table(seed: int) -> list[int]:
    table = [0] * TABLE_SIZE

    subtraction = MAX_I32 if seed == MIN_I32 else abs(seed)
    mj = SEED_MAGIC - subtraction
    table[55] = mj
    mk = 1
    for i in range(1, 55):
        ii = (21 * i) % 55
        table[ii] = mk
        mk = to_i32(mj - mk)
        if mk < 0:
            mk += MAX_I32
        mj = table[ii]

    for _ in range(4):
        for i in range(1, TABLE_SIZE):
            value = to_i32(table[i] - table[1 + ((i + 30) % 55)])
            if value < 0:
                value += MAX_I32
            table[i] = value

    return table


def seed_state(seed: int) -> GeneratorState:
    """Create a freshly seeded generator state.

    Args:
        seed: Signed 32-bit seed.

    Returns:
        A state whose sample sequence is fully determined by ``seed``.
    """
    return GeneratorState(seed, _build_table(seed), 0, CURSOR_B_START)
