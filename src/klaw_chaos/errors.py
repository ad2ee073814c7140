"""Error types for the chaos engine.

Argument and arithmetic failures are plain exceptions that also subclass the
matching builtin (``ValueError``, ``ZeroDivisionError``) so callers can catch
them either way. State corruption additionally has a struct variant for code
that validates persisted blobs without raising.
"""

from __future__ import annotations

from typing import Any

import msgspec

__all__ = [
    'ChaosError',
    'DivideByZeroError',
    'InvalidArgumentError',
    'OutOfRangeError',
    'StateCorrupted',
    'StateCorruptedError',
]


class ChaosError(Exception):
    """Base exception for every error raised by klaw-chaos."""


# --- Argument Errors ---


class InvalidArgumentError(ChaosError, ValueError):
    """An argument is missing, empty, or otherwise unusable."""

    def __init__(self, argument: str, message: str) -> None:
        self.argument = argument
        super().__init__(f'{argument}: {message}')


class OutOfRangeError(InvalidArgumentError):
    """A numeric argument lies outside the range the operation accepts."""

    def __init__(self, argument: str, value: Any, message: str) -> None:
        self.value = value
        super().__init__(argument, f'{message} (got {value!r})')


# --- Arithmetic Errors ---


class DivideByZeroError(ChaosError, ZeroDivisionError):
    """An odds test was asked to divide by a zero denominator."""

    def __init__(self, numerator: int) -> None:
        self.numerator = numerator
        super().__init__(f'Odds {numerator}:0 have a zero denominator')


# --- State Errors ---


class StateCorrupted(msgspec.Struct, frozen=True, gc=False):
    """Persisted state failed validation - struct variant."""

    reason: str

    def to_exception(self) -> StateCorruptedError:
        """Convert to exception for raise-based code."""
        return StateCorruptedError(self.reason)


class StateCorruptedError(ChaosError):
    """Persisted state failed validation - exception variant."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f'Chaos state is invalid or corrupted: {reason}')

    def to_struct(self) -> StateCorrupted:
        """Convert to struct for value-based code."""
        return StateCorrupted(self.reason)
