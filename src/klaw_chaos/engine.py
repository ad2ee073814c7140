"""ChaosEngine: seedable, reproducible random values and selections.

Every value is derived from the raw samples of a subtractive generator with
fixed formulas, so a given seed always yields the same integers, floats,
bytes, booleans, shuffles and weighted picks. The full generator state can be
saved as 59 integers and restored bit-for-bit.

Example:
    ```python
    from klaw_chaos import ChaosEngine

    engine = ChaosEngine(1234)
    engine.next_int(1, 7)          # d6
    engine.next_double()           # [0, 1]
    engine.choose(['a', 'b'])      # uniform
    engine.choose_weighted({'common': 9, 'rare': 1})

    saved = engine.save_state()
    later = ChaosEngine.from_state(saved)  # continues the same sequence
    ```
"""

from __future__ import annotations

import math
import struct
import threading
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, BinaryIO, Self, TypeVar

from klaw_chaos import persistence
from klaw_chaos._core import MAX_I32, MIN_I32, GeneratorState, parse_seed, seed_state, unpredictable_seed
from klaw_chaos._logging import get_logger
from klaw_chaos.errors import DivideByZeroError, InvalidArgumentError, OutOfRangeError
from klaw_chaos.weights import WeightedPool

if TYPE_CHECKING:
    from collections.abc import Iterable, MutableSequence, Sequence
    from enum import Enum

    from anyio.abc import AnyByteReceiveStream, AnyByteSendStream

    from klaw_chaos.weights import WeightSource

__all__ = ['ChaosEngine']

T = TypeVar('T')
E = TypeVar('E', bound='Enum')

logger = get_logger(__name__)

_INT_SCALE = 1.0 / MAX_I32
_DOUBLE_SCALE = 1.0 / (MAX_I32 - 1)
_F32 = struct.Struct('<f')


def _f32(value: float) -> float:
    """Round a Python float to the nearest IEEE single-precision value.

    Values that round past the single-precision maximum become infinite, as a
    float32 cast does.
    """
    try:
        return _F32.unpack(_F32.pack(value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


_FLOAT_SCALE = _f32(1.0 / _f32(MAX_I32 - 1))


def _check_amount(amount: int) -> None:
    if amount < 1:
        raise OutOfRangeError('amount', amount, 'The array size cannot be less than 1')


def _check_buffer(name: str, buffer: Sequence[Any] | None) -> None:
    if buffer is None or len(buffer) < 1:
        raise InvalidArgumentError(name, f'The {name} cannot be None or contain less than 1 element')


def _check_i32(name: str, value: int) -> None:
    if not MIN_I32 <= value <= MAX_I32:
        raise OutOfRangeError(name, value, 'The value must be a signed 32-bit integer')


def _check_byte(name: str, value: int) -> None:
    if not 0 <= value <= 255:
        raise OutOfRangeError(name, value, 'The value must be a byte (0-255)')


def _single_bound(min_value: T | None, max_value: T | None) -> T | None:
    """Return the upper bound of a one-bound call, given positionally or as ``max_value=``."""
    if max_value is None:
        return min_value
    if min_value is None:
        return max_value
    return None


def _check_order(min_value: float, max_value: float) -> None:
    if min_value > max_value:
        raise OutOfRangeError(
            'min_value', min_value, 'The minimum value cannot be greater than the maximum value'
        )


class ChaosEngine:
    """Seedable pseudorandom generator with typed derivations and selections.

    One engine is meant to have a single logical owner. It is still safe to
    share between threads: each sample, reseed, save and load runs under the
    engine's own lock, so callers never observe a half-updated state.

    Args:
        seed: ``int`` seed (signed 32-bit), ``str`` seed (decimal, else hashed),
            or None for an unpredictable seed from the OS entropy pool.

    Raises:
        InvalidArgumentError: If the seed is not an int, str or None (``bool`` included).
        OutOfRangeError: If an integer seed does not fit in 32 bits.
    """

    __slots__ = ('_lock', '_state')

    def __init__(self, seed: int | str | None = None) -> None:
        self._lock = threading.Lock()
        self._state: GeneratorState = seed_state(self._resolve_seed(seed))
        logger.debug('chaos_engine_seeded', seed=self._state.seed)

    @classmethod
    def from_state(cls, blob: Sequence[int]) -> Self:
        """Create an engine that resumes from a saved state blob.

        Raises:
            StateCorruptedError: If the blob fails validation.
        """
        snapshot = persistence.PersistedState.from_blob(blob)
        engine = cls.__new__(cls)
        engine._lock = threading.Lock()
        engine._state = snapshot.restore()
        logger.debug('chaos_engine_state_loaded', seed=snapshot.seed)
        return engine

    def __repr__(self) -> str:
        return f'ChaosEngine(seed={self._state.seed})'

    # --- Seeding ---

    @staticmethod
    def _resolve_seed(seed: int | str | None) -> int:
        if seed is None:
            return unpredictable_seed()
        if isinstance(seed, str):
            return parse_seed(seed)
        if isinstance(seed, bool) or not isinstance(seed, int):
            raise InvalidArgumentError('seed', f'The seed must be an int, str or None, not {type(seed).__name__}')
        _check_i32('seed', seed)
        return seed

    @property
    def seed(self) -> int:
        """The seed the current sequence was derived from."""
        return self._state.seed

    @seed.setter
    def seed(self, value: int | str | None) -> None:
        self.reseed(value)

    def reseed(self, seed: int | str | None = None) -> None:
        """Restart the engine from a new seed (None = unpredictable)."""
        resolved = self._resolve_seed(seed)
        with self._lock:
            self._state.reseed(resolved)
        logger.debug('chaos_engine_seeded', seed=resolved)

    def reset(self) -> None:
        """Restart the current seed's sequence from the beginning."""
        with self._lock:
            self._state.reseed(self._state.seed)
        logger.debug('chaos_engine_reset', seed=self._state.seed)

    # --- Raw samples ---

    def next_sample(self) -> int:
        """Return the next raw sample in ``[0, 2**31 - 1)``."""
        with self._lock:
            return self._state.next_sample()

    # --- Integers ---

    def next_int(self, min_value: int | None = None, max_value: int | None = None) -> int:
        """Return a random integer.

        - ``next_int()``: raw sample in ``[0, 2**31 - 1)``.
        - ``next_int(max_value)`` or ``next_int(max_value=...)``: ``[0, max_value)``;
          ``max_value`` must be at least 1.
        - ``next_int(min_value, max_value)``: ``[min_value, max_value)``;
          ``min_value == max_value`` yields ``min_value``.

        Raises:
            OutOfRangeError: On bounds outside 32 bits, ``min_value > max_value``,
                or ``max_value < 1`` in the single-bound form.
        """
        if min_value is None and max_value is None:
            return self.next_sample()
        bound = _single_bound(min_value, max_value)
        if bound is not None:
            if bound < 1:
                raise OutOfRangeError('max_value', bound, 'The maximum value cannot be less than 1')
            min_value, max_value = 0, bound
        _check_i32('min_value', min_value)
        _check_i32('max_value', max_value)
        _check_order(min_value, max_value)
        return int(self.next_sample() * _INT_SCALE * (max_value - min_value)) + min_value

    def next_ints(self, amount: int, min_value: int | None = None, max_value: int | None = None) -> list[int]:
        """Return ``amount`` integers drawn like ``next_int(min_value, max_value)``."""
        _check_amount(amount)
        return [self.next_int(min_value, max_value) for _ in range(amount)]

    def fill_ints(
        self, buffer: MutableSequence[int], min_value: int | None = None, max_value: int | None = None
    ) -> None:
        """Overwrite every slot of ``buffer`` with ``next_int(min_value, max_value)``."""
        _check_buffer('buffer', buffer)
        for index in range(len(buffer)):
            buffer[index] = self.next_int(min_value, max_value)

    # --- Doubles ---

    def next_double(self, min_value: float | None = None, max_value: float | None = None) -> float:
        """Return a random float in double precision.

        - ``next_double()``: ``[0.0, 1.0]``.
        - ``next_double(max_value)`` or ``next_double(max_value=...)``: ``[0.0, max_value]``;
          ``max_value`` must be at least 0.
        - ``next_double(min_value, max_value)``: ``[min_value, max_value]``.

        Raises:
            OutOfRangeError: If ``max_value < 0`` (single bound) or ``min_value > max_value``.
        """
        if min_value is None and max_value is None:
            return self.next_sample() * _DOUBLE_SCALE
        bound = _single_bound(min_value, max_value)
        if bound is not None:
            if bound < 0:
                raise OutOfRangeError('max_value', bound, 'The maximum value cannot be less than 0')
            min_value, max_value = 0.0, bound
        _check_order(min_value, max_value)
        return self.next_sample() * _DOUBLE_SCALE * (max_value - min_value) + min_value

    def next_doubles(
        self, amount: int, min_value: float | None = None, max_value: float | None = None
    ) -> list[float]:
        """Return ``amount`` floats drawn like ``next_double(min_value, max_value)``."""
        _check_amount(amount)
        return [self.next_double(min_value, max_value) for _ in range(amount)]

    def fill_doubles(
        self, buffer: MutableSequence[float], min_value: float | None = None, max_value: float | None = None
    ) -> None:
        """Overwrite every slot of ``buffer`` with ``next_double(min_value, max_value)``."""
        _check_buffer('buffer', buffer)
        for index in range(len(buffer)):
            buffer[index] = self.next_double(min_value, max_value)

    # --- Floats (single precision) ---

    def next_float(self, min_value: float | None = None, max_value: float | None = None) -> float:
        """Like ``next_double`` but computed and rounded in single precision.

        The result is a Python float holding an exact float32 value. Bounds are
        rounded to single precision first.

        Raises:
            OutOfRangeError: If ``max_value < 0`` (single bound), ``min_value > max_value``,
                or the bounds or their difference overflow single precision.
        """
        if min_value is None and max_value is None:
            return _f32(_f32(self.next_sample()) * _FLOAT_SCALE)
        bound = _single_bound(min_value, max_value)
        if bound is not None:
            if bound < 0:
                raise OutOfRangeError('max_value', bound, 'The maximum value cannot be less than 0')
            min_value, max_value = 0.0, bound
        _check_order(min_value, max_value)
        low, high = _f32(min_value), _f32(max_value)
        span = _f32(high - low)
        if not all(map(math.isfinite, (low, high, span))):
            raise OutOfRangeError(
                'max_value', max_value, 'The range does not fit in a single-precision float'
            )
        return _f32(_f32(self.next_float() * span) + low)

    def next_floats(
        self, amount: int, min_value: float | None = None, max_value: float | None = None
    ) -> list[float]:
        """Return ``amount`` values drawn like ``next_float(min_value, max_value)``."""
        _check_amount(amount)
        return [self.next_float(min_value, max_value) for _ in range(amount)]

    def fill_floats(
        self, buffer: MutableSequence[float], min_value: float | None = None, max_value: float | None = None
    ) -> None:
        """Overwrite every slot of ``buffer`` with ``next_float(min_value, max_value)``."""
        _check_buffer('buffer', buffer)
        for index in range(len(buffer)):
            buffer[index] = self.next_float(min_value, max_value)

    # --- Bytes ---

    def next_byte(self, min_value: int | None = None, max_value: int | None = None) -> int:
        """Return a random byte value.

        - ``next_byte()``: ``[0, 256)``.
        - ``next_byte(max_value)`` or ``next_byte(max_value=...)``: ``[0, max_value)``;
          ``max_value`` must be at least 1.
        - ``next_byte(min_value, max_value)``: ``[min_value, max_value)``.

        Bounds must themselves be bytes (0-255).
        """
        if min_value is None and max_value is None:
            return self.next_int(0, 256)
        bound = _single_bound(min_value, max_value)
        if bound is not None:
            _check_byte('max_value', bound)
            return self.next_int(bound)
        _check_byte('min_value', min_value)
        _check_byte('max_value', max_value)
        return self.next_int(min_value, max_value)

    def next_bytes(self, amount: int, min_value: int | None = None, max_value: int | None = None) -> bytes:
        """Return ``amount`` bytes drawn like ``next_byte(min_value, max_value)``."""
        _check_amount(amount)
        return bytes(self.next_byte(min_value, max_value) for _ in range(amount))

    def fill_bytes(
        self, buffer: MutableSequence[int], min_value: int | None = None, max_value: int | None = None
    ) -> None:
        """Overwrite every slot of ``buffer`` (e.g. a bytearray) with ``next_byte(...)``."""
        _check_buffer('buffer', buffer)
        for index in range(len(buffer)):
            buffer[index] = self.next_byte(min_value, max_value)

    # --- Booleans ---

    def next_bool(self) -> bool:
        """Return True or False with equal probability."""
        return self.next_int(0, 2) == 1

    def next_bools(self, amount: int) -> list[bool]:
        """Return ``amount`` booleans."""
        _check_amount(amount)
        return [self.next_bool() for _ in range(amount)]

    def fill_bools(self, buffer: MutableSequence[bool]) -> None:
        """Overwrite every slot of ``buffer`` with ``next_bool()``."""
        _check_buffer('buffer', buffer)
        for index in range(len(buffer)):
            buffer[index] = self.next_bool()

    # --- Probability & odds ---

    def next_probability(self, probability: float) -> bool:
        """Return True with the given probability.

        Values at or above 1 are always True and values at or below 0 are
        always False; neither consumes a sample.
        """
        if probability >= 1:
            return True
        if probability <= 0:
            return False
        return self.next_float() < _f32(probability)

    def next_probabilities(self, probability: float, amount: int) -> list[bool]:
        """Return ``amount`` results of ``next_probability(probability)``."""
        _check_amount(amount)
        return [self.next_probability(probability) for _ in range(amount)]

    def fill_probabilities(self, probability: float, buffer: MutableSequence[bool]) -> None:
        """Overwrite every slot of ``buffer`` with ``next_probability(probability)``."""
        _check_buffer('buffer', buffer)
        for index in range(len(buffer)):
            buffer[index] = self.next_probability(probability)

    def next_percent(self, percent: int) -> bool:
        """Return True with a chance of ``percent`` in 100.

        100 or more is always True, 0 or less always False.
        """
        if percent >= 100:
            return True
        if percent <= 0:
            return False
        return self.next_int(100) < percent

    def next_percents(self, percent: int, amount: int) -> list[bool]:
        """Return ``amount`` results of ``next_percent(percent)``."""
        _check_amount(amount)
        return [self.next_percent(percent) for _ in range(amount)]

    def fill_percents(self, percent: int, buffer: MutableSequence[bool]) -> None:
        """Overwrite every slot of ``buffer`` with ``next_percent(percent)``."""
        _check_buffer('buffer', buffer)
        for index in range(len(buffer)):
            buffer[index] = self.next_percent(percent)

    @staticmethod
    def _odds(numerator: int, denominator: int) -> float:
        if denominator == 0:
            raise DivideByZeroError(numerator)
        return _f32(_f32(numerator) / _f32(denominator))

    def next_odds(self, numerator: int, denominator: int) -> bool:
        """Return True with odds ``numerator`` in ``denominator``.

        Raises:
            DivideByZeroError: If ``denominator`` is 0.
        """
        return self.next_probability(self._odds(numerator, denominator))

    def next_odds_many(self, numerator: int, denominator: int, amount: int) -> list[bool]:
        """Return ``amount`` results of ``next_odds(numerator, denominator)``."""
        _check_amount(amount)
        return self.next_probabilities(self._odds(numerator, denominator), amount)

    def fill_odds(self, numerator: int, denominator: int, buffer: MutableSequence[bool]) -> None:
        """Overwrite every slot of ``buffer`` with ``next_odds(numerator, denominator)``."""
        _check_buffer('buffer', buffer)
        self.fill_probabilities(self._odds(numerator, denominator), buffer)

    # --- Sequences ---

    def shuffle(self, items: MutableSequence[Any]) -> None:
        """Shuffle ``items`` in place (Fisher-Yates, from the end)."""
        for n in range(len(items), 1, -1):
            k = self.next_int(0, n)
            items[n - 1], items[k] = items[k], items[n - 1]

    def choose(self, items: Sequence[T]) -> T:
        """Return a uniformly chosen element of ``items``.

        Raises:
            InvalidArgumentError: If ``items`` is None or empty.
        """
        _check_buffer('items', items)
        return items[self.next_int(len(items))]

    def choose_many(self, items: Sequence[T], amount: int) -> list[T]:
        """Return ``amount`` independent uniform choices (with replacement)."""
        _check_buffer('items', items)
        _check_amount(amount)
        return [self.choose(items) for _ in range(amount)]

    def fill_choices(self, items: Sequence[T], buffer: MutableSequence[T]) -> None:
        """Overwrite every slot of ``buffer`` with ``choose(items)``."""
        _check_buffer('items', items)
        _check_buffer('buffer', buffer)
        for index in range(len(buffer)):
            buffer[index] = self.choose(items)

    # --- Weighted selection ---

    @staticmethod
    def _pool(
        candidates: Iterable[T] | Mapping[T, int], weight: WeightSource[T] | None
    ) -> WeightedPool[T]:
        if candidates is None:
            raise InvalidArgumentError('candidates', 'The candidates cannot be None')
        if isinstance(candidates, Mapping):
            if weight is not None:
                raise InvalidArgumentError('weight', 'Cannot combine a weight mapping with weight=')
            return WeightedPool(candidates.keys(), weight=candidates)
        return WeightedPool(candidates, weight=weight)

    def _draw(self, pool: WeightedPool[T]) -> T:
        return pool.pick(self.next_int(pool.total))

    def choose_weighted(
        self,
        candidates: Iterable[T] | Mapping[T, int],
        weight: WeightSource[T] | None = None,
    ) -> T:
        """Return a candidate chosen in proportion to its weight.

        Weights come from ``weight`` (a callable or mapping) when given, from
        ``candidates`` itself when it is a ``value -> weight`` mapping, and
        otherwise from each candidate's ``weight`` attribute. Weight 0 means
        the candidate is never chosen.

        Raises:
            InvalidArgumentError: On empty candidates, negative weights, a zero
                total weight, or candidates without a weight.
        """
        return self._draw(self._pool(candidates, weight))

    def choose_weighted_many(
        self,
        candidates: Iterable[T] | Mapping[T, int],
        amount: int,
        weight: WeightSource[T] | None = None,
    ) -> list[T]:
        """Return ``amount`` independent weighted choices."""
        pool = self._pool(candidates, weight)
        _check_amount(amount)
        return [self._draw(pool) for _ in range(amount)]

    def choose_enum(self, enum_type: type[E], weights: WeightSource[E] | None = None) -> E:
        """Return a member of ``enum_type`` chosen in proportion to its weight.

        Weights come from ``weights`` when given, else from the table
        registered for the enum (see ``klaw_chaos.weights.register_weights``),
        else every member weighs 1.
        """
        return self._draw(WeightedPool.of_enum(enum_type, weights))

    def choose_enum_many(
        self, enum_type: type[E], amount: int, weights: WeightSource[E] | None = None
    ) -> list[E]:
        """Return ``amount`` independent ``choose_enum`` results."""
        pool = WeightedPool.of_enum(enum_type, weights)
        _check_amount(amount)
        return [self._draw(pool) for _ in range(amount)]

    def fill_enum(
        self, enum_type: type[E], buffer: MutableSequence[E], weights: WeightSource[E] | None = None
    ) -> None:
        """Overwrite every slot of ``buffer`` with ``choose_enum(enum_type, weights)``."""
        _check_buffer('buffer', buffer)
        pool = WeightedPool.of_enum(enum_type, weights)
        for index in range(len(buffer)):
            buffer[index] = self._draw(pool)

    # --- State ---

    def save_state(self) -> list[int]:
        """Return the full state as ``[seed, cursor_a, cursor_b, *table]`` (59 ints)."""
        with self._lock:
            snapshot = persistence.PersistedState.capture(self._state)
        return snapshot.to_blob()

    def load_state(self, blob: Sequence[int]) -> None:
        """Replace the whole state with a saved blob.

        Raises:
            StateCorruptedError: If the blob has the wrong length, a non-zero
                sentinel slot, or values that cannot belong to a valid state.
        """
        restored = persistence.PersistedState.from_blob(blob).restore()
        with self._lock:
            self._state = restored
        logger.debug('chaos_engine_state_loaded', seed=restored.seed)

    def save_state_to(self, stream: BinaryIO) -> None:
        """Write the state to a binary stream as one length-prefixed frame."""
        persistence.write_state(stream, self.save_state())
        logger.debug('chaos_engine_state_saved', seed=self.seed)

    def load_state_from(self, stream: BinaryIO) -> None:
        """Read one frame written by ``save_state_to`` and load it."""
        self.load_state(persistence.read_state(stream))

    async def asave_state_to(self, stream: AnyByteSendStream) -> None:
        """Send the state on an anyio byte stream as one frame."""
        await persistence.awrite_state(stream, self.save_state())
        logger.debug('chaos_engine_state_saved', seed=self.seed)

    async def aload_state_from(self, stream: AnyByteReceiveStream) -> None:
        """Receive one frame from an anyio byte stream and load it."""
        self.load_state(await persistence.aread_state(stream))

