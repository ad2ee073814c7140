"""Weight sources and weighted pools.

A weight is a non-negative integer. A candidate with weight ``w`` is ``w``
times as likely as one with weight 1, and weight 0 excludes it. Weights come
from one of three places:

    - an object's own ``weight`` attribute (the ``Weighted`` protocol),
    - an explicit ``value -> weight`` callable or mapping given at the call site,
    - for enums, a table registered once with ``register_weights`` or ``@weighted``.

Usage:
    >>> from enum import Enum
    >>> @weighted(COMMON=10, RARE=1, CURSED=0)
    ... class Loot(Enum):
    ...     COMMON = 'common'
    ...     RARE = 'rare'
    ...     CURSED = 'cursed'
    >>> enum_weight(Loot.RARE)
    1
"""

from __future__ import annotations

import bisect
import itertools
import threading
from collections.abc import Callable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar, runtime_checkable

import msgspec

from klaw_chaos.errors import InvalidArgumentError

if TYPE_CHECKING:
    from collections.abc import Iterable

__all__ = [
    'WeightSource',
    'Weighted',
    'WeightedCandidate',
    'WeightedPool',
    'enum_weight',
    'register_weights',
    'registered_weights',
    'unregister_weights',
    'weighted',
]

T = TypeVar('T')
E = TypeVar('E', bound=Enum)


@runtime_checkable
class Weighted(Protocol):
    """Anything exposing an integer ``weight``."""

    @property
    def weight(self) -> int: ...


class WeightedCandidate(msgspec.Struct, Generic[T], frozen=True, gc=False):
    """A value paired with its selection weight.

    Attributes:
        value: The value that is returned when this candidate is drawn.
        weight: Relative frequency; 0 means never drawn.
    """

    value: T
    weight: int = 1


type WeightSource[V] = Callable[[V], int] | Mapping[V, int]
"""Explicit weight lookup: a ``value -> weight`` callable or a mapping."""


# --- Enum weight registry ---

_registry: dict[type[Enum], dict[str, int]] = {}
_registry_lock = threading.Lock()


def _check_weight(name: str, weight: int) -> int:
    if isinstance(weight, bool) or not isinstance(weight, int):
        raise InvalidArgumentError(name, f'Weight must be an integer, got {type(weight).__name__}')
    if weight < 0:
        raise InvalidArgumentError(name, f'Weight cannot be negative (got {weight})')
    return weight


def register_weights(enum_type: type[E], weights: Mapping[E | str, int]) -> None:
    """Declare member weights for an enum.

    Members left out of ``weights`` keep the default weight of 1. Registering
    again replaces the previous table.

    Args:
        enum_type: The enum class.
        weights: Weights keyed by member or member name.

    Raises:
        InvalidArgumentError: On unknown members or negative weights.
    """
    table: dict[str, int] = {}
    for key, weight in weights.items():
        name = key.name if isinstance(key, Enum) else key
        if isinstance(key, Enum) and not isinstance(key, enum_type):
            raise InvalidArgumentError('weights', f'{key!r} is not a member of {enum_type.__name__}')
        if name not in enum_type.__members__:
            raise InvalidArgumentError('weights', f'{enum_type.__name__} has no member {name!r}')
        table[name] = _check_weight(f'weights[{name}]', weight)

    with _registry_lock:
        _registry[enum_type] = table


def unregister_weights(enum_type: type[Enum]) -> None:
    """Drop the weight table registered for ``enum_type``, if any."""
    with _registry_lock:
        _registry.pop(enum_type, None)


def registered_weights(enum_type: type[Enum]) -> dict[str, int]:
    """Return a copy of the weights registered for ``enum_type`` (by member name)."""
    with _registry_lock:
        return dict(_registry.get(enum_type, {}))


def weighted(**weights: int) -> Callable[[type[E]], type[E]]:
    """Class decorator form of ``register_weights`` keyed by member name."""

    def decorator(enum_type: type[E]) -> type[E]:
        register_weights(enum_type, weights)
        return enum_type

    return decorator


def enum_weight(member: Enum) -> int:
    """Weight of an enum member: its registered weight, else 1."""
    with _registry_lock:
        table = _registry.get(type(member))
    if table is None:
        return 1
    return table.get(member.name, 1)


# --- Pools ---


def _resolve(source: WeightSource[T] | None) -> Callable[[T], int]:
    if source is None:
        return _attribute_weight
    if isinstance(source, Mapping):
        return lambda value: source.get(value, 1)
    return source


def _attribute_weight(value: object) -> int:
    if not isinstance(value, Weighted):
        raise InvalidArgumentError(
            'candidates',
            f'{type(value).__name__} has no weight; pass weight= or use WeightedCandidate',
        )
    return value.weight


class WeightedPool(Generic[T]):
    """Cumulative-weight view of a candidate list.

    Picking index ``i`` in ``[0, total)`` returns the same candidate as
    indexing a list in which every candidate is repeated ``weight`` times, in
    order, without materializing that list.

    Example:
        >>> pool = WeightedPool(['a', 'b', 'c'], weight={'a': 0, 'b': 1, 'c': 3})
        >>> pool.total
        4
        >>> [pool.pick(i) for i in range(pool.total)]
        ['b', 'c', 'c', 'c']
    """

    __slots__ = ('_bounds', '_candidates')

    def __init__(self, candidates: Iterable[T], weight: WeightSource[T] | None = None) -> None:
        lookup = _resolve(weight)
        self._candidates: list[T] = list(candidates)
        if not self._candidates:
            raise InvalidArgumentError('candidates', 'The candidates cannot be empty')

        weights = [_check_weight('weight', lookup(candidate)) for candidate in self._candidates]
        self._bounds: list[int] = list(itertools.accumulate(weights))
        if self._bounds[-1] < 1:
            raise InvalidArgumentError('candidates', 'The total weight of the candidates must be at least 1')

    @classmethod
    def of_enum(cls, enum_type: type[E], weights: WeightSource[E] | None = None) -> WeightedPool[E]:
        """Pool over every member of ``enum_type`` in definition order."""
        return cls(list(enum_type), weight=enum_weight if weights is None else weights)

    @property
    def total(self) -> int:
        """Sum of all weights."""
        return self._bounds[-1]

    def __len__(self) -> int:
        return len(self._candidates)

    def pick(self, index: int) -> T:
        """Return the candidate owning slot ``index`` of the virtual pool."""
        if not 0 <= index < self.total:
            raise IndexError(f'Pool index {index} out of range [0, {self.total})')
        return self._candidates[bisect.bisect_right(self._bounds, index)]
