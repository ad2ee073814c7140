"""Context-scoped shared engine.

``shared()`` returns the engine bound to the current execution context and
creates one on first use. Every thread starts with an empty context, so two
threads never share an engine unless one is bound explicitly.

Async tasks copy their parent's context, which would otherwise hand every
child the parent's engine and interleave their draws in scheduling order. A
lazily created engine therefore belongs to the task (or thread) that created
it: a child task calling ``shared()`` gets its own engine, seeded like any
other lazy engine. Engines bound with ``set_shared`` or ``use_engine`` are
deliberate and are inherited by child tasks as-is.

Example:
    ```python
    init(default_seed=7)

    async def worker() -> list[int]:
        return shared().next_ints(3, 100)  # same values in every task
    ```
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, NamedTuple

import anyio

from klaw_chaos._config import get_config
from klaw_chaos._logging import get_logger
from klaw_chaos.engine import ChaosEngine

if TYPE_CHECKING:
    from collections.abc import Generator

__all__ = [
    'set_shared',
    'shared',
    'use_engine',
]

logger = get_logger(__name__)


class _Binding(NamedTuple):
    engine: ChaosEngine
    owner: object | None
    """Task or thread that lazily created ``engine``; None for explicit bindings."""


_shared: ContextVar[_Binding | None] = ContextVar('klaw_chaos_shared', default=None)


def _owner() -> object:
    """Identify the running async task, or the thread outside async code."""
    try:
        return anyio.get_current_task().id
    except RuntimeError:
        return threading.current_thread()


def _create() -> ChaosEngine:
    engine = ChaosEngine(get_config().default_seed)
    logger.debug('chaos_shared_engine_created', seed=engine.seed)
    return engine


def shared() -> ChaosEngine:
    """Return the engine bound to the current context, creating it if needed.

    A lazily created engine uses ``ChaosConfig.default_seed`` when one is
    configured and an unpredictable seed otherwise. An engine lazily created
    by another task or thread is never reused.
    """
    binding = _shared.get()
    owner = _owner()
    if binding is None or (binding.owner is not None and binding.owner != owner):
        binding = _Binding(_create(), owner)
        _shared.set(binding)
    return binding.engine


def set_shared(engine: ChaosEngine | None) -> ChaosEngine:
    """Bind ``engine`` to the current context (None binds a fresh engine).

    The binding is inherited by async tasks started from this context.

    Returns:
        The engine now bound.
    """
    if engine is None:
        engine = _create()
    _shared.set(_Binding(engine, None))
    return engine


@contextmanager
def use_engine(engine: ChaosEngine) -> Generator[ChaosEngine]:
    """Bind ``engine`` for the duration of a ``with`` block.

    Tasks started inside the block draw from ``engine`` too.

    Example:
        ```python
        with use_engine(ChaosEngine(7)):
            total = roll(3, 6)  # draws from the seeded engine
        ```
    """
    token = _shared.set(_Binding(engine, None))
    try:
        yield engine
    finally:
        _shared.reset(token)
