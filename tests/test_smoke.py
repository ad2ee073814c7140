"""Smoke tests for package imports."""

from __future__ import annotations

import klaw_chaos


def test_public_names_resolve() -> None:
    """Every name in __all__ is importable from the package root."""
    missing = [name for name in klaw_chaos.__all__ if not hasattr(klaw_chaos, name)]
    assert missing == []


def test_error_hierarchy() -> None:
    """All errors share ChaosError and the matching builtin."""
    assert issubclass(klaw_chaos.OutOfRangeError, klaw_chaos.InvalidArgumentError)
    assert issubclass(klaw_chaos.InvalidArgumentError, ValueError)
    assert issubclass(klaw_chaos.DivideByZeroError, ZeroDivisionError)
    for error in (klaw_chaos.InvalidArgumentError, klaw_chaos.DivideByZeroError, klaw_chaos.StateCorruptedError):
        assert issubclass(error, klaw_chaos.ChaosError)


def test_quick_tour() -> None:
    """The README example runs."""
    engine = klaw_chaos.ChaosEngine(1234)
    assert 1 <= engine.next_int(1, 7) <= 6
    assert 0.5 <= engine.next_double(0.5, 2.0) <= 2.0
    assert engine.choose_weighted({'common': 9, 'rare': 1}) in ('common', 'rare')

    saved = engine.save_state()
    assert klaw_chaos.ChaosEngine.from_state(saved).next_int() == engine.next_int()

    with klaw_chaos.use_engine(klaw_chaos.ChaosEngine(7)):
        assert 5 <= klaw_chaos.Dice.parse('3d6').roll(modifier=2) <= 20
