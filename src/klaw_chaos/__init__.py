"""klaw-chaos: Deterministic, seedable randomness for the Klaw ecosystem.

A subtractive pseudorandom generator with exact, reproducible sequences per
seed, typed derivations (ints, floats, bytes, bools), weighted selection, and
bit-for-bit state persistence. Not suitable for cryptography.

Flat imports (preferred):
    from klaw_chaos import ChaosEngine, shared, roll, Dice

Submodule imports (for organization):
    from klaw_chaos.engine import ChaosEngine
    from klaw_chaos.weights import WeightedCandidate, register_weights
    from klaw_chaos.persistence import encode_state, decode_state
"""

# Config
from klaw_chaos._config import ChaosConfig, get_config, init

# Dice
from klaw_chaos.dice import Dice, DieType, roll, rolls

# Engine
from klaw_chaos.engine import ChaosEngine

# Errors
from klaw_chaos.errors import (
    ChaosError,
    DivideByZeroError,
    InvalidArgumentError,
    OutOfRangeError,
    StateCorrupted,
    StateCorruptedError,
)

# Persistence
from klaw_chaos.persistence import PersistedState, decode_state, encode_state, validate_state

# Shared instance
from klaw_chaos.shared import set_shared, shared, use_engine

# Weights
from klaw_chaos.weights import Weighted, WeightedCandidate, register_weights, weighted

__all__ = [
    # Config
    'ChaosConfig',
    'get_config',
    'init',
    # Dice
    'Dice',
    'DieType',
    'roll',
    'rolls',
    # Engine
    'ChaosEngine',
    # Errors
    'ChaosError',
    'DivideByZeroError',
    'InvalidArgumentError',
    'OutOfRangeError',
    'StateCorrupted',
    'StateCorruptedError',
    # Persistence
    'PersistedState',
    'decode_state',
    'encode_state',
    'validate_state',
    # Shared instance
    'set_shared',
    'shared',
    'use_engine',
    # Weights
    'Weighted',
    'WeightedCandidate',
    'register_weights',
    'weighted',
]
