"""Package configuration: ChaosConfig, init() and environment detection."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from klaw_chaos._core import MAX_I32, MIN_I32, parse_seed
from klaw_chaos._logging import configure_logging
from klaw_chaos.errors import InvalidArgumentError, OutOfRangeError

__all__ = [
    'ChaosConfig',
    'get_config',
    'init',
]

SEED_ENV_VAR = 'KLAW_CHAOS_SEED'
LOG_LEVEL_ENV_VAR = 'KLAW_CHAOS_LOG_LEVEL'


@dataclass(frozen=True)
class ChaosConfig:
    """Configuration for klaw-chaos.

    Attributes:
        default_seed: Seed for lazily created shared engines. None = unpredictable.
        log_level: Logging level (e.g., "DEBUG", "INFO"). None = leave logging alone.
    """

    default_seed: int | None = None
    log_level: str | None = None


_config: ChaosConfig | None = None


def _detect_config() -> ChaosConfig:
    """Build a config from the environment.

    ``KLAW_CHAOS_SEED`` is parsed like a string seed (decimal, else hashed);
    an empty value is treated as unset.
    """
    env_seed = os.environ.get(SEED_ENV_VAR, '').strip()
    default_seed = parse_seed(env_seed) if env_seed else None

    env_level = os.environ.get(LOG_LEVEL_ENV_VAR, '').strip().upper() or None
    if env_level is not None and not isinstance(logging.getLevelName(env_level), int):
        logging.warning("Unknown %s value '%s', ignoring", LOG_LEVEL_ENV_VAR, env_level)
        env_level = None

    return ChaosConfig(default_seed=default_seed, log_level=env_level)


def init(
    default_seed: int | str | None = None,
    log_level: str | None = None,
) -> ChaosConfig:
    """Initialize klaw-chaos with explicit configuration.

    Args:
        default_seed: Seed for shared engines created after this call.
            Strings are parsed like ``ChaosEngine`` string seeds.
        log_level: Logging level ("DEBUG", "INFO", etc.). None = silent.

    Returns:
        The ChaosConfig that was set.

    Raises:
        InvalidArgumentError: If the seed is not an int, str or None.
        OutOfRangeError: If an integer seed does not fit in 32 bits.

    Example:
        ```python
        from klaw_chaos import init, shared

        init(default_seed=1234, log_level='DEBUG')
        shared().next_int(6)
        ```
    """
    global _config  # noqa: PLW0603

    if isinstance(default_seed, str):
        default_seed = parse_seed(default_seed)
    elif isinstance(default_seed, bool) or not isinstance(default_seed, int | None):
        raise InvalidArgumentError('default_seed', 'Seed must be an int, str or None')
    elif default_seed is not None and not MIN_I32 <= default_seed <= MAX_I32:
        raise OutOfRangeError('default_seed', default_seed, 'Seed must be a signed 32-bit integer')

    _config = ChaosConfig(default_seed=default_seed, log_level=log_level)

    if log_level is not None:
        configure_logging(log_level)

    return _config


def get_config() -> ChaosConfig:
    """Get the active configuration.

    When ``init()`` has not been called, the configuration is detected once
    from ``KLAW_CHAOS_SEED`` and ``KLAW_CHAOS_LOG_LEVEL`` and kept.
    """
    global _config  # noqa: PLW0603

    if _config is None:
        _config = _detect_config()
        if _config.log_level is not None:
            configure_logging(_config.log_level)
    return _config


def reset_config() -> None:
    """Forget any configuration set by ``init()``."""
    global _config  # noqa: PLW0603
    _config = None
