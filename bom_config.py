"""
Runtime settings for BOM validation and explosion.

Values come from the environment so a host application can tune them
without code changes.
"""

import os
from decimal import (
    ROUND_05UP,
    ROUND_CEILING,
    ROUND_DOWN,
    ROUND_FLOOR,
    ROUND_HALF_DOWN,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
    ROUND_UP,
)

ROUNDING_MODES = (
    ROUND_05UP,
    ROUND_CEILING,
    ROUND_DOWN,
    ROUND_FLOOR,
    ROUND_HALF_DOWN,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
    ROUND_UP,
)


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {value!r}")


def _rounding_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    mode = value.strip().upper()
    if mode not in ROUNDING_MODES:
        raise ValueError(
            f"Environment variable {name} must be one of {', '.join(ROUNDING_MODES)}, got {value!r}")
    return mode


# Recursion bound for explosions of unvalidated graphs
MAX_EXPLOSION_DEPTH = _int_env("BOM_MAX_EXPLOSION_DEPTH", 32)

# Used when no entity store is available to supply an item's precision
DEFAULT_DECIMAL_PRECISION = _int_env("BOM_DEFAULT_DECIMAL_PRECISION", 4)

MIN_DECIMAL_PRECISION = 0
MAX_DECIMAL_PRECISION = 6

# Any decimal rounding mode name, e.g. ROUND_HALF_EVEN
ROUNDING = _rounding_env("BOM_ROUNDING", ROUND_HALF_UP)
