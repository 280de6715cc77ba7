"""Seeded per-octave coordinate offsets."""

from __future__ import annotations

import numpy as np

from heightforge.config import ConfigError, OffsetConfig
from heightforge.rng import RngStream


def sample_octave_offsets(
    seed: int,
    count: int,
    offset_min: int,
    offset_max: int,
    *,
    enabled: bool = True,
) -> np.ndarray:
    """Return a ``(count, 2)`` int64 array of per-octave offsets.

    Offsets are drawn from ``[offset_min, offset_max)`` in the order
    ``x0, y0, x1, y1, ...`` from the ``"octave-offsets"`` fork of `seed`.
    When `enabled` is false every offset is the zero vector and the range is
    not consulted.
    """

    if count < 0:
        raise ConfigError(f"octave count must be >= 0 (got {count})")
    if not enabled:
        return np.zeros((count, 2), dtype=np.int64)
    if offset_min >= offset_max:
        raise ConfigError(f"offset_min must be < offset_max (got {offset_min} >= {offset_max})")

    stream = RngStream(seed).fork("octave-offsets")
    return stream.integers(offset_min, offset_max, 2 * count).reshape(count, 2)


def offsets_for_config(config: OffsetConfig, count: int) -> np.ndarray:
    return sample_octave_offsets(
        config.seed,
        count,
        config.offset_min,
        config.offset_max,
        enabled=config.enabled,
    )
