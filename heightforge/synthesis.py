"""Fractal noise height field synthesis."""

from __future__ import annotations

from dataclasses import dataclass
import logging

import numpy as np

from heightforge.config import ConfigError, GeneratorConfig, NoiseConfig
from heightforge.noise import perlin_2d

logger = logging.getLogger(__name__)

# Rows of the [x, y] grid sampled per vectorized block.
BAND_ROWS = 256


@dataclass(frozen=True)
class NoiseFieldResult:
    """Synthesized height grid and the statistics used to normalize it."""

    height: np.ndarray
    raw_min: float
    raw_max: float
    normalized: bool
    blended: bool


def octave_parameters(config: NoiseConfig) -> list[tuple[float, float]]:
    """Return ``(amplitude, frequency)`` for every octave."""

    params: list[tuple[float, float]] = []
    amplitude = float(config.starting_amplitude)
    frequency = float(config.starting_frequency)
    for _ in range(config.octave_count):
        params.append((amplitude, frequency))
        amplitude *= config.persistence
        frequency *= config.lacunarity
    return params


def accumulate_octaves(
    resolution: int,
    offsets: np.ndarray,
    config: NoiseConfig,
) -> tuple[np.ndarray, float, float]:
    """Sum all octave layers into a float64 ``[x, y]`` grid.

    Returns the grid with its minimum and maximum, tracked band by band in the
    same pass.
    """

    if resolution <= 0:
        raise ConfigError(f"resolution must be positive (got {resolution})")
    if config.octave_count < 0:
        raise ConfigError(f"octave_count must be >= 0 (got {config.octave_count})")
    offsets = np.asarray(offsets)
    if offsets.shape != (config.octave_count, 2):
        raise ConfigError(
            f"expected {config.octave_count} octave offsets of shape (n, 2), got {offsets.shape}"
        )

    field = np.zeros((resolution, resolution), dtype=np.float64)
    unit = np.arange(resolution, dtype=np.float64) / resolution
    global_x, global_y = (float(v) for v in config.global_offset)
    octaves = octave_parameters(config)

    axes = []
    for (_, frequency), (offset_x, offset_y) in zip(octaves, offsets):
        step = config.scale * frequency
        xs = global_x + float(offset_x) + unit * step
        ys = global_y + float(offset_y) + unit * step
        axes.append((xs, ys))

    raw_min = np.inf
    raw_max = -np.inf
    for start in range(0, resolution, BAND_ROWS):
        stop = min(start + BAND_ROWS, resolution)
        band = field[start:stop]
        for (amplitude, _), (xs, ys) in zip(octaves, axes):
            band += amplitude * perlin_2d(xs[start:stop, None], ys[None, :])
        raw_min = min(raw_min, float(band.min()))
        raw_max = max(raw_max, float(band.max()))
    return field, raw_min, raw_max


def normalize_field(field: np.ndarray, raw_min: float, raw_max: float) -> tuple[np.ndarray, bool]:
    """Stretch `field` to [0, 1]; constant fields are returned unchanged."""

    span = raw_max - raw_min
    if not span > 0.0:
        logger.debug("constant noise field (value %.6g); skipping normalization", raw_min)
        return field.copy(), False
    return (field - raw_min) / span, True


def redistribute(values: np.ndarray, flatness: float) -> np.ndarray:
    """Apply the ``v ** flatness`` power curve; flatness >= 1 flattens lowlands."""

    return np.power(values, flatness)


def blend_reference(values: np.ndarray, reference: np.ndarray) -> np.ndarray:
    """Linear 50/50 blend of the noise field with a reference grayscale grid."""

    return (0.5 * values + 0.5 * reference).astype(np.float32)


def check_reference(reference: np.ndarray | None, resolution: int) -> np.ndarray:
    if reference is None:
        raise ConfigError("use_reference_image is set but no reference image was supplied")
    ref = np.asarray(reference)
    if ref.shape != (resolution, resolution):
        raise ConfigError(
            f"reference image must be {resolution}x{resolution} (got {'x'.join(str(d) for d in ref.shape)})"
        )
    ref = ref.astype(np.float32)
    if not np.isfinite(ref).all():
        raise ConfigError("reference image contains non-finite values")
    return ref


def generate_noise_field(
    config: GeneratorConfig,
    offsets: np.ndarray,
    *,
    reference: np.ndarray | None = None,
) -> NoiseFieldResult:
    """Synthesize a normalized, redistributed and optionally blended height grid."""

    ref = check_reference(reference, config.resolution) if config.use_reference_image else None

    raw, raw_min, raw_max = accumulate_octaves(config.resolution, offsets, config.noise)
    values, normalized = normalize_field(raw, raw_min, raw_max)
    height = redistribute(values, config.noise.flatness).astype(np.float32)
    if ref is not None:
        height = blend_reference(height, ref)

    logger.debug(
        "noise field %dx%d: octaves=%d raw range [%.6g, %.6g] normalized=%s blended=%s",
        config.resolution,
        config.resolution,
        config.noise.octave_count,
        raw_min,
        raw_max,
        normalized,
        ref is not None,
    )
    return NoiseFieldResult(
        height=height,
        raw_min=float(raw_min),
        raw_max=float(raw_max),
        normalized=normalized,
        blended=ref is not None,
    )
