"""Configuration models for height field generation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import math
from typing import Any


RESOLUTIONS = (33, 65, 129, 257, 513, 1025, 2049, 4097)
DEFAULT_RESOLUTION = 513


class ConfigError(ValueError):
    """Raised when a generation config cannot be run."""


@dataclass(frozen=True)
class NoiseConfig:
    """Controls fractal noise accumulation and redistribution."""

    octave_count: int = 5
    starting_amplitude: float = 1.0
    starting_frequency: float = 1.0
    persistence: float = 0.5
    lacunarity: float = 2.0
    flatness: float = 1.0
    scale: float = 20.0
    global_offset: tuple[float, float] = (0.0, 0.0)


@dataclass(frozen=True)
class OffsetConfig:
    """Controls the seeded per-octave coordinate offsets."""

    enabled: bool = True
    seed: int = 1234
    offset_min: int = -1000
    offset_max: int = 1000


@dataclass(frozen=True)
class ErosionConfig:
    """Controls the rain/erosion/evaporation simulation."""

    enabled: bool = True
    iterations: int = 50
    rain: float = 0.01
    solubility: float = 0.10
    evaporation: float = 0.5
    kernel: str = "numpy"
    workers: int = 1
    check_invariants: bool = False


@dataclass(frozen=True)
class RenderConfig:
    """Terrain dimensions used for derived previews."""

    terrain_width: float = 256.0
    terrain_length: float = 256.0
    max_height: float = 50.0
    hillshade_azimuth_deg: float = 315.0
    hillshade_altitude_deg: float = 45.0


@dataclass(frozen=True)
class GeneratorConfig:
    """Primary generation configuration."""

    resolution: int = DEFAULT_RESOLUTION
    use_reference_image: bool = False
    noise: NoiseConfig = field(default_factory=NoiseConfig)
    offsets: OffsetConfig = field(default_factory=OffsetConfig)
    erosion: ErosionConfig = field(default_factory=ErosionConfig)
    render: RenderConfig = field(default_factory=RenderConfig)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _check_float(problems: list[str], name: str, value: float, valid: bool, requirement: str) -> None:
    if not math.isfinite(value):
        problems.append(f"{name} must be finite (got {value})")
    elif not valid:
        problems.append(f"{name} {requirement} (got {value})")


def config_problems(config: GeneratorConfig) -> list[str]:
    """Return human-readable descriptions of everything wrong with `config`."""

    problems: list[str] = []
    if config.resolution not in RESOLUTIONS:
        valid = ", ".join(str(r) for r in RESOLUTIONS)
        problems.append(f"resolution must be one of {valid} (got {config.resolution})")

    noise = config.noise
    if noise.octave_count < 0:
        problems.append(f"octave_count must be >= 0 (got {noise.octave_count})")
    amp, freq = noise.starting_amplitude, noise.starting_frequency
    _check_float(problems, "starting_amplitude", amp, amp >= 0, "must be >= 0")
    _check_float(problems, "starting_frequency", freq, freq > 0, "must be positive")
    _check_float(problems, "persistence", noise.persistence, noise.persistence >= 0, "must be >= 0")
    _check_float(problems, "lacunarity", noise.lacunarity, noise.lacunarity > 0, "must be positive")
    _check_float(problems, "scale", noise.scale, noise.scale > 0, "must be positive")
    _check_float(problems, "flatness", noise.flatness, noise.flatness >= 1.0, "must be >= 1")
    if len(noise.global_offset) != 2:
        problems.append("global_offset must have exactly two components")
    elif not all(math.isfinite(v) for v in noise.global_offset):
        problems.append(f"global_offset must be finite (got {tuple(noise.global_offset)})")

    offsets = config.offsets
    if offsets.enabled and offsets.offset_min >= offsets.offset_max:
        problems.append(
            f"offset_min must be < offset_max (got {offsets.offset_min} >= {offsets.offset_max})"
        )

    erosion = config.erosion
    if erosion.enabled:
        if erosion.iterations < 0:
            problems.append(f"iterations must be >= 0 (got {erosion.iterations})")
        _check_float(problems, "rain", erosion.rain, erosion.rain >= 0, "must be >= 0")
        _check_float(problems, "solubility", erosion.solubility, erosion.solubility >= 0, "must be >= 0")
        evap = erosion.evaporation
        _check_float(problems, "evaporation", evap, 0.0 <= evap <= 1.0, "must be within [0, 1]")
        if erosion.workers < 1:
            problems.append(f"workers must be >= 1 (got {erosion.workers})")

    render = config.render
    _check_float(problems, "terrain_width", render.terrain_width, render.terrain_width > 0, "must be positive")
    _check_float(problems, "terrain_length", render.terrain_length, render.terrain_length > 0, "must be positive")
    for name in ("max_height", "hillshade_azimuth_deg", "hillshade_altitude_deg"):
        value = getattr(render, name)
        if not math.isfinite(value):
            problems.append(f"{name} must be finite (got {value})")
    return problems


def validate_config(config: GeneratorConfig) -> None:
    """Raise `ConfigError` listing every problem with `config`."""

    problems = config_problems(config)
    if problems:
        raise ConfigError("; ".join(problems))
