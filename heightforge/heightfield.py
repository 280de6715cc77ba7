"""Height field model and the generation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
import logging

import numpy as np

from heightforge.config import GeneratorConfig, validate_config
from heightforge.erosion import (
    ErosionKernel,
    ErosionParams,
    ErosionResult,
    load_kernel,
    resolve_kernel,
    run_erosion,
)
from heightforge.offsets import offsets_for_config
from heightforge.synthesis import NoiseFieldResult, generate_noise_field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeightField:
    """Square float32 grid of elevation samples indexed ``[x, y]``."""

    values: np.ndarray

    def __post_init__(self) -> None:
        if self.values.ndim != 2 or self.values.shape[0] != self.values.shape[1]:
            raise ValueError(f"height field must be a square 2D grid (got shape {self.values.shape})")
        if self.values.dtype != np.float32:
            object.__setattr__(self, "values", self.values.astype(np.float32))

    @classmethod
    def zeros(cls, resolution: int) -> "HeightField":
        if resolution <= 0:
            raise ValueError("resolution must be positive")
        return cls(np.zeros((resolution, resolution), dtype=np.float32))

    @property
    def resolution(self) -> int:
        return int(self.values.shape[0])

    def __getitem__(self, index: tuple[int, int]) -> float:
        return float(self.values[index])

    def min(self) -> float:
        return float(self.values.min())

    def max(self) -> float:
        return float(self.values.max())


@dataclass(frozen=True)
class GenerationResult:
    """Final height field plus the intermediate products of one run."""

    height: HeightField
    noise_height: HeightField
    octave_offsets: np.ndarray
    noise: NoiseFieldResult
    erosion: ErosionResult | None


def generate(
    config: GeneratorConfig | None = None,
    *,
    reference: np.ndarray | None = None,
    kernel: ErosionKernel | None = None,
) -> GenerationResult:
    """Generate a deterministic height field.

    Raises `ConfigError` for invalid settings and `DependencyError` when
    erosion is enabled but no kernel can be resolved; both are raised before
    any grid is computed.
    """

    cfg = config or GeneratorConfig()
    validate_config(cfg)

    erosion_kernel: ErosionKernel | None = None
    if cfg.erosion.enabled:
        if kernel is None:
            erosion_kernel = load_kernel(cfg.erosion.kernel, workers=cfg.erosion.workers)
        else:
            erosion_kernel = resolve_kernel(kernel)

    offsets = offsets_for_config(cfg.offsets, cfg.noise.octave_count)
    noise = generate_noise_field(cfg, offsets, reference=reference)
    noise_height = HeightField(noise.height)

    erosion: ErosionResult | None = None
    height = noise_height
    if erosion_kernel is not None:
        erosion = run_erosion(
            noise.height,
            ErosionParams.from_config(cfg.resolution, cfg.erosion),
            cfg.erosion.iterations,
            kernel=erosion_kernel,
            check_invariants=cfg.erosion.check_invariants,
        )
        height = HeightField(erosion.height)

    logger.info(
        "generated %dx%d height field: range [%.4f, %.4f], erosion=%s",
        height.resolution,
        height.resolution,
        height.min(),
        height.max(),
        "on" if erosion is not None else "off",
    )
    return GenerationResult(
        height=height,
        noise_height=noise_height,
        octave_offsets=offsets,
        noise=noise,
        erosion=erosion,
    )
