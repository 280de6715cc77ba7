"""Fractal height field synthesis with staged hydraulic erosion."""

from .config import DEFAULT_RESOLUTION, RESOLUTIONS, ConfigError, GeneratorConfig
from .erosion import DependencyError, ErosionKernelUnavailable
from .heightfield import GenerationResult, HeightField, generate

__all__ = [
    "DEFAULT_RESOLUTION",
    "RESOLUTIONS",
    "ConfigError",
    "DependencyError",
    "ErosionKernelUnavailable",
    "GenerationResult",
    "GeneratorConfig",
    "HeightField",
    "generate",
]
