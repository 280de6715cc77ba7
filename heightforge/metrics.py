"""Summary statistics for generated height fields."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

import numpy as np


@dataclass(frozen=True)
class HeightMetrics:
    """Distribution summary of one height grid."""

    min_height: float
    max_height: float
    mean_height: float
    std_height: float
    hypsometric_integral: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def summarize_height(height: np.ndarray) -> HeightMetrics:
    if height.ndim != 2:
        raise ValueError("height must be a 2D array")
    values = height.astype(np.float64)
    return HeightMetrics(
        min_height=float(values.min()),
        max_height=float(values.max()),
        mean_height=float(values.mean()),
        std_height=float(values.std()),
        hypsometric_integral=hypsometric_integral(values),
    )


def hypsometric_integral(height: np.ndarray) -> float:
    """Mean relative elevation; 0 for a flat grid."""

    h_min = float(np.min(height))
    h_max = float(np.max(height))
    if h_max <= h_min + 1e-9:
        return 0.0
    norm = np.clip((height - h_min) / (h_max - h_min), 0.0, 1.0)
    return float(np.mean(norm))
