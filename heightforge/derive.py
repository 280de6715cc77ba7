"""Derived raster products from height fields."""

from __future__ import annotations

import numpy as np


def hillshade(
    height: np.ndarray,
    *,
    cell_size_x: float,
    cell_size_y: float,
    max_height: float = 1.0,
    azimuth_deg: float = 315.0,
    altitude_deg: float = 45.0,
) -> np.ndarray:
    """Compute an 8-bit hillshade of a unit-range ``[x, y]`` height grid.

    Heights are scaled by `max_height` and cells are `cell_size_x` by
    `cell_size_y` world units, matching the terrain the field would drive.
    """

    if height.ndim != 2:
        raise ValueError("height must be a 2D array")
    if cell_size_x <= 0 or cell_size_y <= 0:
        raise ValueError("cell sizes must be positive")

    surface = height.astype(np.float32) * float(max_height)
    dz_dx, dz_dy = np.gradient(surface, cell_size_x, cell_size_y)

    slope = np.pi / 2.0 - np.arctan(np.hypot(dz_dx, dz_dy))
    aspect = np.arctan2(-dz_dx, dz_dy)

    azimuth = np.deg2rad(azimuth_deg)
    altitude = np.deg2rad(altitude_deg)

    shaded = (
        np.sin(altitude) * np.sin(slope)
        + np.cos(altitude) * np.cos(slope) * np.cos(azimuth - aspect)
    )
    shaded = np.clip(shaded, 0.0, 1.0)
    return np.round(shaded * 255.0).astype(np.uint8)


def height_preview_u16(height: np.ndarray) -> np.ndarray:
    """Map unit-range heights to 16-bit grayscale, clipping outside [0, 1]."""

    norm = np.clip(height.astype(np.float64), 0.0, 1.0)
    return np.round(norm * 65535.0).astype(np.uint16)
