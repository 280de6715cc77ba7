"""Gradient noise used by the height field synthesis."""

from __future__ import annotations

import numpy as np


# Ken Perlin's reference permutation, repeated so lookups never wrap.
_PERMUTATION = np.array(
    [
        151, 160, 137, 91, 90, 15, 131, 13, 201, 95, 96, 53, 194, 233, 7, 225,
        140, 36, 103, 30, 69, 142, 8, 99, 37, 240, 21, 10, 23, 190, 6, 148,
        247, 120, 234, 75, 0, 26, 197, 62, 94, 252, 219, 203, 117, 35, 11, 32,
        57, 177, 33, 88, 237, 149, 56, 87, 174, 20, 125, 136, 171, 168, 68, 175,
        74, 165, 71, 134, 139, 48, 27, 166, 77, 146, 158, 231, 83, 111, 229, 122,
        60, 211, 133, 230, 220, 105, 92, 41, 55, 46, 245, 40, 244, 102, 143, 54,
        65, 25, 63, 161, 1, 216, 80, 73, 209, 76, 132, 187, 208, 89, 18, 169,
        200, 196, 135, 130, 116, 188, 159, 86, 164, 100, 109, 198, 173, 186, 3, 64,
        52, 217, 226, 250, 124, 123, 5, 202, 38, 147, 118, 126, 255, 82, 85, 212,
        207, 206, 59, 227, 47, 16, 58, 17, 182, 189, 28, 42, 223, 183, 170, 213,
        119, 248, 152, 2, 44, 154, 163, 70, 221, 153, 101, 155, 167, 43, 172, 9,
        129, 22, 39, 253, 19, 98, 108, 110, 79, 113, 224, 232, 178, 185, 112, 104,
        218, 246, 97, 228, 251, 34, 242, 193, 238, 210, 144, 12, 191, 179, 162, 241,
        81, 51, 145, 235, 249, 14, 239, 107, 49, 192, 214, 31, 181, 199, 106, 157,
        184, 84, 204, 176, 115, 121, 50, 45, 127, 4, 150, 254, 138, 236, 205, 93,
        222, 114, 67, 29, 24, 72, 243, 141, 128, 195, 78, 66, 215, 61, 156, 180,
    ],
    dtype=np.int64,
)
_PERM = np.concatenate([_PERMUTATION, _PERMUTATION])

_GRAD_X = np.array([1.0, -1.0, 1.0, -1.0, 1.0, -1.0, 0.0, 0.0], dtype=np.float64)
_GRAD_Y = np.array([1.0, 1.0, -1.0, -1.0, 0.0, 0.0, 1.0, -1.0], dtype=np.float64)


def _fade(t: np.ndarray) -> np.ndarray:
    return t * t * t * (t * (t * 6.0 - 15.0) + 10.0)


def _lerp(a: np.ndarray, b: np.ndarray, t: np.ndarray) -> np.ndarray:
    return a + t * (b - a)


def _gradient(hashed: np.ndarray, dx: np.ndarray, dy: np.ndarray) -> np.ndarray:
    h = hashed & 7
    return _GRAD_X[h] * dx + _GRAD_Y[h] * dy


def perlin_2d(x: np.ndarray | float, y: np.ndarray | float) -> np.ndarray:
    """Sample 2D gradient noise in [0, 1] at broadcastable coordinates.

    Integer lattice points map to 0.5. The pattern repeats every 256 units.
    Pass ``xs[:, None]`` and ``ys[None, :]`` to sample a whole grid indexed
    ``[x, y]`` while hashing each axis only once.
    """

    xs = np.asarray(x, dtype=np.float64)
    ys = np.asarray(y, dtype=np.float64)

    x_floor = np.floor(xs)
    y_floor = np.floor(ys)
    xf = xs - x_floor
    yf = ys - y_floor
    xi = x_floor.astype(np.int64) & 255
    yi = y_floor.astype(np.int64) & 255

    u = _fade(xf)
    v = _fade(yf)

    a = _PERM[xi]
    b = _PERM[xi + 1]
    aa = _PERM[a + yi]
    ab = _PERM[a + yi + 1]
    ba = _PERM[b + yi]
    bb = _PERM[b + yi + 1]

    bottom = _lerp(_gradient(aa, xf, yf), _gradient(ba, xf - 1.0, yf), u)
    top = _lerp(_gradient(ab, xf, yf - 1.0), _gradient(bb, xf - 1.0, yf - 1.0), u)
    signed = _lerp(bottom, top, v)
    return np.clip((signed + 1.0) * 0.5, 0.0, 1.0)
