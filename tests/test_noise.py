from __future__ import annotations

import numpy as np

from heightforge.noise import perlin_2d


def test_lattice_points_are_midrange() -> None:
    for x, y in [(0.0, 0.0), (3.0, 7.0), (-12.0, 5.0), (255.0, 1.0)]:
        assert float(perlin_2d(x, y)) == 0.5


def test_noise_range_and_variation() -> None:
    xs = np.linspace(-40.0, 40.0, 257)
    values = perlin_2d(xs[:, None], xs[None, :])

    assert values.shape == (257, 257)
    assert float(values.min()) >= 0.0
    assert float(values.max()) <= 1.0
    assert float(values.std()) > 0.02


def test_grid_broadcast_matches_pointwise_sampling() -> None:
    xs = np.linspace(0.0, 3.3, 17)
    ys = np.linspace(-1.7, 2.0, 11)
    xx, yy = np.meshgrid(xs, ys, indexing="ij")

    assert np.array_equal(perlin_2d(xs[:, None], ys[None, :]), perlin_2d(xx, yy))


def test_noise_is_deterministic() -> None:
    xs = np.linspace(10.0, 20.0, 50)

    assert np.array_equal(perlin_2d(xs, xs[::-1]), perlin_2d(xs, xs[::-1]))


def test_noise_is_continuous() -> None:
    xs = np.linspace(0.0, 8.0, 400)
    ys = np.full_like(xs, 2.37)

    base = perlin_2d(xs, ys)
    nudged = perlin_2d(xs + 1e-6, ys)

    assert float(np.max(np.abs(base - nudged))) < 1e-4


def test_noise_repeats_every_256_units() -> None:
    xs = np.linspace(0.1, 4.9, 40)
    ys = np.linspace(1.3, 2.9, 40)

    assert np.allclose(perlin_2d(xs, ys), perlin_2d(xs + 256.0, ys), atol=1e-9)
