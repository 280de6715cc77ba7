from __future__ import annotations

import hashlib

import numpy as np

from heightforge.config import ErosionConfig, GeneratorConfig, NoiseConfig, OffsetConfig
from heightforge.heightfield import generate


def _hash_bytes(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def _config(seed: int = 1234, workers: int = 1) -> GeneratorConfig:
    return GeneratorConfig(
        resolution=65,
        noise=NoiseConfig(octave_count=5, scale=6.0, flatness=1.4),
        offsets=OffsetConfig(seed=seed),
        erosion=ErosionConfig(iterations=8, workers=workers),
    )


def test_height_is_deterministic() -> None:
    run_a = generate(_config())
    run_b = generate(_config())

    assert np.array_equal(run_a.octave_offsets, run_b.octave_offsets)
    assert np.array_equal(run_a.height.values, run_b.height.values)
    assert _hash_bytes(run_a.height.values.tobytes()) == _hash_bytes(run_b.height.values.tobytes())


def test_seed_changes_height() -> None:
    run_a = generate(_config(seed=1))
    run_b = generate(_config(seed=2))

    assert not np.array_equal(run_a.height.values, run_b.height.values)


def test_worker_count_does_not_change_height() -> None:
    serial = generate(_config(workers=1))
    threaded = generate(_config(workers=3))

    assert _hash_bytes(serial.height.values.tobytes()) == _hash_bytes(threaded.height.values.tobytes())
