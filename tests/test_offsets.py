from __future__ import annotations

import numpy as np
import pytest

from heightforge.config import ConfigError, OffsetConfig
from heightforge.offsets import offsets_for_config, sample_octave_offsets
from heightforge.rng import RngStream, derive_seed


def test_offsets_are_deterministic() -> None:
    a = sample_octave_offsets(1234, 6, -1000, 1000)
    b = sample_octave_offsets(1234, 6, -1000, 1000)

    assert a.shape == (6, 2)
    assert a.dtype == np.int64
    assert a.tobytes() == b.tobytes()


def test_offsets_stay_in_half_open_range() -> None:
    offsets = sample_octave_offsets(7, 200, -3, 4)

    assert int(offsets.min()) >= -3
    assert int(offsets.max()) <= 3
    assert set(np.unique(offsets).tolist()) == {-3, -2, -1, 0, 1, 2, 3}


def test_offsets_depend_on_seed() -> None:
    a = sample_octave_offsets(1, 8, -1000, 1000)
    b = sample_octave_offsets(2, 8, -1000, 1000)

    assert not np.array_equal(a, b)


def test_shorter_sequence_is_prefix_of_longer() -> None:
    short = sample_octave_offsets(99, 3, -1000, 1000)
    long = sample_octave_offsets(99, 5, -1000, 1000)

    assert np.array_equal(short, long[:3])


def test_disabled_offsets_are_zero_and_ignore_range() -> None:
    offsets = sample_octave_offsets(1234, 4, 10, 10, enabled=False)

    assert offsets.shape == (4, 2)
    assert not offsets.any()


def test_zero_octaves_give_empty_offsets() -> None:
    assert sample_octave_offsets(1234, 0, -1000, 1000).shape == (0, 2)


def test_degenerate_range_is_config_error() -> None:
    with pytest.raises(ConfigError, match="offset_min"):
        sample_octave_offsets(1234, 3, 5, 5)
    with pytest.raises(ConfigError):
        sample_octave_offsets(1234, 3, 6, 5)


def test_negative_count_is_config_error() -> None:
    with pytest.raises(ConfigError):
        sample_octave_offsets(1234, -1, -1000, 1000)


def test_offsets_for_config_uses_all_fields() -> None:
    cfg = OffsetConfig(enabled=True, seed=42, offset_min=0, offset_max=10)

    assert np.array_equal(offsets_for_config(cfg, 3), sample_octave_offsets(42, 3, 0, 10))


def test_rng_stream_forks_are_stable_and_distinct() -> None:
    stream = RngStream(1234)

    assert stream.fork("octave-offsets").seed == derive_seed(1234, "octave-offsets")
    assert stream.fork("a").seed != stream.fork("b").seed
    with pytest.raises(ValueError):
        stream.fork("")


def test_rng_integers_handles_negative_seed() -> None:
    a = RngStream(-1).integers(0, 100, 10)
    b = RngStream((1 << 64) - 1).integers(0, 100, 10)

    assert np.array_equal(a, b)
