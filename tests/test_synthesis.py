from __future__ import annotations

import numpy as np
import pytest

from heightforge.config import ConfigError, ErosionConfig, GeneratorConfig, NoiseConfig, OffsetConfig
from heightforge.noise import perlin_2d
from heightforge.offsets import offsets_for_config
from heightforge.synthesis import (
    accumulate_octaves,
    generate_noise_field,
    normalize_field,
    octave_parameters,
)


def _config(**noise_kwargs) -> GeneratorConfig:
    return GeneratorConfig(
        resolution=33,
        noise=NoiseConfig(**noise_kwargs),
        offsets=OffsetConfig(seed=1234),
        erosion=ErosionConfig(enabled=False),
    )


def _field(config: GeneratorConfig, reference: np.ndarray | None = None):
    offsets = offsets_for_config(config.offsets, config.noise.octave_count)
    return generate_noise_field(config, offsets, reference=reference)


def test_octave_parameters_decay_and_grow() -> None:
    params = octave_parameters(NoiseConfig(octave_count=3, starting_amplitude=1.0, persistence=0.5, lacunarity=2.0))

    assert params == [(1.0, 1.0), (0.5, 2.0), (0.25, 4.0)]


def test_zero_octaves_skip_normalization_and_stay_zero() -> None:
    result = _field(_config(octave_count=0, flatness=2.0))

    assert result.normalized is False
    assert result.raw_min == 0.0
    assert result.raw_max == 0.0
    assert result.height.shape == (33, 33)
    assert np.all(result.height == 0.0)


def test_normalization_maps_extremes_to_unit_range() -> None:
    result = _field(_config(octave_count=4, flatness=1.0))

    assert result.normalized is True
    assert result.raw_max > result.raw_min
    assert float(result.height.min()) == 0.0
    assert float(result.height.max()) == 1.0


def test_constant_field_is_returned_unchanged() -> None:
    field = np.full((4, 4), 0.75)
    values, normalized = normalize_field(field, 0.75, 0.75)

    assert normalized is False
    assert np.array_equal(values, field)
    assert values is not field


def test_flatness_lowers_every_sample() -> None:
    linear = _field(_config(octave_count=4, flatness=1.0)).height
    flat = _field(_config(octave_count=4, flatness=3.0)).height

    assert np.all(flat <= linear)
    assert float(flat.mean()) < float(linear.mean())


def test_single_octave_matches_direct_noise_sampling() -> None:
    config = GeneratorConfig(
        resolution=33,
        noise=NoiseConfig(octave_count=1, scale=1.0, starting_amplitude=1.0, flatness=1.0),
        offsets=OffsetConfig(enabled=False),
        erosion=ErosionConfig(enabled=False),
    )
    result = _field(config)

    unit = np.arange(33, dtype=np.float64) / 33
    expected = perlin_2d(unit[:, None], unit[None, :])
    expected = (expected - expected.min()) / (expected.max() - expected.min())

    assert np.allclose(result.height, expected, atol=1e-6)


def test_global_offset_shifts_sampling_window() -> None:
    base = _config(octave_count=2)
    shifted = _config(octave_count=2, global_offset=(3.5, -2.25))

    offsets = offsets_for_config(base.offsets, 2)
    raw_base, _, _ = accumulate_octaves(33, offsets, base.noise)
    raw_shifted, _, _ = accumulate_octaves(33, offsets + np.array([[3, -2], [3, -2]]), base.noise)
    raw_global, _, _ = accumulate_octaves(33, offsets, shifted.noise)

    assert not np.allclose(raw_base, raw_global)
    # Integer part of the global offset behaves like an octave offset.
    assert np.allclose(
        raw_shifted,
        accumulate_octaves(33, offsets, NoiseConfig(octave_count=2, global_offset=(3.0, -2.0)))[0],
    )


def test_band_tracking_matches_whole_grid_extremes() -> None:
    config = _config(octave_count=3)
    offsets = offsets_for_config(config.offsets, 3)
    raw, raw_min, raw_max = accumulate_octaves(33, offsets, config.noise)

    assert raw_min == float(raw.min())
    assert raw_max == float(raw.max())


def test_blend_with_identical_reference_is_identity() -> None:
    plain = _field(_config(octave_count=4, flatness=1.5)).height

    config = GeneratorConfig(
        resolution=33,
        use_reference_image=True,
        noise=NoiseConfig(octave_count=4, flatness=1.5),
        offsets=OffsetConfig(seed=1234),
        erosion=ErosionConfig(enabled=False),
    )
    blended = _field(config, reference=plain.copy())

    assert blended.blended is True
    assert np.array_equal(blended.height, plain)


def test_blend_is_even_mix_with_reference() -> None:
    plain = _field(_config(octave_count=3)).height
    config = GeneratorConfig(
        resolution=33,
        use_reference_image=True,
        noise=NoiseConfig(octave_count=3),
        offsets=OffsetConfig(seed=1234),
        erosion=ErosionConfig(enabled=False),
    )
    blended = _field(config, reference=np.ones((33, 33), dtype=np.float32)).height

    assert np.allclose(blended, 0.5 * plain + 0.5, atol=1e-7)


def test_reference_ignored_when_blending_disabled() -> None:
    plain = _field(_config(octave_count=3)).height
    with_ref = _field(_config(octave_count=3), reference=np.ones((33, 33))).height

    assert np.array_equal(plain, with_ref)


def test_reference_errors_are_config_errors() -> None:
    config = GeneratorConfig(
        resolution=33,
        use_reference_image=True,
        noise=NoiseConfig(octave_count=2),
        erosion=ErosionConfig(enabled=False),
    )

    with pytest.raises(ConfigError, match="no reference"):
        _field(config)
    with pytest.raises(ConfigError, match="33x33"):
        _field(config, reference=np.zeros((65, 65)))
    bad = np.zeros((33, 33))
    bad[3, 4] = np.nan
    with pytest.raises(ConfigError, match="non-finite"):
        _field(config, reference=bad)


def test_offset_count_must_match_octaves() -> None:
    with pytest.raises(ConfigError):
        accumulate_octaves(33, np.zeros((2, 2), dtype=np.int64), NoiseConfig(octave_count=3))


def test_non_positive_resolution_is_config_error() -> None:
    with pytest.raises(ConfigError):
        accumulate_octaves(0, np.zeros((0, 2), dtype=np.int64), NoiseConfig(octave_count=0))
