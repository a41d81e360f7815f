"""
Tests for option resolution.
"""

import pytest

from errors import ConfigError
from options import DEFAULT_CONFIG, NoiseStrategy, PipelineConfig, resolve_config


def test_defaults():
    config = resolve_config()
    assert config == DEFAULT_CONFIG
    assert config.force_resize is True
    assert config.noise_strategy is NoiseStrategy.LIBRARY
    assert config.noise_sigma == 10.0
    assert config.blur_sigma == 0.6
    assert config.base_jpeg_quality == 85
    assert config.posterize_levels == 24
    assert config.median_filter_size == 0
    assert config.target_format == "jpeg"


def test_overrides_single_fields_only():
    config = resolve_config({"blurSigma": 1.5, "targetFormat": "PNG"})
    assert config.blur_sigma == 1.5
    assert config.target_format == "png"
    assert config.noise_sigma == DEFAULT_CONFIG.noise_sigma
    assert config.vary_quality is True


def test_defaults_are_not_mutated():
    resolve_config({"forceResize": False, "baseJpegQuality": 70})
    assert DEFAULT_CONFIG == PipelineConfig()


def test_custom_defaults():
    base = PipelineConfig(blur_sigma=0.0)
    assert resolve_config({"noiseSigma": 2}, defaults=base).blur_sigma == 0.0


def test_snake_case_keys():
    assert resolve_config({"median_filter_size": 3}).median_filter_size == 3


def test_unknown_keys_ignored():
    assert resolve_config({"whatever": 1}) == DEFAULT_CONFIG


def test_value_coercion():
    config = resolve_config({"varyQuality": "false", "baseJpegQuality": "90", "noiseSigma": 4})
    assert config.vary_quality is False
    assert config.base_jpeg_quality == 90
    assert isinstance(config.noise_sigma, float)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("library", NoiseStrategy.LIBRARY),
        ("manualPixel", NoiseStrategy.MANUAL_PIXEL),
        ("manual-pixel", NoiseStrategy.MANUAL_PIXEL),
        ("manual", NoiseStrategy.MANUAL_PIXEL),
        ("none", NoiseStrategy.NONE),
    ],
)
def test_noise_strategy_names(value, expected):
    assert resolve_config({"noiseStrategy": value}).noise_strategy is expected


@pytest.mark.parametrize(
    "overrides",
    [
        {"noiseSigma": "loud"},
        {"forceResize": "maybe"},
        {"baseJpegQuality": None},
        {"noiseStrategy": "perlin"},
    ],
)
def test_bad_values_raise(overrides):
    with pytest.raises(ConfigError):
        resolve_config(overrides)


@pytest.mark.parametrize("value", ["inf", "nan", "1e400", "-Infinity", float("inf"), float("nan")])
@pytest.mark.parametrize("key", ["baseJpegQuality", "noiseSigma", "posterizeLevels"])
def test_non_finite_numbers_raise(key, value):
    with pytest.raises(ConfigError):
        resolve_config({key: value})


def test_non_mapping_raises():
    with pytest.raises(ConfigError):
        resolve_config(["blurSigma", 1])


def test_unknown_target_format_is_kept():
    assert resolve_config({"targetFormat": "webp"}).target_format == "webp"
