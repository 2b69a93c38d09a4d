"""Tests for configuration loading utilities."""

import json
import math
import os
from unittest import mock

import pytest

from nsf_controller.config import (
    CONFIG_VERSION,
    ConfigVersionError,
    ControlGains,
    ControllerConfig,
    MotorParams,
)
from nsf_controller.utils import get_default_config, load_config


def test_get_default_config_has_required_keys():
    """Test that default config has all required keys."""
    config = get_default_config()

    assert config["version"] == CONFIG_VERSION
    assert "default_gains" in config
    assert set(config["default_gains"]) == {"horizontal", "vertical", "weight_estimator"}
    assert "max_tilt_angle" in config
    assert "thrust_saturation" in config
    assert "gains_filter" in config
    assert "lateral_mute_coefficient" in config


def test_load_config_without_file():
    """Test config loading with defaults only."""
    config = load_config(config_path=None, load_env=False)

    assert config["max_tilt_angle"] == 25.0
    assert config["gains_filter"]["filter_rate"] == 10.0


def test_load_config_yaml_file(tmp_path):
    """Test that file values are deep-merged over defaults."""
    path = tmp_path / "nsf.yaml"
    path.write_text(
        "version: '0.0.3.0'\n"
        "default_gains:\n"
        "  horizontal:\n"
        "    kp: 0.3\n"
        "max_tilt_angle: 15.0\n"
    )

    config = load_config(path, load_env=False)

    assert config["default_gains"]["horizontal"]["kp"] == 0.3
    # untouched sibling keys keep their defaults
    assert config["default_gains"]["horizontal"]["kv"] == 0.12
    assert config["max_tilt_angle"] == 15.0


def test_load_config_json_file(tmp_path):
    """Test JSON configuration files are supported."""
    path = tmp_path / "nsf.json"
    path.write_text(json.dumps({"thrust_saturation": 0.8}))

    config = load_config(path, load_env=False)

    assert config["thrust_saturation"] == 0.8


def test_load_config_missing_file(tmp_path):
    """Test that a missing file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml", load_env=False)


def test_load_config_malformed_file(tmp_path):
    """Test that malformed YAML raises ValueError."""
    path = tmp_path / "broken.yaml"
    path.write_text("default_gains: [unclosed\n")

    with pytest.raises(ValueError, match="Malformed"):
        load_config(path, load_env=False)


def test_load_config_unsupported_format(tmp_path):
    """Test that unknown extensions are rejected."""
    path = tmp_path / "nsf.toml"
    path.write_text("version = '0.0.3.0'\n")

    with pytest.raises(ValueError, match="Unsupported"):
        load_config(path, load_env=False)


def test_load_config_env_override():
    """Test that environment variables override defaults."""
    with mock.patch.dict(os.environ, {"NSF_MAX_TILT_ANGLE": "12.5"}):
        config = load_config(config_path=None, load_env=True)
        assert config["max_tilt_angle"] == 12.5


def test_load_config_filter_env_override():
    """Test that gain filter env vars are applied."""
    with mock.patch.dict(os.environ, {"NSF_FILTER_RATE": "20"}):
        config = load_config(config_path=None, load_env=True)
        assert config["gains_filter"]["filter_rate"] == 20.0


def test_load_config_invalid_env_value_ignored():
    """Test that unparsable env values keep the default."""
    with mock.patch.dict(os.environ, {"NSF_THRUST_SATURATION": "lots"}):
        config = load_config(config_path=None, load_env=True)
        assert config["thrust_saturation"] == 0.9


class TestControllerConfig:
    """Tests for the configuration dataclasses."""

    def test_from_dict_roundtrip(self):
        """Test that to_dict output recreates the same configuration."""
        config = ControllerConfig.from_dict(get_default_config())

        assert ControllerConfig.from_dict(config.to_dict()) == config

    def test_max_tilt_converted_to_radians(self):
        config = ControllerConfig(max_tilt_angle=30.0)

        assert config.max_tilt_angle_rad == pytest.approx(math.pi / 6)

    def test_filter_fractions_per_tick(self):
        """Test that per-second rates are divided by the filter rate."""
        config = ControllerConfig.from_dict(
            {
                "gains_filter": {
                    "filter_rate": 20,
                    "perc_change_rate": 1.0,
                    "min_change_rate": 0.2,
                }
            }
        )

        assert config.gains_filter.max_change == pytest.approx(0.05)
        assert config.gains_filter.min_change == pytest.approx(0.01)

    def test_version_mismatch_raises(self):
        """Test that a config for another control law revision is fatal."""
        config = ControllerConfig.from_dict({"version": "0.0.2.0"})

        with pytest.raises(ConfigVersionError, match="does not match"):
            config.validate()

    def test_default_config_is_valid(self):
        ControllerConfig().validate()  # Should not raise

    def test_negative_gain_raises(self):
        config = ControllerConfig(gains=ControlGains().with_horizontal(kp=-1.0))

        with pytest.raises(ValueError, match="non-negative"):
            config.validate()

    def test_invalid_tilt_raises(self):
        with pytest.raises(ValueError, match="max_tilt_angle"):
            ControllerConfig(max_tilt_angle=95.0).validate()

    def test_filter_min_above_max_raises(self):
        config = ControllerConfig.from_dict(
            {"gains_filter": {"perc_change_rate": 0.5, "min_change_rate": 1.0}}
        )

        with pytest.raises(ValueError, match="min_change_rate"):
            config.validate()

    def test_weight_estimator_section(self):
        """Test that the mass estimator gains come from `weight_estimator`."""
        gains = ControlGains.from_dict({"weight_estimator": {"km": 2.0, "km_lim": 1.5}})

        assert gains.mass_estimator.km == 2.0
        assert gains.mass_estimator.km_lim == 1.5


class TestMotorParams:
    """Tests for the hover thrust motor model."""

    def test_hover_thrust_affine_in_sqrt_mass(self):
        params = MotorParams(hover_thrust_a=0.2, hover_thrust_b=-0.1)

        assert params.hover_thrust(4.0, 9.0) == pytest.approx(6.0 * 0.2 - 0.1)

    def test_hover_thrust_grows_with_mass(self):
        params = MotorParams()

        assert params.hover_thrust(2.5, 9.81) > params.hover_thrust(2.0, 9.81)
