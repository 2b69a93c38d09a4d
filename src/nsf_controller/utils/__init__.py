"""
NSF Controller Utilities Package

This package provides shared utilities for the NSF controller:
- Configuration loading (YAML/JSON with environment variable overrides)
- Data logging of controller inputs and outputs
- Coordinate frame helpers
- Rate-limited logging

Design Philosophy:
- Utilities are stateless where possible
- Configuration supports both file-based and environment variable sources
- Logging captures enough data for post-hoc analysis
"""

import datetime
import json
import logging
import os
from pathlib import Path

import numpy as np
import yaml
from dotenv import load_dotenv

from ..config import ControllerConfig
from .throttle import ThrottledLogger

__all__ = [
    "load_config",
    "get_default_config",
    "DataLogger",
    "ThrottledLogger",
]

logger = logging.getLogger(__name__)


def get_default_config() -> dict:
    """
    Get default configuration values.

    Returns:
        Dictionary with the default controller configuration, in the same
        layout as the YAML configuration file.
    """
    return ControllerConfig().to_dict()


def load_config(
    config_path: str | Path | None = None,
    load_env: bool = True,
) -> dict:
    """
    Load configuration from file with environment variable overrides.

    Configuration loading follows this priority (highest to lowest):
    1. Environment variables (from .env file or system)
    2. Config file (YAML or JSON)
    3. Default values

    Environment variables:
    - NSF_MAX_TILT_ANGLE -> config["max_tilt_angle"]
    - NSF_THRUST_SATURATION -> config["thrust_saturation"]
    - NSF_MUTE_COEFFICIENT -> config["lateral_mute_coefficient"]
    - NSF_FILTER_RATE -> config["gains_filter"]["filter_rate"]
    - NSF_PERC_CHANGE_RATE -> config["gains_filter"]["perc_change_rate"]
    - NSF_MIN_CHANGE_RATE -> config["gains_filter"]["min_change_rate"]

    Args:
        config_path: Path to YAML or JSON configuration file.
                    If None, only defaults and env vars are used.
        load_env: Whether to load .env file and apply env var overrides.

    Returns:
        Merged configuration dictionary.

    Raises:
        FileNotFoundError: If config_path is specified but file doesn't exist.
        PermissionError: If config file cannot be read.
        ValueError: If config file format is unsupported or malformed.
    """
    config = get_default_config()

    if config_path is not None:
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        if not config_path.is_file():
            raise ValueError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_path) as f:
                if config_path.suffix in (".yaml", ".yml"):
                    file_config = yaml.safe_load(f)
                elif config_path.suffix == ".json":
                    file_config = json.load(f)
                else:
                    raise ValueError(f"Unsupported config format: {config_path.suffix}")
        except PermissionError as e:
            raise PermissionError(
                f"Cannot read configuration file: {config_path}"
            ) from e
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ValueError(f"Malformed configuration file: {config_path}") from e

        if file_config:
            if not isinstance(file_config, dict):
                raise ValueError(f"Configuration root must be a mapping: {config_path}")
            config = _deep_merge(config, file_config)

    if load_env:
        load_dotenv()
        config = _apply_env_overrides(config)

    return config


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary (values take precedence).

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: dict) -> dict:
    """
    Apply environment variable overrides to configuration.

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with env var overrides applied.
    """
    env_mappings = {
        "NSF_MAX_TILT_ANGLE": ("max_tilt_angle", float),
        "NSF_THRUST_SATURATION": ("thrust_saturation", float),
        "NSF_MUTE_COEFFICIENT": ("lateral_mute_coefficient", float),
    }

    for env_var, (config_key, type_fn) in env_mappings.items():
        value = os.getenv(env_var)
        if value is not None:
            try:
                config[config_key] = type_fn(value)
            except ValueError:
                logger.warning(
                    "Invalid value for %s: '%s', using default", env_var, value
                )

    filter_env_mappings = {
        "NSF_FILTER_RATE": ("filter_rate", float),
        "NSF_PERC_CHANGE_RATE": ("perc_change_rate", float),
        "NSF_MIN_CHANGE_RATE": ("min_change_rate", float),
    }

    for env_var, (config_key, type_fn) in filter_env_mappings.items():
        value = os.getenv(env_var)
        if value is not None:
            try:
                config.setdefault("gains_filter", {})[config_key] = type_fn(value)
            except ValueError:
                logger.warning(
                    "Invalid value for %s: '%s', using default", env_var, value
                )

    return config


def _json_serializer(obj):
    """
    Custom JSON serializer for objects not serializable by default json.dump.

    Handles:
    - numpy arrays and scalars -> lists / Python numbers
    - datetime objects -> ISO format strings
    - Path objects -> strings
    - objects with to_dict() (controller messages) -> dictionaries

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()
    if isinstance(obj, Path):
        return str(obj)
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


class DataLogger:
    """
    Records controller inputs and outputs for post-flight analysis.

    Attributes:
        output_dir (Path): Directory for log files.
        experiment_name (str): Name of the recording.
        log_interval (int): Cycles between log entries.
    """

    def __init__(
        self,
        output_dir: str | Path = "logs",
        experiment_name: str | None = None,
        log_interval: int = 1,
    ):
        """
        Initialize data logger.

        Args:
            output_dir: Directory for log output.
            experiment_name: Name for this recording (auto-generated if None).
            log_interval: Number of cycles between log entries.
        """
        if log_interval < 1:
            raise ValueError(f"log_interval must be at least 1, got {log_interval}")
        self.output_dir = Path(output_dir)
        self.experiment_name = experiment_name or f"nsf_{id(self)}"
        self.log_interval = log_interval
        self.data = []
        self._step_count = 0

    def log(self, state, reference, output) -> None:
        """
        Log a single control cycle.

        Args:
            state: VehicleState passed to the controller.
            reference: Reference passed to the controller.
            output: ControlOutput produced (None while inactive).
        """
        self._step_count += 1
        if self._step_count % self.log_interval == 0:
            self.data.append(
                {
                    "step": self._step_count,
                    "state": state,
                    "reference": reference,
                    "output": output,
                }
            )

    def save(self) -> Path:
        """
        Save logged data to file.

        Returns:
            Path to saved log file.
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        log_path = self.output_dir / f"{self.experiment_name}.json"
        with open(log_path, "w") as f:
            json.dump(self.data, f, indent=2, default=_json_serializer)
        return log_path

    def reset(self) -> None:
        """Reset logger state for a new recording."""
        self.data = []
        self._step_count = 0
