"""
NSF Multicopter Controller Package

Control-law core of a multicopter flight controller: turns vehicle state
samples and position/velocity/acceleration references into bounded
attitude-and-thrust commands.

Subpackages:
- controllers: NSF feedback law, disturbance estimator, gain filter
- utils: Configuration loading, output logging, frame helpers, log throttling
"""

import importlib.metadata

try:
    # Retrieve the version from installed package metadata
    __version__ = importlib.metadata.version("nsf-controller")
except importlib.metadata.PackageNotFoundError:
    # Fallback for when the package is not installed
    __version__ = "0.0.0-dev"

from nsf_controller.config import (
    CONFIG_VERSION,
    ConfigVersionError,
    ControlGains,
    ControllerConfig,
    GainFilterParams,
    HorizontalGains,
    MassEstimatorGains,
    MotorParams,
    VerticalGains,
)
from nsf_controller.controllers import BaseController, NsfController
from nsf_controller.messages import (
    ControllerStatus,
    ControlOutput,
    DisturbanceState,
    Reference,
    TransformError,
    VehicleState,
)
from nsf_controller.utils import DataLogger, get_default_config, load_config

__all__ = [
    "NsfController",
    "BaseController",
    # Configuration
    "CONFIG_VERSION",
    "ConfigVersionError",
    "ControllerConfig",
    "ControlGains",
    "HorizontalGains",
    "VerticalGains",
    "MassEstimatorGains",
    "GainFilterParams",
    "MotorParams",
    "load_config",
    "get_default_config",
    # Messages
    "VehicleState",
    "Reference",
    "ControlOutput",
    "DisturbanceState",
    "ControllerStatus",
    "TransformError",
    "DataLogger",
]
