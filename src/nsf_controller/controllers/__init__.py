"""
Multicopter Controllers Package

Controllers receive a vehicle state sample and a reference and produce an
attitude-and-thrust command.

Controller Types:
- NSF (nonlinear state feedback): tilt/thrust feedback law with world and
  body disturbance integrators, online mass estimation and a rate-limited
  gain filter for live retuning

Output Schema:
    All controllers return a ControlOutput with:
    - roll, pitch, yaw: desired attitude in radians
    - thrust: normalized thrust [0, thrust_saturation]
    - total_mass, mass_difference: mass estimate in kg
    - disturbance_*: disturbance estimates in Newtons
"""

from .activation import ActivationManager
from .base import BaseController
from .disturbance import DisturbanceEstimator, SaturationFlags, saturate
from .gain_filter import GainFilter, GainFilterTimer, GainSet
from .nsf import MIN_DT, NsfController

__all__ = [
    "BaseController",
    "NsfController",
    "ActivationManager",
    "DisturbanceEstimator",
    "SaturationFlags",
    "saturate",
    "GainFilter",
    "GainFilterTimer",
    "GainSet",
    "MIN_DT",
    "VALID_CONTROLLER_TYPES",
    "create_controller",
]

# Valid controller type names for config validation
VALID_CONTROLLER_TYPES = ("nsf",)


def create_controller(controller_type: str = "nsf", **kwargs) -> BaseController:
    """
    Create a controller by type name.

    Args:
        controller_type: One of VALID_CONTROLLER_TYPES.
        **kwargs: Passed to the controller constructor.

    Returns:
        Uninitialized controller instance.

    Raises:
        ValueError: If the type is unknown.
    """
    if controller_type == "nsf":
        return NsfController(**kwargs)
    raise ValueError(
        f"Unknown controller type: {controller_type}. "
        f"Valid types: {', '.join(VALID_CONTROLLER_TYPES)}"
    )
