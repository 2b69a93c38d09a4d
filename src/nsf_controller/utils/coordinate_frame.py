"""
Coordinate Frame Utilities

Frame conventions and small geometric helpers shared by the feedback law and
the disturbance estimator.

Coordinate Frame Convention:
    World frame is ENU (East-North-Up):
    - X-axis: East (positive direction)
    - Y-axis: North (positive direction)
    - Z-axis: Up (positive direction)

Tilt Coordinates:
    Horizontal control quantities (feedback, error integrals) are kept in
    "tilt coordinates", the ENU horizontal plane with the Y axis mirrored:

        tilt = (x, -y)

    In these coordinates a vector rotated into the body frame with
    rotate2d(v, +yaw) yields (pitch, roll) directly:
    - component 0 → pitch (+pitch accelerates towards body +X)
    - component 1 → roll  (+roll accelerates towards body -Y)

Disturbance Representation:
    Integrals are stored as tilt angles (radians). The equivalent horizontal
    force is m * g * sin(angle).
"""

import logging
import math

import numpy as np
from scipy.spatial.transform import Rotation

logger = logging.getLogger(__name__)

# Axis indices for position/velocity vectors
AXIS_X = 0
AXIS_Y = 1
AXIS_Z = 2

# Mirror mapping ENU horizontal vectors to tilt coordinates (and back)
TILT_MIRROR = np.array([1.0, -1.0])


def rotate2d(vector: np.ndarray, angle: float) -> np.ndarray:
    """
    Rotate a 2D vector counter-clockwise by `angle`.

    Args:
        vector: 2D vector.
        angle: Rotation angle in radians.

    Returns:
        Rotated 2D vector.
    """
    c = math.cos(angle)
    s = math.sin(angle)
    rotation = np.array([[c, -s], [s, c]])
    return rotation @ np.asarray(vector, dtype=float)


def quaternion_to_rpy(quaternion) -> tuple[float, float, float]:
    """
    Decompose an orientation quaternion into roll, pitch and yaw.

    Uses the fixed-axis XYZ convention (R = Rz(yaw) Ry(pitch) Rx(roll)).

    Args:
        quaternion: Orientation as (x, y, z, w).

    Returns:
        Tuple (roll, pitch, yaw) in radians.
    """
    roll, pitch, yaw = Rotation.from_quat(np.asarray(quaternion, dtype=float)).as_euler(
        "xyz"
    )
    return float(roll), float(pitch), float(yaw)


def rpy_to_quaternion(roll: float, pitch: float, yaw: float) -> np.ndarray:
    """Inverse of quaternion_to_rpy, returns (x, y, z, w)."""
    return Rotation.from_euler("xyz", [roll, pitch, yaw]).as_quat()


def enu_to_tilt(vector) -> np.ndarray:
    """
    Convert an ENU vector (2D or 3D) into tilt coordinates.

    Only the Y component changes sign; Z (if present) is kept.
    """
    out = np.array(vector, dtype=float)
    out[AXIS_Y] = -out[AXIS_Y]
    return out


def tilt_to_enu(vector) -> np.ndarray:
    """Convert a tilt-coordinate vector back into ENU (self-inverse mirror)."""
    return enu_to_tilt(vector)


def tilt_to_force(angle, total_mass: float, gravity: float):
    """
    Express a tilt angle (or array of angles) as a horizontal force.

    Args:
        angle: Tilt angle(s) in radians.
        total_mass: Vehicle mass in kg.
        gravity: Gravitational acceleration in m/s^2.

    Returns:
        Force(s) in Newtons, m * g * sin(angle).
    """
    return gravity * total_mass * np.sin(angle)


def force_to_tilt(force, total_mass: float, gravity: float):
    """
    Inverse of tilt_to_force.

    The asin argument is clipped to [-1, 1]; a force exceeding m * g cannot be
    produced by any tilt and maps to +-90 degrees.

    Args:
        force: Horizontal force(s) in Newtons.
        total_mass: Vehicle mass in kg.
        gravity: Gravitational acceleration in m/s^2.

    Returns:
        Tilt angle(s) in radians.
    """
    hover_force = gravity * total_mass
    if hover_force <= 0.0:
        logger.warning(
            "Cannot convert force to tilt with non-positive hover force %.3f N",
            hover_force,
        )
        return np.zeros_like(np.asarray(force, dtype=float))

    ratio = np.asarray(force, dtype=float) / hover_force
    if np.any(np.abs(ratio) > 1.0):
        logger.warning(
            "Force %s exceeds the hover force %.3f N, clipping the tilt to 90 deg",
            force,
            hover_force,
        )
        ratio = np.clip(ratio, -1.0, 1.0)
    return np.arcsin(ratio)


def sign(value: float) -> int:
    """Return -1, 0 or 1 following the sign of `value`."""
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0
