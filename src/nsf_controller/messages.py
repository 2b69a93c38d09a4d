"""
Controller Message Types

Inputs and outputs exchanged between the NSF controller and its host:

- VehicleState: estimated vehicle state sample (read-only to the controller)
- Reference: desired position/velocity/acceleration/yaw
- ControlOutput: attitude + thrust command with disturbance telemetry
- DisturbanceState: snapshot of the disturbance estimator
- VectorTransformer: frame transform capability used on odometry switch

All vectors are expressed in the ENU world frame unless stated otherwise.
Thrust is normalized to [0, 1].
"""

from dataclasses import asdict, dataclass, field
from typing import Protocol

import numpy as np


class TransformError(RuntimeError):
    """Raised by a VectorTransformer that cannot transform a vector."""

    pass


class VectorTransformer(Protocol):
    """Protocol for the frame transform capability."""

    def __call__(
        self, vector: np.ndarray, from_frame: str, to_frame: str
    ) -> np.ndarray | None:
        """
        Transform a free 3D vector between frames.

        Returns:
            The transformed vector, or None if the transform is unavailable.
            Implementations may raise TransformError instead of returning None.
        """
        ...


def _vector(value, size: int = 3) -> np.ndarray:
    array = np.asarray(value, dtype=float)
    if array.shape != (size,):
        raise ValueError(f"Expected a {size}D vector, got shape {array.shape}")
    return array


@dataclass(eq=False)
class VehicleState:
    """
    Vehicle state sample.

    Attributes:
        position: Position [x, y, z] in metres.
        velocity: Linear velocity [vx, vy, vz] in m/s.
        orientation: Attitude quaternion (x, y, z, w).
        stamp: Sample timestamp in seconds.
        frame_id: Name of the frame the state is expressed in.
    """

    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    orientation: np.ndarray = field(
        default_factory=lambda: np.array([0.0, 0.0, 0.0, 1.0])
    )
    stamp: float = 0.0
    frame_id: str = "world"

    def __post_init__(self):
        self.position = _vector(self.position)
        self.velocity = _vector(self.velocity)
        self.orientation = _vector(self.orientation, size=4)
        self.stamp = float(self.stamp)

    @classmethod
    def from_dict(cls, state_dict: dict) -> "VehicleState":
        """Create a state from a dictionary (e.g., a replay log entry)."""
        return cls(
            position=state_dict.get("position", (0.0, 0.0, 0.0)),
            velocity=state_dict.get("velocity", (0.0, 0.0, 0.0)),
            orientation=state_dict.get("orientation", (0.0, 0.0, 0.0, 1.0)),
            stamp=state_dict.get("stamp", 0.0),
            frame_id=state_dict.get("frame_id", "world"),
        )

    def to_dict(self) -> dict:
        return {
            "position": self.position.tolist(),
            "velocity": self.velocity.tolist(),
            "orientation": self.orientation.tolist(),
            "stamp": self.stamp,
            "frame_id": self.frame_id,
        }


@dataclass(eq=False)
class Reference:
    """
    Control reference.

    Attributes:
        position: Desired position [x, y, z] in metres.
        velocity: Desired velocity in m/s.
        acceleration: Desired acceleration in m/s^2 (feed-forward).
        yaw: Desired heading in radians, passed through to the output.
        disable_position_gains: Mute the lateral gains (e.g., during takeoff).
    """

    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    acceleration: np.ndarray = field(default_factory=lambda: np.zeros(3))
    yaw: float = 0.0
    disable_position_gains: bool = False

    def __post_init__(self):
        self.position = _vector(self.position)
        self.velocity = _vector(self.velocity)
        self.acceleration = _vector(self.acceleration)
        self.yaw = float(self.yaw)

    @classmethod
    def from_dict(cls, reference_dict: dict) -> "Reference":
        """Create a reference from a dictionary (e.g., a replay log entry)."""
        return cls(
            position=reference_dict.get("position", (0.0, 0.0, 0.0)),
            velocity=reference_dict.get("velocity", (0.0, 0.0, 0.0)),
            acceleration=reference_dict.get("acceleration", (0.0, 0.0, 0.0)),
            yaw=reference_dict.get("yaw", 0.0),
            disable_position_gains=bool(
                reference_dict.get("disable_position_gains", False)
            ),
        )

    def to_dict(self) -> dict:
        return {
            "position": self.position.tolist(),
            "velocity": self.velocity.tolist(),
            "acceleration": self.acceleration.tolist(),
            "yaw": self.yaw,
            "disable_position_gains": self.disable_position_gains,
        }


@dataclass(frozen=True)
class DisturbanceState:
    """
    Snapshot of the disturbance estimator.

    Integrals are tilt angles in radians, expressed in tilt coordinates
    (see utils.coordinate_frame).

    Attributes:
        ib_b: Body error integral in the body frame.
        iw_w: World error integral in the world frame.
        mass_difference: Estimated mass offset in kg.
    """

    ib_b: tuple[float, float] = (0.0, 0.0)
    iw_w: tuple[float, float] = (0.0, 0.0)
    mass_difference: float = 0.0


@dataclass(frozen=True)
class ControlOutput:
    """
    Attitude and thrust command.

    Disturbances are reported twice: as forces in Newtons (the `disturbance_*`
    fields, named <axis>_<integral frame>_<expressed-in frame>) and as the
    internal tilt angles in radians (the `integral_*` fields).
    The body integral in the world frame (`disturbance_b*_w`,
    `integral_body_w`) is the value that entered this cycle's feedback, i.e.
    before the cycle's integration; all other disturbances are post-update.

    Attributes:
        roll: Desired roll in radians.
        pitch: Desired pitch in radians.
        yaw: Desired yaw in radians.
        thrust: Normalized thrust [0, thrust_saturation].
        total_mass: Nominal mass plus mass difference, kg.
        mass_difference: Estimated mass offset, kg.
        stamp: Time the command was produced, seconds.
        controller: Name of the producing controller.
    """

    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0
    thrust: float = 0.0
    total_mass: float = 0.0
    mass_difference: float = 0.0
    disturbance_bx_b: float = 0.0
    disturbance_by_b: float = 0.0
    disturbance_bx_w: float = 0.0
    disturbance_by_w: float = 0.0
    disturbance_wx_w: float = 0.0
    disturbance_wy_w: float = 0.0
    integral_body_b: tuple[float, float] = (0.0, 0.0)
    integral_body_w: tuple[float, float] = (0.0, 0.0)
    integral_world_w: tuple[float, float] = (0.0, 0.0)
    stamp: float = 0.0
    controller: str = ""

    @property
    def tilt(self) -> np.ndarray:
        """Body-frame tilt vector (pitch, roll)."""
        return np.array([self.pitch, self.roll])

    @classmethod
    def from_dict(cls, output_dict: dict) -> "ControlOutput":
        """Create a command from a dictionary, ignoring unknown keys."""
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in output_dict.items() if k in valid_keys}
        for key in ("integral_body_b", "integral_body_w", "integral_world_w"):
            if key in filtered:
                filtered[key] = tuple(float(v) for v in filtered[key])
        return cls(**filtered)

    def to_dict(self) -> dict:
        """Convert command to dictionary."""
        result = asdict(self)
        for key in ("integral_body_b", "integral_body_w", "integral_world_w"):
            result[key] = list(result[key])
        return result


@dataclass(frozen=True)
class ControllerStatus:
    """Status reported to the host."""

    active: bool = False
