"""
NSF Controller Module

Nonlinear state feedback (NSF) position controller for multicopters. Maps the
position/velocity error and the reference acceleration directly to a desired
tilt and thrust:

    feedback = kp * Ep + kv * Ev + ka * ff + (Ib_w + Iw_w, 0) + (0, 0, hover)

where Ep/Ev are the position/velocity errors, ff the feed-forward term and
Ib_w/Iw_w the body and world disturbance integrals (both expressed in the
world frame). The vertical component is divided by cos(roll) * cos(pitch)
so the vertical thrust stays consistent while tilted. The horizontal
components are saturated to the maximum tilt angle, the vertical one to
[0, thrust_saturation].

Horizontal quantities are in tilt coordinates (x, -y); see
utils.coordinate_frame.

Gains are retuned live through set_desired_gains(). The active gains follow the
desired ones through a rate-limited GainFilter ticked by a separate timer
thread (start()/stop()) or manually (tick_gain_filter()).

Usage:
    controller = NsfController(motor_params=MotorParams(), uav_mass=2.0)
    controller.initialize(load_config("configs/nsf_controller.yaml"))
    with controller:
        controller.activate(last_command)
        output = controller.update(vehicle_state, reference)
"""

import logging
import math
import threading
import time
from collections.abc import Callable

import numpy as np

from ..config import ControlGains, ControllerConfig, MotorParams
from ..messages import (
    ControllerStatus,
    ControlOutput,
    Reference,
    VectorTransformer,
    VehicleState,
)
from ..utils.coordinate_frame import (
    AXIS_X,
    AXIS_Y,
    AXIS_Z,
    enu_to_tilt,
    force_to_tilt,
    quaternion_to_rpy,
    rotate2d,
    tilt_to_force,
)
from ..utils import _deep_merge
from ..utils.throttle import ThrottledLogger
from .activation import ActivationManager
from .base import BaseController
from .disturbance import DisturbanceEstimator, SaturationFlags, saturate
from .gain_filter import GainFilter, GainFilterTimer, GainSet

logger = logging.getLogger(__name__)

# States closer together than this (seconds) do not produce a new command
MIN_DT = 0.001


class NsfController(BaseController):
    """
    Nonlinear state feedback controller with disturbance and mass estimation.

    Attributes:
        motor_params (MotorParams): Affine hover-thrust motor model.
        uav_mass (float): Nominal vehicle mass in kg.
        gravity (float): Gravitational acceleration in m/s^2.
        transformer (VectorTransformer | None): Frame transform capability
            used when the odometry source changes.
        config (ControllerConfig | None): Configuration, set by initialize().
        hover_thrust (float): Hover thrust for the current total mass.
    """

    def __init__(
        self,
        motor_params: MotorParams | None = None,
        uav_mass: float = 1.0,
        gravity: float = 9.81,
        transformer: VectorTransformer | None = None,
        clock: Callable[[], float] = time.monotonic,
        name: str = "NsfController",
    ):
        """
        Create an uninitialized controller.

        Args:
            motor_params: Motor model of the vehicle.
            uav_mass: Nominal vehicle mass in kg.
            gravity: Gravitational acceleration in m/s^2.
            transformer: Frame transform capability for switch_odometry_source.
            clock: Time source in seconds, used for output stamps and
                log throttling.
            name: Controller name reported in outputs.
        """
        super().__init__(name=name)
        self.motor_params = motor_params or MotorParams()
        self.uav_mass = uav_mass
        self.gravity = gravity
        self.transformer = transformer
        self.clock = clock

        self.config: ControllerConfig | None = None
        self.hover_thrust = self.motor_params.hover_thrust(uav_mass, gravity)
        self.max_tilt_angle = 0.0
        self.thrust_saturation = 0.0

        self.gains: GainSet | None = None
        self.gain_filter: GainFilter | None = None
        self.disturbance: DisturbanceEstimator | None = None
        self._timer: GainFilterTimer | None = None

        self._activation = ActivationManager()
        self._last_state: VehicleState | None = None
        self._state_lock = threading.Lock()
        self._throttled = ThrottledLogger(logger, clock=clock)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def initialize(self, config: ControllerConfig | dict) -> None:
        """
        Load gains and constraints.

        A running gain filter timer is stopped; call start() again to resume
        filtering with the new rate.

        Args:
            config: ControllerConfig or a configuration dictionary.

        Raises:
            ConfigVersionError: If the configuration version does not match.
            ValueError: If the configuration is invalid.
        """
        self.stop()

        if isinstance(config, dict):
            config = ControllerConfig.from_dict(config)
        config.validate()

        self.config = config
        self.max_tilt_angle = config.max_tilt_angle_rad
        self.thrust_saturation = config.thrust_saturation

        self.gains = GainSet(config.gains)
        self.gain_filter = GainFilter(config.gains_filter, clock=self.clock)
        self.disturbance = DisturbanceEstimator(gravity=self.gravity, clock=self.clock)
        self._timer = GainFilterTimer(
            config.gains_filter.filter_rate, self.tick_gain_filter
        )

        self.hover_thrust = self.motor_params.hover_thrust(self.uav_mass, self.gravity)

        logger.info("%s initialized, version %s", self.name, config.version)

    @property
    def initialized(self) -> bool:
        return self.config is not None

    def _require_initialized(self) -> None:
        if not self.initialized:
            raise RuntimeError(f"{self.name} used before initialize()")

    def start(self) -> None:
        """Start the gain filter timer thread."""
        self._require_initialized()
        self._timer.start()

    def stop(self) -> None:
        """Stop the gain filter timer thread."""
        if self._timer is not None:
            self._timer.stop()

    def __enter__(self) -> "NsfController":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # activation
    # ------------------------------------------------------------------

    def activate(self, last_command: ControlOutput | None) -> bool:
        """
        Take over control from the previous controller.

        The mass difference and both disturbance integrals are seeded from the
        last command, converting its force-domain disturbances back to tilt
        angles. The command itself is returned by the first update().

        Args:
            last_command: Last command of the previous controller.

        Returns:
            False (and stay inactive) if no command was given, True otherwise.
        """
        self._require_initialized()

        if last_command is None:
            logger.warning(
                "%s activated without getting the last controller's command", self.name
            )
            return False

        total_mass = last_command.total_mass
        ib_b = force_to_tilt(
            [last_command.disturbance_bx_b, last_command.disturbance_by_b],
            total_mass,
            self.gravity,
        )
        iw_w = force_to_tilt(
            [last_command.disturbance_wx_w, last_command.disturbance_wy_w],
            total_mass,
            self.gravity,
        )
        self.disturbance.seed(ib_b, iw_w, last_command.mass_difference)

        logger.info(
            "setting the mass difference and disturbances from the last command: "
            "mass difference: %.2f kg, Ib_b: %.2f, %.2f N, Iw_w: %.2f, %.2f N",
            last_command.mass_difference,
            last_command.disturbance_bx_b,
            last_command.disturbance_by_b,
            last_command.disturbance_wx_w,
            last_command.disturbance_wy_w,
        )

        self._activation.activate(last_command)
        logger.info("%s activated", self.name)
        return True

    def deactivate(self) -> None:
        """Stop producing commands and forget the mass estimate."""
        self._activation.deactivate()
        if self.disturbance is not None:
            self.disturbance.reset_mass_difference()
        logger.info("%s deactivated", self.name)

    def get_status(self) -> ControllerStatus:
        return ControllerStatus(active=self._activation.active)

    # ------------------------------------------------------------------
    # control cycle
    # ------------------------------------------------------------------

    def update(
        self, vehicle_state: VehicleState, reference: Reference
    ) -> ControlOutput | None:
        """
        Compute the command for one control cycle.

        Args:
            vehicle_state: Current vehicle state.
            reference: Control reference.

        Returns:
            The command, or None while inactive. The first cycle after
            activation returns the activation command; a state arriving less
            than MIN_DT after the previous one returns the previous output.
        """
        self._require_initialized()

        with self._state_lock:
            self._last_state = vehicle_state

        activation = self._activation
        if not activation.active:
            return None

        # | ---------------------- timing ---------------------- |

        if activation.first_iteration:
            activation.last_stamp = vehicle_state.stamp
            activation.first_iteration = False
            return activation.snapshot

        dt = vehicle_state.stamp - activation.last_stamp
        activation.last_stamp = vehicle_state.stamp

        if abs(dt) <= MIN_DT:
            logger.debug("the last vehicle state came too close: %f s", dt)
            return activation.fallback_output()

        # | ------------------ vehicle state ------------------- |

        roll, pitch, yaw = quaternion_to_rpy(vehicle_state.orientation)

        mass_difference = self.disturbance.mass_difference
        total_mass = self.uav_mass + mass_difference
        self.hover_thrust = self.motor_params.hover_thrust(total_mass, self.gravity)

        self.gains.set_lateral_mute(reference.disable_position_gains)
        gains = self.gains.active
        estimate = self.disturbance.snapshot()

        # | ------------------ control errors ------------------ |

        position_error = enu_to_tilt(reference.position - vehicle_state.position)
        velocity_error = enu_to_tilt(reference.velocity - vehicle_state.velocity)

        feedback = self._feedback(
            position_error,
            velocity_error,
            reference.acceleration,
            roll,
            pitch,
            yaw,
            gains,
            estimate.ib_b,
            estimate.iw_w,
        )

        # | ------------- validation and saturation ------------ |

        feedback, saturation = self._saturate(feedback)

        # | ------------------- integration -------------------- |

        state = self.disturbance.update(
            position_error, feedback, saturation, yaw, dt, gains, total_mass=total_mass
        )

        # | ---------------------- output ---------------------- |

        feedback_b = rotate2d(feedback[:2], yaw)
        ib_b = np.array(state.ib_b)
        # body integral in the world frame as it entered this cycle's feedback
        ib_w = rotate2d(np.array(estimate.ib_b), -yaw)
        iw_w = np.array(state.iw_w)

        force_ib_b = tilt_to_force(ib_b, total_mass, self.gravity)
        force_ib_w = tilt_to_force(ib_w, total_mass, self.gravity)
        force_iw_w = tilt_to_force(iw_w, total_mass, self.gravity)

        output = ControlOutput(
            roll=float(feedback_b[AXIS_Y]),
            pitch=float(feedback_b[AXIS_X]),
            yaw=reference.yaw,
            thrust=float(feedback[AXIS_Z]),
            total_mass=float(total_mass),
            mass_difference=state.mass_difference,
            disturbance_bx_b=float(force_ib_b[0]),
            disturbance_by_b=float(force_ib_b[1]),
            disturbance_bx_w=float(force_ib_w[0]),
            disturbance_by_w=float(force_ib_w[1]),
            disturbance_wx_w=float(force_iw_w[0]),
            disturbance_wy_w=float(force_iw_w[1]),
            integral_body_b=state.ib_b,
            integral_body_w=(float(ib_w[0]), float(ib_w[1])),
            integral_world_w=state.iw_w,
            stamp=self.clock(),
            controller=self.name,
        )

        activation.last_output = output
        return output

    def _feedback(
        self,
        position_error: np.ndarray,
        velocity_error: np.ndarray,
        acceleration: np.ndarray,
        roll: float,
        pitch: float,
        yaw: float,
        gains: ControlGains,
        ib_b,
        iw_w,
    ) -> np.ndarray:
        """Compose the unsaturated world-frame feedback [tilt_x, tilt_y, thrust]."""
        horizontal = gains.horizontal
        vertical = gains.vertical

        kp = np.array([horizontal.kp, horizontal.kp, vertical.kp])
        kv = np.array([horizontal.kv, horizontal.kv, vertical.kv])
        ka = np.array([horizontal.ka, horizontal.ka, vertical.ka])

        ib_w = rotate2d(np.asarray(ib_b, dtype=float), -yaw)
        tilt_factor = math.cos(pitch) * math.cos(roll)

        # NaN/inf from an infeasible acceleration or a 90 deg tilt are
        # caught by the saturation stage
        with np.errstate(invalid="ignore", divide="ignore"):
            feed_forward = np.array(
                [
                    np.arcsin(acceleration[AXIS_X] * tilt_factor / self.gravity),
                    np.arcsin(-acceleration[AXIS_Y] * tilt_factor / self.gravity),
                    acceleration[AXIS_Z] * (self.hover_thrust / self.gravity),
                ]
            )

            integral = np.zeros(3)
            integral[:2] = ib_w + np.asarray(iw_w, dtype=float)

            feedback = (
                kp * position_error
                + kv * velocity_error
                + ka * feed_forward
                + integral
                + np.array([0.0, 0.0, self.hover_thrust])
            )
            feedback[AXIS_Z] = feedback[AXIS_Z] / np.float64(tilt_factor)

        return feedback

    def _saturate(self, feedback: np.ndarray) -> tuple[np.ndarray, SaturationFlags]:
        """Clamp tilt and thrust, zeroing non-finite components."""
        saturated = np.zeros(3)

        saturated[AXIS_X], x_saturated = saturate(
            feedback[AXIS_X],
            -self.max_tilt_angle,
            self.max_tilt_angle,
            "feedback_w[X]",
            self._throttled,
        )
        saturated[AXIS_Y], y_saturated = saturate(
            feedback[AXIS_Y],
            -self.max_tilt_angle,
            self.max_tilt_angle,
            "feedback_w[Y]",
            self._throttled,
        )
        saturated[AXIS_Z], z_saturated = saturate(
            feedback[AXIS_Z],
            0.0,
            self.thrust_saturation,
            "feedback_w[Z]",
            self._throttled,
        )

        if x_saturated:
            self._throttled.warning("x_saturated", 1.0, "X is saturated")
        if y_saturated:
            self._throttled.warning("y_saturated", 1.0, "Y is saturated")
        if z_saturated:
            self._throttled.warning(
                "z_saturated", 1.0, "Z is saturated, thrust set to %.2f", saturated[AXIS_Z]
            )

        return saturated, SaturationFlags(x=x_saturated, y=y_saturated, z=z_saturated)

    # ------------------------------------------------------------------
    # external requests
    # ------------------------------------------------------------------

    def set_desired_gains(self, gains: ControlGains | dict) -> None:
        """
        Request new gains; the gain filter moves the active gains toward them.

        Args:
            gains: ControlGains or a `default_gains`-style dictionary. Keys
                missing from a dictionary keep their current desired value.

        Raises:
            ValueError: If a gain is negative or non-finite.
        """
        self._require_initialized()
        if isinstance(gains, dict):
            gains = dict(gains)
            if "mass_estimator" in gains:
                gains["weight_estimator"] = gains.pop("mass_estimator")
            gains = ControlGains.from_dict(
                _deep_merge(self.gains.desired.to_dict(), gains)
            )
        gains.validate()
        self.gains.set_desired(gains)
        logger.info("%s desired gains updated", self.name)

    def tick_gain_filter(self) -> ControlGains:
        """Advance the active gains by one filter step."""
        self._require_initialized()
        return self.gains.advance(self.gain_filter, self.config.lateral_mute_coefficient)

    def switch_odometry_source(self, new_frame_id: str) -> None:
        """
        Re-express the world integral in the frame of the new odometry source.

        The current frame is taken from the last vehicle state passed to
        update(). If it is unknown or the transform fails, the world integral
        is reset.
        """
        self._require_initialized()
        logger.info("%s switching the odometry source to %s", self.name, new_frame_id)

        with self._state_lock:
            last_state = self._last_state

        if last_state is None:
            logger.warning(
                "no vehicle state received yet, resetting the world integral"
            )
            self.disturbance.reset_world_integral()
            return

        self.disturbance.reproject_world_integral(
            self.transformer, last_state.frame_id, new_frame_id
        )

    def reset_disturbance_estimators(self) -> None:
        """Zero the world and body integrals."""
        self._require_initialized()
        self.disturbance.reset()
