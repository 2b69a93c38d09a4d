"""
Disturbance Estimator Module

Owns the integral states of the NSF controller:

- Iw_w: world error integral expressed in the world frame. Compensates
  disturbances fixed in the world (wind).
- Ib_b: body error integral expressed in the body frame. Compensates
  disturbances that rotate with the vehicle (centre-of-mass offset).
- mass_difference: online estimate of the mismatch between the nominal and
  the true vehicle mass (payload).

Integrals are tilt angles in radians in tilt coordinates (see
utils.coordinate_frame); each is clamped to its symmetric limit and any
non-finite value is replaced by zero.
"""

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from ..config import ControlGains
from ..messages import DisturbanceState, TransformError, VectorTransformer
from ..utils.coordinate_frame import (
    AXIS_X,
    AXIS_Y,
    AXIS_Z,
    enu_to_tilt,
    rotate2d,
    sign,
    tilt_to_enu,
    tilt_to_force,
)
from ..utils.throttle import ThrottledLogger

logger = logging.getLogger(__name__)

# Period of the informational integral report, seconds
REPORT_PERIOD = 5.0


@dataclass(frozen=True)
class SaturationFlags:
    """Which feedback channels were clamped in the current cycle."""

    x: bool = False
    y: bool = False
    z: bool = False


def saturate(
    value: float,
    lower: float,
    upper: float,
    name: str,
    throttled: ThrottledLogger,
) -> tuple[float, bool]:
    """
    Clamp a value to [lower, upper], replacing non-finite values with zero.

    Args:
        value: Value to saturate.
        lower: Lower bound.
        upper: Upper bound.
        name: Variable name for diagnostics.
        throttled: Rate-limited logger for the NaN diagnostic.

    Returns:
        Tuple (saturated value, whether it was clamped). A non-finite input
        yields (0.0, False).
    """
    if not math.isfinite(value):
        throttled.error(
            f"nan_{name}", 1.0, 'NaN detected in variable "%s", setting it to 0', name
        )
        return 0.0, False
    if value > upper:
        return upper, True
    if value < lower:
        return lower, True
    return value, False


class DisturbanceEstimator:
    """
    Thread-safe world/body integrals and mass estimate.

    All state lives behind one lock. It is the last lock in the controller's
    lock order and is never held during a frame transform.
    """

    def __init__(
        self,
        gravity: float = 9.81,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.gravity = gravity
        self._lock = threading.Lock()
        self._ib_b = np.zeros(2)
        self._iw_w = np.zeros(2)
        self._mass_difference = 0.0
        self._throttled = ThrottledLogger(logger, clock=clock)

    # ------------------------------------------------------------------
    # accessors
    # ------------------------------------------------------------------

    def snapshot(self) -> DisturbanceState:
        """Return an immutable copy of the current state."""
        with self._lock:
            return DisturbanceState(
                ib_b=(float(self._ib_b[0]), float(self._ib_b[1])),
                iw_w=(float(self._iw_w[0]), float(self._iw_w[1])),
                mass_difference=float(self._mass_difference),
            )

    @property
    def mass_difference(self) -> float:
        with self._lock:
            return self._mass_difference

    # ------------------------------------------------------------------
    # state transitions
    # ------------------------------------------------------------------

    def update(
        self,
        position_error: np.ndarray,
        feedback: np.ndarray,
        saturation: SaturationFlags,
        yaw: float,
        dt: float,
        gains: ControlGains,
        total_mass: float | None = None,
    ) -> DisturbanceState:
        """
        Integrate one control cycle.

        Args:
            position_error: Position error [x, y, z] in tilt coordinates.
            feedback: Saturated feedback [x, y, z] of this cycle.
            saturation: Saturation flags of this cycle.
            yaw: Vehicle yaw in radians.
            dt: Cycle duration in seconds.
            gains: Gains snapshot used in this cycle.
            total_mass: Current total mass, used for the force-form report.

        Returns:
            The state after the update.
        """
        horizontal = gains.horizontal
        kiw_lim = horizontal.kiw_lim
        kib_lim = horizontal.kib_lim
        km_lim = gains.mass_estimator.km_lim

        # anti-windup: stop integrating an axis saturated in the error's direction
        integration_switch = np.ones(2)
        if saturation.x and sign(feedback[AXIS_X]) == sign(position_error[AXIS_X]):
            integration_switch[AXIS_X] = 0.0
        if saturation.y and sign(feedback[AXIS_Y]) == sign(position_error[AXIS_Y]):
            integration_switch[AXIS_Y] = 0.0

        error_xy = np.asarray(position_error[:2], dtype=float)
        error_body = rotate2d(error_xy, yaw)

        with self._lock:
            iw_w = self._iw_w + horizontal.kiw * error_xy * integration_switch * dt
            for axis, label in ((AXIS_X, "X"), (AXIS_Y, "Y")):
                iw_w[axis], saturated = saturate(
                    iw_w[axis], -kiw_lim, kiw_lim, f"Iw_w[{axis}]", self._throttled
                )
                if kiw_lim >= 0 and saturated:
                    self._throttled.warning(
                        f"world_integral_{label}",
                        1.0,
                        "NSF's world %s integral is being saturated",
                        label,
                    )
            self._iw_w = iw_w

            ib_b = self._ib_b + horizontal.kib * error_body * dt
            for axis, label in ((AXIS_X, "pitch"), (AXIS_Y, "roll")):
                ib_b[axis], saturated = saturate(
                    ib_b[axis], -kib_lim, kib_lim, f"Ib_b[{axis}]", self._throttled
                )
                if kib_lim > 0 and saturated:
                    self._throttled.warning(
                        f"body_integral_{label}",
                        1.0,
                        "NSF's body %s integral is being saturated",
                        label,
                    )
            self._ib_b = ib_b

            mass_difference = self._mass_difference
            if not saturation.z:
                mass_difference += gains.mass_estimator.km * position_error[AXIS_Z] * dt
            mass_difference, saturated = saturate(
                mass_difference, -km_lim, km_lim, "mass_difference", self._throttled
            )
            if saturated:
                self._throttled.warning(
                    "mass_difference",
                    1.0,
                    "The mass difference is being saturated to %1.3f",
                    mass_difference,
                )
            self._mass_difference = float(mass_difference)

        state = self.snapshot()
        self._report(state, gains, total_mass)
        return state

    def reset(self) -> None:
        """Zero both integrals; the mass difference is kept."""
        with self._lock:
            self._iw_w = np.zeros(2)
            self._ib_b = np.zeros(2)
        logger.info("Disturbance estimators reset")

    def reset_world_integral(self) -> None:
        with self._lock:
            self._iw_w = np.zeros(2)

    def reset_mass_difference(self) -> None:
        with self._lock:
            self._mass_difference = 0.0

    def seed(self, ib_b, iw_w, mass_difference: float) -> None:
        """
        Overwrite the state, e.g. with values taken over from another controller.

        Non-finite components are replaced by zero.
        """
        ib_b = np.nan_to_num(np.asarray(ib_b, dtype=float), nan=0.0, posinf=0.0, neginf=0.0)
        iw_w = np.nan_to_num(np.asarray(iw_w, dtype=float), nan=0.0, posinf=0.0, neginf=0.0)
        if not math.isfinite(mass_difference):
            mass_difference = 0.0
        with self._lock:
            self._ib_b = ib_b
            self._iw_w = iw_w
            self._mass_difference = float(mass_difference)

    def reproject_world_integral(
        self,
        transformer: VectorTransformer | None,
        from_frame: str,
        to_frame: str,
    ) -> bool:
        """
        Re-express the world integral in a new reference frame.

        The transform is called without holding the lock. If it fails, the
        world integral is zeroed rather than left expressed in the old frame.
        An update() landing while the transform runs is overwritten by the
        re-expressed value.

        Args:
            transformer: Frame transform capability.
            from_frame: Frame the integral is currently expressed in.
            to_frame: Frame to express the integral in.

        Returns:
            True if the integral was transformed, False if it was zeroed.
        """
        with self._lock:
            iw_w = self._iw_w.copy()

        vector = np.array([*tilt_to_enu(iw_w), 0.0])

        transformed = None
        if transformer is None:
            logger.error("No frame transformer available")
        else:
            try:
                transformed = transformer(vector, from_frame, to_frame)
            except TransformError as e:
                logger.debug("Transform from %s to %s failed: %s", from_frame, to_frame, e)

        if transformed is None:
            self._throttled.error(
                "reproject_failed",
                1.0,
                "could not transform world integral from %s to %s, resetting it",
                from_frame,
                to_frame,
            )
            self.reset_world_integral()
            return False

        new_iw_w = enu_to_tilt(np.asarray(transformed, dtype=float)[:2])
        new_iw_w = np.nan_to_num(new_iw_w, nan=0.0, posinf=0.0, neginf=0.0)
        with self._lock:
            self._iw_w = new_iw_w
        logger.info("World integral re-expressed from %s to %s", from_frame, to_frame)
        return True

    def _report(
        self, state: DisturbanceState, gains: ControlGains, total_mass: float | None
    ) -> None:
        """Periodically log the integrals as tilt angles and as forces."""
        self._throttled.info(
            "report_tilt",
            REPORT_PERIOD,
            "disturbance as tilt: world integral x %1.2f deg, y %1.2f deg, "
            "lim %1.2f deg; body integral x %1.2f deg, y %1.2f deg, lim %1.2f deg",
            math.degrees(state.iw_w[0]),
            math.degrees(state.iw_w[1]),
            math.degrees(gains.horizontal.kiw_lim),
            math.degrees(state.ib_b[0]),
            math.degrees(state.ib_b[1]),
            math.degrees(gains.horizontal.kib_lim),
        )
        if total_mass is None:
            return

        iw = tilt_to_force(np.array(state.iw_w), total_mass, self.gravity)
        ib = tilt_to_force(np.array(state.ib_b), total_mass, self.gravity)
        self._throttled.info(
            "report_force",
            REPORT_PERIOD,
            "disturbance as force: world integral x %1.2f N, y %1.2f N, "
            "lim %1.2f N; body integral x %1.2f N, y %1.2f N, lim %1.2f N",
            iw[0],
            iw[1],
            tilt_to_force(gains.horizontal.kiw_lim, total_mass, self.gravity),
            ib[0],
            ib[1],
            tilt_to_force(gains.horizontal.kib_lim, total_mass, self.gravity),
        )
