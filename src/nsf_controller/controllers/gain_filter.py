"""
Gain Filter Module

Operators retune the controller in flight. Applying new gains as a step would
kick the vehicle, so requested ("desired") gains are not used directly:
a fixed-rate timer moves the active gains toward the desired ones, limited to
a fraction of the current value per tick.

Components:
- GainFilter: the rate-limited per-gain update and the whole-set step
- GainSet: thread-safe holder of the desired and active gains
- GainFilterTimer: daemon thread ticking the filter at the configured rate

Lock order (shared with the controller): desired gains, then active gains,
then the disturbance integrals.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import replace

from ..config import ControlGains, GainFilterParams
from ..utils.throttle import ThrottledLogger

logger = logging.getLogger(__name__)

# Below this magnitude a gain is treated as zero and changed by a fraction of
# the requested difference instead of a fraction of itself
ZERO_GAIN_EPSILON = 1e-6

# Changes smaller than this are not reported
CHANGE_NOTICE_THRESHOLD = 1e-3

# Horizontal gains scaled by the lateral mute coefficient
MUTABLE_HORIZONTAL_GAINS = ("kp", "kv", "ka", "kiw", "kib")


class GainFilter:
    """
    Rate-limited gain update.

    Attributes:
        max_change (float): Maximum fractional change per tick.
        min_change (float): Minimum fractional progress per tick.
    """

    def __init__(
        self,
        params: GainFilterParams | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        params = params or GainFilterParams()
        self.max_change = params.max_change
        self.min_change = params.min_change
        self._throttled = ThrottledLogger(logger, clock=clock)

    def filter(
        self, current: float, desired: float, bypass: bool = False, name: str = "gain"
    ) -> float:
        """
        Move `current` one tick toward `desired`.

        Args:
            current: Currently active gain value.
            desired: Requested gain value.
            bypass: Skip rate limiting and return `desired`.
            name: Gain name used in the change notice.

        Returns:
            The next active value.
        """
        change = desired - current

        if not bypass:
            if abs(current) < ZERO_GAIN_EPSILON:
                change *= self.max_change
            else:
                saturated_change = change
                change_in_perc = (current + saturated_change) / current - 1.0

                if change_in_perc > self.max_change:
                    saturated_change = current * self.max_change
                elif change_in_perc < -self.max_change:
                    saturated_change = current * -self.max_change

                if abs(saturated_change) < abs(change) * self.min_change:
                    change *= self.min_change
                else:
                    change = saturated_change

        if abs(change) > CHANGE_NOTICE_THRESHOLD:
            self._throttled.info(
                f"gain_change_{name}",
                1.0,
                'changing gain "%s" from %f to %f',
                name,
                current,
                desired,
            )

        return current + change

    def step(
        self,
        active: ControlGains,
        desired: ControlGains,
        lateral_coefficient: float = 1.0,
        bypass_lateral: bool = False,
    ) -> ControlGains:
        """
        Advance a whole gain set by one tick.

        Args:
            active: Currently active gains.
            desired: Requested gains.
            lateral_coefficient: Multiplier applied to the desired lateral gains
                (the mute coefficient while lateral gains are muted).
            bypass_lateral: Step the lateral gains without rate limiting.

        Returns:
            The next active gains.
        """
        horizontal = {
            name: self.filter(
                getattr(active.horizontal, name),
                getattr(desired.horizontal, name) * lateral_coefficient,
                bypass_lateral,
                f"{name}xy",
            )
            for name in MUTABLE_HORIZONTAL_GAINS
        }
        for name in ("kiw_lim", "kib_lim"):
            horizontal[name] = self.filter(
                getattr(active.horizontal, name),
                getattr(desired.horizontal, name),
                False,
                name.replace("_", "xy_"),
            )

        # vertical and mass estimator gains are applied without rate limiting
        vertical = {
            name: self.filter(
                getattr(active.vertical, name), getattr(desired.vertical, name), True, f"{name}z"
            )
            for name in ("kp", "kv", "ka")
        }
        mass_estimator = {
            name: self.filter(
                getattr(active.mass_estimator, name),
                getattr(desired.mass_estimator, name),
                True,
                name,
            )
            for name in ("km", "km_lim")
        }

        return ControlGains(
            horizontal=replace(active.horizontal, **horizontal),
            vertical=replace(active.vertical, **vertical),
            mass_estimator=replace(active.mass_estimator, **mass_estimator),
        )


class GainSet:
    """
    Thread-safe container for desired and active gains.

    The desired gains are written by the reconfiguration channel, the active
    gains by the filter tick and read by the control cycle. The lateral mute
    flags are written by the control cycle and consumed by the filter tick;
    they live under the active-gains lock.
    """

    def __init__(self, gains: ControlGains):
        self._desired_lock = threading.Lock()
        self._active_lock = threading.Lock()
        self._desired = gains
        self._active = gains
        self._mute_lateral = False
        self._unmuted_since_tick = False

    @property
    def desired(self) -> ControlGains:
        with self._desired_lock:
            return self._desired

    @property
    def active(self) -> ControlGains:
        with self._active_lock:
            return self._active

    @property
    def lateral_muted(self) -> bool:
        with self._active_lock:
            return self._mute_lateral

    def set_desired(self, gains: ControlGains) -> None:
        """Store newly requested gains; the filter picks them up on its next tick."""
        with self._desired_lock:
            self._desired = gains

    def set_lateral_mute(self, muted: bool) -> None:
        """
        Mute or unmute the lateral gains.

        Unmuting marks the next tick to restore the gains as a step.
        """
        with self._active_lock:
            if self._mute_lateral and not muted:
                self._unmuted_since_tick = True
            self._mute_lateral = muted

    def advance(self, gain_filter: GainFilter, mute_coefficient: float) -> ControlGains:
        """
        Run one filter tick.

        Args:
            gain_filter: Filter used to compute the next gains.
            mute_coefficient: Lateral gain multiplier while muted.

        Returns:
            The new active gains.
        """
        with self._desired_lock, self._active_lock:
            bypass = self._mute_lateral or self._unmuted_since_tick
            self._unmuted_since_tick = False
            coefficient = mute_coefficient if self._mute_lateral else 1.0

            self._active = gain_filter.step(
                self._active, self._desired, coefficient, bypass
            )
            return self._active


class GainFilterTimer:
    """
    Daemon thread calling a callback at a fixed rate.

    Example:
        timer = GainFilterTimer(10.0, controller.tick_gain_filter)
        timer.start()
        ...
        timer.stop()
    """

    def __init__(self, rate_hz: float, callback: Callable[[], object]):
        if rate_hz <= 0.0:
            raise ValueError("rate_hz must be positive")
        self.period = 1.0 / rate_hz
        self.callback = callback
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="gain-filter", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 1.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        next_tick = time.monotonic() + self.period
        while not self._stop_event.wait(max(0.0, next_tick - time.monotonic())):
            try:
                self.callback()
            except Exception:
                logger.exception("Gain filter tick failed")
            next_tick += self.period
            # skip missed ticks instead of bursting to catch up
            now = time.monotonic()
            if next_tick < now:
                next_tick = now + self.period
