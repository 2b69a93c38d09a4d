"""
Rate-Limited Logging

Control loops run at tens to hundreds of Hz; logging every saturation or NaN
event would flood the log. ThrottledLogger wraps a standard logger and drops
repeats of the same message key within a configurable period.

Usage:
    throttled = ThrottledLogger(logging.getLogger(__name__))
    throttled.warning("x_saturated", 1.0, "X is saturated")
"""

import logging
import threading
import time
from collections.abc import Callable


class ThrottledLogger:
    """
    Logger adapter emitting each keyed message at most once per period.

    Attributes:
        logger (logging.Logger): Underlying logger.
        clock (Callable[[], float]): Time source in seconds.
    """

    def __init__(
        self,
        logger: logging.Logger,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.logger = logger
        self.clock = clock
        self._last_emitted: dict[str, float] = {}
        self._lock = threading.Lock()

    def _should_emit(self, key: str, period: float) -> bool:
        now = self.clock()
        with self._lock:
            last = self._last_emitted.get(key)
            if last is not None and now - last < period:
                return False
            self._last_emitted[key] = now
            return True

    def log(self, level: int, key: str, period: float, msg: str, *args) -> bool:
        """
        Log a message unless the same key was logged within `period` seconds.

        Args:
            level: Logging level (e.g. logging.WARNING).
            key: Identifier used for throttling; usually the call site.
            period: Minimum seconds between two emissions of the key.
            msg: %-style format string.
            *args: Format arguments.

        Returns:
            True if the message was passed to the logger.
        """
        if not self._should_emit(key, period):
            return False
        self.logger.log(level, msg, *args)
        return True

    def debug(self, key: str, period: float, msg: str, *args) -> bool:
        return self.log(logging.DEBUG, key, period, msg, *args)

    def info(self, key: str, period: float, msg: str, *args) -> bool:
        return self.log(logging.INFO, key, period, msg, *args)

    def warning(self, key: str, period: float, msg: str, *args) -> bool:
        return self.log(logging.WARNING, key, period, msg, *args)

    def error(self, key: str, period: float, msg: str, *args) -> bool:
        return self.log(logging.ERROR, key, period, msg, *args)

    def reset(self) -> None:
        """Forget all emission times."""
        with self._lock:
            self._last_emitted.clear()
