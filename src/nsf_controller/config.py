"""
Controller Configuration Module

Defines the control gains, constraints and gain-filter settings of the NSF
controller, together with the motor model supplied by the host.

The configuration file carries a `version` string that must match
CONFIG_VERSION. A mismatch means the gains were written for a different
revision of the control law and is treated as fatal.
"""

import math
from dataclasses import dataclass, field, replace

# Version of the control law the configuration schema belongs to
CONFIG_VERSION = "0.0.3.0"


class ConfigVersionError(ValueError):
    """Raised when the configuration version does not match CONFIG_VERSION."""

    pass


@dataclass(frozen=True)
class HorizontalGains:
    """Lateral gains; map metres (or m/s, m/s^2) to tilt angle in radians."""

    kp: float = 0.15
    kv: float = 0.12
    ka: float = 1.0
    kiw: float = 0.1  # world-frame integral gain
    kib: float = 0.01  # body-frame integral gain
    kiw_lim: float = 0.1  # rad
    kib_lim: float = 0.1  # rad


@dataclass(frozen=True)
class VerticalGains:
    """Vertical gains; map metres (or m/s, m/s^2) to normalized thrust."""

    kp: float = 0.15
    kv: float = 0.25
    ka: float = 1.0


@dataclass(frozen=True)
class MassEstimatorGains:
    """Online mass estimator gain (kg per metre-second) and limit (kg)."""

    km: float = 0.5
    km_lim: float = 5.0


@dataclass(frozen=True)
class ControlGains:
    """
    Complete, immutable set of gains used by the feedback law.

    The controller keeps two instances: the active gains used by the law and
    the desired gains most recently requested. Both are replaced wholesale,
    never mutated.
    """

    horizontal: HorizontalGains = field(default_factory=HorizontalGains)
    vertical: VerticalGains = field(default_factory=VerticalGains)
    mass_estimator: MassEstimatorGains = field(default_factory=MassEstimatorGains)

    def with_horizontal(self, **changes) -> "ControlGains":
        """Return a copy with some horizontal gains replaced."""
        return replace(self, horizontal=replace(self.horizontal, **changes))

    def validate(self) -> None:
        """
        Validate gain values.

        Raises:
            ValueError: If any gain or limit is negative or non-finite.
        """
        for group_name, group in (
            ("horizontal", self.horizontal),
            ("vertical", self.vertical),
            ("weight_estimator", self.mass_estimator),
        ):
            for name, value in group.__dict__.items():
                if not math.isfinite(value):
                    raise ValueError(f"Gain {group_name}.{name} must be finite")
                if value < 0:
                    raise ValueError(
                        f"Gain {group_name}.{name} must be non-negative, got {value}"
                    )

    @classmethod
    def from_dict(cls, gains_dict: dict) -> "ControlGains":
        """
        Create gains from the `default_gains` section of a configuration.

        Args:
            gains_dict: Dictionary with `horizontal`, `vertical` and
                `weight_estimator` sub-dictionaries. Missing keys use defaults.

        Returns:
            ControlGains instance.
        """
        horizontal = gains_dict.get("horizontal", {})
        vertical = gains_dict.get("vertical", {})
        mass = gains_dict.get("weight_estimator", gains_dict.get("mass_estimator", {}))
        defaults = cls()

        return cls(
            horizontal=HorizontalGains(
                kp=float(horizontal.get("kp", defaults.horizontal.kp)),
                kv=float(horizontal.get("kv", defaults.horizontal.kv)),
                ka=float(horizontal.get("ka", defaults.horizontal.ka)),
                kiw=float(horizontal.get("kiw", defaults.horizontal.kiw)),
                kib=float(horizontal.get("kib", defaults.horizontal.kib)),
                kiw_lim=float(horizontal.get("kiw_lim", defaults.horizontal.kiw_lim)),
                kib_lim=float(horizontal.get("kib_lim", defaults.horizontal.kib_lim)),
            ),
            vertical=VerticalGains(
                kp=float(vertical.get("kp", defaults.vertical.kp)),
                kv=float(vertical.get("kv", defaults.vertical.kv)),
                ka=float(vertical.get("ka", defaults.vertical.ka)),
            ),
            mass_estimator=MassEstimatorGains(
                km=float(mass.get("km", defaults.mass_estimator.km)),
                km_lim=float(mass.get("km_lim", defaults.mass_estimator.km_lim)),
            ),
        )

    def to_dict(self) -> dict:
        """Convert gains to the `default_gains` dictionary layout."""
        return {
            "horizontal": {
                "kp": self.horizontal.kp,
                "kv": self.horizontal.kv,
                "ka": self.horizontal.ka,
                "kiw": self.horizontal.kiw,
                "kib": self.horizontal.kib,
                "kiw_lim": self.horizontal.kiw_lim,
                "kib_lim": self.horizontal.kib_lim,
            },
            "vertical": {
                "kp": self.vertical.kp,
                "kv": self.vertical.kv,
                "ka": self.vertical.ka,
            },
            "weight_estimator": {
                "km": self.mass_estimator.km,
                "km_lim": self.mass_estimator.km_lim,
            },
        }


@dataclass(frozen=True)
class GainFilterParams:
    """
    Gain filter settings.

    Change rates are fractions of the current gain per second (1.0 = 100 %/s).
    Per tick they are divided by the filter rate.
    """

    filter_rate: float = 10.0  # Hz
    perc_change_rate: float = 1.0  # max fractional change per second
    min_change_rate: float = 0.1  # min fractional progress per second

    @property
    def max_change(self) -> float:
        """Maximum fractional change applied in one tick."""
        return self.perc_change_rate / self.filter_rate

    @property
    def min_change(self) -> float:
        """Minimum fractional progress forced in one tick."""
        return self.min_change_rate / self.filter_rate


@dataclass(frozen=True)
class MotorParams:
    """
    Affine motor model: hover_thrust = sqrt(mass * g) * hover_thrust_a + hover_thrust_b.

    Thrust is normalized to [0, 1].
    """

    hover_thrust_a: float = 0.15
    hover_thrust_b: float = -0.2

    def hover_thrust(self, mass: float, gravity: float) -> float:
        """Normalized thrust needed to hover a vehicle of the given mass."""
        return math.sqrt(max(mass * gravity, 0.0)) * self.hover_thrust_a + self.hover_thrust_b


@dataclass
class ControllerConfig:
    """Complete NSF controller configuration."""

    version: str = CONFIG_VERSION
    gains: ControlGains = field(default_factory=ControlGains)
    max_tilt_angle: float = 25.0  # degrees
    thrust_saturation: float = 0.9  # normalized thrust
    gains_filter: GainFilterParams = field(default_factory=GainFilterParams)
    lateral_mute_coefficient: float = 0.1

    @property
    def max_tilt_angle_rad(self) -> float:
        """Tilt limit converted to radians."""
        return math.radians(self.max_tilt_angle)

    def check_version(self) -> None:
        """
        Ensure the configuration belongs to this control law revision.

        Raises:
            ConfigVersionError: If the versions differ.
        """
        if self.version != CONFIG_VERSION:
            raise ConfigVersionError(
                f"The version of the controller ({CONFIG_VERSION}) does not match "
                f"the config file ({self.version})"
            )

    def validate(self) -> None:
        """
        Validate the configuration.

        Raises:
            ConfigVersionError: If the version does not match.
            ValueError: If any value is out of its valid range.
        """
        self.check_version()
        self.gains.validate()

        if not 0.0 < self.max_tilt_angle < 90.0:
            raise ValueError(
                f"max_tilt_angle must be in (0, 90) degrees, got {self.max_tilt_angle}"
            )
        if self.thrust_saturation <= 0.0:
            raise ValueError(
                f"thrust_saturation must be positive, got {self.thrust_saturation}"
            )
        if self.lateral_mute_coefficient < 0.0:
            raise ValueError(
                "lateral_mute_coefficient must be non-negative, "
                f"got {self.lateral_mute_coefficient}"
            )

        gf = self.gains_filter
        if gf.filter_rate <= 0:
            raise ValueError(f"gains_filter.filter_rate must be positive, got {gf.filter_rate}")
        if not 0.0 < gf.max_change <= 1.0:
            raise ValueError(
                "gains_filter.perc_change_rate / filter_rate must be in (0, 1], "
                f"got {gf.max_change}"
            )
        if not 0.0 <= gf.min_change <= gf.max_change:
            raise ValueError(
                "gains_filter.min_change_rate must be in [0, perc_change_rate], "
                f"got {gf.min_change_rate}"
            )

    @classmethod
    def from_dict(cls, config_dict: dict) -> "ControllerConfig":
        """
        Create ControllerConfig from a dictionary (e.g., from load_config).

        Args:
            config_dict: Configuration dictionary.

        Returns:
            ControllerConfig instance.
        """
        filter_dict = config_dict.get("gains_filter", {})
        defaults = GainFilterParams()

        return cls(
            version=str(config_dict.get("version", CONFIG_VERSION)),
            gains=ControlGains.from_dict(config_dict.get("default_gains", {})),
            max_tilt_angle=float(config_dict.get("max_tilt_angle", 25.0)),
            thrust_saturation=float(config_dict.get("thrust_saturation", 0.9)),
            gains_filter=GainFilterParams(
                filter_rate=float(filter_dict.get("filter_rate", defaults.filter_rate)),
                perc_change_rate=float(
                    filter_dict.get("perc_change_rate", defaults.perc_change_rate)
                ),
                min_change_rate=float(
                    filter_dict.get("min_change_rate", defaults.min_change_rate)
                ),
            ),
            lateral_mute_coefficient=float(
                config_dict.get("lateral_mute_coefficient", 0.1)
            ),
        )

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return {
            "version": self.version,
            "default_gains": self.gains.to_dict(),
            "max_tilt_angle": self.max_tilt_angle,
            "thrust_saturation": self.thrust_saturation,
            "gains_filter": {
                "filter_rate": self.gains_filter.filter_rate,
                "perc_change_rate": self.gains_filter.perc_change_rate,
                "min_change_rate": self.gains_filter.min_change_rate,
            },
            "lateral_mute_coefficient": self.lateral_mute_coefficient,
        }
