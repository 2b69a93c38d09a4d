"""
Base Controller Module

Provides the abstract base class for controllers plugged into the flight
manager. The host constructs a controller with its collaborators (motor model,
mass, gravity, frame transformer, clock), calls initialize() once with the
configuration and then drives it through the operations below.

Lifecycle:
    initialize(config) → activate(last_command) → update(state, reference)*
    → deactivate() → activate(...) ...

Output Schema:
    update() returns a ControlOutput (roll/pitch/yaw in radians, thrust
    normalized to [0, 1], mass and disturbance telemetry), or None while the
    controller is inactive.
"""

from ..messages import ControllerStatus, ControlOutput, Reference, VehicleState


class BaseController:
    """
    Abstract base class for attitude-and-thrust controllers.

    Attributes:
        name (str): Controller identifier used in logs and outputs.
    """

    def __init__(self, name: str = "base"):
        self.name = name

    def initialize(self, config) -> None:
        """
        One-time setup from configuration.

        Raises:
            NotImplementedError: Must be implemented by subclasses.
        """
        raise NotImplementedError("Subclasses must implement initialize")

    def activate(self, last_command: ControlOutput | None) -> bool:
        """
        Take over control, seeding state from the previous controller's command.

        Returns:
            True if the controller became active.
        """
        raise NotImplementedError("Subclasses must implement activate")

    def deactivate(self) -> None:
        """Hand over control."""
        raise NotImplementedError("Subclasses must implement deactivate")

    def update(
        self, vehicle_state: VehicleState, reference: Reference
    ) -> ControlOutput | None:
        """
        Compute the command for one control cycle.

        Returns:
            The command, or None while inactive.
        """
        raise NotImplementedError("Subclasses must implement update")

    def get_status(self) -> ControllerStatus:
        raise NotImplementedError("Subclasses must implement get_status")

    def switch_odometry_source(self, new_frame_id: str) -> None:
        """Re-express frame-dependent state after the odometry frame changed."""
        pass

    def reset_disturbance_estimators(self) -> None:
        """Reset integral states (for stateful controllers)."""
        pass
