"""
Activation Bookkeeping

Tracks whether the controller is in control, the command captured when it
took over, and the timing state of the control cycle.
"""

from dataclasses import dataclass

from ..messages import ControlOutput


@dataclass
class ActivationManager:
    """
    Activation state of a controller.

    Attributes:
        active: Whether the controller is in control.
        snapshot: Command captured at activation, returned verbatim on the
            first cycle and whenever no output of our own exists yet.
        first_iteration: The next cycle is the first one since activation.
        last_stamp: Timestamp of the previous vehicle state, seconds.
        last_output: Last command produced by the feedback law.
    """

    active: bool = False
    snapshot: ControlOutput | None = None
    first_iteration: bool = False
    last_stamp: float | None = None
    last_output: ControlOutput | None = None

    def activate(self, snapshot: ControlOutput) -> None:
        self.snapshot = snapshot
        self.first_iteration = True
        self.last_stamp = None
        self.last_output = None
        self.active = True

    def deactivate(self) -> None:
        self.active = False
        self.first_iteration = False
        self.snapshot = None
        self.last_output = None
        self.last_stamp = None

    def fallback_output(self) -> ControlOutput | None:
        """Last output if one exists, otherwise the activation snapshot."""
        if self.last_output is not None:
            return self.last_output
        return self.snapshot
