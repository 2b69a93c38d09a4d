"""
Recorded Flight Replay

Feeds a recorded sequence of vehicle states and references through the NSF
controller and records the produced commands. Useful for retuning gains
offline against real flight data.

Recording format (YAML or JSON):

    uav_mass: 2.0
    gravity: 9.81
    motor_params: {hover_thrust_a: 0.15, hover_thrust_b: -0.2}
    activation_command: {thrust: 0.45, total_mass: 2.0}   # optional
    samples:
      - state: {position: [0, 0, 1], stamp: 0.00, ...}
        reference: {position: [0, 0, 1], yaw: 0.0, ...}
      - ...

Usage:
    python scripts/replay_log.py --log flight.yaml --config configs/nsf_controller.yaml
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import yaml

from .config import ConfigVersionError, MotorParams
from .controllers import NsfController
from .messages import ControlOutput, Reference, VehicleState
from .utils import DataLogger, load_config

logger = logging.getLogger(__name__)


def load_recording(path: str | Path) -> dict:
    """
    Load a recording file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the format is unsupported or the file lacks samples.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Recording not found: {path}")

    with open(path) as f:
        if path.suffix in (".yaml", ".yml"):
            recording = yaml.safe_load(f)
        elif path.suffix == ".json":
            recording = json.load(f)
        else:
            raise ValueError(f"Unsupported recording format: {path.suffix}")

    if not isinstance(recording, dict) or not recording.get("samples"):
        raise ValueError(f"Recording has no samples: {path}")
    return recording


def replay(
    controller: NsfController,
    recording: dict,
    data_logger: DataLogger | None = None,
) -> list[ControlOutput | None]:
    """
    Run a recording through an initialized controller.

    The controller is activated with the recording's activation command (or a
    hover command for the nominal mass) and the gain filter is ticked at its
    configured rate in recording time.

    Args:
        controller: Initialized controller.
        recording: Recording dictionary (see module docstring).
        data_logger: Optional logger receiving every cycle.

    Returns:
        The controller outputs, one per sample.
    """
    activation = recording.get("activation_command")
    if activation is None:
        activation_command = ControlOutput(
            thrust=controller.hover_thrust,
            total_mass=controller.uav_mass,
            controller="replay",
        )
    else:
        activation_command = ControlOutput.from_dict(activation)

    if not controller.activate(activation_command):
        raise RuntimeError("Controller refused to activate")

    filter_period = 1.0 / controller.config.gains_filter.filter_rate
    next_filter_tick = None
    outputs = []

    for sample in recording["samples"]:
        state = VehicleState.from_dict(sample.get("state", {}))
        reference = Reference.from_dict(sample.get("reference", {}))

        if "gains" in sample:
            controller.set_desired_gains(sample["gains"])

        if next_filter_tick is None:
            next_filter_tick = state.stamp + filter_period
        while state.stamp >= next_filter_tick:
            controller.tick_gain_filter()
            next_filter_tick += filter_period

        output = controller.update(state, reference)
        outputs.append(output)
        if data_logger is not None:
            data_logger.log(state, reference, output)

    controller.deactivate()
    return outputs


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Replay a recorded flight through the NSF controller"
    )
    parser.add_argument(
        "--log",
        type=str,
        required=True,
        help="Path to the recording (YAML or JSON)",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to the controller configuration file",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default="reports/replay",
        help="Output directory for the recorded commands",
    )
    parser.add_argument(
        "--name",
        type=str,
        default="replay",
        help="Name of the output file (without extension)",
    )
    parser.add_argument(
        "--log-interval",
        type=int,
        default=1,
        help="Cycles between recorded entries",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args.config)
        recording = load_recording(args.log)
    except (FileNotFoundError, ValueError) as e:
        logger.error("Failed to load inputs: %s", e)
        return 1

    motor_params = MotorParams(**recording.get("motor_params", {}))
    controller = NsfController(
        motor_params=motor_params,
        uav_mass=float(recording.get("uav_mass", 1.0)),
        gravity=float(recording.get("gravity", 9.81)),
    )
    try:
        controller.initialize(config)
    except ConfigVersionError:
        raise
    except ValueError as e:
        logger.error("Invalid controller configuration: %s", e)
        return 1

    data_logger = DataLogger(
        output_dir=args.output_dir,
        experiment_name=args.name,
        log_interval=args.log_interval,
    )
    outputs = replay(controller, recording, data_logger)
    path = data_logger.save()

    produced = sum(output is not None for output in outputs)
    logger.info("Replayed %d samples, %d commands, saved to %s", len(outputs), produced, path)
    return 0


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    sys.exit(main())
