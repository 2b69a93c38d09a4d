#!/usr/bin/env python3
"""
Flight Replay CLI Script

Replays a recorded flight (vehicle states + references) through the NSF
controller and writes the produced commands as JSON.

Usage Examples:
    # Replay with the default configuration
    python scripts/replay_log.py --log flights/hover.yaml

    # Replay with custom gains, keeping every 10th cycle
    python scripts/replay_log.py --log flights/hover.yaml \\
        --config configs/nsf_controller.yaml --log-interval 10

Environment Variables:
    NSF_* variables override configuration values (see nsf_controller.utils)
"""

import logging
import sys
from pathlib import Path

# Add src to path for local development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from nsf_controller.replay import main

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

if __name__ == "__main__":
    sys.exit(main())
