"""
Main entry point when running the swerve_control module with python -m.
"""

import argparse
import asyncio
import logging
import math
import sys

from wpimath.geometry import Pose2d

from .client import AlignmentRun, main, setup_logging
from .config import BRIDGE_URI
from .geometry import make_pose


def parse_pose(values) -> Pose2d:
    x, y, degrees = values
    return make_pose(x, y, math.radians(degrees))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Run a simulated swerve alignment and record the results"
    )
    parser.add_argument(
        "--start",
        nargs=3,
        type=float,
        default=[1.0, 0.0, 0.0],
        metavar=("X", "Y", "DEG"),
        help="Start pose (default: 1 0 0)",
    )
    parser.add_argument(
        "--target",
        nargs=3,
        type=float,
        default=[0.0, 0.0, 0.0],
        metavar=("X", "Y", "DEG"),
        help="Target pose (default: 0 0 0)",
    )
    parser.add_argument(
        "--pass-through",
        action="store_true",
        help="Keep moving through the target instead of stopping",
    )
    parser.add_argument("--profile", default="default", help="Align tuning profile name")
    parser.add_argument("--no-vision", action="store_true", help="Disable simulated vision")
    parser.add_argument(
        "--duration", type=float, default=10.0, help="Maximum simulated time in seconds"
    )
    parser.add_argument("--realtime", action="store_true", help="Pace the loop at wall-clock speed")
    parser.add_argument("--tunables", default=None, help="JSON file of tunable overrides")
    parser.add_argument(
        "--bridge-uri",
        nargs="?",
        const=BRIDGE_URI,
        default=None,
        help=f"WebSocket URI streaming table updates (bare flag uses {BRIDGE_URI})",
    )
    parser.add_argument("--plot", action="store_true", help="Plot the run when it completes")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging with timestamps"
    )
    args = parser.parse_args()

    setup_logging(args.verbose)

    try:
        run = AlignmentRun(
            start=parse_pose(args.start),
            target=parse_pose(args.target),
            stop_when_finished=not args.pass_through,
            profile=args.profile,
            vision=not args.no_vision,
            duration=args.duration,
            realtime=args.realtime,
            bridge_uri=args.bridge_uri,
            tunables_path=args.tunables,
        )
    except (ValueError, FileNotFoundError) as e:
        logging.error(f"Error: {e}")
        sys.exit(1)

    try:
        asyncio.run(main(run))
    except KeyboardInterrupt:
        logging.info("\nExiting...")
        sys.exit(0)

    if args.plot:
        from .plot_results import plot_run_summary

        plot_run_summary(run.recorder.run_dir, save_plots=True, show_plots=True)
