"""Commands and the periodic control loop.

The host scheduler calls ``ControlLoop.tick`` once per control period. Each
tick:
1. ``Drivetrain.periodic``: odometry into the pose estimator, telemetry
2. Poll every vision source once (never blocks) and fuse present results
3. Run the active command (initialize on first tick, then execute and
   check for completion)

Only one command is active at a time. Scheduling a new command or calling
``cancel`` interrupts the active one, which runs its ``end(True)`` cleanup
before control returns.
"""

import logging
from typing import Callable, List, Optional, Sequence

from wpimath import applyDeadband

from .config import CONTROLLER_DEADBAND, MAX_ANGULAR_SPEED, MAX_SPEED_METERS_PER_SECOND
from .drivetrain import Drivetrain
from .estimator import PoseEstimator
from .telemetry import NullTelemetry, Telemetry
from .tunables import TunableStore


class Command:
    """Base class for anything the control loop can run."""

    name = "command"

    def initialize(self) -> None:
        pass

    def execute(self) -> None:
        pass

    def is_finished(self) -> bool:
        return False

    def end(self, interrupted: bool) -> None:
        pass


class DriveCommand(Command):
    """Teleoperated field-relative driving from joystick suppliers.

    Suppliers return normalized inputs in [-1, 1]; a deadband is applied and
    the result is scaled to the platform speed limits.
    """

    name = "drive"

    def __init__(
        self,
        drivetrain: Drivetrain,
        forward: Callable[[], float],
        sideways: Callable[[], float],
        rotation: Callable[[], float],
        tunables: Optional[TunableStore] = None,
        telemetry: Optional[Telemetry] = None,
    ):
        self.drivetrain = drivetrain
        self.forward = forward
        self.sideways = sideways
        self.rotation = rotation
        self.tunables = tunables if tunables is not None else TunableStore()
        self.telemetry = telemetry if telemetry is not None else NullTelemetry()

    def execute(self) -> None:
        deadband = self.tunables.get("controller_deadband", CONTROLLER_DEADBAND)
        forward = applyDeadband(self.forward(), deadband)
        sideways = applyDeadband(self.sideways(), deadband)
        rotation = applyDeadband(self.rotation(), deadband)

        self.telemetry.set_entry("Forward desired", forward)
        self.telemetry.set_entry("Sideways desired", sideways)
        self.telemetry.set_entry("Rotation desired", rotation)

        self.drivetrain.drive(
            forward * MAX_SPEED_METERS_PER_SECOND,
            sideways * MAX_SPEED_METERS_PER_SECOND,
            rotation * MAX_ANGULAR_SPEED,
            True,
            False,
            True,
        )

    def end(self, interrupted: bool) -> None:
        self.drivetrain.zero_voltage()


class ControlLoop:
    """Single-threaded tick harness.

    Attributes:
        drivetrain: Drivetrain whose ``periodic`` runs every tick
        estimator: Pose estimator receiving vision samples
        sources: Vision pose sources polled every tick
        ticks: Number of completed ticks
    """

    def __init__(
        self,
        drivetrain: Drivetrain,
        estimator: PoseEstimator,
        sources: Sequence = (),
        telemetry: Optional[Telemetry] = None,
    ):
        self.drivetrain = drivetrain
        self.estimator = estimator
        self.sources: List = list(sources)
        self.telemetry = telemetry if telemetry is not None else NullTelemetry()
        self.ticks = 0

        self._active: Optional[Command] = None
        self._initialized = False
        self.last_finished: Optional[Command] = None

    @property
    def active(self) -> Optional[Command]:
        return self._active

    def schedule(self, command: Command) -> None:
        """Make ``command`` active, interrupting the current one."""
        if self._active is not None:
            self.cancel()
        logging.info(f"Scheduling {command.name}")
        self._active = command
        self._initialized = False

    def cancel(self) -> None:
        """Interrupt the active command (runs its ``end(True)``)."""
        command = self._active
        if command is None:
            return
        self._active = None
        logging.info(f"Interrupting {command.name}")
        self._end(command, interrupted=True)

    def tick(self) -> None:
        """Run one control period."""
        self.drivetrain.periodic()
        self.estimator.poll(self.sources)

        command = self._active
        if command is not None:
            try:
                if not self._initialized:
                    command.initialize()
                    self._initialized = True
                command.execute()
                if command.is_finished():
                    self._active = None
                    self.last_finished = command
                    logging.info(f"{command.name} finished")
                    command.end(False)
            except Exception:
                logging.error(f"{command.name} raised, cancelling", exc_info=True)
                self._active = None
                self._end(command, interrupted=True)

        self.ticks += 1
        self.telemetry.set_entry("Loop ticks", self.ticks)

    def _end(self, command: Command, interrupted: bool) -> None:
        try:
            command.end(interrupted)
        except Exception:
            logging.error(f"{command.name} failed to end cleanly, stopping drivetrain", exc_info=True)
            self.drivetrain.zero_voltage()
