"""Field-space alignment to a target pose.

The align controller drives the pose estimate onto a target pose with three
trapezoid-profiled PID controllers (x, y, rotation). It runs as a command:

    INIT ──▶ TRACKING ──▶ SETTLING ──▶ DONE
                 ▲            │
                 └────────────┘  predicate broke before the dwell elapsed
    TRACKING / SETTLING ──▶ CANCELLED   (interrupted)

Goal-reached predicate:
    stop-when-finished:  x, y and rotation controllers all at goal
    pass-through:        dist² <= pos_dist_tol² and rotation at goal

``is_finished`` becomes true once the predicate has held continuously for the
profile's finish time. In pass-through mode the x/y outputs come from a second
pair of controllers with effectively unlimited acceleration, and on completion
the robot keeps moving at the last commanded x/y velocity so consecutive
alignments chain without stopping.
"""

import enum
import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from wpimath.controller import ProfiledPIDController, ProfiledPIDControllerRadians
from wpimath.geometry import Pose2d
from wpimath.trajectory import TrapezoidProfile, TrapezoidProfileRadians

from .commands import Command
from .config import (
    ALIGN_FEEDFORWARD,
    ALIGN_FINISH_TIME_MS,
    ALIGN_INFINITE_ACCELERATION,
    ALIGN_LOOKAHEAD_DISTANCE,
    ALIGN_MAX_ACCELERATION,
    ALIGN_MAX_VELOCITY,
    ALIGN_POS_DIST_TOLERANCE,
    ALIGN_POS_TOLERANCE,
    ALIGN_ROT_D,
    ALIGN_ROT_I,
    ALIGN_ROT_MAX_ACCELERATION_DEG,
    ALIGN_ROT_MAX_VELOCITY_DEG,
    ALIGN_ROT_P,
    ALIGN_ROTATION_TOLERANCE_DEG,
    ALIGN_X_AXIS_D,
    ALIGN_X_AXIS_I,
    ALIGN_X_AXIS_P,
    ALIGN_Y_AXIS_D,
    ALIGN_Y_AXIS_I,
    ALIGN_Y_AXIS_P,
    LOOP_PERIOD,
    TERM_BLUE,
    TERM_RESET,
)
from .drivetrain import Drivetrain
from .estimator import PoseEstimator
from .geometry import distance_squared, heading_of, pose_distance_back
from .hardware import Clock
from .telemetry import NullTelemetry, Telemetry
from .tunables import TunableStore


class AlignPhase(enum.Enum):
    INIT = "init"
    TRACKING = "tracking"
    SETTLING = "settling"
    DONE = "done"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class AlignGoal:
    """Target of one alignment attempt.

    Attributes:
        target: Field pose to reach
        profile: Tuning profile name selecting constraints and tolerances
        stop_when_finished: Stop at the goal (True) or pass through it (False)
    """

    target: Pose2d
    profile: str
    stop_when_finished: bool


def _sign(value: float) -> float:
    if value > 0.0:
        return 1.0
    if value < 0.0:
        return -1.0
    return 0.0


class AlignController(Command):
    """Three-axis motion-profiled alignment command."""

    name = "align"

    def __init__(
        self,
        drivetrain: Drivetrain,
        estimator: PoseEstimator,
        pose_supplier: Callable[[], Pose2d],
        stop_when_finished: bool,
        profile: str,
        clock: Clock,
        tunables: Optional[TunableStore] = None,
        telemetry: Optional[Telemetry] = None,
    ):
        """Initialize the align controller.

        Args:
            drivetrain: Drivetrain to command
            estimator: Pose estimator providing the measured pose
            pose_supplier: Produces the target pose; read once per activation
            stop_when_finished: Stop at the goal, or keep moving for chaining
            profile: Tuning profile name (selects ``align_{profile}_*`` keys)
            clock: Monotonic clock for the settle timer
            tunables: Gains, constraints and tolerances
            telemetry: Debug publisher
        """
        self.drivetrain = drivetrain
        self.estimator = estimator
        self.pose_supplier = pose_supplier
        self.stop_when_finished = stop_when_finished
        self.profile = profile
        self.clock = clock
        self.tunables = tunables if tunables is not None else TunableStore()
        self.telemetry = telemetry if telemetry is not None else NullTelemetry()
        self.name = f"align[{profile}]"

        # Latched (max velocity, max acceleration) per axis; rotation in radians
        self.x_limits: Tuple[float, float] = (ALIGN_MAX_VELOCITY, ALIGN_MAX_ACCELERATION)
        self.y_limits: Tuple[float, float] = (ALIGN_MAX_VELOCITY, ALIGN_MAX_ACCELERATION)
        self.rot_limits: Tuple[float, float] = (
            math.radians(ALIGN_ROT_MAX_VELOCITY_DEG),
            math.radians(ALIGN_ROT_MAX_ACCELERATION_DEG),
        )

        self.x_pid = ProfiledPIDController(
            ALIGN_X_AXIS_P, ALIGN_X_AXIS_I, ALIGN_X_AXIS_D,
            TrapezoidProfile.Constraints(*self.x_limits), LOOP_PERIOD,
        )
        self.y_pid = ProfiledPIDController(
            ALIGN_Y_AXIS_P, ALIGN_Y_AXIS_I, ALIGN_Y_AXIS_D,
            TrapezoidProfile.Constraints(*self.y_limits), LOOP_PERIOD,
        )
        self.rot_pid = ProfiledPIDControllerRadians(
            ALIGN_ROT_P, ALIGN_ROT_I, ALIGN_ROT_D,
            TrapezoidProfileRadians.Constraints(*self.rot_limits), LOOP_PERIOD,
        )
        self.rot_pid.enableContinuousInput(-math.pi, math.pi)
        self.x_inf_pid = ProfiledPIDController(
            ALIGN_X_AXIS_P, ALIGN_X_AXIS_I, ALIGN_X_AXIS_D,
            TrapezoidProfile.Constraints(ALIGN_MAX_VELOCITY, ALIGN_INFINITE_ACCELERATION),
            LOOP_PERIOD,
        )
        self.y_inf_pid = ProfiledPIDController(
            ALIGN_Y_AXIS_P, ALIGN_Y_AXIS_I, ALIGN_Y_AXIS_D,
            TrapezoidProfile.Constraints(ALIGN_MAX_VELOCITY, ALIGN_INFINITE_ACCELERATION),
            LOOP_PERIOD,
        )

        self.phase = AlignPhase.INIT
        self.goal: Optional[AlignGoal] = None
        self.pos_tolerance = ALIGN_POS_TOLERANCE
        self.rotation_tolerance = math.radians(ALIGN_ROTATION_TOLERANCE_DEG)
        self.pos_dist_tolerance = ALIGN_POS_DIST_TOLERANCE
        self.dist_to_target = math.inf
        self.final_x = 0.0
        self.final_y = 0.0
        self.final_rot = 0.0
        self.goal_reached = False
        self.settle_start: Optional[float] = None

    def _key(self, suffix: str) -> str:
        return f"align_{self.profile}_{suffix}"

    def initialize(self) -> None:
        """Snapshot the goal and tunables, and reset the axis controllers.

        Gains, constraints and tolerances latch here for the whole attempt.
        """
        target = self.pose_supplier()
        self.goal = AlignGoal(target, self.profile, self.stop_when_finished)
        self.dist_to_target = math.inf
        self.final_x = 0.0
        self.final_y = 0.0
        self.final_rot = 0.0
        self.goal_reached = False
        self.settle_start = None

        get = self.tunables.get
        x_gains = (
            get("align_x_axis_p", ALIGN_X_AXIS_P),
            get("align_x_axis_i", ALIGN_X_AXIS_I),
            get("align_x_axis_d", ALIGN_X_AXIS_D),
        )
        y_gains = (
            get("align_y_axis_p", ALIGN_Y_AXIS_P),
            get("align_y_axis_i", ALIGN_Y_AXIS_I),
            get("align_y_axis_d", ALIGN_Y_AXIS_D),
        )
        self.x_pid.setPID(*x_gains)
        self.x_inf_pid.setPID(*x_gains)
        self.y_pid.setPID(*y_gains)
        self.y_inf_pid.setPID(*y_gains)
        self.rot_pid.setPID(
            get("align_rot_p", ALIGN_ROT_P),
            get("align_rot_i", ALIGN_ROT_I),
            get("align_rot_d", ALIGN_ROT_D),
        )

        self.x_limits = (
            get(self._key("x_max_vel_m"), ALIGN_MAX_VELOCITY),
            get(self._key("x_max_accel_mps"), ALIGN_MAX_ACCELERATION),
        )
        self.y_limits = (
            get(self._key("y_max_vel_m"), ALIGN_MAX_VELOCITY),
            get(self._key("y_max_accel_mps"), ALIGN_MAX_ACCELERATION),
        )
        self.rot_limits = (
            math.radians(get(self._key("rot_max_vel_deg"), ALIGN_ROT_MAX_VELOCITY_DEG)),
            math.radians(get(self._key("rot_max_accel_degps"), ALIGN_ROT_MAX_ACCELERATION_DEG)),
        )
        self.x_pid.setConstraints(TrapezoidProfile.Constraints(*self.x_limits))
        self.y_pid.setConstraints(TrapezoidProfile.Constraints(*self.y_limits))
        self.rot_pid.setConstraints(TrapezoidProfileRadians.Constraints(*self.rot_limits))
        self.x_inf_pid.setConstraints(
            TrapezoidProfile.Constraints(self.x_limits[0], ALIGN_INFINITE_ACCELERATION)
        )
        self.y_inf_pid.setConstraints(
            TrapezoidProfile.Constraints(self.y_limits[0], ALIGN_INFINITE_ACCELERATION)
        )

        self.pos_tolerance = get(self._key("pos_tolerance"), ALIGN_POS_TOLERANCE)
        self.rotation_tolerance = math.radians(
            get(self._key("rotation_tolerance"), ALIGN_ROTATION_TOLERANCE_DEG)
        )
        for controller in (self.x_pid, self.y_pid, self.x_inf_pid, self.y_inf_pid):
            controller.setTolerance(self.pos_tolerance)
        self.rot_pid.setTolerance(self.rotation_tolerance)
        self.pos_dist_tolerance = get(self._key("pos_dist_tol"), ALIGN_POS_DIST_TOLERANCE)

        # Start every profile from the measured state so there is no jump
        pose = self.estimator.get_pose2d()
        velocity = self.drivetrain.get_field_relative_velocity()
        self.x_pid.reset(pose.x, velocity.vx)
        self.y_pid.reset(pose.y, velocity.vy)
        self.rot_pid.reset(heading_of(pose), velocity.omega)
        self.x_inf_pid.reset(pose.x, velocity.vx)
        self.y_inf_pid.reset(pose.y, velocity.vy)

        self.x_pid.setGoal(target.x)
        self.y_pid.setGoal(target.y)
        self.rot_pid.setGoal(heading_of(target))
        self.x_inf_pid.setGoal(target.x)
        self.y_inf_pid.setGoal(target.y)

        if not self.stop_when_finished:
            lookahead = pose_distance_back(
                pose, target, get("fake_pose_dist_back", ALIGN_LOOKAHEAD_DISTANCE)
            )
            self.x_pid.calculate(lookahead.x)
            self.y_pid.calculate(lookahead.y)
            self.x_inf_pid.calculate(lookahead.x)
            self.y_inf_pid.calculate(lookahead.y)

        self.phase = AlignPhase.TRACKING
        logging.info(
            f"{TERM_BLUE}Aligning to ({target.x:.2f}, {target.y:.2f}, "
            f"{target.rotation().degrees():.1f}°) with '{self.profile}' profile"
            f"{' (pass-through)' if not self.stop_when_finished else ''}{TERM_RESET}"
        )

    def execute(self) -> None:
        """Run one control period of the three axis controllers."""
        if self.goal is None:
            raise RuntimeError("AlignController.execute called before initialize")
        target = self.goal.target
        pose = self.estimator.get_pose2d()

        self.dist_to_target = distance_squared(pose, target)

        x_calc = self.x_pid.calculate(pose.x)
        y_calc = self.y_pid.calculate(pose.y)
        rot_calc = self.rot_pid.calculate(heading_of(pose))
        inf_x = self.x_inf_pid.calculate(pose.x)
        inf_y = self.y_inf_pid.calculate(pose.y)

        if self.stop_when_finished:
            # Live-tunable per tick
            align_ff = self.tunables.get("align_ff", ALIGN_FEEDFORWARD)
            self.final_x = x_calc
            if not (self.x_pid.atGoal() or self.x_pid.atSetpoint()):
                self.final_x += _sign(target.x - pose.x) * align_ff
            self.final_y = y_calc
            if not (self.y_pid.atGoal() or self.y_pid.atSetpoint()):
                self.final_y += _sign(target.y - pose.y) * align_ff
        else:
            self.final_x = inf_x
            self.final_y = inf_y
        self.final_rot = rot_calc

        self.drivetrain.drive(
            self.final_x,
            self.final_y,
            self.final_rot,
            True,
            False,
            self.stop_when_finished,
        )

        self._update_settle_timer()
        self._publish(pose)

    def _check_at_goal(self) -> bool:
        if self.stop_when_finished:
            return self.x_pid.atGoal() and self.y_pid.atGoal() and self.rot_pid.atGoal()
        return (
            self.dist_to_target <= self.pos_dist_tolerance * self.pos_dist_tolerance
            and self.rot_pid.atGoal()
        )

    def _update_settle_timer(self) -> None:
        self.goal_reached = self._check_at_goal()
        if self.goal_reached:
            if self.settle_start is None:
                self.settle_start = self.clock.now()
                self.phase = AlignPhase.SETTLING
                logging.info("Hit goal, waiting for settle time to expire")
        elif self.settle_start is not None:
            logging.debug("Goal lost before settle time expired, timer reset")
            self.settle_start = None
            self.phase = AlignPhase.TRACKING

    def is_finished(self) -> bool:
        """True once the goal predicate has held continuously for the finish time."""
        if not self.goal_reached or self.settle_start is None:
            return False
        finish_time = self.tunables.get(self._key("finish_time"), ALIGN_FINISH_TIME_MS) / 1000.0
        return self.clock.now() - self.settle_start >= finish_time

    def end(self, interrupted: bool) -> None:
        """Stop, or keep driving at the last x/y command in pass-through mode."""
        if self.stop_when_finished:
            self.drivetrain.zero_voltage()
        else:
            self.drivetrain.drive(self.final_x, self.final_y, 0.0, True, True, True)

        if interrupted:
            if self.phase in (AlignPhase.INIT, AlignPhase.TRACKING, AlignPhase.SETTLING):
                self.phase = AlignPhase.CANCELLED
            logging.info(f"Align interrupted, final commanded speeds: {self.final_x:.3f} {self.final_y:.3f}")
        else:
            self.phase = AlignPhase.DONE
            logging.info(
                f"{TERM_BLUE}✓ Align complete, final commanded speeds: "
                f"{self.final_x:.3f} {self.final_y:.3f}{TERM_RESET}"
            )

    def cancel(self) -> None:
        """Interrupt an active attempt outside of a control loop."""
        if self.phase in (AlignPhase.TRACKING, AlignPhase.SETTLING):
            self.end(True)

    def _publish(self, pose: Pose2d) -> None:
        target = self.goal.target
        self.telemetry.set_entry("Dist to target (Error)", self.dist_to_target)
        self.telemetry.set_entry("X Pid Error", self.x_pid.getPositionError())
        self.telemetry.set_entry("Y Pid Error", self.y_pid.getPositionError())
        self.telemetry.set_entry("Rot Pid Error", self.rot_pid.getPositionError())
        self.telemetry.set_entry("X Pid Error (inf)", self.x_inf_pid.getPositionError())
        self.telemetry.set_entry("Y Pid Error (inf)", self.y_inf_pid.getPositionError())
        self.telemetry.set_entry("X Pid setpoint", self.x_pid.atSetpoint())
        self.telemetry.set_entry("X Pid goal", self.x_pid.atGoal())
        self.telemetry.set_entry("Y Pid setpoint", self.y_pid.atSetpoint())
        self.telemetry.set_entry("Y Pid goal", self.y_pid.atGoal())
        self.telemetry.set_entry("Rot Pid setpoint", self.rot_pid.atSetpoint())
        self.telemetry.set_entry("Rot Pid goal", self.rot_pid.atGoal())
        self.telemetry.set_entry("Robot rotation", heading_of(pose))
        self.telemetry.set_entry("Rot setpoint", self.rot_pid.getSetpoint().position)
        self.telemetry.set_entry("Xms", self.final_x)
        self.telemetry.set_entry("Yms", self.final_y)
        self.telemetry.set_entry("Rrads", self.final_rot)
        self.telemetry.set_array_entry("target_pose", [target.x, target.y, heading_of(target)])

    def get_diagnostics(self) -> Dict[str, object]:
        """Get diagnostic information for logging and debugging."""
        target = self.goal.target if self.goal is not None else Pose2d()
        return {
            "phase": self.phase.value,
            "x_target": target.x,
            "y_target": target.y,
            "theta_target": heading_of(target),
            "vx_cmd": self.final_x,
            "vy_cmd": self.final_y,
            "omega_cmd": self.final_rot,
            "dist_sq": self.dist_to_target,
            "goal_reached": self.goal_reached,
        }
