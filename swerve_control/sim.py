"""Simulated swerve robot for demos and tests.

This module provides simple plant models behind the hardware interfaces:
- Drive actuators: first-order velocity response to the closed-loop reference
- Steer actuators: rate-limited move to the commanded angle
- Gyro: integrates the true yaw rate, reports clockwise-positive degrees
- Vision appliance: publishes noisy, latency-delayed camera poses into a table

``SimulatedRobot`` wires these to the real control stack (modules,
drivetrain, pose estimator, appliance pose source, control loop) on a manual
clock and keeps a ground-truth pose for comparison.
"""

import logging
import math
from collections import deque
from typing import Callable, Deque, List, Optional, Tuple

import numpy as np
from wpimath.geometry import Pose2d, Rotation2d, Transform3d, Twist2d
from wpimath.kinematics import SwerveModuleState

from .align import AlignController
from .commands import ControlLoop
from .config import (
    DEBUG_TABLE,
    DRIVE_FEEDFORWARD_KV,
    LOOP_PERIOD,
    MODULE_CHASSIS_ANGULAR_OFFSETS,
    MODULE_NAMES,
    ROBOT_TO_CAMERA,
    SIM_DRIVE_TIME_CONSTANT,
    SIM_STEER_MAX_RATE,
    SIM_VISION_LATENCY,
    SIM_VISION_PERIOD,
    SWERVE_TABLE,
    TUNABLES_TABLE,
)
from .drivetrain import Drivetrain
from .estimator import PoseEstimator
from .geometry import (
    distance_squared,
    heading_of,
    step_towards_circular,
    to_pose3d,
    transform_from_tuple,
    wrap_angle,
)
from .hardware import DriveActuator, HeadingSensor, ManualClock, SteerActuator
from .kinematics import make_kinematics
from .module import SwerveModule
from .table import PubSubTable, TableRegistry
from .telemetry import Telemetry
from .tunables import TunableStore
from .vision import AppliancePoseSource


class SimDriveActuator(DriveActuator):
    """Drive motor whose velocity lags the reference with a first-order response.

    Attributes:
        encoder_scale: Ratio of reported to true distance (1.0 = perfect odometry)
    """

    def __init__(self, time_constant: float = SIM_DRIVE_TIME_CONSTANT, encoder_scale: float = 1.0):
        self.time_constant = time_constant
        self.encoder_scale = encoder_scale
        self.velocity = 0.0
        self.true_distance = 0.0
        self.reported_offset = 0.0
        self.reference = 0.0
        self.feedforward = 0.0
        self.voltage: Optional[float] = None

    def set_velocity(self, velocity: float, arbitrary_feedforward: float = 0.0) -> None:
        self.reference = velocity
        self.feedforward = arbitrary_feedforward
        self.voltage = None

    def set_voltage(self, voltage: float) -> None:
        self.voltage = voltage

    def get_position(self) -> float:
        return self.true_distance * self.encoder_scale - self.reported_offset

    def get_velocity(self) -> float:
        return self.velocity * self.encoder_scale

    def set_position(self, position: float) -> None:
        self.reported_offset = self.true_distance * self.encoder_scale - position

    def step(self, dt: float) -> None:
        target = self.voltage / DRIVE_FEEDFORWARD_KV if self.voltage is not None else self.reference
        alpha = 1.0 - math.exp(-dt / self.time_constant)
        self.velocity += (target - self.velocity) * alpha
        self.true_distance += self.velocity * dt


class SimSteerActuator(SteerActuator):
    """Steer motor turning toward its reference at a bounded rate."""

    def __init__(self, angle: float = 0.0, max_rate: float = SIM_STEER_MAX_RATE):
        self.angle = wrap_angle(angle)
        self.reference = self.angle
        self.max_rate = max_rate
        self.powered = True

    def set_position(self, angle: float) -> None:
        self.reference = wrap_angle(angle)
        self.powered = True

    def set_voltage(self, voltage: float) -> None:
        self.powered = voltage != 0.0

    def get_position(self) -> float:
        return self.angle

    def step(self, dt: float) -> None:
        if self.powered:
            self.angle = step_towards_circular(self.angle, self.reference, self.max_rate * dt)


class SimGyro(HeadingSensor):
    """Gyro integrating the true yaw rate; reports clockwise-positive degrees."""

    def __init__(self, initial_yaw: float = 0.0):
        self.yaw = initial_yaw
        self.yaw_rate = 0.0
        self.zero = 0.0

    def step(self, yaw_rate: float, dt: float) -> None:
        self.yaw_rate = yaw_rate
        self.yaw += yaw_rate * dt

    def get_angle(self) -> float:
        return -math.degrees(self.yaw - self.zero)

    def get_rate(self) -> float:
        return -math.degrees(self.yaw_rate)

    def reset(self) -> None:
        self.zero = self.yaw


class SimVisionAppliance:
    """Publishes camera poses the way a smart-camera appliance does.

    Each frame reports the camera pose at ``now - latency`` plus Gaussian
    noise, the pipeline/capture latencies in milliseconds and a heartbeat.
    """

    def __init__(
        self,
        table: PubSubTable,
        robot_to_camera: Transform3d,
        period: float = SIM_VISION_PERIOD,
        latency: float = SIM_VISION_LATENCY,
        noise_std: float = 0.01,
        seed: Optional[int] = None,
    ):
        self.table = table
        self.robot_to_camera = robot_to_camera
        self.period = period
        self.latency = latency
        self.noise_std = noise_std
        self.rng = np.random.default_rng(seed)
        self.heartbeat = 0
        self._next_frame = 0.0
        self._history: Deque[Tuple[float, Pose2d]] = deque()

    def record(self, now: float, truth: Pose2d) -> None:
        self._history.append((now, truth))
        while self._history and self._history[0][0] < now - 2.0 * self.latency - self.period:
            self._history.popleft()

    def step(self, now: float) -> None:
        if now < self._next_frame or not self._history:
            return
        self._next_frame = now + self.period

        capture_time = now - self.latency
        captured = self._history[0][1]
        for timestamp, pose in self._history:
            if timestamp > capture_time:
                break
            captured = pose

        camera = to_pose3d(captured).transformBy(self.robot_to_camera)
        noise = self.rng.normal(0.0, self.noise_std, size=3)
        rotation = camera.rotation()
        roll, pitch, yaw = (math.degrees(a) for a in (rotation.X(), rotation.Y(), rotation.Z()))
        self.heartbeat += 1
        pipeline_ms = self.latency * 1000.0 * 0.6
        self.table.put(
            "botpose_wpiblue",
            [
                camera.x + float(noise[0]),
                camera.y + float(noise[1]),
                camera.z,
                roll,
                pitch,
                yaw + math.degrees(float(noise[2])),
            ],
        )
        self.table.put("targetpose_cameraspace", [0.0, 0.0, 2.0, 0.0, 0.0, 0.0])
        self.table.put("tl", pipeline_ms)
        self.table.put("cl", self.latency * 1000.0 - pipeline_ms)
        self.table.put("hb", self.heartbeat)


class SimulatedRobot:
    """Complete control stack on simulated hardware.

    Attributes:
        clock: Manual clock advanced by ``step``
        registry: Pub/sub tables (debug, swerve, tunables, camera)
        drivetrain: Real drivetrain over simulated actuators
        estimator: Real pose estimator
        loop: Control loop ticked once per ``step``
        truth: Ground-truth robot pose
    """

    def __init__(
        self,
        start: Pose2d = Pose2d(),
        period: float = LOOP_PERIOD,
        vision: bool = True,
        encoder_scale: float = 1.0,
        vision_noise: float = 0.01,
        seed: Optional[int] = 0,
        tunables: Optional[TunableStore] = None,
        registry: Optional[TableRegistry] = None,
    ):
        self.period = period
        self.clock = ManualClock()
        self.registry = registry if registry is not None else TableRegistry()
        self.telemetry = Telemetry(self.registry.get_table(DEBUG_TABLE))
        self.swerve_telemetry = Telemetry(self.registry.get_table(SWERVE_TABLE))
        self.tunables = (
            tunables
            if tunables is not None
            else TunableStore(table=self.registry.get_table(TUNABLES_TABLE))
        )
        self.truth = start

        self.kinematics = make_kinematics()
        self.drive_actuators: List[SimDriveActuator] = []
        self.steer_actuators: List[SimSteerActuator] = []
        modules = []
        for name, offset in zip(MODULE_NAMES, MODULE_CHASSIS_ANGULAR_OFFSETS):
            drive = SimDriveActuator(encoder_scale=encoder_scale)
            steer = SimSteerActuator(angle=offset)
            self.drive_actuators.append(drive)
            self.steer_actuators.append(steer)
            modules.append(
                SwerveModule(drive, steer, offset, name, self.tunables, self.swerve_telemetry)
            )

        self.gyro = SimGyro(initial_yaw=heading_of(start))
        self.estimator = PoseEstimator(self.kinematics, initial_pose=start)
        self.drivetrain = Drivetrain(
            modules,
            self.gyro,
            self.clock,
            kinematics=self.kinematics,
            estimator=self.estimator,
            tunables=self.tunables,
            telemetry=self.swerve_telemetry,
        )

        robot_to_camera = transform_from_tuple(ROBOT_TO_CAMERA)
        camera_table = self.registry.get_table("limelight")
        self.appliance: Optional[SimVisionAppliance] = None
        sources = []
        if vision:
            self.appliance = SimVisionAppliance(
                camera_table, robot_to_camera, noise_std=vision_noise, seed=seed
            )
            sources.append(
                AppliancePoseSource("limelight", camera_table, robot_to_camera, self.clock)
            )
        self.loop = ControlLoop(self.drivetrain, self.estimator, sources, self.telemetry)

    def true_module_states(self) -> Tuple[SwerveModuleState, ...]:
        return tuple(
            SwerveModuleState(drive.velocity, Rotation2d(steer.angle - offset))
            for drive, steer, offset in zip(
                self.drive_actuators, self.steer_actuators, MODULE_CHASSIS_ANGULAR_OFFSETS
            )
        )

    def step(self) -> None:
        """Advance the plant one period, then run one control loop tick."""
        dt = self.period
        for drive in self.drive_actuators:
            drive.step(dt)
        for steer in self.steer_actuators:
            steer.step(dt)

        velocity = self.kinematics.toChassisSpeeds(self.true_module_states())
        self.truth = self.truth.exp(
            Twist2d(velocity.vx * dt, velocity.vy * dt, velocity.omega * dt)
        )
        self.gyro.step(velocity.omega, dt)
        now = self.clock.advance(dt)

        if self.appliance is not None:
            self.appliance.record(now, self.truth)
            self.appliance.step(now)

        self.loop.tick()

    def run(
        self,
        duration: float,
        until: Optional[Callable[[], bool]] = None,
        on_step: Optional[Callable[["SimulatedRobot"], None]] = None,
    ) -> float:
        """Step for up to ``duration`` seconds or until ``until()`` is true.

        Returns:
            Simulated time elapsed (s)
        """
        start = self.clock.now()
        steps = int(round(duration / self.period))
        for _ in range(steps):
            self.step()
            if on_step is not None:
                on_step(self)
            if until is not None and until():
                break
        self.log_state()
        return self.clock.now() - start

    def align(
        self, target: Pose2d, stop_when_finished: bool = True, profile: str = "default"
    ) -> AlignController:
        """Schedule an alignment to ``target`` and return the command."""
        command = AlignController(
            self.drivetrain,
            self.estimator,
            lambda: target,
            stop_when_finished,
            profile,
            self.clock,
            tunables=self.tunables,
            telemetry=self.telemetry,
        )
        self.loop.schedule(command)
        return command

    def estimate_error(self) -> float:
        """Planar distance between the estimate and ground truth (m)."""
        estimate = self.estimator.get_pose2d()
        return math.sqrt(distance_squared(estimate, self.truth))

    def log_state(self) -> None:
        estimate = self.estimator.get_pose2d()
        logging.debug(
            f"t={self.clock.now():.2f} est=({estimate.x:.3f}, {estimate.y:.3f}, "
            f"{estimate.rotation().degrees():.1f}) truth=({self.truth.x:.3f}, "
            f"{self.truth.y:.3f}, {self.truth.rotation().degrees():.1f})"
        )
