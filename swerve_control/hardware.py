"""
Interface definitions for actuators, heading sensors and clocks.

The control core only talks to hardware through these interfaces. Real
motor-controller and IMU drivers implement them on the robot; ``sim.py``
implements them for simulation and tests.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod


class DriveActuator(ABC):
    """Wheel drive motor with an on-board velocity loop.

    Units are already converted to the wheel surface: meters and m/s.
    """

    @abstractmethod
    def set_velocity(self, velocity: float, arbitrary_feedforward: float = 0.0) -> None:
        """Command a closed-loop velocity reference (m/s) plus feedforward (volts)."""

    @abstractmethod
    def set_voltage(self, voltage: float) -> None:
        """Override the closed loop with a raw voltage."""

    @abstractmethod
    def get_position(self) -> float:
        """Cumulative wheel distance (m)."""

    @abstractmethod
    def get_velocity(self) -> float:
        """Measured wheel velocity (m/s)."""

    @abstractmethod
    def set_position(self, position: float) -> None:
        """Overwrite the cumulative distance reading (m)."""


class SteerActuator(ABC):
    """Steering motor closed on an absolute encoder."""

    @abstractmethod
    def set_position(self, angle: float) -> None:
        """Command an absolute steering angle (radians, encoder frame)."""

    @abstractmethod
    def set_voltage(self, voltage: float) -> None:
        """Override the closed loop with a raw voltage."""

    @abstractmethod
    def get_position(self) -> float:
        """Absolute encoder angle (radians, encoder frame)."""


class HeadingSensor(ABC):
    """Gyroscope reporting cumulative yaw."""

    @abstractmethod
    def get_angle(self) -> float:
        """Cumulative heading (degrees, unwrapped)."""

    @abstractmethod
    def get_rate(self) -> float:
        """Angular rate (degrees per second)."""

    @abstractmethod
    def reset(self) -> None:
        """Zero the cumulative heading."""


class Clock(ABC):
    """Monotonic time source shared by the whole control loop."""

    @abstractmethod
    def now(self) -> float:
        """Seconds since an arbitrary epoch, strictly increasing."""


class MonotonicClock(Clock):
    def now(self) -> float:
        return time.monotonic()


class ManualClock(Clock):
    """Clock advanced explicitly by a simulation or test harness."""

    def __init__(self, start: float = 0.0):
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, dt: float) -> float:
        if dt < 0.0:
            raise ValueError(f"Clock cannot run backwards (dt={dt})")
        self._now += dt
        return self._now
