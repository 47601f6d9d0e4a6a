"""Swerve Control - Motion Control Core for a Four-Module Swerve Drive

A layered control stack that turns driver or autonomous requests into
per-module wheel commands, tracks the robot pose by fusing wheel odometry
with latency-compensated camera measurements, and drives the robot onto a
target pose with a profiled alignment controller.

## Architecture Overview

### Layer 1: Module Control (module.py)
Commands one wheel module: drive velocity with feedforward, steer angle.
- Chassis angular offset applied on the way in, removed on the way out
- Angle optimization (never rotate a wheel more than 90°)
- Feedforward suppressed below the minimum velocity

### Layer 2: Drivetrain (drivetrain.py, kinematics.py)
Converts chassis velocity requests to four module states.
- Field-relative conversion from gyro or estimator heading
- Slew limiting of translation direction, magnitude and rotation
- Wheel speed desaturation, X-lock, zeroing

### Layer 3: State Estimation (estimator.py, vision.py)
Fuses odometry with timestamped vision poses.
- Odometry history with interpolation at the capture time
- Age-weighted correction and replay of later odometry
- Out-of-order and stale measurement rejection
- Two vision sources: fiducial detector and smart-camera appliance

### Layer 4: Alignment (align.py)
Drives the robot onto a target pose.
- wpimath profiled PID on x, y and heading
- Stop-at-target and pass-through modes
- Dwell timer before reporting finished

## Modules

- `config.py` - Centralized configuration parameters
- `geometry.py` - Angle and pose helpers over wpimath geometry
- `kinematics.py` - SwerveDrive4Kinematics construction and speed conversions
- `hardware.py` - Actuator, sensor and clock interfaces
- `table.py` - Pub/sub tables and WebSocket bridge
- `tunables.py` - Runtime-adjustable numeric parameters
- `telemetry.py` - Diagnostics publishing and CSV recording
- `commands.py` - Command lifecycle, teleop command, control loop
- `sim.py` - Simulated robot on a manual clock
- `client.py` - Alignment runner
- `plot_results.py` / `plot_styles.py` - Post-run visualization

## Quick Start

```bash
python -m swerve_control --start 1 0 0 --target 0 0 0 --plot
```
"""

__version__ = "0.1.0"

from .align import AlignController, AlignPhase
from .drivetrain import Drivetrain
from .estimator import PoseEstimator, VisionSample
from .module import SwerveModule
from .telemetry import TelemetryRecorder
from .vision import AppliancePoseSource, PhotogrammetricPoseSource, VisionResult

__all__ = [
    "SwerveModule",
    "Drivetrain",
    "PoseEstimator",
    "VisionSample",
    "VisionResult",
    "PhotogrammetricPoseSource",
    "AppliancePoseSource",
    "AlignController",
    "AlignPhase",
    "TelemetryRecorder",
]
