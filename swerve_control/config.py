"""Configuration parameters for the swerve control system.

This module centralizes all configuration parameters including:
- Physical drivetrain parameters (geometry, limits, module offsets)
- Swerve module feedforward and deadband defaults
- Slew-rate limits for driver input shaping
- Pose estimator fusion parameters
- Align controller default gains, constraints and tolerances
- Vision, telemetry, table bridge and plotting settings

Values here are defaults. Anything read through a ``TunableStore`` can be
overridden at runtime under the key documented next to the constant; the core
never writes tunables back.
"""

import math

# ============================================================================
# Control Loop
# ============================================================================

LOOP_PERIOD = 0.02
"""Fixed control loop period (seconds).

Competition-standard 50 Hz periodic tick. Profiled controllers assume every
``calculate`` call advances time by exactly this amount."""


# ============================================================================
# Physical Drivetrain Parameters
# ============================================================================

WHEEL_BASE = 0.6731
"""Distance between front and rear wheel contact points (meters).
Fixed by chassis design (26.5 in)."""

TRACK_WIDTH = 0.6731
"""Distance between left and right wheel contact points (meters).
Fixed by chassis design (26.5 in)."""

MODULE_NAMES = ("front_left", "front_right", "rear_left", "rear_right")
"""Canonical module ordering.

Every array of module states or positions passed between layers uses this
order. Kinematics, drivetrain and estimator all rely on it."""

MODULE_LOCATIONS = (
    (WHEEL_BASE / 2.0, TRACK_WIDTH / 2.0),
    (WHEEL_BASE / 2.0, -TRACK_WIDTH / 2.0),
    (-WHEEL_BASE / 2.0, TRACK_WIDTH / 2.0),
    (-WHEEL_BASE / 2.0, -TRACK_WIDTH / 2.0),
)
"""Module positions relative to chassis center (meters), +x forward, +y left."""

MODULE_CHASSIS_ANGULAR_OFFSETS = (-math.pi / 2.0, 0.0, math.pi, math.pi / 2.0)
"""Angle between each module's absolute encoder zero and the chassis
forward axis (radians), in ``MODULE_NAMES`` order."""

MAX_SPEED_METERS_PER_SECOND = 4.8
"""Maximum achievable wheel speed (m/s). Desaturation limit."""

MAX_ANGULAR_SPEED = 2.0 * math.pi
"""Maximum chassis angular rate requested by teleop (rad/s)."""

GYRO_INVERTED = True
"""Heading sensor reports clockwise-positive angles.

The drivetrain negates the reading so that headings are counter-clockwise
positive in the field frame."""

GYRO_ANGLE_ADJUSTMENT_DEG = 0.0
"""Constant offset added to the raw heading sensor reading (degrees)."""


# ============================================================================
# Swerve Module Parameters
# ============================================================================

DRIVE_FEEDFORWARD_KS = 0.096286
"""Static friction feedforward (volts). Characterized on the drive motor."""

DRIVE_FEEDFORWARD_KV = 2.3216
"""Velocity feedforward (volts per m/s)."""

DRIVE_FEEDFORWARD_KA = 0.41854
"""Acceleration feedforward (volts per m/s²)."""

DRIVE_FEEDFORWARD_PERIOD = 1.0
"""Time step that turns a commanded velocity change into acceleration (seconds).

The characterized model sees (v_target - v_measured) / 1 s, not a change
per control-loop period."""

SWERVE_MIN_VELOCITY = 0.01
"""Target speed deadband for drive feedforward (m/s).

Tunable key: ``swerve_min_velocity``.
Targets within this band command zero feedforward so a parked module does
not chatter on static friction."""


# ============================================================================
# Slew Rate Limits (Driver Input Shaping)
# ============================================================================

DIRECTION_SLEW_RATE = 1.2
"""Translation direction slew rate at 1 m/s (radians per second).

Tunable key: ``drive_direction_slew_rate``.
The effective rate is divided by the current chassis speed, so direction
changes are fast at low speed and slow at high speed."""

MAGNITUDE_SLEW_RATE = 1.8
"""Translation magnitude slew rate (m/s per second).

Tunable key: ``drive_magnitude_slew_rate``."""

ROTATIONAL_SLEW_RATE = 2.0
"""Rotation rate slew rate (rad/s per second).

Tunable key: ``drive_rotational_slew_rate``."""

STATIONARY_DIRECTION_SLEW_RATE = 500.0
"""Direction slew rate used when the chassis is stationary (rad/s).
Large enough that direction changes are effectively instantaneous."""

CONTROLLER_DEADBAND = 0.06
"""Joystick deadband applied by the teleop drive command.

Tunable key: ``controller_deadband``."""


# ============================================================================
# Pose Estimator Parameters (Odometry + Vision Fusion)
# ============================================================================

ESTIMATOR_VISION_GAIN = 0.35
"""Fraction of a fresh vision correction applied to the estimate (range: [0, 1]).

Higher values = trust vision more, faster convergence, more visible noise.
Lower values = smoother estimate, slower recovery from wheel slip.

Tunable key: ``estimator_vision_gain``."""

ESTIMATOR_VISION_AGE_DECAY = 0.5
"""Time constant of the vision weight decay with sample age (seconds).

weight = gain * exp(-age / decay)

A sample captured 0.5 s before "now" is trusted ~37% as much as a
zero-latency one."""

ESTIMATOR_HISTORY_SECONDS = 1.5
"""Length of odometry history kept for latency compensation (seconds).

Vision samples older than this are discarded as stale."""


# ============================================================================
# Vision Parameters
# ============================================================================

VISION_MAX_AMBIGUITY = 0.2
"""Maximum pose ambiguity accepted for single-tag targets (range: [0, 1])."""

APPLIANCE_POSE_KEY = "botpose_wpiblue"
"""Table key holding the appliance-reported robot pose array
[x, y, z, roll°, pitch°, yaw°] in the blue-origin field frame."""

APPLIANCE_TARGET_KEY = "targetpose_cameraspace"
"""Table key holding the primary target pose in camera space."""

APPLIANCE_PIPELINE_LATENCY_KEY = "tl"
"""Table key holding pipeline latency (milliseconds)."""

APPLIANCE_CAPTURE_LATENCY_KEY = "cl"
"""Table key holding capture latency (milliseconds)."""

APPLIANCE_POSE_LENGTH = 6
"""Minimum length of a usable appliance pose array."""

APPLIANCE_HEARTBEAT_KEY = "hb"
"""Table key incremented once per processed frame (optional)."""


# ============================================================================
# Align Controller Defaults
# ============================================================================

# Shared gains (tunable keys: align_x_axis_p/i/d, align_y_axis_p/i/d, align_rot_p/i/d)
ALIGN_X_AXIS_P = 3.0
ALIGN_X_AXIS_I = 0.0
ALIGN_X_AXIS_D = 0.25
ALIGN_Y_AXIS_P = 3.0
ALIGN_Y_AXIS_I = 0.0
ALIGN_Y_AXIS_D = 0.25
ALIGN_ROT_P = 7.3
ALIGN_ROT_I = 0.0
ALIGN_ROT_D = 0.5

# Per-profile defaults (tunable keys: align_<profile>_<name>)
ALIGN_MAX_VELOCITY = 3.0
"""Translation trapezoid cruise velocity (m/s). Keys ``x_max_vel_m``/``y_max_vel_m``."""

ALIGN_MAX_ACCELERATION = 2.5
"""Translation trapezoid acceleration (m/s²). Keys ``x_max_accel_mps``/``y_max_accel_mps``."""

ALIGN_ROT_MAX_VELOCITY_DEG = 360.0
"""Rotation trapezoid cruise velocity (deg/s). Key ``rot_max_vel_deg``."""

ALIGN_ROT_MAX_ACCELERATION_DEG = 360.0
"""Rotation trapezoid acceleration (deg/s²). Key ``rot_max_accel_degps``."""

ALIGN_POS_TOLERANCE = 0.05
"""Per-axis position tolerance (m). Key ``pos_tolerance``."""

ALIGN_ROTATION_TOLERANCE_DEG = 1.0
"""Rotation tolerance (degrees). Key ``rotation_tolerance``."""

ALIGN_POS_DIST_TOLERANCE = 0.05
"""Planar distance tolerance for pass-through alignment (m). Key ``pos_dist_tol``.
Compared squared against squared distance."""

ALIGN_FINISH_TIME_MS = 200.0
"""Continuous goal-hold time before an alignment finishes (milliseconds).
Key ``finish_time``."""

ALIGN_FEEDFORWARD = 0.1
"""Static friction nudge added to unsettled x/y outputs (m/s). Key ``align_ff``."""

ALIGN_LOOKAHEAD_DISTANCE = 0.5
"""Look-ahead seed distance for pass-through alignment (m). Key ``fake_pose_dist_back``."""

ALIGN_INFINITE_ACCELERATION = 5000.0
"""Acceleration used by the pass-through x/y controllers (m/s²).
Effectively removes the acceleration ramp while keeping the cruise limit."""


# ============================================================================
# Telemetry and Tables
# ============================================================================

DEBUG_TABLE = "debug"
"""Table receiving per-cycle diagnostics."""

SWERVE_TABLE = "Swerve"
"""Table receiving drivetrain setpoints/actuals."""

TUNABLES_TABLE = "tunables"
"""Table consulted first by a table-backed ``TunableStore``."""


# ============================================================================
# Table Bridge (WebSocket) Configuration
# ============================================================================

BRIDGE_URI = "ws://127.0.0.1:5810"
"""WebSocket endpoint publishing coprocessor table updates."""

BRIDGE_RETRY_DELAY_SECONDS = 1
"""Initial retry delay for failed bridge connections (seconds)."""

BRIDGE_MAX_RETRY_DELAY_SECONDS = 30
"""Maximum retry delay with exponential backoff (seconds)."""

BRIDGE_TIMEOUT_SECONDS = 5.0
"""Timeout for bridge message reception (seconds)."""


# ============================================================================
# Simulation Parameters
# ============================================================================

SIM_DRIVE_TIME_CONSTANT = 0.04
"""First-order time constant of the simulated drive velocity loop (seconds)."""

SIM_STEER_MAX_RATE = 25.0
"""Maximum simulated steering slew rate (rad/s)."""

SIM_VISION_PERIOD = 0.1
"""Simulated vision publish period (seconds)."""

SIM_VISION_LATENCY = 0.06
"""Simulated total vision latency, pipeline + capture (seconds)."""

ROBOT_TO_CAMERA = (0.25, 0.0, 0.5, 0.0, math.radians(-15.0), 0.0)
"""Camera mounting transform (x, y, z, roll, pitch, yaw) in the robot frame."""


# ============================================================================
# Visualization Colors
# ============================================================================

PLOT_ORANGE = "#f74823"
"""Primary color - actual trajectory and measured values."""

PLOT_BLUE = "#2374f7"
"""Secondary color - targets and commanded values."""

PLOT_CREAM = "#fffdee"
"""Light color for text and labels on dark backgrounds."""

PLOT_TAUPE = "#686a5f"
"""Neutral color for guides and grids."""

PLOT_DARK_BLUE = "#0d1b2a"
"""Dark background color."""

# Terminal color codes (ANSI escape sequences)
TERM_ORANGE = "\033[38;2;247;72;35m"
TERM_BLUE = "\033[38;2;35;116;247m"
TERM_RESET = "\033[0m"
