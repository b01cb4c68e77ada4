"""
Single source of truth for acrobot parameters.

Shared between the task definition (task.py), the agent (agent.py) and the
training / simulation drivers.  Pure Python only, no numpy imports.
"""

import math
from pathlib import Path

# Scene shipped with the package.  Joint and actuator names must match it.
DEFAULT_XML_PATH = str(Path(__file__).parent / "assets" / "acrobot.xml")
ELBOW_JOINT = "elbow"
SHOULDER_JOINT = "shoulder"
SHOULDER_ACTUATOR = "shoulder"
FIXED_CAMERA = "fixed"

# MuJoCo's mjMAXVAL.  Used as the control range of actuators that declare none.
MJ_MAXVAL = 1e10

# Digitization
VELOCITY_LIMIT = 8.0        # rad/s, velocities are clamped before bucketing
N_ARM_DIGITIZATION = 15
N_PENDULUM_DIGITIZATION = 16
ACTION_SIZE = 5             # odd, so the middle rung is zero torque

# Angle domains (radians) used for bucketing
BALANCE_ARM_LIMIT = (-0.9 * math.pi, 0.9 * math.pi)
BALANCE_PENDULUM_LIMIT = (-0.2 * math.pi, 0.2 * math.pi)
SWING_ARM_LIMIT = (-math.pi, math.pi)
SWING_PENDULUM_LIMIT = (-math.pi, math.pi)

# Episode initialization ranges
INIT_QPOS_RANGE = (-0.1, 0.1)
INIT_QVEL_RANGE = (-0.1, 0.1)
SWING_ELBOW_QPOS_RANGE = (-math.pi / 2, math.pi / 2)

DISCOUNT = 0.99

# Agent hyperparameters
INITIAL_ALPHA = 0.1
INITIAL_EPSILON = 0.5
DECAY_RATE = 0.9999

# Warm-up exploration before learning with epsilon-greedy
WARMUP_EPISODES = 100
WARMUP_STEPS = 400
