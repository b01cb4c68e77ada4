"""
Acrobot balance / swing-up task.

The acrobot is a two-link pendulum: the upper link ("arm") hangs from the
``shoulder`` hinge, which is driven by the ``shoulder`` motor, and carries the
lower link ("pendulum") on the passive ``elbow`` hinge.  The task keeps both
links upright.

Observations are the sin/cos of both joint angles plus both angular
velocities.  The task digitizes them into four buckets (pendulum angle,
pendulum velocity, arm angle, arm velocity) and a flat state index, which is
what the Q-table sees.
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import mujoco
import numpy as np
from ml_collections import config_dict

from . import constants
from .digitize import bin_edges, digitize, encode_state, uniform
from .environment import Action, Environment, Observation, Space, Task
from .errors import JointKindMismatch
from .physics import Actuators, Hinge, ObjectId, ObjType, Physics


def get_config():
    """Returns task config for the acrobot balance task."""

    def get_default_rewards_config():
        default_config = config_dict.ConfigDict(
            dict(
                shaped=config_dict.ConfigDict(
                    dict(
                        termination=-2000.0,
                        # Every bucket at the centre
                        center_bonus=500.0,
                        # Position reward, decreased by squared bucket distance
                        max_position_reward=10.0,
                        pendulum_position=0.2,
                        arm_position=0.1,
                        # Velocity penalties
                        pendulum_velocity=0.001,
                        arm_velocity=0.002,
                        # Distance from the zero-torque rung
                        action=0.01,
                    )
                ),
                bowl=config_dict.ConfigDict(
                    dict(
                        termination=-10.0,
                    )
                ),
            )
        )
        return default_config

    default_config = config_dict.ConfigDict(
        dict(
            n_arm_digitization=constants.N_ARM_DIGITIZATION,
            n_pendulum_digitization=constants.N_PENDULUM_DIGITIZATION,
            action_size=constants.ACTION_SIZE,
            discount=constants.DISCOUNT,
            arm_limit=constants.BALANCE_ARM_LIMIT,
            pendulum_limit=constants.BALANCE_PENDULUM_LIMIT,
            velocity_limit=constants.VELOCITY_LIMIT,
            elbow_qpos_range=constants.INIT_QPOS_RANGE,
            shoulder_qpos_range=constants.INIT_QPOS_RANGE,
            qvel_range=constants.INIT_QVEL_RANGE,
            reward='shaped',
            rewards=get_default_rewards_config(),
        )
    )

    return default_config


def get_swing_config():
    """Returns task config for swinging the pendulum up from a wide start."""
    config = get_config()
    config.arm_limit = constants.SWING_ARM_LIMIT
    config.pendulum_limit = constants.SWING_PENDULUM_LIMIT
    config.elbow_qpos_range = constants.SWING_ELBOW_QPOS_RANGE
    config.shoulder_qpos_range = (0.0, 0.0)
    config.qvel_range = (0.0, 0.0)
    config.reward = 'bowl'
    return config


# ---------------------------------------------------------------------------
# Physics, observation, state, action
# ---------------------------------------------------------------------------
class Acrobot(Physics):
    """Acrobot scene with its joints and motor resolved by name."""

    def __init__(self, model: mujoco.MjModel, data: Optional[mujoco.MjData] = None):
        super().__init__(model, data)
        self.elbow_id = self.object_id_of(ObjType.JOINT, constants.ELBOW_JOINT)
        self.shoulder_id = self.object_id_of(ObjType.JOINT, constants.SHOULDER_JOINT)
        self.actuator_id = self.object_id_of(ObjType.ACTUATOR, constants.SHOULDER_ACTUATOR)

        # Joint kinds are fixed at load time; catch a miswired scene here.
        for joint_id in (self.elbow_id, self.shoulder_id):
            kind = self.joint_kind_of(joint_id)
            if kind is not Hinge:
                raise JointKindMismatch(Hinge, kind)

    @classmethod
    def load(cls, xml_path=constants.DEFAULT_XML_PATH) -> "Acrobot":
        return cls.from_xml(xml_path)


@dataclass(frozen=True)
class Orientation:
    """An angle as a sin/cos pair, free of the wrap-around at +-pi."""

    sin: float
    cos: float

    @classmethod
    def from_rad(cls, rad: float) -> "Orientation":
        return cls(math.sin(rad), math.cos(rad))

    def to_rad(self) -> float:
        return math.atan2(self.sin, self.cos)


@dataclass(frozen=True)
class AcrobotObservation(Observation):
    elbow_orientation: Orientation
    shoulder_orientation: Orientation
    elbow_velocity: float
    shoulder_velocity: float

    @classmethod
    def generate(cls, physics: Acrobot) -> "AcrobotObservation":
        [elbow_rad] = physics.position_of(Hinge, physics.elbow_id)
        [shoulder_rad] = physics.position_of(Hinge, physics.shoulder_id)
        [elbow_velocity] = physics.velocity_of(Hinge, physics.elbow_id)
        [shoulder_velocity] = physics.velocity_of(Hinge, physics.shoulder_id)
        return cls(
            elbow_orientation=Orientation.from_rad(float(elbow_rad)),
            shoulder_orientation=Orientation.from_rad(float(shoulder_rad)),
            elbow_velocity=float(elbow_velocity),
            shoulder_velocity=float(shoulder_velocity),
        )

    @classmethod
    def spec(cls) -> Space:
        return Space(shape=(6,), dtype=float)

    def as_array(self) -> np.ndarray:
        return np.array([
            self.elbow_orientation.sin, self.elbow_orientation.cos,
            self.shoulder_orientation.sin, self.shoulder_orientation.cos,
            self.elbow_velocity, self.shoulder_velocity,
        ])


@dataclass(frozen=True)
class AcrobotState:
    """Digitized observation.  Arm = shoulder link, pendulum = elbow link."""

    arm_rad: float
    pendulum_rad: float
    arm_vel: float
    pendulum_vel: float
    n_arm_rad: int
    n_pendulum_rad: int
    n_arm_vel: int
    n_pendulum_vel: int
    digitized_state: int


@dataclass(frozen=True)
class AcrobotAction(Action):
    """One rung of the action ladder: a torque for the shoulder motor."""

    actuator_id: ObjectId
    torque: float
    digitization_index: int

    def apply(self, actuators: Actuators) -> None:
        assert not math.isnan(self.torque), "Torque cannot be NaN"
        low, high = actuators.control_range_of(self.actuator_id)
        assert low <= self.torque <= high, \
            f"Torque {self.torque} must be in the range [{low}, {high}]"
        actuators.set(self.actuator_id, self.torque)


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------
class AcrobotBalanceTask(Task):
    """Keep both links upright; episodes end when either angle leaves its domain."""

    def __init__(self, config=None, rng: Optional[np.random.Generator] = None):
        config = config if config is not None else get_config()
        self.config = config_dict.FrozenConfigDict(config)
        self.rng = rng if rng is not None else np.random.default_rng()

        if self.config.reward not in REWARD_FUNCTIONS:
            raise ValueError(
                f"Unknown reward '{self.config.reward}', expected one of {sorted(REWARD_FUNCTIONS)}"
            )
        if self.config.reward == 'bowl' and self.n_pendulum_digitization < 4:
            raise ValueError("The 'bowl' reward needs at least 4 pendulum buckets")
        self._reward_fn = REWARD_FUNCTIONS[self.config.reward]

        d_arm = self.n_arm_digitization
        d_pendulum = self.n_pendulum_digitization
        v = self.config.velocity_limit
        self._arm_rad_edges = bin_edges(*self.config.arm_limit, d_arm)
        self._arm_vel_edges = bin_edges(-v, v, d_arm)
        self._pendulum_rad_edges = bin_edges(*self.config.pendulum_limit, d_pendulum)
        self._pendulum_vel_edges = bin_edges(-v, v, d_pendulum)

    @property
    def n_arm_digitization(self) -> int:
        return self.config.n_arm_digitization

    @property
    def n_pendulum_digitization(self) -> int:
        return self.config.n_pendulum_digitization

    @property
    def action_size(self) -> int:
        return self.config.action_size

    @property
    def axis_sizes(self):
        """Bucket counts in radix order, fastest-varying axis first."""
        d_arm = self.n_arm_digitization
        d_pendulum = self.n_pendulum_digitization
        return (d_pendulum, d_pendulum, d_arm, d_arm)

    @property
    def state_size(self) -> int:
        return self.n_arm_digitization ** 2 * self.n_pendulum_digitization ** 2

    def state(self, observation: AcrobotObservation) -> AcrobotState:
        v = self.config.velocity_limit
        arm_rad = observation.shoulder_orientation.to_rad()
        arm_vel = observation.shoulder_velocity
        pendulum_rad = observation.elbow_orientation.to_rad()
        pendulum_vel = observation.elbow_velocity

        n_arm_rad = digitize(arm_rad, self._arm_rad_edges)
        n_arm_vel = digitize(np.clip(arm_vel, -v, v), self._arm_vel_edges)
        n_pendulum_rad = digitize(pendulum_rad, self._pendulum_rad_edges)
        n_pendulum_vel = digitize(np.clip(pendulum_vel, -v, v), self._pendulum_vel_edges)

        digitized_state = encode_state(
            (n_pendulum_rad, n_pendulum_vel, n_arm_rad, n_arm_vel), self.axis_sizes
        )
        return AcrobotState(
            arm_rad=arm_rad,
            pendulum_rad=pendulum_rad,
            arm_vel=arm_vel,
            pendulum_vel=pendulum_vel,
            n_arm_rad=n_arm_rad,
            n_pendulum_rad=n_pendulum_rad,
            n_arm_vel=n_arm_vel,
            n_pendulum_vel=n_pendulum_vel,
            digitized_state=digitized_state,
        )

    def is_out_of_bounds(self, state: AcrobotState) -> bool:
        """True when either angle sits in its first or last bucket."""
        if state.n_arm_rad <= 0 or state.n_arm_rad >= self.n_arm_digitization - 1:
            return True
        if state.n_pendulum_rad <= 0 or state.n_pendulum_rad >= self.n_pendulum_digitization - 1:
            return True
        return False

    # ------------ Task contract ----------------

    def discount(self) -> float:
        return self.config.discount

    def init_episode(self, physics: Acrobot) -> None:
        elbow_range = self.config.elbow_qpos_range
        shoulder_range = self.config.shoulder_qpos_range
        qvel_range = self.config.qvel_range
        physics.set_position_of(Hinge, physics.elbow_id, [uniform(*elbow_range, self.rng)])
        physics.set_velocity_of(Hinge, physics.elbow_id, [uniform(*qvel_range, self.rng)])
        physics.set_position_of(Hinge, physics.shoulder_id, [uniform(*shoulder_range, self.rng)])
        physics.set_velocity_of(Hinge, physics.shoulder_id, [uniform(*qvel_range, self.rng)])

    def should_finish_episode(self, observation: AcrobotObservation) -> bool:
        return self.is_out_of_bounds(self.state(observation))

    def get_reward(self, observation: AcrobotObservation, action: AcrobotAction) -> float:
        return self._reward_fn(self, self.state(observation), action)

    def action_spec(self) -> Space:
        return Space(shape=(), dtype=int, num_values=self.action_size)


# ------------ Reward functions ----------------

def shaped_reward(task: AcrobotBalanceTask, state: AcrobotState, action: AcrobotAction) -> float:
    """Piecewise reward over bucket distances from the centre of every axis."""
    scales = task.config.rewards.shaped
    if task.is_out_of_bounds(state):
        return scales.termination

    pend_pos_center = task.n_pendulum_digitization / 2.0
    arm_pos_center = task.n_arm_digitization / 2.0
    pend_vel_center = task.n_pendulum_digitization / 2.0
    arm_vel_center = task.n_arm_digitization / 2.0

    if (abs(state.n_pendulum_rad - pend_pos_center) < 1.0
            and abs(state.n_arm_rad - arm_pos_center) < 1.0
            and abs(state.n_pendulum_vel - pend_vel_center) < 1.0
            and abs(state.n_arm_vel - arm_vel_center) < 1.0):
        return scales.center_bonus

    position_reward = scales.max_position_reward - (
        scales.pendulum_position * (pend_pos_center - state.n_pendulum_rad) ** 2
        + scales.arm_position * (arm_pos_center - state.n_arm_rad) ** 2
    )
    velocity_penalty = (
        scales.pendulum_velocity * (pend_vel_center - state.n_pendulum_vel) ** 2
        + scales.arm_velocity * (arm_vel_center - state.n_arm_vel) ** 2
    )
    # Zero for the middle rung of an odd-sized ladder
    center_action_index = (task.action_size - 1) / 2.0
    action_cost = scales.action * abs(center_action_index - action.digitization_index)

    return position_reward - velocity_penalty - action_cost


def bowl_reward(task: AcrobotBalanceTask, state: AcrobotState, action: AcrobotAction) -> float:
    """Quadratic bowl over the pendulum bucket.

    1.0 at the centre bucket, 0.0 a quarter of the buckets away on either
    side, negative beyond.
    """
    if task.is_out_of_bounds(state):
        return task.config.rewards.bowl.termination

    n = task.n_pendulum_digitization
    best = (n - 1) // 2
    good_min = best - n // 4
    good_max = best + n // 4

    # -a*x^2 + b*x + c through (good_min, 0), (best, 1), (good_max, 0)
    a = 1.0 / (best ** 2 - good_min * good_max)
    b = a * (good_min + good_max)
    c = -a * good_min * good_max
    x = float(state.n_pendulum_rad)
    return -a * x ** 2 + b * x + c


def zero_reward(task: AcrobotBalanceTask, state: AcrobotState, action: AcrobotAction) -> float:
    return 0.0


REWARD_FUNCTIONS: Dict[str, Callable[[AcrobotBalanceTask, AcrobotState, AcrobotAction], float]] = {
    'shaped': shaped_reward,
    'bowl': bowl_reward,
    'none': zero_reward,
}


def make_environment(config=None, xml_path=constants.DEFAULT_XML_PATH,
                     rng: Optional[np.random.Generator] = None) -> Environment:
    """Acrobot physics + balance task + observation, wired into an Environment."""
    physics = Acrobot.load(xml_path)
    task = AcrobotBalanceTask(config, rng=rng)
    return Environment(physics, task, AcrobotObservation)
