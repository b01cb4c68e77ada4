"""
Q-table agent for the acrobot task.

``QTableAgent`` pairs a ``QTable`` with the action ladder (evenly spaced
torques over the shoulder motor's control range) and remembers the
digitization the table was built for, so that a saved agent can be reloaded
to resume training or to run a frozen greedy policy.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from .digitize import linspace
from .environment import Environment
from .errors import PersistenceError
from .physics import ObjectId, ObjType
from .qtable import QConfig, QTable, Strategy
from .task import AcrobotAction, AcrobotState, get_config

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
INIT_RANGE_KEYS = ('elbow_qpos_range', 'shoulder_qpos_range', 'qvel_range')


@dataclass
class QTableAgentConfig:
    action_size: int
    state_size: int
    initial_alpha: float
    initial_epsilon: float


class QTableAgent:
    """Learns a Q-table over digitized acrobot states and the action ladder."""

    def __init__(
        self,
        qtable: QTable,
        digitized_actions: List[AcrobotAction],
        n_arm_digitization: int,
        n_pendulum_digitization: int,
        arm_limit=None,
        pendulum_limit=None,
        init_ranges=None,
    ):
        if len(digitized_actions) != qtable.action_size:
            raise ValueError(
                f"{len(digitized_actions)} actions for a table with {qtable.action_size} columns"
            )
        self.qtable = qtable
        self.digitized_actions = digitized_actions
        self.n_arm_digitization = n_arm_digitization
        self.n_pendulum_digitization = n_pendulum_digitization
        # Angle domains the buckets were built over
        self.arm_limit = tuple(arm_limit) if arm_limit is not None else None
        self.pendulum_limit = tuple(pendulum_limit) if pendulum_limit is not None else None
        # Episode start ranges of the task variant, keyed like the task config
        self.init_ranges = (
            {key: tuple(init_ranges[key]) for key in INIT_RANGE_KEYS} if init_ranges is not None else None
        )

    @staticmethod
    def make_digitized_actions(env: Environment, action_size: int) -> List[AcrobotAction]:
        """Evenly spaced torques spanning the shoulder motor's control range."""
        physics = env.physics
        low, high = physics.control_range_of(physics.actuator_id)
        return [
            AcrobotAction(actuator_id=physics.actuator_id, torque=float(torque), digitization_index=index)
            for index, torque in enumerate(linspace(low, high, action_size))
        ]

    @classmethod
    def new(cls, config: QTableAgentConfig, env: Environment,
            rng: Optional[np.random.Generator] = None) -> "QTableAgent":
        task = env.task
        if config.state_size != task.state_size:
            raise ValueError(
                f"state_size {config.state_size} does not match the task's digitization "
                f"({task.state_size} states)"
            )
        qtable = QTable.new(
            QConfig(
                state_size=config.state_size,
                action_size=config.action_size,
                alpha=config.initial_alpha,
                epsilon=config.initial_epsilon,
                gamma=task.discount(),
            ),
            rng=rng,
        )
        return cls(
            qtable,
            cls.make_digitized_actions(env, config.action_size),
            n_arm_digitization=task.n_arm_digitization,
            n_pendulum_digitization=task.n_pendulum_digitization,
            arm_limit=task.config.arm_limit,
            pendulum_limit=task.config.pendulum_limit,
            init_ranges={key: task.config[key] for key in INIT_RANGE_KEYS},
        )

    @property
    def action_size(self) -> int:
        return len(self.digitized_actions)

    def get_action(self, state: AcrobotState, strategy: Strategy) -> AcrobotAction:
        index = self.qtable.next_action(state.digitized_state, strategy)
        return self.digitized_actions[index]

    def learn(self, state: AcrobotState, action: AcrobotAction, reward: float,
              next_state: AcrobotState) -> None:
        self.qtable.update(
            state.digitized_state, action.digitization_index, reward, next_state.digitized_state
        )

    def decay_alpha_with_rate(self, rate: float) -> None:
        self.qtable.decay_alpha_with_rate(rate)

    def decay_epsilon_with_rate(self, rate: float) -> None:
        self.qtable.decay_epsilon_with_rate(rate)

    def task_config(self):
        """Task config with the digitization and action ladder this agent was built for."""
        config = get_config()
        config.n_arm_digitization = self.n_arm_digitization
        config.n_pendulum_digitization = self.n_pendulum_digitization
        config.action_size = self.action_size
        if self.arm_limit is not None:
            config.arm_limit = self.arm_limit
        if self.pendulum_limit is not None:
            config.pendulum_limit = self.pendulum_limit
        if self.init_ranges is not None:
            for key, value in self.init_ranges.items():
                config[key] = value
        return config

    # ------------ persistence ----------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            'format_version': FORMAT_VERSION,
            'digitized_actions': [
                {
                    'actuator_id': action.actuator_id.index,
                    'digitization_index': action.digitization_index,
                    'torque': action.torque,
                }
                for action in self.digitized_actions
            ],
            'qtable': self.qtable.to_dict(),
            'n_arm_digitization': self.n_arm_digitization,
            'n_pendulum_digitization': self.n_pendulum_digitization,
            'arm_limit': list(self.arm_limit) if self.arm_limit is not None else None,
            'pendulum_limit': list(self.pendulum_limit) if self.pendulum_limit is not None else None,
            'init_ranges': (
                {key: list(value) for key, value in self.init_ranges.items()}
                if self.init_ranges is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, record: Dict[str, Any],
                  rng: Optional[np.random.Generator] = None) -> "QTableAgent":
        version = record.get('format_version', FORMAT_VERSION)
        if version != FORMAT_VERSION:
            raise ValueError(f"Unsupported agent format version {version}")
        actions = [
            AcrobotAction(
                actuator_id=ObjectId(ObjType.ACTUATOR, int(entry['actuator_id'])),
                torque=float(entry['torque']),
                digitization_index=int(entry['digitization_index']),
            )
            for entry in record['digitized_actions']
        ]
        return cls(
            QTable.from_dict(record['qtable'], rng=rng),
            actions,
            n_arm_digitization=int(record['n_arm_digitization']),
            n_pendulum_digitization=int(record['n_pendulum_digitization']),
            arm_limit=record.get('arm_limit'),
            pendulum_limit=record.get('pendulum_limit'),
            init_ranges=record.get('init_ranges'),
        )

    def save(self, file_path) -> None:
        """Write the whole agent as JSON.  Raises ``PersistenceError``."""
        path = Path(file_path)
        try:
            with open(path, 'w') as f:
                json.dump(self.to_dict(), f)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(path, str(e)) from e
        logger.debug(f"Saved agent to {path}")

    @classmethod
    def load(cls, file_path, rng: Optional[np.random.Generator] = None) -> "QTableAgent":
        """Read an agent written by ``save``.  Raises ``PersistenceError``."""
        path = Path(file_path)
        try:
            with open(path) as f:
                record = json.load(f)
            agent = cls.from_dict(record, rng=rng)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise PersistenceError(path, str(e)) from e
        logger.debug(
            f"Loaded agent from {path}: {agent.qtable.state_size} states x {agent.action_size} actions"
        )
        return agent


class TrainedAgent:
    """Frozen greedy policy over a loaded ``QTableAgent``."""

    def __init__(self, agent: QTableAgent):
        self._agent = agent

    @classmethod
    def load(cls, file_path) -> "TrainedAgent":
        return cls(QTableAgent.load(file_path))

    @property
    def action_size(self) -> int:
        return self._agent.action_size

    @property
    def n_arm_digitization(self) -> int:
        return self._agent.n_arm_digitization

    @property
    def n_pendulum_digitization(self) -> int:
        return self._agent.n_pendulum_digitization

    def task_config(self):
        return self._agent.task_config()

    def get_action(self, state: AcrobotState) -> AcrobotAction:
        return self._agent.get_action(state, Strategy.MOST_Q_VALUE)
