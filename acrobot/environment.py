"""
Episode harness shared by every task.

An ``Environment`` composes a ``Physics`` (the simulated body), a ``Task``
(episode initialization, reward, termination, discount), an ``Observation``
type (extracted from physics after every step) and ``Action`` values (written
into physics before every step).  It has two states, between episodes and
mid-episode; ``reset()`` starts an episode and a ``FINISH`` time step ends it.
"""

import abc
import enum
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from .physics import Actuators, Physics


@dataclass(frozen=True)
class Space:
    """Shape and dtype of observations or actions."""

    shape: Tuple[int, ...]
    dtype: type
    num_values: Optional[int] = None  # set for discrete spaces


class Observation(abc.ABC):
    """A pure function of the physics state at one instant."""

    @classmethod
    @abc.abstractmethod
    def generate(cls, physics: Physics) -> "Observation":
        ...

    @classmethod
    def spec(cls) -> Optional[Space]:
        return None


class Action(abc.ABC):
    """Knows how to write itself into the actuators."""

    @abc.abstractmethod
    def apply(self, actuators: Actuators) -> None:
        ...


class Task(abc.ABC):
    """Episode initialization, reward, termination and discount of one task.

    ``should_finish_episode`` and ``get_reward`` must depend on their
    arguments only, so that replaying an observation / action sequence gives
    the same rewards and terminations.
    """

    @abc.abstractmethod
    def discount(self) -> float:
        ...

    @abc.abstractmethod
    def init_episode(self, physics: Physics) -> None:
        """Write the initial joint positions / velocities of a new episode."""

    @abc.abstractmethod
    def should_finish_episode(self, observation: Observation) -> bool:
        ...

    @abc.abstractmethod
    def get_reward(self, observation: Observation, action: Action) -> float:
        ...

    def action_spec(self) -> Optional[Space]:
        return None


class StepType(enum.Enum):
    STEP = "step"        # episode continues
    FINISH = "finish"    # episode ended with this transition


@dataclass(frozen=True)
class TimeStep:
    step_type: StepType
    observation: Any
    reward: float
    discount: Optional[float] = None  # None on FINISH

    @classmethod
    def step(cls, observation, reward: float, discount: float) -> "TimeStep":
        return cls(StepType.STEP, observation, reward, discount)

    @classmethod
    def finish(cls, observation, reward: float) -> "TimeStep":
        return cls(StepType.FINISH, observation, reward, None)

    @property
    def finished(self) -> bool:
        return self.step_type is StepType.FINISH


class Environment:
    """Runs the reset / step protocol of a task against a physics instance."""

    def __init__(self, physics: Physics, task: Task, observation_type: type):
        self._physics = physics
        self._task = task
        self._observation_type = observation_type
        self._in_episode = False

    @property
    def physics(self) -> Physics:
        return self._physics

    @property
    def task(self) -> Task:
        return self._task

    @property
    def in_episode(self) -> bool:
        return self._in_episode

    def observation_spec(self) -> Optional[Space]:
        return self._observation_type.spec()

    def action_spec(self) -> Optional[Space]:
        return self._task.action_spec()

    def reset(self):
        """Start a fresh episode and return its first observation."""
        self._physics.reset()
        self._task.init_episode(self._physics)
        self._physics.forward()
        self._in_episode = True
        return self._observation_type.generate(self._physics)

    def step(self, action: Action) -> TimeStep:
        """Apply ``action``, advance one timestep, and score the new state."""
        action.apply(self._physics.actuators())
        self._physics.step()

        observation = self._observation_type.generate(self._physics)
        reward = self._task.get_reward(observation, action)
        if self._task.should_finish_episode(observation):
            self._in_episode = False
            return TimeStep.finish(observation, reward)
        return TimeStep.step(observation, reward, self._task.discount())
