"""
Dense Q-learning table over digitized states and discrete actions.

Rows are state indices in ``[0, state_size)``, columns are action indices in
``[0, action_size)``.  The table knows nothing about what a state or an action
means; ``QTableAgent`` maps task states / actions to these indices.
"""

import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np


class Strategy(enum.Enum):
    """Action-selection strategies.

    RANDOM:          uniform over all actions; warm-up exploration only.
    EPSILON_GREEDY:  random with probability epsilon, greedy otherwise.
    MOST_Q_VALUE:    always greedy; evaluation of a trained table.
    """

    RANDOM = "random"
    EPSILON_GREEDY = "epsilon_greedy"
    MOST_Q_VALUE = "most_q_value"


def select_action(strategy: Strategy, q_row: np.ndarray, epsilon: float,
                  rng: np.random.Generator) -> int:
    """Pick a column of ``q_row``.  Greedy ties go to the first maximal column."""
    if strategy is Strategy.RANDOM:
        return int(rng.integers(len(q_row)))
    if strategy is Strategy.EPSILON_GREEDY:
        if rng.random() < epsilon:
            return int(rng.integers(len(q_row)))
        return int(np.argmax(q_row))
    if strategy is Strategy.MOST_Q_VALUE:
        return int(np.argmax(q_row))
    raise ValueError(f"Unknown strategy: {strategy!r}")


@dataclass
class QConfig:
    state_size: int
    action_size: int
    alpha: float = 0.1
    epsilon: float = 0.1
    gamma: float = 0.99


class QTable:
    """Q-values plus the decaying learning / exploration rates."""

    def __init__(self, table: np.ndarray, alpha: float, epsilon: float, gamma: float,
                 rng: Optional[np.random.Generator] = None):
        """
        Args:
            table: (state_size, action_size) array of Q-values, used in place
            alpha: Learning rate
            epsilon: Exploration rate for EPSILON_GREEDY
            gamma: Discount factor of the task this table learns
            rng: Random generator for exploration (default: fresh generator)
        """
        if table.ndim != 2 or 0 in table.shape:
            raise ValueError(f"Q-table must be a non-empty 2-D array, got shape {table.shape}")
        self.table = table
        self.alpha = alpha
        self.epsilon = epsilon
        self.gamma = gamma
        self.rng = rng if rng is not None else np.random.default_rng()

    @classmethod
    def new(cls, config: QConfig, rng: Optional[np.random.Generator] = None) -> "QTable":
        """Zero-initialized table with the dimensions of ``config``."""
        table = np.zeros((config.state_size, config.action_size), dtype=np.float64)
        return cls(table, config.alpha, config.epsilon, config.gamma, rng=rng)

    @property
    def state_size(self) -> int:
        return self.table.shape[0]

    @property
    def action_size(self) -> int:
        return self.table.shape[1]

    def _check_state(self, state: int) -> int:
        if not 0 <= state < self.state_size:
            raise IndexError(f"State {state} out of range [0, {self.state_size})")
        return state

    def _check_action(self, action: int) -> int:
        if not 0 <= action < self.action_size:
            raise IndexError(f"Action {action} out of range [0, {self.action_size})")
        return action

    def q_values(self, state: int) -> np.ndarray:
        """Copy of the Q-value row of ``state``."""
        return self.table[self._check_state(state)].copy()

    def next_action(self, state: int, strategy: Strategy) -> int:
        row = self.table[self._check_state(state)]
        return select_action(strategy, row, self.epsilon, self.rng)

    def update(self, state: int, action: int, reward: float, next_state: int) -> None:
        """One-step Q-learning: Q(s,a) += alpha * (r + gamma * max Q(s',.) - Q(s,a))."""
        self._check_state(state)
        self._check_action(action)
        next_best = float(np.max(self.table[self._check_state(next_state)]))
        current = self.table[state, action]
        self.table[state, action] = current + self.alpha * (reward + self.gamma * next_best - current)

    def decay_alpha_with_rate(self, rate: float) -> None:
        self.alpha *= _check_rate(rate)

    def decay_epsilon_with_rate(self, rate: float) -> None:
        self.epsilon *= _check_rate(rate)

    def get_stats(self) -> Dict[str, Any]:
        """Summary statistics of the table, for logging."""
        return {
            'total_entries': int(self.table.size),
            'non_zero_entries': int(np.count_nonzero(self.table)),
            'min_value': float(np.min(self.table)),
            'max_value': float(np.max(self.table)),
            'mean_value': float(np.mean(self.table)),
            'alpha': self.alpha,
            'epsilon': self.epsilon,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state_size': self.state_size,
            'action_size': self.action_size,
            'alpha': self.alpha,
            'epsilon': self.epsilon,
            'gamma': self.gamma,
            'table': self.table.tolist(),
        }

    @classmethod
    def from_dict(cls, record: Dict[str, Any], rng: Optional[np.random.Generator] = None) -> "QTable":
        table = np.array(record['table'], dtype=np.float64)
        expected = (record['state_size'], record['action_size'])
        if table.shape != expected:
            raise ValueError(f"Table shape {table.shape} does not match declared {expected}")
        return cls(table, float(record['alpha']), float(record['epsilon']),
                   float(record['gamma']), rng=rng)


def _check_rate(rate: float) -> float:
    if not 0.0 < rate < 1.0:
        raise ValueError(f"Decay rate must be in (0, 1), got {rate}")
    return rate
