"""Tests for acrobot/agent.py"""

import json

import numpy as np
import pytest

from acrobot.agent import QTableAgent, QTableAgentConfig, TrainedAgent
from acrobot.errors import PersistenceError
from acrobot.qtable import Strategy
from acrobot.task import get_config, get_swing_config, make_environment


class TestNew:
    def test_action_ladder(self, agent):
        assert [a.torque for a in agent.digitized_actions] == [-1.0, -0.5, 0.0, 0.5, 1.0]
        assert [a.digitization_index for a in agent.digitized_actions] == [0, 1, 2, 3, 4]
        assert agent.action_size == 5

    def test_table(self, agent, env):
        assert agent.qtable.table.shape == (env.task.state_size, 5)
        assert not agent.qtable.table.any()
        assert agent.qtable.gamma == env.task.discount()
        assert (agent.qtable.alpha, agent.qtable.epsilon) == (0.1, 0.5)

    def test_state_size_must_match_task(self, env):
        config = QTableAgentConfig(action_size=5, state_size=100, initial_alpha=0.1, initial_epsilon=0.5)
        with pytest.raises(ValueError):
            QTableAgent.new(config, env)

    def test_remembers_digitization(self, agent):
        assert agent.n_arm_digitization == 15
        assert agent.n_pendulum_digitization == 16
        config = agent.task_config()
        assert config.n_arm_digitization == 15
        assert config.pendulum_limit == agent.pendulum_limit


class TestLearning:
    def test_get_action_greedy(self, agent, env):
        state = env.task.state(env.reset())
        agent.qtable.table[state.digitized_state] = [0.0, 1.0, 3.0, 3.0, 2.0]
        assert agent.get_action(state, Strategy.MOST_Q_VALUE).digitization_index == 2

    def test_learn_updates_visited_cell(self, agent, env):
        state = env.task.state(env.reset())
        action = agent.digitized_actions[4]
        time_step = env.step(action)
        next_state = env.task.state(time_step.observation)
        agent.learn(state, action, time_step.reward, next_state)
        expected = 0.1 * time_step.reward
        assert agent.qtable.table[state.digitized_state, 4] == pytest.approx(expected)
        assert np.count_nonzero(agent.qtable.table) == 1

    def test_decay(self, agent):
        agent.decay_alpha_with_rate(0.5)
        agent.decay_epsilon_with_rate(0.9)
        assert agent.qtable.alpha == pytest.approx(0.05)
        assert agent.qtable.epsilon == pytest.approx(0.45)


class TestPersistence:
    def test_round_trip_is_exact(self, agent, tmp_path):
        agent.qtable.table[:] = np.random.default_rng(4).normal(size=agent.qtable.table.shape)
        agent.decay_alpha_with_rate(0.9999)
        path = tmp_path / "agent.json"
        agent.save(path)

        restored = QTableAgent.load(path)
        np.testing.assert_array_equal(restored.qtable.table, agent.qtable.table)
        assert restored.qtable.alpha == agent.qtable.alpha
        assert restored.qtable.epsilon == agent.qtable.epsilon
        assert restored.qtable.gamma == agent.qtable.gamma
        assert restored.digitized_actions == agent.digitized_actions
        assert restored.n_arm_digitization == agent.n_arm_digitization
        assert restored.n_pendulum_digitization == agent.n_pendulum_digitization
        assert restored.arm_limit == agent.arm_limit
        assert restored.init_ranges == agent.init_ranges

    def test_file_layout(self, agent, tmp_path):
        path = tmp_path / "agent.json"
        agent.save(path)
        with open(path) as f:
            record = json.load(f)
        assert record["format_version"] == 1
        assert record["qtable"]["state_size"] == agent.qtable.state_size
        assert record["digitized_actions"][0] == {"actuator_id": 0, "digitization_index": 0, "torque": -1.0}

    def test_missing_file(self, tmp_path):
        with pytest.raises(PersistenceError) as excinfo:
            QTableAgent.load(tmp_path / "missing.json")
        assert excinfo.value.path == tmp_path / "missing.json"

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "agent.json"
        path.write_text("{not json")
        with pytest.raises(PersistenceError):
            QTableAgent.load(path)

    def test_missing_field(self, agent, tmp_path):
        record = agent.to_dict()
        del record["qtable"]
        path = tmp_path / "agent.json"
        path.write_text(json.dumps(record))
        with pytest.raises(PersistenceError):
            QTableAgent.load(path)

    def test_mismatched_ladder(self, agent, tmp_path):
        record = agent.to_dict()
        record["digitized_actions"] = record["digitized_actions"][:3]
        path = tmp_path / "agent.json"
        path.write_text(json.dumps(record))
        with pytest.raises(PersistenceError):
            QTableAgent.load(path)

    def test_unwritable_path(self, agent, tmp_path):
        with pytest.raises(PersistenceError):
            agent.save(tmp_path / "no" / "such" / "dir" / "agent.json")


class TestTrainedAgent:
    def test_always_greedy(self, agent, env, tmp_path):
        agent.qtable.epsilon = 1.0
        state = env.task.state(env.reset())
        agent.qtable.table[state.digitized_state, 3] = 1.0
        path = tmp_path / "agent.json"
        agent.save(path)

        trained = TrainedAgent.load(path)
        picks = {trained.get_action(state).digitization_index for _ in range(50)}
        assert picks == {3}

    def test_exposes_digitization(self, tmp_path):
        config = get_swing_config()
        config.n_arm_digitization = 5
        config.n_pendulum_digitization = 6
        config.action_size = 3
        env = make_environment(config)
        agent = QTableAgent.new(QTableAgentConfig(3, env.task.state_size, 0.1, 0.5), env)
        path = tmp_path / "agent.json"
        agent.save(path)

        trained = TrainedAgent.load(path)
        assert trained.action_size == 3
        assert trained.n_arm_digitization == 5
        assert trained.n_pendulum_digitization == 6
        task_config = trained.task_config()
        assert task_config.n_pendulum_digitization == 6
        assert tuple(task_config.pendulum_limit) == tuple(config.pendulum_limit)

    def test_swing_agent_keeps_start_ranges(self, tmp_path):
        env = make_environment(get_swing_config())
        agent = QTableAgent.new(QTableAgentConfig(5, env.task.state_size, 0.1, 0.5), env)
        path = tmp_path / "agent.json"
        agent.save(path)

        task_config = TrainedAgent.load(path).task_config()
        swing = get_swing_config()
        assert tuple(task_config.elbow_qpos_range) == tuple(swing.elbow_qpos_range)
        assert tuple(task_config.shoulder_qpos_range) == (0.0, 0.0)
        assert tuple(task_config.qvel_range) == (0.0, 0.0)

    def test_file_without_start_ranges_uses_balance_defaults(self, agent, tmp_path):
        record = agent.to_dict()
        del record["init_ranges"]
        path = tmp_path / "agent.json"
        path.write_text(json.dumps(record))

        task_config = TrainedAgent.load(path).task_config()
        assert tuple(task_config.elbow_qpos_range) == tuple(get_config().elbow_qpos_range)
