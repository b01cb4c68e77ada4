"""Tests for acrobot/train.py and acrobot/training_monitor.py"""

import json
import logging
from unittest.mock import patch

import numpy as np
import pytest

from acrobot import train as train_module
from acrobot.agent import QTableAgent, QTableAgentConfig
from acrobot.errors import PersistenceError
from acrobot.qtable import Strategy
from acrobot.task import get_config, get_swing_config, make_environment
from acrobot.training_config import TrainingConfig
from acrobot.training_monitor import TrainingMonitor


@pytest.fixture
def run_env(monkeypatch, tmp_path):
    """Small test-mode run writing into tmp_path."""
    for var in ("ACTION_SIZE", "N_ARM_DIGITIZATION", "N_PENDULUM_DIGITIZATION", "MODEL_RESTORE_FILE"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("MODEL_LOG_DIRECTORY", str(tmp_path / "run"))
    monkeypatch.setenv("MAX_EPISODES", "5")
    monkeypatch.setenv("EPISODE_LENGTH", "20")
    monkeypatch.setenv("MODEL_LOG_INTERVAL", "2")
    return tmp_path / "run"


class TestEpisodes:
    def test_run_episode_bounded(self, env, agent):
        episode_return, steps = train_module.run_episode(env, agent, Strategy.EPSILON_GREEDY, 15)
        assert 1 <= steps <= 15
        assert episode_return != 0.0
        assert np.count_nonzero(agent.qtable.table) >= 1

    def test_run_episode_stops_on_finish(self, env, agent):
        _, steps = train_module.run_episode(env, agent, Strategy.RANDOM, 100_000)
        assert steps < 100_000
        assert not env.in_episode

    def test_warmup_learns(self, env, agent):
        train_module.run_warmup(env, agent, episodes=2, steps=30, logger=logging.getLogger("test"))
        assert np.count_nonzero(agent.qtable.table) > 0
        # Warm-up does not decay
        assert agent.qtable.alpha == 0.1

    def test_checkpoint_name(self):
        assert train_module.checkpoint_name(10000, 512.4) == "agent_10000@512.json"
        assert train_module.checkpoint_name(3, -1999.6) == "agent_3@-2000.json"

    def test_build_task_config(self):
        config = TrainingConfig()
        config.n_arm_digitization = 9
        task_config = train_module.build_task_config(config, swing=True, reward='none')
        assert task_config.n_arm_digitization == 9
        assert task_config.reward == 'none'
        assert tuple(task_config.pendulum_limit) == train_module.constants.SWING_PENDULUM_LIMIT


class TestMonitor:
    def test_report_writes_metrics_and_plot(self, tmp_path):
        monitor = TrainingMonitor(tmp_path, max_episodes=4, episode_length=10, logger=logging.getLogger("test"))
        for episode, value in enumerate([1.0, 3.0, 5.0, 7.0], start=1):
            monitor.record_episode(episode, value, 10)
            if episode % 2 == 0:
                monitor.report(episode, alpha=0.1, epsilon=0.5, sim_time=0.1)

        with open(tmp_path / "metrics" / "latest_metrics.json") as f:
            metrics = json.load(f)
        assert metrics["episodes"] == [2, 4]
        assert metrics["mean_returns"] == [2.0, 6.0]
        assert (tmp_path / "plots" / "latest_progress.png").exists()

        summary = monitor.get_summary()
        assert summary["best_return"] == 7.0
        assert summary["num_episodes"] == 4

    def test_empty_summary(self, tmp_path):
        monitor = TrainingMonitor(tmp_path, 1, 1, logging.getLogger("test"))
        assert monitor.get_summary() == {}


class TestMain:
    def test_main_test_run(self, run_env):
        with pytest.raises(SystemExit) as excinfo:
            train_module.main(["--test", "--seed", "0"])
        assert excinfo.value.code == 0

        assert (run_env / "agent_final.json").exists()
        assert len(list(run_env.glob("agent_2@*.json"))) == 1
        assert len(list(run_env.glob("agent_4@*.json"))) == 1
        assert (run_env / "metrics" / "latest_metrics.json").exists()
        assert list((run_env / "logs").glob("training_*.log"))

        with open(run_env / "training_summary.json") as f:
            summary = json.load(f)
        assert summary["num_episodes"] == 5
        assert summary["config"]["max_episodes"] == 5

        agent = QTableAgent.load(run_env / "agent_final.json")
        # Five episodes of decay
        assert agent.qtable.alpha == pytest.approx(0.1 * 0.9999 ** 5)

    def test_restore_skips_warmup(self, run_env, monkeypatch, tmp_path):
        with pytest.raises(SystemExit):
            train_module.main(["--test", "--seed", "0"])

        monkeypatch.setenv("MODEL_RESTORE_FILE", str(run_env / "agent_final.json"))
        monkeypatch.setenv("MODEL_LOG_DIRECTORY", str(tmp_path / "resumed"))
        with patch.object(train_module, "run_warmup") as mock_warmup, \
             pytest.raises(SystemExit) as excinfo:
            train_module.main(["--test"])

        assert excinfo.value.code == 0
        mock_warmup.assert_not_called()
        resumed = QTableAgent.load(tmp_path / "resumed" / "agent_final.json")
        assert resumed.qtable.alpha == pytest.approx(0.1 * 0.9999 ** 10)

    def test_restore_mismatch_fails(self, run_env, monkeypatch, tmp_path):
        with pytest.raises(SystemExit):
            train_module.main(["--test"])

        monkeypatch.setenv("MODEL_RESTORE_FILE", str(run_env / "agent_final.json"))
        monkeypatch.setenv("N_ARM_DIGITIZATION", "5")
        monkeypatch.setenv("MODEL_LOG_DIRECTORY", str(tmp_path / "mismatch"))
        with pytest.raises(SystemExit) as excinfo:
            train_module.main(["--test"])
        assert excinfo.value.code == 1

    def test_checkpoint_failure_continues_but_final_failure_exits(self, run_env):
        failing = patch.object(QTableAgent, "save", side_effect=PersistenceError("x.json", "disk full"))
        with failing as mock_save, pytest.raises(SystemExit) as excinfo:
            train_module.main(["--test"])

        assert excinfo.value.code == 1
        # Two checkpoints attempted, then the final save
        assert mock_save.call_count == 3

    def test_invalid_environment(self, run_env, monkeypatch):
        monkeypatch.setenv("MAX_EPISODES", "many")
        with pytest.raises(SystemExit) as excinfo:
            train_module.main(["--test"])
        assert excinfo.value.code == 1

    def test_reward_choice(self, run_env):
        with pytest.raises(SystemExit):
            train_module.main(["--test", "--reward", "sparse"])


class TestRestoreCheck:
    def restored(self, tmp_path, saved_config, target_config):
        """Save an agent built for saved_config, restore it against target_config."""
        saved_env = make_environment(saved_config, rng=np.random.default_rng(0))
        saved = QTableAgent.new(
            QTableAgentConfig(saved_config.action_size, saved_env.task.state_size, 0.1, 0.5), saved_env
        )
        path = tmp_path / "agent.json"
        saved.save(path)

        config = TrainingConfig(test_mode=True)
        config.model_restore_file = str(path)
        env = make_environment(target_config, rng=np.random.default_rng(0))
        return train_module.load_or_create_agent(config, env, np.random.default_rng(0),
                                                 logging.getLogger("test"))

    def test_matching_agent_restores(self, tmp_path):
        agent = self.restored(tmp_path, get_config(), get_config())
        assert (agent.n_arm_digitization, agent.n_pendulum_digitization) == (15, 16)

    def test_swapped_bucket_counts(self, tmp_path):
        saved = get_config()
        saved.n_arm_digitization = 16
        saved.n_pendulum_digitization = 15
        # Same number of states, different meaning
        with pytest.raises(ValueError, match="n_arm_digitization"):
            self.restored(tmp_path, saved, get_config())

    def test_balance_agent_into_swing_task(self, tmp_path):
        with pytest.raises(ValueError, match="pendulum_limit"):
            self.restored(tmp_path, get_config(), get_swing_config())


class TestSetupLogging:
    def test_repeated_setup_keeps_one_pair_of_handlers(self, tmp_path):
        first = train_module.setup_logging(tmp_path / "a")
        old_handlers = list(first.handlers)
        logger = train_module.setup_logging(tmp_path / "b")

        assert logger is first
        assert len(logger.handlers) == 2
        assert not any(handler in logger.handlers for handler in old_handlers)
        assert logger.propagate is False
        file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
        assert len(file_handlers) == 1
        assert str(tmp_path / "b") in file_handlers[0].baseFilename
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
