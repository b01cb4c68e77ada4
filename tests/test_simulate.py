"""Tests for acrobot/simulate.py

Rendering, video encoding and the viewer are mocked; rollouts use the real
simulation.
"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from acrobot import simulate
from acrobot.agent import QTableAgent, QTableAgentConfig, TrainedAgent
from acrobot.task import get_swing_config, make_environment


@pytest.fixture
def trained(agent, tmp_path):
    path = tmp_path / "agent.json"
    agent.save(path)
    return TrainedAgent.load(path), path


# ── load_environment ─────────────────────────────────────────────────

class TestLoadEnvironment:
    def test_matches_agent_digitization(self, trained):
        agent, _ = trained
        env = simulate.load_environment(agent, seed=0)
        assert env.task.n_arm_digitization == agent.n_arm_digitization
        assert env.task.action_size == agent.action_size
        assert env.task.config.reward == 'none'

    def test_swing_agent_starts_from_swing_pose(self, tmp_path):
        swing_env = make_environment(get_swing_config())
        agent = QTableAgent.new(QTableAgentConfig(5, swing_env.task.state_size, 0.1, 0.5), swing_env)
        path = tmp_path / "swing.json"
        agent.save(path)

        env = simulate.load_environment(TrainedAgent.load(path), seed=0)
        assert tuple(env.task.config.elbow_qpos_range) == tuple(get_swing_config().elbow_qpos_range)
        assert tuple(env.task.config.pendulum_limit) == tuple(get_swing_config().pendulum_limit)


# ── generate_rollout ─────────────────────────────────────────────────

class TestGenerateRollout:
    def test_snapshots(self, trained):
        agent, _ = trained
        env = simulate.load_environment(agent, seed=0)
        rollout, finished = simulate.generate_rollout(env, agent, num_steps=10)
        nq, nv = env.physics.model.nq, env.physics.model.nv
        assert len(rollout) <= 11
        for qpos, qvel in rollout:
            assert qpos.shape == (nq,) and qvel.shape == (nv,)
        if not finished:
            assert len(rollout) == 11

    def test_stops_on_finish(self, trained):
        agent, _ = trained
        env = simulate.load_environment(agent, seed=0)
        rollout, finished = simulate.generate_rollout(env, agent, num_steps=100_000)
        assert finished
        assert len(rollout) < 100_001


# ── render_frames ────────────────────────────────────────────────────

class TestRenderFrames:
    def test_one_frame_per_snapshot(self, acrobot_physics):
        width, height = 64, 48
        rollout = [(np.full(2, i * 0.1), np.zeros(2)) for i in range(4)]

        mock_renderer = MagicMock()
        mock_renderer.render.return_value = np.zeros((height, width, 3), dtype=np.uint8)

        with patch.object(simulate.mujoco, "Renderer", return_value=mock_renderer) as renderer_cls:
            frames = simulate.render_frames(acrobot_physics.model, rollout, width=width, height=height)

        renderer_cls.assert_called_once_with(acrobot_physics.model, height=height, width=width)
        assert len(frames) == 4
        assert frames[0].shape == (height, width, 3)
        assert mock_renderer.update_scene.call_args.kwargs["camera"] == "fixed"
        mock_renderer.close.assert_called_once()


# ── save_video_mp4 ───────────────────────────────────────────────────

class TestSaveVideo:
    def test_empty_frames(self, tmp_path):
        with pytest.raises(ValueError):
            simulate.save_video_mp4([], tmp_path / "out.mp4")

    def test_writes_every_frame(self, tmp_path):
        frames = [np.zeros((48, 64, 3), dtype=np.uint8) for _ in range(3)]
        with patch.object(simulate, "cv2") as mock_cv2:
            writer = mock_cv2.VideoWriter.return_value
            writer.isOpened.return_value = True
            simulate.save_video_mp4(frames, tmp_path / "videos" / "out.mp4", fps=100)

        assert (tmp_path / "videos").is_dir()
        assert mock_cv2.VideoWriter.call_args.args[2:] == (100, (64, 48))
        assert writer.write.call_count == 3
        writer.release.assert_called_once()

    def test_writer_not_opened(self, tmp_path):
        frames = [np.zeros((4, 4, 3), dtype=np.uint8)]
        with patch.object(simulate, "cv2") as mock_cv2:
            mock_cv2.VideoWriter.return_value.isOpened.return_value = False
            with pytest.raises(RuntimeError):
                simulate.save_video_mp4(frames, tmp_path / "out.mp4")


# ── main ─────────────────────────────────────────────────────────────

class TestMain:
    def test_video(self, trained, tmp_path):
        _, path = trained
        with patch.object(simulate, "record_video", return_value=5) as mock_record, \
             patch.object(simulate, "run_viewer") as mock_viewer:
            simulate.main([str(path), "--video", str(tmp_path / "out.mp4"), "--steps", "50"])

        mock_record.assert_called_once()
        assert mock_record.call_args.kwargs["num_steps"] == 50
        mock_viewer.assert_not_called()

    def test_viewer(self, trained):
        _, path = trained
        with patch.object(simulate, "run_viewer") as mock_viewer:
            simulate.main([str(path)])
        mock_viewer.assert_called_once()

    def test_bad_agent_file(self, tmp_path):
        with pytest.raises(SystemExit) as excinfo:
            simulate.main([str(tmp_path / "missing.json")])
        assert excinfo.value.code == 1
