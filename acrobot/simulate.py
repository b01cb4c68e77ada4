#!/usr/bin/env python3
"""
Run a trained acrobot agent greedily.

Without ``--video`` the rollout plays in the interactive MuJoCo viewer in
real time until the episode finishes or the window is closed.  With
``--video PATH`` the rollout is rendered headlessly from the ``fixed`` camera
and saved as MP4.

Run:  python -m acrobot.simulate models/run/agent_final.json [--video out.mp4]
"""

import argparse
import sys
import time
from pathlib import Path
from typing import List, Tuple

import cv2
import mujoco
import mujoco.viewer
import numpy as np

from . import constants
from .agent import TrainedAgent
from .environment import Environment
from .errors import ControlError
from .physics import ObjType
from .task import make_environment

# Pause on the final frame before the viewer closes
FINISH_HOLD_SECONDS = 3.0


def load_environment(agent: TrainedAgent, xml_path=constants.DEFAULT_XML_PATH,
                     seed=None) -> Environment:
    """Environment digitized the way ``agent`` was trained, with no reward."""
    task_config = agent.task_config()
    task_config.reward = 'none'
    return make_environment(task_config, xml_path=xml_path, rng=np.random.default_rng(seed))


# ---------------------------------------------------------------------------
# Headless rollout + video
# ---------------------------------------------------------------------------
def generate_rollout(env: Environment, agent: TrainedAgent,
                     num_steps: int = 1000) -> Tuple[List[Tuple[np.ndarray, np.ndarray]], bool]:
    """Run the greedy policy and collect (qpos, qvel) snapshots.

    Args:
        env: Acrobot environment.
        agent: Trained agent.
        num_steps: Maximum number of environment steps.

    Returns:
        Tuple of (rollout, finished) where rollout has one snapshot per step
        plus the initial state, and finished tells whether the episode
        terminated before ``num_steps``.
    """
    data = env.physics.data
    observation = env.reset()
    rollout = [(data.qpos.copy(), data.qvel.copy())]

    for _ in range(num_steps):
        time_step = env.step(agent.get_action(env.task.state(observation)))
        rollout.append((data.qpos.copy(), data.qvel.copy()))
        if time_step.finished:
            return rollout, True
        observation = time_step.observation
    return rollout, False


def render_frames(model: mujoco.MjModel, rollout, width=640, height=480,
                  camera=constants.FIXED_CAMERA):
    """Render each (qpos, qvel) snapshot to an RGB frame.

    Returns:
        List of numpy arrays with shape (height, width, 3) dtype uint8.
    """
    renderer = mujoco.Renderer(model, height=height, width=width)
    mj_data = mujoco.MjData(model)

    frames = []
    for qpos, qvel in rollout:
        mj_data.qpos[:] = qpos
        mj_data.qvel[:] = qvel
        mujoco.mj_forward(model, mj_data)

        renderer.update_scene(mj_data, camera=camera)
        frames.append(renderer.render())

    renderer.close()
    return frames


def save_video_mp4(frames, output_path, fps=100):
    """Encode RGB frames to an MP4 file using OpenCV.

    Raises:
        ValueError: If frames list is empty.
        RuntimeError: If the video writer cannot be opened.
    """
    if not frames:
        raise ValueError("No frames to write")

    Path(output_path).parent.mkdir(parents=True, exist_ok=True)

    height, width, _ = frames[0].shape
    fourcc = cv2.VideoWriter_fourcc(*"mp4v")
    out = cv2.VideoWriter(str(output_path), fourcc, fps, (width, height))

    if not out.isOpened():
        raise RuntimeError(f"Failed to open video writer for {output_path}")

    for frame in frames:
        out.write(cv2.cvtColor(frame, cv2.COLOR_RGB2BGR))

    out.release()


def record_video(env: Environment, agent: TrainedAgent, output_path,
                 num_steps=1000, width=640, height=480):
    """Rollout + render + save.  Returns the number of frames written."""
    print(f"  Generating rollout (up to {num_steps} steps)...")
    rollout, finished = generate_rollout(env, agent, num_steps=num_steps)
    if finished:
        print(f"  Episode finished after {len(rollout) - 1} steps")

    print(f"  Rendering {len(rollout)} frames at {width}x{height}...")
    frames = render_frames(env.physics.model, rollout, width=width, height=height)

    fps = int(round(1.0 / env.physics.model.opt.timestep))
    print(f"  Saving video to {output_path} ({fps} fps)...")
    save_video_mp4(frames, output_path, fps=fps)
    return len(frames)


# ---------------------------------------------------------------------------
# Interactive viewer
# ---------------------------------------------------------------------------
def run_viewer(env: Environment, agent: TrainedAgent) -> bool:
    """Play the greedy policy in real time.  Returns True if the episode finished."""
    physics = env.physics
    observation = env.reset()

    with mujoco.viewer.launch_passive(physics.model, physics.data) as viewer:
        viewer.cam.type = mujoco.mjtCamera.mjCAMERA_FIXED
        viewer.cam.fixedcamid = physics.object_id_of(ObjType.CAMERA, constants.FIXED_CAMERA).index
        start = time.perf_counter()

        while viewer.is_running():
            # Catch simulated time up with wall-clock time
            while physics.time() < time.perf_counter() - start:
                time_step = env.step(agent.get_action(env.task.state(observation)))
                if time_step.finished:
                    viewer.sync()
                    print(f"[finished] t={physics.time():.2f}s")
                    time.sleep(FINISH_HOLD_SECONDS)
                    return True
                observation = time_step.observation

            viewer.sync()
            time.sleep(0.001)

    return False


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run a trained acrobot Q-table agent")
    parser.add_argument("agent", help="Path to a saved agent JSON file")
    parser.add_argument("--video", default=None, help="Write an MP4 here instead of opening the viewer")
    parser.add_argument("--steps", type=int, default=1000, help="Maximum steps for --video (default: 1000)")
    parser.add_argument("--width", type=int, default=640)
    parser.add_argument("--height", type=int, default=480)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--xml-path", default=str(constants.DEFAULT_XML_PATH))
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    print(f"Loading trained agent from {args.agent}...")
    try:
        agent = TrainedAgent.load(args.agent)
        env = load_environment(agent, xml_path=args.xml_path, seed=args.seed)
    except ControlError as e:
        print(f"Failed to load: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Loaded agent: {agent.action_size} actions, "
          f"{agent.n_arm_digitization} arm / {agent.n_pendulum_digitization} pendulum buckets")

    if args.video is not None:
        print("Recording video...")
        n_frames = record_video(env, agent, args.video, num_steps=args.steps,
                                width=args.width, height=args.height)
        print(f"  Video saved ({n_frames} frames)")
    else:
        print("Starting simulation with the agent...")
        run_viewer(env, agent)


if __name__ == "__main__":
    main()
