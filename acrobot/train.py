#!/usr/bin/env python3
"""
Acrobot Q-Table Training Script
===============================

Trains a tabular Q-learning agent to balance the MuJoCo acrobot.

Numeric settings come from environment variables (``ACTION_SIZE``,
``N_ARM_DIGITIZATION``, ``N_PENDULUM_DIGITIZATION``, ``MAX_EPISODES``,
``EPISODE_LENGTH``, ``MODEL_LOG_INTERVAL``, ``MODEL_RESTORE_FILE``,
``MODEL_LOG_DIRECTORY``); anything unset keeps its default.

Usage:
    python -m acrobot.train [--test] [--swing] [--reward NAME] [--seed N]

Examples:
    # Quick test run (minimal training)
    python -m acrobot.train --test

    # Resume from a checkpoint
    MODEL_RESTORE_FILE=models/run/agent_10000@512.json python -m acrobot.train
"""

import sys
import argparse
import logging
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional, Tuple
import json

import numpy as np

from . import constants
from .agent import QTableAgent, QTableAgentConfig
from .environment import Environment
from .errors import ControlError, PersistenceError
from .qtable import Strategy
from .task import REWARD_FUNCTIONS, get_config, get_swing_config, make_environment
from .training_config import TrainingConfig
from .training_monitor import TrainingMonitor


# ============================================================================
# Logging Setup
# ============================================================================

def setup_logging(output_dir: Path, level: int = logging.INFO) -> logging.Logger:
    """
    Set up logging to both console and file.

    Args:
        output_dir: Directory for log files
        level: Logging level (default: INFO)

    Returns:
        Configured logger
    """
    # Create logs directory
    log_dir = output_dir / 'logs'
    log_dir.mkdir(parents=True, exist_ok=True)

    # Create logger
    logger = logging.getLogger('acrobot_training')
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    # Drop handlers left by an earlier run in this process
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # Console handler with formatting
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(message)s',
        datefmt='%H:%M:%S'
    )
    console_handler.setFormatter(console_formatter)

    # File handler with detailed formatting
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    file_handler = logging.FileHandler(log_dir / f'training_{timestamp}.log')
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_handler.setFormatter(file_formatter)

    # Add handlers
    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    return logger


# ============================================================================
# Episodes
# ============================================================================

def run_episode(env: Environment, agent: QTableAgent, strategy: Strategy, max_steps: int) -> Tuple[float, int]:
    """
    Run one episode, learning from every transition.

    Returns:
        (episode return, number of steps taken)
    """
    task = env.task
    observation = env.reset()
    episode_return = 0.0
    steps = 0

    for _ in range(max_steps):
        steps += 1
        state = task.state(observation)
        action = agent.get_action(state, strategy)
        time_step = env.step(action)
        next_state = task.state(time_step.observation)
        agent.learn(state, action, time_step.reward, next_state)
        episode_return += time_step.reward
        if time_step.finished:
            break
        observation = time_step.observation

    return episode_return, steps


def run_warmup(env: Environment, agent: QTableAgent, episodes: int, steps: int, logger: logging.Logger) -> None:
    """Seed the table with uniformly random exploration."""
    logger.info(f"Warm-up: {episodes} episodes x {steps} steps of random actions")
    for _ in range(episodes):
        run_episode(env, agent, Strategy.RANDOM, steps)
    logger.debug(f"Q-table after warm-up: {agent.qtable.get_stats()}")


def checkpoint_name(episode: int, episode_return: float) -> str:
    return f"agent_{episode}@{int(round(episode_return))}.json"


def build_task_config(config: TrainingConfig, swing: bool = False, reward: Optional[str] = None):
    task_config = get_swing_config() if swing else get_config()
    task_config.action_size = config.action_size
    task_config.n_arm_digitization = config.n_arm_digitization
    task_config.n_pendulum_digitization = config.n_pendulum_digitization
    if reward is not None:
        task_config.reward = reward
    return task_config


def load_or_create_agent(config: TrainingConfig, env: Environment, rng: np.random.Generator,
                         logger: logging.Logger) -> QTableAgent:
    if config.model_restore_file is None:
        logger.info("Creating fresh agent...")
        return QTableAgent.new(
            QTableAgentConfig(
                action_size=config.action_size,
                state_size=config.state_size,
                initial_alpha=config.initial_alpha,
                initial_epsilon=config.initial_epsilon,
            ),
            env,
            rng=rng,
        )

    logger.info(f"Restoring agent from {config.model_restore_file}...")
    agent = QTableAgent.load(config.model_restore_file, rng=rng)
    check_restored_agent(agent, env)
    return agent


def check_restored_agent(agent: QTableAgent, env: Environment) -> None:
    """Raise ``ValueError`` unless ``agent`` was built for the digitization of ``env``."""
    task = env.task
    mismatches = []
    if agent.qtable.state_size != task.state_size:
        mismatches.append(f"state_size {agent.qtable.state_size} != {task.state_size}")
    if agent.action_size != task.action_size:
        mismatches.append(f"action_size {agent.action_size} != {task.action_size}")
    if agent.n_arm_digitization != task.n_arm_digitization:
        mismatches.append(f"n_arm_digitization {agent.n_arm_digitization} != {task.n_arm_digitization}")
    if agent.n_pendulum_digitization != task.n_pendulum_digitization:
        mismatches.append(
            f"n_pendulum_digitization {agent.n_pendulum_digitization} != {task.n_pendulum_digitization}"
        )
    for name in ('arm_limit', 'pendulum_limit'):
        saved = getattr(agent, name)
        expected = tuple(float(v) for v in task.config[name])
        # Agents saved without limits are checked on bucket counts only
        if saved is not None and tuple(float(v) for v in saved) != expected:
            mismatches.append(f"{name} {saved} != {expected}")
    if mismatches:
        raise ValueError(
            "Restored agent does not match the configured task: " + "; ".join(mismatches)
        )


# ============================================================================
# Main Training Function
# ============================================================================

def train_agent(
    config: TrainingConfig,
    task_config,
    xml_path: str,
    output_dir: Path,
    logger: logging.Logger,
    seed: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Train the acrobot Q-table agent.

    Args:
        config: Training configuration
        task_config: Task ConfigDict (digitization, limits, reward)
        xml_path: Path to MuJoCo XML file
        output_dir: Output directory for checkpoints, plots and logs
        logger: Logger instance
        seed: Seed for episode initialization and exploration

    Returns:
        Dictionary with training results
    """
    logger.info("=" * 80)
    logger.info("ACROBOT Q-TABLE TRAINING")
    logger.info("=" * 80)
    logger.info(f"Mode: {'TEST' if config.test_mode else 'FULL TRAINING'}")
    logger.info(f"Output directory: {output_dir}")
    logger.info(f"XML path: {xml_path}")
    logger.info(f"Reward: {task_config.reward}")
    logger.info("")

    # Log configuration
    logger.info("Training Configuration:")
    for key, value in config.to_dict().items():
        logger.info(f"  {key:30s}: {value}")
    logger.info("")

    start_time = datetime.now()
    try:
        rng = np.random.default_rng(seed)
        logger.info("Creating environment...")
        env = make_environment(task_config, xml_path=xml_path, rng=rng)
        logger.info(f"Environment created: {env.task.state_size} states, {env.task.action_size} actions")

        agent = load_or_create_agent(config, env, rng, logger)
        torques = ', '.join(f"{a.torque:+.3f}" for a in agent.digitized_actions)
        logger.info(f"Action ladder: [{torques}]")

        if config.model_restore_file is None:
            run_warmup(env, agent, config.warmup_episodes, config.warmup_steps, logger)

        monitor = TrainingMonitor(output_dir, config.max_episodes, config.episode_length, logger)

        logger.info("Starting training...")
        for episode in range(1, config.max_episodes + 1):
            episode_return, steps = run_episode(env, agent, Strategy.EPSILON_GREEDY, config.episode_length)
            monitor.record_episode(episode, episode_return, steps)

            if episode % config.log_interval == 0:
                monitor.report(episode, agent.qtable.alpha, agent.qtable.epsilon, env.physics.time())

            if episode % config.model_save_interval == 0:
                path = output_dir / checkpoint_name(episode, episode_return)
                try:
                    agent.save(path)
                    logger.info(f"Saved checkpoint to {path}")
                except PersistenceError as e:
                    logger.warning(f"Failed to save checkpoint: {e}")

            agent.decay_alpha_with_rate(config.decay_rate)
            agent.decay_epsilon_with_rate(config.decay_rate)

        end_time = datetime.now()
        training_time = (end_time - start_time).total_seconds()

        logger.info("")
        logger.info("=" * 80)
        logger.info("TRAINING COMPLETED")
        logger.info("=" * 80)
        logger.info(f"Total time: {training_time:.2f}s ({training_time/60:.2f} min)")

        # Log summary statistics
        summary = monitor.get_summary()
        if summary:
            logger.info("")
            logger.info("Training Summary:")
            logger.info(f"  Final return:      {summary['final_return']:.2f}")
            logger.info(f"  Best return:       {summary['best_return']:.2f}")
            logger.info(f"  Mean return:       {summary['mean_return']:.2f}")
            logger.info(f"  Worst return:      {summary['worst_return']:.2f}")
            logger.info(f"  Num episodes:      {summary['num_episodes']}")
            logger.info("")

        # Save final model
        model_path = output_dir / 'agent_final.json'
        logger.info(f"Saving final agent to {model_path}...")
        agent.save(model_path)
        logger.info("Agent saved successfully")

        # Save training summary
        summary_path = output_dir / 'training_summary.json'
        summary['config'] = config.to_dict()
        summary['qtable'] = agent.qtable.get_stats()
        summary['training_time'] = training_time
        summary['start_time'] = start_time.isoformat()
        summary['end_time'] = end_time.isoformat()

        with open(summary_path, 'w') as f:
            json.dump(summary, f, indent=2)
        logger.info(f"Saved training summary to {summary_path}")

        logger.info("=" * 80)

        return {
            'success': True,
            'agent': agent,
            'summary': summary,
        }

    except (ControlError, ValueError) as e:
        logger.error("=" * 80)
        logger.error("TRAINING FAILED")
        logger.error("=" * 80)
        logger.error(f"Error: {str(e)}", exc_info=True)
        logger.error("=" * 80)

        return {
            'success': False,
            'error': str(e),
        }


# ============================================================================
# Command Line Interface
# ============================================================================

def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Train a Q-table agent for the MuJoCo acrobot',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Quick test run
  python -m acrobot.train --test

  # Swing-up task with the bowl reward
  python -m acrobot.train --swing

  # Custom output directory
  MODEL_LOG_DIRECTORY=./experiments/run_001 python -m acrobot.train
        """
    )

    parser.add_argument(
        '--test',
        action='store_true',
        help='Run in test mode (minimal training for fast iteration)'
    )

    parser.add_argument(
        '--swing',
        action='store_true',
        help='Train the swing-up variant (wide angle domains, bowl reward)'
    )

    parser.add_argument(
        '--reward',
        type=str,
        default=None,
        choices=sorted(REWARD_FUNCTIONS),
        help='Reward function (default: shaped, or bowl with --swing)'
    )

    parser.add_argument(
        '--seed',
        type=int,
        default=None,
        help='Random seed (default: nondeterministic)'
    )

    parser.add_argument(
        '--xml_path',
        type=str,
        default=str(constants.DEFAULT_XML_PATH),
        help='Path to MuJoCo XML scene file (default: bundled acrobot.xml)'
    )

    parser.add_argument(
        '--log_level',
        type=str,
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: INFO)'
    )

    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = TrainingConfig.from_env(test_mode=args.test)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    # Create output directory
    output_dir = Path(config.model_save_directory)
    output_dir.mkdir(parents=True, exist_ok=True)

    # Set up logging
    log_level = getattr(logging, args.log_level.upper())
    logger = setup_logging(output_dir, level=log_level)

    task_config = build_task_config(config, swing=args.swing, reward=args.reward)

    # Train
    results = train_agent(
        config=config,
        task_config=task_config,
        xml_path=args.xml_path,
        output_dir=output_dir,
        logger=logger,
        seed=args.seed,
    )

    # Exit with appropriate code
    sys.exit(0 if results['success'] else 1)


if __name__ == '__main__':
    main()
