import logging
import json
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, List

import numpy as np
import matplotlib
matplotlib.use('Agg')
from matplotlib import pyplot as plt

# ============================================================================
# Training Progress and Visualization
# ============================================================================

class TrainingMonitor:
    """Monitor training progress with metrics tracking and visualization."""

    def __init__(self, output_dir: Path, max_episodes: int, episode_length: int, logger: logging.Logger):
        self.output_dir = output_dir
        self.max_episodes = max_episodes
        self.episode_length = episode_length
        self.logger = logger

        # Per-episode data
        self.episodes: List[int] = []
        self.returns: List[float] = []
        self.steps: List[int] = []

        # Per-report data
        self.report_episodes: List[int] = []
        self.mean_returns: List[float] = []
        self.alphas: List[float] = []
        self.epsilons: List[float] = []
        self.times: List[datetime] = [datetime.now()]

        # Create plots directory
        self.plots_dir = output_dir / 'plots'
        self.plots_dir.mkdir(parents=True, exist_ok=True)

        # Metrics directory
        self.metrics_dir = output_dir / 'metrics'
        self.metrics_dir.mkdir(parents=True, exist_ok=True)

    def record_episode(self, episode: int, episode_return: float, steps: int) -> None:
        self.episodes.append(episode)
        self.returns.append(float(episode_return))
        self.steps.append(int(steps))

    def report(self, episode: int, alpha: float, epsilon: float, sim_time: float) -> None:
        """
        Log progress since the last report, then refresh the plot and metrics file.

        Args:
            episode: Current training episode
            alpha: Current learning rate
            epsilon: Current exploration rate
            sim_time: Simulated time of the last episode in seconds
        """
        self.times.append(datetime.now())
        time_delta = (self.times[-1] - self.times[-2]).total_seconds()

        since = self.report_episodes[-1] if self.report_episodes else 0
        window = [r for e, r in zip(self.episodes, self.returns) if e > since]
        mean_return = float(np.mean(window)) if window else 0.0

        self.report_episodes.append(episode)
        self.mean_returns.append(mean_return)
        self.alphas.append(alpha)
        self.epsilons.append(epsilon)

        last_return = self.returns[-1] if self.returns else 0.0
        last_steps = self.steps[-1] if self.steps else 0
        self.logger.info(
            f"[episode {episode:>7}]  return: {last_return:>10.2f}  |  "
            f"step: {last_steps:>4}/{self.episode_length}  |  time: {sim_time:>5.2f}[s]"
        )
        self.logger.debug(
            f"  mean return {mean_return:.2f} over {len(window)} episodes, "
            f"alpha={alpha:.6f}, epsilon={epsilon:.6f}, wall {time_delta:.2f}s"
        )

        self._plot_progress(episode)
        self._save_metrics()

    def _plot_progress(self, episode: int) -> None:
        """Generate and save the training progress plot."""
        fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(14, 5))

        # Left plot: returns
        ax1.plot(self.episodes, self.returns, linewidth=0.5, alpha=0.4, label='Episode return')
        ax1.plot(self.report_episodes, self.mean_returns, marker='o', linewidth=2, label='Mean return')
        ax1.axhline(y=0, color='r', linestyle='--', alpha=0.3)
        ax1.set_xlim([0, self.max_episodes * 1.05])
        ax1.set_xlabel('Episode', fontsize=12)
        ax1.set_ylabel('Return', fontsize=12)
        ax1.set_title(f'Training Progress (Episode {episode:,})', fontsize=14)
        ax1.grid(True, alpha=0.3)
        ax1.legend()

        # Right plot: episode lengths
        ax2.plot(self.episodes, self.steps, linewidth=0.5, color='green')
        ax2.axhline(y=self.episode_length, color='black', linestyle='--', alpha=0.3)
        ax2.set_xlabel('Episode', fontsize=12)
        ax2.set_ylabel('Steps before termination', fontsize=12)
        ax2.set_title('Episode Length', fontsize=12)
        ax2.grid(True, alpha=0.3)

        plt.tight_layout()
        plot_path = self.plots_dir / 'latest_progress.png'
        plt.savefig(plot_path, dpi=100, bbox_inches='tight')
        plt.close(fig)

        self.logger.debug(f"Saved plot to {plot_path}")

    def _save_metrics(self) -> None:
        """Save metrics to JSON file."""
        metrics_data = {
            'episodes': self.report_episodes,
            'mean_returns': self.mean_returns,
            'alphas': self.alphas,
            'epsilons': self.epsilons,
            'timestamps': [t.isoformat() for t in self.times[1:]],  # Skip initial time
        }

        metrics_path = self.metrics_dir / 'latest_metrics.json'
        with open(metrics_path, 'w') as f:
            json.dump(metrics_data, f, indent=2)

        self.logger.debug(f"Saved metrics to {metrics_path}")

    def get_summary(self) -> Dict[str, Any]:
        """Get summary statistics from training."""
        if not self.returns:
            return {}

        return {
            'final_return': self.returns[-1],
            'best_return': max(self.returns),
            'worst_return': min(self.returns),
            'mean_return': float(np.mean(self.returns)),
            'mean_steps': float(np.mean(self.steps)),
            'total_time': (datetime.now() - self.times[0]).total_seconds(),
            'num_episodes': len(self.returns),
        }
