import os
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from . import constants

# ============================================================================
# Configuration
# ============================================================================


def _default_save_directory() -> str:
    return os.path.join("models", datetime.now().strftime("%Y-%m-%d %H:%M:%S"))


class TrainingConfig:
    """Training configuration with sensible defaults."""

    def __init__(self, test_mode: bool = False):
        self.test_mode = test_mode

        self.action_size = constants.ACTION_SIZE
        self.n_arm_digitization = constants.N_ARM_DIGITIZATION
        self.n_pendulum_digitization = constants.N_PENDULUM_DIGITIZATION
        self.initial_alpha = constants.INITIAL_ALPHA
        self.initial_epsilon = constants.INITIAL_EPSILON
        self.decay_rate = constants.DECAY_RATE
        self.model_restore_file: Optional[str] = None
        self.model_save_directory = _default_save_directory()

        if test_mode:
            # Minimal config for a smoke run (seconds)
            self.max_episodes = 20
            self.episode_length = 200
            self.model_save_interval = 10
            self.warmup_episodes = 2
            self.warmup_steps = 50
            self.log_interval = 5
        else:
            # Full training config (hours)
            self.max_episodes = 1_000_000
            self.episode_length = 6000
            self.model_save_interval = 10_000
            self.warmup_episodes = constants.WARMUP_EPISODES
            self.warmup_steps = constants.WARMUP_STEPS
            self.log_interval = 1000

    @property
    def state_size(self) -> int:
        return self.n_arm_digitization ** 2 * self.n_pendulum_digitization ** 2

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None,
                 test_mode: bool = False) -> "TrainingConfig":
        """Override the defaults from environment variables.

        Integer variables that are unset or empty keep their defaults; values
        that do not parse raise ``ValueError`` naming the variable.
        """
        environ = os.environ if environ is None else environ
        config = cls(test_mode=test_mode)

        int_fields = {
            "ACTION_SIZE": "action_size",
            "N_ARM_DIGITIZATION": "n_arm_digitization",
            "N_PENDULUM_DIGITIZATION": "n_pendulum_digitization",
            "MAX_EPISODES": "max_episodes",
            "EPISODE_LENGTH": "episode_length",
            "MODEL_LOG_INTERVAL": "model_save_interval",
        }
        for var, field in int_fields.items():
            raw = environ.get(var, "").strip()
            if not raw:
                continue
            try:
                value = int(raw)
            except ValueError as e:
                raise ValueError(f"{var} must be an integer, got {raw!r}") from e
            if value <= 0:
                raise ValueError(f"{var} must be positive, got {value}")
            setattr(config, field, value)

        restore = environ.get("MODEL_RESTORE_FILE", "").strip()
        if restore:
            config.model_restore_file = restore
        save_dir = environ.get("MODEL_LOG_DIRECTORY", "").strip()
        if save_dir:
            config.model_save_directory = save_dir
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "test_mode": self.test_mode,
            "action_size": self.action_size,
            "n_arm_digitization": self.n_arm_digitization,
            "n_pendulum_digitization": self.n_pendulum_digitization,
            "max_episodes": self.max_episodes,
            "episode_length": self.episode_length,
            "model_save_interval": self.model_save_interval,
            "model_restore_file": self.model_restore_file,
            "model_save_directory": self.model_save_directory,
            "warmup_episodes": self.warmup_episodes,
            "warmup_steps": self.warmup_steps,
            "log_interval": self.log_interval,
            "initial_alpha": self.initial_alpha,
            "initial_epsilon": self.initial_epsilon,
            "decay_rate": self.decay_rate,
        }
