"""Episode statistics and result export (CSV table + text summary)."""

import csv
import io
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol, Sequence

import numpy as np

from ..domain.types import EpisodeRecord, TrainingConfig, TrainingResult

logger = logging.getLogger(__name__)

CSV_HEADER = ["Episode", "Reward", "Steps", "Epsilon", "Success"]


@dataclass(frozen=True)
class WindowStats:
    """Aggregates over the most recent episodes."""
    count: int
    mean_reward: float
    mean_steps: float
    success_rate: float  # 0.0 - 1.0
    reward_std: float    # population standard deviation


def window_stats(history: Sequence[EpisodeRecord], window: int) -> Optional[WindowStats]:
    """Statistics over the last `window` episodes, None if there are none."""
    if window <= 0:
        return None
    recent = list(history[-window:])
    if not recent:
        return None

    rewards = np.array([ep.reward for ep in recent], dtype=float)
    steps = np.array([ep.steps for ep in recent], dtype=float)
    successes = sum(1 for ep in recent if ep.success)

    return WindowStats(
        count=len(recent),
        mean_reward=float(rewards.mean()),
        mean_steps=float(steps.mean()),
        success_rate=successes / len(recent),
        reward_std=reward_std(rewards),
    )


def reward_std(rewards) -> float:
    """sqrt(mean((x - mean)^2)) - the population formula."""
    rewards = np.asarray(rewards, dtype=float)
    if rewards.size == 0:
        return 0.0
    return float(np.sqrt(np.mean((rewards - rewards.mean()) ** 2)))


def render_csv(history: Sequence[EpisodeRecord]) -> str:
    """Full per-episode table, one row per episode."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for ep in history:
        writer.writerow([ep.episode, ep.reward, ep.steps, ep.epsilon, 1 if ep.success else 0])
    return buffer.getvalue()


def render_summary(result: TrainingResult, config: TrainingConfig, window: Optional[int] = None) -> str:
    """Human-readable summary of the run."""
    window = window or config.summary_window
    stats = window_stats(result.episodes, window)
    first = result.episodes_until_first_success

    lines = [
        "=== TRAINING SUMMARY ===",
        "",
        f"Mode: {result.reward_mode}",
        "",
        "Parameters:",
        f"  - Learning Rate (alpha): {config.learning_rate}",
        f"  - Discount Factor (gamma): {config.discount_factor}",
        f"  - Epsilon: {config.epsilon} (decay {config.epsilon_decay}, min {config.epsilon_min})",
        f"  - Lambda: {config.decay_lambda}",
        f"  - Shaping Multiplier: {config.shaping_multiplier}",
        f"  - Max Steps per Episode: {config.max_steps_per_episode}",
        "",
        "Results:",
        f"  - Total episodes: {result.total_episodes}",
        f"  - First success: {'episode ' + str(first) if first is not None else 'none'}",
        f"  - Final epsilon: {result.final_epsilon:.4f}",
    ]

    if stats is not None:
        lines += [
            f"  - Average reward (last {stats.count}): {stats.mean_reward:.2f} ± {stats.reward_std:.2f}",
            f"  - Average steps (last {stats.count}): {stats.mean_steps:.2f}",
            f"  - Success rate (last {stats.count}): {stats.success_rate * 100:.1f}%",
        ]

    return "\n".join(lines) + "\n"


class ResultsSink(Protocol):
    """Destination for the episode table and the summary."""

    def write_episodes(self, csv_text: str) -> None:
        ...

    def write_summary(self, summary_text: str) -> None:
        ...


class DirectoryResultsSink:
    """Writes Training_<Mode>_<timestamp>.csv and its _summary.txt into a directory."""

    def __init__(self, output_dir: str, mode_name: str, timestamp: Optional[str] = None):
        self.output_dir = Path(output_dir)
        timestamp = timestamp or datetime.now().strftime("%Y%m%d_%H%M%S")
        self.csv_path = self.output_dir / f"Training_{mode_name}_{timestamp}.csv"
        self.summary_path = self.output_dir / f"Training_{mode_name}_{timestamp}_summary.txt"

    def write_episodes(self, csv_text: str) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.csv_path.write_text(csv_text, encoding="utf-8")

    def write_summary(self, summary_text: str) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.summary_path.write_text(summary_text, encoding="utf-8")


def export_results(result: TrainingResult, config: TrainingConfig, sink: ResultsSink) -> bool:
    """Hand the episode table and summary to the sink, False if writing failed."""
    try:
        sink.write_episodes(render_csv(result.episodes))
        sink.write_summary(render_summary(result, config))
    except OSError as e:
        logger.error("Failed to export training results: %s", e)
        return False
    return True
