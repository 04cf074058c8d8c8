#!/usr/bin/env python3
"""
Command-line training for the fetch-key grid world.
Trains an agent headless (or with a terminal view) and exports the episode
table plus a summary.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

from .app.controller import TrainingController
from .domain.types import REWARD_MODES, Coord, Grid, TrainingConfig
from .ui.console import ConsoleRenderer
from .utils.grid_factory import create_empty_grid, generate_solvable_grid
from .utils.layout_serialization import extract_layout, load_layout, save_layout
from .utils.metrics_export import window_stats


def parse_coord(text: str) -> Coord:
    """Parse "x,y" into a coordinate."""
    try:
        x, y = (int(part) for part in text.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected x,y but got {text!r}")
    return (x, y)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fetchkey", description="Q-learning for the fetch-key grid world")
    parser.add_argument("--width", type=int, default=5, help="Grid width")
    parser.add_argument("--height", type=int, default=5, help="Grid height")
    parser.add_argument("--obstacles", type=int, default=0, help="Number of random obstacles")
    parser.add_argument("--layout", type=str, help="Load grid and start/key/goal from a layout file")
    parser.add_argument("--save-layout", type=str, help="Save the grid used for training to this file")
    parser.add_argument("--start", type=parse_coord, default=(0, 0), help="Start cell x,y")
    parser.add_argument("--key", type=parse_coord, default=(4, 2), help="Key cell x,y")
    parser.add_argument("--goal", type=parse_coord, default=(4, 4), help="Goal cell x,y")

    parser.add_argument("--episodes", type=int, default=1000, help="Number of episodes to train")
    parser.add_argument("--max-steps", type=int, default=100, help="Maximum steps per episode")
    parser.add_argument("--mode", choices=REWARD_MODES, default="Sparse", help="Reward mode")
    parser.add_argument("--alpha", type=float, default=0.1, help="Learning rate")
    parser.add_argument("--gamma", type=float, default=0.99, help="Discount factor")
    parser.add_argument("--epsilon", type=float, default=0.1, help="Initial exploration rate")
    parser.add_argument("--epsilon-decay", type=float, default=0.995, help="Epsilon decay per episode")
    parser.add_argument("--epsilon-min", type=float, default=0.01, help="Minimum epsilon")
    parser.add_argument("--lambda", dest="decay_lambda", type=float, default=500.0,
                        help="Shaping decay constant for the Decaying mode")
    parser.add_argument("--shaping", type=float, default=0.5, help="Shaping multiplier")

    parser.add_argument("--no-backtrack-penalty", action="store_true", help="Disable the stay-in-place penalty")
    parser.add_argument("--no-loop-penalty", action="store_true", help="Disable the recent-revisit penalty")
    parser.add_argument("--no-path-aware", action="store_true", help="Disable the BFS detour penalty")
    parser.add_argument("--loop-window", type=int, default=4, help="Recent positions remembered for loops")

    parser.add_argument("--seed", type=int, help="Random seed")
    parser.add_argument("--output-dir", type=str, default="results", help="Directory for CSV and summary")
    parser.add_argument("--no-export", action="store_true", help="Do not write result files")
    parser.add_argument("--show-training", action="store_true", help="Print the grid after every step")
    parser.add_argument("--step-delay", type=float, default=0.1, help="Seconds between rendered steps")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser


def config_from_args(args) -> TrainingConfig:
    return TrainingConfig(
        learning_rate=args.alpha,
        discount_factor=args.gamma,
        epsilon=args.epsilon,
        epsilon_decay=args.epsilon_decay,
        epsilon_min=args.epsilon_min,
        reward_mode=args.mode,
        decay_lambda=args.decay_lambda,
        shaping_multiplier=args.shaping,
        max_episodes=args.episodes,
        max_steps_per_episode=args.max_steps,
        start=args.start,
        key=args.key,
        goal=args.goal,
        enable_backtrack_penalty=not args.no_backtrack_penalty,
        enable_loop_penalty=not args.no_loop_penalty,
        loop_window=args.loop_window,
        enable_path_aware_shaping=not args.no_path_aware,
        seed=args.seed,
    )


def build_grid(args, config: TrainingConfig) -> Tuple[Optional[Grid], str]:
    """Load or generate the grid; returns (grid, description)."""
    if args.layout:
        layout = load_layout(args.layout)
        if layout is None:
            return None, f"could not load layout {args.layout}"
        layout.apply_to_config(config)
        return layout.to_grid(), f"layout {layout.name or args.layout}"

    if args.obstacles > 0:
        config.validate((args.width, args.height))
        grid = generate_solvable_grid(args.width, args.height, args.obstacles,
                                      config.start, config.key, config.goal, seed=args.seed)
        return grid, f"{len(grid.obstacles)} random obstacles"

    return create_empty_grid(args.width, args.height), "no obstacles"


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.INFO),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    print("🧠 Fetch-Key Q-Learning")
    print("=" * 50)

    config = config_from_args(args)
    try:
        grid, description = build_grid(args, config)
    except ValueError as e:
        print(f"❌ {e}")
        return 1
    if grid is None:
        print(f"❌ Failed: {description}. Exiting.")
        return 1

    print(f"📐 Grid: {grid.width}x{grid.height} ({description})")
    print(f"🎯 Start: {config.start} → Key: {config.key} → Goal: {config.goal}")
    print(f"⚙️  Mode: {config.reward_mode} | α={config.learning_rate} γ={config.discount_factor} "
          f"ε={config.epsilon} → {config.epsilon_min}")

    if args.save_layout:
        save_layout(extract_layout(grid, config, name=Path(args.save_layout).stem), args.save_layout)

    observer = None
    if args.show_training:
        observer = ConsoleRenderer(grid, config.key, config.goal, step_delay=args.step_delay)

    controller = TrainingController(grid, config, observer=observer,
                                    output_dir=None if args.no_export else args.output_dir)

    print(f"\n🚀 Starting training...")
    try:
        result = controller.start_training()
    except KeyboardInterrupt:
        print(f"\n⏹️  Training interrupted by user")
        return 1

    if result is None:
        print(f"❌ Training did not start: {controller.last_error}")
        return 1

    stats = window_stats(result.episodes, config.summary_window)
    first = result.episodes_until_first_success
    print(f"\n🎉 Training completed!")
    print(f"   Total episodes: {result.total_episodes}")
    print(f"   First success: {'episode ' + str(first) if first is not None else 'none'}")
    if stats is not None:
        print(f"   Average reward (last {stats.count}): {stats.mean_reward:.2f} ± {stats.reward_std:.2f}")
        print(f"   Average steps (last {stats.count}): {stats.mean_steps:.2f}")
        print(f"   Success rate (last {stats.count}): {stats.success_rate:.1%}")
    print(f"   Final epsilon: {result.final_epsilon:.3f}")

    if controller.last_export_ok is False:
        print("⚠️  Results could not be written; see the log for details")

    print(f"\n🧪 Testing final policy...")
    rollout = controller.trainer.follow_policy()
    if rollout.success:
        print(f"✅ Key fetched and goal reached in {rollout.steps} steps")
    else:
        print(f"❌ Greedy policy did not finish the task")

    return 0


if __name__ == "__main__":
    sys.exit(main())
