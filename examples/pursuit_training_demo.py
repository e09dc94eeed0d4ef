"""
Demo script for training the pursuit agent in the room arena.

Runs a short training session with the tabular option policy, prints
per-episode results and the learned table statistics, then saves the
Q-tables.
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import logging

from src.agents.pursuit import (
    EpisodeManager,
    OptionType,
    load_config,
)
from src.environments.room_arena import RoomArena, create_grid_layout


def main():
    """Run pursuit training demo."""
    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')

    print("=== Pursuit Agent Training Demo ===\n")

    root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    config = load_config(os.path.join(root, 'configs', 'pursuit_default.yaml'))
    config.episode.max_episodes = 25

    print("Creating room arena...")
    layout = create_grid_layout(columns=3, rows=3, room_size=10.0)
    arena = RoomArena(layout=layout, seed=config.seed)
    print(f"Rooms: {len(layout.get_all_rooms())}, hide spots: {len(layout.get_all_hide_spots())}")

    manager = EpisodeManager(arena, config, seed=config.seed)
    state_space = 'compact (486 states)' if config.use_compact_state else 'exact (20-bit)'
    print(f"State space: {state_space}")
    print(f"Options: {', '.join(o.name for o in OptionType)}")

    print("\n=== Training ===")
    for _ in range(config.episode.max_episodes):
        stats = manager.run_episode()
        print(f"Episode {stats.episode:3d}: {stats.outcome:<9} "
              f"t={stats.elapsed:5.1f}s decisions={stats.decisions:3d} "
              f"reward={stats.total_reward:+6.2f} eps={stats.epsilon:.3f}")

    print("\n=== Summary ===")
    summary = manager.summary()
    print(f"Capture rate: {summary['capture_rate']:.0%}")
    print(f"Mean episode length: {summary['mean_elapsed']:.1f}s")
    print(f"Mean reward: {summary['mean_reward']:+.2f}")

    policy_stats = manager.orchestrator.policy.get_statistics()
    print(f"Q-table states: {policy_stats['table_size']}")
    print(f"Updates performed: {policy_stats['updates_performed']}")

    save_path = os.path.join(root, 'checkpoints', 'pursuit', 'qtables.json')
    manager.orchestrator.save_tables(save_path)
    print(f"\nSaved Q-tables to {save_path}")


if __name__ == "__main__":
    main()
