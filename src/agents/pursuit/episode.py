"""
Episode accounting for pursuit training.

Option-Based Pursuit Agent

The episode manager owns the episode boundary: it resets the world,
drives the orchestrator frame by frame, detects capture and timeout,
credits the terminal reward and then lets the orchestrator decay its
exploration and clear per-episode state.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

import numpy as np

from .config import PursuitConfig
from .orchestrator import DecisionOrchestrator


logger = logging.getLogger(__name__)


class EpisodeOutcome(Enum):
    """How an episode ended."""
    CAPTURE = 0
    TIMEOUT = 1
    OBJECTIVE_COMPLETE = 2

    @property
    def is_success(self) -> bool:
        return self is EpisodeOutcome.CAPTURE


@dataclass
class EpisodeStats:
    """Summary of one finished episode."""
    episode: int
    outcome: str
    elapsed: float
    steps: int
    total_reward: float
    terminal_reward: float
    final_distance: float
    epsilon: float
    decisions: int
    options_succeeded: int
    options_failed: int
    options_interrupted: int
    hard_pursuits: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


class EpisodeManager:
    """
    Runs arena episodes with a decision orchestrator.

    The arena must provide reset() -> AgentContext, step(dt),
    is_captured(distance) and distance_to_target(). An arena with an
    objective_complete() method ends the episode as an escape when the
    target reaches its objective.
    """

    def __init__(
        self,
        arena,
        config: Optional[PursuitConfig] = None,
        orchestrator: Optional[DecisionOrchestrator] = None,
        dt: float = 0.1,
        seed: Optional[int] = None
    ):
        """
        Initialize episode manager.

        Args:
            arena: World to run episodes in
            config: Pursuit configuration (episode settings included)
            orchestrator: Existing orchestrator; built from config if None
            dt: Frame length in seconds
            seed: Random seed for a newly built orchestrator
        """
        self.arena = arena
        self.config = config or (orchestrator.config if orchestrator else PursuitConfig())
        self.dt = dt

        context = arena.reset()
        self.orchestrator = orchestrator or DecisionOrchestrator(context, self.config, seed)
        self.orchestrator.context = context

        self.current_episode = 0
        self.episode_running = False
        self.episode_start_time = 0.0
        self.episode_steps = 0
        self._captures_at_start = 0
        self.history: List[EpisodeStats] = []

    @property
    def context(self):
        return self.orchestrator.context

    @property
    def elapsed(self) -> float:
        return self.context.time - self.episode_start_time

    def start_episode(self):
        """Reset the world and make the first decision."""
        context = self.arena.reset()
        self.orchestrator.context = context
        self.orchestrator.exact_compressor.reset(context.time)

        self.current_episode += 1
        self.episode_running = True
        self.episode_start_time = context.time
        self.episode_steps = 0
        self._captures_at_start = self.orchestrator.stats.captures

        self.orchestrator.start_new_option()
        logger.debug(f"Episode {self.current_episode} started at t={context.time:.1f}")

    def step(self, dt: Optional[float] = None) -> Optional[EpisodeOutcome]:
        """
        Advance world and agent by one frame.

        Returns:
            The outcome if the episode ended on this frame, else None
        """
        if not self.episode_running:
            raise RuntimeError("No episode running. Call start_episode() first.")

        dt = self.dt if dt is None else dt
        self.arena.step(dt)
        self.orchestrator.tick(dt)
        self.episode_steps += 1

        episode_cfg = self.config.episode
        captured = (self.orchestrator.stats.captures > self._captures_at_start or
                    self.arena.is_captured(episode_cfg.capture_distance))
        if captured:
            self.end_episode(EpisodeOutcome.CAPTURE)
            return EpisodeOutcome.CAPTURE

        objective_complete = getattr(self.arena, 'objective_complete', None)
        if objective_complete is not None and objective_complete():
            self.end_episode(EpisodeOutcome.OBJECTIVE_COMPLETE)
            return EpisodeOutcome.OBJECTIVE_COMPLETE

        if self.elapsed >= episode_cfg.episode_timeout:
            self.end_episode(EpisodeOutcome.TIMEOUT)
            return EpisodeOutcome.TIMEOUT

        return None

    def end_episode(self, outcome: EpisodeOutcome) -> EpisodeStats:
        """
        Close the episode: terminal update, orchestrator reset, belief reset.

        Args:
            outcome: How the episode ended

        Returns:
            Statistics of the finished episode
        """
        orchestrator = self.orchestrator
        elapsed = self.elapsed
        episode_cfg = self.config.episode
        terminal_reward = episode_cfg.capture_reward if outcome.is_success else episode_cfg.escape_reward

        orchestrator.apply_terminal_reward(outcome.is_success, elapsed)
        counters = orchestrator.stats

        stats = EpisodeStats(
            episode=self.current_episode,
            outcome=outcome.name,
            elapsed=elapsed,
            steps=self.episode_steps,
            total_reward=counters.total_reward + terminal_reward,
            terminal_reward=terminal_reward,
            final_distance=float(self.arena.distance_to_target()),
            epsilon=orchestrator.policy.epsilon,
            decisions=counters.decisions,
            options_succeeded=counters.options_succeeded,
            options_failed=counters.options_failed,
            options_interrupted=counters.options_interrupted,
            hard_pursuits=counters.hard_pursuits,
        )

        orchestrator.end_episode()
        reset_belief = getattr(self.context.sensing, 'reset_belief', None)
        if reset_belief is not None:
            reset_belief()

        self.episode_running = False
        self.history.append(stats)

        logger.info(
            f"Episode {stats.episode}: {stats.outcome} after {elapsed:.1f}s "
            f"({stats.decisions} decisions, reward={stats.total_reward:+.2f}, eps={stats.epsilon:.3f})"
        )
        return stats

    def run_episode(self, max_steps: Optional[int] = None) -> EpisodeStats:
        """
        Run one complete episode.

        Args:
            max_steps: Optional frame limit; reaching it counts as a timeout

        Returns:
            Statistics of the episode
        """
        self.start_episode()
        while True:
            outcome = self.step()
            if outcome is not None:
                return self.history[-1]
            if max_steps is not None and self.episode_steps >= max_steps:
                return self.end_episode(EpisodeOutcome.TIMEOUT)

    def train(
        self,
        num_episodes: Optional[int] = None,
        save_path: Optional[str] = None,
        save_every: int = 50
    ) -> List[EpisodeStats]:
        """
        Run several episodes, optionally checkpointing the Q-tables.

        Args:
            num_episodes: Episodes to run (defaults to config.episode.max_episodes)
            save_path: Table file to write every save_every episodes and at the end
            save_every: Checkpoint interval in episodes

        Returns:
            Statistics of the episodes run
        """
        num_episodes = num_episodes if num_episodes is not None else self.config.episode.max_episodes
        results = []
        for i in range(num_episodes):
            results.append(self.run_episode())
            if save_path and save_every > 0 and (i + 1) % save_every == 0:
                self.orchestrator.save_tables(save_path)
        if save_path:
            self.orchestrator.save_tables(save_path)
        return results

    def summary(self, last_n: Optional[int] = None) -> Dict[str, Any]:
        """Aggregate statistics over the recorded (or last n) episodes."""
        episodes = self.history[-last_n:] if last_n else self.history
        if not episodes:
            return {'episodes': 0, 'captures': 0, 'capture_rate': 0.0, 'mean_elapsed': 0.0,
                    'mean_reward': 0.0, 'mean_decisions': 0.0,
                    'epsilon': self.orchestrator.policy.epsilon}

        captures = sum(1 for e in episodes if e.outcome == EpisodeOutcome.CAPTURE.name)
        return {
            'episodes': len(episodes),
            'captures': captures,
            'capture_rate': captures / len(episodes),
            'mean_elapsed': float(np.mean([e.elapsed for e in episodes])),
            'mean_reward': float(np.mean([e.total_reward for e in episodes])),
            'mean_decisions': float(np.mean([e.decisions for e in episodes])),
            'epsilon': self.orchestrator.policy.epsilon,
        }
