"""
Decision orchestrator: the top-level SMDP loop.

Option-Based Pursuit Agent

Each decision point extracts a discrete state, masks the action set, asks
the tabular policy for an option and starts it. The option is then ticked
once per frame until it finishes or is interrupted; at that boundary the
shaped reward is computed and the SMDP update applied with the option's
real duration. Option boundaries, not frames, are the decision points.

Two modes:
- OPTION_DRIVEN: the loop above
- HARD_PURSUIT: while the target is in sight the chase routine drives
  locomotion directly and the policy is bypassed
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import logging

import numpy as np

from .action_mask import ActionMasker
from .base_option import BaseOption
from .chase import ChaseRoutine, ChaseStatus
from .config import PursuitConfig
from .context import AgentContext, Vec2, distance
from .meta_controller import MetaController
from .option_types import CoarseAction, InterruptKind, OptionStatus, OptionType
from .options import create_option_pool
from .q_policy import TabularQPolicy
from .reward_shaper import RewardBreakdown, RewardShaper
from .state_compressor import CompactStateCompressor, ExactStateCompressor
from .state_keys import CompactStateKey, ExactStateKey
from .target_selection import TargetSelector


logger = logging.getLogger(__name__)

StateKey = Union[CompactStateKey, ExactStateKey]


class OrchestratorMode(Enum):
    """Who currently drives locomotion."""
    OPTION_DRIVEN = 0
    HARD_PURSUIT = 1


@dataclass
class DecisionRecord:
    """Bookkeeping of the last decision, read by telemetry and the learner."""
    state_index: int
    state_label: str
    action: OptionType
    q_values: List[float]
    valid_actions: List[OptionType]
    start_time: float
    forced: bool = False
    coarse_action: Optional[CoarseAction] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'state_index': self.state_index,
            'state': self.state_label,
            'action': self.action.name,
            'q_values': list(self.q_values),
            'valid_actions': [a.name for a in self.valid_actions],
            'start_time': self.start_time,
            'forced': self.forced,
            'coarse_action': self.coarse_action.name if self.coarse_action else None,
        }


@dataclass
class OrchestratorStats:
    """Counters accumulated over an episode."""
    decisions: int = 0
    forced_decisions: int = 0
    options_succeeded: int = 0
    options_failed: int = 0
    options_interrupted: int = 0
    hard_pursuits: int = 0
    captures: int = 0
    chase_losses: int = 0
    total_reward: float = 0.0
    option_counts: Dict[str, int] = field(default_factory=dict)
    interrupt_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'decisions': self.decisions,
            'forced_decisions': self.forced_decisions,
            'options_succeeded': self.options_succeeded,
            'options_failed': self.options_failed,
            'options_interrupted': self.options_interrupted,
            'hard_pursuits': self.hard_pursuits,
            'captures': self.captures,
            'chase_losses': self.chase_losses,
            'total_reward': self.total_reward,
            'option_counts': dict(self.option_counts),
            'interrupt_counts': dict(self.interrupt_counts),
        }


class DecisionOrchestrator:
    """
    Per-agent decision loop over the option pool.

    The driver owns the clock: it advances context.time and then calls
    tick(dt) once per frame. Nothing here blocks or sleeps.
    """

    def __init__(
        self,
        context: AgentContext,
        config: Optional[PursuitConfig] = None,
        seed: Optional[int] = None
    ):
        """
        Initialize orchestrator.

        Args:
            context: Collaborators and clock of this agent
            config: Pursuit configuration
            seed: Random seed (defaults to config.seed)
        """
        self.context = context
        self.config = config or PursuitConfig()
        seed = seed if seed is not None else self.config.seed
        self.rng = np.random.default_rng(seed)

        # State extraction
        self.compact_compressor = CompactStateCompressor(self.config.compact_state)
        self.exact_compressor = ExactStateCompressor(self.config.exact_state)
        self.masker = ActionMasker(self.config.mask)

        # Learning
        self.policy = TabularQPolicy(OptionType.count(), self.config.policy,
                                     seed=seed, name='fine')
        self.reward_shaper = RewardShaper(self.config.reward)
        self.meta: Optional[MetaController] = None
        if self.config.meta.enabled:
            self.meta = MetaController(self.config.meta, self.config.mask, seed=seed)

        # Behaviors
        self.selector = TargetSelector(self.config.targets, self.rng)
        self.options: Dict[OptionType, BaseOption] = create_option_pool(
            self.config.options, self.selector, self.rng
        )
        self.chase = ChaseRoutine(self.config.chase)
        self.chase.on_captured.append(self._on_captured)

        # Bookkeeping
        self._mode = OrchestratorMode.OPTION_DRIVEN
        self.active_option: Optional[BaseOption] = None
        self._last_decision: Optional[DecisionRecord] = None
        self._last_peak_room: Optional[str] = None
        self.last_reward = 0.0
        self.last_breakdown = RewardBreakdown()
        self.last_capture: Optional[Dict[str, Any]] = None
        self.stats = OrchestratorStats()

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def use_compact_state(self) -> bool:
        return self.config.use_compact_state

    @property
    def enable_learning(self) -> bool:
        return self.config.enable_learning

    @property
    def enable_hard_pursuit(self) -> bool:
        return self.config.enable_hard_pursuit

    @property
    def compressor(self) -> Union[CompactStateCompressor, ExactStateCompressor]:
        return self.compact_compressor if self.use_compact_state else self.exact_compressor

    @property
    def mode(self) -> OrchestratorMode:
        return self._mode

    @property
    def current_option_type(self) -> Optional[OptionType]:
        if self.active_option is None:
            return None
        return self.active_option.option_type

    @property
    def last_decision(self) -> Optional[DecisionRecord]:
        return self._last_decision

    def extract_state(self) -> StateKey:
        return self.compressor.extract_state(self.context)

    # ------------------------------------------------------------------
    # Decision cycle
    # ------------------------------------------------------------------

    def start_new_option(self, forced: Optional[OptionType] = None) -> Optional[OptionType]:
        """
        Run one decision: extract state, mask, choose and start an option.

        Args:
            forced: Skip the policy and start this option

        Returns:
            The option started, or None while hard pursuit is active
        """
        if self._mode == OrchestratorMode.HARD_PURSUIT:
            return None

        ctx = self.context
        if self.active_option is not None:
            self.active_option.stop(ctx)
            self.active_option = None

        state = self.extract_state()
        valid = self.masker.valid_actions(state)
        coarse_action = None

        if forced is not None:
            action = forced
        else:
            if self.meta is not None:
                coarse_action = self.meta.decide(ctx, explore=self.config.explore)
            if self.enable_learning:
                action = OptionType(self.policy.choose_action(state.index,
                                                              self.config.explore, valid))
            else:
                action = self._choose_heuristic(valid)

        self.compressor.set_last_action(action)

        option = self.options[action]
        option.initialize(ctx)
        self.active_option = option
        self._last_peak_room = ctx.heat_peak_room()

        self._last_decision = DecisionRecord(
            state_index=state.index,
            state_label=str(state),
            action=action,
            q_values=self.policy.get_q_values(state.index).tolist(),
            valid_actions=list(valid),
            start_time=ctx.time,
            forced=forced is not None,
            coarse_action=coarse_action,
        )

        self.stats.decisions += 1
        if forced is not None:
            self.stats.forced_decisions += 1
        self.stats.option_counts[action.name] = self.stats.option_counts.get(action.name, 0) + 1

        logger.debug(
            f"Decision t={ctx.time:.2f}: {action.name}{' (forced)' if forced else ''} "
            f"state={state} target={option.describe_target()}"
        )
        return action

    def tick(self, dt: float):
        """
        Advance the decision loop by one frame.

        The context clock must already have been advanced by the driver.
        """
        ctx = self.context

        if self.enable_hard_pursuit and ctx.can_see_player():
            if self._mode != OrchestratorMode.HARD_PURSUIT:
                self._enter_hard_pursuit()

        if self._mode == OrchestratorMode.HARD_PURSUIT:
            status = self.chase.update(ctx)
            if status.is_terminal:
                self._exit_hard_pursuit(status)
            return

        if self.active_option is None:
            self.start_new_option()
            if self.active_option is None:
                return

        status = self.active_option.step(ctx, dt)
        if status.is_terminal:
            self._finish_option(status)
            self.start_new_option()
            return

        interrupt = self._check_interrupts()
        if interrupt == InterruptKind.NONE:
            return

        if self.active_option.can_be_interrupted_by(interrupt, ctx.time):
            logger.debug(f"{interrupt.name} interrupts {self.active_option.name}")
            self._count_interrupt(interrupt)
            self._finish_option(OptionStatus.RUNNING)
            self.start_new_option(forced=OptionType.INVESTIGATE)

    def _check_interrupts(self) -> InterruptKind:
        """Highest-priority pending interrupt for the active option."""
        ctx = self.context
        option = self.active_option

        # With hard pursuit on, sight is handled before stepping
        if (not self.enable_hard_pursuit and ctx.can_see_player() and
                option.option_type != OptionType.INVESTIGATE):
            return InterruptKind.SEE_PLAYER

        sensing = ctx.sensing
        if (sensing is not None and ctx.has_heard_recently() and
                sensing.last_heard_time > option.start_time):
            return InterruptKind.HEAR_NOISE

        peak_room = ctx.heat_peak_room()
        if peak_room != self._last_peak_room:
            self._last_peak_room = peak_room
            if peak_room is not None:
                return InterruptKind.HEAT_UPDATE

        return InterruptKind.NONE

    def _count_interrupt(self, kind: InterruptKind):
        counts = self.stats.interrupt_counts
        counts[kind.name] = counts.get(kind.name, 0) + 1

    def _finish_option(self, status: OptionStatus):
        """
        Stop the active option and learn from it.

        RUNNING marks an interrupted option; SUCCEEDED/FAILED a natural end.
        """
        ctx = self.context
        option = self.active_option
        if option is None:
            return

        duration = option.elapsed(ctx.time)
        option.stop(ctx)
        self.active_option = None

        reward, breakdown = self.reward_shaper.compute_reward(
            status, option.option_type, duration, ctx
        )
        self.last_reward = reward
        self.last_breakdown = breakdown
        self.stats.total_reward += reward

        if status == OptionStatus.SUCCEEDED:
            self.stats.options_succeeded += 1
        elif status == OptionStatus.FAILED:
            self.stats.options_failed += 1
        else:
            self.stats.options_interrupted += 1

        self._learn(reward, duration)

        logger.debug(
            f"{option.name} ended [{status.name}] after {duration:.2f}s, "
            f"reward={reward:+.3f} {breakdown.format()}"
        )

    def _learn(self, reward: float, duration: float):
        if not self.enable_learning or self._last_decision is None:
            return

        next_state = self.extract_state()
        self.policy.update_q(self._last_decision.state_index, self._last_decision.action,
                             reward, next_state.index, duration)
        # Forced decisions carry no coarse action to credit
        if self.meta is not None and self._last_decision.coarse_action is not None:
            self.meta.update(reward, self.context, duration)

    # ------------------------------------------------------------------
    # Heuristic chooser (learning disabled)
    # ------------------------------------------------------------------

    def _choose_heuristic(self, valid: List[OptionType]) -> OptionType:
        ctx = self.context
        exact = self.config.exact_state

        if self.meta is not None:
            hint = self.meta.preferred_option()
            if hint is not None and hint in valid:
                return hint

        if ctx.can_see_player() or ctx.has_heard_recently():
            choice = OptionType.INVESTIGATE
        elif self._heat_confidence() >= exact.heat_high:
            choice = OptionType.AMBUSH if self.rng.random() < 0.5 else OptionType.HEAT_SWEEP
        elif any(distance(ctx.position, spot.position) < exact.hide_spot_radius
                 for spot in ctx.all_hide_spots()):
            choice = OptionType.HIDE_SPOT_CHECK
        elif ctx.time_since_seen() < exact.time_bins[0]:
            choice = OptionType.SWEEP
        else:
            choice = OptionType.PATROL

        if choice not in valid:
            return OptionType.PATROL
        return choice

    def _heat_confidence(self) -> float:
        heat = self.context.heat
        if heat is None:
            return 0.0
        return float(np.clip(heat.get_peak_value() / max(heat.max_heat_cap, 1.0), 0.0, 1.0))

    # ------------------------------------------------------------------
    # Hard pursuit
    # ------------------------------------------------------------------

    def _enter_hard_pursuit(self):
        if self.active_option is not None:
            logger.debug(f"Visual contact: dropping {self.active_option.name} for hard pursuit")
            self._count_interrupt(InterruptKind.SEE_PLAYER)
            self._finish_option(OptionStatus.RUNNING)

        self._mode = OrchestratorMode.HARD_PURSUIT
        self.stats.hard_pursuits += 1
        self.chase.start(self.context)

    def _exit_hard_pursuit(self, status: ChaseStatus):
        self._mode = OrchestratorMode.OPTION_DRIVEN
        if status == ChaseStatus.LOST:
            self.stats.chase_losses += 1
        logger.debug(f"Hard pursuit ended: {status.name}")

    def _on_captured(self, capture_time: float, position: Optional[Vec2]):
        self.stats.captures += 1
        self.last_capture = {'chase_time': capture_time, 'position': position,
                             'time': self.context.time}

    # ------------------------------------------------------------------
    # Episode boundary
    # ------------------------------------------------------------------

    def apply_terminal_reward(self, success: bool, episode_elapsed: float):
        """
        Credit the episode outcome to the last decision.

        Args:
            success: True for a capture, False for an escape
            episode_elapsed: Episode length in seconds (used as SMDP duration)
        """
        if not self.enable_learning or self._last_decision is None:
            return None

        episode_cfg = self.config.episode
        reward = episode_cfg.capture_reward if success else episode_cfg.escape_reward
        final_state = self.extract_state()
        result = self.policy.update_q(self._last_decision.state_index, self._last_decision.action,
                                      reward, final_state.index, episode_elapsed)
        logger.debug(f"Terminal reward {reward:+.1f} -> {self._last_decision.action.name}")
        return result

    def end_episode(self):
        """
        Episode boundary: decay exploration and clear per-episode state.

        Called by the episode manager, never internally.
        """
        ctx = self.context
        if self.active_option is not None:
            self.active_option.stop(ctx)
            self.active_option = None
        self.chase.stop(ctx)
        self._mode = OrchestratorMode.OPTION_DRIVEN

        self.policy.decay_epsilon()
        if self.meta is not None:
            self.meta.end_episode()
        self.reward_shaper.reset()
        self.compact_compressor.reset()
        self.exact_compressor.reset(ctx.time)

        self._last_decision = None
        self._last_peak_room = None
        self.last_capture = None
        self.stats = OrchestratorStats()

        logger.debug(f"Episode ended, epsilon={self.policy.epsilon:.3f}")

    # ------------------------------------------------------------------
    # Persistence and telemetry
    # ------------------------------------------------------------------

    def save_tables(self, path: Optional[str] = None):
        """Save the fine table (and the coarse one when enabled)."""
        path = path or self.config.qtable_path
        self.policy.save(path, self.config.qtable_key)
        if self.meta is not None:
            self.meta.policy.save(path, 'qtable_coarse')

    def load_tables(self, path: Optional[str] = None) -> bool:
        """Load tables; missing or invalid data leaves empty tables."""
        path = path or self.config.qtable_path
        loaded = self.policy.load(path, self.config.qtable_key)
        if self.meta is not None:
            self.meta.policy.load(path, 'qtable_coarse')
        return loaded

    def get_decision_info(self) -> Dict[str, Any]:
        """Snapshot for a HUD or debug log."""
        option = self.active_option
        info = {
            'mode': self._mode.name,
            'current_option': option.name if option is not None else None,
            'option_target': option.describe_target() if option is not None else None,
            'option_elapsed': option.elapsed(self.context.time) if option is not None else 0.0,
            'epsilon': self.policy.epsilon,
            'last_reward': self.last_reward,
            'last_breakdown': self.last_breakdown.to_dict(),
            'last_decision': self._last_decision.to_dict() if self._last_decision else None,
            'chase_status': self.chase.last_status.name,
        }
        if self.meta is not None:
            info['meta_mode'] = self.meta.current_mode.name
        return info

    def get_episode_statistics(self) -> Dict[str, Any]:
        stats = self.stats.to_dict()
        stats['policy'] = self.policy.get_statistics()
        stats['reward'] = self.reward_shaper.get_statistics()
        if self.meta is not None:
            stats['meta'] = self.meta.get_statistics()
        return stats


def create_orchestrator(
    context: AgentContext,
    config: Optional[PursuitConfig] = None,
    seed: Optional[int] = None
) -> DecisionOrchestrator:
    """
    Factory function to create a decision orchestrator.

    Args:
        context: Agent context with collaborators
        config: Optional pursuit configuration
        seed: Optional random seed

    Returns:
        DecisionOrchestrator instance
    """
    return DecisionOrchestrator(context, config, seed)
