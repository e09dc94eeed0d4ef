"""
Coarse meta-controller.

Option-Based Pursuit Agent

A second, smaller tabular learner that chooses between five coarse actions
(go to last seen, go to last heard, sweep nearest, ambush best portal,
patrol), each belonging to one of three behavior modes (patrol / search /
chase). It keeps its own Q-table; the fine policy never reads it.
"""

from typing import Any, Dict, Optional
import logging

from .action_mask import ActionMasker
from .config import MaskConfig, MetaControllerConfig
from .context import AgentContext
from .option_types import BehaviorMode, CoarseAction, OptionType
from .q_policy import QUpdateResult, TabularQPolicy
from .state_compressor import CoarseStateCompressor
from .state_keys import CoarseStateKey


logger = logging.getLogger(__name__)


class MetaController:
    """
    Chooses a coarse action per decision point and learns from the same
    shaped reward as the fine policy.

    Example:
        meta = MetaController(MetaControllerConfig(enabled=True))
        action = meta.decide(ctx)
        ...  # run the option
        meta.update(reward, ctx, duration)
    """

    def __init__(
        self,
        config: Optional[MetaControllerConfig] = None,
        mask_config: Optional[MaskConfig] = None,
        seed: Optional[int] = None
    ):
        """
        Initialize meta-controller.

        Args:
            config: Coarse state buckets and policy hyperparameters
            mask_config: Masking switches
            seed: Random seed of the coarse policy
        """
        self.config = config or MetaControllerConfig()
        self.compressor = CoarseStateCompressor(self.config.state)
        self.masker = ActionMasker(mask_config)
        self.policy = TabularQPolicy(CoarseAction.count(), self.config.policy,
                                     seed=seed, name='coarse')

        self.current_mode = BehaviorMode.PATROL
        self.current_action: Optional[CoarseAction] = None
        self.last_state: Optional[CoarseStateKey] = None
        self.decision_time = 0.0
        self.decisions_made = 0

    def decide(self, ctx: AgentContext, explore: bool = True) -> CoarseAction:
        """
        Choose a coarse action for the current observation.

        Args:
            ctx: Agent context
            explore: Whether epsilon exploration is allowed

        Returns:
            Selected CoarseAction
        """
        state = self.compressor.extract_state(ctx)
        valid = self.masker.valid_coarse_actions(state)
        action = CoarseAction(self.policy.choose_action(state.index, explore, valid))

        self.last_state = state
        self.current_action = action
        self.current_mode = action.get_mode()
        self.decision_time = ctx.time
        self.decisions_made += 1

        logger.debug(f"Meta decision: {action.name} (mode={self.current_mode.name}, state={state})")
        return action

    def update(self, reward: float, ctx: AgentContext,
               duration: Optional[float] = None) -> Optional[QUpdateResult]:
        """
        SMDP update for the last decision.

        Args:
            reward: Shaped reward of the option that ran
            ctx: Agent context at option end
            duration: Seconds since the decision (defaults to the clock difference)

        Each decision is credited once; the current action stays as the
        mode hint until the next decide().

        Returns:
            Update result, or None if no decision is pending
        """
        if self.last_state is None or self.current_action is None:
            return None

        if duration is None:
            duration = ctx.time - self.decision_time
        next_state = self.compressor.extract_state(ctx)
        result = self.policy.update_q(self.last_state.index, self.current_action,
                                      reward, next_state.index, duration)
        self.last_state = None
        return result

    def preferred_option(self) -> Optional[OptionType]:
        """Fine option that realises the current coarse action."""
        if self.current_action is None:
            return None
        return self.current_action.get_option()

    def end_episode(self):
        """Decay exploration and forget the pending decision."""
        self.policy.decay_epsilon()
        self.last_state = None
        self.current_action = None
        self.current_mode = BehaviorMode.PATROL

    def get_statistics(self) -> Dict[str, Any]:
        stats = self.policy.get_statistics()
        stats['mode'] = self.current_mode.name
        stats['decisions_made'] = self.decisions_made
        return stats
