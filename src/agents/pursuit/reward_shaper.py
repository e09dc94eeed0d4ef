"""
Reward shaping for option completion and interruption.

Option-Based Pursuit Agent

Combines sparse task signals with dense shaping terms:
1. Terminal status (patrol cycle complete, failure/timeout)
2. Direct contact with the target
3. Reduction in distance to the belief target
4. Exploration (hot rooms, first visit of a room this episode)
5. Hide-spot clearing
6. Repetition of the same option
7. Time cost
8. No information gained
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple
import logging

import numpy as np

from .config import RewardConfig
from .context import AgentContext, distance
from .option_types import OptionStatus, OptionType


logger = logging.getLogger(__name__)


# Breakdown labels
PATROL_COMPLETE = "Patrol Complete"
FAILURE_TIMEOUT = "Failure/Timeout"
SEE_PLAYER = "See Player"
DISTANCE_IMPROVEMENT = "Distance Improvement"
HOT_ROOM = "Hot Room Exploration"
NEW_ROOM = "New Room Explored"
SPOT_CLEARED = "Spot Cleared"
REPETITION = "Repetition Penalty"
TIME_COST = "Time Cost"
NO_INFO = "No Info Gained"


@dataclass
class RewardBreakdown:
    """Ordered (label, value) contributions of one reward computation."""
    items: List[Tuple[str, float]] = field(default_factory=list)

    def add(self, label: str, value: float):
        self.items.append((label, float(value)))

    def get(self, label: str) -> float:
        """Sum of all contributions with this label (0.0 if absent)."""
        return sum(value for name, value in self.items if name == label)

    def __contains__(self, label: str) -> bool:
        return any(name == label for name, _ in self.items)

    @property
    def total(self) -> float:
        return sum(value for _, value in self.items)

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary."""
        result: Dict[str, float] = {}
        for name, value in self.items:
            result[name] = result.get(name, 0.0) + value
        result['total'] = self.total
        return result

    def format(self) -> str:
        """One-line human readable form."""
        if not self.items:
            return "| (no terms) |"
        parts = [f"{name}: {value:+.2f}" for name, value in self.items]
        return "| " + " | ".join(parts) + " |"


class RewardShaper:
    """
    Computes the shaped reward for a just-finished or interrupted option.

    Carried state: last action, consecutive-repeat counter, rooms visited
    this episode and last distance to the belief target. reset() clears
    it at episode boundaries.
    """

    def __init__(self, config: Optional[RewardConfig] = None):
        """
        Initialize reward shaper.

        Args:
            config: Reward weights
        """
        self.config = config or RewardConfig()

        self._last_action = OptionType.PATROL
        self._same_action_count = 0
        self._last_distance = float('inf')
        self._visited_rooms: Set[str] = set()

        self.last_breakdown = RewardBreakdown()

        # Statistics
        self._num_computations = 0
        self._total_reward = 0.0
        self._term_totals: Dict[str, float] = {}

    def reset(self):
        """Reset per-episode state."""
        self._last_action = OptionType.PATROL
        self._same_action_count = 0
        self._last_distance = float('inf')
        self._visited_rooms.clear()

    @property
    def same_action_count(self) -> int:
        return self._same_action_count

    @property
    def visited_rooms(self) -> Set[str]:
        return set(self._visited_rooms)

    def compute_reward(
        self,
        status: OptionStatus,
        action: OptionType,
        duration: float,
        ctx: AgentContext
    ) -> Tuple[float, RewardBreakdown]:
        """
        Compute shaped reward.

        Args:
            status: RUNNING for an interrupted option, else the terminal status
            action: Option that ran
            duration: Seconds the option ran
            ctx: Agent context at option end

        Returns:
            total: Sum of all terms
            breakdown: Individual terms in evaluation order
        """
        cfg = self.config
        breakdown = RewardBreakdown()
        gained_info = False

        # Terminal status
        if status == OptionStatus.SUCCEEDED and action == OptionType.PATROL:
            breakdown.add(PATROL_COMPLETE, cfg.patrol_complete_reward)
        if status == OptionStatus.FAILED:
            breakdown.add(FAILURE_TIMEOUT, -cfg.timeout_penalty)

        # Direct contact
        if ctx.can_see_player():
            breakdown.add(SEE_PLAYER, cfg.see_player_reward)
            gained_info = True

        # Progress toward the belief target; regressions are not penalised
        distance_improved = False
        current_distance = self._distance_to_belief_target(ctx)
        if np.isfinite(self._last_distance) and np.isfinite(current_distance):
            reduction = self._last_distance - current_distance
            if reduction > 0.0:
                breakdown.add(DISTANCE_IMPROVEMENT, reduction * cfg.distance_reduction_reward)
                distance_improved = True
        self._last_distance = current_distance

        # Exploration
        current_room = ctx.current_room()
        if current_room is not None and ctx.heat is not None:
            cap = max(ctx.heat.max_heat_cap, 1e-6)
            heat01 = float(np.clip(ctx.heat.get_node_heat(current_room) / cap, 0.0, 1.0))
            if heat01 > cfg.hot_room_threshold:
                breakdown.add(HOT_ROOM, cfg.hot_room_reward)
                gained_info = True

        if current_room is not None and current_room not in self._visited_rooms:
            self._visited_rooms.add(current_room)
            breakdown.add(NEW_ROOM, cfg.new_room_reward)
            gained_info = True

        if action == OptionType.HIDE_SPOT_CHECK and status == OptionStatus.SUCCEEDED:
            breakdown.add(SPOT_CLEARED, cfg.spot_cleared_reward)

        # Repetition
        if action == self._last_action:
            self._same_action_count += 1
            if self._same_action_count > cfg.repetition_grace:
                excess = self._same_action_count - cfg.repetition_grace
                penalty = -cfg.repetition_penalty * excess
                if self._same_action_count > cfg.repetition_escalation_threshold:
                    penalty *= cfg.repetition_escalation
                breakdown.add(REPETITION, penalty)
        else:
            self._same_action_count = 0

        # Time cost
        time_cost = -max(0.0, duration) * cfg.time_penalty_per_second
        if abs(time_cost) > cfg.min_time_cost:
            breakdown.add(TIME_COST, time_cost)

        # No information gained
        if (not gained_info and not distance_improved and
                status in (OptionStatus.RUNNING, OptionStatus.SUCCEEDED)):
            breakdown.add(NO_INFO, -cfg.no_info_penalty)

        self._last_action = action

        total = breakdown.total
        self.last_breakdown = breakdown
        self._record(breakdown)

        logger.debug(f"Reward {action.name} [{status.name}] {total:+.3f} {breakdown.format()}")
        return total, breakdown

    def _distance_to_belief_target(self, ctx: AgentContext) -> float:
        target = ctx.belief_target()
        if target is None:
            return float('inf')
        return distance(ctx.position, target)

    def _record(self, breakdown: RewardBreakdown):
        self._num_computations += 1
        self._total_reward += breakdown.total
        for name, value in breakdown.items:
            self._term_totals[name] = self._term_totals.get(name, 0.0) + value

    def get_statistics(self) -> Dict[str, Any]:
        """Get reward statistics."""
        mean = self._total_reward / self._num_computations if self._num_computations else 0.0
        return {
            'num_computations': self._num_computations,
            'total_reward': self._total_reward,
            'mean_reward': mean,
            'term_totals': dict(self._term_totals),
            'rooms_visited_this_episode': len(self._visited_rooms),
            'same_action_count': self._same_action_count,
        }


def create_reward_shaper(config: Optional[RewardConfig] = None) -> RewardShaper:
    """
    Factory function to create a reward shaper.

    Args:
        config: Optional reward configuration

    Returns:
        RewardShaper instance
    """
    return RewardShaper(config)
