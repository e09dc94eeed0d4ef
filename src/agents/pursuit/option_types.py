"""
Option, status and interrupt type definitions for the pursuit agent.

Option-Based Pursuit Agent

Defines:
- OptionType: the closed set of temporally-extended behaviors (fine policy actions)
- CoarseAction / BehaviorMode: actions and modes of the coarse meta-controller
- OptionStatus, InterruptKind: life-cycle results and prioritized interrupt signals
- Timeout and minimum-commitment limits for each option
"""

from enum import Enum
from dataclasses import dataclass
from typing import Dict


class OptionType(Enum):
    """
    Behaviors selectable by the fine (7-action) policy.

    Values are stable: they index Q-value rows and the exact state key's
    last-action field, so they must never be renumbered.
    """
    PATROL = 0
    INVESTIGATE = 1
    HEAT_SEARCH = 2
    SWEEP = 3
    HIDE_SPOT_CHECK = 4
    HEAT_SWEEP = 5
    AMBUSH = 6

    @classmethod
    def count(cls) -> int:
        """Return number of option types."""
        return len(cls)


class OptionStatus(Enum):
    """Result of stepping an option."""
    RUNNING = 0
    SUCCEEDED = 1
    FAILED = 2

    @property
    def is_terminal(self) -> bool:
        return self is not OptionStatus.RUNNING


class InterruptKind(Enum):
    """
    Interrupt signals in ascending priority.

    HEAT_UPDATE never interrupts with the default rules, HEAR_NOISE only
    preempts behaviors that opt in (after their commit time), SEE_PLAYER
    always preempts.
    """
    NONE = 0
    HEAT_UPDATE = 1
    HEAR_NOISE = 2
    SEE_PLAYER = 3


class BehaviorMode(Enum):
    """High-level modes driven by the coarse meta-controller."""
    PATROL = 0
    SEARCH = 1
    CHASE = 2

    @classmethod
    def count(cls) -> int:
        return len(cls)


class CoarseAction(Enum):
    """Actions of the coarse (5-action) policy."""
    GO_TO_LAST_SEEN = 0
    GO_TO_LAST_HEARD = 1
    SWEEP_NEAREST = 2
    AMBUSH_BEST_PORTAL = 3
    PATROL = 4

    @classmethod
    def count(cls) -> int:
        """Return number of coarse actions."""
        return len(cls)

    def get_mode(self) -> BehaviorMode:
        """Return the behavior mode this action belongs to."""
        mapping = {
            CoarseAction.GO_TO_LAST_SEEN: BehaviorMode.CHASE,
            CoarseAction.GO_TO_LAST_HEARD: BehaviorMode.SEARCH,
            CoarseAction.SWEEP_NEAREST: BehaviorMode.SEARCH,
            CoarseAction.AMBUSH_BEST_PORTAL: BehaviorMode.PATROL,
            CoarseAction.PATROL: BehaviorMode.PATROL,
        }
        return mapping[self]

    def get_option(self) -> OptionType:
        """Return the fine option that realises this coarse action."""
        mapping = {
            CoarseAction.GO_TO_LAST_SEEN: OptionType.INVESTIGATE,
            CoarseAction.GO_TO_LAST_HEARD: OptionType.INVESTIGATE,
            CoarseAction.SWEEP_NEAREST: OptionType.SWEEP,
            CoarseAction.AMBUSH_BEST_PORTAL: OptionType.AMBUSH,
            CoarseAction.PATROL: OptionType.PATROL,
        }
        return mapping[self]


@dataclass
class OptionLimits:
    """
    Timeout and commitment limits of an option.

    Timeout is strict: an option is only timed out once its elapsed time
    is greater than max_duration.
    """
    max_duration: float = 15.0
    min_commit_time: float = 2.0

    def is_timeout(self, elapsed: float) -> bool:
        """Check if the option has run past its maximum duration."""
        return elapsed > self.max_duration

    def is_committed(self, elapsed: float) -> bool:
        """Check if the option is still inside its commitment window."""
        return elapsed < self.min_commit_time


OPTION_LIMITS: Dict[OptionType, OptionLimits] = {
    OptionType.PATROL: OptionLimits(max_duration=45.0, min_commit_time=2.0),
    OptionType.INVESTIGATE: OptionLimits(max_duration=15.0, min_commit_time=2.0),
    OptionType.HEAT_SEARCH: OptionLimits(max_duration=15.0, min_commit_time=2.0),
    OptionType.SWEEP: OptionLimits(max_duration=25.0, min_commit_time=2.0),
    OptionType.HIDE_SPOT_CHECK: OptionLimits(max_duration=15.0, min_commit_time=2.0),
    OptionType.HEAT_SWEEP: OptionLimits(max_duration=15.0, min_commit_time=2.0),
    OptionType.AMBUSH: OptionLimits(max_duration=15.0, min_commit_time=2.0),
}


def get_option_limits(option_type: OptionType) -> OptionLimits:
    """Get timeout/commit limits for an option."""
    return OPTION_LIMITS.get(option_type, OptionLimits())

