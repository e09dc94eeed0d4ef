"""
Action masking for the tabular policies.

Option-Based Pursuit Agent

Removes behaviors that are meaningless in a given state (e.g. investigating
a sound when nothing was heard). The mask only restricts selection; it never
touches the value table.
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union
import logging

import numpy as np

from .config import MaskConfig
from .option_types import OptionType, CoarseAction
from .state_keys import CompactStateKey, ExactStateKey, CoarseStateKey


logger = logging.getLogger(__name__)

StateKey = Union[CompactStateKey, ExactStateKey, CoarseStateKey]

# (option, predicate, reason shown when the predicate fails)
MaskRule = Tuple[OptionType, Callable, str]


EXACT_RULES: Sequence[MaskRule] = (
    (OptionType.INVESTIGATE,
     lambda s: s.hear_recently == 1 or s.see_player == 1,
     "No recent audio or visual cue"),
    (OptionType.HEAT_SEARCH,
     lambda s: s.heat_confidence >= 1,
     "Low heat confidence (heat_confidence=0)"),
    (OptionType.SWEEP, lambda s: True, ""),
    (OptionType.HIDE_SPOT_CHECK,
     lambda s: s.near_hide_spots == 1,
     "No nearby hide spots (near_hide_spots=0)"),
    (OptionType.HEAT_SWEEP,
     lambda s: s.heat_confidence >= 1,
     "Low heat confidence (heat_confidence < 1)"),
    (OptionType.AMBUSH,
     lambda s: s.heat_confidence >= 2,
     "Low heat confidence (requires heat_confidence >= 2)"),
)

COMPACT_RULES: Sequence[MaskRule] = (
    (OptionType.INVESTIGATE,
     lambda s: s.time_since_contact <= 1,
     "No recent contact (time_since_contact=2)"),
    (OptionType.HEAT_SEARCH,
     lambda s: s.heat_nearby >= 1,
     "Cold neighbourhood (heat_nearby=0)"),
    (OptionType.SWEEP, lambda s: True, ""),
    (OptionType.HIDE_SPOT_CHECK,
     lambda s: s.distance <= 1,
     "Belief target is far (distance=2)"),
    (OptionType.HEAT_SWEEP,
     lambda s: s.heat_nearby >= 1,
     "Cold neighbourhood (heat_nearby=0)"),
    (OptionType.AMBUSH,
     lambda s: s.heat_nearby >= 2,
     "Neighbourhood not hot (requires heat_nearby >= 2)"),
)

COARSE_RULES: Sequence[Tuple[CoarseAction, Callable, str]] = (
    (CoarseAction.GO_TO_LAST_SEEN,
     lambda s: s.last_seen_relation != 0,
     "Nothing seen recently"),
    (CoarseAction.GO_TO_LAST_HEARD,
     lambda s: s.last_heard_relation != 0,
     "Nothing heard recently"),
    (CoarseAction.SWEEP_NEAREST, lambda s: True, ""),
    (CoarseAction.AMBUSH_BEST_PORTAL, lambda s: True, ""),
)


class ActionMasker:
    """
    Declarative per-field validity rules for every key type.

    The result is never empty: Patrol (or the coarse PATROL action) is the
    universal fallback.
    """

    def __init__(self, config: Optional[MaskConfig] = None):
        self.config = config or MaskConfig()
        self._mask_reasons: Dict[Union[OptionType, CoarseAction], str] = {}

    def valid_actions(self, state: StateKey) -> List[OptionType]:
        """
        Get valid options for a state.

        Args:
            state: Compact or exact key

        Returns:
            Non-empty list of valid options, in action-index order
        """
        self._mask_reasons.clear()

        if isinstance(state, CoarseStateKey):
            return self.valid_coarse_actions(state)

        if not self.config.enable_masking:
            return sorted(OptionType, key=lambda o: o.value)

        if isinstance(state, ExactStateKey):
            rules = EXACT_RULES
        elif isinstance(state, CompactStateKey):
            rules = COMPACT_RULES
        else:
            logger.warning(f"Unknown state key type {type(state).__name__}; only Patrol is valid")
            return [OptionType.PATROL]

        valid: List[OptionType] = []
        if self.config.patrol_always_valid:
            valid.append(OptionType.PATROL)
        else:
            self._mask_reasons[OptionType.PATROL] = "Patrol masked (patrol_always_valid=False)"

        for option, predicate, reason in rules:
            if predicate(state):
                valid.append(option)
            else:
                self._mask_reasons[option] = reason

        if not valid:
            logger.debug("No valid actions, forcing Patrol")
            valid.append(OptionType.PATROL)

        return valid

    def valid_coarse_actions(self, state: CoarseStateKey) -> List[CoarseAction]:
        """Valid actions of the meta-controller."""
        self._mask_reasons.clear()

        if not self.config.enable_masking:
            return list(CoarseAction)

        valid = []
        for action, predicate, reason in COARSE_RULES:
            if predicate(state):
                valid.append(action)
            else:
                self._mask_reasons[action] = reason
        valid.append(CoarseAction.PATROL)
        return sorted(valid, key=lambda a: a.value)

    def to_mask_array(self, state: StateKey) -> np.ndarray:
        """Boolean vector over the action space (True = valid)."""
        valid = self.valid_actions(state)
        size = CoarseAction.count() if isinstance(state, CoarseStateKey) else OptionType.count()
        mask = np.zeros(size, dtype=bool)
        for action in valid:
            mask[action.value] = True
        return mask

    def get_mask_reason(self, action: Union[OptionType, CoarseAction]) -> str:
        """Reason the action was masked on the last call, or 'Valid'."""
        return self._mask_reasons.get(action, "Valid")

    def get_all_mask_reasons(self) -> Dict[Union[OptionType, CoarseAction], str]:
        return dict(self._mask_reasons)
