"""
State compressors: continuous observations to discrete keys.

Option-Based Pursuit Agent

Each compressor reads the AgentContext and returns a key. Missing
collaborators never raise; they produce the "not visible / far / unknown /
oldest / cold" defaults so that a decision cycle can always proceed.
"""

from typing import Optional, Sequence
import logging

import numpy as np

from .config import CompactStateConfig, ExactStateConfig, CoarseStateConfig
from .context import AgentContext, Vec2, distance
from .option_types import OptionType
from .state_keys import CompactStateKey, ExactStateKey, CoarseStateKey


logger = logging.getLogger(__name__)


def bucketize(value: float, thresholds: Sequence[float]) -> int:
    """
    Index of the first threshold the value is strictly below.

    Values at or above every threshold land in the last bucket
    (len(thresholds)).
    """
    for i, threshold in enumerate(thresholds):
        if value < threshold:
            return i
    return len(thresholds)


class HysteresisFlag:
    """
    Binary flag that only flips after a confirmation buffer.

    A change of the raw condition is accepted only when strictly more than
    `buffer` seconds have passed since the previous accepted flip.
    """

    def __init__(self, buffer: float = 2.0, enabled: bool = True):
        self.buffer = buffer
        self.enabled = enabled
        self.reset()

    def reset(self):
        self.value = False
        self.last_flip_time = -999.0

    def update(self, raw: bool, now: float) -> bool:
        """Feed the raw condition and return the filtered value."""
        if not self.enabled:
            return raw

        if raw != self.value and now - self.last_flip_time > self.buffer:
            self.value = raw
            self.last_flip_time = now

        return self.value


class CompactStateCompressor:
    """
    Extracts the 486-state compact key.

    Fields: player visible, distance to the belief target, relation to the
    last contact, time since contact, heat in the current room and heat of
    the neighbourhood.
    """

    def __init__(self, config: Optional[CompactStateConfig] = None):
        self.config = config or CompactStateConfig()
        self._last_action = OptionType.PATROL.value

    @property
    def num_states(self) -> int:
        return CompactStateKey.NUM_STATES

    def set_last_action(self, option: OptionType):
        """Kept for interface parity; the compact key has no last-action field."""
        self._last_action = option.value

    def reset(self):
        self._last_action = OptionType.PATROL.value

    def extract_state(self, ctx: AgentContext) -> CompactStateKey:
        """Extract the compact key for the current observation."""
        if ctx.sensing is None:
            logger.warning("No sensing collaborator; returning default compact state")
            return CompactStateKey()

        return CompactStateKey(
            player_visible=1 if ctx.can_see_player() else 0,
            distance=self._distance_bucket(ctx),
            last_contact_relation=self._contact_relation_bucket(ctx),
            time_since_contact=self._time_since_contact_bucket(ctx),
            heat_here=self._heat_here_bucket(ctx),
            heat_nearby=self._heat_nearby_bucket(ctx),
        )

    def _distance_bucket(self, ctx: AgentContext) -> int:
        # Target priority: visible player > recent sound > heat-peak room
        target: Optional[Vec2] = None
        if ctx.can_see_player():
            target = ctx.player_position()
        if target is None and ctx.time_since_heard() < self.config.heard_target_window:
            target = ctx.sensing.last_heard_position
        if target is None:
            target = ctx.room_center(ctx.heat_peak_room())
        if target is None:
            return 2

        return bucketize(distance(ctx.position, target),
                         [self.config.dist_close, self.config.dist_far])

    def _contact_relation_bucket(self, ctx: AgentContext) -> int:
        time_seen = ctx.time_since_seen()
        time_heard = ctx.time_since_heard()
        if min(time_seen, time_heard) > self.config.contact_unknown_after:
            return 2

        if time_seen < time_heard:
            last_known = ctx.sensing.last_seen_position
        else:
            last_known = ctx.sensing.last_heard_position
        if last_known is None:
            return 2

        if distance(ctx.position, last_known) < self.config.same_area_radius:
            return 0
        return 1

    def _time_since_contact_bucket(self, ctx: AgentContext) -> int:
        return bucketize(ctx.time_since_contact(),
                         [self.config.time_recent, self.config.time_old])

    def _heat_here_bucket(self, ctx: AgentContext) -> int:
        room_id = ctx.current_room()
        if ctx.heat is None or room_id is None:
            return 0
        return self._heat_bucket(ctx.heat.get_choke_score(room_id))

    def _heat_nearby_bucket(self, ctx: AgentContext) -> int:
        room_id = ctx.current_room()
        if ctx.heat is None or room_id is None:
            return 0
        total = max(ctx.heat.get_max_adjacent_edge_heat(room_id),
                    ctx.heat.get_node_heat(room_id))
        return self._heat_bucket(total)

    def _heat_bucket(self, value: float) -> int:
        return bucketize(value, [self.config.heat_warm, self.config.heat_hot])


class ExactStateCompressor:
    """
    Extracts the twelve-field exact key.

    The hear/clue flags pass through hysteresis filters and search
    progress is measured against a session clock started by reset().
    """

    def __init__(self, config: Optional[ExactStateConfig] = None):
        self.config = config or ExactStateConfig()
        self._hear_flag = HysteresisFlag(self.config.hysteresis_buffer,
                                         self.config.enable_hysteresis)
        self._clue_flag = HysteresisFlag(self.config.hysteresis_buffer,
                                         self.config.enable_hysteresis)
        self._last_action = OptionType.PATROL.value
        self._session_start: Optional[float] = None

    @property
    def num_states(self) -> int:
        return ExactStateKey.num_valid_states()

    def set_last_action(self, option: OptionType):
        """Record the option just selected; it becomes the last_action field."""
        self._last_action = option.value

    def reset(self, now: Optional[float] = None):
        """Clear hysteresis filters and restart the session clock."""
        self._hear_flag.reset()
        self._clue_flag.reset()
        self._last_action = OptionType.PATROL.value
        self._session_start = now

    def extract_state(self, ctx: AgentContext) -> ExactStateKey:
        """Extract the exact key for the current observation."""
        if self._session_start is None:
            self._session_start = ctx.time

        if ctx.sensing is None:
            logger.warning("No sensing collaborator; returning default exact state")
            return ExactStateKey(last_action=self._last_action)

        now = ctx.time
        hear_raw = ctx.time_since_heard() < self.config.recent_threshold
        clue_raw = ctx.time_since_clue() < self.config.recent_threshold

        peak_room = ctx.heat_peak_room()
        current_room = ctx.current_room()

        return ExactStateKey(
            see_player=1 if ctx.can_see_player() else 0,
            hear_recently=1 if self._hear_flag.update(hear_raw, now) else 0,
            clue_recently=1 if self._clue_flag.update(clue_raw, now) else 0,
            time_since_seen=bucketize(ctx.time_since_seen(), self.config.time_bins),
            time_since_heard=bucketize(ctx.time_since_heard(), self.config.time_bins),
            heat_confidence=self._heat_confidence_bucket(ctx),
            dist_to_heat_peak=self._distance_bucket(ctx, ctx.room_center(peak_room)),
            dist_to_last_heard=self._distance_bucket(ctx, ctx.sensing.last_heard_position),
            in_same_room_as_peak=int(peak_room is not None and peak_room == current_room),
            near_hide_spots=1 if self._near_hide_spots(ctx) else 0,
            search_progress=self._search_progress_bucket(ctx),
            last_action=self._last_action,
        )

    def _heat_confidence_bucket(self, ctx: AgentContext) -> int:
        if ctx.heat is None:
            return 0
        cap = max(ctx.heat.max_heat_cap, 1.0)
        confidence = float(np.clip(ctx.heat.get_peak_value() / cap, 0.0, 1.0))
        return bucketize(confidence, [self.config.heat_low, self.config.heat_high])

    def _distance_bucket(self, ctx: AgentContext, target: Optional[Vec2]) -> int:
        if target is None:
            return 2
        return bucketize(distance(ctx.position, target),
                         [self.config.dist_close, self.config.dist_medium])

    def _near_hide_spots(self, ctx: AgentContext) -> bool:
        position = ctx.position
        return any(distance(position, spot.position) < self.config.hide_spot_radius
                   for spot in ctx.all_hide_spots())

    def _search_progress_bucket(self, ctx: AgentContext) -> int:
        elapsed = ctx.time - (self._session_start or 0.0)
        progress = float(np.clip(elapsed / self.config.total_search_time, 0.0, 1.0))
        return bucketize(progress, self.config.progress_thresholds)


class CoarseStateCompressor:
    """Extracts the 144-state key of the meta-controller."""

    def __init__(self, config: Optional[CoarseStateConfig] = None):
        self.config = config or CoarseStateConfig()

    @property
    def num_states(self) -> int:
        return CoarseStateKey.NUM_STATES

    def extract_state(self, ctx: AgentContext) -> CoarseStateKey:
        if ctx.sensing is None:
            return CoarseStateKey()

        current_room = ctx.current_room()
        seen = self._relation(ctx.has_seen_recently(), ctx.sensing.last_seen_room, current_room)
        heard = self._relation(ctx.has_heard_recently(), ctx.sensing.last_heard_room, current_room)
        style = int(getattr(ctx.sensing, 'player_style_bucket', 0) or 0)

        return CoarseStateKey(
            last_seen_relation=seen,
            last_heard_relation=heard,
            time_since_contact=bucketize(ctx.time_since_contact(), self.config.time_buckets),
            player_style=int(np.clip(style, 0, min(self.config.num_player_styles, 4) - 1)),
        )

    @staticmethod
    def _relation(recent: bool, room_id: Optional[str], current_room: Optional[str]) -> int:
        if not recent:
            return 0
        if room_id is not None and room_id == current_room:
            return 1
        return 2
