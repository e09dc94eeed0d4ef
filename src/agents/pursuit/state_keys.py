"""
Discrete state keys for the tabular policies.

Option-Based Pursuit Agent

Three key types are defined:
- CompactStateKey: six ternary/binary fields, 486 states, dense index
- ExactStateKey: twelve fields bit-packed into a 20-bit integer
- CoarseStateKey: four fields for the meta-controller, 144 states

Keys are frozen dataclasses. They are recomputed every decision and never
mutated; the index is a pure projection of the field values.
"""

from dataclasses import dataclass, fields
from typing import Dict, Iterator, Tuple
import itertools


def _check_range(name: str, value: int, size: int):
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value < size:
        raise ValueError(f"{name} must be an int in [0, {size}), got {value!r}")


# =============================================================================
# Compact key (486 states)
# =============================================================================

@dataclass(frozen=True)
class CompactStateKey:
    """
    Compact pursuit state.

    Fields:
        player_visible: 0 = no, 1 = yes
        distance: 0 = close, 1 = medium, 2 = far
        last_contact_relation: 0 = same area, 1 = different area, 2 = unknown
        time_since_contact: 0 = recent, 1 = old, 2 = very old / never
        heat_here: 0 = cold, 1 = warm, 2 = hot
        heat_nearby: 0 = cold, 1 = warm, 2 = hot
    """
    player_visible: int = 0
    distance: int = 2
    last_contact_relation: int = 2
    time_since_contact: int = 2
    heat_here: int = 0
    heat_nearby: int = 0

    RANGES = {
        'player_visible': 2,
        'distance': 3,
        'last_contact_relation': 3,
        'time_since_contact': 3,
        'heat_here': 3,
        'heat_nearby': 3,
    }
    NUM_STATES = 486

    def __post_init__(self):
        for name, size in self.RANGES.items():
            _check_range(name, getattr(self, name), size)

    @property
    def index(self) -> int:
        """Dense index in [0, 486)."""
        return (self.player_visible * 243 +
                self.distance * 81 +
                self.last_contact_relation * 27 +
                self.time_since_contact * 9 +
                self.heat_here * 3 +
                self.heat_nearby)

    @classmethod
    def from_index(cls, index: int) -> 'CompactStateKey':
        """Inverse of index."""
        if not 0 <= index < cls.NUM_STATES:
            raise ValueError(f"Compact state index out of range: {index}")
        player_visible, rest = divmod(index, 243)
        distance, rest = divmod(rest, 81)
        relation, rest = divmod(rest, 27)
        time_bucket, rest = divmod(rest, 9)
        heat_here, heat_nearby = divmod(rest, 3)
        return cls(player_visible, distance, relation, time_bucket, heat_here, heat_nearby)

    @classmethod
    def enumerate_all(cls) -> Iterator['CompactStateKey']:
        """Every valid key, in index order."""
        ranges = [range(size) for size in cls.RANGES.values()]
        for values in itertools.product(*ranges):
            yield cls(*values)

    def __str__(self) -> str:
        return (f"V{self.player_visible} D{self.distance} S{self.last_contact_relation} "
                f"T{self.time_since_contact} H{self.heat_here} N{self.heat_nearby}")


# Field layout of the exact key, least significant field first
EXACT_FIELD_BITS: Tuple[Tuple[str, int, int], ...] = (
    # (name, bit width, value range)
    ('last_action', 3, 7),
    ('search_progress', 2, 3),
    ('near_hide_spots', 1, 2),
    ('in_same_room_as_peak', 1, 2),
    ('dist_to_last_heard', 2, 3),
    ('dist_to_heat_peak', 2, 3),
    ('heat_confidence', 2, 3),
    ('time_since_heard', 2, 4),
    ('time_since_seen', 2, 4),
    ('clue_recently', 1, 2),
    ('hear_recently', 1, 2),
    ('see_player', 1, 2),
)

EXACT_TOTAL_BITS = sum(bits for _, bits, _ in EXACT_FIELD_BITS)


# =============================================================================
# Exact key (twelve fields, 20 bits)
# =============================================================================

@dataclass(frozen=True)
class ExactStateKey:
    """
    Full pursuit state with twelve categorical fields.

    The packed integer doubles as the table index. Not every packed value
    is a valid key (e.g. last_action 7), so the index space is sparse.
    """
    see_player: int = 0
    hear_recently: int = 0
    clue_recently: int = 0
    time_since_seen: int = 3
    time_since_heard: int = 3
    heat_confidence: int = 0
    dist_to_heat_peak: int = 2
    dist_to_last_heard: int = 2
    in_same_room_as_peak: int = 0
    near_hide_spots: int = 0
    search_progress: int = 0
    last_action: int = 0

    def __post_init__(self):
        for name, _, size in EXACT_FIELD_BITS:
            _check_range(name, getattr(self, name), size)

    def pack(self) -> int:
        """Pack fields into an integer, least significant field first."""
        packed = 0
        shift = 0
        for name, bits, _ in EXACT_FIELD_BITS:
            packed |= getattr(self, name) << shift
            shift += bits
        return packed

    @classmethod
    def unpack(cls, packed: int) -> 'ExactStateKey':
        """
        Inverse of pack.

        Raises:
            ValueError: if the integer does not encode a valid key
        """
        if packed < 0 or packed >= (1 << EXACT_TOTAL_BITS):
            raise ValueError(f"Packed exact state out of range: {packed}")
        values: Dict[str, int] = {}
        shift = 0
        for name, bits, _ in EXACT_FIELD_BITS:
            values[name] = (packed >> shift) & ((1 << bits) - 1)
            shift += bits
        return cls(**values)

    @property
    def index(self) -> int:
        return self.pack()

    @classmethod
    def num_valid_states(cls) -> int:
        """Number of valid field combinations."""
        total = 1
        for _, _, size in EXACT_FIELD_BITS:
            total *= size
        return total

    def with_last_action(self, last_action: int) -> 'ExactStateKey':
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values['last_action'] = last_action
        return ExactStateKey(**values)

    def __str__(self) -> str:
        return (f"See:{self.see_player} Hear:{self.hear_recently} Clue:{self.clue_recently} "
                f"TSeen:{self.time_since_seen} THeard:{self.time_since_heard} "
                f"Heat:{self.heat_confidence} DPeak:{self.dist_to_heat_peak} "
                f"DHeard:{self.dist_to_last_heard} SameRoom:{self.in_same_room_as_peak} "
                f"Hide:{self.near_hide_spots} Prog:{self.search_progress} "
                f"Last:{self.last_action}")


# =============================================================================
# Coarse key (meta-controller, 144 states)
# =============================================================================

@dataclass(frozen=True)
class CoarseStateKey:
    """
    Meta-controller state.

    Fields:
        last_seen_relation: 0 = none, 1 = same room, 2 = other room
        last_heard_relation: 0 = none, 1 = same room, 2 = other room
        time_since_contact: 0-3, bucketed at 5 / 15 / 30 s
        player_style: 0-3, opaque style bucket from sensing
    """
    last_seen_relation: int = 0
    last_heard_relation: int = 0
    time_since_contact: int = 3
    player_style: int = 0

    RANGES = {
        'last_seen_relation': 3,
        'last_heard_relation': 3,
        'time_since_contact': 4,
        'player_style': 4,
    }
    NUM_STATES = 144

    def __post_init__(self):
        for name, size in self.RANGES.items():
            _check_range(name, getattr(self, name), size)

    @property
    def index(self) -> int:
        return (self.last_seen_relation * 48 +
                self.last_heard_relation * 16 +
                self.time_since_contact * 4 +
                self.player_style)

    @classmethod
    def from_index(cls, index: int) -> 'CoarseStateKey':
        if not 0 <= index < cls.NUM_STATES:
            raise ValueError(f"Coarse state index out of range: {index}")
        seen, rest = divmod(index, 48)
        heard, rest = divmod(rest, 16)
        time_bucket, style = divmod(rest, 4)
        return cls(seen, heard, time_bucket, style)
