"""
Collaborator interfaces and the per-agent context.

Option-Based Pursuit Agent

The decision core never reaches for global singletons. Everything it needs
from the outside world (locomotion, sensing, the heat graph and the room
registry) is reached through the narrow protocols below, bundled in an
AgentContext that is passed into every call.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Sequence, Tuple
import logging

import numpy as np


logger = logging.getLogger(__name__)

Vec2 = Tuple[float, float]


def distance(a: Vec2, b: Vec2) -> float:
    """Euclidean distance between two points."""
    return float(np.hypot(a[0] - b[0], a[1] - b[1]))


# =============================================================================
# World data
# =============================================================================

@dataclass
class Room:
    """Axis-aligned room (or junction) in the map."""
    room_id: str
    min_x: float
    min_y: float
    max_x: float
    max_y: float
    is_junction: bool = False

    @property
    def center(self) -> Vec2:
        return ((self.min_x + self.max_x) / 2.0, (self.min_y + self.max_y) / 2.0)

    @property
    def size(self) -> Vec2:
        return (self.max_x - self.min_x, self.max_y - self.min_y)

    @property
    def area(self) -> float:
        width, height = self.size
        return width * height

    def contains(self, point: Vec2) -> bool:
        """Check if a point lies inside the room (edges inclusive)."""
        return (self.min_x <= point[0] <= self.max_x and
                self.min_y <= point[1] <= self.max_y)


@dataclass
class HideSpot:
    """
    A place the target can hide in, with running check statistics.

    The statistics feed the hide-spot probability used to order sweep
    points and hide-spot checks.
    """
    spot_id: str
    room_id: str
    position: Vec2
    check_duration: float = 1.5
    can_contain_player: bool = True

    # Learning data
    times_checked: int = 0
    times_found: int = 0
    times_used: int = 0
    last_checked_time: float = -999.0

    # Occupancy
    occupied: bool = False
    has_been_checked: bool = False

    @property
    def probability(self) -> float:
        """Smoothed likelihood that the target is found here."""
        numerator = self.times_found * 5.0 + self.times_used * 2.0 + 0.5
        denominator = self.times_checked + 2.0
        return numerator / denominator

    def time_since_last_check(self, now: float) -> float:
        return now - self.last_checked_time

    def mark_checked(self, found: bool, now: float):
        """Record the outcome of a check."""
        self.times_checked += 1
        self.last_checked_time = now
        self.has_been_checked = True
        if found:
            self.times_found += 1

    def interact(self, now: float) -> bool:
        """Search the spot. Returns True if the target was hiding here."""
        found = self.occupied
        self.mark_checked(found, now)
        logger.debug(f"Hide spot {self.spot_id} checked: {'found' if found else 'empty'}")
        return found

    def try_enter(self) -> bool:
        """Target starts hiding here."""
        if not self.can_contain_player or self.occupied:
            return False
        self.occupied = True
        self.has_been_checked = False
        self.times_used += 1
        return True

    def exit(self):
        """Target leaves the spot."""
        self.occupied = False
        self.has_been_checked = False

    def reset_learning(self):
        """Forget all check statistics."""
        self.times_checked = 0
        self.times_found = 0
        self.times_used = 0
        self.last_checked_time = -999.0


# =============================================================================
# Collaborator protocols
# =============================================================================

class Mover(Protocol):
    """Locomotion / path following."""
    position: Vec2
    destination: Optional[Vec2]

    def set_destination(self, point: Vec2) -> None: ...

    @property
    def reached_destination(self) -> bool: ...

    @property
    def is_moving(self) -> bool: ...

    def stop(self) -> None: ...


class Sensing(Protocol):
    """Line-of-sight, hearing and the belief about the target."""
    player_visible: bool
    player_position: Optional[Vec2]
    last_seen_position: Optional[Vec2]
    last_heard_position: Optional[Vec2]
    last_clue_position: Optional[Vec2]
    last_seen_room: Optional[str]
    last_heard_room: Optional[str]
    last_heard_time: float
    player_style_bucket: int

    def time_since_seen(self, now: float) -> float: ...

    def time_since_heard(self, now: float) -> float: ...

    def time_since_clue(self, now: float) -> float: ...

    def has_seen_recently(self, now: float) -> bool: ...

    def has_heard_recently(self, now: float) -> bool: ...

    def best_guess_position(self, now: float) -> Optional[Vec2]: ...

    def best_guess_room(self, now: float) -> Optional[str]: ...

    def mark_room_searched(self, room_id: str) -> None: ...


class HeatGraph(Protocol):
    """Decaying traffic heat over rooms and room transitions."""
    max_heat_cap: float

    def get_node_heat(self, room_id: Optional[str]) -> float: ...

    def get_edge_heat(self, room_a: str, room_b: str) -> float: ...

    def get_choke_score(self, room_id: Optional[str]) -> float: ...

    def get_max_adjacent_edge_heat(self, room_id: Optional[str]) -> float: ...

    def get_peak_room(self) -> Optional[str]: ...

    def get_peak_value(self) -> float: ...

    def get_adjacent_rooms(self, room_id: str) -> List[str]: ...

    def get_hot_chain_from(self, room_id: str, length: int) -> List[str]: ...

    def get_top_choke_points(self, k: int) -> List[str]: ...

    def get_density_at(self, point: Vec2) -> float: ...


class Registry(Protocol):
    """Room lookup and hide-spot enumeration."""

    def get_room(self, room_id: Optional[str]) -> Optional[Room]: ...

    def get_all_rooms(self) -> Sequence[Room]: ...

    def get_room_at(self, point: Vec2) -> Optional[Room]: ...

    def get_hide_spots_in_room(self, room_id: Optional[str]) -> List[HideSpot]: ...

    def get_all_hide_spots(self) -> List[HideSpot]: ...


# =============================================================================
# Agent context
# =============================================================================

@dataclass
class AgentContext:
    """
    Per-agent bundle of collaborators and the simulation clock.

    Any collaborator may be None; the helpers then return the safe
    "unknown/far/cold" defaults the decision core expects.
    """
    mover: Optional[Mover] = None
    sensing: Optional[Sensing] = None
    heat: Optional[HeatGraph] = None
    registry: Optional[Registry] = None
    time: float = 0.0
    line_of_sight: Optional[Callable[[Vec2, Vec2], bool]] = None
    episode_start_time: float = field(default=0.0)

    def advance(self, dt: float):
        """Advance the clock by dt seconds."""
        self.time += dt

    # ------------------------------------------------------------------
    # Self
    # ------------------------------------------------------------------

    @property
    def position(self) -> Vec2:
        if self.mover is None:
            return (0.0, 0.0)
        return self.mover.position

    def current_room(self) -> Optional[str]:
        """Id of the room the agent stands in, or None."""
        return self.room_at(self.position)

    def room_at(self, point: Vec2) -> Optional[str]:
        if self.registry is None:
            return None
        room = self.registry.get_room_at(point)
        return room.room_id if room is not None else None

    def get_room(self, room_id: Optional[str]) -> Optional[Room]:
        if self.registry is None or room_id is None:
            return None
        return self.registry.get_room(room_id)

    def room_center(self, room_id: Optional[str]) -> Optional[Vec2]:
        room = self.get_room(room_id)
        return room.center if room is not None else None

    def all_rooms(self) -> List[Room]:
        if self.registry is None:
            return []
        return [room for room in self.registry.get_all_rooms() if room is not None]

    def hide_spots_in_room(self, room_id: Optional[str]) -> List[HideSpot]:
        if self.registry is None or room_id is None:
            return []
        return list(self.registry.get_hide_spots_in_room(room_id))

    def all_hide_spots(self) -> List[HideSpot]:
        if self.registry is None:
            return []
        return list(self.registry.get_all_hide_spots())

    # ------------------------------------------------------------------
    # Sensing
    # ------------------------------------------------------------------

    def can_see_player(self) -> bool:
        return bool(self.sensing is not None and self.sensing.player_visible)

    def player_position(self) -> Optional[Vec2]:
        if self.sensing is None:
            return None
        return self.sensing.player_position

    def time_since_seen(self) -> float:
        if self.sensing is None:
            return float('inf')
        return self.sensing.time_since_seen(self.time)

    def time_since_heard(self) -> float:
        if self.sensing is None:
            return float('inf')
        return self.sensing.time_since_heard(self.time)

    def time_since_clue(self) -> float:
        if self.sensing is None:
            return float('inf')
        return self.sensing.time_since_clue(self.time)

    def time_since_contact(self) -> float:
        return min(self.time_since_seen(), self.time_since_heard())

    def has_seen_recently(self) -> bool:
        return bool(self.sensing is not None and self.sensing.has_seen_recently(self.time))

    def has_heard_recently(self) -> bool:
        return bool(self.sensing is not None and self.sensing.has_heard_recently(self.time))

    def heat_peak_room(self) -> Optional[str]:
        if self.heat is None:
            return None
        return self.heat.get_peak_room()

    def best_guess_position(self) -> Optional[Vec2]:
        """Belief about the target position, falling back to the heat peak."""
        if self.sensing is not None:
            guess = self.sensing.best_guess_position(self.time)
            if guess is not None:
                return guess
        return self.room_center(self.heat_peak_room())

    def best_guess_room(self) -> Optional[str]:
        """Belief about the target room, falling back to the heat peak."""
        if self.sensing is not None:
            guess = self.sensing.best_guess_room(self.time)
            if guess is not None:
                return guess
        return self.heat_peak_room()

    def belief_target(self) -> Optional[Vec2]:
        """Seen recently > heard recently > heat-peak room center."""
        if self.sensing is not None:
            if self.has_seen_recently() and self.sensing.last_seen_position is not None:
                return self.sensing.last_seen_position
            if self.has_heard_recently() and self.sensing.last_heard_position is not None:
                return self.sensing.last_heard_position
        return self.room_center(self.heat_peak_room())

    def mark_room_searched(self, room_id: Optional[str]):
        if self.sensing is None or room_id is None:
            return
        self.sensing.mark_room_searched(room_id)

    def has_line_of_sight(self, a: Vec2, b: Vec2) -> bool:
        if self.line_of_sight is None:
            return True
        return self.line_of_sight(a, b)
