"""
Room arena environment.

A small deterministic world for driving the pursuit agent end to end:
a kinematic pursuer, a scripted evading target that wanders between rooms,
hides and makes noise, a belief model over what the pursuer has seen,
heard and found, and a transition heat graph fed by the target's movement.
"""

from typing import Any, Dict, List, Optional, Tuple
import logging

import numpy as np

from src.agents.pursuit.context import AgentContext, HideSpot, Vec2, distance
from .heat_graph import TransitionHeatGraph
from .layout import RoomLayout, create_grid_layout


logger = logging.getLogger(__name__)


class KinematicMover:
    """Moves in a straight line toward its destination at constant speed."""

    def __init__(self, position: Vec2, speed: float = 4.5, arrival_tolerance: float = 0.3):
        self.position: Vec2 = (float(position[0]), float(position[1]))
        self.destination: Optional[Vec2] = None
        self.speed = speed
        self.arrival_tolerance = arrival_tolerance

    def set_destination(self, point: Vec2):
        self.destination = (float(point[0]), float(point[1]))

    @property
    def reached_destination(self) -> bool:
        if self.destination is None:
            return True
        return distance(self.position, self.destination) <= self.arrival_tolerance

    @property
    def is_moving(self) -> bool:
        return not self.reached_destination

    def stop(self):
        self.destination = None

    def update(self, dt: float):
        if self.destination is None or self.reached_destination:
            return
        dx = self.destination[0] - self.position[0]
        dy = self.destination[1] - self.position[1]
        remaining = float(np.hypot(dx, dy))
        step = min(self.speed * dt, remaining)
        self.position = (self.position[0] + dx / remaining * step,
                         self.position[1] + dy / remaining * step)


class BeliefModel:
    """
    What the pursuer knows about the target.

    Sightings, sounds and clues update last-known positions and rooms,
    heat the heat graph and expire after per-kind memory timeouts.
    """

    def __init__(
        self,
        heat: TransitionHeatGraph,
        layout: RoomLayout,
        see_weight: float = 6.0,
        hear_weight: float = 3.5,
        clue_weight: float = 2.0,
        neighbor_multiplier: float = 0.6,
        see_memory: float = 20.0,
        hear_memory: float = 30.0,
        clue_memory: float = 40.0,
        searched_multiplier: float = 0.8
    ):
        self.heat = heat
        self.layout = layout
        self.see_weight = see_weight
        self.hear_weight = hear_weight
        self.clue_weight = clue_weight
        self.neighbor_multiplier = neighbor_multiplier
        self.see_memory = see_memory
        self.hear_memory = hear_memory
        self.clue_memory = clue_memory
        self.searched_multiplier = searched_multiplier

        self.player_style_bucket = 0
        self.reset_belief()

    def reset_belief(self):
        """Forget every observation (episode start)."""
        self.player_visible = False
        self.player_position: Optional[Vec2] = None
        self.last_seen_position: Optional[Vec2] = None
        self.last_seen_time = -999.0
        self.last_seen_room: Optional[str] = None
        self.last_heard_position: Optional[Vec2] = None
        self.last_heard_time = -999.0
        self.last_heard_room: Optional[str] = None
        self.last_clue_position: Optional[Vec2] = None
        self.last_clue_time = -999.0
        self.last_clue_room: Optional[str] = None
        self.searched_rooms: List[str] = []

    def _room_id(self, point: Vec2) -> Optional[str]:
        room = self.layout.get_room_at(point)
        return room.room_id if room is not None else None

    # ------------------------------------------------------------------
    # Observations
    # ------------------------------------------------------------------

    def update_sight(self, visible: bool, position: Optional[Vec2], now: float):
        self.player_visible = bool(visible and position is not None)
        self.player_position = position if self.player_visible else None
        if not self.player_visible:
            return

        moved = (self.last_seen_position is None or
                 distance(self.last_seen_position, position) > 0.5)
        if moved or now - self.last_seen_time > 1.0:
            self.last_seen_time = now
            room_id = self._room_id(position)
            if room_id is not None:
                self.last_seen_room = room_id
                self.heat.add_node_heat(room_id, self.see_weight)
        self.last_seen_position = position

    def hear_noise(self, position: Vec2, now: float, confidence: float = 1.0):
        self.last_heard_position = position
        self.last_heard_time = now
        room_id = self._room_id(position)
        if room_id is None:
            return
        self.last_heard_room = room_id
        self.heat.add_node_heat(room_id, self.hear_weight * confidence)
        for neighbor in self.heat.get_adjacent_rooms(room_id):
            self.heat.add_node_heat(neighbor, self.hear_weight * confidence * self.neighbor_multiplier)

    def find_clue(self, position: Vec2, now: float, strength: float = 1.0):
        self.last_clue_position = position
        self.last_clue_time = now
        room_id = self._room_id(position)
        if room_id is None:
            return
        self.last_clue_room = room_id
        self.heat.add_node_heat(room_id, self.clue_weight * strength)
        for neighbor in self.heat.get_adjacent_rooms(room_id):
            self.heat.add_node_heat(neighbor,
                                    self.clue_weight * strength * self.neighbor_multiplier * 0.5)

    def expire(self, now: float):
        """Drop rooms whose memory has timed out."""
        if not self.has_seen_recently(now):
            self.last_seen_room = None
        if not self.has_heard_recently(now):
            self.last_heard_room = None
        if self.time_since_clue(now) >= self.clue_memory:
            self.last_clue_room = None
            self.last_clue_position = None

    # ------------------------------------------------------------------
    # Sensing protocol
    # ------------------------------------------------------------------

    def time_since_seen(self, now: float) -> float:
        return now - self.last_seen_time

    def time_since_heard(self, now: float) -> float:
        return now - self.last_heard_time

    def time_since_clue(self, now: float) -> float:
        return now - self.last_clue_time

    def has_seen_recently(self, now: float) -> bool:
        return self.time_since_seen(now) < self.see_memory

    def has_heard_recently(self, now: float) -> bool:
        return self.time_since_heard(now) < self.hear_memory

    def best_guess_position(self, now: float) -> Optional[Vec2]:
        if self.has_seen_recently(now) and self.last_seen_position is not None:
            return self.last_seen_position
        if self.has_heard_recently(now) and self.last_heard_position is not None:
            return self.last_heard_position
        if self.time_since_clue(now) < self.clue_memory:
            return self.last_clue_position
        return None

    def best_guess_room(self, now: float) -> Optional[str]:
        if self.has_seen_recently(now) and self.last_seen_room:
            return self.last_seen_room
        if self.has_heard_recently(now) and self.last_heard_room:
            return self.last_heard_room
        if self.time_since_clue(now) < self.clue_memory and self.last_clue_room:
            return self.last_clue_room
        return None

    def mark_room_searched(self, room_id: str):
        self.heat.multiply_node_heat(room_id, self.searched_multiplier)
        self.searched_rooms.append(room_id)


class ScriptedEvader:
    """
    Evading target: walks from room to room, sometimes hides, makes noise.

    All randomness comes from the injected generator.
    """

    def __init__(
        self,
        layout: RoomLayout,
        rng: np.random.Generator,
        speed: float = 3.5,
        hide_probability: float = 0.3,
        hide_duration: Tuple[float, float] = (4.0, 10.0),
        noise_rate: float = 0.15,
        clue_probability: float = 0.3
    ):
        self.layout = layout
        self.rng = rng
        self.mover = KinematicMover((0.0, 0.0), speed=speed)
        self.hide_probability = hide_probability
        self.hide_duration = hide_duration
        self.noise_rate = noise_rate
        self.clue_probability = clue_probability

        self.room_id: Optional[str] = None
        self.hiding_spot: Optional[HideSpot] = None
        self.hide_until = 0.0
        self.room_changes = 0

    @property
    def position(self) -> Vec2:
        return self.mover.position

    @property
    def is_hidden(self) -> bool:
        return self.hiding_spot is not None

    @property
    def style_bucket(self) -> int:
        return 1 if self.hide_probability > 0.5 else 0

    def reset(self, room_id: str):
        if self.hiding_spot is not None:
            self.hiding_spot.exit()
        self.hiding_spot = None
        self.room_id = room_id
        self.mover.position = self.layout.get_room(room_id).center
        self.mover.stop()
        self.room_changes = 0

    def update(self, dt: float, now: float) -> Dict[str, Any]:
        """
        Advance the target.

        Returns:
            Events: 'transition' (prev, new) on a room change, 'noise'
            position when a sound is made, 'clue' (position, room) when one
            is dropped
        """
        events: Dict[str, Any] = {}

        if self.hiding_spot is not None:
            if now < self.hide_until:
                return events
            self.hiding_spot.exit()
            self.hiding_spot = None

        if self.mover.reached_destination:
            self._choose_next(now)

        self.mover.update(dt)

        room = self.layout.get_room_at(self.mover.position)
        new_room = room.room_id if room is not None else self.room_id
        if new_room != self.room_id:
            events['transition'] = (self.room_id, new_room)
            if self.rng.random() < self.clue_probability:
                events['clue'] = (self.mover.position, new_room)
            self.room_id = new_room
            self.room_changes += 1

        if self.mover.is_moving and self.rng.random() < self.noise_rate * dt:
            events['noise'] = self.mover.position

        return events

    def reveal(self):
        """Leave the hiding spot after being found."""
        if self.hiding_spot is None:
            return
        self.hiding_spot.exit()
        self.hiding_spot = None
        self.hide_until = 0.0

    def _choose_next(self, now: float):
        spots = [s for s in self.layout.get_hide_spots_in_room(self.room_id) if not s.occupied]
        if spots and self.rng.random() < self.hide_probability:
            spot = spots[int(self.rng.integers(len(spots)))]
            if spot.try_enter():
                self.hiding_spot = spot
                self.mover.position = spot.position
                self.mover.stop()
                self.hide_until = now + float(self.rng.uniform(*self.hide_duration))
                return

        neighbors = self.layout.neighbors(self.room_id)
        if not neighbors:
            return
        target = neighbors[int(self.rng.integers(len(neighbors)))]
        self.mover.set_destination(self.layout.get_room(target).center)


class RoomArena:
    """
    Reference world implementing every collaborator of the pursuit agent.

    Usage:
        arena = RoomArena(seed=0)
        ctx = arena.reset()
        orchestrator = DecisionOrchestrator(ctx, config)
        for _ in range(steps):
            arena.step(0.1)
            orchestrator.tick(0.1)
    """

    def __init__(
        self,
        layout: Optional[RoomLayout] = None,
        seed: Optional[int] = None,
        agent_speed: float = 4.5,
        evader_speed: float = 3.5,
        sight_range: float = 7.0,
        hearing_range: float = 14.0,
        hide_probability: float = 0.3,
        noise_rate: float = 0.15,
        clue_probability: float = 0.3,
        transition_weight: float = 1.0,
        decay_rate: float = 0.1,
        agent_start_room: Optional[str] = None,
        evader_start_room: Optional[str] = None,
        objective_room: Optional[str] = None
    ):
        """
        Initialize room arena.

        Args:
            layout: Room layout (defaults to a 3x3 grid with a central junction)
            seed: Random seed for the evader
            agent_speed: Pursuer speed in m/s
            evader_speed: Target speed in m/s
            sight_range: Visibility range; sight also needs connected rooms
            hearing_range: Range at which target noise is heard
            hide_probability: Chance the target hides on arrival in a room
            noise_rate: Expected noises per second while the target moves
            clue_probability: Chance a clue is dropped on a room change
            transition_weight: Edge heat added per target room change
            decay_rate: Heat decay per second
            agent_start_room: Pursuer spawn room (defaults to the first room)
            evader_start_room: Target spawn room (defaults to the last room)
            objective_room: Room the target escapes through (None disables it)
        """
        self.layout = layout or create_grid_layout()
        self.seed = seed
        self.rng = np.random.default_rng(seed)

        self.agent_speed = agent_speed
        self.sight_range = sight_range
        self.hearing_range = hearing_range
        self.transition_weight = transition_weight

        room_ids = [room.room_id for room in self.layout.get_all_rooms()]
        self.agent_start_room = agent_start_room or room_ids[0]
        self.evader_start_room = evader_start_room or room_ids[-1]
        if objective_room is not None and self.layout.get_room(objective_room) is None:
            raise ValueError(f"Unknown objective room: {objective_room}")
        self.objective_room = objective_room

        self.heat = TransitionHeatGraph(decay_rate=decay_rate, registry=self.layout)
        for room_a, room_b in self.layout.edges():
            self.heat.register_edge(room_a, room_b)

        self.sensing = BeliefModel(self.heat, self.layout)
        self.evader = ScriptedEvader(
            self.layout, self.rng,
            speed=evader_speed,
            hide_probability=hide_probability,
            noise_rate=noise_rate,
            clue_probability=clue_probability,
        )

        self.context: Optional[AgentContext] = None
        self.mover: Optional[KinematicMover] = None
        self._pending_clues: List[Tuple[Vec2, str, float]] = []
        self._decay_accumulator = 0.0
        self.step_count = 0

    def reset(self) -> AgentContext:
        """
        Reset the world and return a fresh agent context.

        Learned hide-spot statistics survive resets; occupancy does not.
        The clock keeps running across episodes.
        """
        now = self.context.time if self.context is not None else 0.0

        self.layout.release_hide_spots()
        self.heat.reset()
        self.sensing.reset_belief()

        self.mover = KinematicMover(self.layout.get_room(self.agent_start_room).center,
                                    speed=self.agent_speed)
        self.evader.reset(self.evader_start_room)
        self.sensing.player_style_bucket = self.evader.style_bucket

        self._pending_clues = []
        self._decay_accumulator = 0.0
        self.step_count = 0

        self.context = AgentContext(
            mover=self.mover,
            sensing=self.sensing,
            heat=self.heat,
            registry=self.layout,
            time=now,
            line_of_sight=self.line_of_sight,
            episode_start_time=now,
        )
        self._update_perception(now)
        return self.context

    def step(self, dt: float) -> Dict[str, Any]:
        """
        Advance the world by dt seconds (the agent's context clock included).

        Returns:
            info dict with time, visibility and distance to the target
        """
        if self.context is None:
            raise RuntimeError("Environment not initialized. Call reset() first.")

        ctx = self.context
        ctx.advance(dt)
        now = ctx.time

        self.mover.update(dt)

        events = self.evader.update(dt, now)
        if 'transition' in events:
            prev_room, new_room = events['transition']
            self.heat.add_transition_heat(prev_room, new_room, self.transition_weight)
        if 'clue' in events:
            position, room_id = events['clue']
            self._pending_clues.append((position, room_id, now))
        if 'noise' in events and distance(self.mover.position, events['noise']) <= self.hearing_range:
            self.sensing.hear_noise(events['noise'], now)
            logger.debug(f"Noise heard at {events['noise']}")

        self._decay_accumulator += dt
        if self._decay_accumulator >= 1.0:
            self.heat.decay_tick(self._decay_accumulator)
            self._decay_accumulator = 0.0

        self._update_perception(now)
        self.step_count += 1

        return {
            'time': now,
            'step': self.step_count,
            'player_visible': self.sensing.player_visible,
            'distance': self.distance_to_target(),
            'evader_room': self.evader.room_id,
            'evader_hidden': self.evader.is_hidden,
            'objective_complete': self.objective_complete(),
        }

    def _update_perception(self, now: float):
        spot = self.evader.hiding_spot
        if spot is not None and spot.has_been_checked:
            logger.debug(f"Target flushed out of {spot.spot_id}")
            self.evader.reveal()

        target = self.evader.position
        visible = (not self.evader.is_hidden and
                   distance(self.mover.position, target) <= self.sight_range and
                   self.line_of_sight(self.mover.position, target))
        self.sensing.update_sight(visible, target if visible else None, now)

        agent_room = self.layout.get_room_at(self.mover.position)
        if agent_room is not None and self._pending_clues:
            remaining = []
            for position, room_id, dropped in self._pending_clues:
                if room_id == agent_room.room_id:
                    self.sensing.find_clue(position, now)
                else:
                    remaining.append((position, room_id, dropped))
            self._pending_clues = remaining

        self.sensing.expire(now)

    def line_of_sight(self, a: Vec2, b: Vec2) -> bool:
        """Clear when both points are in the same or connected rooms."""
        room_a = self.layout.get_room_at(a)
        room_b = self.layout.get_room_at(b)
        if room_a is None or room_b is None:
            return False
        return self.layout.are_connected(room_a.room_id, room_b.room_id)

    def distance_to_target(self) -> float:
        if self.mover is None:
            return float('inf')
        return distance(self.mover.position, self.evader.position)

    def is_captured(self, capture_distance: float = 1.5) -> bool:
        """Target is within capture distance and not hidden."""
        return not self.evader.is_hidden and self.distance_to_target() <= capture_distance

    def objective_complete(self) -> bool:
        """Target has reached the objective room in the open."""
        if self.objective_room is None or self.evader.is_hidden:
            return False
        return self.evader.room_id == self.objective_room
