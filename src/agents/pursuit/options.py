"""
Concrete pursuit options.

Option-Based Pursuit Agent

Seven behaviors share the BaseOption life-cycle:
- Patrol: visit a learned route of rooms, scanning each
- Investigate: go to the last seen/heard position, chasing while visible
- HeatSearch: go to the hottest room, retargeting if the peak shifts
- Sweep: visit the center and the likeliest hide spots of a room
- HideSpotCheck: open the top-ranked hide spots of a room
- HeatSweep: follow the hot transition chain and dwell at its end
- Ambush: wait at the best-scoring choke room
"""

from typing import Dict, List, Optional, Tuple, Type
import logging

import numpy as np

from .base_option import BaseOption, OptionPhase
from .config import OptionConfig
from .context import AgentContext, HideSpot, Vec2, distance
from .option_types import OptionType, OptionStatus
from .target_selection import HideSpotTarget, RoomTarget, TargetSelector


logger = logging.getLogger(__name__)


class PatrolOption(BaseOption):
    """Visit a short route of rooms chosen by the room scorer."""

    option_type = OptionType.PATROL
    hear_interruptible = True

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.route: List[RoomTarget] = []
        self.waypoint_index = 0

    def on_start(self, ctx: AgentContext):
        self.route = []
        self.waypoint_index = 0

        if self.selector is None:
            self.fail_setup("no target selector")
            return

        self.route = self.selector.select_patrol_route(ctx, self.config.patrol_waypoints)
        if not self.route:
            self.fail_setup("no patrol route")
            return

        self.begin_travel(ctx, self.route[0].position)

    def on_step(self, ctx: AgentContext, dt: float) -> OptionStatus:
        if self.waypoint_index >= len(self.route):
            return OptionStatus.FAILED

        target = self.route[self.waypoint_index]

        if self.phase == OptionPhase.SCANNING:
            if self.phase_elapsed(ctx) >= self.config.patrol_scan_duration:
                ctx.mark_room_searched(target.room_id)
                self.waypoint_index += 1
                if self.waypoint_index >= len(self.route):
                    return OptionStatus.SUCCEEDED
                self.begin_travel(ctx, self.route[self.waypoint_index].position)
        elif ctx.mover.reached_destination:
            self.begin_scan(ctx)

        return OptionStatus.RUNNING

    def describe_target(self) -> str:
        if not self.route:
            return "None"
        return " -> ".join(t.room_id for t in self.route)


class InvestigateOption(BaseOption):
    """Move to the freshest evidence of the target and scan there."""

    option_type = OptionType.INVESTIGATE

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.target_position: Optional[Vec2] = None
        self.target_room: Optional[str] = None
        self.is_chasing = False

    def on_start(self, ctx: AgentContext):
        self.target_position = None
        self.target_room = None

        sensing = ctx.sensing
        if sensing is not None and ctx.has_seen_recently() and sensing.last_seen_position is not None:
            self.target_position = sensing.last_seen_position
            self.target_room = sensing.last_seen_room
        elif sensing is not None and ctx.has_heard_recently() and sensing.last_heard_position is not None:
            self.target_position = sensing.last_heard_position
            self.target_room = sensing.last_heard_room
        else:
            self.target_position = ctx.best_guess_position()
            self.target_room = ctx.best_guess_room()

        if self.target_position is None:
            self.fail_setup("no investigation target")
            return

        self.is_chasing = ctx.can_see_player()
        self.begin_travel(ctx, self.target_position)

    def on_step(self, ctx: AgentContext, dt: float) -> OptionStatus:
        player = ctx.player_position() if ctx.can_see_player() else None
        if player is not None:
            # Live pursuit while contact holds
            self.is_chasing = True
            self.target_position = player
            self.phase = OptionPhase.TRAVELING
            self.move_to(ctx, player)
            if self.is_at(ctx, player, self.config.investigate_catch_distance):
                return OptionStatus.SUCCEEDED
            return OptionStatus.RUNNING

        if self.phase == OptionPhase.SCANNING:
            if self.phase_elapsed(ctx) >= self.config.investigate_scan_duration:
                ctx.mark_room_searched(self.target_room)
                return OptionStatus.SUCCEEDED
        elif ctx.mover.reached_destination:
            self.begin_scan(ctx)

        return OptionStatus.RUNNING

    def describe_target(self) -> str:
        return self.target_room or "None"


class HeatSearchOption(BaseOption):
    """Head for the hottest room and scan it."""

    option_type = OptionType.HEAT_SEARCH

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.target_room: Optional[str] = None
        self.target_position: Optional[Vec2] = None
        self.last_heat = 0.0

    def _node_heat(self, ctx: AgentContext, room_id: Optional[str]) -> float:
        if ctx.heat is None or room_id is None:
            return 0.0
        return ctx.heat.get_node_heat(room_id)

    def _hottest_room(self, ctx: AgentContext) -> Optional[str]:
        best_id, best_heat = None, 0.0
        for room in ctx.all_rooms():
            if room.is_junction:
                continue
            heat = self._node_heat(ctx, room.room_id)
            if heat > best_heat:
                best_id, best_heat = room.room_id, heat
        return best_id

    def _candidate(self, ctx: AgentContext) -> Tuple[Optional[str], float]:
        """Selector choice if it is warm enough, else the hottest room."""
        candidate = None
        if self.selector is not None:
            choice = self.selector.select_patrol_room(ctx)
            candidate = choice.room_id if choice is not None else None

        heat = self._node_heat(ctx, candidate)
        if candidate is None or heat < self.config.heat_search_min_heat:
            candidate = self._hottest_room(ctx)
            heat = self._node_heat(ctx, candidate)
        return candidate, heat

    def on_start(self, ctx: AgentContext):
        self.target_room, self.last_heat = self._candidate(ctx)
        self.target_position = ctx.room_center(self.target_room)

        if (self.target_room is None or self.target_position is None or
                self.last_heat < self.config.heat_search_min_heat):
            self.target_room = None
            self.fail_setup("no warm room")
            return

        self.begin_travel(ctx, self.target_position)

    def on_step(self, ctx: AgentContext, dt: float) -> OptionStatus:
        if self.target_room is None:
            return OptionStatus.FAILED

        current_heat = self._node_heat(ctx, self.target_room)
        if current_heat < self.config.heat_search_min_heat:
            return OptionStatus.FAILED

        if self.phase == OptionPhase.TRAVELING:
            candidate, candidate_heat = self._candidate(ctx)
            if (candidate is not None and candidate != self.target_room and
                    candidate_heat > current_heat * self.config.heat_search_shift_threshold):
                position = ctx.room_center(candidate)
                if position is not None:
                    logger.debug(f"Heat peak shifted {self.target_room} -> {candidate}")
                    self.target_room = candidate
                    self.target_position = position
                    self.last_heat = candidate_heat
                    self.move_to(ctx, position)

        if self.phase == OptionPhase.SCANNING:
            if self.phase_elapsed(ctx) >= self.config.heat_search_scan_duration:
                ctx.mark_room_searched(self.target_room)
                return OptionStatus.SUCCEEDED
        elif ctx.mover.reached_destination:
            self.begin_scan(ctx)

        return OptionStatus.RUNNING

    def describe_target(self) -> str:
        return self.target_room or "None"


class SweepOption(BaseOption):
    """Sweep a room: its center first, then its likeliest hide spots."""

    option_type = OptionType.SWEEP

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.target_room: Optional[str] = None
        self.sweep_points: List[Tuple[Vec2, Optional[HideSpot]]] = []
        self.point_index = 0

    def _choose_room(self, ctx: AgentContext) -> Optional[str]:
        if self.config.sweep_use_selector and self.selector is not None:
            choice = self.selector.select_patrol_room(ctx)
            return choice.room_id if choice is not None else None

        sensing = ctx.sensing
        if sensing is not None and ctx.has_seen_recently():
            room_id = sensing.last_seen_room
        elif sensing is not None and ctx.has_heard_recently():
            room_id = sensing.last_heard_room
        else:
            room_id = ctx.best_guess_room()

        room = ctx.get_room(room_id)
        if room is not None and room.is_junction:
            room_id = ctx.best_guess_room()
        return room_id

    def generate_sweep_points(self, ctx: AgentContext,
                              room_id: str) -> List[Tuple[Vec2, Optional[HideSpot]]]:
        """Center, then top hide spots by probability, then optional corners."""
        room = ctx.get_room(room_id)
        if room is None:
            return []

        center = room.center
        points: List[Tuple[Vec2, Optional[HideSpot]]] = [(center, None)]

        spots = sorted(ctx.hide_spots_in_room(room_id),
                       key=lambda s: s.probability, reverse=True)
        for spot in spots[:self.config.sweep_max_hide_spots]:
            points.append((spot.position, spot))

        if self.config.sweep_check_corners:
            inset = self.config.sweep_corner_inset
            width, height = room.size
            for sx, sy in ((-1, -1), (1, -1), (1, 1), (-1, 1)):
                corner = (center[0] + sx * width * inset, center[1] + sy * height * inset)
                points.append((corner, None))

        return points

    def on_start(self, ctx: AgentContext):
        self.sweep_points = []
        self.point_index = 0

        self.target_room = self._choose_room(ctx)
        if self.target_room is None:
            self.fail_setup("no room to sweep")
            return

        self.sweep_points = self.generate_sweep_points(ctx, self.target_room)
        if not self.sweep_points:
            self.fail_setup(f"no sweep points in {self.target_room}")
            return

        self.begin_travel(ctx, self.sweep_points[0][0])

    def on_step(self, ctx: AgentContext, dt: float) -> OptionStatus:
        if not 0 <= self.point_index < len(self.sweep_points):
            return OptionStatus.FAILED

        point, spot = self.sweep_points[self.point_index]

        if self.phase == OptionPhase.SCANNING:
            if self.phase_elapsed(ctx) >= self.config.sweep_scan_duration:
                if spot is not None:
                    spot.interact(ctx.time)
                self.point_index += 1
                if self.point_index >= len(self.sweep_points):
                    ctx.mark_room_searched(self.target_room)
                    return OptionStatus.SUCCEEDED
                self.begin_travel(ctx, self.sweep_points[self.point_index][0])
        elif (self.is_at(ctx, point, self.config.sweep_arrival_distance) or
              ctx.mover.reached_destination):
            self.begin_scan(ctx)

        return OptionStatus.RUNNING

    def describe_target(self) -> str:
        return self.target_room or "None"


class HideSpotCheckOption(BaseOption):
    """Open the top-ranked hide spots of the current (or believed) room."""

    option_type = OptionType.HIDE_SPOT_CHECK

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.target_room: Optional[str] = None
        self.targets: List[HideSpotTarget] = []
        self.spot_index = 0
        self.found = False

    def on_start(self, ctx: AgentContext):
        self.targets = []
        self.spot_index = 0
        self.found = False

        self.target_room = ctx.current_room() or ctx.best_guess_room()
        if self.target_room is None:
            self.fail_setup("no room for hide-spot check")
            return

        if self.selector is not None:
            self.targets = self.selector.select_hide_spots(
                ctx, self.target_room, self.config.hide_spot_count
            )
        else:
            spots = sorted(ctx.hide_spots_in_room(self.target_room),
                           key=lambda s: s.probability, reverse=True)
            self.targets = [HideSpotTarget(s) for s in spots[:self.config.hide_spot_count]]

        if not self.targets:
            self.fail_setup(f"no hide spots in {self.target_room}")
            return

        self.begin_travel(ctx, self.targets[0].position)

    def on_step(self, ctx: AgentContext, dt: float) -> OptionStatus:
        if not 0 <= self.spot_index < len(self.targets):
            return OptionStatus.FAILED

        target = self.targets[self.spot_index]

        if self.phase == OptionPhase.SCANNING:
            if self.phase_elapsed(ctx) >= self.config.hide_spot_check_duration:
                self.found = target.spot.interact(ctx.time)

                if self.config.hide_spot_train_scorer and self.selector is not None:
                    self.selector.train_hide_spot_scorer(target, 1.0 if self.found else 0.0)

                if self.found:
                    logger.debug(f"Target found in hide spot {target.spot.spot_id}")
                    return OptionStatus.SUCCEEDED

                self.spot_index += 1
                if self.spot_index >= len(self.targets):
                    return OptionStatus.SUCCEEDED
                self.begin_travel(ctx, self.targets[self.spot_index].position)
        elif self.is_at(ctx, target.position, self.config.hide_spot_arrival_distance):
            self.begin_scan(ctx)

        return OptionStatus.RUNNING

    def describe_target(self) -> str:
        return self.target_room or "None"


class HeatSweepOption(BaseOption):
    """Follow the hot transition chain from the current room and dwell at its end."""

    option_type = OptionType.HEAT_SWEEP

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.chain: List[str] = []
        self.target_room: Optional[str] = None
        self.target_position: Optional[Vec2] = None

    def on_start(self, ctx: AgentContext):
        self.chain = []
        self.target_room = None
        self.target_position = None

        current = ctx.current_room()
        if ctx.heat is None or current is None:
            self.fail_setup("no heat graph or current room")
            return

        self.chain = ctx.heat.get_hot_chain_from(current, self.config.heat_sweep_chain_length)
        if not self.chain:
            self.fail_setup(f"no hot chain from {current}")
            return

        self.target_room = self.chain[-1]
        self.target_position = ctx.room_center(self.target_room)
        if self.target_position is None:
            self.fail_setup(f"unknown room {self.target_room}")
            return

        self.begin_travel(ctx, self.target_position)

    def on_step(self, ctx: AgentContext, dt: float) -> OptionStatus:
        if self.target_position is None:
            return OptionStatus.FAILED

        if self.elapsed(ctx.time) > self.config.heat_sweep_timeout:
            return OptionStatus.FAILED

        if self.phase == OptionPhase.TRAVELING:
            if (self.is_at(ctx, self.target_position, self.config.heat_sweep_arrival_distance) or
                    ctx.mover.reached_destination):
                self.begin_scan(ctx)
        elif self.phase_elapsed(ctx) >= self.config.heat_sweep_dwell:
            return OptionStatus.SUCCEEDED

        return OptionStatus.RUNNING

    def describe_target(self) -> str:
        return " -> ".join(self.chain) if self.chain else "None"


class AmbushOption(BaseOption):
    """Wait at the choke room with the best proximity/heat trade-off."""

    option_type = OptionType.AMBUSH

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.target_room: Optional[str] = None
        self.target_position: Optional[Vec2] = None
        self.wait_duration = 0.0

    def score_choke(self, ctx: AgentContext, room_id: str) -> Optional[float]:
        """exp(-d / scale) * distance_weight + choke_score * heat_weight."""
        position = ctx.room_center(room_id)
        if position is None or ctx.heat is None:
            return None
        proximity = float(np.exp(-distance(ctx.position, position) / self.config.ambush_distance_scale))
        return (proximity * self.config.ambush_distance_weight +
                ctx.heat.get_choke_score(room_id) * self.config.ambush_heat_weight)

    def select_best_choke(self, ctx: AgentContext, chokes: List[str]) -> Optional[str]:
        best_room, best_score = None, float('-inf')
        for room_id in chokes:
            score = self.score_choke(ctx, room_id)
            if score is not None and score > best_score:
                best_room, best_score = room_id, score
        return best_room

    def on_start(self, ctx: AgentContext):
        self.target_room = None
        self.target_position = None

        if ctx.heat is None:
            self.fail_setup("no heat graph")
            return

        chokes = ctx.heat.get_top_choke_points(self.config.ambush_top_chokes)
        self.target_room = self.select_best_choke(ctx, chokes)
        self.target_position = ctx.room_center(self.target_room)
        if self.target_position is None:
            self.fail_setup("no reachable choke point")
            return

        self.wait_duration = float(self.rng.uniform(self.config.ambush_wait_min,
                                                    self.config.ambush_wait_max))
        self.begin_travel(ctx, self.target_position)

    def on_step(self, ctx: AgentContext, dt: float) -> OptionStatus:
        if self.target_position is None:
            return OptionStatus.FAILED

        if self.elapsed(ctx.time) > self.config.ambush_timeout:
            return OptionStatus.FAILED

        if self.phase == OptionPhase.TRAVELING:
            if (self.is_at(ctx, self.target_position, self.config.ambush_arrival_distance) or
                    ctx.mover.reached_destination):
                self.begin_scan(ctx)
        elif self.phase_elapsed(ctx) >= self.wait_duration:
            return OptionStatus.SUCCEEDED

        return OptionStatus.RUNNING

    def describe_target(self) -> str:
        return self.target_room or "None"


OPTION_CLASSES: Dict[OptionType, Type[BaseOption]] = {
    OptionType.PATROL: PatrolOption,
    OptionType.INVESTIGATE: InvestigateOption,
    OptionType.HEAT_SEARCH: HeatSearchOption,
    OptionType.SWEEP: SweepOption,
    OptionType.HIDE_SPOT_CHECK: HideSpotCheckOption,
    OptionType.HEAT_SWEEP: HeatSweepOption,
    OptionType.AMBUSH: AmbushOption,
}


def create_option_pool(
    config: Optional[OptionConfig] = None,
    selector: Optional[TargetSelector] = None,
    rng: Optional[np.random.Generator] = None
) -> Dict[OptionType, BaseOption]:
    """
    Build one reusable instance per option type.

    Args:
        config: Option settings shared by the pool
        selector: Target selector shared by the pool
        rng: Random generator shared by the pool

    Returns:
        Mapping from OptionType to its option instance
    """
    config = config or OptionConfig()
    rng = rng or np.random.default_rng()
    return {
        option_type: option_class(config, selector, rng)
        for option_type, option_class in OPTION_CLASSES.items()
    }
