"""
Transition heat graph.

Rooms are nodes and doorways are undirected edges. Target movement between
rooms heats the traversed edge; sightings, sounds and clues heat nodes.
All heat decays linearly over time and is capped.
"""

from typing import Dict, List, Optional, Set, Tuple
import logging

import numpy as np

from src.agents.pursuit.context import Vec2, distance


logger = logging.getLogger(__name__)

EdgeKey = Tuple[str, str]


def _edge_key(room_a: str, room_b: str) -> EdgeKey:
    return (room_a, room_b) if room_a < room_b else (room_b, room_a)


class TransitionHeatGraph:
    """
    Decaying traffic heat over rooms and room transitions.

    Choke score of a room is the sum of the heat on its edges.
    """

    def __init__(
        self,
        decay_rate: float = 0.1,
        min_heat_threshold: float = 0.01,
        max_heat_cap: float = 100.0,
        registry=None
    ):
        """
        Initialize heat graph.

        Args:
            decay_rate: Linear decay per second
            min_heat_threshold: Heat below this snaps to zero
            max_heat_cap: Upper bound of any node or edge heat
            registry: Room registry used by get_density_at
        """
        self.decay_rate = decay_rate
        self.min_heat_threshold = min_heat_threshold
        self.max_heat_cap = max_heat_cap
        self.registry = registry

        self.nodes: Set[str] = set()
        self.adjacency: Dict[str, Set[str]] = {}
        self.edge_heat: Dict[EdgeKey, float] = {}
        self.node_heat: Dict[str, float] = {}

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def register_node(self, room_id: Optional[str]):
        if not room_id:
            return
        self.nodes.add(room_id)
        self.adjacency.setdefault(room_id, set())

    def register_edge(self, room_a: Optional[str], room_b: Optional[str]):
        if not room_a or not room_b or room_a == room_b:
            return
        self.register_node(room_a)
        self.register_node(room_b)
        self.adjacency[room_a].add(room_b)
        self.adjacency[room_b].add(room_a)
        self.edge_heat.setdefault(_edge_key(room_a, room_b), 0.0)

    # ------------------------------------------------------------------
    # Heat updates
    # ------------------------------------------------------------------

    def add_transition_heat(self, prev_room: Optional[str], new_room: Optional[str],
                            weight: float = 1.0):
        """Heat the edge traversed when moving from prev_room to new_room."""
        if not prev_room or not new_room or prev_room == new_room:
            return
        self.register_edge(prev_room, new_room)
        key = _edge_key(prev_room, new_room)
        self.edge_heat[key] = min(self.edge_heat[key] + weight, self.max_heat_cap)

    def add_node_heat(self, room_id: Optional[str], weight: float = 1.0):
        if not room_id:
            return
        self.register_node(room_id)
        self.node_heat[room_id] = min(self.node_heat.get(room_id, 0.0) + weight, self.max_heat_cap)

    def multiply_node_heat(self, room_id: Optional[str], multiplier: float):
        if room_id not in self.node_heat:
            return
        self.node_heat[room_id] = max(0.0, self.node_heat[room_id] * multiplier)

    def decay_tick(self, dt: float):
        """Linear decay of every node and edge."""
        decay = self.decay_rate * dt
        for heat_map in (self.edge_heat, self.node_heat):
            for key, value in heat_map.items():
                value = max(0.0, value - decay)
                heat_map[key] = 0.0 if value < self.min_heat_threshold else value

    def reset(self):
        """Zero all heat, keeping the structure."""
        for key in self.edge_heat:
            self.edge_heat[key] = 0.0
        self.node_heat.clear()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_edge_heat(self, room_a: Optional[str], room_b: Optional[str]) -> float:
        if not room_a or not room_b:
            return 0.0
        return self.edge_heat.get(_edge_key(room_a, room_b), 0.0)

    def get_node_heat(self, room_id: Optional[str]) -> float:
        if not room_id:
            return 0.0
        return self.node_heat.get(room_id, 0.0)

    def get_adjacent_rooms(self, room_id: Optional[str]) -> List[str]:
        if not room_id:
            return []
        return sorted(self.adjacency.get(room_id, ()))

    def get_choke_score(self, room_id: Optional[str]) -> float:
        return sum(self.get_edge_heat(room_id, n) for n in self.get_adjacent_rooms(room_id))

    def get_max_adjacent_edge_heat(self, room_id: Optional[str]) -> float:
        heats = [self.get_edge_heat(room_id, n) for n in self.get_adjacent_rooms(room_id)]
        return max(heats, default=0.0)

    def get_peak_room(self) -> Optional[str]:
        """Hottest room, or None while every room is cold."""
        if not self.node_heat:
            return None
        room_id, value = max(sorted(self.node_heat.items()), key=lambda kv: kv[1])
        return room_id if value > 0.0 else None

    def get_peak_value(self) -> float:
        return max(self.node_heat.values(), default=0.0)

    def get_top_choke_points(self, k: int = 3) -> List[str]:
        scored = sorted(self.nodes, key=lambda r: (-self.get_choke_score(r), r))
        return scored[:max(0, k)]

    def get_hot_chain_from(self, start_room: Optional[str], length: int = 3) -> List[str]:
        """
        Greedy walk along the hottest unvisited edge.

        Returns:
            [start_room, ...] with at most length further rooms; empty if
            start_room is unknown
        """
        if not start_room or start_room not in self.nodes:
            return []

        chain = [start_room]
        visited = {start_room}
        current = start_room
        for _ in range(length):
            hottest, hottest_heat = None, 0.0
            for neighbor in self.get_adjacent_rooms(current):
                if neighbor in visited:
                    continue
                heat = self.get_edge_heat(current, neighbor)
                if heat > hottest_heat:
                    hottest, hottest_heat = neighbor, heat
            if hottest is None:
                break
            chain.append(hottest)
            visited.add(hottest)
            current = hottest
        return chain

    def get_density_at(self, point: Vec2) -> float:
        """Node heat summed over rooms, discounted by distance to each room center."""
        if self.registry is None:
            return 0.0
        total = 0.0
        for room_id, heat in self.node_heat.items():
            room = self.registry.get_room(room_id)
            if room is None or heat <= 0.0:
                continue
            total += heat / (1.0 + distance(point, room.center))
        return float(total)

    def get_heat_summary(self) -> Dict[str, float]:
        return {
            'peak_value': self.get_peak_value(),
            'mean_node_heat': float(np.mean(list(self.node_heat.values()))) if self.node_heat else 0.0,
            'total_edge_heat': float(sum(self.edge_heat.values())),
        }
