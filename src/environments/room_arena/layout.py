"""
Room layout and registry for the room arena.

A grid of axis-aligned rooms; rooms sharing a wall are connected. Each
non-junction room carries a few hide spots.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from src.agents.pursuit.context import HideSpot, Room, Vec2


class RoomLayout:
    """
    Room registry: lookup by id and position, adjacency and hide spots.

    Implements the registry protocol used by the pursuit agent.
    """

    def __init__(self, rooms: Sequence[Room], hide_spots: Sequence[HideSpot] = ()):
        """
        Initialize layout.

        Args:
            rooms: Rooms of the map (ids must be unique)
            hide_spots: Hide spots; each must reference an existing room
        """
        self.rooms: Dict[str, Room] = {}
        for room in rooms:
            if room.room_id in self.rooms:
                raise ValueError(f"Duplicate room id: {room.room_id}")
            self.rooms[room.room_id] = room

        self.hide_spots: List[HideSpot] = []
        self._spots_by_room: Dict[str, List[HideSpot]] = {room_id: [] for room_id in self.rooms}
        for spot in hide_spots:
            if spot.room_id not in self.rooms:
                raise ValueError(f"Hide spot {spot.spot_id} references unknown room {spot.room_id}")
            self.hide_spots.append(spot)
            self._spots_by_room[spot.room_id].append(spot)

        self.adjacency: Dict[str, List[str]] = self._build_adjacency()

    def _build_adjacency(self) -> Dict[str, List[str]]:
        adjacency: Dict[str, List[str]] = {room_id: [] for room_id in self.rooms}
        rooms = list(self.rooms.values())
        for i, a in enumerate(rooms):
            for b in rooms[i + 1:]:
                if _share_wall(a, b):
                    adjacency[a.room_id].append(b.room_id)
                    adjacency[b.room_id].append(a.room_id)
        return adjacency

    # Registry protocol

    def get_room(self, room_id: Optional[str]) -> Optional[Room]:
        if room_id is None:
            return None
        return self.rooms.get(room_id)

    def get_all_rooms(self) -> List[Room]:
        return list(self.rooms.values())

    def get_room_at(self, point: Vec2) -> Optional[Room]:
        for room in self.rooms.values():
            if room.contains(point):
                return room
        return None

    def get_hide_spots_in_room(self, room_id: Optional[str]) -> List[HideSpot]:
        if room_id is None:
            return []
        return list(self._spots_by_room.get(room_id, []))

    def get_all_hide_spots(self) -> List[HideSpot]:
        return list(self.hide_spots)

    # Layout queries

    def neighbors(self, room_id: str) -> List[str]:
        return list(self.adjacency.get(room_id, []))

    def edges(self) -> List[Tuple[str, str]]:
        """Each connection once, as (a, b) with a < b."""
        return sorted({tuple(sorted((a, b))) for a, ns in self.adjacency.items() for b in ns})

    def are_connected(self, room_a: Optional[str], room_b: Optional[str]) -> bool:
        if room_a is None or room_b is None:
            return False
        return room_a == room_b or room_b in self.adjacency.get(room_a, [])

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        rooms = list(self.rooms.values())
        return (min(r.min_x for r in rooms), min(r.min_y for r in rooms),
                max(r.max_x for r in rooms), max(r.max_y for r in rooms))

    def release_hide_spots(self):
        """Empty every hide spot (episode start)."""
        for spot in self.hide_spots:
            spot.exit()


def _share_wall(a: Room, b: Room, eps: float = 1e-6) -> bool:
    """Rooms touch along a wall segment of positive length."""
    touch_x = abs(a.max_x - b.min_x) < eps or abs(b.max_x - a.min_x) < eps
    touch_y = abs(a.max_y - b.min_y) < eps or abs(b.max_y - a.min_y) < eps
    overlap_x = min(a.max_x, b.max_x) - max(a.min_x, b.min_x) > eps
    overlap_y = min(a.max_y, b.max_y) - max(a.min_y, b.min_y) > eps
    return (touch_x and overlap_y) or (touch_y and overlap_x)


def create_grid_layout(
    columns: int = 3,
    rows: int = 3,
    room_size: float = 10.0,
    junctions: Sequence[Tuple[int, int]] = ((1, 1),),
    spots_per_room: int = 2
) -> RoomLayout:
    """
    Create a grid of square rooms.

    Rooms are named "room_<col>_<row>"; cells listed in junctions become
    junctions without hide spots.

    Args:
        columns: Number of room columns
        rows: Number of room rows
        room_size: Side length of each room in metres
        junctions: (col, row) cells that are junctions
        spots_per_room: Hide spots per non-junction room (placed near corners)

    Returns:
        RoomLayout
    """
    junction_cells = set(junctions)
    corner_offsets = [(-0.3, -0.3), (0.3, 0.3), (0.3, -0.3), (-0.3, 0.3)]

    rooms = []
    spots = []
    for col in range(columns):
        for row in range(rows):
            room = Room(
                room_id=f"room_{col}_{row}",
                min_x=col * room_size,
                min_y=row * room_size,
                max_x=(col + 1) * room_size,
                max_y=(row + 1) * room_size,
                is_junction=(col, row) in junction_cells,
            )
            rooms.append(room)
            if room.is_junction:
                continue

            cx, cy = room.center
            for i in range(min(spots_per_room, len(corner_offsets))):
                ox, oy = corner_offsets[i]
                spots.append(HideSpot(
                    spot_id=f"{room.room_id}_spot{i}",
                    room_id=room.room_id,
                    position=(cx + ox * room_size, cy + oy * room_size),
                ))

    return RoomLayout(rooms, spots)
