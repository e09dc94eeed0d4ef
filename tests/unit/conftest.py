"""
Shared fixtures for pursuit component tests.

The collaborators are the room arena's own implementations wired around a
3x3 grid of 10 m rooms (room_<col>_<row>, room_1_1 is a junction). The
agent starts at (5, 5) in room_0_0, whose hide spots sit at (2, 2) and
(8, 8). The clock starts at t=100 so that nothing counts as recent.
"""

import pytest

from src.agents.pursuit import AgentContext
from src.environments.room_arena import (
    BeliefModel,
    KinematicMover,
    TransitionHeatGraph,
    create_grid_layout,
)


@pytest.fixture
def layout():
    """3x3 grid layout with a central junction."""
    return create_grid_layout()


@pytest.fixture
def heat(layout):
    """Heat graph with every doorway of the layout registered."""
    graph = TransitionHeatGraph(registry=layout)
    for room_a, room_b in layout.edges():
        graph.register_edge(room_a, room_b)
    return graph


@pytest.fixture
def sensing(heat, layout):
    """Belief model with no observations."""
    return BeliefModel(heat, layout)


@pytest.fixture
def mover():
    """Mover standing in the middle of room_0_0."""
    return KinematicMover((5.0, 5.0))


@pytest.fixture
def ctx(mover, sensing, heat, layout):
    """Fully wired agent context at t=100."""
    return AgentContext(mover=mover, sensing=sensing, heat=heat, registry=layout, time=100.0)
