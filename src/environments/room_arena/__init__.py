"""
Room arena: a small reference world for the pursuit agent.

Provides rooms and hide spots, a transition heat graph, a kinematic
mover, a belief model and a scripted evading target, all behind the
collaborator protocols of src.agents.pursuit.context.
"""

from .layout import RoomLayout, create_grid_layout
from .heat_graph import TransitionHeatGraph
from .arena import KinematicMover, BeliefModel, ScriptedEvader, RoomArena

__all__ = [
    'RoomLayout',
    'create_grid_layout',
    'TransitionHeatGraph',
    'KinematicMover',
    'BeliefModel',
    'ScriptedEvader',
    'RoomArena',
]
