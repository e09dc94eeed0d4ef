"""
Environment implementations for the pursuit agent.

This module contains the room arena, a small reference world used to
train and test the option-based pursuit agent without a game engine.
"""

from .room_arena.arena import RoomArena

__all__ = ['RoomArena']
