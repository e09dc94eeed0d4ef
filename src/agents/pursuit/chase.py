"""
Hard-pursuit routine.

Option-Based Pursuit Agent

While direct visual contact holds, the orchestrator hands locomotion to
this routine instead of the learned policy. It replans toward the target
at a fixed interval, falls back to the last known position when sight is
broken and reports capture or loss.
"""

from enum import Enum
from typing import Callable, List, Optional
import logging

from .config import ChaseConfig
from .context import AgentContext, Vec2, distance


logger = logging.getLogger(__name__)


class ChaseStatus(Enum):
    """Result of one chase update."""
    INACTIVE = 0
    CHASING = 1
    LOSING_TARGET = 2
    CAPTURED = 3
    LOST = 4

    @property
    def is_terminal(self) -> bool:
        return self in (ChaseStatus.CAPTURED, ChaseStatus.LOST)


CaptureCallback = Callable[[float, Vec2], None]


class ChaseRoutine:
    """
    Direct pursuit of a visible target.

    Usage:
        chase = ChaseRoutine(ChaseConfig())
        chase.on_captured.append(lambda t, pos: print(t, pos))
        chase.start(ctx)
        while not chase.update(ctx).is_terminal:
            ...
    """

    def __init__(self, config: Optional[ChaseConfig] = None):
        """
        Initialize chase routine.

        Args:
            config: Replan interval, loss timeout and capture settings
        """
        self.config = config or ChaseConfig()
        self.on_captured: List[CaptureCallback] = []

        self.is_chasing = False
        self.chase_start_time = 0.0
        self._next_replan_time = 0.0
        self._lost_time: Optional[float] = None
        self._last_known_position: Optional[Vec2] = None

        # Statistics
        self.captures = 0
        self.losses = 0
        self.last_status = ChaseStatus.INACTIVE

    def start(self, ctx: AgentContext):
        """Begin chasing; no-op if already chasing."""
        if self.is_chasing:
            return

        self.is_chasing = True
        self.chase_start_time = ctx.time
        self._next_replan_time = ctx.time
        self._lost_time = None
        self._last_known_position = ctx.player_position()
        self.last_status = ChaseStatus.CHASING

        logger.debug(f"Chase started at t={ctx.time:.2f}")
        self._replan(ctx)

    def update(self, ctx: AgentContext) -> ChaseStatus:
        """
        Advance the chase by one frame.

        Returns:
            CHASING while visible, LOSING_TARGET while heading to the last
            known position, CAPTURED or LOST when the chase ends
        """
        if not self.is_chasing:
            self.last_status = ChaseStatus.INACTIVE
            return self.last_status

        if ctx.can_see_player():
            self._last_known_position = ctx.player_position() or self._last_known_position
            self._lost_time = None

            if self._check_capture(ctx):
                self._on_capture(ctx)
                self.last_status = ChaseStatus.CAPTURED
                return self.last_status

            if ctx.time >= self._next_replan_time:
                self._replan(ctx)
                self._next_replan_time = ctx.time + self.config.replan_interval

            self.last_status = ChaseStatus.CHASING
            return self.last_status

        if ctx.mover is None:
            logger.warning("Sight broken with no mover to follow up, chase lost")
            self._on_lost(ctx)
            self.last_status = ChaseStatus.LOST
            return self.last_status

        if self._lost_time is None:
            self._lost_time = ctx.time
            if self.config.continue_to_last_seen and self._last_known_position is not None:
                ctx.mover.set_destination(self._last_known_position)
                logger.debug("Sight broken, continuing to last known position")

        if ctx.time - self._lost_time > self.config.lost_target_timeout:
            self._on_lost(ctx)
            self.last_status = ChaseStatus.LOST
            return self.last_status

        if self.config.continue_to_last_seen and ctx.mover.reached_destination:
            self._on_lost(ctx)
            self.last_status = ChaseStatus.LOST
            return self.last_status

        self.last_status = ChaseStatus.LOSING_TARGET
        return self.last_status

    def stop(self, ctx: AgentContext):
        """Abort the chase and halt; safe to call when inactive."""
        if not self.is_chasing:
            return
        self.is_chasing = False
        if ctx.mover is not None:
            ctx.mover.stop()
        logger.debug("Chase stopped")

    def _replan(self, ctx: AgentContext):
        if not ctx.can_see_player():
            return
        target = ctx.player_position()
        if target is not None and ctx.mover is not None:
            ctx.mover.set_destination(target)

    def _check_capture(self, ctx: AgentContext) -> bool:
        target = ctx.player_position()
        if target is None:
            return False
        if distance(ctx.position, target) > self.config.capture_radius:
            return False
        if self.config.require_line_of_sight:
            return ctx.has_line_of_sight(ctx.position, target)
        return True

    def _on_capture(self, ctx: AgentContext):
        capture_time = ctx.time - self.chase_start_time
        capture_position = ctx.player_position()
        self.is_chasing = False
        self.captures += 1

        logger.debug(f"Target captured after {capture_time:.2f}s at {capture_position}")
        for callback in self.on_captured:
            callback(capture_time, capture_position)

    def _on_lost(self, ctx: AgentContext):
        self.is_chasing = False
        self.losses += 1
        logger.debug(f"Chase lost after {ctx.time - self.chase_start_time:.2f}s")

        if ctx.sensing is not None and ctx.sensing.last_seen_room:
            ctx.mark_room_searched(ctx.sensing.last_seen_room)
