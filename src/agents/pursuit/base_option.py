"""
Shared life-cycle of all pursuit options.

Option-Based Pursuit Agent

Life-cycle: not started -> running -> (succeeded | failed), ended by an
explicit stop(). Options are cooperative: step() is re-entered once per
frame and any waiting is expressed as a stored phase plus a timestamp,
never as a blocking call.

Interrupt rules, highest priority first:
- SEE_PLAYER interrupts every option at any time
- nothing else interrupts inside the min-commit window
- HEAT_UPDATE never interrupts
- HEAR_NOISE interrupts only options that declare hear_interruptible
"""

from enum import Enum
from typing import Optional
import logging

import numpy as np

from .config import OptionConfig
from .context import AgentContext, Vec2, distance
from .option_types import (
    OptionType, OptionStatus, InterruptKind, OptionLimits, get_option_limits
)


logger = logging.getLogger(__name__)


class OptionPhase(Enum):
    """Resumable phase of an option's internal plan."""
    TRAVELING = 0
    SCANNING = 1
    DONE = 2


class BaseOption:
    """
    Template for option variants.

    Subclasses set option_type and implement on_start / on_step, and may
    override on_stop and allows_interrupt.
    """

    option_type: OptionType = OptionType.PATROL
    hear_interruptible: bool = False

    def __init__(
        self,
        config: Optional[OptionConfig] = None,
        selector=None,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Initialize option.

        Args:
            config: Per-option settings
            selector: TargetSelector used by variants that rank targets
            rng: Random generator for randomized waits
        """
        self.config = config or OptionConfig()
        self.selector = selector
        self.rng = rng or np.random.default_rng()
        self.limits = self._build_limits()

        self.start_time = 0.0
        self.is_running = False
        self.has_started = False
        self.phase = OptionPhase.DONE
        self.phase_start_time = 0.0
        self.failure_reason: Optional[str] = None
        self._clock = 0.0

    def _build_limits(self) -> OptionLimits:
        # Per-option config overrides the default table
        defaults = get_option_limits(self.option_type)
        max_duration = getattr(self.config, f'{self.option_type.name.lower()}_max_duration',
                               defaults.max_duration)
        return OptionLimits(max_duration=max_duration,
                            min_commit_time=self.config.default_min_commit_time)

    @property
    def name(self) -> str:
        return self.option_type.name

    @property
    def max_duration(self) -> float:
        return self.limits.max_duration

    @property
    def min_commit_time(self) -> float:
        return self.limits.min_commit_time

    def elapsed(self, now: Optional[float] = None) -> float:
        """Seconds since initialize(); 0 when not running."""
        if not self.is_running:
            return 0.0
        if now is None:
            now = self._clock
        return now - self.start_time

    # ------------------------------------------------------------------
    # Life-cycle
    # ------------------------------------------------------------------

    def initialize(self, ctx: AgentContext):
        """Record start time, mark running and run variant setup."""
        self.start_time = ctx.time
        self._clock = ctx.time
        self.is_running = True
        self.has_started = True
        self.phase = OptionPhase.TRAVELING
        self.phase_start_time = ctx.time
        self.failure_reason = None

        if ctx.mover is None:
            logger.warning(f"{self.name}: no mover collaborator")
            self.fail_setup("no mover")
            return

        self.on_start(ctx)
        logger.debug(f"{self.name} started at t={ctx.time:.2f}")

    def step(self, ctx: AgentContext, dt: float) -> OptionStatus:
        """
        Advance the option by one frame.

        Returns:
            RUNNING, SUCCEEDED or FAILED
        """
        self._clock = ctx.time
        if not self.is_running:
            return OptionStatus.FAILED

        elapsed = self.elapsed(ctx.time)
        if self.limits.is_timeout(elapsed):
            logger.warning(f"{self.name} timed out after {elapsed:.1f}s")
            return OptionStatus.FAILED

        if self.failure_reason is not None:
            return OptionStatus.FAILED

        status = self.on_step(ctx, dt)
        if status.is_terminal:
            self.phase = OptionPhase.DONE
        return status

    def stop(self, ctx: AgentContext):
        """Idempotent cleanup; safe before initialize()."""
        if not self.is_running:
            return
        self._clock = ctx.time
        logger.debug(f"{self.name} stopped (elapsed={self.elapsed(ctx.time):.1f}s)")
        self.is_running = False
        self.phase = OptionPhase.DONE
        self.on_stop(ctx)

    def can_be_interrupted_by(self, kind: InterruptKind, now: Optional[float] = None) -> bool:
        """
        Whether an interrupt of the given kind may preempt this option.

        Args:
            kind: Interrupt kind
            now: Current time (defaults to the last time the option saw)
        """
        if kind == InterruptKind.SEE_PLAYER:
            return True
        if self.limits.is_committed(self.elapsed(now)):
            return False
        return self.allows_interrupt(kind)

    # ------------------------------------------------------------------
    # Variant hooks
    # ------------------------------------------------------------------

    def allows_interrupt(self, kind: InterruptKind) -> bool:
        """Interrupt rule outside the commit window, below SEE_PLAYER."""
        if kind == InterruptKind.HEAR_NOISE:
            return self.hear_interruptible
        return False

    def on_start(self, ctx: AgentContext):
        raise NotImplementedError

    def on_step(self, ctx: AgentContext, dt: float) -> OptionStatus:
        raise NotImplementedError

    def on_stop(self, ctx: AgentContext):
        if ctx.mover is not None:
            ctx.mover.stop()

    def describe_target(self) -> str:
        return "None"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def fail_setup(self, reason: str):
        """Mark setup as failed; the next step() returns FAILED."""
        self.failure_reason = reason
        logger.debug(f"{self.name} setup failed: {reason}")

    def move_to(self, ctx: AgentContext, point: Vec2):
        ctx.mover.set_destination(point)

    def is_at(self, ctx: AgentContext, point: Vec2, threshold: float) -> bool:
        return distance(ctx.position, point) < threshold

    def begin_scan(self, ctx: AgentContext):
        """Halt and enter the scanning phase."""
        self.phase = OptionPhase.SCANNING
        self.phase_start_time = ctx.time
        ctx.mover.stop()

    def begin_travel(self, ctx: AgentContext, point: Vec2):
        self.phase = OptionPhase.TRAVELING
        self.phase_start_time = ctx.time
        self.move_to(ctx, point)

    def phase_elapsed(self, ctx: AgentContext) -> float:
        return ctx.time - self.phase_start_time
