"""
scheduler.py — Playback Timer
==============================
A fixed-interval repeating timer on an asyncio event loop.  The
step-through controller owns exactly one of these and arms it on play().

Guarantees:
  - At most one armed timer.  start() while active is a no-op.
  - cancel() is synchronous and final.  Each arming is tagged with a
    generation number; a callback whose generation is stale returns
    without ticking, so even a callback the loop had already queued
    cannot fire after cancel().
  - If the tick raises, the timer is cancelled before the exception
    escapes to the loop's exception handler.

Drift is not corrected: the next tick is armed after the current one
finishes (simple re-arm, like setInterval).
"""

import asyncio
import logging
from typing import Callable, Optional


logger = logging.getLogger(__name__)


class PlaybackScheduler:
    """
    Attributes:
        interval_ms : Delay between ticks of the current (or last) run.
        ticks       : Number of ticks delivered since the last start().
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop:       Optional[asyncio.AbstractEventLoop] = loop
        self._handle:     Optional[asyncio.TimerHandle]       = None
        self._callback:   Optional[Callable[[], None]]        = None
        self._generation: int                                 = 0
        self._active:     bool                                = False
        self.interval_ms: int                                 = 0
        self.ticks:       int                                 = 0

    @property
    def active(self) -> bool:
        return self._active

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------
    def start(self, interval_ms: int, callback: Callable[[], None]) -> bool:
        """Arm the timer.  Returns False (and does nothing) if already armed."""
        if self._active:
            return False
        if self._loop is None:
            # must be called from inside the loop that will run the ticks
            self._loop = asyncio.get_running_loop()

        self._generation += 1
        self._active      = True
        self._callback    = callback
        self.interval_ms  = interval_ms
        self.ticks        = 0
        self._arm(self._generation)
        logger.debug("scheduler armed every %d ms (generation %d)", interval_ms, self._generation)
        return True

    def cancel(self) -> None:
        """Disarm.  Safe to call when idle and from inside a tick."""
        if not self._active:
            return
        self._generation += 1
        self._active      = False
        self._callback    = None
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        logger.debug("scheduler cancelled after %d tick(s)", self.ticks)

    def restart(self, interval_ms: int) -> None:
        """Re-arm the running timer at a new interval (no immediate tick)."""
        if not self._active:
            self.interval_ms = interval_ms
            return
        callback = self._callback
        self.cancel()
        self.start(interval_ms, callback)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------
    def _arm(self, generation: int) -> None:
        self._handle = self._loop.call_later(
            self.interval_ms / 1000.0, self._fire, generation
        )

    def _fire(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._handle = None
        self.ticks  += 1
        try:
            self._callback()
        except Exception:
            self.cancel()
            raise
        # the tick may have cancelled (or cancelled and restarted) us
        if generation == self._generation:
            self._arm(generation)
