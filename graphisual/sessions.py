"""
sessions.py — Per-Browser Playback Sessions
============================================
Each browser session gets its own StepThroughController plus a
``Display``: the consumer side of the controller's callbacks.  on_step
writes the step being shown into the display, and on_complete bumps a
counter, so a client polling /api/state during playback sees what a
renderer would have drawn.

Everything that touches a session runs on the PlaybackLoop thread.
The store's dicts are the only thing request threads touch directly,
hence its lock.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from graphisual.config import clamp_speed
from graphisual.engine import PlaybackLoop, StepMode, StepThroughController


logger = logging.getLogger(__name__)


def step_to_json(step: Any) -> Any:
    if step is None:
        return None
    if hasattr(step, "to_dict"):
        return step.to_dict()
    return step


@dataclass
class Display:
    step:        Any = None
    index:       int = -1
    applied:     int = 0    # on_step deliveries
    completions: int = 0    # on_complete deliveries

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step":        step_to_json(self.step),
            "index":       self.index,
            "applied":     self.applied,
            "completions": self.completions,
        }


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------
class PlaybackSession:
    def __init__(self, session_id: str, speed_ms: int, loop: PlaybackLoop):
        self.id         = session_id
        self.display    = Display()
        self.controller = StepThroughController(
            speed_ms=speed_ms,
            on_step=self._apply_step,
            on_complete=self._mark_complete,
            loop=loop.loop,
        )

    def perform(
        self,
        action: Callable[[StepThroughController], Any],
        redraw: bool = False,
    ) -> Dict[str, Any]:
        """Run one controller operation and describe the result.

        `redraw` is for operations that move the cursor without firing
        on_step (prev and the jumps): the consumer re-renders from the
        controller's current step itself.
        """
        step = action(self.controller)
        if redraw:
            self._show_current()
        return {"step": step_to_json(step), "state": self.snapshot()}

    def snapshot(self) -> Dict[str, Any]:
        state = self.controller.state
        return {
            "mode":          state.mode.value,
            "current_index": state.current_index,
            "is_complete":   state.is_complete,
            "total_steps":   state.total_steps,
            "speed_ms":      self.controller.speed_ms,
            "current_step":  step_to_json(self.controller.current_step),
            "display":       self.display.to_dict(),
        }

    def clear_display(self) -> None:
        self.display = Display()

    # -- controller callbacks --
    def _apply_step(self, step: Any, index: int) -> None:
        self.display.step     = step
        self.display.index    = index
        self.display.applied += 1

    def _mark_complete(self) -> None:
        self.display.completions += 1

    def _show_current(self) -> None:
        self.display.step  = self.controller.current_step
        self.display.index = self.controller.current_index


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------
class SessionStore:
    """Owns the playback loop and every live session.

    Sessions untouched for `idle_ttl` seconds are dropped, and when the
    store is full the least recently used one makes room.  A dropped
    session is reset on the loop thread first, so its timer stops.
    """

    def __init__(
        self,
        loop: Optional[PlaybackLoop] = None,
        max_sessions: int = 256,
        idle_ttl: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.loop:         PlaybackLoop                = loop or PlaybackLoop()
        self.max_sessions: int                         = max(1, max_sessions)
        self.idle_ttl:     float                       = idle_ttl
        self._clock:       Callable[[], float]         = clock
        self._sessions:    Dict[str, PlaybackSession] = {}
        self._last_used:   Dict[str, float]           = {}
        self._lock:        threading.Lock              = threading.Lock()

    def get(self, session_id: str) -> Optional[PlaybackSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._last_used[session_id] = self._clock()
            return session

    def get_or_create(self, session_id: str, speed_ms: int) -> PlaybackSession:
        evicted: List[PlaybackSession] = []
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                evicted = self._evict()
                if not self.loop.running:
                    self.loop.start()
                session = PlaybackSession(session_id, speed_ms, self.loop)
                self._sessions[session_id] = session
                logger.info("created playback session %s", session_id[:8])
            self._last_used[session_id] = self._clock()
        self._retire(evicted)
        return session

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def close(self) -> None:
        """Cancel every session's playback and stop the loop."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._last_used.clear()
        self._retire(sessions)
        self.loop.stop()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------
    def _evict(self) -> List[PlaybackSession]:
        """Unlink stale sessions, then LRU ones until one slot is free.  Caller holds the lock."""
        now = self._clock()
        doomed = [sid for sid, used in self._last_used.items() if now - used > self.idle_ttl]

        survivors = sorted(
            (sid for sid in self._sessions if sid not in doomed),
            key=lambda sid: self._last_used[sid],
        )
        overflow = len(survivors) - (self.max_sessions - 1)
        if overflow > 0:
            doomed.extend(survivors[:overflow])

        evicted = []
        for sid in doomed:
            evicted.append(self._sessions.pop(sid))
            del self._last_used[sid]
        if evicted:
            logger.info("evicted %d playback session(s)", len(evicted))
        return evicted

    def _retire(self, sessions: List[PlaybackSession]) -> None:
        if not self.loop.running:
            return
        for session in sessions:
            self.loop.call(session.controller.reset)


def idle_snapshot(speed_ms: int) -> Dict[str, Any]:
    """What /api/state reports for a browser that has no session yet."""
    return {
        "mode":          StepMode.IDLE.value,
        "current_index": -1,
        "is_complete":   False,
        "total_steps":   0,
        "speed_ms":      clamp_speed(speed_ms),
        "current_step":  None,
        "display":       Display().to_dict(),
    }
