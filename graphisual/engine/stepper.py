"""
stepper.py — Step-Through Controller
=====================================
The controller is the ONLY object the UI talks to during a run.
It owns the algorithm's step sequence, buffers every step it has
pulled (so the user can rewind), and exposes next / prev / jump /
play / pause on top of that buffer.

The sequence is forward-only: a generator cannot be rewound, so
backward navigation and replay always read from the buffer.  The
algorithm is never re-run to get an earlier step back.

State machine:
    IDLE      →  start()   →  STEPPING
    STEPPING  →  play()    →  PLAYING
    PLAYING   →  pause()   →  STEPPING
    PLAYING   →  (sequence exhausted)  →  STEPPING
    any       →  start()   →  STEPPING   (prior run discarded)
    any       →  reset()   →  IDLE

`is_complete` is a flag, not a state: it flips once the sequence
reports exhaustion and stays set until the next start() / reset().

Callbacks:
    on_step(step, index) – fired whenever start(), next() or a playback
                           tick changes the displayed step.  prev() and
                           the jump_* calls do NOT fire it; callers
                           render from the return value / current_step.
    on_complete()        – fired each time an advance finds nothing left,
                           and once at the end of every jump_to_end().

Thread safety:
  This class is NOT thread-safe.  Every call, and every playback tick,
  must happen on the thread running the event loop the scheduler uses.
  The web app funnels requests through PlaybackLoop for exactly that.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, List, Optional, Tuple

from graphisual.config import DEFAULT_SPEED_MS, SPEED_PRESETS, clamp_speed
from graphisual.engine.scheduler import PlaybackScheduler


logger = logging.getLogger(__name__)

# returned by _pull() when the sequence has nothing left
_EXHAUSTED = object()


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------
class StepMode(Enum):
    IDLE     = "idle"
    STEPPING = "stepping"
    PLAYING  = "playing"


@dataclass(frozen=True)
class StepThroughState:
    """Read-only snapshot of the controller for the UI."""

    steps:         Tuple[Any, ...]
    current_index: int
    is_complete:   bool
    mode:          StepMode
    total_steps:   int


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------
class StepThroughController:
    """
    Attributes:
        on_step     : Optional callback(step, index); the renderer hooks its re-draw here.
        on_complete : Optional callback() fired when the sequence is known to be exhausted.
    """

    def __init__(
        self,
        speed_ms: int = DEFAULT_SPEED_MS,
        on_step: Optional[Callable[[Any, int], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._sequence:      Optional[Iterator[Any]] = None
        self._history:       List[Any]               = []
        self._current_index: int                     = -1
        self._is_complete:   bool                    = False
        self._mode:          StepMode                = StepMode.IDLE
        self._speed_ms:      int                     = clamp_speed(speed_ms)
        self._scheduler:     PlaybackScheduler       = PlaybackScheduler(loop)

        self.on_step:     Optional[Callable[[Any, int], None]] = on_step
        self.on_complete: Optional[Callable[[], None]]         = on_complete

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self, sequence: Iterable[Any]) -> Optional[Any]:
        """Attach a fresh step sequence and show its first step."""
        iterator = iter(sequence)

        self._scheduler.cancel()
        self._sequence      = iterator
        self._history       = []
        self._current_index = -1
        self._is_complete   = False
        self._mode          = StepMode.STEPPING
        logger.debug("step-through started")

        step = self._pull()
        if step is _EXHAUSTED:
            return None
        self._current_index = 0
        self._notify_step(step, 0)
        return step

    def reset(self) -> None:
        """Back to IDLE.  The old sequence is dropped and never pulled again."""
        self._scheduler.cancel()
        self._sequence      = None
        self._history       = []
        self._current_index = -1
        self._is_complete   = False
        self._mode          = StepMode.IDLE
        logger.debug("step-through reset")

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------
    def next(self) -> Optional[Any]:
        """Advance one step, replaying from history before pulling."""
        if self._mode is StepMode.IDLE:
            return None
        step = self._advance()
        if step is _EXHAUSTED:
            self._notify_complete()
            return None
        return step

    def prev(self) -> Optional[Any]:
        """Rewind one step.  Returns None (and stays put) at the first step."""
        if self._current_index <= 0:
            return None
        self._current_index -= 1
        return self._history[self._current_index]

    def jump_to(self, index: int) -> None:
        """Move to `index`, pulling forward if it is beyond what we have seen."""
        index = max(0, index)
        while index >= len(self._history):
            if self._pull() is _EXHAUSTED:
                break
        self._current_index = min(index, len(self._history) - 1)

    def jump_to_start(self) -> None:
        if self._history:
            self._current_index = 0

    def jump_to_end(self) -> None:
        """Exhaust the sequence and jump to its final step."""
        if self._mode is StepMode.IDLE:
            return
        while self._pull() is not _EXHAUSTED:
            pass
        if self._history:
            self._current_index = len(self._history) - 1
        self._notify_complete()

    def get_step(self, index: int) -> Optional[Any]:
        """Look up a step already pulled.  Never pulls, never moves the cursor."""
        if 0 <= index < len(self._history):
            return self._history[index]
        return None

    # ------------------------------------------------------------------
    # Play / Pause
    # ------------------------------------------------------------------
    def play(self) -> None:
        if self._scheduler.active or self._mode is StepMode.IDLE:
            return
        self._scheduler.start(self._speed_ms, self._tick)
        self._mode = StepMode.PLAYING
        logger.debug("playback started at %d ms/step", self._speed_ms)

    def pause(self) -> None:
        if self._mode is not StepMode.PLAYING:
            return
        self._stop_playback()
        logger.debug("playback paused at step %d", self._current_index)

    def toggle_play(self) -> None:
        if self._mode is StepMode.PLAYING:
            self.pause()
        else:
            self.play()

    # ------------------------------------------------------------------
    # Speed
    # ------------------------------------------------------------------
    def set_speed(self, speed_ms: int) -> None:
        """Change the playback interval.  A running timer is re-armed, not doubled."""
        self._speed_ms = clamp_speed(speed_ms)
        if self._mode is StepMode.PLAYING:
            self._scheduler.restart(self._speed_ms)

    def set_speed_preset(self, preset: str) -> None:
        self.set_speed(SPEED_PRESETS.get(preset, DEFAULT_SPEED_MS))

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------
    @property
    def mode(self) -> StepMode:
        return self._mode

    @property
    def history(self) -> Tuple[Any, ...]:
        return tuple(self._history)

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_step(self) -> Optional[Any]:
        return self.get_step(self._current_index)

    @property
    def total_steps(self) -> int:
        return len(self._history)

    @property
    def is_complete(self) -> bool:
        return self._is_complete

    @property
    def is_playing(self) -> bool:
        return self._mode is StepMode.PLAYING

    @property
    def speed_ms(self) -> int:
        return self._speed_ms

    @property
    def state(self) -> StepThroughState:
        return StepThroughState(
            steps=tuple(self._history),
            current_index=self._current_index,
            is_complete=self._is_complete,
            mode=self._mode,
            total_steps=len(self._history),
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------
    def _pull(self) -> Any:
        """Pull one step into history, or return _EXHAUSTED.

        Anything the sequence raises (other than StopIteration) propagates
        and nothing is appended.
        """
        if self._sequence is None or self._is_complete:
            return _EXHAUSTED
        try:
            step = next(self._sequence)
        except StopIteration:
            self._is_complete = True
            self._sequence    = None
            logger.debug("step sequence exhausted after %d step(s)", len(self._history))
            return _EXHAUSTED
        self._history.append(step)
        return step

    def _advance(self) -> Any:
        """Shared by next() and playback ticks."""
        if self._current_index < len(self._history) - 1:
            self._current_index += 1
            step = self._history[self._current_index]
            self._notify_step(step, self._current_index)
            return step

        step = self._pull()
        if step is _EXHAUSTED:
            return _EXHAUSTED
        self._current_index = len(self._history) - 1
        self._notify_step(step, self._current_index)
        return step

    def _tick(self) -> None:
        try:
            step = self._advance()
        except Exception:
            self._stop_playback()
            raise
        if step is _EXHAUSTED:
            self._stop_playback()
            logger.debug("playback finished at step %d", self._current_index)
            self._notify_complete()

    def _stop_playback(self) -> None:
        self._scheduler.cancel()
        if self._mode is StepMode.PLAYING:
            self._mode = StepMode.STEPPING

    def _notify_step(self, step: Any, index: int) -> None:
        if self.on_step:
            self.on_step(step, index)

    def _notify_complete(self) -> None:
        if self.on_complete:
            self.on_complete()
