"""Shared fixtures: a manual-clock event loop and callback recorders."""

import pytest

from graphisual.algorithms import AlgorithmStep, EdgeRef, StepType
from graphisual.engine import StepThroughController


class FakeTimerHandle:
    def __init__(self, when, callback, args):
        self.when      = when
        self.callback  = callback
        self.args      = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    """Just enough of asyncio's loop for the scheduler, driven by advance()."""

    def __init__(self):
        self.now     = 0.0
        self._timers = []

    def call_later(self, delay, callback, *args):
        handle = FakeTimerHandle(self.now + delay, callback, args)
        self._timers.append(handle)
        return handle

    def pending(self):
        return [h for h in self._timers if not h.cancelled]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [h for h in self.pending() if h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self._timers.remove(handle)
            self.now = handle.when
            handle.callback(*handle.args)
        self.now = target


class CallbackLog:
    def __init__(self):
        self.steps     = []
        self.completes = 0

    def on_step(self, step, index):
        self.steps.append((step, index))

    def on_complete(self):
        self.completes += 1


def make_steps(count):
    return [
        AlgorithmStep(StepType.VISIT, EdgeRef(source=i - 1 if i else -1, target=i))
        for i in range(count)
    ]


class CountingSequence:
    """Iterator over `steps` that records how many times it was pulled."""

    def __init__(self, steps, fail_at=None):
        self._steps   = list(steps)
        self._fail_at = fail_at
        self.pulls    = 0
        self.position = 0

    def __iter__(self):
        return self

    def __next__(self):
        self.pulls += 1
        if self._fail_at is not None and self.position == self._fail_at:
            raise RuntimeError(f"algorithm failed at step {self.position}")
        if self.position >= len(self._steps):
            raise StopIteration
        step = self._steps[self.position]
        self.position += 1
        return step


@pytest.fixture
def fake_loop():
    return FakeLoop()


@pytest.fixture
def log():
    return CallbackLog()


@pytest.fixture
def controller(fake_loop, log):
    return StepThroughController(
        speed_ms=100,
        on_step=log.on_step,
        on_complete=log.on_complete,
        loop=fake_loop,
    )
