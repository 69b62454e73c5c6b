"""
loop.py — Playback Loop Thread
===============================
Flask serves each request on its own worker thread, but the step-through
controller is single-threaded and its playback timer lives on an asyncio
loop.  PlaybackLoop runs that loop on one daemon thread and makes it the
sole owner of every controller: requests hand it a callable and block
until the loop thread has run it.

    loop = PlaybackLoop()
    loop.start()
    step = loop.call(controller.next)
    loop.stop()
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Callable, Dict, Optional


logger = logging.getLogger(__name__)


class PlaybackLoop:
    def __init__(self, name: str = "graphisual-playback"):
        self._name:   str                                 = name
        self._loop:   Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread]          = None
        self._ready:  threading.Event                     = threading.Event()

    @property
    def loop(self) -> Optional[asyncio.AbstractEventLoop]:
        return self._loop

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self.running:
            return
        self._ready.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        self._ready.wait()
        logger.info("playback loop started on thread %s", self._name)

    def stop(self, timeout: float = 5.0) -> None:
        if not self.running:
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)
        self._thread = None
        logger.info("playback loop stopped")

    # ------------------------------------------------------------------
    # Cross-thread calls
    # ------------------------------------------------------------------
    def call(self, fn: Callable[..., Any], *args: Any, timeout: Optional[float] = None) -> Any:
        """Run fn(*args) on the loop thread and return its result here.

        Exceptions raised by fn are re-raised in the calling thread.  On
        timeout, concurrent.futures.TimeoutError is raised and fn is
        cancelled if the loop has not started it yet.
        """
        if not self.running:
            raise RuntimeError("PlaybackLoop is not running; call start() first.")
        if threading.current_thread() is self._thread:
            return fn(*args)

        future: concurrent.futures.Future = concurrent.futures.Future()

        def runner():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(fn(*args))
            except Exception as exc:
                future.set_exception(exc)

        self._loop.call_soon_threadsafe(runner)
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError:
            # still queued: make sure it never runs behind the caller's back
            future.cancel()
            raise

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------
    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        loop.set_exception_handler(_report_callback_error)
        self._loop = loop
        self._ready.set()
        try:
            loop.run_forever()
        finally:
            # pending playback timers are dropped with the loop
            loop.close()


def _report_callback_error(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
    # a playback tick raised; the controller has already stopped playing
    logger.error(
        "playback callback failed: %s",
        context.get("message", "unknown error"),
        exc_info=context.get("exception"),
    )
