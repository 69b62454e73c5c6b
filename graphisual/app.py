"""
app.py — Step-Through Playback API
===================================
JSON routes that drive one StepThroughController per browser session.
The browser uploads a recorded algorithm trace and then navigates it;
the canvas re-draws from the "step" / "state" fields of each response.

Routes:
  POST /api/run             – start a trace  {"steps": [...], "speed_ms"?}
  POST /api/step/next       – advance one step
  POST /api/step/prev       – rewind one step
  POST /api/step/goto       – jump to step N  {"index": N}
  POST /api/step/start      – jump to step 0
  POST /api/step/end        – run to the end
  POST /api/step/play       – start auto-play
  POST /api/step/pause      – pause auto-play
  POST /api/step/toggle     – play/pause
  POST /api/reset           – back to idle
  POST /api/config/speed    – {"speed_ms": N} or {"preset": "fast"}
  GET  /api/state           – current state (poll this while playing)
  GET  /api/step/<index>    – a step already seen

Sessions:
  The Flask session cookie only carries an opaque id; the controller
  itself lives in the SessionStore on the server, because a paused
  generator cannot be serialised into a cookie.  Only routes that change
  playback create a session; idle or stale ones are evicted (see
  MAX_SESSIONS and SESSION_IDLE_TTL).
"""

import concurrent.futures
import logging
import secrets
from typing import Any, Callable, Dict, Mapping, Optional

from flask import Blueprint, Flask, current_app, jsonify, request, session

from graphisual.algorithms import trace_sequence
from graphisual.config import SPEED_PRESETS, Config
from graphisual.engine import StepThroughController
from graphisual.errors import (
    GraphisualError,
    InvalidRequestError,
    PlaybackBusyError,
    StepNotFoundError,
)
from graphisual.sessions import PlaybackSession, SessionStore, idle_snapshot, step_to_json


logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------
def create_app(config: Optional[Mapping[str, Any]] = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    app.config.from_prefixed_env("GRAPHISUAL")
    if config:
        app.config.update(config)

    app.extensions["graphisual"] = SessionStore(
        max_sessions=app.config["MAX_SESSIONS"],
        idle_ttl=app.config["SESSION_IDLE_TTL"],
    )
    app.register_blueprint(api)
    app.register_error_handler(GraphisualError, _handle_error)
    return app


def _handle_error(error: GraphisualError):
    logger.warning("rejected %s %s: %s", request.method, request.path, error.message)
    return jsonify(error.to_dict()), error.status_code


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------
def _store() -> SessionStore:
    return current_app.extensions["graphisual"]


def _playback() -> PlaybackSession:
    """The calling browser's playback session, created on first use."""
    sid = session.get("sid")
    if sid is None:
        sid = session["sid"] = secrets.token_hex(16)
    return _store().get_or_create(sid, current_app.config["PLAYBACK_SPEED_MS"])


def _existing_playback() -> Optional[PlaybackSession]:
    """The calling browser's session, or None.  Read-only routes use this."""
    sid = session.get("sid")
    if sid is None:
        return None
    return _store().get(sid)


def _on_loop(fn: Callable[..., Any], *args: Any) -> Any:
    timeout = current_app.config["LOOP_CALL_TIMEOUT"]
    try:
        return _store().loop.call(fn, *args, timeout=timeout)
    except concurrent.futures.TimeoutError:
        raise PlaybackBusyError(f"Playback loop did not respond within {timeout} s") from None


def _perform(action: Callable[[StepThroughController], Any], redraw: bool = False):
    playback = _playback()
    return jsonify(_on_loop(playback.perform, action, redraw))


def _body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return data


def _int_field(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidRequestError(f"'{key}' must be an integer")
    return value


def _speed_field(data: Dict[str, Any]) -> int:
    speed_ms = _int_field(data, "speed_ms")
    if speed_ms <= 0:
        raise InvalidRequestError("'speed_ms' must be positive")
    return speed_ms


# ---------------------------------------------------------------------------
# API: Run
# ---------------------------------------------------------------------------
@api.route("/run", methods=["POST"])
def run():
    data  = _body()
    steps = data.get("steps")
    if not isinstance(steps, list):
        raise InvalidRequestError("'steps' must be a list of step objects")
    if len(steps) > current_app.config["MAX_TRACE_STEPS"]:
        raise InvalidRequestError(
            f"Trace has {len(steps)} steps; the limit is {current_app.config['MAX_TRACE_STEPS']}"
        )
    speed_ms = _speed_field(data) if "speed_ms" in data else None

    playback = _playback()

    def start(controller: StepThroughController):
        playback.clear_display()
        if speed_ms is not None:
            controller.set_speed(speed_ms)
        return controller.start(trace_sequence(steps))

    return jsonify(_on_loop(playback.perform, start))


# ---------------------------------------------------------------------------
# API: Step Navigation
# ---------------------------------------------------------------------------
@api.route("/step/next", methods=["POST"])
def step_next():
    return _perform(lambda c: c.next())


@api.route("/step/prev", methods=["POST"])
def step_prev():
    return _perform(lambda c: c.prev(), redraw=True)


@api.route("/step/goto", methods=["POST"])
def step_goto():
    index = _int_field(_body(), "index")
    return _perform(lambda c: c.jump_to(index), redraw=True)


@api.route("/step/start", methods=["POST"])
def step_start():
    return _perform(lambda c: c.jump_to_start(), redraw=True)


@api.route("/step/end", methods=["POST"])
def step_end():
    return _perform(lambda c: c.jump_to_end(), redraw=True)


@api.route("/step/<int:index>", methods=["GET"])
def step_get(index: int):
    playback = _existing_playback()
    step = _on_loop(playback.controller.get_step, index) if playback else None
    if step is None:
        raise StepNotFoundError(f"Step {index} has not been reached yet")
    return jsonify({"index": index, "step": step_to_json(step)})


# ---------------------------------------------------------------------------
# API: Play / Pause
# ---------------------------------------------------------------------------
@api.route("/step/play", methods=["POST"])
def step_play():
    return _perform(lambda c: c.play())


@api.route("/step/pause", methods=["POST"])
def step_pause():
    return _perform(lambda c: c.pause())


@api.route("/step/toggle", methods=["POST"])
def step_toggle():
    return _perform(lambda c: c.toggle_play())


@api.route("/reset", methods=["POST"])
def reset():
    playback = _playback()

    def clear(controller: StepThroughController):
        controller.reset()
        playback.clear_display()

    return jsonify(_on_loop(playback.perform, clear))


# ---------------------------------------------------------------------------
# API: Config / State
# ---------------------------------------------------------------------------
@api.route("/config/speed", methods=["POST"])
def config_speed():
    data = _body()
    if "preset" in data:
        preset = data["preset"]
        if not isinstance(preset, str) or preset not in SPEED_PRESETS:
            raise InvalidRequestError(
                f"Unknown speed preset {preset!r}; choose from {', '.join(SPEED_PRESETS)}"
            )
        return _perform(lambda c: c.set_speed_preset(preset))

    speed_ms = _speed_field(data)
    return _perform(lambda c: c.set_speed(speed_ms))


@api.route("/state", methods=["GET"])
def state():
    playback = _existing_playback()
    if playback is None:
        return jsonify(idle_snapshot(current_app.config["PLAYBACK_SPEED_MS"]))
    return jsonify(_on_loop(playback.snapshot))
