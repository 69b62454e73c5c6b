"""Tests for the playback HTTP API."""

import threading
import time

import pytest

from graphisual.app import create_app


TRACE = [
    {"type": "visit", "edge": {"from": -1, "to": 0}},
    {"type": "visit", "edge": {"from": 0, "to": 1}},
    {"type": "result", "edge": {"from": 0, "to": 1}},
]


@pytest.fixture
def app():
    app = create_app({"TESTING": True, "PLAYBACK_SPEED_MS": 20})
    yield app
    app.extensions["graphisual"].close()


@pytest.fixture
def client(app):
    return app.test_client()


def run_trace(client, steps=TRACE, **extra):
    return client.post("/api/run", json={"steps": steps, **extra})


def wait_for(client, predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        state = client.get("/api/state").get_json()
        if predicate(state):
            return state
        time.sleep(0.02)
    pytest.fail(f"state never matched; last seen {state}")


# ---------------------------------------------------------------------------
# Run / navigation
# ---------------------------------------------------------------------------
def test_new_session_is_idle(client):
    state = client.get("/api/state").get_json()
    assert state["mode"] == "idle"
    assert state["current_index"] == -1
    assert state["current_step"] is None


def test_run_shows_first_step(client):
    body = run_trace(client).get_json()

    assert body["step"] == TRACE[0]
    assert body["state"]["mode"] == "stepping"
    assert body["state"]["current_index"] == 0
    assert body["state"]["total_steps"] == 1
    assert body["state"]["display"]["step"] == TRACE[0]
    assert body["state"]["display"]["applied"] == 1


def test_next_until_complete(client):
    run_trace(client)
    assert client.post("/api/step/next").get_json()["step"] == TRACE[1]
    assert client.post("/api/step/next").get_json()["step"] == TRACE[2]

    body = client.post("/api/step/next").get_json()
    assert body["step"] is None
    assert body["state"]["is_complete"] is True
    assert body["state"]["current_index"] == 2
    assert body["state"]["display"]["completions"] == 1


def test_prev_redraws_without_on_step(client):
    run_trace(client)
    client.post("/api/step/next")

    body = client.post("/api/step/prev").get_json()

    assert body["step"] == TRACE[0]
    assert body["state"]["display"]["step"] == TRACE[0]
    assert body["state"]["display"]["index"] == 0
    assert body["state"]["display"]["applied"] == 2


def test_goto_and_jumps(client):
    run_trace(client)

    body = client.post("/api/step/goto", json={"index": 10}).get_json()
    assert body["state"]["current_index"] == 2
    assert body["state"]["is_complete"] is True
    assert body["state"]["display"]["index"] == 2

    body = client.post("/api/step/start").get_json()
    assert body["state"]["current_step"] == TRACE[0]

    body = client.post("/api/step/end").get_json()
    assert body["state"]["current_index"] == 2
    assert body["state"]["display"]["completions"] == 1


def test_get_seen_step(client):
    run_trace(client)
    client.post("/api/step/next")

    assert client.get("/api/step/1").get_json() == {"index": 1, "step": TRACE[1]}

    resp = client.get("/api/step/2")
    assert resp.status_code == 404
    assert "not been reached" in resp.get_json()["error"]


def test_reset(client):
    run_trace(client)
    body = client.post("/api/reset").get_json()

    assert body["state"]["mode"] == "idle"
    assert body["state"]["total_steps"] == 0
    assert body["state"]["display"]["step"] is None


def test_sessions_are_isolated(app, client):
    other = app.test_client()
    run_trace(client)
    client.post("/api/step/next")

    assert other.get("/api/state").get_json()["mode"] == "idle"
    assert client.get("/api/state").get_json()["current_index"] == 1


# ---------------------------------------------------------------------------
# Playback
# ---------------------------------------------------------------------------
def test_play_runs_to_completion(client):
    run_trace(client)
    body = client.post("/api/step/play").get_json()
    assert body["state"]["mode"] == "playing"

    state = wait_for(client, lambda s: s["is_complete"] and s["mode"] == "stepping")

    assert state["current_index"] == 2
    assert state["display"]["index"] == 2
    assert state["display"]["applied"] == 3
    assert state["display"]["completions"] == 1


def test_toggle_and_pause(client):
    run_trace(client, speed_ms=1000)

    assert client.post("/api/step/toggle").get_json()["state"]["mode"] == "playing"
    assert client.post("/api/step/pause").get_json()["state"]["mode"] == "stepping"
    assert client.post("/api/step/toggle").get_json()["state"]["mode"] == "playing"
    assert client.post("/api/step/toggle").get_json()["state"]["mode"] == "stepping"


def test_speed_config(client):
    run_trace(client)

    body = client.post("/api/config/speed", json={"preset": "slow"}).get_json()
    assert body["state"]["speed_ms"] == 1000

    body = client.post("/api/config/speed", json={"speed_ms": 250}).get_json()
    assert body["state"]["speed_ms"] == 250


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
@pytest.mark.parametrize(
    "path, payload, message",
    [
        ("/api/run", {"steps": "nope"}, "'steps' must be a list"),
        ("/api/run", {"steps": TRACE, "speed_ms": "fast"}, "'speed_ms' must be an integer"),
        ("/api/step/goto", {"index": "3"}, "'index' must be an integer"),
        ("/api/config/speed", {"preset": "warp"}, "Unknown speed preset"),
        ("/api/config/speed", {"preset": ["fast"]}, "Unknown speed preset"),
        ("/api/run", {"steps": TRACE, "speed_ms": -5}, "must be positive"),
        ("/api/config/speed", {"speed_ms": 0}, "must be positive"),
        ("/api/config/speed", [1, 2], "must be a JSON object"),
    ],
)
def test_rejects_bad_requests(client, path, payload, message):
    resp = client.post(path, json=payload)
    assert resp.status_code == 400
    assert message in resp.get_json()["error"]


def test_rejects_oversized_trace(app, client):
    app.config["MAX_TRACE_STEPS"] = 2
    resp = run_trace(client)
    assert resp.status_code == 400
    assert "limit is 2" in resp.get_json()["error"]


def test_bad_step_fails_the_pull_that_reaches_it(client):
    trace = TRACE[:1] + [{"type": "visit", "edge": {"from": 0}}]
    assert run_trace(client, trace).status_code == 200

    resp = client.post("/api/step/next")
    assert resp.status_code == 400
    assert resp.get_json()["error"].startswith("Step 1:")

    state = client.get("/api/state").get_json()
    assert state["total_steps"] == 1
    assert state["current_index"] == 0


def test_slow_loop_answers_503(app, client):
    run_trace(client)
    app.config["LOOP_CALL_TIMEOUT"] = 0.05
    loop = app.extensions["graphisual"].loop
    blocker = threading.Thread(target=loop.call, args=(time.sleep, 0.3))
    blocker.start()
    time.sleep(0.02)

    resp = client.post("/api/step/next")
    blocker.join()

    assert resp.status_code == 503
    assert "did not respond" in resp.get_json()["error"]
    # the timed-out request was dropped, not run late
    app.config["LOOP_CALL_TIMEOUT"] = 5.0
    assert client.get("/api/state").get_json()["current_index"] == 0


# ---------------------------------------------------------------------------
# Session lifetime
# ---------------------------------------------------------------------------
def test_read_only_routes_do_not_create_sessions(app):
    for _ in range(50):
        fresh = app.test_client()
        assert fresh.get("/api/state").get_json()["mode"] == "idle"
        assert fresh.get("/api/step/0").status_code == 404

    assert len(app.extensions["graphisual"]) == 0


def test_store_is_capped():
    app = create_app({"TESTING": True, "MAX_SESSIONS": 3})
    try:
        clients = [app.test_client() for _ in range(5)]
        for c in clients:
            run_trace(c)

        assert len(app.extensions["graphisual"]) == 3
        # the oldest browser lost its session and starts over idle
        assert clients[0].get("/api/state").get_json()["mode"] == "idle"
        assert clients[-1].get("/api/state").get_json()["mode"] == "stepping"
    finally:
        app.extensions["graphisual"].close()
