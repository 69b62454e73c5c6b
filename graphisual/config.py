"""
config.py — Playback Defaults & App Configuration
==================================================
Constants the engine reads directly, plus the Flask config object the
web app loads first.  Anything here can be overridden per-app with
``GRAPHISUAL_*`` environment variables (see ``create_app``).
"""

import secrets


# ---------------------------------------------------------------------------
# Speed presets (milliseconds per step)
# ---------------------------------------------------------------------------
SPEED_PRESETS = {
    "slow":   1000,   # teaching mode
    "medium": 400,
    "fast":   150,    # demo mode
    "turbo":  50,
}

DEFAULT_SPEED_MS = SPEED_PRESETS["medium"]

# Anything faster than this is indistinguishable on screen.
MIN_SPEED_MS = 20


def clamp_speed(speed_ms) -> int:
    """Coerce a caller-supplied speed to a whole number of ms >= MIN_SPEED_MS."""
    return max(MIN_SPEED_MS, int(speed_ms))


# ---------------------------------------------------------------------------
# Flask config
# ---------------------------------------------------------------------------
class Config:
    SECRET_KEY        = secrets.token_hex(32)
    PLAYBACK_SPEED_MS = DEFAULT_SPEED_MS
    MAX_TRACE_STEPS   = 10_000
    LOOP_CALL_TIMEOUT = 5.0     # seconds a request waits on the playback loop
    MAX_SESSIONS      = 256
    SESSION_IDLE_TTL  = 1800.0  # seconds before an untouched session is dropped
