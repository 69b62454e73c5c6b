"""
main.py — Graphisual Playback Server
=====================================
Runs the step-through playback API with Flask's development server.

    python main.py

Settings come from graphisual.config.Config and can be overridden with
GRAPHISUAL_* environment variables, e.g. GRAPHISUAL_PLAYBACK_SPEED_MS=150.
"""

import logging
import os

from graphisual.app import create_app


logging.basicConfig(
    level=os.environ.get("GRAPHISUAL_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
)

app = create_app()


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    print("=" * 60)
    print("  Graphisual playback API")
    print("  Starting Flask server...")
    print("  Open http://localhost:5000/api/state")
    print("=" * 60)
    # the reloader would fork a second process with its own playback loop
    app.run(debug=True, host="0.0.0.0", port=5000, use_reloader=False)
