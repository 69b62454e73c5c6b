"""
Graphisual — step-through playback for graph algorithm visualizations.

    from graphisual import StepThroughController
    from graphisual.app import create_app
"""

from graphisual.engine import StepMode, StepThroughController, StepThroughState

__version__ = "0.1.0"

__all__ = [
    "StepMode",
    "StepThroughController",
    "StepThroughState",
]
