"""
engine/
-------
Step-through playback layer.

    from graphisual.engine import StepThroughController, PlaybackLoop
"""

from graphisual.engine.loop      import PlaybackLoop
from graphisual.engine.scheduler import PlaybackScheduler
from graphisual.engine.stepper   import StepMode, StepThroughController, StepThroughState

__all__ = [
    "PlaybackLoop",
    "PlaybackScheduler",
    "StepMode",
    "StepThroughController",
    "StepThroughState",
]
