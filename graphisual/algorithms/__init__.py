"""
algorithms/
-----------
Step records produced by algorithm generators.

    from graphisual.algorithms import AlgorithmStep, trace_sequence
"""

from graphisual.algorithms.step import (
    ROOT_NODE,
    AlgorithmStep,
    EdgeRef,
    StepType,
    trace_sequence,
)

__all__ = [
    "ROOT_NODE",
    "AlgorithmStep",
    "EdgeRef",
    "StepType",
    "trace_sequence",
]
