"""
step.py — Algorithm Step Records
=================================
Every algorithm is a generator that yields steps.  The step-through
engine never looks inside them; only the renderer does.  This module
defines the record the visualizer's algorithms emit:

    • type  – "visit" while the traversal is running,
              "result" for edges of the final path / tree
    • edge  – the (from, to) pair being highlighted.  from == -1 marks
              the root, which has no parent edge.

Design decisions:
  - AlgorithmStep is a frozen dataclass.  It is a SNAPSHOT; history
    replay hands the same object to the renderer again, so nothing may
    mutate it after it is yielded.
  - The wire shape ({"type": ..., "edge": {"from": ..., "to": ...}})
    is what the browser sends back when it uploads a recorded trace.
  - trace_sequence() parses lazily, one record per pull, so a bad record
    fails the pull that reaches it and not the whole upload.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generator, Iterable

from graphisual.errors import InvalidStepError


ROOT_NODE = -1


class StepType(Enum):
    VISIT  = "visit"
    RESULT = "result"


@dataclass(frozen=True)
class EdgeRef:
    """An edge as the algorithm saw it.  ``source`` is -1 for the root."""

    source: int
    target: int

    @property
    def is_root(self) -> bool:
        return self.source == ROOT_NODE


@dataclass(frozen=True)
class AlgorithmStep:
    type: StepType
    edge: EdgeRef

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "edge": {"from": self.edge.source, "to": self.edge.target},
        }

    @classmethod
    def from_dict(cls, data: Any) -> "AlgorithmStep":
        """Parse the wire shape.  Raises InvalidStepError on anything else."""
        if not isinstance(data, dict):
            raise InvalidStepError(f"Step must be an object, got {type(data).__name__}")

        try:
            step_type = StepType(data.get("type"))
        except ValueError:
            raise InvalidStepError(f"Unknown step type: {data.get('type')!r}") from None

        edge = data.get("edge")
        if not isinstance(edge, dict):
            raise InvalidStepError("Step is missing its 'edge' object")

        ends = []
        for key in ("from", "to"):
            value = edge.get(key)
            # bool is an int subclass; true/false are not node ids
            if not isinstance(value, int) or isinstance(value, bool):
                raise InvalidStepError(f"Edge '{key}' must be an integer node id, got {value!r}")
            ends.append(value)

        return cls(type=step_type, edge=EdgeRef(source=ends[0], target=ends[1]))


# ---------------------------------------------------------------------------
# Lazy trace → step sequence
# ---------------------------------------------------------------------------
def trace_sequence(raw_steps: Iterable[Any]) -> Generator[AlgorithmStep, None, None]:
    """Yield one parsed AlgorithmStep per pull from a recorded trace."""
    for position, raw in enumerate(raw_steps):
        try:
            yield AlgorithmStep.from_dict(raw)
        except InvalidStepError as exc:
            raise InvalidStepError(f"Step {position}: {exc.message}") from None
