from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Literal, Mapping, Sequence, TypeAlias, Union

import numpy as np
from pydantic import BaseModel, Field


Scalar: TypeAlias = Union[int, float, str]
Value: TypeAlias = Union[Scalar, Sequence[Scalar]]
Record: TypeAlias = Mapping[str, Value]
ProgressionKind = Literal["+", "*", "m", "M"]
LinkKind = Literal["unset", "leaf", "branch"]
ComparisonKind = Literal[
    "value",
    "two field comparison",
    "+ progression analysis",
    "* progression analysis",
    "m progression analysis",
    "M progression analysis",
]


class Explanation(BaseModel):
    """One Branch decision on the path to an answer."""

    field0: str = Field(description="The field the Branch reads first.")
    field1: str | None = Field(
        default=None,
        description="The second field, a progression tag, or None for a "
        "comparison against a learned value.",
    )
    comparison_value: Any = Field(
        default=None, description="The value learned when the Branch was built."
    )
    data_field0: Any = Field(
        default=None, description="The record's value for field0."
    )
    data_field1: Any = Field(
        default=None,
        description="The record's value for field1 in two field comparisons.",
    )
    comparison: ComparisonKind = Field(description="How the values were compared.")


@dataclass(slots=True)
class Response:
    """The answer produced by a node, enriched on its way back to the root."""

    answer: float = field(metadata={"description": "The predicted value."})
    steps: int = field(
        default=1, metadata={"description": "Number of nodes traversed."}
    )
    experience: int = field(
        default=0,
        metadata={"description": "Number of results accepted by the final Leaf."},
    )
    rating: float | None = field(
        default=None,
        metadata={"description": "Rating of the most specific Link on the path."},
    )
    impact: float | None = field(
        default=None,
        metadata={"description": "Rating impact of the last learning step."},
    )
    back_track: List[Explanation] | None = field(
        default=None,
        metadata={"description": "Branch decisions from root to leaf."},
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert the response to a dictionary."""
        d = asdict(self)
        if self.back_track is not None:
            d["back_track"] = [e.model_dump() for e in self.back_track]
        return d


@dataclass(slots=True)
class EvalContext:
    """Per-forest settings threaded through a traversal."""

    rng: np.random.Generator = field(default_factory=np.random.default_rng)
    explain: bool = False
