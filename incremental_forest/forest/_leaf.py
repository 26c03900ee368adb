from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

import orjson

from incremental_forest.core._types import JSONObject
from ._common import same_class
from ._types import EvalContext, Record, Response


@dataclass(slots=True)
class Leaf:
    """Terminal node holding the running average of the results it accepted.

    A Leaf is intolerant: the first result of another class invalidates it and
    its owning Link replaces it with a Branch. The first record ever presented
    is memoised so that the replacement can separate it from the conflicting
    one.
    """

    running_sum: float = field(
        default=0.0, metadata={"description": "Sum of the accepted results."}
    )
    accepted_count: int = field(
        default=0, metadata={"description": "Number of accepted results."}
    )
    snapshot: str | None = field(
        default=None,
        metadata={"description": "JSON text of the first record presented."},
    )

    @property
    def mean(self) -> float | None:
        if not self.accepted_count:
            return None
        return self.running_sum / self.accepted_count

    @property
    def sample(self) -> JSONObject | None:
        """The memoised first record, or None if the Leaf never learned."""
        if self.snapshot is None:
            return None
        return orjson.loads(self.snapshot)

    def evaluate(
        self,
        record: Record,
        result: float | None = None,
        ctx: EvalContext | None = None,
    ) -> Response | None:
        """Answer, and learn when a result is given.

        ``ctx`` is unused and only keeps the signature aligned with Branch.

        Returns None when nothing was learned yet or when the result conflicts
        with the current mean.
        """
        if result is not None:
            if self.snapshot is None:
                self.snapshot = orjson.dumps(dict(record)).decode("utf-8")

            mean = self.mean
            if mean is not None and not same_class(mean, result):
                return None

            self.running_sum += result
            self.accepted_count += 1

        mean = self.mean
        if mean is None:
            return None
        return Response(answer=mean, steps=1, experience=self.accepted_count)

    def upgrade(self, version: int) -> None:
        if version < 41 and isinstance(self.snapshot, Mapping):
            # snapshots used to be stored as raw records
            self.snapshot = orjson.dumps(dict(self.snapshot)).decode("utf-8")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "running_sum": self.running_sum,
            "accepted_count": self.accepted_count,
            "snapshot": self.snapshot,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> Leaf:
        return cls(
            running_sum=float(d.get("running_sum", 0.0)),
            accepted_count=int(d.get("accepted_count", 0)),
            snapshot=d.get("snapshot"),
        )
