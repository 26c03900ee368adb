from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Literal, Mapping, Tuple, cast
import logging

import numpy as np

from incremental_forest.core._exceptions import DataError
from ._common import PROGRESSION_KINDS, ZERO_DENOMINATOR
from ._common import progression_tag, is_progression_tag
from ._records import is_sequence, type_class, unprefix
from ._types import (
    ComparisonKind,
    EvalContext,
    Explanation,
    ProgressionKind,
    Record,
    Response,
)

if TYPE_CHECKING:
    from ._link import Link


logger = logging.getLogger(__name__)

Side = Literal["ge", "lt"]


def get_average(value: Any) -> Any:
    """Reduce a field value to a single comparable scalar.

    Scalars are returned as is. Numeric sequences reduce to their mean and
    string sequences to their most frequent item, the item reaching the
    highest count first winning ties. Empty sequences reduce to None.
    """
    if not is_sequence(value):
        return value
    if len(value) == 0:
        return None

    if isinstance(value[0], str):
        counts: Counter[Any] = Counter()
        best, best_count = None, 0
        for item in value:
            counts[item] += 1
            if counts[item] > best_count:
                best, best_count = item, counts[item]
        return best

    return float(np.mean(np.asarray(value, dtype=float)))


def get_progression(value: Any, kind: ProgressionKind) -> Any:
    """Summarise a sequence by its progression.

    Args:
        value: A scalar or a numeric sequence.
        kind: ``"+"`` for the mean of successive differences, ``"*"`` for
            the mean of successive ratios, ``"m"``/``"M"`` for min/max.

    Returns:
        The progression factor. Scalars give ``0`` for ``"+"``, ``1`` for
        ``"*"`` and themselves for ``"m"``/``"M"``.
    """
    if kind not in PROGRESSION_KINDS:
        raise ValueError(f"Progression kind must be one of {PROGRESSION_KINDS}")

    if not is_sequence(value):
        if kind == "+":
            return 0.0
        if kind == "*":
            return 1.0
        return value

    if kind == "m":
        return min(value) if len(value) else None
    if kind == "M":
        return max(value) if len(value) else None
    if len(value) < 2:
        return 0.0 if kind == "+" else 1.0

    arr = np.asarray(value, dtype=float)
    if kind == "+":
        return float(np.mean(np.diff(arr)))

    previous = arr[:-1]
    previous = np.where(previous == 0, ZERO_DENOMINATOR, previous)
    return float(np.mean(arr[1:] / previous))


@dataclass(slots=True)
class Branch:
    """A learned binary predicate over two values derived from a record.

    The comparison mode is fixed at construction: ``field1`` is either another
    field (two field comparison), a progression tag such as ``"_+"``
    (progression of ``field0`` against ``comparison_value``) or None
    (``field0`` against ``comparison_value``).
    """

    field0: str = field(metadata={"description": "The field read first."})
    field1: str | None = field(
        default=None,
        metadata={"description": "Second field, progression tag, or None."},
    )
    comparison_value: Any = field(
        default=None,
        metadata={"description": "Value learned at construction, if any."},
    )
    ge: Link | None = field(
        default=None, metadata={"description": "Link followed when v0 >= v1."}
    )
    lt: Link | None = field(
        default=None, metadata={"description": "Link followed when v0 < v1."}
    )
    ge_count: int = field(
        default=0, metadata={"description": "Learnings routed to ge."}
    )
    lt_count: int = field(
        default=0, metadata={"description": "Learnings routed to lt."}
    )

    @classmethod
    def induce(cls, record: Record, rng: np.random.Generator) -> Branch:
        """Build a Branch from the shape of a single record.

        Raises:
            DataError: If the record has no field a Branch can use.
        """
        keys = [k for k in record if type_class(record[k]) is not None]
        if not keys:
            raise DataError("Cannot build a Branch from a record without fields")

        key = keys[int(rng.integers(len(keys)))]
        value = record[key]
        family = type_class(value)

        if family == "number-sequence" and int(rng.integers(3)) == 0:
            kind = PROGRESSION_KINDS[int(rng.integers(len(PROGRESSION_KINDS)))]
            logger.debug(f"New {kind} progression Branch on {key}")
            return cls(
                field0=key,
                field1=progression_tag(kind),
                comparison_value=get_progression(value, kind),
            )

        if int(rng.integers(2)) == 0:
            others = [k for k in keys if k != key]
            for idx in rng.permutation(len(others)):
                other = others[int(idx)]
                if type_class(record[other]) == family:
                    logger.debug(f"New two field Branch on {key} and {other}")
                    return cls(field0=key, field1=other)

        logger.debug(f"New value Branch on {key}")
        return cls(field0=key, comparison_value=get_average(value))

    @property
    def comparison(self) -> ComparisonKind:
        if self.field1 is None:
            return "value"
        if is_progression_tag(self.field1):
            return cast(ComparisonKind, f"{self.field1[1]} progression analysis")
        return "two field comparison"

    def resolve(self, record: Record) -> Tuple[Any, Any] | None:
        """The two values to compare, or None if the record lacks a field."""
        if self.field0 not in record:
            return None
        data0 = record[self.field0]

        if self.field1 is None:
            return self.comparison_value, get_average(data0)
        if is_progression_tag(self.field1):
            kind = cast(ProgressionKind, self.field1[1])
            return self.comparison_value, get_progression(data0, kind)
        if self.field1 not in record:
            return None
        return get_average(data0), get_average(record[self.field1])

    def route(self, record: Record) -> Side | None:
        """Pick the side for a record. Ties go to ``ge``."""
        try:
            values = self.resolve(record)
            if values is None or values[0] is None or values[1] is None:
                return None
            return "ge" if values[0] >= values[1] else "lt"
        except (TypeError, ValueError):
            # the field changed type since this Branch was built
            return None

    def child(self, side: Side) -> Link:
        from ._link import Link

        link = getattr(self, side)
        if link is None:
            link = Link()
            setattr(self, side, link)
        return link

    def evaluate(
        self,
        record: Record,
        result: float | None = None,
        ctx: EvalContext | None = None,
    ) -> Response | None:
        side = self.route(record)
        if side is None:
            return None

        response = self.child(side).evaluate(record, result, ctx)
        if response is None:
            return None

        if result is not None:
            if side == "ge":
                self.ge_count += 1
            else:
                self.lt_count += 1
        response.steps += 1
        return response

    def explain(self, record: Record) -> Explanation:
        two_fields = self.comparison == "two field comparison"
        return Explanation(
            field0=cast(str, unprefix(self.field0)),
            field1=unprefix(self.field1) if two_fields else self.field1,
            comparison_value=self.comparison_value,
            data_field0=record.get(self.field0),
            data_field1=record.get(cast(str, self.field1)) if two_fields else None,
            comparison=self.comparison,
        )

    def upgrade(self, version: int) -> None:
        for link in (self.ge, self.lt):
            if link is not None:
                link.upgrade(version)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field0": self.field0,
            "field1": self.field1,
            "comparison_value": self.comparison_value,
            "ge": self.ge.to_dict() if self.ge is not None else None,
            "lt": self.lt.to_dict() if self.lt is not None else None,
            "ge_count": self.ge_count,
            "lt_count": self.lt_count,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> Branch:
        from ._link import Link

        return cls(
            field0=d["field0"],
            field1=d.get("field1"),
            comparison_value=d.get("comparison_value"),
            ge=Link.from_dict(d["ge"]) if d.get("ge") is not None else None,
            lt=Link.from_dict(d["lt"]) if d.get("lt") is not None else None,
            ge_count=int(d.get("ge_count", 0)),
            lt_count=int(d.get("lt_count", 0)),
        )
