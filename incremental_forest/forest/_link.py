"""Link: the mutable slot between a parent and a Leaf or a Branch.

A Link owns its target and rates it. Learning through a Link can change the
target in place: an Unset Link becomes a Leaf, a Leaf contradicted by a new
result becomes a Branch separating the old and new samples, and a Branch that
keeps performing badly (or never discriminates) collapses into its better
child.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple
import logging

from ._branch import Branch, get_average
from ._common import BASE_RATING, same_class
from ._leaf import Leaf
from ._types import EvalContext, LinkKind, Record, Response


logger = logging.getLogger(__name__)

IMPACT_CARRY = 0.25
IMPACT_THRESHOLD = 0.01


@dataclass(slots=True)
class Link:
    """A node slot owning an Unset (None), Leaf or Branch target."""

    target: Leaf | Branch | None = field(
        default=None, metadata={"description": "The owned node, None if unset."}
    )
    rating_accumulated: float = field(
        default=BASE_RATING,
        metadata={"description": "Accumulated rating of the target."},
    )
    rating_samples: int = field(
        default=1, metadata={"description": "Number of rating updates."}
    )

    @property
    def kind(self) -> LinkKind:
        if self.target is None:
            return "unset"
        return "leaf" if isinstance(self.target, Leaf) else "branch"

    @property
    def rating(self) -> float:
        """Mean rating, typically in [0, 1] but unbounded both ways."""
        if not self.rating_samples:
            return self.rating_accumulated
        return self.rating_accumulated / self.rating_samples

    def is_degenerate(self) -> bool:
        """Whether the target is a Branch worth collapsing.

        Either it underperforms over enough samples or it never sent anything
        to its ``lt`` side.
        """
        target = self.target
        if not isinstance(target, Branch):
            return False
        samples, rating = self.rating_samples, self.rating
        return (
            (samples > 150 and rating < BASE_RATING - 0.05)
            or (samples > 200 and rating < BASE_RATING)
            or (target.ge_count > 500 and target.lt_count == 0)
        )

    def collapse(self) -> None:
        """Replace the Branch target by its better child, dropping the other."""
        branch = self.target
        if not isinstance(branch, Branch):
            raise TypeError("Only a Branch target can be collapsed")

        ge = branch.ge if branch.ge is not None else Link()
        lt = branch.lt
        chosen = ge
        if lt is not None and branch.lt_count >= 1 and lt.rating > ge.rating:
            chosen = lt

        logger.debug(
            f"Collapsing Branch on {branch.field0} rated {self.rating:.3f} "
            f"after {self.rating_samples} samples"
        )
        if chosen.target is None:
            self.target, self.rating_accumulated, self.rating_samples = (
                Leaf(),
                1.0,
                1,
            )
        else:
            self.target, self.rating_accumulated, self.rating_samples = (
                chosen.target,
                chosen.rating_accumulated,
                chosen.rating_samples,
            )

    def cleanup(self, truncate: bool = False) -> None:
        """Collapse degenerate Branches across the whole tree, top-down.

        Args:
            truncate: Also reset every rating to its current mean over a
                single sample, so that the tree adapts quickly afterwards.
        """
        if self.is_degenerate():
            self.collapse()

        if isinstance(self.target, Branch):
            for child in (self.target.ge, self.target.lt):
                if child is not None:
                    child.cleanup(truncate)

        if truncate:
            self.rating_accumulated, self.rating_samples = self.rating, 1

    def apply_impact(self, response: Response | None, result: float | None) -> float:
        """Rate a response against the expected result.

        Returns:
            The impact added to the rating, 0 when not learning.
        """
        if result is None:
            return 0.0

        if response is None:
            impact = -1.0
        else:
            impact = 1.0 if same_class(response.answer, result) else -1.0
            if response.impact is not None:
                impact += response.impact * IMPACT_CARRY
            self.rating_accumulated -= abs(response.answer - result)

        self.rating_accumulated += impact
        self.rating_samples += 1
        return impact

    def induce_discriminator(
        self,
        record: Record,
        result: float,
        old_leaf: Leaf,
        ctx: EvalContext,
    ) -> Response | None:
        """Turn this Link into a Branch separating the old Leaf's first sample
        from the conflicting record, and learn both."""
        sample = old_leaf.sample
        branch: Branch | None = None

        if sample is not None:
            candidates = _discriminating_fields(sample, record)
            if candidates:
                key, threshold = candidates[int(ctx.rng.integers(len(candidates)))]
                logger.debug(f"New Branch separating samples on {key}")
                branch = Branch(field0=key, comparison_value=threshold)

        if branch is None:
            branch = Branch.induce(record, ctx.rng)
            sample = None

        old_mean = old_leaf.mean
        self.target, self.rating_accumulated, self.rating_samples = (
            branch,
            BASE_RATING,
            0,
        )

        if sample is not None and old_mean is not None:
            branch.evaluate(sample, old_mean, ctx)
        return branch.evaluate(record, result, ctx)

    def evaluate(
        self,
        record: Record,
        result: float | None = None,
        ctx: EvalContext | None = None,
    ) -> Response | None:
        """Answer a record, learning from ``result`` when given.

        Returns:
            The response of the reached Leaf, or None when unknown.
        """
        ctx = ctx if ctx is not None else EvalContext()
        learning = result is not None

        if self.target is None:
            if not learning:
                return None
            logger.debug("New Leaf")
            self.target = Leaf()
        elif learning and self.is_degenerate():
            self.collapse()

        first = self.target.evaluate(record, result, ctx)
        impact = self.apply_impact(first, result)
        response = first

        if learning:
            assert result is not None
            mutated = False
            if isinstance(self.target, Leaf) and first is None:
                response = self.induce_discriminator(record, result, self.target, ctx)
                mutated = True
            elif self.is_degenerate():
                self.collapse()
                response = self.target.evaluate(record, result, ctx)
                mutated = True

            # an unmutated failure (a missing field) is penalised only once
            if first is None and mutated:
                impact = self.apply_impact(response, result)

        if response is None:
            return None

        if response.rating is None:
            response.rating = self.rating
        elif learning:
            self.rating_accumulated += response.rating - BASE_RATING

        response.impact = impact if abs(impact) > IMPACT_THRESHOLD else None

        if ctx.explain and isinstance(self.target, Branch):
            response.back_track = [self.target.explain(record)] + (
                response.back_track or []
            )

        return response

    def upgrade(self, version: int) -> None:
        """Migrate this Link and its subtree from schema ``version``."""
        if version < 40:
            # ratings are not comparable across the version 40 formula change
            self.rating_accumulated, self.rating_samples = BASE_RATING, 1

        if self.target is not None:
            self.target.upgrade(version)

    def depth(self) -> int:
        if isinstance(self.target, Branch):
            return 1 + max(
                child.depth() if child is not None else 0
                for child in (self.target.ge, self.target.lt)
            )
        return 0 if self.target is None else 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "rating_accumulated": self.rating_accumulated,
            "rating_samples": self.rating_samples,
            "target": self.target.to_dict() if self.target is not None else None,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> Link:
        kind = d.get("kind", "unset")
        target_dict = d.get("target")
        target: Leaf | Branch | None = None
        if target_dict is not None:
            if kind == "leaf":
                target = Leaf.from_dict(target_dict)
            elif kind == "branch":
                target = Branch.from_dict(target_dict)
            else:
                raise ValueError(f"Unknown Link kind: {kind}")
        return cls(
            target=target,
            rating_accumulated=float(d.get("rating_accumulated", BASE_RATING)),
            rating_samples=int(d.get("rating_samples", 1)),
        )


def _discriminating_fields(
    sample: Mapping[str, Any], record: Record
) -> List[Tuple[str, Any]]:
    """Fields present in both records whose reduced values differ.

    Each field comes with the smaller of the two values, which as a Branch
    threshold sends the two records to opposite sides.
    """
    candidates: List[Tuple[str, Any]] = []
    for key, value in record.items():
        if key not in sample:
            continue
        try:
            a, b = get_average(sample[key]), get_average(value)
            if a is None or b is None:
                continue
            if a < b:
                candidates.append((key, a))
            elif b < a:
                candidates.append((key, b))
        except (TypeError, ValueError):
            continue
    return candidates
