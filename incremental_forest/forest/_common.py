"""Constants and the same-class rule shared by every node type."""

from __future__ import annotations

from typing import Dict, Final

from ._types import ProgressionKind


BASE_RATING: Final[float] = 0.95
"""Initial rating of a Link and the reference point of every rating decision."""

LATEST_VERSION: Final[int] = 44
"""Schema version written by this engine. Older files are upgraded on load."""

FIELD_PREFIX: Final[str] = "F"
RESULT_FIELD: Final[str] = "_result"
PROGRESSION_PREFIX: Final[str] = "_"

PROGRESSION_KINDS: Final[tuple[ProgressionKind, ...]] = ("+", "*", "m", "M")
PROGRESSION_LABELS: Final[Dict[str, str]] = {
    "+": "arithmetic",
    "*": "geometric",
    "m": "minimum",
    "M": "maximum",
}

CLASS_THRESHOLD: Final[float] = 0.33
MAX_MASTERS: Final[int] = 5
ZERO_DENOMINATOR: Final[float] = 1e-8


def same_class(a: float, b: float) -> bool:
    """Whether two answers lead to the same conclusion (-1, 0 or +1).

    The neutral band is closed for ``a`` but half-open for ``b``: exactly
    ``0.33`` counts as neutral on the left side and as nothing on the right.
    """
    t = CLASS_THRESHOLD
    return (
        (a > t and b > t)
        or (a < -t and b < -t)
        or (-t <= a <= t and -t <= b < t)
    )


def progression_tag(kind: ProgressionKind) -> str:
    return PROGRESSION_PREFIX + kind


def is_progression_tag(field: str | None) -> bool:
    return (
        field is not None
        and len(field) == 2
        and field[0] == PROGRESSION_PREFIX
        and field[1] in PROGRESSION_KINDS
    )
