"""An online decision forest that answers and learns one record at a time.

Each master tree is made of Links owning either a Leaf (a running average of
accepted results) or a Branch (a learned comparison between two values of the
record). Trees grow when a Leaf is contradicted and shrink when a Branch stops
being useful.
"""

from ._common import BASE_RATING, LATEST_VERSION, RESULT_FIELD, same_class
from ._types import Response, Explanation, EvalContext, Record, ProgressionKind
from ._records import combine_records
from ._leaf import Leaf
from ._branch import Branch, get_average, get_progression
from ._link import Link
from ._forest import Forest, ForestState

__all__ = [
    "BASE_RATING",
    "LATEST_VERSION",
    "RESULT_FIELD",
    "same_class",
    "Response",
    "Explanation",
    "EvalContext",
    "Record",
    "ProgressionKind",
    "combine_records",
    "Leaf",
    "Branch",
    "get_average",
    "get_progression",
    "Link",
    "Forest",
    "ForestState",
]
