"""Record normalisation helpers used at the forest boundary."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Mapping

import numpy as np
import pandas as pd

from incremental_forest.core._exceptions import DataError
from ._common import FIELD_PREFIX
from ._types import Value


TypeClass = Literal["number", "string", "number-sequence", "string-sequence"]

# orjson only encodes 64-bit integers
INT_MIN, INT_MAX = -(2**63), 2**64 - 1


def is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, np.ndarray))


def is_missing(value: Any) -> bool:
    """None, NaN and pd.NA cells (as produced by pandas) mean the field is absent."""
    if is_sequence(value):
        return False
    return bool(pd.isna(value))


def normalize_value(value: Any) -> Value:
    """Turn numpy scalars/arrays and tuples into plain Python values."""
    if isinstance(value, np.ndarray):
        return [normalize_value(v) for v in value.tolist()]
    if isinstance(value, (list, tuple)):
        return [normalize_value(v) for v in value]
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, int) and not isinstance(value, bool):
        if INT_MIN <= value <= INT_MAX:
            return value
        try:
            return float(value)
        except OverflowError:
            raise DataError(f"Integer {value} is too large to be used as a number")
    if isinstance(value, (bool, float, str)):
        return value
    raise DataError(
        f"Unsupported value of type {type(value).__name__}. "
        "Values must be numbers, strings or sequences of them."
    )


def prefix_record(record: Mapping[Any, Any]) -> Dict[str, Value]:
    """Prefix every key so that fields never clash with control tokens."""
    return {
        f"{FIELD_PREFIX}{key}": normalize_value(value)
        for key, value in record.items()
        if not is_missing(value)
    }


def unprefix(field: str | None) -> str | None:
    if field is None or not field.startswith(FIELD_PREFIX):
        return field
    return field[len(FIELD_PREFIX) :]


def type_class(value: Any) -> TypeClass | None:
    """Runtime type family of a value. Ints and floats share one family."""
    if isinstance(value, str):
        return "string"
    if isinstance(value, (bool, int, float)):
        return "number"
    if is_sequence(value):
        families = {type_class(item) for item in value}
        if families == {"string"}:
            return "string-sequence"
        if families == {"number"}:
            return "number-sequence"
    return None


def combine_records(*records: Mapping[Any, Any]) -> Dict[Any, List[Any]] | None:
    """Combine records into one progression record.

    Fields are taken from the first record only; each becomes the list of the
    values found in every record, in argument order.

    Args:
        *records: The records to combine, oldest first.

    Returns:
        The combined record, the single record unchanged if only one is
        given, or None when called without records.

    Raises:
        DataError: If a later record lacks a field of the first one.
    """
    if not records:
        return None
    if len(records) == 1:
        return dict(records[0])

    combined: Dict[Any, List[Any]] = {}
    for key in records[0]:
        try:
            combined[key] = [r[key] for r in records]
        except KeyError:
            raise DataError(f"Field {key!r} is missing from one of the records")
    return combined
