"""Tests for Branch induction, routing and the reduction helpers."""

import numpy as np
import pytest

from incremental_forest.core._exceptions import DataError
from incremental_forest.forest import Branch, EvalContext, get_average, get_progression


def test_get_average_scalars_pass_through() -> None:
    assert get_average(3) == 3
    assert get_average("abc") == "abc"


def test_get_average_of_numbers_is_the_mean() -> None:
    assert get_average([1, 2, 6]) == pytest.approx(3.0)


def test_get_average_of_strings_is_the_first_value_to_reach_the_top_count() -> None:
    assert get_average(["b", "a", "a", "b"]) == "a"
    assert get_average(["x", "y"]) == "x"
    assert get_average(["x", "y", "y"]) == "y"


def test_get_average_of_empty_sequence() -> None:
    assert get_average([]) is None


@pytest.mark.parametrize("kind, expected", [("+", 0.0), ("*", 1.0), ("m", 5), ("M", 5)])
def test_get_progression_of_scalar(kind: str, expected: float) -> None:
    assert get_progression(5, kind) == expected  # type: ignore[arg-type]


def test_get_progression_of_sequence() -> None:
    assert get_progression([1, 2, 4], "+") == pytest.approx(1.5)
    assert get_progression([1, 2, 4], "*") == pytest.approx(2.0)
    assert get_progression([3, 1, 2], "m") == 1
    assert get_progression([3, 1, 2], "M") == 3


def test_get_progression_replaces_zero_denominator() -> None:
    assert get_progression([0, 1], "*") == pytest.approx(1e8)


def test_get_progression_rejects_unknown_kind() -> None:
    with pytest.raises(ValueError):
        get_progression([1, 2], "/")  # type: ignore[arg-type]


def test_value_branch_routing_is_deterministic() -> None:
    branch = Branch(field0="Fx", comparison_value=0)

    for _ in range(3):
        assert branch.route({"Fx": 0}) == "ge"
        assert branch.route({"Fx": -1}) == "ge"
        assert branch.route({"Fx": 1}) == "lt"


def test_two_field_branch_reduces_sequences() -> None:
    branch = Branch(field0="Fa", field1="Fb")

    assert branch.route({"Fa": 2, "Fb": 1}) == "ge"
    assert branch.route({"Fa": [1, 2, 3], "Fb": 2.5}) == "lt"
    assert branch.route({"Fa": 2}) is None


def test_progression_branch_routing() -> None:
    branch = Branch(field0="Fs", field1="_+", comparison_value=1.0)

    assert branch.comparison == "+ progression analysis"
    assert branch.route({"Fs": [1, 2, 3]}) == "ge"
    assert branch.route({"Fs": [1, 3, 5]}) == "lt"


def test_incomparable_values_are_unknown() -> None:
    branch = Branch(field0="Fx", comparison_value=1.5)
    assert branch.route({"Fx": "text"}) is None


def test_missing_field_is_unknown(ctx: EvalContext) -> None:
    branch = Branch(field0="Fx", comparison_value=0)

    assert branch.evaluate({"Fy": 1}, 1.0, ctx) is None
    assert branch.ge is None and branch.lt is None


def test_learning_counts_side_usage_and_steps(ctx: EvalContext) -> None:
    branch = Branch(field0="Fx", comparison_value=0)

    response = branch.evaluate({"Fx": -2}, 0.8, ctx)
    assert response is not None
    assert response.steps == 2
    assert response.answer == pytest.approx(0.8)
    assert (branch.ge_count, branch.lt_count) == (1, 0)

    branch.evaluate({"Fx": -2}, None, ctx)
    assert (branch.ge_count, branch.lt_count) == (1, 0)


def test_induce_single_scalar_field_gives_value_branch() -> None:
    branch = Branch.induce({"Fx": 4}, np.random.default_rng(3))

    assert branch.field0 == "Fx"
    assert branch.field1 is None
    assert branch.comparison_value == 4


@pytest.mark.parametrize("seed", range(30))
def test_induced_branch_matches_record_shape(seed: int) -> None:
    record = {
        "Fa": 1,
        "Fb": 2.5,
        "Fc": "red",
        "Fd": "blue",
        "Fs": [1.0, 2.0, 4.0],
        "Ft": [3, 2, 1],
    }
    branch = Branch.induce(record, np.random.default_rng(seed))

    assert branch.field0 in record
    if branch.field1 is None:
        assert branch.comparison_value == get_average(record[branch.field0])
    elif branch.field1.startswith("_"):
        kind = branch.field1[1]
        assert branch.field0 in ("Fs", "Ft")
        assert branch.comparison_value == get_progression(record[branch.field0], kind)  # type: ignore[arg-type]
    else:
        assert branch.field1 in record
        assert branch.field1 != branch.field0
        assert branch.comparison_value is None
        assert branch.route(record) is not None
        return

    # a Branch built from a record sees that record as a tie
    assert branch.route(record) == "ge"


def test_induce_requires_a_usable_field() -> None:
    with pytest.raises(DataError):
        Branch.induce({"Fe": []}, np.random.default_rng(0))


def test_explain_uses_caller_field_names() -> None:
    branch = Branch(field0="Fa", field1="Fb")
    explanation = branch.explain({"Fa": 3, "Fb": 1})

    assert explanation.field0 == "a"
    assert explanation.field1 == "b"
    assert explanation.data_field0 == 3
    assert explanation.data_field1 == 1
    assert explanation.comparison == "two field comparison"
