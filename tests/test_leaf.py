"""Tests for Leaf."""

import orjson
import pytest

from incremental_forest.forest import Leaf


def test_empty_leaf_has_no_answer() -> None:
    assert Leaf().evaluate({"Fx": 1}) is None


def test_mean_is_exact_running_average() -> None:
    leaf = Leaf()
    for result in (0.5, 0.7, 0.9):
        response = leaf.evaluate({"Fx": 1}, result)
        assert response is not None

    response = leaf.evaluate({"Fx": 1})
    assert response is not None
    assert response.answer == pytest.approx(0.7)
    assert response.steps == 1
    assert response.experience == 3


def test_conflicting_result_is_rejected() -> None:
    leaf = Leaf()
    leaf.evaluate({"Fx": 1}, 0.8)

    assert leaf.evaluate({"Fx": 2}, -0.8) is None
    assert leaf.accepted_count == 1
    assert leaf.mean == pytest.approx(0.8)


def test_snapshot_keeps_first_record() -> None:
    leaf = Leaf()
    leaf.evaluate({"Fx": 1, "Fs": [1, 2]}, 0.8)
    leaf.evaluate({"Fx": 5}, 0.9)
    leaf.evaluate({"Fx": 6}, -0.9)

    assert leaf.sample == {"Fx": 1, "Fs": [1, 2]}


def test_query_does_not_set_snapshot() -> None:
    leaf = Leaf()
    leaf.evaluate({"Fx": 1})
    assert leaf.snapshot is None


def test_upgrade_serializes_legacy_snapshot() -> None:
    leaf = Leaf.from_dict(
        {"running_sum": 1.0, "accepted_count": 1, "snapshot": {"Fx": 3}}
    )
    leaf.upgrade(40)

    assert isinstance(leaf.snapshot, str)
    assert orjson.loads(leaf.snapshot) == {"Fx": 3}
    assert leaf.sample == {"Fx": 3}


def test_upgrade_keeps_recent_snapshot() -> None:
    leaf = Leaf(running_sum=1.0, accepted_count=1, snapshot='{"Fx":3}')
    leaf.upgrade(41)
    assert leaf.snapshot == '{"Fx":3}'
