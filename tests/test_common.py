"""Tests for the same-class rule."""

import pytest

from incremental_forest.forest import same_class


@pytest.mark.parametrize(
    "a, b",
    [(0.5, 0.9), (1.0, 0.34), (-0.5, -0.9), (0.0, 0.2), (-0.33, -0.33), (0.33, 0.3299)],
)
def test_same_class(a: float, b: float) -> None:
    assert same_class(a, b)


@pytest.mark.parametrize(
    "a, b",
    [(0.5, -0.5), (0.9, 0.1), (-0.9, 0.0), (0.34, 0.33), (-0.34, -0.33)],
)
def test_different_class(a: float, b: float) -> None:
    assert not same_class(a, b)


def test_neutral_band_is_closed_on_the_left_only() -> None:
    # exactly 0.33 is neutral as a, but in no band as b
    assert same_class(0.33, 0.0)
    assert not same_class(0.0, 0.33)
    assert not same_class(0.33, 0.33)
    assert not same_class(0.33, 0.34)
