from __future__ import annotations

import math

import pytest

from assessment_app.core.grade_scale import DEFAULT_SCALE, GradeScale, calculate_grade, calculate_percentage


@pytest.mark.parametrize(
    ("obtained", "possible", "expected"),
    [
        (0, 8, 1.0),
        (4, 8, 4.0),
        (8, 8, 7.0),
        (6, 8, 5.5),
        (1, 3, 3.0),
    ],
)
def test_linear_grade(obtained, possible, expected):
    assert calculate_grade(obtained, possible) == expected


def test_nothing_possible_gives_minimum_grade():
    assert calculate_grade(0, 0) == DEFAULT_SCALE.min_grade
    assert calculate_percentage(0, 0) == 0.0


def test_grade_is_clamped_to_bounds():
    assert calculate_grade(12, 8) == 7.0
    assert calculate_grade(-3, 8) == 1.0


def test_grade_is_monotonic():
    grades = [calculate_grade(points, 20) for points in range(21)]
    assert grades == sorted(grades)


def test_percentage():
    assert calculate_percentage(4, 8) == 50.0
    assert math.isclose(calculate_percentage(1, 3), 33.333, rel_tol=1e-3)


def test_passing_threshold_scale():
    scale = GradeScale(passing_ratio=0.6, passing_grade=4.0)
    assert scale.grade(6, 10) == 4.0
    assert scale.grade(0, 10) == 1.0
    assert scale.grade(10, 10) == 7.0
    assert scale.grade(3, 10) == 2.5
    assert scale.grade(8, 10) == 5.5


def test_unrounded_scale_keeps_precision():
    scale = GradeScale(decimals=None)
    assert math.isclose(scale.grade(1, 3), 3.0)
    assert math.isclose(scale.grade(1, 7), 1 + 6 / 7)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"min_grade": 7.0, "max_grade": 1.0},
        {"passing_ratio": 0.6},
        {"passing_ratio": 1.2, "passing_grade": 4.0},
        {"passing_ratio": 0.6, "passing_grade": 9.0},
    ],
)
def test_invalid_scales_are_rejected(kwargs):
    with pytest.raises(ValueError):
        GradeScale(**kwargs)
