"""Conversion from obtained/possible points to a bounded grade."""

from __future__ import annotations

from dataclasses import dataclass

from assessment_app.constants.grading_constants import GRADE_DECIMALS, MAX_GRADE, MIN_GRADE


@dataclass(slots=True, frozen=True)
class GradeScale:
    """Monotonic grade mapping with a fixed floor and ceiling.

    By default the grade grows linearly from ``min_grade`` at 0% to
    ``max_grade`` at 100%. Setting ``passing_ratio`` and ``passing_grade``
    switches to a two-segment mapping where ``passing_ratio`` of the possible
    points yields exactly ``passing_grade``.
    """

    min_grade: float = MIN_GRADE
    max_grade: float = MAX_GRADE
    decimals: int | None = GRADE_DECIMALS
    passing_ratio: float | None = None
    passing_grade: float | None = None

    def __post_init__(self) -> None:
        if self.max_grade <= self.min_grade:
            raise ValueError("Maximum grade must be greater than the minimum grade.")
        if (self.passing_ratio is None) != (self.passing_grade is None):
            raise ValueError("passing_ratio and passing_grade must be set together.")
        if self.passing_ratio is not None:
            if not 0.0 < self.passing_ratio < 1.0:
                raise ValueError("passing_ratio must be strictly between 0 and 1.")
            if not self.min_grade <= self.passing_grade <= self.max_grade:
                raise ValueError("passing_grade must lie within the grade bounds.")

    def grade(self, obtained: float, possible: float) -> float:
        if possible <= 0:
            return self.min_grade
        ratio = min(max(obtained / possible, 0.0), 1.0)
        value = self._interpolate(ratio)
        if self.decimals is None:
            return value
        return round(value, self.decimals)

    def _interpolate(self, ratio: float) -> float:
        if self.passing_ratio is None:
            return self.min_grade + (self.max_grade - self.min_grade) * ratio
        if ratio < self.passing_ratio:
            return self.min_grade + (self.passing_grade - self.min_grade) * (ratio / self.passing_ratio)
        upper_span = 1.0 - self.passing_ratio
        return self.passing_grade + (self.max_grade - self.passing_grade) * (
            (ratio - self.passing_ratio) / upper_span
        )


DEFAULT_SCALE = GradeScale()


def calculate_grade(obtained: float, possible: float, scale: GradeScale = DEFAULT_SCALE) -> float:
    """Return the grade for ``obtained`` out of ``possible`` points."""
    return scale.grade(obtained, possible)


def calculate_percentage(obtained: float, possible: float) -> float:
    """Return ``obtained / possible`` as a percentage, 0 when nothing is possible."""
    if possible <= 0:
        return 0.0
    return (obtained / possible) * 100
