"""Grading constants shared by the grading engine and statistics."""

MIN_GRADE: float = 1.0
MAX_GRADE: float = 7.0
GRADE_DECIMALS: int = 1

MIN_POINT_VALUE: int = 1
MAX_POINT_VALUE: int = 5

MIN_DIFFICULTY: int = 1
MAX_DIFFICULTY: int = 5

MAX_RATING: int = 3

# Canonical, case-sensitive responses for true/false questions.
TRUE_LABEL: str = "True"
FALSE_LABEL: str = "False"
