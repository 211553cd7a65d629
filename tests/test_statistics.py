from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from assessment_app.core.grading import apply_manual_grading, finalize_attempt
from assessment_app.core.models import AttemptStatus
from assessment_app.core.services import statistics


@pytest.fixture
def attempts(quiz, essay_quiz, mc_question, tf_question, fr_question, now):
    objective = [mc_question, tf_question]
    return [
        # s1: 8/8
        finalize_attempt(
            quiz, objective, {mc_question.code: "A", tf_question.code: "True"},
            now, now + timedelta(seconds=100), student_id="s1",
        ),
        # s2: 3/8, picked distractor B
        finalize_attempt(
            quiz, objective, {mc_question.code: "B", tf_question.code: "True"},
            now, now + timedelta(seconds=300), student_id="s2",
        ),
        # s2 again, expired with nothing answered
        finalize_attempt(quiz, objective, {}, now, now + timedelta(minutes=10), student_id="s2", expired=True),
        # s1: awaiting review
        finalize_attempt(
            essay_quiz, [mc_question, fr_question], {mc_question.code: "C", fr_question.code: "Essay"},
            now, now + timedelta(seconds=50), student_id="s1",
        ),
    ]


def test_student_stats_exclude_pending(students, attempts):
    rows = {row.student_id: row for row in statistics.compute_student_stats(students, attempts)}
    assert rows["s1"].attempt_count == 1
    assert rows["s1"].average_percentage == 100.0
    assert rows["s1"].average_grade == 7.0
    assert rows["s2"].attempt_count == 2
    assert rows["s2"].average_percentage == pytest.approx((37.5 + 0.0) / 2)


def test_student_without_attempts_has_zero_averages(students):
    rows = statistics.compute_student_stats(students, [])
    assert [row.attempt_count for row in rows] == [0, 0]
    assert all(row.average_percentage == 0.0 for row in rows)


def test_attempts_of_students_missing_from_roster_get_their_own_row(students, quiz, mc_question, tf_question, now):
    guest = finalize_attempt(
        quiz, [mc_question, tf_question], {mc_question.code: "A"},
        now, now + timedelta(seconds=60), student_id="guest-7",
    )
    rows = statistics.compute_student_stats(students, [guest])
    assert [row.student_id for row in rows] == ["s1", "s2", "guest-7"]
    unknown = rows[-1]
    assert unknown.student_name == "guest-7"
    assert unknown.student_course == ""
    assert unknown.attempt_count == 1
    assert unknown.average_percentage == pytest.approx(5 / 8 * 100)


def test_question_success_rate_and_breakdown(mc_question, tf_question, fr_question, attempts):
    rows = {
        row.question_code: row
        for row in statistics.compute_question_stats([mc_question, tf_question, fr_question], attempts)
    }
    mc = rows[mc_question.code]
    assert mc.total_answers == 3
    assert mc.success_rate == pytest.approx(100 / 3)
    assert mc.breakdown.counts == {"A": 1, "B": 1, "C": 0}
    assert mc.breakdown.unanswered == 1
    assert mc.breakdown.total == mc.total_answers

    tf = rows[tf_question.code]
    assert tf.breakdown.counts == {"True": 2, "False": 0}
    assert tf.breakdown.total == tf.total_answers

    fr = rows[fr_question.code]
    assert fr.total_answers == 0
    assert fr.success_rate == 0.0
    assert fr.breakdown is None


def test_quiz_stats(quiz, essay_quiz, attempts):
    rows = {row.quiz_id: row for row in statistics.compute_quiz_stats([quiz, essay_quiz], attempts)}
    arithmetic = rows[quiz.id]
    assert arithmetic.participant_count == 2
    assert arithmetic.attempt_count == 3
    assert arithmetic.average_percentage == pytest.approx((100 + 37.5 + 0) / 3)
    assert arithmetic.average_time_seconds == pytest.approx((100 + 300 + 600) / 3)
    assert rows[essay_quiz.id].attempt_count == 0


def test_grading_a_pending_attempt_changes_aggregates(
    students, quiz, essay_quiz, mc_question, fr_question, attempts
):
    pending = attempts[3]
    graded = apply_manual_grading(pending, [mc_question, fr_question], essay_quiz.questions, {fr_question.code: 4})
    updated = attempts[:3] + [graded]

    before = {row.quiz_id: row for row in statistics.compute_quiz_stats([quiz, essay_quiz], attempts)}
    after = {row.quiz_id: row for row in statistics.compute_quiz_stats([quiz, essay_quiz], updated)}
    assert before[essay_quiz.id].attempt_count == 0
    assert after[essay_quiz.id].attempt_count == 1
    assert after[essay_quiz.id].average_percentage == pytest.approx(4 / 6 * 100)
    assert after[quiz.id] == before[quiz.id]

    student_rows = {row.student_id: row for row in statistics.compute_student_stats(students, updated)}
    assert student_rows["s1"].attempt_count == 2


def test_summary(quiz, essay_quiz, mc_question, tf_question, fr_question, attempts, now):
    expired_quiz = replace(quiz, id="QUIZ-0003", window=replace(quiz.window, end=now - timedelta(hours=1)))
    summary = statistics.compute_summary(
        [quiz, essay_quiz, expired_quiz], [mc_question, tf_question, fr_question], attempts, now
    )
    assert summary.active_quizzes == 2
    assert summary.question_count == 3
    assert summary.completed_attempts == 2
    assert summary.average_percentage == pytest.approx((100 + 37.5) / 2)
    assert summary.pending_reviews == 1


def test_pending_and_graded_partition(attempts):
    pending = statistics.pending_attempts(attempts)
    graded = statistics.graded_attempts(attempts)
    assert len(pending) + len(graded) == len(attempts)
    assert all(a.status is AttemptStatus.PENDING_REVIEW for a in pending)


def test_question_filters(mc_question, tf_question, fr_question, attempts):
    rows = statistics.compute_question_stats([mc_question, tf_question, fr_question], attempts)
    assert [r.question_code for r in statistics.filter_question_stats(rows, subject="History")] == [fr_question.code]
    assert [r.question_code for r in statistics.filter_question_stats(rows, text="even")] == [tf_question.code]
    hardest = statistics.filter_question_stats(rows, author="Ana", hardest_first=True)
    assert [r.question_code for r in hardest] == [mc_question.code, tf_question.code]


def test_student_and_quiz_filters(students, quiz, essay_quiz, attempts):
    student_rows = statistics.compute_student_stats(students, attempts)
    assert [r.student_id for r in statistics.filter_student_stats(student_rows, "diego")] == ["s2"]
    assert len(statistics.filter_student_stats(student_rows, "4")) == 2

    quiz_rows = statistics.compute_quiz_stats([quiz, essay_quiz], attempts)
    assert [r.quiz_id for r in statistics.filter_quiz_stats(quiz_rows, author="Ben")] == [essay_quiz.id]
    assert [r.quiz_id for r in statistics.filter_quiz_stats(quiz_rows, text="ARITH")] == [quiz.id]
