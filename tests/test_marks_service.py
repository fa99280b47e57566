import itertools

import pytest

from models.grading_models import Assignment
from services.errors import MarksValidationError
from services.marks_service import MarksService


def make_engine(max_marks):
    return MarksService(Assignment(exam_id="exam-1", grader_id="grader-1",
                                   question_numbers=list(max_marks), max_marks_by_question=dict(max_marks)))


def test_marks_are_clamped_and_totalled():
    engine = make_engine({1: 20, 2: 15})

    assert engine.set_question_mark(1, 25) == 20
    assert engine.set_question_mark(2, -3) == 0
    assert engine.total_obtained_marks == 20


@pytest.mark.parametrize("raw", [-100, -0.5, 0, 3.25, 10, 10.01, 1e9])
def test_stored_mark_stays_within_ceiling(raw):
    engine = make_engine({1: 10})
    stored = engine.set_question_mark(1, raw)
    assert 0 <= stored <= 10
    assert stored == max(0, min(raw, 10))


def test_non_numeric_input_counts_as_zero():
    engine = make_engine({1: 10})
    assert engine.set_question_mark(1, "abc") == 0
    assert engine.set_question_mark(1, "") == 0
    assert engine.set_question_mark(1, None) == 0
    assert engine.set_question_mark(1, "7.5") == 7.5


def test_question_without_ceiling_is_only_floored():
    engine = MarksService(Assignment(exam_id="exam-1", grader_id="grader-1", question_numbers=[1]))
    assert engine.set_question_mark(1, 42) == 42
    assert engine.set_question_mark(1, -1) == 0


def test_total_ignores_unassigned_questions():
    engine = make_engine({1: 20, 2: 15})
    engine.set_question_mark(1, 5)
    engine.set_question_mark(9, 50)
    assert engine.total_obtained_marks == 5


def test_total_is_independent_of_edit_order():
    edits = [(1, 12), (2, 9), (3, 2), (7, 30)]
    totals = set()
    for order in itertools.permutations(edits):
        engine = make_engine({1: 20, 2: 15, 3: 5})
        for question, value in order:
            engine.set_question_mark(question, value)
        totals.add(engine.total_obtained_marks)
    assert totals == {23}


def test_untouched_questions_are_saved_as_zero():
    engine = make_engine({3: 10, 4: 10})
    engine.set_question_mark(3, 7)

    rows = engine.build_question_marks("sheet-1", graded_by="grader-1", graded_at="2024-01-01T00:00:00+00:00")

    assert [(r.question_number, r.obtained_marks, r.max_marks) for r in rows] == [(3, 7, 10), (4, 0, 10)]
    assert all(r.answer_sheet_id == "sheet-1" and r.graded_by == "grader-1" for r in rows)


def test_comments_become_remarks():
    engine = make_engine({1: 20, 2: 15})
    engine.set_question_comment(1, "論点の指摘が不十分")
    engine.set_question_comment(2, "よくできています")
    engine.set_question_comment(2, "")

    rows = engine.build_question_marks("sheet-1")

    assert engine.remarks() == "Q1: 論点の指摘が不十分"
    assert rows[0].comment == "論点の指摘が不十分"
    assert rows[1].comment is None


def test_mark_above_unconfigured_ceiling_fails_validation():
    engine = MarksService(Assignment(exam_id="exam-1", grader_id="grader-1", question_numbers=[1]))
    engine.set_question_mark(1, 5)
    with pytest.raises(MarksValidationError):
        engine.build_question_marks("sheet-1")


def test_reset_clears_marks_and_comments():
    engine = make_engine({1: 20})
    engine.set_question_mark(1, 10)
    engine.set_question_comment(1, "memo")
    engine.reset()
    assert engine.total_obtained_marks == 0
    assert engine.remarks() == ""
