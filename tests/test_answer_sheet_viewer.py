from PyQt6.QtWidgets import QLabel

from models.annotation_models import Annotation, AnnotationKind
from models.grading_models import AnswerSheet, QuestionMark
from ui.dialogs.answer_sheet_viewer_dialog import AnswerSheetViewerDialog, group_question_marks


def graded(storage, sheet):
    storage.replace_annotations(sheet.id, [
        Annotation(sheet.id, 1, AnnotationKind.CIRCLE,
                   {'primitive': 'ellipse', 'x': 100, 'y': 100, 'rx': 20, 'ry': 20, 'stroke_width': 3},
                   (80, 80), "#ffd32f2f", "grader-1"),
        Annotation(sheet.id, 2, AnnotationKind.CHECK,
                   {'primitive': 'glyph', 'x': 10, 'y': 10, 'width': 40, 'height': 40, 'stroke_width': 3},
                   (10, 10), "#ffd32f2f", "grader-1"),
    ])
    storage.save_grading(sheet.id, 25.5, [
        QuestionMark(1, 18, 20, comment="論述が丁寧"),
        QuestionMark(2, 7.5, 15),
    ], graded_by="grader-1")
    return storage.get_answer_sheet(sheet.id)


def test_viewer_shows_read_only_annotations_and_marks(qapp, storage, sheet):
    dialog = AnswerSheetViewerDialog(storage, graded(storage, sheet))

    assert dialog.load()

    assert dialog.page_label.text() == "1 / 3"
    assert not dialog.prev_button.isEnabled()
    assert dialog.next_button.isEnabled()
    surface = dialog.viewport_handler.current_surface()
    assert not surface.interactive
    (circle,) = surface.items()
    assert not circle.interactive
    assert dialog.score_label.text() == "得点: 25.50 / 100.00"
    texts = [label.text() for label in dialog.marks_container.findChildren(QLabel)]
    assert any("Q1" in text and "18.00 / 20.00" in text for text in texts)
    assert "論述が丁寧" in texts

    dialog.next_button.click()
    assert dialog.page_label.text() == "2 / 3"
    assert len(dialog.viewport_handler.current_surface().items()) == 1
    dialog.close()


def test_viewer_for_ungraded_sheet(qapp, storage, sheet):
    dialog = AnswerSheetViewerDialog(storage, sheet)

    assert dialog.load()

    assert dialog.score_label.text() == "未採点"
    texts = [label.text() for label in dialog.marks_container.findChildren(QLabel)]
    assert "設問別の得点はまだありません" in texts
    dialog.close()


def test_viewer_reports_missing_document(qapp, storage):
    sheet = AnswerSheet(id="sheet-x", exam_id="exam-1", student_id="student-x", file_ref="/no/such/file.pdf")

    dialog = AnswerSheetViewerDialog(storage, sheet)

    assert not dialog.load()
    assert not dialog.status_label.isHidden()
    dialog.close()


def test_question_marks_are_grouped_by_question():
    marks = [QuestionMark(2, 1, 5, sub_question="b"), QuestionMark(1, 3, 5), QuestionMark(2, 2, 5, sub_question="a")]

    grouped = group_question_marks(marks)

    assert list(grouped) == [1, 2]
    assert [m.sub_question for m in grouped[2]] == ["a", "b"]
