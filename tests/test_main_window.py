import pytest
from PyQt6.QtCore import Qt
from PyQt6.QtGui import QCloseEvent
from PyQt6.QtWidgets import QMessageBox

from models.grading_models import AnswerSheet
from models.session_models import SessionState
from services.errors import DeleteError
from ui.handlers.tool_handler import Tool
from ui.main_window import MainWindow
from utils.app_config import AppConfig


@pytest.fixture
def window(qapp, storage, sheet, tmp_path, monkeypatch):
    monkeypatch.setattr(QMessageBox, "question", lambda *args, **kwargs: QMessageBox.StandardButton.Yes)
    main_window = MainWindow(AppConfig(storage_dir=str(tmp_path / "data"), grader_id="grader-1"), service=storage)
    yield main_window
    main_window.close()


def test_sheet_list_shows_assigned_sheets(window, sheet):
    assert window.sheet_list.count() == 1
    assert "未採点" in window.sheet_list.item(0).text()


def test_opening_a_sheet_builds_marks_panel(window, sheet):
    window.sheet_list.setCurrentRow(0)
    window.open_selected_sheet()

    assert window.grading_handler.current_sheet.id == sheet.id
    assert sorted(window.marks_panel.mark_inputs) == [1, 2]
    assert window.page_label.text().strip() == "1 / 3"
    assert window.marks_panel.submit_button.isEnabled()


def test_mark_entry_is_clamped_and_totalled(window):
    window.sheet_list.setCurrentRow(0)
    window.open_selected_sheet()
    mark_input = window.marks_panel.mark_inputs[1]

    mark_input.setText("25")
    mark_input.editingFinished.emit()

    assert mark_input.text() == "20"
    assert window.marks_panel.total_label.text() == "合計（担当分）: 20 / 35"
    assert window.grading_handler.state == SessionState.DIRTY


def test_tool_actions_select_tools(window):
    window.tool_actions[Tool.OVAL].trigger()
    assert window.tool_handler.current_tool == Tool.OVAL
    window.tool_handler.select_tool("pen")
    assert window.tool_actions[Tool.PEN].isChecked()


def select_row(window, sheet_id):
    row = next(row for row in range(window.sheet_list.count())
               if window.sheet_list.item(row).data(Qt.ItemDataRole.UserRole) == sheet_id)
    window.sheet_list.setCurrentRow(row)


def failed_save(window, storage, sheet_id, qapp, monkeypatch):
    def failing_replace(sheet_id, annotations):
        raise DeleteError("connection reset")

    monkeypatch.setattr(storage, "replace_annotations", failing_replace)
    monkeypatch.setattr(QMessageBox, "warning", lambda *args, **kwargs: QMessageBox.StandardButton.Ok)
    select_row(window, sheet_id)
    window.open_selected_sheet()
    window.grading_handler.set_question_mark(1, 12)
    window.submit_grading()
    assert window.grading_handler.wait_for_save(10000)
    for _ in range(100):
        qapp.processEvents()
        if not window.grading_handler.is_saving():
            break
    assert window.grading_handler.state == SessionState.FAILED


def test_failed_save_asks_before_switching_or_closing(window, storage, sheet, pdf_path, qapp, monkeypatch):
    storage.add_answer_sheet(AnswerSheet(id="sheet-2", exam_id="exam-1", student_id="student-2", file_ref=pdf_path))
    window.refresh_sheet_list()
    failed_save(window, storage, sheet.id, qapp, monkeypatch)
    asked = []

    def decline(*args, **kwargs):
        asked.append(args[2])
        return QMessageBox.StandardButton.No

    monkeypatch.setattr(QMessageBox, "question", decline)
    select_row(window, "sheet-2")
    window.open_selected_sheet()

    assert len(asked) == 1
    assert window.grading_handler.current_sheet.id == sheet.id
    assert window.grading_handler.total_obtained_marks == 12

    event = QCloseEvent()
    window.closeEvent(event)

    assert len(asked) == 2
    assert not event.isAccepted()
    assert window.grading_handler.state == SessionState.FAILED
    monkeypatch.setattr(QMessageBox, "question", lambda *args, **kwargs: QMessageBox.StandardButton.Yes)


def test_reopening_the_open_sheet_keeps_edits(window, sheet, monkeypatch):
    window.sheet_list.setCurrentRow(0)
    window.open_selected_sheet()
    window.grading_handler.set_question_mark(2, 9)
    asked = []
    monkeypatch.setattr(QMessageBox, "question", lambda *args, **kwargs: asked.append(args) or QMessageBox.StandardButton.Yes)

    window.open_selected_sheet()

    assert asked == []
    assert window.grading_handler.state == SessionState.DIRTY
    assert window.grading_handler.total_obtained_marks == 9
