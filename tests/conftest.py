import os

# QApplicationより前に設定する必要がある
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import fitz
import pytest
from PyQt6.QtWidgets import QApplication

from models.grading_models import AnswerSheet, Assignment
from services.storage_service import StorageService


@pytest.fixture(scope="session")
def qapp():
    app = QApplication.instance() or QApplication([])
    yield app


@pytest.fixture
def pdf_path(tmp_path):
    """A4サイズ・3ページの答案PDFを生成する。"""
    path = tmp_path / "answer.pdf"
    doc = fitz.open()
    for number in range(1, 4):
        page = doc.new_page(width=595, height=842)
        page.insert_text((72, 72), f"Answer page {number}")
    doc.save(str(path))
    doc.close()
    return str(path)


@pytest.fixture
def storage(tmp_path):
    return StorageService(str(tmp_path / "data"))


@pytest.fixture
def sheet(storage, pdf_path):
    """割り当て（Q1: 20点, Q2: 15点）付きで登録された答案用紙。"""
    answer_sheet = AnswerSheet(id="sheet-1", exam_id="exam-1", student_id="student-1",
                               file_ref=pdf_path, total_marks=100.0, student_name="山田 太郎")
    storage.add_answer_sheet(answer_sheet)
    storage.set_assignment(Assignment(exam_id="exam-1", grader_id="grader-1",
                                      question_numbers=[1, 2], max_marks_by_question={1: 20.0, 2: 15.0}))
    return answer_sheet
