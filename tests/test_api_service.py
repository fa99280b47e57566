import json
from unittest import mock

import pytest
import requests

from models.annotation_models import Annotation, AnnotationKind
from models.grading_models import GradingStatus, QuestionMark
from services.api_service import APIService
from services.errors import DeleteError, InsertError, LoadError, SaveError

BASE_URL = "https://grading.example.com/rest/v1"


def response(payload=None, status=200, error=None):
    resp = mock.MagicMock()
    resp.status_code = status if payload is not None else 204
    resp.content = json.dumps(payload).encode() if payload is not None else b""
    resp.json.return_value = payload
    if error is not None:
        resp.raise_for_status.side_effect = error
    return resp


def tick(page):
    return Annotation("sheet-1", page, AnnotationKind.CHECK,
                      {'primitive': 'glyph', 'x': 1, 'y': 2, 'width': 40, 'height': 40, 'stroke_width': 3},
                      (1, 2), "#ffd32f2f", "grader-1")


@pytest.fixture
def service():
    return APIService(BASE_URL + "/", api_key="secret")


def test_replace_deletes_before_inserting(service):
    with mock.patch("requests.request", return_value=response()) as request:
        service.replace_annotations("sheet-1", [tick(1), tick(2)])

    (delete_call, insert_call) = request.call_args_list
    assert delete_call.args == ("DELETE", f"{BASE_URL}/answer_sheet_annotations")
    assert delete_call.kwargs["params"] == {"answer_sheet_id": "eq.sheet-1"}
    assert insert_call.args == ("POST", f"{BASE_URL}/answer_sheet_annotations")
    assert [r["page_number"] for r in insert_call.kwargs["json"]] == [1, 2]
    assert insert_call.kwargs["headers"]["Prefer"] == "return=minimal"
    assert insert_call.kwargs["headers"]["Authorization"] == "Bearer secret"


def test_empty_replace_only_deletes(service):
    with mock.patch("requests.request", return_value=response()) as request:
        service.replace_annotations("sheet-1", [])

    assert [c.args[0] for c in request.call_args_list] == ["DELETE"]


def test_failed_delete_never_inserts(service):
    failure = response(error=requests.exceptions.HTTPError("500 Server Error"))
    with mock.patch("requests.request", return_value=failure) as request:
        with pytest.raises(DeleteError):
            service.replace_annotations("sheet-1", [tick(1)])

    assert request.call_count == 1


def test_failed_insert_raises_insert_error(service):
    failure = response(error=requests.exceptions.HTTPError("409 Conflict"))
    with mock.patch("requests.request", side_effect=[response(), failure]):
        with pytest.raises(InsertError):
            service.replace_annotations("sheet-1", [tick(1)])


def test_list_annotations_filters_and_skips_bad_rows(service):
    rows = [tick(1).to_record(), dict(tick(2).to_record(), annotation_type="unknown")]
    with mock.patch("requests.request", return_value=response(rows)) as request:
        annotations = service.list_annotations("sheet-1")

    assert [a.page_number for a in annotations] == [1]
    assert request.call_args.kwargs["params"] == {"answer_sheet_id": "eq.sheet-1", "order": "page_number.asc"}


def test_network_error_on_load_raises_load_error(service):
    with mock.patch("requests.request", side_effect=requests.exceptions.ConnectionError("offline")):
        with pytest.raises(LoadError):
            service.list_annotations("sheet-1")


def test_get_assignment(service):
    row = {"exam_id": "exam-1", "teacher_id": "grader-1", "assigned_questions": [3, 4],
           "marks_per_question": {"3": 10, "4": 10}}
    with mock.patch("requests.request", return_value=response([row])) as request:
        assignment = service.get_assignment("exam-1", "grader-1")

    assert assignment.question_numbers == [3, 4]
    assert assignment.max_marks(3) == 10
    assert request.call_args.kwargs["params"] == {"exam_id": "eq.exam-1", "teacher_id": "eq.grader-1"}


def test_missing_assignment_is_empty(service):
    with mock.patch("requests.request", return_value=response([])):
        assert service.get_assignment("exam-1", "grader-1").question_numbers == []


def test_save_grading_upserts_questions_then_patches_sheet(service):
    rows = [QuestionMark(3, 7, 10, graded_at="2024-01-01T00:00:00+00:00"), QuestionMark(4, 0, 10)]
    with mock.patch("requests.request", return_value=response()) as request:
        service.save_grading("sheet-1", 7, rows, graded_by="grader-1", remarks="Q3: ok")

    upsert, patch = request.call_args_list
    assert upsert.args == ("POST", f"{BASE_URL}/answer_sheet_questions")
    assert upsert.kwargs["params"] == {"on_conflict": "answer_sheet_id,question_number"}
    assert upsert.kwargs["headers"]["Prefer"] == "resolution=merge-duplicates"
    assert [(r["question_number"], r["answer_sheet_id"], r["graded_by"]) for r in upsert.kwargs["json"]] == [
        (3, "sheet-1", "grader-1"), (4, "sheet-1", "grader-1")]
    assert patch.args == ("PATCH", f"{BASE_URL}/answer_sheets")
    assert patch.kwargs["params"] == {"id": "eq.sheet-1"}
    assert patch.kwargs["json"]["grading_status"] == GradingStatus.COMPLETED.value
    assert patch.kwargs["json"]["obtained_marks"] == 7
    assert patch.kwargs["json"]["graded_at"] == "2024-01-01T00:00:00+00:00"


def test_save_grading_failure_raises_save_error(service):
    failure = response(error=requests.exceptions.HTTPError("500 Server Error"))
    with mock.patch("requests.request", return_value=failure):
        with pytest.raises(SaveError):
            service.save_grading("sheet-1", 0, [QuestionMark(1, 0, 10)], graded_by="grader-1")


def test_list_answer_sheets_for_grader(service):
    assignments = [{"exam_id": "exam-2"}, {"exam_id": "exam-1"}]
    sheets = [{"id": "sheet-1", "exam_id": "exam-1", "student_id": "s1", "grading_status": "pending"}]
    with mock.patch("requests.request", side_effect=[response(assignments), response(sheets)]) as request:
        result = service.list_answer_sheets("grader-1", GradingStatus.PENDING)

    assert [s.id for s in result] == ["sheet-1"]
    params = request.call_args_list[1].kwargs["params"]
    assert params["exam_id"] == "in.(exam-1,exam-2)"
    assert params["grading_status"] == "eq.pending"


def test_grader_without_assignments_has_no_sheets(service):
    with mock.patch("requests.request", return_value=response([])) as request:
        assert service.list_answer_sheets("grader-1") == []
    assert request.call_count == 1
