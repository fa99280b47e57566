# services/api_service.py
import logging
from typing import Any, Dict, List, Optional

import requests

from models.annotation_models import Annotation, AnnotationFormatError
from models.grading_models import AnswerSheet, Assignment, GradingStatus, QuestionMark
from services.base_service import BaseService
from services.errors import DeleteError, InsertError, LoadError, SaveError
from utils.api_utils import APIUtils

logger = logging.getLogger(__name__)


class APIService(BaseService):
    """PostgREST互換のREST APIを介して採点データを永続化するサービスクラス。

    各テーブルは `{base_url}/{table}` のエンドポイントとして公開され、
    絞り込みはクエリパラメータ（例: `answer_sheet_id=eq.<id>`）で指定します。
    """

    ANNOTATIONS = "answer_sheet_annotations"
    QUESTIONS = "answer_sheet_questions"
    ASSIGNMENTS = "exam_teacher_assignments"
    SHEETS = "answer_sheets"

    def __init__(self, api_base_url: str, api_key: str = "", timeout: float = 30) -> None:
        """APIServiceのコンストラクタ。

        Args:
            api_base_url (str): 接続先APIのベースURL。
            api_key (str): 認証に使用するAPIキー。
            timeout (float): リクエストのタイムアウト秒数。
        """
        self.api_config: Dict[str, Any] = {
            "base_url": api_base_url.rstrip("/"),
            "api_key": api_key,
            "timeout": timeout,
        }

    def _url(self, table: str) -> str:
        return f"{self.api_config['base_url']}/{table}"

    def _request(self, table: str, method: str = "GET", data: Any = None,
                 params: Optional[Dict[str, str]] = None, prefer: Optional[str] = None) -> Any:
        headers = APIUtils.build_headers(self.api_config["api_key"], prefer=prefer)
        return APIUtils.make_api_request(self._url(table), method=method, data=data, params=params,
                                         headers=headers, timeout=self.api_config["timeout"])

    def _select(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        try:
            rows = self._request(table, "GET", params=params)
        except requests.exceptions.RequestException as e:
            raise LoadError(f"{table} の取得に失敗しました: {e}") from e
        return rows or []

    # --- Annotations ---
    def list_annotations(self, sheet_id: str) -> List[Annotation]:
        rows = self._select(self.ANNOTATIONS, {"answer_sheet_id": f"eq.{sheet_id}", "order": "page_number.asc"})
        annotations = []
        for row in rows:
            try:
                annotations.append(Annotation.from_record(row))
            except AnnotationFormatError as e:
                logger.warning("skipping annotation %s of sheet %s: %s", row.get('id'), sheet_id, e)
        return annotations

    def replace_annotations(self, sheet_id: str, annotations: List[Annotation]) -> None:
        try:
            self._request(self.ANNOTATIONS, "DELETE", params={"answer_sheet_id": f"eq.{sheet_id}"})
        except requests.exceptions.RequestException as e:
            raise DeleteError(f"注釈の削除に失敗しました (sheet={sheet_id}): {e}") from e
        if not annotations:
            return

        records = []
        for annotation in annotations:
            record = annotation.to_record()
            record['answer_sheet_id'] = sheet_id
            records.append(record)
        try:
            self._request(self.ANNOTATIONS, "POST", data=records, prefer="return=minimal")
        except requests.exceptions.RequestException as e:
            raise InsertError(f"注釈の挿入に失敗しました (sheet={sheet_id}): {e}") from e

    # --- Assignments ---
    def get_assignment(self, exam_id: str, grader_id: str) -> Assignment:
        rows = self._select(self.ASSIGNMENTS, {"exam_id": f"eq.{exam_id}", "teacher_id": f"eq.{grader_id}"})
        return Assignment.from_record(rows[0] if rows else None, exam_id, grader_id)

    # --- Grading ---
    def save_grading(self, sheet_id: str, total_marks: float, question_marks: List[QuestionMark],
                     *, graded_by: Optional[str] = None, remarks: Optional[str] = None) -> None:
        rows = []
        for mark in question_marks:
            row = mark.to_record()
            row['answer_sheet_id'] = sheet_id
            row['graded_by'] = row.get('graded_by') or graded_by
            rows.append(row)
        sheet_update = {
            'obtained_marks': total_marks,
            'graded_by': graded_by,
            'grading_status': GradingStatus.COMPLETED.value,
            'remarks': remarks,
        }
        graded_at = next((m.graded_at for m in question_marks if m.graded_at), None)
        if graded_at:
            sheet_update['graded_at'] = graded_at
        try:
            if rows:
                self._request(self.QUESTIONS, "POST", data=rows,
                              params={"on_conflict": "answer_sheet_id,question_number"},
                              prefer="resolution=merge-duplicates")
            self._request(self.SHEETS, "PATCH", data=sheet_update, params={"id": f"eq.{sheet_id}"})
        except requests.exceptions.RequestException as e:
            raise SaveError(f"採点結果の保存に失敗しました (sheet={sheet_id}): {e}") from e

    def list_question_marks(self, sheet_id: str) -> List[QuestionMark]:
        rows = self._select(self.QUESTIONS, {"answer_sheet_id": f"eq.{sheet_id}", "order": "question_number.asc"})
        return [QuestionMark.from_record(r) for r in rows]

    # --- Answer sheets ---
    def list_answer_sheets(self, grader_id: Optional[str] = None,
                           status: Optional[GradingStatus] = None) -> List[AnswerSheet]:
        params = {"order": "upload_date.desc"}
        if grader_id is not None:
            assignments = self._select(self.ASSIGNMENTS, {"teacher_id": f"eq.{grader_id}", "select": "exam_id"})
            exam_ids = sorted({str(a['exam_id']) for a in assignments if a.get('exam_id') is not None})
            if not exam_ids:
                return []
            params["exam_id"] = f"in.({','.join(exam_ids)})"
        if status is not None:
            params["grading_status"] = f"eq.{status.value}"
        return [AnswerSheet.from_record(r) for r in self._select(self.SHEETS, params)]

    def get_answer_sheet(self, sheet_id: str) -> Optional[AnswerSheet]:
        rows = self._select(self.SHEETS, {"id": f"eq.{sheet_id}"})
        return AnswerSheet.from_record(rows[0]) if rows else None
