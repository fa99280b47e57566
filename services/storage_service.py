# services/storage_service.py
import json
import logging
import os
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from models.annotation_models import Annotation, AnnotationFormatError
from models.grading_models import AnswerSheet, Assignment, GradingStatus, QuestionMark
from services.base_service import BaseService
from services.errors import DeleteError, InsertError, LoadError, PersistenceError, SaveError

logger = logging.getLogger(__name__)


class StorageService(BaseService):
    """ローカルファイルシステムへの採点データの永続化を管理するサービスクラス。

    テーブルごとに1つのJSONファイル（レコードのリスト）を使用します。
    保存ワーカースレッドとUIスレッドの両方から呼ばれるため、ファイル操作はロックで直列化します。
    """

    ANNOTATIONS_FILE = "answer_sheet_annotations.json"
    QUESTIONS_FILE = "answer_sheet_questions.json"
    ASSIGNMENTS_FILE = "exam_teacher_assignments.json"
    SHEETS_FILE = "answer_sheets.json"

    def __init__(self, base_path: str = "data") -> None:
        """StorageServiceのコンストラクタ。

        Args:
            base_path (str): データを保存する基準ディレクトリのパス。
                             存在しない場合は自動的に作成されます。
        """
        self.base_path = base_path
        os.makedirs(self.base_path, exist_ok=True)
        self._lock = threading.RLock()

    def get_path(self, file_name: str) -> str:
        """ベースパスとファイル名を結合して完全なファイルパスを取得する。"""
        return os.path.join(self.base_path, file_name)

    def save_json(self, file_name: str, data: List[Dict[str, Any]]) -> None:
        """レコードのリストをJSONファイルとして保存する。

        一時ファイルに書き出してから置き換えるため、途中で失敗しても既存ファイルは壊れません。

        Raises:
            PersistenceError: 書き込みに失敗した場合。
        """
        file_path = self.get_path(file_name)
        tmp_path = file_path + ".tmp"
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False, indent=4)
            os.replace(tmp_path, file_path)
        except OSError as e:
            raise PersistenceError(f"ファイル保存中にエラーが発生しました: {file_path}, {e}") from e
        logger.debug("saved %d record(s) to %s", len(data), file_path)

    def load_json(self, file_name: str) -> List[Dict[str, Any]]:
        """JSONファイルからレコードのリストを読み込む。ファイルが存在しない場合は空のリスト。

        Raises:
            LoadError: 読み込みまたは解析に失敗した場合。
        """
        file_path = self.get_path(file_name)
        if not os.path.exists(file_path):
            return []
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise LoadError(f"ファイル読み込み中にエラーが発生しました: {file_path}, {e}") from e
        if not isinstance(data, list):
            raise LoadError(f"レコードのリストではありません: {file_path}")
        return data

    # --- Annotations ---
    def list_annotations(self, sheet_id: str) -> List[Annotation]:
        with self._lock:
            records = [r for r in self.load_json(self.ANNOTATIONS_FILE) if r.get('answer_sheet_id') == sheet_id]
        annotations = []
        for record in records:
            try:
                annotations.append(Annotation.from_record(record))
            except AnnotationFormatError as e:
                logger.warning("skipping annotation %s of sheet %s: %s", record.get('id'), sheet_id, e)
        return annotations

    def replace_annotations(self, sheet_id: str, annotations: List[Annotation]) -> None:
        with self._lock:
            self.delete_annotations(sheet_id)
            if not annotations:
                return
            self.insert_annotations(sheet_id, annotations)

    def delete_annotations(self, sheet_id: str) -> None:
        """答案用紙の注釈をすべて削除する。

        Raises:
            DeleteError: 削除に失敗した場合。
        """
        with self._lock:
            try:
                remaining = [r for r in self.load_json(self.ANNOTATIONS_FILE) if r.get('answer_sheet_id') != sheet_id]
                self.save_json(self.ANNOTATIONS_FILE, remaining)
            except PersistenceError as e:
                raise DeleteError(f"注釈の削除に失敗しました (sheet={sheet_id}): {e}") from e

    def insert_annotations(self, sheet_id: str, annotations: List[Annotation]) -> None:
        """注釈を一括挿入する。IDのない注釈には新しいIDを割り当てる。

        Raises:
            InsertError: 挿入に失敗した場合。
        """
        now = _now_iso()
        new_records = []
        for annotation in annotations:
            record = annotation.to_record()
            record['answer_sheet_id'] = sheet_id
            record.setdefault('id', str(uuid.uuid4()))
            record.setdefault('created_at', now)
            new_records.append(record)
        with self._lock:
            try:
                records = self.load_json(self.ANNOTATIONS_FILE)
                self.save_json(self.ANNOTATIONS_FILE, records + new_records)
            except PersistenceError as e:
                raise InsertError(f"注釈の挿入に失敗しました (sheet={sheet_id}): {e}") from e

    # --- Assignments ---
    def get_assignment(self, exam_id: str, grader_id: str) -> Assignment:
        with self._lock:
            records = self.load_json(self.ASSIGNMENTS_FILE)
        record = next((r for r in records
                       if r.get('exam_id') == exam_id and r.get('teacher_id') == grader_id), None)
        return Assignment.from_record(record, exam_id, grader_id)

    def set_assignment(self, assignment: Assignment) -> None:
        """設問割り当てを登録または更新する。"""
        record = {
            'exam_id': assignment.exam_id,
            'teacher_id': assignment.grader_id,
            'assigned_questions': list(assignment.question_numbers),
            'marks_per_question': {str(q): m for q, m in assignment.max_marks_by_question.items()},
        }
        with self._lock:
            records = [r for r in self.load_json(self.ASSIGNMENTS_FILE)
                       if not (r.get('exam_id') == assignment.exam_id and r.get('teacher_id') == assignment.grader_id)]
            self.save_json(self.ASSIGNMENTS_FILE, records + [record])

    # --- Grading ---
    def save_grading(self, sheet_id: str, total_marks: float, question_marks: List[QuestionMark],
                     *, graded_by: Optional[str] = None, remarks: Optional[str] = None) -> None:
        graded_at = _now_iso()
        with self._lock:
            try:
                sheets = self.load_json(self.SHEETS_FILE)
                sheet = next((s for s in sheets if s.get('id') == sheet_id), None)
                if sheet is None:
                    raise SaveError(f"答案用紙が見つかりません: {sheet_id}")

                keys = {q.question_number for q in question_marks}
                rows = [r for r in self.load_json(self.QUESTIONS_FILE)
                        if not (r.get('answer_sheet_id') == sheet_id and r.get('question_number') in keys)]
                for mark in question_marks:
                    row = mark.to_record()
                    row['answer_sheet_id'] = sheet_id
                    row['graded_by'] = row.get('graded_by') or graded_by
                    row['graded_at'] = row.get('graded_at') or graded_at
                    row['id'] = str(uuid.uuid4())
                    rows.append(row)
                self.save_json(self.QUESTIONS_FILE, rows)

                sheet.update({
                    'obtained_marks': total_marks,
                    'graded_by': graded_by,
                    'graded_at': graded_at,
                    'grading_status': GradingStatus.COMPLETED.value,
                    'remarks': remarks,
                })
                self.save_json(self.SHEETS_FILE, sheets)
            except SaveError:
                raise
            except PersistenceError as e:
                raise SaveError(f"採点結果の保存に失敗しました (sheet={sheet_id}): {e}") from e

    def list_question_marks(self, sheet_id: str) -> List[QuestionMark]:
        with self._lock:
            rows = [r for r in self.load_json(self.QUESTIONS_FILE) if r.get('answer_sheet_id') == sheet_id]
        marks = [QuestionMark.from_record(r) for r in rows]
        return sorted(marks, key=lambda m: m.question_number)

    # --- Answer sheets ---
    def list_answer_sheets(self, grader_id: Optional[str] = None,
                           status: Optional[GradingStatus] = None) -> List[AnswerSheet]:
        with self._lock:
            sheets = [AnswerSheet.from_record(r) for r in self.load_json(self.SHEETS_FILE)]
            assignments = self.load_json(self.ASSIGNMENTS_FILE)
        if grader_id is not None:
            exams = {a.get('exam_id') for a in assignments if a.get('teacher_id') == grader_id}
            sheets = [s for s in sheets if s.exam_id in exams]
        if status is not None:
            sheets = [s for s in sheets if s.grading_status == status]
        return sheets

    def get_answer_sheet(self, sheet_id: str) -> Optional[AnswerSheet]:
        with self._lock:
            record = next((r for r in self.load_json(self.SHEETS_FILE) if r.get('id') == sheet_id), None)
        return AnswerSheet.from_record(record) if record else None

    def add_answer_sheet(self, sheet: AnswerSheet) -> None:
        """答案用紙を登録または置き換える。"""
        with self._lock:
            sheets = [s for s in self.load_json(self.SHEETS_FILE) if s.get('id') != sheet.id]
            self.save_json(self.SHEETS_FILE, sheets + [sheet.to_record()])


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
