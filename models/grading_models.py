# models/grading_models.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class GradingStatus(str, Enum):
    """答案用紙の採点状態。"""
    PENDING = "pending"
    COMPLETED = "completed"


@dataclass
class Assignment:
    """試験と採点者の組に対して割り当てられた設問と配点を表現するデータモデル。

    Attributes:
        exam_id (str): 試験ID。
        grader_id (str): 採点者ID。
        question_numbers (List[int]): 採点者が担当する設問番号（順序付き）。
        max_marks_by_question (Dict[int, float]): 設問番号ごとの満点。
    """
    exam_id: str
    grader_id: str
    question_numbers: List[int] = field(default_factory=list)
    max_marks_by_question: Dict[int, float] = field(default_factory=dict)

    def max_marks(self, question_number: int) -> Optional[float]:
        """設問の満点を返す。設定がない場合はNone。"""
        return self.max_marks_by_question.get(question_number)

    def is_assigned(self, question_number: int) -> bool:
        return question_number in self.question_numbers

    @property
    def total_max_marks(self) -> float:
        """担当設問の満点の合計。"""
        return sum(self.max_marks_by_question.get(q, 0) for q in self.question_numbers)

    @classmethod
    def from_record(cls, record: Optional[Dict[str, Any]], exam_id: str, grader_id: str) -> "Assignment":
        """exam_teacher_assignmentsの行から割り当てを復元する。行がない場合は空の割り当て。"""
        if not record:
            return cls(exam_id=exam_id, grader_id=grader_id)
        questions = [int(q) for q in record.get('assigned_questions') or []]
        raw_marks = record.get('marks_per_question') or {}
        # JSON経由のキーは文字列になる
        max_marks = {int(q): float(m) for q, m in raw_marks.items() if m is not None}
        return cls(exam_id=exam_id, grader_id=grader_id,
                   question_numbers=questions, max_marks_by_question=max_marks)


@dataclass
class QuestionMark:
    """1つの答案用紙の1設問に対する採点結果。

    Attributes:
        question_number (int): 設問番号。
        obtained_marks (float): 得点（0以上、満点以下）。
        max_marks (float): 割り当てから取得した満点。
        comment (Optional[str]): 任意のコメント。
        answer_sheet_id (str): 答案用紙ID。
        graded_by (Optional[str]): 採点者ID。
        graded_at (Optional[str]): 採点日時（ISO 8601形式）。
        sub_question (Optional[str]): 小問ラベル（閲覧表示用）。
    """
    question_number: int
    obtained_marks: float
    max_marks: float
    comment: Optional[str] = None
    answer_sheet_id: str = ""
    graded_by: Optional[str] = None
    graded_at: Optional[str] = None
    sub_question: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        """answer_sheet_questionsの行に変換する。"""
        return {
            'answer_sheet_id': self.answer_sheet_id,
            'question_number': self.question_number,
            'obtained_marks': self.obtained_marks,
            'max_marks': self.max_marks,
            'graded_by': self.graded_by,
            'graded_at': self.graded_at,
            'comments': self.comment,
            'sub_question': self.sub_question,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "QuestionMark":
        return cls(
            question_number=int(record['question_number']),
            obtained_marks=float(record.get('obtained_marks') or 0.0),
            max_marks=float(record.get('max_marks') or 0.0),
            comment=record.get('comments'),
            answer_sheet_id=str(record.get('answer_sheet_id', '')),
            graded_by=record.get('graded_by'),
            graded_at=record.get('graded_at'),
            sub_question=record.get('sub_question'),
        )


@dataclass
class AnswerSheet:
    """採点対象の答案用紙を表現するデータモデル。

    Attributes:
        id (str): 答案用紙ID。
        exam_id (str): 試験ID。
        student_id (str): 受験者ID。
        file_ref (str): 答案PDFへの参照（パス、URL、ストレージキーなど）。
        grading_status (GradingStatus): 採点状態。
        obtained_marks (Optional[float]): 合計得点。
        total_marks (Optional[float]): 試験の満点。
    """
    id: str
    exam_id: str
    student_id: str
    file_ref: str = ""
    grading_status: GradingStatus = GradingStatus.PENDING
    obtained_marks: Optional[float] = None
    total_marks: Optional[float] = None
    graded_by: Optional[str] = None
    graded_at: Optional[str] = None
    remarks: Optional[str] = None
    student_name: str = ""
    exam_name: str = ""
    subject_name: str = ""
    upload_date: Optional[str] = None

    def display_name(self) -> str:
        label = self.student_name or self.student_id
        if self.exam_name:
            return f"{label} - {self.subject_name + ' ' if self.subject_name else ''}{self.exam_name}"
        return label

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'exam_id': self.exam_id,
            'student_id': self.student_id,
            'file_url': self.file_ref,
            'grading_status': self.grading_status.value,
            'obtained_marks': self.obtained_marks,
            'total_marks': self.total_marks,
            'graded_by': self.graded_by,
            'graded_at': self.graded_at,
            'remarks': self.remarks,
            'student_name': self.student_name,
            'exam_name': self.exam_name,
            'subject_name': self.subject_name,
            'upload_date': self.upload_date,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "AnswerSheet":
        return cls(
            id=str(record['id']),
            exam_id=str(record.get('exam_id', '')),
            student_id=str(record.get('student_id', '')),
            file_ref=record.get('file_url') or '',
            grading_status=GradingStatus(record.get('grading_status') or GradingStatus.PENDING.value),
            obtained_marks=record.get('obtained_marks'),
            total_marks=record.get('total_marks'),
            graded_by=record.get('graded_by'),
            graded_at=record.get('graded_at'),
            remarks=record.get('remarks'),
            student_name=record.get('student_name') or '',
            exam_name=record.get('exam_name') or '',
            subject_name=record.get('subject_name') or '',
            upload_date=record.get('upload_date'),
        )
