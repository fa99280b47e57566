# services/marks_service.py
import math
from typing import Dict, List, Optional, Union

from models.grading_models import Assignment, QuestionMark
from services.errors import MarksValidationError


class MarksService:
    """
    設問別の得点を割り当ての満点でクランプし、担当設問のみを合計する集計エンジン。

    得点とコメントは設問番号をキーとする辞書で保持され、合計点は現在の辞書から
    同期的に再計算されます。割り当てに含まれない設問の得点は合計に含まれません。
    """

    def __init__(self, assignment: Optional[Assignment] = None) -> None:
        """
        MarksServiceのコンストラクタ。

        Args:
            assignment (Optional[Assignment]): 採点者の設問割り当て。読み取り専用として扱う。
        """
        self.assignment: Assignment = assignment or Assignment(exam_id="", grader_id="")
        self.marks: Dict[int, float] = {}
        self.comments: Dict[int, str] = {}

    def reset(self, assignment: Optional[Assignment] = None) -> None:
        """得点とコメントを空に戻す。割り当てが渡された場合は差し替える。"""
        if assignment is not None:
            self.assignment = assignment
        self.marks.clear()
        self.comments.clear()

    @property
    def assigned_questions(self) -> List[int]:
        return list(self.assignment.question_numbers)

    def set_question_mark(self, question_number: int, raw_value: Union[float, int, str, None]) -> float:
        """
        設問の得点を [0, 満点] にクランプして保存する。

        満点が設定されていない設問は上限なしとして扱います（0未満のみ補正）。
        数値として解釈できない入力は0とみなします。

        Args:
            question_number (int): 設問番号。
            raw_value: 入力された得点。

        Returns:
            float: 保存された得点。
        """
        value = _to_number(raw_value)
        ceiling = self.assignment.max_marks(question_number)
        if ceiling is not None:
            value = min(value, ceiling)
        value = max(0.0, value)
        self.marks[question_number] = value
        return value

    def get_question_mark(self, question_number: int) -> Optional[float]:
        return self.marks.get(question_number)

    def set_question_comment(self, question_number: int, comment: str) -> None:
        """設問のコメントを保存する。空文字の場合は削除する。"""
        if comment:
            self.comments[question_number] = comment
        else:
            self.comments.pop(question_number, None)

    @property
    def total_obtained_marks(self) -> float:
        """担当設問に限定した得点の合計。"""
        assigned = set(self.assignment.question_numbers)
        return sum(mark for question, mark in self.marks.items() if question in assigned)

    @property
    def total_max_marks(self) -> float:
        return self.assignment.total_max_marks

    def remarks(self) -> str:
        """答案用紙の備考欄用に「Q番号: コメント」を改行で連結した文字列を返す。"""
        return "\n".join(f"Q{q}: {c}" for q, c in self.comments.items())

    def build_question_marks(self, sheet_id: str, graded_by: Optional[str] = None,
                             graded_at: Optional[str] = None) -> List[QuestionMark]:
        """
        担当設問ごとに1行ずつ採点結果を生成する。

        未入力の設問は0点、満点は割り当ての値（未設定なら0）を使用します。

        Raises:
            MarksValidationError: 得点が満点を超えている設問がある場合。
        """
        rows: List[QuestionMark] = []
        for question_number in self.assignment.question_numbers:
            obtained = self.marks.get(question_number, 0.0)
            max_marks = self.assignment.max_marks(question_number) or 0.0
            if obtained > max_marks:
                raise MarksValidationError(
                    f"Q{question_number}の得点 {obtained} が満点 {max_marks} を超えています"
                )
            rows.append(QuestionMark(
                question_number=question_number,
                obtained_marks=obtained,
                max_marks=max_marks,
                comment=self.comments.get(question_number),
                answer_sheet_id=sheet_id,
                graded_by=graded_by,
                graded_at=graded_at,
            ))
        return rows


def _to_number(raw_value: Union[float, int, str, None]) -> float:
    try:
        value = float(raw_value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return value
