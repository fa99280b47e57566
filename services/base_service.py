# services/base_service.py
from abc import ABC, abstractmethod
from typing import List, Optional

from models.annotation_models import Annotation
from models.grading_models import AnswerSheet, Assignment, GradingStatus, QuestionMark


class BaseService(ABC):
    """
    採点データの永続化を担うすべてのサービスクラスの基底となる抽象クラス（ABC）。

    注釈の全置換保存、設問割り当ての取得、採点結果の保存といった、
    採点コアが必要とする永続化インターフェースを定義します。
    具象クラスはローカルファイルやREST APIなど、保存先ごとにこれらを実装します。
    失敗した場合は services.errors.PersistenceError のサブクラスを送出します。
    """

    @abstractmethod
    def list_annotations(self, sheet_id: str) -> List[Annotation]:
        """
        答案用紙に保存されている全ページの注釈を取得する。

        解釈できないレコードはスキップされます。

        Args:
            sheet_id (str): 答案用紙ID。

        Returns:
            List[Annotation]: 保存済みの注釈。
        """

    @abstractmethod
    def replace_annotations(self, sheet_id: str, annotations: List[Annotation]) -> None:
        """
        答案用紙の注釈を全置換する。

        既存の注釈をすべて削除してから新しい注釈を一括挿入します。
        注釈が空の場合も削除は行われ、挿入は省略されます。
        削除に失敗した場合は挿入を行わずに例外を送出します。

        Args:
            sheet_id (str): 答案用紙ID。
            annotations (List[Annotation]): 保存する注釈。
        """

    @abstractmethod
    def get_assignment(self, exam_id: str, grader_id: str) -> Assignment:
        """
        試験と採点者の組に対する設問割り当てを取得する。

        Args:
            exam_id (str): 試験ID。
            grader_id (str): 採点者ID。

        Returns:
            Assignment: 設問割り当て。存在しない場合は空の割り当て。
        """

    @abstractmethod
    def save_grading(self, sheet_id: str, total_marks: float, question_marks: List[QuestionMark],
                     *, graded_by: Optional[str] = None, remarks: Optional[str] = None) -> None:
        """
        設問別の得点を書き込み、答案用紙の合計点と採点状態（completed）を更新する。

        Args:
            sheet_id (str): 答案用紙ID。
            total_marks (float): 合計得点。
            question_marks (List[QuestionMark]): 設問別の採点結果。
            graded_by (Optional[str]): 採点者ID。
            remarks (Optional[str]): 答案用紙の備考欄に書き込むコメント。
        """

    @abstractmethod
    def list_question_marks(self, sheet_id: str) -> List[QuestionMark]:
        """答案用紙の設問別採点結果を設問番号順に取得する。"""

    @abstractmethod
    def list_answer_sheets(self, grader_id: Optional[str] = None,
                           status: Optional[GradingStatus] = None) -> List[AnswerSheet]:
        """答案用紙の一覧を取得する。採点者と採点状態で絞り込める。"""

    @abstractmethod
    def get_answer_sheet(self, sheet_id: str) -> Optional[AnswerSheet]:
        """答案用紙を1件取得する。存在しない場合はNone。"""
