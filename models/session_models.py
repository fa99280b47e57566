# models/session_models.py
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from models.grading_models import AnswerSheet, Assignment


class SessionState(str, Enum):
    """採点セッションの状態。"""
    UNSELECTED = "unselected"
    LOADED = "loaded"
    DIRTY = "dirty"
    SAVING = "saving"
    SAVED = "saved"
    FAILED = "failed"


@dataclass
class GradingSession:
    """1枚の答案用紙を選択してから保存するまでの一時的な採点状態。

    注釈のページ別バッファはAnnotationHandlerが、得点とコメントはMarksServiceが保持します。

    Attributes:
        sheet (AnswerSheet): 選択中の答案用紙。
        assignment (Assignment): 採点者の設問割り当て。
        state (SessionState): 現在の状態。
        current_page (int): 表示中のページ番号（1始まり）。
        save_token (int): 実行中の保存処理を識別する番号。
    """
    sheet: AnswerSheet
    assignment: Assignment
    state: SessionState = SessionState.LOADED
    current_page: int = 1
    save_token: Optional[int] = None
