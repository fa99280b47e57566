from __future__ import annotations
from typing import Dict, Optional

from PyQt6.QtCore import pyqtSignal, Qt
from PyQt6.QtGui import QDoubleValidator
from PyQt6.QtWidgets import (QWidget, QVBoxLayout, QGridLayout, QLabel, QLineEdit,
                             QPushButton, QGroupBox, QScrollArea)

from models.grading_models import Assignment


def format_marks(value: float) -> str:
    """得点を表示用の文字列にする。整数値は小数点以下を省略する。"""
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"


class MarksPanel(QWidget):
    """
    担当設問ごとの得点とコメントを入力する採点パネル。

    入力値の補正（満点でのクランプ）は集計エンジン側で行い、
    補正後の値を `set_mark_display` で書き戻します。
    """
    mark_edited = pyqtSignal(int, str)
    comment_edited = pyqtSignal(int, str)
    submit_requested = pyqtSignal()

    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.mark_inputs: Dict[int, QLineEdit] = {}
        self.comment_inputs: Dict[int, QLineEdit] = {}
        self._total_max: float = 0.0

        layout = QVBoxLayout(self)
        layout.setContentsMargins(8, 8, 8, 8)

        self.sheet_label = QLabel("答案用紙が選択されていません")
        self.sheet_label.setWordWrap(True)
        layout.addWidget(self.sheet_label)

        group = QGroupBox("設問別得点")
        group_layout = QVBoxLayout(group)
        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        self._rows_container = QWidget()
        self._grid = QGridLayout(self._rows_container)
        self._grid.setAlignment(Qt.AlignmentFlag.AlignTop)
        scroll.setWidget(self._rows_container)
        group_layout.addWidget(scroll)
        layout.addWidget(group, 1)

        self.empty_label = QLabel("担当する設問が割り当てられていません")
        self.empty_label.setStyleSheet("color: #9e9e9e;")
        self.empty_label.hide()
        layout.addWidget(self.empty_label)

        self.total_label = QLabel()
        self.total_label.setStyleSheet("font-weight: bold; font-size: 14px;")
        layout.addWidget(self.total_label)

        self.submit_button = QPushButton("採点を保存")
        self.submit_button.setEnabled(False)
        self.submit_button.clicked.connect(self.submit_requested.emit)
        layout.addWidget(self.submit_button)

        self.set_total(0.0)

    def set_assignment(self, assignment: Assignment) -> None:
        """割り当てに合わせて入力行を作り直す。"""
        self.clear()
        self._total_max = assignment.total_max_marks
        for row, question in enumerate(assignment.question_numbers):
            max_marks = assignment.max_marks(question)
            caption = f"Q{question}" + (f"（/{format_marks(max_marks)}）" if max_marks is not None else "")
            self._grid.addWidget(QLabel(caption), row, 0)

            mark_input = QLineEdit()
            mark_input.setPlaceholderText("0")
            mark_input.setValidator(QDoubleValidator(0.0, 1e6, 2, mark_input))
            mark_input.setMaximumWidth(70)
            mark_input.editingFinished.connect(lambda q=question, w=mark_input: self.mark_edited.emit(q, w.text()))
            self._grid.addWidget(mark_input, row, 1)

            comment_input = QLineEdit()
            comment_input.setPlaceholderText("コメント")
            comment_input.editingFinished.connect(lambda q=question, w=comment_input: self.comment_edited.emit(q, w.text()))
            self._grid.addWidget(comment_input, row, 2)

            self.mark_inputs[question] = mark_input
            self.comment_inputs[question] = comment_input
        self.empty_label.setVisible(not assignment.question_numbers)
        self.set_total(0.0)

    def set_sheet_caption(self, text: str) -> None:
        self.sheet_label.setText(text)

    def set_mark_display(self, question_number: int, value: float) -> None:
        """補正後の得点を入力欄に表示する。"""
        widget = self.mark_inputs.get(question_number)
        if widget is not None:
            widget.setText(format_marks(value))

    def set_total(self, obtained: float) -> None:
        self.total_label.setText(f"合計（担当分）: {format_marks(obtained)} / {format_marks(self._total_max)}")

    def set_submit_enabled(self, enabled: bool) -> None:
        self.submit_button.setEnabled(enabled)

    def set_inputs_enabled(self, enabled: bool) -> None:
        for widget in list(self.mark_inputs.values()) + list(self.comment_inputs.values()):
            widget.setEnabled(enabled)

    def clear(self) -> None:
        """入力行をすべて削除する。"""
        while self._grid.count():
            item = self._grid.takeAt(0)
            if item.widget() is not None:
                item.widget().deleteLater()
        self.mark_inputs.clear()
        self.comment_inputs.clear()
        self._total_max = 0.0
        self.empty_label.hide()
        self.set_total(0.0)
        self.set_submit_enabled(False)
