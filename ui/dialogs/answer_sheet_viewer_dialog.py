# ui/dialogs/answer_sheet_viewer_dialog.py
"""
受験者向けの採点済み答案閲覧ダイアログを提供します。

採点時と同じ永続化データから注釈を再構築し、操作できない状態で答案に重ねて表示します。
採点者とは異なる倍率（幅合わせ）で表示されますが、注釈はページ座標で保存されているため同じ位置に重なります。
"""
from __future__ import annotations
import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QCloseEvent
from PyQt6.QtWidgets import (
    QDialog, QVBoxLayout, QHBoxLayout, QLabel, QPushButton, QScrollArea,
    QGroupBox, QWidget, QFrame
)

from models.grading_models import AnswerSheet, QuestionMark
from services.base_service import BaseService
from services.errors import PersistenceError
from ui.handlers.annotation_handler import AnnotationHandler
from ui.handlers.pdf_handler import PDFHandler
from ui.handlers.viewport_handler import ViewportHandler
from ui.widgets.annotation_config import AnnotationStyleConfig
from ui.widgets.annotation_surface import AnnotationSurface
from ui.widgets.pdf_display import PDFDisplayLabel
from utils.pdf_utils import DocumentError, FileResolver, PDFUtils

logger = logging.getLogger(__name__)


def group_question_marks(marks: Iterable[QuestionMark]) -> Dict[int, List[QuestionMark]]:
    """設問別の採点結果を設問番号ごとにまとめる（設問番号順）。"""
    grouped: Dict[int, List[QuestionMark]] = OrderedDict()
    for mark in sorted(marks, key=lambda m: (m.question_number, m.sub_question or "")):
        grouped.setdefault(mark.question_number, []).append(mark)
    return grouped


class AnswerSheetViewerDialog(QDialog):
    """
    採点済み答案の閲覧専用ダイアログ。

    ページ送り、得点の見出し（得点/満点）、設問別得点の一覧で構成されます。
    """
    def __init__(self, service: BaseService, sheet: AnswerSheet,
                 file_resolver: FileResolver = PDFUtils.resolve_file_ref,
                 config: Optional[AnnotationStyleConfig] = None,
                 parent: Optional[QWidget] = None) -> None:
        """
        AnswerSheetViewerDialogのコンストラクタ。

        Args:
            service (BaseService): 永続化サービス。
            sheet (AnswerSheet): 表示する答案用紙。
            file_resolver (FileResolver): ファイル参照をPDFのソースに解決する関数。
            config (Optional[AnnotationStyleConfig]): 描画設定。
            parent (Optional[QWidget]): 親ウィジェット。
        """
        super().__init__(parent)
        self.setWindowTitle(f"答案閲覧 - {sheet.display_name()}")
        self.resize(1100, 800)
        self.service: BaseService = service
        self.sheet: AnswerSheet = sheet
        self.file_resolver: FileResolver = file_resolver
        self.question_marks: List[QuestionMark] = []

        # UIコンポーネントの型ヒント
        self.score_label: QLabel
        self.status_label: QLabel
        self.page_label: QLabel
        self.prev_button: QPushButton
        self.next_button: QPushButton
        self.page_display: PDFDisplayLabel
        self.marks_container: QWidget

        layout = QVBoxLayout(self)
        header = QHBoxLayout()
        self.score_label = QLabel()
        self.score_label.setStyleSheet("font-size: 16px; font-weight: bold;")
        header.addWidget(self.score_label)
        header.addStretch()
        self.prev_button = QPushButton("前のページ")
        self.page_label = QLabel("- / -")
        self.next_button = QPushButton("次のページ")
        header.addWidget(self.prev_button)
        header.addWidget(self.page_label)
        header.addWidget(self.next_button)
        layout.addLayout(header)

        self.status_label = QLabel()
        self.status_label.setStyleSheet("color: #c62828;")
        self.status_label.hide()
        layout.addWidget(self.status_label)

        body = QHBoxLayout()
        self.scroll_area = QScrollArea()
        self.scroll_area.setAlignment(Qt.AlignmentFlag.AlignHCenter | Qt.AlignmentFlag.AlignTop)
        self.page_display = PDFDisplayLabel()
        self.scroll_area.setWidget(self.page_display)
        body.addWidget(self.scroll_area, 3)

        marks_group = QGroupBox("設問別得点")
        marks_layout = QVBoxLayout(marks_group)
        marks_scroll = QScrollArea()
        marks_scroll.setWidgetResizable(True)
        self.marks_container = QWidget()
        self.marks_layout = QVBoxLayout(self.marks_container)
        self.marks_layout.setAlignment(Qt.AlignmentFlag.AlignTop)
        marks_scroll.setWidget(self.marks_container)
        marks_layout.addWidget(marks_scroll)
        body.addWidget(marks_group, 1)
        layout.addLayout(body, 1)

        # --- ハンドラ ---
        self.annotation_handler = AnnotationHandler()
        self.pdf_handler = PDFHandler(self.page_display, self.scroll_area, self)
        self.pdf_handler.fit_mode = 'width'
        self.viewport_handler = ViewportHandler(self.page_display, interactive=False, config=config, parent=self)
        self.pdf_handler.page_rendered.connect(self.viewport_handler.on_page_rendered)
        self.pdf_handler.page_rendered.connect(self._update_navigation)
        self.viewport_handler.surface_ready.connect(self._on_surface_ready)

        self.prev_button.clicked.connect(self.pdf_handler.show_prev_page)
        self.next_button.clicked.connect(self.pdf_handler.show_next_page)
        self._update_navigation()
        self._update_score()

    def load(self) -> bool:
        """注釈、設問別得点、答案PDFを読み込み、1ページ目を表示する。"""
        try:
            annotations = self.service.list_annotations(self.sheet.id)
            self.question_marks = self.service.list_question_marks(self.sheet.id)
        except PersistenceError as e:
            logger.error("failed to load grading data of sheet %s: %s", self.sheet.id, e, exc_info=True)
            self._show_error(f"採点データを読み込めませんでした: {e}")
            return False

        self.annotation_handler.load(self.sheet.id, annotations)
        self._populate_marks(self.question_marks)
        self._update_score()

        try:
            self.pdf_handler.open_document(self.file_resolver(self.sheet.file_ref))
        except DocumentError as e:
            logger.error("failed to open document of sheet %s: %s", self.sheet.id, e)
            self._show_error(str(e))
            return False
        return self.pdf_handler.show_page(1)

    def _on_surface_ready(self, _page_number: int, surface: AnnotationSurface) -> None:
        self.annotation_handler.decode_into(surface, interactive=False)

    def _show_error(self, message: str) -> None:
        self.status_label.setText(message)
        self.status_label.show()

    def _update_navigation(self, *_: object) -> None:
        """ページ番号の表示と、前後ボタンの有効状態を更新する。"""
        current, total = self.pdf_handler.current_page, self.pdf_handler.page_count
        self.page_label.setText(f"{current} / {total}" if total else "- / -")
        self.prev_button.setEnabled(current > 1)
        self.next_button.setEnabled(0 < current < total)

    def _update_score(self) -> None:
        """見出しに得点/満点を表示する。答案用紙に合計がない場合は設問別得点から算出する。"""
        obtained = self.sheet.obtained_marks
        total = self.sheet.total_marks
        if obtained is None and self.question_marks:
            obtained = sum(m.obtained_marks for m in self.question_marks)
        if total is None and self.question_marks:
            total = sum(m.max_marks for m in self.question_marks)
        if obtained is None:
            self.score_label.setText("未採点")
        else:
            self.score_label.setText(f"得点: {obtained:.2f}" + (f" / {total:.2f}" if total is not None else ""))

    def _populate_marks(self, marks: List[QuestionMark]) -> None:
        """設問別得点の一覧を設問番号ごとに表示する。"""
        while self.marks_layout.count():
            item = self.marks_layout.takeAt(0)
            if item.widget() is not None:
                item.widget().deleteLater()

        grouped = group_question_marks(marks)
        if not grouped:
            self.marks_layout.addWidget(QLabel("設問別の得点はまだありません"))
            return

        for question_number, rows in grouped.items():
            frame = QFrame()
            frame.setFrameShape(QFrame.Shape.StyledPanel)
            frame_layout = QVBoxLayout(frame)
            obtained = sum(r.obtained_marks for r in rows)
            maximum = sum(r.max_marks for r in rows)
            frame_layout.addWidget(QLabel(f"<b>Q{question_number}</b>　{obtained:.2f} / {maximum:.2f}"))
            for row in rows:
                if row.sub_question:
                    frame_layout.addWidget(QLabel(f"　({row.sub_question}) {row.obtained_marks:.2f} / {row.max_marks:.2f}"))
                if row.comment:
                    comment = QLabel(row.comment)
                    comment.setWordWrap(True)
                    comment.setStyleSheet("color: #555;")
                    frame_layout.addWidget(comment)
            self.marks_layout.addWidget(frame)

    def closeEvent(self, event: QCloseEvent) -> None:
        """ダイアログを閉じるときにサーフェスと文書を破棄する。"""
        self.viewport_handler.clear()
        self.pdf_handler.close_document()
        super().closeEvent(event)
