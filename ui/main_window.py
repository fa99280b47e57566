# ui/main_window.py
from __future__ import annotations
import logging
from typing import Dict, Optional

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QAction, QActionGroup, QCloseEvent, QColor, QKeySequence, QResizeEvent
from PyQt6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QLabel, QPushButton,
    QSplitter, QToolBar, QListWidget, QListWidgetItem, QMessageBox, QScrollArea
)

from models.grading_models import AnswerSheet, GradingStatus
from models.session_models import SessionState
from services.base_service import BaseService
from services.errors import GradingStateError, PersistenceError
from services.marks_service import MarksService
from ui.dialogs.answer_sheet_viewer_dialog import AnswerSheetViewerDialog
from ui.handlers.annotation_handler import AnnotationHandler
from ui.handlers.grading_handler import GradingHandler
from ui.handlers.pdf_handler import PDFHandler
from ui.handlers.tool_handler import Tool, ToolHandler
from ui.handlers.viewport_handler import ViewportHandler
from ui.widgets import AnnotationStyleConfig, MarksPanel, PDFDisplayLabel
from ui.widgets.marks_panel import format_marks
from utils.app_config import AppConfig
from utils.pdf_utils import PDFUtils

logger = logging.getLogger(__name__)

TOOL_LABELS = [
    (Tool.PEN, "ペン"),
    (Tool.ERASER, "消しゴム"),
    (Tool.HIGHLIGHTER, "蛍光ペン"),
    (Tool.TICK, "✓"),
    (Tool.CROSS, "✗"),
    (Tool.OVAL, "○"),
    (Tool.TEXTBOX, "テキスト"),
]

STATE_LABELS = {
    SessionState.UNSELECTED: "未選択",
    SessionState.LOADED: "読み込み済み",
    SessionState.DIRTY: "未保存の変更あり",
    SessionState.SAVING: "保存中…",
    SessionState.SAVED: "保存済み",
    SessionState.FAILED: "保存失敗",
}


class MainWindow(QMainWindow):
    """
    採点画面のメインウィンドウ。

    左に担当答案の一覧、中央に答案PDFと注釈サーフェス、右に設問別の採点パネルを配置します。
    採点の状態遷移と保存は GradingHandler が担い、このクラスは各ウィジェットとの接続のみを行います。
    """
    def __init__(self, config: Optional[AppConfig] = None, service: Optional[BaseService] = None) -> None:
        """
        MainWindowのコンストラクタ。

        Args:
            config (Optional[AppConfig]): 起動設定。省略時は環境変数から読み込む。
            service (Optional[BaseService]): 永続化サービス。省略時は設定から生成する。
        """
        super().__init__()
        self.config: AppConfig = config or AppConfig.from_env()
        self.service: BaseService = service or self.config.create_service()
        self.style_config = AnnotationStyleConfig()
        self.setWindowTitle(f"答案採点 - {self.config.grader_id}")
        self.setGeometry(50, 50, 1500, 950)

        self.sheets: Dict[str, AnswerSheet] = {}
        self.viewer_dialog: Optional[AnswerSheetViewerDialog] = None

        # --- 表示領域 ---
        self.page_display = PDFDisplayLabel()
        self.pdf_scroll_area = QScrollArea()
        self.pdf_scroll_area.setAlignment(Qt.AlignmentFlag.AlignHCenter | Qt.AlignmentFlag.AlignTop)
        self.pdf_scroll_area.setWidget(self.page_display)

        # --- ハンドラ ---
        self.tool_handler = ToolHandler(self.style_config, self)
        self.pdf_handler = PDFHandler(self.page_display, self.pdf_scroll_area, self)
        self.pdf_handler.zoom_factor = self.config.zoom
        self.viewport_handler = ViewportHandler(self.page_display, self.tool_handler,
                                                config=self.style_config, parent=self)
        self.grading_handler = GradingHandler(
            self.service, self.config.grader_id,
            viewport_handler=self.viewport_handler,
            pdf_handler=self.pdf_handler,
            annotation_handler=AnnotationHandler(self.config.grader_id),
            marks_service=MarksService(),
            file_resolver=PDFUtils.resolve_file_ref,
            parent=self,
        )

        self.marks_panel = MarksPanel()
        self.sheet_list = QListWidget()
        self.page_label = QLabel("- / -")
        self.zoom_label = QLabel()
        self.state_label = QLabel()

        self.setup_toolbar()
        self.setCentralWidget(self.create_central_area())
        self.statusBar().addPermanentWidget(self.state_label)
        self.connect_signals()

        self._on_state_changed(self.grading_handler.state)
        self._update_navigation()
        self.refresh_sheet_list()

    def createPopupMenu(self):
        return None

    # --- UI構築 ---
    def setup_toolbar(self) -> None:
        """ツール、色、ページ送り、ズームのツールバーを作成する。"""
        toolbar = QToolBar("採点ツール")
        toolbar.setMovable(False)
        self.addToolBar(Qt.ToolBarArea.TopToolBarArea, toolbar)

        self.tool_actions: Dict[Tool, QAction] = {}
        tool_group = QActionGroup(self)
        tool_group.setExclusive(True)
        for tool, label in TOOL_LABELS:
            action = QAction(label, self)
            action.setCheckable(True)
            action.triggered.connect(lambda _checked, t=tool: self.tool_handler.select_tool(t))
            tool_group.addAction(action)
            toolbar.addAction(action)
            self.tool_actions[tool] = action
        self.tool_actions[self.tool_handler.current_tool].setChecked(True)

        toolbar.addSeparator()
        color_group = QActionGroup(self)
        color_group.setExclusive(True)
        for index, (name, color) in enumerate(self.style_config.palette):
            action = QAction(name, self)
            action.setCheckable(True)
            action.setChecked(index == 0)
            action.triggered.connect(lambda _checked, c=color: self.tool_handler.set_color(QColor(c)))
            color_group.addAction(action)
            toolbar.addAction(action)

        toolbar.addSeparator()
        prev_action = QAction("前のページ", self)
        prev_action.setShortcut(QKeySequence("PgUp"))
        prev_action.triggered.connect(lambda: self.grading_handler.apply_view_change(self.pdf_handler.show_prev_page))
        toolbar.addAction(prev_action)
        toolbar.addWidget(self.page_label)
        next_action = QAction("次のページ", self)
        next_action.setShortcut(QKeySequence("PgDown"))
        next_action.triggered.connect(lambda: self.grading_handler.apply_view_change(self.pdf_handler.show_next_page))
        toolbar.addAction(next_action)

        toolbar.addSeparator()
        zoom_out_action = QAction("縮小", self)
        zoom_out_action.setShortcut(QKeySequence.StandardKey.ZoomOut)
        zoom_out_action.triggered.connect(lambda: self.grading_handler.apply_view_change(self.pdf_handler.adjust_zoom, 1 / 1.2))
        toolbar.addAction(zoom_out_action)
        toolbar.addWidget(self.zoom_label)
        zoom_in_action = QAction("拡大", self)
        zoom_in_action.setShortcut(QKeySequence.StandardKey.ZoomIn)
        zoom_in_action.triggered.connect(lambda: self.grading_handler.apply_view_change(self.pdf_handler.adjust_zoom, 1.2))
        toolbar.addAction(zoom_in_action)
        fit_action = QAction("幅に合わせる", self)
        fit_action.triggered.connect(lambda: self.grading_handler.apply_view_change(self.pdf_handler.fit_to_width))
        toolbar.addAction(fit_action)
        reset_action = QAction("100%", self)
        reset_action.triggered.connect(lambda: self.grading_handler.apply_view_change(self.pdf_handler.reset_zoom))
        toolbar.addAction(reset_action)

        toolbar.addSeparator()
        self.view_action = QAction("受験者表示で確認", self)
        self.view_action.triggered.connect(self.open_viewer)
        toolbar.addAction(self.view_action)
        refresh_action = QAction("一覧を更新", self)
        refresh_action.setShortcut(QKeySequence.StandardKey.Refresh)
        refresh_action.triggered.connect(self.refresh_sheet_list)
        toolbar.addAction(refresh_action)

    def create_central_area(self) -> QWidget:
        splitter = QSplitter(Qt.Orientation.Horizontal)

        list_widget = QWidget()
        list_layout = QVBoxLayout(list_widget)
        list_layout.setContentsMargins(4, 4, 4, 4)
        list_layout.addWidget(QLabel("担当答案"))
        list_layout.addWidget(self.sheet_list, 1)
        self.open_button = QPushButton("採点を開始")
        self.open_button.clicked.connect(self.open_selected_sheet)
        list_layout.addWidget(self.open_button)

        pdf_widget = QWidget()
        pdf_layout = QVBoxLayout(pdf_widget)
        pdf_layout.setContentsMargins(0, 0, 0, 0)
        pdf_layout.addWidget(self.pdf_scroll_area)

        splitter.addWidget(list_widget)
        splitter.addWidget(pdf_widget)
        splitter.addWidget(self.marks_panel)
        splitter.setStretchFactor(0, 1)
        splitter.setStretchFactor(1, 4)
        splitter.setStretchFactor(2, 2)
        splitter.setSizes([260, 900, 340])
        return splitter

    def connect_signals(self) -> None:
        self.sheet_list.itemDoubleClicked.connect(lambda _item: self.open_selected_sheet())

        self.marks_panel.mark_edited.connect(self._on_mark_edited)
        self.marks_panel.comment_edited.connect(self._on_comment_edited)
        self.marks_panel.submit_requested.connect(self.submit_grading)

        handler = self.grading_handler
        handler.state_changed.connect(self._on_state_changed)
        handler.total_changed.connect(self.marks_panel.set_total)
        handler.sheet_loaded.connect(self._on_sheet_loaded)
        handler.grading_status_changed.connect(self._on_grading_status_changed)
        handler.notification.connect(self.show_notification)

        self.pdf_handler.page_rendered.connect(self._update_navigation)
        self.pdf_handler.document_closed.connect(self._update_navigation)
        self.tool_handler.tool_changed.connect(self._on_tool_changed)

    # --- 答案一覧 ---
    def refresh_sheet_list(self) -> None:
        """担当する答案用紙の一覧を読み込み直す。"""
        try:
            sheets = self.service.list_answer_sheets(self.config.grader_id)
        except PersistenceError as e:
            logger.error("failed to list answer sheets: %s", e)
            self.show_notification("error", f"答案一覧を読み込めませんでした: {e}")
            return

        current = self.grading_handler.current_sheet
        self.sheets = {sheet.id: sheet for sheet in sheets}
        self.sheet_list.clear()
        for sheet in sheets:
            item = QListWidgetItem(self._sheet_caption(sheet))
            item.setData(Qt.ItemDataRole.UserRole, sheet.id)
            self.sheet_list.addItem(item)
            if current is not None and current.id == sheet.id:
                self.sheet_list.setCurrentItem(item)
        logger.debug("%d answer sheet(s) listed for %s", len(sheets), self.config.grader_id)

    @staticmethod
    def _sheet_caption(sheet: AnswerSheet) -> str:
        if sheet.grading_status == GradingStatus.COMPLETED:
            score = format_marks(sheet.obtained_marks) if sheet.obtained_marks is not None else "-"
            return f"{sheet.display_name()}（採点済 {score}）"
        return f"{sheet.display_name()}（未採点）"

    def _selected_sheet(self) -> Optional[AnswerSheet]:
        item = self.sheet_list.currentItem()
        if item is None:
            return None
        return self.sheets.get(item.data(Qt.ItemDataRole.UserRole))

    def open_selected_sheet(self) -> None:
        sheet = self._selected_sheet()
        if sheet is None:
            return
        current = self.grading_handler.current_sheet
        if current is not None and current.id == sheet.id:
            return
        if self.grading_handler.has_unsaved_changes():
            reply = QMessageBox.question(
                self, "確認", "保存していない採点内容は破棄されます。別の答案を開きますか？",
                QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No)
            if reply != QMessageBox.StandardButton.Yes:
                return
        self.grading_handler.select_sheet(sheet)

    # --- 採点 ---
    def _on_sheet_loaded(self, sheet: AnswerSheet) -> None:
        session = self.grading_handler.session
        if session is None:
            return
        self.marks_panel.set_assignment(session.assignment)
        self.marks_panel.set_sheet_caption(sheet.display_name())
        self.marks_panel.set_total(self.grading_handler.total_obtained_marks)
        self._on_state_changed(self.grading_handler.state)

    def _on_mark_edited(self, question_number: int, text: str) -> None:
        if self.grading_handler.session is None:
            return
        value = self.grading_handler.set_question_mark(question_number, text)
        self.marks_panel.set_mark_display(question_number, value)

    def _on_comment_edited(self, question_number: int, text: str) -> None:
        if self.grading_handler.session is None:
            return
        self.grading_handler.set_question_comment(question_number, text)

    def submit_grading(self) -> None:
        try:
            self.grading_handler.submit()
        except GradingStateError as e:
            self.show_notification("warning", str(e))

    def _on_state_changed(self, state: SessionState) -> None:
        self.state_label.setText(STATE_LABELS.get(state, state.value))
        self.marks_panel.set_submit_enabled(self.grading_handler.can_submit())
        self.marks_panel.set_inputs_enabled(state != SessionState.SAVING)
        self.view_action.setEnabled(self._selected_sheet() is not None or self.grading_handler.current_sheet is not None)
        if state == SessionState.UNSELECTED:
            self.marks_panel.clear()
            self.marks_panel.set_sheet_caption("答案用紙が選択されていません")

    def _on_grading_status_changed(self, sheet_id: str, status: str) -> None:
        logger.debug("sheet %s is now %s", sheet_id, status)
        self.refresh_sheet_list()

    def _on_tool_changed(self, tool: Tool) -> None:
        action = self.tool_actions.get(tool)
        if action is not None and not action.isChecked():
            action.setChecked(True)

    # --- 表示 ---
    def _update_navigation(self, *_: object) -> None:
        current, total = self.pdf_handler.current_page, self.pdf_handler.page_count
        self.page_label.setText(f" {current} / {total} " if total else " - / - ")
        self.zoom_label.setText(f" {round(self.pdf_handler.current_scale * 100)}% ")

    def open_viewer(self) -> None:
        """選択中の答案を受験者向けの閲覧画面で開く。"""
        sheet = self.grading_handler.current_sheet or self._selected_sheet()
        if sheet is None:
            return
        # 最新の合計点を反映するため保存済みのレコードを読み直す
        try:
            sheet = self.service.get_answer_sheet(sheet.id) or sheet
        except PersistenceError as e:
            logger.warning("failed to reload sheet %s: %s", sheet.id, e)
        if self.viewer_dialog is not None:
            self.viewer_dialog.close()
        self.viewer_dialog = AnswerSheetViewerDialog(self.service, sheet, config=self.style_config, parent=self)
        self.viewer_dialog.show()
        self.viewer_dialog.load()

    def show_notification(self, level: str, message: str) -> None:
        """通知をステータスバーに表示する。エラーはダイアログでも表示する。"""
        self.statusBar().showMessage(message, 8000)
        if level == "error":
            QMessageBox.warning(self, "エラー", message)

    # --- イベント ---
    def resizeEvent(self, event: QResizeEvent) -> None:
        super().resizeEvent(event)
        self.pdf_handler.handle_resize_event()

    def closeEvent(self, event: QCloseEvent) -> None:
        """未保存の変更があれば確認し、実行中の保存が終わるまで待ってから閉じる。"""
        if self.grading_handler.has_unsaved_changes():
            reply = QMessageBox.question(
                self, "確認", "保存していない採点内容があります。終了しますか？",
                QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No)
            if reply != QMessageBox.StandardButton.Yes:
                event.ignore()
                return
        if self.grading_handler.is_saving():
            self.statusBar().showMessage("保存処理の完了を待っています…")
            self.grading_handler.wait_for_save()
        self.viewport_handler.clear()
        self.pdf_handler.close_document()
        super().closeEvent(event)
