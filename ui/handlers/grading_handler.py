from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple, Union

from PyQt6.QtCore import QObject, pyqtSignal, pyqtSlot

from models.annotation_models import Annotation
from models.grading_models import AnswerSheet, Assignment, GradingStatus, QuestionMark
from models.session_models import GradingSession, SessionState
from services.base_service import BaseService
from services.errors import GradingStateError, MarksValidationError, PersistenceError
from services.marks_service import MarksService
from ui.handlers.annotation_handler import AnnotationHandler
from ui.handlers.pdf_handler import PDFHandler
from ui.handlers.viewport_handler import ViewportHandler
from ui.widgets.annotation_surface import AnnotationSurface
from utils.pdf_utils import DocumentError, FileResolver
from utils.save_worker import SaveWorkerThread

logger = logging.getLogger(__name__)

SUBMITTABLE_STATES = (SessionState.LOADED, SessionState.DIRTY, SessionState.FAILED)
# 画面を離れると失われる変更を持つ状態
UNSAVED_STATES = (SessionState.DIRTY, SessionState.FAILED)


class GradingHandler(QObject):
    """
    選択された1枚の答案用紙に対する採点セッションを制御するハンドラクラス。

    状態は `UNSELECTED → LOADED → DIRTY → SAVING → SAVED | FAILED` と遷移します。
    保存はワーカースレッドで実行し、設問別の得点と答案用紙の状態・合計点を書き込んだ後、
    注釈を全置換します。すべて成功した場合のみ SAVED となり、自動的に UNSELECTED に戻ります。
    失敗した場合は FAILED となり、入力済みの得点・コメント・注釈はそのまま保持されます。

    Signals:
        state_changed (SessionState): セッション状態が変わったとき。
        total_changed (float): 担当設問の合計得点が変わったとき。
        grading_status_changed (str, str): 答案用紙の採点状態が変わったとき（答案用紙ID, 状態）。
        notification (str, str): 採点者に表示する通知（レベル, メッセージ）。
        sheet_loaded (AnswerSheet): 答案用紙の読み込みが完了したとき。
    """
    state_changed = pyqtSignal(object)
    total_changed = pyqtSignal(float)
    grading_status_changed = pyqtSignal(str, str)
    notification = pyqtSignal(str, str)
    sheet_loaded = pyqtSignal(object)

    def __init__(self, service: BaseService, grader_id: str,
                 viewport_handler: Optional[ViewportHandler] = None,
                 pdf_handler: Optional[PDFHandler] = None,
                 annotation_handler: Optional[AnnotationHandler] = None,
                 marks_service: Optional[MarksService] = None,
                 file_resolver: Optional[FileResolver] = None,
                 parent: Optional[QObject] = None) -> None:
        """
        GradingHandlerのコンストラクタ。

        Args:
            service (BaseService): 永続化サービス。
            grader_id (str): ログイン中の採点者ID。
            viewport_handler (Optional[ViewportHandler]): 注釈サーフェスを管理するハンドラ。
            pdf_handler (Optional[PDFHandler]): 答案PDFを表示するハンドラ。
            annotation_handler (Optional[AnnotationHandler]): 注釈のエンコード・デコードを行うハンドラ。
            marks_service (Optional[MarksService]): 得点の集計エンジン。
            file_resolver (Optional[FileResolver]): 答案用紙のファイル参照をPDFのソースに解決する関数。
            parent (Optional[QObject]): 親オブジェクト。
        """
        super().__init__(parent)
        self.service: BaseService = service
        self.grader_id: str = grader_id
        self.viewport_handler: Optional[ViewportHandler] = viewport_handler
        self.pdf_handler: Optional[PDFHandler] = pdf_handler
        self.annotation_handler: AnnotationHandler = annotation_handler or AnnotationHandler(grader_id)
        self.marks: MarksService = marks_service or MarksService()
        self.file_resolver: Optional[FileResolver] = file_resolver

        self.session: Optional[GradingSession] = None
        self._state: SessionState = SessionState.UNSELECTED
        self._save_counter: int = 0
        self._workers: Dict[int, Tuple[SaveWorkerThread, str, float]] = {}

        if self.viewport_handler is not None:
            self.viewport_handler.set_author(grader_id)
            self.viewport_handler.surface_ready.connect(self._on_surface_ready)
        if self.pdf_handler is not None:
            self.pdf_handler.page_about_to_change.connect(self.snapshot_current_page)
            if self.viewport_handler is not None:
                self.pdf_handler.page_rendered.connect(self.viewport_handler.on_page_rendered)

    # --- 状態 ---
    @property
    def state(self) -> SessionState:
        return self._state

    def _set_state(self, state: SessionState) -> None:
        if state == self._state: return
        logger.debug("session state: %s -> %s", self._state.value, state.value)
        self._state = state
        if self.session is not None:
            self.session.state = state
        self.state_changed.emit(state)

    @property
    def current_sheet(self) -> Optional[AnswerSheet]:
        return self.session.sheet if self.session else None

    @property
    def assigned_questions(self) -> List[int]:
        return self.marks.assigned_questions if self.session else []

    @property
    def total_obtained_marks(self) -> float:
        return self.marks.total_obtained_marks

    def is_saving(self) -> bool:
        return bool(self._workers)

    def is_saving_sheet(self, sheet_id: str) -> bool:
        """指定した答案用紙の保存処理が実行中であればTrue。"""
        return any(entry_sheet_id == sheet_id for _, entry_sheet_id, _ in self._workers.values())

    def has_unsaved_changes(self) -> bool:
        return self.session is not None and self._state in UNSAVED_STATES

    # --- 答案用紙の選択 ---
    def select_sheet(self, sheet: AnswerSheet) -> bool:
        """
        答案用紙を選択し、設問割り当てと保存済みの注釈を読み込む。

        得点・コメント・合計点は空に戻ります。実行中の保存処理は中断されません。
        読み込みに失敗した場合は通知を発行し、UNSELECTED に戻ります。

        Returns:
            bool: 読み込みに成功した場合はTrue。
        """
        self._discard_session()
        try:
            assignment = self.service.get_assignment(sheet.exam_id, self.grader_id)
            annotations = self.service.list_annotations(sheet.id)
            if self.pdf_handler is not None and self.file_resolver is not None:
                self.pdf_handler.open_document(self.file_resolver(sheet.file_ref))
        except (PersistenceError, DocumentError) as e:
            logger.error("failed to load sheet %s: %s", sheet.id, e, exc_info=True)
            self._discard_session()
            self.notification.emit("error", f"答案用紙を読み込めませんでした: {e}")
            return False

        self.marks.reset(assignment)
        self.annotation_handler.load(sheet.id, annotations)
        self.session = GradingSession(sheet=sheet, assignment=assignment)
        logger.info("sheet %s loaded (%d assigned question(s), %d annotation(s))",
                    sheet.id, len(assignment.question_numbers), len(annotations))
        self._set_state(SessionState.LOADED)
        self.sheet_loaded.emit(sheet)
        self.total_changed.emit(self.marks.total_obtained_marks)

        if self.pdf_handler is not None and self.pdf_handler.has_document():
            self.apply_view_change(self.pdf_handler.show_page, 1)
        return True

    def _discard_session(self) -> None:
        """現在のセッションを破棄する（保存はしない）。"""
        if self.viewport_handler is not None:
            self.viewport_handler.clear()
        if self.pdf_handler is not None:
            self.pdf_handler.close_document()
        self.annotation_handler.clear()
        self.marks.reset(Assignment(exam_id="", grader_id=self.grader_id))
        self.session = None
        self._set_state(SessionState.UNSELECTED)

    # --- ページ・表示倍率 ---
    def _on_surface_ready(self, page_number: int, surface: AnnotationSurface) -> None:
        """新しいサーフェスにバッファ内の注釈を操作可能な状態で再構築する。"""
        if self.session is None: return
        self.annotation_handler.decode_into(surface, interactive=True)
        surface.content_changed.connect(self._mark_dirty)
        self.session.current_page = page_number

    def snapshot_current_page(self, *_: object) -> None:
        """表示中のサーフェスの内容をページバッファに取り込む。"""
        if self.session is None or self.viewport_handler is None: return
        surface = self.viewport_handler.current_surface()
        if surface is not None:
            self.annotation_handler.snapshot(surface)

    def apply_view_change(self, change: Callable[..., object], *args: object) -> bool:
        """
        ページ移動や倍率変更を実行する。描画に失敗した場合は通知を発行する。

        Args:
            change (Callable): PDFHandlerの表示操作（show_page, adjust_zoom など）。
            *args: 表示操作に渡す引数。

        Returns:
            bool: 描画に失敗した場合、または表示操作がFalseを返した場合はFalse。
        """
        try:
            result = change(*args)
        except DocumentError as e:
            logger.error("failed to render page: %s", e, exc_info=True)
            self.notification.emit("error", f"ページを表示できませんでした: {e}")
            return False
        return result is not False

    def go_to_page(self, page_number: int) -> bool:
        if self.session is None or self.pdf_handler is None: return False
        return self.apply_view_change(self.pdf_handler.show_page, page_number)

    def set_zoom(self, zoom: float) -> None:
        if self.session is None or self.pdf_handler is None: return
        self.apply_view_change(self.pdf_handler.set_zoom, zoom)

    # --- 得点・コメント ---
    def set_question_mark(self, question_number: int, raw_value: Union[float, int, str, None]) -> float:
        """
        設問の得点を入力する。満点を超える値や負の値はその場で補正される。

        Returns:
            float: 補正後の得点。

        Raises:
            GradingStateError: 答案用紙が選択されていない場合。
        """
        self._require_session()
        value = self.marks.set_question_mark(question_number, raw_value)
        self._mark_dirty()
        self.total_changed.emit(self.marks.total_obtained_marks)
        return value

    def set_question_comment(self, question_number: int, comment: str) -> None:
        self._require_session()
        self.marks.set_question_comment(question_number, comment)
        self._mark_dirty()

    def _require_session(self) -> GradingSession:
        if self.session is None:
            raise GradingStateError("答案用紙が選択されていません")
        return self.session

    def _mark_dirty(self) -> None:
        if self.session is not None and self._state in (SessionState.LOADED, SessionState.FAILED):
            self._set_state(SessionState.DIRTY)

    # --- 保存 ---
    def can_submit(self) -> bool:
        """答案用紙が選択され、担当設問があり、同じ答案用紙の保存が実行中でない場合にTrue。"""
        return (self.session is not None
                and bool(self.session.assignment.question_numbers)
                and self._state in SUBMITTABLE_STATES
                and not self.is_saving_sheet(self.session.sheet.id))

    def submit(self) -> bool:
        """
        採点結果と注釈の保存を開始する。

        Returns:
            bool: 保存処理を開始した場合はTrue。得点の検証に失敗した場合はFalse（FAILED）。

        Raises:
            GradingStateError: 保存できない状態（未選択、担当設問なし、保存中）の場合。
        """
        if self.session is not None and self.is_saving_sheet(self.session.sheet.id):
            raise GradingStateError("この答案用紙の保存処理が実行中です。完了してから保存してください")
        if not self.can_submit():
            raise GradingStateError(f"現在の状態では保存できません: {self._state.value}")
        session = self._require_session()
        self.snapshot_current_page()

        sheet_id = session.sheet.id
        graded_at = datetime.now(timezone.utc).isoformat()
        try:
            question_marks = self.marks.build_question_marks(sheet_id, self.grader_id, graded_at)
        except MarksValidationError as e:
            logger.warning("validation failed for sheet %s: %s", sheet_id, e)
            self._set_state(SessionState.FAILED)
            self.notification.emit("error", str(e))
            return False

        total = self.marks.total_obtained_marks
        remarks = self.marks.remarks() or None
        annotations = self.annotation_handler.all_annotations()

        self._save_counter += 1
        token = self._save_counter
        session.save_token = token
        self._set_state(SessionState.SAVING)

        worker = SaveWorkerThread(token, self._build_save_task(sheet_id, total, question_marks, remarks, annotations), self)
        worker.succeeded.connect(self._on_save_succeeded)
        worker.failed.connect(self._on_save_failed)
        worker.finished.connect(worker.deleteLater)
        self._workers[token] = (worker, sheet_id, total)
        logger.info("saving sheet %s (token %d, total %s, %d annotation(s))", sheet_id, token, total, len(annotations))
        worker.start()
        return True

    def _build_save_task(self, sheet_id: str, total: float, question_marks: List[QuestionMark],
                         remarks: Optional[str], annotations: List[Annotation]):
        """ワーカースレッドで実行する保存処理を組み立てる。UIの状態には触れない。"""
        service, annotation_handler, grader_id = self.service, self.annotation_handler, self.grader_id

        def task() -> None:
            service.save_grading(sheet_id, total, question_marks, graded_by=grader_id, remarks=remarks)
            annotation_handler.save(service, sheet_id, annotations)

        return task

    @pyqtSlot(int)
    def _on_save_succeeded(self, token: int) -> None:
        entry = self._workers.pop(token, None)
        if entry is None: return
        _, sheet_id, total = entry
        self.grading_status_changed.emit(sheet_id, GradingStatus.COMPLETED.value)

        if self.session is None or self.session.save_token != token:
            logger.info("save %d for sheet %s finished after the session moved on", token, sheet_id)
            self.notification.emit("info", f"答案用紙 {sheet_id} の採点結果を保存しました")
            self._refresh_if_current(sheet_id)
            return
        self._set_state(SessionState.SAVED)
        self.total_changed.emit(total)
        self.notification.emit("info", "採点結果を保存しました")
        self._discard_session()

    @pyqtSlot(int, str)
    def _on_save_failed(self, token: int, message: str) -> None:
        entry = self._workers.pop(token, None)
        if entry is None: return
        _, sheet_id, _ = entry

        if self.session is None or self.session.save_token != token:
            self.notification.emit("warning", f"答案用紙 {sheet_id} の保存に失敗しました: {message}")
            self._refresh_if_current(sheet_id)
            return
        self._set_state(SessionState.FAILED)
        self.notification.emit("error", f"保存に失敗しました。再度保存してください: {message}")

    def _refresh_if_current(self, sheet_id: str) -> None:
        # 開き直した答案用紙の保存可否が変わったことを通知する
        if self.session is not None and self.session.sheet.id == sheet_id:
            self.state_changed.emit(self._state)

    def wait_for_save(self, msecs: Optional[int] = None) -> bool:
        """実行中の保存処理の完了を待つ。すべて完了した場合はTrue。"""
        finished = True
        for worker, _, _ in list(self._workers.values()):
            done = worker.wait() if msecs is None else worker.wait(msecs)
            finished = finished and done
        return finished
