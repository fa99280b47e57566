from __future__ import annotations
import logging
from typing import Optional

import fitz
from PyQt6.QtCore import QObject, pyqtSignal
from PyQt6.QtGui import QPixmap
from PyQt6.QtWidgets import QScrollArea

from ui.widgets.pdf_display import PDFDisplayLabel
from utils.pdf_utils import DocumentError, DocumentSource, PDFUtils

logger = logging.getLogger(__name__)


class PDFHandler(QObject):
    """
    答案PDFの読み込み、ページ表示、ナビゲーション、ズームを担うハンドラクラス。

    ページのレンダリングはUIスレッドで同期的に行い、表示が確定した直後に
    `page_rendered(ページ番号, 幅, 高さ, 倍率)` を発行します（幅と高さは論理ピクセル）。
    注釈サーフェスの作成はこのシグナルを起点に行われ、タイマーによる遅延は使用しません。
    """
    page_about_to_change = pyqtSignal(int)
    page_rendered = pyqtSignal(int, int, int, float)
    document_closed = pyqtSignal()

    MIN_ZOOM: float = 0.3
    MAX_ZOOM: float = 4.0

    def __init__(self, display_label: PDFDisplayLabel, scroll_area: Optional[QScrollArea] = None,
                 parent: Optional[QObject] = None) -> None:
        """
        PDFHandlerのコンストラクタ。

        Args:
            display_label (PDFDisplayLabel): ページ画像を表示するラベル。
            scroll_area (Optional[QScrollArea]): ラベルを内包するスクロール領域。幅合わせに使用する。
            parent (Optional[QObject]): 親オブジェクト。
        """
        super().__init__(parent)
        self.label: PDFDisplayLabel = display_label
        self.scroll_area: Optional[QScrollArea] = scroll_area
        self.pdf_document: Optional[fitz.Document] = None
        self.current_page: int = 0  # 1始まり。0は未表示
        self.total_pages: int = 0
        self.zoom_factor: float = 1.0
        self.fit_mode: Optional[str] = None  # 'width' or None
        self.current_scale: float = 1.0

    @property
    def page_count(self) -> int:
        return self.total_pages

    def has_document(self) -> bool:
        return self.pdf_document is not None

    def open_document(self, source: DocumentSource) -> int:
        """
        PDF文書を開く。ページの表示は呼び出し側が `show_page` で行う。

        Returns:
            int: ページ数。

        Raises:
            DocumentError: 文書を開けない場合。
        """
        doc = PDFUtils.open_document(source)
        self.close_document()
        self.pdf_document = doc
        self.total_pages = doc.page_count
        self.current_page = 0
        logger.info("document opened (%d pages)", self.total_pages)
        return self.total_pages

    def close_document(self) -> None:
        """文書を閉じ、ページ表示を消去する。"""
        if self.pdf_document is None: return
        self.pdf_document.close()
        self.pdf_document = None
        self.total_pages = 0
        self.current_page = 0
        self.label.clear_page()
        self.document_closed.emit()

    def show_page(self, page_number: int) -> bool:
        """
        指定されたページ番号（1始まり）のページを現在の倍率で表示する。

        範囲外のページ番号や文書が開かれていない場合は何もしません。

        Returns:
            bool: 表示した場合はTrue。
        """
        if not self.pdf_document or not (1 <= page_number <= self.total_pages):
            return False

        if self.current_page:
            self.page_about_to_change.emit(self.current_page)

        page = self.pdf_document.load_page(page_number - 1)
        scale = self._compute_scale(page)
        dpr = self.label.devicePixelRatioF() or 1.0
        try:
            image = PDFUtils.render_page(page, scale, dpr)
        except RuntimeError as e:
            raise DocumentError(f"ページ {page_number} をレンダリングできませんでした: {e}") from e

        pixmap = QPixmap.fromImage(image)
        pixmap.setDevicePixelRatio(dpr)
        self.label.set_page_pixmap(pixmap)

        self.current_page = page_number
        self.current_scale = scale
        width, height = self.label.width(), self.label.height()
        logger.debug("page %d rendered at scale %.3f (%dx%d)", page_number, scale, width, height)
        self.page_rendered.emit(page_number, width, height, scale)
        return True

    def _compute_scale(self, page: fitz.Page) -> float:
        """幅合わせモードではビューポート幅に合わせた倍率、それ以外はズーム率を返す。"""
        if self.fit_mode == 'width' and self.scroll_area is not None:
            viewport = self.scroll_area.viewport()
            page_width, _ = PDFUtils.page_size(page)
            if viewport is not None and viewport.width() > 0 and page_width > 0:
                return max(0.1, viewport.width() / page_width) * self.zoom_factor
        return self.zoom_factor

    def show_prev_page(self) -> bool:
        """前のページを表示する。"""
        return self.show_page(self.current_page - 1)

    def show_next_page(self) -> bool:
        """次のページを表示する。"""
        return self.show_page(self.current_page + 1)

    def set_zoom(self, zoom: float) -> None:
        """ズーム率を設定して現在のページを再描画する。"""
        new_zoom = max(self.MIN_ZOOM, min(self.MAX_ZOOM, zoom))
        if abs(new_zoom - self.zoom_factor) < 0.001 and self.fit_mode is None: return
        self.fit_mode = None
        self.zoom_factor = new_zoom
        if self.pdf_document and self.current_page:
            self.show_page(self.current_page)

    def adjust_zoom(self, multiplier: float) -> None:
        """現在のズーム率を指定された倍率で変更する。"""
        self.set_zoom(self.zoom_factor * multiplier)

    def reset_zoom(self) -> None:
        """ズーム率とフィットモードをリセットする。"""
        self.zoom_factor = 1.0
        self.fit_mode = None
        if self.pdf_document and self.current_page:
            self.show_page(self.current_page)

    def fit_to_width(self) -> None:
        """ページの幅をビューポートの幅に合わせる。"""
        self.fit_mode = 'width'
        self.zoom_factor = 1.0
        if self.pdf_document and self.current_page:
            self.show_page(self.current_page)

    def handle_resize_event(self) -> None:
        """ビューポートのリサイズ時、幅合わせモードであれば再レンダリングする。"""
        if self.fit_mode == 'width' and self.pdf_document and self.current_page:
            self.show_page(self.current_page)
