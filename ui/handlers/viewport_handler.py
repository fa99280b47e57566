from __future__ import annotations
import logging
from typing import Dict, Optional

from PyQt6.QtCore import QObject, QPointF, pyqtSignal
from PyQt6.QtWidgets import QWidget

from ui.handlers.tool_handler import ToolHandler
from ui.widgets.annotation_config import AnnotationStyleConfig
from ui.widgets.annotation_surface import AnnotationSurface

logger = logging.getLogger(__name__)


class ViewportHandler(QObject):
    """
    レンダリングされたページと注釈サーフェスの座標系を同期させるハンドラクラス。

    ページのレンダリング完了通知を受けるたびに、表示中のサーフェスを破棄してから
    ページと同じ論理ピクセルサイズの新しいサーフェスをページラベルの左上に作成します。
    サーフェスはページ番号をキーとする表で管理され、同時に存在するのは1つだけです。
    破棄されるサーフェス上の未保存の注釈は、呼び出し側が事前にスナップショットしない限り失われます。
    """
    surface_ready = pyqtSignal(int, object)
    surface_disposed = pyqtSignal(int)

    def __init__(self, page_label: QWidget, tool_handler: Optional[ToolHandler] = None,
                 interactive: bool = True, config: Optional[AnnotationStyleConfig] = None,
                 author_id: str = "", parent: Optional[QObject] = None) -> None:
        """
        ViewportHandlerのコンストラクタ。

        Args:
            page_label (QWidget): ページ画像を表示するウィジェット。サーフェスの親になる。
            tool_handler (Optional[ToolHandler]): ツール状態機械。読み取り専用の場合は不要。
            interactive (bool): Falseの場合、作成するサーフェスはポインタ入力を無視する。
            config (Optional[AnnotationStyleConfig]): 描画設定。
            author_id (str): 新しい注釈に付与する採点者ID。
            parent (Optional[QObject]): 親オブジェクト。
        """
        super().__init__(parent)
        self.page_label: QWidget = page_label
        self.tool_handler: Optional[ToolHandler] = tool_handler
        self.interactive: bool = interactive
        self.config: AnnotationStyleConfig = config or (tool_handler.config if tool_handler else AnnotationStyleConfig())
        self.author_id: str = author_id
        self._surfaces: Dict[int, AnnotationSurface] = {}

        if self.tool_handler is not None:
            self.tool_handler.tool_changed.connect(self._on_tool_changed)

    def on_page_rendered(self, page_number: int, width_px: int, height_px: int, scale: float) -> AnnotationSurface:
        """
        ページのレンダリング完了時にサーフェスを作り直す。

        ページ番号や倍率が変わるたびに呼ばれ、既存のサーフェスをリサイズせず必ず新しく作成します。

        Returns:
            AnnotationSurface: 新しく作成したサーフェス。
        """
        self.clear()
        surface = AnnotationSurface(self.page_label, page_number, scale, width_px, height_px,
                                    interactive=self.interactive, config=self.config,
                                    author_id=self.author_id)
        if self.tool_handler is not None and self.interactive:
            surface.apply_tool(self.tool_handler.brush())
            surface.gesture_started.connect(self.tool_handler.begin_gesture)
            surface.gesture_finished.connect(self.tool_handler.end_gesture)
        surface.show()
        surface.raise_()
        self._surfaces[page_number] = surface
        logger.debug("surface created for page %d (%dx%d, scale %.3f)", page_number, width_px, height_px, scale)
        self.surface_ready.emit(page_number, surface)
        return surface

    def surface_for(self, page_number: int) -> Optional[AnnotationSurface]:
        return self._surfaces.get(page_number)

    def current_surface(self) -> Optional[AnnotationSurface]:
        return next(iter(self._surfaces.values()), None)

    def place_stamp(self, page_number: int, point: QPointF) -> Optional[QWidget]:
        """
        指定ページのサーフェスに現在のツールでスタンプを配置する。

        そのページのサーフェスがまだ作成されていない場合は何もしません。
        """
        surface = self.surface_for(page_number)
        if surface is None or not surface.is_ready():
            return None
        return surface.place_stamp(point)

    def clear(self) -> None:
        """表示中のサーフェスを破棄する。"""
        for page_number, surface in list(self._surfaces.items()):
            surface.dispose()
            surface.deleteLater()
            self.surface_disposed.emit(page_number)
        self._surfaces.clear()
        if self.tool_handler is not None:
            self.tool_handler.end_gesture()

    def set_author(self, author_id: str) -> None:
        self.author_id = author_id
        for surface in self._surfaces.values():
            surface.author_id = author_id

    def _on_tool_changed(self, _tool: object) -> None:
        """ツール変更時に表示中のサーフェスのブラシを更新する。"""
        surface = self.current_surface()
        if surface is not None and self.interactive and self.tool_handler is not None:
            surface.apply_tool(self.tool_handler.brush())
