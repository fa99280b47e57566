from __future__ import annotations
import logging
from typing import TYPE_CHECKING, List, Optional, Union

from PyQt6.QtCore import pyqtSignal, Qt, QPointF, QRectF
from PyQt6.QtGui import QColor, QPainter, QPainterPath, QPen, QMouseEvent, QPaintEvent
from PyQt6.QtWidgets import QWidget

from models.annotation_models import AnnotationKind
from .annotation_config import AnnotationStyleConfig
from .shape_annotation import ShapeAnnotationWidget
from .text_annotation import TextAnnotationWidget

if TYPE_CHECKING:
    from ..handlers.tool_handler import BrushSettings

logger = logging.getLogger(__name__)


class StrokeItem:
    """
    フリーハンドで描かれた1本の線（ペン、消しゴム、蛍光ペン）。

    パスと線幅は倍率1.0のページ座標で保持し、描画時にサーフェスの倍率で拡大します。
    """

    def __init__(self, path: QPainterPath, kind: AnnotationKind, color: QColor, width: float,
                 author_id: str = "") -> None:
        self.path: QPainterPath = QPainterPath(path)
        self.kind: AnnotationKind = kind
        self.color: QColor = QColor(color)
        self.width: float = width
        self.author_id: str = author_id
        self.annotation_id: Optional[str] = None
        self.created_at: Optional[str] = None

    def bounding_rect(self) -> QRectF:
        return self.path.boundingRect()

    def paint(self, painter: QPainter) -> None:
        pen = QPen(self.color, self.width, Qt.PenStyle.SolidLine, Qt.PenCapStyle.RoundCap, Qt.PenJoinStyle.RoundJoin)
        painter.setPen(pen)
        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.drawPath(self.path)


AnnotationItem = Union[StrokeItem, ShapeAnnotationWidget, TextAnnotationWidget]


class AnnotationSurface(QWidget):
    """
    レンダリングされた1ページの上に重ねる透明な注釈レイヤー。

    ページラベルの左上 (0, 0) に、レンダリングされたページと同じ論理ピクセルサイズで配置されます。
    フリーハンドの線は自身で描画し、スタンプとテキストは子ウィジェットとして保持します。
    サイズや倍率は作成後に変更しません。ページや倍率が変わった場合は新しいサーフェスを作成します。
    """
    content_changed = pyqtSignal()
    gesture_started = pyqtSignal()
    gesture_finished = pyqtSignal()

    def __init__(self, parent: Optional[QWidget], page_number: int, scale: float, width: int, height: int,
                 interactive: bool = True, config: Optional[AnnotationStyleConfig] = None,
                 author_id: str = "") -> None:
        """
        AnnotationSurfaceのコンストラクタ。

        Args:
            parent (Optional[QWidget]): 親ウィジェット（ページを表示するラベル）。
            page_number (int): 対応するページ番号（1始まり）。
            scale (float): ページ座標から論理ピクセルへの倍率。
            width (int): 論理ピクセル単位の幅。
            height (int): 論理ピクセル単位の高さ。
            interactive (bool): Falseの場合は読み取り専用で、ポインタ入力を無視する。
            config (Optional[AnnotationStyleConfig]): 描画設定。
            author_id (str): 新しく配置した注釈に付与する採点者ID。
        """
        super().__init__(parent)
        self.page_number: int = page_number
        self.scale: float = scale if scale > 0 else 1.0
        self.interactive: bool = interactive
        self.config: AnnotationStyleConfig = config or AnnotationStyleConfig()
        self.author_id: str = author_id
        self.brush: Optional[BrushSettings] = None

        # --- 状態変数の型定義 ---
        self._items: List[AnnotationItem] = []
        self._pending_path: Optional[QPainterPath] = None
        self._pending_brush: Optional[BrushSettings] = None
        self._disposed: bool = False

        self.setAttribute(Qt.WidgetAttribute.WA_TranslucentBackground, True)
        self.setAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents, not interactive)
        self.setGeometry(0, 0, max(0, width), max(0, height))

    # --- 状態 ---
    def is_ready(self) -> bool:
        """ページに合わせてサイズが確定しており、破棄されていない場合にTrue。"""
        return not self._disposed and self.width() > 0 and self.height() > 0

    def is_disposed(self) -> bool:
        return self._disposed

    def has_pending_stroke(self) -> bool:
        return self._pending_path is not None

    def items(self) -> List[AnnotationItem]:
        """配置順の注釈オブジェクトのリスト（コピー）を返す。"""
        return list(self._items)

    def to_page(self, point: QPointF) -> QPointF:
        """論理ピクセル座標を倍率1.0のページ座標に変換する。"""
        return QPointF(point.x() / self.scale, point.y() / self.scale)

    def apply_tool(self, brush: Optional[BrushSettings]) -> None:
        """
        描画ブラシを差し替える。既存の注釈は保持される。

        描画途中の線がある場合は、開始時のブラシで確定してから差し替えます。
        """
        self.commit_pending_stroke()
        self.brush = brush
        if not self.interactive:
            return
        if brush is None:
            self.unsetCursor()
        elif brush.is_stamp:
            self.setCursor(Qt.CursorShape.PointingHandCursor)
        else:
            self.setCursor(Qt.CursorShape.CrossCursor)

    # --- フリーハンド描画 ---
    def begin_stroke(self, point: QPointF) -> bool:
        """線の描画を開始する。連続描画モードでない場合や読み取り専用の場合は何もしない。"""
        if not self.interactive or not self.is_ready() or self.brush is None or self.brush.is_stamp:
            return False
        self.commit_pending_stroke()
        self._pending_brush = self.brush
        self._pending_path = QPainterPath(self.to_page(self._clamp_point(point)))
        self.gesture_started.emit()
        return True

    def extend_stroke(self, point: QPointF) -> None:
        if self._pending_path is None: return
        self._pending_path.lineTo(self.to_page(self._clamp_point(point)))
        self.update()

    def end_stroke(self) -> Optional[StrokeItem]:
        return self.commit_pending_stroke()

    def commit_pending_stroke(self) -> Optional[StrokeItem]:
        """
        描画途中の線を確定する。

        移動要素しかない（クリックだけの）パスは破棄します。

        Returns:
            Optional[StrokeItem]: 確定した線。確定するものがなければNone。
        """
        if self._pending_path is None or self._pending_brush is None:
            return None
        path, brush = self._pending_path, self._pending_brush
        self._pending_path = None
        self._pending_brush = None

        item = None
        if not path.isEmpty():
            item = StrokeItem(path, brush.kind, brush.color, brush.width / self.scale, self.author_id)
            self._items.append(item)
            logger.debug("stroke committed on page %d (%s)", self.page_number, brush.kind.value)
        self.update()
        self.gesture_finished.emit()
        if item is not None:
            self.content_changed.emit()
        return item

    # --- スタンプ ---
    def place_stamp(self, point: QPointF, brush: Optional[BrushSettings] = None) -> Optional[QWidget]:
        """
        スタンプ（✓、×、○、テキスト）を `point` を中心に配置する。

        サーフェスのサイズが確定していない場合は何もせずNoneを返します。
        配置位置はサーフェスの内側に収まるように調整されます。

        Args:
            point (QPointF): 中心位置（論理ピクセル）。
            brush (Optional[BrushSettings]): 使用するブラシ。省略時は現在のブラシ。

        Returns:
            Optional[QWidget]: 配置されたウィジェット。
        """
        brush = brush or self.brush
        if not self.is_ready() or brush is None or not brush.is_stamp:
            return None

        cfg = self.config
        if brush.kind == AnnotationKind.TEXT:
            w, h = min(cfg.text_box_width, self.width()), min(cfg.text_box_height, self.height())
        else:
            w = h = min(cfg.stamp_size, self.width(), self.height())
        x = max(0.0, min(point.x() - w / 2, self.width() - w))
        y = max(0.0, min(point.y() - h / 2, self.height() - h))
        page_rect = QRectF(x / self.scale, y / self.scale, w / self.scale, h / self.scale)

        if brush.kind == AnnotationKind.TEXT:
            widget: QWidget = TextAnnotationWidget(
                self, page_rect, self.scale, brush.color, cfg.text_font_family,
                cfg.text_font_size / self.scale, interactive=self.interactive,
                selection_color=cfg.selection_color)
        else:
            widget = ShapeAnnotationWidget(
                self, brush.kind, page_rect, self.scale, brush.color, brush.width / self.scale,
                interactive=self.interactive, selection_color=cfg.selection_color)
        widget.author_id = self.author_id
        self.add_item(widget)
        logger.debug("%s placed on page %d at (%.1f, %.1f)", brush.kind.value, self.page_number, x, y)

        if isinstance(widget, TextAnnotationWidget):
            widget.focus_text()
        self.content_changed.emit()
        return widget

    # --- オブジェクト管理 ---
    def add_item(self, item: AnnotationItem) -> None:
        """注釈オブジェクトを追加する。ウィジェットの場合は子として表示し、変更を購読する。"""
        if isinstance(item, QWidget):
            if item.parentWidget() is not self:
                item.setParent(self)
            item.delete_requested.connect(self.remove_item)
            item.changed.connect(self.content_changed.emit)
            item.show()
        self._items.append(item)
        self.update()

    def remove_item(self, item: AnnotationItem) -> None:
        """注釈オブジェクトを削除する。"""
        if item not in self._items: return
        self._items.remove(item)
        if isinstance(item, QWidget):
            item.hide()
            item.deleteLater()
        self.update()
        self.content_changed.emit()

    def select_item(self, item: Optional[QWidget]) -> None:
        """指定したウィジェットを選択し、他の選択を解除する。"""
        for other in self._items:
            if isinstance(other, QWidget) and other is not item:
                other.set_selected(False)
        if item is not None:
            item.set_selected(True)

    def dispose(self) -> None:
        """
        サーフェスを破棄する。確定していない線は保存されずに失われる。

        呼び出し側は必要に応じて事前にスナップショットを取得し、その後 `deleteLater()` する。
        """
        if self._disposed: return
        self._disposed = True
        self._pending_path = None
        self._pending_brush = None
        for item in self._items:
            if isinstance(item, QWidget):
                item.hide()
                item.deleteLater()
        self._items.clear()
        self.hide()
        logger.debug("surface for page %d disposed", self.page_number)

    # --- イベント ---
    def mousePressEvent(self, event: QMouseEvent) -> None:
        """現在のブラシに応じて、線の描画開始またはスタンプの配置を行う。"""
        if event.button() != Qt.MouseButton.LeftButton or self.brush is None:
            return super().mousePressEvent(event)
        self.select_item(None)
        if self.brush.is_stamp:
            self.place_stamp(event.position())
        else:
            self.begin_stroke(event.position())
        event.accept()

    def mouseMoveEvent(self, event: QMouseEvent) -> None:
        if self._pending_path is not None and event.buttons() & Qt.MouseButton.LeftButton:
            self.extend_stroke(event.position())
            event.accept()
            return
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:
        if event.button() == Qt.MouseButton.LeftButton and self._pending_path is not None:
            self.end_stroke()
            event.accept()
            return
        super().mouseReleaseEvent(event)

    def paintEvent(self, event: QPaintEvent) -> None:
        """確定済みの線と描画途中の線を倍率を掛けて描画する。"""
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        painter.scale(self.scale, self.scale)
        for item in self._items:
            if isinstance(item, StrokeItem):
                item.paint(painter)
        if self._pending_path is not None and self._pending_brush is not None:
            brush = self._pending_brush
            pen = QPen(brush.color, brush.width / self.scale, Qt.PenStyle.SolidLine,
                       Qt.PenCapStyle.RoundCap, Qt.PenJoinStyle.RoundJoin)
            painter.setPen(pen)
            painter.drawPath(self._pending_path)
        painter.end()

    def _clamp_point(self, point: QPointF) -> QPointF:
        """指定された位置がサーフェスの範囲内に収まるように調整する。"""
        return QPointF(max(0.0, min(point.x(), float(self.width()))),
                       max(0.0, min(point.y(), float(self.height()))))
