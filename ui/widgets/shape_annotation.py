from __future__ import annotations
from typing import Optional

from PyQt6.QtCore import pyqtSignal, Qt, QEvent, QPoint, QRect, QRectF, QSize
from PyQt6.QtGui import (QColor, QPainter, QPen, QPaintEvent,
                         QMouseEvent, QEnterEvent, QResizeEvent)
from PyQt6.QtWidgets import QWidget, QToolButton

from models.annotation_models import AnnotationKind
from utils.geometry_utils import check_glyph_path, cross_glyph_path, scale_rect


class ShapeAnnotationWidget(QWidget):
    """
    答案用紙上に配置される、移動・リサイズ可能なスタンプ（✓、×、○）を描画するウィジェット。

    ジオメトリは倍率1.0のページ座標 `page_rect` を正として保持し、
    ウィジェットの位置とサイズは表示倍率を掛けて決定します。
    読み取り専用（interactive=False）の場合はマウス操作を一切受け付けません。
    """
    delete_requested = pyqtSignal(QWidget)
    changed = pyqtSignal()
    HANDLE_SIZE: int = 14
    MIN_SIZE: QSize = QSize(16, 16)
    KINDS = (AnnotationKind.CHECK, AnnotationKind.CROSS, AnnotationKind.CIRCLE)

    def __init__(self, parent: Optional[QWidget], kind: AnnotationKind, page_rect: QRectF, scale: float,
                 color: QColor, stroke_width: float, interactive: bool = True,
                 selection_color: QColor = QColor("#ff9800")) -> None:
        """
        ShapeAnnotationWidgetのコンストラクタ。

        Args:
            parent (Optional[QWidget]): 親ウィジェット（注釈サーフェス）。
            kind (AnnotationKind): スタンプの種類（check, cross, circle）。
            page_rect (QRectF): 倍率1.0のページ座標でのバウンディングボックス。
            scale (float): 表示倍率。
            color (QColor): 線の色。
            stroke_width (float): 倍率1.0での線幅。
            interactive (bool): 選択・移動・削除を許可するかどうか。
            selection_color (QColor): 選択時の強調色。
        """
        super().__init__(parent)
        if kind not in self.KINDS:
            raise ValueError(f"スタンプとして描画できない種類です: {kind}")
        self.kind: AnnotationKind = kind
        self.page_rect: QRectF = QRectF(page_rect)
        self.scale: float = scale
        self.color: QColor = QColor(color)
        self.stroke_width: float = stroke_width
        self.interactive: bool = interactive
        self.selection_color: QColor = QColor(selection_color)

        # --- 永続化用のタグ ---
        self.author_id: str = ""
        self.annotation_id: Optional[str] = None
        self.created_at: Optional[str] = None

        self.setAttribute(Qt.WidgetAttribute.WA_TranslucentBackground, True)
        self.setAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents, not interactive)
        self.setFocusPolicy(Qt.FocusPolicy.ClickFocus if interactive else Qt.FocusPolicy.NoFocus)
        self.setMouseTracking(interactive)

        # --- 状態変数の型定義 ---
        self._selected: bool = False
        self._press_pos: Optional[QPoint] = None
        self._widget_start: Optional[QPoint] = None
        self._size_start: Optional[QSize] = None
        self._interaction_mode: Optional[str] = None  # "drag" or "resize"
        self._dragging: bool = False

        # --- UI要素の型定義 ---
        self.delete_button: QToolButton = QToolButton(self)
        self.delete_button.setText("削除")
        self.delete_button.setCursor(Qt.CursorShape.PointingHandCursor)
        self.delete_button.setStyleSheet("QToolButton { background-color: rgba(0, 0, 0, 0.55); color: white; padding: 1px 6px; border-radius: 4px; }")
        self.delete_button.setAutoRaise(True)
        self.delete_button.hide()
        self.delete_button.clicked.connect(lambda: self.delete_requested.emit(self))

        self.setMinimumSize(self.MIN_SIZE)
        self.sync_geometry()

    def sync_geometry(self) -> None:
        """`page_rect` と表示倍率からウィジェットの位置とサイズを決定する。"""
        self.setGeometry(scale_rect(self.page_rect, self.scale).toRect())
        self._ensure_delete_button_position()

    def is_selected(self) -> bool:
        return self._selected

    def set_selected(self, selected: bool) -> None:
        """ウィジェットの選択状態を設定し、外観を更新する。"""
        if not self.interactive or self._selected == selected: return
        self._selected = selected
        self.delete_button.setVisible(selected)
        if selected: self._ensure_delete_button_position()
        self.update()

    def paintEvent(self, event: QPaintEvent) -> None:
        """
        スタンプと選択ハンドルを描画する。
        `kind`と選択状態に応じて描画内容が変わります。
        """
        super().paintEvent(event)
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)

        line_width = max(1.0, self.stroke_width * self.scale)
        inset = line_width / 2 + 1
        rect = QRectF(self.rect()).adjusted(inset, inset, -inset, -inset)

        pen = QPen(self.color, line_width)
        pen.setCapStyle(Qt.PenCapStyle.RoundCap)
        pen.setJoinStyle(Qt.PenJoinStyle.RoundJoin)
        painter.setPen(pen)
        painter.setBrush(Qt.BrushStyle.NoBrush)

        if self.kind == AnnotationKind.CIRCLE:
            painter.drawEllipse(rect)
        elif self.kind == AnnotationKind.CHECK:
            painter.drawPath(check_glyph_path(rect))
        else:  # cross
            painter.drawPath(cross_glyph_path(rect))

        if self._selected:
            painter.setPen(QPen(self.selection_color, 1, Qt.PenStyle.DashLine))
            painter.drawRect(QRectF(self.rect()).adjusted(0.5, 0.5, -0.5, -0.5))
            painter.setPen(Qt.PenStyle.NoPen)
            painter.setBrush(self.selection_color)
            painter.drawRect(self._resize_handle_rect())
        painter.end()

    def _select_on_surface(self) -> None:
        """親サーフェスにこのウィジェットの選択を通知する。"""
        parent = self.parentWidget()
        if parent is not None and hasattr(parent, 'select_item'):
            parent.select_item(self)
        else:
            self.set_selected(True)

    def _start_interaction(self, global_pos: QPoint, mode: str) -> None:
        """ドラッグまたはリサイズのインタラクションを開始する。"""
        self._interaction_mode = mode
        self._press_pos = global_pos
        self._widget_start = self.pos()
        self._size_start = self.size()
        self._dragging = False
        self.setCursor(Qt.CursorShape.ClosedHandCursor if mode == "drag" else Qt.CursorShape.SizeFDiagCursor)

    def _update_interaction(self, global_pos: QPoint) -> bool:
        """ドラッグまたはリサイズ中にウィジェットの位置やサイズを更新する。"""
        if self._interaction_mode is None or self._press_pos is None: return False
        delta = global_pos - self._press_pos
        if not self._dragging and delta.manhattanLength() > 3:
            self._dragging = True
        if not self._dragging: return False

        if self._interaction_mode == "drag" and self._widget_start is not None:
            new_pos = self._widget_start + delta
            if self.parentWidget():
                max_x = self.parentWidget().width() - self.width()
                max_y = self.parentWidget().height() - self.height()
                new_pos.setX(max(0, min(new_pos.x(), max_x)))
                new_pos.setY(max(0, min(new_pos.y(), max_y)))
            self.move(new_pos)
        elif self._interaction_mode == "resize" and self._size_start is not None:
            new_w = max(self.MIN_SIZE.width(), self._size_start.width() + delta.x())
            new_h = max(self.MIN_SIZE.height(), self._size_start.height() + delta.y())
            self.resize(new_w, new_h)

        self.update()
        return True

    def _end_interaction(self) -> bool:
        """インタラクションを終了し、移動やリサイズがあればページ座標を更新して通知する。"""
        if self._interaction_mode is None: return False
        was_dragging = self._dragging
        self._interaction_mode = None
        self._press_pos = None
        self._dragging = False
        self.setCursor(Qt.CursorShape.OpenHandCursor if self.underMouse() else Qt.CursorShape.ArrowCursor)
        if was_dragging:
            self.page_rect = scale_rect(QRectF(self.geometry()), 1.0 / self.scale)
            self.changed.emit()
        return was_dragging

    def mousePressEvent(self, event: QMouseEvent) -> None:
        """マウスプレスイベント。選択し、ドラッグまたはリサイズのインタラクションを開始する。"""
        if not self.interactive or event.button() != Qt.MouseButton.LeftButton:
            return super().mousePressEvent(event)
        self._select_on_surface()
        mode = "resize" if self._resize_handle_rect().contains(event.pos()) else "drag"
        self._start_interaction(event.globalPosition().toPoint(), mode)
        self.setFocus()
        event.accept()

    def mouseMoveEvent(self, event: QMouseEvent) -> None:
        """マウスムーブイベント。インタラクション中の更新やカーソル形状の変更を行う。"""
        if event.buttons() & Qt.MouseButton.LeftButton:
            if self._update_interaction(event.globalPosition().toPoint()):
                event.accept()
        elif self._interaction_mode is None and self._selected:
            cursor_shape = Qt.CursorShape.SizeFDiagCursor if self._resize_handle_rect().contains(event.pos()) else Qt.CursorShape.OpenHandCursor
            self.setCursor(cursor_shape)

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:
        """マウスリリースイベント。インタラクションを終了する。"""
        if event.button() == Qt.MouseButton.LeftButton:
            if self._end_interaction():
                event.accept()

    def enterEvent(self, event: QEnterEvent) -> None:
        if self.interactive:
            self.setCursor(Qt.CursorShape.OpenHandCursor)
        super().enterEvent(event)

    def leaveEvent(self, event: QEvent) -> None:
        if self._interaction_mode is None:
            self.setCursor(Qt.CursorShape.ArrowCursor)
        super().leaveEvent(event)

    def resizeEvent(self, event: QResizeEvent) -> None:
        """ウィジェットのリサイズイベント。削除ボタンの位置を更新する。"""
        super().resizeEvent(event)
        self._ensure_delete_button_position()

    def _resize_handle_rect(self) -> QRect:
        """右下のリサイズ用ハンドルの矩形を返す。"""
        size = min(self.HANDLE_SIZE, self.width() // 3, self.height() // 3)
        return QRect(self.width() - size, self.height() - size, size, size)

    def _ensure_delete_button_position(self) -> None:
        """削除ボタンをウィジェットの右上に配置する。"""
        size = self.delete_button.sizeHint()
        self.delete_button.resize(size)
        self.delete_button.move(max(0, self.width() - size.width()), 0)
        self.delete_button.raise_()
