from __future__ import annotations
from typing import Optional

from PyQt6.QtCore import pyqtSignal, Qt, QEvent, QPoint, QObject, QRectF
from PyQt6.QtGui import QColor, QFont, QMouseEvent, QResizeEvent
from PyQt6.QtWidgets import QWidget, QVBoxLayout, QTextEdit, QToolButton

from models.annotation_models import AnnotationKind
from utils.geometry_utils import scale_rect


class TextAnnotationWidget(QWidget):
    """
    答案用紙上に配置される、移動可能なテキスト注釈ウィジェット。

    内部にQTextEditを持ち、採点者によるテキスト編集とウィジェット自体の移動をサポートします。
    ジオメトリとフォントサイズは倍率1.0のページ座標で保持し、表示倍率を掛けて描画します。
    """
    delete_requested = pyqtSignal(QWidget)
    changed = pyqtSignal()
    kind = AnnotationKind.TEXT

    def __init__(self, parent: Optional[QWidget], page_rect: QRectF, scale: float, color: QColor,
                 font_family: str, font_size: float, text: str = "", interactive: bool = True,
                 selection_color: QColor = QColor("#ff9800")) -> None:
        """
        TextAnnotationWidgetのコンストラクタ。

        Args:
            parent (Optional[QWidget]): 親ウィジェット（注釈サーフェス）。
            page_rect (QRectF): 倍率1.0のページ座標でのバウンディングボックス。
            scale (float): 表示倍率。
            color (QColor): テキストの色。
            font_family (str): フォントファミリー名。
            font_size (float): 倍率1.0でのフォントサイズ（ページ単位）。
            text (str): 初期テキスト。
            interactive (bool): 編集・移動・削除を許可するかどうか。
            selection_color (QColor): 選択時の枠線の色。
        """
        super().__init__(parent)
        self.page_rect: QRectF = QRectF(page_rect)
        self.scale: float = scale
        self.interactive: bool = interactive
        self.font_family: str = font_family
        self.font_size: float = font_size
        self.selection_color: QColor = QColor(selection_color)

        # --- 永続化用のタグ ---
        self.author_id: str = ""
        self.annotation_id: Optional[str] = None
        self.created_at: Optional[str] = None

        self.setAttribute(Qt.WidgetAttribute.WA_StyledBackground, True)
        self.setAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents, not interactive)
        self.setFocusPolicy(Qt.FocusPolicy.ClickFocus if interactive else Qt.FocusPolicy.NoFocus)

        # --- 状態変数の型定義 ---
        self._selected: bool = False
        self._press_pos: Optional[QPoint] = None
        self._widget_start: Optional[QPoint] = None
        self._dragging: bool = False
        self._color: QColor = QColor(color)

        # --- UI要素の型定義 ---
        self.text_edit: QTextEdit
        self.delete_button: QToolButton

        layout = QVBoxLayout(self)
        layout.setContentsMargins(4, 4, 4, 4)
        self.text_edit = QTextEdit(self)
        self.text_edit.setAcceptRichText(False)
        self.text_edit.setPlainText(text)
        self.text_edit.setReadOnly(not interactive)
        self.text_edit.setVerticalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self.text_edit.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        if interactive:
            self.text_edit.setPlaceholderText("コメントを入力...")
        else:
            self.text_edit.setAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents, True)
            self.text_edit.setFocusPolicy(Qt.FocusPolicy.NoFocus)
        layout.addWidget(self.text_edit)

        self.delete_button = QToolButton(self)
        self.delete_button.setText("削除")
        self.delete_button.setCursor(Qt.CursorShape.PointingHandCursor)
        self.delete_button.setStyleSheet("QToolButton { background-color: rgba(0, 0, 0, 0.55); color: white; padding: 1px 6px; border-radius: 4px; }")
        self.delete_button.setAutoRaise(True)
        self.delete_button.hide()
        self.delete_button.clicked.connect(self._emit_delete)

        self.text_edit.installEventFilter(self)
        self.text_edit.textChanged.connect(self.changed.emit)

        self.setMinimumSize(24, 16)
        self.set_text_style(color)
        self._apply_frame_style()
        self.sync_geometry()

    def text(self) -> str:
        return self.text_edit.toPlainText()

    @property
    def color(self) -> QColor:
        return QColor(self._color)

    def sync_geometry(self) -> None:
        """`page_rect` と表示倍率からウィジェットの位置・サイズとフォントを決定する。"""
        self.setGeometry(scale_rect(self.page_rect, self.scale).toRect())
        font = QFont(self.font_family)
        font.setPixelSize(max(1, round(self.font_size * self.scale)))
        self.text_edit.setFont(font)
        self._ensure_button_position()

    def focus_text(self) -> None:
        """テキスト編集状態に入る。"""
        if not self.interactive: return
        parent = self.parentWidget()
        if parent is not None and hasattr(parent, 'select_item'):
            parent.select_item(self)
        self.text_edit.setFocus()

    def is_selected(self) -> bool:
        return self._selected

    def set_selected(self, selected: bool) -> None:
        """ウィジェットの選択状態を設定し、外観（枠線）と削除ボタンの表示を更新する。"""
        if not self.interactive or self._selected == selected: return
        self._selected = selected
        self._apply_frame_style()
        if selected:
            self.delete_button.show()
            self._ensure_button_position()
        else:
            if not self.text_edit.hasFocus() and not self.underMouse():
                self.delete_button.hide()

    def _apply_frame_style(self) -> None:
        """選択状態に応じてウィジェットの枠線スタイルを更新する。"""
        if not self.interactive:
            self.setStyleSheet("background-color: rgba(255, 255, 255, 0.6); border: none;")
            return
        border_color = self.selection_color.name() if self._selected else "#666"
        border_width = 2 if self._selected else 1
        self.setStyleSheet(
            f"background-color: rgba(255, 255, 255, 0.85); border: {border_width}px solid {border_color}; border-radius: 4px;"
        )

    def set_text_style(self, color: QColor) -> None:
        """テキストの色を設定する。"""
        self._color = QColor(color)
        self.text_edit.setStyleSheet(f"QTextEdit {{ background-color: transparent; border: none; color: {self._color.name()}; }}")

    def _begin_drag(self, pos: QPoint) -> None:
        """ドラッグ操作を開始するために初期位置を記録する。"""
        self._press_pos = pos
        self._widget_start = self.pos()
        self._dragging = False

    def _apply_drag(self, pos: QPoint) -> bool:
        """ドラッグ中にウィジェットの位置を更新する。"""
        if self._press_pos is None or self._widget_start is None: return False
        delta = pos - self._press_pos
        if not self._dragging and delta.manhattanLength() > 5:
            self._dragging = True
        if not self._dragging: return False

        new_pos = self._widget_start + delta
        if self.parentWidget():
            max_x = self.parentWidget().width() - self.width()
            max_y = self.parentWidget().height() - self.height()
            new_pos.setX(max(0, min(new_pos.x(), max_x)))
            new_pos.setY(max(0, min(new_pos.y(), max_y)))
        self.move(new_pos)
        return True

    def _end_drag(self) -> bool:
        """ドラッグ操作を終了し、移動があればページ座標を更新して通知する。"""
        was_dragging = self._dragging
        self._press_pos = None
        self._widget_start = None
        self._dragging = False
        if was_dragging:
            self.page_rect = scale_rect(QRectF(self.geometry()), 1.0 / self.scale)
            self.changed.emit()
        return was_dragging

    def eventFilter(self, obj: QObject, event: QEvent) -> bool:
        """
        内部のQTextEditのイベントをフィルタリングし、ウィジェット全体のドラッグなどを実現する。
        """
        if obj is self.text_edit and self.interactive:
            if event.type() == QEvent.Type.FocusIn:
                self.delete_button.show()
                self._ensure_button_position()
            elif event.type() == QEvent.Type.FocusOut:
                if not self.underMouse() and not self._selected:
                    self.delete_button.hide()
            elif isinstance(event, QMouseEvent):
                # テキスト編集領域の座標をウィジェット座標に変換して扱う
                pos = self.text_edit.mapTo(self, event.pos())
                if event.type() == QEvent.Type.MouseButtonPress and event.button() == Qt.MouseButton.LeftButton:
                    self.focus_text()
                    self._begin_drag(pos)
                elif event.type() == QEvent.Type.MouseMove and event.buttons() & Qt.MouseButton.LeftButton:
                    if self._apply_drag(pos): return True
                elif event.type() == QEvent.Type.MouseButtonRelease and event.button() == Qt.MouseButton.LeftButton:
                    if self._end_drag(): return True
        return super().eventFilter(obj, event)

    def mousePressEvent(self, event: QMouseEvent) -> None:
        """ウィジェットのフレーム部分でのマウスプレスを処理する。"""
        if self.interactive and event.button() == Qt.MouseButton.LeftButton and not self.delete_button.geometry().contains(event.pos()):
            self.focus_text()
            self._begin_drag(event.pos())
            return
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event: QMouseEvent) -> None:
        """ウィジェットのフレーム部分でのマウスムーブを処理する。"""
        if event.buttons() & Qt.MouseButton.LeftButton:
            if self._apply_drag(event.pos()): return
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:
        """ウィジェットのフレーム部分でのマウスリリースを処理する。"""
        if event.button() == Qt.MouseButton.LeftButton:
            if self._end_drag(): return
        super().mouseReleaseEvent(event)

    def resizeEvent(self, event: QResizeEvent) -> None:
        """ウィジェットのリサイズ時に削除ボタンの位置を調整する。"""
        super().resizeEvent(event)
        self._ensure_button_position()

    def enterEvent(self, event: QEvent) -> None:
        """マウスカーソルがウィジェットに入ったときに削除ボタンを表示する。"""
        if self._selected or self.text_edit.hasFocus():
            self.delete_button.show()
        super().enterEvent(event)

    def leaveEvent(self, event: QEvent) -> None:
        """マウスカーソルがウィジェットから出たときに削除ボタンを非表示にする。"""
        if not self.text_edit.hasFocus() and not self._selected:
            self.delete_button.hide()
        super().leaveEvent(event)

    def _ensure_button_position(self) -> None:
        """削除ボタンをウィジェットの右上に配置する。"""
        if not self.delete_button: return
        size = self.delete_button.sizeHint()
        self.delete_button.resize(size)
        self.delete_button.move(max(0, self.width() - size.width()), 0)
        self.delete_button.raise_()

    def _emit_delete(self) -> None:
        """delete_requestedシグナルを発行する。"""
        if self.text_edit.hasFocus(): self.text_edit.clearFocus()
        self.delete_requested.emit(self)
