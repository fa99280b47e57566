from dataclasses import dataclass, field
from typing import List, Tuple

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QColor


def _default_palette() -> List[Tuple[str, QColor]]:
    return [
        ("赤", QColor("#d32f2f")),
        ("青", QColor("#1976d2")),
        ("緑", QColor("#388e3c")),
        ("黒", QColor("#212121")),
    ]


@dataclass
class AnnotationStyleConfig:
    """
    採点用注釈（ペン、消しゴム、蛍光ペン、スタンプ、テキスト）の描画設定をカプセル化するデータクラス。

    線幅やスタンプの大きさは画面上の論理ピクセルで指定します。
    """
    emphasis_color: QColor = field(default_factory=lambda: QColor("#d32f2f"))
    palette: List[Tuple[str, QColor]] = field(default_factory=_default_palette)

    pen_width: float = 2.0
    eraser_width: float = 16.0
    highlighter_width: float = 12.0
    highlighter_color: QColor = field(default_factory=lambda: QColor("#fdd835"))
    highlighter_alpha: int = 96
    # 消しゴムは背景色で上書きする
    background_color: QColor = field(default_factory=lambda: QColor(Qt.GlobalColor.white))

    stamp_size: int = 48
    stamp_stroke_width: float = 3.0

    text_font_family: str = "Noto Sans CJK JP"
    text_font_size: float = 14.0
    text_box_width: int = 180
    text_box_height: int = 56

    selection_color: QColor = field(default_factory=lambda: QColor("#ff9800"))

    def highlighter_qcolor(self) -> QColor:
        color = QColor(self.highlighter_color)
        color.setAlpha(self.highlighter_alpha)
        return color
