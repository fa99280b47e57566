from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

from PyQt6.QtCore import QObject, pyqtSignal
from PyQt6.QtGui import QColor

from models.annotation_models import AnnotationKind
from ui.widgets.annotation_config import AnnotationStyleConfig

logger = logging.getLogger(__name__)


class Tool(str, Enum):
    """ポインタ入力の解釈を決める採点ツール。IDLEは選択できない。"""
    PEN = "pen"
    ERASER = "eraser"
    HIGHLIGHTER = "highlighter"
    TICK = "tick"
    CROSS = "cross"
    OVAL = "oval"
    TEXTBOX = "textbox"
    IDLE = "idle"


STROKE_TOOLS = (Tool.PEN, Tool.ERASER, Tool.HIGHLIGHTER)
STAMP_TOOLS = (Tool.TICK, Tool.CROSS, Tool.OVAL, Tool.TEXTBOX)

# 消しゴムは背景色のペンとして保存される
TOOL_KINDS: Dict[Tool, AnnotationKind] = {
    Tool.PEN: AnnotationKind.PEN,
    Tool.ERASER: AnnotationKind.PEN,
    Tool.HIGHLIGHTER: AnnotationKind.HIGHLIGHT,
    Tool.TICK: AnnotationKind.CHECK,
    Tool.CROSS: AnnotationKind.CROSS,
    Tool.OVAL: AnnotationKind.CIRCLE,
    Tool.TEXTBOX: AnnotationKind.TEXT,
}


@dataclass(frozen=True)
class BrushSettings:
    """
    注釈サーフェスに適用する描画パラメータ。

    Attributes:
        tool (Tool): 元になったツール。
        kind (AnnotationKind): 作成される注釈の種類（作成時に付与される明示的なタグ）。
        color (QColor): 線またはテキストの色。
        width (float): 論理ピクセル単位の線幅。
    """
    tool: Tool
    kind: AnnotationKind
    color: QColor
    width: float

    @property
    def is_stamp(self) -> bool:
        return self.tool in STAMP_TOOLS

    @classmethod
    def for_tool(cls, tool: Tool, config: AnnotationStyleConfig, color: Optional[QColor] = None) -> "BrushSettings":
        """ツールと描画設定からブラシを生成する。"""
        color = QColor(color) if color is not None else QColor(config.emphasis_color)
        if tool == Tool.ERASER:
            return cls(tool, TOOL_KINDS[tool], QColor(config.background_color), config.eraser_width)
        if tool == Tool.HIGHLIGHTER:
            return cls(tool, TOOL_KINDS[tool], config.highlighter_qcolor(), config.highlighter_width)
        if tool in STAMP_TOOLS:
            return cls(tool, TOOL_KINDS[tool], color, config.stamp_stroke_width)
        return cls(tool, TOOL_KINDS[tool], color, config.pen_width)


class ToolHandler(QObject):
    """
    現在の採点ツールを管理する状態機械。

    ツールの選択は中間状態を経ずに直接その状態へ遷移します。
    連続描画（ペン、消しゴム、蛍光ペン）中かどうかをジェスチャーとして追跡し、
    ジェスチャーの合間は IDLE 状態とみなします。
    """
    tool_changed = pyqtSignal(object)

    def __init__(self, config: Optional[AnnotationStyleConfig] = None, parent: Optional[QObject] = None) -> None:
        """
        ToolHandlerのコンストラクタ。

        Args:
            config (Optional[AnnotationStyleConfig]): 描画設定。
            parent (Optional[QObject]): 親オブジェクト。
        """
        super().__init__(parent)
        self.config: AnnotationStyleConfig = config or AnnotationStyleConfig()
        self.current_tool: Tool = Tool.PEN
        self.color: QColor = QColor(self.config.emphasis_color)
        self._gesture_active: bool = False

    @property
    def state(self) -> Tool:
        """ジェスチャー中は選択中のツール、そうでなければ IDLE。"""
        return self.current_tool if self._gesture_active else Tool.IDLE

    def select_tool(self, name: Union[str, Tool]) -> Tool:
        """
        ツールを選択する。

        描画途中のジェスチャーは終了扱いとなり、サーフェス側で線が確定されます。

        Args:
            name: ツール名（"pen", "eraser", "highlighter", "tick", "cross", "oval", "textbox"）。

        Returns:
            Tool: 選択されたツール。

        Raises:
            ValueError: 不明なツール名、または IDLE が指定された場合。
        """
        try:
            tool = Tool(name)
        except ValueError:
            raise ValueError(f"不明なツールです: {name!r}") from None
        if tool == Tool.IDLE:
            raise ValueError("idle は選択できません")

        self._gesture_active = False
        previous, self.current_tool = self.current_tool, tool
        logger.debug("tool changed: %s -> %s", previous.value, tool.value)
        self.tool_changed.emit(tool)
        return tool

    def set_color(self, color: QColor) -> None:
        """ペンとスタンプの色を変更する。"""
        self.color = QColor(color)
        self.tool_changed.emit(self.current_tool)

    def brush(self) -> BrushSettings:
        return BrushSettings.for_tool(self.current_tool, self.config, self.color)

    def is_stamp_tool(self, tool: Optional[Tool] = None) -> bool:
        return (tool or self.current_tool) in STAMP_TOOLS

    def begin_gesture(self) -> None:
        self._gesture_active = True

    def end_gesture(self) -> None:
        self._gesture_active = False

    def is_idle(self) -> bool:
        return not self._gesture_active
