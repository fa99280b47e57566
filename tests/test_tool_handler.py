import pytest
from PyQt6.QtCore import QPointF
from PyQt6.QtGui import QColor

from models.annotation_models import AnnotationKind
from ui.handlers.tool_handler import BrushSettings, Tool, ToolHandler
from ui.handlers.viewport_handler import ViewportHandler
from ui.widgets import AnnotationStyleConfig, PDFDisplayLabel, StrokeItem

pytestmark = pytest.mark.usefixtures("qapp")


def test_select_tool_moves_directly_to_that_tool():
    handler = ToolHandler()
    received = []
    handler.tool_changed.connect(received.append)

    assert handler.select_tool("oval") == Tool.OVAL
    assert handler.current_tool == Tool.OVAL
    assert handler.is_stamp_tool()
    assert received == [Tool.OVAL]


@pytest.mark.parametrize("name", ["laser", "", "idle"])
def test_unknown_or_idle_tool_is_rejected(name):
    handler = ToolHandler()
    with pytest.raises(ValueError):
        handler.select_tool(name)
    assert handler.current_tool == Tool.PEN


def test_state_is_idle_between_gestures():
    handler = ToolHandler()
    assert handler.state == Tool.IDLE
    handler.begin_gesture()
    assert handler.state == Tool.PEN
    assert not handler.is_idle()
    handler.end_gesture()
    assert handler.is_idle()


@pytest.mark.parametrize("tool, kind", [
    (Tool.PEN, AnnotationKind.PEN),
    (Tool.ERASER, AnnotationKind.PEN),
    (Tool.HIGHLIGHTER, AnnotationKind.HIGHLIGHT),
    (Tool.TICK, AnnotationKind.CHECK),
    (Tool.CROSS, AnnotationKind.CROSS),
    (Tool.OVAL, AnnotationKind.CIRCLE),
    (Tool.TEXTBOX, AnnotationKind.TEXT),
])
def test_each_tool_creates_its_annotation_kind(tool, kind):
    assert BrushSettings.for_tool(tool, AnnotationStyleConfig()).kind == kind


def test_eraser_and_highlighter_brushes():
    config = AnnotationStyleConfig()
    eraser = BrushSettings.for_tool(Tool.ERASER, config, QColor("#1976d2"))
    highlighter = BrushSettings.for_tool(Tool.HIGHLIGHTER, config)

    assert eraser.color == config.background_color
    assert eraser.width > config.pen_width
    assert highlighter.color.alpha() == config.highlighter_alpha
    assert highlighter.width == config.highlighter_width


def test_color_applies_to_pen_and_stamps():
    handler = ToolHandler()
    handler.set_color(QColor("#1976d2"))
    assert handler.brush().color == QColor("#1976d2")
    handler.select_tool("tick")
    assert handler.brush().color == QColor("#1976d2")


def test_tool_change_mid_stroke_commits_the_stroke():
    tools = ToolHandler()
    viewport = ViewportHandler(PDFDisplayLabel(), tools, author_id="grader-1")
    surface = viewport.on_page_rendered(1, 600, 800, 1.0)

    assert surface.begin_stroke(QPointF(10, 10))
    surface.extend_stroke(QPointF(60, 60))
    assert tools.state == Tool.PEN

    tools.select_tool("highlighter")

    (stroke,) = surface.items()
    assert isinstance(stroke, StrokeItem)
    assert stroke.kind == AnnotationKind.PEN
    assert not surface.has_pending_stroke()
    assert surface.brush.tool == Tool.HIGHLIGHTER
    assert tools.state == Tool.IDLE


def test_tool_change_keeps_existing_objects():
    tools = ToolHandler()
    viewport = ViewportHandler(PDFDisplayLabel(), tools)
    surface = viewport.on_page_rendered(1, 600, 800, 1.0)
    tools.select_tool("tick")
    viewport.place_stamp(1, QPointF(100, 100))

    tools.select_tool("pen")

    assert len(surface.items()) == 1
    assert surface.brush.tool == Tool.PEN
