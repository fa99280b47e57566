import pytest
from PyQt6.QtCore import QPointF, Qt
from PyQt6.QtGui import QColor

from models.annotation_models import Annotation, AnnotationKind
from ui.handlers.annotation_handler import AnnotationHandler
from ui.handlers.tool_handler import BrushSettings, Tool
from ui.widgets import AnnotationStyleConfig, AnnotationSurface, ShapeAnnotationWidget, StrokeItem, TextAnnotationWidget

pytestmark = pytest.mark.usefixtures("qapp")

CONFIG = AnnotationStyleConfig()
BLUE = QColor("#1976d2")


def make_surface(scale=1.0, page=1, interactive=True, author_id="grader-1"):
    return AnnotationSurface(None, page, scale, round(600 * scale), round(800 * scale),
                             interactive=interactive, config=CONFIG, author_id=author_id)


def draw_stroke(surface, tool, points, color=BLUE):
    surface.apply_tool(BrushSettings.for_tool(tool, CONFIG, color))
    surface.begin_stroke(QPointF(*points[0]))
    for point in points[1:]:
        surface.extend_stroke(QPointF(*point))
    return surface.end_stroke()


def stamp(surface, tool, point, color=BLUE):
    return surface.place_stamp(QPointF(*point), BrushSettings.for_tool(tool, CONFIG, color))


def assert_close(a, b):
    if isinstance(a, dict):
        assert a.keys() == b.keys()
        for key in a:
            assert_close(a[key], b[key])
    elif isinstance(a, (list, tuple)):
        assert len(a) == len(b)
        for x, y in zip(a, b):
            assert_close(x, y)
    elif isinstance(a, float) or (isinstance(a, int) and not isinstance(a, bool)):
        assert a == pytest.approx(b, abs=1e-6)
    else:
        assert a == b


def assert_same_annotations(first, second):
    assert [a.kind for a in first] == [b.kind for b in second]
    for a, b in zip(first, second):
        assert a.page_number == b.page_number
        assert a.color == b.color
        assert a.author_id == b.author_id
        assert_close(a.position, b.position)
        assert_close(a.geometry, b.geometry)


def populate(surface):
    draw_stroke(surface, Tool.PEN, [(10, 10), (50, 60), (90, 20)])
    draw_stroke(surface, Tool.HIGHLIGHTER, [(100, 300), (400, 300)])
    draw_stroke(surface, Tool.ERASER, [(20, 500), (80, 520)])
    stamp(surface, Tool.TICK, (200, 200))
    stamp(surface, Tool.CROSS, (300, 250))
    stamp(surface, Tool.OVAL, (400, 600))
    text = stamp(surface, Tool.TEXTBOX, (250, 700))
    text.text_edit.setPlainText("論点を再検討")


def test_every_kind_survives_a_round_trip_at_another_scale():
    codec = AnnotationHandler("grader-1")
    codec.load("sheet-1", [])
    original = make_surface(scale=1.5)
    populate(original)
    encoded = codec.encode_surface(original)

    rebuilt = make_surface(scale=0.75)
    assert codec.decode_into(rebuilt, encoded) == len(encoded)

    assert_same_annotations(encoded, codec.encode_surface(rebuilt))


def test_kinds_come_from_the_creation_tag():
    codec = AnnotationHandler("grader-1")
    surface = make_surface()
    populate(surface)

    encoded = codec.encode_surface(surface)

    assert [a.kind for a in encoded] == [
        AnnotationKind.PEN, AnnotationKind.HIGHLIGHT, AnnotationKind.PEN,
        AnnotationKind.CHECK, AnnotationKind.CROSS, AnnotationKind.CIRCLE, AnnotationKind.TEXT,
    ]
    eraser = encoded[2]
    assert QColor(eraser.color) == QColor(Qt.GlobalColor.white)
    assert eraser.geometry['stroke_width'] == CONFIG.eraser_width
    highlight = encoded[1]
    assert highlight.geometry['opacity'] < 1.0
    text = encoded[6]
    assert text.geometry['text'] == "論点を再検討"


def test_geometry_is_stored_in_page_units():
    codec = AnnotationHandler("grader-1")
    surface = make_surface(scale=2.0)
    draw_stroke(surface, Tool.PEN, [(100, 100), (300, 500)])
    stamp(surface, Tool.OVAL, (400, 400))

    pen, oval = codec.encode_surface(surface)

    assert [(e['x'], e['y']) for e in pen.geometry['elements']] == [(50, 50), (150, 250)]
    assert pen.geometry['stroke_width'] == pytest.approx(CONFIG.pen_width / 2.0)
    assert pen.position == (50, 50)
    assert oval.geometry['primitive'] == 'ellipse'
    assert (oval.geometry['x'], oval.geometry['y']) == pytest.approx((200, 200))
    assert oval.geometry['rx'] == pytest.approx(CONFIG.stamp_size / 2 / 2.0)


def test_stroke_reloaded_into_read_only_surface_is_not_interactive(storage):
    codec = AnnotationHandler("grader-1")
    codec.load("sheet-1", [])
    grading_surface = make_surface()
    stroke = draw_stroke(grading_surface, Tool.PEN, [(10, 10), (60, 80), (120, 40)])
    stamp(grading_surface, Tool.TICK, (300, 300))
    storage.replace_annotations("sheet-1", codec.encode_surface(grading_surface))

    viewer_codec = AnnotationHandler()
    viewer_codec.load("sheet-1", storage.list_annotations("sheet-1"))
    viewer = make_surface(interactive=False)
    viewer_codec.decode_into(viewer, interactive=True)

    rebuilt_stroke, rebuilt_tick = viewer.items()
    assert isinstance(rebuilt_stroke, StrokeItem)
    assert rebuilt_stroke.path.elementCount() == stroke.path.elementCount()
    for i in range(stroke.path.elementCount()):
        a, b = stroke.path.elementAt(i), rebuilt_stroke.path.elementAt(i)
        assert (a.x, a.y) == pytest.approx((b.x, b.y))
    assert viewer.testAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents)
    assert isinstance(rebuilt_tick, ShapeAnnotationWidget)
    assert not rebuilt_tick.interactive
    assert rebuilt_tick.testAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents)
    rebuilt_tick.set_selected(True)
    assert not rebuilt_tick.is_selected()
    assert not viewer.begin_stroke(QPointF(5, 5))


def test_text_is_read_only_on_viewer_surface():
    codec = AnnotationHandler("grader-1")
    source = make_surface()
    stamp(source, Tool.TEXTBOX, (200, 200)).text_edit.setPlainText("減点")
    viewer = make_surface(interactive=False)

    codec.decode_into(viewer, codec.encode_surface(source))

    (text,) = viewer.items()
    assert isinstance(text, TextAnnotationWidget)
    assert text.text() == "減点"
    assert text.text_edit.isReadOnly()


def test_text_font_follows_config_family_and_zoom():
    codec = AnnotationHandler("grader-1")
    source = make_surface()
    placed = stamp(source, Tool.TEXTBOX, (200, 200))
    zoomed = make_surface(scale=2.0)

    codec.decode_into(zoomed, codec.encode_surface(source))

    (text,) = zoomed.items()
    assert placed.text_edit.font().family() == CONFIG.text_font_family
    assert placed.text_edit.font().pixelSize() == round(CONFIG.text_font_size)
    assert text.text_edit.font().pixelSize() == round(CONFIG.text_font_size * 2)


def test_malformed_records_are_skipped_and_kept():
    codec = AnnotationHandler("grader-1")
    good = Annotation("sheet-1", 1, AnnotationKind.CHECK,
                      {'primitive': 'glyph', 'x': 10, 'y': 10, 'width': 40, 'height': 40, 'stroke_width': 3},
                      (10, 10), "#ffd32f2f", "grader-1", id="a1")
    missing_radius = Annotation("sheet-1", 1, AnnotationKind.CIRCLE,
                                {'primitive': 'ellipse', 'x': 50, 'y': 50, 'stroke_width': 3},
                                (0, 0), "#ffd32f2f", "grader-1", id="a2")
    bad_color = Annotation("sheet-1", 1, AnnotationKind.PEN,
                           {'primitive': 'path', 'elements': [{'x': 0, 'y': 0, 'type': 0}, {'x': 5, 'y': 5, 'type': 1}],
                            'stroke_width': 2},
                           (0, 0), "not-a-color", "grader-1", id="a3")
    not_json = Annotation("sheet-1", 1, AnnotationKind.TEXT, "{broken", (0, 0), "#ff000000", "grader-1", id="a4")
    other_page = Annotation("sheet-1", 2, AnnotationKind.CHECK, dict(good.geometry), (10, 10), "#ffd32f2f",
                            "grader-1", id="a5")
    codec.load("sheet-1", [good, missing_radius, bad_color, not_json, other_page])
    surface = make_surface()

    assert codec.decode_into(surface) == 1
    assert len(surface.items()) == 1

    kept = codec.snapshot(surface)
    assert sorted(a.id for a in kept) == ["a1", "a2", "a3", "a4"]
    assert [a.id for a in codec.annotations_for_page(2)] == ["a5"]


def test_author_and_id_are_preserved_for_existing_annotations():
    codec = AnnotationHandler("grader-2")
    existing = Annotation("sheet-1", 1, AnnotationKind.CROSS,
                          {'primitive': 'glyph', 'x': 10, 'y': 10, 'width': 40, 'height': 40, 'stroke_width': 3},
                          (10, 10), "#ffd32f2f", "grader-1", id="a1", created_at="2024-01-01T00:00:00+00:00")
    codec.load("sheet-1", [existing])
    surface = make_surface(author_id="grader-2")
    codec.decode_into(surface)
    stamp(surface, Tool.TICK, (300, 300))

    old, new = codec.snapshot(surface)

    assert (old.author_id, old.id, old.created_at) == ("grader-1", "a1", "2024-01-01T00:00:00+00:00")
    assert (new.author_id, new.id) == ("grader-2", None)


def test_snapshot_commits_pending_stroke_and_drops_empty_pages():
    codec = AnnotationHandler("grader-1")
    codec.load("sheet-1", [])
    surface = make_surface()
    surface.apply_tool(BrushSettings.for_tool(Tool.PEN, CONFIG))
    surface.begin_stroke(QPointF(10, 10))
    surface.extend_stroke(QPointF(40, 40))

    assert len(codec.snapshot(surface)) == 1
    assert not surface.has_pending_stroke()

    for item in surface.items():
        surface.remove_item(item)
    assert codec.snapshot(surface) == []
    assert 1 not in codec.page_annotations
    assert codec.all_annotations() == []


def test_click_without_movement_adds_nothing():
    surface = make_surface()
    assert draw_stroke(surface, Tool.PEN, [(10, 10)]) is None
    assert surface.items() == []
