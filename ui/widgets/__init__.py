from .annotation_config import AnnotationStyleConfig
from .annotation_surface import AnnotationSurface, StrokeItem
from .pdf_display import PDFDisplayLabel
from .text_annotation import TextAnnotationWidget
from .shape_annotation import ShapeAnnotationWidget
from .marks_panel import MarksPanel

__all__ = [
    "AnnotationStyleConfig",
    "AnnotationSurface",
    "StrokeItem",
    "PDFDisplayLabel",
    "TextAnnotationWidget",
    "ShapeAnnotationWidget",
    "MarksPanel",
]
