from unittest import mock

import pytest
import requests

from ui.handlers.pdf_handler import PDFHandler
from ui.widgets import PDFDisplayLabel
from utils.pdf_utils import DocumentError, PDFUtils


@pytest.fixture
def handler(qapp):
    return PDFHandler(PDFDisplayLabel())


def test_show_page_emits_rendered_size(handler, pdf_path):
    rendered = []
    handler.page_rendered.connect(lambda *args: rendered.append(args))

    assert handler.open_document(pdf_path) == 3
    assert handler.show_page(1)

    page, width, height, scale = rendered[-1]
    assert (page, scale) == (1, 1.0)
    assert (width, height) == (handler.label.width(), handler.label.height())
    assert abs(width - 595) <= 1 and abs(height - 842) <= 1


def test_out_of_range_pages_are_ignored(handler, pdf_path):
    handler.open_document(pdf_path)
    handler.show_page(1)

    assert not handler.show_page(0)
    assert not handler.show_page(4)
    assert not handler.show_prev_page()
    assert handler.show_next_page()
    assert handler.current_page == 2


def test_page_change_is_announced_before_rendering(handler, pdf_path):
    order = []
    handler.page_about_to_change.connect(lambda page: order.append(("leaving", page)))
    handler.page_rendered.connect(lambda page, *_: order.append(("rendered", page)))
    handler.open_document(pdf_path)

    handler.show_page(1)
    handler.show_page(2)

    assert order == [("rendered", 1), ("leaving", 1), ("rendered", 2)]


def test_zoom_is_clamped_and_rerenders(handler, pdf_path):
    scales = []
    handler.page_rendered.connect(lambda page, w, h, scale: scales.append(scale))
    handler.open_document(pdf_path)
    handler.show_page(1)

    handler.adjust_zoom(100)
    handler.adjust_zoom(0.0001)

    assert scales == [1.0, PDFHandler.MAX_ZOOM, PDFHandler.MIN_ZOOM]


def test_close_document_clears_page(handler, pdf_path):
    closed = []
    handler.document_closed.connect(lambda: closed.append(True))
    handler.open_document(pdf_path)
    handler.show_page(1)

    handler.close_document()

    assert closed == [True]
    assert not handler.has_document()
    assert handler.current_page == 0
    assert not handler.show_page(1)


def test_open_document_from_bytes(handler, pdf_path):
    with open(pdf_path, "rb") as f:
        assert handler.open_document(f.read()) == 3


def test_missing_or_invalid_documents_raise(handler, tmp_path):
    with pytest.raises(DocumentError):
        handler.open_document(str(tmp_path / "missing.pdf"))
    with pytest.raises(DocumentError):
        handler.open_document(b"this is not a pdf")


def test_resolve_file_ref_downloads_urls():
    response = mock.MagicMock(content=b"%PDF-1.7")
    with mock.patch("requests.get", return_value=response) as get:
        assert PDFUtils.resolve_file_ref("https://files.example.com/answer.pdf") == b"%PDF-1.7"
    get.assert_called_once()
    assert PDFUtils.resolve_file_ref("/tmp/answer.pdf") == "/tmp/answer.pdf"


def test_resolve_file_ref_errors():
    with pytest.raises(DocumentError):
        PDFUtils.resolve_file_ref("")
    with mock.patch("requests.get", side_effect=requests.exceptions.ConnectionError("offline")):
        with pytest.raises(DocumentError):
            PDFUtils.resolve_file_ref("https://files.example.com/answer.pdf")
