# utils/pdf_utils.py
"""答案PDFの読み込みとページのラスタライズに関連するユーティリティ機能を提供します。"""

import logging
import os
from typing import Callable, Tuple, Union

import fitz  # PyMuPDF
import requests
from PyQt6.QtGui import QImage

logger = logging.getLogger(__name__)

DocumentSource = Union[str, bytes]
FileResolver = Callable[[str], DocumentSource]


class DocumentError(Exception):
    """答案PDFを開けない、またはページをレンダリングできない場合に送出される例外。"""


class PDFUtils:
    """PDF処理に関する共通機能を提供するユーティリティクラス。"""

    DOWNLOAD_TIMEOUT = 30

    @staticmethod
    def open_document(source: DocumentSource) -> fitz.Document:
        """ファイルパスまたはバイト列からPDF文書を開く。

        Args:
            source: PDFファイルのパス、またはPDFのバイト列。

        Returns:
            fitz.Document: 開いたPDF文書。

        Raises:
            DocumentError: 文書を開けない場合、またはページが1つもない場合。
        """
        try:
            if isinstance(source, (bytes, bytearray)):
                doc = fitz.open(stream=bytes(source), filetype="pdf")
            else:
                if not os.path.exists(source):
                    raise DocumentError(f"PDFファイルが見つかりません: {source}")
                doc = fitz.open(source)
        except DocumentError:
            raise
        except Exception as e:
            raise DocumentError(f"PDFファイルを開けませんでした: {e}") from e
        if doc.page_count == 0:
            doc.close()
            raise DocumentError("PDFにページがありません")
        return doc

    @staticmethod
    def resolve_file_ref(file_ref: str) -> DocumentSource:
        """ファイル参照を文書ソースに解決する。HTTP(S)のURLはダウンロードしてバイト列を返す。

        Raises:
            DocumentError: ファイル参照が空、またはダウンロードに失敗した場合。
        """
        if not file_ref:
            raise DocumentError("答案用紙にファイルが登録されていません")
        if file_ref.startswith(("http://", "https://")):
            try:
                response = requests.get(file_ref, timeout=PDFUtils.DOWNLOAD_TIMEOUT)
                response.raise_for_status()
            except requests.exceptions.RequestException as e:
                raise DocumentError(f"答案PDFのダウンロードに失敗しました: {e}") from e
            return response.content
        return file_ref

    @staticmethod
    def page_size(page: fitz.Page) -> Tuple[float, float]:
        """倍率1.0でのページの幅と高さ（ポイント単位）を返す。"""
        rect = page.rect
        return rect.width, rect.height

    @staticmethod
    def render_page(page: fitz.Page, scale: float = 1.0, dpr: float = 1.0) -> QImage:
        """PDFの指定されたページをQImageオブジェクトにレンダリングする。

        高DPIディスプレイでは `scale * dpr` の解像度でラスタライズし、
        論理ピクセルサイズは `ページサイズ * scale` になります。

        Args:
            page (fitz.Page): レンダリング対象のPyMuPDFページオブジェクト。
            scale (float): 論理ピクセルあたりの拡大率。
            dpr (float): デバイスピクセル比。

        Returns:
            QImage: レンダリングされたページのQImageオブジェクト。
        """
        matrix = fitz.Matrix(scale * dpr, scale * dpr)
        pix = page.get_pixmap(matrix=matrix, annots=True)

        # QImageのフォーマットを決定
        if pix.alpha:
            image_format = QImage.Format.Format_RGBA8888
        else:
            image_format = QImage.Format.Format_RGB888

        qimage = QImage(pix.samples, pix.width, pix.height, pix.stride, image_format)

        # メモリリークを避けるため、データをコピーして返す
        return qimage.copy()
