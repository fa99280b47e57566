from __future__ import annotations
from typing import Optional

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QPixmap
from PyQt6.QtWidgets import QLabel, QWidget


class PDFDisplayLabel(QLabel):
    """
    答案PDFのページ画像を表示するラベル。

    注釈サーフェスはこのラベルの子として左上 (0, 0) に重ねられるため、
    ラベルのサイズは常に表示中のページ画像の論理サイズと一致させます。
    """
    PLACEHOLDER_TEXT = "答案用紙を選択してください"

    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setStyleSheet("QLabel { background-color: #f5f5f5; color: #757575; }")
        self.clear_page()

    def set_page_pixmap(self, pixmap: QPixmap) -> None:
        """ページ画像を設定し、ラベルをその論理サイズに合わせる。"""
        self.setText("")
        self.setAlignment(Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignTop)
        self.setPixmap(pixmap)
        self.setFixedSize(pixmap.deviceIndependentSize().toSize())

    def clear_page(self, message: Optional[str] = None) -> None:
        """ページ画像を消去し、案内文を表示する。"""
        self.setPixmap(QPixmap())
        self.setMinimumSize(0, 0)
        self.setMaximumSize(16777215, 16777215)
        self.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.setText(message or self.PLACEHOLDER_TEXT)
        self.adjustSize()
