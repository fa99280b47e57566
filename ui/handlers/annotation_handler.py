from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Optional

from PyQt6.QtCore import QRectF

from models.annotation_models import Annotation, AnnotationKind
from services.base_service import BaseService
from ui.widgets.annotation_surface import AnnotationItem, AnnotationSurface, StrokeItem
from ui.widgets.shape_annotation import ShapeAnnotationWidget
from ui.widgets.text_annotation import TextAnnotationWidget
from utils.geometry_utils import (GeometryError, color_to_hex, elements_to_path, hex_to_color,
                                  path_to_elements, require_number, require_positive, require_primitive)

logger = logging.getLogger(__name__)


class AnnotationHandler:
    """
    注釈サーフェス上のオブジェクトと永続化レコード（Annotation）を相互変換するハンドラクラス。

    ジオメトリは倍率1.0のページ座標で保存されるため、異なる倍率・ビューポートで
    開いたサーフェスにも同じ位置に再構築できます。注釈の種類（kind）は作成時に
    付与されたタグから取得し、描画プリミティブから推測することはありません。

    また、答案用紙全体の注釈をページごとのバッファとして保持し、
    保存時には全ページ分をまとめて全置換します。
    """
    def __init__(self, author_id: str = "") -> None:
        """
        AnnotationHandlerのコンストラクタ。

        Args:
            author_id (str): 新しい注釈に付与する採点者ID（タグがない場合の既定値）。
        """
        self.author_id: str = author_id
        self.sheet_id: str = ""

        # --- 注釈データストレージ ---
        self.page_annotations: Dict[int, List[Annotation]] = {}
        # 再構築できなかったレコード。ページを再保存しても失われないよう保持する
        self._undecodable: Dict[int, List[Annotation]] = {}

    # --- ページバッファ ---
    def load(self, sheet_id: str, annotations: Iterable[Annotation]) -> None:
        """永続化済みの注釈をページごとにグループ化してバッファに読み込む。"""
        self.clear()
        self.sheet_id = sheet_id
        for annotation in annotations:
            self.page_annotations.setdefault(annotation.page_number, []).append(annotation)
        logger.debug("loaded %d annotation(s) on %d page(s) for sheet %s",
                     sum(len(v) for v in self.page_annotations.values()), len(self.page_annotations), sheet_id)

    def clear(self) -> None:
        self.sheet_id = ""
        self.page_annotations.clear()
        self._undecodable.clear()

    def annotations_for_page(self, page_number: int) -> List[Annotation]:
        return list(self.page_annotations.get(page_number, []))

    def all_annotations(self) -> List[Annotation]:
        """全ページの注釈をページ番号順に返す。"""
        result: List[Annotation] = []
        for page_number in sorted(self.page_annotations):
            result.extend(self.page_annotations[page_number])
        return result

    def snapshot(self, surface: AnnotationSurface) -> List[Annotation]:
        """
        サーフェスの現在の内容でそのページのバッファを置き換える。

        描画途中の線は確定してから取り込みます。注釈が1つもないページはバッファから削除されます。
        """
        if surface.is_disposed():
            return self.annotations_for_page(surface.page_number)
        surface.commit_pending_stroke()
        encoded = self.encode_surface(surface) + self._undecodable.get(surface.page_number, [])
        if encoded:
            self.page_annotations[surface.page_number] = encoded
        else:
            self.page_annotations.pop(surface.page_number, None)
        return list(encoded)

    def save(self, service: BaseService, sheet_id: Optional[str] = None,
             annotations: Optional[List[Annotation]] = None) -> int:
        """
        答案用紙の注釈を全置換する。

        注釈が空の場合も既存の注釈は削除されます。
        保存ワーカーから呼ぶ場合は、UIスレッドで取得した `annotations` を渡します。

        Args:
            service (BaseService): 永続化サービス。
            sheet_id (Optional[str]): 答案用紙ID。省略時は読み込み中の答案用紙。
            annotations (Optional[List[Annotation]]): 保存する注釈。省略時はバッファ内の全注釈。

        Returns:
            int: 保存した注釈の件数。

        Raises:
            PersistenceError: 削除または挿入に失敗した場合。
        """
        sheet_id = sheet_id or self.sheet_id
        if annotations is None:
            annotations = self.all_annotations()
        service.replace_annotations(sheet_id, annotations)
        logger.info("saved %d annotation(s) for sheet %s", len(annotations), sheet_id)
        return len(annotations)

    # --- エンコード ---
    def encode_surface(self, surface: AnnotationSurface) -> List[Annotation]:
        """サーフェス上の各オブジェクトを1件ずつ注釈レコードに変換する。"""
        return [self.encode_item(item, surface.page_number) for item in surface.items()]

    def encode_item(self, item: AnnotationItem, page_number: int) -> Annotation:
        """単一のオブジェクトを倍率1.0のページ座標の注釈レコードに変換する。"""
        if isinstance(item, StrokeItem):
            bounds = item.bounding_rect()
            geometry: Dict[str, Any] = {
                'primitive': 'path',
                'elements': path_to_elements(item.path),
                'stroke_width': item.width,
                'opacity': round(item.color.alphaF(), 4),
            }
            color = item.color
        elif isinstance(item, TextAnnotationWidget):
            bounds = item.page_rect
            geometry = {
                'primitive': 'text',
                'x': bounds.x(), 'y': bounds.y(), 'width': bounds.width(), 'height': bounds.height(),
                'text': item.text(),
                'font_family': item.font_family,
                'font_size': item.font_size,
            }
            color = item.color
        elif isinstance(item, ShapeAnnotationWidget):
            bounds = item.page_rect
            if item.kind == AnnotationKind.CIRCLE:
                center = bounds.center()
                geometry = {
                    'primitive': 'ellipse',
                    'x': center.x(), 'y': center.y(),
                    'rx': bounds.width() / 2, 'ry': bounds.height() / 2,
                    'stroke_width': item.stroke_width,
                }
            else:
                geometry = {
                    'primitive': 'glyph',
                    'x': bounds.x(), 'y': bounds.y(), 'width': bounds.width(), 'height': bounds.height(),
                    'stroke_width': item.stroke_width,
                }
            color = item.color
        else:
            raise TypeError(f"エンコードできないオブジェクトです: {type(item).__name__}")

        return Annotation(
            answer_sheet_id=self.sheet_id,
            page_number=page_number,
            kind=item.kind,
            geometry=geometry,
            position=(bounds.x(), bounds.y()),
            color=color_to_hex(color),
            author_id=item.author_id or self.author_id,
            id=item.annotation_id,
            created_at=item.created_at,
        )

    # --- デコード ---
    def decode_into(self, surface: AnnotationSurface, annotations: Optional[Iterable[Annotation]] = None,
                    interactive: Optional[bool] = None) -> int:
        """
        注釈レコードからオブジェクトを再構築してサーフェスに追加する。

        ページ番号がサーフェスと一致しないレコードは無視します。
        ジオメトリが不正なレコードはログに記録してスキップし、他のレコードの再構築は続行します。

        Args:
            surface (AnnotationSurface): 追加先のサーフェス。
            annotations: 再構築するレコード。省略時はバッファ内のそのページの注釈。
            interactive (Optional[bool]): オブジェクトを操作可能にするか。省略時はサーフェスに従う。

        Returns:
            int: 追加したオブジェクトの数。
        """
        if annotations is None:
            annotations = self.annotations_for_page(surface.page_number)
        if interactive is None:
            interactive = surface.interactive
        # 読み取り専用のサーフェスに操作可能なオブジェクトは置かない
        interactive = interactive and surface.interactive

        undecodable: List[Annotation] = []
        added = 0
        for annotation in annotations:
            if annotation.page_number != surface.page_number:
                continue
            try:
                item = self.decode_item(annotation, surface, interactive)
            except GeometryError as e:
                logger.warning("skipping annotation %s (%s) on page %d: %s",
                               annotation.id, annotation.kind.value, annotation.page_number, e)
                undecodable.append(annotation)
                continue
            surface.add_item(item)
            added += 1
        if undecodable:
            self._undecodable[surface.page_number] = undecodable
        else:
            self._undecodable.pop(surface.page_number, None)
        return added

    def decode_item(self, annotation: Annotation, surface: AnnotationSurface, interactive: bool) -> AnnotationItem:
        """
        単一の注釈レコードから描画オブジェクトを生成する。

        Raises:
            GeometryError: ジオメトリが種類に対応する形式でない場合。
        """
        geometry = annotation.geometry
        color = hex_to_color(annotation.color)
        kind = annotation.kind
        selection_color = surface.config.selection_color

        if kind in (AnnotationKind.PEN, AnnotationKind.HIGHLIGHT):
            geometry = require_primitive(geometry, 'path')
            path = elements_to_path(geometry.get('elements'))
            width = require_positive(geometry, 'stroke_width')
            if 'opacity' in geometry:
                opacity = require_number(geometry, 'opacity')
                if not 0.0 <= opacity <= 1.0:
                    raise GeometryError(f"不透明度が範囲外です: {opacity}")
                color.setAlphaF(opacity)
            item: AnnotationItem = StrokeItem(path, kind, color, width)
        elif kind == AnnotationKind.TEXT:
            geometry = require_primitive(geometry, 'text')
            page_rect = self._rect_from(geometry)
            text = geometry.get('text', '')
            if not isinstance(text, str):
                raise GeometryError("テキストが文字列ではありません")
            font_family = geometry.get('font_family') or surface.config.text_font_family
            item = TextAnnotationWidget(surface, page_rect, surface.scale, color, str(font_family),
                                        require_positive(geometry, 'font_size'), text=text,
                                        interactive=interactive, selection_color=selection_color)
        elif kind == AnnotationKind.CIRCLE:
            geometry = require_primitive(geometry, 'ellipse')
            cx, cy = require_number(geometry, 'x'), require_number(geometry, 'y')
            rx, ry = require_positive(geometry, 'rx'), require_positive(geometry, 'ry')
            item = ShapeAnnotationWidget(surface, kind, QRectF(cx - rx, cy - ry, rx * 2, ry * 2), surface.scale,
                                         color, require_positive(geometry, 'stroke_width'),
                                         interactive=interactive, selection_color=selection_color)
        else:  # check, cross
            geometry = require_primitive(geometry, 'glyph')
            item = ShapeAnnotationWidget(surface, kind, self._rect_from(geometry), surface.scale,
                                         color, require_positive(geometry, 'stroke_width'),
                                         interactive=interactive, selection_color=selection_color)

        item.author_id = annotation.author_id
        item.annotation_id = annotation.id
        item.created_at = annotation.created_at
        return item

    @staticmethod
    def _rect_from(geometry: Dict[str, Any]) -> QRectF:
        return QRectF(require_number(geometry, 'x'), require_number(geometry, 'y'),
                      require_positive(geometry, 'width'), require_positive(geometry, 'height'))
