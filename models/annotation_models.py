# models/annotation_models.py
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class AnnotationFormatError(ValueError):
    """永続化レコードを注釈モデルに変換できない場合に送出される例外。"""


class AnnotationKind(str, Enum):
    """注釈の意味的な種類。描画プリミティブとは独立して保存される。"""
    PEN = "pen"
    HIGHLIGHT = "highlight"
    CIRCLE = "circle"
    CROSS = "cross"
    CHECK = "check"
    TEXT = "text"


@dataclass
class Annotation:
    """答案用紙の1ページ上に配置された単一の注釈を表現するデータモデル。

    Attributes:
        answer_sheet_id (str): 注釈が属する答案用紙のID。
        page_number (int): 注釈が属するページ番号（1始まり）。
        kind (AnnotationKind): 注釈の意味的な種類。
        geometry (Dict[str, Any]): 描画プリミティブを再構築するための情報（倍率1.0のページ座標）。
        position (Tuple[float, float]): バウンディングボックス左上の座標（倍率1.0）。
        color (str): 線または塗りの色（#AARRGGBB形式）。
        author_id (str): 注釈を作成した採点者のID。保存後は変更されない。
        id (Optional[str]): 永続化層が割り当てたID。
        created_at (Optional[str]): 作成日時（ISO 8601形式）。
    """
    answer_sheet_id: str
    page_number: int
    kind: AnnotationKind
    geometry: Any
    position: Tuple[float, float]
    color: str
    author_id: str
    id: Optional[str] = None
    created_at: Optional[str] = field(default=None, compare=False)

    def to_record(self) -> Dict[str, Any]:
        """永続化用のレコード（answer_sheet_annotationsの1行）に変換する。"""
        record: Dict[str, Any] = {
            'answer_sheet_id': self.answer_sheet_id,
            'page_number': self.page_number,
            'annotation_type': self.kind.value,
            'x_position': self.position[0],
            'y_position': self.position[1],
            'content': json.dumps(self.geometry, ensure_ascii=False),
            'color': self.color,
            'created_by': self.author_id,
        }
        if self.id is not None:
            record['id'] = self.id
        if self.created_at is not None:
            record['created_at'] = self.created_at
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Annotation":
        """永続化レコードから注釈モデルを復元する。

        contentが不正なJSONの場合は生の値のまま保持し、描画時に判定させる。

        Raises:
            AnnotationFormatError: 種類やページ番号が解釈できない場合。
        """
        try:
            kind = AnnotationKind(record['annotation_type'])
            page_number = int(record['page_number'])
        except (KeyError, TypeError, ValueError) as e:
            raise AnnotationFormatError(f"注釈レコードを解釈できません: {e}") from e
        if page_number < 1:
            raise AnnotationFormatError(f"不正なページ番号です: {page_number}")

        content = record.get('content')
        geometry: Any = content
        if isinstance(content, str):
            try:
                geometry = json.loads(content)
            except json.JSONDecodeError:
                logger.debug("content of annotation %s is not valid JSON", record.get('id'))

        return cls(
            answer_sheet_id=str(record.get('answer_sheet_id', '')),
            page_number=page_number,
            kind=kind,
            geometry=geometry,
            position=(float(record.get('x_position') or 0.0), float(record.get('y_position') or 0.0)),
            color=record.get('color') or '#ffd32f2f',
            author_id=str(record.get('created_by', '')),
            id=record.get('id'),
            created_at=record.get('created_at'),
        )
