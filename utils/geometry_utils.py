# utils/geometry_utils.py
"""注釈ジオメトリの変換（QPainterPath ⇄ 要素リスト、色 ⇄ 文字列）を行うユーティリティ。

保存形式の座標はすべて倍率1.0のページ座標です。
"""

import math
from typing import Any, Dict, List, Mapping

from PyQt6.QtCore import QPointF, QRectF
from PyQt6.QtGui import QColor, QPainterPath


class GeometryError(ValueError):
    """保存されたジオメトリから描画プリミティブを再構築できない場合に送出される例外。"""


MOVE_TO = int(QPainterPath.ElementType.MoveToElement.value)
LINE_TO = int(QPainterPath.ElementType.LineToElement.value)
CURVE_TO = int(QPainterPath.ElementType.CurveToElement.value)
CURVE_DATA = int(QPainterPath.ElementType.CurveToDataElement.value)


def path_to_elements(path: QPainterPath) -> List[Dict[str, Any]]:
    """QPainterPathを `{'x', 'y', 'type'}` の要素リストに変換する。"""
    elements = []
    for i in range(path.elementCount()):
        el = path.elementAt(i)
        elements.append({'x': el.x, 'y': el.y, 'type': int(el.type.value)})
    return elements


def elements_to_path(elements: Any) -> QPainterPath:
    """要素リストからQPainterPathを再構築する。

    曲線は CURVE_TO 要素（制御点1）に続く2つの CURVE_DATA 要素（制御点2、終点）で表されます。

    Raises:
        GeometryError: 要素リストの形式が不正な場合。
    """
    if not isinstance(elements, list) or not elements:
        raise GeometryError("パス要素が空、またはリストではありません")

    points = []
    for el in elements:
        if not isinstance(el, Mapping):
            raise GeometryError(f"パス要素がオブジェクトではありません: {el!r}")
        points.append((require_number(el, 'x'), require_number(el, 'y'), el.get('type')))

    if points[0][2] != MOVE_TO:
        raise GeometryError("パスは移動要素から始まる必要があります")

    path = QPainterPath()
    i = 0
    while i < len(points):
        x, y, el_type = points[i]
        if el_type == MOVE_TO:
            path.moveTo(x, y)
            i += 1
        elif el_type == LINE_TO:
            path.lineTo(x, y)
            i += 1
        elif el_type == CURVE_TO:
            if i + 2 >= len(points) or points[i + 1][2] != CURVE_DATA or points[i + 2][2] != CURVE_DATA:
                raise GeometryError(f"曲線要素の制御点が不足しています (index={i})")
            c2, end = points[i + 1], points[i + 2]
            path.cubicTo(QPointF(x, y), QPointF(c2[0], c2[1]), QPointF(end[0], end[1]))
            i += 3
        else:
            raise GeometryError(f"不明なパス要素の種類です: {el_type!r}")
    return path


def require_number(geometry: Mapping, key: str) -> float:
    """ジオメトリから有限の数値を取り出す。

    Raises:
        GeometryError: 値が存在しない、または数値でない場合。
    """
    value = geometry.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise GeometryError(f"'{key}' が数値ではありません: {value!r}")
    if not math.isfinite(value):
        raise GeometryError(f"'{key}' が有限の値ではありません: {value!r}")
    return float(value)


def require_positive(geometry: Mapping, key: str) -> float:
    value = require_number(geometry, key)
    if value <= 0:
        raise GeometryError(f"'{key}' は正の値である必要があります: {value}")
    return value


def require_primitive(geometry: Any, primitive: str) -> Mapping:
    """ジオメトリが指定されたプリミティブの辞書であることを確認する。"""
    if not isinstance(geometry, Mapping):
        raise GeometryError(f"ジオメトリがオブジェクトではありません: {type(geometry).__name__}")
    if geometry.get('primitive') != primitive:
        raise GeometryError(f"プリミティブが一致しません: {geometry.get('primitive')!r} != {primitive!r}")
    return geometry


def color_to_hex(color: QColor) -> str:
    """QColorを `#AARRGGBB` 形式の文字列に変換する。"""
    return color.name(QColor.NameFormat.HexArgb)


def hex_to_color(value: Any) -> QColor:
    """`#AARRGGBB` または `#RRGGBB` 形式の文字列をQColorに変換する。

    Raises:
        GeometryError: 色として解釈できない場合。
    """
    color = QColor(value) if isinstance(value, str) else QColor()
    if not color.isValid():
        raise GeometryError(f"色を解釈できません: {value!r}")
    return color


def scale_rect(rect: QRectF, factor: float) -> QRectF:
    return QRectF(rect.x() * factor, rect.y() * factor, rect.width() * factor, rect.height() * factor)


def check_glyph_path(rect: QRectF) -> QPainterPath:
    """矩形に収まるチェックマーク（✓）のパスを生成する。"""
    path = QPainterPath()
    path.moveTo(rect.left() + rect.width() * 0.1, rect.top() + rect.height() * 0.55)
    path.lineTo(rect.left() + rect.width() * 0.4, rect.bottom() - rect.height() * 0.1)
    path.lineTo(rect.right() - rect.width() * 0.05, rect.top() + rect.height() * 0.1)
    return path


def cross_glyph_path(rect: QRectF) -> QPainterPath:
    """矩形に収まるバツ印（×）のパスを生成する。"""
    path = QPainterPath()
    path.moveTo(rect.topLeft())
    path.lineTo(rect.bottomRight())
    path.moveTo(rect.topRight())
    path.lineTo(rect.bottomLeft())
    return path
