# utils/log_utils.py
import logging
import sys
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: Union[int, str] = logging.INFO, log_file: Optional[str] = None) -> None:
    """アプリケーション全体のロギングを設定する。

    Args:
        level: ログレベル（`logging.INFO` や `"DEBUG"` など）。解釈できない場合はINFO。
        log_file (Optional[str]): 指定された場合はファイルに、そうでなければ標準エラー出力に書き出す。
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handlers = [logging.FileHandler(log_file, encoding='utf-8') if log_file else logging.StreamHandler(sys.stderr)]
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
