# utils/save_worker.py
"""採点結果と注釈の保存をバックグラウンドで実行するためのスレッド機能を提供します。"""

import logging
from typing import Callable, Optional

from PyQt6.QtCore import QObject, QThread, pyqtSignal

from services.errors import PersistenceError

logger = logging.getLogger(__name__)


class SaveWorkerThread(QThread):
    """永続化層への保存処理を実行するワーカースレッド。

    UIのフリーズを防ぐため、ファイル書き込みやネットワークリクエストをバックグラウンドで実行します。
    結果はシグナルとしてUIスレッドにキューイングされます。

    Signals:
        succeeded (pyqtSignal):
            保存に成功した際に、保存トークン（int）を送信します。
        failed (pyqtSignal):
            保存中にエラーが発生した際に、保存トークン（int）とエラーメッセージ（str）を送信します。
    """
    succeeded = pyqtSignal(int)
    failed = pyqtSignal(int, str)

    def __init__(self, token: int, task: Callable[[], None], parent: Optional[QObject] = None) -> None:
        """SaveWorkerThreadのコンストラクタ。

        Args:
            token (int): 保存処理を識別する番号。結果と一緒に通知される。
            task (Callable[[], None]): 実行する保存処理。失敗時は例外を送出する。
            parent (Optional[QObject]): 親オブジェクト。デフォルトはNone。
        """
        super().__init__(parent)
        self.token = token
        self.task = task

    def run(self) -> None:
        """スレッドのメイン処理。保存処理を実行し、結果をシグナルで通知する。"""
        try:
            self.task()
        except PersistenceError as e:
            logger.error("save %d failed: %s", self.token, e, exc_info=True)
            self.failed.emit(self.token, str(e))
        except Exception as e:
            logger.exception("save %d failed unexpectedly", self.token)
            self.failed.emit(self.token, f"予期せぬエラーが発生しました: {e}")
        else:
            self.succeeded.emit(self.token)
