"""
アプリケーションのエントリーポイント。

環境変数（`GRADING_*`）から設定を読み込んでロギングを初期化し、
採点用のメインウィンドウを生成・表示して、イベントループを開始します。
"""
import sys
import os
from PyQt6.QtWidgets import QApplication

# このファイル(main.py)があるディレクトリをモジュールの検索パスに追加します。
current_dir: str = os.path.dirname(os.path.abspath(__file__))
if current_dir not in sys.path:
    sys.path.append(current_dir)

from ui.main_window import MainWindow
from utils.app_config import AppConfig
from utils.log_utils import setup_logging

if __name__ == "__main__":
    # 1. 設定を読み込み、ロギングを初期化します。
    config: AppConfig = AppConfig.from_env()
    setup_logging(config.log_level)

    # 2. PyQtアプリケーションインスタンスを作成します。
    app: QApplication = QApplication(sys.argv)

    # 3. メインウィンドウを作成して表示します。
    window: MainWindow = MainWindow(config)
    window.show()

    # 4. イベントループを開始し、終了コードでプロセスを終了します。
    sys.exit(app.exec())
