# utils/app_config.py
import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from services.api_service import APIService
from services.base_service import BaseService
from services.storage_service import StorageService

logger = logging.getLogger(__name__)


@dataclass
class AppConfig:
    """
    アプリケーション起動時の設定をカプセル化するデータクラス。

    環境変数 `GRADING_*` から読み込まれ、永続化サービスの選択などに使用されます。
    """
    api_url: str = ""
    api_key: str = ""
    storage_dir: str = "data"
    grader_id: str = ""
    log_level: str = "INFO"
    zoom: float = 1.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """環境変数から設定を読み込む。未設定の項目は既定値を使用する。"""
        env = os.environ if environ is None else environ
        zoom = 1.0
        raw_zoom = env.get("GRADING_ZOOM", "")
        if raw_zoom:
            try:
                zoom = float(raw_zoom)
            except ValueError:
                logger.warning("GRADING_ZOOM is not a number: %r, using 1.0", raw_zoom)
        return cls(
            api_url=env.get("GRADING_API_URL", ""),
            api_key=env.get("GRADING_API_KEY", ""),
            storage_dir=env.get("GRADING_STORAGE_DIR", "") or "data",
            grader_id=env.get("GRADING_GRADER_ID", "") or env.get("USER", "grader"),
            log_level=env.get("GRADING_LOG_LEVEL", "") or "INFO",
            zoom=zoom if zoom > 0 else 1.0,
        )

    def create_service(self) -> BaseService:
        """API URLが設定されていればAPIService、そうでなければStorageServiceを生成する。"""
        if self.api_url:
            logger.info("using REST backend at %s", self.api_url)
            return APIService(self.api_url, self.api_key)
        logger.info("using local storage at %s", os.path.abspath(self.storage_dir))
        return StorageService(self.storage_dir)
