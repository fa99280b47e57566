# utils/api_utils.py
import logging
from typing import Any, Dict, List, Optional, Union

import requests

logger = logging.getLogger(__name__)


class APIUtils:
    """REST API連携に関する共通処理を提供するユーティリティクラス。"""

    DEFAULT_TIMEOUT = 15

    @staticmethod
    def build_headers(api_key: str = "", prefer: Optional[str] = None) -> Dict[str, str]:
        """認証ヘッダーと任意のPreferヘッダーを組み立てる。

        Args:
            api_key (str): APIキー。空の場合は認証ヘッダーを付与しない。
            prefer (Optional[str]): PostgREST互換のPreferヘッダー値。

        Returns:
            Dict[str, str]: リクエストヘッダー。
        """
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        if prefer:
            headers["Prefer"] = prefer
        return headers

    @staticmethod
    def make_api_request(
        url: str,
        method: str = "POST",
        data: Optional[Union[Dict[str, Any], List[Dict[str, Any]]]] = None,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> Any:
        """指定されたURLにAPIリクエストを送信し、JSONレスポンスを返す。

        Args:
            url (str): リクエストを送信するAPIエンドポイントのURL。
            method (str): HTTPメソッド（例: "GET", "POST", "PATCH", "DELETE"）。
            data: リクエストボディとして送信するデータ（JSON）。
            params (Optional[Dict[str, str]]): クエリパラメータ（絞り込み条件など）。
            headers (Optional[Dict[str, str]]): リクエストヘッダー。
            timeout (float): タイムアウト秒数。

        Returns:
            Any: APIからのJSONレスポンス。本文がない場合はNone。

        Raises:
            requests.exceptions.RequestException: ネットワークエラーやHTTPエラーステータスの場合。
        """
        try:
            response = requests.request(method, url, json=data, params=params,
                                        headers=headers, timeout=timeout)
            response.raise_for_status()  # 2xx以外のステータスコードで例外を発生させる
        except requests.exceptions.RequestException as e:
            logger.error("API request %s %s failed: %s", method, url, e)
            raise
        if response.status_code == 204 or not response.content:
            return None
        return response.json()
