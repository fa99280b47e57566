# services/errors.py
"""採点コアで使用する例外を定義します。"""


class PersistenceError(Exception):
    """永続化処理の基底例外。"""


class LoadError(PersistenceError):
    """データの読み込みに失敗した。"""


class DeleteError(PersistenceError):
    """既存データの削除に失敗した。"""


class InsertError(PersistenceError):
    """データの一括挿入に失敗した。"""


class SaveError(PersistenceError):
    """採点結果の保存に失敗した。"""


class MarksValidationError(ValueError):
    """得点が設問の満点を超えている。"""


class GradingStateError(RuntimeError):
    """現在のセッション状態では要求された操作を実行できない。"""
