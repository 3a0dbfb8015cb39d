"""Error types for the cap quote agent.

抽出・正規化レベルの失敗（マッチなし／不正キャプチャ）は例外にせず「項目なし」で表現する。
呼び出し側へ明示的に返す失敗は、存在しないバージョンの選択のみ。
"""


class QuoteAgentError(Exception):
    """パッケージ共通の基底例外。"""


class InvalidVersionReference(QuoteAgentError, KeyError):
    """存在しない QuoteVersion の id を選択しようとした。状態は変更されない。"""

    def __init__(self, version_id: str):
        super().__init__(version_id)
        self.version_id = version_id

    def __str__(self) -> str:
        return f"quote version not found: {self.version_id}"


__all__ = ["QuoteAgentError", "InvalidVersionReference"]
