"""toolswitch の例外定義。

バックエンド由来の失敗はコーディネータの結果オブジェクトへ変換されるため、
ここで定義する例外が呼び出し側まで届くのは設定ミスやロックの誤用に限られる。
"""

from __future__ import annotations


class ToolswitchError(Exception):
    """toolswitch の基底例外。"""


class UnknownToolError(ToolswitchError, ValueError):
    def __init__(self, tool: str) -> None:
        super().__init__(f"unknown tool: {tool}")
        self.tool = tool


class LockTimeoutError(ToolswitchError):
    def __init__(self, tool: str, timeout: float) -> None:
        super().__init__(f"{tool} の操作ロック取得がタイムアウトしました ({timeout:.1f}s)")
        self.tool = tool
        self.timeout = timeout


class LockReleaseError(ToolswitchError):
    pass


class BackendError(ToolswitchError):
    """オフラインバックエンドが返すエラー。メッセージはそのまま UI に表示される。"""
