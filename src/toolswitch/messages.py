"""UI に返す結果メッセージ（デスクトップ版と同じ文言）。"""

from __future__ import annotations

SWITCH_HOT_APPLIED = "✅ 配置已切换\n✅ 透明代理已自动更新\n无需重启终端"
SWITCH_NEEDS_RESTART = "配置切换成功！\n请重启相关 CLI 工具以使新配置生效。"
DELETE_OK = "配置删除成功！"
