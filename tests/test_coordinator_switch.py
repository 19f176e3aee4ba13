"""switch_profile のテスト。"""

import pytest

from toolswitch import messages
from toolswitch.clients import ProxyState
from toolswitch.coordinator import ProfileCoordinator


@pytest.mark.asyncio()
async def test_switch_with_running_proxy_is_hot_applied(coordinator, backend) -> None:
    result = await coordinator.switch_profile("codex", "personal")

    assert result.success is True
    assert result.hot_applied is True
    assert "代理已自动更新" in result.message
    assert coordinator.active_profile("codex") == "personal"
    assert coordinator.selected_profile("codex") == "personal"
    assert coordinator.active_config("codex").profile_name == "personal"


@pytest.mark.asyncio()
async def test_switch_without_running_proxy_asks_for_restart(backend) -> None:
    backend.proxy["codex"] = ProxyState(enabled=True, running=False)
    c = ProfileCoordinator(backend, backend, backend)
    await c.load()

    result = await c.switch_profile("codex", "personal")

    assert result.success is True
    assert result.hot_applied is False
    assert result.message == messages.SWITCH_NEEDS_RESTART
    assert c.active_profile("codex") == "personal"


@pytest.mark.asyncio()
async def test_switch_store_failure_keeps_state(coordinator, backend) -> None:
    backend.fail["switch_profile"] = RuntimeError("配置不存在: codex/ghost")

    result = await coordinator.switch_profile("codex", "ghost")

    assert result.success is False
    assert result.message == "配置不存在: codex/ghost"
    assert coordinator.active_profile("codex") == "work"
    assert coordinator.selected_profile("codex") is None
    assert coordinator.is_operation_in_flight("codex") is False
    # 主操作が失敗したら再同期はしない
    assert backend.count("get_active_config") == 0
    assert backend.count("get_global_config") == 0


@pytest.mark.asyncio()
async def test_switch_succeeds_even_if_refresh_fails(coordinator, backend) -> None:
    backend.fail["get_active_config"] = RuntimeError("read failed")
    backend.fail["get_global_config"] = RuntimeError("read failed")

    result = await coordinator.switch_profile("codex", "personal")

    assert result.success is True
    assert coordinator.active_profile("codex") == "personal"
    # 有効設定のスナップショットは古いまま（次回の読み込みで追いつく）
    assert coordinator.active_config("codex").profile_name == "work"


@pytest.mark.asyncio()
async def test_switch_twice_is_idempotent(coordinator) -> None:
    first = await coordinator.switch_profile("codex", "personal")
    second = await coordinator.switch_profile("codex", "personal")

    assert first.success and second.success
    assert coordinator.active_profile("codex") == "personal"


@pytest.mark.asyncio()
async def test_unknown_profile_is_forwarded_to_store(coordinator, backend) -> None:
    await coordinator.switch_profile("codex", "not-listed")
    assert ("switch_profile", "codex", "not-listed") in backend.calls
