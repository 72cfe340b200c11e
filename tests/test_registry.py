import asyncio
from unittest.mock import AsyncMock

import pytest

from slackcoder.errors import AgentNotFoundError, SetupFailedError
from slackcoder.session.registry import SessionRegistry
from slackcoder.storage.workspace import Workspace

from tests.fakes import FakeClientFactory, FakeMessenger, configure_channel


@pytest.fixture
def workspace(tmp_path):
    ws = Workspace(tmp_path)
    ws.ensure_workspace()
    return ws


async def consume(handle, text, timeout=3.0):
    async with handle.query(text, timeout) as stream:
        return [m async for m in stream]


@pytest.mark.asyncio
async def test_restore_isolates_failures(workspace):
    for channel in ("C1", "C2", "C3"):
        configure_channel(workspace, channel)
    factory = FakeClientFactory(fail_channels={"C2"})
    registry = SessionRegistry(workspace, factory)

    report = await registry.restore_all(["C1", "C2", "C3"])

    assert sorted(report.restored) == ["C1", "C3"]
    assert [c for c, _ in report.failed] == ["C2"]
    assert registry.has("C1") and registry.has("C3")
    assert not registry.has("C2")
    with pytest.raises(AgentNotFoundError):
        registry.get("C2")

    messages = await consume(registry.get("C3"), "status?")
    assert messages[-1].result == "done"


@pytest.mark.asyncio
async def test_restore_skips_unconfigured_channels(workspace):
    configure_channel(workspace, "C1")
    workspace.repo_path("C2").mkdir(parents=True)
    registry = SessionRegistry(workspace, FakeClientFactory())

    report = await registry.restore_all(["C1", "C2", "C9"])

    assert report.restored == ["C1"]
    assert report.failed == []
    assert registry.channels() == ["C1"]


@pytest.mark.asyncio
async def test_repo_agent_prompt_includes_workflow_and_channel_prompt(workspace):
    configure_channel(workspace, "C1", prompt="# Project X")
    factory = FakeClientFactory()
    registry = SessionRegistry(workspace, factory)

    await registry.restore_all(["C1"])

    prompt = factory.prompts["C1"]
    assert prompt.startswith("# Workflow requirements")
    assert prompt.endswith("\n\n---\n\n# Project X")


@pytest.mark.asyncio
async def test_scan_and_restore_uses_member_channels(workspace):
    configure_channel(workspace, "C1")
    configure_channel(workspace, "C2")
    registry = SessionRegistry(workspace, FakeClientFactory())

    report = await registry.scan_and_restore(FakeMessenger(channels=["C1"]))

    assert report.restored == ["C1"]
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_setup_registers_handle(workspace):
    setup_agent = AsyncMock()
    setup_agent.run.side_effect = lambda channel, repo: configure_channel(workspace, channel)
    registry = SessionRegistry(workspace, FakeClientFactory(), setup_agent=setup_agent)

    handle = await registry.setup("C1", "octo/repo")

    setup_agent.run.assert_awaited_once_with("C1", "octo/repo")
    assert registry.get("C1") is handle


@pytest.mark.asyncio
async def test_setup_failure_registers_nothing(workspace):
    setup_agent = AsyncMock()
    setup_agent.run.side_effect = RuntimeError("gh: repository not found")
    registry = SessionRegistry(workspace, FakeClientFactory(), setup_agent=setup_agent)

    with pytest.raises(SetupFailedError, match="repository not found"):
        await registry.setup("C1", "octo/missing")
    assert not registry.has("C1")


@pytest.mark.asyncio
async def test_setup_without_workspace_marker_fails(workspace):
    registry = SessionRegistry(workspace, FakeClientFactory(), setup_agent=AsyncMock())

    with pytest.raises(SetupFailedError, match="incomplete"):
        await registry.setup("C1", "octo/repo")
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_setup_rejects_bad_repo_name(workspace):
    setup_agent = AsyncMock()
    registry = SessionRegistry(workspace, FakeClientFactory(), setup_agent=setup_agent)

    with pytest.raises(SetupFailedError):
        await registry.setup("C1", "not-a-repo")
    setup_agent.run.assert_not_awaited()


@pytest.mark.asyncio
async def test_setup_replaces_previous_handle(workspace):
    configure_channel(workspace, "C1")
    factory = FakeClientFactory()
    registry = SessionRegistry(workspace, factory, setup_agent=AsyncMock())
    await registry.restore_all(["C1"])
    old = registry.get("C1")
    old_client = factory.clients["C1"]

    new = await registry.setup("C1", "octo/repo")

    assert new is not old
    assert registry.get("C1") is new
    assert len(registry) == 1
    assert old_client.disconnect_calls == 1


@pytest.mark.asyncio
async def test_remove(workspace):
    configure_channel(workspace, "C1")
    factory = FakeClientFactory()
    registry = SessionRegistry(workspace, factory)
    await registry.restore_all(["C1"])

    assert await registry.remove("C1") is True
    assert await registry.remove("C1") is False
    assert factory.clients["C1"].disconnect_calls == 1


@pytest.mark.asyncio
async def test_remove_logs_disconnect_errors(workspace):
    configure_channel(workspace, "C1")
    factory = FakeClientFactory()
    registry = SessionRegistry(workspace, factory)
    await registry.restore_all(["C1"])
    factory.clients["C1"].fail_disconnect = True

    assert await registry.remove("C1") is True
    assert not registry.has("C1")


@pytest.mark.asyncio
async def test_remove_busy_handle_defers_disconnect(workspace):
    configure_channel(workspace, "C1")
    factory = FakeClientFactory()
    registry = SessionRegistry(workspace, factory)
    await registry.restore_all(["C1"])
    handle = registry.get("C1")
    client = factory.clients["C1"]
    client.gate = asyncio.Event()

    inflight = asyncio.create_task(consume(handle, "long"))
    while not handle.is_busy:
        await asyncio.sleep(0)

    await registry.remove("C1")
    assert client.disconnect_calls == 0

    client.gate.set()
    await inflight
    assert client.disconnect_calls == 1


@pytest.mark.asyncio
async def test_evict_idle(workspace):
    for channel in ("C1", "C2"):
        configure_channel(workspace, channel)
    registry = SessionRegistry(workspace, FakeClientFactory())
    await registry.restore_all(["C1", "C2"])
    fresh = registry.get("C2")
    stale = registry.get("C1")

    now = max(fresh.last_activity, stale.last_activity) + 100
    fresh._last_activity = now - 10
    stale._last_activity = now - 1000

    evicted = await registry.evict_idle(300, now=now)

    assert evicted == ["C1"]
    assert registry.channels() == ["C2"]


@pytest.mark.asyncio
async def test_list_active_omits_busy_handles(workspace):
    for channel in ("C1", "C2"):
        configure_channel(workspace, channel)
    factory = FakeClientFactory()
    registry = SessionRegistry(workspace, factory)
    await registry.restore_all(["C1", "C2"])
    busy = registry.get("C1")
    factory.clients["C1"].gate = asyncio.Event()

    inflight = asyncio.create_task(consume(busy, "long"))
    while not busy.is_busy:
        await asyncio.sleep(0)

    active = await registry.list_active(lock_timeout=0.05)
    assert active == [("C2", registry.get("C2").session_id)]

    factory.clients["C1"].gate.set()
    await inflight


@pytest.mark.asyncio
async def test_shutdown_notifies_and_disconnects(workspace):
    for channel in ("C1", "C2"):
        configure_channel(workspace, channel)
    factory = FakeClientFactory()
    registry = SessionRegistry(workspace, factory)
    await registry.restore_all(["C1", "C2"])
    sessions = {c: registry.get(c).session_id for c in ("C1", "C2")}
    notify = AsyncMock()

    await registry.shutdown(notify, notify_timeout=1.0, overall_timeout=5.0)

    assert len(registry) == 0
    assert {call.args for call in notify.await_args_list} == set(sessions.items())
    assert all(client.disconnect_calls == 1 for client in factory.clients.values())


@pytest.mark.asyncio
async def test_shutdown_bounds_slow_notice(workspace):
    configure_channel(workspace, "C1")
    factory = FakeClientFactory()
    registry = SessionRegistry(workspace, factory)
    await registry.restore_all(["C1"])

    async def hang(channel, session_id):
        await asyncio.sleep(60)

    await registry.shutdown(hang, notify_timeout=0.05, overall_timeout=2.0)

    assert factory.clients["C1"].disconnect_calls == 1


@pytest.mark.asyncio
async def test_list_active_is_bounded_by_lock_timeout_per_handle(workspace):
    channels = ["C1", "C2", "C3", "C4"]
    for channel in channels:
        configure_channel(workspace, channel)
    factory = FakeClientFactory()
    registry = SessionRegistry(workspace, factory)
    await registry.restore_all(channels)

    gate = asyncio.Event()
    busy = [registry.get(c) for c in ("C1", "C2", "C3")]
    inflight = []
    for handle in busy:
        factory.clients[handle.channel_id].gate = gate
        inflight.append(asyncio.create_task(consume(handle, "long")))
    while not all(h.is_busy for h in busy):
        await asyncio.sleep(0)

    lock_timeout = 0.05
    loop = asyncio.get_running_loop()
    started = loop.time()
    active = await registry.list_active(lock_timeout=lock_timeout)
    elapsed = loop.time() - started

    assert active == [("C4", registry.get("C4").session_id)]
    assert elapsed <= lock_timeout * len(registry) + 0.1

    gate.set()
    await asyncio.gather(*inflight)


@pytest.mark.asyncio
async def test_list_active_with_zero_timeout_includes_idle_handles(workspace):
    configure_channel(workspace, "C1")
    registry = SessionRegistry(workspace, FakeClientFactory())
    await registry.restore_all(["C1"])

    active = await registry.list_active(lock_timeout=0)

    assert active == [("C1", registry.get("C1").session_id)]
