import asyncio
from unittest.mock import AsyncMock

import pytest

from slackcoder.agent.plan import Plan, Task, TaskStatus
from slackcoder.errors import AgentBusyError, AgentError, AgentNotFoundError, DisconnectError
from slackcoder.session.handle import SessionHandle

from tests.fakes import FakeAgentClient, make_result


def make_handle(on_plan_update=None, responses=None):
    holder = {}

    def build(hooks):
        holder["client"] = FakeAgentClient(hooks, responses)
        return holder["client"]

    handle = SessionHandle("C1", build, on_plan_update=on_plan_update)
    return handle, holder["client"]


async def wait_until_busy(handle):
    while not handle.is_busy:
        await asyncio.sleep(0)


async def consume(handle, text, timeout=3.0):
    async with handle.query(text, timeout) as stream:
        return [m async for m in stream]


@pytest.mark.asyncio
async def test_query_forwards_text_with_session_id():
    handle, client = make_handle()
    await handle.connect()

    messages = await consume(handle, "hello")

    assert client.queries == [("hello", handle.session_id)]
    assert messages[-1].result == "done"
    assert not handle.is_busy


@pytest.mark.asyncio
async def test_lock_is_held_until_stream_is_consumed():
    handle, client = make_handle()
    client.gate = asyncio.Event()

    first = asyncio.create_task(consume(handle, "one"))
    await wait_until_busy(handle)

    with pytest.raises(AgentBusyError):
        await consume(handle, "two", timeout=0.05)

    client.gate.set()
    await first
    assert not handle.is_busy
    assert [q[0] for q in client.queries] == ["one"]


@pytest.mark.asyncio
async def test_concurrent_queries_never_interleave():
    handle, client = make_handle(responses=[make_result("a"), make_result("b")])
    order = []

    async def run(tag):
        async with handle.query(tag, timeout=5.0) as stream:
            async for _ in stream:
                order.append(tag)
                await asyncio.sleep(0)

    await asyncio.gather(run("x"), run("y"))
    assert order in (["x", "x", "y", "y"], ["y", "y", "x", "x"])


@pytest.mark.asyncio
async def test_lock_released_when_consumer_abandons_stream():
    handle, _ = make_handle(responses=[make_result("a"), make_result("b")])

    async with handle.query("hi") as stream:
        async for _ in stream:
            break

    assert not handle.is_busy
    await consume(handle, "again")


@pytest.mark.asyncio
async def test_agent_error_leaves_handle_reusable():
    handle, client = make_handle()
    client.stream_error = AgentError("stream broke")

    with pytest.raises(AgentError):
        await consume(handle, "hi")
    assert not handle.is_busy

    client.stream_error = None
    messages = await consume(handle, "retry")
    assert messages[-1].result == "done"


@pytest.mark.asyncio
async def test_query_error_releases_lock():
    handle, client = make_handle()
    client.fail_query = True

    with pytest.raises(AgentError):
        await consume(handle, "hi")
    assert not handle.is_busy


def test_is_expired():
    handle, _ = make_handle()
    last = handle.last_activity
    assert not handle.is_expired(10, now=last + 10)
    assert handle.is_expired(10, now=last + 10.01)


@pytest.mark.asyncio
async def test_start_new_session_resets_plan():
    handle, _ = make_handle()
    await handle.update_plan(Plan(tasks=[Task("A", "Doing A", TaskStatus.IN_PROGRESS)]))
    old = handle.session_id

    new = handle.start_new_session()

    assert new != old
    assert handle.session_id == new
    assert handle.plan.total_count == 0


@pytest.mark.asyncio
async def test_todo_hook_updates_plan_and_notifies():
    on_update = AsyncMock()
    handle, client = make_handle(on_plan_update=on_update)

    result = await client.fire_todo({"todos": [
        {"content": "Fix bug", "activeForm": "Fixing bug", "status": "in_progress"},
    ]})

    assert result == {}
    assert handle.plan.current_task.content == "Fix bug"
    on_update.assert_awaited_once_with("C1", handle.plan)


@pytest.mark.asyncio
async def test_plan_hook_failure_is_swallowed():
    handle, _ = make_handle(on_plan_update=AsyncMock(side_effect=RuntimeError("slack down")))
    await handle.update_plan(Plan(tasks=[Task("A", "Doing A", TaskStatus.PENDING)]))
    assert handle.plan.total_count == 1


@pytest.mark.asyncio
async def test_close_idle_disconnects_immediately():
    handle, client = make_handle()
    await handle.connect()

    assert await handle.close() is True
    assert client.disconnect_calls == 1
    with pytest.raises(AgentNotFoundError):
        await consume(handle, "hi")


@pytest.mark.asyncio
async def test_close_busy_defers_disconnect_until_drained():
    handle, client = make_handle()
    await handle.connect()
    client.gate = asyncio.Event()

    inflight = asyncio.create_task(consume(handle, "long task"))
    await wait_until_busy(handle)

    assert await handle.close() is False
    assert client.disconnect_calls == 0

    client.gate.set()
    messages = await inflight
    assert messages[-1].result == "done"
    assert client.disconnect_calls == 1
    assert not handle.is_busy


@pytest.mark.asyncio
async def test_disconnect_failure_is_wrapped():
    handle, client = make_handle()
    client.fail_disconnect = True
    with pytest.raises(DisconnectError):
        await handle.disconnect()


@pytest.mark.asyncio
async def test_lock_holder_survives_close_right_after_acquire():
    handle, client = make_handle()
    await handle.connect()
    entered = asyncio.Event()
    release = asyncio.Event()

    async def hold():
        async with handle.exclusive(1.0):
            entered.set()
            await release.wait()

    holder = asyncio.create_task(hold())
    await wait_until_busy(handle)
    assert entered.is_set()

    assert await handle.close() is False
    release.set()
    await holder

    assert client.disconnect_calls == 1
    with pytest.raises(AgentNotFoundError):
        async with handle.exclusive(0.05):
            pass
