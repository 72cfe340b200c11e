"""
会话句柄模块 - 一个频道独占的 Claude Agent 会话。

SessionHandle 持有：
- 该频道专属的 Agent 客户端
- 一把独占锁：同一会话同一时刻最多只有一个请求在执行
- 最近活动时刻（用于空闲回收）
- 当前会话 ID 与任务计划（Plan）

【锁的语义】
query() 是唯一跨 await 持有锁的操作，而且锁会一直持有到响应流被完整消费，
而不仅仅是请求提交之后。这样第二个请求永远看不到"说到一半"的 Agent。
获取锁总是带超时的：超时即返回 Busy（AgentBusyError），不会排队等待。

mark_activity / is_expired / session_id / is_busy 都不需要锁，
请求执行期间依然能立即响应。

【关闭语义】
close() 时如果句柄空闲，立即断开；如果有请求正在执行，不会抢占它，
而是把句柄标记为"已退役"，等当前请求结束释放锁之前再断开。
退役后的句柄拒绝新请求（AgentNotFoundError）。

【Java 开发者类比】
- exclusive() 类似于 ReentrantLock.tryLock(timeout) + try/finally
- query() 返回的响应流类似于一个必须在锁内遍历完的 Iterator
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

from loguru import logger

from slackcoder.agent.client import AgentClient, ClientBuilder
from slackcoder.agent.hooks import create_todo_hooks
from slackcoder.agent.plan import Plan
from slackcoder.errors import AgentBusyError, AgentNotFoundError, DisconnectError
from slackcoder.session.ids import generate_session_id
from slackcoder.utils.helpers import acquire_with_timeout

DEFAULT_LOCK_TIMEOUT = 3.0

PlanUpdateHook = Callable[[str, Plan], Awaitable[Any]]


class SessionHandle:
    """
    单个频道的会话句柄。

    参数:
        channel_id: 频道 ID
        client_builder: 接收 TodoWrite 钩子、返回 Agent 客户端的构造函数
        on_plan_update: 计划合并后的回调 (channel_id, plan)，通常是 ProgressTracker.update
    """

    def __init__(
        self,
        channel_id: str,
        client_builder: ClientBuilder,
        on_plan_update: PlanUpdateHook | None = None,
    ):
        self.channel_id = channel_id
        self.plan = Plan()
        self._on_plan_update = on_plan_update
        self._client: AgentClient = client_builder(create_todo_hooks(self.update_plan))
        self._lock = asyncio.Lock()
        self._session_id = generate_session_id(channel_id)
        self._last_activity = time.monotonic()
        self._retired = False
        self._closed = False

    # ------------------------------------------------------------------
    # 连接管理
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """连接 Agent 客户端。失败时抛出 AgentError。"""
        await self._client.connect()
        self.mark_activity()
        logger.info(f"Agent connected for channel {self.channel_id} (session {self._session_id})")

    async def disconnect(self) -> None:
        """断开 Agent 客户端，任何失败都包装为 DisconnectError。"""
        try:
            await self._client.disconnect()
        except Exception as e:
            raise DisconnectError(f"Failed to disconnect agent for channel {self.channel_id}: {e}") from e

    async def close(self) -> bool:
        """
        关闭句柄。

        返回:
            True 表示已立即断开；False 表示有请求在执行，断开被推迟到请求结束

        异常:
            DisconnectError: 立即断开失败
        """
        if self._closed:
            return True
        self._retired = True
        if self._lock.locked():
            logger.info(f"Channel {self.channel_id} has a request in flight, disconnect deferred")
            return False
        await self._shutdown()
        return True

    async def _shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.disconnect()

    # ------------------------------------------------------------------
    # 独占访问
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def exclusive(self, timeout: float = DEFAULT_LOCK_TIMEOUT) -> AsyncIterator["SessionHandle"]:
        """
        在超时时间内获取独占锁，离开上下文时释放。

        异常:
            AgentNotFoundError: 句柄已退役
            AgentBusyError: 超时未获取到锁
        """
        if self._retired:
            raise AgentNotFoundError(self.channel_id)
        if not await acquire_with_timeout(self._lock, timeout):
            raise AgentBusyError(self.channel_id, timeout)
        try:
            if self._retired:
                raise AgentNotFoundError(self.channel_id)
            yield self
        finally:
            if self._retired:
                try:
                    await self._shutdown()
                except DisconnectError as e:
                    logger.warning(str(e))
            self._lock.release()

    @asynccontextmanager
    async def query(self, text: str, timeout: float = DEFAULT_LOCK_TIMEOUT) -> AsyncIterator[AsyncIterator[Any]]:
        """
        发送请求并返回响应流，锁一直持有到离开上下文。

        用法:
            async with handle.query("fix the failing test") as stream:
                async for message in stream:
                    ...

        消费方中途放弃或 Agent 抛出异常时，锁同样会被释放，句柄可以继续使用。

        异常:
            AgentBusyError: 会话正忙
            AgentNotFoundError: 句柄已退役
            AgentError: Agent 客户端出错
        """
        async with self.exclusive(timeout):
            await self._client.query(text, self._session_id)
            self.mark_activity()
            stream = self._client.receive_response()
            try:
                yield stream
            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()

    # ------------------------------------------------------------------
    # 会话状态
    # ------------------------------------------------------------------

    def start_new_session(self) -> str:
        """生成新的会话 ID 并清空任务计划。调用方应先通过 exclusive() 取得锁。"""
        self._session_id = generate_session_id(self.channel_id)
        self.plan.reset()
        self.mark_activity()
        logger.info(f"New session for channel {self.channel_id}: {self._session_id}")
        return self._session_id

    def mark_activity(self) -> None:
        self._last_activity = time.monotonic()

    def is_expired(self, timeout: float, now: float | None = None) -> bool:
        """空闲时间是否超过 timeout 秒。"""
        now = time.monotonic() if now is None else now
        return now - self._last_activity > timeout

    @property
    def last_activity(self) -> float:
        return self._last_activity

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    async def update_plan(self, snapshot: Plan) -> None:
        """
        合并 TodoWrite 快照并通知进度跟踪器。

        回调失败只记录日志，不会抛回 Agent 的钩子调用链。
        """
        self.plan.update(snapshot)
        if self._on_plan_update is None:
            return
        try:
            await self._on_plan_update(self.channel_id, self.plan)
        except Exception as e:
            logger.warning(f"Plan update hook failed for channel {self.channel_id}: {e}")
