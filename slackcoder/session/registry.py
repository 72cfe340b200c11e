"""
会话注册表模块 - 频道 → 会话句柄的映射与生命周期管理。

SessionRegistry 是一个显式创建、显式传递的组件实例（没有全局单例），负责：
- restore_all：进程启动时为所有"已配置"的频道并发恢复会话
- setup：运行初始化 Agent，为频道创建新的会话（替换旧会话，不等待其排空）
- get / has / remove：查询与移除
- evict_idle：回收空闲超时的会话（由定时任务驱动）
- list_active：带超时地列出活跃会话
- shutdown：通知各频道并释放所有会话，整体受超时约束

【并发约定】
注册表本身只是一个普通 dict。所有对 dict 的读写都在两次 await 之间完成，
在 asyncio 单线程模型下天然原子，因此不需要注册表级别的锁；
不同频道的操作互不竞争，也不会出现"持有全局锁等待单个会话"的情况。

【Java 开发者类比】
- SessionRegistry 类似于一个 ConcurrentHashMap<String, SessionHandle> 外加生命周期方法
- RestoreReport 类似于批处理结果 DTO（成功列表 + 失败列表）
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

from loguru import logger

from slackcoder.agent.prompts import build_repo_system_prompt
from slackcoder.agent.setup import SetupAgent, parse_repo_name
from slackcoder.channels.progress import ProgressTracker
from slackcoder.errors import (
    AgentBusyError,
    AgentNotFoundError,
    DisconnectError,
    SetupFailedError,
)
from slackcoder.session.handle import SessionHandle
from slackcoder.storage.workspace import Workspace

# 关闭通知回调：(channel_id, session_id)
ShutdownNotifier = Callable[[str, str], Awaitable[Any]]


class ChannelLister(Protocol):
    async def list_channels(self) -> list[str]: ...


@dataclass
class RestoreReport:
    """restore_all 的结果：成功恢复的频道和失败的频道（附错误信息）。"""

    restored: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)


class SessionRegistry:
    """
    频道会话注册表。

    参数:
        workspace: 频道工作区（判断是否已配置、读取系统提示词）
        client_factory: 提供 builder(system_prompt, cwd) 的客户端工厂
        setup_agent: 初始化 Agent，None 时 setup() 不可用
        progress: 进度跟踪器，作为每个句柄的计划更新回调
    """

    def __init__(
        self,
        workspace: Workspace,
        client_factory: Any,
        setup_agent: SetupAgent | None = None,
        progress: ProgressTracker | None = None,
    ):
        self.workspace = workspace
        self.client_factory = client_factory
        self.setup_agent = setup_agent
        self.progress = progress
        self._sessions: dict[str, SessionHandle] = {}

    # ------------------------------------------------------------------
    # 创建与恢复
    # ------------------------------------------------------------------

    async def _create_handle(self, channel_id: str) -> SessionHandle:
        """读取频道系统提示词，创建并连接一个新的会话句柄。"""
        repo_prompt = self.workspace.load_system_prompt(channel_id)
        builder = self.client_factory.builder(
            build_repo_system_prompt(repo_prompt),
            self.workspace.repo_path(channel_id),
        )
        handle = SessionHandle(
            channel_id,
            builder,
            on_plan_update=self.progress.update if self.progress else None,
        )
        await handle.connect()
        return handle

    async def _install(self, channel_id: str, handle: SessionHandle) -> None:
        """登记句柄；替换下来的旧句柄直接关闭，不等待它排空。"""
        previous = self._sessions.get(channel_id)
        self._sessions[channel_id] = handle
        if previous is not None and previous is not handle:
            logger.info(f"Replacing existing session for channel {channel_id}")
            await self._close_quietly(channel_id, previous)

    async def restore_all(self, channels: list[str]) -> RestoreReport:
        """
        为所有已配置的频道并发恢复会话。

        单个频道失败只记录日志并写入报告，不影响其他频道，整体调用总是成功返回。
        """
        eligible = [c for c in channels if self.workspace.is_channel_configured(c)]
        report = RestoreReport()
        if not eligible:
            logger.info("No configured channels to restore")
            return report

        logger.info(f"Restoring {len(eligible)} configured channel(s)")
        results = await asyncio.gather(
            *(self._create_handle(c) for c in eligible),
            return_exceptions=True,
        )
        for channel_id, result in zip(eligible, results):
            if isinstance(result, BaseException):
                logger.error(f"Failed to restore channel {channel_id}: {result}")
                report.failed.append((channel_id, str(result)))
                continue
            await self._install(channel_id, result)
            report.restored.append(channel_id)

        logger.info(f"Restore finished: {len(report.restored)} restored, {len(report.failed)} failed")
        return report

    async def scan_and_restore(self, lister: ChannelLister) -> RestoreReport:
        """列出机器人所在的频道并恢复其中已配置的会话。"""
        try:
            channels = await lister.list_channels()
        except Exception as e:
            logger.error(f"Failed to list channels for restore: {e}")
            return RestoreReport()
        logger.info(f"Bot is a member of {len(channels)} channel(s)")
        return await self.restore_all(channels)

    async def setup(self, channel_id: str, repo_name: str) -> SessionHandle:
        """
        运行初始化 Agent 并为频道创建新会话。

        操作是原子的：任何一步失败都抛出 SetupFailedError，且不会登记任何句柄。
        同一频道有请求在执行时调用 setup，旧句柄会被直接替换，不等待其排空。
        """
        if self.setup_agent is None:
            raise SetupFailedError("Setup agent is not configured")
        try:
            parse_repo_name(repo_name)
            await self.setup_agent.run(channel_id, repo_name)
            if not self.workspace.is_channel_configured(channel_id):
                raise SetupFailedError(
                    f"Setup finished but the workspace for channel {channel_id} is incomplete"
                )
            handle = await self._create_handle(channel_id)
        except SetupFailedError:
            raise
        except Exception as e:
            raise SetupFailedError(f"Setup failed for channel {channel_id}: {e}") from e

        await self._install(channel_id, handle)
        logger.info(f"Channel {channel_id} is ready with repository {repo_name}")
        return handle

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def get(self, channel_id: str) -> SessionHandle:
        """获取频道的会话句柄，不存在时抛出 AgentNotFoundError。"""
        handle = self._sessions.get(channel_id)
        if handle is None:
            raise AgentNotFoundError(channel_id)
        return handle

    def has(self, channel_id: str) -> bool:
        return channel_id in self._sessions

    def channels(self) -> list[str]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, channel_id: str) -> bool:
        return channel_id in self._sessions

    async def list_active(self, lock_timeout: float = 0.5) -> list[tuple[str, str]]:
        """
        列出 (channel_id, session_id)。

        每个句柄独立地尝试带超时加锁，拿不到锁的句柄直接跳过，
        最坏耗时为 lock_timeout × 会话数。
        """
        active = []
        for channel_id, handle in list(self._sessions.items()):
            try:
                async with handle.exclusive(lock_timeout):
                    active.append((channel_id, handle.session_id))
            except (AgentBusyError, AgentNotFoundError):
                logger.debug(f"Skipping busy channel {channel_id} in list_active")
        return active

    # ------------------------------------------------------------------
    # 移除与回收
    # ------------------------------------------------------------------

    async def _close_quietly(self, channel_id: str, handle: SessionHandle) -> None:
        try:
            await handle.close()
        except DisconnectError as e:
            logger.warning(f"Disconnect failed for channel {channel_id}: {e}")

    async def remove(self, channel_id: str) -> bool:
        """
        移除频道的会话。

        句柄空闲时立即断开；有请求在执行时推迟到请求结束再断开。
        断开失败只记录日志。

        返回:
            频道原本是否存在会话
        """
        handle = self._sessions.pop(channel_id, None)
        if handle is None:
            return False
        await self._close_quietly(channel_id, handle)
        logger.info(f"Removed session for channel {channel_id}")
        return True

    async def evict_idle(self, timeout: float, now: float | None = None) -> list[str]:
        """回收空闲超过 timeout 秒的会话，返回被回收的频道列表。"""
        expired = [
            (channel_id, handle)
            for channel_id, handle in list(self._sessions.items())
            if handle.is_expired(timeout, now)
        ]
        evicted = []
        for channel_id, handle in expired:
            # 扫描之后该频道可能已被 setup 替换
            if self._sessions.get(channel_id) is not handle:
                continue
            if await self.remove(channel_id):
                evicted.append(channel_id)
        if evicted:
            logger.info(f"Evicted {len(evicted)} idle session(s): {', '.join(evicted)}")
        return evicted

    async def shutdown(
        self,
        notify: ShutdownNotifier | None = None,
        notify_timeout: float = 5.0,
        overall_timeout: float = 30.0,
    ) -> None:
        """
        关闭所有会话。

        先尽力通知每个频道（每个通知单独受 notify_timeout 约束），
        再释放所有句柄；整个过程受 overall_timeout 约束，超时后直接返回。
        """
        sessions = list(self._sessions.items())
        self._sessions.clear()
        if not sessions:
            return
        logger.info(f"Shutting down {len(sessions)} session(s)")

        async def notify_one(channel_id: str, session_id: str) -> None:
            try:
                await asyncio.wait_for(notify(channel_id, session_id), timeout=notify_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Shutdown notice to {channel_id} timed out")
            except Exception as e:
                logger.warning(f"Shutdown notice to {channel_id} failed: {e}")

        async def drain() -> None:
            if notify is not None:
                await asyncio.gather(*(notify_one(c, h.session_id) for c, h in sessions))
            await asyncio.gather(*(self._close_quietly(c, h) for c, h in sessions))

        try:
            await asyncio.wait_for(drain(), timeout=overall_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Shutdown drain timed out after {overall_timeout}s")
        else:
            logger.info("All sessions shut down")
