"""
定时清理服务模块。

会话注册表和事件去重缓存都不自己调度定时任务，而是由本服务统一驱动：
1. 每隔 interval_s 秒执行一次 tick()
2. registry.evict_idle(idle_timeout)：回收空闲超时的会话
3. dedup.prune(event_ttl)：清理早于 TTL 的去重记录

单次清理失败只记录日志，循环继续运行。
"""

import asyncio
from dataclasses import dataclass

from loguru import logger

from slackcoder.channels.dedup import EventDeduplicator
from slackcoder.session.registry import SessionRegistry


@dataclass
class TickResult:
    evicted: list[str]
    pruned: int


class HousekeepingService:
    """
    定时清理服务。

    参数:
        registry: 会话注册表
        dedup: 事件去重缓存
        interval_s: 执行周期（秒）
        idle_timeout: 会话空闲超时（秒）
        event_ttl: 去重记录保留时长（秒）
    """

    def __init__(
        self,
        registry: SessionRegistry,
        dedup: EventDeduplicator,
        interval_s: float = 300,
        idle_timeout: float = 1800,
        event_ttl: float = 3600,
    ):
        self.registry = registry
        self.dedup = dedup
        self.interval_s = interval_s
        self.idle_timeout = idle_timeout
        self.event_ttl = event_ttl
        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Housekeeping started (every {self.interval_s}s)")

    def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None

    async def _run_loop(self) -> None:
        """先等待一个周期，再执行清理，循环往复。"""
        while self._running:
            try:
                await asyncio.sleep(self.interval_s)
                if self._running:
                    await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Housekeeping error: {e}")

    async def tick(self) -> TickResult:
        """执行一次清理。两项清理互相独立，一项失败不影响另一项。"""
        evicted: list[str] = []
        pruned = 0
        try:
            evicted = await self.registry.evict_idle(self.idle_timeout)
        except Exception as e:
            logger.error(f"Idle session eviction failed: {e}")
        try:
            pruned = self.dedup.prune(self.event_ttl)
        except Exception as e:
            logger.error(f"Dedup prune failed: {e}")
        if evicted or pruned:
            logger.info(f"Housekeeping: evicted {len(evicted)} session(s), pruned {pruned} event(s)")
        else:
            logger.debug("Housekeeping: nothing to clean up")
        return TickResult(evicted=evicted, pruned=pruned)
