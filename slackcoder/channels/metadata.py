"""
元数据缓存模块 - 缓存频道名和用户名，用于丰富日志内容。

日志里只有 C0123ABC / U0456DEF 这样的 ID 很难阅读。MetadataCache 通过
Slack Web API 查询频道名和用户显示名，并按 TTL 缓存，避免每条消息都调用 API。
查询失败时退回原始 ID，不影响消息处理。
"""

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

InfoFetcher = Callable[[str], Awaitable[dict[str, Any]]]


@dataclass
class LogContext:
    channel_id: str
    channel_name: str
    user_id: str
    user_name: str

    @property
    def channel_display(self) -> str:
        return f"#{self.channel_name}" if self.channel_name != self.channel_id else self.channel_id

    @property
    def user_display(self) -> str:
        return f"@{self.user_name}" if self.user_name != self.user_id else self.user_id


class MetadataCache:
    """
    频道/用户名称的 TTL 缓存。

    参数:
        channel_info: 异步函数，返回 Slack conversations.info 的 channel 对象
        user_info: 异步函数，返回 Slack users.info 的 user 对象
        ttl: 缓存有效期（秒）
    """

    def __init__(self, channel_info: InfoFetcher, user_info: InfoFetcher, ttl: float = 3600):
        self._channel_info = channel_info
        self._user_info = user_info
        self.ttl = ttl
        self._channels: dict[str, tuple[str, float]] = {}
        self._users: dict[str, tuple[str, float]] = {}

    async def _lookup(
        self,
        cache: dict[str, tuple[str, float]],
        key: str,
        fetch: InfoFetcher,
        pick: Callable[[dict[str, Any]], str | None],
    ) -> str:
        now = time.monotonic()
        cached = cache.get(key)
        if cached and now - cached[1] < self.ttl:
            return cached[0]
        try:
            name = pick(await fetch(key)) or key
        except Exception as e:
            logger.debug(f"Metadata lookup failed for {key}: {e}")
            return key
        cache[key] = (name, now)
        return name

    async def channel_name(self, channel_id: str) -> str:
        return await self._lookup(self._channels, channel_id, self._channel_info, lambda c: c.get("name"))

    async def user_name(self, user_id: str) -> str:
        def pick(user: dict[str, Any]) -> str | None:
            profile = user.get("profile") or {}
            return profile.get("display_name") or user.get("real_name") or user.get("name")

        return await self._lookup(self._users, user_id, self._user_info, pick)

    async def log_context(self, channel_id: str, user_id: str) -> LogContext:
        return LogContext(
            channel_id=channel_id,
            channel_name=await self.channel_name(channel_id),
            user_id=user_id,
            user_name=await self.user_name(user_id) if user_id else user_id,
        )

    def invalidate(self) -> None:
        self._channels.clear()
        self._users.clear()
