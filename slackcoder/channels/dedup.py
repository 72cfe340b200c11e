"""
事件去重模块 - 带时间窗口的"已处理"缓存。

Slack 在 ACK 超时或网络抖动时会重发同一个事件，并且在频道里 @提及 机器人时
还可能同时投递 message 和 app_mention 两种事件。这里用"频道 + 事件原始时间戳"
作为稳定键，保证同一事件只被处理一次。

【注意】
条目按 TTL 定期清理（默认 1 小时）。如果重复事件在其原始键被清理之后才到达，
会被误判为新事件。TTL 远大于平台的重发窗口，这一风险是可以接受的。
"""

import time
from enum import Enum


class DedupResult(Enum):
    NEW = "new"
    ALREADY_PROCESSED = "already_processed"


def event_key(channel: str, ts: str) -> str:
    """由频道 ID 和事件原始时间戳构造去重键。"""
    return f"{channel}:{ts}"


class EventDeduplicator:
    """
    已处理事件缓存：键 → 首次看到的单调时刻。

    check_and_mark() 内部没有任何 await，在 asyncio 单线程模型下
    "检查 + 插入"天然是原子的。
    """

    def __init__(self):
        self._seen: dict[str, float] = {}

    def check_and_mark(self, key: str, now: float | None = None) -> DedupResult:
        """检查事件是否已处理过；首次出现时登记并返回 NEW。"""
        if key in self._seen:
            return DedupResult.ALREADY_PROCESSED
        self._seen[key] = time.monotonic() if now is None else now
        return DedupResult.NEW

    def prune(self, ttl: float, now: float | None = None) -> int:
        """
        清理早于 ttl 秒的条目。

        参数:
            ttl: 保留时长（秒）
            now: 当前单调时刻，测试时可注入

        返回:
            被清理的条目数
        """
        now = time.monotonic() if now is None else now
        expired = [k for k, first_seen in self._seen.items() if now - first_seen > ttl]
        for k in expired:
            del self._seen[k]
        return len(expired)

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, key: str) -> bool:
        return key in self._seen
