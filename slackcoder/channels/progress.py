"""
进度跟踪模块 - 为每个频道维护一条"实时进度消息"。

Agent 每次调用 TodoWrite，会话句柄都会把合并后的 Plan 交给 ProgressTracker：
- 频道还没有进度消息 → 发送一条新消息并记住它的 ts
- 已有进度消息 → 原地编辑这条消息

这样每个频道同一时刻只有一条可见的进度消息，内容被不断替换而不是追加。
请求结束后调用 clear()，只丢弃引用，不删除消息本身。

渲染示例：
    *Progress:* 1 / 3
    `███░░░░░░░` 33%
    :white_check_mark: Read the code (2.3s)
    :hourglass_flowing_sand: Running tests (12s)
    :white_medium_square: Write the report
"""

import asyncio
import time
from typing import Protocol

from loguru import logger

from slackcoder.agent.plan import EPSILON_DURATION, Plan, TaskStatus
from slackcoder.errors import SlackApiError
from slackcoder.utils.helpers import format_duration

BAR_WIDTH = 10

_STATUS_EMOJI = {
    TaskStatus.PENDING: ":white_medium_square:",
    TaskStatus.IN_PROGRESS: ":hourglass_flowing_sand:",
    TaskStatus.COMPLETED: ":white_check_mark:",
}


class Messenger(Protocol):
    """进度跟踪器需要的消息能力（SlackChannel 满足该协议）。"""

    async def send_message(self, channel: str, text: str, thread_ts: str | None = None) -> str: ...

    async def edit_message(self, channel: str, ts: str, text: str) -> None: ...


def render_plan(plan: Plan, now: float | None = None) -> str:
    """把 Plan 渲染为 Slack mrkdwn 文本。"""
    now = time.monotonic() if now is None else now
    done, total = plan.completed_count, plan.total_count
    percent = int(done * 100 / total) if total else 0
    filled = done * BAR_WIDTH // total if total else 0
    bar = "█" * filled + "░" * (BAR_WIDTH - filled)

    lines = [f"*Progress:* {done} / {total}", f"`{bar}` {percent}%"]
    for task in plan.tasks:
        emoji = _STATUS_EMOJI[task.status]
        if task.status == TaskStatus.IN_PROGRESS:
            line = f"{emoji} {task.active_form}"
            elapsed = task.elapsed(now)
            if elapsed is not None:
                line += f" ({format_duration(elapsed)})"
        else:
            line = f"{emoji} {task.content}"
            if task.status == TaskStatus.COMPLETED and task.completion_time is not None \
                    and task.completion_time > EPSILON_DURATION:
                line += f" ({format_duration(task.completion_time)})"
        lines.append(line)
    return "\n".join(lines)


class ProgressTracker:
    """
    频道 → 实时进度消息 ts 的映射。

    同一频道的更新通过频道级锁串行化：两个几乎同时到达的更新
    不会各自发送一条新消息。不同频道之间互不影响。
    """

    def __init__(self, messenger: Messenger):
        self.messenger = messenger
        self._live: dict[str, str] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, channel: str) -> asyncio.Lock:
        lock = self._locks.get(channel)
        if lock is None:
            lock = self._locks[channel] = asyncio.Lock()
        return lock

    async def update(self, channel: str, plan: Plan) -> str:
        """
        用最新的 Plan 刷新频道的进度消息。

        编辑失败（例如消息已被删除）时改为发送新消息并替换引用。

        返回:
            当前实时进度消息的 ts
        """
        text = render_plan(plan)
        async with self._lock_for(channel):
            ts = self._live.get(channel)
            if ts is not None:
                try:
                    await self.messenger.edit_message(channel, ts, text)
                    return ts
                except SlackApiError as e:
                    logger.warning(f"Progress message edit failed in {channel}, reposting: {e}")
            ts = await self.messenger.send_message(channel, text)
            self._live[channel] = ts
            return ts

    def clear(self, channel: str) -> None:
        """丢弃频道的实时消息引用（不删除消息本身）。"""
        self._live.pop(channel, None)

    def live_message(self, channel: str) -> str | None:
        return self._live.get(channel)
