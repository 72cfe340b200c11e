"""
异步消息队列模块 - 消息总线的核心实现。

入站流程（Slack → Agent）：
  SlackChannel → publish_inbound() → inbound 队列 → consume_inbound() → AgentLoop 工作协程

出站流程（Agent → Slack）：
  AgentLoop → publish_outbound() → outbound 队列 → dispatch_outbound() → 订阅回调

【Java 开发者类比】
- asyncio.Queue 类似于 Java 的 LinkedBlockingQueue
- subscribe_outbound + dispatch_outbound 类似于 Spring 的 @EventListener 机制
"""

import asyncio
from typing import Awaitable, Callable

from loguru import logger

from slackcoder.bus.events import InboundMessage, OutboundMessage

OutboundCallback = Callable[[OutboundMessage], Awaitable[None]]


class MessageBus:
    """
    异步消息总线。

    属性:
        inbound: 入站消息队列（SlackChannel → AgentLoop）
        outbound: 出站消息队列（AgentLoop → SlackChannel）
        _outbound_subscribers: 出站订阅者 {渠道名: [回调列表]}
    """

    def __init__(self):
        self.inbound: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self.outbound: asyncio.Queue[OutboundMessage] = asyncio.Queue()
        self._outbound_subscribers: dict[str, list[OutboundCallback]] = {}
        self._running = False

    async def publish_inbound(self, msg: InboundMessage) -> None:
        """发布入站消息。队列无界，不会阻塞 Socket Mode 回调。"""
        await self.inbound.put(msg)

    async def consume_inbound(self) -> InboundMessage:
        """取出下一条入站消息，队列为空时挂起等待。"""
        return await self.inbound.get()

    async def publish_outbound(self, msg: OutboundMessage) -> None:
        """发布出站消息，由 dispatch_outbound 后台任务送达对应渠道。"""
        await self.outbound.put(msg)

    def subscribe_outbound(self, channel: str, callback: OutboundCallback) -> None:
        """
        订阅指定渠道的出站消息。

        参数:
            channel: 渠道名称（如 'slack'）
            callback: 异步回调，接收 OutboundMessage
        """
        self._outbound_subscribers.setdefault(channel, []).append(callback)

    async def dispatch_outbound(self) -> None:
        """
        出站消息分发器（后台常驻任务）。

        每秒检查一次 _running 标志，stop() 之后最多 1 秒内退出。
        单个回调失败只记录日志，不影响后续消息。
        """
        self._running = True
        while self._running:
            try:
                msg = await asyncio.wait_for(self.outbound.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            for callback in self._outbound_subscribers.get(msg.channel, []):
                try:
                    await callback(msg)
                except Exception as e:
                    logger.error(f"Error dispatching to {msg.channel}/{msg.chat_id}: {e}")

    def stop(self) -> None:
        """停止出站分发器。"""
        self._running = False

    @property
    def inbound_size(self) -> int:
        """待处理的入站消息数量。"""
        return self.inbound.qsize()

    @property
    def outbound_size(self) -> int:
        """待分发的出站消息数量。"""
        return self.outbound.qsize()
