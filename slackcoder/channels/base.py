"""
渠道基类模块 - 定义消息渠道的统一接口。

slackcoder 的核心组件（会话注册表、进度跟踪器、命令处理）不直接依赖
slack_sdk，而是依赖这里定义的"消息平台客户端"能力：

- send_message(channel, text, thread_ts) → 消息 ts
- edit_message(channel, ts, text)
- list_channels() → [频道 ID]

【核心抽象方法】
- start() / stop()：启动、停止事件监听
- send()：发送出站消息（消息总线的订阅回调）

【Java 开发者类比】
- BaseChannel 相当于 Java 的 abstract class + interface
- 测试中可以用内存实现替代，类似于 Mockito 的 mock 对象
"""

from abc import ABC, abstractmethod
from typing import Any

from slackcoder.bus.events import InboundMessage, OutboundMessage
from slackcoder.bus.queue import MessageBus


class BaseChannel(ABC):
    """
    消息渠道抽象基类。

    属性:
        name: 渠道标识名，用于出站消息路由
        config: 渠道配置对象
        bus: 消息总线实例
    """

    name: str = "base"

    def __init__(self, config: Any, bus: MessageBus):
        self.config = config
        self.bus = bus
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """启动渠道并开始监听事件（长期运行）。"""

    @abstractmethod
    async def stop(self) -> None:
        """停止渠道并释放连接。"""

    @abstractmethod
    async def send_message(self, channel: str, text: str, thread_ts: str | None = None) -> str:
        """
        发送一条消息。

        参数:
            channel: 频道 ID
            text: 消息文本
            thread_ts: 可选的线程时间戳（回复到该线程）

        返回:
            新消息的 ts（后续编辑时使用）
        """

    @abstractmethod
    async def edit_message(self, channel: str, ts: str, text: str) -> None:
        """编辑已发送的消息。"""

    @abstractmethod
    async def list_channels(self) -> list[str]:
        """列出机器人所在的全部频道 ID。"""

    async def send(self, msg: OutboundMessage) -> None:
        """消息总线的出站回调：把 OutboundMessage 转换为 send_message 调用。"""
        await self.send_message(msg.chat_id, msg.content, msg.thread_ts)

    async def _handle_message(
        self,
        sender_id: str,
        chat_id: str,
        content: str,
        kind: str,
        ts: str | None = None,
        thread_ts: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """构造标准化的入站消息并发布到消息总线。"""
        msg = InboundMessage(
            channel=self.name,
            sender_id=str(sender_id),
            chat_id=str(chat_id),
            content=content,
            kind=kind,
            ts=ts,
            thread_ts=thread_ts,
            metadata=metadata or {},
        )
        await self.bus.publish_inbound(msg)
