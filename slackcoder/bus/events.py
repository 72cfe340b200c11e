"""
消息事件类型定义模块 - 定义消息总线中传输的数据结构。

- InboundMessage：入站消息（Slack → AgentLoop）
- OutboundMessage：出站消息（AgentLoop → Slack）

【Java 开发者类比】
- @dataclass 等价于 Java 的 record 类或 Lombok 的 @Data
- field(default_factory=...) 等价于在构造器里 new HashMap<>()
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# 入站消息类型
KIND_MENTION = "mention"   # 用户 @提及 机器人
KIND_JOIN = "join"         # 机器人被邀请进频道


@dataclass
class InboundMessage:
    """
    入站消息 - 从 Slack 接收到的事件。

    属性:
        channel: 消息来源渠道标识（固定为 'slack'）
        sender_id: 发送者用户 ID
        chat_id: Slack 频道 ID（即会话注册表的键）
        content: 去掉 @提及 后的消息文本
        kind: 事件类型（mention / join）
        ts: 事件原始时间戳（Slack 用它标识一条消息）
        thread_ts: 所在线程的时间戳，不在线程中时为 None
        timestamp: 接收时间
        metadata: 渠道特有的附加数据（原始 event 等）
    """

    channel: str
    sender_id: str
    chat_id: str
    content: str
    kind: str = KIND_MENTION
    ts: str | None = None
    thread_ts: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def reply_thread(self) -> str | None:
        """回复所在线程：消息本身在线程中则沿用该线程，否则以消息自身开启线程。"""
        return self.thread_ts or self.ts


@dataclass
class OutboundMessage:
    """
    出站消息 - 要发送到 Slack 的回复。

    属性:
        channel: 目标渠道标识
        chat_id: 目标 Slack 频道 ID
        content: 回复文本（Slack mrkdwn）
        thread_ts: 回复到哪个线程，None 表示直接发到频道
        metadata: 渠道特有的附加数据
    """

    channel: str
    chat_id: str
    content: str
    thread_ts: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
