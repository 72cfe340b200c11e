"""
消息总线模块 - 解耦 Slack 事件接收与 Agent 请求处理。

消息流向：
  Slack 事件 → SlackChannel → InboundMessage → 消息总线 → AgentLoop 工作池
  Agent 回复 → OutboundMessage → 消息总线 → SlackChannel.send → Slack

Socket Mode 的事件回调只负责 ACK、去重和入队，真正耗时的 Agent 调用
全部在 AgentLoop 的工作协程里完成，保证 Slack 的 3 秒确认期限不被突破。

【Java 开发者类比】
- MessageBus 类似于 Spring 的 ApplicationEventPublisher + @EventListener
- InboundMessage / OutboundMessage 类似于入站/出站 DTO
"""

from slackcoder.bus.events import InboundMessage, OutboundMessage
from slackcoder.bus.queue import MessageBus

__all__ = ["MessageBus", "InboundMessage", "OutboundMessage"]
