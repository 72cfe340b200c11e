"""
消息渠道模块 - Slack 接入、事件去重、进度消息与元数据缓存。

消息流向：
  Slack 事件 → SlackChannel（ACK + 去重）→ MessageBus → AgentLoop → MessageBus → SlackChannel → Slack

【Java 开发者类比】
- BaseChannel 相当于 Java 接口，SlackChannel 是它的实现
- ProgressTracker 相当于一个负责"原地刷新"某条消息的视图组件
"""

from slackcoder.channels.base import BaseChannel
from slackcoder.channels.dedup import DedupResult, EventDeduplicator

__all__ = ["BaseChannel", "EventDeduplicator", "DedupResult"]
