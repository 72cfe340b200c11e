"""
会话管理模块 - 频道与 Claude Agent 会话的绑定。

- SessionHandle：单个频道的独占会话（客户端 + 锁 + 活动时钟 + 任务计划）
- SessionRegistry：频道 → 会话句柄的注册表，负责创建、恢复、回收与关闭
- generate_session_id：会话 ID 生成

【Java 开发者类比】
- SessionRegistry 类似于一个带生命周期管理的 ConcurrentHashMap
- SessionHandle 类似于持有 ReentrantLock 的有状态 Bean
"""

from slackcoder.session.handle import SessionHandle
from slackcoder.session.ids import generate_session_id
from slackcoder.session.registry import RestoreReport, SessionRegistry

__all__ = ["SessionHandle", "SessionRegistry", "RestoreReport", "generate_session_id"]
