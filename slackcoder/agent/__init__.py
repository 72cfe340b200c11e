"""
Agent 模块 - Claude Agent 相关的核心逻辑。

- plan：TodoWrite 任务计划状态机
- hooks：把 TodoWrite 调用接入任务计划的钩子
- client：Claude Agent 客户端适配与工厂
- setup：一次性初始化 Agent
- loop / commands：入站消息处理循环与频道命令
- metrics：用量统计
"""

from slackcoder.agent.plan import Plan, Task, TaskStatus

__all__ = ["Plan", "Task", "TaskStatus"]
