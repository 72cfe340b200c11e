"""
TodoWrite 钩子模块 - 把 Agent 的任务列表上报接入会话。

Claude Agent 通过 TodoWrite 工具维护自己的任务列表。这里注册一个
PostToolUse 钩子：每次 TodoWrite 执行完毕，解析其 tool_input 得到 Plan 快照，
交给调用方（会话句柄或初始化 Agent）合并并刷新进度消息。

钩子永远返回空结果，不会干预 Agent 的执行；输入格式不对时只记录日志。
"""

from typing import Any, Awaitable, Callable

from claude_agent_sdk import HookMatcher
from loguru import logger

from slackcoder.agent.plan import Plan

TODO_TOOL_NAME = "TodoWrite"

PlanCallback = Callable[[Plan], Awaitable[None]]


def create_todo_hooks(on_plan: PlanCallback) -> dict[str, list[HookMatcher]]:
    """
    构造传给 ClaudeAgentOptions(hooks=...) 的钩子配置。

    参数:
        on_plan: 收到新快照时调用的异步回调

    返回:
        {"PostToolUse": [HookMatcher(matcher="TodoWrite", ...)]}
    """

    async def _on_todo_write(input_data: Any, tool_use_id: str | None, context: Any) -> dict:
        tool_input = input_data.get("tool_input") if isinstance(input_data, dict) else None
        try:
            snapshot = Plan.from_tool_input(tool_input)
        except ValueError as e:
            logger.warning(f"Ignoring malformed {TODO_TOOL_NAME} input: {e}")
            return {}
        await on_plan(snapshot)
        return {}

    return {"PostToolUse": [HookMatcher(matcher=TODO_TOOL_NAME, hooks=[_on_todo_write])]}
