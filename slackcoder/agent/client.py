"""
Claude Agent 客户端适配模块。

会话层只依赖 AgentClient 协议（connect / disconnect / query / receive_response），
不关心底层的流式协议。ClaudeAgentClient 把 claude_agent_sdk.ClaudeSDKClient
包装成该协议，并把 SDK 的异常统一转换为 AgentError。

【Java 开发者类比】
- AgentClient 相当于一个 interface，ClaudeAgentClient 是它的适配器实现（Adapter 模式）
- ClientFactory 相当于工厂 Bean，根据配置创建客户端
"""

from pathlib import Path
from typing import Any, AsyncIterator, Callable, Protocol

from claude_agent_sdk import ClaudeAgentOptions, ClaudeSDKClient
from loguru import logger

from slackcoder.config.schema import ClaudeConfig
from slackcoder.errors import AgentError


class AgentClient(Protocol):
    """会话句柄使用的 Agent 客户端能力。"""

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def query(self, text: str, session_id: str) -> None: ...

    def receive_response(self) -> AsyncIterator[Any]: ...


# 会话句柄通过它创建客户端：传入 TodoWrite 钩子，返回未连接的客户端
ClientBuilder = Callable[[dict], AgentClient]


class ClaudeAgentClient:
    """基于 ClaudeSDKClient 的 AgentClient 实现。"""

    def __init__(self, options: ClaudeAgentOptions):
        self.options = options
        self._client: ClaudeSDKClient | None = None

    async def connect(self) -> None:
        client = ClaudeSDKClient(options=self.options)
        try:
            await client.connect()
        except Exception as e:
            raise AgentError(f"Failed to connect agent client: {e}") from e
        self._client = client

    async def disconnect(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        await client.disconnect()

    async def query(self, text: str, session_id: str) -> None:
        if self._client is None:
            raise AgentError("Agent client is not connected")
        try:
            await self._client.query(text, session_id=session_id)
        except Exception as e:
            raise AgentError(f"Agent query failed: {e}") from e

    async def receive_response(self) -> AsyncIterator[Any]:
        """逐条产出 Agent 消息，直到（含）ResultMessage 为止。"""
        if self._client is None:
            raise AgentError("Agent client is not connected")
        try:
            async for message in self._client.receive_response():
                yield message
        except AgentError:
            raise
        except Exception as e:
            raise AgentError(f"Agent stream failed: {e}") from e


class ClientFactory:
    """
    根据 ClaudeConfig 创建 ClaudeAgentClient。

    参数:
        config: Claude 配置（模型、权限模式等）
    """

    def __init__(self, config: ClaudeConfig):
        self.config = config

    def build_options(self, system_prompt: str, cwd: Path, hooks: dict | None = None) -> ClaudeAgentOptions:
        options: dict[str, Any] = dict(
            system_prompt=system_prompt,
            permission_mode=self.config.permission_mode,
            cwd=str(cwd),
            model=self.config.model,
            hooks=hooks or {},
        )
        if self.config.max_turns is not None:
            options["max_turns"] = self.config.max_turns
        if self.config.cli_path:
            options["cli_path"] = self.config.cli_path
        return ClaudeAgentOptions(**options)

    def create(self, system_prompt: str, cwd: Path, hooks: dict | None = None) -> ClaudeAgentClient:
        logger.debug(f"Creating agent client (model={self.config.model}, cwd={cwd})")
        return ClaudeAgentClient(self.build_options(system_prompt, cwd, hooks))

    def builder(self, system_prompt: str, cwd: Path) -> ClientBuilder:
        """返回一个只差钩子参数的构造函数，交给 SessionHandle 使用。"""
        return lambda hooks: self.create(system_prompt, cwd, hooks)
