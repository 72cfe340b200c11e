"""
初始化 Agent 模块 - 为频道准备仓库和系统提示词。

用户在频道里 @机器人 并给出 owner/repo 后，SetupAgent 会启动一个一次性的
Claude Agent：用 gh 校验仓库、克隆到 repos/{channel}、分析代码，
最后把系统提示词写到 system/{channel}/system_prompt.md。

初始化过程同样通过 TodoWrite 上报进度，由 ProgressTracker 渲染到频道里。
任何失败（格式错误、Agent 报错、最终没有产出工作区标记）都抛出 SetupFailedError。
"""

import re
from pathlib import Path

from claude_agent_sdk import ResultMessage
from loguru import logger

from slackcoder.agent.client import ClientFactory
from slackcoder.agent.hooks import create_todo_hooks
from slackcoder.agent.plan import Plan
from slackcoder.agent.prompts import SETUP_SYSTEM_PROMPT, build_setup_instructions
from slackcoder.channels.progress import ProgressTracker
from slackcoder.errors import SetupFailedError
from slackcoder.storage.workspace import Workspace

_REPO_PART = re.compile(r"^[A-Za-z0-9_.-]+$")


def parse_repo_name(name: str) -> tuple[str, str]:
    """
    校验并拆分 "owner/repo" 格式的仓库名。

    异常:
        SetupFailedError: 格式不正确
    """
    parts = name.strip().split("/")
    if len(parts) != 2:
        raise SetupFailedError(
            f"Invalid repository format: '{name}'. Expected format: owner/repo-name"
        )
    owner, repo = parts[0].strip(), parts[1].strip()
    if not owner or not repo:
        raise SetupFailedError("Owner and repository name cannot be empty")
    if not _REPO_PART.match(owner) or not _REPO_PART.match(repo):
        raise SetupFailedError(f"Invalid characters in repository name: '{name}'")
    return owner, repo


class SetupAgent:
    """
    一次性初始化 Agent。

    参数:
        factory: Agent 客户端工厂
        workspace: 频道工作区
        progress: 进度跟踪器，None 时不渲染进度
        prompt_path: 自定义系统提示词文件，None 或空时使用内置提示词
        max_repo_size_mb: 允许克隆的仓库大小上限
    """

    def __init__(
        self,
        factory: ClientFactory,
        workspace: Workspace,
        progress: ProgressTracker | None = None,
        prompt_path: str | None = None,
        max_repo_size_mb: int = 1024,
    ):
        self.factory = factory
        self.workspace = workspace
        self.progress = progress
        self.prompt_path = prompt_path
        self.max_repo_size_mb = max_repo_size_mb

    def load_system_prompt(self) -> str:
        if not self.prompt_path:
            return SETUP_SYSTEM_PROMPT
        path = Path(self.prompt_path).expanduser()
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise SetupFailedError(f"Failed to load setup agent prompt from {path}: {e}") from e

    async def run(self, channel_id: str, repo_name: str) -> str:
        """
        执行初始化，返回 Agent 的最终结果文本。

        异常:
            SetupFailedError: 任意一步失败
        """
        parse_repo_name(repo_name)
        self.workspace.ensure_workspace()

        plan = Plan()

        async def on_plan(snapshot: Plan) -> None:
            plan.update(snapshot)
            if self.progress is not None:
                try:
                    await self.progress.update(channel_id, plan)
                except Exception as e:
                    logger.warning(f"Setup progress update failed for {channel_id}: {e}")

        client = self.factory.create(
            self.load_system_prompt(),
            self.workspace.base_path,
            create_todo_hooks(on_plan),
        )
        instructions = build_setup_instructions(
            repo_name,
            channel_id,
            self.workspace.repo_path(channel_id),
            self.workspace.system_prompt_path(channel_id),
            self.max_repo_size_mb,
        )

        logger.info(f"Running setup agent for {channel_id} with repo {repo_name}")
        try:
            await client.connect()
            try:
                await client.query(instructions, f"setup-{channel_id}")
                result = None
                async for message in client.receive_response():
                    if isinstance(message, ResultMessage):
                        result = message
                        break
            finally:
                try:
                    await client.disconnect()
                except Exception as e:
                    logger.warning(f"Setup agent disconnect failed for {channel_id}: {e}")
        except SetupFailedError:
            raise
        except Exception as e:
            raise SetupFailedError(f"Setup agent failed: {e}") from e
        finally:
            if self.progress is not None:
                self.progress.clear(channel_id)

        if result is None:
            raise SetupFailedError("Setup agent finished without a result")
        if result.is_error:
            raise SetupFailedError(f"Setup agent reported an error: {result.result or result.subtype}")

        logger.info(f"Setup completed for {channel_id}: {(result.result or '')[:200]}")
        return result.result or ""
