"""
提示词模块 - 初始化 Agent 与仓库 Agent 使用的内置提示词。

- SETUP_SYSTEM_PROMPT：初始化 Agent 的默认系统提示词（可通过 agent.setup_prompt_path 覆盖）
- build_setup_instructions()：发给初始化 Agent 的任务说明
- REPO_AGENT_WORKFLOW：仓库 Agent 的通用工作流要求，放在频道系统提示词之前
"""

from pathlib import Path

SETUP_SYSTEM_PROMPT = """You are the setup agent of a Slack coding bot.

Your job is to prepare a GitHub repository so that another agent can work on it
from a Slack channel. Use the TodoWrite tool to track every step so the channel
can follow your progress.

Rules:
- Use the `gh` CLI for every GitHub operation.
- Never modify the repository contents during setup.
- The system prompt you write must describe the project layout, build and test
  commands, coding conventions and anything a new contributor must know.
- Write the system prompt in Markdown.
"""

REPO_AGENT_WORKFLOW = """# Workflow requirements

You are working on a repository on behalf of a Slack channel. Everything you
write is posted back to the channel.

- Track multi-step work with the TodoWrite tool and keep exactly one task
  in_progress at a time.
- Work on a feature branch, never commit directly to the default branch.
- Run the project's tests before you report a change as done.
- Open pull requests with the `gh` CLI and include the link in your answer.
- Keep the final answer short: what changed, where, and how it was verified.
"""

SECTION_SEPARATOR = "\n\n---\n\n"


def build_setup_instructions(
    repo_name: str,
    channel_id: str,
    repo_path: Path,
    system_prompt_path: Path,
    max_repo_size_mb: int,
) -> str:
    """生成发给初始化 Agent 的任务说明。"""
    return f"""Please set up the repository {repo_name} for channel {channel_id}.

Tasks:
1. Validate the repository exists and is accessible using gh CLI
2. Refuse repositories larger than {max_repo_size_mb} MB
3. Clone it to {repo_path}
4. Analyze the codebase comprehensively
5. Generate a system prompt for this repository
6. Save the system prompt to {system_prompt_path}

The repository name provided by the user is: {repo_name}"""


def build_repo_system_prompt(repo_prompt: str) -> str:
    """仓库 Agent 的系统提示词 = 通用工作流要求 + 分隔线 + 频道专属提示词。"""
    return REPO_AGENT_WORKFLOW + SECTION_SEPARATOR + repo_prompt
