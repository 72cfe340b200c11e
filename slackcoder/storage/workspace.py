"""
工作区模块 - 频道持久化状态在磁盘上的布局。

目录结构（base_path 默认 ~/.slackcoder）：
    base_path/
    ├── repos/{channel_id}/                     # 该频道的仓库克隆
    └── system/{channel_id}/system_prompt.md    # 初始化 Agent 生成的系统提示词

只有两者都存在时，频道才被视为"已配置"，重启后会被自动恢复。
仓库的克隆与分析由初始化 Agent 完成，本模块只负责路径和只读查询。
"""

from pathlib import Path

from slackcoder.utils.helpers import ensure_dir, safe_filename

SYSTEM_PROMPT_FILE = "system_prompt.md"


class Workspace:
    """
    频道工作区。

    参数:
        base_path: 工作区根目录
    """

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path).expanduser()

    @property
    def repos_dir(self) -> Path:
        return self.base_path / "repos"

    @property
    def system_dir(self) -> Path:
        return self.base_path / "system"

    def ensure_workspace(self) -> None:
        """创建 repos/ 与 system/ 目录。"""
        ensure_dir(self.repos_dir)
        ensure_dir(self.system_dir)

    def repo_path(self, channel_id: str) -> Path:
        return self.repos_dir / safe_filename(channel_id)

    def system_prompt_path(self, channel_id: str) -> Path:
        return self.system_dir / safe_filename(channel_id) / SYSTEM_PROMPT_FILE

    def is_channel_configured(self, channel_id: str) -> bool:
        """仓库目录和系统提示词文件都存在时返回 True。"""
        return self.repo_path(channel_id).is_dir() and self.system_prompt_path(channel_id).is_file()

    def load_system_prompt(self, channel_id: str) -> str:
        """
        读取频道的系统提示词。

        异常:
            FileNotFoundError: 频道尚未完成初始化
        """
        path = self.system_prompt_path(channel_id)
        if not path.is_file():
            raise FileNotFoundError(f"System prompt not found for channel {channel_id}: {path}")
        return path.read_text(encoding="utf-8")

    def configured_channels(self) -> list[str]:
        """扫描 system/ 目录，列出所有已配置的频道（status 命令使用）。"""
        if not self.system_dir.is_dir():
            return []
        return sorted(
            p.name for p in self.system_dir.iterdir()
            if p.is_dir() and self.is_channel_configured(p.name)
        )
