"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 slackcoder 的完整配置结构。
所有配置项都有默认值，用户只需在 config.json 中覆盖需要修改的部分。

整体配置结构（树形）：
Config (根配置)
├── slack      - Slack 连接参数（Bot/App Token、群组响应策略）
├── claude     - Claude Agent 参数（模型、权限模式、最大轮数）
├── workspace  - 工作区参数（根目录、仓库大小上限、清理周期）
└── agent      - 会话参数（空闲超时、并发数、锁超时、关闭超时、去重 TTL）

对于 Java 开发者：
- BaseModel 类似于 Java 的 POJO/Record，但自带字段验证和默认值
- BaseSettings 类似于 Spring 的 @ConfigurationProperties，额外支持从环境变量读取配置
"""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SlackConfig(BaseModel):
    """Slack 连接配置。使用 Socket Mode 接收事件（无需公网回调）。"""
    mode: str = "socket"  # 连接模式，目前仅支持 "socket"
    bot_token: str = ""  # Bot Token (xoxb-...)，调用 Web API
    app_token: str = ""  # App-Level Token (xapp-...)，Socket Mode 必需
    group_policy: str = "mention"  # 频道消息策略: "mention"（@时响应）| "allowlist"
    group_allow_from: list[str] = Field(default_factory=list)  # allowlist 模式下允许的频道 ID


class ClaudeConfig(BaseModel):
    """Claude Agent 配置，对应 claude_agent_sdk.ClaudeAgentOptions 的常用字段。"""
    model: str = "claude-sonnet-4-5"  # 模型名称
    permission_mode: str = "bypassPermissions"  # 工具权限模式
    max_turns: int | None = None  # 单次请求最多轮数，None 表示不限制
    cli_path: str | None = None  # 自定义 claude CLI 路径，None 使用 SDK 自带版本


class WorkspaceConfig(BaseModel):
    """工作区配置。每个频道的仓库克隆和系统提示词都存放在 base_path 下。"""
    base_path: str = "~/.slackcoder"  # 工作区根目录
    max_repo_size_mb: int = 1024  # 允许克隆的仓库大小上限（写进初始化提示词）
    cleanup_interval_secs: int = 300  # 定时清理（空闲会话、去重记录）的执行周期


class AgentConfig(BaseModel):
    """会话管理配置。"""
    setup_prompt_path: str = ""  # 初始化 Agent 的系统提示词文件，留空使用内置提示词
    agent_timeout_secs: int = 1800  # 会话空闲超过该秒数后被回收
    max_concurrent_requests: int = 10  # 同时处理的请求数（工作协程池大小）
    lock_timeout_secs: float = 3.0  # 获取会话独占锁的超时
    list_lock_timeout_secs: float = 0.5  # list_active 对单个会话的锁超时
    event_ttl_secs: int = 3600  # 去重记录保留时长
    shutdown_notify_timeout_secs: float = 5.0  # 关闭时单个频道通知的超时
    shutdown_timeout_secs: float = 30.0  # 关闭流程的整体超时


class Config(BaseSettings):
    """
    slackcoder 根配置类。

    除了从 JSON 文件加载外，还支持从环境变量读取配置，且环境变量优先：
    - 环境变量前缀: SLACKCODER_
    - 嵌套分隔符: __ (双下划线)
    - 示例: SLACKCODER_SLACK__BOT_TOKEN=xoxb-... 可覆盖 slack.bot_token
    """
    slack: SlackConfig = Field(default_factory=SlackConfig)
    claude: ClaudeConfig = Field(default_factory=ClaudeConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)

    @property
    def workspace_path(self) -> Path:
        """获取展开后的工作区绝对路径（将 ~ 展开为用户主目录）。"""
        return Path(self.workspace.base_path).expanduser()

    model_config = SettingsConfigDict(
        env_prefix="SLACKCODER_",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # 环境变量 > 配置文件（以 init 参数传入）
        return env_settings, init_settings, dotenv_settings, file_secret_settings
