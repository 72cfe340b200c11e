"""
配置加载工具模块 (config/loader.py)
=================================
- 配置文件默认路径: ~/.slackcoder/config.json
- 配置文件使用 camelCase，Python 内部使用 snake_case
- 加载时 camelCase → snake_case，保存时 snake_case → camelCase
"""

import json
from pathlib import Path
from typing import Any

from loguru import logger

from slackcoder.config.schema import Config
from slackcoder.errors import ConfigError


def get_config_path() -> Path:
    """获取默认配置文件路径: ~/.slackcoder/config.json"""
    return Path.home() / ".slackcoder" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    从 JSON 文件加载配置，文件不存在时只使用默认值和环境变量。

    配置文件损坏时降级为默认配置并记录警告，而不是直接退出。

    参数:
        config_path: 可选的配置文件路径。为 None 时使用默认路径。
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)
            return Config(**convert_keys(data))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}; using default configuration")

    return Config()


def validate_config(config: Config) -> None:
    """
    检查启动机器人所必需的配置项。

    异常:
        ConfigError: Token 缺失，或连接模式、频道策略取值不受支持
    """
    if not config.slack.bot_token or not config.slack.app_token:
        raise ConfigError("Slack bot token and app token are required")
    if config.slack.mode != "socket":
        raise ConfigError(f"Unsupported Slack mode: {config.slack.mode!r} (only \"socket\" is supported)")
    if config.slack.group_policy not in ("mention", "allowlist"):
        raise ConfigError(f"Unknown group policy: {config.slack.group_policy!r}")


def save_config(config: Config, config_path: Path | None = None) -> None:
    """将配置对象以 camelCase 键名保存为 JSON 文件。"""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump())
    with open(path, "w") as f:
        json.dump(data, f, indent=2)


def convert_keys(data: Any) -> Any:
    """
    递归地将字典中所有 camelCase 键名转换为 snake_case。

    示例: {"botToken": "xoxb"} → {"bot_token": "xoxb"}
    """
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """递归地将字典中所有 snake_case 键名转换为 camelCase。"""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """例: "maxTurns" → "max_turns"。遇到大写字母时在其前面插入下划线。"""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """例: "max_turns" → "maxTurns"。"""
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
