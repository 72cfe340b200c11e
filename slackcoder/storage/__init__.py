"""持久化模块 - 频道工作区（仓库克隆与系统提示词）的磁盘布局。"""

from slackcoder.storage.workspace import Workspace

__all__ = ["Workspace"]
