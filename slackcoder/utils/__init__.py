"""
工具函数模块 - 提供 slackcoder 项目全局通用的辅助函数。

本模块包含：
- ensure_dir：确保目录存在
- split_message：超长消息切分
- acquire_with_timeout：带超时的 try-lock
"""

from slackcoder.utils.helpers import acquire_with_timeout, ensure_dir, split_message

__all__ = ["ensure_dir", "split_message", "acquire_with_timeout"]
