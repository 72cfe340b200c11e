"""
会话 ID 生成模块。

会话 ID 格式：session-{channel_id}-{unix 时间戳}-{6 位随机串}
示例：session-C09NNKZ8SPP-1761520471-a3f9b2

每次开启新会话（包括 /new-session 命令）都会生成新的 ID，
Claude Agent 按该 ID 区分对话上下文。随机部分取自 uuid4，
碰撞概率可以忽略，但并不具备密码学意义上的唯一性保证。
"""

import time
import uuid


def generate_session_id(channel_id: str) -> str:
    """为指定频道生成一个新的会话 ID。"""
    timestamp = int(time.time())
    random = uuid.uuid4().hex[:6]
    return f"session-{channel_id}-{timestamp}-{random}"
