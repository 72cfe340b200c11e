"""
工具函数集合 - slackcoder 项目全局通用的辅助函数。

函数分类：
- 路径管理：ensure_dir
- 字符串工具：truncate_string, safe_filename, split_message
- 时间工具：format_duration
- 并发工具：acquire_with_timeout
"""

import asyncio
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """
    确保目录存在，不存在则递归创建。

    参数:
        path: 目标目录路径

    返回:
        创建后的目录路径（原样返回）
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """
    截断字符串到指定最大长度，超出时添加后缀。

    参数:
        s: 原始字符串
        max_len: 最大长度（不含后缀），默认 100
        suffix: 截断后缀，默认 "..."

    返回:
        截断后的字符串
    """
    if len(s) <= max_len:
        return s
    return s[:max_len] + suffix


def safe_filename(name: str) -> str:
    """
    将字符串转换为安全的文件名（移除/替换不安全字符）。

    频道 ID 会被直接用作目录名，这里统一做一次清洗。
    """
    unsafe = '<>:"/\\|?*'
    for char in unsafe:
        name = name.replace(char, "_")
    return name.strip()


def split_message(text: str, max_len: int) -> list[str]:
    """
    将超长文本按最大长度切分为多段。

    Slack 单条消息有约 40KB 的上限，超长回复需要拆分发送。
    优先在换行处切分，找不到换行时硬切。

    参数:
        text: 原始文本
        max_len: 每段最大字符数

    返回:
        切分后的文本列表（至少包含一段）
    """
    if max_len <= 0:
        raise ValueError("max_len must be positive")
    if len(text) <= max_len:
        return [text]

    chunks = []
    rest = text
    while len(rest) > max_len:
        cut = rest.rfind("\n", 0, max_len)
        if cut <= 0:
            cut = max_len
        chunks.append(rest[:cut])
        rest = rest[cut:].lstrip("\n")
    if rest:
        chunks.append(rest)
    return chunks


def format_duration(seconds: float) -> str:
    """
    将秒数格式化为简短的可读文本。

    例: 42 → "42s", 150 → "2m", 7300 → "2h"; 小于 10 秒时保留一位小数。
    """
    if seconds < 10:
        return f"{seconds:.1f}s"
    secs = int(seconds)
    if secs < 60:
        return f"{secs}s"
    if secs < 3600:
        return f"{secs // 60}m"
    return f"{secs // 3600}h"


async def acquire_with_timeout(lock: asyncio.Lock, timeout: float) -> bool:
    """
    带超时地获取 asyncio 锁（try-lock 语义）。

    超时后返回 False 而不是一直阻塞，调用方据此决定是否放弃。
    锁空闲时在调用方自己的任务里直接拿到锁，中间不会让出事件循环。
    获取成功后由调用方负责 release()。

    参数:
        lock: 要获取的锁
        timeout: 最长等待秒数

    返回:
        True 表示已持有锁，False 表示超时
    """
    try:
        async with asyncio.timeout(timeout):
            await lock.acquire()
        return True
    except TimeoutError:
        return False
