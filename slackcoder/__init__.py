"""
slackcoder - 把 Slack 频道绑定到独占 Claude Agent 会话的编程机器人

模块概述：
    本文件是 slackcoder 包的入口文件（__init__.py），定义了包的元信息。

    整个项目的核心功能包括：
    - 每个 Slack 频道绑定一个长期存活的 Claude Agent 会话（会话注册表）
    - 同一会话同一时刻最多只有一个请求在执行（独占锁 + 超时）
    - 把 Agent 的 TodoWrite 任务列表实时渲染成频道里的进度消息
    - 对 Slack 重发的事件进行去重
    - 定时清理空闲会话和过期的去重记录
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出
__logo__ = "🤖"
