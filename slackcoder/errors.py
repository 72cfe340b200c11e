"""
异常类型定义模块 - slackcoder 全局统一的错误体系。

所有业务异常都继承自 SlackCoderError，调用方可以按需捕获具体子类，
也可以直接捕获基类做兜底处理。

错误的作用域约定：
- 所有失败都只影响单个频道（channel）或单个请求，没有任何错误会让注册表整体失效
- AgentNotFoundError / AgentBusyError 直接反馈给调用方，从不自动重试
- DisconnectError 只在移除/关闭会话时产生，仅记录日志，不向上抛出

【Java 开发者类比】
- SlackCoderError 类似于自定义的 RuntimeException 基类
- 各个子类类似于业务异常（如 EntityNotFoundException、LockTimeoutException）
"""


class SlackCoderError(Exception):
    """slackcoder 所有异常的基类。"""


class AgentNotFoundError(SlackCoderError):
    """频道没有对应的会话句柄（NotFound）。"""

    def __init__(self, channel_id: str):
        super().__init__(f"No agent found for channel {channel_id}")
        self.channel_id = channel_id


class AgentBusyError(SlackCoderError):
    """在超时时间内无法获取会话的独占锁（Busy），请求不会排队。"""

    def __init__(self, channel_id: str, timeout: float):
        super().__init__(f"Agent for channel {channel_id} is busy (lock timeout {timeout}s)")
        self.channel_id = channel_id
        self.timeout = timeout


class SetupFailedError(SlackCoderError):
    """频道初始化（校验/克隆/生成系统提示词）失败，不会注册任何会话。"""


class AgentError(SlackCoderError):
    """Claude Agent 客户端在查询或流式响应过程中出错，只终止当前请求。"""


class DisconnectError(SlackCoderError):
    """断开 Agent 客户端连接失败（尽力而为，只记录日志）。"""


class SlackApiError(SlackCoderError):
    """Slack Web API 调用失败。"""


class ConfigError(SlackCoderError):
    """配置缺失或无效。"""
