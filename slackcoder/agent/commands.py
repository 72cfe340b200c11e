"""
频道命令模块 - 处理以 "/" 开头的消息。

命令必须以 @机器人 的方式发送（例如 "@slackcoder /new-session"），
而不是 Slack 内置的斜杠命令。

- /help：显示帮助
- /new-session：开启新会话（清空 Agent 的对话上下文和任务计划）
- 其他：提示未知命令
"""

from loguru import logger

from slackcoder.bus.events import OutboundMessage
from slackcoder.bus.queue import MessageBus
from slackcoder.channels.progress import ProgressTracker
from slackcoder.errors import AgentBusyError, AgentNotFoundError
from slackcoder.session.registry import SessionRegistry

HELP_TEXT = """📚 *Available Commands*

`/help` - Show this help message
`/new-session` - Start a fresh conversation (clears context)

*Examples:*
• Type `/new-session` to start over with a clean slate
• Type `/help` anytime to see available commands

*Note:* Commands must be sent as a message to the bot (mention me), not as Slack's built-in slash commands."""

NO_AGENT_TEXT = (
    "⚠️  *No agent configured for this channel.*\n\n"
    "Please mention me with a repository name to set up first."
)

NEW_SESSION_BUSY_TEXT = (
    "⏳ *Agent is currently processing another request*\n\n"
    "A new session can only be started once the current task has finished. "
    "Please try again in a moment."
)


def new_session_text(session_id: str) -> str:
    return f"""🔄 *New Session Started*

Session ID: `{session_id}`

Your conversation context has been cleared. You can now start fresh!

*What does this mean?*
• Previous conversation history is no longer accessible
• The bot won't remember earlier discussions in this channel
• Great for switching to a completely different task

Type `/help` for more commands."""


def unknown_command_text(command: str) -> str:
    return f"❓ Unknown command: `{command}`\n\nType `/help` for available commands."


class CommandHandler:
    """
    命令处理器。

    参数:
        registry: 会话注册表
        bus: 消息总线（回复通过出站队列发送）
        progress: 进度跟踪器（新会话时清除实时进度消息引用）
        lock_timeout: /new-session 获取会话锁的超时
    """

    def __init__(
        self,
        registry: SessionRegistry,
        bus: MessageBus,
        progress: ProgressTracker | None = None,
        lock_timeout: float = 3.0,
    ):
        self.registry = registry
        self.bus = bus
        self.progress = progress
        self.lock_timeout = lock_timeout

    async def _reply(self, channel_id: str, text: str, thread_ts: str | None) -> None:
        await self.bus.publish_outbound(OutboundMessage(
            channel="slack",
            chat_id=channel_id,
            content=text,
            thread_ts=thread_ts,
        ))

    async def handle(self, channel_id: str, command: str, thread_ts: str | None = None) -> None:
        name = command.strip().split()[0] if command.strip() else ""
        logger.info(f"Handling command {name!r} in {channel_id}")

        if name == "/help":
            await self._reply(channel_id, HELP_TEXT, thread_ts)
        elif name == "/new-session":
            await self._new_session(channel_id, thread_ts)
        else:
            logger.warning(f"Unknown command {command.strip()!r} in {channel_id}")
            await self._reply(channel_id, unknown_command_text(command.strip()), thread_ts)

    async def _new_session(self, channel_id: str, thread_ts: str | None) -> None:
        try:
            handle = self.registry.get(channel_id)
            async with handle.exclusive(self.lock_timeout):
                old_session = handle.session_id
                new_session = handle.start_new_session()
                if self.progress is not None:
                    self.progress.clear(channel_id)
        except AgentNotFoundError:
            logger.warning(f"No agent found in {channel_id} for /new-session")
            await self._reply(channel_id, NO_AGENT_TEXT, thread_ts)
            return
        except AgentBusyError:
            logger.warning(f"Agent busy in {channel_id}, /new-session rejected")
            await self._reply(channel_id, NEW_SESSION_BUSY_TEXT, thread_ts)
            return

        logger.info(f"New session in {channel_id}: {old_session} -> {new_session}")
        await self._reply(channel_id, new_session_text(new_session), thread_ts)
