"""
Agent 消息处理循环模块 - 消费入站消息、路由并转发给频道会话。

AgentLoop 持有一个固定大小的工作协程池（agent.max_concurrent_requests），
每个工作协程从消息总线的入站队列取消息并处理。Slack 事件回调只负责入队，
所以无论 Agent 处理多久，都不会影响 Slack 的 ACK 期限。

【消息路由】
1. kind=join：频道还没有会话时，发送配置引导
2. 以 "/" 开头：交给 CommandHandler
3. 只有一个词且包含 "/"（形如 owner/repo）：执行频道初始化
4. 频道未配置：提示用户先配置仓库
5. 其他：转发给频道的会话句柄

【转发流程】
- 回复线程：消息本身在线程中则沿用，否则以该消息开启线程
- 会话正忙（锁超时）→ 在线程里回复"正忙"提示，不排队
- Agent 出错 → 在线程里回复道歉信息，会话保持可用
- 成功 → 最终结果 + 用量统计，超长时按 39000 字符分段发送
- 请求结束后清除该频道的实时进度消息引用

【Java 开发者类比】
- 工作协程池类似于固定大小的 ExecutorService 消费 BlockingQueue
- stop() 类似于 executor.shutdown()：不再取新消息，正在处理的消息继续完成
"""

import asyncio

from claude_agent_sdk import AssistantMessage, ResultMessage, TextBlock
from loguru import logger

from slackcoder.agent.commands import HELP_TEXT, CommandHandler
from slackcoder.agent.metrics import UsageMetrics
from slackcoder.agent.plan import format_plan_summary
from slackcoder.agent.setup import parse_repo_name
from slackcoder.bus.events import KIND_JOIN, InboundMessage, OutboundMessage
from slackcoder.bus.queue import MessageBus
from slackcoder.channels.metadata import MetadataCache
from slackcoder.channels.progress import ProgressTracker
from slackcoder.errors import AgentBusyError, AgentError, AgentNotFoundError, SetupFailedError
from slackcoder.session.registry import SessionRegistry
from slackcoder.utils.helpers import split_message, truncate_string

# Slack 单条消息上限约 40KB，留出余量
MAX_SLACK_MESSAGE_SIZE = 39000

SETUP_INSTRUCTIONS_TEXT = """Welcome to Slack Coder Bot! 👋

To get started, please provide your GitHub repository in the format: `owner/repo-name`

For example: `tyrchen/rust-lib-template`

Mention me with your repository name to begin setup."""

NOT_CONFIGURED_TEXT = (
    "*This channel is not configured yet.*\n\n"
    "Please mention me with a repository name in the format `owner/repo-name` to get started.\n\n"
    "*Example:*\n```\n@slackcoder tyrchen/rust-lib-template\n```"
)

BUSY_TEXT = (
    "⏳ *Agent is currently processing another request*\n\n"
    "Your message has been received, but the agent is busy with a previous task. "
    "Please wait for the current task to complete and try again in a moment.\n\n"
    "*Tip*: Long-running tasks (like comprehensive code analysis or documentation) "
    "can take several minutes. You can check the latest progress update above."
)


def agent_error_text(error: Exception) -> str:
    return (
        "❌ *Sorry, the agent ran into an error while handling your request.*\n\n"
        f"`{error}`\n\nThe session is still available, please try again."
    )


def setup_started_text(repo: str) -> str:
    return f"Setting up repository `{repo}`...\nThis may take a minute."


def setup_ready_text(repo: str) -> str:
    return (
        f"✅ Repository `{repo}` is now ready!\n\n"
        "You can now ask me to generate code, write documentation, or use commands like `/help`."
    )


def build_reply_chunks(text: str, max_len: int = MAX_SLACK_MESSAGE_SIZE) -> list[str]:
    """把回复切分为若干段，第二段起带 "*(continued i/n)*" 前缀。"""
    chunks = split_message(text, max_len)
    if len(chunks) == 1:
        return chunks
    total = len(chunks)
    return [
        chunk if i == 0 else f"*(continued {i + 1}/{total})*\n\n{chunk}"
        for i, chunk in enumerate(chunks)
    ]


def is_repo_name(text: str) -> bool:
    """单个词且包含 "/" 时视为仓库名（owner/repo）。"""
    return "/" in text and len(text.split()) == 1


class AgentLoop:
    """
    入站消息处理循环。

    参数:
        bus: 消息总线
        registry: 会话注册表
        progress: 进度跟踪器
        metadata: 元数据缓存（仅用于日志），可为 None
        max_concurrent_requests: 工作协程数量
        lock_timeout: 获取会话锁的超时
    """

    def __init__(
        self,
        bus: MessageBus,
        registry: SessionRegistry,
        progress: ProgressTracker | None = None,
        metadata: MetadataCache | None = None,
        max_concurrent_requests: int = 10,
        lock_timeout: float = 3.0,
    ):
        self.bus = bus
        self.registry = registry
        self.progress = progress
        self.metadata = metadata
        self.max_concurrent_requests = max(1, max_concurrent_requests)
        self.lock_timeout = lock_timeout
        self.commands = CommandHandler(registry, bus, progress, lock_timeout)
        self._running = False
        self._workers: list[asyncio.Task] = []

    async def run(self) -> None:
        """启动工作协程池，直到 stop() 后所有工作协程处理完手头的消息。"""
        self._running = True
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"agent-worker-{i}")
            for i in range(self.max_concurrent_requests)
        ]
        logger.info(f"Agent loop started with {len(self._workers)} workers")
        try:
            await asyncio.gather(*self._workers)
        finally:
            self._workers = []
            logger.info("Agent loop stopped")

    def stop(self) -> None:
        """停止取新消息；正在处理的消息会继续完成。"""
        self._running = False
        logger.info("Agent loop stopping")

    async def _worker(self, index: int) -> None:
        while self._running:
            try:
                msg = await asyncio.wait_for(self.bus.consume_inbound(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            try:
                await self.process_message(msg)
            except Exception as e:
                logger.error(f"Worker {index} failed processing message in {msg.chat_id}: {e}")

    async def _reply(self, channel_id: str, text: str, thread_ts: str | None = None) -> None:
        await self.bus.publish_outbound(OutboundMessage(
            channel="slack",
            chat_id=channel_id,
            content=text,
            thread_ts=thread_ts,
        ))

    async def process_message(self, msg: InboundMessage) -> None:
        """按消息类型和内容路由一条入站消息。"""
        channel_id = msg.chat_id
        text = msg.content.strip()

        if self.metadata is not None:
            ctx = await self.metadata.log_context(channel_id, msg.sender_id)
            logger.info(f"{msg.kind} from {ctx.user_display} in {ctx.channel_display}: \"{truncate_string(text, 150)}\"")
        else:
            logger.info(f"{msg.kind} from {msg.sender_id} in {channel_id}: \"{truncate_string(text, 150)}\"")

        if msg.kind == KIND_JOIN:
            if self.registry.has(channel_id):
                logger.info(f"Joined already configured channel {channel_id}")
            else:
                await self._reply(channel_id, SETUP_INSTRUCTIONS_TEXT)
            return

        if text.startswith("/"):
            await self.commands.handle(channel_id, text, msg.thread_ts)
        elif is_repo_name(text):
            await self.setup_channel(channel_id, text, msg.thread_ts)
        elif not self.registry.has(channel_id):
            await self._reply(channel_id, NOT_CONFIGURED_TEXT, msg.thread_ts)
        elif not text:
            await self._reply(channel_id, HELP_TEXT, msg.reply_thread)
        else:
            await self.forward(msg)

    async def setup_channel(self, channel_id: str, repo_name: str, thread_ts: str | None = None) -> bool:
        """初始化频道，返回是否成功。失败原因会回复到频道。"""
        try:
            parse_repo_name(repo_name)
        except SetupFailedError as e:
            await self._reply(channel_id, f"Setup failed: {e}", thread_ts)
            return False

        await self._reply(channel_id, setup_started_text(repo_name))
        try:
            await self.registry.setup(channel_id, repo_name)
        except SetupFailedError as e:
            logger.error(f"Setup failed for {channel_id} ({repo_name}): {e}")
            await self._reply(channel_id, f"Setup failed: {e}", thread_ts)
            return False

        await self._reply(channel_id, setup_ready_text(repo_name))
        return True

    async def forward(self, msg: InboundMessage) -> None:
        """把消息转发给频道的会话，并把结果回复到线程里。"""
        channel_id = msg.chat_id
        thread_ts = msg.reply_thread

        try:
            handle = self.registry.get(channel_id)
            async with handle.query(msg.content.strip(), self.lock_timeout) as stream:
                try:
                    result, fallback = await self._drain(stream)
                    if handle.plan.total_count:
                        logger.debug(f"Plan for {channel_id} after request:\n{format_plan_summary(handle.plan)}")
                finally:
                    if self.progress is not None:
                        self.progress.clear(channel_id)
        except AgentBusyError:
            logger.warning(f"Agent busy in {channel_id}, request rejected")
            await self._reply(channel_id, BUSY_TEXT, thread_ts)
            return
        except AgentNotFoundError:
            await self._reply(channel_id, NOT_CONFIGURED_TEXT, thread_ts)
            return
        except AgentError as e:
            logger.error(f"Agent error in {channel_id}: {e}")
            await self._reply(channel_id, agent_error_text(e), thread_ts)
            return

        if result is not None and result.is_error:
            logger.error(f"Agent returned an error result in {channel_id}: {result.subtype}")
            await self._reply(channel_id, agent_error_text(AgentError(result.result or result.subtype)), thread_ts)
            return

        final_text = (result.result if result is not None else None) or fallback
        if not final_text:
            logger.warning(f"No response received from agent in {channel_id}")
            return

        if result is not None:
            metrics = UsageMetrics.from_result(result)
            final_text += metrics.format_footer()
            logger.debug(f"Reply in {channel_id}: {metrics.total_tokens} tokens, {metrics.num_turns} turns")

        for chunk in build_reply_chunks(final_text):
            await self._reply(channel_id, chunk, thread_ts)

    async def _drain(self, stream) -> tuple[ResultMessage | None, str]:
        """消费响应流直到 ResultMessage；同时收集助手文本作为兜底回复。"""
        texts: list[str] = []
        async for message in stream:
            if isinstance(message, ResultMessage):
                return message, "\n".join(texts)
            if isinstance(message, AssistantMessage):
                for block in message.content:
                    if isinstance(block, TextBlock):
                        texts.append(block.text)
        return None, "\n".join(texts)
