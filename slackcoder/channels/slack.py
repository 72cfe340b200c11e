"""
Slack 渠道实现模块 - 基于 Socket Mode 的事件接收与 Web API 消息发送。

【Socket Mode 简述】
通过 WebSocket 接收 Slack 事件，无需公网 IP 和 HTTP 端点。
Slack 要求每个事件信封在 3 秒内 ACK，否则会重发。因此事件回调只做：
1. 立即 ACK
2. 过滤无关事件（机器人消息、自身消息、编辑、其他事件类型）
3. 去重（频道 + 事件原始 ts）
4. 构造 InboundMessage 发布到消息总线

真正耗时的 Agent 调用由 AgentLoop 的工作协程完成，回调从不等待 Agent。

【处理的事件】
- app_mention：用户 @机器人 → kind=mention
- message/channel_join 且加入者是机器人自身 → kind=join（提示用户配置仓库）

【Slack 的两个 Token】
- Bot Token (xoxb-...)：发送消息、调用 Web API
- App Token (xapp-...)：建立 Socket Mode 连接

【Java 开发者类比】
- SocketModeClient 类似于 WebSocketStompClient
- AsyncWebClient 类似于 WebClient（用于调用 REST API）
"""

import asyncio
import re
from typing import Any

from loguru import logger
from slack_sdk.socket_mode.request import SocketModeRequest
from slack_sdk.socket_mode.response import SocketModeResponse
from slack_sdk.socket_mode.websockets import SocketModeClient
from slack_sdk.web.async_client import AsyncWebClient

from slackcoder.bus.events import KIND_JOIN, KIND_MENTION
from slackcoder.bus.queue import MessageBus
from slackcoder.channels.base import BaseChannel
from slackcoder.channels.dedup import DedupResult, EventDeduplicator, event_key
from slackcoder.config.schema import SlackConfig
from slackcoder.errors import SlackApiError

_MENTION_RE = re.compile(r"<@[^>]+>")


class SlackChannel(BaseChannel):
    """
    Slack 渠道。

    属性:
        config: Slack 配置
        dedup: 事件去重缓存（与定时清理任务共享）
        _web_client: Web API 异步客户端
        _socket_client: Socket Mode 客户端
        _bot_user_id: 机器人自身的用户 ID
    """

    name = "slack"

    def __init__(
        self,
        config: SlackConfig,
        bus: MessageBus,
        dedup: EventDeduplicator | None = None,
        web_client: AsyncWebClient | None = None,
    ):
        super().__init__(config, bus)
        self.config: SlackConfig = config
        self.dedup = dedup or EventDeduplicator()
        self._web_client: AsyncWebClient | None = web_client
        self._socket_client: SocketModeClient | None = None
        self._bot_user_id: str | None = None

    @property
    def web_client(self) -> AsyncWebClient:
        if self._web_client is None:
            self._web_client = AsyncWebClient(token=self.config.bot_token)
        return self._web_client

    @property
    def bot_user_id(self) -> str | None:
        return self._bot_user_id

    async def authenticate(self) -> str | None:
        """通过 auth_test 获取机器人自身的用户 ID。"""
        try:
            auth = await self.web_client.auth_test()
            self._bot_user_id = auth.get("user_id")
            logger.info(f"Slack bot authenticated as {self._bot_user_id}")
        except Exception as e:
            logger.warning(f"Slack auth_test failed: {e}")
        return self._bot_user_id

    async def start(self) -> None:
        """建立 Socket Mode 连接并保持运行，直到 stop() 被调用。"""
        if not self.config.bot_token or not self.config.app_token:
            logger.error("Slack bot/app token not configured")
            return
        if self.config.mode != "socket":
            logger.error(f"Unsupported Slack mode: {self.config.mode}")
            return

        self._running = True
        self._socket_client = SocketModeClient(
            app_token=self.config.app_token,
            web_client=self.web_client,
        )
        self._socket_client.socket_mode_request_listeners.append(self._on_socket_request)

        if self._bot_user_id is None:
            await self.authenticate()

        logger.info("Starting Slack Socket Mode client...")
        await self._socket_client.connect()

        while self._running:
            await asyncio.sleep(1)

    async def stop(self) -> None:
        """关闭 WebSocket 连接。"""
        self._running = False
        if self._socket_client:
            try:
                await self._socket_client.close()
            except Exception as e:
                logger.warning(f"Slack socket close failed: {e}")
            self._socket_client = None

    # ------------------------------------------------------------------
    # 事件接收
    # ------------------------------------------------------------------

    async def _on_socket_request(self, client: SocketModeClient, req: SocketModeRequest) -> None:
        """Socket Mode 事件入口：先 ACK，再交给 handle_event。"""
        await client.send_socket_mode_response(SocketModeResponse(envelope_id=req.envelope_id))
        if req.type != "events_api":
            return
        payload = req.payload or {}
        await self.handle_event(payload.get("event") or {})

    async def handle_event(self, event: dict[str, Any]) -> bool:
        """
        过滤、去重并发布一个 Slack 事件。

        返回:
            True 表示事件已发布到消息总线
        """
        event_type = event.get("type")
        chat_id = event.get("channel")
        ts = event.get("ts")
        if not chat_id or not ts:
            return False

        if event_type == "app_mention":
            kind = KIND_MENTION
            if event.get("bot_id") or event.get("subtype"):
                return False
            if self._bot_user_id and event.get("user") == self._bot_user_id:
                return False
        elif event_type == "message" and event.get("subtype") == "channel_join":
            if not self._bot_user_id or event.get("user") != self._bot_user_id:
                return False
            kind = KIND_JOIN
        else:
            return False

        if self.config.group_policy == "allowlist" and chat_id not in self.config.group_allow_from:
            logger.debug(f"Ignoring event from non-allowlisted channel {chat_id}")
            return False

        key = event_key(chat_id, ts)
        if self.dedup.check_and_mark(key) is DedupResult.ALREADY_PROCESSED:
            logger.debug(f"Duplicate event {key}, skipping")
            return False

        text = self._strip_bot_mention(event.get("text") or "")
        logger.debug(
            "Slack event: type={} kind={} user={} channel={} ts={} text={}",
            event_type, kind, event.get("user"), chat_id, ts, text[:80],
        )

        await self._handle_message(
            sender_id=event.get("user") or "",
            chat_id=chat_id,
            content=text,
            kind=kind,
            ts=ts,
            thread_ts=event.get("thread_ts"),
            metadata={"slack": {"event": event}},
        )
        return True

    def _strip_bot_mention(self, text: str) -> str:
        """去除文本中的 <@USER_ID> 提及标记。"""
        if not text:
            return text
        return " ".join(_MENTION_RE.sub(" ", text).split())

    # ------------------------------------------------------------------
    # Web API
    # ------------------------------------------------------------------

    async def send_message(self, channel: str, text: str, thread_ts: str | None = None) -> str:
        try:
            resp = await self.web_client.chat_postMessage(
                channel=channel,
                text=text,
                thread_ts=thread_ts,
            )
        except Exception as e:
            raise SlackApiError(f"chat.postMessage to {channel} failed: {e}") from e
        return resp.get("ts") or ""

    async def edit_message(self, channel: str, ts: str, text: str) -> None:
        try:
            await self.web_client.chat_update(channel=channel, ts=ts, text=text)
        except Exception as e:
            raise SlackApiError(f"chat.update in {channel} failed: {e}") from e

    async def list_channels(self) -> list[str]:
        """列出机器人已加入的公开/私有频道（自动翻页）。"""
        channels: list[str] = []
        cursor = None
        while True:
            try:
                resp = await self.web_client.conversations_list(
                    types="public_channel,private_channel",
                    exclude_archived=True,
                    limit=200,
                    cursor=cursor,
                )
            except Exception as e:
                raise SlackApiError(f"conversations.list failed: {e}") from e
            for ch in resp.get("channels") or []:
                if ch.get("is_member"):
                    channels.append(ch["id"])
            cursor = (resp.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                break
        logger.info(f"Found {len(channels)} channels where bot is a member")
        return channels

    async def channel_info(self, channel_id: str) -> dict[str, Any]:
        try:
            resp = await self.web_client.conversations_info(channel=channel_id)
        except Exception as e:
            raise SlackApiError(f"conversations.info for {channel_id} failed: {e}") from e
        return resp.get("channel") or {}

    async def user_info(self, user_id: str) -> dict[str, Any]:
        try:
            resp = await self.web_client.users_info(user=user_id)
        except Exception as e:
            raise SlackApiError(f"users.info for {user_id} failed: {e}") from e
        return resp.get("user") or {}

    async def send_shutdown_notice(self, channel: str, session_id: str) -> str:
        return await self.send_message(channel, f"🔴 *Agent Gone*\n\nSession ID: `{session_id}` ended")
