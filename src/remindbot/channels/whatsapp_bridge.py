"""WhatsApp 网关通道

网关 (whatsapp-web.js bridge) 负责收发 WhatsApp 消息:
- 入站: 网关把 {"userId", "messageText"} POST 到本服务的 /webhook/whatsapp；
- 出站: 本服务把 {"userId", "message"} POST 到 {BRIDGE_API_URL}/send。
"""

from __future__ import annotations

from typing import Optional

import httpx

from remindbot.channels.base import Messenger
from remindbot.datamodel import ChannelType, IncomingMessage
from remindbot.logger import logger
from remindbot.utils import now_utc

__all__ = ["BridgeMessenger", "incoming_from_webhook"]


class BridgeMessenger(Messenger):
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def deliver(self, user_id: str, text: str) -> bool:
        if not self.base_url:
            logger.error("BRIDGE_API_URL 未配置, 无法发送 WhatsApp 消息")
            return False

        logger.info(f"通过网关发送消息给用户 {user_id}: {text!r}")
        try:
            response = await self.client.post(f"{self.base_url}/send", json={"userId": user_id, "message": text})
        except httpx.HTTPError as e:
            logger.opt(exception=e).error(f"调用 WhatsApp 网关失败: user_id={user_id}, error={e}")
            return False

        if response.is_error:
            logger.error(f"WhatsApp 网关返回错误 ({response.status_code}): {response.text}")
            return False

        logger.debug(f"WhatsApp 网关发送成功: user_id={user_id}")
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


def incoming_from_webhook(
    user_id: str,
    message_text: str,
    owner_id: str = "",
) -> Optional[IncomingMessage]:
    """把网关的 webhook 载荷转换为 IncomingMessage

    配置了 owner_id 时只接受该用户的消息，其余返回 None。
    """
    if owner_id and user_id != owner_id:
        logger.info(f"忽略非机主的 WhatsApp 消息: user_id={user_id}")
        return None
    return IncomingMessage(
        channel_type=ChannelType.WHATSAPP_BRIDGE,
        user_id=user_id,
        content=message_text,
        timestamp=now_utc(),
    )
