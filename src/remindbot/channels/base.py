from abc import ABC, abstractmethod
from typing import Dict, Optional

from remindbot.datamodel import ChannelType
from remindbot.logger import logger

__all__ = ["Messenger", "RoutingMessenger", "TELEGRAM_USER_PREFIX", "channel_for_user"]

# Telegram 用户在系统内的 user_id 形如 "tg:123456"，其余视为 WhatsApp ID (例如 "6281234567890@c.us")
TELEGRAM_USER_PREFIX = "tg:"


def channel_for_user(user_id: str) -> ChannelType:
    if user_id.startswith(TELEGRAM_USER_PREFIX):
        return ChannelType.TELEGRAM_BOT_POLLING
    return ChannelType.WHATSAPP_BRIDGE


class Messenger(ABC):
    """向用户投递一段文字

    通道层面的失败 (网络错误、对端拒绝等) 以 False 返回，而不是抛异常。
    """

    @abstractmethod
    async def deliver(self, user_id: str, text: str) -> bool:
        pass


class RoutingMessenger(Messenger):
    """按 user_id 的命名空间把消息路由到对应通道"""

    def __init__(self, channels: Optional[Dict[ChannelType, Messenger]] = None) -> None:
        self.channels: Dict[ChannelType, Messenger] = dict(channels or {})

    def register(self, channel_type: ChannelType, messenger: Messenger) -> None:
        self.channels[channel_type] = messenger

    async def deliver(self, user_id: str, text: str) -> bool:
        channel_type = channel_for_user(user_id)
        messenger = self.channels.get(channel_type)
        if messenger is None:
            logger.error(f"消息发送失败: 用户 {user_id} 对应的通道 {channel_type.value} 未启用")
            return False
        return await messenger.deliver(user_id, text)
