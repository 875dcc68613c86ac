"""Tests for outbound channels and message routing."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest

from remindbot.channels.base import RoutingMessenger, channel_for_user
from remindbot.channels.telegram_polling import TelegramMessenger, telegram_user_id
from remindbot.channels.whatsapp_bridge import BridgeMessenger, incoming_from_webhook
from remindbot.datamodel import ChannelType


def bridge_with(handler) -> BridgeMessenger:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return BridgeMessenger("http://bridge.local/", client=client)


class TestBridgeMessenger:
    """HTTP calls to the WhatsApp bridge."""

    @pytest.mark.asyncio
    async def test_posts_send_payload(self) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"status": "sent"})

        messenger = bridge_with(handler)
        assert await messenger.deliver("628123@c.us", "🔔 Reminder: stretch") is True
        await messenger.client.aclose()

        assert str(requests[0].url) == "http://bridge.local/send"
        assert json.loads(requests[0].content) == {"userId": "628123@c.us", "message": "🔔 Reminder: stretch"}

    @pytest.mark.asyncio
    async def test_error_status_is_failure(self) -> None:
        messenger = bridge_with(lambda request: httpx.Response(500, text="client not ready"))
        assert await messenger.deliver("628123@c.us", "hi") is False
        await messenger.client.aclose()

    @pytest.mark.asyncio
    async def test_connection_error_is_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        messenger = bridge_with(handler)
        assert await messenger.deliver("628123@c.us", "hi") is False
        await messenger.client.aclose()

    @pytest.mark.asyncio
    async def test_aclose_leaves_injected_client_open(self) -> None:
        messenger = bridge_with(lambda request: httpx.Response(200))
        await messenger.aclose()
        assert not messenger.client.is_closed
        await messenger.client.aclose()


def test_incoming_from_webhook_owner_filter() -> None:
    assert incoming_from_webhook("628123@c.us", "hi", owner_id="628999@c.us") is None

    msg = incoming_from_webhook("628999@c.us", "hi", owner_id="628999@c.us")
    assert msg.user_id == "628999@c.us"
    assert msg.channel_type == ChannelType.WHATSAPP_BRIDGE


class TestTelegramMessenger:
    """Delivery through the Telegram bot API."""

    @pytest.mark.asyncio
    async def test_sends_to_chat_id(self) -> None:
        bot = SimpleNamespace(initialize=AsyncMock(), send_message=AsyncMock())
        messenger = TelegramMessenger(bot, retry_delay=0.0)

        assert await messenger.deliver(telegram_user_id(42), "hello") is True
        bot.send_message.assert_awaited_once_with(chat_id=42, text="hello")

    @pytest.mark.asyncio
    async def test_retries_once_then_gives_up(self) -> None:
        bot = SimpleNamespace(initialize=AsyncMock(), send_message=AsyncMock(side_effect=RuntimeError("flood")))
        messenger = TelegramMessenger(bot, retry_delay=0.0)

        assert await messenger.deliver("tg:42", "hello") is False
        assert bot.send_message.await_count == 2

    @pytest.mark.asyncio
    async def test_rejects_foreign_user_id(self) -> None:
        bot = SimpleNamespace(initialize=AsyncMock(), send_message=AsyncMock())
        messenger = TelegramMessenger(bot, retry_delay=0.0)

        assert await messenger.deliver("628123@c.us", "hello") is False
        bot.send_message.assert_not_awaited()


class TestRouting:
    """user_id namespace -> channel."""

    def test_channel_for_user(self) -> None:
        assert channel_for_user("tg:42") == ChannelType.TELEGRAM_BOT_POLLING
        assert channel_for_user("628123@c.us") == ChannelType.WHATSAPP_BRIDGE

    @pytest.mark.asyncio
    async def test_routes_by_prefix(self, messenger) -> None:
        router = RoutingMessenger({ChannelType.TELEGRAM_BOT_POLLING: messenger})

        assert await router.deliver("tg:42", "hi") is True
        assert messenger.sent == [("tg:42", "hi")]

    @pytest.mark.asyncio
    async def test_disabled_channel_is_failure(self, messenger) -> None:
        router = RoutingMessenger({ChannelType.TELEGRAM_BOT_POLLING: messenger})
        assert await router.deliver("628123@c.us", "hi") is False
