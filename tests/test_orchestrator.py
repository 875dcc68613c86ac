"""Tests for the fire-and-acknowledge message pipeline."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import NOW
from remindbot.core.orchestrator import ReminderBot
from remindbot.datamodel import ChannelType, IncomingMessage, ListReminders, UnknownIntent
from remindbot.events import Bus, E
from remindbot.metrics import RuntimeMetrics


def message(text: str = "show my reminders", user_id: str = "u1") -> IncomingMessage:
    return IncomingMessage(channel_type=ChannelType.WHATSAPP_BRIDGE, user_id=user_id, content=text)


@pytest.fixture
def metrics() -> RuntimeMetrics:
    return RuntimeMetrics()


@pytest.fixture
def classifier() -> AsyncMock:
    classifier = AsyncMock()
    classifier.classify.return_value = ListReminders()
    return classifier


@pytest.fixture
def bot(classifier, engine, metrics) -> ReminderBot:
    return ReminderBot(classifier, engine, timezone="UTC", clock=lambda: NOW, metrics=metrics)


class TestReminderBot:
    """Background processing and error containment."""

    @pytest.mark.asyncio
    async def test_accept_returns_immediately_and_replies_later(self, bot, classifier, messenger) -> None:
        task = bot.accept(message())
        assert messenger.sent == []

        outcome = await task
        classifier.classify.assert_awaited_once_with("show my reminders", NOW, "UTC")
        assert outcome.delivered is True
        assert messenger.last_text == "You have no pending reminders right now."

    @pytest.mark.asyncio
    async def test_unexpected_error_gets_generic_reply(self, bot, classifier, messenger, engine) -> None:
        classifier.classify.side_effect = RuntimeError("boom")

        assert await bot.accept(message()) is None
        assert messenger.last_text == engine.messages.text("unexpected_error")

    @pytest.mark.asyncio
    async def test_records_classifier_metrics(self, bot, classifier, metrics) -> None:
        await bot.accept(message())
        classifier.classify.return_value = UnknownIntent(error="timeout")
        await bot.accept(message())

        assert metrics.nlu_call_count == 2
        assert metrics.nlu_error_count == 1

    @pytest.mark.asyncio
    async def test_attached_to_bus(self, bot, messenger) -> None:
        bus = Bus()
        bot.attach(bus)

        bus.emit(E.IO_MESSAGE_RECEIVED, message())
        await asyncio.wait_for(asyncio.gather(*list(bot._tasks)), 1)
        assert len(messenger.sent) == 1

    @pytest.mark.asyncio
    async def test_shutdown_cancels_stragglers(self, bot, classifier) -> None:
        async def hang(*_):
            await asyncio.sleep(10)

        classifier.classify.side_effect = hang
        task = bot.accept(message())

        await bot.shutdown(timeout=0.01)
        assert task.cancelled()
        assert bot.get_status() == {"in_flight": 0}
