"""Tests for intent classifier adapters."""

import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from remindbot.datamodel import CreateReminder, ListReminders, UnknownIntent
from remindbot.nlu.base import INTENT_RESPONSE_SCHEMA, IntentClassifier, build_instruction, parse_classifier_output
from remindbot.nlu.gemini_classifier import GeminiIntentClassifier
from remindbot.nlu.openai_classifier import OpenAIIntentClassifier

NOW = datetime(2030, 3, 4, 10, 0, tzinfo=timezone.utc)


class StaticClassifier(IntentClassifier):
    name = "static"

    def __init__(self, raw=None, error=None, delay=0.0, timeout=None) -> None:
        super().__init__(timeout=timeout)
        self.raw = raw
        self.error = error
        self.delay = delay

    async def _request(self, text: str, instruction: str) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.raw


class TestParseClassifierOutput:
    """Tolerant JSON parsing."""

    def test_plain_json(self) -> None:
        raw = '{"intent": "ADD_REMINDER", "data": {"task": "call mom", "time": "in 2 hours"}}'
        assert parse_classifier_output(raw) == CreateReminder(task="call mom", time="in 2 hours")

    def test_code_fence(self) -> None:
        raw = '```json\n{"intent": "LIST_REMINDERS", "data": null}\n```'
        assert parse_classifier_output(raw) == ListReminders()

    def test_surrounding_prose(self) -> None:
        raw = 'Sure! {"intent": "LIST_REMINDERS", "data": {}} Hope that helps.'
        assert parse_classifier_output(raw) == ListReminders()

    @pytest.mark.parametrize("raw", [None, "", "not json at all", "[1, 2]"])
    def test_garbage_becomes_unknown_with_error(self, raw) -> None:
        intent = parse_classifier_output(raw)
        assert isinstance(intent, UnknownIntent)
        assert intent.error


class TestClassify:
    """classify() never raises."""

    @pytest.mark.asyncio
    async def test_success(self) -> None:
        classifier = StaticClassifier(raw='{"intent": "LIST_REMINDERS", "data": null}')
        assert await classifier.classify("show my reminders", NOW, "UTC") == ListReminders()

    @pytest.mark.asyncio
    async def test_request_error(self) -> None:
        classifier = StaticClassifier(error=RuntimeError("quota exceeded"))
        assert await classifier.classify("hi", NOW, "UTC") == UnknownIntent(error="quota exceeded")

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        classifier = StaticClassifier(raw="{}", delay=1.0, timeout=0.01)
        assert await classifier.classify("hi", NOW, "UTC") == UnknownIntent(error="classifier timeout")


def test_instruction_contains_local_time() -> None:
    instruction = build_instruction(NOW, "Asia/Jakarta")
    assert "2030-03-04 17:00 (Monday)" in instruction
    assert "Asia/Jakarta" in instruction


def test_schema_lists_every_intent() -> None:
    assert INTENT_RESPONSE_SCHEMA["properties"]["intent"]["enum"] == [
        "ADD_REMINDER", "LIST_REMINDERS", "DELETE_REMINDER", "EDIT_REMINDER", "UNKNOWN",
    ]


class TestGemini:
    """Retry policy of the Gemini adapter."""

    @pytest.fixture
    def classifier(self) -> GeminiIntentClassifier:
        classifier = GeminiIntentClassifier(api_key="test-key")
        classifier.API_RETRY_DELAYS_SECONDS = [0.0, 0.0]
        return classifier

    def test_retryable_errors(self) -> None:
        assert GeminiIntentClassifier._is_retryable_error(RuntimeError("429 RESOURCE_EXHAUSTED"))
        assert GeminiIntentClassifier._is_retryable_error(RuntimeError("503 Service Unavailable"))
        assert not GeminiIntentClassifier._is_retryable_error(ValueError("400 invalid argument"))

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, classifier, monkeypatch) -> None:
        response = SimpleNamespace(text='{"intent": "LIST_REMINDERS", "data": null}')
        generate = AsyncMock(side_effect=[RuntimeError("503 unavailable"), response])
        monkeypatch.setattr(classifier, "_generate_once", generate)

        assert await classifier.classify("show reminders", NOW, "UTC") == ListReminders()
        assert generate.await_count == 2

    @pytest.mark.asyncio
    async def test_non_retryable_error_fails_fast(self, classifier, monkeypatch) -> None:
        generate = AsyncMock(side_effect=ValueError("400 invalid argument"))
        monkeypatch.setattr(classifier, "_generate_once", generate)

        intent = await classifier.classify("hi", NOW, "UTC")
        assert intent == UnknownIntent(error="400 invalid argument")
        assert generate.await_count == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_all_delays(self, classifier, monkeypatch) -> None:
        generate = AsyncMock(side_effect=RuntimeError("429 rate limit"))
        monkeypatch.setattr(classifier, "_generate_once", generate)

        intent = await classifier.classify("hi", NOW, "UTC")
        assert isinstance(intent, UnknownIntent)
        assert generate.await_count == len(GeminiIntentClassifier.API_RETRY_DELAYS_SECONDS) + 1


class TestOpenAI:
    """Responses API adapter."""

    @pytest.mark.asyncio
    async def test_requests_json_schema_output(self, monkeypatch) -> None:
        classifier = OpenAIIntentClassifier(api_key="test-key", model="test-model")
        create = AsyncMock(return_value=SimpleNamespace(output_text='{"intent": "LIST_REMINDERS", "data": null}'))
        monkeypatch.setattr(classifier.client.responses, "create", create)

        assert await classifier.classify("show reminders", NOW, "UTC") == ListReminders()
        kwargs = create.await_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["text"]["format"]["type"] == "json_schema"
        assert kwargs["input"] == [{"role": "user", "content": "show reminders"}]
