"""Tests for keyword target lookup."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from remindbot.config.messages import get_messages
from remindbot.core.disambiguation import MatchOutcome, MatchResult, find_targets, format_candidates
from remindbot.datamodel import Reminder

T0 = datetime(2030, 3, 4, 10, 0, tzinfo=timezone.utc)


def reminder(reminder_id: int, task: str, offset_minutes: int = 0) -> Reminder:
    return Reminder(reminder_id, "u1", task, T0 + timedelta(minutes=offset_minutes))


class TestMatchResult:
    """Outcome classification."""

    def test_outcomes(self) -> None:
        assert MatchResult().outcome is MatchOutcome.NOT_FOUND
        assert MatchResult(candidates=[reminder(1, "a")]).outcome is MatchOutcome.UNIQUE
        assert MatchResult(candidates=[reminder(1, "a"), reminder(2, "b")]).outcome is MatchOutcome.AMBIGUOUS
        assert MatchResult(candidates=[reminder(1, "a")], query_error="boom").outcome is MatchOutcome.QUERY_FAILED

    def test_target_only_when_unique(self) -> None:
        only = reminder(1, "a")
        assert MatchResult(candidates=[only]).target is only
        assert MatchResult(candidates=[only, reminder(2, "b")]).target is None


class TestFindTargets:
    """Lookup against a store."""

    @pytest.mark.asyncio
    async def test_blank_keyword_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            await find_targets(AsyncMock(), "u1", "   ")

    @pytest.mark.asyncio
    async def test_candidates_sorted_by_time(self) -> None:
        store = AsyncMock()
        store.find_pending_by_keyword.return_value = [reminder(2, "late", 30), reminder(1, "early", 0)]

        result = await find_targets(store, "u1", " meeting ")
        assert [r.reminder_id for r in result.candidates] == [1, 2]
        store.find_pending_by_keyword.assert_awaited_once_with("u1", "meeting")

    @pytest.mark.asyncio
    async def test_store_error_is_distinct_from_no_match(self) -> None:
        store = AsyncMock()
        store.find_pending_by_keyword.side_effect = RuntimeError("db down")

        result = await find_targets(store, "u1", "meeting")
        assert result.outcome is MatchOutcome.QUERY_FAILED
        assert result.query_error == "db down"

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        async def slow(*_):
            await asyncio.sleep(1)
            return []

        store = AsyncMock()
        store.find_pending_by_keyword.side_effect = slow

        result = await find_targets(store, "u1", "meeting", timeout=0.01)
        assert result.query_error == "timeout"

    @pytest.mark.asyncio
    async def test_against_sqlite_store(self, store) -> None:
        await store.create("u1", "team meeting", T0)
        await store.create("u1", "team meeting follow-up", T0 + timedelta(hours=1))
        await store.create("u1", "dentist", T0)

        result = await find_targets(store, "u1", "team meeting")
        assert result.outcome is MatchOutcome.AMBIGUOUS
        assert [r.task_description for r in result.candidates] == ["team meeting", "team meeting follow-up"]


def test_format_candidates() -> None:
    text = format_candidates([reminder(1, "team meeting"), reminder(2, "lunch", 65)], get_messages("en"), "UTC")
    assert text == "1. team meeting (4 Mar 10:00)\n2. lunch (4 Mar 11:05)"
