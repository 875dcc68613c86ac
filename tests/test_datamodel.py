"""Tests for intent payload conversion."""

import pytest

from remindbot.datamodel import (
    CreateReminder,
    DeleteReminder,
    EditReminder,
    ListReminders,
    ReminderPatch,
    ReminderStatus,
    UnknownIntent,
    intent_from_payload,
)


class TestIntentFromPayload:
    """Classifier dict -> tagged intent."""

    def test_add(self) -> None:
        intent = intent_from_payload({"intent": "ADD_REMINDER", "data": {"task": " call mom ", "time": "in 2 hours"}})
        assert intent == CreateReminder(task="call mom", time="in 2 hours")

    def test_list(self) -> None:
        assert intent_from_payload({"intent": "LIST_REMINDERS", "data": None}) == ListReminders()

    def test_delete(self) -> None:
        assert intent_from_payload({"intent": "DELETE_REMINDER", "data": {"target": "standup"}}) == DeleteReminder(
            target="standup"
        )

    def test_edit_with_partial_updates(self) -> None:
        intent = intent_from_payload(
            {"intent": "EDIT_REMINDER", "data": {"target": "meeting", "updates": {"task": None, "time": "5pm"}}}
        )
        assert intent == EditReminder(target="meeting", new_task=None, new_time="5pm")

    def test_blank_strings_become_none(self) -> None:
        assert intent_from_payload({"intent": "ADD_REMINDER", "data": {"task": "  ", "time": ""}}) == CreateReminder()

    def test_lowercase_intent_name(self) -> None:
        assert intent_from_payload({"intent": "list_reminders"}) == ListReminders()

    @pytest.mark.parametrize("payload", [{}, {"intent": "SING_A_SONG"}, {"intent": "UNKNOWN", "data": {}}])
    def test_unknown(self, payload) -> None:
        assert intent_from_payload(payload) == UnknownIntent()

    def test_error_wins_over_intent(self) -> None:
        payload = {"intent": "ADD_REMINDER", "data": {"task": "x", "time": "y"}, "error": "quota"}
        assert intent_from_payload(payload) == UnknownIntent(error="quota")

    def test_malformed_data_is_ignored(self) -> None:
        assert intent_from_payload({"intent": "EDIT_REMINDER", "data": ["oops"]}) == EditReminder()


def test_reminder_patch_is_empty() -> None:
    assert ReminderPatch().is_empty()
    assert not ReminderPatch(status=ReminderStatus.SENT).is_empty()
