from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

__all__ = [
    "ReminderStatus", "Reminder", "ReminderPatch",
    "IntentName", "CreateReminder", "ListReminders", "EditReminder", "DeleteReminder", "UnknownIntent",
    "Intent", "intent_from_payload",
    "ChannelType", "IncomingMessage",
]


# ----------------- Reminder 数据模型 ----------------
class ReminderStatus(str, Enum):
    """单次投递内单调: pending -> sending -> sent | failed"""
    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


@dataclass
class Reminder:
    reminder_id: int
    user_id: str
    task_description: str
    reminder_time: datetime  # 带时区的 UTC 时间
    status: ReminderStatus = ReminderStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class ReminderPatch:
    """编辑时的部分更新，None 表示该字段保持原值"""
    task_description: Optional[str] = None
    reminder_time: Optional[datetime] = None
    status: Optional[ReminderStatus] = None

    def is_empty(self) -> bool:
        return self.task_description is None and self.reminder_time is None and self.status is None


# ----------------- Intent 数据模型 ----------------
# 由外部意图识别器产出，引擎只消费，不调用识别器
class IntentName(str, Enum):
    ADD_REMINDER = "ADD_REMINDER"
    LIST_REMINDERS = "LIST_REMINDERS"
    DELETE_REMINDER = "DELETE_REMINDER"
    EDIT_REMINDER = "EDIT_REMINDER"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class CreateReminder:
    task: Optional[str] = None
    time: Optional[str] = None


@dataclass(frozen=True)
class ListReminders:
    pass


@dataclass(frozen=True)
class EditReminder:
    target: Optional[str] = None
    new_task: Optional[str] = None
    new_time: Optional[str] = None


@dataclass(frozen=True)
class DeleteReminder:
    target: Optional[str] = None


@dataclass(frozen=True)
class UnknownIntent:
    error: Optional[str] = None  # 识别器出错时携带错误描述


Intent = Union[CreateReminder, ListReminders, EditReminder, DeleteReminder, UnknownIntent]


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def intent_from_payload(payload: Mapping[str, Any]) -> Intent:
    """把 {intent, data, error?} 结构转换为具体的 Intent 变体

    未知或缺失的 intent 一律视为 UnknownIntent。
    """
    error = _clean(payload.get("error"))
    raw_intent = str(payload.get("intent") or "").strip().upper()
    data = payload.get("data") or {}
    if not isinstance(data, Mapping):
        data = {}

    try:
        name = IntentName(raw_intent)
    except ValueError:
        return UnknownIntent(error=error)

    if error is not None or name is IntentName.UNKNOWN:
        return UnknownIntent(error=error)

    if name is IntentName.ADD_REMINDER:
        return CreateReminder(task=_clean(data.get("task")), time=_clean(data.get("time")))

    if name is IntentName.LIST_REMINDERS:
        return ListReminders()

    if name is IntentName.DELETE_REMINDER:
        return DeleteReminder(target=_clean(data.get("target")))

    updates = data.get("updates") or {}
    if not isinstance(updates, Mapping):
        updates = {}
    return EditReminder(
        target=_clean(data.get("target")),
        new_task=_clean(updates.get("task")),
        new_time=_clean(updates.get("time")),
    )


# ----------------- Channel 数据模型 ----------------
class ChannelType(str, Enum):
    TELEGRAM_BOT_POLLING = "telegram_bot_polling"
    WHATSAPP_BRIDGE = "whatsapp_bridge"


@dataclass
class IncomingMessage:
    channel_type: ChannelType
    user_id: str  # 带通道前缀的 user_id，例如 "tg:12345" 或 "6281234567890@c.us"
    content: str
    metadata: Optional[Dict[str, Any]] = None  # 平台特定元数据
    timestamp: Optional[datetime] = None
