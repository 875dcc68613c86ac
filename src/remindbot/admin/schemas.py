from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field

from remindbot.events import Bus


@dataclass
class RuntimeControl:
    shutdown_event: asyncio.Event
    started_at: float
    bus: Bus
    auth_token: str = ""
    owner_whatsapp_id: str = ""
    whatsapp_enabled: bool = True
    telegram_enabled: bool = False


class WhatsAppWebhook(BaseModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    message_text: Optional[str] = Field(default=None, alias="messageText")


class TriggerResponse(BaseModel):
    message: str = "Trigger processed"
    total: int
    processed: int
    errors: int
    delivery_errors: int = 0
    processing_errors: int = 0
    skipped: int = 0


class ReminderItem(BaseModel):
    reminder_id: int
    user_id: str
    task_description: str
    reminder_time_utc: str
    status: str
    created_at_utc: Optional[str] = None
    updated_at_utc: Optional[str] = None
