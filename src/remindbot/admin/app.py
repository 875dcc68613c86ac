from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from remindbot import __version__
from remindbot.channels.whatsapp_bridge import incoming_from_webhook
from remindbot.core.lifecycle import ReminderEngine
from remindbot.core.orchestrator import ReminderBot
from remindbot.datamodel import Reminder, ReminderStatus
from remindbot.errors import StoreError
from remindbot.events import E
from remindbot.logger import logger
from remindbot.metrics import runtime_metrics
from remindbot.storage.base import ReminderStore
from remindbot.utils import ensure_utc
from remindbot.world.reminder import get_status as get_reminder_status

from .auth import require_auth
from .schemas import ReminderItem, RuntimeControl, TriggerResponse, WhatsAppWebhook


def _iso_utc(dt: datetime) -> str:
    return ensure_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")


def _reminder_item(reminder: Reminder) -> dict[str, Any]:
    return ReminderItem(
        reminder_id=reminder.reminder_id,
        user_id=reminder.user_id,
        task_description=reminder.task_description,
        reminder_time_utc=_iso_utc(reminder.reminder_time),
        status=ReminderStatus(reminder.status).value,
        created_at_utc=_iso_utc(reminder.created_at) if reminder.created_at else None,
        updated_at_utc=_iso_utc(reminder.updated_at) if reminder.updated_at else None,
    ).model_dump()


def create_app(
    control: RuntimeControl,
    engine: ReminderEngine,
    bot: ReminderBot,
    store: ReminderStore,
) -> FastAPI:
    app = FastAPI(title="RemindBot API", version=__version__)
    app.state.control = control

    def health_payload() -> dict[str, Any]:
        return {
            "status": "ok",
            "now_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "uptime_seconds": max(0.0, time.time() - control.started_at),
            "shutdown_requested": control.shutdown_event.is_set(),
        }

    @app.get("/", include_in_schema=False)
    async def home() -> PlainTextResponse:
        return PlainTextResponse("RemindBot backend is running.")

    @app.get("/healthz", include_in_schema=False)
    async def healthz() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.get("/api/v1/health")
    async def api_health() -> dict[str, Any]:
        return health_payload()

    @app.post("/webhook/whatsapp")
    async def whatsapp_webhook(request: Request) -> PlainTextResponse:
        try:
            payload = WhatsAppWebhook.model_validate(await request.json())
        except (json.JSONDecodeError, ValidationError, UnicodeDecodeError) as e:
            logger.warning(f"Webhook 载荷非法: {e}")
            return PlainTextResponse("Bad Request: Missing userId or messageText", status_code=400)

        logger.info(f"收到网关 Webhook: user_id={payload.user_id}, message={payload.message_text!r}")
        if not payload.user_id or not payload.message_text:
            logger.error("Webhook 错误: userId 或 messageText 为空")
            return PlainTextResponse("Bad Request: Missing userId or messageText", status_code=400)

        # 先应答网关，消息在后台处理
        msg = incoming_from_webhook(payload.user_id, payload.message_text, control.owner_whatsapp_id)
        if msg is not None:
            control.bus.emit(E.IO_MESSAGE_RECEIVED, msg)
        return PlainTextResponse("OK")

    async def trigger_sweep(request: Request) -> JSONResponse:
        await require_auth(request)
        logger.info("收到投递触发请求，开始检查到期提醒")
        summary = await engine.run_sweep()
        if summary.query_error is not None:
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "message": summary.query_error},
            )

        body = TriggerResponse(
            total=summary.total,
            processed=summary.processed,
            errors=summary.errored,
            delivery_errors=summary.delivery_errors,
            processing_errors=summary.processing_errors,
            skipped=summary.skipped,
        )
        return JSONResponse(content=body.model_dump())

    app.add_api_route("/trigger/send-reminders", trigger_sweep, methods=["GET", "POST"])

    @app.get("/api/v1/reminders")
    async def get_reminders(
        request: Request,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Any:
        await require_auth(request)
        limit = max(1, min(limit, 500))
        offset = max(0, offset)

        status_filter: Optional[ReminderStatus] = None
        if status:
            try:
                status_filter = ReminderStatus(status)
            except ValueError:
                raise HTTPException(status_code=400, detail=f"非法的 status: {status}")

        try:
            items, total = await store.list_reminders(user_id=user_id, status=status_filter, limit=limit, offset=offset)
        except StoreError as e:
            logger.opt(exception=e).error(f"查询提醒列表失败: {e}")
            return JSONResponse(status_code=500, content={"error": "Internal server error", "message": str(e)})
        return {
            "items": [_reminder_item(r) for r in items],
            "limit": limit,
            "offset": offset,
            "user_id": user_id,
            "status": status,
            "total": total,
        }

    @app.get("/api/v1/metrics")
    async def get_metrics(request: Request) -> dict[str, Any]:
        await require_auth(request)
        return {
            "runtime": runtime_metrics.snapshot(),
            "components": {
                "telegram": {"enabled": control.telegram_enabled},
                "whatsapp_bridge": {"enabled": control.whatsapp_enabled},
                "reminder": get_reminder_status(),
                "bot": bot.get_status(),
            },
            "active_tasks": len(asyncio.all_tasks()),
        }

    return app
