"""事件总线模块，定义了事件总线类 Bus 及事件名集合 E

通道层收到消息后通过总线通知编排器，提醒状态变化与扫描结果也会广播出去，
供指标统计等旁路逻辑订阅。处理器中抛出的异常由 pyee 转发到 "error" 事件并记录日志，
不会影响发送方。
"""

from __future__ import annotations

from pyee.asyncio import AsyncIOEventEmitter

from remindbot.logger import logger


# 事件名集中定义
class E:
    IO_MESSAGE_RECEIVED = "io.message_received"
    IO_MESSAGE_SENT = "io.message_sent"
    INTENT_CLASSIFIED = "intent.classified"
    REMINDER_CREATED = "reminder.created"
    REMINDER_UPDATED = "reminder.updated"
    REMINDER_DELETED = "reminder.deleted"
    REMINDER_SENT = "reminder.sent"
    REMINDER_FAILED = "reminder.failed"
    SWEEP_FINISHED = "sweep.finished"


class Bus(AsyncIOEventEmitter):
    def __init__(self) -> None:
        super().__init__()
        super().on("error", self._log_handler_error)

    @staticmethod
    def _log_handler_error(error: Exception) -> None:
        logger.opt(exception=error).error(f"事件处理器异常: {error}")


bus = Bus()

__all__ = ["Bus", "bus", "E"]
