"""消息编排: 入站消息 -> 意图识别 -> 提醒引擎

入站通道只负责确认收到 (webhook 立即返回 200)，真正的处理在后台任务中进行。
后台任务内的任何异常都会被记录，并以通用错误文案回复用户，不会向上抛出。
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Any, Callable, Optional, Set

from remindbot.core.lifecycle import IntentOutcome, ReminderEngine
from remindbot.datamodel import IncomingMessage, UnknownIntent
from remindbot.events import Bus, E
from remindbot.logger import logger
from remindbot.metrics import RuntimeMetrics, runtime_metrics
from remindbot.nlu.base import IntentClassifier
from remindbot.utils import now_utc

__all__ = ["ReminderBot"]


class ReminderBot:
    def __init__(
        self,
        classifier: IntentClassifier,
        engine: ReminderEngine,
        *,
        timezone: str = "UTC",
        clock: Callable[[], datetime] = now_utc,
        metrics: RuntimeMetrics = runtime_metrics,
    ) -> None:
        self.classifier = classifier
        self.engine = engine
        self.timezone = timezone
        self.clock = clock
        self.metrics = metrics
        self._tasks: Set[asyncio.Task] = set()

    def attach(self, bus: Bus) -> None:
        """订阅入站消息事件"""
        bus.add_listener(E.IO_MESSAGE_RECEIVED, self.accept)

    def accept(self, msg: IncomingMessage) -> asyncio.Task:
        """确认收到消息，并在后台处理"""
        logger.info(f"收到来自用户 {msg.user_id} 的消息，转入后台处理")
        task = asyncio.create_task(self._process(msg), name=f"remindbot-msg-{msg.user_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _process(self, msg: IncomingMessage) -> Optional[IntentOutcome]:
        try:
            now = self.clock()
            start_time = time.perf_counter()
            intent = await self.classifier.classify(msg.content, now, self.timezone)
            latency_seconds = time.perf_counter() - start_time
            self.metrics.record_nlu_call(
                latency_ms=latency_seconds * 1000,
                error=isinstance(intent, UnknownIntent) and intent.error is not None,
            )
            logger.debug(f"意图识别耗时 {latency_seconds:.2f} 秒: user_id={msg.user_id}, intent={intent!r}")

            outcome = await self.engine.handle_intent(msg.user_id, intent, now)
            logger.info(f"用户 {msg.user_id} 的消息处理完成: outcome={outcome.kind.value}, delivered={outcome.delivered}")
            return outcome
        except Exception as e:
            logger.exception(f"处理用户 {msg.user_id} 的消息时发生未预期的异常: {e}")
            await self.engine.notify(msg.user_id, self.engine.messages.text("unexpected_error"))
            return None

    def get_status(self) -> dict[str, Any]:
        return {"in_flight": len(self._tasks)}

    async def shutdown(self, timeout: float = 10.0) -> None:
        """等待进行中的消息处理完成，超时后取消"""
        if not self._tasks:
            return

        logger.info(f"正在等待 {len(self._tasks)} 条消息处理完成...")
        pending = list(self._tasks)
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning(f"关闭时取消了 {len(still_running)} 条未完成的消息处理")
        logger.info("ReminderBot 已关闭")
