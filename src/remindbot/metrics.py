"""
一个简单的运行时指标收集类，统计消息流量、意图识别、提醒投递等信息，供管理接口展示。
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict

from remindbot.events import Bus, E


@dataclass
class RuntimeMetrics:
    msg_in_count: int = 0
    msg_out_count: int = 0
    nlu_call_count: int = 0
    nlu_error_count: int = 0
    nlu_total_latency_ms: float = 0.0
    intent_counts: Dict[str, int] = field(default_factory=dict)
    sweep_count: int = 0
    reminder_sent_count: int = 0
    reminder_failed_count: int = 0
    sweep_processing_error_count: int = 0
    last_sweep_at: float | None = None

    def record_msg_in(self) -> None:
        self.msg_in_count += 1

    def record_msg_out(self) -> None:
        self.msg_out_count += 1

    def record_nlu_call(self, latency_ms: float, error: bool = False) -> None:
        self.nlu_call_count += 1
        self.nlu_total_latency_ms += max(0.0, latency_ms)
        if error:
            self.nlu_error_count += 1

    def record_intent(self, kind: str) -> None:
        self.intent_counts[kind] = self.intent_counts.get(kind, 0) + 1

    def record_sweep(self, summary: Any) -> None:
        self.sweep_count += 1
        self.last_sweep_at = time.time()
        self.sweep_processing_error_count += getattr(summary, "processing_errors", 0)

    def record_reminder_sent(self) -> None:
        self.reminder_sent_count += 1

    def record_reminder_failed(self) -> None:
        self.reminder_failed_count += 1

    def snapshot(self) -> dict:
        avg_latency_ms = 0.0
        if self.nlu_call_count > 0:
            avg_latency_ms = self.nlu_total_latency_ms / self.nlu_call_count

        return {
            "msg_in_count": self.msg_in_count,
            "msg_out_count": self.msg_out_count,
            "nlu_call_count": self.nlu_call_count,
            "nlu_error_count": self.nlu_error_count,
            "nlu_avg_latency_ms": round(avg_latency_ms, 2),
            "intent_counts": dict(self.intent_counts),
            "sweep_count": self.sweep_count,
            "reminder_sent_count": self.reminder_sent_count,
            "reminder_failed_count": self.reminder_failed_count,
            "sweep_processing_error_count": self.sweep_processing_error_count,
            "last_sweep_at_utc": (
                time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.last_sweep_at))
                if self.last_sweep_at is not None
                else None
            ),
        }

    def attach(self, bus: Bus) -> None:
        """订阅总线事件，自动累计计数"""
        bus.add_listener(E.IO_MESSAGE_RECEIVED, lambda *_: self.record_msg_in())
        bus.add_listener(E.IO_MESSAGE_SENT, lambda *_: self.record_msg_out())
        bus.add_listener(E.INTENT_CLASSIFIED, lambda kind, *_: self.record_intent(kind))
        bus.add_listener(E.REMINDER_SENT, lambda *_: self.record_reminder_sent())
        bus.add_listener(E.REMINDER_FAILED, lambda *_: self.record_reminder_failed())
        bus.add_listener(E.SWEEP_FINISHED, self.record_sweep)


runtime_metrics = RuntimeMetrics()


__all__ = ["RuntimeMetrics", "runtime_metrics"]
