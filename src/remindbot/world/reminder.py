"""
定时投递扫描: 每隔 interval 秒调用一次 engine.run_sweep()，单次扫描失败不会结束循环。
"""

import asyncio
import time
from typing import Any, Dict, Optional

from remindbot.core.lifecycle import ReminderEngine
from remindbot.logger import logger

_shutdown_event: Optional[asyncio.Event] = None
_last_check_at_epoch: Optional[float] = None
_last_summary: Optional[Dict[str, Any]] = None


def get_status() -> Dict[str, object]:
    running = _shutdown_event is not None and not _shutdown_event.is_set()
    return {
        "running": running,
        "last_check_at_epoch": _last_check_at_epoch,
        "last_summary": _last_summary,
    }


async def main_loop(engine: ReminderEngine, shutdown_event: asyncio.Event, interval: float = 60.0) -> None:
    global _shutdown_event, _last_check_at_epoch, _last_summary
    _shutdown_event = shutdown_event
    logger.info(f"Reminder 主循环已启动: interval={interval}s")

    while not shutdown_event.is_set():
        _last_check_at_epoch = time.time()
        try:
            summary = await engine.run_sweep()
            _last_summary = summary.to_dict()
            if summary.query_error:
                logger.warning(f"本轮到期查询失败: {summary.query_error}")
        except Exception as e:
            logger.exception(f"投递扫描异常: {e}")

        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass

    logger.info("Reminder 主循环已关闭")
