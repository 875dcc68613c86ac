"""按关键词定位用户的 pending 提醒

编辑与删除共用同一套匹配策略:
- 0 条: 未找到，不做任何修改；
- 1 条: 可以继续执行修改；
- 多条: 列出候选项，要求用户给出更具体的描述，不做任何修改。
查询失败与 "没有匹配" 是两种不同结果，调用方需要用不同文案告知用户。
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from remindbot.config.messages import Messages
from remindbot.datamodel import Reminder
from remindbot.logger import logger
from remindbot.storage.base import ReminderStore

__all__ = ["MatchOutcome", "MatchResult", "find_targets", "format_candidates"]


class MatchOutcome(str, Enum):
    QUERY_FAILED = "query_failed"
    NOT_FOUND = "not_found"
    UNIQUE = "unique"
    AMBIGUOUS = "ambiguous"


@dataclass
class MatchResult:
    candidates: List[Reminder] = field(default_factory=list)
    query_error: Optional[str] = None

    @property
    def outcome(self) -> MatchOutcome:
        if self.query_error is not None:
            return MatchOutcome.QUERY_FAILED
        if not self.candidates:
            return MatchOutcome.NOT_FOUND
        if len(self.candidates) == 1:
            return MatchOutcome.UNIQUE
        return MatchOutcome.AMBIGUOUS

    @property
    def target(self) -> Optional[Reminder]:
        """唯一匹配时返回该提醒"""
        return self.candidates[0] if self.outcome is MatchOutcome.UNIQUE else None


async def find_targets(
    store: ReminderStore,
    user_id: str,
    keyword: str,
    timeout: Optional[float] = None,
) -> MatchResult:
    """查找 user_id 名下描述匹配 keyword 的 pending 提醒，按时间升序

    keyword 为空属于调用方的前置条件错误，直接抛 ValueError。
    """
    if keyword is None or not keyword.strip():
        raise ValueError("keyword must not be blank")

    logger.debug(f"查找提醒目标: user_id={user_id}, keyword={keyword!r}")
    try:
        candidates = await asyncio.wait_for(store.find_pending_by_keyword(user_id, keyword.strip()), timeout)
    except asyncio.TimeoutError:
        logger.warning(f"查找提醒目标超时: user_id={user_id}, timeout={timeout}s")
        return MatchResult(query_error="timeout")
    except Exception as e:
        logger.exception(f"查找提醒目标失败: user_id={user_id}, error={e}")
        return MatchResult(query_error=str(e) or e.__class__.__name__)

    candidates = sorted(candidates, key=lambda r: (r.reminder_time, r.reminder_id))
    logger.debug(f"找到 {len(candidates)} 个候选提醒: user_id={user_id}")
    return MatchResult(candidates=candidates)


def format_candidates(candidates: List[Reminder], messages: Messages, tz: str) -> str:
    """"1. team meeting (3 Mar 10:00)" 形式的编号列表"""
    return "\n".join(
        messages.text(
            "list_item",
            index=index,
            task=reminder.task_description,
            when=messages.format_short(reminder.reminder_time, tz),
        )
        for index, reminder in enumerate(candidates, start=1)
    )
