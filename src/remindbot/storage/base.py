from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Tuple

from remindbot.datamodel import Reminder, ReminderPatch, ReminderStatus

__all__ = ["ReminderStore"]


class ReminderStore(ABC):
    """提醒记录的存储接口

    除全局到期扫描 (list_due) 外，所有查询都按 user_id 限定。
    实现在读写失败时抛出 StoreError。
    """

    @abstractmethod
    async def create(self, user_id: str, task_description: str, reminder_time: datetime) -> Reminder:
        """新建一条 pending 提醒，要么完整写入要么不写"""

    @abstractmethod
    async def get(self, reminder_id: int) -> Optional[Reminder]:
        pass

    @abstractmethod
    async def list_pending_for_user(self, user_id: str) -> List[Reminder]:
        """用户的 pending 提醒，按 reminder_time 升序"""

    @abstractmethod
    async def find_pending_by_keyword(self, user_id: str, fragment: str) -> List[Reminder]:
        """描述中 (不区分大小写) 依次包含 fragment 各个词的 pending 提醒，按 reminder_time 升序"""

    @abstractmethod
    async def patch(self, reminder_id: int, patch: ReminderPatch) -> bool:
        """只更新 patch 中给出的字段，返回是否命中记录"""

    @abstractmethod
    async def delete(self, reminder_id: int) -> bool:
        pass

    @abstractmethod
    async def list_due(self, now: datetime) -> List[Reminder]:
        """status = pending 且 reminder_time <= now 的提醒"""

    @abstractmethod
    async def claim_for_sending(self, reminder_id: int) -> bool:
        """条件更新 pending -> sending，记录已不是 pending 时返回 False"""

    async def update_status(self, reminder_id: int, status: ReminderStatus) -> bool:
        return await self.patch(reminder_id, ReminderPatch(status=status))

    @abstractmethod
    async def list_reminders(
        self,
        user_id: Optional[str] = None,
        status: Optional[ReminderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Reminder], int]:
        """管理接口用的分页查询，返回 (items, total)"""
