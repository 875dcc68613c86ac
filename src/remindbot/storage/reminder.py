from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple

import aiosqlite

from remindbot.datamodel import Reminder, ReminderPatch, ReminderStatus
from remindbot.errors import StoreError
from remindbot.logger import logger
from remindbot.storage.base import ReminderStore
from remindbot.utils import db_str_to_utc, utc_to_db_str

__all__ = ["SqliteReminderStore", "keyword_pattern"]

_COLUMNS = "reminder_id, user_id, task_description, reminder_time_utc, status, created_at_utc, updated_at_utc"


def keyword_pattern(fragment: str) -> str:
    """"team meeting" -> "%team%meeting%"，并转义用户输入中的 LIKE 通配符"""
    words = fragment.split()
    escaped = [w.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") for w in words]
    return "%" + "%".join(escaped) + "%"


def _row_to_reminder(row: Any) -> Reminder:
    return Reminder(
        reminder_id=row["reminder_id"],
        user_id=row["user_id"],
        task_description=row["task_description"],
        reminder_time=db_str_to_utc(row["reminder_time_utc"]),
        status=ReminderStatus(row["status"]),
        created_at=db_str_to_utc(row["created_at_utc"]) if row["created_at_utc"] else None,
        updated_at=db_str_to_utc(row["updated_at_utc"]) if row["updated_at_utc"] else None,
    )


class SqliteReminderStore(ReminderStore):
    """基于 aiosqlite 的提醒存储，连接由 init_db() 创建后注入 (依赖其注册的 casefold 函数)"""

    def __init__(self, conn: Optional[aiosqlite.Connection]) -> None:
        self.conn = conn

    def _ensure_conn(self) -> aiosqlite.Connection:
        if self.conn is None:
            raise StoreError("数据库未初始化，请先调用 init_db()")
        return self.conn

    async def _fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Reminder]:
        conn = self._ensure_conn()
        try:
            async with conn.execute(sql, tuple(params)) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StoreError(f"查询提醒失败: {e}") from e
        return [_row_to_reminder(row) for row in rows]

    async def _execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """执行写语句，返回受影响行数"""
        conn = self._ensure_conn()
        try:
            async with conn.execute(sql, tuple(params)) as cursor:
                return cursor.rowcount
        except aiosqlite.Error as e:
            raise StoreError(f"写入提醒失败: {e}") from e

    async def create(self, user_id: str, task_description: str, reminder_time: datetime) -> Reminder:
        """创建提醒"""
        conn = self._ensure_conn()
        try:
            async with conn.execute(
                "INSERT INTO reminders (user_id, task_description, reminder_time_utc, status) VALUES (?, ?, ?, ?)",
                (user_id, task_description, utc_to_db_str(reminder_time), ReminderStatus.PENDING.value),
            ) as cursor:
                reminder_id = cursor.lastrowid
        except aiosqlite.Error as e:
            raise StoreError(f"创建提醒失败: {e}") from e

        logger.trace(f"创建提醒: user_id={user_id}, task={task_description}, reminder_time={reminder_time}, reminder_id={reminder_id}")
        created = await self.get(reminder_id)
        if created is None:
            raise StoreError(f"创建提醒后读取失败: reminder_id={reminder_id}")
        return created

    async def get(self, reminder_id: int) -> Optional[Reminder]:
        rows = await self._fetch_all(f"SELECT {_COLUMNS} FROM reminders WHERE reminder_id = ?", (reminder_id,))
        return rows[0] if rows else None

    async def list_pending_for_user(self, user_id: str) -> List[Reminder]:
        """获取用户所有未触发的提醒"""
        return await self._fetch_all(
            f"SELECT {_COLUMNS} FROM reminders WHERE user_id = ? AND status = 'pending' "
            "ORDER BY reminder_time_utc ASC, reminder_id ASC",
            (user_id,),
        )

    async def find_pending_by_keyword(self, user_id: str, fragment: str) -> List[Reminder]:
        pattern = keyword_pattern(fragment.casefold())
        logger.trace(f"按关键词查找提醒: user_id={user_id}, pattern={pattern}")
        return await self._fetch_all(
            f"SELECT {_COLUMNS} FROM reminders WHERE user_id = ? AND status = 'pending' "
            "AND casefold(task_description) LIKE ? ESCAPE '\\' "
            "ORDER BY reminder_time_utc ASC, reminder_id ASC",
            (user_id, pattern),
        )

    async def patch(self, reminder_id: int, patch: ReminderPatch) -> bool:
        """只更新给出的字段"""
        sets: List[str] = []
        params: List[Any] = []
        if patch.task_description is not None:
            sets.append("task_description = ?")
            params.append(patch.task_description)
        if patch.reminder_time is not None:
            sets.append("reminder_time_utc = ?")
            params.append(utc_to_db_str(patch.reminder_time))
        if patch.status is not None:
            sets.append("status = ?")
            params.append(ReminderStatus(patch.status).value)
        if not sets:
            return False

        sets.append("updated_at_utc = CURRENT_TIMESTAMP")
        params.append(reminder_id)
        rowcount = await self._execute(f"UPDATE reminders SET {', '.join(sets)} WHERE reminder_id = ?", params)
        logger.trace(f"更新提醒: reminder_id={reminder_id}, patch={patch}, rowcount={rowcount}")
        return rowcount > 0

    async def delete(self, reminder_id: int) -> bool:
        rowcount = await self._execute("DELETE FROM reminders WHERE reminder_id = ?", (reminder_id,))
        logger.trace(f"删除提醒: reminder_id={reminder_id}, rowcount={rowcount}")
        return rowcount > 0

    async def list_due(self, now: datetime) -> List[Reminder]:
        """获取所有已到期且未发送的提醒"""
        return await self._fetch_all(
            f"SELECT {_COLUMNS} FROM reminders WHERE status = 'pending' AND reminder_time_utc <= ? "
            "ORDER BY reminder_time_utc ASC, reminder_id ASC",
            (utc_to_db_str(now),),
        )

    async def claim_for_sending(self, reminder_id: int) -> bool:
        rowcount = await self._execute(
            "UPDATE reminders SET status = 'sending', updated_at_utc = CURRENT_TIMESTAMP "
            "WHERE reminder_id = ? AND status = 'pending'",
            (reminder_id,),
        )
        return rowcount > 0

    async def list_reminders(
        self,
        user_id: Optional[str] = None,
        status: Optional[ReminderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Reminder], int]:
        where_clauses: List[str] = []
        params: List[Any] = []
        if user_id:
            where_clauses.append("user_id = ?")
            params.append(user_id)
        if status is not None:
            where_clauses.append("status = ?")
            params.append(ReminderStatus(status).value)

        where_sql = ""
        if where_clauses:
            where_sql = "WHERE " + " AND ".join(where_clauses)

        conn = self._ensure_conn()
        try:
            async with conn.execute(f"SELECT COUNT(*) FROM reminders {where_sql}", tuple(params)) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreError(f"统计提醒失败: {e}") from e
        total = int(row[0]) if row else 0

        items = await self._fetch_all(
            f"SELECT {_COLUMNS} FROM reminders {where_sql} ORDER BY reminder_id DESC LIMIT ? OFFSET ?",
            [*params, limit, offset],
        )
        return items, total
