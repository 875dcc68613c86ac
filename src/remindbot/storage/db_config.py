from pathlib import Path
from typing import Optional

import aiosqlite

from remindbot.logger import logger

__all__ = ["SCHEMA_VERSION", "init_db"]

_SQL_DIR = Path(__file__).with_name("sql")

SCHEMA_VERSION = 1


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if value is not None else None


async def _user_version(conn: aiosqlite.Connection) -> int:
    async with conn.execute("PRAGMA user_version") as cursor:
        row = await cursor.fetchone()
        return int(row[0])


async def init_db(db_path: str) -> aiosqlite.Connection:
    """打开数据库并执行必要的迁移，返回连接

    连接使用 autocommit (isolation_level=None)，每条写语句单独成一个事务。
    db_path 为 ":memory:" 时不创建目录。
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path, isolation_level=None)
    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA journal_mode = WAL")
    await conn.execute("PRAGMA busy_timeout = 5000")
    # SQLite 自带的 LOWER 只处理 ASCII，关键词匹配用 Python 的 casefold
    await conn.create_function("casefold", 1, _casefold, deterministic=True)

    user_version = await _user_version(conn)
    if user_version < 1:  # 数据库初始版本
        init_sql = (_SQL_DIR / "db_init_v1.sql").read_text(encoding="utf-8")
        await conn.executescript(init_sql)
        await conn.execute("PRAGMA user_version = 1")
        logger.info(f"数据库已初始化: path={db_path}, version=1")

    # 数据库升级逻辑可以在这里继续添加
    return conn
