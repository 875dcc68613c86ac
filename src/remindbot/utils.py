from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

__all__ = ["DB_TIME_FORMAT", "now_utc", "ensure_utc", "utc_to_db_str", "db_str_to_utc",
           "utc_to_user_local", "is_valid_timezone"]

# 数据库中统一存储 UTC，保留微秒，定长格式保证字符串比较与时间比较一致
DB_TIME_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def now_utc() -> datetime:
    """获取当前 UTC 时间"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """naive 时间按 UTC 解释，aware 时间转换到 UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_to_db_str(dt: datetime) -> str:
    return ensure_utc(dt).strftime(DB_TIME_FORMAT)


def db_str_to_utc(raw: str) -> datetime:
    # 兼容 SQLite CURRENT_TIMESTAMP (精确到秒) 以及带 T / 时区后缀的 ISO 字符串
    try:
        naive = datetime.strptime(raw, DB_TIME_FORMAT)
    except ValueError:
        return ensure_utc(datetime.fromisoformat(raw))
    return naive.replace(tzinfo=timezone.utc)


def utc_to_user_local(utc_dt: datetime, user_tz: str) -> datetime:
    return ensure_utc(utc_dt).astimezone(ZoneInfo(user_tz))


def is_valid_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True
