"""自然语言时间解析

把 "in 2 hours" / "tomorrow at 9" / "friday 5pm" / "besok jam 10 pagi" / "2030-03-01 08:00"
这类表达解析为带时区的 UTC 时间。

约定:
- 纯函数，不读取系统时钟，相对表达一律以传入的 reference 为基准；
- 本地墙钟时间按 tz (IANA 时区名) 解释，结果统一换算为 UTC；
- 含糊的星期/钟点表达向未来取最近一次 (例如周五下午在周六说 "friday 5pm" 指下周五)；
- 显式的绝对时间原样接受，即便已经过去；
- 无法解析时返回 ParseFailure，而不是抛异常。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as dateutil_parser
from dateutil.relativedelta import relativedelta

from remindbot.utils import ensure_utc

__all__ = ["ParseFailure", "TimeResolution", "resolve_time", "DEFAULT_HOUR"]


@dataclass(frozen=True)
class ParseFailure:
    expression: str
    reason: str

    def __bool__(self) -> bool:
        return False


TimeResolution = Union[datetime, ParseFailure]

# 只给出日期 (例如 "tomorrow") 时使用的默认钟点
DEFAULT_HOUR = 9

_UNIT_SECONDS = {
    "second": 1, "sec": 1, "secs": 1, "seconds": 1, "s": 1, "detik": 1,
    "minute": 60, "min": 60, "mins": 60, "minutes": 60, "m": 60, "menit": 60,
    "hour": 3600, "hours": 3600, "hr": 3600, "hrs": 3600, "h": 3600, "jam": 3600,
    "day": 86400, "days": 86400, "d": 86400, "hari": 86400,
    "week": 604800, "weeks": 604800, "w": 604800, "minggu": 604800, "pekan": 604800,
}

_NUMBER_WORDS = {
    "a": 1, "an": 1, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "fifteen": 15, "twenty": 20, "thirty": 30,
    "se": 1, "satu": 1, "dua": 2, "tiga": 3, "empat": 4, "lima": 5, "enam": 6,
    "tujuh": 7, "delapan": 8, "sembilan": 9, "sepuluh": 10,
}

_WEEKDAYS = {
    "monday": 0, "mon": 0, "senin": 0,
    "tuesday": 1, "tue": 1, "tues": 1, "selasa": 1,
    "wednesday": 2, "wed": 2, "rabu": 2,
    "thursday": 3, "thu": 3, "thur": 3, "thurs": 3, "kamis": 3,
    "friday": 4, "fri": 4, "jumat": 4, "jum'at": 4,
    "saturday": 5, "sat": 5, "sabtu": 5,
    "sunday": 6, "sun": 6, "ahad": 6,
}

# 时段词: (默认钟点, 是否把 1-11 点解释为下午/晚上)
_PERIODS = {
    "morning": (9, False), "pagi": (9, False),
    "noon": (12, False), "midday": (12, False),
    "afternoon": (14, True), "siang": (13, True),
    "sore": (16, True), "evening": (18, True),
    "night": (20, True), "malam": (20, True), "tonight": (20, True),
    "midnight": (0, False),
}

_NUM = r"(\d+|" + "|".join(sorted(_NUMBER_WORDS, key=len, reverse=True)) + r")"
_UNIT = r"(" + "|".join(sorted(_UNIT_SECONDS, key=len, reverse=True)) + r")"

_DURATION_RE = re.compile(rf"\b{_NUM}\s*{_UNIT}\b")
_HALF_HOUR_RE = re.compile(r"\b(half an hour|half hour|setengah jam)\b")
_RELATIVE_MARKER_RE = re.compile(r"(^|\s)(in|dalam|after)\s|\b(later|from now|lagi|kemudian)\b")

_ISO_DATE_RE = re.compile(r"(?<!\d)\d{4}-\d{1,2}-\d{1,2}(?!\d)")
_MONTH_RE = re.compile(
    r"\b(jan(uary|uari)?|feb(ruary|ruari)?|mar(ch|et)?|apr(il)?|may|mei|jun(e|i)?|jul(y|i)?"
    r"|aug(ust)?|agu(stus)?|sep(t|tember)?|oct(ober)?|okt(ober)?|nov(ember)?|dec(ember)?|des(ember)?)\b"
)
_ID_MONTHS = {
    "januari": "january", "februari": "february", "maret": "march", "mei": "may",
    "juni": "june", "juli": "july", "agustus": "august", "agu": "aug",
    "oktober": "october", "okt": "oct", "desember": "december", "des": "dec",
}
_ID_MONTH_RE = re.compile(r"\b(" + "|".join(sorted(_ID_MONTHS, key=len, reverse=True)) + r")\b", re.IGNORECASE)
_ID_CLOCK_WORD_RE = re.compile(r"\b(jam|pukul|pkl\.?)\s", re.IGNORECASE)
_ID_DATE_WORD_RE = re.compile(r"\b(tanggal|tgl\.?)\s", re.IGNORECASE)
_YEAR_RE = re.compile(r"\b(19|20)\d{2}\b")
_CLOCK_RE = re.compile(
    r"(?:(?:\bat|@|\bjam|\bpukul|\bpkl\.?)\s*)?"
    r"\b(\d{1,2})(?:[:.](\d{2}))?\s*(a\.?m\.?|p\.?m\.?)?(?![\w:])"
)
_NEXT_RE = re.compile(r"\b(next|depan)\b")


def resolve_time(expression: Optional[str], reference: datetime, tz: str = "UTC") -> TimeResolution:
    """把时间表达解析为 UTC 时间

    Args:
        expression: 用户给出的时间表达
        reference: 解析相对表达时的 "现在"；naive 时间按 UTC 处理
        tz: 解释本地墙钟时间所用的 IANA 时区

    Returns:
        带 UTC 时区的 datetime，或 ParseFailure
    """
    if expression is None or not str(expression).strip():
        return ParseFailure(str(expression or ""), "empty expression")

    raw = str(expression).strip()
    try:
        zone = ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        return ParseFailure(raw, f"unknown timezone: {tz}")

    ref_utc = ensure_utc(reference)
    local_now = ref_utc.astimezone(zone)
    text = re.sub(r"\s+", " ", raw.lower()).strip()

    # 带月份名或年月日的表达按绝对日期处理
    if _ISO_DATE_RE.search(text) or (_MONTH_RE.search(text) and re.search(r"\d", text)):
        return _resolve_absolute(raw, local_now, zone)

    relative = _resolve_relative(text, ref_utc)
    if relative is not None:
        return relative

    try:
        composed = _resolve_calendar(text, local_now, zone)
    except ValueError as e:
        return ParseFailure(raw, str(e))
    if composed is not None:
        return composed

    return ParseFailure(raw, "no date or time found")


def _resolve_relative(text: str, ref_utc: datetime) -> Optional[datetime]:
    """"in 2 hours" / "30 minutes later" / "2 jam lagi" / "in 1 hour 30 minutes" """
    if not _RELATIVE_MARKER_RE.search(text):
        return None

    seconds = 0
    if _HALF_HOUR_RE.search(text):
        seconds += 1800
        text = _HALF_HOUR_RE.sub(" ", text)

    for number, unit in _DURATION_RE.findall(text):
        amount = int(number) if number.isdigit() else _NUMBER_WORDS[number]
        seconds += amount * _UNIT_SECONDS[unit]

    if seconds <= 0:
        return None
    return ref_utc + timedelta(seconds=seconds)


def _find_weekday(text: str) -> Optional[int]:
    for token in re.findall(r"[a-z']+", text):
        if token in _WEEKDAYS:
            return _WEEKDAYS[token]
    # "minggu" 既是 "周日" 也是 "周"，只有不跟 "depan"/"lagi" 时才视为周日
    if re.search(r"\bminggu\b(?!\s+(depan|lagi|ini))", text):
        return 6
    return None


def _find_day_offset(text: str) -> Optional[int]:
    if re.search(r"\b(day after tomorrow|lusa)\b", text):
        return 2
    if re.search(r"\b(tomorrow|tmr|tmrw|besok)\b", text):
        return 1
    if re.search(r"\b(today|tonight|hari ini|nanti|malam ini)\b", text):
        return 0
    return None


def _find_period(text: str) -> Optional[str]:
    for word in sorted(_PERIODS, key=len, reverse=True):
        if re.search(rf"\b{word}\b", text):
            return word
    return None


def _find_clock(text: str) -> Optional[tuple[int, int, Optional[str]]]:
    for match in _CLOCK_RE.finditer(text):
        hour_raw, minute_raw, meridiem = match.groups()
        # 单独的数字必须带 "at"/"jam"/冒号/am-pm 之一，避免把 "call 3 people" 当成 3 点
        has_marker = match.group(0).strip()[0] in "a@jp" or minute_raw is not None or meridiem is not None
        if not has_marker:
            continue
        hour = int(hour_raw)
        minute = int(minute_raw or 0)
        normalized = meridiem.replace(".", "") if meridiem else None
        return hour, minute, normalized
    return None


def _resolve_calendar(text: str, local_now: datetime, zone: ZoneInfo) -> Optional[datetime]:
    """按 日期词/星期/钟点/时段 组合解析，返回 None 表示没有可识别的成分"""
    day_offset = _find_day_offset(text)
    weekday = _find_weekday(text)
    period = _find_period(text)
    clock = _find_clock(text)

    if day_offset is None and weekday is None and period is None and clock is None:
        return None

    if clock is not None:
        hour, minute, meridiem = clock
        if meridiem is not None:
            if not 1 <= hour <= 12:
                raise ValueError(f"invalid 12-hour clock value: {hour}")
            if meridiem == "pm" and hour < 12:
                hour += 12
            elif meridiem == "am" and hour == 12:
                hour = 0
        elif period is not None:
            hour = _apply_period(hour, period)
    elif period is not None:
        hour, minute, meridiem = _PERIODS[period][0], 0, None
    else:
        hour, minute, meridiem = DEFAULT_HOUR, 0, None

    if hour > 23 or minute > 59:
        raise ValueError(f"invalid clock time {hour:02d}:{minute:02d}")

    today = local_now.date()
    if weekday is not None:
        days_ahead = (weekday - today.weekday()) % 7
        if days_ahead == 0 and _NEXT_RE.search(text):
            days_ahead = 7
        target_date = today + timedelta(days=days_ahead)
    elif day_offset is not None:
        target_date = today + timedelta(days=day_offset)
    else:
        target_date = today

    candidate = _localize(target_date, time(hour, minute), zone)
    if candidate > local_now:
        return candidate.astimezone(timezone.utc)

    # 向未来取最近一次
    if weekday is not None:
        candidate = _localize(target_date + timedelta(days=7), time(hour, minute), zone)
    elif day_offset is not None:
        # 显式的 "today 8am" 已过去时保留原意，由下一次投递扫描立即发送
        return candidate.astimezone(timezone.utc)
    elif clock is not None and meridiem is None and period is None and 1 <= hour <= 11:
        # "at 5" 在 14:00 说出时取今天 17:00
        later_today = _localize(target_date, time(hour + 12, minute), zone)
        candidate = later_today if later_today > local_now else _localize(
            target_date + timedelta(days=1), time(hour, minute), zone)
    else:
        candidate = _localize(target_date + timedelta(days=1), time(hour, minute), zone)
    return candidate.astimezone(timezone.utc)


def _apply_period(hour: int, period: str) -> int:
    """用时段词消解 12 小时制钟点: "5 sore" -> 17, "11 siang" -> 11, "1 malam" -> 1"""
    if hour > 12 or not _PERIODS[period][1]:
        if period in ("morning", "pagi") and hour == 12:
            return 0
        return hour
    if period == "siang":
        return hour + 12 if hour < 6 else hour
    if period in ("malam", "night", "tonight"):
        if hour == 12:
            return 0
        return hour if hour < 5 else hour + 12
    return hour + 12 if hour < 12 else hour


def _localize(day: date, clock: time, zone: ZoneInfo) -> datetime:
    return datetime.combine(day, clock).replace(tzinfo=zone)


def _to_dateutil_text(text: str) -> str:
    """印尼语月份名、"jam"/"pukul"、"tanggal" 换成 dateutil 认识的写法"""
    text = _ID_DATE_WORD_RE.sub(" ", text)
    text = _ID_CLOCK_WORD_RE.sub(" at ", text)
    return _ID_MONTH_RE.sub(lambda m: _ID_MONTHS[m.group(1).lower()], text)


def _resolve_absolute(raw: str, local_now: datetime, zone: ZoneInfo) -> TimeResolution:
    """ISO 8601 / "March 3 2030 10:00" 这类绝对时间，交给 dateutil

    不使用 fuzzy 模式，整句都必须是日期时间，避免从普通句子里捡出数字或月份词。
    只有日期时钟点取 DEFAULT_HOUR，与 "tomorrow" 一致。
    """
    default = local_now.replace(hour=DEFAULT_HOUR, minute=0, second=0, microsecond=0, tzinfo=None)
    try:
        parsed = dateutil_parser.parse(_to_dateutil_text(raw), default=default)
    except (ValueError, OverflowError) as e:
        return ParseFailure(raw, f"no date or time found: {e}")

    if parsed.tzinfo is not None:
        return parsed.astimezone(timezone.utc)

    localized = parsed.replace(tzinfo=zone)
    # 未写年份且已过去的日期取明年
    if localized <= local_now and not _YEAR_RE.search(raw) and not _ISO_DATE_RE.search(raw):
        localized = localized + relativedelta(years=1)
    return localized.astimezone(timezone.utc)
