import os
from typing import FrozenSet

from dotenv import load_dotenv

from remindbot.errors import ConfigError
from remindbot.logger import logger
from remindbot.utils import is_valid_timezone

load_dotenv()

__all__ = [
    "USER_TIMEZONE", "BOT_LOCALE",
    "DB_PATH", "LOG_FILE", "LOG_LEVEL", "CONSOLE_LOG_LEVEL", "LOG_SERIALIZE",
    "SWEEP_INTERVAL_SECONDS", "SWEEP_CONCURRENCY",
    "STORE_TIMEOUT_SECONDS", "MESSENGER_TIMEOUT_SECONDS", "NLU_TIMEOUT_SECONDS",
    "NLU_PROVIDER", "GEMINI_API_KEY", "GEMINI_BASE_URL", "GEMINI_MODEL",
    "OPENAI_API_KEY", "OPENAI_BASE_URL", "OPENAI_MODEL",
    "ENABLE_TELEGRAM_BOT_POLLING", "TELEGRAM_BOT_TOKEN", "ALLOWED_TELEGRAM_USER_IDS",
    "ENABLE_WHATSAPP_BRIDGE", "BRIDGE_API_URL", "OWNER_WHATSAPP_ID",
    "HTTP_HOST", "HTTP_PORT", "TRIGGER_AUTH_TOKEN",
    "validate_settings",
]


def _parse_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on", "y")


def _parse_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"{name} 非法: {raw!r}, 已回退到 {default}")
        return default


def _parse_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"{name} 非法: {raw!r}, 已回退到 {default}")
        return default


def _parse_id_list(name: str) -> FrozenSet[int]:
    """逗号分隔的数字 ID 列表，非法项忽略"""
    ids = set()
    for part in os.getenv(name, "").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.add(int(part))
        except ValueError:
            logger.warning(f"{name} 中存在非法 ID: {part!r}, 已忽略")
    return frozenset(ids)


# 动态加载的环境变量
# 用户时区与语言
USER_TIMEZONE = os.getenv("USER_TIMEZONE", "Asia/Jakarta")
BOT_LOCALE = os.getenv("BOT_LOCALE", "en").strip().lower()

# 存储与日志
DB_PATH = os.getenv("DB_PATH", "data/remindbot.db")
LOG_FILE = os.getenv("LOG_FILE", "logs/remindbot.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")
CONSOLE_LOG_LEVEL = os.getenv("CONSOLE_LOG_LEVEL", "INFO")
LOG_SERIALIZE = _parse_bool("LOG_SERIALIZE", False)

# 投递扫描
SWEEP_INTERVAL_SECONDS = _parse_float("SWEEP_INTERVAL_SECONDS", 60.0)
SWEEP_CONCURRENCY = _parse_int("SWEEP_CONCURRENCY", 1)

# 外部调用超时
STORE_TIMEOUT_SECONDS = _parse_float("STORE_TIMEOUT_SECONDS", 10.0)
MESSENGER_TIMEOUT_SECONDS = _parse_float("MESSENGER_TIMEOUT_SECONDS", 15.0)
NLU_TIMEOUT_SECONDS = _parse_float("NLU_TIMEOUT_SECONDS", 45.0)

# 意图识别
NLU_PROVIDER = os.getenv("NLU_PROVIDER", "gemini").strip().lower()
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-5-nano")

# Telegram Bot
ENABLE_TELEGRAM_BOT_POLLING = _parse_bool("ENABLE_TELEGRAM_BOT_POLLING", False)
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
ALLOWED_TELEGRAM_USER_IDS = _parse_id_list("ALLOWED_TELEGRAM_USER_IDS")

# WhatsApp bridge
ENABLE_WHATSAPP_BRIDGE = _parse_bool("ENABLE_WHATSAPP_BRIDGE", True)
BRIDGE_API_URL = os.getenv("BRIDGE_API_URL", "http://localhost:3001").rstrip("/")
OWNER_WHATSAPP_ID = os.getenv("OWNER_WHATSAPP_ID", "")

# HTTP 服务
HTTP_HOST = os.getenv("HTTP_HOST", "0.0.0.0")
HTTP_PORT = _parse_int("HTTP_PORT", 3000)
TRIGGER_AUTH_TOKEN = os.getenv("TRIGGER_AUTH_TOKEN", "")


def _fail(message: str) -> None:
    logger.critical(message)
    raise ConfigError(message)


def validate_settings() -> None:
    """启动前检查配置，缺失或非法时记录 CRITICAL 日志并抛出 ConfigError"""
    if not is_valid_timezone(USER_TIMEZONE):
        _fail(f"USER_TIMEZONE 非法: {USER_TIMEZONE}")

    if NLU_PROVIDER not in ("openai", "gemini"):
        _fail(f"NLU_PROVIDER 非法: {NLU_PROVIDER}, 仅支持 openai 或 gemini")
    if NLU_PROVIDER == "gemini" and not GEMINI_API_KEY:
        _fail("当前 NLU_PROVIDER=gemini, 但 GEMINI_API_KEY 未设置")
    if NLU_PROVIDER == "openai" and not OPENAI_API_KEY:
        _fail("当前 NLU_PROVIDER=openai, 但 OPENAI_API_KEY 未设置")

    if not ENABLE_TELEGRAM_BOT_POLLING and not ENABLE_WHATSAPP_BRIDGE:
        _fail("Telegram 与 WhatsApp bridge 均未启用, 至少需要启用一个通道")
    if ENABLE_TELEGRAM_BOT_POLLING and not TELEGRAM_BOT_TOKEN:
        _fail("已启用 Telegram Bot Polling, 但 TELEGRAM_BOT_TOKEN 未设置")
    if ENABLE_TELEGRAM_BOT_POLLING and not ALLOWED_TELEGRAM_USER_IDS:
        logger.warning("未设置 ALLOWED_TELEGRAM_USER_IDS, 所有 Telegram 用户都可以使用")

    if SWEEP_INTERVAL_SECONDS <= 0:
        _fail(f"SWEEP_INTERVAL_SECONDS 必须为正数: {SWEEP_INTERVAL_SECONDS}")
    if SWEEP_CONCURRENCY < 1:
        _fail(f"SWEEP_CONCURRENCY 必须 >= 1: {SWEEP_CONCURRENCY}")
    for name, value in (
        ("STORE_TIMEOUT_SECONDS", STORE_TIMEOUT_SECONDS),
        ("MESSENGER_TIMEOUT_SECONDS", MESSENGER_TIMEOUT_SECONDS),
        ("NLU_TIMEOUT_SECONDS", NLU_TIMEOUT_SECONDS),
    ):
        if value <= 0:
            _fail(f"{name} 必须为正数: {value}")

    if not TRIGGER_AUTH_TOKEN:
        logger.warning("未设置 TRIGGER_AUTH_TOKEN, /trigger 与 /api 接口将不做鉴权")
