import asyncio
import signal
import time

from remindbot.config import settings
from remindbot.logger import logger, setup_logging

from remindbot.admin.app import create_app
from remindbot.admin.http_server import main_loop as http_main
from remindbot.admin.schemas import RuntimeControl
from remindbot.channels.base import RoutingMessenger
from remindbot.channels.whatsapp_bridge import BridgeMessenger
from remindbot.config.messages import get_messages
from remindbot.core.lifecycle import ReminderEngine
from remindbot.core.orchestrator import ReminderBot
from remindbot.datamodel import ChannelType
from remindbot.errors import ConfigError
from remindbot.events import bus
from remindbot.metrics import runtime_metrics
from remindbot.nlu.base import IntentClassifier
from remindbot.storage.db_config import init_db
from remindbot.storage.reminder import SqliteReminderStore
import remindbot.world.reminder

shutdown_event = asyncio.Event()


def signal_handler(sig, frame):
    """处理 SIGINT / SIGTERM 信号"""
    logger.info("收到中断信号,正在依次关闭组件...")
    shutdown_event.set()


def _create_classifier() -> IntentClassifier:
    """根据配置创建意图识别器"""
    if settings.NLU_PROVIDER == "openai":
        from remindbot.nlu.openai_classifier import OpenAIIntentClassifier

        return OpenAIIntentClassifier(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            model=settings.OPENAI_MODEL,
            timeout=settings.NLU_TIMEOUT_SECONDS,
        )

    if settings.NLU_PROVIDER == "gemini":
        from remindbot.nlu.gemini_classifier import GeminiIntentClassifier

        return GeminiIntentClassifier(
            api_key=settings.GEMINI_API_KEY,
            model=settings.GEMINI_MODEL,
            base_url=settings.GEMINI_BASE_URL,
            timeout=settings.NLU_TIMEOUT_SECONDS,
        )

    raise ConfigError(f"不支持的 NLU_PROVIDER: {settings.NLU_PROVIDER}")


async def main() -> None:
    # 注册信号处理器
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    conn = await init_db(settings.DB_PATH)
    store = SqliteReminderStore(conn)
    messenger = RoutingMessenger()
    bridge = None
    telegram_app = None

    if settings.ENABLE_WHATSAPP_BRIDGE:
        bridge = BridgeMessenger(settings.BRIDGE_API_URL, timeout=settings.MESSENGER_TIMEOUT_SECONDS)
        messenger.register(ChannelType.WHATSAPP_BRIDGE, bridge)
    else:
        logger.warning("WhatsApp bridge 已禁用")

    if settings.ENABLE_TELEGRAM_BOT_POLLING:
        from remindbot.channels.telegram_polling import TelegramMessenger, build_application

        telegram_app = build_application(
            settings.TELEGRAM_BOT_TOKEN,
            bus,
            messages=get_messages(settings.BOT_LOCALE),
            allowed_user_ids=settings.ALLOWED_TELEGRAM_USER_IDS,
        )
        messenger.register(ChannelType.TELEGRAM_BOT_POLLING, TelegramMessenger(telegram_app.bot))
    else:
        logger.warning("Telegram Bot Polling 已禁用")

    engine = ReminderEngine(
        store,
        messenger,
        timezone=settings.USER_TIMEZONE,
        locale=settings.BOT_LOCALE,
        store_timeout=settings.STORE_TIMEOUT_SECONDS,
        messenger_timeout=settings.MESSENGER_TIMEOUT_SECONDS,
        sweep_concurrency=settings.SWEEP_CONCURRENCY,
        events=bus,
    )
    bot = ReminderBot(_create_classifier(), engine, timezone=settings.USER_TIMEZONE)
    bot.attach(bus)
    runtime_metrics.attach(bus)

    control = RuntimeControl(
        shutdown_event=shutdown_event,
        started_at=time.time(),
        bus=bus,
        auth_token=settings.TRIGGER_AUTH_TOKEN,
        owner_whatsapp_id=settings.OWNER_WHATSAPP_ID,
        whatsapp_enabled=settings.ENABLE_WHATSAPP_BRIDGE,
        telegram_enabled=settings.ENABLE_TELEGRAM_BOT_POLLING,
    )
    app = create_app(control, engine, bot, store)

    try:
        tasks = [
            remindbot.world.reminder.main_loop(engine, shutdown_event, settings.SWEEP_INTERVAL_SECONDS),
            http_main(app, shutdown_event, settings.HTTP_HOST, settings.HTTP_PORT),
        ]
        if telegram_app is not None:
            from remindbot.channels.telegram_polling import main as telegram_main

            tasks.append(telegram_main(telegram_app, shutdown_event))

        await asyncio.gather(*tasks)
    finally:
        logger.info("关闭 RemindBot...")
        await bot.shutdown()
        if bridge is not None:
            await bridge.aclose()

        logger.info("关闭数据库连接...")
        await conn.close()
        logger.info("RemindBot 已关闭")


def run() -> None:
    setup_logging(
        log_level=settings.LOG_LEVEL,
        log_file=settings.LOG_FILE,
        console_level=settings.CONSOLE_LOG_LEVEL,
        serialize=settings.LOG_SERIALIZE,
    )
    try:
        settings.validate_settings()
    except ConfigError:
        raise SystemExit(1)

    logger.info("启动 RemindBot...")
    asyncio.run(main())


if __name__ == "__main__":
    run()
