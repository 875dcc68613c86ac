import asyncio
import datetime
from functools import wraps
from typing import Iterable, Optional

import telegram
from telegram.ext import Application, ApplicationBuilder, CommandHandler, ContextTypes, MessageHandler, filters

from remindbot.channels.base import TELEGRAM_USER_PREFIX, Messenger
from remindbot.config.messages import Messages
from remindbot.datamodel import ChannelType, IncomingMessage
from remindbot.events import Bus, E
from remindbot.logger import logger

__all__ = ["TelegramMessenger", "build_application", "telegram_user_id", "main"]


def telegram_user_id(telegram_id: int) -> str:
    return f"{TELEGRAM_USER_PREFIX}{telegram_id}"


def requires_auth(func):
    @wraps(func)
    async def decorated(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        allowed = context.bot_data.get("allowed_user_ids") or frozenset()
        if allowed and update.effective_user.id not in allowed:
            logger.warning(f"用户 {update.effective_user.id} 未经允许访问 Bot")
            await update.message.reply_text(context.bot_data["messages"].text("not_allowed"))
        else:
            return await func(update, context, *args, **kwargs)
    return decorated


@requires_auth
async def cmd_start(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.info(f"收到 /start 命令来自 Telegram ID: {update.effective_user.id}")
    await update.message.reply_text(context.bot_data["messages"].text("welcome"))


@requires_auth
async def cmd_help(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(context.bot_data["messages"].text("unknown_help"))


@requires_auth
async def process_message(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not update.message or not update.message.text:
        return

    user_id = telegram_user_id(update.effective_user.id)
    logger.info(f"User ID: {user_id} 消息内容: {update.message.text}")

    # 发送到事件总线
    incoming_msg = IncomingMessage(
        channel_type=ChannelType.TELEGRAM_BOT_POLLING,
        user_id=user_id,
        content=update.message.text,
        timestamp=update.message.date,
        metadata={"channel_chat_id": update.effective_chat.id},
    )
    context.bot_data["bus"].emit(E.IO_MESSAGE_RECEIVED, incoming_msg)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """处理 telegram 库中发生的错误"""
    logger.opt(exception=context.error).error(f"Telegram 错误: {context.error}")


def bot_error_callback(error: telegram.error.TelegramError) -> None:
    if isinstance(error, telegram.error.NetworkError):
        logger.warning(f"Telegram Bot 网络错误: {error}")
    else:
        logger.opt(exception=error).error(f"Telegram Bot 发生预期外的错误: {error}")


class TelegramMessenger(Messenger):
    """通过 Bot API 向 "tg:<id>" 用户发送消息，失败后延迟重试一次"""

    def __init__(self, bot: telegram.Bot, retry_delay: float = 5.0) -> None:
        self.bot = bot
        self.retry_delay = retry_delay

    async def deliver(self, user_id: str, text: str) -> bool:
        if not user_id.startswith(TELEGRAM_USER_PREFIX):
            logger.error(f"无法向非 Telegram 用户发送消息: {user_id}")
            return False
        try:
            chat_id = int(user_id[len(TELEGRAM_USER_PREFIX):])
        except ValueError:
            logger.error(f"非法的 Telegram user_id: {user_id}")
            return False

        logger.info(f"发送消息给用户 {user_id}: {text}")
        try:
            # 已初始化时为空操作
            await self.bot.initialize()
            await self.bot.send_message(chat_id=chat_id, text=text)
            return True
        except Exception as e:
            logger.opt(exception=e).error(f"向 Telegram 用户 {chat_id} 发送消息失败: {e}, 即将重试")

        try:
            await asyncio.sleep(self.retry_delay)
            await self.bot.send_message(chat_id=chat_id, text=text)
            return True
        except Exception as e:
            logger.opt(exception=e).error(f"[重试] 向 Telegram 用户 {chat_id} 发送消息失败: {e}")
            return False


def build_application(
    token: str,
    bus: Bus,
    messages: Messages,
    allowed_user_ids: Optional[Iterable[int]] = None,
) -> Application:
    app = ApplicationBuilder().token(token).build()
    app.bot_data["bus"] = bus
    app.bot_data["messages"] = messages
    app.bot_data["allowed_user_ids"] = frozenset(allowed_user_ids or ())

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, process_message))
    app.add_error_handler(error_handler)
    return app


async def main(app: Application, shutdown_event: asyncio.Event) -> None:
    try:
        await app.initialize()
        await app.updater.start_polling(
            poll_interval=0.5,
            timeout=datetime.timedelta(seconds=15),
            bootstrap_retries=-1,
            drop_pending_updates=False,  # 保留下线期间的消息
            error_callback=bot_error_callback,
        )
        await app.start()
        logger.info("Telegram Bot Polling 已启动")

        await shutdown_event.wait()
    finally:
        logger.info("关闭 Telegram Bot Polling...")
        if app.updater.running:
            await app.updater.stop()
        if app.running:
            await app.stop()
        await app.shutdown()
