"""内嵌 uvicorn: 与提醒扫描、Telegram 轮询共用同一个事件循环"""

from __future__ import annotations

import asyncio
import contextlib

import uvicorn
from fastapi import FastAPI

from remindbot.logger import logger


async def main_loop(
    app: FastAPI,
    shutdown_event: asyncio.Event,
    host: str = "0.0.0.0",
    port: int = 3000,
) -> None:
    # log_config=None: uvicorn 的日志交给 remindbot.logger 统一转发
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_config=None, access_log=False))
    # 系统信号统一由 main.py 处理
    server.install_signal_handlers = lambda: None

    serve_task = asyncio.create_task(server.serve(), name="remindbot-http")
    stop_task = asyncio.create_task(shutdown_event.wait(), name="remindbot-http-stop")
    logger.info(f"Webhook / 触发接口监听于 http://{host}:{port}")

    try:
        done, _ = await asyncio.wait({serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if stop_task in done:
            server.should_exit = True
            await serve_task
        elif serve_task.exception() is not None:
            # 例如端口被占用，交给上层结束进程
            raise serve_task.exception()
        elif not shutdown_event.is_set():
            logger.warning("HTTP 服务意外退出")
    finally:
        stop_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await stop_task
        logger.info("HTTP 服务已关闭")
