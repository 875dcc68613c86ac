__all__ = ["RemindBotError", "StoreError", "ConfigError"]


class RemindBotError(Exception):
    """remindbot 所有自定义异常的基类"""


class StoreError(RemindBotError):
    """提醒存储读写失败 (连接未初始化、SQL 错误等)"""


class ConfigError(RemindBotError):
    """配置缺失或非法"""
