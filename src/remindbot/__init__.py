"""remindbot: 个人提醒机器人 (聊天通道 + 意图识别 + 提醒投递)"""

__version__ = "0.3.0"
