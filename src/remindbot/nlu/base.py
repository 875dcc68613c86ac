import asyncio
import json
import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

from remindbot.datamodel import Intent, IntentName, UnknownIntent, intent_from_payload
from remindbot.logger import logger
from remindbot.utils import utc_to_user_local

__all__ = [
    "IntentClassifier", "INTENT_RESPONSE_SCHEMA", "SYSTEM_INSTRUCTION",
    "build_instruction", "parse_classifier_output",
]

SYSTEM_INSTRUCTION = (
    "You are a helpful reminder bot assistant. Analyze the user's request to determine their intent "
    "(ADD_REMINDER, LIST_REMINDERS, DELETE_REMINDER, EDIT_REMINDER, or UNKNOWN) and extract relevant data "
    "according to the provided JSON schema. Focus only on reminder-related tasks.\n"
    "- task: what to be reminded about, in the user's own words.\n"
    "- time: the time expression exactly as the user wrote it (for example \"tomorrow at 10am\", "
    "\"in 2 hours\", \"besok jam 9 pagi\"). Do not convert it.\n"
    "- target: words identifying an existing reminder to edit or delete.\n"
    "- updates: the new task and/or time for EDIT_REMINDER."
)

# JSON Schema 形式的结构化输出约束，两个识别器共用
INTENT_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "intent": {
            "type": "string",
            "description": "The user's intent",
            "enum": [name.value for name in IntentName],
        },
        "data": {
            "type": ["object", "null"],
            "description": "Extracted data based on intent",
            "properties": {
                "task": {"type": ["string", "null"]},
                "time": {"type": ["string", "null"]},
                "target": {"type": ["string", "null"]},
                "updates": {
                    "type": ["object", "null"],
                    "properties": {
                        "task": {"type": ["string", "null"]},
                        "time": {"type": ["string", "null"]},
                    },
                    "required": ["task", "time"],
                    "additionalProperties": False,
                },
            },
            "required": ["task", "time", "target", "updates"],
            "additionalProperties": False,
        },
    },
    "required": ["intent", "data"],
    "additionalProperties": False,
}

_CODE_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL | re.IGNORECASE)


def build_instruction(now: datetime, tz: str) -> str:
    """附带用户当前本地时间，便于模型理解 "明天" 等相对说法"""
    local_now = utc_to_user_local(now, tz)
    return f"{SYSTEM_INSTRUCTION}\nCurrent local time: {local_now.strftime('%Y-%m-%d %H:%M (%A)')} ({tz})."


def parse_classifier_output(raw: Optional[str]) -> Intent:
    """解析模型输出的 JSON，容忍代码块包裹；无法解析时返回带错误的 UnknownIntent"""
    if raw is None or not raw.strip():
        return UnknownIntent(error="empty classifier response")

    text = raw.strip()
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        # 模型偶尔会在 JSON 前后附加说明文字
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            return UnknownIntent(error=f"invalid classifier JSON: {e.msg}")
        try:
            payload = json.loads(text[start:end + 1])
        except json.JSONDecodeError as inner:
            return UnknownIntent(error=f"invalid classifier JSON: {inner.msg}")

    if not isinstance(payload, dict):
        return UnknownIntent(error="classifier response is not an object")
    return intent_from_payload(payload)


class IntentClassifier(ABC):
    """把用户原话转换为 Intent

    classify 不抛异常: 超时、网络错误、输出无法解析都以 UnknownIntent(error=...) 返回。
    """

    name = "base"

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout

    @abstractmethod
    async def _request(self, text: str, instruction: str) -> str:
        """向模型发起一次请求，返回原始 JSON 文本"""

    async def classify(self, text: str, now: datetime, tz: str) -> Intent:
        instruction = build_instruction(now, tz)
        logger.debug(f"意图识别请求: provider={self.name}, text={text!r}")
        try:
            raw = await asyncio.wait_for(self._request(text, instruction), self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"意图识别超时: provider={self.name}, timeout={self.timeout}s")
            return UnknownIntent(error="classifier timeout")
        except Exception as e:
            logger.exception(f"意图识别请求失败: provider={self.name}, error={e}")
            return UnknownIntent(error=str(e) or e.__class__.__name__)

        logger.trace(f"意图识别原始响应: {raw!r}")
        intent = parse_classifier_output(raw)
        if isinstance(intent, UnknownIntent) and intent.error:
            logger.warning(f"意图识别结果无法解析: provider={self.name}, error={intent.error}")
        return intent
