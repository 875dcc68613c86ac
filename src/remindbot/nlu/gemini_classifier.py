import asyncio
from typing import Any, Optional

from google import genai
from google.genai import types

from remindbot.logger import logger
from remindbot.nlu.base import INTENT_RESPONSE_SCHEMA, IntentClassifier

__all__ = ["GeminiIntentClassifier"]


class GeminiIntentClassifier(IntentClassifier):
    name = "gemini"
    API_RETRY_DELAYS_SECONDS = [5.0, 15.0]

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.0-flash",
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__(timeout=timeout)
        self.model = model
        self.client = genai.Client(api_key=api_key, http_options={"base_url": base_url} if base_url else None)

    @staticmethod
    def _is_retryable_error(error: Exception) -> bool:
        msg = str(error).lower()
        signals = [
            "429",
            "rate limit",
            "resource_exhausted",
            "temporarily unavailable",
            "timeout",
            "timed out",
            "503",
            "502",
            "504",
            "connection reset",
            "connection aborted",
        ]
        return any(s in msg for s in signals)

    async def _generate_once(self, text: str, config: types.GenerateContentConfig) -> Any:
        return await asyncio.to_thread(
            self.client.models.generate_content,
            model=self.model,
            contents=[{"role": "user", "parts": [{"text": text}]}],
            config=config,
        )

    async def _generate_once_with_retry(self, text: str, config: types.GenerateContentConfig) -> Any:
        for idx, delay in enumerate([0.0, *self.API_RETRY_DELAYS_SECONDS]):
            try:
                if delay > 0:
                    await asyncio.sleep(delay)
                return await self._generate_once(text, config)
            except Exception as e:
                is_last = idx == len(self.API_RETRY_DELAYS_SECONDS)
                if is_last or not self._is_retryable_error(e):
                    raise
                logger.warning(
                    f"Gemini 请求暂时失败，准备重试: attempt={idx + 1}/{len(self.API_RETRY_DELAYS_SECONDS) + 1}, delay={self.API_RETRY_DELAYS_SECONDS[idx]}s, error={e}"
                )

        raise RuntimeError("Gemini 请求重试异常退出")

    async def _request(self, text: str, instruction: str) -> str:
        config = types.GenerateContentConfig(
            system_instruction=instruction,
            response_mime_type="application/json",
            response_json_schema=INTENT_RESPONSE_SCHEMA,
        )
        logger.trace(f"Gemini请求发起 Model:{self.model}; Text:{text!r}")
        response = await self._generate_once_with_retry(text, config)
        logger.trace(f"Gemini请求收到响应: {response}")
        return response.text or ""
