from typing import Optional

from openai import AsyncOpenAI

from remindbot.logger import logger
from remindbot.nlu.base import INTENT_RESPONSE_SCHEMA, IntentClassifier

__all__ = ["OpenAIIntentClassifier"]


class OpenAIIntentClassifier(IntentClassifier):
    name = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-5-nano",
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__(timeout=timeout)
        self.base_url = base_url
        self.model = model
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
        )

    async def _request(self, text: str, instruction: str) -> str:
        logger.trace(f"LLM请求发起 BaseUrl:{self.base_url}; Model:{self.model}; Text:{text!r}")
        # Structured Outputs  docs: https://platform.openai.com/docs/guides/structured-outputs
        response = await self.client.responses.create(
            model=self.model,
            instructions=instruction,
            input=[{"role": "user", "content": text}],
            text={
                "format": {
                    "type": "json_schema",
                    "name": "reminder_intent",
                    "schema": INTENT_RESPONSE_SCHEMA,
                    "strict": True,
                }
            },
        )
        logger.trace(f"LLM请求收到响应: {response}")
        return response.output_text or ""
