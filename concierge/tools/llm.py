"""OpenAI-backed language model that returns parsed JSON objects."""

import json
import logging
import re
from typing import Any, Optional

from openai import AsyncOpenAI

from concierge.config import ModelConfig

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_text(text: str) -> dict[str, Any]:
    """Parse a model reply as a JSON object, tolerating markdown code fences."""
    cleaned = _FENCE.sub("", (text or "").strip())
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


class OpenAIJsonModel:
    """Chat completion in JSON mode."""

    def __init__(self, config: ModelConfig, client: Optional[AsyncOpenAI] = None) -> None:
        if client is None:
            if not config.api_key:
                raise ValueError("OPENAI_API_KEY must be set to use the language model")
            client = AsyncOpenAI(api_key=config.api_key)
        self._client = client
        self._config = config

    async def generate_json(self, prompt: str, system: Optional[str] = None) -> dict[str, Any]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        response = await self._client.chat.completions.create(
            model=self._config.llm_model,
            temperature=self._config.llm_temperature,
            response_format={"type": "json_object"},
            messages=messages,
        )
        content = response.choices[0].message.content or ""
        logger.debug("Model reply: %d chars", len(content))
        return parse_json_text(content)
