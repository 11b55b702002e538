"""
OpenAI Service for guardian agents and insight synthesis
One call = {system instruction, user text, token budget, temperature} -> text
"""
import json
import re
from typing import Any, Dict, List, Optional
from openai import AsyncOpenAI
from config import settings
from services.errors import TransportError
import logging

logger = logging.getLogger(__name__)


class OpenAIService:
    """Service for calling the OpenAI chat completions API"""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.client = None
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_MODEL
        self.timeout = settings.LLM_TIMEOUT_SECONDS
        self.max_retries = settings.LLM_MAX_RETRIES

    def _ensure_client(self):
        """Initialize client if not already done"""
        if self.client is None:
            if not self.api_key:
                raise TransportError("OPENAI_API_KEY is not configured")
            # Timeout lives at the transport boundary so no call can hang forever
            self.client = AsyncOpenAI(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=self.max_retries,
            )

    async def generate(
        self,
        system_instruction: Optional[str],
        user_text: str,
        max_output_tokens: int,
        temperature: float,
    ) -> str:
        """
        Run one completion and return its text.

        Raises:
            TransportError: on any API, network, timeout or empty-output failure
        """
        self._ensure_client()

        messages: List[Dict[str, Any]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": user_text})

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_completion_tokens=max_output_tokens,
                temperature=temperature,
            )
        except Exception as e:
            raise TransportError(f"OpenAI API error: {e}") from e

        if not response.choices:
            raise TransportError("OpenAI returned no choices")
        content = response.choices[0].message.content
        if not content or not content.strip():
            finish_reason = getattr(response.choices[0], "finish_reason", None)
            raise TransportError(f"OpenAI empty response (finish_reason={finish_reason})")

        logger.debug(f"[OPENAI] model={self.model} tokens<={max_output_tokens} chars={len(content)}")
        return content.strip()


def parse_json_response(raw_text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of model output, tolerating markdown code fences.

    Raises:
        ValueError: if the text is not a JSON object (json.JSONDecodeError included)
    """
    cleaned = raw_text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```(?:json)?", "", cleaned, flags=re.IGNORECASE).strip()
        cleaned = re.sub(r"```$", "", cleaned).strip()

    parsed = json.loads(cleaned)
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


# Singleton instance
openai_service = OpenAIService()
