"""
Guardian agent service
Fans one query out to every persona concurrently and collects the answers in registry order.
"""
import asyncio
import logging
from typing import List, Optional, Sequence

from config import settings
from models import utcnow
from schemas import AgentResponse, Persona
from services.openai_service import OpenAIService, openai_service
from services.personas import PERSONAS

logger = logging.getLogger(__name__)


PLACEHOLDER_RESPONSE = "I'm having trouble connecting right now. Please try again later."


class GuardianService:
    """Service for querying the guardian personas"""

    def __init__(
        self,
        llm: Optional[OpenAIService] = None,
        personas: Sequence[Persona] = PERSONAS,
        max_concurrency: Optional[int] = None,
    ):
        self.llm = llm or openai_service
        self.personas = tuple(personas)
        self.max_concurrency = max(1, max_concurrency or settings.MAX_CONCURRENT_AGENTS)
        self.max_tokens = settings.PERSONA_MAX_TOKENS
        self.temperature = settings.PERSONA_TEMPERATURE

    async def invoke(self, persona: Persona, query: str) -> AgentResponse:
        """
        Ask a single persona. Never raises: any failure becomes the placeholder answer.
        Cancellation still propagates.
        """
        try:
            text = await self.llm.generate(
                system_instruction=persona.system_prompt,
                user_text=query,
                max_output_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as e:
            logger.error(f"Error getting response from {persona.name}: {e}")
            text = PLACEHOLDER_RESPONSE

        return AgentResponse(persona=persona, response=text, timestamp=utcnow())

    async def run_all(self, query: str) -> List[AgentResponse]:
        """
        Ask every persona concurrently (at most max_concurrency calls in flight).

        Returns:
            One AgentResponse per persona, in registry order regardless of completion order
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _limited(persona: Persona) -> AgentResponse:
            async with semaphore:
                return await self.invoke(persona, query)

        responses = await asyncio.gather(*[_limited(p) for p in self.personas])

        placeholders = sum(1 for r in responses if r.response == PLACEHOLDER_RESPONSE)
        if placeholders:
            logger.warning(f"{placeholders}/{len(responses)} guardians answered with the placeholder")
        return list(responses)


# Singleton instance
guardian_service = GuardianService()
