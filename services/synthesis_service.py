"""
Insight synthesis service
Aggregates every guardian answer into one structured InsightSummary with a single LLM call.
"""
from typing import List, Optional
import logging

from pydantic import ValidationError as SchemaValidationError

from config import settings
from schemas import AgentResponse, DEFAULT_INSIGHT_SUMMARY, InsightSummary, SENTIMENT_DESCRIPTORS
from services.openai_service import OpenAIService, openai_service, parse_json_response

logger = logging.getLogger(__name__)


SUMMARY_JSON_SHAPE = """{
  "mainThemes": ["theme1", "theme2", "theme3"],
  "consensus": "brief summary of what most guardians agreed on",
  "divergentViews": ["view1", "view2"],
  "actionItems": ["action1", "action2", "action3"],
  "overallSentiment": "one descriptor from the list above, copied exactly",
  "sentimentDetail": {
    "tone": "brief description of the overall tone",
    "confidence": "high | medium | low",
    "nuance": "key nuances or subtleties in the sentiment"
  },
  "guardianScores": {
    "aspects": [
      {
        "name": "aspect name (e.g. Feasibility, Cost-effectiveness, Risk level)",
        "score": 7.5,
        "supportCount": 6,
        "concerns": ["concern1", "concern2"]
      }
    ],
    "overallScore": 7.2
  }
}"""


class SynthesisService:
    """Service for the second-stage cross-persona summary"""

    def __init__(self, llm: Optional[OpenAIService] = None):
        self.llm = llm or openai_service
        self.max_tokens = settings.SYNTHESIS_MAX_TOKENS
        self.temperature = settings.SYNTHESIS_TEMPERATURE

    def build_prompt(self, responses: List[AgentResponse], original_query: str) -> str:
        """Build the aggregation prompt embedding every persona's answer"""
        combined = "\n\n".join(f"{r.persona.name}: {r.response}" for r in responses)
        descriptors = "\n".join(f"- {d}" for d in SENTIMENT_DESCRIPTORS)

        return f"""Based on these {len(responses)} different perspectives on the query "{original_query}", create a comprehensive insight summary.

IMPORTANT: Write every free-text value in the same language as the original query "{original_query}". If the query is in Indonesian, answer in Indonesian; if it is in English, answer in English, and so on. Only the JSON keys and the overallSentiment descriptor stay in English.

{combined}

Analyze the perspectives and provide:
1. Main themes that emerged across responses
2. Areas of consensus among the guardians
3. Notable divergent viewpoints
4. Key action items or recommendations
5. Sentiment analysis with a precise descriptor
6. Guardian scoring for the key aspects, options or ideas in the query: score each from 0 to 10 based on guardian sentiment, count how many guardians support it, list the concerns raised, and give an overall score from 0 to 10

Choose overallSentiment from exactly one of:
{descriptors}

Respond with JSON only, using this structure:
{SUMMARY_JSON_SHAPE}"""

    def parse_summary(self, raw_text: str) -> InsightSummary:
        """
        Parse model output into an InsightSummary.

        Raises:
            ValueError: if the output is not JSON or does not fit the summary shape
        """
        data = parse_json_response(raw_text)
        try:
            return InsightSummary.model_validate(data)
        except SchemaValidationError as e:
            raise ValueError(f"Summary does not match the expected shape: {e.error_count()} errors") from e

    async def summarize(self, responses: List[AgentResponse], original_query: str) -> InsightSummary:
        """
        Generate the insight summary. Never raises: failures return DEFAULT_INSIGHT_SUMMARY.
        """
        prompt = self.build_prompt(responses, original_query)

        try:
            raw = await self.llm.generate(
                system_instruction=None,
                user_text=prompt,
                max_output_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            return self.parse_summary(raw)
        except Exception as e:
            logger.error(f"Error generating insight summary: {e}")
            return DEFAULT_INSIGHT_SUMMARY


# Singleton instance
synthesis_service = SynthesisService()
