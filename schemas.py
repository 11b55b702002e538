"""
Domain types shared by the pipeline, the stores and the API

Plain dataclasses for values the pipeline builds itself; pydantic models for
the insight summary, which is parsed out of model output and must be validated.
"""
from dataclasses import dataclass, field
from datetime import datetime, date
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# Fixed vocabulary for InsightSummary.overall_sentiment
SENTIMENT_DESCRIPTORS = [
    "Cautiously Optimistic",
    "Constructively Critical",
    "Enthusiastically Supportive",
    "Analytically Neutral",
    "Pragmatically Realistic",
    "Strategically Concerned",
    "Confidently Encouraging",
    "Thoughtfully Balanced",
    "Cautiously Skeptical",
    "Constructively Engaged",
]
NEUTRAL_SENTIMENT = "Analytically Neutral"

UNLIMITED = -1  # daily_limit / remaining sentinel for plans without a ceiling


@dataclass(frozen=True)
class Persona:
    """One guardian identity queried independently"""
    id: str
    name: str
    avatar: str
    personality: str
    perspective: str
    system_prompt: str

    def display(self) -> dict:
        """Public fields (the instruction profile stays server-side)"""
        return {
            "id": self.id,
            "name": self.name,
            "avatar": self.avatar,
            "personality": self.personality,
            "perspective": self.perspective,
        }


@dataclass(frozen=True)
class AgentResponse:
    """A single persona's answer to the query"""
    persona: Persona
    response: str
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "guardian": self.persona.display(),
            "response": self.response,
            "timestamp": self.timestamp.isoformat(),
        }


# =============================================================================
# INSIGHT SUMMARY
# =============================================================================

def _clamp_score(value: float) -> float:
    return max(0.0, min(10.0, float(value)))


class _SummaryModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class SentimentDetail(_SummaryModel):
    tone: str = ""
    confidence: str = "low"
    nuance: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, value):
        normalized = str(value).strip().lower()
        if normalized not in ("high", "medium", "low"):
            raise ValueError(f"confidence must be high, medium or low, got {value!r}")
        return normalized


class AspectScore(_SummaryModel):
    name: str
    score: float
    support_count: int = Field(default=0, alias="supportCount")
    concerns: List[str] = Field(default_factory=list)

    @field_validator("score", mode="after")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return _clamp_score(value)

    @field_validator("support_count", mode="before")
    @classmethod
    def _non_negative(cls, value) -> int:
        try:
            return max(0, int(float(value)))
        except (TypeError, ValueError):
            raise ValueError(f"supportCount must be a number, got {value!r}")


class GuardianScores(_SummaryModel):
    aspects: List[AspectScore] = Field(default_factory=list)
    overall_score: float = Field(default=5.0, alias="overallScore")

    @field_validator("overall_score", mode="after")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return _clamp_score(value)


class InsightSummary(_SummaryModel):
    """Cross-persona synthesis of one analysis"""
    main_themes: List[str] = Field(alias="mainThemes")
    consensus: str
    divergent_views: List[str] = Field(default_factory=list, alias="divergentViews")
    action_items: List[str] = Field(default_factory=list, alias="actionItems")
    overall_sentiment: str = Field(default=NEUTRAL_SENTIMENT, alias="overallSentiment")
    sentiment_detail: SentimentDetail = Field(
        alias="sentimentDetail",
        validation_alias=AliasChoices("sentimentDetail", "sentimentDetails", "sentiment_detail"),
    )
    guardian_scores: Optional[GuardianScores] = Field(default=None, alias="guardianScores")

    @field_validator("overall_sentiment", mode="before")
    @classmethod
    def _map_to_vocabulary(cls, value):
        label = str(value or "").strip().lower()
        for descriptor in SENTIMENT_DESCRIPTORS:
            if descriptor.lower() == label:
                return descriptor
        return NEUTRAL_SENTIMENT

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)


DEFAULT_INSIGHT_SUMMARY = InsightSummary(
    mainThemes=["Analysis pending"],
    consensus="Unable to generate summary at this time",
    divergentViews=[],
    actionItems=["Try asking your question again"],
    overallSentiment=NEUTRAL_SENTIMENT,
    sentimentDetail=SentimentDetail(
        tone="Processing",
        confidence="low",
        nuance="Analysis is still being processed",
    ),
    guardianScores=GuardianScores(aspects=[], overallScore=5.0),
)


# =============================================================================
# ANALYSIS / USAGE
# =============================================================================

@dataclass
class AnalysisRecord:
    """Stored analysis as returned by either store backend"""
    id: str
    query: str
    status: str
    created_at: datetime
    updated_at: datetime
    owner_id: Optional[str] = None
    responses: List[AgentResponse] = field(default_factory=list)
    summary: Optional[InsightSummary] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "query": self.query,
            "responses": [r.to_dict() for r in self.responses],
            "summary": self.summary.to_dict() if self.summary else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "status": self.status,
            "user_id": self.owner_id,
        }


@dataclass(frozen=True)
class PlanState:
    user_id: str
    plan: str
    plan_expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class UsageState:
    """Result of a quota check"""
    daily_limit: int
    current_usage: int
    remaining: int
    is_exceeded: bool
    plan: str

    def to_dict(self) -> dict:
        return {
            "daily_limit": self.daily_limit,
            "current_usage": self.current_usage,
            "remaining": self.remaining,
            "is_exceeded": self.is_exceeded,
            "plan": self.plan,
        }


@dataclass(frozen=True)
class DailyUsageEntry:
    usage_date: date
    query_count: int
