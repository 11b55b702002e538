"""
SQLAlchemy database models
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Date, Text, JSON, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum
from database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Plan(enum.Enum):
    """Subscription plans"""
    FREE = "free"
    PRO = "pro"


class AnalysisStatus(enum.Enum):
    """Lifecycle of a single analysis run"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# USERS / USAGE
# =============================================================================

class User(Base):
    """Application user (registration and credentials live outside this service)"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), unique=True, nullable=True, index=True)
    name = Column(String(255))

    # Plan
    plan = Column(String(20), nullable=False, default="free")  # free, pro
    plan_expires_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    analyses = relationship("Analysis", back_populates="user")
    daily_usage = relationship("DailyUsage", back_populates="user", cascade="all, delete-orphan")


class DailyUsage(Base):
    """Per-user, per-calendar-day query counter"""
    __tablename__ = "user_daily_usage"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    usage_date = Column(Date, nullable=False)
    query_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="daily_usage")

    # The upsert-increment relies on this constraint
    __table_args__ = (
        UniqueConstraint("user_id", "usage_date", name="uq_user_daily_usage_user_date"),
    )


# =============================================================================
# ANALYSES
# =============================================================================

class Analysis(Base):
    """One query fanned out to every guardian persona"""
    __tablename__ = "analyses"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)  # NULL = anonymous
    query = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="processing")  # pending, processing, completed, failed

    # Request context
    user_ip = Column(String(45))  # IPv6 compatible
    user_agent = Column(Text)

    # Timestamps
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User", back_populates="analyses")
    responses = relationship(
        "PersonaResponse",
        back_populates="analysis",
        cascade="all, delete-orphan",
        order_by="PersonaResponse.position",
    )
    summary = relationship("InsightSummaryRecord", back_populates="analysis", uselist=False, cascade="all, delete-orphan")

    __table_args__ = (
        Index('ix_analyses_user_id', 'user_id'),
        Index('ix_analyses_created_at', 'created_at'),
    )


class PersonaResponse(Base):
    """A single guardian's answer, denormalized with the display fields shown at the time"""
    __tablename__ = "persona_responses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    analysis_id = Column(String(36), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)  # registry order

    persona_id = Column(String(50), nullable=False)
    persona_name = Column(String(100), nullable=False)
    persona_avatar = Column(String(16))
    persona_personality = Column(String(255))
    persona_perspective = Column(String(255))

    response = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    analysis = relationship("Analysis", back_populates="responses")

    __table_args__ = (
        Index('ix_persona_responses_analysis', 'analysis_id', 'position'),
    )


class InsightSummaryRecord(Base):
    """Synthesized cross-persona summary (one per analysis)"""
    __tablename__ = "insight_summaries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    analysis_id = Column(String(36), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, unique=True)

    main_themes = Column(JSON)  # [str]
    consensus = Column(Text)
    divergent_views = Column(JSON)  # [str]
    action_items = Column(JSON)  # [str]
    overall_sentiment = Column(String(100))
    sentiment_details = Column(JSON)  # {tone, confidence, nuance}
    guardian_scores = Column(JSON, nullable=True)  # {aspects: [...], overallScore}
    overall_score = Column(Float, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    analysis = relationship("Analysis", back_populates="summary")


class AnalyticsEvent(Base):
    """Product analytics (query submitted, analysis viewed, ...)"""
    __tablename__ = "analytics_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_type = Column(String(50), nullable=False)
    analysis_id = Column(String(36), nullable=True)  # No foreign key - events may reference in-memory analyses
    meta_json = Column(JSON)
    created_at = Column(DateTime, default=utcnow, index=True)

    __table_args__ = (
        Index('ix_analytics_events_type', 'event_type'),
    )
