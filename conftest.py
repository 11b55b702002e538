"""
Shared pytest fixtures
"""
import asyncio
import json

import pytest
from sqlalchemy.orm import sessionmaker

import models  # noqa: F401  (registers tables on Base.metadata)
from database import Base, create_database_engine
from services.personas import PERSONAS

_PERSONA_BY_PROMPT = {p.system_prompt: p for p in PERSONAS}


SAMPLE_SUMMARY = {
    "mainThemes": ["Market timing", "Team readiness"],
    "consensus": "Launch is viable if the beta feedback is addressed first",
    "divergentViews": ["The Skeptic doubts the Q3 demand forecast"],
    "actionItems": ["Run a pricing test", "Freeze scope by June"],
    "overallSentiment": "Cautiously Optimistic",
    "sentimentDetail": {
        "tone": "Measured",
        "confidence": "medium",
        "nuance": "Optimism depends on hiring two engineers",
    },
    "guardianScores": {
        "aspects": [
            {"name": "Feasibility", "score": 7.5, "supportCount": 6, "concerns": ["Hiring"]},
            {"name": "Risk level", "score": 4, "supportCount": 3, "concerns": []},
        ],
        "overallScore": 6.8,
    },
}


class FakeLLM:
    """
    Stand-in for OpenAIService.

    Persona calls are recognised by their system prompt; the synthesis call
    has no system instruction.
    """

    def __init__(self, delays=None, failures=(), summary_text=None, summary_error=None):
        self.delays = delays or {}
        self.failures = set(failures)
        self.summary_text = json.dumps(SAMPLE_SUMMARY) if summary_text is None else summary_text
        self.summary_error = summary_error
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate(self, system_instruction, user_text, max_output_tokens, temperature):
        if system_instruction is None:
            self.calls.append(("synthesis", user_text))
            if self.summary_error is not None:
                raise self.summary_error
            return self.summary_text

        persona = _PERSONA_BY_PROMPT[system_instruction]
        self.calls.append((persona.id, user_text))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(persona.id, 0))
            if persona.id in self.failures:
                raise RuntimeError(f"{persona.id} unavailable")
            return f"{persona.name} on '{user_text}'"
        finally:
            self.in_flight -= 1


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database"""
    engine = create_database_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path):
    """Session factory on a file-backed SQLite database; each session gets its own connection"""
    engine = create_database_engine(f"sqlite:///{tmp_path / 'insight.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()
