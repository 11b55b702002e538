"""
Application configuration using environment variables
"""
from pydantic_settings import BaseSettings
from typing import Optional, List
from dotenv import load_dotenv

# Load .env file
load_dotenv()


class Settings(BaseSettings):
    # Database (empty = in-memory storage for this process)
    DATABASE_URL: str = ""

    # OpenAI API (persona agents + synthesis)
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    LLM_TIMEOUT_SECONDS: float = 30.0
    LLM_MAX_RETRIES: int = 2

    # Persona agents
    PERSONA_MAX_TOKENS: int = 200
    PERSONA_TEMPERATURE: float = 0.7
    MAX_CONCURRENT_AGENTS: int = 9

    # Synthesis
    SYNTHESIS_MAX_TOKENS: int = 800
    SYNTHESIS_TEMPERATURE: float = 0.3

    # Usage limits
    FREE_DAILY_LIMIT: int = 10

    # Payment stub: the only token accepted as a successful payment
    DEMO_PAYMENT_TOKEN: str = "demo_success"

    # App settings
    DEBUG: bool = False

    # ==========================================================================
    # SECURITY SETTINGS
    # ==========================================================================

    # JWT Configuration
    JWT_SECRET: str = "dev-secret-change-in-production-min-32-chars!"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_HOURS: int = 168  # 7 days

    # CORS Configuration
    ALLOWED_ORIGINS: str = "*"  # Comma-separated list

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse ALLOWED_ORIGINS into a list"""
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        extra = "allow"


settings = Settings()
