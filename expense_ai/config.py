"""
Application settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./data/expense_ai.db"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # File storage
    DATA_DIR: str = "./data"

    # AI provider (Gemini)
    AI_ENABLED: bool = False
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-1.5-flash"
    AI_TIMEOUT_SECONDS: float = 30.0
    AI_MAX_ATTEMPTS: int = 3
    AI_BACKOFF_SECONDS: float = 0.5
    AI_BACKOFF_MAX_SECONDS: float = 4.0

    # Insight cache
    AI_CACHE_TTL_HOURS: int = 24

    # OCR
    OCR_ENABLED: bool = True
    TESSERACT_CMD: str = ""
    OCR_WORKERS: int = 2
    OCR_TIMEOUT_SECONDS: float = 60.0
    OCR_MAX_ATTEMPTS: int = 2
    OCR_MAX_WIDTH: int = 1200

    # History window used for prompts and scoring
    EXPENSE_LOOKBACK_DAYS: int = 30

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
