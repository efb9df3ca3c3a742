from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # EDO backend
    EDO_API_BASE: str = "http://localhost:3000/api/edo"
    EDO_USER_ROLE: str = "admin"

    # Matching (empirical weights live in edo.agents.matching)
    AUTO_MATCH_THRESHOLD: int = 6
    MAX_CANDIDATES: int = 5
    SERVER_AUTO_MATCH_THRESHOLD: float = 0.7

    # Receipts
    DEFAULT_WAREHOUSE_ID: str = "default-warehouse"

    # App
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    CONSOLE_TITLE: Optional[str] = None

settings = Settings()
