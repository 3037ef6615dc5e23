# taskrecall/config.py
"""
Application settings loaded from environment variables (or a local .env).
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from taskrecall.application.ranking import DEFAULT_MIN_SCORE, DEFAULT_TOP_K


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Embeddings
    embedding_provider: Literal["sentence-transformers", "openai"] = "sentence-transformers"
    embedding_model: str = "all-MiniLM-L6-v2"
    embedding_dimensions: int = Field(default=384, gt=0)
    embedding_timeout_seconds: float = Field(default=15.0, gt=0)

    # OpenAI (remote embeddings and subtask generation)
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    subtask_model: str = "gpt-4o-mini"

    # Storage
    store_backend: Literal["chroma", "memory"] = "chroma"
    chroma_persist_directory: str = "./data/chroma_db"

    # Search
    search_top_k: int = Field(default=DEFAULT_TOP_K, gt=0)
    search_min_score: float = Field(default=DEFAULT_MIN_SCORE, ge=0.0, le=1.0)

    # Security
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    jwt_audience: Optional[str] = None

    # Logging / CLI
    log_dir: str = ".local/taskrecall"
    log_level: str = "INFO"
    cli_owner: str = "local-user"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
