from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import Optional

from pulse.types import Parameters


class Settings(BaseSettings):
    """
    Pipeline settings loaded from environment variables.

    Environment variables can come from:
    - docker-compose.yml environment section
    - .env file (for secrets like API keys)
    - System environment

    Variable names match docker-compose conventions:
    - POSTGRES_HOST, POSTGRES_PORT, etc. (warehouse)
    - REDIS_URL (document store and job queues)
    - OPENAI_API_KEY (classification gateway)
    """

    # PostgreSQL warehouse (from docker-compose)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "pulse_user"
    postgres_password: str = "pulse_pass"
    postgres_db: str = "pulse"
    database_url: Optional[str] = Field(default=None, validate_default=True)

    # Redis document store + queues
    redis_url: str = "redis://localhost:6379"
    document_key_prefix: str = "city_event:"

    # OpenAI (from .env)
    openai_api_key: str = ""
    classification_model: str = "gpt-4o-mini"
    vision_model: str = "gpt-4o-mini"
    summary_model: str = "gpt-4o-mini"

    # Per-call deadlines (seconds)
    classification_timeout: float = 15.0
    summary_timeout: float = 30.0
    store_timeout: float = 10.0

    # Dedup / clustering thresholds
    similarity_threshold: float = 0.75
    heuristic_similarity_threshold: float = 0.75
    proximity_radius_km: float = 2.0
    time_window_hours: float = 4.0
    bucket_window_hours: int = 2
    chunk_size: int = 25
    max_keywords: int = 20

    # Queues
    raw_event_queue: str = "queue:events:raw"
    processed_event_queue: str = "queue:events:processed"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra env vars

    @field_validator('database_url', mode='before')
    @classmethod
    def construct_database_url(cls, v, info):
        """Construct database URL from components if not explicitly set"""
        if v:
            return v

        data = info.data
        host = data.get('postgres_host', 'localhost')
        port = data.get('postgres_port', 5432)
        user = data.get('postgres_user', 'pulse_user')
        password = data.get('postgres_password', 'pulse_pass')
        db = data.get('postgres_db', 'pulse')

        return f"postgresql://{user}:{password}@{host}:{port}/{db}"

    @field_validator('chunk_size')
    @classmethod
    def check_chunk_size(cls, v):
        if not 10 <= v <= 50:
            raise ValueError(f"chunk_size must be between 10 and 50, got {v}")
        return v

    @field_validator('similarity_threshold', 'heuristic_similarity_threshold')
    @classmethod
    def check_threshold(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {v}")
        return v

    @field_validator('classification_timeout', 'summary_timeout', 'store_timeout')
    @classmethod
    def check_timeout(cls, v):
        if v <= 0:
            raise ValueError(f"timeout must be positive, got {v}")
        return v

    def to_parameters(self) -> Parameters:
        """Core pipeline parameters from these settings"""
        return Parameters(
            similarity_threshold=self.similarity_threshold,
            heuristic_similarity_threshold=self.heuristic_similarity_threshold,
            proximity_radius_km=self.proximity_radius_km,
            time_window_hours=self.time_window_hours,
            bucket_window_hours=self.bucket_window_hours,
            chunk_size=self.chunk_size,
            max_keywords=self.max_keywords,
            classification_timeout=self.classification_timeout,
            summary_timeout=self.summary_timeout,
            store_timeout=self.store_timeout,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
