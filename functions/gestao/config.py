"""
Configuration and settings for the backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings; each field reads the env var of the same name."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)
    # Run dispatched jobs in the API process even when Redis is configured.
    run_jobs_inline: bool = Field(default=False)

    # Queue (Redis), one list per job tipo under this prefix
    redis_url: Optional[str] = Field(default=None)
    redis_queue_prefix: str = Field(default="gestao:jobs")

    # Business rules
    dias_limite_atraso: int = Field(default=7)
    dias_atraso_prioridade_alta: int = Field(default=15)
    limite_residuo: float = Field(default=0.10)
    percentual_comissao_padrao: float = Field(default=5.0)
    dia_limite_fechamento: int = Field(default=10)
    empresa_nome: str = Field(default="J&C Esquadrias")

    # Commission sync throttling
    sync_batch_size: int = Field(default=50)
    sync_delay_item_seconds: float = Field(default=0.06)
    sync_delay_batch_seconds: float = Field(default=0.3)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
