"""
Merkle Attest - Configuration
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    # Application
    APP_NAME: str = "Merkle Attest"
    VERSION: str = "0.1.0"
    ENV: str = "development"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8090
    WORKERS: int = 1
    LOG_LEVEL: str = "INFO"

    # API protection
    API_AUTH_ENABLED: bool = False
    API_KEY: Optional[str] = None

    # Commitment
    LEAF_ENCODING: Literal["fixed", "decimal"] = "fixed"
    ODD_NODE_STRATEGY: Literal["promote", "duplicate"] = "promote"

    # Sampling
    SAMPLE_KEY_START: int = 1
    SAMPLE_KEY_END: int = 100
    SAMPLE_OFFSETS: list[int] = Field(default_factory=lambda: [0, 1, 2])
    SAMPLE_SEED: Optional[int] = None

    # Attestation
    ATTESTATION_BACKEND: Literal["dev", "remote"] = "dev"
    PROGRAM_ID: Optional[str] = Field(default=None, min_length=64, max_length=64)
    DEV_PROVER_SECRET: str = "merkle-attest-dev-mode"
    PROVER_URL: str = "http://localhost:8091"
    PROVER_API_KEY: Optional[str] = None
    PROVER_TIMEOUT: float = 300.0
    PROVER_RETRY_COUNT: int = 3
    PROVER_RETRY_DELAY: float = 1.0
    PROVER_RETRY_MAX_DELAY: float = 10.0
    RECEIPT_DIR: str = "receipts"

    # Metrics
    METRICS_ENABLED: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
