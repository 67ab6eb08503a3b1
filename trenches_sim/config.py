"""
Settings loaded from environment variables (TRENCHES_*) or a .env file.
"""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ── Simulation ──
    tick_interval_ms: int = Field(default=500, description="Market tick interval")
    initial_token_count: int = Field(default=35, description="Tokens seeded at startup")
    random_seed: Optional[int] = Field(default=None, description="Fixed seed for repeatable runs")

    # ── Persistence ──
    data_dir: str = Field(default="data", description="Directory for saved portfolio/quest JSON")
    persist_every_ticks: int = Field(default=20, description="Save player state every N ticks")

    # ── Server ──
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
    log_level: str = Field(default="INFO")
    cors_origins: List[str] = Field(default=["http://127.0.0.1:8000", "http://localhost:8000"])

    model_config = SettingsConfigDict(
        env_prefix="TRENCHES_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator("tick_interval_ms", "persist_every_ticks")
    @classmethod
    def positive(cls, v, info):
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return v

    @field_validator("initial_token_count")
    @classmethod
    def token_count_range(cls, v):
        if v < 0 or v > 50:
            raise ValueError("initial_token_count must be between 0 and 50")
        return v


settings = Settings()
