"""Configuration loading and strict validation for the credits ledger."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

REDIS_URL_ENV = "CREDITS_REDIS_URL"


class StrictModel(BaseModel):
    """Base model that rejects unknown keys."""

    model_config = ConfigDict(extra="forbid")


class StoreSettings(StrictModel):
    backend: Literal["redis", "memory"] = "redis"
    url: str = "redis://localhost:6379/0"
    socket_timeout_seconds: float = 5.0


class LedgerSettings(StrictModel):
    default_credits: int = Field(default=100, ge=0)
    default_query_limit: int = Field(default=50, gt=0)
    max_query_limit: int = Field(default=1000, gt=0)


class MeteredRateSettings(StrictModel):
    rate: float = Field(gt=0)
    unit: str


class PricingSettings(StrictModel):
    metered: dict[str, MeteredRateSettings] = Field(
        default_factory=lambda: {
            "video_generation": MeteredRateSettings(rate=10, unit="second"),
            "training_job": MeteredRateSettings(rate=1000, unit="gpu_hour"),
        }
    )
    fixed: dict[str, int] = Field(
        default_factory=lambda: {
            "chat_message": 10,
            "canvas_generation_simple": 50,
            "canvas_generation_complex": 75,
        }
    )

    @field_validator("fixed")
    @classmethod
    def _fixed_costs_positive(cls, value: dict[str, int]) -> dict[str, int]:
        for action, cost in value.items():
            if cost <= 0:
                raise ValueError(f"fixed cost for '{action}' must be > 0")
        return value


class LoggingSettings(StrictModel):
    enabled: bool = False
    events_dir: str = "logs"
    event_file_name: str = "ledger_events.jsonl"


class AppConfig(StrictModel):
    store: StoreSettings = Field(default_factory=StoreSettings)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    pricing: PricingSettings = Field(default_factory=PricingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def apply_env_overrides(config: AppConfig, environ: Mapping[str, str] | None = None) -> AppConfig:
    env = os.environ if environ is None else environ
    url = env.get(REDIS_URL_ENV)
    if url:
        config.store.url = url
    return config


def load_config(config_path: str | Path = "config/config.yaml") -> AppConfig:
    """Load and strictly validate YAML config."""
    path = Path(config_path)
    with path.open("r", encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}
    return apply_env_overrides(AppConfig.model_validate(raw))

