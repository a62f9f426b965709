from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from shortlint.scoring.thresholds import CATEGORIES, validate_weight_table

DEFAULT_CONFIG_PATH = Path("configs/default.yaml")
ENV_PREFIX = "SHORTLINT_"
DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


class JobSettings(BaseModel):
    store_dir: Path = Path("data/jobs")
    stale_claim_seconds: int = Field(default=300, ge=1)
    allowed_url_hosts: list[str] = Field(
        default_factory=lambda: ["youtube.com", "www.youtube.com", "m.youtube.com", "youtu.be"]
    )


class ExtractorSettings(BaseModel):
    model: str = "qwen2.5vl:7b"
    endpoint: str = "http://localhost:11434"
    timeout_seconds: int = Field(default=90, ge=1)
    max_retries: int = Field(default=0, ge=0)
    prompt_dir: Path = Path("prompts")
    classification_fallback: bool = False


class ScoringSettings(BaseModel):
    niche_weights: dict[str, dict[str, float]] = Field(default_factory=dict)

    @field_validator("niche_weights")
    @classmethod
    def _check_weight_tables(cls, value: dict[str, dict[str, float]]) -> dict[str, dict[str, float]]:
        for niche, weights in value.items():
            validate_weight_table(f"niche:{niche}", weights, CATEGORIES)
        return value


class LintSettings(BaseModel):
    base_score: int = Field(default=100, ge=0, le=100)
    error_penalty: int = Field(default=10, ge=0)
    warning_penalty: int = Field(default=5, ge=0)
    info_penalty: int = Field(default=2, ge=0)
    bonus_ceiling: int = Field(default=10, ge=0)


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = DEFAULT_LOG_FORMAT
    levels: dict[str, str] = Field(default_factory=dict)


class Settings(BaseModel):
    jobs: JobSettings = Field(default_factory=JobSettings)
    extractor: ExtractorSettings = Field(default_factory=ExtractorSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    lint: LintSettings = Field(default_factory=LintSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load typed settings from YAML with environment-variable overrides."""

    resolved_path = Path(
        config_path
        or os.getenv(f"{ENV_PREFIX}CONFIG")
        or DEFAULT_CONFIG_PATH
    )
    raw_config = yaml.safe_load(resolved_path.read_text(encoding="utf-8")) or {}
    data = Settings.model_validate(raw_config).model_dump(mode="python")

    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        suffix = key[len(ENV_PREFIX) :]
        if suffix == "CONFIG":
            continue

        path = [part.lower() for part in suffix.split("__")]
        _apply_override(data, path, raw_value)

    return Settings.model_validate(data)


def _apply_override(data: dict[str, Any], path: list[str], raw_value: str) -> None:
    current: Any = data
    for segment in path[:-1]:
        if not isinstance(current, dict) or segment not in current:
            return
        current = current[segment]

    if not isinstance(current, dict):
        return

    final_key = path[-1]
    if final_key not in current:
        return

    current[final_key] = _coerce_value(raw_value, current[final_key])


def _coerce_value(raw_value: str, existing_value: Any) -> Any:
    if isinstance(existing_value, bool):
        return raw_value.lower() in {"1", "true", "yes", "on"}
    if isinstance(existing_value, int) and not isinstance(existing_value, bool):
        return int(raw_value)
    if isinstance(existing_value, float):
        return float(raw_value)
    if isinstance(existing_value, list | dict):
        return json.loads(raw_value)
    if isinstance(existing_value, Path):
        return Path(raw_value)
    return raw_value
