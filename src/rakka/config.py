"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


class BotConfig(BaseModel):
    name: str = "rakka"
    system_prompt: str = "You are a helpful assistant in a group chat. Keep answers short."
    max_response_tokens: int = 1024
    temperature: float = 0.7
    max_history: int = Field(default=5, ge=1)  # exchanges, not messages
    max_conversations: int = Field(default=1000, ge=1)
    analyze_image_ack: bool = True


class LLMConfig(BaseModel):
    provider: str = "gemini"  # "gemini" | "openai" | "deepseek" | "ollama" | "anthropic"
    api_key: str = ""
    base_url: Optional[str] = None
    model: str = "gemini-2.0-flash"
    request_timeout: float = Field(default=60.0, gt=0)
    token_estimate_divisor: int = Field(default=4, ge=1)


class CreditsConfig(BaseModel):
    file_path: str = "./data/credits.json"
    global_limit: int = Field(default=50000, ge=0)
    master_key: str
    flush_interval: int = Field(default=60, ge=1)  # seconds

    @field_validator("master_key")
    @classmethod
    def _require_resolved_key(cls, v: str) -> str:
        if not v or _ENV_VAR_PATTERN.search(v):
            raise ValueError("credits.master_key is empty or references an unset environment variable")
        return v


class PlatformConfig(BaseModel):
    id: str
    platform: str  # "telegram" | "discord"
    token: str
    enabled: bool = True


class SchedulerConfig(BaseModel):
    timezone: str = "UTC"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    data_dir: str = "./data"
    bot: BotConfig = Field(default_factory=BotConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    credits: CreditsConfig
    platforms: list[PlatformConfig] = Field(default_factory=list)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # First pass: extract data_dir for self-referencing
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = raw_data.get("data_dir", "./data")
    data_dir = _interpolate_env_vars(data_dir)

    # Second pass: interpolate all env vars
    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
