"""Runtime configuration.

config.json (see realm_forge.storage) holds three sections. Two of them are
turned into typed settings here:

  llm_connection → LLMConnection → an LLM callable (build_llm)
  simulation     → SimSettings   → injected into the TurnOrchestrator

Environment variables (loaded from .env by python-dotenv) fill LLM
connection fields that config.json leaves empty:

  LLM_PROVIDER_URL, LLM_API_KEY, LLM_MODEL, LLM_PROVIDER_FORMAT
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from realm_forge.llm import LLM, HttpLLM, OfflineLLM

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path("data")

_ENV_FIELDS = {
    "provider_url": "LLM_PROVIDER_URL",
    "api_key": "LLM_API_KEY",
    "model": "LLM_MODEL",
    "provider_format": "LLM_PROVIDER_FORMAT",
}


class LLMConnection(BaseModel):
    provider_url: str = ""
    api_key: str = ""
    provider_format: Literal["openai", "koboldcpp"] = "openai"
    model: str = ""
    timeout: float = 120.0


class SimSettings(BaseModel):
    """Tunables for one orchestrator. Built once from config."""

    memory_decay: float = Field(default=0.9, gt=0, le=1)
    max_managers: int = Field(default=3, ge=0)
    manager_keywords: list[str] = Field(default_factory=lambda: [
        "leader", "ruler", "mayor", "chief", "lord", "master", "captain", "general",
    ])
    oracle_delay_seconds: float = Field(default=1.0, ge=0)
    world_events: bool = True
    tool_evolution: bool = True
    map_width: int = Field(default=24, ge=1)
    map_height: int = Field(default=16, ge=1)


def load_env(path: Path | None = None) -> None:
    """Load .env from `path`, or from the working directory."""
    load_dotenv(path or Path.cwd() / ".env")


def data_dir_from_env() -> Path:
    return Path(os.getenv("REALM_DATA_DIR", str(DEFAULT_DATA_DIR)))


def connection_from_config(config: dict[str, Any]) -> LLMConnection:
    fields = dict(config.get("llm_connection") or {})
    for key, env_var in _ENV_FIELDS.items():
        if not fields.get(key) and os.getenv(env_var):
            fields[key] = os.getenv(env_var)
    return LLMConnection.model_validate(fields)


def settings_from_config(config: dict[str, Any]) -> SimSettings:
    return SimSettings.model_validate(config.get("simulation") or {})


def build_llm(connection: LLMConnection) -> LLM:
    """HttpLLM when a provider URL is configured, OfflineLLM otherwise."""
    if not connection.provider_url:
        logger.info("No LLM provider configured, using offline oracle")
        return OfflineLLM()
    return HttpLLM(
        provider_url=connection.provider_url,
        api_key=connection.api_key,
        provider_format=connection.provider_format,
        model=connection.model,
        timeout=connection.timeout,
    )
