"""YAML configuration loading for the language model and the event store."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any

import yaml

logger = logging.getLogger("ai-calendar-mcp")

CONFIG_PATH = os.environ.get("AI_CALENDAR_CONFIG", "/config/ai_calendar.yaml")

VALID_BACKENDS = {"memory", "sqlite"}


@dataclass
class LLMSettings:
    """OpenAI-compatible chat endpoint. Defaults target a local Ollama."""

    enabled: bool = True
    base_url: str = "http://localhost:11434/v1"
    model: str = "llama3.1"
    api_key_env: str | None = None  # name of the env var holding the key
    timeout: float | None = None  # seconds; None waits indefinitely
    temperature: float = 0.0

    @property
    def api_key(self) -> str:
        if not self.api_key_env:
            return ""
        return os.environ.get(self.api_key_env, "")


@dataclass
class StoreSettings:
    backend: str = "memory"  # memory | sqlite
    path: str | None = None  # sqlite database file, ":memory:" allowed


@dataclass
class Settings:
    llm: LLMSettings = field(default_factory=LLMSettings)
    store: StoreSettings = field(default_factory=StoreSettings)


def _parse_llm(raw: dict[str, Any]) -> LLMSettings:
    llm = LLMSettings()
    if "enabled" in raw:
        llm.enabled = bool(raw["enabled"])
    if raw.get("base_url"):
        llm.base_url = str(raw["base_url"]).rstrip("/")
    if raw.get("model"):
        llm.model = str(raw["model"])

    timeout = raw.get("timeout")
    if timeout is not None:
        try:
            llm.timeout = float(timeout)
        except (TypeError, ValueError):
            raise ValueError(f"llm.timeout must be a number of seconds, got '{timeout}'")
        if llm.timeout <= 0:
            raise ValueError("llm.timeout must be positive")

    temperature = raw.get("temperature")
    if temperature is not None:
        try:
            llm.temperature = float(temperature)
        except (TypeError, ValueError):
            raise ValueError(f"llm.temperature must be a number, got '{temperature}'")

    api_key_env = raw.get("api_key_env")
    if api_key_env:
        llm.api_key_env = str(api_key_env)
        if not os.environ.get(llm.api_key_env):
            logger.warning("LLM: env var '%s' not set", llm.api_key_env)
    return llm


def _parse_store(raw: dict[str, Any]) -> StoreSettings:
    backend = str(raw.get("backend", "memory")).strip().lower()
    if backend not in VALID_BACKENDS:
        raise ValueError(f"store.backend: unknown backend '{backend}'. Must be one of: {VALID_BACKENDS}")
    path = raw.get("path")
    if backend == "sqlite" and not path:
        raise ValueError("store.path is required for the sqlite backend")
    return StoreSettings(backend=backend, path=str(path) if path else None)


def load_config() -> Settings:
    """Load and validate the YAML config file.

    A missing file or empty document yields the defaults.
    """
    path = CONFIG_PATH
    if not os.path.isfile(path):
        logger.warning("Config file not found: %s (using defaults)", path)
        return Settings()

    with open(path, "r") as f:
        raw = yaml.safe_load(f)

    if not raw:
        logger.warning("Config file is empty: %s (using defaults)", path)
        return Settings()
    if not isinstance(raw, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")

    llm_raw = raw.get("llm") or {}
    store_raw = raw.get("store") or {}
    if not isinstance(llm_raw, dict):
        raise ValueError("'llm' section must be a mapping")
    if not isinstance(store_raw, dict):
        raise ValueError("'store' section must be a mapping")

    return Settings(llm=_parse_llm(llm_raw), store=_parse_store(store_raw))
