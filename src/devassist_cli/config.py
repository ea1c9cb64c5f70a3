"""Runtime configuration.

Model tiers, cost tables and depth tuning are business defaults, not
invariants: every value here can be overridden from the environment or by
constructing the dataclasses directly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from .errors import ValidationError

HIGH_PERFORMANCE_MODEL = "claude-3-5-sonnet-20241022"
DEFAULT_MODEL = "claude-3-5-haiku-20241022"
ECONOMY_MODEL = "gpt-4o-mini"

OLLAMA_BASE_URL = "http://localhost:11434"
ANTHROPIC_BASE_URL = "https://api.anthropic.com"
OPENAI_BASE_URL = "https://api.openai.com"
REQUEST_TIMEOUT = 30  # seconds per backend call

# USD per 1K tokens
MODEL_COSTS = {
    HIGH_PERFORMANCE_MODEL: 0.003,
    DEFAULT_MODEL: 0.0008,
    "gpt-4o": 0.0025,
    ECONOMY_MODEL: 0.00015,
}

# Prompt + context overhead in tokens, added to the code token estimate
PROMPT_OVERHEAD = {
    "basic": 500,
    "standard": 800,
    "comprehensive": 1200,
    "expert": 1800,
}

DEPTH_TEMPERATURE = {
    "basic": 0.15,
    "standard": 0.15,
    "comprehensive": 0.1,
    "expert": 0.05,
}

DEPTH_MAX_TOKENS = {
    "basic": 1500,
    "standard": 2500,
    "comprehensive": 3500,
    "expert": 4000,
}


@dataclass
class SelectorConfig:
    """Model tiers and the thresholds that promote a request to the high tier."""

    high_performance_model: str = HIGH_PERFORMANCE_MODEL
    default_model: str = DEFAULT_MODEL
    economy_model: str = ECONOMY_MODEL
    rule_threshold: int = 5
    code_length_threshold: int = 5000
    model_costs: dict[str, float] = field(default_factory=lambda: dict(MODEL_COSTS))
    prompt_overhead: dict[str, int] = field(default_factory=lambda: dict(PROMPT_OVERHEAD))
    default_unit_cost: float = 0.001


@dataclass
class BackendConfig:
    ollama_url: str = OLLAMA_BASE_URL
    anthropic_url: str = ANTHROPIC_BASE_URL
    openai_url: str = OPENAI_BASE_URL
    anthropic_api_key: str | None = None
    openai_api_key: str | None = None
    timeout: int = REQUEST_TIMEOUT


@dataclass
class AnalysisConfig:
    max_request_size: int = 1_048_576  # 1MB, hard cap on request content
    max_code_length: int = 50_000  # above this AI analyzers decline the request
    max_attempts: int = 3
    cache_enabled: bool = True
    cache_min_confidence: float = 0.7
    cache_ttl: int = 3600
    cache_dir: Path = field(default_factory=lambda: Path(".devassist-cache"))
    rate_per_minute: int = 60
    temperature: dict[str, float] = field(default_factory=lambda: dict(DEPTH_TEMPERATURE))
    max_tokens: dict[str, int] = field(default_factory=lambda: dict(DEPTH_MAX_TOKENS))


@dataclass
class AssistantConfig:
    selector: SelectorConfig = field(default_factory=SelectorConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)

    @property
    def has_remote_backend(self) -> bool:
        return bool(self.backend.anthropic_api_key or self.backend.openai_api_key)


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer, got {raw!r}")


def load_config(env: Mapping[str, str] | None = None) -> AssistantConfig:
    """Build configuration from defaults plus DEVASSIST_* environment overrides."""
    env = os.environ if env is None else env
    config = AssistantConfig()

    config.backend.anthropic_api_key = env.get("ANTHROPIC_API_KEY") or None
    config.backend.openai_api_key = env.get("OPENAI_API_KEY") or None
    config.backend.ollama_url = env.get("DEVASSIST_OLLAMA_URL", config.backend.ollama_url)
    config.backend.timeout = _int_env(env, "DEVASSIST_TIMEOUT", config.backend.timeout)

    config.selector.default_model = env.get("DEVASSIST_DEFAULT_MODEL", config.selector.default_model)
    config.selector.high_performance_model = env.get(
        "DEVASSIST_HIGH_MODEL", config.selector.high_performance_model
    )

    if env.get("DEVASSIST_CACHE_DIR"):
        config.analysis.cache_dir = Path(env["DEVASSIST_CACHE_DIR"])
    config.analysis.cache_ttl = _int_env(env, "DEVASSIST_CACHE_TTL", config.analysis.cache_ttl)
    config.analysis.rate_per_minute = _int_env(
        env, "DEVASSIST_RATE_PER_MINUTE", config.analysis.rate_per_minute
    )
    return config
