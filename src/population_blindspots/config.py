"""Analyzer configuration via environment variables."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field, field_validator

DEFAULT_MODEL = "gemini-2.0-flash-001"
VALID_FINDINGS_MODES = {"static", "parsed"}

_TRUTHY = ("1", "true", "yes")


def _env_flag(name: str) -> bool:
    """Read a boolean env var (``1``/``true``/``yes``, case-insensitive)."""
    return os.getenv(name, "").strip().lower() in _TRUTHY


class AnalyzerConfig(BaseModel):
    """Runtime configuration resolved from environment."""

    gemini_api_key: str = Field(default="")
    model: str = Field(default=DEFAULT_MODEL)
    temperature: float = Field(default=0.1)
    use_llm_analysis: bool = Field(default=False)
    structured_output: bool = Field(default=False)
    findings_mode: str = Field(default="static")
    max_prompt_chars: int = Field(default=24000)
    mock_delay_seconds: float = Field(default=0.5)
    request_timeout_seconds: float = Field(default=60.0)
    retry_max_attempts: int = Field(default=3)
    retry_base_delay: float = Field(default=1.0)
    retry_max_delay: float = Field(default=30.0)

    @field_validator("gemini_api_key")
    @classmethod
    def strip_api_key(cls, value: str) -> str:
        return value.strip()

    @field_validator("findings_mode")
    @classmethod
    def validate_findings_mode(cls, value: str) -> str:
        mode = value.strip().lower()
        if mode not in VALID_FINDINGS_MODES:
            allowed = ", ".join(sorted(VALID_FINDINGS_MODES))
            raise ValueError(f"Invalid findings mode '{value}'. Allowed: {allowed}")
        return mode

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, value: float) -> float:
        if not 0.0 <= value <= 2.0:
            raise ValueError("temperature must be between 0.0 and 2.0")
        return value

    @field_validator("max_prompt_chars", "retry_max_attempts")
    @classmethod
    def validate_positive_ints(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Configuration values must be >= 1")
        return value

    @field_validator("mock_delay_seconds")
    @classmethod
    def validate_mock_delay(cls, value: float) -> float:
        if value < 0:
            raise ValueError("mock_delay_seconds must be >= 0")
        return value

    @field_validator("request_timeout_seconds", "retry_base_delay", "retry_max_delay")
    @classmethod
    def validate_positive_floats(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Timeouts and retry delays must be > 0")
        return value

    @property
    def live_credentials(self) -> bool:
        """True when a Gemini credential is configured."""
        return bool(self.gemini_api_key)

    @classmethod
    def from_env(cls) -> AnalyzerConfig:
        """Build config from environment variables."""
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            model=os.getenv("GEMINI_MODEL", "") or DEFAULT_MODEL,
            temperature=float(os.getenv("GEMINI_TEMPERATURE", "0.1")),
            use_llm_analysis=_env_flag("USE_LLM_ANALYSIS"),
            structured_output=_env_flag("POPULATION_STRUCTURED_OUTPUT"),
            findings_mode=os.getenv("POPULATION_FINDINGS_MODE", "static"),
            max_prompt_chars=int(os.getenv("POPULATION_MAX_PROMPT_CHARS", "24000")),
            mock_delay_seconds=float(os.getenv("MOCK_LLM_DELAY_SECONDS", "0.5")),
            request_timeout_seconds=float(os.getenv("GEMINI_TIMEOUT_SECONDS", "60")),
            retry_max_attempts=int(os.getenv("GEMINI_RETRY_MAX_ATTEMPTS", "3")),
            retry_base_delay=float(os.getenv("GEMINI_RETRY_BASE_DELAY", "1.0")),
            retry_max_delay=float(os.getenv("GEMINI_RETRY_MAX_DELAY", "30.0")),
        )


# Singleton — initialised on first access.
_config: AnalyzerConfig | None = None


def get_config() -> AnalyzerConfig:
    """Return the global config singleton, creating it on first access.

    Loads ``.env`` files (see :mod:`population_blindspots.dotenv`) before
    reading env vars. Process environment always takes precedence.
    """
    global _config
    if _config is None:
        import logging

        from .dotenv import load_dotenv

        injected = load_dotenv()
        if injected:
            logger = logging.getLogger(__name__)
            logger.info(
                "Loaded %d var(s) from .env: %s",
                len(injected),
                ", ".join(injected.keys()),
            )
        _config = AnalyzerConfig.from_env()
    return _config


def update_config(**overrides: object) -> AnalyzerConfig:
    """Patch the live config. ``None`` values are ignored."""
    global _config
    cfg = get_config()
    data = cfg.model_dump()
    data.update({k: v for k, v in overrides.items() if v is not None})
    _config = AnalyzerConfig(**data)
    return _config
