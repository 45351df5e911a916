"""Model client — live Gemini backend with a deterministic mock fallback.

Backend selection happens once, when the client is built: a configured
``GEMINI_API_KEY`` yields a live :class:`GeminiBackend`, anything else (or a
failure constructing it) leaves the client in mock mode. ``invoke()`` never
raises for backend trouble; failed live calls are answered by the mock.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from google import genai
from google.genai import types

from .config import AnalyzerConfig, get_config
from .errors import (
    ErrorCategory,
    InvariantViolation,
    MalformedResponseError,
    describe_failure,
    hint_for,
)
from .models.llm import MOCK_MODEL_ID, ModelResponse
from .retry import with_retry

logger = logging.getLogger(__name__)

MOCK_TOKENS_USED = 450

MOCK_ANALYSIS = """
Based on the analysis of the provided research papers:

**Age Demographics:**
- Pediatric (0-18): 0% - No studies included children or adolescents
- Young Adults (18-40): 15% - Limited representation
- Middle-aged Adults (40-65): 60% - Well represented
- Elderly (65-75): 45% - Moderate representation
- Very Elderly (>75): 8% - Significantly underrepresented

**Gender Demographics:**
- Male: 42%
- Female: 48%
- Gender not reported: 10%

**Pregnancy Status:**
- Pregnant individuals: 0% - Systematically excluded
- Pregnancy status not mentioned: 100%

**Geographic Distribution:**
- North America: 52% (predominantly USA-based studies)
- Europe: 28% (Western Europe overrepresented)
- Asia: 12% (primarily China and Japan)
- Africa: 0% - No representation
- South America: 3%
- Oceania: 5%

**Critical Blind Spots Identified:**
1. Complete exclusion of pediatric populations (CRITICAL)
2. Systematic exclusion of pregnant individuals (CRITICAL)
3. Severe underrepresentation of very elderly (>75) despite disease relevance (HIGH)
4. Complete absence of African populations (CRITICAL)
5. Minimal representation of young adults 18-40 (MEDIUM)
6. Geographic bias toward Western/developed nations (HIGH)

**Methodological Quality Issues:**
- 15% of studies failed to report demographic breakdowns
- 30% used convenience sampling without demographic stratification
- Only 5% included explicit efforts to recruit underrepresented populations
""".strip()


class MockBackend:
    """Input-independent stand-in that keeps the pipeline runnable offline."""

    name = MOCK_MODEL_ID

    def __init__(self, delay_seconds: float = 0.5) -> None:
        self.delay_seconds = delay_seconds

    async def generate(
        self,
        prompt: str,
        *,
        system_instruction: str | None = None,
        response_schema: dict | None = None,
    ) -> ModelResponse:
        """Return the canned analysis after a simulated delay."""
        await asyncio.sleep(self.delay_seconds)
        return ModelResponse(
            content=MOCK_ANALYSIS,
            model=MOCK_MODEL_ID,
            tokens_used=MOCK_TOKENS_USED,
        )


def _response_text(response: Any) -> str:
    """Join user-visible text parts, skipping thinking parts."""
    candidates = getattr(response, "candidates", None) or []
    content = candidates[0].content if candidates else None
    parts = (getattr(content, "parts", None) or []) if content is not None else []
    text_parts = [p.text for p in parts if p.text and not getattr(p, "thought", False)]
    if text_parts:
        return "\n".join(text_parts)
    return getattr(response, "text", None) or ""


def _tokens_used(response: Any) -> int | None:
    """Read token usage: ``total_token_count`` first, else prompt + candidates."""
    usage = getattr(response, "usage_metadata", None)
    if usage is None:
        return None
    total = getattr(usage, "total_token_count", None)
    if total:
        return int(total)
    prompt = getattr(usage, "prompt_token_count", None) or 0
    candidates = getattr(usage, "candidates_token_count", None) or 0
    return int(prompt + candidates) or None


class GeminiBackend:
    """Live backend calling Gemini through the google-genai async API."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        temperature: float = 0.1,
        timeout_seconds: float = 60.0,
        retry_max_attempts: int = 3,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 30.0,
    ) -> None:
        if not api_key:
            raise ValueError("No Gemini API key — set GEMINI_API_KEY")
        self._client = genai.Client(api_key=api_key)
        self.name = model
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self._retry = {
            "max_attempts": retry_max_attempts,
            "base_delay": retry_base_delay,
            "max_delay": retry_max_delay,
        }
        logger.info("Created Gemini client (key …%s)", api_key[-4:])

    @classmethod
    def from_config(cls, cfg: AnalyzerConfig) -> GeminiBackend:
        return cls(
            cfg.gemini_api_key,
            model=cfg.model,
            temperature=cfg.temperature,
            timeout_seconds=cfg.request_timeout_seconds,
            retry_max_attempts=cfg.retry_max_attempts,
            retry_base_delay=cfg.retry_base_delay,
            retry_max_delay=cfg.retry_max_delay,
        )

    async def generate(
        self,
        prompt: str,
        *,
        system_instruction: str | None = None,
        response_schema: dict | None = None,
    ) -> ModelResponse:
        """Run one generate_content call bounded by ``timeout_seconds``.

        Raises:
            asyncio.TimeoutError: The call (including retries) exceeded the timeout.
            MalformedResponseError: Gemini returned no usable text.
        """
        config = types.GenerateContentConfig(temperature=self.temperature)
        if system_instruction:
            config.system_instruction = system_instruction
        if response_schema:
            config.response_mime_type = "application/json"
            config.response_json_schema = response_schema

        contents = [types.Content(role="user", parts=[types.Part.from_text(text=prompt)])]
        response = await asyncio.wait_for(
            with_retry(
                lambda: self._client.aio.models.generate_content(
                    model=self.name,
                    contents=contents,
                    config=config,
                ),
                **self._retry,
            ),
            timeout=self.timeout_seconds,
        )

        text = _response_text(response)
        if not text.strip():
            raise MalformedResponseError(f"Empty response from {self.name}")
        return ModelResponse(content=text, model=self.name, tokens_used=_tokens_used(response))

    async def aclose(self) -> None:
        await self._client.aio.aclose()


class ModelClient:
    """Uniform ``invoke`` over an optional live backend and the mock."""

    def __init__(
        self,
        backend: GeminiBackend | None = None,
        mock: MockBackend | None = None,
    ) -> None:
        self.backend = backend
        self.mock = mock or MockBackend()

    @property
    def live(self) -> bool:
        return self.backend is not None

    @property
    def model(self) -> str:
        return self.backend.name if self.backend is not None else self.mock.name

    @classmethod
    def from_config(cls, cfg: AnalyzerConfig | None = None) -> ModelClient:
        """Select the backend once from *cfg* (defaults to the global config)."""
        cfg = cfg or get_config()
        mock = MockBackend(delay_seconds=cfg.mock_delay_seconds)

        if not cfg.live_credentials:
            missing = ErrorCategory.CONFIG_MISSING_CREDENTIAL
            logger.warning(
                "GEMINI_API_KEY is not set. Using mock LLM responses [%s]: %s",
                missing.value, hint_for(missing),
            )
            return cls(mock=mock)

        try:
            backend = GeminiBackend.from_config(cfg)
        except Exception as exc:
            failure = describe_failure(exc)
            init_failed = ErrorCategory.BACKEND_INIT_FAILED
            logger.error(
                "Failed to initialize Gemini client [%s]: %s (%s)",
                init_failed.value, failure.error, hint_for(init_failed),
            )
            logger.warning("Falling back to mock LLM")
            return cls(mock=mock)

        logger.info("Initialized Gemini backend (%s)", backend.name)
        return cls(backend=backend, mock=mock)

    async def invoke(
        self,
        prompt: str,
        system_instruction: str | None = None,
        *,
        response_schema: dict | None = None,
    ) -> ModelResponse:
        """Run *prompt* on the live backend, or the mock when live is off or fails.

        Args:
            prompt: User prompt text.
            system_instruction: Optional system-level instruction.
            response_schema: JSON schema requesting structured output (live only).

        Returns:
            A ModelResponse; ``fallback_category`` is set when a live call failed.
        """
        fallback_category: str | None = None

        if self.backend is not None:
            logger.info("Calling Gemini (%s), prompt length: %d characters", self.backend.name, len(prompt))
            try:
                response = await self.backend.generate(
                    prompt,
                    system_instruction=system_instruction,
                    response_schema=response_schema,
                )
            except InvariantViolation:
                raise
            except Exception as exc:
                failure = describe_failure(exc)
                fallback_category = failure.category
                logger.error(
                    "Gemini call failed [%s]: %s (%s)", failure.category, failure.error, failure.hint,
                )
                logger.warning("Falling back to mock response")
            else:
                logger.info("Response received from %s", response.model)
                if response.tokens_used:
                    logger.info("Tokens used: %d", response.tokens_used)
                return response

        logger.info("Using mock LLM response, prompt length: %d characters", len(prompt))
        response = await self.mock.generate(
            prompt,
            system_instruction=system_instruction,
            response_schema=response_schema,
        )
        if fallback_category is not None:
            response = response.model_copy(update={"fallback_category": fallback_category})
        return response

    async def aclose(self) -> None:
        if self.backend is not None:
            try:
                await self.backend.aclose()
            except Exception:
                logger.warning("Gemini client close failed", exc_info=True)


# Process-wide client for the composition root, built once.
_client: ModelClient | None = None


def get_model_client() -> ModelClient:
    """Return the shared ModelClient, selecting its backend on first access."""
    global _client
    if _client is None:
        _client = ModelClient.from_config()
    return _client


async def close_model_client() -> None:
    """Close and forget the shared ModelClient."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
