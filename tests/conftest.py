"""Shared test fixtures for population-blindspots."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from population_blindspots.client import GeminiBackend, MockBackend, ModelClient
from population_blindspots.models.papers import PaperSummary

_CONFIG_VARS = (
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "GEMINI_TEMPERATURE",
    "USE_LLM_ANALYSIS",
    "POPULATION_STRUCTURED_OUTPUT",
    "POPULATION_FINDINGS_MODE",
    "POPULATION_MAX_PROMPT_CHARS",
    "GEMINI_TIMEOUT_SECONDS",
    "GEMINI_RETRY_MAX_ATTEMPTS",
    "GEMINI_RETRY_BASE_DELAY",
    "GEMINI_RETRY_MAX_DELAY",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Ensure tests never hit the real Gemini API and never wait on the mock."""
    for name in _CONFIG_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MOCK_LLM_DELAY_SECONDS", "0")


@pytest.fixture(autouse=True)
def _isolate_dotenv(monkeypatch):
    """Prevent tests from loading a real ./.env or ~/.config/population-blindspots/.env."""
    monkeypatch.setattr("population_blindspots.dotenv.default_env_paths", lambda: [])


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Reset the config and model-client singletons between tests."""
    import population_blindspots.client as client_mod
    import population_blindspots.config as cfg_mod

    cfg_mod._config = None
    client_mod._client = None
    yield
    cfg_mod._config = None
    client_mod._client = None


@pytest.fixture()
def mock_client() -> ModelClient:
    """ModelClient in mock mode with no simulated delay."""
    return ModelClient(mock=MockBackend(delay_seconds=0))


@pytest.fixture()
def gemini_backend():
    """GeminiBackend over a patched genai.Client — yields (backend, genai client mock)."""
    with patch("population_blindspots.client.genai.Client") as client_cls:
        genai_client = MagicMock()
        genai_client.aio.models.generate_content = AsyncMock()
        genai_client.aio.aclose = AsyncMock()
        client_cls.return_value = genai_client
        backend = GeminiBackend(
            "test-key-not-real",
            model="gemini-test",
            timeout_seconds=5.0,
            retry_max_attempts=2,
            retry_base_delay=0.01,
            retry_max_delay=0.01,
        )
        yield backend, genai_client


@pytest.fixture()
def sample_papers() -> list[PaperSummary]:
    return [
        PaperSummary(
            title="Metformin in children with type 2 diabetes",
            abstract=(
                "A randomized trial of 120 adolescents aged 10-17 in the United States. "
                "Both boys and girls were enrolled."
            ),
            year=2021,
            identifier="pmid:1001",
        ),
        PaperSummary(
            title="Glycemic control in older adults",
            abstract=(
                "Cohort of 2,000 elderly patients aged 65 to 74 in Germany and France. "
                "Men and women were followed for five years. Pregnant women were excluded."
            ),
            year=2019,
            identifier="pmid:1002",
        ),
        PaperSummary(
            title="Gestational diabetes outcomes",
            abstract="We followed 300 pregnant women in Nigeria and Kenya.",
            year=2022,
            identifier="pmid:1003",
        ),
        PaperSummary(
            title="A genome-wide association study",
            abstract="Statistical methods for GWAS.",
            year=2020,
            identifier="pmid:1004",
        ),
    ]
