"""Model-call result record."""

from __future__ import annotations

from pydantic import BaseModel

MOCK_MODEL_ID = "mock-llm-v1"


class ModelResponse(BaseModel):
    """Result of one model invocation.

    ``fallback_category`` is set when the live backend failed and the mock
    answer was substituted; it holds the :class:`~population_blindspots.errors.ErrorCategory`
    value of the failure.
    """

    content: str
    model: str
    tokens_used: int | None = None
    fallback_category: str | None = None

    @property
    def is_mock(self) -> bool:
        return self.model == MOCK_MODEL_ID
