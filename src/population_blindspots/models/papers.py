"""Input records — paper summaries supplied by literature retrieval."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class PaperSummary(BaseModel):
    """Minimal bibliographic record for one retrieved paper."""

    model_config = ConfigDict(frozen=True)

    title: str
    abstract: str = ""
    year: int | None = None
    identifier: str = ""

    @property
    def text(self) -> str:
        """Title and abstract joined, the text scanned by heuristic rules."""
        return f"{self.title}\n{self.abstract}".strip()


class AnalysisRequest(BaseModel):
    """One population-analysis request: the paper set plus the disease query.

    Immutable once constructed; lives for a single analysis call.
    """

    model_config = ConfigDict(frozen=True)

    disease: str
    papers: tuple[PaperSummary, ...] = Field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.papers
