"""Demographic blind-spot analysis for research literature.

Public API:
    analyze_population() — papers + disease to a DemographicBreakdown.
    build_population_analyzer() — composition root picking heuristic or model analysis.
    extract_demographics() — analysis prose to a DemographicBreakdown.
"""

from .analyzer import (
    HeuristicPopulationAnalyzer,
    ModelPopulationAnalyzer,
    analyze_population,
    build_population_analyzer,
)
from .client import ModelClient, get_model_client
from .extraction import extract_demographics
from .models.demographics import DemographicBreakdown
from .models.llm import ModelResponse
from .models.papers import AnalysisRequest, PaperSummary

__version__ = "0.1.0"

__all__ = [
    "AnalysisRequest",
    "DemographicBreakdown",
    "HeuristicPopulationAnalyzer",
    "ModelClient",
    "ModelPopulationAnalyzer",
    "ModelResponse",
    "PaperSummary",
    "analyze_population",
    "build_population_analyzer",
    "extract_demographics",
    "get_model_client",
]
