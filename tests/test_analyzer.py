"""Tests for heuristic and model-backed population analysis."""

from __future__ import annotations

import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from population_blindspots.analyzer import (
    HeuristicPopulationAnalyzer,
    ModelPopulationAnalyzer,
    analyze_population,
    build_population_analyzer,
    match_labels,
    tally_demographics,
)
from population_blindspots.client import MOCK_ANALYSIS, ModelClient
from population_blindspots.config import AnalyzerConfig
from population_blindspots.errors import InvariantViolation
from population_blindspots.extraction import (
    CANONICAL_FINDINGS,
    ParsedFindings,
    PatternExtractor,
    StructuredExtractor,
    extract_demographics,
)
from population_blindspots.models.demographics import DemographicBreakdown
from population_blindspots.models.llm import ModelResponse
from population_blindspots.models.papers import PaperSummary
from population_blindspots.prompts.population import POPULATION_SYSTEM


def _stub_client(content: str, **extra) -> MagicMock:
    client = MagicMock(spec=ModelClient)
    client.invoke = AsyncMock(
        return_value=ModelResponse(content=content, model="stub", **extra),
    )
    return client


class TestEmptyInput:
    async def test_heuristic_empty(self):
        breakdown = await HeuristicPopulationAnalyzer().analyze([], "asthma")
        assert breakdown.is_zero()
        assert breakdown.critical_findings == ()

    async def test_model_empty_skips_call(self):
        client = _stub_client(MOCK_ANALYSIS)
        breakdown = await ModelPopulationAnalyzer(client).analyze([], "asthma")
        assert breakdown.is_zero()
        assert breakdown.critical_findings == ()
        client.invoke.assert_not_awaited()

    @pytest.mark.parametrize("mode", ["heuristic", "model"])
    async def test_both_modes_zero(self, mode, mock_client):
        breakdown = await analyze_population([], "asthma", mode, client=mock_client)
        assert breakdown.is_zero()


class TestHeuristicRules:
    def test_tally(self, sample_papers):
        b = tally_demographics(sample_papers)
        assert b.age == {
            "0-18": 25, "18-40": 0, "40-65": 0, "65-75": 25, ">75": 0, "not_specified": 0,
        }
        assert b.gender == {"male": 50, "female": 75, "not_specified": 0}
        assert b.pregnancy_status == {"pregnant": 25, "not_pregnant": 25, "not_specified": 0}
        assert b.geography == {
            "North America": 25, "Europe": 25, "Asia": 0, "Africa": 25,
            "Other": 0, "not_specified": 0,
        }
        assert b.critical_findings == ("No studies mention very elderly (>75) populations",)

    def test_order_independent(self, sample_papers):
        assert tally_demographics(sample_papers) == tally_demographics(reversed(sample_papers))

    def test_unmatched_paper_contributes_nothing(self):
        paper = PaperSummary(title="Statistical methods", abstract="Simulation study.")
        assert all(not labels for labels in match_labels(paper).values())
        b = tally_demographics([paper])
        assert b.is_zero()
        assert len(b.critical_findings) == 4

    def test_exclusion_wording_is_not_pregnant(self):
        paper = PaperSummary(title="T", abstract="Pregnant women were excluded from enrolment.")
        assert match_labels(paper)["pregnancy_status"] == {"not_pregnant"}

    def test_very_elderly_not_counted_as_elderly(self):
        paper = PaperSummary(title="Outcomes in very elderly patients", abstract="")
        age = match_labels(paper)["age"]
        assert ">75" in age
        assert "65-75" not in age

    def test_ordinary_words_are_not_regions(self):
        paper = PaperSummary(
            title="Chart review",
            abstract=(
                "After perusal of hospital records in Boston, USA, we perused the "
                "asiatic flu literature and the survey protocol. "
                "Paediatricians were not involved."
            ),
        )
        matched = match_labels(paper)
        assert matched["geography"] == {"North America"}
        assert "0-18" not in matched["age"]

    @pytest.mark.parametrize("text,region", [
        ("Peruvian adults", "Other"),
        ("cohort from Peru", "Other"),
        ("Nigerian women", "Africa"),
        ("sub-Saharan Africa", "Africa"),
        ("Korean registry", "Asia"),
        ("North American sites", "North America"),
        ("Europeans", "Europe"),
    ])
    def test_country_and_demonym_forms(self, text, region):
        assert match_labels(PaperSummary(title=text))["geography"] == {region}

    def test_rounding_half_up(self):
        papers = [PaperSummary(title="children")] + [PaperSummary(title="x")] * 7
        assert tally_demographics(papers).age["0-18"] == 13

    def test_thirds(self):
        papers = [PaperSummary(title="women"), PaperSummary(title="women"), PaperSummary(title="x")]
        assert tally_demographics(papers).gender["female"] == 67

    async def test_analyzer_never_calls_model(self, sample_papers):
        breakdown = await HeuristicPopulationAnalyzer().analyze(sample_papers, "diabetes")
        assert breakdown == tally_demographics(sample_papers)


class TestModelAnalyzer:
    async def test_mock_client_yields_mock_breakdown(self, mock_client, sample_papers):
        breakdown = await ModelPopulationAnalyzer(mock_client).analyze(sample_papers, "diabetes")
        assert breakdown == extract_demographics(MOCK_ANALYSIS)

    async def test_prompt_and_system_instruction(self, sample_papers):
        client = _stub_client("- Male: 40%")
        breakdown = await ModelPopulationAnalyzer(client).analyze(sample_papers, "diabetes")

        prompt, system = client.invoke.await_args.args
        assert "diabetes" in prompt
        assert "[1] Metformin in children with type 2 diabetes (2021)" in prompt
        assert "4 of 4 retrieved papers" in prompt
        assert system == POPULATION_SYSTEM
        assert client.invoke.await_args.kwargs["response_schema"] is None
        assert breakdown.gender["male"] == 40

    async def test_prompt_bounded(self, sample_papers):
        client = _stub_client("")
        analyzer = ModelPopulationAnalyzer(client, max_prompt_chars=120)
        await analyzer.analyze(sample_papers, "diabetes")

        prompt = client.invoke.await_args.args[0]
        assert "Glycemic control" not in prompt
        assert "1 of 4 retrieved papers" in prompt

    async def test_no_paper_fits_skips_call(self, sample_papers, caplog):
        """A bound too small for any paper yields the empty breakdown."""
        client = _stub_client(MOCK_ANALYSIS)
        analyzer = ModelPopulationAnalyzer(client, max_prompt_chars=2)

        with caplog.at_level(logging.WARNING, logger="population_blindspots.analyzer"):
            breakdown = await analyzer.analyze(sample_papers, "diabetes")

        assert breakdown == DemographicBreakdown.empty()
        client.invoke.assert_not_awaited()
        assert "No paper fits" in caplog.text

    async def test_structured_mode(self, sample_papers):
        payload = {"age": {"0-18": 30}, "critical_findings": ["No African cohorts"]}
        client = _stub_client(json.dumps(payload))
        analyzer = ModelPopulationAnalyzer(client, structured=True)

        breakdown = await analyzer.analyze(sample_papers, "diabetes")

        schema = client.invoke.await_args.kwargs["response_schema"]
        assert "AgeShares" in schema["$defs"]
        assert breakdown.age["0-18"] == 30
        assert breakdown.critical_findings == ("No African cohorts",)

    async def test_live_failure_still_returns_breakdown(self, gemini_backend, sample_papers):
        backend, genai_client = gemini_backend
        genai_client.aio.models.generate_content.side_effect = ConnectionError("connection refused")
        client = ModelClient(backend=backend)
        client.mock.delay_seconds = 0

        breakdown = await ModelPopulationAnalyzer(client).analyze(sample_papers, "diabetes")

        assert breakdown == extract_demographics(MOCK_ANALYSIS)


class TestComposition:
    def test_default_is_heuristic(self):
        assert isinstance(build_population_analyzer(AnalyzerConfig()), HeuristicPopulationAnalyzer)

    def test_flag_selects_model(self, mock_client):
        analyzer = build_population_analyzer(AnalyzerConfig(use_llm_analysis=True), client=mock_client)
        assert isinstance(analyzer, ModelPopulationAnalyzer)
        assert analyzer.client is mock_client
        assert isinstance(analyzer.extractor, PatternExtractor)

    def test_explicit_mode_overrides_config(self, mock_client):
        analyzer = build_population_analyzer(
            AnalyzerConfig(use_llm_analysis=True), client=mock_client, mode="heuristic",
        )
        assert isinstance(analyzer, HeuristicPopulationAnalyzer)

    def test_structured_and_parsed_findings(self, mock_client):
        cfg = AnalyzerConfig(use_llm_analysis=True, structured_output=True, findings_mode="parsed")
        analyzer = build_population_analyzer(cfg, client=mock_client)
        assert analyzer.structured is True
        assert isinstance(analyzer.extractor, StructuredExtractor)
        assert isinstance(analyzer.extractor.fallback.findings, ParsedFindings)

    def test_unknown_mode_is_invariant_violation(self):
        with pytest.raises(InvariantViolation, match="Unknown analysis mode"):
            build_population_analyzer(AnalyzerConfig(), mode="oracle")

    def test_uses_global_config_and_client(self, monkeypatch):
        monkeypatch.setenv("USE_LLM_ANALYSIS", "true")
        analyzer = build_population_analyzer()
        assert isinstance(analyzer, ModelPopulationAnalyzer)
        assert analyzer.client.live is False

    async def test_analyze_population_model_mode(self, mock_client, sample_papers):
        breakdown = await analyze_population(sample_papers, "diabetes", "model", client=mock_client)
        assert breakdown.age["40-65"] == 60
        assert breakdown.critical_findings == CANONICAL_FINDINGS

    async def test_modes_share_output_type(self, mock_client, sample_papers):
        heuristic = await analyze_population(sample_papers, "diabetes", "heuristic")
        model = await analyze_population(sample_papers, "diabetes", "model", client=mock_client)
        assert type(heuristic) is type(model)
        assert set(heuristic.as_dict()) == set(model.as_dict())
