"""Population analysis — paper summaries to a DemographicBreakdown.

Two interchangeable analyzers implement ``await analyze(papers, disease)``:

- :class:`HeuristicPopulationAnalyzer` applies keyword rules to titles and
  abstracts. No model call, deterministic, order-independent.
- :class:`ModelPopulationAnalyzer` summarises the papers into one prompt,
  calls the :class:`~population_blindspots.client.ModelClient` and hands the
  text to a response extractor.

Which one runs is decided at the composition root
(:func:`build_population_analyzer`), never inside an analyzer.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from typing import Literal, Protocol

from .client import ModelClient, get_model_client
from .config import AnalyzerConfig, get_config
from .errors import InvariantViolation
from .extraction import (
    PatternExtractor,
    ResponseExtractor,
    StructuredExtractor,
    findings_policy,
)
from .models.demographics import CATEGORY_LABELS, DemographicBreakdown, DemographicReport
from .models.papers import AnalysisRequest, PaperSummary
from .prompts.population import POPULATION_SYSTEM, build_population_prompt, render_papers

logger = logging.getLogger(__name__)

AnalysisMode = Literal["heuristic", "model"]
ANALYSIS_MODES: tuple[str, ...] = ("heuristic", "model")


class PopulationAnalyzer(Protocol):
    async def analyze(
        self, papers: Sequence[PaperSummary], disease: str,
    ) -> DemographicBreakdown: ...


# ── Heuristic rules ─────────────────────────────────────────────────────────


def _rule(*terms: str) -> re.Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(terms) + r")\b", re.IGNORECASE)


KEYWORD_RULES: dict[str, dict[str, re.Pattern[str]]] = {
    "age": {
        "0-18": _rule(
            r"p(?:a)?ediatrics?", r"child(?:ren|hood)?", r"adolescen(?:ts?|ce)", r"infants?",
            r"neonat(?:es?|al)", r"newborns?", r"toddlers?", r"youths?", r"teenagers?",
        ),
        "18-40": _rule(r"young adults?", r"aged 18 ?(?:to|–|-) ?(?:3\d|40)", r"college students?"),
        "40-65": _rule(r"middle[- ]aged", r"aged (?:4\d|5\d) ?(?:to|–|-) ?(?:5\d|6[0-5])"),
        "65-75": _rule(r"(?<!very )elderly", r"older (?:adults?|patients?|people)", r"aged 65", r"geriatric"),
        ">75": _rule(
            r"very (?:elderly|old)", r"oldest[- ]old", r"octogenarians?", r"nonagenarians?",
            r"aged (?:over |≥ ?|>= ?)?(?:75|80|85)", r"(?:75|80|85) years (?:and|or) older",
        ),
    },
    "gender": {
        "male": _rule(r"men", r"males?", r"boys"),
        "female": _rule(r"women", r"females?", r"girls"),
    },
    "pregnancy_status": {
        "pregnant": _rule(
            r"pregnant", r"pregnancy", r"gestational", r"prenatal", r"antenatal",
            r"perinatal", r"expectant mothers?",
        ),
        "not_pregnant": _rule(
            r"non[- ]?pregnant", r"not pregnant",
            r"pregnan(?:t|cy)[\w ,]{0,40}(?:were|was) excluded",
            r"excluding pregnan(?:t|cy)\w*", r"exclusion of pregnan(?:t|cy)\w*",
        ),
    },
    "geography": {
        "North America": _rule(
            r"North America(?:ns?)?", r"United States", r"USA", r"Canad(?:a|ians?)",
            r"Mexic(?:o|ans?)",
        ),
        "Europe": _rule(
            r"Europe(?:ans?)?", r"United Kingdom", r"UK", r"England", r"German(?:y|s)?", r"France",
            r"French", r"Ital(?:y|ians?)", r"Spain", r"Spanish", r"Netherlands", r"Dutch",
            r"Swed(?:en|ish)", r"Denmark", r"Danish", r"Norw(?:ay|egians?)", r"Finland",
            r"Switzerland", r"Poland",
        ),
        "Asia": _rule(
            r"Asian?s?", r"China", r"Chinese", r"Japan(?:ese)?", r"India", r"Indians?",
            r"Korea(?:ns?)?", r"Taiwan(?:ese)?", r"Singapore", r"Thai(?:land)?",
            r"Vietnam(?:ese)?",
            r"Pakistan(?:is?)?", r"Iran(?:ians?)?", r"Israel(?:is?)?",
        ),
        "Africa": _rule(
            r"Africa(?:ns?)?", r"Nigeria(?:ns?)?", r"Kenya(?:ns?)?", r"Ethiopia(?:ns?)?",
            r"Uganda(?:ns?)?", r"Ghana(?:ians?)?", r"Tanzania(?:ns?)?", r"Egypt(?:ians?)?",
            r"Malawi(?:ans?)?", r"Rwanda(?:ns?)?",
        ),
        "Other": _rule(
            r"South America(?:ns?)?", r"Latin America(?:ns?)?", r"Brazil(?:ians?)?",
            r"Argentin(?:a|e|ians?)", r"Chile(?:ans?)?", r"Colombia(?:ns?)?", r"Peru(?:vians?)?",
            r"Australia(?:ns?)?", r"New Zealand", r"Oceania",
        ),
    },
}

# (category, label, finding) emitted when no paper matches the label.
_ABSENCE_FINDINGS: tuple[tuple[str, str, str], ...] = (
    ("age", "0-18", "No studies mention pediatric populations"),
    ("pregnancy_status", "pregnant", "No studies mention pregnant individuals"),
    ("age", ">75", "No studies mention very elderly (>75) populations"),
    ("geography", "Africa", "No studies mention African populations"),
)


def match_labels(paper: PaperSummary) -> dict[str, set[str]]:
    """Return the labels each category's rules match in *paper*."""
    text = paper.text
    matched: dict[str, set[str]] = {}
    for category, rules in KEYWORD_RULES.items():
        matched[category] = {label for label, rule in rules.items() if rule.search(text)}
    pregnancy = matched["pregnancy_status"]
    if "not_pregnant" in pregnancy:
        # Exclusion wording mentions pregnancy without studying it.
        pregnancy.discard("pregnant")
    return matched


def _percent(count: int, total: int) -> int:
    """Integer percentage, rounded half up."""
    return (200 * count + total) // (2 * total)


def tally_demographics(papers: Iterable[PaperSummary]) -> DemographicBreakdown:
    """Share of *papers* matching each label, plus absence findings.

    A paper matching nothing contributes nothing; ``not_specified`` is never
    inferred. An empty paper set yields an all-zero breakdown.
    """
    counts = {category: dict.fromkeys(labels, 0) for category, labels in CATEGORY_LABELS.items()}
    total = 0
    for paper in papers:
        total += 1
        for category, labels in match_labels(paper).items():
            for label in labels:
                counts[category][label] += 1

    if total == 0:
        return DemographicBreakdown.empty()

    shares = {
        category: {label: _percent(n, total) for label, n in labels.items()}
        for category, labels in counts.items()
    }
    findings = [
        finding for category, label, finding in _ABSENCE_FINDINGS
        if counts[category][label] == 0
    ]
    return DemographicBreakdown(**shares, critical_findings=findings)


class HeuristicPopulationAnalyzer:
    """Rule-based analyzer; never calls a model."""

    async def analyze(
        self, papers: Sequence[PaperSummary], disease: str,
    ) -> DemographicBreakdown:
        breakdown = tally_demographics(papers)
        logger.info("Heuristic population analysis of %d paper(s) for %r", len(papers), disease)
        return breakdown


# ── Model-backed analysis ───────────────────────────────────────────────────


class ModelPopulationAnalyzer:
    """Analyzer that asks the model client and extracts its answer.

    Args:
        client: Model client; its backend was chosen when it was built.
        extractor: Turns the response text into a DemographicBreakdown.
        max_prompt_chars: Upper bound for the rendered paper block.
        structured: Request a JSON DemographicReport instead of prose.
    """

    def __init__(
        self,
        client: ModelClient,
        extractor: ResponseExtractor | None = None,
        *,
        max_prompt_chars: int = 24000,
        structured: bool = False,
    ) -> None:
        self.client = client
        self.extractor = extractor or (StructuredExtractor() if structured else PatternExtractor())
        self.max_prompt_chars = max_prompt_chars
        self.structured = structured

    async def analyze(
        self, papers: Sequence[PaperSummary], disease: str,
    ) -> DemographicBreakdown:
        request = AnalysisRequest(disease=disease, papers=tuple(papers))
        if request.is_empty:
            logger.info("No papers for %r — skipping model call", disease)
            return DemographicBreakdown.empty()

        _, included = render_papers(request.papers, self.max_prompt_chars)
        if not included:
            logger.warning(
                "No paper fits in %d prompt characters for %r — skipping model call",
                self.max_prompt_chars, disease,
            )
            return DemographicBreakdown.empty()

        prompt = build_population_prompt(
            request, self.max_prompt_chars, structured=self.structured,
        )
        schema = DemographicReport.model_json_schema() if self.structured else None
        response = await self.client.invoke(
            prompt, POPULATION_SYSTEM, response_schema=schema,
        )
        if response.fallback_category:
            logger.warning(
                "Population analysis for %r used mock output (%s)",
                disease, response.fallback_category,
            )
        return self.extractor.extract(response.content)


# ── Composition root ────────────────────────────────────────────────────────


def build_population_analyzer(
    cfg: AnalyzerConfig | None = None,
    *,
    client: ModelClient | None = None,
    mode: AnalysisMode | None = None,
) -> PopulationAnalyzer:
    """Pick the analyzer variant for *mode* (default: ``cfg.use_llm_analysis``).

    Raises:
        InvariantViolation: *mode* is not a known analysis mode.
    """
    cfg = cfg or get_config()
    if mode is None:
        mode = "model" if cfg.use_llm_analysis else "heuristic"
    if mode not in ANALYSIS_MODES:
        raise InvariantViolation(f"Unknown analysis mode {mode!r}; expected one of {ANALYSIS_MODES}")

    if mode == "heuristic":
        return HeuristicPopulationAnalyzer()

    pattern = PatternExtractor(findings_policy(cfg.findings_mode))
    extractor: ResponseExtractor = (
        StructuredExtractor(pattern) if cfg.structured_output else pattern
    )
    return ModelPopulationAnalyzer(
        client or get_model_client(),
        extractor,
        max_prompt_chars=cfg.max_prompt_chars,
        structured=cfg.structured_output,
    )


async def analyze_population(
    papers: Sequence[PaperSummary],
    disease: str,
    mode: AnalysisMode | None = None,
    *,
    client: ModelClient | None = None,
    cfg: AnalyzerConfig | None = None,
) -> DemographicBreakdown:
    """Analyze *papers* for *disease* with the configured (or given) mode."""
    analyzer = build_population_analyzer(cfg, client=client, mode=mode)
    return await analyzer.analyze(papers, disease)
