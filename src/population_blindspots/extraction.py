"""Response extraction — analysis text to DemographicBreakdown.

Two extractors share the ``extract(text)`` interface:

- :class:`PatternExtractor` reads the labelled prose format
  (``- Elderly (65-75): 45%``). A label is matched case-sensitively and its
  value is the first ``N%`` later on the same line; a label with no match is 0.
- :class:`StructuredExtractor` validates a JSON ``DemographicReport`` and
  falls back to pattern extraction when the text is not one.

Critical findings come from a :class:`FindingsPolicy`. The default,
:class:`StaticFindings`, returns a fixed canonical list whatever the text
says; :class:`ParsedFindings` reads the list out of the response instead.
"""

from __future__ import annotations

import re
from typing import Protocol

from pydantic import ValidationError

from .models.demographics import CATEGORY_LABELS, DemographicBreakdown, DemographicReport

_SAME_LINE_PERCENT = r"[^\n]*?(\d+)%"


def _label(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern + _SAME_LINE_PERCENT)


# Overlapping labels carry guards: "Elderly (65-75)" must not be read from a
# "Very Elderly" line, "Pregnant" not from "Non-pregnant", "Africa" not from "African".
LABEL_PATTERNS: dict[str, dict[str, tuple[re.Pattern[str], ...]]] = {
    "age": {
        "0-18": (_label(r"Pa?ediatric"),),
        "18-40": (_label(r"Young Adults"),),
        "40-65": (_label(r"Middle-aged Adults"),),
        "65-75": (_label(r"(?<!Very )Elderly \(65-75\)"),),
        ">75": (_label(r"Very Elderly"),),
        "not_specified": (_label(r"Age not (?:reported|specified)"),),
    },
    "gender": {
        "male": (_label(r"\bMale\b"),),
        "female": (_label(r"\bFemale\b"),),
        "not_specified": (_label(r"(?:Gender|Sex) not (?:reported|specified)"),),
    },
    "pregnancy_status": {
        "pregnant": (_label(r"(?<![-\w])Pregnant individuals"),),
        "not_pregnant": (_label(r"Non-[Pp]regnant individuals"),),
        "not_specified": (_label(r"Pregnancy status not (?:mentioned|reported)"),),
    },
    "geography": {
        "North America": (_label(r"North America"),),
        "Europe": (_label(r"\bEurope\b"),),
        "Asia": (_label(r"\bAsia\b"),),
        "Africa": (_label(r"\bAfrica\b"),),
        "Other": (
            _label(r"South America"),
            _label(r"\bOceania\b"),
            _label(r"\bOther regions?\b"),
        ),
        "not_specified": (_label(r"(?:Region|Geography) not (?:reported|specified)"),),
    },
}

CANONICAL_FINDINGS: tuple[str, ...] = (
    "Complete exclusion of pediatric populations",
    "Systematic exclusion of pregnant individuals",
    "Severe underrepresentation of very elderly (>75)",
    "Complete absence of African populations",
    "Geographic bias toward Western/developed nations",
)


def _first_percent(pattern: re.Pattern[str], text: str) -> int:
    match = pattern.search(text)
    return int(match.group(1)) if match else 0


def extract_category(text: str, category: str) -> dict[str, int]:
    """Read every label of *category* from *text*; unmatched labels are 0."""
    patterns = LABEL_PATTERNS[category]
    return {
        label: sum(_first_percent(p, text) for p in patterns[label])
        for label in CATEGORY_LABELS[category]
    }


# ── Findings policies ───────────────────────────────────────────────────────


class FindingsPolicy(Protocol):
    def findings(self, text: str) -> list[str]: ...


class StaticFindings:
    """Always report the canonical findings, regardless of the response.

    Known limitation: findings do not reflect the analysed papers. Use
    :class:`ParsedFindings` to read them from the model's answer.
    """

    def findings(self, text: str) -> list[str]:
        return list(CANONICAL_FINDINGS)


class ParsedFindings:
    """Read the numbered list under a "Critical Blind Spots" heading.

    Severity tags like ``(CRITICAL)`` are dropped. Falls back to the canonical
    list when no item can be read, so findings are never empty.
    """

    _SECTION = re.compile(
        r"Critical Blind Spots[^\n]*\n(?P<body>(?:[ \t]*(?:\d+[.)]|[-*])[ \t]+[^\n]*(?:\n|$))+)",
        re.IGNORECASE,
    )
    _ITEM = re.compile(r"^[ \t]*(?:\d+[.)]|[-*])[ \t]+(?P<text>[^\n]+)$", re.MULTILINE)
    _SEVERITY = re.compile(r"\s*\((?:CRITICAL|HIGH|MEDIUM|LOW)\)\s*$", re.IGNORECASE)

    def findings(self, text: str) -> list[str]:
        section = self._SECTION.search(text)
        if section is None:
            return list(CANONICAL_FINDINGS)
        items = []
        for match in self._ITEM.finditer(section.group("body")):
            item = self._SEVERITY.sub("", match.group("text")).strip(" *")
            if item:
                items.append(item)
        return items or list(CANONICAL_FINDINGS)


def findings_policy(mode: str) -> FindingsPolicy:
    """Return the policy for a ``POPULATION_FINDINGS_MODE`` value."""
    return ParsedFindings() if mode == "parsed" else StaticFindings()


# ── Extractors ──────────────────────────────────────────────────────────────


class ResponseExtractor(Protocol):
    def extract(self, text: str) -> DemographicBreakdown: ...


class PatternExtractor:
    """Extract percentages from labelled analysis prose."""

    def __init__(self, findings: FindingsPolicy | None = None) -> None:
        self.findings = findings or StaticFindings()

    def extract(self, text: str) -> DemographicBreakdown:
        return DemographicBreakdown(
            age=extract_category(text, "age"),
            gender=extract_category(text, "gender"),
            pregnancy_status=extract_category(text, "pregnancy_status"),
            geography=extract_category(text, "geography"),
            critical_findings=self.findings.findings(text),
        )


_FENCE_OPEN = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n")
_FENCE_CLOSE = re.compile(r"\n\s*```\s*$")


def _strip_fences(text: str) -> str:
    t = text.strip()
    if "```" in t:
        t = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", t)).strip()
    return t


def parse_report(text: str) -> DemographicReport | None:
    """Validate *text* as a DemographicReport JSON document, or return None."""
    t = _strip_fences(text)
    if not t.startswith("{"):
        return None
    try:
        return DemographicReport.model_validate_json(t)
    except ValidationError:
        return None


class StructuredExtractor:
    """Read a JSON DemographicReport; fall back to pattern extraction otherwise."""

    def __init__(self, fallback: PatternExtractor | None = None) -> None:
        self.fallback = fallback or PatternExtractor()

    def extract(self, text: str) -> DemographicBreakdown:
        report = parse_report(text)
        if report is None:
            return self.fallback.extract(text)
        breakdown = report.to_breakdown()
        if not breakdown.critical_findings:
            breakdown = breakdown.with_findings(self.fallback.findings.findings(text))
        return breakdown


_default_extractor = PatternExtractor()


def extract_demographics(text: str) -> DemographicBreakdown:
    """Extract a DemographicBreakdown from analysis prose with static findings."""
    return _default_extractor.extract(text)
