"""Demographic output schemas.

``DemographicBreakdown`` is the artifact handed to blind-spot detection.
``DemographicReport`` is the JSON schema the model is asked to emit directly
when structured output is enabled; ``to_breakdown()`` converts it.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_serializer,
    field_validator,
)

AGE_BRACKETS: tuple[str, ...] = ("0-18", "18-40", "40-65", "65-75", ">75", "not_specified")
GENDERS: tuple[str, ...] = ("male", "female", "not_specified")
PREGNANCY_STATUSES: tuple[str, ...] = ("pregnant", "not_pregnant", "not_specified")
REGIONS: tuple[str, ...] = ("North America", "Europe", "Asia", "Africa", "Other", "not_specified")

CATEGORY_LABELS: dict[str, tuple[str, ...]] = {
    "age": AGE_BRACKETS,
    "gender": GENDERS,
    "pregnancy_status": PREGNANCY_STATUSES,
    "geography": REGIONS,
}


def zeroed(category: str) -> dict[str, int]:
    """Return a mapping with every label of *category* set to 0."""
    return dict.fromkeys(CATEGORY_LABELS[category], 0)


class DemographicBreakdown(BaseModel):
    """Percent of analysed literature covering each population segment.

    Every mapping carries exactly its category's labels; labels missing at
    construction default to 0. Values are not range-checked and a category
    need not sum to 100.

    Instances are immutable: category mappings are read-only views and
    ``critical_findings`` is a tuple. Use ``as_dict()`` for a mutable copy.
    """

    model_config = ConfigDict(frozen=True, validate_default=True)

    age: Mapping[str, int] = Field(default_factory=lambda: zeroed("age"))
    gender: Mapping[str, int] = Field(default_factory=lambda: zeroed("gender"))
    pregnancy_status: Mapping[str, int] = Field(default_factory=lambda: zeroed("pregnancy_status"))
    geography: Mapping[str, int] = Field(default_factory=lambda: zeroed("geography"))
    critical_findings: tuple[str, ...] = ()

    @field_validator("age", "gender", "pregnancy_status", "geography")
    @classmethod
    def complete_labels(cls, value: Mapping[str, int], info: ValidationInfo) -> Mapping[str, int]:
        labels = CATEGORY_LABELS[info.field_name]
        unknown = set(value) - set(labels)
        if unknown:
            raise ValueError(f"Unknown {info.field_name} label(s): {', '.join(sorted(unknown))}")
        return MappingProxyType({label: value.get(label, 0) for label in labels})

    @field_serializer("age", "gender", "pregnancy_status", "geography")
    def _plain_mapping(self, value: Mapping[str, int]) -> dict[str, int]:
        return dict(value)

    @classmethod
    def empty(cls) -> DemographicBreakdown:
        """All-zero breakdown with no findings."""
        return cls()

    def is_zero(self) -> bool:
        return not any(
            v for mapping in (self.age, self.gender, self.pregnancy_status, self.geography)
            for v in mapping.values()
        )

    def with_findings(self, findings: Iterable[str]) -> DemographicBreakdown:
        """Copy of this breakdown with *findings* in place of the current ones."""
        return self.model_copy(update={"critical_findings": tuple(findings)})

    def as_dict(self) -> dict[str, Any]:
        """Wire shape consumed by blind-spot detection and report generation."""
        return {
            "age": dict(self.age),
            "gender": dict(self.gender),
            "pregnancyStatus": dict(self.pregnancy_status),
            "geography": dict(self.geography),
            "criticalFindings": list(self.critical_findings),
        }


# ── Structured model output ─────────────────────────────────────────────────


class _Shares(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_mapping(self) -> dict[str, int]:
        return self.model_dump(by_alias=True)


class AgeShares(_Shares):
    pediatric: int = Field(0, alias="0-18")
    young_adult: int = Field(0, alias="18-40")
    middle_aged: int = Field(0, alias="40-65")
    elderly: int = Field(0, alias="65-75")
    very_elderly: int = Field(0, alias=">75")
    not_specified: int = 0


class GenderShares(_Shares):
    male: int = 0
    female: int = 0
    not_specified: int = 0


class PregnancyShares(_Shares):
    pregnant: int = 0
    not_pregnant: int = 0
    not_specified: int = 0


class RegionShares(_Shares):
    north_america: int = Field(0, alias="North America")
    europe: int = Field(0, alias="Europe")
    asia: int = Field(0, alias="Asia")
    africa: int = Field(0, alias="Africa")
    other: int = Field(0, alias="Other")
    not_specified: int = 0


class DemographicReport(BaseModel):
    """JSON schema requested from the model in structured-output mode.

    Each value is the percentage (integer) of studies that included the
    population segment.
    """

    age: AgeShares = Field(default_factory=AgeShares)
    gender: GenderShares = Field(default_factory=GenderShares)
    pregnancy_status: PregnancyShares = Field(default_factory=PregnancyShares)
    geography: RegionShares = Field(default_factory=RegionShares)
    critical_findings: list[str] = Field(
        default_factory=list,
        description="Short statements naming under-studied populations",
    )

    def to_breakdown(self) -> DemographicBreakdown:
        return DemographicBreakdown(
            age=self.age.to_mapping(),
            gender=self.gender.to_mapping(),
            pregnancy_status=self.pregnancy_status.to_mapping(),
            geography=self.geography.to_mapping(),
            critical_findings=tuple(f.strip() for f in self.critical_findings if f.strip()),
        )
