"""
Analysis Models

Typed views of what the rubric analysis backend returns. The backend
payload is loosely shaped (aliases, comments as a string or a list), so
every model normalizes its input before validation and `from_payload`
drops category entries that cannot be interpreted.
"""

import logging
import math
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from workshop.exceptions import AnalysisPayloadError

logger = logging.getLogger("workshop.analysis")


RUBRIC_CATEGORIES = (
    "voice_integrity",
    "specificity_evidence",
    "transformative_impact",
    "role_clarity_ownership",
    "narrative_arc_stakes",
    "initiative_leadership",
    "community_collaboration",
    "reflection_meaning",
    "craft_language_quality",
    "fit_trajectory",
    "time_investment_consistency",
)

ReaderImpression = Literal[
    "captivating_grounded",
    "strong_distinct_voice",
    "solid_needs_polish",
    "patchy_narrative",
    "generic_unclear",
]


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"expected text or a list of text, got {type(value).__name__}")
    return [str(v) for v in value if v is not None and str(v).strip()]


def _usable_weights(weights: dict) -> dict[str, float]:
    """Keep finite numeric weights; the rest fall back to the equal share."""
    usable = {}
    for category, weight in weights.items():
        try:
            value = None if isinstance(weight, bool) else float(weight)
        except (TypeError, ValueError):
            value = None
        if value is None or not math.isfinite(value):
            logger.warning(f"Ignoring unusable weight for {category}: {weight!r}")
            continue
        usable[str(category)] = value
    return usable


class CategoryScore(BaseModel):
    """Score and commentary for one rubric dimension."""

    model_config = ConfigDict(frozen=True)

    category: str = Field(description="Category identifier, e.g. 'voice_integrity'")
    score: float = Field(description="Raw score on a 0..max_score scale")
    max_score: float = Field(default=10.0, description="Maximum achievable score")
    comments: list[str] = Field(default_factory=list, description="Evaluator commentary")
    evidence: list[str] = Field(default_factory=list, description="Quotes from the draft")
    suggestions: list[str] = Field(default_factory=list, description="Suggested fixes")
    weight: Optional[float] = Field(default=None, description="Per-category weight, if reported inline")

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "category" not in data:
            data["category"] = data.get("name")
        if "score" not in data and "score_0_to_10" in data:
            data["score"] = data["score_0_to_10"]
        if "max_score" not in data and "maxScore" in data:
            data["max_score"] = data["maxScore"]
        if "comments" not in data:
            data["comments"] = data.get("evaluator_notes")
        if "evidence" not in data:
            data["evidence"] = data.get("evidence_snippets")
        for key in ("comments", "evidence", "suggestions"):
            data[key] = _as_list(data.get(key))
        if data.get("max_score") is None:
            data.pop("max_score", None)
        return data

    @property
    def percentage(self) -> float:
        """Score as a percentage of max_score (0 when max_score is not positive)."""
        if self.max_score <= 0:
            return 0.0
        return self.score / self.max_score * 100


class AnalysisResult(BaseModel):
    """One rubric analysis of a draft. Immutable once received."""

    model_config = ConfigDict(frozen=True)

    nqi: float = Field(ge=0, le=100, description="Narrative Quality Index")
    reader_impression_label: str = Field(default="solid_needs_polish")
    flags: list[str] = Field(default_factory=list)
    categories: list[CategoryScore] = Field(default_factory=list)
    weights: dict[str, float] = Field(default_factory=dict, description="Category -> importance in [0, 1]")
    rubric_version: Optional[str] = None
    analysis_depth: str = "comprehensive"
    suggested_fixes_ranked: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "nqi" not in data and "narrative_quality_index" in data:
            data["nqi"] = data["narrative_quality_index"]
        if isinstance(data.get("weights"), dict):
            data["weights"] = _usable_weights(data["weights"])
        return data

    def get_category(self, category: str) -> Optional[CategoryScore]:
        for cat in self.categories:
            if cat.category == category:
                return cat
        return None

    @classmethod
    def from_payload(cls, payload: Any) -> "AnalysisResult":
        """
        Build an AnalysisResult from a backend report.

        Uninterpretable category entries are dropped and logged; a report
        without a usable NQI is rejected.

        Raises:
            AnalysisPayloadError: If the report itself is unusable
        """
        if not isinstance(payload, dict):
            raise AnalysisPayloadError("report is not an object")

        categories = []
        for index, raw in enumerate(payload.get("categories") or []):
            try:
                categories.append(CategoryScore.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Dropping malformed category at index {index}: {e.error_count()} errors")

        try:
            return cls.model_validate({**payload, "categories": categories})
        except ValidationError as e:
            raise AnalysisPayloadError(str(e)) from e


class CoachingIssue(BaseModel):
    """One issue from the backend's own coaching pass."""

    category: str
    severity: Optional[str] = None
    title: str = ""
    problem: str = ""
    why_it_matters: str = ""
    from_draft: str = ""

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "category" not in data:
            data["category"] = data.get("dimension")
        for key in ("title", "problem", "why_it_matters", "from_draft"):
            if data.get(key) is None:
                data.pop(key, None)
        return data


class RawCoaching(BaseModel):
    """Optional coaching commentary returned alongside an analysis."""

    prioritized_issues: list[CoachingIssue] = Field(default_factory=list)
    quick_wins: list[dict[str, Any]] = Field(default_factory=list)
    strategic_guidance: dict[str, Any] = Field(default_factory=dict)

    def issue_for(self, category: str) -> Optional[CoachingIssue]:
        for issue in self.prioritized_issues:
            if issue.category == category:
                return issue
        return None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["RawCoaching"]:
        """Lenient parse: unusable coaching is logged and ignored."""
        if not isinstance(payload, dict):
            return None
        issues = []
        for raw in payload.get("prioritized_issues") or []:
            try:
                issues.append(CoachingIssue.model_validate(raw))
            except ValidationError:
                logger.warning("Dropping malformed coaching issue")
        try:
            return cls.model_validate({**payload, "prioritized_issues": issues})
        except ValidationError as e:
            logger.warning(f"Ignoring malformed coaching payload: {e.error_count()} errors")
            return None


class ActivityContext(BaseModel):
    """The extracurricular activity a draft describes."""

    activity_id: str
    name: str = ""
    role: str = ""
    organization: str = ""
    category: str = ""
    hours_per_week: Optional[float] = None
    weeks_per_year: Optional[float] = None
