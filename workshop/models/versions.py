"""
Version Models

Immutable essay versions and the summaries/comparisons derived from them.
"""

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CategorySnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    score: float
    max_score: float = 10.0


class VersionMetadata(BaseModel):
    """Caller-supplied context about how a version was analyzed."""

    engine: str = "workshop"
    depth: str = "comprehensive"
    description: str = ""


class EssayVersion(BaseModel):
    """One saved draft with the score it received. Only `note` is replaceable."""

    model_config = ConfigDict(frozen=True)

    id: str
    activity_id: str
    text: str
    timestamp: datetime
    nqi: float
    reader_impression_label: str = ""
    category_scores: list[CategorySnapshot] = Field(default_factory=list)
    flags: list[str] = Field(default_factory=list)
    word_count: int = 0
    char_count: int = 0
    engine: str = "workshop"
    depth: str = "comprehensive"
    description: str = ""
    note: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        # Naive timestamps (older exports) are read as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def category_score(self, category: str) -> Optional[float]:
        for snapshot in self.category_scores:
            if snapshot.category == category:
                return snapshot.score
        return None


class VersionImprovement(BaseModel):
    nqi_delta: float
    percent_change: float
    direction: Literal["improved", "declined", "same"]


class TimelinePoint(BaseModel):
    version_id: str
    timestamp: datetime
    nqi: float
    note: Optional[str] = None


class VersionHistorySummary(BaseModel):
    total_versions: int
    latest_version: EssayVersion
    first_version: EssayVersion
    improvement: VersionImprovement
    timeline: list[TimelinePoint] = Field(default_factory=list, description="Oldest first")


class CategoryDelta(BaseModel):
    category: str
    from_score: float
    to_score: float
    delta: float
    direction: Literal["up", "down", "same"]


class TextDelta(BaseModel):
    """Length-based change; not a line diff."""

    added: int
    removed: int
    net: int


class VersionComparison(BaseModel):
    from_version: EssayVersion
    to_version: EssayVersion
    nqi_delta: float
    category_deltas: list[CategoryDelta] = Field(default_factory=list)
    text_changes: TextDelta
    time_delta_seconds: float


class ImprovementTrends(BaseModel):
    """Score series, oldest first."""

    timestamps: list[datetime] = Field(default_factory=list)
    nqi: list[float] = Field(default_factory=list)
    categories: dict[str, list[float]] = Field(default_factory=dict)


class VersionHistoryExport(BaseModel):
    """Document written by export_version_history."""

    activity_id: str
    exported_at: datetime
    versions: list[EssayVersion] = Field(default_factory=list)
