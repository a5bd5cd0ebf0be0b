"""
Chat Context Models

Snapshot handed to the conversational collaborator. Built fresh on demand.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ActivitySummary(BaseModel):
    activity_id: str
    name: str = ""
    role: str = ""
    category: str = ""


class ScoreSnapshot(BaseModel):
    current_nqi: float
    initial_nqi: float
    nqi_delta: float
    reader_impression_label: str = ""


class WeakCategory(BaseModel):
    category: str
    percentage: float
    gap: float = Field(description="Percentage points below the 70% line")


class TopIssueSummary(BaseModel):
    issue_id: str
    title: str
    category: str
    severity: str
    status: str
    explanation: str = ""
    from_draft: str = ""
    principle_name: str = ""
    principle_description: str = ""
    why_it_matters: str = ""


class VersionDeltaSummary(BaseModel):
    from_version_id: str
    to_version_id: str
    nqi_delta: float
    timestamp: datetime


class WorkshopChatContext(BaseModel):
    activity: ActivitySummary
    draft_text: str = ""
    word_count: int = 0
    scores: ScoreSnapshot
    unresolved_count: int = 0
    completed_count: int = 0
    top_issue: Optional[TopIssueSummary] = None
    quick_win_titles: list[str] = Field(default_factory=list)
    weak_categories: list[WeakCategory] = Field(default_factory=list)
    recent_deltas: list[VersionDeltaSummary] = Field(default_factory=list, description="Most recent first, at most 2")
    total_versions: int = 0
    reflection_answers: dict[str, dict[str, str]] = Field(
        default_factory=dict, description="issue id -> question -> answer"
    )
