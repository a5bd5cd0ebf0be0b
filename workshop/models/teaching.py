"""
Teaching Models

Teaching issues, matched exemplars, reflection prompts and the coaching
output the transformer assembles from a rubric analysis.
"""

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from workshop.exceptions import IssueStateTransitionError


Severity = Literal["critical", "major", "minor"]
IssueStatus = Literal["not_started", "in_progress", "needs_review", "completed"]
SchoolTier = Literal["ivy_plus", "top_uc", "competitive"]
SkillLevel = Literal["fundamental", "intermediate", "advanced"]
AnswerType = Literal["short_text", "long_text", "number", "multiple_choice"]

SEVERITY_ORDER: dict[str, int] = {"critical": 0, "major": 1, "minor": 2}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Exemplars

class ExampleBefore(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    problems: list[str] = Field(default_factory=list)


class ExampleAfter(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    score_improvement: str = ""


class ExampleAnnotation(BaseModel):
    model_config = ConfigDict(frozen=True)

    highlight: str
    explanation: str
    principle: str = ""


class EliteEssayExample(BaseModel):
    """A before/after excerpt from an admitted student's essay."""

    model_config = ConfigDict(frozen=True)

    id: str
    context: str = Field(description="Where the excerpt comes from, e.g. 'Harvard admit - community service'")
    school_tier: SchoolTier
    categories: list[str] = Field(default_factory=list, description="Rubric categories this example teaches")
    principle: str = Field(default="", description="Principle key the example illustrates")
    before: ExampleBefore
    after: ExampleAfter
    annotations: list[ExampleAnnotation] = Field(default_factory=list)
    success_factors: list[str] = Field(default_factory=list)


# Reflection prompts

class PromptValidation(BaseModel):
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    required: bool = True
    helpful_hint: Optional[str] = None


class ReflectionPrompt(BaseModel):
    """One Socratic question guiding the student's revision."""

    id: str
    question: str
    purpose: str = ""
    answer_type: AnswerType = "long_text"
    options: list[str] = Field(default_factory=list)
    validation: PromptValidation = Field(default_factory=PromptValidation)
    placeholder_example: Optional[str] = None
    student_answer: Optional[str] = None


class ReflectionPromptSet(BaseModel):
    """Generated prompts for one issue at one draft state."""

    issue_id: str
    issue_title: str = ""
    fingerprint: str = Field(description="Cache key the set was generated for")
    prompts: list[ReflectionPrompt] = Field(default_factory=list)
    rationale: str = ""
    tone: str = "mentor"
    depth: Literal["surface", "deep"] = "surface"
    generated_at: datetime = Field(default_factory=utcnow)


# Teaching issue

class ProblemBlock(BaseModel):
    title: str
    from_draft: str = Field(default="", description="Excerpt from the draft that triggered the issue")
    explanation: str = ""
    impact_on_score: str = ""


class PrincipleBlock(BaseModel):
    key: str = Field(default="", description="Principle catalog key, e.g. 'SHOW_VULNERABILITY'")
    name: str
    description: str = ""
    skill_level: SkillLevel = "intermediate"
    why_it_matters: str = ""


class StudentWorkspace(BaseModel):
    draft_text: str = ""
    last_updated: Optional[datetime] = None
    feedback: Optional[str] = None
    is_complete: bool = False


class TeachingIssue(BaseModel):
    """
    One category-level problem, explained pedagogically.

    Status only moves forward (not_started -> in_progress -> needs_review
    -> completed) except through an explicit reset().
    """

    id: str
    category: str
    severity: Severity
    priority_rank: int = Field(ge=1)
    weight: float = Field(default=0.0, description="Resolved rubric weight of the category")
    percentage: float = Field(default=0.0, description="Category score as a percentage")
    problem: ProblemBlock
    principle: PrincipleBlock
    examples: list[EliteEssayExample] = Field(default_factory=list, max_length=3)
    reflection_prompts: list[ReflectionPrompt] = Field(default_factory=list)
    student_workspace: StudentWorkspace = Field(default_factory=StudentWorkspace)
    status: IssueStatus = "not_started"

    @property
    def is_resolved(self) -> bool:
        return self.status == "completed"

    def record_workspace_edit(self, text: str, now: Optional[datetime] = None) -> None:
        """Save the student's rewrite; starting work moves not_started to in_progress."""
        self.student_workspace.draft_text = text
        self.student_workspace.last_updated = now or utcnow()
        if self.status == "not_started":
            self.status = "in_progress"

    def request_review(self, feedback: Optional[str] = None) -> None:
        if self.status == "not_started":
            raise IssueStateTransitionError(
                self.status, "needs_review", "workspace has not been started"
            )
        if feedback is not None:
            self.student_workspace.feedback = feedback
        if self.status != "completed":
            self.status = "needs_review"

    def mark_complete(self, min_chars: int = 50) -> None:
        if self.status == "completed":
            return
        if self.status == "not_started":
            raise IssueStateTransitionError(self.status, "completed", "workspace has not been started")
        draft_length = len(self.student_workspace.draft_text.strip())
        if draft_length < min_chars:
            raise IssueStateTransitionError(
                self.status,
                "completed",
                f"workspace draft has {draft_length} characters, {min_chars} required",
            )
        self.status = "completed"
        self.student_workspace.is_complete = True

    def reset(self) -> None:
        """Explicit student action: discard the workspace and start over."""
        self.status = "not_started"
        self.student_workspace = StudentWorkspace()
        for prompt in self.reflection_prompts:
            prompt.student_answer = None


# Coaching output

class OverallBlock(BaseModel):
    current_nqi: float
    target_nqi: float
    potential_gain: float
    total_issues: int
    estimated_time_minutes: int


class StrategyBlock(BaseModel):
    strengths_to_maintain: list[str] = Field(default_factory=list)
    critical_gaps: list[str] = Field(default_factory=list)
    recommended_order: list[str] = Field(default_factory=list, description="Issue ids in working order")
    learning_path: str = ""


class CompletionProjection(BaseModel):
    estimated_nqi: float
    confidence_range: tuple[float, float]
    tier_placement: Literal[1, 2, 3]


class QuickWinProjection(BaseModel):
    estimated_nqi: float
    time_saved_minutes: int


class Projections(BaseModel):
    if_all_completed: CompletionProjection
    if_quick_wins_only: QuickWinProjection


class TeachingCoachingOutput(BaseModel):
    """Everything the workshop shows for one analysis."""

    overall: OverallBlock
    teaching_issues: list[TeachingIssue] = Field(default_factory=list)
    quick_wins: list[TeachingIssue] = Field(
        default_factory=list, description="Subset of teaching_issues (same objects)"
    )
    strategy: StrategyBlock = Field(default_factory=StrategyBlock)
    projections: Optional[Projections] = None

    def get_issue(self, issue_id: str) -> Optional[TeachingIssue]:
        for issue in self.teaching_issues:
            if issue.id == issue_id:
                return issue
        return None

    @property
    def unresolved_issues(self) -> list[TeachingIssue]:
        return [i for i in self.teaching_issues if not i.is_resolved]
