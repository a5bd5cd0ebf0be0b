"""
Teaching-Issue Transformer

Turns one rubric analysis (plus optional backend coaching) into ranked,
example-backed teaching issues.

Pipeline:
1. Drop malformed or duplicate categories and resolve a weight for each
2. Classify severity from the score percentage
3. Rank by severity, then weight, then original order
4. Attach principle and examples, flag quick wins
5. Summarize overall gain, strategy and projections

The transform is pure: identical inputs give identical ids, severities
and ranks. Progress made on a previous run is carried over separately
by carry_forward_progress().
"""

import hashlib
import logging
import math
import statistics
from typing import Optional

from workshop.models.analysis import AnalysisResult, CategoryScore, CoachingIssue, RawCoaching
from workshop.models.teaching import (
    SEVERITY_ORDER,
    CompletionProjection,
    OverallBlock,
    ProblemBlock,
    Projections,
    QuickWinProjection,
    StrategyBlock,
    TeachingCoachingOutput,
    TeachingIssue,
)
from workshop.services.example_library import ExampleLibrary, get_example_library
from workshop.services.principles import determine_principle, get_principle, humanize_category

logger = logging.getLogger("workshop.teaching_transformer")

HEALTHY_THRESHOLD = 85.0
MINOR_THRESHOLD = 70.0
MAJOR_THRESHOLD = 55.0

# Percentage a category must reach to leave its current severity.
NEXT_TIER_THRESHOLD = {"critical": MAJOR_THRESHOLD, "major": MINOR_THRESHOLD, "minor": HEALTHY_THRESHOLD}

SEVERITY_POINTS = {"critical": 8.0, "major": 4.0, "minor": 1.5}
SEVERITY_MINUTES = {"critical": 15, "major": 8, "minor": 3}
SEVERITY_TITLES = {"critical": "Critical Gap", "major": "Needs Improvement", "minor": "Needs Polish"}

QUICK_WIN_MAX_GAP = 10.0
EXCERPT_CHARS = 150


def classify_severity(percentage: float) -> Optional[str]:
    """Severity for a score percentage, or None when the category is healthy."""
    if percentage >= HEALTHY_THRESHOLD:
        return None
    if percentage >= MINOR_THRESHOLD:
        return "minor"
    if percentage >= MAJOR_THRESHOLD:
        return "major"
    return "critical"


def _opening_excerpt(draft_text: str) -> str:
    text = " ".join(draft_text.split())
    if len(text) <= EXCERPT_CHARS:
        return text
    return text[:EXCERPT_CHARS].rstrip() + "..."


def make_issue_id(category: str, evidence: str) -> str:
    digest = hashlib.sha1(f"{category}|{evidence}".encode("utf-8")).hexdigest()[:10]
    return f"issue-{category}-{digest}"


def issue_gain(issue: TeachingIssue) -> float:
    """Expected NQI gain from resolving an issue."""
    return issue.weight * SEVERITY_POINTS[issue.severity]


def is_quick_win(issue: TeachingIssue, median_weight: float) -> bool:
    gap = NEXT_TIER_THRESHOLD[issue.severity] - issue.percentage
    return gap <= QUICK_WIN_MAX_GAP and issue.weight >= median_weight


def resolve_weights(categories: list[CategoryScore], weights: dict[str, float]) -> dict[str, float]:
    """
    Weight per category: the analysis weights map first, then the
    category's inline weight, then an equal share.
    """
    if not categories:
        return {}
    equal_share = 1.0 / len(categories)
    resolved = {}
    for cat in categories:
        weight = weights.get(cat.category, cat.weight)
        if weight is None or not math.isfinite(weight) or weight < 0:
            weight = equal_share
        resolved[cat.category] = float(weight)
    return resolved


def build_overall(current_nqi: float, issues: list[TeachingIssue]) -> OverallBlock:
    unresolved = [i for i in issues if not i.is_resolved]
    target = min(100.0, current_nqi + sum(issue_gain(i) for i in unresolved))
    target = round(target, 2)
    return OverallBlock(
        current_nqi=current_nqi,
        target_nqi=target,
        potential_gain=round(target - current_nqi, 2),
        total_issues=len(issues),
        estimated_time_minutes=sum(SEVERITY_MINUTES[i.severity] for i in unresolved),
    )


def build_projections(
    current_nqi: float,
    overall: OverallBlock,
    issues: list[TeachingIssue],
    quick_wins: list[TeachingIssue],
) -> Projections:
    target = overall.target_nqi
    if target >= HEALTHY_THRESHOLD:
        tier = 1
    elif target >= 75:
        tier = 2
    else:
        tier = 3

    open_quick_wins = [i for i in quick_wins if not i.is_resolved]
    quick_nqi = min(100.0, current_nqi + sum(issue_gain(i) for i in open_quick_wins))
    quick_minutes = sum(SEVERITY_MINUTES[i.severity] for i in open_quick_wins)

    return Projections(
        if_all_completed=CompletionProjection(
            estimated_nqi=target,
            confidence_range=(max(0.0, round(target - 3, 2)), min(100.0, round(target + 2, 2))),
            tier_placement=tier,
        ),
        if_quick_wins_only=QuickWinProjection(
            estimated_nqi=round(quick_nqi, 2),
            time_saved_minutes=overall.estimated_time_minutes - quick_minutes,
        ),
    )


def refresh_progress(output: TeachingCoachingOutput) -> None:
    """Recompute overall and projections after issue statuses change."""
    current = output.overall.current_nqi
    output.overall = build_overall(current, output.teaching_issues)
    output.projections = build_projections(current, output.overall, output.teaching_issues, output.quick_wins)


def carry_forward_progress(
    previous: list[TeachingIssue],
    current: list[TeachingIssue],
) -> list[TeachingIssue]:
    """
    Carry student progress from the last analysis onto fresh issues.

    - Same id: status, workspace and reflection prompts carried.
    - Same category and severity: status and workspace carried.
    - Same category, severity changed: workspace draft carried; status
      restarts at in_progress (or not_started when the draft is empty).
    - New category: left fresh.

    Mutates and returns `current`.
    """
    by_id = {issue.id: issue for issue in previous}
    by_category = {issue.category: issue for issue in previous}

    for issue in current:
        match = by_id.get(issue.id)
        if match is not None:
            issue.status = match.status
            issue.student_workspace = match.student_workspace.model_copy(deep=True)
            issue.reflection_prompts = [p.model_copy(deep=True) for p in match.reflection_prompts]
            continue

        match = by_category.get(issue.category)
        if match is None:
            continue

        if match.severity == issue.severity:
            issue.status = match.status
            issue.student_workspace = match.student_workspace.model_copy(deep=True)
        else:
            workspace = match.student_workspace.model_copy(deep=True)
            workspace.is_complete = False
            issue.student_workspace = workspace
            issue.status = "in_progress" if workspace.draft_text.strip() else "not_started"

    return current


class TeachingTransformer:
    """Builds TeachingCoachingOutput from an analysis."""

    def __init__(self, example_library: Optional[ExampleLibrary] = None):
        self._library = example_library

    @property
    def library(self) -> ExampleLibrary:
        if self._library is None:
            self._library = get_example_library()
        return self._library

    # ── Public API ──────────────────────────────────────────────────────

    def transform(
        self,
        analysis: AnalysisResult,
        raw_coaching: Optional[RawCoaching] = None,
        draft_text: str = "",
    ) -> TeachingCoachingOutput:
        """
        Derive ranked teaching issues from an analysis.

        Args:
            analysis: Rubric analysis of the current draft
            raw_coaching: Optional backend coaching; it can flag otherwise
                healthy categories and fills in missing excerpts/explanations
            draft_text: Current draft; its opening is the excerpt fallback
                when a category has no evidence quote

        Returns:
            TeachingCoachingOutput whose quick_wins are the same objects
            found in teaching_issues
        """
        categories = self._valid_categories(analysis)
        weights = resolve_weights(categories, analysis.weights)

        candidates = []
        for index, cat in enumerate(categories):
            coaching_issue = raw_coaching.issue_for(cat.category) if raw_coaching else None
            severity = classify_severity(cat.percentage)
            if severity is None:
                if coaching_issue is None:
                    continue
                severity = "minor"
            candidates.append((SEVERITY_ORDER[severity], -weights[cat.category], index, severity, cat, coaching_issue))

        candidates.sort(key=lambda c: (c[0], c[1], c[2]))

        issues = [
            self._build_issue(cat, severity, rank, weights[cat.category], coaching_issue, draft_text)
            for rank, (_, _, _, severity, cat, coaching_issue) in enumerate(candidates, start=1)
        ]

        median_weight = statistics.median(weights.values()) if weights else 0.0
        quick_wins = [issue for issue in issues if is_quick_win(issue, median_weight)]

        overall = build_overall(analysis.nqi, issues)
        output = TeachingCoachingOutput(
            overall=overall,
            teaching_issues=issues,
            quick_wins=quick_wins,
            strategy=self._build_strategy(categories, issues, quick_wins),
            projections=build_projections(analysis.nqi, overall, issues, quick_wins),
        )

        logger.info(
            f"Transformed analysis: {len(categories)} categories -> {len(issues)} issues "
            f"({len(quick_wins)} quick wins), target NQI {overall.target_nqi}"
        )
        return output

    # ── Internals ───────────────────────────────────────────────────────

    def _valid_categories(self, analysis: AnalysisResult) -> list[CategoryScore]:
        valid = []
        seen = set()
        for cat in analysis.categories:
            reason = None
            if not cat.category or not cat.category.strip():
                reason = "empty category id"
            elif not math.isfinite(cat.score) or not math.isfinite(cat.max_score):
                reason = "non-finite score"
            elif cat.max_score <= 0:
                reason = "max_score must be positive"
            elif cat.category in seen:
                reason = "duplicate category"
            if reason:
                logger.warning(f"Skipping category '{cat.category}': {reason}")
                continue
            seen.add(cat.category)
            valid.append(cat)
        return valid

    def _build_issue(
        self,
        cat: CategoryScore,
        severity: str,
        rank: int,
        weight: float,
        coaching_issue: Optional[CoachingIssue],
        draft_text: str = "",
    ) -> TeachingIssue:
        evidence = cat.evidence[0] if cat.evidence else ""
        excerpt = evidence or (coaching_issue.from_draft if coaching_issue else "")
        if not excerpt and draft_text.strip():
            excerpt = _opening_excerpt(draft_text)
        coaching_texts = [coaching_issue.title, coaching_issue.problem] if coaching_issue else []

        explanation = " ".join(cat.comments)
        if not explanation and coaching_issue:
            explanation = coaching_issue.problem
        if not explanation:
            explanation = " ".join(cat.suggestions)

        title = f"{humanize_category(cat.category)}: {SEVERITY_TITLES[severity]}"
        if coaching_issue and coaching_issue.title:
            title = coaching_issue.title

        principle_key = determine_principle(cat.category, cat.comments + cat.suggestions + coaching_texts)
        gain = weight * SEVERITY_POINTS[severity]

        return TeachingIssue(
            id=make_issue_id(cat.category, evidence),
            category=cat.category,
            severity=severity,
            priority_rank=rank,
            weight=weight,
            percentage=round(cat.percentage, 2),
            problem=ProblemBlock(
                title=title,
                from_draft=excerpt,
                explanation=explanation,
                impact_on_score=f"Fixing this could add about +{gain:.1f} NQI points ({weight:.0%} of the rubric)",
            ),
            principle=get_principle(principle_key),
            examples=self.library.get_examples_for_issue(cat.category, severity),
        )

    @staticmethod
    def _build_strategy(
        categories: list[CategoryScore],
        issues: list[TeachingIssue],
        quick_wins: list[TeachingIssue],
    ) -> StrategyBlock:
        strengths = [
            f"Strong {humanize_category(c.category)}" for c in categories if c.percentage >= HEALTHY_THRESHOLD
        ]
        gaps = [
            f"{humanize_category(c.category)} needs significant work"
            for c in categories
            if c.percentage < MAJOR_THRESHOLD
        ]

        if gaps:
            learning_path = f"Focus first on {gaps[0].lower()}. This is your biggest opportunity for improvement."
            if quick_wins:
                learning_path += " Start with the quick wins to build momentum, then tackle deeper improvements."
        elif issues:
            learning_path = "Your essay is solid. Work through the issues in order, starting with the highest-weight ones."
        else:
            learning_path = "Your essay is strong overall. Focus on polish and deepening your reflection."

        return StrategyBlock(
            strengths_to_maintain=strengths,
            critical_gaps=gaps,
            recommended_order=[i.id for i in issues],
            learning_path=learning_path,
        )


# Global transformer instance
_transformer: Optional[TeachingTransformer] = None


def get_teaching_transformer() -> TeachingTransformer:
    global _transformer
    if _transformer is None:
        _transformer = TeachingTransformer()
    return _transformer


def transform_analysis(
    analysis: AnalysisResult,
    raw_coaching: Optional[RawCoaching] = None,
    draft_text: str = "",
) -> TeachingCoachingOutput:
    """Module-level convenience around the shared transformer."""
    return get_teaching_transformer().transform(analysis, raw_coaching, draft_text)
