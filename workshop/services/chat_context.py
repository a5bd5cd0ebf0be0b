"""
Chat Context Aggregator

Assembles one WorkshopChatContext snapshot from the current analysis,
teaching issues, version history and reflection answers. Pure: never
calls the conversational collaborator and never mutates its inputs.
"""

import math
from typing import Optional

from workshop.models.analysis import ActivityContext, AnalysisResult
from workshop.models.chat_context import (
    ActivitySummary,
    ScoreSnapshot,
    TopIssueSummary,
    VersionDeltaSummary,
    WeakCategory,
    WorkshopChatContext,
)
from workshop.models.teaching import TeachingCoachingOutput
from workshop.models.versions import EssayVersion
from workshop.prompts.templates import format_list_for_prompt
from workshop.services.principles import humanize_category
from workshop.services.version_store import count_words

WEAK_CATEGORY_THRESHOLD = 70.0
RECENT_DELTA_COUNT = 2


def _collect_answers(
    teaching_coaching: Optional[TeachingCoachingOutput],
    explicit: Optional[dict[str, dict[str, str]]],
) -> dict[str, dict[str, str]]:
    answers: dict[str, dict[str, str]] = {}
    if teaching_coaching:
        for issue in teaching_coaching.teaching_issues:
            recorded = {
                p.question: p.student_answer
                for p in issue.reflection_prompts
                if p.student_answer and p.student_answer.strip()
            }
            if recorded:
                answers[issue.id] = recorded

    # Explicitly supplied answers win over those stored on prompts.
    for issue_id, by_question in (explicit or {}).items():
        merged = dict(answers.get(issue_id, {}))
        merged.update({q: a for q, a in by_question.items() if a and a.strip()})
        if merged:
            answers[issue_id] = merged
    return answers


def _weak_categories(analysis: Optional[AnalysisResult]) -> list[WeakCategory]:
    if analysis is None:
        return []
    weak = []
    for cat in analysis.categories:
        if cat.max_score <= 0 or not math.isfinite(cat.score):
            continue
        percentage = cat.percentage
        if percentage < WEAK_CATEGORY_THRESHOLD:
            weak.append(WeakCategory(
                category=cat.category,
                percentage=round(percentage, 2),
                gap=round(WEAK_CATEGORY_THRESHOLD - percentage, 2),
            ))
    return sorted(weak, key=lambda w: w.percentage)


def _recent_deltas(ordered: list[EssayVersion]) -> list[VersionDeltaSummary]:
    deltas = []
    for older, newer in reversed(list(zip(ordered, ordered[1:]))):
        deltas.append(VersionDeltaSummary(
            from_version_id=older.id,
            to_version_id=newer.id,
            nqi_delta=round(newer.nqi - older.nqi, 2),
            timestamp=newer.timestamp,
        ))
        if len(deltas) == RECENT_DELTA_COUNT:
            break
    return deltas


def build_context(
    activity: ActivityContext,
    draft: str,
    analysis: Optional[AnalysisResult],
    teaching_coaching: Optional[TeachingCoachingOutput],
    version_history: Optional[list[EssayVersion]] = None,
    reflection_answers: Optional[dict[str, dict[str, str]]] = None,
) -> WorkshopChatContext:
    """
    Build the snapshot for the conversational collaborator.

    Args:
        activity: Activity the draft describes
        draft: Current draft text
        analysis: Latest successful analysis, if any
        teaching_coaching: Teaching issues for that analysis, if any
        version_history: Saved versions in any order
        reflection_answers: issue id -> question -> answer, merged over
            answers already recorded on issue prompts

    Returns:
        WorkshopChatContext
    """
    ordered = sorted(version_history or [], key=lambda v: v.timestamp)

    if analysis is not None:
        current_nqi = analysis.nqi
    elif ordered:
        current_nqi = ordered[-1].nqi
    else:
        current_nqi = 0.0
    initial_nqi = ordered[0].nqi if ordered else current_nqi

    issues = teaching_coaching.teaching_issues if teaching_coaching else []
    unresolved = [i for i in issues if not i.is_resolved]

    top_issue = None
    if unresolved:
        top = min(unresolved, key=lambda i: i.priority_rank)
        top_issue = TopIssueSummary(
            issue_id=top.id,
            title=top.problem.title,
            category=top.category,
            severity=top.severity,
            status=top.status,
            explanation=top.problem.explanation,
            from_draft=top.problem.from_draft,
            principle_name=top.principle.name,
            principle_description=top.principle.description,
            why_it_matters=top.principle.why_it_matters,
        )

    quick_wins = teaching_coaching.quick_wins if teaching_coaching else []

    return WorkshopChatContext(
        activity=ActivitySummary(
            activity_id=activity.activity_id,
            name=activity.name,
            role=activity.role,
            category=activity.category,
        ),
        draft_text=draft,
        word_count=count_words(draft),
        scores=ScoreSnapshot(
            current_nqi=current_nqi,
            initial_nqi=initial_nqi,
            nqi_delta=round(current_nqi - initial_nqi, 2),
            reader_impression_label=analysis.reader_impression_label if analysis else "",
        ),
        unresolved_count=len(unresolved),
        completed_count=len(issues) - len(unresolved),
        top_issue=top_issue,
        quick_win_titles=[i.problem.title for i in quick_wins if not i.is_resolved],
        weak_categories=_weak_categories(analysis),
        recent_deltas=_recent_deltas(ordered),
        total_versions=len(ordered),
        reflection_answers=_collect_answers(teaching_coaching, reflection_answers),
    )


def format_context_for_llm(context: WorkshopChatContext) -> str:
    """Render the snapshot as a compact prompt block."""
    activity = context.activity
    scores = context.scores
    lines = [
        "## Student Activity",
        f"{activity.name or 'Untitled activity'} ({activity.role or 'role not specified'})",
        "",
        "## Scores",
        f"Current NQI: {scores.current_nqi:g} (started at {scores.initial_nqi:g}, {scores.nqi_delta:+g})",
    ]
    if scores.reader_impression_label:
        lines.append(f"Reader impression: {scores.reader_impression_label}")
    lines.append(f"Versions saved: {context.total_versions}")
    for delta in context.recent_deltas:
        lines.append(f"- {delta.from_version_id} -> {delta.to_version_id}: {delta.nqi_delta:+g}")

    lines += [
        "",
        "## Progress",
        f"{context.completed_count} issues completed, {context.unresolved_count} remaining",
    ]
    if context.top_issue:
        top = context.top_issue
        lines += [
            "",
            f"## Top Issue: {top.title} [{top.severity}]",
            f"Category: {humanize_category(top.category)}",
        ]
        if top.from_draft:
            lines.append(f'From the draft: "{top.from_draft}"')
        if top.explanation:
            lines.append(f"Why: {top.explanation}")
        lines.append(f"Principle: {top.principle_name}. {top.principle_description}".rstrip())

    if context.quick_win_titles:
        lines += ["", "## Quick Wins", format_list_for_prompt(context.quick_win_titles)]

    if context.weak_categories:
        weak = [
            f"{humanize_category(w.category)}: {w.percentage:g}% ({w.gap:g} below target)"
            for w in context.weak_categories
        ]
        lines += ["", "## Weak Categories", format_list_for_prompt(weak)]

    if context.reflection_answers:
        lines += ["", "## Student Reflections"]
        for issue_id, by_question in context.reflection_answers.items():
            lines.append(f"### {issue_id}")
            lines += [f"Q: {q}\nA: {a}" for q, a in by_question.items()]

    lines += ["", f"## Current Draft ({context.word_count} words)", context.draft_text or "(empty)"]
    return "\n".join(lines)
