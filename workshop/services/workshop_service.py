"""
Workshop Service

Orchestrates the revision loop for each activity:

    draft -> analysis backend -> teaching issues -> saved version
          -> reflection prompts (lazily, per issue) -> chat context

Each activity keeps its last known good analysis and coaching. A failed
or superseded analysis never replaces them, and a failed version save
does not undo an applied analysis.
"""

import json
import logging
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from config import Settings, get_settings
from workshop.exceptions import (
    ActivityNotAnalyzedError,
    AnalysisBackendError,
    IssueNotFoundError,
    StateError,
    VersionPersistenceError,
)
from workshop.models.analysis import ActivityContext, AnalysisResult
from workshop.models.chat_context import WorkshopChatContext
from workshop.models.teaching import ReflectionPrompt, TeachingCoachingOutput, TeachingIssue
from workshop.models.versions import EssayVersion, VersionMetadata
from workshop.services.analysis_client import AnalysisBackendClient
from workshop.services.chat_context import build_context
from workshop.services.reflection_prompts import ReflectionPromptCache, RequestSequencer
from workshop.services.teaching_transformer import (
    TeachingTransformer,
    carry_forward_progress,
    get_teaching_transformer,
    refresh_progress,
)
from workshop.services.version_store import VersionStore

logger = logging.getLogger("workshop.workshop_service")


class ActivityState(BaseModel):
    """Last known good state of one activity."""

    activity: ActivityContext
    draft_text: str = ""
    analysis: Optional[AnalysisResult] = None
    coaching: Optional[TeachingCoachingOutput] = None
    last_error: Optional[str] = None
    reflection_answers: dict[str, dict[str, str]] = Field(default_factory=dict)


class AnalysisOutcome(BaseModel):
    """Result of one analyze_draft call."""

    status: Literal["applied", "failed", "stale"]
    activity_id: str
    coaching: Optional[TeachingCoachingOutput] = None
    version: Optional[EssayVersion] = None
    version_saved: bool = False
    error: Optional[str] = None
    error_code: Optional[str] = None


class WorkshopService:
    """Per-activity orchestration of analysis, versions and reflection prompts."""

    def __init__(
        self,
        analysis_client: AnalysisBackendClient,
        version_store: VersionStore,
        prompt_cache: ReflectionPromptCache,
        transformer: Optional[TeachingTransformer] = None,
        settings: Optional[Settings] = None,
    ):
        self.analysis_client = analysis_client
        self.version_store = version_store
        self.prompt_cache = prompt_cache
        self.transformer = transformer or get_teaching_transformer()
        self.settings = settings or get_settings()
        self.sequencer = RequestSequencer()
        self._states: dict[str, ActivityState] = {}

    # ── State access ────────────────────────────────────────────────────

    def get_state(self, activity_id: str) -> Optional[ActivityState]:
        return self._states.get(activity_id)

    def get_coaching(self, activity_id: str) -> Optional[TeachingCoachingOutput]:
        state = self._states.get(activity_id)
        return state.coaching if state else None

    def _state_for(self, activity: ActivityContext) -> ActivityState:
        state = self._states.get(activity.activity_id)
        if state is None:
            state = ActivityState(activity=activity)
            self._states[activity.activity_id] = state
        return state

    def _require_coaching(self, activity_id: str) -> tuple[ActivityState, TeachingCoachingOutput]:
        state = self._states.get(activity_id)
        if state is None or state.coaching is None:
            raise ActivityNotAnalyzedError(activity_id)
        return state, state.coaching

    def _require_issue(self, activity_id: str, issue_id: str) -> TeachingIssue:
        _, coaching = self._require_coaching(activity_id)
        issue = coaching.get_issue(issue_id)
        if issue is None:
            raise IssueNotFoundError(activity_id, issue_id)
        return issue

    # ── Analysis ────────────────────────────────────────────────────────

    async def analyze_draft(
        self,
        activity: ActivityContext,
        draft_text: str,
        metadata: Union[VersionMetadata, dict, None] = None,
        skip_coaching: bool = False,
    ) -> AnalysisOutcome:
        """
        Analyze a draft and, if it is still the latest request, apply it.

        Args:
            activity: Activity the draft describes
            draft_text: Full draft text
            metadata: Version metadata recorded with the saved version
            skip_coaching: Ask the backend to skip its coaching commentary

        Returns:
            AnalysisOutcome. `failed` and `stale` outcomes leave the
            activity's previous analysis, issues and versions untouched.
        """
        activity_id = activity.activity_id
        sequence_key = f"analysis:{activity_id}"
        seq = self.sequencer.issue(sequence_key)
        state = self._state_for(activity)

        try:
            response = await self.analysis_client.analyze_entry(
                draft_text, activity, skip_coaching=skip_coaching
            )
        except AnalysisBackendError as e:
            if not self.sequencer.is_latest(sequence_key, seq):
                return AnalysisOutcome(status="stale", activity_id=activity_id)
            state.last_error = e.message
            logger.warning(json.dumps({
                "step": "ANALYZE_DRAFT",
                "status": "failed",
                "activity_id": activity_id,
                "error_code": e.code,
                "error": e.message,
            }))
            return AnalysisOutcome(
                status="failed",
                activity_id=activity_id,
                coaching=state.coaching,
                error=e.message,
                error_code=e.code,
            )

        if not self.sequencer.is_latest(sequence_key, seq):
            logger.info(f"Discarding stale analysis for {activity_id} (request {seq})")
            return AnalysisOutcome(status="stale", activity_id=activity_id)

        coaching = self.transformer.transform(response.analysis, response.coaching, draft_text)
        if state.coaching is not None:
            carry_forward_progress(state.coaching.teaching_issues, coaching.teaching_issues)
            refresh_progress(coaching)

        state.activity = activity
        state.draft_text = draft_text
        state.analysis = response.analysis
        state.coaching = coaching
        state.last_error = None
        live_ids = {issue.id for issue in coaching.teaching_issues}
        state.reflection_answers = {
            issue_id: answers for issue_id, answers in state.reflection_answers.items() if issue_id in live_ids
        }

        version = None
        try:
            version = self.version_store.save_version(activity_id, draft_text, response.analysis, metadata)
        except VersionPersistenceError as e:
            logger.error(f"Analysis applied but version not saved for {activity_id}: {e.reason}")

        logger.info(json.dumps({
            "step": "ANALYZE_DRAFT",
            "status": "applied",
            "activity_id": activity_id,
            "nqi": response.analysis.nqi,
            "issues": len(coaching.teaching_issues),
            "version_saved": version is not None,
        }))
        return AnalysisOutcome(
            status="applied",
            activity_id=activity_id,
            coaching=coaching,
            version=version,
            version_saved=version is not None,
        )

    # ── Reflection prompts ──────────────────────────────────────────────

    async def load_reflection_prompts(
        self,
        activity_id: str,
        issue_id: str,
        depth: Optional[str] = None,
        skip_cache: bool = False,
    ) -> Optional[list[ReflectionPrompt]]:
        """
        Fetch prompts for an issue and attach them.

        Returns:
            The issue's prompts, or None when a newer request or a
            re-analysis superseded this one before it finished

        Raises:
            ActivityNotAnalyzedError, IssueNotFoundError
            ReflectionPromptError: If generation failed
        """
        state, _ = self._require_coaching(activity_id)
        issue = self._require_issue(activity_id, issue_id)
        sequence_key = f"prompts:{activity_id}:{issue_id}"
        seq = self.sequencer.issue(sequence_key)

        prompt_set = await self.prompt_cache.generate_reflection_prompts_with_cache(
            issue, state.activity, state.draft_text, depth=depth, skip_cache=skip_cache
        )

        if not self.sequencer.is_latest(sequence_key, seq):
            logger.info(f"Discarding stale prompts for {issue_id}")
            return None
        current = state.coaching.get_issue(issue_id) if state.coaching else None
        if current is None:
            logger.info(f"Issue {issue_id} no longer present; prompts not applied")
            return None

        return self._attach_prompts(current, prompt_set.prompts)

    async def preload_reflection_prompts(self, activity_id: str) -> dict[str, list[ReflectionPrompt]]:
        """
        Generate prompts for the top unresolved issues in one batch.

        Issues whose generation failed are left without prompts. Nothing
        is attached when a re-analysis landed while the batch was running.
        """
        state, coaching = self._require_coaching(activity_id)
        prompt_sets = await self.prompt_cache.generate_for_issues(
            coaching.unresolved_issues,
            state.activity,
            state.draft_text,
            max_issues=self.settings.reflection_batch_limit,
        )

        if state.coaching is not coaching:
            logger.info(f"Discarding preloaded prompts for {activity_id}; analysis changed")
            return {}
        return {
            issue_id: self._attach_prompts(coaching.get_issue(issue_id), prompt_set.prompts)
            for issue_id, prompt_set in prompt_sets.items()
        }

    @staticmethod
    def _attach_prompts(issue: TeachingIssue, generated: list[ReflectionPrompt]) -> list[ReflectionPrompt]:
        """Attach copies of cached prompts, keeping answers already given by prompt id."""
        previous_answers = {p.id: p.student_answer for p in issue.reflection_prompts if p.student_answer}
        prompts = [p.model_copy(deep=True) for p in generated]
        for prompt in prompts:
            prompt.student_answer = previous_answers.get(prompt.id)
        issue.reflection_prompts = prompts
        return prompts

    def record_reflection_answer(
        self, activity_id: str, issue_id: str, prompt_id: str, answer: str
    ) -> ReflectionPrompt:
        state, _ = self._require_coaching(activity_id)
        issue = self._require_issue(activity_id, issue_id)
        for prompt in issue.reflection_prompts:
            if prompt.id == prompt_id:
                prompt.student_answer = answer
                state.reflection_answers.setdefault(issue_id, {})[prompt.question] = answer
                return prompt
        raise StateError(
            f"Reflection prompt '{prompt_id}' not found on issue '{issue_id}'",
            {"activity_id": activity_id, "issue_id": issue_id, "prompt_id": prompt_id},
        )

    # ── Issue workspace ─────────────────────────────────────────────────

    def update_workspace(self, activity_id: str, issue_id: str, text: str) -> TeachingIssue:
        issue = self._require_issue(activity_id, issue_id)
        issue.record_workspace_edit(text)
        return issue

    def request_review(self, activity_id: str, issue_id: str, feedback: Optional[str] = None) -> TeachingIssue:
        issue = self._require_issue(activity_id, issue_id)
        issue.request_review(feedback)
        return issue

    def complete_issue(self, activity_id: str, issue_id: str) -> TeachingIssue:
        _, coaching = self._require_coaching(activity_id)
        issue = self._require_issue(activity_id, issue_id)
        issue.mark_complete(min_chars=self.settings.workspace_min_completion_chars)
        refresh_progress(coaching)
        logger.info(f"Issue {issue_id} completed for {activity_id}; target NQI {coaching.overall.target_nqi}")
        return issue

    def reset_issue(self, activity_id: str, issue_id: str) -> TeachingIssue:
        state, coaching = self._require_coaching(activity_id)
        issue = self._require_issue(activity_id, issue_id)
        issue.reset()
        state.reflection_answers.pop(issue_id, None)
        refresh_progress(coaching)
        return issue

    # ── Chat ────────────────────────────────────────────────────────────

    def build_chat_context(self, activity_id: str) -> WorkshopChatContext:
        state = self._states.get(activity_id)
        if state is None:
            raise ActivityNotAnalyzedError(activity_id)
        return build_context(
            activity=state.activity,
            draft=state.draft_text,
            analysis=state.analysis,
            teaching_coaching=state.coaching,
            version_history=self.version_store.get_versions(activity_id),
            reflection_answers=state.reflection_answers,
        )
