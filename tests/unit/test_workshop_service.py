"""
Unit tests for WorkshopService.

The analysis backend is a fake client; versions live in an in-memory
key-value store and prompts come from the offline template generator.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from shared.repositories.kv_store import InMemoryKeyValueStore
from workshop.exceptions import (
    ActivityNotAnalyzedError,
    AnalysisBackendError,
    IssueNotFoundError,
    IssueStateTransitionError,
    StateError,
    VersionPersistenceError,
)
from workshop.services.analysis_client import AnalysisResponse
from workshop.services.reflection_prompts import ReflectionPromptCache, TemplateReflectionPromptGenerator
from workshop.services.version_store import VersionStore
from workshop.services.workshop_service import WorkshopService


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class FakeAnalysisClient:
    """Returns queued analyses (exceptions are raised); an optional gate holds a call open."""

    def __init__(self, *results):
        self.results = list(results)
        self.gates = {}
        self.calls = []

    async def analyze_entry(self, description, activity, depth="comprehensive", skip_coaching=False):
        index = len(self.calls)
        self.calls.append(description)
        result = self.results[index] if index < len(self.results) else self.results[-1]
        gate = self.gates.get(index)
        if gate is not None:
            await gate.wait()
        if isinstance(result, Exception):
            raise result
        return result


def make_service(client, version_store=None, kv_store=None, settings=None):
    kv = kv_store or InMemoryKeyValueStore()
    cache = ReflectionPromptCache(TemplateReflectionPromptGenerator(), kv_store=kv, max_retries=1)
    return WorkshopService(
        analysis_client=client,
        version_store=version_store or VersionStore(kv),
        prompt_cache=cache,
        settings=settings,
    )


def response_for(analysis, nqi=None):
    if nqi is not None:
        analysis = analysis.model_copy(update={"nqi": nqi})
    return AnalysisResponse(analysis=analysis)


# ---------------------------------------------------------------------------
# analyze_draft
# ---------------------------------------------------------------------------

class TestAnalyzeDraft:
    @pytest.mark.asyncio
    async def test_applied_saves_version(self, sample_activity, sample_draft, scenario_analysis, test_settings):
        service = make_service(FakeAnalysisClient(response_for(scenario_analysis)), settings=test_settings)

        outcome = await service.analyze_draft(sample_activity, sample_draft)

        assert outcome.status == "applied"
        assert outcome.version_saved is True
        assert outcome.version.nqi == 60
        assert [i.category for i in outcome.coaching.teaching_issues] == ["vulnerability", "dialogue"]
        state = service.get_state("act-robotics")
        assert state.draft_text == sample_draft
        assert state.analysis.nqi == 60
        assert service.version_store.get_latest_version("act-robotics").id == outcome.version.id

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_state(self, sample_activity, sample_draft, scenario_analysis, test_settings):
        client = FakeAnalysisClient(
            response_for(scenario_analysis),
            AnalysisBackendError("Analysis failed with HTTP 502", code="HTTP_502", status_code=502),
        )
        service = make_service(client, settings=test_settings)
        first = await service.analyze_draft(sample_activity, sample_draft)

        renamed = sample_activity.model_copy(update={"role": "Team Captain"})
        outcome = await service.analyze_draft(renamed, sample_draft + " More text.")

        assert outcome.status == "failed"
        assert outcome.error_code == "HTTP_502"
        assert outcome.coaching is first.coaching
        state = service.get_state("act-robotics")
        assert state.draft_text == sample_draft
        assert state.last_error == "Analysis failed with HTTP 502"
        assert state.activity.role == "Build Lead"
        assert len(service.version_store.get_versions("act-robotics")) == 1

    @pytest.mark.asyncio
    async def test_applied_analysis_updates_activity(
        self, sample_activity, sample_draft, scenario_analysis, test_settings
    ):
        service = make_service(FakeAnalysisClient(response_for(scenario_analysis)), settings=test_settings)
        await service.analyze_draft(sample_activity, sample_draft)

        renamed = sample_activity.model_copy(update={"role": "Team Captain"})
        await service.analyze_draft(renamed, sample_draft)

        assert service.get_state("act-robotics").activity.role == "Team Captain"

    @pytest.mark.asyncio
    async def test_failure_without_prior_analysis(self, sample_activity, test_settings):
        client = FakeAnalysisClient(AnalysisBackendError("down", code="NETWORK_ERROR"))
        service = make_service(client, settings=test_settings)

        outcome = await service.analyze_draft(sample_activity, "draft")

        assert outcome.status == "failed"
        assert outcome.coaching is None
        assert service.get_coaching("act-robotics") is None

    @pytest.mark.asyncio
    async def test_stale_response_discarded(self, sample_activity, sample_draft, scenario_analysis, test_settings):
        client = FakeAnalysisClient(response_for(scenario_analysis, nqi=50), response_for(scenario_analysis, nqi=72))
        client.gates[0] = asyncio.Event()
        service = make_service(client, settings=test_settings)

        slow = asyncio.ensure_future(service.analyze_draft(sample_activity, "older draft"))
        await asyncio.sleep(0)
        fresh = await service.analyze_draft(sample_activity, sample_draft)
        client.gates[0].set()
        stale = await slow

        assert fresh.status == "applied"
        assert stale.status == "stale"
        assert service.get_state("act-robotics").analysis.nqi == 72
        assert service.get_state("act-robotics").draft_text == sample_draft
        assert len(service.version_store.get_versions("act-robotics")) == 1

    @pytest.mark.asyncio
    async def test_version_save_failure_is_not_fatal(
        self, sample_activity, sample_draft, scenario_analysis, test_settings
    ):
        version_store = MagicMock()
        version_store.save_version.side_effect = VersionPersistenceError("act-robotics", "save", "disk full")
        service = make_service(
            FakeAnalysisClient(response_for(scenario_analysis)), version_store=version_store, settings=test_settings
        )

        outcome = await service.analyze_draft(sample_activity, sample_draft)

        assert outcome.status == "applied"
        assert outcome.version is None
        assert outcome.version_saved is False
        assert service.get_coaching("act-robotics") is outcome.coaching

    @pytest.mark.asyncio
    async def test_progress_carried_across_reanalysis(
        self, sample_activity, sample_draft, scenario_analysis, test_settings
    ):
        client = FakeAnalysisClient(response_for(scenario_analysis))
        service = make_service(client, settings=test_settings)
        first = await service.analyze_draft(sample_activity, sample_draft)
        issue_id = first.coaching.teaching_issues[1].id
        service.update_workspace("act-robotics", issue_id, "\"Hand me the wrench,\" Maya said, grinning.")
        service.complete_issue("act-robotics", issue_id)

        second = await service.analyze_draft(sample_activity, sample_draft)

        carried = second.coaching.get_issue(issue_id)
        assert carried is not first.coaching.get_issue(issue_id)
        assert carried.status == "completed"
        assert second.coaching.overall.estimated_time_minutes == 15
        assert len(service.version_store.get_versions("act-robotics")) == 2


# ---------------------------------------------------------------------------
# Reflection prompts
# ---------------------------------------------------------------------------

class TestReflectionPrompts:
    @pytest.mark.asyncio
    async def test_load_attaches_copies(self, sample_activity, sample_draft, scenario_analysis, test_settings):
        service = make_service(FakeAnalysisClient(response_for(scenario_analysis)), settings=test_settings)
        outcome = await service.analyze_draft(sample_activity, sample_draft)
        issue = outcome.coaching.teaching_issues[0]

        prompts = await service.load_reflection_prompts("act-robotics", issue.id)

        assert prompts
        assert issue.reflection_prompts == prompts
        cached = await service.prompt_cache.generate_reflection_prompts_with_cache(
            issue, sample_activity, sample_draft
        )
        assert cached.prompts[0] is not prompts[0]

    @pytest.mark.asyncio
    async def test_answers_survive_reload(self, sample_activity, sample_draft, scenario_analysis, test_settings):
        service = make_service(FakeAnalysisClient(response_for(scenario_analysis)), settings=test_settings)
        outcome = await service.analyze_draft(sample_activity, sample_draft)
        issue_id = outcome.coaching.teaching_issues[0].id
        prompts = await service.load_reflection_prompts("act-robotics", issue_id)

        service.record_reflection_answer("act-robotics", issue_id, prompts[0].id, "The night before regionals.")
        reloaded = await service.load_reflection_prompts("act-robotics", issue_id)

        assert reloaded[0].student_answer == "The night before regionals."
        state = service.get_state("act-robotics")
        assert state.reflection_answers[issue_id][prompts[0].question] == "The night before regionals."

    @pytest.mark.asyncio
    async def test_preload_respects_batch_limit(
        self, sample_activity, sample_draft, scenario_analysis, test_settings
    ):
        settings = test_settings.model_copy(update={"reflection_batch_limit": 1})
        service = make_service(FakeAnalysisClient(response_for(scenario_analysis)), settings=settings)
        outcome = await service.analyze_draft(sample_activity, sample_draft)
        top, second = outcome.coaching.teaching_issues

        attached = await service.preload_reflection_prompts("act-robotics")

        assert list(attached) == [top.id]
        assert top.reflection_prompts == attached[top.id]
        assert second.reflection_prompts == []

    @pytest.mark.asyncio
    async def test_unknown_prompt(self, sample_activity, sample_draft, scenario_analysis, test_settings):
        service = make_service(FakeAnalysisClient(response_for(scenario_analysis)), settings=test_settings)
        outcome = await service.analyze_draft(sample_activity, sample_draft)

        with pytest.raises(StateError):
            service.record_reflection_answer("act-robotics", outcome.coaching.teaching_issues[0].id, "nope", "x")

    @pytest.mark.asyncio
    async def test_unknown_issue(self, sample_activity, sample_draft, scenario_analysis, test_settings):
        service = make_service(FakeAnalysisClient(response_for(scenario_analysis)), settings=test_settings)
        await service.analyze_draft(sample_activity, sample_draft)

        with pytest.raises(IssueNotFoundError):
            await service.load_reflection_prompts("act-robotics", "issue-missing")

    @pytest.mark.asyncio
    async def test_requires_analysis(self, test_settings):
        service = make_service(FakeAnalysisClient(None), settings=test_settings)

        with pytest.raises(ActivityNotAnalyzedError):
            await service.load_reflection_prompts("act-unknown", "issue-x")


# ---------------------------------------------------------------------------
# Issue workspace
# ---------------------------------------------------------------------------

class TestIssueWorkspace:
    @pytest.mark.asyncio
    async def test_complete_uses_configured_minimum(
        self, sample_activity, sample_draft, scenario_analysis, test_settings
    ):
        service = make_service(FakeAnalysisClient(response_for(scenario_analysis)), settings=test_settings)
        outcome = await service.analyze_draft(sample_activity, sample_draft)
        issue_id = outcome.coaching.teaching_issues[0].id

        service.update_workspace("act-robotics", issue_id, "Too short.")
        with pytest.raises(IssueStateTransitionError):
            service.complete_issue("act-robotics", issue_id)

        service.update_workspace("act-robotics", issue_id, "My hands shook when the arm snapped.")
        issue = service.complete_issue("act-robotics", issue_id)

        assert issue.status == "completed"
        assert outcome.coaching.overall.estimated_time_minutes == 3

    @pytest.mark.asyncio
    async def test_request_review(self, sample_activity, sample_draft, scenario_analysis, test_settings):
        service = make_service(FakeAnalysisClient(response_for(scenario_analysis)), settings=test_settings)
        outcome = await service.analyze_draft(sample_activity, sample_draft)
        issue_id = outcome.coaching.teaching_issues[0].id

        service.update_workspace("act-robotics", issue_id, "A first attempt at the rewrite.")
        issue = service.request_review("act-robotics", issue_id, feedback="Add a sensory detail.")

        assert issue.status == "needs_review"
        assert issue.student_workspace.feedback == "Add a sensory detail."

    @pytest.mark.asyncio
    async def test_reset_clears_answers(self, sample_activity, sample_draft, scenario_analysis, test_settings):
        service = make_service(FakeAnalysisClient(response_for(scenario_analysis)), settings=test_settings)
        outcome = await service.analyze_draft(sample_activity, sample_draft)
        issue_id = outcome.coaching.teaching_issues[0].id
        prompts = await service.load_reflection_prompts("act-robotics", issue_id)
        service.record_reflection_answer("act-robotics", issue_id, prompts[0].id, "An answer.")
        service.update_workspace("act-robotics", issue_id, "My hands shook when the arm snapped.")
        service.complete_issue("act-robotics", issue_id)

        issue = service.reset_issue("act-robotics", issue_id)

        assert issue.status == "not_started"
        assert issue.student_workspace.draft_text == ""
        assert all(p.student_answer is None for p in issue.reflection_prompts)
        assert issue_id not in service.get_state("act-robotics").reflection_answers
        assert outcome.coaching.overall.estimated_time_minutes == 18

    def test_workspace_requires_analysis(self, test_settings):
        service = make_service(FakeAnalysisClient(None), settings=test_settings)
        with pytest.raises(ActivityNotAnalyzedError):
            service.update_workspace("act-unknown", "issue-x", "text")


# ---------------------------------------------------------------------------
# Chat context
# ---------------------------------------------------------------------------

class TestBuildChatContext:
    @pytest.mark.asyncio
    async def test_uses_saved_versions(self, sample_activity, sample_draft, scenario_analysis, test_settings):
        client = FakeAnalysisClient(response_for(scenario_analysis, nqi=52), response_for(scenario_analysis))
        service = make_service(client, settings=test_settings)
        await service.analyze_draft(sample_activity, "First attempt.")
        await service.analyze_draft(sample_activity, sample_draft)

        context = service.build_chat_context("act-robotics")

        assert context.scores.current_nqi == 60
        assert context.scores.initial_nqi == 52
        assert context.total_versions == 2
        assert context.recent_deltas[0].nqi_delta == 8
        assert context.draft_text == sample_draft

    def test_unknown_activity(self, test_settings):
        service = make_service(FakeAnalysisClient(None), settings=test_settings)
        with pytest.raises(ActivityNotAnalyzedError):
            service.build_chat_context("act-unknown")
