"""
Reflection Prompt Agent

LLM-backed narrative-generation collaborator: writes Socratic questions
for one teaching issue, grounded in the student's own draft.
"""

from typing import Literal, Optional, Type

from pydantic import BaseModel, Field

from shared.services.llm_service import LLMService
from workshop.agents.base_agent import AgentContext, BaseAgent
from workshop.models.analysis import ActivityContext
from workshop.models.teaching import (
    PromptValidation,
    ReflectionPrompt,
    ReflectionPromptSet,
    TeachingIssue,
)
from workshop.prompts.templates import (
    DEPTH_GUIDANCE,
    REFLECTION_SYSTEM_TEMPLATE,
    REFLECTION_USER_TEMPLATE,
    TONE_GUIDANCE,
)


class GeneratedPrompt(BaseModel):
    question: str = Field(description="The question, 1-2 sentences")
    purpose: str = Field(default="", description="What gap the answer fills")
    answer_type: Literal["short_text", "long_text"] = "long_text"
    placeholder_example: Optional[str] = None


class ReflectionPromptsOutput(BaseModel):
    prompts: list[GeneratedPrompt] = Field(default_factory=list)
    rationale: str = ""


class ReflectionAgentContext(AgentContext):
    issue: TeachingIssue
    activity: ActivityContext
    draft_text: str = ""
    tone: str = "mentor"
    depth: Literal["surface", "deep"] = "surface"
    prompt_count: int = 3


class ReflectionPromptAgent(BaseAgent):
    """Generates reflection questions for a teaching issue."""

    @property
    def agent_name(self) -> str:
        return "reflection_prompts"

    def get_output_model(self) -> Type[BaseModel]:
        return ReflectionPromptsOutput

    def build_system_prompt(self, context: ReflectionAgentContext) -> str:
        return REFLECTION_SYSTEM_TEMPLATE.render(
            tone_guidance=TONE_GUIDANCE.get(context.tone, TONE_GUIDANCE["mentor"]),
            prompt_count=context.prompt_count,
        )

    def build_prompt(self, context: ReflectionAgentContext) -> str:
        activity = context.activity
        if activity.hours_per_week:
            time_commitment = f"{activity.hours_per_week:g} hours/week"
            if activity.weeks_per_year:
                time_commitment += f", {activity.weeks_per_year:g} weeks/year"
        else:
            time_commitment = "Not specified"

        issue = context.issue
        return REFLECTION_USER_TEMPLATE.render(
            prompt_count=context.prompt_count,
            activity_name=activity.name or "Not specified",
            activity_role=activity.role or "Not specified",
            activity_category=activity.category or "Not specified",
            time_commitment=time_commitment,
            draft_text=context.draft_text,
            issue_title=issue.problem.title,
            issue_category=issue.category,
            severity=issue.severity,
            from_draft=issue.problem.from_draft,
            explanation=issue.problem.explanation or "Not provided",
            principle_name=issue.principle.name,
            principle_description=issue.principle.description,
            depth_guidance=DEPTH_GUIDANCE[context.depth],
        )


class LLMReflectionPromptGenerator:
    """ReflectionPromptGenerator backed by ReflectionPromptAgent."""

    def __init__(self, llm_service: LLMService, prompt_count: int = 3, timeout_seconds: int = 60):
        self.agent = ReflectionPromptAgent(llm_service, timeout_seconds=timeout_seconds, temperature=0.8)
        self.prompt_count = prompt_count

    async def generate(
        self,
        issue: TeachingIssue,
        activity: ActivityContext,
        draft_text: str,
        tone: str = "mentor",
        depth: str = "surface",
    ) -> ReflectionPromptSet:
        context = ReflectionAgentContext(
            request_id=issue.id,
            issue=issue,
            activity=activity,
            draft_text=draft_text,
            tone=tone,
            depth=depth,
            prompt_count=self.prompt_count,
        )
        output: ReflectionPromptsOutput = await self.agent.execute(context)

        prompts = [
            ReflectionPrompt(
                id=f"{issue.id}-prompt-{index}",
                question=generated.question.strip(),
                purpose=generated.purpose,
                answer_type=generated.answer_type,
                validation=PromptValidation(min_length=10 if generated.answer_type == "short_text" else 40),
                placeholder_example=generated.placeholder_example,
            )
            for index, generated in enumerate(output.prompts[: self.prompt_count], start=1)
        ]
        return ReflectionPromptSet(
            issue_id=issue.id,
            issue_title=issue.problem.title,
            fingerprint="",
            prompts=prompts,
            rationale=output.rationale,
            tone=tone,
            depth=depth,
        )
