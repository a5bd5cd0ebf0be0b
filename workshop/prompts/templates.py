"""
Prompt Template System

Reusable prompt templates with variable interpolation and validation,
plus the reflection prompt templates.
"""

from typing import Any, Optional
from string import Formatter

from workshop.exceptions import PromptTemplateError


class PromptTemplate:
    """Reusable template for generating prompts with {variable} placeholders."""

    def __init__(
        self,
        template: str,
        name: Optional[str] = None,
        defaults: Optional[dict[str, Any]] = None,
    ):
        self.template = template.strip()
        self.name = name or "unnamed"
        self.defaults = defaults or {}
        self.required_vars = self._extract_variables()

    def _extract_variables(self) -> set[str]:
        variables = set()
        for _, field_name, _, _ in Formatter().parse(self.template):
            if field_name is not None:
                base_name = field_name.split(".")[0].split("[")[0]
                if base_name:
                    variables.add(base_name)
        return variables

    def render(self, **kwargs: Any) -> str:
        values = {**self.defaults, **kwargs}
        missing = self.required_vars - set(values.keys())
        if missing:
            raise PromptTemplateError(template_name=self.name, missing_vars=sorted(missing))
        return self.template.format(**values)

    def __repr__(self) -> str:
        return f"PromptTemplate(name='{self.name}', vars={self.required_vars})"


# Reflection prompts

TONE_GUIDANCE = {
    "mentor": (
        "You are a wise, supportive mentor helping a student discover deeper insights about "
        "their experience. Your questions are thoughtful and encouraging."
    ),
    "coach": (
        "You are a skilled writing coach helping a student strengthen their narrative. Your "
        "questions are direct, actionable and focused on extracting concrete details."
    ),
    "curious_friend": (
        "You are a genuinely curious friend who wants to understand their story better. Your "
        "questions feel natural and conversational."
    ),
}

DEPTH_GUIDANCE = {
    "surface": "Focus on extracting concrete, factual details: numbers, names, events.",
    "deep": "Go deeper: explore beliefs, surprises, emotional progression and transferable insights.",
}

REFLECTION_SYSTEM_TEMPLATE = PromptTemplate(
    """You are generating reflection prompts for a student revising a short extracurricular narrative.

{tone_guidance}

Generate EXACTLY {prompt_count} reflection questions whose answers the student can put straight into the draft.

Requirements:
1. Reference the student's actual activity and wording. Never ask a question that fits any essay.
2. Build progressively: first a concrete detail, then the turning point, then the deeper insight.
3. Open-ended only. Start with What, How, When, Who or Why. Never ask yes/no questions.
4. One or two sentences per question, in natural mentor language.

Respond with JSON:
{{
    "prompts": [
        {{
            "question": "<question text>",
            "purpose": "<what gap this answer fills, one sentence>",
            "answer_type": "short_text" | "long_text",
            "placeholder_example": "<optional short example answer>"
        }}
    ],
    "rationale": "<why these questions work together for this issue, 2-3 sentences>"
}}""",
    name="reflection_system",
)

REFLECTION_USER_TEMPLATE = PromptTemplate(
    """Generate {prompt_count} reflection prompts for this student's narrative.

Activity:
Title: {activity_name}
Role: {activity_role}
Category: {activity_category}
Time commitment: {time_commitment}

Current draft:
"{draft_text}"

Teaching issue:
Title: {issue_title}
Category: {issue_category}
Severity: {severity}
From their draft: "{from_draft}"

Problem:
{explanation}

Principle to teach: {principle_name}
{principle_description}

Your goal: {depth_guidance}

Generate questions that directly help them fix "{issue_title}" in their own words.""",
    name="reflection_user",
)


# Helper Functions

def format_list_for_prompt(items: list[str], bullet: str = "-") -> str:
    if not items:
        return "None"
    return "\n".join(f"{bullet} {item}" for item in items)
