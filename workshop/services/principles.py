"""
Writing Principles

The transferable craft principles a teaching issue is framed around, and
the rules that pick one for a category from its commentary.
"""

from workshop.models.teaching import PrincipleBlock


PRINCIPLES: dict[str, PrincipleBlock] = {
    "ANCHOR_WITH_NUMBERS": PrincipleBlock(
        key="ANCHOR_WITH_NUMBERS",
        name="Anchor Claims with Concrete Numbers",
        description=(
            "Use specific, plausible metrics to establish credibility. Numbers turn an abstract "
            "claim ('helped many people') into evidence ('served 47 families')."
        ),
        skill_level="fundamental",
        why_it_matters=(
            "Readers see thousands of vague claims. A specific number signals that the work "
            "happened and had a measurable result."
        ),
    ),
    "SHOW_VULNERABILITY": PrincipleBlock(
        key="SHOW_VULNERABILITY",
        name="Show Authentic Vulnerability",
        description=(
            "Reveal a genuine struggle, failure or doubt. Name the emotion, describe what your "
            "body did, and show who you were before and after."
        ),
        skill_level="intermediate",
        why_it_matters=(
            "Admissions readers look for students who handle setbacks and grow from them. "
            "Vulnerability demonstrates self-awareness and resilience."
        ),
    ),
    "USE_DIALOGUE": PrincipleBlock(
        key="USE_DIALOGUE",
        name="Use Dialogue to Reveal Character",
        description=(
            "A brief, natural line of dialogue can reveal personality and relationships faster "
            "than a paragraph of summary. It should sound spoken, not formal."
        ),
        skill_level="intermediate",
        why_it_matters=(
            "Dialogue shows how you interact with people and puts your voice on the page. "
            "It is one of the strongest authenticity markers."
        ),
    ),
    "SHOW_TRANSFORMATION": PrincipleBlock(
        key="SHOW_TRANSFORMATION",
        name="Show Community Transformation",
        description=(
            "Paint a clear before/after picture of what changed because of you. Contrast "
            "what was with what you built so the reader feels the difference."
        ),
        skill_level="advanced",
        why_it_matters=(
            "Impact matters, but transformation separates good applicants from great ones. "
            "Readers want to see a change agent."
        ),
    ),
    "UNIVERSAL_INSIGHT": PrincipleBlock(
        key="UNIVERSAL_INSIGHT",
        name="Transcend to Universal Insight",
        description=(
            "Move from your specific experience to a broader human truth. Use the activity "
            "as a lens on purpose, connection or meaning."
        ),
        skill_level="advanced",
        why_it_matters=(
            "It shows intellectual depth and maturity: the ability to connect a concrete "
            "experience to bigger ideas."
        ),
    ),
    "ADD_SPECIFICITY": PrincipleBlock(
        key="ADD_SPECIFICITY",
        name="Replace Generic with Specific",
        description=(
            "Every vague word is an opportunity. 'Worked on robotics' becomes 'debugged the PID "
            "controller for our drivetrain'."
        ),
        skill_level="fundamental",
        why_it_matters=(
            "Generic language suggests you did not do the work or do not understand it. "
            "Specificity proves expertise."
        ),
    ),
    "ACTIVE_VOICE": PrincipleBlock(
        key="ACTIVE_VOICE",
        name="Use Active Voice for Agency",
        description=(
            "Passive voice ('the project was completed') hides who acted. Active voice "
            "('I completed the project') shows ownership."
        ),
        skill_level="fundamental",
        why_it_matters="Readers need to see what you did, not what happened around you.",
    ),
    "SENSORY_DETAILS": PrincipleBlock(
        key="SENSORY_DETAILS",
        name="Add Sensory Immersion",
        description=(
            "Include what you saw, heard, smelled or touched. 'Hot metal smell', 'rough "
            "calluses', 'pre-dawn cold' put the reader in the moment."
        ),
        skill_level="intermediate",
        why_it_matters="Sensory details are hard to fake and make an essay memorable.",
    ),
    "NARRATIVE_ARC": PrincipleBlock(
        key="NARRATIVE_ARC",
        name="Build Clear Narrative Arc",
        description=(
            "Structure the piece with setup, conflict and resolution. Even a short essay needs "
            "stakes: something uncertain or at risk."
        ),
        skill_level="intermediate",
        why_it_matters="Without stakes an essay reads like a list of accomplishments.",
    ),
    "DEEPEN_REFLECTION": PrincipleBlock(
        key="DEEPEN_REFLECTION",
        name="Deepen Your Reflection",
        description=(
            "Go beyond 'I learned...' to show how the experience changed your thinking or "
            "actions. What do you notice now that you did not before?"
        ),
        skill_level="advanced",
        why_it_matters="Surface reflection is common. Deep reflection shows genuine growth.",
    ),
}

# First match wins.
_KEYWORD_RULES: list[tuple[tuple[str, ...], str]] = [
    (("number", "metric", "quantif"), "ANCHOR_WITH_NUMBERS"),
    (("vulnerab", "struggl", "challeng"), "SHOW_VULNERABILITY"),
    (("dialogue", "conversation", "said"), "USE_DIALOGUE"),
    (("transformation", "community", "before"), "SHOW_TRANSFORMATION"),
    (("insight", "universal"), "UNIVERSAL_INSIGHT"),
    (("specific", "vague", "generic"), "ADD_SPECIFICITY"),
    (("passive", "active voice"), "ACTIVE_VOICE"),
    (("sensory", "detail", "vivid"), "SENSORY_DETAILS"),
    (("arc", "structure", "narrative", "stakes"), "NARRATIVE_ARC"),
    (("reflection", "meaning", "learn"), "DEEPEN_REFLECTION"),
]

CATEGORY_DEFAULTS: dict[str, str] = {
    "voice_integrity": "SHOW_VULNERABILITY",
    "specificity_evidence": "ADD_SPECIFICITY",
    "transformative_impact": "SHOW_TRANSFORMATION",
    "role_clarity_ownership": "ACTIVE_VOICE",
    "narrative_arc_stakes": "NARRATIVE_ARC",
    "initiative_leadership": "SHOW_TRANSFORMATION",
    "community_collaboration": "USE_DIALOGUE",
    "reflection_meaning": "DEEPEN_REFLECTION",
    "craft_language_quality": "SENSORY_DETAILS",
    "fit_trajectory": "UNIVERSAL_INSIGHT",
    "time_investment_consistency": "ANCHOR_WITH_NUMBERS",
}

DEFAULT_PRINCIPLE = "ADD_SPECIFICITY"


def determine_principle(category: str, texts: list[str]) -> str:
    """Pick a principle key from commentary keywords, falling back to the category default."""
    haystack = " ".join(texts).lower()
    if haystack.strip():
        for keywords, key in _KEYWORD_RULES:
            if any(word in haystack for word in keywords):
                return key
    return CATEGORY_DEFAULTS.get(category, DEFAULT_PRINCIPLE)


def get_principle(key: str) -> PrincipleBlock:
    return PRINCIPLES.get(key, PRINCIPLES[DEFAULT_PRINCIPLE]).model_copy()


def humanize_category(category: str) -> str:
    return " ".join(part.capitalize() for part in category.split("_") if part)
