"""
Offline reflection questions, three per principle.

Used by TemplateReflectionPromptGenerator when no LLM provider is
configured. Every question is open-ended.
"""

# principle key -> [(question, purpose, answer_type, helpful_hint)]
FALLBACK_PROMPTS: dict[str, list[tuple[str, str, str, str]]] = {
    "ANCHOR_WITH_NUMBERS": [
        ("What could you count in this part of your story: people, hours, dollars or events?",
         "Find measurable evidence of your impact", "short_text",
         "How many people? How much time? What measurable outcome?"),
        ("What was the number before you got involved, and what was it after?",
         "Turn a vague claim into a before/after delta", "short_text",
         "Example: 'from 12 members to 73'"),
        ("Which of those numbers would surprise a stranger most, and why?",
         "Choose the metric worth leading with", "long_text", ""),
    ],
    "SHOW_VULNERABILITY": [
        ("What was one specific moment when you struggled or felt unsure?",
         "Identify authentic vulnerability to share", "long_text",
         "Describe the moment: what you felt, thought and feared."),
        ("What did your body do in that moment?",
         "Add a physical detail that makes the emotion real", "short_text",
         "Examples: 'hands shaking', 'stomach dropping', 'couldn't sleep'"),
        ("How did you act differently afterwards because of that moment?",
         "Connect the struggle to growth", "long_text", ""),
    ],
    "USE_DIALOGUE": [
        ("Who said something during this experience that you still remember?",
         "Find a line of real dialogue", "short_text", ""),
        ("What were their exact words, as close as you can recall?",
         "Capture the voice, not a summary", "long_text",
         "Keep it short and conversational."),
        ("How did you answer, and what does that reply show about you?",
         "Let dialogue reveal your character", "long_text", ""),
    ],
    "SHOW_TRANSFORMATION": [
        ("What did things look like before you got involved?",
         "Establish the baseline", "short_text", ""),
        ("What looks different now because of something you did?",
         "Show the change you created", "short_text", ""),
        ("Which single image best captures that before/after contrast?",
         "Make the transformation visible", "long_text", ""),
    ],
    "UNIVERSAL_INSIGHT": [
        ("What bigger question about people or the world does this experience raise for you?",
         "Move from the specific to the universal", "long_text",
         "Think beyond the activity itself."),
        ("Where else in your life have you seen the same pattern?",
         "Show the insight transferring", "long_text", ""),
        ("How would you explain that insight to someone who has never done this activity?",
         "Test that the insight stands on its own", "long_text", ""),
    ],
    "ADD_SPECIFICITY": [
        ("Which sentence in this section could describe anyone's experience?",
         "Locate the generic wording", "short_text", ""),
        ("What exactly did you do in that moment, step by step?",
         "Replace abstraction with concrete action", "long_text", ""),
        ("What names, places or tools belong in that sentence?",
         "Add proper nouns and precise detail", "short_text", ""),
    ],
    "ACTIVE_VOICE": [
        ("Which actions in this section were yours alone?",
         "Identify your ownership", "short_text", ""),
        ("How would this sentence read if it started with 'I' and a strong verb?",
         "Rewrite with agency", "long_text", ""),
        ("What decision did you make that nobody asked you to make?",
         "Surface initiative", "long_text", ""),
    ],
    "SENSORY_DETAILS": [
        ("Where exactly were you when this happened?",
         "Ground the scene in a place", "short_text", ""),
        ("What could you hear, smell or feel in that place?",
         "Add sensory texture", "short_text", ""),
        ("Which one detail would put a reader right there with you?",
         "Pick the most vivid detail", "long_text", ""),
    ],
    "NARRATIVE_ARC": [
        ("What was at risk if things went wrong?",
         "Establish stakes", "short_text", ""),
        ("When did the situation turn, and what caused it?",
         "Find the turning point", "long_text", ""),
        ("How did things end, and what was left unresolved?",
         "Shape a resolution", "long_text", ""),
    ],
    "DEEPEN_REFLECTION": [
        ("What do you notice now that you did not notice before this experience?",
         "Show a change in perception", "long_text", ""),
        ("What belief did you hold at the start that you no longer hold?",
         "Name a belief shift", "long_text", ""),
        ("How has that changed a decision you made recently?",
         "Show reflection turning into action", "long_text", ""),
    ],
}
