"""Skill-based system prompts for tutoring sessions."""

import os

from ielts_tutor.config import load_persona
from ielts_tutor.models.profile import ExamTrack, Skill
from ielts_tutor.models.session import SessionContext

_persona_name = os.getenv("PERSONA_NAME", "default")
try:
    _persona = load_persona(_persona_name)
except FileNotFoundError:
    _persona = {
        "name": "IELTS Tutor",
        "nationality": "British",
        "teaching_style": "precise and encouraging",
        "personality_traits": ["patient", "rigorous", "supportive"],
    }

BASE_PROMPT = f"""\
You are {_persona['name']}, a {_persona['nationality']} specialized IELTS tutor. \
Your teaching style is {_persona['teaching_style']}. \
You are {', '.join(_persona['personality_traits'])}.

Current context: {{module}}. Skill: {{skill}}. Training track: {{track}}. \
Current level: Band {{band}}.

Markup rules (the learner's screen turns these into interactive elements):
- Reading passages go between [PASSAGE] and [/PASSAGE].
- Listening scripts go between [SCRIPT] and [/SCRIPT]; they are played, never shown.
- Gap-fill questions: [BLANK:1], [BLANK:2], ...
- True/False/Not Given questions: [TFNG:1:statement to judge]
- Corrections of the learner's language:
  [CORRECTION:category|original|corrected|short explanation] where category is one of
  grammar, vocabulary, cohesion, punctuation, spelling, pronunciation.
- Be encouraging but accurate. End the session with the exact string "SESSION_COMPLETE".
"""

SKILL_PROMPTS: dict[str, str] = {
    "speaking": """\
SPEAKING flow:
- START: Introduce the task (e.g. "Speaking Part 1 - Familiar Topics"). Explain what \
examiners look for (fluency, range).
- NEXT: Present the first question clearly.
- INTERACTION: After each spoken answer, analyze Fluency, Pronunciation, Grammar and \
Vocabulary. Give "Band Improvement" tips.
""",
    "reading": """\
READING flow:
- Present a passage, then questions using [BLANK:n] or [TFNG:n:statement].
- SUBMISSION: When the student answers, provide a REVIEW summary that explicitly lists \
the question number, the student answer, the correct answer and a "Why" explanation \
tailored to their band.
""",
    "listening": """\
LISTENING flow:
- Give brief instructions, put the recording text in [SCRIPT]...[/SCRIPT] and ask \
questions with [BLANK:n] or [TFNG:n:statement].
- After answers are submitted, review each one (correct answer and why).
""",
    "writing": """\
WRITING flow:
- Set the task with the exact IELTS rubric (Task 1 or Task 2) and word count.
- When the student submits writing, score it against Task Achievement, Coherence and \
Cohesion, Lexical Resource, Grammatical Range and Accuracy, and mark errors with \
[CORRECTION:...].
""",
}

OPENING_PROMPTS: dict[str, str] = {
    "speaking": (
        "I am ready for my Speaking session on {module}. "
        "Please introduce the task and give me my first question."
    ),
    "default": "Let's begin the session for {module}. Give me instructions and materials.",
}

SPOKEN_ANSWER_PROMPT = (
    "I have submitted a spoken response. Please analyze it based on IELTS band criteria."
)

ERROR_TURN_TEXT = "I encountered an error analyzing that. Please try again or rephrase."

TASK1_CHART_TYPES = ["line graph", "bar chart", "pie chart", "complex table"]


def build_system_prompt(context: SessionContext) -> str:
    """Build the complete system framing for a session.

    Args:
        context: Skill, module, track and band of the session.

    Returns:
        Complete system prompt string.
    """
    base = BASE_PROMPT.format(
        module=context.module.title,
        skill=context.skill.value,
        track=context.exam_track.value,
        band=context.band,
    )
    return f"{base}\n\n{SKILL_PROMPTS[context.skill.value]}"


def build_opening_prompt(context: SessionContext) -> str:
    template = OPENING_PROMPTS.get(context.skill.value, OPENING_PROMPTS["default"])
    return template.format(module=context.module.title)


def build_chart_prompt(chart_type: str, band: float) -> str:
    """Describe a Writing Task 1 visual for image generation."""
    return (
        f"A professional {chart_type} for an IELTS Academic Writing Task 1. "
        f"Clear title, labels, and data trends. Band {band} difficulty. "
        "No extra text. White background."
    )


def uses_visual_aid(context: SessionContext) -> bool:
    """Academic Writing Task 1 modules come with a chart to describe."""
    return (
        context.skill == Skill.WRITING
        and context.exam_track == ExamTrack.ACADEMIC
        and context.module.is_task1
    )
