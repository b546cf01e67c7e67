"""Directive records extracted from tutor text.

Each directive is a tagged variant discriminated by ``kind`` so a list of
them serializes directly to the browser.
"""

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

TERMINAL_TOKEN = "SESSION_COMPLETE"


class CorrectionCategory(StrEnum):
    GRAMMAR = "grammar"
    VOCABULARY = "vocabulary"
    COHESION = "cohesion"
    PUNCTUATION = "punctuation"
    SPELLING = "spelling"
    PRONUNCIATION = "pronunciation"


class _Directive(BaseModel):
    model_config = ConfigDict(frozen=True)


class Blank(_Directive):
    """Fill-in-the-blank question: ``[BLANK:3]``."""

    kind: Literal["blank"] = "blank"
    id: str

    @property
    def placeholder(self) -> str:
        return f"(blank {self.id})"


class TrueFalseNotGiven(_Directive):
    """True/False/Not Given question: ``[TFNG:5:The sky is green]``."""

    kind: Literal["tfng"] = "tfng"
    id: str
    statement: str

    @property
    def placeholder(self) -> str:
        return f"(Q{self.id})"


class Passage(_Directive):
    """Reading passage wrapped in ``[PASSAGE]...[/PASSAGE]``."""

    kind: Literal["passage"] = "passage"
    body: str


class Script(_Directive):
    """Listening script wrapped in ``[SCRIPT]...[/SCRIPT]``; heard, never shown."""

    kind: Literal["script"] = "script"
    body: str


class Correction(_Directive):
    """Inline correction: ``[CORRECTION:grammar|he go|he goes|third person -s]``."""

    kind: Literal["correction"] = "correction"
    category: CorrectionCategory
    original: str
    corrected: str
    explanation: str = ""

    @property
    def placeholder(self) -> str:
        return f"({self.original} → {self.corrected})"


class Terminal(_Directive):
    """The session-complete marker."""

    kind: Literal["terminal"] = "terminal"


Directive = Annotated[
    Blank | TrueFalseNotGiven | Passage | Script | Correction | Terminal,
    Field(discriminator="kind"),
]

Question = Blank | TrueFalseNotGiven


class Segment(BaseModel):
    """A run of displayable text; passages are kept apart from prose."""

    kind: Literal["prose", "passage"] = "prose"
    text: str


class ParsedTurn(BaseModel):
    """Result of parsing one tutor turn."""

    segments: list[Segment] = Field(default_factory=list)
    directives: list[Directive] = Field(default_factory=list)
    display_text: str = ""
    speech_text: str = ""

    @property
    def complete(self) -> bool:
        return any(isinstance(d, Terminal) for d in self.directives)

    @property
    def questions(self) -> list[Question]:
        return [d for d in self.directives if isinstance(d, (Blank, TrueFalseNotGiven))]

    @property
    def corrections(self) -> list[Correction]:
        return [d for d in self.directives if isinstance(d, Correction)]

    @property
    def passages(self) -> list[Passage]:
        return [d for d in self.directives if isinstance(d, Passage)]
