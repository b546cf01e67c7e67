"""Pending interactive questions of the latest tutor turn and the user's answers."""

from enum import StrEnum

import structlog
from pydantic import BaseModel

from ielts_tutor.errors import ValidationError
from ielts_tutor.protocol.directives import Blank, Directive, Question, TrueFalseNotGiven

logger = structlog.get_logger()


class TFNGAnswer(StrEnum):
    TRUE = "True"
    FALSE = "False"
    NOT_GIVEN = "Not Given"


class PendingQuestion(BaseModel):
    """A question awaiting an answer."""

    directive: Question
    answer: str | None = None

    @property
    def id(self) -> str:
        return self.directive.id

    @property
    def answered(self) -> bool:
        return bool(self.answer)


class QuestionCollector:
    """Tracks the blank/TFNG questions currently being asked.

    Each tutor turn is authoritative about what is being asked: ``reset``
    drops any question the tutor did not repeat, answered or not.
    """

    def __init__(self) -> None:
        self._pending: list[PendingQuestion] = []

    @property
    def pending(self) -> list[PendingQuestion]:
        return list(self._pending)

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def reset(self, directives: list[Directive]) -> None:
        """Replace the pending set with the questions of a fresh parse."""
        dropped = sum(1 for q in self._pending if not q.answered)
        self._pending = [
            PendingQuestion(directive=d)
            for d in directives
            if isinstance(d, (Blank, TrueFalseNotGiven))
        ]
        if dropped:
            logger.info("unanswered_questions_discarded", count=dropped)

    def set_answer(self, index: int, value: str) -> None:
        """Record the answer for the question at ``index``.

        Raises:
            ValidationError: Unknown index, empty blank answer, or a TFNG
                answer other than True / False / Not Given.
        """
        if not 0 <= index < len(self._pending):
            raise ValidationError(f"No pending question at index {index}")
        question = self._pending[index]

        if isinstance(question.directive, TrueFalseNotGiven):
            try:
                value = TFNGAnswer(value).value
            except ValueError:
                raise ValidationError(
                    f"Question {question.id} must be answered True, False or Not Given",
                    [question.id],
                ) from None
        elif not value.strip():
            raise ValidationError(f"Question {question.id} needs an answer", [question.id])

        question.answer = value

    def missing(self) -> list[str]:
        """Identifiers of questions without an answer."""
        return [q.id for q in self._pending if not q.answered]

    def build_submission(self) -> str:
        """Build the answer message and consume the pending set.

        Raises:
            ValidationError: Some question is unanswered; the pending set is kept.
        """
        missing = self.missing()
        if missing:
            raise ValidationError(
                f"Please answer every question before submitting (missing: {', '.join(missing)})",
                missing,
            )
        answers = ", ".join(f"Question {q.id}: {q.answer}" for q in self._pending)
        self._pending = []
        return (
            f"Here are my answers: {answers}. Provide the Reading Review analysis "
            "(Correct answer vs My answer + Why) for each before continuing."
        )
