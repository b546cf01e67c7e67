"""Domain exceptions raised by the tutoring core."""


class TutorError(Exception):
    """Base class for all tutoring errors."""


class GenerationError(TutorError):
    """The content provider could not produce a response."""


class ValidationError(TutorError):
    """Interactive answers are missing or invalid.

    Args:
        message: Human readable reason.
        question_ids: Identifiers of the offending questions.
    """

    def __init__(self, message: str, question_ids: list[str] | None = None):
        super().__init__(message)
        self.question_ids = question_ids or []


class PersistenceCorrupt(TutorError):
    """The stored profile blob could not be decoded."""


class MicrophoneDenied(TutorError):
    """No microphone is available for a speaking session."""


class SessionBusyError(TutorError):
    """A turn was submitted while another one is still outstanding."""


class SessionStateError(TutorError):
    """The operation is not valid in the session's current state."""
