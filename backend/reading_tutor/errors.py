from __future__ import annotations
from enum import Enum


class TutorError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ExtractionFailure(str, Enum):
    CORRUPT_OR_UNREADABLE = "corrupt_or_unreadable"
    URL_UNREADABLE = "url_unreadable"
    TEXT_TOO_SHORT = "text_too_short"


class ExtractionError(TutorError):
    def __init__(self, kind: ExtractionFailure, message: str):
        self.kind = kind
        super().__init__(message)


class GenerationError(TutorError):
    pass


class EvaluationError(TutorError):
    pass


class FormValidationError(TutorError):
    """Raised by the add-material form; never changes the flow's view."""


class TransitionError(TutorError):
    """An intent that is not legal in the flow's current view."""
