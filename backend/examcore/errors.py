"""Error taxonomy for the exam engine.

Every error carries the HTTP status the routes answer with.
"""


class ExamEngineError(Exception):
    """Base class for all engine errors surfaced to callers."""

    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class NotFoundError(ExamEngineError):
    status_code = 404


class ExamNotFound(NotFoundError):
    pass


class AttemptNotFound(NotFoundError):
    pass


class QuestionNotFound(NotFoundError):
    pass


class InvalidTransition(ExamEngineError):
    """Illegal lifecycle move. Nothing was written."""

    status_code = 409


class InvalidExamDefinition(InvalidTransition):
    """Schedule or scoring fields fail validation at publish/update time."""

    status_code = 422


class ExamNotActive(ExamEngineError):
    status_code = 403


class DeadlineExceeded(ExamEngineError):
    status_code = 403


class DuplicateAttempt(ExamEngineError):
    status_code = 409


class AlreadySubmitted(ExamEngineError):
    status_code = 409


class InvalidGrade(ExamEngineError):
    status_code = 422
