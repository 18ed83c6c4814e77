"""
Errors surfaced by the survey flow engine.

Configuration problems in the rule graph (dangling question references, a
navigation rule without its target) are never raised: the engine logs them and
ignores the rule. Only bad input and bad state reach the caller.
"""


class FlowError(Exception):
    """Base class for every error the engine reports to a caller."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(FlowError):
    """A form, question, rule, response or session identity is absent."""


class ValidationFailure(FlowError):
    """The requested operation was rejected; nothing changed."""


class InvalidAnswer(ValidationFailure):
    pass


class RequiredAnswerMissing(ValidationFailure):
    pass


class InvalidTransition(ValidationFailure):
    pass


class AlreadySubmitted(ValidationFailure):
    pass


class DuplicateResponse(ValidationFailure):
    pass


class FormClosed(ValidationFailure):
    pass
