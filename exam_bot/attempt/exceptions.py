"""Exceptions raised by an attempt session."""


class AttemptError(Exception):
    """Base exception for attempt session errors."""
    pass


class SessionLoadError(AttemptError):
    """No question of the test could be loaded; the session cannot start."""
    pass


class SessionStateError(AttemptError):
    """Operation is not allowed in the session's current state."""
    pass


class InvalidAnswerError(AttemptError):
    """Answer does not fit the current question (wrong kind or unknown option)."""
    pass


class SubmissionError(AttemptError):
    """Final scoring request failed; the student may submit again."""
    pass
