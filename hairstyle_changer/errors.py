"""Exceptions raised by the task intake and lifecycle code.

Integrity errors mean stored state is wrong or a caller asked for something
that does not exist; they are never retried. Start errors are the expected
failures of the pending -> running transition and are the only ones the
reconciliation entry point swallows.
"""


class TaskError(Exception):
    """Base class for task errors."""


class TaskIntegrityError(TaskError):
    pass


class TaskNotFoundError(TaskIntegrityError):
    pass


class InvalidTaskIdError(TaskIntegrityError):
    pass


class TaskStateError(TaskIntegrityError):
    pass


class UnknownProviderError(TaskIntegrityError):
    pass


class TaskStartError(TaskError):
    pass


class TaskNotDueError(TaskStartError):
    pass


class ProviderRejectedError(TaskStartError):
    pass


class TaskAlreadyStartedError(TaskStartError):
    """Another caller started the task first; its provider job id is kept."""


class ProviderError(Exception):
    """Kie API call failed: transport error, bad HTTP status or error envelope."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class InsufficientCreditsError(Exception):
    def __init__(self, required: int, available: int):
        super().__init__(f"insufficient credits: required {required}, available {available}")
        self.required = required
        self.available = available
