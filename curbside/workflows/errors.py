"""Errors raised by client-side submission flows"""


class WorkflowError(Exception):
    """Base class for submission flow errors"""


class StepValidationError(WorkflowError):
    """Current step's input is incomplete; raised before any network call"""

    def __init__(self, step: str, message: str, field: str | None = None):
        super().__init__(message)
        self.step = step
        self.field = field
        self.message = message


class SubmissionError(WorkflowError):
    """A submission call failed; entered values are kept.

    `retryable` tells the caller whether offering a retry makes sense.
    `stage` names the call that failed, e.g. `create_request`.
    """

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        stage: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.stage = stage
        self.status_code = status_code


class FlowClosedError(WorkflowError):
    """The flow was completed or cancelled and cannot be used again"""


class InvalidTransitionError(WorkflowError):
    """The requested move is not allowed from the current step"""
