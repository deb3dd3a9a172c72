"""Shared machinery for step-based submission flows"""

import enum
import logging
from collections.abc import Callable, Mapping
from datetime import date, timedelta
from typing import Any, Protocol

from curbside.workflows.errors import (
    FlowClosedError,
    InvalidTransitionError,
    StepValidationError,
)

logger = logging.getLogger(__name__)

Validator = Callable[[Mapping[str, Any]], None]


class FlowStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SubmissionGateway(Protocol):
    """Calls a flow needs from the portal API"""

    async def create_payment_intent(
        self, amount: int, service_id: str, service_type: str
    ) -> dict[str, Any]: ...

    async def create_service_request(
        self,
        service_type: str,
        service_id: str,
        form_data: dict[str, Any],
        amount: int | None = None,
        payment_intent_id: str | None = None,
    ) -> dict[str, Any]: ...

    async def confirm_payment(self, payment_intent_id: str) -> dict[str, Any]: ...

    async def cancel_payment_intent(
        self, payment_intent_id: str, reason: str | None = None
    ) -> dict[str, Any]: ...


def check_exhaustive(
    steps: type[enum.Enum],
    allowed_next: Mapping[Any, tuple[Any, ...]],
    terminal: frozenset,
) -> None:
    """Every step is terminal or has a successor, and nothing leads out of the enum"""
    for step in steps:
        if step not in allowed_next:
            raise TypeError(f"{steps.__name__}.{step.name} has no transition entry")
        successors = allowed_next[step]
        if step in terminal and successors:
            raise TypeError(f"Terminal step {step.value} must not have successors")
        if step not in terminal and not successors:
            raise TypeError(f"Step {step.value} is neither terminal nor has successors")
        for successor in successors:
            if not isinstance(successor, steps):
                raise TypeError(f"Step {step.value} leads to unknown step {successor!r}")


def predecessors(allowed_next: Mapping[Any, tuple[Any, ...]]) -> dict[Any, Any]:
    """Invert a linear transition map"""
    previous = {}
    for step, successors in allowed_next.items():
        for successor in successors:
            previous.setdefault(successor, step)
    return previous


def add_business_days(start: date, days: int) -> date:
    """The date `days` weekdays (Mon-Fri) after `start`"""
    current = start
    remaining = days
    while remaining > 0:
        current += timedelta(days=1)
        if current.weekday() < 5:
            remaining -= 1
    return current


def require(values: Mapping[str, Any], step: str, *fields: str) -> None:
    """Raise for the first blank field"""
    for field in fields:
        value = values.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise StepValidationError(step, f"{field} is required", field=field)


class StepFlow:
    """A linear flow over a step enum with back and cancel.

    Subclasses set `steps`, `allowed_next`, `terminal` and `validators`.
    """

    steps: type[enum.Enum]
    allowed_next: Mapping[Any, tuple[Any, ...]]
    terminal: frozenset
    validators: Mapping[Any, Validator]

    def __init__(self):
        self.step = next(iter(self.steps))
        self.values: dict[str, Any] = {}
        self.status = FlowStatus.ACTIVE
        self.last_error: Exception | None = None
        self._previous = predecessors(self.allowed_next)

    @property
    def is_open(self) -> bool:
        return self.status == FlowStatus.ACTIVE

    @property
    def submission_started(self) -> bool:
        """Once the card is charged or the request exists the flow can no longer be unwound"""
        return False

    def validate(self) -> None:
        """Validate the current step's values; pure, no I/O"""
        validator = self.validators.get(self.step)
        if validator is not None:
            validator(self.values)

    def back(self) -> None:
        """Return to the previous step, keeping every entered value"""
        self._require_open()
        if self.submission_started:
            raise InvalidTransitionError("Submission already sent")
        previous = self._previous.get(self.step)
        if previous is None:
            raise InvalidTransitionError(f"No step before {self.step.value}")
        self.last_error = None
        self.step = previous

    def cancel(self) -> None:
        """Abandon the flow; its values are discarded"""
        self._require_open()
        if self.submission_started:
            raise InvalidTransitionError("Submission already sent")
        self.values = {}
        self.status = FlowStatus.CANCELLED
        logger.debug(f"{type(self).__name__} cancelled at {self.step.value}")

    def _require_open(self) -> None:
        if not self.is_open:
            raise FlowClosedError(f"Flow is {self.status.value}")

    def _require_step(self, step: Any) -> None:
        self._require_open()
        if self.step != step:
            raise InvalidTransitionError(
                f"Expected step {step.value}, currently at {self.step.value}"
            )

    def _advance(self) -> None:
        """Validate the current step and move to its successor"""
        self._require_open()
        self.validate()
        successors = self.allowed_next[self.step]
        if not successors:
            raise InvalidTransitionError(f"{self.step.value} is terminal")
        self.step = successors[0]
        self.last_error = None
        if self.step in self.terminal:
            self.status = FlowStatus.COMPLETED
