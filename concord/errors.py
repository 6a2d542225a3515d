"""Error taxonomy and operation results.

Workflow errors (validation, not-found, state-conflict) are converted into
failed ``OperationResult`` values at the public boundary. ``StoreError`` is a
collaborator failure and propagates unchanged.
"""

from dataclasses import dataclass, field
from typing import Any

from concord.config import ErrorKind


class WorkflowError(Exception):
    """Base class for errors reported back to the caller."""

    error_kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str, unmet: list[str] | None = None, **data: Any):
        super().__init__(message)
        self.message = message
        self.unmet = list(unmet or [])
        self.data = data


class ValidationError(WorkflowError):
    """Missing or malformed required input."""

    error_kind = ErrorKind.VALIDATION


class NotFoundError(WorkflowError):
    """Referenced Work Item, Step or context does not exist."""

    error_kind = ErrorKind.NOT_FOUND


class StateConflictError(WorkflowError):
    """Illegal state transition.

    ``unmet`` enumerates the specific conditions that blocked the transition,
    for example the sequence numbers of dependencies that are not completed.
    """

    error_kind = ErrorKind.STATE_CONFLICT


class StoreError(Exception):
    """Failure in the persistence collaborator."""

    pass


@dataclass
class OperationResult:
    """Discriminated success/failure result returned by workflow operations."""

    success: bool
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    error_kind: ErrorKind | None = None
    unmet: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.success

    @property
    def failed(self) -> bool:
        return not self.success

    @classmethod
    def ok(cls, message: str, **data: Any) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(
        cls,
        message: str,
        error_kind: ErrorKind,
        unmet: list[str] | None = None,
        **data: Any,
    ) -> "OperationResult":
        return cls(
            success=False,
            message=message,
            data=data,
            error=message,
            error_kind=error_kind,
            unmet=list(unmet or []),
        )

    @classmethod
    def from_error(cls, error: WorkflowError, **data: Any) -> "OperationResult":
        """Build a failed result from a workflow error."""
        return cls.fail(error.message, error.error_kind, unmet=error.unmet, **{**error.data, **data})
