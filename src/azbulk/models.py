"""Data model for bulk lifecycle orchestration.

Public API (the "studs"):
    ActionType: Bulk action kind
    ActionConfig: Parameters shared by every batch of one run
    ActionRequest: One batch submission with its correlation id
    OperationHandle: Remote operation acting on one resource
    OperationState: Local view of an operation's lifecycle
    SubmissionResult / TrackingResult: Per-batch dispatcher and tracker output
    IdentifierOutcome / BatchResult / OrchestrationResult: Aggregated results
"""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from azbulk.errors import InvalidArgumentError, PartialFailureError, SubmissionError


class ActionType(Enum):
    """Bulk actions supported by the Compute Schedule execute API."""

    DELETE = "delete"
    DEALLOCATE = "deallocate"
    HIBERNATE = "hibernate"
    START = "start"


class OperationState(Enum):
    """Lifecycle state of one identifier's operation."""

    UNSUBMITTED = "unsubmitted"
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        """Terminal states never transition again."""
        return self in _TERMINAL_STATES

    @classmethod
    def from_remote(cls, value: object) -> "OperationState":
        """Map a Compute Schedule state name onto a local state.

        Unknown names are treated as pending so polling continues.
        """
        name = str(getattr(value, "value", value) or "").lower()
        return _REMOTE_STATES.get(name, cls.PENDING)


_TERMINAL_STATES = frozenset(
    {
        OperationState.SUCCEEDED,
        OperationState.FAILED,
        OperationState.CANCELLED,
        OperationState.TIMED_OUT,
    }
)

_REMOTE_STATES = {
    "unknown": OperationState.PENDING,
    "pendingscheduling": OperationState.PENDING,
    "scheduled": OperationState.PENDING,
    "pendingexecution": OperationState.PENDING,
    "blocked": OperationState.PENDING,
    "executing": OperationState.RUNNING,
    "succeeded": OperationState.SUCCEEDED,
    "failed": OperationState.FAILED,
    "cancelled": OperationState.CANCELLED,
}


@dataclass(frozen=True)
class ActionConfig:
    """Action parameters applied to every batch."""

    action: ActionType = ActionType.DELETE
    force: bool = False
    retry_count: int | None = None
    retry_window_minutes: int | None = None

    def __post_init__(self) -> None:
        if self.force and self.action is not ActionType.DELETE:
            raise InvalidArgumentError("force is only valid for the delete action")
        if self.retry_count is not None and self.retry_count < 0:
            raise InvalidArgumentError("retry_count cannot be negative")
        if self.retry_window_minutes is not None and self.retry_window_minutes <= 0:
            raise InvalidArgumentError("retry_window_minutes must be positive")


@dataclass(frozen=True)
class ActionRequest:
    """A single bulk-action submission for one batch."""

    correlation_id: str
    resource_ids: tuple[str, ...]
    config: ActionConfig


@dataclass(frozen=True)
class OperationHandle:
    """Remote operation id and the resource it acts on."""

    operation_id: str
    resource_id: str


@dataclass(frozen=True)
class OperationStatus:
    """One entry of a status query response."""

    operation_id: str
    state: OperationState
    error: str | None = None


@dataclass
class SubmissionResponse:
    """What the execution service returned for one request.

    ``rejected`` maps resource ids the service refused to an error code.
    """

    handles: list[OperationHandle] = field(default_factory=list)
    rejected: dict[str, str] = field(default_factory=dict)


@dataclass
class SubmissionResult:
    """Dispatcher output for one batch."""

    request: ActionRequest
    handles: list[OperationHandle] = field(default_factory=list)
    rejected: dict[str, str] = field(default_factory=dict)
    error: SubmissionError | None = None

    @property
    def accepted(self) -> bool:
        """True when the service accepted the request."""
        return self.error is None


@dataclass
class TrackingResult:
    """Tracker output for one batch."""

    states: dict[OperationHandle, OperationState]
    errors: dict[OperationHandle, str] = field(default_factory=dict)
    complete: bool = True
    polls: int = 0
    last_error: str | None = None


@dataclass
class IdentifierOutcome:
    """Final state of one resource identifier."""

    resource_id: str
    state: OperationState
    operation_id: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is OperationState.SUCCEEDED


@dataclass
class BatchResult:
    """Aggregated terminal states for one batch."""

    index: int
    correlation_id: str | None
    outcomes: list[IdentifierOutcome]
    error: str | None = None
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        """True only if every identifier in the batch succeeded."""
        return all(o.succeeded for o in self.outcomes)

    @property
    def timed_out(self) -> bool:
        return any(o.state is OperationState.TIMED_OUT for o in self.outcomes)

    def get_failures(self) -> list[IdentifierOutcome]:
        """Get outcomes that did not succeed."""
        return [o for o in self.outcomes if not o.succeeded]


@dataclass
class OrchestrationResult:
    """Aggregate across all batches of one run."""

    action: ActionType
    batch_results: list[BatchResult]
    total_duration: float = 0.0

    def __post_init__(self) -> None:
        # Completion order of batch tasks must not leak into the result
        self.batch_results = sorted(self.batch_results, key=lambda b: b.index)

    @property
    def total(self) -> int:
        return sum(len(b.outcomes) for b in self.batch_results)

    @property
    def succeeded(self) -> bool:
        """True only if every batch succeeded."""
        return all(b.succeeded for b in self.batch_results)

    @property
    def failures(self) -> list[IdentifierOutcome]:
        """Every outcome that did not succeed, in input order."""
        return [o for b in self.batch_results for o in b.get_failures()]

    @property
    def failed_ids(self) -> list[str]:
        return [o.resource_id for o in self.failures]

    def state_counts(self) -> dict[OperationState, int]:
        """Count identifiers per final state."""
        return dict(Counter(o.state for b in self.batch_results for o in b.outcomes))

    def format_summary(self) -> str:
        """Format summary of results."""
        failed = len(self.failures)
        return (
            f"{self.action.value}: {self.total} VM(s) in {len(self.batch_results)} batch(es), "
            f"Succeeded: {self.total - failed}, Not succeeded: {failed}"
        )

    def raise_for_failures(self) -> None:
        """Raise PartialFailureError if any identifier did not succeed."""
        failed_ids = self.failed_ids
        if failed_ids:
            raise PartialFailureError(
                f"{len(failed_ids)} of {self.total} VM(s) did not reach Succeeded",
                failed_ids=failed_ids,
            )


__all__ = [
    "ActionConfig",
    "ActionRequest",
    "ActionType",
    "BatchResult",
    "IdentifierOutcome",
    "OperationHandle",
    "OperationState",
    "OperationStatus",
    "OrchestrationResult",
    "SubmissionResponse",
    "SubmissionResult",
    "TrackingResult",
]
