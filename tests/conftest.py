"""
Shared test fixtures for azbulk tests.

This module provides common fixtures used across all test types:
- A fake Compute Schedule service (execution + status)
- A fake monotonic clock for deterministic polling tests
- Sample VM resource ids and fast orchestration settings
"""

import itertools
import threading

import pytest

from azbulk.config_manager import BulkConfig
from azbulk.models import (
    ActionRequest,
    OperationHandle,
    OperationState,
    OperationStatus,
    SubmissionResponse,
)

# ============================================================================
# FAKE REMOTE SERVICES
# ============================================================================


class FakeScheduleService:
    """In-memory stand-in for the scheduled actions execution/status API.

    Every operation reports Running until it has been polled
    ``polls_to_complete`` times, then its terminal state. Thread-safe, since
    the orchestrator calls it from one thread per batch.
    """

    def __init__(
        self,
        polls_to_complete: int = 1,
        failing_submissions: set[str] | None = None,
        stuck_ids: set[str] | None = None,
        failed_ids: set[str] | None = None,
        rejected_ids: set[str] | None = None,
        poll_errors: int = 0,
    ):
        self.polls_to_complete = polls_to_complete
        self.failing_submissions = failing_submissions or set()
        self.stuck_ids = stuck_ids or set()
        self.failed_ids = failed_ids or set()
        self.rejected_ids = rejected_ids or set()
        self.poll_errors = poll_errors

        self.requests: list[ActionRequest] = []
        self.status_calls: list[tuple[list[str], str]] = []
        self._operations: dict[str, dict] = {}
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def submit_bulk_action(self, request: ActionRequest) -> SubmissionResponse:
        with self._lock:
            self.requests.append(request)

        if self.failing_submissions & set(request.resource_ids):
            raise ConnectionError("503 Service Unavailable")

        response = SubmissionResponse()
        with self._lock:
            for rid in request.resource_ids:
                if rid in self.rejected_ids:
                    response.rejected[rid] = "VMNotFound"
                    continue
                op_id = f"op-{next(self._counter)}"
                self._operations[op_id] = {"resource_id": rid, "polls": 0}
                response.handles.append(OperationHandle(operation_id=op_id, resource_id=rid))
        return response

    def get_operation_status(
        self, operation_ids: list[str], correlation_id: str
    ) -> list[OperationStatus]:
        with self._lock:
            self.status_calls.append((list(operation_ids), correlation_id))
            if self.poll_errors > 0:
                self.poll_errors -= 1
                raise TimeoutError("status endpoint timed out")

            statuses = []
            for op_id in operation_ids:
                op = self._operations[op_id]
                op["polls"] += 1
                rid = op["resource_id"]
                if rid in self.stuck_ids or op["polls"] < self.polls_to_complete:
                    state = OperationState.RUNNING
                elif rid in self.failed_ids:
                    state = OperationState.FAILED
                else:
                    state = OperationState.SUCCEEDED
                error = "OperationFailed" if state is OperationState.FAILED else None
                statuses.append(OperationStatus(op_id, state, error))
            return statuses


class FakeClock:
    """Monotonic clock advanced only by sleep()."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# ============================================================================
# FIXTURES
# ============================================================================


def make_vm_ids(count: int, resource_group: str = "bulk-rg") -> list[str]:
    return [
        f"/subscriptions/00000000-0000-0000-0000-000000000000/resourceGroups/{resource_group}"
        f"/providers/Microsoft.Compute/virtualMachines/vm-{i:04d}"
        for i in range(count)
    ]


@pytest.fixture
def vm_ids():
    """Factory for realistic VM resource ids."""
    return make_vm_ids


@pytest.fixture
def fake_service():
    """Factory for FakeScheduleService instances."""
    return FakeScheduleService


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fast_config():
    """Orchestration settings that keep real-time tests under a second."""
    return BulkConfig(
        subscription_id="00000000-0000-0000-0000-000000000000",
        location="uksouth",
        batch_size=100,
        poll_interval=0.01,
        timeout=5.0,
        max_workers=16,
    )
