"""Azure Compute Schedule adapter.

Implements the ExecutionService and StatusService contracts on top of the
scheduled actions "execute" API:

    submit_bulk_action   -> virtual_machines_execute_{delete,deallocate,hibernate,start}
    get_operation_status -> virtual_machines_get_operation_status

Both calls are scoped to the location the VMs live in.
"""

import logging
from typing import Any

from azure.mgmt.computeschedule.models import (
    ExecuteDeallocateRequest,
    ExecuteDeleteRequest,
    ExecuteHibernateRequest,
    ExecuteStartRequest,
    ExecutionParameters,
    GetOperationStatusRequest,
    Resources,
    RetryPolicy,
)

from azbulk.models import (
    ActionConfig,
    ActionRequest,
    ActionType,
    OperationHandle,
    OperationState,
    OperationStatus,
    SubmissionResponse,
)

logger = logging.getLogger(__name__)


class ScheduledActionsService:
    """Execution and status service backed by ComputeScheduleMgmtClient."""

    def __init__(self, client: Any, location: str):
        """Initialize service.

        Args:
            client: azure.mgmt.computeschedule.ComputeScheduleMgmtClient
            location: Azure region of the target VMs
        """
        self.client = client
        self.location = location

    def submit_bulk_action(self, request: ActionRequest) -> SubmissionResponse:
        """Start a bulk action and collect its operation handles."""
        body = build_execute_request(request)
        operations = self.client.scheduled_actions

        action = request.config.action
        if action is ActionType.DELETE:
            response = operations.virtual_machines_execute_delete(self.location, body)
        elif action is ActionType.DEALLOCATE:
            response = operations.virtual_machines_execute_deallocate(self.location, body)
        elif action is ActionType.HIBERNATE:
            response = operations.virtual_machines_execute_hibernate(self.location, body)
        else:
            response = operations.virtual_machines_execute_start(self.location, body)

        return parse_submission_response(response, request.resource_ids)

    def get_operation_status(
        self, operation_ids: list[str], correlation_id: str
    ) -> list[OperationStatus]:
        """Query the state of each operation."""
        body = GetOperationStatusRequest(operation_ids=operation_ids, correlationid=correlation_id)
        response = self.client.scheduled_actions.virtual_machines_get_operation_status(
            self.location, body
        )
        return parse_status_response(response)


def _execution_parameters(config: ActionConfig) -> ExecutionParameters:
    if config.retry_count is None and config.retry_window_minutes is None:
        return ExecutionParameters()
    return ExecutionParameters(
        retry_policy=RetryPolicy(
            retry_count=config.retry_count,
            retry_window_in_minutes=config.retry_window_minutes,
        )
    )


def build_execute_request(request: ActionRequest) -> Any:
    """Build the SDK request body for one batch."""
    common = {
        "execution_parameters": _execution_parameters(request.config),
        "resources": Resources(ids=list(request.resource_ids)),
        "correlationid": request.correlation_id,
    }

    action = request.config.action
    if action is ActionType.DELETE:
        return ExecuteDeleteRequest(force_deletion=request.config.force, **common)
    if action is ActionType.DEALLOCATE:
        return ExecuteDeallocateRequest(**common)
    if action is ActionType.HIBERNATE:
        return ExecuteHibernateRequest(**common)
    return ExecuteStartRequest(**common)


def parse_submission_response(response: Any, resource_ids: tuple[str, ...]) -> SubmissionResponse:
    """Split an execute response into handles and rejected resources.

    A result without an operation id is a per-resource rejection.
    """
    parsed = SubmissionResponse()
    for result in getattr(response, "results", None) or []:
        operation = getattr(result, "operation", None)
        operation_id = getattr(operation, "operation_id", None) if operation else None
        resource_id = getattr(result, "resource_id", None) or getattr(operation, "resource_id", None)

        if operation_id and resource_id:
            parsed.handles.append(OperationHandle(operation_id=operation_id, resource_id=resource_id))
        elif resource_id:
            parsed.rejected[resource_id] = (
                getattr(result, "error_code", None)
                or getattr(result, "error_details", None)
                or "Rejected without an operation id"
            )

    if len(parsed.handles) + len(parsed.rejected) < len(resource_ids):
        logger.debug(
            f"Execute response covered {len(parsed.handles) + len(parsed.rejected)} "
            f"of {len(resource_ids)} resource(s)"
        )
    return parsed


def parse_status_response(response: Any) -> list[OperationStatus]:
    """Convert a status response into OperationStatus entries."""
    statuses = []
    for result in getattr(response, "results", None) or []:
        operation = getattr(result, "operation", None)
        if operation is None or not getattr(operation, "operation_id", None):
            continue

        state = OperationState.from_remote(getattr(operation, "state", None))
        error = None
        if state is not OperationState.SUCCEEDED:
            op_error = getattr(operation, "resource_operation_error", None)
            error = (
                getattr(result, "error_code", None)
                or getattr(op_error, "error_code", None)
                or getattr(op_error, "error_details", None)
            )
        statuses.append(OperationStatus(operation.operation_id, state, error))
    return statuses


__all__ = [
    "ScheduledActionsService",
    "build_execute_request",
    "parse_status_response",
    "parse_submission_response",
]
