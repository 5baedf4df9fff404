"""Bulk-action dispatch for one batch.

Each call to ``Dispatcher.submit`` creates a fresh correlation id and sends a
single request. Submission is never retried here: a retried bulk action may
duplicate remote work, so re-submission is always a caller decision.
"""

import logging
import uuid
from collections.abc import Callable, Sequence
from typing import Protocol

from azbulk.errors import SubmissionError
from azbulk.log_sanitizer import LogSanitizer
from azbulk.models import ActionConfig, ActionRequest, SubmissionResponse, SubmissionResult

logger = logging.getLogger(__name__)


class ExecutionService(Protocol):
    """Remote endpoint that starts a bulk action."""

    def submit_bulk_action(self, request: ActionRequest) -> SubmissionResponse: ...


class Dispatcher:
    """Submit one bulk-action request per batch."""

    def __init__(
        self,
        execution_service: ExecutionService,
        id_factory: Callable[[], str] | None = None,
    ):
        """Initialize dispatcher.

        Args:
            execution_service: Service that accepts bulk-action requests
            id_factory: Correlation id generator (default: uuid4)
        """
        self.execution_service = execution_service
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

    def submit(self, batch: Sequence[str], action_config: ActionConfig) -> SubmissionResult:
        """Submit a bulk action for one batch.

        Args:
            batch: Resource ids in the batch
            action_config: Action parameters

        Returns:
            SubmissionResult with handles, per-resource rejections, or the
            SubmissionError that prevented the request from being accepted
        """
        request = ActionRequest(
            correlation_id=self._id_factory(),
            resource_ids=tuple(batch),
            config=action_config,
        )

        logger.info(
            f"Submitting {action_config.action.value} for {len(request.resource_ids)} VM(s) "
            f"(correlation id {request.correlation_id})"
        )

        try:
            response = self.execution_service.submit_bulk_action(request)
        except Exception as e:
            message = LogSanitizer.create_safe_error_message(e, "Bulk action submission failed")
            logger.error(f"{message} (correlation id {request.correlation_id})")
            return SubmissionResult(
                request=request,
                error=SubmissionError(message, correlation_id=request.correlation_id),
            )

        if response.rejected:
            logger.warning(
                f"{len(response.rejected)} VM(s) rejected by the service "
                f"(correlation id {request.correlation_id})"
            )

        logger.debug(
            f"Submission {request.correlation_id} returned {len(response.handles)} operation(s)"
        )

        return SubmissionResult(
            request=request,
            handles=list(response.handles),
            rejected=dict(response.rejected),
        )


__all__ = ["Dispatcher", "ExecutionService"]
