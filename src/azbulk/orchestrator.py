"""Bulk lifecycle orchestration across batches.

Batches the identifiers, runs one thread-pool task per batch (submit, then
track), waits for every task, and folds the per-batch results into one
OrchestrationResult.

Philosophy:
- Fail together at the end: no batch cancels or blocks its siblings
- Timeouts and failures are results, not exceptions
- Cancellation means "stop waiting", never "undo"

Public API (the "studs"):
    BulkOrchestrator: Main orchestrator
"""

import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed

from azbulk.batching import batch
from azbulk.config_manager import BulkConfig
from azbulk.dispatcher import Dispatcher, ExecutionService
from azbulk.log_sanitizer import LogSanitizer
from azbulk.models import (
    ActionConfig,
    BatchResult,
    IdentifierOutcome,
    OperationState,
    OrchestrationResult,
    SubmissionResult,
    TrackingResult,
)
from azbulk.tracker import OperationTracker, StatusService

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Cancelled before submission"


class BulkOrchestrator:
    """Coordinate Batcher, Dispatcher and OperationTracker.

    Example:
        orchestrator = BulkOrchestrator(config, service, service)
        result = orchestrator.execute(vm_ids, ActionConfig(ActionType.DELETE, force=True))
        print(result.format_summary())
    """

    def __init__(
        self,
        config: BulkConfig,
        execution_service: ExecutionService,
        status_service: StatusService,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] | None = None,
    ):
        """Initialize orchestrator.

        Args:
            config: Batch size, poll interval, timeout and worker limits
            execution_service: Service accepting bulk-action requests
            status_service: Service reporting operation states
            clock: Monotonic clock for the overall deadline
            sleep: Sleep function for trackers (default: interruptible wait)

        Raises:
            ConfigError: If any limit in config is invalid
        """
        config.validate_limits()

        self.config = config
        self._clock = clock
        self._stop_event = threading.Event()
        self.dispatcher = Dispatcher(execution_service)
        self.tracker = OperationTracker(
            status_service, clock=clock, sleep=sleep, stop_event=self._stop_event
        )

    def cancel(self) -> None:
        """Stop waiting on outstanding operations.

        Already submitted actions keep running remotely. Batches not yet
        submitted are skipped and reported Unsubmitted.
        """
        self._stop_event.set()

    def execute(
        self,
        identifiers: Sequence[str],
        action_config: ActionConfig,
        batch_size: int | None = None,
        progress_callback: Callable[[str], None] | None = None,
    ) -> OrchestrationResult:
        """Run a bulk action over every identifier.

        Args:
            identifiers: VM resource ids
            action_config: Action parameters shared by all batches
            batch_size: Override for config.batch_size
            progress_callback: Optional progress callback

        Returns:
            OrchestrationResult listing every identifier's final state

        Raises:
            InvalidArgumentError: If batch_size is not positive
        """
        self._stop_event.clear()
        start_time = self._clock()
        deadline = start_time + self.config.timeout
        batches = batch(identifiers, batch_size if batch_size is not None else self.config.batch_size)

        if not batches:
            logger.info("No VMs to process")
            return OrchestrationResult(action=action_config.action, batch_results=[])

        logger.info(
            f"Starting {action_config.action.value} of {len(identifiers)} VM(s) "
            f"in {len(batches)} batch(es)"
        )

        workers = min(len(batches), self.config.max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="azbulk-batch") as executor:
            futures = [
                executor.submit(self._run_batch, index, chunk, action_config, deadline)
                for index, chunk in enumerate(batches)
            ]
            try:
                for future in as_completed(futures):
                    batch_result = future.result()
                    if progress_callback:
                        status = "✓" if batch_result.succeeded else "✗"
                        progress_callback(
                            f"{status} batch {batch_result.index + 1}/{len(batches)}: "
                            f"{len(batch_result.outcomes) - len(batch_result.get_failures())}"
                            f"/{len(batch_result.outcomes)} succeeded"
                        )
            except KeyboardInterrupt:
                logger.warning("Interrupted; no longer waiting on outstanding operations")
                self.cancel()

            # Barrier: every task returns before aggregation
            batch_results = [future.result() for future in futures]

        result = OrchestrationResult(
            action=action_config.action,
            batch_results=batch_results,
            total_duration=self._clock() - start_time,
        )
        logger.info(result.format_summary())
        return result

    def _run_batch(
        self,
        index: int,
        chunk: tuple[str, ...],
        action_config: ActionConfig,
        deadline: float,
    ) -> BatchResult:
        """Submit and track one batch. Never raises."""
        start_time = self._clock()
        correlation_id = None
        if self._stop_event.is_set():
            logger.info(f"Batch {index + 1} not submitted: cancelled")
            return BatchResult(
                index=index,
                correlation_id=None,
                outcomes=[
                    IdentifierOutcome(rid, OperationState.UNSUBMITTED, error=CANCELLED_MESSAGE)
                    for rid in chunk
                ],
                error=CANCELLED_MESSAGE,
            )

        try:
            submission = self.dispatcher.submit(chunk, action_config)
            correlation_id = submission.request.correlation_id

            if not submission.accepted:
                return BatchResult(
                    index=index,
                    correlation_id=correlation_id,
                    outcomes=[
                        IdentifierOutcome(rid, OperationState.UNSUBMITTED, error=str(submission.error))
                        for rid in chunk
                    ],
                    error=str(submission.error),
                    duration=self._clock() - start_time,
                )

            tracking = self.tracker.await_completion(
                submission.handles,
                correlation_id,
                poll_interval=self.config.poll_interval,
                deadline=deadline,
            )

            outcomes = _build_outcomes(chunk, submission, tracking)
            logger.info(
                f"Batch {index + 1} finished: "
                f"{sum(o.succeeded for o in outcomes)}/{len(outcomes)} succeeded"
            )
            return BatchResult(
                index=index,
                correlation_id=correlation_id,
                outcomes=outcomes,
                error=tracking.last_error if not tracking.complete else None,
                duration=self._clock() - start_time,
            )

        except Exception as e:
            message = LogSanitizer.create_safe_error_message(e, f"Batch {index + 1} failed")
            logger.exception(message)
            return BatchResult(
                index=index,
                correlation_id=correlation_id,
                outcomes=[IdentifierOutcome(rid, OperationState.FAILED, error=message) for rid in chunk],
                error=message,
                duration=self._clock() - start_time,
            )


def _build_outcomes(
    chunk: tuple[str, ...],
    submission: SubmissionResult,
    tracking: TrackingResult,
) -> list[IdentifierOutcome]:
    """Map every identifier in the batch to its final state, in batch order."""
    by_resource = {h.resource_id.lower(): h for h in submission.handles}
    rejected = {rid.lower(): code for rid, code in submission.rejected.items()}

    outcomes = []
    for rid in chunk:
        key = rid.lower()
        handle = by_resource.get(key)
        if handle is None:
            outcomes.append(
                IdentifierOutcome(
                    rid,
                    OperationState.FAILED,
                    error=rejected.get(key, "No operation returned for this VM"),
                )
            )
            continue

        state = tracking.states[handle]
        error = tracking.errors.get(handle)
        if state is OperationState.TIMED_OUT and error is None:
            error = "Timed out waiting for operation"
        outcomes.append(IdentifierOutcome(rid, state, operation_id=handle.operation_id, error=error))

    return outcomes


__all__ = ["BulkOrchestrator"]
