"""Operation tracking: poll a batch's operations until they are terminal.

The tracker suspends only its own thread between polls, and the sleep is
interruptible through a shared stop event. A poll failure is logged and the
next cycle retries; running out of time is reported as TimedOut for every
operation still outstanding, never raised.

Handles that reached a terminal state are pruned from subsequent polls.
"""

import logging
import threading
import time
from collections.abc import Callable, Collection
from typing import Protocol

from azbulk.errors import PollingError
from azbulk.log_sanitizer import LogSanitizer
from azbulk.models import OperationHandle, OperationState, OperationStatus, TrackingResult

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 30.0


class StatusService(Protocol):
    """Remote endpoint reporting operation states."""

    def get_operation_status(
        self, operation_ids: list[str], correlation_id: str
    ) -> list[OperationStatus]: ...


class OperationTracker:
    """Poll operation status for one batch until completion or deadline."""

    def __init__(
        self,
        status_service: StatusService,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] | None = None,
        stop_event: threading.Event | None = None,
    ):
        """Initialize operation tracker.

        Args:
            status_service: Service answering status queries
            clock: Monotonic clock the deadline is measured against
            sleep: Sleep function (default: wait on the stop event)
            stop_event: Event that ends polling early when set
        """
        self.status_service = status_service
        self._clock = clock
        self._stop_event = stop_event or threading.Event()
        self._sleep = sleep or self._stop_event.wait

    def await_completion(
        self,
        handles: Collection[OperationHandle],
        correlation_id: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        deadline: float | None = None,
    ) -> TrackingResult:
        """Poll until every handle is terminal or the deadline passes.

        Args:
            handles: Operations to track
            correlation_id: Correlation id attached to every status query
            poll_interval: Seconds between polls
            deadline: Absolute clock value after which polling stops
                (None = no deadline)

        Returns:
            TrackingResult with the last observed state per handle. When
            polling stopped early, outstanding handles are TimedOut and
            ``complete`` is False.
        """
        states: dict[OperationHandle, OperationState] = {
            h: OperationState.PENDING for h in handles
        }
        errors: dict[OperationHandle, str] = {}
        outstanding = {h.operation_id: h for h in handles}
        polls = 0
        last_error = None

        while outstanding:
            if self._stop_event.is_set():
                logger.warning(f"Stopped waiting on {len(outstanding)} operation(s)")
                break
            if deadline is not None and self._clock() >= deadline:
                logger.warning(
                    f"Deadline passed with {len(outstanding)} operation(s) outstanding "
                    f"(correlation id {correlation_id})"
                )
                break

            try:
                statuses = self._poll(list(outstanding), correlation_id)
            except PollingError as e:
                last_error = str(e)
                logger.warning(f"{e}; retrying next cycle")
            else:
                for status in statuses:
                    handle = outstanding.get(status.operation_id)
                    if handle is None:
                        continue
                    states[handle] = status.state
                    if status.error:
                        errors[handle] = status.error
                    if status.state.is_terminal:
                        del outstanding[status.operation_id]
            polls += 1

            if not outstanding:
                break

            logger.debug(
                f"{len(outstanding)}/{len(states)} operation(s) still running "
                f"(correlation id {correlation_id})"
            )

            delay = poll_interval
            if deadline is not None:
                delay = min(delay, max(deadline - self._clock(), 0.0))
            if delay > 0:
                self._sleep(delay)

        for handle in outstanding.values():
            states[handle] = OperationState.TIMED_OUT

        return TrackingResult(
            states=states,
            errors=errors,
            complete=not outstanding,
            polls=polls,
            last_error=last_error,
        )

    def _poll(self, operation_ids: list[str], correlation_id: str) -> list[OperationStatus]:
        try:
            return list(self.status_service.get_operation_status(operation_ids, correlation_id))
        except Exception as e:
            raise PollingError(
                LogSanitizer.create_safe_error_message(e, "Operation status query failed")
            ) from e


__all__ = ["DEFAULT_POLL_INTERVAL", "OperationTracker", "StatusService"]
