"""Unit tests for tracker module.

Polling is driven by a fake clock whose sleep() advances time, so these
tests are deterministic and instant.
"""

import threading
from unittest.mock import Mock

from azbulk.models import OperationHandle, OperationState, OperationStatus
from azbulk.tracker import DEFAULT_POLL_INTERVAL, OperationTracker


def _submit(service, ids):
    from azbulk.models import ActionConfig, ActionRequest

    request = ActionRequest("corr-1", tuple(ids), ActionConfig())
    return service.submit_bulk_action(request).handles


class TestOperationTracker:
    """Test polling until completion or deadline."""

    def test_default_poll_interval(self):
        assert DEFAULT_POLL_INTERVAL == 30.0

    def test_completes_when_all_succeed(self, fake_service, fake_clock, vm_ids):
        """Test polling stops as soon as every handle is terminal."""
        service = fake_service(polls_to_complete=3)
        handles = _submit(service, vm_ids(4))
        tracker = OperationTracker(service, clock=fake_clock, sleep=fake_clock.sleep)

        result = tracker.await_completion(handles, "corr-1", poll_interval=30, deadline=fake_clock() + 3600)

        assert result.complete
        assert result.polls == 3
        assert fake_clock.sleeps == [30, 30]
        assert all(s is OperationState.SUCCEEDED for s in result.states.values())

    def test_no_sleep_after_final_poll(self, fake_service, fake_clock, vm_ids):
        """Test a batch that finishes on the first poll never sleeps."""
        service = fake_service(polls_to_complete=1)
        handles = _submit(service, vm_ids(2))
        tracker = OperationTracker(service, clock=fake_clock, sleep=fake_clock.sleep)

        tracker.await_completion(handles, "corr-1", poll_interval=30)

        assert fake_clock.sleeps == []

    def test_correlation_id_sent_with_every_poll(self, fake_service, fake_clock, vm_ids):
        service = fake_service(polls_to_complete=2)
        handles = _submit(service, vm_ids(2))
        tracker = OperationTracker(service, clock=fake_clock, sleep=fake_clock.sleep)

        tracker.await_completion(handles, "corr-xyz", poll_interval=5)

        assert [corr for _, corr in service.status_calls] == ["corr-xyz", "corr-xyz"]

    def test_terminal_handles_pruned_from_polls(self, fake_clock):
        """Test a handle is never polled after it reached a terminal state."""
        handles = [OperationHandle("op-1", "vm-1"), OperationHandle("op-2", "vm-2")]
        service = Mock()
        service.get_operation_status.side_effect = [
            [
                OperationStatus("op-1", OperationState.SUCCEEDED),
                OperationStatus("op-2", OperationState.RUNNING),
            ],
            [OperationStatus("op-2", OperationState.SUCCEEDED)],
        ]
        tracker = OperationTracker(service, clock=fake_clock, sleep=fake_clock.sleep)

        result = tracker.await_completion(handles, "corr-1", poll_interval=10)

        assert result.complete
        first_ids = service.get_operation_status.call_args_list[0].args[0]
        second_ids = service.get_operation_status.call_args_list[1].args[0]
        assert sorted(first_ids) == ["op-1", "op-2"]
        assert second_ids == ["op-2"]

    def test_timeout_reports_timed_out(self, fake_service, fake_clock, vm_ids):
        """Test non-terminal handles are TimedOut once the deadline passes."""
        ids = vm_ids(3)
        service = fake_service(stuck_ids={ids[1]})
        handles = _submit(service, ids)
        tracker = OperationTracker(service, clock=fake_clock, sleep=fake_clock.sleep)
        start = fake_clock()

        result = tracker.await_completion(handles, "corr-1", poll_interval=30, deadline=start + 100)

        assert not result.complete
        states = {h.resource_id: s for h, s in result.states.items()}
        assert states[ids[0]] is OperationState.SUCCEEDED
        assert states[ids[1]] is OperationState.TIMED_OUT
        assert states[ids[2]] is OperationState.SUCCEEDED
        assert fake_clock() - start <= 100 + 30
        assert fake_clock.sleeps == [30, 30, 30, 10]
        assert result.polls == 4

    def test_deadline_already_passed(self, fake_service, fake_clock, vm_ids):
        """Test no poll is made when the deadline has already passed."""
        service = fake_service()
        handles = _submit(service, vm_ids(2))
        tracker = OperationTracker(service, clock=fake_clock, sleep=fake_clock.sleep)

        result = tracker.await_completion(handles, "corr-1", deadline=fake_clock() - 1)

        assert result.polls == 0
        assert service.status_calls == []
        assert all(s is OperationState.TIMED_OUT for s in result.states.values())

    def test_poll_errors_retried_next_cycle(self, fake_service, fake_clock, vm_ids):
        """Test a failed status query does not abort tracking."""
        service = fake_service(poll_errors=2)
        handles = _submit(service, vm_ids(2))
        tracker = OperationTracker(service, clock=fake_clock, sleep=fake_clock.sleep)

        result = tracker.await_completion(handles, "corr-1", poll_interval=30, deadline=fake_clock() + 3600)

        assert result.complete
        assert result.polls == 3
        assert "timed out" in result.last_error
        assert all(s is OperationState.SUCCEEDED for s in result.states.values())

    def test_poll_errors_until_deadline(self, fake_clock):
        """Test persistent poll errors end in TimedOut, not an exception."""
        service = Mock()
        service.get_operation_status.side_effect = ConnectionError("connection reset")
        tracker = OperationTracker(service, clock=fake_clock, sleep=fake_clock.sleep)

        result = tracker.await_completion(
            [OperationHandle("op-1", "vm-1")], "corr-1", poll_interval=30, deadline=fake_clock() + 60
        )

        assert not result.complete
        assert result.states[OperationHandle("op-1", "vm-1")] is OperationState.TIMED_OUT
        assert "connection reset" in result.last_error

    def test_failed_operation_error_recorded(self, fake_service, fake_clock, vm_ids):
        ids = vm_ids(2)
        service = fake_service(failed_ids={ids[0]})
        handles = _submit(service, ids)
        tracker = OperationTracker(service, clock=fake_clock, sleep=fake_clock.sleep)

        result = tracker.await_completion(handles, "corr-1")

        failed = [h for h, s in result.states.items() if s is OperationState.FAILED]
        assert [h.resource_id for h in failed] == [ids[0]]
        assert result.errors[failed[0]] == "OperationFailed"

    def test_unknown_operation_ids_ignored(self, fake_clock):
        service = Mock()
        service.get_operation_status.return_value = [
            OperationStatus("op-other", OperationState.FAILED),
            OperationStatus("op-1", OperationState.SUCCEEDED),
        ]
        tracker = OperationTracker(service, clock=fake_clock, sleep=fake_clock.sleep)

        result = tracker.await_completion([OperationHandle("op-1", "vm-1")], "corr-1")

        assert result.complete
        assert len(result.states) == 1

    def test_empty_handles(self, fake_clock):
        service = Mock()
        tracker = OperationTracker(service, clock=fake_clock, sleep=fake_clock.sleep)

        result = tracker.await_completion([], "corr-1")

        assert result.complete
        assert result.polls == 0
        service.get_operation_status.assert_not_called()

    def test_stop_event_ends_polling(self, fake_service, fake_clock, vm_ids):
        """Test setting the stop event means stop waiting."""
        ids = vm_ids(2)
        service = fake_service(stuck_ids=set(ids))
        handles = _submit(service, ids)
        stop_event = threading.Event()

        def sleep_then_stop(seconds):
            fake_clock.sleep(seconds)
            stop_event.set()

        tracker = OperationTracker(
            service, clock=fake_clock, sleep=sleep_then_stop, stop_event=stop_event
        )

        result = tracker.await_completion(handles, "corr-1", poll_interval=30)

        assert not result.complete
        assert result.polls == 1
        assert all(s is OperationState.TIMED_OUT for s in result.states.values())

    def test_default_sleep_is_interruptible(self, fake_service, vm_ids):
        """Test the default sleep returns early when the stop event is set."""
        ids = vm_ids(1)
        service = fake_service(stuck_ids=set(ids))
        handles = _submit(service, ids)
        stop_event = threading.Event()
        tracker = OperationTracker(service, stop_event=stop_event)

        timer = threading.Timer(0.05, stop_event.set)
        timer.start()
        try:
            result = tracker.await_completion(handles, "corr-1", poll_interval=60)
        finally:
            timer.cancel()

        assert not result.complete
        assert result.polls == 1
