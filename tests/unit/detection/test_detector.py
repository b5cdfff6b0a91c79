"""Tests for detection/detector.py: the conflict detector state machine."""

import asyncio
import dataclasses
from unittest.mock import MagicMock

import pytest

from spconflict.detection.detector import ConflictDetector
from spconflict.detection.scheduler import PollingScheduler
from spconflict.errors import (
    ConflictConfigurationError,
    ErrorCode,
    FetchFailedError,
    PermissionDeniedError,
    RecordNotFoundError,
)
from spconflict.models import ConflictSeverity, DetectorStatus


async def _ready(fetcher, list_id, options=None, **kwargs):
    detector = ConflictDetector(fetcher, list_id, 42, options, **kwargs)
    result = await detector.initialize()
    assert result.success
    return detector


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_valid_identity(self, fetcher, list_id):
        detector = ConflictDetector(fetcher, list_id, 42)
        assert detector.identity.list_id == list_id
        assert detector.identity.item_id == 42
        assert detector.status is DetectorStatus.UNINITIALIZED
        assert detector.baseline is None

    def test_list_id_whitespace_stripped(self, fetcher, list_id):
        detector = ConflictDetector(fetcher, f"  {list_id} ", 1)
        assert detector.identity.list_id == list_id

    def test_missing_fetcher(self, list_id):
        with pytest.raises(ConflictConfigurationError) as exc_info:
            ConflictDetector(None, list_id, 1)
        assert exc_info.value.code == ErrorCode.INVALID_FETCHER

    def test_fetcher_without_fetch_stamp(self, list_id):
        with pytest.raises(ConflictConfigurationError) as exc_info:
            ConflictDetector(object(), list_id, 1)
        assert exc_info.value.code == ErrorCode.INVALID_FETCHER

    @pytest.mark.parametrize("bad", ["", "   ", None, 123])
    def test_invalid_list_id(self, fetcher, bad):
        with pytest.raises(ConflictConfigurationError) as exc_info:
            ConflictDetector(fetcher, bad, 1)
        assert exc_info.value.code == ErrorCode.INVALID_LIST_ID

    @pytest.mark.parametrize("bad", [0, -1, True, "5", 1.5, None])
    def test_invalid_item_id(self, fetcher, list_id, bad):
        with pytest.raises(ConflictConfigurationError) as exc_info:
            ConflictDetector(fetcher, list_id, bad)
        assert exc_info.value.code == ErrorCode.INVALID_ITEM_ID
        assert exc_info.value.context["item_id"] == bad

    def test_options_from_preset_name(self, fetcher, list_id):
        detector = ConflictDetector(fetcher, list_id, 1, "strict")
        assert detector.get_options().block_save is True

    def test_options_from_mapping(self, fetcher, list_id):
        detector = ConflictDetector(fetcher, list_id, 1, {"block_save": True})
        assert detector.get_options().block_save is True
        assert detector.get_options().check_on_save is True


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------


class TestInitialize:
    async def test_success_sets_baseline(self, fetcher, list_id):
        detector = ConflictDetector(fetcher, list_id, 42)
        result = await detector.initialize()
        assert result.success is True
        assert result.has_conflict is False
        assert detector.status is DetectorStatus.READY
        assert detector.baseline == fetcher.stamp
        state = detector.get_state()
        assert state.has_conflict is False
        assert state.last_checked is not None
        assert state.error is None

    async def test_failure_stays_uninitialized(self, fetcher, list_id):
        fetcher.error = PermissionDeniedError("Access denied")
        detector = ConflictDetector(fetcher, list_id, 42)
        result = await detector.initialize()
        assert result.success is False
        assert result.error_code == "PERMISSION_DENIED"
        assert "Access denied" in result.error
        assert detector.status is DetectorStatus.UNINITIALIZED
        assert detector.baseline is None
        assert detector.get_state().error == result.error

    async def test_retry_after_failure(self, fetcher, list_id):
        fetcher.error = FetchFailedError("timeout")
        detector = ConflictDetector(fetcher, list_id, 42)
        assert (await detector.initialize()).success is False
        fetcher.error = None
        result = await detector.initialize()
        assert result.success is True
        assert detector.get_state().error is None

    async def test_reinitialize_rebaselines(self, fetcher, list_id, stamp_factory):
        detector = await _ready(fetcher, list_id)
        fetcher.stamp = stamp_factory("2")
        await detector.initialize()
        assert detector.baseline.version == "2"
        assert (await detector.check_for_conflicts()).has_conflict is False

    async def test_reinitialize_with_conflict_fires_resolved(self, fetcher, list_id, stamp_factory):
        resolved = MagicMock()
        detector = await _ready(fetcher, list_id, {"on_conflict_resolved": resolved})
        fetcher.stamp = stamp_factory("2")
        await detector.check_for_conflicts()
        await detector.initialize()
        resolved.assert_called_once_with()
        assert detector.get_state().has_conflict is False

    async def test_starts_polling_when_interval_configured(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id, {"check_interval_ms": 30_000})
        assert detector.is_polling_active() is True
        assert detector.get_state().is_polling_active is True
        detector.dispose()

    async def test_no_polling_without_interval(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id)
        assert detector.is_polling_active() is False

    async def test_no_polling_after_failed_initialize(self, fetcher, list_id):
        fetcher.error = FetchFailedError("down")
        detector = ConflictDetector(fetcher, list_id, 42, {"check_interval_ms": 30_000})
        await detector.initialize()
        assert detector.is_polling_active() is False

    async def test_async_context_manager(self, fetcher, list_id):
        async with ConflictDetector(fetcher, list_id, 42) as detector:
            assert detector.status is DetectorStatus.READY
        assert detector.status is DetectorStatus.DISPOSED


# ---------------------------------------------------------------------------
# check_for_conflicts
# ---------------------------------------------------------------------------


class TestCheckForConflicts:
    async def test_unchanged_remote_no_conflict(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id)
        result = await detector.check_for_conflicts()
        assert result.success is True
        assert result.has_conflict is False
        assert detector.get_state().has_conflict is False

    async def test_changed_remote_reports_editor(self, fetcher, list_id, stamp_factory, recent):
        detected = MagicMock()
        detector = await _ready(fetcher, list_id, {"on_conflict_detected": detected})
        fetcher.stamp = stamp_factory("2", recent, "Alice")

        result = await detector.check_for_conflicts()

        assert result.has_conflict is True
        assert result.conflict_info.last_modified_by == "Alice"
        assert result.conflict_info.original_version == "1"
        assert result.conflict_info.current_version == "2"
        assert result.conflict_info.item_id == 42
        assert result.conflict_info.list_id == list_id
        detected.assert_called_once_with(result.conflict_info)
        state = detector.get_state()
        assert state.has_conflict is True
        assert state.conflict_info == result.conflict_info

    async def test_conflict_info_classified(self, fetcher, list_id, stamp_factory, recent):
        detector = await _ready(fetcher, list_id)
        fetcher.stamp = stamp_factory("2", recent)
        info = (await detector.check_for_conflicts()).conflict_info
        assert info.severity is ConflictSeverity.HIGH
        assert info.is_recent is True

    async def test_update_snapshot_then_recheck(self, fetcher, list_id, stamp_factory):
        detector = await _ready(fetcher, list_id)
        fetcher.stamp = stamp_factory("2", by="Alice")
        assert (await detector.check_for_conflicts()).has_conflict is True

        assert (await detector.update_snapshot()).success is True
        result = await detector.check_for_conflicts()
        assert result.has_conflict is False

    async def test_fetch_failure_keeps_prior_conflict(self, fetcher, list_id, stamp_factory):
        detector = await _ready(fetcher, list_id)
        fetcher.stamp = stamp_factory("2")
        await detector.check_for_conflicts()

        fetcher.error = FetchFailedError("Network unreachable")
        result = await detector.check_for_conflicts()

        assert result.success is False
        assert result.error_code == "FETCH_FAILED"
        assert result.has_conflict is True
        state = detector.get_state()
        assert state.has_conflict is True
        assert "Network unreachable" in state.error
        assert state.error_code == "FETCH_FAILED"
        assert state.is_checking is False
        assert detector.status is DetectorStatus.READY

    async def test_fetch_failure_without_prior_conflict(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id)
        fetcher.error = RecordNotFoundError("Item 42 does not exist")
        result = await detector.check_for_conflicts()
        assert result.success is False
        assert result.error_code == "NOT_FOUND"
        assert result.has_conflict is False

    async def test_unexpected_exception_is_general_error(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id)
        fetcher.error = RuntimeError("socket closed")
        result = await detector.check_for_conflicts()
        assert result.success is False
        assert result.error_code == "GENERAL_ERROR"
        assert "socket closed" in result.error

    async def test_success_clears_previous_error(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id)
        fetcher.error = FetchFailedError("blip")
        await detector.check_for_conflicts()
        fetcher.error = None
        await detector.check_for_conflicts()
        assert detector.get_state().error is None
        assert detector.get_state().error_code is None

    async def test_not_initialized(self, fetcher, list_id):
        detector = ConflictDetector(fetcher, list_id, 42)
        result = await detector.check_for_conflicts()
        assert result.success is False
        assert result.error_code == ErrorCode.NOT_INITIALIZED
        assert fetcher.calls == 0

    async def test_callback_fires_only_on_transition(self, fetcher, list_id, stamp_factory):
        detected = MagicMock()
        detector = await _ready(fetcher, list_id, {"on_conflict_detected": detected})
        fetcher.stamp = stamp_factory("2")
        for _ in range(3):
            assert (await detector.check_for_conflicts()).has_conflict is True
        assert detected.call_count == 1

    async def test_new_conflict_after_resolution_fires_again(self, fetcher, list_id, stamp_factory):
        detected = MagicMock()
        detector = await _ready(fetcher, list_id, {"on_conflict_detected": detected})
        fetcher.stamp = stamp_factory("2")
        await detector.check_for_conflicts()
        await detector.update_snapshot()
        fetcher.stamp = stamp_factory("3")
        await detector.check_for_conflicts()
        assert detected.call_count == 2

    async def test_revert_to_baseline_clears_flag_quietly(self, fetcher, list_id, stamp_factory):
        resolved = MagicMock()
        detector = await _ready(fetcher, list_id, {"on_conflict_resolved": resolved})
        original = fetcher.stamp
        fetcher.stamp = stamp_factory("2")
        await detector.check_for_conflicts()
        fetcher.stamp = original
        result = await detector.check_for_conflicts()
        assert result.has_conflict is False
        assert detector.get_state().has_conflict is False
        resolved.assert_not_called()

    async def test_listeners_notified(self, fetcher, list_id, stamp_factory):
        detector = await _ready(fetcher, list_id)
        seen = []
        detector.events.subscribe_detected(lambda info: seen.append(info.current_version))
        fetcher.stamp = stamp_factory("2")
        await detector.check_for_conflicts()
        assert seen == ["2"]

    async def test_raising_callback_does_not_break_check(self, fetcher, list_id, stamp_factory):
        def explode(info):
            raise RuntimeError("callback broke")

        detector = await _ready(fetcher, list_id, {"on_conflict_detected": explode})
        fetcher.stamp = stamp_factory("2")
        result = await detector.check_for_conflicts()
        assert result.success is True
        assert result.has_conflict is True

    async def test_checking_state_while_in_flight(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id)
        fetcher.gate = asyncio.Event()
        task = asyncio.ensure_future(detector.check_for_conflicts())
        await asyncio.sleep(0.01)
        assert detector.status is DetectorStatus.CHECKING
        assert detector.get_state().is_checking is True
        fetcher.gate.set()
        await task
        assert detector.status is DetectorStatus.READY
        assert detector.get_state().is_checking is False

    async def test_concurrent_checks_share_one_fetch(self, fetcher, list_id, stamp_factory):
        detected = MagicMock()
        detector = await _ready(fetcher, list_id, {"on_conflict_detected": detected})
        calls_before = fetcher.calls
        fetcher.stamp = stamp_factory("2")
        fetcher.gate = asyncio.Event()

        pending = asyncio.gather(*(detector.check_for_conflicts() for _ in range(5)))
        await asyncio.sleep(0.01)
        fetcher.gate.set()
        results = await pending

        assert fetcher.calls - calls_before == 1
        assert all(r is results[0] for r in results)
        assert detected.call_count == 1

    async def test_operations_never_overlap(self, fetcher, list_id, stamp_factory):
        detector = await _ready(fetcher, list_id)
        fetcher.stamp = stamp_factory("2")
        fetcher.gate = asyncio.Event()
        pending = asyncio.gather(
            detector.check_for_conflicts(),
            detector.has_changed_since_last_check(),
            detector.update_snapshot(),
        )
        await asyncio.sleep(0.01)
        fetcher.gate.set()
        await pending
        assert fetcher.max_in_flight == 1

    async def test_metrics_recorded(self, fetcher, list_id, stamp_factory):
        metrics = MagicMock()
        detector = await _ready(fetcher, list_id, metrics=metrics)
        fetcher.stamp = stamp_factory("2")
        await detector.check_for_conflicts()
        counters = [c.args[0] for c in metrics.increment.call_args_list]
        assert "spconflict.checks_total" in counters
        assert "spconflict.conflicts_detected_total" in counters
        metrics.timing.assert_called_once()
        assert metrics.timing.call_args.args[0] == "spconflict.check_duration_ms"

    async def test_failure_metric_tagged(self, fetcher, list_id):
        metrics = MagicMock()
        detector = await _ready(fetcher, list_id, metrics=metrics)
        fetcher.error = FetchFailedError("down")
        await detector.check_for_conflicts()
        metrics.increment.assert_any_call(
            "spconflict.fetch_failures_total",
            tags={"op": "check_for_conflicts", "code": "FETCH_FAILED"},
        )


# ---------------------------------------------------------------------------
# has_changed_since_last_check
# ---------------------------------------------------------------------------


class TestHasChangedSinceLastCheck:
    async def test_reports_change_without_flagging(self, fetcher, list_id, stamp_factory):
        detected = MagicMock()
        detector = await _ready(fetcher, list_id, {"on_conflict_detected": detected})
        before = detector.get_state().last_checked
        fetcher.stamp = stamp_factory("2")

        result = await detector.has_changed_since_last_check()

        assert result.success is True
        assert result.has_conflict is True
        state = detector.get_state()
        assert state.has_conflict is False
        assert state.conflict_info is None
        assert state.last_checked >= before
        detected.assert_not_called()

    async def test_unchanged(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id)
        result = await detector.has_changed_since_last_check()
        assert result.success is True
        assert result.has_conflict is False

    async def test_failure_leaves_state_alone(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id)
        fetcher.error = FetchFailedError("down")
        result = await detector.has_changed_since_last_check()
        assert result.success is False
        assert result.error_code == "FETCH_FAILED"
        assert detector.get_state().error is None

    async def test_not_initialized(self, fetcher, list_id):
        detector = ConflictDetector(fetcher, list_id, 42)
        result = await detector.has_changed_since_last_check()
        assert result.error_code == ErrorCode.NOT_INITIALIZED


# ---------------------------------------------------------------------------
# update_snapshot
# ---------------------------------------------------------------------------


class TestUpdateSnapshot:
    async def test_fires_resolved_once(self, fetcher, list_id, stamp_factory):
        resolved = MagicMock()
        detector = await _ready(fetcher, list_id, {"on_conflict_resolved": resolved})
        listener = MagicMock()
        detector.events.subscribe_resolved(listener)
        fetcher.stamp = stamp_factory("2")
        await detector.check_for_conflicts()

        await detector.update_snapshot()
        await detector.update_snapshot()

        resolved.assert_called_once_with()
        listener.assert_called_once_with()
        assert detector.get_state().has_conflict is False
        assert detector.get_state().conflict_info is None

    async def test_no_resolved_without_conflict(self, fetcher, list_id):
        resolved = MagicMock()
        detector = await _ready(fetcher, list_id, {"on_conflict_resolved": resolved})
        await detector.update_snapshot()
        resolved.assert_not_called()

    async def test_explicit_stamp_skips_fetch(self, fetcher, list_id, stamp_factory):
        detector = await _ready(fetcher, list_id)
        calls = fetcher.calls
        result = await detector.update_snapshot(stamp_factory("9"))
        assert result.success is True
        assert fetcher.calls == calls
        assert detector.baseline.version == "9"

    async def test_rejects_non_stamp(self, fetcher, list_id, stamp_factory):
        detector = await _ready(fetcher, list_id)
        fetcher.stamp = stamp_factory("2")
        await detector.check_for_conflicts()
        calls = fetcher.calls
        result = await detector.update_snapshot({"version": "3"})
        assert result.success is False
        assert result.error_code == ErrorCode.GENERAL_ERROR
        assert "VersionStamp" in result.error
        assert result.has_conflict is True
        assert fetcher.calls == calls
        assert detector.baseline.version == "1"
        assert detector.get_state().has_conflict is True

    async def test_failure_keeps_baseline_and_flag(self, fetcher, list_id, stamp_factory):
        detector = await _ready(fetcher, list_id)
        fetcher.stamp = stamp_factory("2")
        await detector.check_for_conflicts()
        fetcher.error = FetchFailedError("down")

        result = await detector.update_snapshot()

        assert result.success is False
        assert result.has_conflict is True
        assert detector.baseline.version == "1"
        assert detector.get_state().has_conflict is True

    async def test_initializes_an_uninitialized_detector(self, fetcher, list_id):
        detector = ConflictDetector(fetcher, list_id, 42)
        result = await detector.update_snapshot()
        assert result.success is True
        assert detector.status is DetectorStatus.READY


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


class TestPolling:
    async def test_interval_below_minimum_clamped(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id, {"check_interval_ms": 1000})
        assert detector.effective_interval_ms == 5000
        detector.dispose()

    async def test_interval_above_maximum_clamped(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id, {"check_interval_ms": 10_000_000})
        assert detector.effective_interval_ms == 300_000
        detector.dispose()

    def test_effective_interval_none_without_polling(self, fetcher, list_id):
        assert ConflictDetector(fetcher, list_id, 1).effective_interval_ms is None

    async def test_poll_detects_conflict(self, fetcher, list_id, stamp_factory, fast_scheduler):
        detected = MagicMock()
        detector = await _ready(
            fetcher, list_id,
            {"check_interval_ms": 20, "on_conflict_detected": detected},
            scheduler=fast_scheduler,
        )
        fetcher.stamp = stamp_factory("2")
        await asyncio.sleep(0.15)
        detector.dispose()
        detected.assert_called_once()

    async def test_overlapping_ticks_never_overlap_fetches(self, fetcher, list_id, stamp_factory):
        scheduler = PollingScheduler()
        detector = await _ready(
            fetcher, list_id, {"check_interval_ms": 30_000}, scheduler=scheduler,
        )
        fetcher.gate = asyncio.Event()
        fetcher.stamp = stamp_factory("2")

        assert scheduler.trigger() is True
        await asyncio.sleep(0.01)
        assert scheduler.trigger() is False
        manual = asyncio.ensure_future(detector.check_for_conflicts())
        await asyncio.sleep(0.01)
        assert fetcher.in_flight == 1

        fetcher.gate.set()
        result = await manual
        await asyncio.sleep(0.01)
        detector.dispose()
        assert result.has_conflict is True
        assert fetcher.max_in_flight == 1

    async def test_start_polling_requires_interval(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id)
        assert detector.start_polling() is False

    def test_start_polling_without_loop(self, fetcher, list_id):
        detector = ConflictDetector(fetcher, list_id, 1, {"check_interval_ms": 30_000})
        assert detector.start_polling() is False
        assert detector.is_polling_active() is False

    async def test_start_twice(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id, {"check_interval_ms": 30_000})
        assert detector.start_polling() is False
        assert detector.is_polling_active() is True
        detector.dispose()

    async def test_stop_polling(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id, {"check_interval_ms": 30_000})
        detector.stop_polling()
        detector.stop_polling()
        assert detector.is_polling_active() is False
        assert detector.start_polling() is True
        detector.dispose()

    async def test_pause_and_resume(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id, {"check_interval_ms": 30_000})
        detector.pause_polling()
        assert detector.is_polling_active() is False
        detector.resume_polling()
        assert detector.is_polling_active() is True
        detector.dispose()

    async def test_paused_detector_skips_ticks(self, fetcher, list_id, fast_scheduler):
        detector = await _ready(
            fetcher, list_id, {"check_interval_ms": 20}, scheduler=fast_scheduler,
        )
        detector.pause_polling()
        calls = fetcher.calls
        await asyncio.sleep(0.1)
        assert fetcher.calls == calls
        detector.dispose()


# ---------------------------------------------------------------------------
# update_options
# ---------------------------------------------------------------------------


class TestUpdateOptions:
    async def test_merges_changes(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id)
        options = detector.update_options(block_save=True, custom_message="Stop")
        assert options.block_save is True
        assert options.custom_message == "Stop"
        assert options.check_on_save is True
        assert detector.get_options() is options

    async def test_new_interval_reschedules(self, fetcher, list_id):
        scheduler = PollingScheduler()
        detector = await _ready(
            fetcher, list_id, {"check_interval_ms": 30_000}, scheduler=scheduler,
        )
        detector.update_options(check_interval_ms=60_000)
        assert scheduler.interval_ms == 60_000
        assert detector.is_polling_active() is True
        detector.dispose()

    async def test_removing_interval_stops_polling(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id, {"check_interval_ms": 30_000})
        detector.update_options(check_interval_ms=None)
        assert detector.is_polling_active() is False

    async def test_adding_interval_starts_polling(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id)
        detector.update_options(check_interval_ms=30_000)
        assert detector.is_polling_active() is True
        detector.dispose()

    async def test_adding_interval_before_initialize_waits(self, fetcher, list_id):
        detector = ConflictDetector(fetcher, list_id, 42)
        detector.update_options(check_interval_ms=30_000)
        assert detector.is_polling_active() is False
        await detector.initialize()
        assert detector.is_polling_active() is True
        detector.dispose()

    def test_unknown_option(self, fetcher, list_id):
        detector = ConflictDetector(fetcher, list_id, 42)
        with pytest.raises(TypeError):
            detector.update_options(colour="red")

    def test_invalid_value(self, fetcher, list_id):
        detector = ConflictDetector(fetcher, list_id, 42)
        with pytest.raises(ValueError):
            detector.update_options(notification_position="sideways")


# ---------------------------------------------------------------------------
# Disposal and state snapshots
# ---------------------------------------------------------------------------


class TestDispose:
    async def test_idempotent(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id, {"check_interval_ms": 30_000})
        detector.dispose()
        detector.dispose()
        assert detector.is_disposed
        assert detector.status is DetectorStatus.DISPOSED
        assert detector.is_polling_active() is False
        assert detector.baseline is None

    def test_before_initialize(self, fetcher, list_id):
        detector = ConflictDetector(fetcher, list_id, 42)
        detector.dispose()
        assert detector.status is DetectorStatus.DISPOSED

    async def test_operations_after_dispose(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id)
        detector.dispose()
        calls = fetcher.calls
        for op in (
            detector.initialize,
            detector.check_for_conflicts,
            detector.has_changed_since_last_check,
            detector.update_snapshot,
        ):
            result = await op()
            assert result.success is False
            assert result.error_code == ErrorCode.DETECTOR_DISPOSED
        assert fetcher.calls == calls
        assert detector.start_polling() is False

    async def test_during_in_flight_fetch(self, fetcher, list_id, stamp_factory):
        detected = MagicMock()
        detector = await _ready(fetcher, list_id, {"on_conflict_detected": detected})
        fetcher.stamp = stamp_factory("2")
        fetcher.gate = asyncio.Event()
        task = asyncio.ensure_future(detector.check_for_conflicts())
        await asyncio.sleep(0.01)

        detector.dispose()
        fetcher.gate.set()
        result = await task

        assert result.success is False
        assert result.error_code == ErrorCode.DETECTOR_DISPOSED
        detected.assert_not_called()
        assert detector.status is DetectorStatus.DISPOSED
        assert detector.get_state().has_conflict is False

    async def test_clears_listeners(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id)
        detector.events.subscribe_detected(MagicMock())
        detector.dispose()
        assert detector.events.listener_count == 0

    async def test_update_options_after_dispose_is_noop(self, fetcher, list_id):
        detector = await _ready(fetcher, list_id)
        detector.dispose()
        options = detector.update_options(check_interval_ms=30_000)
        assert options.check_interval_ms is None
        assert detector.is_polling_active() is False


class TestStateSnapshot:
    async def test_state_is_immutable_copy(self, fetcher, list_id, stamp_factory):
        detector = await _ready(fetcher, list_id)
        state = detector.get_state()
        with pytest.raises(dataclasses.FrozenInstanceError):
            state.has_conflict = True
        fetcher.stamp = stamp_factory("2")
        await detector.check_for_conflicts()
        assert state.has_conflict is False
        assert detector.state.has_conflict is True
