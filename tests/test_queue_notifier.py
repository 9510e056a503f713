"""
Tests for the notification dispatcher and pass runner.

Store and transport are mocks; failures are injected as results or
side effects and checked as tagged DispatchResults.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest

import queue_notifier
from app.core.feature_flags import FeatureFlags
from app.services.notifications.service import (
    NotificationDecision,
    NotificationKind,
    NotificationPolicy,
)
from app.services.queue.exceptions import SnapshotReadError
from app.services.queue.models import ANY_PROVIDER, Location
from queue_notifier import (
    DispatchOutcome,
    DispatchResult,
    PassReport,
    dispatch_decisions,
    notify_and_mark,
    run_iteration,
    run_notification_pass,
)
from sms_service import SmsSendResult

ENABLED = FeatureFlags(notifier_enabled=True, sms_sending_enabled=True)


def _decision(entry, kind=NotificationKind.ANY_PROVIDER_ALMOST_UP):
    return NotificationDecision(
        entry=entry,
        kind=kind,
        message="You're almost up at Fade Lab – get ready!",
        bucket=ANY_PROVIDER,
        bucket_index=0,
    )


class TestNotifyAndMark:
    """Tests for notify_and_mark function"""

    @pytest.mark.asyncio
    async def test_send_then_mark(self, mock_store, mock_transport, make_entry):
        entry = make_entry("e1", phone_number="+15551234567")
        calls = MagicMock()
        calls.attach_mock(mock_transport.send, "send")
        calls.attach_mock(mock_store.mark_notified, "mark_notified")

        result = await notify_and_mark(mock_store, mock_transport, _decision(entry))

        assert result.outcome is DispatchOutcome.NOTIFIED
        assert result.ok is True
        assert [c[0] for c in calls.mock_calls] == ["send", "mark_notified"]
        mock_transport.send.assert_awaited_once_with("+15551234567", "You're almost up at Fade Lab – get ready!")
        mock_store.mark_notified.assert_awaited_once_with("e1")

    @pytest.mark.asyncio
    async def test_transport_failure_skips_mark(self, mock_store, mock_transport, make_entry):
        mock_transport.send.return_value = SmsSendResult(ok=False, error="Client error: status=400")

        result = await notify_and_mark(mock_store, mock_transport, _decision(make_entry("e1")))

        assert result.outcome is DispatchOutcome.TRANSPORT_FAILED
        assert result.reason == "Client error: status=400"
        mock_store.mark_notified.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transport_exception_is_a_result(self, mock_store, mock_transport, make_entry):
        mock_transport.send.side_effect = RuntimeError("adapter bug")

        result = await notify_and_mark(mock_store, mock_transport, _decision(make_entry("e1")))

        assert result.outcome is DispatchOutcome.TRANSPORT_FAILED
        mock_store.mark_notified.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_mark_failure_after_send(self, mock_store, mock_transport, make_entry):
        mock_store.mark_notified.side_effect = asyncpg.PostgresError("write failed")

        result = await notify_and_mark(mock_store, mock_transport, _decision(make_entry("e1")))

        assert result.outcome is DispatchOutcome.MARK_FAILED
        assert result.reason.startswith("infra_error")
        mock_transport.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_row_updated(self, mock_store, mock_transport, make_entry):
        mock_store.mark_notified.return_value = False

        result = await notify_and_mark(mock_store, mock_transport, _decision(make_entry("e1")))

        assert result.outcome is DispatchOutcome.ALREADY_MARKED
        assert result.ok is False

    @pytest.mark.asyncio
    async def test_sending_disabled(self, mock_store, mock_transport, make_entry):
        result = await notify_and_mark(
            mock_store, mock_transport, _decision(make_entry("e1")), sending_enabled=False
        )

        assert result.outcome is DispatchOutcome.SKIPPED_DISABLED
        mock_transport.send.assert_not_awaited()
        mock_store.mark_notified.assert_not_awaited()


class TestDispatchDecisions:
    """Tests for dispatch_decisions function"""

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_batch(self, mock_store, mock_transport, make_entry):
        entries = [make_entry("e1"), make_entry("e2"), make_entry("e3")]
        mock_transport.send.side_effect = [
            SmsSendResult(ok=True, message_sid="SM1"),
            SmsSendResult(ok=False, error="unreachable"),
            SmsSendResult(ok=True, message_sid="SM3"),
        ]
        mock_store.mark_notified.side_effect = [True, OSError("connection reset")]

        results = await dispatch_decisions(mock_store, mock_transport, [_decision(e) for e in entries])

        assert [r.entry_id for r in results] == ["e1", "e2", "e3"]
        assert [r.outcome for r in results] == [
            DispatchOutcome.NOTIFIED,
            DispatchOutcome.TRANSPORT_FAILED,
            DispatchOutcome.MARK_FAILED,
        ]
        assert mock_transport.send.await_count == 3
        assert [c.args[0] for c in mock_store.mark_notified.await_args_list] == ["e1", "e3"]

    @pytest.mark.asyncio
    async def test_empty_batch(self, mock_store, mock_transport):
        assert await dispatch_decisions(mock_store, mock_transport, []) == []
        mock_transport.send.assert_not_awaited()


class TestRunNotificationPass:
    """Tests for run_notification_pass function"""

    @pytest.mark.asyncio
    async def test_full_pass(self, mock_store, mock_transport, make_entry, active_barbers):
        mock_store.fetch_waiting_entries.return_value = [
            make_entry("x1"),
            make_entry("r1", provider="barber-1"),
            make_entry("x2"),
            make_entry("r2", provider="barber-1"),
        ]
        mock_store.fetch_active_providers.return_value = active_barbers
        mock_store.fetch_locations.return_value = [Location(id="shop-1")]

        report = await run_notification_pass(
            mock_store, mock_transport, policy=NotificationPolicy(), include_notified=True, flags=ENABLED,
        )

        assert report.locations_evaluated == 1
        assert [d.entry.id for d in report.decisions] == ["x1", "r1"]
        assert report.count(DispatchOutcome.NOTIFIED) == 2
        assert report.outcome == "success"
        sent_messages = [c.args[1] for c in mock_transport.send.await_args_list]
        assert sent_messages == [
            "You're almost up at Fade Lab – get ready!",
            "You're next in line for your barber at Fade Lab!",
        ]

    @pytest.mark.asyncio
    async def test_snapshot_failure_sends_nothing(self, mock_store, mock_transport):
        mock_store.fetch_active_providers = AsyncMock(side_effect=asyncpg.PostgresError("down"))

        with pytest.raises(SnapshotReadError):
            await run_notification_pass(
                mock_store, mock_transport, policy=NotificationPolicy(), include_notified=True, flags=ENABLED,
            )

        mock_transport.send.assert_not_awaited()
        mock_store.mark_notified.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_anomaly_degrades_pass(self, mock_store, mock_transport, make_entry):
        mock_store.fetch_waiting_entries.return_value = [make_entry("lost", location="gone")]
        mock_store.fetch_locations.return_value = [Location(id="shop-1")]

        report = await run_notification_pass(
            mock_store, mock_transport, policy=NotificationPolicy(), include_notified=True, flags=ENABLED,
        )

        assert report.decisions == []
        assert report.outcome == "degraded"
        mock_transport.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sms_kill_switch(self, mock_store, mock_transport, make_entry):
        mock_store.fetch_waiting_entries.return_value = [make_entry("x1")]
        mock_store.fetch_locations.return_value = [Location(id="shop-1")]
        flags = FeatureFlags(notifier_enabled=True, sms_sending_enabled=False)

        report = await run_notification_pass(
            mock_store, mock_transport, policy=NotificationPolicy(), include_notified=True, flags=flags,
        )

        assert [r.outcome for r in report.results] == [DispatchOutcome.SKIPPED_DISABLED]
        mock_transport.send.assert_not_awaited()


class TestPassReport:

    def test_failures_degrade(self):
        report = PassReport(results=[
            DispatchResult("e1", "shop-1", NotificationKind.ANY_PROVIDER_ALMOST_UP, DispatchOutcome.NOTIFIED),
            DispatchResult("e2", "shop-1", NotificationKind.ANY_PROVIDER_ALMOST_UP, DispatchOutcome.MARK_FAILED),
        ])

        assert report.outcome == "degraded"
        assert report.outcome_counts == {"notified": 1, "mark_failed": 1}

    def test_empty_report_is_success(self):
        assert PassReport().outcome == "success"


class TestRunIteration:
    """Tests for run_iteration function"""

    @pytest.mark.asyncio
    async def test_read_failure_marks_iteration_failed(self, mock_store, mock_transport):
        mock_store.fetch_waiting_entries = AsyncMock(side_effect=asyncpg.PostgresError("down"))

        with patch.object(queue_notifier, "get_feature_flags", return_value=ENABLED):
            outcome = await run_iteration(mock_store, mock_transport)

        assert outcome == "failed"

    @pytest.mark.asyncio
    async def test_disabled_notifier_skips(self, mock_store, mock_transport):
        flags = FeatureFlags(notifier_enabled=False, sms_sending_enabled=True)

        with patch.object(queue_notifier, "get_feature_flags", return_value=flags):
            outcome = await run_iteration(mock_store, mock_transport)

        assert outcome == "skipped"
        mock_store.fetch_waiting_entries.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_successful_iteration(self, mock_store, mock_transport, make_entry):
        mock_store.fetch_waiting_entries.return_value = [make_entry("x1")]
        mock_store.fetch_locations.return_value = [Location(id="shop-1")]

        with patch.object(queue_notifier, "get_feature_flags", return_value=ENABLED):
            outcome = await run_iteration(mock_store, mock_transport)

        assert outcome == "success"
        mock_store.mark_notified.assert_awaited_once_with("x1")

    @pytest.mark.asyncio
    async def test_slow_transport_completes_whole_batch(self, mock_store, make_entry, active_barbers):
        mock_store.fetch_waiting_entries.return_value = [
            make_entry("r1", provider="barber-1"),
            make_entry("r2", provider="barber-2"),
            make_entry("r3", provider="barber-3"),
        ]
        mock_store.fetch_active_providers.return_value = active_barbers
        mock_store.fetch_locations.return_value = [Location(id="shop-1")]

        async def slow_send(to, body):
            await asyncio.sleep(0.2)
            return SmsSendResult(ok=True, message_sid="SM1")

        transport = MagicMock()
        transport.send = AsyncMock(side_effect=slow_send)

        with patch.object(queue_notifier, "get_feature_flags", return_value=ENABLED):
            outcome = await run_iteration(mock_store, transport)

        assert outcome == "success"
        assert transport.send.await_count == 3
        assert [c.args[0] for c in mock_store.mark_notified.await_args_list] == ["r1", "r2", "r3"]
        assert not hasattr(queue_notifier.config, "NOTIFIER_ITERATION_TIMEOUT")
