"""
Unit tests for the anomaly detector.
"""

from datetime import datetime, timedelta, timezone

import pytest

from secure_batch.core.models import AnomalyKind, OperationRecord
from secure_batch.security.anomaly import AnomalyDetector
from secure_batch.storage.memory import InMemoryOperationHistory

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def history(principal_id, count, record_count=10, spacing=timedelta(minutes=1)):
    return [
        OperationRecord(
            principal_id=principal_id,
            operation="export",
            record_count=record_count,
            occurred_at=NOW - spacing * i,
        )
        for i in range(count)
    ]


@pytest.fixture
def detector():
    return AnomalyDetector(
        bulk_record_cutoff=1000,
        bulk_operation_threshold=3,
        burst_operation_threshold=10,
    )


class TestAnomalyDetector:
    """Tests for AnomalyDetector.evaluate"""

    def test_quiet_history(self, detector, viewer):
        assert detector.evaluate(viewer, history(viewer.principal_id, 3), NOW) == []

    def test_bulk_pattern(self, detector, viewer):
        ops = history(viewer.principal_id, 4, record_count=5000, spacing=timedelta(hours=2))

        flags = detector.evaluate(viewer, ops, NOW)

        assert [f.kind for f in flags] == [AnomalyKind.BULK_PATTERN]
        assert flags[0].observed == 4
        assert flags[0].threshold == 3

    def test_bulk_threshold_is_exclusive(self, detector, viewer):
        ops = history(viewer.principal_id, 3, record_count=5000, spacing=timedelta(hours=2))
        assert detector.evaluate(viewer, ops, NOW) == []

    def test_bulk_ignores_operations_at_cutoff(self, detector, viewer):
        ops = history(viewer.principal_id, 5, record_count=1000, spacing=timedelta(hours=2))
        assert detector.evaluate(viewer, ops, NOW) == []

    def test_bulk_window_is_24_hours(self, detector, viewer):
        ops = history(viewer.principal_id, 4, record_count=5000, spacing=timedelta(hours=10))
        # Entries at 0h, 10h and 20h ago count; 30h ago does not
        assert detector.evaluate(viewer, ops, NOW) == []

    def test_burst_pattern(self, detector, viewer):
        ops = history(viewer.principal_id, 11, spacing=timedelta(seconds=20))

        flags = detector.evaluate(viewer, ops, NOW)

        assert [f.kind for f in flags] == [AnomalyKind.BURST_PATTERN]
        assert "11 operations in 5 minutes" in flags[0].message

    def test_both_patterns(self, detector, viewer):
        ops = history(viewer.principal_id, 12, record_count=2000, spacing=timedelta(seconds=10))
        kinds = {f.kind for f in detector.evaluate(viewer, ops, NOW)}
        assert kinds == {AnomalyKind.BULK_PATTERN, AnomalyKind.BURST_PATTERN}

    def test_other_principals_ignored(self, detector, viewer):
        ops = history("someone-else", 20, record_count=5000, spacing=timedelta(seconds=5))
        assert detector.evaluate(viewer, ops, NOW) == []

    def test_future_entries_ignored(self, detector, viewer):
        ops = [
            OperationRecord(
                principal_id=viewer.principal_id,
                operation="export",
                occurred_at=NOW + timedelta(seconds=i + 1),
            )
            for i in range(20)
        ]
        assert detector.evaluate(viewer, ops, NOW) == []


class TestInMemoryOperationHistory:
    """Tests for the default operation history"""

    def test_recent_filters_by_principal_and_time(self):
        store = InMemoryOperationHistory()
        for op in reversed(history("user-a", 3, spacing=timedelta(hours=1))):
            store.append(op)
        store.append(history("user-b", 1)[0])

        assert len(store.recent("user-a", NOW - timedelta(minutes=90))) == 2
        assert len(store.recent("user-b", NOW - timedelta(days=1))) == 1

    def test_entries_past_retention_are_dropped(self):
        store = InMemoryOperationHistory(retention=timedelta(hours=24))
        for op in reversed(history("user-a", 5, spacing=timedelta(hours=12))):
            store.append(op)

        assert len(store) == 3
        assert [op.occurred_at for op in store.recent("user-a", NOW - timedelta(days=7))] == [
            NOW - timedelta(hours=24), NOW - timedelta(hours=12), NOW,
        ]

    def test_idle_principals_are_forgotten(self):
        store = InMemoryOperationHistory(retention=timedelta(hours=24))
        store.append(OperationRecord(principal_id="user-a", operation="export", occurred_at=NOW - timedelta(days=2)))

        store.append(OperationRecord(principal_id="user-b", operation="export", occurred_at=NOW))

        assert store.recent("user-a", NOW - timedelta(days=7)) == []
        assert len(store) == 1
