"""
Contractor Compliance Decision Engine
Tests — Action Tracker analytics, Feedback Service and learning data.
"""

import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from compliance_engine.ai.feedback import ActionTracker, FeedbackService, LearningDataSink
from compliance_engine.core.exceptions import ValidationError
from compliance_engine.models.action import ActionExecutionResult, ActionFeedback
from compliance_engine.services.action_store import LOCK_STRIPES, ActionStore

from conftest import FIXED_NOW, make_action

SOON = FIXED_NOW + timedelta(hours=1)


@pytest.fixture
def action_store(kv_store):
    store = ActionStore(kv_store)
    for action_id in ("m1", "m2", "m3"):
        store.save(make_action(action_id, "meeting", ai_confidence=90))
    store.save(make_action("e1", "email", ai_confidence=90))
    return store


@pytest.fixture
def tracker(kv_store, action_store):
    return ActionTracker(kv_store, action_store, clock=lambda: FIXED_NOW + timedelta(days=100))


def _result(action_id, success=True, execution_time=100, executed_at=SOON):
    return ActionExecutionResult(action_id=action_id, success=success, executed_at=executed_at,
                                 execution_time=execution_time,
                                 error=None if success else "boom")


def _feedback(action_id, rating=4, effectiveness=80, **kw):
    kw.setdefault("created_at", SOON)
    return ActionFeedback(action_id=action_id, rating=rating, effectiveness=effectiveness, **kw)


def _seed(tracker):
    for action_id, t in (("m1", 100), ("m2", 200), ("m3", 300)):
        tracker.record_execution(_result(action_id, execution_time=t))
    tracker.record_execution(_result("e1", success=False, execution_time=400))
    tracker.record_feedback(_feedback("m1", rating=4, effectiveness=80))
    tracker.record_feedback(_feedback("e1", rating=5, effectiveness=30))


# ═════════════════════════════════════════════════════════════════════════════
# ANALYTICS
# ═════════════════════════════════════════════════════════════════════════════

class TestAnalytics:

    def test_empty(self, tracker):
        assert tracker.calculate_analytics().to_dict() == {
            "total_actions": 0, "success_rate": 0, "average_execution_time": 0,
            "most_effective_action_types": [], "common_patterns": [],
            "user_satisfaction": 0, "ai_accuracy": 0,
        }

    def test_aggregates(self, tracker):
        _seed(tracker)
        analytics = tracker.calculate_analytics()
        assert analytics.total_actions == 4
        assert analytics.success_rate == 75
        assert analytics.average_execution_time == 250
        # (4 + 5) / 2 = 4.5
        assert analytics.user_satisfaction == 5
        # three matches at 100, one miss at 100 - |90 - 0| = 10 → 77.5
        assert analytics.ai_accuracy == 78

    def test_most_effective_types(self, tracker):
        _seed(tracker)
        assert tracker.calculate_analytics().most_effective_action_types == [
            {"type": "meeting", "success_rate": 100, "average_impact": 80, "total_executed": 3},
            {"type": "email", "success_rate": 0, "average_impact": 30, "total_executed": 1},
        ]

    def test_high_success_pattern(self, tracker):
        _seed(tracker)
        assert tracker.calculate_analytics().common_patterns == ["meeting actions have high success rate"]

    def test_late_pattern(self, tracker):
        late = FIXED_NOW + timedelta(days=10)
        tracker.record_execution(_result("m1", executed_at=late))
        tracker.record_execution(_result("e1", executed_at=late))
        assert "Actions consistently take longer than estimated" in tracker.calculate_analytics().common_patterns

    def test_low_satisfaction_pattern(self, tracker):
        tracker.record_execution(_result("m1"))
        for _ in range(3):
            tracker.record_feedback(_feedback("m1", rating=1, effectiveness=10))
        assert "Low user satisfaction with certain action types" in tracker.calculate_analytics().common_patterns

    def test_window(self, tracker):
        _seed(tracker)
        tracker.record_execution(_result("m1", executed_at=FIXED_NOW + timedelta(days=5)))
        windowed = tracker.calculate_analytics(start=FIXED_NOW + timedelta(days=1))
        assert windowed.total_actions == 1
        assert windowed.user_satisfaction == 0
        assert tracker.calculate_analytics(end=FIXED_NOW).total_actions == 0

    def test_unknown_action_not_typed(self, tracker):
        tracker.record_execution(_result("deleted"))
        analytics = tracker.calculate_analytics()
        assert analytics.total_actions == 1
        assert analytics.most_effective_action_types == []
        assert analytics.ai_accuracy == 0


# ═════════════════════════════════════════════════════════════════════════════
# HISTORY & RETENTION
# ═════════════════════════════════════════════════════════════════════════════

class TestTrackerHistory:

    def test_history_in_order(self, tracker):
        tracker.record_execution(_result("m1", success=False))
        tracker.record_execution(_result("m1"))
        assert [r.success for r in tracker.get_action_history("m1")] == [False, True]
        assert tracker.get_action_history("m2") == []

    def test_feedback_round_trip(self, tracker):
        tracker.record_feedback(_feedback("m1", comments="useful", suggestions=["shorter agenda"]))
        (fb,) = tracker.get_action_feedback("m1")
        assert fb.comments == "useful"
        assert fb.suggestions == ["shorter agenda"]
        assert fb.created_at == SOON

    def test_cleanup_removes_old_entries(self, tracker):
        _seed(tracker)
        tracker.record_execution(_result("m1", executed_at=FIXED_NOW + timedelta(days=50)))
        assert tracker.cleanup_old_data(days=90) == 6
        assert [r.execution_time for r in tracker.get_action_history("m1")] == [100]
        assert tracker.get_action_history("m2") == []
        assert tracker.get_action_feedback("m1") == []

    def test_cleanup_nothing_to_do(self, tracker):
        _seed(tracker)
        assert tracker.cleanup_old_data(days=365) == 0

    def test_concurrent_appends_keep_every_entry(self, tracker):
        locks = list(tracker._locks)
        barrier = threading.Barrier(4)

        def worker():
            barrier.wait()
            for i in range(50):
                tracker.record_execution(_result(f"x{i % 5}"))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert all(len(tracker.get_action_history(f"x{i}")) == 40 for i in range(5))
        assert tracker._locks == locks
        assert len(locks) == LOCK_STRIPES


# ═════════════════════════════════════════════════════════════════════════════
# FEEDBACK SERVICE & LEARNING DATA
# ═════════════════════════════════════════════════════════════════════════════

class TestFeedbackService:

    def test_unknown_action_rejected(self, action_store, tracker):
        sink = MagicMock()
        service = FeedbackService(action_store, tracker, sink)
        assert service.submit_feedback("ghost", _feedback("ghost")) is False
        assert tracker.get_action_feedback("ghost") == []
        sink.record.assert_not_called()

    def test_recorded_and_forwarded(self, action_store, tracker):
        sink = MagicMock()
        service = FeedbackService(action_store, tracker, sink)
        feedback = _feedback("other")
        assert service.submit_feedback("m1", feedback) is True
        assert feedback.action_id == "m1"
        assert len(tracker.get_action_feedback("m1")) == 1
        sink.record.assert_called_once_with("m1", feedback)

    def test_sink_failure_swallowed(self, action_store, tracker):
        sink = MagicMock()
        sink.record.side_effect = RuntimeError("learning store down")
        service = FeedbackService(action_store, tracker, sink)
        assert service.submit_feedback("m1", _feedback("m1")) is True
        assert len(tracker.get_action_feedback("m1")) == 1

    def test_default_sink(self, action_store, tracker):
        assert FeedbackService(action_store, tracker).submit_feedback("m1", _feedback("m1")) is True

    @pytest.mark.parametrize("rating,effectiveness", [(0, 50), (6, 50), (3, -1), (3, 101)])
    def test_feedback_ranges(self, rating, effectiveness):
        with pytest.raises(ValidationError):
            ActionFeedback(action_id="m1", rating=rating, effectiveness=effectiveness)


class TestLearningData:

    def test_first_sample_poor(self, kv_store, action_store, tracker):
        sink = LearningDataSink(kv_store, action_store)
        FeedbackService(action_store, tracker, sink).submit_feedback(
            "m1", _feedback("m1", rating=2, actual_time_spent=90))
        entry = sink.get_learning_data()["meeting"]
        assert entry["pattern_id"] == "meeting-pattern"
        assert entry["success_rate"] == 0
        assert entry["average_execution_time"] == 90
        assert entry["improvement_suggestions"] == [
            "Improve meeting-pattern action templates and guidance",
            "Optimize meeting-pattern action execution process",
            "Review meeting-pattern action effectiveness and user experience",
        ]

    def test_recomputed_per_sample(self, kv_store, action_store, tracker):
        sink = LearningDataSink(kv_store, action_store)
        service = FeedbackService(action_store, tracker, sink)
        service.submit_feedback("m1", _feedback("m1", rating=2, actual_time_spent=90))
        service.submit_feedback("m2", _feedback("m2", rating=5, actual_time_spent=30))
        entry = sink.get_learning_data()["meeting"]
        assert len(entry["samples"]) == 2
        assert entry["success_rate"] == 50
        assert entry["average_execution_time"] == 60
        assert entry["improvement_suggestions"] == [
            "Improve meeting-pattern action templates and guidance",
            "Review meeting-pattern action effectiveness and user experience",
        ]

    def test_good_feedback_no_suggestions(self, kv_store, action_store, tracker):
        sink = LearningDataSink(kv_store, action_store)
        FeedbackService(action_store, tracker, sink).submit_feedback(
            "e1", _feedback("e1", rating=5, actual_time_spent=10))
        data = sink.get_learning_data()
        assert list(data) == ["email"]
        assert data["email"]["improvement_suggestions"] == []
