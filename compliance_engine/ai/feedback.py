"""
Contractor Compliance Decision Engine
Action Feedback & Tracking.

- ActionTracker: execution history and user feedback per action, plus
  aggregate analytics over a time window and retention cleanup.
- LearningSink: hook receiving every accepted feedback. NullLearningSink
  does nothing; LearningDataSink keeps per-action-type learning data
  (success rate, time spent, improvement suggestions) in the store.
- FeedbackService: validates that the action exists, records feedback,
  forwards it to the sink.

Storage keys:
    action_execution_history:<action_id>   list of ActionExecutionResult dicts
    action_feedbacks:<action_id>           list of ActionFeedback dicts
    ai_learning_data                       {action_type: learning record}
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from fractions import Fraction

from compliance_engine.models.action import (
    Action,
    ActionExecutionResult,
    ActionFeedback,
    ActionType,
)
from compliance_engine.models.base import from_iso, utcnow
from compliance_engine.services.action_store import LOCK_STRIPES, ActionStore
from compliance_engine.services.kv_store import KeyValueStore
from compliance_engine.utils.helpers import round_half_up

logger = logging.getLogger(__name__)

HISTORY_PREFIX = "action_execution_history:"
FEEDBACK_PREFIX = "action_feedbacks:"
LEARNING_KEY = "ai_learning_data"

DEFAULT_RETENTION_DAYS = 90
TOP_ACTION_TYPES = 5
PREDICTED_SUCCESS_CONFIDENCE = 70  # ai_confidence above this predicts success


def _mean(values) -> Fraction:
    values = list(values)
    if not values:
        return Fraction(0)
    return Fraction(sum(Fraction(v) for v in values), len(values))


@dataclass
class ActionAnalytics:
    total_actions: int = 0
    success_rate: int = 0
    average_execution_time: int = 0
    most_effective_action_types: list[dict] = field(default_factory=list)
    common_patterns: list[str] = field(default_factory=list)
    user_satisfaction: int = 0
    ai_accuracy: int = 0

    def to_dict(self) -> dict:
        return {
            "total_actions": self.total_actions,
            "success_rate": self.success_rate,
            "average_execution_time": self.average_execution_time,
            "most_effective_action_types": [dict(t) for t in self.most_effective_action_types],
            "common_patterns": list(self.common_patterns),
            "user_satisfaction": self.user_satisfaction,
            "ai_accuracy": self.ai_accuracy,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Tracker
# ═════════════════════════════════════════════════════════════════════════════

class ActionTracker:
    """Execution history, feedback and analytics over stored actions."""

    def __init__(self, store: KeyValueStore, action_store: ActionStore, clock=utcnow):
        self.store = store
        self.action_store = action_store
        self._clock = clock
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def _append(self, key: str, entry: dict):
        with self._lock_for(key):
            entries = self.store.get(key) or []
            entries.append(entry)
            self.store.set(key, entries)

    # ── Recording ────────────────────────────────────────────────────────────

    def record_execution(self, result: ActionExecutionResult):
        self._append(HISTORY_PREFIX + result.action_id, result.to_dict())
        logger.debug("Execution recorded for %s (success=%s)", result.action_id, result.success,
                     extra={"action_id": result.action_id})

    def record_feedback(self, feedback: ActionFeedback):
        self._append(FEEDBACK_PREFIX + feedback.action_id, feedback.to_dict())
        logger.debug("Feedback recorded for %s (rating=%d)", feedback.action_id, feedback.rating,
                     extra={"action_id": feedback.action_id})

    def get_action_history(self, action_id: str) -> list[ActionExecutionResult]:
        return [ActionExecutionResult.from_dict(d) for d in self.store.get(HISTORY_PREFIX + action_id) or []]

    def get_action_feedback(self, action_id: str) -> list[ActionFeedback]:
        return [ActionFeedback.from_dict(d) for d in self.store.get(FEEDBACK_PREFIX + action_id) or []]

    def _all_results(self) -> list[ActionExecutionResult]:
        results = []
        for entries in self.store.values(HISTORY_PREFIX):
            results.extend(ActionExecutionResult.from_dict(d) for d in entries)
        return results

    def _all_feedback(self) -> list[ActionFeedback]:
        feedback = []
        for entries in self.store.values(FEEDBACK_PREFIX):
            feedback.extend(ActionFeedback.from_dict(d) for d in entries)
        return feedback

    # ── Analytics ────────────────────────────────────────────────────────────

    def calculate_analytics(self, start: datetime | None = None, end: datetime | None = None) -> ActionAnalytics:
        """
        Aggregate execution results (and feedback) inside [start, end].

        Open bounds are unbounded. Percentages and averages are rounded
        half-up to integers.
        """
        def in_window(ts: datetime) -> bool:
            return (start is None or ts >= start) and (end is None or ts <= end)

        results = [r for r in self._all_results() if in_window(r.executed_at)]
        feedback = [f for f in self._all_feedback() if in_window(f.created_at)]
        if not results:
            return ActionAnalytics(user_satisfaction=round_half_up(_mean(f.rating for f in feedback)))

        actions: dict[str, Action | None] = {}
        for r in results:
            if r.action_id not in actions:
                actions[r.action_id] = self.action_store.get(r.action_id)

        successes = sum(1 for r in results if r.success)
        return ActionAnalytics(
            total_actions=len(results),
            success_rate=round_half_up(Fraction(successes * 100, len(results))),
            average_execution_time=round_half_up(_mean(r.execution_time for r in results)),
            most_effective_action_types=self._effective_types(results, feedback, actions),
            common_patterns=self._common_patterns(results, feedback, actions),
            user_satisfaction=round_half_up(_mean(f.rating for f in feedback)),
            ai_accuracy=self._ai_accuracy(results, actions),
        )

    @staticmethod
    def _effective_types(results, feedback, actions) -> list[dict]:
        ranked = []
        for action_type in ActionType:
            typed = [r for r in results
                     if actions.get(r.action_id) and actions[r.action_id].type == action_type]
            if not typed:
                continue
            ids = {r.action_id for r in typed}
            ranked.append({
                "type": action_type.value,
                "success_rate": round_half_up(Fraction(sum(1 for r in typed if r.success) * 100, len(typed))),
                "average_impact": round_half_up(_mean(f.effectiveness for f in feedback if f.action_id in ids)),
                "total_executed": len(typed),
            })
        ranked.sort(key=lambda t: t["average_impact"], reverse=True)
        return ranked[:TOP_ACTION_TYPES]

    @staticmethod
    def _common_patterns(results, feedback, actions) -> list[str]:
        patterns = []

        successes_by_type: dict[str, int] = defaultdict(int)
        for r in results:
            action = actions.get(r.action_id)
            if action and r.success:
                successes_by_type[action.type.value] += 1
        for type_value, count in successes_by_type.items():
            if count >= 3:
                patterns.append(f"{type_value} actions have high success rate")

        late = [r for r in results
                if actions.get(r.action_id) and r.executed_at > actions[r.action_id].timeline.end_date]
        if len(late) >= 2:
            patterns.append("Actions consistently take longer than estimated")

        if sum(1 for f in feedback if f.rating <= 2) >= 3:
            patterns.append("Low user satisfaction with certain action types")
        return patterns

    @staticmethod
    def _ai_accuracy(results, actions) -> int:
        """Agreement between ai_confidence (>70 predicts success) and the outcome."""
        scores = []
        for r in results:
            action = actions.get(r.action_id)
            if action is None:
                continue
            predicted = action.ai_confidence > PREDICTED_SUCCESS_CONFIDENCE
            if predicted == r.success:
                scores.append(100)
            else:
                scores.append(max(0, 100 - abs(action.ai_confidence - (100 if r.success else 0))))
        return round_half_up(_mean(scores))

    # ── Retention ────────────────────────────────────────────────────────────

    def cleanup_old_data(self, days: int = DEFAULT_RETENTION_DAYS) -> int:
        """Drop history and feedback entries older than ``days``; return how many went."""
        cutoff = self._clock() - timedelta(days=days)
        removed = 0
        for prefix, ts_field in ((HISTORY_PREFIX, "executed_at"), (FEEDBACK_PREFIX, "created_at")):
            for key in self.store.keys(prefix):
                with self._lock_for(key):
                    entries = self.store.get(key) or []
                    kept = [e for e in entries if from_iso(e[ts_field]) >= cutoff]
                    removed += len(entries) - len(kept)
                    if not kept:
                        self.store.delete(key)
                    elif len(kept) != len(entries):
                        self.store.set(key, kept)
        logger.info("Tracking cleanup: removed %d entries older than %d days", removed, days)
        return removed


# ═════════════════════════════════════════════════════════════════════════════
# Learning sinks
# ═════════════════════════════════════════════════════════════════════════════

class LearningSink(ABC):
    @abstractmethod
    def record(self, action_id: str, feedback: ActionFeedback) -> None:
        """Receive one accepted feedback."""


class NullLearningSink(LearningSink):
    def record(self, action_id, feedback):
        logger.debug("Learning sink disabled; feedback for %s not forwarded", action_id)


class LearningDataSink(LearningSink):
    """Per-action-type learning record, recomputed on every feedback."""

    SUCCESS_RATING = 4
    LOW_RATING = 2

    def __init__(self, store: KeyValueStore, action_store: ActionStore):
        self.store = store
        self.action_store = action_store
        self._lock = threading.Lock()

    def record(self, action_id, feedback):
        action = self.action_store.get(action_id)
        if action is None:
            logger.warning("Learning data skipped: action %s not found", action_id)
            return
        type_value = action.type.value
        with self._lock:
            data = self.store.get(LEARNING_KEY) or {}
            entry = data.get(type_value) or {"pattern_id": f"{type_value}-pattern", "samples": []}
            entry["samples"].append({
                "action_id": action_id,
                "rating": feedback.rating,
                "effectiveness": feedback.effectiveness,
                "actual_time_spent": feedback.actual_time_spent,
            })
            entry.update(self._summarise(entry["pattern_id"], entry["samples"]))
            data[type_value] = entry
            self.store.set(LEARNING_KEY, data)
        logger.info("Learning data updated for %s (%d samples)", type_value, len(entry["samples"]))

    @classmethod
    def _summarise(cls, pattern_id: str, samples: list[dict]) -> dict:
        count = len(samples)
        success_rate = round_half_up(Fraction(sum(1 for s in samples if s["rating"] >= cls.SUCCESS_RATING) * 100, count))
        average_time = round_half_up(_mean(s["actual_time_spent"] for s in samples))
        low_share = Fraction(sum(1 for s in samples if s["rating"] <= cls.LOW_RATING), count)

        suggestions = []
        if success_rate < 60:
            suggestions.append(f"Improve {pattern_id} action templates and guidance")
        if average_time > 60:
            suggestions.append(f"Optimize {pattern_id} action execution process")
        if low_share > Fraction(3, 10):
            suggestions.append(f"Review {pattern_id} action effectiveness and user experience")

        return {
            "success_rate": success_rate,
            "average_execution_time": average_time,
            "improvement_suggestions": suggestions,
        }

    def get_learning_data(self) -> dict:
        return self.store.get(LEARNING_KEY) or {}


# ═════════════════════════════════════════════════════════════════════════════
# Service
# ═════════════════════════════════════════════════════════════════════════════

class FeedbackService:
    def __init__(self, action_store: ActionStore, tracker: ActionTracker, sink: LearningSink | None = None):
        self.action_store = action_store
        self.tracker = tracker
        self.sink = sink or NullLearningSink()

    def submit_feedback(self, action_id: str, feedback: ActionFeedback) -> bool:
        """Record feedback for an existing action. Unknown action → False."""
        if self.action_store.get(action_id) is None:
            logger.warning("Feedback rejected: action %s not found", action_id, extra={"action_id": action_id})
            return False
        if feedback.action_id != action_id:
            feedback.action_id = action_id
        self.tracker.record_feedback(feedback)
        try:
            self.sink.record(action_id, feedback)
        except Exception:
            logger.exception("Learning sink failed for %s", action_id)
        return True
