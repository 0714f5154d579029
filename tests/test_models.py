"""
Contractor Compliance Decision Engine
Tests — domain models.

Covers:
    - Issue / context validation (ranges, enum coercion)
    - Recommendation serialisation
    - Action tagged-union enforcement and round trip
    - Batch result counters, feedback ranges
"""

from datetime import timedelta

import pytest

from compliance_engine.core.exceptions import ValidationError
from compliance_engine.models.action import (
    Action,
    ActionExecutionResult,
    ActionFeedback,
    ActionStatus,
    BatchExecutionRequest,
    BatchExecutionResult,
    EscalationDetails,
    ExecutionMode,
    FailureMode,
    MeetingDetails,
)
from compliance_engine.models.issues import (
    CriticalIssue,
    DeadlinePressure,
    ProjectContext,
    Recommendation,
    RecommendationRequest,
    RedCard,
    WarningLevel,
)

from conftest import FIXED_NOW, make_action, make_issue, make_red_card


# ═════════════════════════════════════════════════════════════════════════════
# ISSUES & CONTEXT
# ═════════════════════════════════════════════════════════════════════════════

class TestIssueModels:

    def test_negative_overdue_days_rejected(self):
        with pytest.raises(ValidationError):
            make_issue(overdue_days=-1)

    def test_pair_key(self):
        assert make_issue(contractor_id="c7", doc_type_id="d3").pair_key == "c7-d3"

    def test_red_card_risk_score_range(self):
        with pytest.raises(ValidationError):
            make_red_card(risk_score=120)

    def test_red_card_coerces_warning_level(self):
        card = make_red_card(warning_level=2)
        assert card.warning_level is WarningLevel.URGENT
        assert card.to_dict()["warning_level"] == 2

    def test_red_card_unknown_warning_level(self):
        with pytest.raises(ValidationError) as exc:
            make_red_card(warning_level=4)
        assert "warning_level" in exc.value.details

    def test_context_defaults(self):
        ctx = ProjectContext.from_dict(None)
        assert ctx.deadline_pressure is DeadlinePressure.MEDIUM
        assert ctx.to_dict() == {
            "project_phase": "execution",
            "deadline_pressure": "medium",
            "stakeholder_visibility": "internal",
        }

    def test_context_invalid_phase(self):
        with pytest.raises(ValidationError):
            ProjectContext.from_dict({"project_phase": "demolition"})

    def test_request_from_dict_keeps_red_cards_none(self):
        req = RecommendationRequest.from_dict({
            "contractor_id": 42,
            "contractor_name": "ACME",
            "critical_issues": [{"contractor_id": "42", "doc_type_id": "d1", "overdue_days": None}],
        })
        assert req.contractor_id == "42"
        assert req.red_cards is None
        assert isinstance(req.critical_issues[0], CriticalIssue)
        assert req.critical_issues[0].overdue_days == 0

    def test_request_from_dict_builds_red_cards(self):
        req = RecommendationRequest.from_dict({
            "contractor_id": "c1",
            "red_cards": [make_red_card(warning_level=3, risk_score=85).to_dict()],
        })
        assert isinstance(req.red_cards[0], RedCard)
        assert req.red_cards[0].risk_score == 85


# ═════════════════════════════════════════════════════════════════════════════
# RECOMMENDATION
# ═════════════════════════════════════════════════════════════════════════════

class TestRecommendation:

    def _rec(self, **kw):
        data = {
            "id": "r1", "severity": "high", "message": "Escalate", "action_type": "escalation",
            "estimated_impact": "x", "time_to_implement": "1 day",
        }
        data.update(kw)
        return Recommendation.from_dict(data)

    def test_optional_fields_omitted(self):
        d = self._rec().to_dict()
        assert "warning_level" not in d
        assert "risk_score" not in d
        assert d["ai_confidence"] == 75

    def test_optional_fields_present(self):
        d = self._rec(warning_level=3, risk_score=85).to_dict()
        assert d["warning_level"] == 3
        assert d["risk_score"] == 85

    def test_invalid_action_type(self):
        with pytest.raises(ValidationError):
            self._rec(action_type="audit")

    def test_confidence_out_of_range(self):
        with pytest.raises(ValidationError):
            self._rec(ai_confidence=101)


# ═════════════════════════════════════════════════════════════════════════════
# ACTION
# ═════════════════════════════════════════════════════════════════════════════

class TestAction:

    def test_meeting_requires_meeting_details(self):
        with pytest.raises(ValidationError):
            make_action(action_type="meeting", details=EscalationDetails())

    def test_audit_rejects_details(self):
        with pytest.raises(ValidationError):
            make_action(action_type="audit", details=MeetingDetails())

    def test_audit_without_details(self):
        action = make_action(action_type="audit")
        assert action.details is None
        assert action.to_dict()["details"] is None

    def test_round_trip_keeps_variant(self):
        action = make_action(action_type="escalation",
                             details=EscalationDetails(escalation_level="executive", urgency="immediate"),
                             related_issues=[make_red_card()])
        restored = Action.from_dict(action.to_dict())
        assert isinstance(restored.details, EscalationDetails)
        assert restored.details.escalation_level.value == "executive"
        assert isinstance(restored.related_issues[0], RedCard)
        assert restored.created_at == FIXED_NOW
        assert restored.to_dict() == action.to_dict()

    def test_paused_flag(self):
        action = make_action(status="in_progress", pause_reason="waiting on client")
        assert action.is_paused
        assert not action.is_terminal

    def test_terminal_statuses(self):
        for status in ("completed", "failed", "cancelled"):
            assert make_action(status=status).is_terminal
        assert make_action(status="pending").status is ActionStatus.PENDING

    def test_priority_serialises_factors(self):
        d = make_action().to_dict()["priority"]
        assert set(d["factors"]) == {"urgency", "impact", "effort", "risk"}
        assert d["level"] == "medium"


# ═════════════════════════════════════════════════════════════════════════════
# EXECUTION & FEEDBACK
# ═════════════════════════════════════════════════════════════════════════════

class TestExecutionModels:

    def test_batch_counters(self):
        results = [
            ActionExecutionResult(action_id="a", success=True, executed_at=FIXED_NOW, execution_time=5),
            ActionExecutionResult(action_id="b", success=False, executed_at=FIXED_NOW, execution_time=0,
                                  error="boom"),
        ]
        batch = BatchExecutionResult(batch_id="batch-1", results=results, start_time=FIXED_NOW,
                                     end_time=FIXED_NOW + timedelta(milliseconds=250))
        d = batch.to_dict()
        assert d["total_actions"] == 2
        assert d["successful"] == 1
        assert d["failed"] == 1
        assert d["total_duration"] == 250

    def test_batch_request_defaults(self):
        req = BatchExecutionRequest.from_dict({"action_ids": [1, "b"]})
        assert req.action_ids == ["1", "b"]
        assert req.execution_mode is ExecutionMode.SEQUENTIAL
        assert req.failure_mode is FailureMode.CONTINUE_ON_ERROR

    def test_batch_request_invalid_mode(self):
        with pytest.raises(ValidationError):
            BatchExecutionRequest.from_dict({"action_ids": ["a"], "execution_mode": "random"})

    def test_feedback_rating_range(self):
        with pytest.raises(ValidationError):
            ActionFeedback(action_id="a", rating=6, effectiveness=50)
        with pytest.raises(ValidationError):
            ActionFeedback.from_dict({"action_id": "a", "effectiveness": 50})

    def test_feedback_round_trip(self):
        fb = ActionFeedback(action_id="a", rating=4, effectiveness=80, suggestions=["shorter"],
                            created_at=FIXED_NOW)
        assert ActionFeedback.from_dict(fb.to_dict()) == fb
