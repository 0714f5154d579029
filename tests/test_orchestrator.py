"""
Contractor Compliance Decision Engine
Tests — Decision Orchestrator (recommendation → Action).
"""

from datetime import timedelta

import pytest

from compliance_engine.ai.orchestrator import DecisionOrchestrator, related_issues
from compliance_engine.core.exceptions import ValidationError
from compliance_engine.models.action import ActionStatus, ActionType
from compliance_engine.models.issues import Recommendation
from compliance_engine.services.action_store import ActionStore

from conftest import FIXED_NOW, make_bundle, make_issue, make_red_card, make_request


def _rec(action_type="meeting", severity="high", related_documents=None, ai_confidence=82):
    return Recommendation(
        id="rec-1",
        severity=severity,
        message="Hold a compliance review with the contractor",
        action_type=action_type,
        estimated_impact="Clears the backlog",
        time_to_implement="2 days",
        related_documents=related_documents if related_documents is not None else ["Document d1"],
        ai_confidence=ai_confidence,
    )


CRITICAL = dict(project_impact="critical", timeline_impact=9, cost_impact=45,
                allocation_efficiency=100, pattern_type="systemic")


@pytest.fixture
def action_store(kv_store):
    return ActionStore(kv_store)


@pytest.fixture
def orchestrator(action_store):
    return DecisionOrchestrator(action_store, clock=lambda: FIXED_NOW)


# ═════════════════════════════════════════════════════════════════════════════
# PROMOTION
# ═════════════════════════════════════════════════════════════════════════════

class TestPromote:

    def test_meeting(self, orchestrator, action_store):
        action = orchestrator.promote(_rec(), make_request(), make_bundle(), assignee="pm@site")
        assert action.id.startswith("action-")
        assert action.type is ActionType.MEETING
        assert action.status is ActionStatus.PENDING
        assert action.title == "Compliance meeting: Contractor c1"
        assert action.description == "Hold a compliance review with the contractor"
        assert action.details.agenda == ["Review status of Document d1", "Agree corrective actions and owners"]
        assert action.details.duration == 60
        assert action.attendees == ["pm@site", "Document controller", "Contractor c1"]
        assert action.ai_confidence == 82
        assert action.created_at == FIXED_NOW
        assert action_store.get(action.id).to_dict() == action.to_dict()

    def test_scores_attached(self, orchestrator):
        action = orchestrator.promote(_rec(), make_request(), make_bundle())
        assert (action.priority.score, action.priority.level.value) == (44, "medium")
        assert action.timeline.start_date == FIXED_NOW
        assert action.timeline.end_date == FIXED_NOW + timedelta(days=3)
        assert action.success_probability.overall == 67

    def test_urgent_meeting_longer(self, orchestrator):
        action = orchestrator.promote(_rec(), make_request(), make_bundle(**CRITICAL))
        assert action.details.duration == 90

    def test_email(self, orchestrator):
        action = orchestrator.promote(_rec("email", severity="low"), make_request(), make_bundle())
        assert action.title == "Document reminder: Contractor c1"
        assert action.details.recipients == ["Contractor c1"]
        assert action.details.template == "overdue_documents"
        assert action.details.subject == "Outstanding documents: Document d1"
        assert action.details.follow_up_required is False
        assert action.attendees == []

    def test_email_without_timeline_impact(self, orchestrator):
        action = orchestrator.promote(_rec("email"), make_request(), make_bundle(timeline_impact=0))
        assert action.details.template == "document_reminder"

    def test_escalation_critical(self, orchestrator):
        action = orchestrator.promote(_rec("escalation"), make_request(), make_bundle(**CRITICAL))
        assert action.priority.level.value == "critical"
        assert action.details.escalation_level.value == "executive"
        assert action.details.urgency.value == "immediate"
        assert action.details.reason == "Late submissions"

    @pytest.mark.parametrize("bundle_kw,level", [
        ({}, "project_manager"),
        ({"project_impact": "high", "timeline_impact": 10, "cost_impact": 20,
          "allocation_efficiency": 90, "pattern_type": "recurring"}, "department_head"),
    ])
    def test_escalation_levels(self, orchestrator, bundle_kw, level):
        action = orchestrator.promote(_rec("escalation"), make_request(), make_bundle(**bundle_kw))
        assert action.details.escalation_level.value == level

    def test_training(self, orchestrator):
        action = orchestrator.promote(_rec("training"), make_request(), make_bundle(pattern_type="systemic"),
                                      assignee="trainer@site")
        assert action.details.training_type.value == "process"
        assert action.details.trainer == "trainer@site"
        assert action.details.materials == ["Document d1 submission guide"]
        assert action.attendees[0] == "trainer@site"

    def test_support(self, orchestrator):
        action = orchestrator.promote(_rec("support"), make_request(),
                                      make_bundle(pattern_type="resource-related"), assignee="mentor@site")
        assert action.details.support_type.value == "administrative"
        assert action.details.mentor == "mentor@site"
        assert action.details.resources == ["Document controller"]

    @pytest.mark.parametrize("override", ["audit", "review"])
    def test_override_without_details(self, orchestrator, override):
        action = orchestrator.promote(_rec(), make_request(), make_bundle(), action_type=override)
        assert action.type.value == override
        assert action.details is None

    def test_invalid_override(self, orchestrator, action_store):
        with pytest.raises(ValidationError):
            orchestrator.promote(_rec(), make_request(), make_bundle(), action_type="teleport")
        assert action_store.list_actions() == []

    def test_explicit_now(self, orchestrator):
        later = FIXED_NOW + timedelta(days=1)
        action = orchestrator.promote(_rec(), make_request(), make_bundle(), now=later)
        assert action.created_at == later
        assert action.timeline.start_date == later


# ═════════════════════════════════════════════════════════════════════════════
# RELATED ISSUES
# ═════════════════════════════════════════════════════════════════════════════

class TestRelatedIssues:

    def _request(self):
        return make_request([make_issue(doc_type_id="d1"), make_issue(doc_type_id="d2")],
                            red_cards=[make_red_card(doc_type_id="d2")])

    def test_matches_named_documents(self):
        issues = related_issues(_rec(related_documents=["Document d1"]), self._request())
        assert [i.doc_type_id for i in issues] == ["d1"]

    def test_red_cards_first_when_unmatched(self):
        issues = related_issues(_rec(related_documents=[]), self._request())
        assert [(i.doc_type_id, hasattr(i, "warning_level")) for i in issues] == [("d2", True), ("d1", False)]

    def test_documents_derived_from_issues(self, orchestrator):
        action = orchestrator.promote(_rec(related_documents=[]), self._request(), make_bundle())
        assert action.related_documents == ["Document d2", "Document d1"]
        assert action.related_contractors == ["Contractor c1"]
