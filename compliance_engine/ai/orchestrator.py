"""
Contractor Compliance Decision Engine
Decision Orchestrator — promotes a recommendation to a tracked Action.

Chains the analysis bundle through the scoring functions and attaches
the variant detail payload for the chosen action type:

    AnalysisBundle ──► priority ──► timeline ──► success probability
                                     │
    Recommendation ──► details ──────┴──► Action (pending) ──► ActionStore
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from compliance_engine.ai import scoring
from compliance_engine.models.action import (
    Action,
    ActionType,
    EmailDetails,
    EscalationDetails,
    EscalationLevel,
    EscalationUrgency,
    MeetingDetails,
    SupportDetails,
    SupportLevel,
    SupportType,
    TrainingDetails,
    TrainingType,
)
from compliance_engine.models.analysis import (
    ActionPriority,
    AnalysisBundle,
    PatternType,
    PriorityLevel,
    TimelinePlanning,
)
from compliance_engine.models.base import coerce_enum, utcnow
from compliance_engine.models.issues import CriticalIssue, Recommendation, RecommendationRequest, Severity
from compliance_engine.services.action_store import ActionStore

logger = logging.getLogger(__name__)

ESCALATION_LEVELS = {
    PriorityLevel.CRITICAL: EscalationLevel.EXECUTIVE,
    PriorityLevel.HIGH: EscalationLevel.DEPARTMENT_HEAD,
}

ESCALATION_URGENCY = {
    PriorityLevel.CRITICAL: EscalationUrgency.IMMEDIATE,
    PriorityLevel.HIGH: EscalationUrgency.WITHIN_24H,
    PriorityLevel.MEDIUM: EscalationUrgency.WITHIN_48H,
    PriorityLevel.LOW: EscalationUrgency.WITHIN_WEEK,
}

SUPPORT_LEVELS = {
    PriorityLevel.CRITICAL: SupportLevel.ADVANCED,
    PriorityLevel.HIGH: SupportLevel.ADVANCED,
    PriorityLevel.MEDIUM: SupportLevel.INTERMEDIATE,
    PriorityLevel.LOW: SupportLevel.BASIC,
}

_TITLES = {
    ActionType.MEETING: "Compliance meeting",
    ActionType.EMAIL: "Document reminder",
    ActionType.SUPPORT: "Submission support",
    ActionType.ESCALATION: "Escalation",
    ActionType.TRAINING: "Compliance training",
    ActionType.AUDIT: "Document audit",
    ActionType.REVIEW: "Document review",
}


def _unique(values) -> list:
    out = []
    for v in values:
        if v not in out:
            out.append(v)
    return out


def related_issues(recommendation: Recommendation, request: RecommendationRequest) -> list[CriticalIssue]:
    """Issues (red cards first) whose document the recommendation names; all of them if none match."""
    pool = list(request.red_cards or [])
    seen = {card.pair_key for card in pool}
    pool.extend(i for i in request.critical_issues if i.pair_key not in seen)
    matched = [i for i in pool if i.doc_type_name in recommendation.related_documents]
    return matched or pool


class DecisionOrchestrator:
    """Builds scored Actions from recommendations and stores them."""

    def __init__(self, action_store: ActionStore, clock: Callable[[], datetime] = utcnow):
        self.action_store = action_store
        self._clock = clock

    def promote(
        self,
        recommendation: Recommendation,
        request: RecommendationRequest,
        bundle: AnalysisBundle,
        action_type=None,
        assignee: str | None = None,
        now: datetime | None = None,
    ) -> Action:
        """
        Create a pending Action for ``recommendation`` and save it.

        Args:
            recommendation: The recommendation being acted on.
            request: The request it was generated for (issues + context).
            bundle: Analyses for the same request.
            action_type: Override of the recommendation's action type; may
                also be ``audit`` or ``review``.
            assignee: Owner of the action.
            now: Creation instant; defaults to the orchestrator clock.

        Raises:
            ValidationError: ``action_type`` is not a known action type.
        """
        now = now or self._clock()
        action_type = coerce_enum(ActionType, action_type or recommendation.action_type.value, "action_type")
        context = request.project_context

        priority = scoring.calculate_action_priority(bundle.impact, bundle.root_cause, bundle.resources)
        timeline = scoring.plan_timeline(action_type, priority.level, context, now=now)
        success = scoring.estimate_success_probability(action_type, priority.level, bundle.resources, context)

        issues = related_issues(recommendation, request)
        documents = list(recommendation.related_documents) or _unique(i.doc_type_name for i in issues)
        contractors = _unique(i.contractor_name for i in issues) or [request.contractor_name]

        action = Action(
            id=f"action-{uuid.uuid4().hex[:12]}",
            type=action_type,
            title=f"{_TITLES[action_type]}: {request.contractor_name}",
            description=recommendation.message,
            priority=priority,
            root_cause_analysis=bundle.root_cause,
            impact_assessment=bundle.impact,
            resource_optimization=bundle.resources,
            timeline=timeline,
            success_probability=success,
            details=self._build_details(action_type, recommendation, bundle, priority, timeline,
                                        documents, contractors, assignee),
            assignee=assignee,
            attendees=self._attendees(action_type, bundle, contractors, assignee),
            related_documents=documents,
            related_contractors=contractors,
            related_issues=issues,
            ai_confidence=recommendation.ai_confidence,
            ai_generated=recommendation.ai_generated,
            created_at=now,
            updated_at=now,
        )
        self.action_store.save(action)
        logger.info("Promoted recommendation %s to %s action %s (priority %d/%s)",
                    recommendation.id, action_type.value, action.id, priority.score, priority.level.value,
                    extra={"action_id": action.id, "action_type": action_type.value})
        return action

    # ── Helpers ─────────────────────────────────────────────────────────────

    @staticmethod
    def _attendees(action_type, bundle, contractors, assignee) -> list[str]:
        if action_type not in (ActionType.MEETING, ActionType.TRAINING):
            return []
        people = ([assignee] if assignee else []) + list(bundle.resources.recommended_resources)
        return _unique(people + contractors)

    @staticmethod
    def _build_details(
        action_type: ActionType,
        recommendation: Recommendation,
        bundle: AnalysisBundle,
        priority: ActionPriority,
        timeline: TimelinePlanning,
        documents: list[str],
        contractors: list[str],
        assignee: str | None,
    ):
        urgent = priority.level in (PriorityLevel.CRITICAL, PriorityLevel.HIGH)

        if action_type == ActionType.MEETING:
            return MeetingDetails(
                agenda=[f"Review status of {doc}" for doc in documents] + ["Agree corrective actions and owners"],
                duration=90 if urgent else 60,
                virtual=True,
                required_preparation=list(bundle.resources.bottlenecks),
            )

        if action_type == ActionType.EMAIL:
            return EmailDetails(
                template="overdue_documents" if bundle.impact.timeline_impact > 0 else "document_reminder",
                recipients=list(contractors),
                subject=f"Outstanding documents: {', '.join(documents)}" if documents else "Outstanding documents",
                follow_up_required=recommendation.severity != Severity.LOW,
            )

        if action_type == ActionType.SUPPORT:
            return SupportDetails(
                support_type=(SupportType.ADMINISTRATIVE
                              if bundle.root_cause.pattern_type == PatternType.RESOURCE_RELATED
                              else SupportType.TECHNICAL),
                support_level=SUPPORT_LEVELS[priority.level],
                duration=scoring.base_duration_days(action_type, priority.level),
                resources=list(bundle.resources.recommended_resources),
                mentor=assignee,
            )

        if action_type == ActionType.ESCALATION:
            return EscalationDetails(
                escalation_level=ESCALATION_LEVELS.get(priority.level, EscalationLevel.PROJECT_MANAGER),
                reason=bundle.root_cause.primary_cause,
                previous_actions=[],
                expected_resolution=f"Outstanding documents approved by {timeline.end_date.date().isoformat()}",
                urgency=ESCALATION_URGENCY[priority.level],
            )

        if action_type == ActionType.TRAINING:
            return TrainingDetails(
                training_type=(TrainingType.PROCESS
                               if bundle.root_cause.pattern_type in (PatternType.SYSTEMIC, PatternType.RECURRING)
                               else TrainingType.QUALITY),
                target_audience=list(contractors),
                duration=4,
                materials=[f"{doc} submission guide" for doc in documents],
                trainer=assignee,
            )

        return None  # audit / review
