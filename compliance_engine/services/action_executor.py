"""
Action Executor — runs one Action through its type-specific handler.

Each handler either delegates to an enabled integration from the
WorkflowGateway or returns a structured payload describing what would
have been done (``{"type": "meeting_scheduled", ...}``).

``execute_action`` never raises: unsupported types, refusals (terminal
or paused actions, unknown ids, a run lost to a concurrent start) and
handler exceptions all come back as an ActionExecutionResult with
``success=False``. Successful runs move the stored action to
``completed``; handler failures move it to ``failed``.
A refusal leaves the stored action untouched.
"""

import logging
import time
from collections.abc import Callable

from compliance_engine.core.exceptions import ExecutionError, UnsupportedActionTypeError
from compliance_engine.integrations.workflow_gateway import WorkflowGateway
from compliance_engine.models.action import (
    Action,
    ActionExecutionResult,
    ActionStatus,
    ActionType,
    EscalationLevel,
    ExecutionMetrics,
)
from compliance_engine.models.analysis import ImpactAssessment, PriorityLevel
from compliance_engine.models.base import to_iso, utcnow
from compliance_engine.services.action_store import ActionStore

logger = logging.getLogger(__name__)

ESCALATION_RECIPIENTS = {
    EscalationLevel.PROJECT_MANAGER: ["pm@example.com"],
    EscalationLevel.DEPARTMENT_HEAD: ["head@example.com"],
    EscalationLevel.EXECUTIVE: ["ceo@example.com", "coo@example.com"],
    EscalationLevel.CLIENT: ["client@example.com"],
}

_TASK_PRIORITY = {
    PriorityLevel.CRITICAL: "critical",
    PriorityLevel.HIGH: "high",
    PriorityLevel.MEDIUM: "medium",
    PriorityLevel.LOW: "low",
}


def _elapsed_ms(started: float) -> int:
    return max(0, int((time.perf_counter() - started) * 1000))


class ActionExecutor:
    """Dispatches actions to handlers and records the outcome."""

    def __init__(self, action_store: ActionStore, workflow: WorkflowGateway | None = None, tracker=None):
        """
        Args:
            action_store: Where status transitions are recorded.
            workflow: Integration clients; all disabled when omitted.
            tracker: Optional ActionTracker receiving every result.
        """
        self.action_store = action_store
        self.workflow = workflow or WorkflowGateway()
        self.tracker = tracker
        self._handlers: dict[ActionType, Callable[[Action], dict]] = {
            ActionType.MEETING: self._execute_meeting,
            ActionType.EMAIL: self._execute_email,
            ActionType.SUPPORT: self._execute_support,
            ActionType.ESCALATION: self._execute_escalation,
            ActionType.TRAINING: self._execute_training,
            ActionType.AUDIT: self._execute_audit,
            ActionType.REVIEW: self._execute_review,
        }

    # ── Public API ───────────────────────────────────────────────────────────

    def execute_action(self, action: Action) -> ActionExecutionResult:
        started = time.perf_counter()
        executed_at = utcnow()
        log_extra = {"action_id": action.id, "action_type": getattr(action.type, "value", action.type)}

        current = self.action_store.get(action.id) or action
        if current.is_terminal or current.is_paused:
            state = "paused" if current.is_paused else current.status.value
            logger.warning("Execution refused: action %s is %s", action.id, state, extra=log_extra)
            return self._finish(action, executed_at, started, success=False,
                                error=f"Action is {state}", record=False)

        try:
            handler = self._handlers.get(action.type)
            if handler is None:
                raise UnsupportedActionTypeError(action.type)
            if not self.action_store.start(action.id):
                refusal = self._start_refusal(action.id, current.status)
                if refusal:
                    logger.warning("Execution refused: %s (%s)", refusal, action.id, extra=log_extra)
                    return self._finish(action, executed_at, started, success=False,
                                        error=refusal, record=False)
            payload = handler(action)
        except Exception as exc:
            logger.error("Action %s execution failed: %s", action.id, exc, extra=log_extra)
            self.action_store.fail(action.id, str(exc))
            return self._finish(action, executed_at, started, success=False, error=str(exc))

        self.action_store.complete(action.id, payload)
        logger.info("Action %s executed (%s)", action.id, payload.get("type"), extra=log_extra)
        return self._finish(action, executed_at, started, success=True, payload=payload)

    def _start_refusal(self, action_id: str, seen_status: ActionStatus) -> str | None:
        """Why a refused ``start`` blocks the run; None when the action was already running."""
        stored = self.action_store.get(action_id)
        if stored is None:
            return "Action not found"
        # pending when checked but no longer: another run got there first
        if stored.is_paused or stored.status != ActionStatus.IN_PROGRESS or seen_status == ActionStatus.PENDING:
            return f"Action is {'paused' if stored.is_paused else stored.status.value}"
        return None

    # ── Result assembly ──────────────────────────────────────────────────────

    def _finish(self, action, executed_at, started, *, success, payload=None, error=None,
                record=True) -> ActionExecutionResult:
        execution_time = _elapsed_ms(started)
        type_value = getattr(action.type, "value", action.type)
        level = getattr(action.priority.level, "value", action.priority.level)
        if success:
            lessons = [f"Action type {type_value} executed successfully",
                       f"Priority level {level} handled appropriately"]
        else:
            lessons = [f"Action type {type_value} execution failed",
                       "Review execution parameters and resources"]

        result = ActionExecutionResult(
            action_id=action.id,
            success=success,
            executed_at=executed_at,
            execution_time=execution_time,
            result=payload,
            error=error,
            metrics=ExecutionMetrics(
                time_to_execute=execution_time,
                resources_used=[action.assignee or "unassigned"],
                actual_impact=action.impact_assessment if success else ImpactAssessment.degraded(),
                lessons_learned=lessons,
            ),
        )
        if record and self.tracker is not None:
            try:
                self.tracker.record_execution(result)
            except Exception:
                logger.exception("Could not record execution history for %s", action.id)
        return result

    # ── Handlers ─────────────────────────────────────────────────────────────

    def _execute_meeting(self, action: Action) -> dict:
        details = action.details
        if self.workflow.calendar:
            return self.workflow.calendar.schedule_meeting(action)
        return {
            "type": "meeting_scheduled",
            "title": action.title,
            "description": action.description,
            "attendees": list(action.attendees),
            "duration": details.duration,
            "agenda": list(details.agenda),
            "location": details.location,
            "virtual": details.virtual,
            "scheduled_for": to_iso(action.timeline.start_date),
        }

    def _execute_email(self, action: Action) -> dict:
        details = action.details
        if not details.recipients:
            raise ExecutionError("Email action has no recipients")
        if self.workflow.email:
            return self.workflow.email.send_email(action)
        return {
            "type": "email_created",
            "subject": details.subject,
            "recipients": list(details.recipients),
            "cc": list(details.cc),
            "template": details.template,
            "attachments": list(details.attachments),
            "tracking": details.tracking_enabled,
            "follow_up": details.follow_up_required,
            "status": "draft",
        }

    def _execute_support(self, action: Action) -> dict:
        details = action.details
        if self.workflow.tasks:
            return self.workflow.tasks.create_task(
                action, kind="support",
                priority=_TASK_PRIORITY[action.priority.level],
                assignees=[action.assignee] if action.assignee else [],
            )
        return {
            "type": "support_assigned",
            "support_type": details.support_type.value,
            "level": details.support_level.value,
            "duration": details.duration,
            "resources": list(details.resources),
            "mentor": details.mentor,
            "assignee": action.assignee,
            "related_documents": list(action.related_documents),
            "status": "assigned",
        }

    def _execute_escalation(self, action: Action) -> dict:
        details = action.details
        recipients = ESCALATION_RECIPIENTS[details.escalation_level]
        if self.workflow.tasks:
            return self.workflow.tasks.create_task(action, kind="escalation", priority="critical",
                                                   assignees=recipients)
        return {
            "type": "escalation_initiated",
            "level": details.escalation_level.value,
            "reason": details.reason,
            "previous_actions": list(details.previous_actions),
            "expected_resolution": details.expected_resolution,
            "urgency": details.urgency.value,
            "escalated_to": list(recipients),
            "status": "escalated",
        }

    def _execute_training(self, action: Action) -> dict:
        details = action.details
        if self.workflow.calendar:
            return self.workflow.calendar.schedule_training(action)
        return {
            "type": "training_scheduled",
            "training_type": details.training_type.value,
            "target_audience": list(details.target_audience),
            "duration": details.duration,
            "materials": list(details.materials),
            "trainer": details.trainer,
            "assessment_required": details.assessment_required,
            "scheduled_for": to_iso(action.timeline.start_date),
            "status": "scheduled",
        }

    def _document_work(self, action: Action, kind: str, status: str) -> dict:
        return {
            "type": kind,
            "title": action.title,
            "description": action.description,
            "related_documents": list(action.related_documents),
            "related_contractors": list(action.related_contractors),
            "assignee": action.assignee,
            "scheduled_for": to_iso(action.timeline.start_date),
            "status": status,
        }

    def _execute_audit(self, action: Action) -> dict:
        return self._document_work(action, "audit_initiated", "initiated")

    def _execute_review(self, action: Action) -> dict:
        return self._document_work(action, "review_scheduled", "scheduled")
