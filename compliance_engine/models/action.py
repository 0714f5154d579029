"""
Action records and execution / feedback objects.

An Action is a tagged union over ``ActionType``: meeting, email, support,
escalation and training actions carry exactly one matching detail
payload; audit and review actions carry none. The pairing is checked at
construction, so a stored action can always be dispatched on its type.

Status lifecycle (enforced by ActionStore):

    pending ──► in_progress ──► completed | failed | cancelled
                  │  ▲
          pause   ▼  │ resume   (pause_reason set / cleared)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from compliance_engine.core.exceptions import ValidationError
from compliance_engine.models.analysis import (
    ActionPriority,
    ImpactAssessment,
    ResourceOptimization,
    RootCauseAnalysis,
    SuccessProbability,
    TimelinePlanning,
)
from compliance_engine.models.base import check_range, coerce_enum, from_iso, to_iso, utcnow
from compliance_engine.models.issues import CriticalIssue, RedCard


# ═════════════════════════════════════════════════════════════════════════════
# Enums
# ═════════════════════════════════════════════════════════════════════════════

class ActionType(str, Enum):
    MEETING = "meeting"
    EMAIL = "email"
    SUPPORT = "support"
    ESCALATION = "escalation"
    TRAINING = "training"
    AUDIT = "audit"
    REVIEW = "review"


class ActionStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({ActionStatus.COMPLETED, ActionStatus.FAILED, ActionStatus.CANCELLED})


class SupportType(str, Enum):
    TECHNICAL = "technical"
    ADMINISTRATIVE = "administrative"
    MENTORING = "mentoring"
    TRAINING = "training"


class SupportLevel(str, Enum):
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class EscalationLevel(str, Enum):
    PROJECT_MANAGER = "project_manager"
    DEPARTMENT_HEAD = "department_head"
    EXECUTIVE = "executive"
    CLIENT = "client"


class EscalationUrgency(str, Enum):
    IMMEDIATE = "immediate"
    WITHIN_24H = "within_24h"
    WITHIN_48H = "within_48h"
    WITHIN_WEEK = "within_week"


class TrainingType(str, Enum):
    TECHNICAL = "technical"
    PROCESS = "process"
    SAFETY = "safety"
    QUALITY = "quality"


class ExecutionMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class FailureMode(str, Enum):
    STOP_ON_FIRST = "stop_on_first"
    CONTINUE_ON_ERROR = "continue_on_error"


# ═════════════════════════════════════════════════════════════════════════════
# Variant detail payloads
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class MeetingDetails:
    agenda: list[str] = field(default_factory=list)
    duration: int = 60  # minutes
    location: str = ""
    virtual: bool = True
    recurring: bool = False
    required_preparation: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "agenda": list(self.agenda),
            "duration": self.duration,
            "location": self.location,
            "virtual": self.virtual,
            "recurring": self.recurring,
            "required_preparation": list(self.required_preparation),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MeetingDetails":
        return cls(
            agenda=list(data.get("agenda") or []),
            duration=int(data.get("duration", 60)),
            location=data.get("location", ""),
            virtual=bool(data.get("virtual", True)),
            recurring=bool(data.get("recurring", False)),
            required_preparation=list(data.get("required_preparation") or []),
        )


@dataclass
class EmailDetails:
    template: str = "document_reminder"
    recipients: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    subject: str = ""
    attachments: list[str] = field(default_factory=list)
    tracking_enabled: bool = True
    follow_up_required: bool = False

    def to_dict(self) -> dict:
        return {
            "template": self.template,
            "recipients": list(self.recipients),
            "cc": list(self.cc),
            "subject": self.subject,
            "attachments": list(self.attachments),
            "tracking_enabled": self.tracking_enabled,
            "follow_up_required": self.follow_up_required,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EmailDetails":
        return cls(
            template=data.get("template", "document_reminder"),
            recipients=list(data.get("recipients") or []),
            cc=list(data.get("cc") or []),
            subject=data.get("subject", ""),
            attachments=list(data.get("attachments") or []),
            tracking_enabled=bool(data.get("tracking_enabled", True)),
            follow_up_required=bool(data.get("follow_up_required", False)),
        )


@dataclass
class SupportDetails:
    support_type: SupportType = SupportType.ADMINISTRATIVE
    support_level: SupportLevel = SupportLevel.BASIC
    duration: int = 5  # days
    resources: list[str] = field(default_factory=list)
    mentor: str | None = None

    def __post_init__(self):
        self.support_type = coerce_enum(SupportType, self.support_type, "support_type")
        self.support_level = coerce_enum(SupportLevel, self.support_level, "support_level")

    def to_dict(self) -> dict:
        return {
            "support_type": self.support_type.value,
            "support_level": self.support_level.value,
            "duration": self.duration,
            "resources": list(self.resources),
            "mentor": self.mentor,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SupportDetails":
        return cls(
            support_type=data.get("support_type", SupportType.ADMINISTRATIVE),
            support_level=data.get("support_level", SupportLevel.BASIC),
            duration=int(data.get("duration", 5)),
            resources=list(data.get("resources") or []),
            mentor=data.get("mentor"),
        )


@dataclass
class EscalationDetails:
    escalation_level: EscalationLevel = EscalationLevel.PROJECT_MANAGER
    reason: str = ""
    previous_actions: list[str] = field(default_factory=list)
    expected_resolution: str = ""
    urgency: EscalationUrgency = EscalationUrgency.WITHIN_48H

    def __post_init__(self):
        self.escalation_level = coerce_enum(EscalationLevel, self.escalation_level, "escalation_level")
        self.urgency = coerce_enum(EscalationUrgency, self.urgency, "urgency")

    def to_dict(self) -> dict:
        return {
            "escalation_level": self.escalation_level.value,
            "reason": self.reason,
            "previous_actions": list(self.previous_actions),
            "expected_resolution": self.expected_resolution,
            "urgency": self.urgency.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EscalationDetails":
        return cls(
            escalation_level=data.get("escalation_level", EscalationLevel.PROJECT_MANAGER),
            reason=data.get("reason", ""),
            previous_actions=list(data.get("previous_actions") or []),
            expected_resolution=data.get("expected_resolution", ""),
            urgency=data.get("urgency", EscalationUrgency.WITHIN_48H),
        )


@dataclass
class TrainingDetails:
    training_type: TrainingType = TrainingType.PROCESS
    target_audience: list[str] = field(default_factory=list)
    duration: int = 4  # hours
    materials: list[str] = field(default_factory=list)
    trainer: str | None = None
    assessment_required: bool = True

    def __post_init__(self):
        self.training_type = coerce_enum(TrainingType, self.training_type, "training_type")

    def to_dict(self) -> dict:
        return {
            "training_type": self.training_type.value,
            "target_audience": list(self.target_audience),
            "duration": self.duration,
            "materials": list(self.materials),
            "trainer": self.trainer,
            "assessment_required": self.assessment_required,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrainingDetails":
        return cls(
            training_type=data.get("training_type", TrainingType.PROCESS),
            target_audience=list(data.get("target_audience") or []),
            duration=int(data.get("duration", 4)),
            materials=list(data.get("materials") or []),
            trainer=data.get("trainer"),
            assessment_required=bool(data.get("assessment_required", True)),
        )


ActionDetails = MeetingDetails | EmailDetails | SupportDetails | EscalationDetails | TrainingDetails

# Which payload class each action type requires (None: no payload allowed)
DETAIL_CLASSES: dict[ActionType, type | None] = {
    ActionType.MEETING: MeetingDetails,
    ActionType.EMAIL: EmailDetails,
    ActionType.SUPPORT: SupportDetails,
    ActionType.ESCALATION: EscalationDetails,
    ActionType.TRAINING: TrainingDetails,
    ActionType.AUDIT: None,
    ActionType.REVIEW: None,
}


def _issue_from_dict(data: dict) -> CriticalIssue:
    if "warning_level" in data:
        return RedCard.from_dict(data)
    return CriticalIssue.from_dict(data)


# ═════════════════════════════════════════════════════════════════════════════
# Action
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class Action:
    id: str
    type: ActionType
    title: str
    description: str
    priority: ActionPriority
    root_cause_analysis: RootCauseAnalysis
    impact_assessment: ImpactAssessment
    resource_optimization: ResourceOptimization
    timeline: TimelinePlanning
    success_probability: SuccessProbability
    details: ActionDetails | None = None
    status: ActionStatus = ActionStatus.PENDING
    assignee: str | None = None
    attendees: list[str] = field(default_factory=list)
    related_documents: list[str] = field(default_factory=list)
    related_contractors: list[str] = field(default_factory=list)
    related_issues: list[CriticalIssue] = field(default_factory=list)
    ai_confidence: int = 0
    ai_generated: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    executed_at: datetime | None = None
    completed_at: datetime | None = None
    pause_reason: str | None = None
    cancel_reason: str | None = None
    result: Any = None
    error: str | None = None

    def __post_init__(self):
        self.type = coerce_enum(ActionType, self.type, "type")
        self.status = coerce_enum(ActionStatus, self.status, "status")
        expected = DETAIL_CLASSES[self.type]
        if expected is None:
            if self.details is not None:
                raise ValidationError(
                    f"{self.type.value} actions carry no detail payload",
                    details={"details": type(self.details).__name__},
                )
        elif not isinstance(self.details, expected):
            raise ValidationError(
                f"{self.type.value} actions require {expected.__name__}",
                details={"details": type(self.details).__name__ if self.details else None},
            )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_paused(self) -> bool:
        return self.status == ActionStatus.IN_PROGRESS and self.pause_reason is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.to_dict(),
            "status": self.status.value,
            "root_cause_analysis": self.root_cause_analysis.to_dict(),
            "impact_assessment": self.impact_assessment.to_dict(),
            "resource_optimization": self.resource_optimization.to_dict(),
            "timeline": self.timeline.to_dict(),
            "success_probability": self.success_probability.to_dict(),
            "details": self.details.to_dict() if self.details is not None else None,
            "assignee": self.assignee,
            "attendees": list(self.attendees),
            "related_documents": list(self.related_documents),
            "related_contractors": list(self.related_contractors),
            "related_issues": [i.to_dict() for i in self.related_issues],
            "ai_confidence": self.ai_confidence,
            "ai_generated": self.ai_generated,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
            "executed_at": to_iso(self.executed_at),
            "completed_at": to_iso(self.completed_at),
            "pause_reason": self.pause_reason,
            "cancel_reason": self.cancel_reason,
            "result": self.result,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Action":
        action_type = coerce_enum(ActionType, data["type"], "type")
        detail_cls = DETAIL_CLASSES[action_type]
        raw_details = data.get("details")
        details = detail_cls.from_dict(raw_details) if detail_cls and raw_details is not None else None
        return cls(
            id=data["id"],
            type=action_type,
            title=data.get("title", ""),
            description=data.get("description", ""),
            priority=ActionPriority.from_dict(data["priority"]),
            root_cause_analysis=RootCauseAnalysis.from_dict(data["root_cause_analysis"]),
            impact_assessment=ImpactAssessment.from_dict(data["impact_assessment"]),
            resource_optimization=ResourceOptimization.from_dict(data["resource_optimization"]),
            timeline=TimelinePlanning.from_dict(data["timeline"]),
            success_probability=SuccessProbability.from_dict(data["success_probability"]),
            details=details,
            status=data.get("status", ActionStatus.PENDING),
            assignee=data.get("assignee"),
            attendees=list(data.get("attendees") or []),
            related_documents=list(data.get("related_documents") or []),
            related_contractors=list(data.get("related_contractors") or []),
            related_issues=[_issue_from_dict(i) for i in data.get("related_issues") or []],
            ai_confidence=data.get("ai_confidence", 0),
            ai_generated=bool(data.get("ai_generated", False)),
            created_at=from_iso(data.get("created_at")) or utcnow(),
            updated_at=from_iso(data.get("updated_at")) or utcnow(),
            executed_at=from_iso(data.get("executed_at")),
            completed_at=from_iso(data.get("completed_at")),
            pause_reason=data.get("pause_reason"),
            cancel_reason=data.get("cancel_reason"),
            result=data.get("result"),
            error=data.get("error"),
        )


# ═════════════════════════════════════════════════════════════════════════════
# Execution
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class ExecutionMetrics:
    time_to_execute: int = 0
    resources_used: list[str] = field(default_factory=list)
    actual_impact: ImpactAssessment = field(default_factory=ImpactAssessment.degraded)
    lessons_learned: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "time_to_execute": self.time_to_execute,
            "resources_used": list(self.resources_used),
            "actual_impact": self.actual_impact.to_dict(),
            "lessons_learned": list(self.lessons_learned),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExecutionMetrics":
        return cls(
            time_to_execute=data.get("time_to_execute", 0),
            resources_used=list(data.get("resources_used") or []),
            actual_impact=ImpactAssessment.from_dict(data.get("actual_impact") or {}),
            lessons_learned=list(data.get("lessons_learned") or []),
        )


@dataclass
class ActionExecutionResult:
    action_id: str
    success: bool
    executed_at: datetime
    execution_time: int
    result: Any = None
    error: str | None = None
    metrics: ExecutionMetrics = field(default_factory=ExecutionMetrics)

    def to_dict(self) -> dict:
        return {
            "action_id": self.action_id,
            "success": self.success,
            "executed_at": to_iso(self.executed_at),
            "execution_time": self.execution_time,
            "result": self.result,
            "error": self.error,
            "metrics": self.metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ActionExecutionResult":
        return cls(
            action_id=data["action_id"],
            success=bool(data["success"]),
            executed_at=from_iso(data["executed_at"]),
            execution_time=data.get("execution_time", 0),
            result=data.get("result"),
            error=data.get("error"),
            metrics=ExecutionMetrics.from_dict(data.get("metrics") or {}),
        )


@dataclass
class BatchExecutionRequest:
    action_ids: list[str]
    execution_mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    failure_mode: FailureMode = FailureMode.CONTINUE_ON_ERROR

    def __post_init__(self):
        self.execution_mode = coerce_enum(ExecutionMode, self.execution_mode, "execution_mode")
        self.failure_mode = coerce_enum(FailureMode, self.failure_mode, "failure_mode")

    @classmethod
    def from_dict(cls, data: dict) -> "BatchExecutionRequest":
        return cls(
            action_ids=[str(a) for a in data.get("action_ids") or []],
            execution_mode=data.get("execution_mode", ExecutionMode.SEQUENTIAL),
            failure_mode=data.get("failure_mode", FailureMode.CONTINUE_ON_ERROR),
        )


@dataclass
class BatchExecutionResult:
    batch_id: str
    results: list[ActionExecutionResult]
    start_time: datetime
    end_time: datetime

    @property
    def total_actions(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def total_duration(self) -> int:
        """Milliseconds between batch start and end."""
        return max(0, int((self.end_time - self.start_time).total_seconds() * 1000))

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "total_actions": self.total_actions,
            "successful": self.successful,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
            "start_time": to_iso(self.start_time),
            "end_time": to_iso(self.end_time),
            "total_duration": self.total_duration,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Feedback
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class ActionFeedback:
    action_id: str
    rating: int
    effectiveness: int
    comments: str = ""
    would_recommend: bool = False
    actual_time_spent: float = 0
    actual_impact: str = ""
    suggestions: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        check_range(self.rating, 1, 5, "rating")
        check_range(self.effectiveness, 0, 100, "effectiveness")

    def to_dict(self) -> dict:
        return {
            "action_id": self.action_id,
            "rating": self.rating,
            "effectiveness": self.effectiveness,
            "comments": self.comments,
            "would_recommend": self.would_recommend,
            "actual_time_spent": self.actual_time_spent,
            "actual_impact": self.actual_impact,
            "suggestions": list(self.suggestions),
            "created_at": to_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ActionFeedback":
        return cls(
            action_id=str(data["action_id"]),
            rating=data.get("rating"),
            effectiveness=data.get("effectiveness"),
            comments=data.get("comments", ""),
            would_recommend=bool(data.get("would_recommend", False)),
            actual_time_spent=data.get("actual_time_spent") or 0,
            actual_impact=data.get("actual_impact", ""),
            suggestions=list(data.get("suggestions") or []),
            created_at=from_iso(data.get("created_at")) or utcnow(),
        )
