"""
Issue context and recommendation objects.

Inputs describing a contractor's outstanding / overdue documents and the
project they belong to, plus the Recommendation records produced from
them. No behaviour beyond validation and (de)serialisation.

Usage:
    from compliance_engine.models.issues import CriticalIssue, ProjectContext

    ctx = ProjectContext.from_dict({"project_phase": "execution", ...})
    issue = CriticalIssue(contractor_id="c1", contractor_name="ACME", ...)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from compliance_engine.core.exceptions import ValidationError
from compliance_engine.models.base import check_range, coerce_enum


# ═════════════════════════════════════════════════════════════════════════════
# Enums
# ═════════════════════════════════════════════════════════════════════════════

class ProjectPhase(str, Enum):
    PLANNING = "planning"
    EXECUTION = "execution"
    CLOSEOUT = "closeout"


class DeadlinePressure(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StakeholderVisibility(str, Enum):
    INTERNAL = "internal"
    CLIENT = "client"
    REGULATORY = "regulatory"


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RecommendationType(str, Enum):
    """Action kinds a recommendation may suggest."""
    MEETING = "meeting"
    EMAIL = "email"
    ESCALATION = "escalation"
    SUPPORT = "support"
    TRAINING = "training"


class WarningLevel(int, Enum):
    EARLY_WARNING = 1
    URGENT = 2
    OVERDUE = 3


# ═════════════════════════════════════════════════════════════════════════════
# Inputs
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ProjectContext:
    """Immutable project-level context attached to every request."""
    project_phase: ProjectPhase = ProjectPhase.EXECUTION
    deadline_pressure: DeadlinePressure = DeadlinePressure.MEDIUM
    stakeholder_visibility: StakeholderVisibility = StakeholderVisibility.INTERNAL

    def __post_init__(self):
        object.__setattr__(self, "project_phase",
                           coerce_enum(ProjectPhase, self.project_phase, "project_phase"))
        object.__setattr__(self, "deadline_pressure",
                           coerce_enum(DeadlinePressure, self.deadline_pressure, "deadline_pressure"))
        object.__setattr__(self, "stakeholder_visibility",
                           coerce_enum(StakeholderVisibility, self.stakeholder_visibility,
                                       "stakeholder_visibility"))

    def to_dict(self) -> dict:
        return {
            "project_phase": self.project_phase.value,
            "deadline_pressure": self.deadline_pressure.value,
            "stakeholder_visibility": self.stakeholder_visibility.value,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "ProjectContext":
        data = data or {}
        return cls(
            project_phase=data.get("project_phase", ProjectPhase.EXECUTION),
            deadline_pressure=data.get("deadline_pressure", DeadlinePressure.MEDIUM),
            stakeholder_visibility=data.get("stakeholder_visibility", StakeholderVisibility.INTERNAL),
        )


@dataclass
class CriticalIssue:
    """A contractor/document pairing that is overdue or under-approved.

    ``overdue_days`` and ``days_until_due`` are mutually informative: an
    overdue document has ``days_until_due=None``.
    """
    contractor_id: str
    contractor_name: str
    doc_type_id: str
    doc_type_name: str
    required_count: int = 0
    approved_count: int = 0
    overdue_days: int = 0
    days_until_due: int | None = None

    def __post_init__(self):
        if self.overdue_days is None:
            self.overdue_days = 0
        if self.overdue_days < 0:
            raise ValidationError("overdue_days must be >= 0",
                                  details={"overdue_days": self.overdue_days})

    @property
    def pair_key(self) -> str:
        return f"{self.contractor_id}-{self.doc_type_id}"

    @property
    def is_overdue(self) -> bool:
        return self.overdue_days > 0

    def to_dict(self) -> dict:
        return {
            "contractor_id": self.contractor_id,
            "contractor_name": self.contractor_name,
            "doc_type_id": self.doc_type_id,
            "doc_type_name": self.doc_type_name,
            "required_count": self.required_count,
            "approved_count": self.approved_count,
            "overdue_days": self.overdue_days,
            "days_until_due": self.days_until_due,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CriticalIssue":
        return cls(
            contractor_id=str(data["contractor_id"]),
            contractor_name=data.get("contractor_name", ""),
            doc_type_id=str(data["doc_type_id"]),
            doc_type_name=data.get("doc_type_name", ""),
            required_count=int(data.get("required_count") or 0),
            approved_count=int(data.get("approved_count") or 0),
            overdue_days=int(data.get("overdue_days") or 0),
            days_until_due=data.get("days_until_due"),
        )


@dataclass
class RedCard(CriticalIssue):
    """Critical issue classified into the 3-level warning scheme."""
    warning_level: WarningLevel = WarningLevel.EARLY_WARNING
    risk_score: int = 0
    recommended_actions: list[str] = field(default_factory=list)
    progress_percentage: float = 0.0

    def __post_init__(self):
        super().__post_init__()
        self.warning_level = coerce_enum(WarningLevel, self.warning_level, "warning_level")
        check_range(self.risk_score, 0, 100, "risk_score")

    def to_dict(self) -> dict:
        d = super().to_dict()
        d.update({
            "warning_level": self.warning_level.value,
            "risk_score": self.risk_score,
            "recommended_actions": list(self.recommended_actions),
            "progress_percentage": self.progress_percentage,
        })
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "RedCard":
        base = CriticalIssue.from_dict(data)
        return cls(
            **base.__dict__,
            warning_level=data.get("warning_level", 1),
            risk_score=data.get("risk_score", 0),
            recommended_actions=list(data.get("recommended_actions") or []),
            progress_percentage=float(data.get("progress_percentage") or 0),
        )


@dataclass
class RecommendationRequest:
    contractor_id: str
    contractor_name: str
    critical_issues: list[CriticalIssue] = field(default_factory=list)
    red_cards: list[RedCard] | None = None
    project_context: ProjectContext = field(default_factory=ProjectContext)

    def to_dict(self) -> dict:
        return {
            "contractor_id": self.contractor_id,
            "contractor_name": self.contractor_name,
            "critical_issues": [i.to_dict() for i in self.critical_issues],
            "red_cards": [r.to_dict() for r in self.red_cards] if self.red_cards is not None else None,
            "project_context": self.project_context.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecommendationRequest":
        red_cards = data.get("red_cards")
        return cls(
            contractor_id=str(data.get("contractor_id", "")),
            contractor_name=data.get("contractor_name", ""),
            critical_issues=[CriticalIssue.from_dict(i) for i in data.get("critical_issues") or []],
            red_cards=[RedCard.from_dict(r) for r in red_cards] if red_cards is not None else None,
            project_context=ProjectContext.from_dict(data.get("project_context")),
        )


# ═════════════════════════════════════════════════════════════════════════════
# Output
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class Recommendation:
    """One ranked, explainable suggestion.

    When ``ai_generated`` is False the confidence comes from the fallback
    rules, never from a provider.
    """
    id: str
    severity: Severity
    message: str
    action_type: RecommendationType
    estimated_impact: str
    time_to_implement: str
    related_documents: list[str] = field(default_factory=list)
    ai_confidence: int = 75
    ai_generated: bool = True
    warning_level: int | None = None
    risk_score: int | None = None

    def __post_init__(self):
        self.severity = coerce_enum(Severity, self.severity, "severity")
        self.action_type = coerce_enum(RecommendationType, self.action_type, "action_type")
        check_range(self.ai_confidence, 0, 100, "ai_confidence")

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "severity": self.severity.value,
            "message": self.message,
            "action_type": self.action_type.value,
            "estimated_impact": self.estimated_impact,
            "time_to_implement": self.time_to_implement,
            "related_documents": list(self.related_documents),
            "ai_confidence": self.ai_confidence,
            "ai_generated": self.ai_generated,
        }
        if self.warning_level is not None:
            d["warning_level"] = self.warning_level
        if self.risk_score is not None:
            d["risk_score"] = self.risk_score
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "Recommendation":
        return cls(
            id=data["id"],
            severity=data["severity"],
            message=data.get("message", ""),
            action_type=data["action_type"],
            estimated_impact=data.get("estimated_impact", ""),
            time_to_implement=data.get("time_to_implement", ""),
            related_documents=list(data.get("related_documents") or []),
            ai_confidence=data.get("ai_confidence", 75),
            ai_generated=bool(data.get("ai_generated", True)),
            warning_level=data.get("warning_level"),
            risk_score=data.get("risk_score"),
        )
