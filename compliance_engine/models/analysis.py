"""
Analysis and scoring result objects.

Produced by the IssueAnalyst (root cause, pattern, impact, resource) and
by the scoring functions (priority, timeline, success probability).
All of them round-trip through ``to_dict`` / ``from_dict`` because they
are embedded in persisted Action records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from compliance_engine.models.base import check_range, coerce_enum, from_iso, to_iso


class ImpactLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Priority levels share the impact scale
PriorityLevel = ImpactLevel


class PatternType(str, Enum):
    RECURRING = "recurring"
    ISOLATED = "isolated"
    SYSTEMIC = "systemic"
    RESOURCE_RELATED = "resource-related"


class Trend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DETERIORATING = "deteriorating"


@dataclass
class RootCauseAnalysis:
    primary_cause: str
    contributing_factors: list[str] = field(default_factory=list)
    pattern_type: PatternType = PatternType.ISOLATED
    confidence: int = 60

    def __post_init__(self):
        self.pattern_type = coerce_enum(PatternType, self.pattern_type, "pattern_type")
        check_range(self.confidence, 0, 100, "confidence")

    def to_dict(self) -> dict:
        return {
            "primary_cause": self.primary_cause,
            "contributing_factors": list(self.contributing_factors),
            "pattern_type": self.pattern_type.value,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RootCauseAnalysis":
        return cls(
            primary_cause=data["primary_cause"],
            contributing_factors=list(data.get("contributing_factors") or []),
            pattern_type=data.get("pattern_type", PatternType.ISOLATED),
            confidence=data.get("confidence", 60),
        )


@dataclass
class PatternRecognition:
    pattern: str
    frequency: int
    affected_contractors: list[str] = field(default_factory=list)
    affected_documents: list[str] = field(default_factory=list)
    trend: Trend = Trend.STABLE
    confidence: int = 60

    def __post_init__(self):
        self.trend = coerce_enum(Trend, self.trend, "trend")
        check_range(self.confidence, 0, 100, "confidence")

    def to_dict(self) -> dict:
        return {
            "pattern": self.pattern,
            "frequency": self.frequency,
            "affected_contractors": list(self.affected_contractors),
            "affected_documents": list(self.affected_documents),
            "trend": self.trend.value,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PatternRecognition":
        return cls(
            pattern=data["pattern"],
            frequency=int(data.get("frequency") or 0),
            affected_contractors=list(data.get("affected_contractors") or []),
            affected_documents=list(data.get("affected_documents") or []),
            trend=data.get("trend", Trend.STABLE),
            confidence=data.get("confidence", 60),
        )


@dataclass
class ImpactAssessment:
    project_impact: ImpactLevel = ImpactLevel.LOW
    timeline_impact: int = 0
    cost_impact: int = 0
    quality_impact: ImpactLevel = ImpactLevel.LOW
    safety_impact: ImpactLevel = ImpactLevel.LOW

    def __post_init__(self):
        self.project_impact = coerce_enum(ImpactLevel, self.project_impact, "project_impact")
        self.quality_impact = coerce_enum(ImpactLevel, self.quality_impact, "quality_impact")
        self.safety_impact = coerce_enum(ImpactLevel, self.safety_impact, "safety_impact")
        check_range(self.timeline_impact, 0, float("inf"), "timeline_impact")
        check_range(self.cost_impact, 0, float("inf"), "cost_impact")

    @classmethod
    def degraded(cls) -> "ImpactAssessment":
        """Impact recorded for a failed execution."""
        return cls()

    def to_dict(self) -> dict:
        return {
            "project_impact": self.project_impact.value,
            "timeline_impact": self.timeline_impact,
            "cost_impact": self.cost_impact,
            "quality_impact": self.quality_impact.value,
            "safety_impact": self.safety_impact.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ImpactAssessment":
        return cls(
            project_impact=data.get("project_impact", ImpactLevel.LOW),
            timeline_impact=data.get("timeline_impact", 0),
            cost_impact=data.get("cost_impact", 0),
            quality_impact=data.get("quality_impact", ImpactLevel.LOW),
            safety_impact=data.get("safety_impact", ImpactLevel.LOW),
        )


@dataclass
class ResourceOptimization:
    recommended_resources: list[str] = field(default_factory=list)
    allocation_efficiency: int = 60
    bottlenecks: list[str] = field(default_factory=list)
    optimization_potential: int = 25

    def __post_init__(self):
        check_range(self.allocation_efficiency, 0, 100, "allocation_efficiency")
        check_range(self.optimization_potential, 0, 100, "optimization_potential")

    def to_dict(self) -> dict:
        return {
            "recommended_resources": list(self.recommended_resources),
            "allocation_efficiency": self.allocation_efficiency,
            "bottlenecks": list(self.bottlenecks),
            "optimization_potential": self.optimization_potential,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ResourceOptimization":
        return cls(
            recommended_resources=list(data.get("recommended_resources") or []),
            allocation_efficiency=data.get("allocation_efficiency", 60),
            bottlenecks=list(data.get("bottlenecks") or []),
            optimization_potential=data.get("optimization_potential", 25),
        )


@dataclass
class ActionPriority:
    score: int
    urgency: int
    impact: int
    effort: int
    risk: int
    level: PriorityLevel

    def __post_init__(self):
        self.level = coerce_enum(PriorityLevel, self.level, "level")

    @property
    def factors(self) -> dict:
        return {"urgency": self.urgency, "impact": self.impact,
                "effort": self.effort, "risk": self.risk}

    def to_dict(self) -> dict:
        return {"score": self.score, "factors": self.factors, "level": self.level.value}

    @classmethod
    def from_dict(cls, data: dict) -> "ActionPriority":
        factors = data.get("factors") or {}
        return cls(
            score=data["score"],
            urgency=factors.get("urgency", 0),
            impact=factors.get("impact", 0),
            effort=factors.get("effort", 0),
            risk=factors.get("risk", 0),
            level=data["level"],
        )


@dataclass
class Milestone:
    name: str
    date: datetime
    completed: bool = False

    def to_dict(self) -> dict:
        return {"name": self.name, "date": to_iso(self.date), "completed": self.completed}

    @classmethod
    def from_dict(cls, data: dict) -> "Milestone":
        return cls(name=data["name"], date=from_iso(data["date"]),
                   completed=bool(data.get("completed", False)))


@dataclass
class TimelinePlanning:
    start_date: datetime
    end_date: datetime
    milestones: list[Milestone] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    buffer_time: int = 1

    def to_dict(self) -> dict:
        return {
            "start_date": to_iso(self.start_date),
            "end_date": to_iso(self.end_date),
            "milestones": [m.to_dict() for m in self.milestones],
            "dependencies": list(self.dependencies),
            "buffer_time": self.buffer_time,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TimelinePlanning":
        return cls(
            start_date=from_iso(data["start_date"]),
            end_date=from_iso(data["end_date"]),
            milestones=[Milestone.from_dict(m) for m in data.get("milestones") or []],
            dependencies=list(data.get("dependencies") or []),
            buffer_time=data.get("buffer_time", 1),
        )


@dataclass
class SuccessProbability:
    overall: int
    historical_success: int
    resource_availability: int
    stakeholder_buy_in: int
    complexity: int
    confidence: int

    @property
    def factors(self) -> dict:
        return {
            "historical_success": self.historical_success,
            "resource_availability": self.resource_availability,
            "stakeholder_buy_in": self.stakeholder_buy_in,
            "complexity": self.complexity,
        }

    def to_dict(self) -> dict:
        return {"overall": self.overall, "factors": self.factors, "confidence": self.confidence}

    @classmethod
    def from_dict(cls, data: dict) -> "SuccessProbability":
        factors = data.get("factors") or {}
        return cls(
            overall=data["overall"],
            historical_success=factors.get("historical_success", 0),
            resource_availability=factors.get("resource_availability", 0),
            stakeholder_buy_in=factors.get("stakeholder_buy_in", 0),
            complexity=factors.get("complexity", 0),
            confidence=data.get("confidence", 0),
        )


@dataclass
class AnalysisBundle:
    """The four analyses for one request, as run by ``IssueAnalyst.analyze``."""
    root_cause: RootCauseAnalysis
    patterns: list[PatternRecognition]
    impact: ImpactAssessment
    resources: ResourceOptimization

    def to_dict(self) -> dict:
        return {
            "root_cause": self.root_cause.to_dict(),
            "patterns": [p.to_dict() for p in self.patterns],
            "impact": self.impact.to_dict(),
            "resources": self.resources.to_dict(),
        }
