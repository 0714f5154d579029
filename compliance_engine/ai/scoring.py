"""
Contractor Compliance Decision Engine
Scoring Engine — priority, timeline and success probability.

Pure functions over analysis results: no I/O, no randomness. Weighted
sums are evaluated with exact fractions and rounded half-up, so the same
inputs give the same integers on every run and platform. ``plan_timeline``
takes ``now`` explicitly for the same reason; callers pass the clock.

Usage:
    from compliance_engine.ai import scoring

    priority = scoring.calculate_action_priority(impact, root_cause, resources)
    timeline = scoring.plan_timeline("meeting", priority.level, context, now=utcnow())
"""

from datetime import datetime, timedelta
from fractions import Fraction

from compliance_engine.models.action import ActionType
from compliance_engine.models.analysis import (
    ActionPriority,
    ImpactAssessment,
    ImpactLevel,
    Milestone,
    PatternType,
    PriorityLevel,
    ResourceOptimization,
    RootCauseAnalysis,
    SuccessProbability,
    TimelinePlanning,
)
from compliance_engine.models.base import coerce_enum, utcnow
from compliance_engine.models.issues import DeadlinePressure, ProjectContext, StakeholderVisibility
from compliance_engine.utils.helpers import round_half_up

# ── Lookup tables ─────────────────────────────────────────────────────────────

IMPACT_SCORES = {
    ImpactLevel.CRITICAL: 90,
    ImpactLevel.HIGH: 70,
    ImpactLevel.MEDIUM: 50,
    ImpactLevel.LOW: 30,
}

PATTERN_RISK = {
    PatternType.SYSTEMIC: 90,
    PatternType.RECURRING: 70,
    PatternType.RESOURCE_RELATED: 50,
    PatternType.ISOLATED: 30,
}

# Lower bound (inclusive) of each priority level
PRIORITY_THRESHOLDS = (
    (80, PriorityLevel.CRITICAL),
    (60, PriorityLevel.HIGH),
    (40, PriorityLevel.MEDIUM),
)

BASE_DURATION_DAYS = {
    ActionType.EMAIL: 1,
    ActionType.SUPPORT: 5,
    ActionType.TRAINING: 10,
    ActionType.AUDIT: 7,
    ActionType.REVIEW: 3,
}

BUFFER_FACTOR = {
    DeadlinePressure.HIGH: Fraction(2, 10),
    DeadlinePressure.MEDIUM: Fraction(3, 10),
    DeadlinePressure.LOW: Fraction(5, 10),
}

HISTORICAL_SUCCESS = {
    ActionType.MEETING: 75,
    ActionType.EMAIL: 60,
    ActionType.ESCALATION: 85,
    ActionType.SUPPORT: 70,
    ActionType.TRAINING: 80,
    ActionType.AUDIT: 65,
    ActionType.REVIEW: 70,
}

STAKEHOLDER_BUY_IN = {
    StakeholderVisibility.REGULATORY: 90,
    StakeholderVisibility.CLIENT: 80,
    StakeholderVisibility.INTERNAL: 60,
}

BASE_COMPLEXITY = {
    ActionType.EMAIL: 20,
    ActionType.MEETING: 30,
    ActionType.REVIEW: 40,
    ActionType.SUPPORT: 50,
    ActionType.ESCALATION: 60,
    ActionType.TRAINING: 70,
    ActionType.AUDIT: 80,
}

COMPLEXITY_MULTIPLIER = {
    PriorityLevel.CRITICAL: Fraction(3, 2),
    PriorityLevel.HIGH: Fraction(6, 5),
}


def _clamp(value: int, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, value))


def priority_level(score: int) -> PriorityLevel:
    for threshold, level in PRIORITY_THRESHOLDS:
        if score >= threshold:
            return level
    return PriorityLevel.LOW


# ── Priority ──────────────────────────────────────────────────────────────────

def calculate_action_priority(
    impact: ImpactAssessment,
    root_cause: RootCauseAnalysis,
    resources: ResourceOptimization,
) -> ActionPriority:
    """
    score = 0.3·urgency + 0.3·impact + 0.2·(100 − effort) + 0.2·risk

    urgency comes from the project impact level; the impact factor is the
    mean of that same score, min(90, 10·timeline days) and min(90, 2·cost);
    effort is 100 − allocation efficiency; risk follows the root-cause
    pattern type.
    """
    urgency = IMPACT_SCORES[impact.project_impact]
    impact_score = Fraction(
        urgency + min(90, impact.timeline_impact * 10) + min(90, impact.cost_impact * 2),
        3,
    )
    effort = 100 - resources.allocation_efficiency
    risk = PATTERN_RISK[root_cause.pattern_type]

    weighted = (Fraction(3, 10) * urgency
                + Fraction(3, 10) * impact_score
                + Fraction(2, 10) * (100 - effort)
                + Fraction(2, 10) * risk)
    score = _clamp(round_half_up(weighted))

    return ActionPriority(
        score=score,
        urgency=urgency,
        impact=_clamp(round_half_up(impact_score)),
        effort=effort,
        risk=risk,
        level=priority_level(score),
    )


# ── Timeline ──────────────────────────────────────────────────────────────────

def base_duration_days(action_type: ActionType, level: PriorityLevel) -> int:
    """Working days an action of this type takes before buffer."""
    if action_type == ActionType.MEETING:
        return 1 if level in (PriorityLevel.CRITICAL, PriorityLevel.HIGH) else 2
    if action_type == ActionType.ESCALATION:
        return {PriorityLevel.CRITICAL: 1, PriorityLevel.HIGH: 2}.get(level, 3)
    return BASE_DURATION_DAYS[action_type]


def plan_timeline(
    action_type,
    level,
    context: ProjectContext,
    now: datetime | None = None,
) -> TimelinePlanning:
    """Start now, end after duration plus buffer; two open milestones."""
    action_type = coerce_enum(ActionType, action_type, "action_type")
    level = coerce_enum(PriorityLevel, level, "level")
    start = now or utcnow()

    duration = base_duration_days(action_type, level)
    buffer_days = max(1, int(duration * BUFFER_FACTOR[context.deadline_pressure]))
    end = start + timedelta(days=duration + buffer_days)

    return TimelinePlanning(
        start_date=start,
        end_date=end,
        milestones=[
            Milestone(name="Start", date=start, completed=False),
            Milestone(name="Complete", date=end, completed=False),
        ],
        dependencies=[],
        buffer_time=buffer_days,
    )


# ── Success probability ───────────────────────────────────────────────────────

def estimate_success_probability(
    action_type,
    level,
    resources: ResourceOptimization,
    context: ProjectContext,
) -> SuccessProbability:
    """
    overall = 0.3·historical + 0.3·resource availability
              + 0.2·stakeholder buy-in + 0.2·(100 − complexity)

    Resource availability is the allocation efficiency of the resource
    analysis. Confidence is the mean of the first three factors.
    """
    action_type = coerce_enum(ActionType, action_type, "action_type")
    level = coerce_enum(PriorityLevel, level, "level")

    historical = HISTORICAL_SUCCESS[action_type]
    availability = resources.allocation_efficiency
    buy_in = STAKEHOLDER_BUY_IN[context.stakeholder_visibility]
    complexity = _clamp(round_half_up(
        BASE_COMPLEXITY[action_type] * COMPLEXITY_MULTIPLIER.get(level, Fraction(1))))

    overall = round_half_up(Fraction(3, 10) * historical
                            + Fraction(3, 10) * availability
                            + Fraction(2, 10) * buy_in
                            + Fraction(2, 10) * (100 - complexity))
    confidence = round_half_up(Fraction(historical + availability + buy_in, 3))

    return SuccessProbability(
        overall=_clamp(overall),
        historical_success=historical,
        resource_availability=availability,
        stakeholder_buy_in=buy_in,
        complexity=complexity,
        confidence=_clamp(confidence),
    )
