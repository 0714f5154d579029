"""
Contractor Compliance Decision Engine
Fallback Rule Engine — deterministic, provider-independent results.

Used whenever the provider is unconfigured, fails, or replies with
something unusable. Every function here works only on its arguments,
never raises for well-formed domain objects (including empty lists), and
returns the same output for the same input.
"""

import logging
from fractions import Fraction

from compliance_engine.models.analysis import (
    ImpactAssessment,
    ImpactLevel,
    PatternRecognition,
    PatternType,
    ResourceOptimization,
    RootCauseAnalysis,
    Trend,
)
from compliance_engine.models.issues import (
    CriticalIssue,
    ProjectContext,
    Recommendation,
    RecommendationType,
    RedCard,
    Severity,
    StakeholderVisibility,
)
from compliance_engine.utils.helpers import round_half_up

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 60
MAX_ISSUE_RECOMMENDATIONS = 3
MAX_FALLBACK_RESOURCES = 3

# warning level → (severity, action type, message template, impact, time to implement)
_RED_CARD_RULES = {
    3: (Severity.HIGH, RecommendationType.ESCALATION,
        "Escalate {count} overdue document(s) for {contractors} to project management",
        "Stops further schedule slippage on overdue submissions", "1 day"),
    2: (Severity.MEDIUM, RecommendationType.MEETING,
        "Hold a follow-up meeting on {count} urgent document(s) with {contractors}",
        "Clears urgent items before they become overdue", "2-3 days"),
    1: (Severity.LOW, RecommendationType.EMAIL,
        "Send a reminder email about {count} document(s) nearing their due date to {contractors}",
        "Keeps upcoming submissions on schedule", "1 week"),
}

_SEVERITY_TEXT = {
    Severity.HIGH: ("Prevents a critical compliance gap", "1 day"),
    Severity.MEDIUM: ("Brings the submission back on schedule", "2-3 days"),
    Severity.LOW: ("Keeps the submission on track", "1 week"),
}

_ONE_LEVEL_DOWN = {
    ImpactLevel.CRITICAL: ImpactLevel.HIGH,
    ImpactLevel.HIGH: ImpactLevel.MEDIUM,
    ImpactLevel.MEDIUM: ImpactLevel.LOW,
    ImpactLevel.LOW: ImpactLevel.LOW,
}


def _unique(values):
    out = []
    for v in values:
        if v not in out:
            out.append(v)
    return out


# ── Recommendations ───────────────────────────────────────────────────────────

def _red_card_recommendations(red_cards: list[RedCard]) -> list[Recommendation]:
    recommendations = []
    for level in (3, 2, 1):
        bucket = [c for c in red_cards if c.warning_level.value == level]
        if not bucket:
            continue
        severity, action_type, template, impact, time_to_implement = _RED_CARD_RULES[level]
        contractors = ", ".join(_unique(c.contractor_name for c in bucket))
        recommendations.append(Recommendation(
            id=f"fallback-level{level}",
            severity=severity,
            message=template.format(count=len(bucket), contractors=contractors),
            action_type=action_type,
            estimated_impact=impact,
            time_to_implement=time_to_implement,
            related_documents=_unique(c.doc_type_name for c in bucket),
            ai_confidence=FALLBACK_CONFIDENCE,
            ai_generated=False,
            warning_level=level,
            risk_score=max(c.risk_score for c in bucket),
        ))
    return recommendations


def _issue_recommendation(index: int, issue: CriticalIssue) -> Recommendation:
    if issue.overdue_days > 7:
        severity, action_type = Severity.HIGH, RecommendationType.ESCALATION
    elif issue.overdue_days > 3:
        severity, action_type = Severity.MEDIUM, RecommendationType.MEETING
    else:
        severity, action_type = Severity.LOW, RecommendationType.EMAIL

    message = (f"{issue.contractor_name}: {issue.doc_type_name} has "
               f"{issue.approved_count}/{issue.required_count} approved")
    if issue.overdue_days > 0:
        message += f", {issue.overdue_days} days overdue"

    impact, time_to_implement = _SEVERITY_TEXT[severity]
    return Recommendation(
        id=f"fallback-{index + 1}-{issue.contractor_id}-{issue.doc_type_id}",
        severity=severity,
        message=message,
        action_type=action_type,
        estimated_impact=impact,
        time_to_implement=time_to_implement,
        related_documents=[issue.doc_type_name],
        ai_confidence=FALLBACK_CONFIDENCE,
        ai_generated=False,
    )


def generate_fallback_recommendations(
    issues: list[CriticalIssue],
    red_cards: list[RedCard] | None = None,
) -> list[Recommendation]:
    """
    Rule-based recommendations from local data only.

    With red cards: one recommendation per non-empty warning level, in
    order 3, 2, 1. Without: one per issue for the first three issues,
    graded by overdue days (>7 escalation, >3 meeting, else email).
    """
    if red_cards:
        return _red_card_recommendations(red_cards)
    return [_issue_recommendation(i, issue)
            for i, issue in enumerate(issues[:MAX_ISSUE_RECOMMENDATIONS])]


# ── Analyses ──────────────────────────────────────────────────────────────────

def fallback_root_cause(issues: list[CriticalIssue], red_cards: list[RedCard] | None = None) -> RootCauseAnalysis:
    red_cards = red_cards or []
    overdue = [i for i in issues if i.overdue_days > 0]
    level3 = [c for c in red_cards if c.warning_level.value == 3]

    if len(overdue) > 3:
        pattern_type = PatternType.RESOURCE_RELATED
        primary = f"Document control capacity is insufficient: {len(overdue)} documents are overdue"
    elif level3:
        pattern_type = PatternType.SYSTEMIC
        primary = "The submission and approval process is breaking down on overdue red cards"
    elif issues:
        pattern_type = PatternType.ISOLATED
        primary = "Delays are limited to individual documents"
    else:
        pattern_type = PatternType.ISOLATED
        primary = "No outstanding compliance issues"

    factors = []
    if overdue:
        factors.append(f"{len(overdue)} overdue document(s)")
        worst = max(overdue, key=lambda i: i.overdue_days)
        factors.append(f"Most overdue: {worst.doc_type_name} ({worst.overdue_days} days)")
    under_approved = [i for i in issues if i.approved_count < i.required_count]
    if under_approved:
        factors.append(f"{len(under_approved)} document type(s) below required approvals")
    if level3:
        factors.append(f"{len(level3)} red card(s) at overdue level")

    return RootCauseAnalysis(
        primary_cause=primary,
        contributing_factors=factors,
        pattern_type=pattern_type,
        confidence=FALLBACK_CONFIDENCE,
    )


def fallback_patterns(historical_data: list[dict]) -> list[PatternRecognition]:
    """At most one synthetic pattern summarising the history."""
    if not historical_data:
        return []
    contractors = sorted({str(r.get("contractor_name") or r.get("contractor_id"))
                          for r in historical_data
                          if r.get("contractor_name") or r.get("contractor_id")})
    documents = sorted({str(r.get("doc_type_name") or r.get("doc_type_id"))
                        for r in historical_data
                        if r.get("doc_type_name") or r.get("doc_type_id")})
    return [PatternRecognition(
        pattern="Recurring document submission delays",
        frequency=len(historical_data),
        affected_contractors=contractors,
        affected_documents=documents,
        trend=Trend.STABLE,
        confidence=FALLBACK_CONFIDENCE,
    )]


def fallback_impact(issues: list[CriticalIssue], context: ProjectContext) -> ImpactAssessment:
    overdue_count = sum(1 for i in issues if i.overdue_days > 0)
    total_overdue_days = sum(i.overdue_days for i in issues)

    if overdue_count > 5 or total_overdue_days > 30:
        project_impact = ImpactLevel.CRITICAL
    elif overdue_count > 3 or total_overdue_days > 15:
        project_impact = ImpactLevel.HIGH
    elif overdue_count > 1 or total_overdue_days > 7:
        project_impact = ImpactLevel.MEDIUM
    else:
        project_impact = ImpactLevel.LOW

    quality_impact = _ONE_LEVEL_DOWN[project_impact]
    safety_impact = (quality_impact if context.stakeholder_visibility == StakeholderVisibility.REGULATORY
                     else ImpactLevel.LOW)

    return ImpactAssessment(
        project_impact=project_impact,
        timeline_impact=min(30, total_overdue_days),
        cost_impact=round_half_up(Fraction(total_overdue_days, 2)),
        quality_impact=quality_impact,
        safety_impact=safety_impact,
    )


def fallback_resources(issues: list[CriticalIssue], available_resources: list[str]) -> ResourceOptimization:
    bottlenecks = [
        f"{i.doc_type_name}: {i.approved_count}/{i.required_count} approved"
        for i in issues if i.approved_count < i.required_count
    ][:3]
    return ResourceOptimization(
        recommended_resources=list(available_resources[:MAX_FALLBACK_RESOURCES]),
        allocation_efficiency=60,
        bottlenecks=bottlenecks,
        optimization_potential=25,
    )
