"""
Contractor Compliance Decision Engine
Response Parser — provider reply text → typed results.

Providers are asked for bare JSON but often wrap it in markdown fences or
prose; ``extract_json`` accepts both. The ``decode_*`` functions raise
ParseError on anything that does not match the expected shape, and
``parse_recommendations`` turns that into the rule-based fallback.
"""

import json
import logging
import math
import re
import uuid

from compliance_engine.ai.fallback import generate_fallback_recommendations
from compliance_engine.core.exceptions import ParseError, ValidationError
from compliance_engine.models.analysis import (
    ImpactAssessment,
    PatternRecognition,
    ResourceOptimization,
    RootCauseAnalysis,
)
from compliance_engine.models.issues import (
    CriticalIssue,
    Recommendation,
    RecommendationType,
    RedCard,
    Severity,
)

logger = logging.getLogger(__name__)

DEFAULT_AI_CONFIDENCE = 75

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(raw_text: str) -> dict:
    """Decode the first JSON object in ``raw_text``."""
    if not raw_text or not raw_text.strip():
        raise ParseError("Empty provider reply")

    text = raw_text.strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        match = _OBJECT_RE.search(text)
        if not match:
            raise ParseError("No JSON object in provider reply")
        try:
            data = json.loads(match.group())
        except json.JSONDecodeError as exc:
            raise ParseError(f"Malformed JSON in provider reply: {exc}") from exc

    if not isinstance(data, dict):
        raise ParseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def _bounded_int(value, low: int, high: int, default):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if isinstance(value, float) and not math.isfinite(value):
        raise ParseError(f"Non-finite number in provider reply: {value!r}")
    return int(min(high, max(low, round(value))))


def _string_list(data: dict, field_name: str) -> list[str]:
    """``data[field_name]`` as a list of strings; missing or null is empty."""
    value = data.get(field_name)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ParseError(f"Expected '{field_name}' to be a list, got {type(value).__name__}")
    return [str(v) for v in value]


def _related_documents(issues: list[CriticalIssue]) -> list[str]:
    seen = []
    for issue in issues:
        if issue.doc_type_name not in seen:
            seen.append(issue.doc_type_name)
    return seen


# ── Recommendations ───────────────────────────────────────────────────────────

def decode_recommendations(raw_text: str, original_issues: list[CriticalIssue]) -> list[Recommendation]:
    """
    Map the provider reply onto Recommendation objects.

    ``related_documents`` always comes from ``original_issues``; a missing
    or non-numeric confidence becomes 75.

    Raises:
        ParseError: reply is not JSON, or has no non-empty
            ``recommendations`` list while issues were supplied.
    """
    data = extract_json(raw_text)
    entries = data.get("recommendations")
    if not isinstance(entries, list):
        raise ParseError("Reply has no 'recommendations' list")

    related = _related_documents(original_issues)
    recommendations = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("message"):
            continue
        severity = entry.get("severity")
        if severity not in {s.value for s in Severity}:
            severity = Severity.MEDIUM
        action_type = entry.get("action_type")
        if action_type not in {t.value for t in RecommendationType}:
            action_type = RecommendationType.SUPPORT
        warning_level = entry.get("warning_level")
        if warning_level not in (1, 2, 3):
            warning_level = None

        recommendations.append(Recommendation(
            id=f"ai-{uuid.uuid4().hex[:12]}",
            severity=severity,
            message=str(entry["message"]),
            action_type=action_type,
            estimated_impact=str(entry.get("estimated_impact") or ""),
            time_to_implement=str(entry.get("time_to_implement") or ""),
            related_documents=list(related),
            ai_confidence=_bounded_int(entry.get("ai_confidence"), 0, 100, DEFAULT_AI_CONFIDENCE),
            ai_generated=True,
            warning_level=warning_level,
            risk_score=_bounded_int(entry.get("risk_score"), 0, 100, None),
        ))

    if not recommendations and original_issues:
        raise ParseError("Reply contained no usable recommendations")
    return recommendations


def parse_recommendations(
    raw_text: str,
    original_issues: list[CriticalIssue],
    red_cards: list[RedCard] | None = None,
) -> list[Recommendation]:
    """Decode the reply, or fall back to the rule-based generator. Never raises."""
    try:
        return decode_recommendations(raw_text, original_issues)
    except ParseError as exc:
        logger.warning("Recommendation reply unusable (%s) — using rule-based fallback", exc)
        return generate_fallback_recommendations(original_issues, red_cards)


# ── Analyses ──────────────────────────────────────────────────────────────────

def decode_root_cause(raw_text: str) -> RootCauseAnalysis:
    data = extract_json(raw_text)
    if not data.get("primary_cause"):
        raise ParseError("Reply has no 'primary_cause'")
    try:
        return RootCauseAnalysis(
            primary_cause=str(data["primary_cause"]),
            contributing_factors=_string_list(data, "contributing_factors"),
            pattern_type=data.get("pattern_type"),
            confidence=_bounded_int(data.get("confidence"), 0, 100, DEFAULT_AI_CONFIDENCE),
        )
    except ValidationError as exc:
        raise ParseError(str(exc)) from exc


def decode_patterns(raw_text: str) -> list[PatternRecognition]:
    data = extract_json(raw_text)
    entries = data.get("patterns")
    if not isinstance(entries, list):
        raise ParseError("Reply has no 'patterns' list")
    patterns = []
    try:
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("pattern"):
                continue
            patterns.append(PatternRecognition(
                pattern=str(entry["pattern"]),
                frequency=_bounded_int(entry.get("frequency"), 0, 10**6, 0),
                affected_contractors=_string_list(entry, "affected_contractors"),
                affected_documents=_string_list(entry, "affected_documents"),
                trend=entry.get("trend", "stable"),
                confidence=_bounded_int(entry.get("confidence"), 0, 100, DEFAULT_AI_CONFIDENCE),
            ))
    except ValidationError as exc:
        raise ParseError(str(exc)) from exc
    return patterns


def decode_impact(raw_text: str) -> ImpactAssessment:
    data = extract_json(raw_text)
    if "project_impact" not in data:
        raise ParseError("Reply has no 'project_impact'")
    try:
        return ImpactAssessment(
            project_impact=data["project_impact"],
            timeline_impact=_bounded_int(data.get("timeline_impact"), 0, 10**6, 0),
            cost_impact=_bounded_int(data.get("cost_impact"), 0, 10**9, 0),
            quality_impact=data.get("quality_impact", "low"),
            safety_impact=data.get("safety_impact", "low"),
        )
    except ValidationError as exc:
        raise ParseError(str(exc)) from exc


def decode_resources(raw_text: str) -> ResourceOptimization:
    data = extract_json(raw_text)
    if not isinstance(data.get("recommended_resources"), list):
        raise ParseError("Reply has no 'recommended_resources' list")
    return ResourceOptimization(
        recommended_resources=_string_list(data, "recommended_resources"),
        allocation_efficiency=_bounded_int(data.get("allocation_efficiency"), 0, 100, 60),
        bottlenecks=_string_list(data, "bottlenecks"),
        optimization_potential=_bounded_int(data.get("optimization_potential"), 0, 100, 25),
    )
