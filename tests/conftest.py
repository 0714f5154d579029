"""
Shared pytest fixtures for the decision engine test suite.

Provides:
    - app: Flask application (session-scoped, in-memory SQLite + memory store)
    - session: Per-test app context, fresh tables and fresh lazy singletons (autouse)
    - client: Flask test client
    - kv_store: Empty InMemoryKeyValueStore
    - ScriptedProvider / scripted_gateway: provider stand-in, no network
    - make_issue / make_red_card / make_request / make_bundle / make_action
"""

import json
from datetime import datetime, timezone

import pytest

from compliance_engine import create_app
from compliance_engine.ai import scoring
from compliance_engine.ai.gateway import AIConfig, AIConfigRepository, ProviderClient, ProviderGateway
from compliance_engine.models import db as _db
from compliance_engine.models.action import Action, ActionType, EmailDetails, MeetingDetails
from compliance_engine.models.analysis import (
    AnalysisBundle,
    ImpactAssessment,
    ResourceOptimization,
    RootCauseAnalysis,
)
from compliance_engine.models.issues import CriticalIssue, ProjectContext, RecommendationRequest, RedCard
from compliance_engine.services.kv_store import InMemoryKeyValueStore

FIXED_NOW = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)

_PROVIDER_ENV = ("AI_PROVIDER", "AI_MODEL", "AI_API_KEY", "AI_API_ENDPOINT",
                 "GLM_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY")

# Lazy singletons the decision blueprint caches on the app
_APP_SINGLETONS = (
    "_kv_store", "_provider_gateway", "_prompt_builder", "_recommendation_cache",
    "_recommendation_advisor", "_issue_analyst", "_action_store", "_action_tracker",
    "_action_executor", "_batch_executor", "_decision_orchestrator", "_feedback_service",
)


# ── App & DB fixtures ────────────────────────────────────────────────────

@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(autouse=True)
def _no_provider_env(monkeypatch):
    """Tests never pick up a real provider key from the environment."""
    for name in _PROVIDER_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def session(app):
    """Per-test: app context, fresh tables, fresh singletons."""
    for name in _APP_SINGLETONS:
        app.__dict__.pop(name, None)
    with app.app_context():
        _db.create_all()
        yield
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def kv_store():
    return InMemoryKeyValueStore()


# ── Provider stand-in ────────────────────────────────────────────────────

class ScriptedProvider(ProviderClient):
    """
    ProviderClient answering from a script.

    ``reply`` is a string, an exception instance (raised on every call) or
    a callable ``messages -> str``.
    """

    name = "scripted"

    def __init__(self, reply="{}"):
        self.reply = reply
        self.calls = []

    def complete(self, messages, config, timeout):
        self.calls.append(messages)
        if isinstance(self.reply, BaseException):
            raise self.reply
        if callable(self.reply):
            return self.reply(messages)
        return self.reply


def configure_provider(store, provider="openai", api_key="sk-test-1234"):
    """Store an enabled AIConfig so the assistants try the provider."""
    return AIConfigRepository(store).save(
        AIConfig(id="cfg-test", provider=provider, model="test-model", api_key=api_key)
    )


@pytest.fixture
def scripted_gateway():
    """Factory: (reply) -> (ProviderGateway, ScriptedProvider) routing openai to the script."""
    def _make(reply="{}", max_retries=1):
        provider = ScriptedProvider(reply)
        gateway = ProviderGateway(providers={"openai": provider}, max_retries=max_retries, backoff_base=0)
        return gateway, provider
    return _make


# ── Domain builders ──────────────────────────────────────────────────────

def make_issue(contractor_id="c1", doc_type_id="d1", overdue_days=0, **kw):
    data = {
        "contractor_id": contractor_id,
        "contractor_name": kw.pop("contractor_name", f"Contractor {contractor_id}"),
        "doc_type_id": doc_type_id,
        "doc_type_name": kw.pop("doc_type_name", f"Document {doc_type_id}"),
        "required_count": kw.pop("required_count", 3),
        "approved_count": kw.pop("approved_count", 1),
        "overdue_days": overdue_days,
    }
    data.update(kw)
    return CriticalIssue(**data)


def make_red_card(doc_type_id="d1", warning_level=3, risk_score=80, **kw):
    base = make_issue(doc_type_id=doc_type_id, **kw)
    return RedCard(**{**vars(base), "warning_level": warning_level, "risk_score": risk_score})


def make_request(issues=None, red_cards=None, **context):
    return RecommendationRequest(
        contractor_id="c1",
        contractor_name="Contractor c1",
        critical_issues=issues if issues is not None else [make_issue()],
        red_cards=red_cards,
        project_context=ProjectContext(**context),
    )


def make_bundle(project_impact="medium", timeline_impact=5, cost_impact=3,
                pattern_type="isolated", allocation_efficiency=60, resources=None):
    return AnalysisBundle(
        root_cause=RootCauseAnalysis(primary_cause="Late submissions", pattern_type=pattern_type),
        patterns=[],
        impact=ImpactAssessment(project_impact=project_impact, timeline_impact=timeline_impact,
                                cost_impact=cost_impact),
        resources=ResourceOptimization(recommended_resources=resources or ["Document controller"],
                                       allocation_efficiency=allocation_efficiency),
    )


def make_action(action_id="action-1", action_type="meeting", status="pending", details=None, **kw):
    created_at = kw.pop("created_at", FIXED_NOW)
    action_type = ActionType(action_type)
    title = kw.pop("title", f"{action_type.value} action")
    description = kw.pop("description", "Follow up on overdue documents")
    bundle = make_bundle()
    context = ProjectContext()
    priority = scoring.calculate_action_priority(bundle.impact, bundle.root_cause, bundle.resources)
    if details is None:
        details = {
            ActionType.MEETING: MeetingDetails(agenda=["Review"]),
            ActionType.EMAIL: EmailDetails(recipients=["Contractor c1"], subject="Reminder"),
        }.get(action_type)
    return Action(
        id=action_id,
        type=action_type,
        title=title,
        description=description,
        priority=priority,
        root_cause_analysis=bundle.root_cause,
        impact_assessment=bundle.impact,
        resource_optimization=bundle.resources,
        timeline=scoring.plan_timeline(action_type, priority.level, context, now=FIXED_NOW),
        success_probability=scoring.estimate_success_probability(
            action_type, priority.level, bundle.resources, context),
        details=details,
        status=status,
        created_at=created_at,
        updated_at=created_at,
        **kw,
    )


def recommendations_reply(*entries) -> str:
    return json.dumps({"recommendations": list(entries)})
