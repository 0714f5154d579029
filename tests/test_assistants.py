"""
Contractor Compliance Decision Engine
Tests — Recommendation Advisor and Issue Analyst.

Providers are replaced by ScriptedProvider; no test touches the network.
"""

import json

import pytest

from compliance_engine.ai import fallback as rules
from compliance_engine.ai.assistants import IssueAnalyst, RecommendationAdvisor
from compliance_engine.ai.cache import RecommendationCache
from compliance_engine.ai.prompt_registry import PromptBuilder, PromptRegistry
from compliance_engine.core.exceptions import NotFoundError, ProviderError

from conftest import configure_provider, make_issue, make_red_card, make_request, recommendations_reply

PROVIDER_REPLY = recommendations_reply(
    {"severity": "high", "message": "Escalate the overdue RAMS", "action_type": "escalation",
     "estimated_impact": "Unblocks site work", "time_to_implement": "1 day", "ai_confidence": 88},
)


@pytest.fixture
def prompts(tmp_path):
    return PromptBuilder(PromptRegistry(prompts_dir=str(tmp_path)))


@pytest.fixture
def clock():
    return [0.0]


@pytest.fixture
def make_advisor(kv_store, prompts, clock, scripted_gateway):
    """Factory: (reply) -> (RecommendationAdvisor, ScriptedProvider)."""
    def _make(reply=PROVIDER_REPLY, ttl_seconds=3600):
        gateway, provider = scripted_gateway(reply)
        cache = RecommendationCache(kv_store, ttl_seconds=ttl_seconds, clock=lambda: clock[0])
        advisor = RecommendationAdvisor(gateway=gateway, prompt_builder=prompts, store=kv_store, cache=cache)
        return advisor, provider
    return _make


# ═════════════════════════════════════════════════════════════════════════════
# RECOMMENDATION ADVISOR
# ═════════════════════════════════════════════════════════════════════════════

class TestRecommendationAdvisor:

    def test_no_key_uses_fallback_without_calling_provider(self, make_advisor):
        advisor, provider = make_advisor()
        cards = [make_red_card(doc_type_id="d1", warning_level=3, risk_score=85),
                 make_red_card(doc_type_id="d2", warning_level=1, risk_score=40)]
        recs = advisor.get_recommendations(make_request([make_issue()], red_cards=cards))
        assert [(r.severity.value, r.action_type.value, r.risk_score) for r in recs] == [
            ("high", "escalation", 85), ("low", "email", 40),
        ]
        assert provider.calls == []

    def test_provider_result(self, make_advisor, kv_store):
        configure_provider(kv_store)
        advisor, provider = make_advisor()
        recs = advisor.get_recommendations(make_request([make_issue(doc_type_id="d1")]))
        assert len(recs) == 1
        assert recs[0].ai_generated is True
        assert recs[0].ai_confidence == 88
        assert recs[0].related_documents == ["Document d1"]
        assert len(provider.calls) == 1
        assert "Contractor: Contractor c1" in provider.calls[0][-1]["content"]

    def test_cached_within_ttl_and_refreshed_after(self, make_advisor, kv_store, clock):
        configure_provider(kv_store)
        advisor, provider = make_advisor(ttl_seconds=60)
        issues = [make_issue(doc_type_id="d1"), make_issue(doc_type_id="d2")]

        advisor.get_recommendations(make_request(issues))
        clock[0] += 30
        cached = advisor.get_recommendations(make_request(list(reversed(issues))))
        assert len(provider.calls) == 1
        assert cached[0].message == "Escalate the overdue RAMS"

        clock[0] += 31
        advisor.get_recommendations(make_request(issues))
        assert len(provider.calls) == 2

    def test_different_context_not_cached(self, make_advisor, kv_store):
        configure_provider(kv_store)
        advisor, provider = make_advisor()
        advisor.get_recommendations(make_request(deadline_pressure="low"))
        advisor.get_recommendations(make_request(deadline_pressure="high"))
        assert len(provider.calls) == 2

    def test_provider_failure_falls_back_and_is_not_cached(self, make_advisor, kv_store):
        configure_provider(kv_store)
        advisor, provider = make_advisor(ProviderError("HTTP 500", provider="openai", status_code=500))
        request = make_request([make_issue(overdue_days=12)])
        first = advisor.get_recommendations(request)
        second = advisor.get_recommendations(request)
        assert first and first[0].ai_generated is False
        assert first[0].action_type.value == "escalation"
        assert [r.to_dict() for r in first] == [r.to_dict() for r in second]
        assert len(provider.calls) == 2
        assert advisor.cache.get_stats()["entries"] == 0

    def test_malformed_reply_falls_back_and_is_cached(self, make_advisor, kv_store):
        configure_provider(kv_store)
        advisor, provider = make_advisor("Sorry, I can't produce JSON today.")
        request = make_request([make_issue(overdue_days=5)])
        recs = advisor.get_recommendations(request)
        assert recs[0].action_type.value == "meeting"
        assert recs[0].ai_generated is False
        advisor.get_recommendations(request)
        assert len(provider.calls) == 1

    def test_unexpected_error_never_escapes(self, make_advisor, kv_store, monkeypatch):
        configure_provider(kv_store)
        advisor, _ = make_advisor()

        def boom(request):
            raise RuntimeError("template exploded")

        monkeypatch.setattr(advisor.prompts, "recommendations", boom)
        recs = advisor.get_recommendations(make_request([make_issue(overdue_days=1)]))
        assert len(recs) == 1
        assert recs[0].action_type.value == "email"

    def test_test_connection(self, make_advisor, kv_store):
        advisor, _ = make_advisor("OK")
        assert advisor.test_connection()["success"] is False
        configure_provider(kv_store)
        assert advisor.test_connection("cfg-test")["success"] is True
        with pytest.raises(NotFoundError):
            advisor.test_connection("ghost")


# ═════════════════════════════════════════════════════════════════════════════
# ISSUE ANALYST
# ═════════════════════════════════════════════════════════════════════════════

def _analysis_reply(messages):
    prompt = messages[-1]["content"]
    if "Identify the root cause" in prompt:
        return json.dumps({"primary_cause": "Reviewer backlog", "contributing_factors": ["Holidays"],
                           "pattern_type": "recurring", "confidence": 80})
    if "List recurring patterns" in prompt:
        return json.dumps({"patterns": [{"pattern": "Late ITPs", "frequency": 3, "trend": "improving"}]})
    if "Assess the impact" in prompt:
        return json.dumps({"project_impact": "high", "timeline_impact": 6, "cost_impact": 12})
    if "Recommend how to allocate" in prompt:
        return json.dumps({"recommended_resources": ["QA lead"], "allocation_efficiency": 70})
    raise AssertionError(f"unexpected prompt: {prompt[:60]}")


class TestIssueAnalyst:

    def _analyst(self, kv_store, prompts, scripted_gateway, reply):
        gateway, provider = scripted_gateway(reply)
        return IssueAnalyst(gateway=gateway, prompt_builder=prompts, store=kv_store), provider

    def test_analyze_with_provider(self, kv_store, prompts, scripted_gateway):
        configure_provider(kv_store)
        analyst, provider = self._analyst(kv_store, prompts, scripted_gateway, _analysis_reply)
        bundle = analyst.analyze(make_request([make_issue(overdue_days=3)]),
                                 historical_data=[{"contractor_id": "c1"}],
                                 available_resources=["QA lead", "Planner"])
        assert bundle.root_cause.pattern_type.value == "recurring"
        assert bundle.patterns[0].pattern == "Late ITPs"
        assert bundle.impact.project_impact.value == "high"
        assert bundle.resources.allocation_efficiency == 70
        assert len(provider.calls) == 4

    def test_analyze_without_key(self, kv_store, prompts, scripted_gateway):
        analyst, provider = self._analyst(kv_store, prompts, scripted_gateway, _analysis_reply)
        bundle = analyst.analyze(make_request([make_issue(overdue_days=3)]),
                                 available_resources=["QA lead"])
        assert bundle.root_cause.confidence == 60
        assert bundle.patterns == []
        assert bundle.impact.project_impact.value == "low"
        assert bundle.resources.recommended_resources == ["QA lead"]
        assert provider.calls == []

    def test_provider_failure_per_analysis(self, kv_store, prompts, scripted_gateway):
        configure_provider(kv_store)
        analyst, _ = self._analyst(kv_store, prompts, scripted_gateway,
                                   ProviderError("timed out", provider="openai", retryable=True))
        issues = [make_issue(doc_type_id=f"d{i}", overdue_days=2) for i in range(4)]
        rc = analyst.analyze_root_causes(issues)
        assert rc.pattern_type.value == "resource-related"

    def test_unusable_reply_falls_back(self, kv_store, prompts, scripted_gateway):
        configure_provider(kv_store)
        analyst, _ = self._analyst(kv_store, prompts, scripted_gateway, '{"project_impact": "apocalyptic"}')
        impact = analyst.assess_impact([make_issue(overdue_days=20)], make_request().project_context)
        assert impact.project_impact.value == "high"

    def test_patterns_empty_history_skips_provider(self, kv_store, prompts, scripted_gateway):
        configure_provider(kv_store)
        analyst, provider = self._analyst(kv_store, prompts, scripted_gateway, _analysis_reply)
        assert analyst.recognize_patterns([]) == []
        assert provider.calls == []

    def test_empty_issue_list(self, kv_store, prompts, scripted_gateway):
        analyst, _ = self._analyst(kv_store, prompts, scripted_gateway, _analysis_reply)
        bundle = analyst.analyze(make_request([]))
        assert bundle.root_cause.primary_cause == "No outstanding compliance issues"
        assert bundle.resources.bottlenecks == []


def _wrong_shape_reply(messages):
    prompt = messages[-1]["content"]
    if "Identify the root cause" in prompt:
        return '{"primary_cause": "x", "contributing_factors": 5, "confidence": NaN}'
    if "List recurring patterns" in prompt:
        return '{"patterns": [{"pattern": "Late ITPs", "affected_contractors": "c1"}]}'
    if "Assess the impact" in prompt:
        return '{"project_impact": "high", "timeline_impact": 1e400}'
    if "Recommend how to allocate" in prompt:
        return '{"recommended_resources": ["QA"], "bottlenecks": 3}'
    raise AssertionError(f"unexpected prompt: {prompt[:60]}")


class TestIssueAnalystWrongShapes:

    def _analyst(self, kv_store, prompts, scripted_gateway, reply):
        configure_provider(kv_store)
        gateway, provider = scripted_gateway(reply)
        return IssueAnalyst(gateway=gateway, prompt_builder=prompts, store=kv_store), provider

    @pytest.mark.parametrize("reply", [
        '{"primary_cause": "x", "contributing_factors": 5}',
        '{"primary_cause": "x", "confidence": NaN}',
    ])
    def test_root_cause(self, kv_store, prompts, scripted_gateway, reply):
        analyst, provider = self._analyst(kv_store, prompts, scripted_gateway, reply)
        issues = [make_issue(overdue_days=3)]
        rc = analyst.analyze_root_causes(issues)
        assert rc.to_dict() == rules.fallback_root_cause(issues).to_dict()
        assert len(provider.calls) == 1

    def test_patterns(self, kv_store, prompts, scripted_gateway):
        analyst, _ = self._analyst(kv_store, prompts, scripted_gateway,
                                   '{"patterns": [{"pattern": "x", "affected_documents": 7}]}')
        history = [{"contractor_id": "c1"}]
        patterns = analyst.recognize_patterns(history)
        assert [p.to_dict() for p in patterns] == [p.to_dict() for p in rules.fallback_patterns(history)]

    def test_impact_overflow(self, kv_store, prompts, scripted_gateway):
        analyst, _ = self._analyst(kv_store, prompts, scripted_gateway,
                                   '{"project_impact": "high", "timeline_impact": 1e400}')
        issues = [make_issue(overdue_days=20)]
        context = make_request().project_context
        impact = analyst.assess_impact(issues, context)
        assert impact.to_dict() == rules.fallback_impact(issues, context).to_dict()

    def test_resources_scalar_bottlenecks(self, kv_store, prompts, scripted_gateway):
        analyst, _ = self._analyst(kv_store, prompts, scripted_gateway,
                                   '{"recommended_resources": ["QA"], "bottlenecks": 3}')
        issues = [make_issue(overdue_days=3)]
        res = analyst.optimize_resources(issues, ["Planner"])
        assert res.to_dict() == rules.fallback_resources(issues, ["Planner"]).to_dict()

    def test_analyze_never_raises(self, kv_store, prompts, scripted_gateway):
        analyst, provider = self._analyst(kv_store, prompts, scripted_gateway, _wrong_shape_reply)
        bundle = analyst.analyze(make_request([make_issue(overdue_days=3)]),
                                 historical_data=[{"contractor_id": "c1"}],
                                 available_resources=["Planner"])
        assert bundle.root_cause.primary_cause != "x"
        assert bundle.resources.bottlenecks != 3
        assert len(provider.calls) == 4

    def test_unexpected_decode_error_falls_back(self, kv_store, prompts, scripted_gateway):
        analyst, _ = self._analyst(kv_store, prompts, scripted_gateway, "{}")

        def decode(raw):
            raise KeyError("missing")

        prompt = [{"role": "user", "content": "Summarise the backlog"}]
        assert analyst._ask("test", lambda: prompt, decode, lambda: "fallback") == "fallback"
