"""
Contractor Compliance Decision Engine
Recommendation Advisor.

Pipeline:
    1. Resolve the provider config; no credential → rule-based fallback
    2. Fingerprint the request; a live cache entry short-circuits
    3. Render the recommendations prompt and call the Provider Gateway
    4. Parse the reply (malformed reply → rule-based fallback)
    5. Cache the parsed list under the fingerprint

Results produced because no key is configured or the provider failed are
not cached, so the next call retries the provider.
"""

import logging

from compliance_engine.ai.assistants.base import ProviderBackedAssistant
from compliance_engine.ai.cache import RecommendationCache, fingerprint
from compliance_engine.ai.fallback import generate_fallback_recommendations
from compliance_engine.ai.gateway import AIConfigRepository, resolve_active_config
from compliance_engine.ai.response_parser import parse_recommendations
from compliance_engine.core.exceptions import ProviderError
from compliance_engine.models.issues import Recommendation, RecommendationRequest
from compliance_engine.services.kv_store import InMemoryKeyValueStore

logger = logging.getLogger(__name__)


class RecommendationAdvisor(ProviderBackedAssistant):
    """Turns a contractor's critical issues into ranked recommendations."""

    def __init__(self, gateway=None, prompt_builder=None, store=None, cache: RecommendationCache | None = None):
        super().__init__(gateway=gateway, prompt_builder=prompt_builder, store=store)
        self.cache = cache or RecommendationCache(store or InMemoryKeyValueStore())

    def get_recommendations(self, request: RecommendationRequest) -> list[Recommendation]:
        """
        Recommendations for one contractor. Never raises.

        Returns:
            Provider-generated recommendations when a provider is configured
            and answers usably, otherwise the deterministic fallback list.
        """
        issues = request.critical_issues
        red_cards = request.red_cards

        try:
            config = self.active_config()
            if config is None:
                logger.info("No provider credential configured — rule-based recommendations for %s",
                            request.contractor_id)
                return generate_fallback_recommendations(issues, red_cards)

            key = fingerprint(request)
            cached = self.cache.get(key)
            if cached is not None:
                return cached

            try:
                raw = self.gateway.call(self.prompts.recommendations(request), config)
            except ProviderError as exc:
                logger.warning("Recommendation provider call failed for %s: %s — using fallback",
                               request.contractor_id, exc)
                return generate_fallback_recommendations(issues, red_cards)

            recommendations = parse_recommendations(raw, issues, red_cards)
            self.cache.set(key, recommendations)
            logger.info("Generated %d recommendations for %s (provider=%s)",
                        len(recommendations), request.contractor_id, config.provider)
            return recommendations

        except Exception:
            logger.exception("Recommendation pipeline failed for %s — using fallback",
                             request.contractor_id)
            return generate_fallback_recommendations(issues, red_cards)

    def test_connection(self, config_id: str | None = None) -> dict:
        """
        Probe a stored config (or the active one).

        Returns:
            {"success": bool, "message": str}

        Raises:
            NotFoundError: ``config_id`` is not a stored config.
        """
        if config_id:
            config = AIConfigRepository(self.store or InMemoryKeyValueStore()).get(config_id)
        else:
            config = resolve_active_config(self.store)
        return self.gateway.test_connection(config)
