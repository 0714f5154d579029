"""
Contractor Compliance Decision Engine
Issue Analyst — four independent analyses over a contractor's issues.

    - analyze_root_causes:  why the documents are late
    - recognize_patterns:   what recurs across historical records
    - assess_impact:        how much the delays cost the project
    - optimize_resources:   who should work on them

Each analysis is provider-backed with a deterministic fallback and
tolerates an empty issue list. ``analyze`` runs all four concurrently;
they share no mutable state, so no coordination beyond the join is
needed.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

from compliance_engine.ai import fallback as rules
from compliance_engine.ai import response_parser as parser
from compliance_engine.ai.assistants.base import RESOLVE_CONFIG, ProviderBackedAssistant
from compliance_engine.models.analysis import (
    AnalysisBundle,
    ImpactAssessment,
    PatternRecognition,
    ResourceOptimization,
    RootCauseAnalysis,
)
from compliance_engine.models.issues import CriticalIssue, ProjectContext, RecommendationRequest, RedCard

logger = logging.getLogger(__name__)


class IssueAnalyst(ProviderBackedAssistant):
    """Root-cause, pattern, impact and resource analyses."""

    def analyze_root_causes(self, issues: list[CriticalIssue], red_cards: list[RedCard] | None = None,
                            *, config=RESOLVE_CONFIG) -> RootCauseAnalysis:
        return self._ask(
            "root_cause",
            lambda: self.prompts.root_cause(issues, red_cards),
            parser.decode_root_cause,
            lambda: rules.fallback_root_cause(issues, red_cards),
            config=config,
        )

    def recognize_patterns(self, historical_data: list[dict],
                           *, config=RESOLVE_CONFIG) -> list[PatternRecognition]:
        historical_data = historical_data or []
        if not historical_data:
            return []
        return self._ask(
            "pattern_recognition",
            lambda: self.prompts.patterns(historical_data),
            parser.decode_patterns,
            lambda: rules.fallback_patterns(historical_data),
            config=config,
        )

    def assess_impact(self, issues: list[CriticalIssue], context: ProjectContext,
                      *, config=RESOLVE_CONFIG) -> ImpactAssessment:
        return self._ask(
            "impact_assessment",
            lambda: self.prompts.impact(issues, context),
            parser.decode_impact,
            lambda: rules.fallback_impact(issues, context),
            config=config,
        )

    def optimize_resources(self, issues: list[CriticalIssue], available_resources: list[str],
                           *, config=RESOLVE_CONFIG) -> ResourceOptimization:
        available_resources = available_resources or []
        return self._ask(
            "resource_optimization",
            lambda: self.prompts.resources(issues, available_resources),
            parser.decode_resources,
            lambda: rules.fallback_resources(issues, available_resources),
            config=config,
        )

    def analyze(
        self,
        request: RecommendationRequest,
        historical_data: list[dict] | None = None,
        available_resources: list[str] | None = None,
    ) -> AnalysisBundle:
        """Run the four analyses concurrently and join the results."""
        # Resolved once here; worker threads have no application context.
        config = self.active_config()
        issues = request.critical_issues

        with ThreadPoolExecutor(max_workers=4, thread_name_prefix="issue-analyst") as pool:
            root_cause = pool.submit(self.analyze_root_causes, issues, request.red_cards, config=config)
            patterns = pool.submit(self.recognize_patterns, historical_data or [], config=config)
            impact = pool.submit(self.assess_impact, issues, request.project_context, config=config)
            resources = pool.submit(self.optimize_resources, issues, available_resources or [], config=config)

            bundle = AnalysisBundle(
                root_cause=root_cause.result(),
                patterns=patterns.result(),
                impact=impact.result(),
                resources=resources.result(),
            )

        logger.info("Analysis complete for %s: pattern=%s impact=%s",
                    request.contractor_id, bundle.root_cause.pattern_type.value,
                    bundle.impact.project_impact.value)
        return bundle
