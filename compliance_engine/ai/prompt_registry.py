"""
Contractor Compliance Decision Engine
Prompt Registry & Builder.

Templates use ``{{variable}}`` placeholders. Built-in defaults cover the
five analysis kinds; YAML files in a prompts directory (one template per
file, same keys as PromptTemplate) override a built-in of the same name
and version.

PromptBuilder turns domain objects into template variables. Rendering is
pure: no clock, no randomness, stable ordering, so identical inputs give
identical prompt text.

Usage:
    from compliance_engine.ai.prompt_registry import PromptBuilder

    builder = PromptBuilder()
    messages = builder.recommendations(request)
"""

import json
import logging
import os
import re
from pathlib import Path

import yaml

from compliance_engine.models.issues import CriticalIssue, ProjectContext, RecommendationRequest, RedCard

logger = logging.getLogger(__name__)

_PROMPTS_DIR = os.getenv(
    "AI_PROMPTS_DIR",
    os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "prompts"),
)


class PromptTemplate:
    """A single prompt template with metadata."""

    def __init__(self, name: str, version: str, system: str, user: str,
                 description: str = "", metadata: dict | None = None):
        self.name = name
        self.version = version
        self.system = system
        self.user = user
        self.description = description
        self.metadata = metadata or {}

    def render(self, **variables) -> list[dict]:
        """
        Render template with variables, returning chat messages.

        Returns:
            [{"role": "system", "content": ...}, {"role": "user", "content": ...}]
        """
        system_rendered = self._substitute(self.system, variables)
        user_rendered = self._substitute(self.user, variables)

        messages = []
        if system_rendered.strip():
            messages.append({"role": "system", "content": system_rendered})
        if user_rendered.strip():
            messages.append({"role": "user", "content": user_rendered})
        return messages

    @staticmethod
    def _substitute(template: str, variables: dict) -> str:
        """Replace {{var}} placeholders with values; unknown names are left as-is."""
        def replacer(match):
            key = match.group(1).strip()
            return str(variables.get(key, f"{{{{{key}}}}}"))
        return re.sub(r'\{\{(\s*\w+\s*)\}\}', replacer, template)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "system_preview": self.system[:200],
            "user_preview": self.user[:200],
        }


class PromptRegistry:
    """Built-in templates plus optional YAML overrides."""

    def __init__(self, prompts_dir: str | None = None):
        self._prompts_dir = prompts_dir or _PROMPTS_DIR
        self._templates: dict[str, dict[str, PromptTemplate]] = {}  # name → {version → template}
        for tpl in _DEFAULT_TEMPLATES:
            self._register(tpl)
        self._load_from_dir()

    def _load_from_dir(self):
        prompts_path = Path(self._prompts_dir)
        if not prompts_path.exists():
            logger.debug("Prompts directory not found: %s. Using defaults only.", self._prompts_dir)
            return

        for yaml_file in sorted(prompts_path.glob("*.yaml")):
            try:
                with open(yaml_file, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                logger.error("Failed to load prompt %s: %s", yaml_file.name, e)
                continue
            if not data or not isinstance(data, dict):
                continue

            tpl = PromptTemplate(
                name=data.get("name", yaml_file.stem),
                version=data.get("version", "v1"),
                system=data.get("system", ""),
                user=data.get("user", ""),
                description=data.get("description", ""),
                metadata=data.get("metadata", {}),
            )
            self._register(tpl)
            logger.info("Loaded prompt template: %s (%s) from %s",
                        tpl.name, tpl.version, yaml_file.name)

    def _register(self, template: PromptTemplate):
        self._templates.setdefault(template.name, {})[template.version] = template

    def get(self, name: str, version: str = "v1") -> PromptTemplate | None:
        return self._templates.get(name, {}).get(version)

    def render(self, name: str, version: str = "v1", **variables) -> list[dict]:
        """
        Render a prompt template with variables.

        Raises:
            KeyError: If template not found.
        """
        tpl = self.get(name, version)
        if not tpl:
            raise KeyError(f"Prompt template not found: {name} {version}")
        return tpl.render(**variables)

    def list_templates(self) -> list[dict]:
        return [tpl.to_dict() for versions in self._templates.values() for tpl in versions.values()]


# ── Formatting helpers ────────────────────────────────────────────────────────

def _issue_line(issue: CriticalIssue) -> str:
    status = (f"{issue.overdue_days} days overdue" if issue.overdue_days > 0
              else f"due in {issue.days_until_due} days" if issue.days_until_due is not None
              else "no due date")
    return (f"- {issue.contractor_name} / {issue.doc_type_name}: "
            f"{issue.approved_count}/{issue.required_count} approved, {status}")


def _red_card_line(card: RedCard) -> str:
    return f"- [level {card.warning_level.value}, risk {card.risk_score}] {_issue_line(card)[2:]}"


def _format_issues(issues: list[CriticalIssue]) -> str:
    return "\n".join(_issue_line(i) for i in issues) or "- none"


def _format_red_cards(red_cards: list[RedCard] | None) -> str:
    if not red_cards:
        return "- none"
    return "\n".join(_red_card_line(c) for c in red_cards)


def _format_context(ctx: ProjectContext) -> str:
    return (f"phase={ctx.project_phase.value}, "
            f"deadline_pressure={ctx.deadline_pressure.value}, "
            f"stakeholder_visibility={ctx.stakeholder_visibility.value}")


class PromptBuilder:
    """Renders the prompt for each analysis kind from domain objects."""

    def __init__(self, registry: PromptRegistry | None = None):
        self.registry = registry or PromptRegistry()

    def recommendations(self, request: RecommendationRequest) -> list[dict]:
        return self.registry.render(
            "recommendations",
            contractor_name=request.contractor_name,
            issues=_format_issues(request.critical_issues),
            red_cards=_format_red_cards(request.red_cards),
            context=_format_context(request.project_context),
        )

    def root_cause(self, issues: list[CriticalIssue], red_cards: list[RedCard] | None = None) -> list[dict]:
        return self.registry.render(
            "root_cause",
            issues=_format_issues(issues),
            red_cards=_format_red_cards(red_cards),
        )

    def patterns(self, historical_data: list[dict]) -> list[dict]:
        return self.registry.render(
            "pattern_recognition",
            history=json.dumps(historical_data, sort_keys=True, default=str) if historical_data else "[]",
            record_count=len(historical_data),
        )

    def impact(self, issues: list[CriticalIssue], context: ProjectContext) -> list[dict]:
        return self.registry.render(
            "impact_assessment",
            issues=_format_issues(issues),
            context=_format_context(context),
        )

    def resources(self, issues: list[CriticalIssue], available_resources: list[str]) -> list[dict]:
        return self.registry.render(
            "resource_optimization",
            issues=_format_issues(issues),
            resources="\n".join(f"- {r}" for r in available_resources) or "- none",
        )


# ── Built-in Default Templates ────────────────────────────────────────────────

_SYSTEM = (
    "You are an analyst for construction-project document compliance. Contractors must "
    "submit and get approved a required number of documents of each type before a due "
    "date. You receive the outstanding and overdue items and answer ONLY with a single "
    "JSON object in the exact schema requested, without markdown or commentary."
)

_DEFAULT_TEMPLATES = [
    PromptTemplate(
        name="recommendations",
        version="v1",
        description="Ranked remedial recommendations for one contractor",
        system=_SYSTEM,
        user=(
            "Contractor: {{contractor_name}}\n"
            "Project context: {{context}}\n\n"
            "Critical issues:\n{{issues}}\n\n"
            "Red cards (warning level 1=early warning, 2=urgent, 3=overdue):\n{{red_cards}}\n\n"
            "Propose at most 5 recommendations, most urgent first.\n"
            "Schema:\n"
            '{"recommendations": [{"severity": "high|medium|low", "message": "string", '
            '"action_type": "meeting|email|escalation|support|training", '
            '"estimated_impact": "string", "time_to_implement": "string", '
            '"ai_confidence": 0-100, "warning_level": 1-3 or null, "risk_score": 0-100 or null}]}'
        ),
    ),
    PromptTemplate(
        name="root_cause",
        version="v1",
        description="Root cause of the contractor's document delays",
        system=_SYSTEM,
        user=(
            "Critical issues:\n{{issues}}\n\n"
            "Red cards:\n{{red_cards}}\n\n"
            "Identify the root cause of these delays.\n"
            "Schema:\n"
            '{"primary_cause": "string", "contributing_factors": ["string"], '
            '"pattern_type": "recurring|isolated|systemic|resource-related", "confidence": 0-100}'
        ),
    ),
    PromptTemplate(
        name="pattern_recognition",
        version="v1",
        description="Recurring patterns in historical compliance data",
        system=_SYSTEM,
        user=(
            "Historical compliance records ({{record_count}}):\n{{history}}\n\n"
            "List recurring patterns.\n"
            "Schema:\n"
            '{"patterns": [{"pattern": "string", "frequency": integer, '
            '"affected_contractors": ["string"], "affected_documents": ["string"], '
            '"trend": "improving|stable|deteriorating", "confidence": 0-100}]}'
        ),
    ),
    PromptTemplate(
        name="impact_assessment",
        version="v1",
        description="Project impact of the outstanding documents",
        system=_SYSTEM,
        user=(
            "Project context: {{context}}\n\n"
            "Critical issues:\n{{issues}}\n\n"
            "Assess the impact on the project.\n"
            "Schema:\n"
            '{"project_impact": "critical|high|medium|low", "timeline_impact": days, '
            '"cost_impact": number, "quality_impact": "critical|high|medium|low", '
            '"safety_impact": "critical|high|medium|low"}'
        ),
    ),
    PromptTemplate(
        name="resource_optimization",
        version="v1",
        description="Resource allocation for resolving the issues",
        system=_SYSTEM,
        user=(
            "Critical issues:\n{{issues}}\n\n"
            "Available resources:\n{{resources}}\n\n"
            "Recommend how to allocate the available resources.\n"
            "Schema:\n"
            '{"recommended_resources": ["string"], "allocation_efficiency": 0-100, '
            '"bottlenecks": ["string"], "optimization_potential": 0-100}'
        ),
    ),
]
