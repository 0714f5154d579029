"""
Contractor Compliance Decision Engine
Assistants package.

Assistants:
    - recommendation_advisor: Critical issues → ranked recommendations (cached)
    - issue_analyst: Root cause, patterns, impact, resource optimisation
"""

from compliance_engine.ai.assistants.recommendation_advisor import RecommendationAdvisor
from compliance_engine.ai.assistants.issue_analyst import IssueAnalyst

__all__ = [
    "RecommendationAdvisor",
    "IssueAnalyst",
]
