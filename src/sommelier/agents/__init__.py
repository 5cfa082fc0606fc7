"""
sommelier.agents - Agent Layer
================================

Every agent is a ``CommunicatingAgent``: it registers a handler table on the
enhanced bus and talks to the others only through messages.

Pipeline Stages (as sequenced by the SommelierCoordinator):

    ┌──────────────┐   ┌──────────────────────────────────┐   ┌────────────────┐   ┌─────────────┐
    │ Input        │ → │ Enrichment (optional)             │ → │ Recommendation │ → │ Explanation │
    │ Validation   │   │ Value · Preference · MCP Adapter  │   │ graph or LLM   │   │ (optional)  │
    └──────────────┘   └──────────────────────────────────┘   └────────────────┘   └─────────────┘
            │
            └── on an unusable request ──→ FallbackAgent

Sub-packages:
    intake/          - InputValidationAgent, LLMPreferenceExtractorAgent
    enrichment/      - ValueAnalysisAgent, UserPreferenceAgent, MCPAdapterAgent
    recommendation/  - RecommendationAgent, LLMRecommendationAgent, ExplanationAgent
"""

from sommelier.agents.base import CommunicatingAgent, HandlerTable
from sommelier.agents.enrichment import MCPAdapterAgent, UserPreferenceAgent, ValueAnalysisAgent
from sommelier.agents.fallback_agent import FallbackAgent
from sommelier.agents.intake import InputValidationAgent, LLMPreferenceExtractorAgent
from sommelier.agents.recommendation import (
    ExplanationAgent,
    LLMRecommendationAgent,
    RecommendationAgent,
)

__all__ = [
    "CommunicatingAgent",
    "HandlerTable",
    "InputValidationAgent",
    "LLMPreferenceExtractorAgent",
    "ValueAnalysisAgent",
    "UserPreferenceAgent",
    "MCPAdapterAgent",
    "RecommendationAgent",
    "LLMRecommendationAgent",
    "ExplanationAgent",
    "FallbackAgent",
]
