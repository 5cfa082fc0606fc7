"""
sommelier.agents.enrichment - Optional Pipeline Stages
========================================================

Stages the coordinator runs before recommending. Each may fail without
failing the request.

    ┌────────────────────┐     ┌─────────────────────┐     ┌─────────────────┐
    │ ValueAnalysisAgent │ ──→ │ UserPreferenceAgent │ ──→ │ MCPAdapterAgent │
    │ (LLM commentary)   │     │ (stored prefs)      │     │ (tool calls)    │
    └────────────────────┘     └─────────────────────┘     └─────────────────┘
"""

from sommelier.agents.enrichment.mcp_adapter_agent import MCPAdapterAgent
from sommelier.agents.enrichment.user_preference_agent import UserPreferenceAgent
from sommelier.agents.enrichment.value_analysis_agent import ValueAnalysisAgent

__all__ = [
    "MCPAdapterAgent",
    "UserPreferenceAgent",
    "ValueAnalysisAgent",
]
