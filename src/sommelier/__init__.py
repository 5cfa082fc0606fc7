"""
Sommelier - Agent Bus for Wine Recommendations
================================================

Sommelier routes a wine recommendation request through a set of
independent agents that talk over an in-process message bus:

    Input Validation  →  Enrichment  →  Recommendation  →  Explanation
                        (value, prefs,   (knowledge graph    (prose)
                         MCP tools)       or LLM)
                                 ↘ on failure: Fallback agent

Architecture Layers (top to bottom):
    1. Facade               - Sommelier composition root
    2. Orchestration Layer  - Coordinator, buses, circuit breaker, retry,
                              dead-letter pipeline, shared context
    3. Agent Layer          - Stage agents and the fallback agent
    4. Integration Layer    - LLM providers, knowledge graph clients

Quick Start:
    >>> from sommelier import Sommelier
    >>> async with Sommelier() as sommelier:
    ...     result = await sommelier.recommend({"preferences": {"wineType": "red"}})
"""

# =============================================================================
# Package Version
# =============================================================================
__version__ = "0.1.0"

# =============================================================================
# Package-Level Exports
# =============================================================================
# The Sommelier facade is the main entry point. For specific components,
# import from submodules directly:
#   from sommelier.core.config import SommelierConfig
#   from sommelier.orchestration.sommelier_coordinator import SommelierCoordinator
# =============================================================================
from sommelier.facade import Sommelier

__all__ = ["Sommelier", "__version__"]
