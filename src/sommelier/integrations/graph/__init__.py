"""
sommelier.integrations.graph - Wine Knowledge Graph Access
============================================================

    - GraphClient:          abstract async client (run / verify / close)
    - InMemoryGraphClient:  catalogue-backed client for dev and tests
    - GraphCircuitWrapper:  breaker-guarded, Result-returning access
"""

from sommelier.integrations.graph.base import GraphClient
from sommelier.integrations.graph.circuit_wrapper import GraphCircuitWrapper
from sommelier.integrations.graph.memory import DEFAULT_CATALOGUE, InMemoryGraphClient, WineNode

__all__ = [
    "GraphClient",
    "GraphCircuitWrapper",
    "InMemoryGraphClient",
    "WineNode",
    "DEFAULT_CATALOGUE",
]
