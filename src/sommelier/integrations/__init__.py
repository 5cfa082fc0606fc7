"""
sommelier.integrations - External Service Integration Layer
=============================================================

Adapters for the collaborators the agents depend on, each behind an
interface so the real service can be swapped for an in-process one.

Sub-packages:
    llm/    - Large Language Model providers
    graph/  - Wine knowledge graph clients
"""

__all__: list[str] = []
