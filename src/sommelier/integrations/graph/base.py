"""
sommelier.integrations.graph.base - Graph Database Client Interface
=====================================================================

The narrow slice of a graph-database driver the system relies on. The
Recommendation agent never talks to a client directly; it goes through
``GraphCircuitWrapper``, which adds a circuit breaker and Result-shaped
errors.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional


class GraphClient(ABC):
    """Minimal async graph-database client."""

    @abstractmethod
    async def run(
        self,
        query: str,
        params: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        """Execute ``query`` and return its records as plain dicts."""

    @abstractmethod
    async def verify_connectivity(self) -> None:
        """Raise if the database cannot be reached."""

    @abstractmethod
    async def close(self) -> None:
        """Release the client's connections."""
