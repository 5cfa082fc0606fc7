"""
sommelier.integrations.graph.memory - In-Memory Wine Knowledge Graph
======================================================================

A ``GraphClient`` backed by a list of wine nodes. Query text is not parsed;
the parameters drive the lookup:

    ingredients  wines whose pairings mention any of the ingredients
    wine_type    wines of that type ("red", "white", "rosé", "sparkling", ...)
    max_price    wines at or below the price
    limit        maximum number of records (default 5)

Records come back as plain dicts, best matches first (more pairing hits,
then higher rating).

Usage:
    >>> client = InMemoryGraphClient()
    >>> await client.run("MATCH (w:Wine) ...", {"ingredients": ["beef"]})
    [{'name': 'Malbec Reserva', 'type': 'red', ...}, ...]
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

from sommelier.integrations.graph.base import GraphClient

logger = structlog.get_logger()


class WineNode(BaseModel):
    """A wine in the knowledge graph."""

    name: str
    type: str = Field(description="red, white, rosé, sparkling or dessert")
    region: str = ""
    grape: str = ""
    price: float = Field(default=0.0, ge=0)
    rating: float = Field(default=0.0, ge=0, le=5)
    pairings: list[str] = Field(default_factory=list)


DEFAULT_CATALOGUE: list[WineNode] = [
    WineNode(name="Malbec Reserva", type="red", region="Mendoza", grape="Malbec",
             price=22.0, rating=4.3, pairings=["beef", "lamb", "barbecue"]),
    WineNode(name="Chianti Classico", type="red", region="Tuscany", grape="Sangiovese",
             price=19.0, rating=4.2, pairings=["pasta", "tomato", "pizza", "beef"]),
    WineNode(name="Pinot Noir", type="red", region="Burgundy", grape="Pinot Noir",
             price=35.0, rating=4.5, pairings=["duck", "salmon", "mushroom", "chicken"]),
    WineNode(name="Sancerre", type="white", region="Loire", grape="Sauvignon Blanc",
             price=28.0, rating=4.4, pairings=["goat cheese", "fish", "asparagus"]),
    WineNode(name="Chablis", type="white", region="Burgundy", grape="Chardonnay",
             price=30.0, rating=4.3, pairings=["oysters", "fish", "chicken"]),
    WineNode(name="Riesling Kabinett", type="white", region="Mosel", grape="Riesling",
             price=18.0, rating=4.1, pairings=["spicy", "pork", "thai"]),
    WineNode(name="Provence Rosé", type="rosé", region="Provence", grape="Grenache",
             price=16.0, rating=4.0, pairings=["salad", "seafood", "tapas"]),
    WineNode(name="Champagne Brut", type="sparkling", region="Champagne", grape="Chardonnay",
             price=45.0, rating=4.6, pairings=["oysters", "fried", "caviar"]),
    WineNode(name="Sauternes", type="dessert", region="Bordeaux", grape="Sémillon",
             price=40.0, rating=4.5, pairings=["foie gras", "blue cheese", "dessert"]),
]


class InMemoryGraphClient(GraphClient):
    """Process-local knowledge graph for development and tests.

    Attributes:
        wines: The catalogue queried by ``run``.
    """

    def __init__(self, wines: Optional[list[WineNode]] = None) -> None:
        self.wines = list(wines) if wines is not None else list(DEFAULT_CATALOGUE)
        self.queries: list[tuple[str, dict[str, Any]]] = []
        self._closed = False
        self._should_fail = False
        self._failure_message = "Graph database unavailable"
        self._logger = logger.bind(component="in_memory_graph")

    def set_should_fail(self, should_fail: bool, message: str = "Graph database unavailable") -> None:
        """Make every following call raise ConnectionError(message)."""
        self._should_fail = should_fail
        self._failure_message = message

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_available(self) -> None:
        if self._closed:
            raise ConnectionError("Graph client is closed")
        if self._should_fail:
            raise ConnectionError(self._failure_message)

    async def run(
        self,
        query: str,
        params: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        params = dict(params or {})
        self.queries.append((query, params))
        self._check_available()

        ingredients = [str(i).lower() for i in params.get("ingredients") or []]
        wine_type = params.get("wine_type")
        max_price = params.get("max_price")
        limit = int(params.get("limit", 5))

        scored: list[tuple[int, WineNode]] = []
        for wine in self.wines:
            if wine_type and wine.type.lower() != str(wine_type).lower():
                continue
            if max_price is not None and wine.price > float(max_price):
                continue
            hits = sum(
                1
                for ingredient in ingredients
                if any(ingredient in pairing or pairing in ingredient for pairing in wine.pairings)
            )
            if ingredients and hits == 0:
                continue
            scored.append((hits, wine))

        scored.sort(key=lambda item: (item[0], item[1].rating), reverse=True)
        records = [wine.model_dump() for _, wine in scored[:limit]]
        self._logger.debug("graph_query_executed", params=params, record_count=len(records))
        return records

    async def verify_connectivity(self) -> None:
        self._check_available()

    async def close(self) -> None:
        self._closed = True
