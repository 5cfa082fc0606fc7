"""
Basic Recommendation Example — The Sommelier Facade
=====================================================

This example runs a few requests through the full pipeline using the
mock LLM and the in-memory wine catalogue, so no API keys or database are
needed:

    1. Ingredients only
    2. A free-text message (ingredients and budget are extracted)
    3. An empty request, which takes the fallback path
    4. A request sent over the bus, as another agent would

Usage:
    python examples/basic_recommendation.py
"""

from __future__ import annotations

import asyncio
from typing import Any

from sommelier import Sommelier
from sommelier.core.config import SommelierConfig
from sommelier.integrations.llm.mock import MockLLMProvider


def show(title: str, result: dict[str, Any]) -> None:
    print(title)
    print("-" * 40)
    if "recommendation" in result:
        print(f"Fallback : {result['recommendation']}")
    else:
        names = ", ".join(w["name"] for w in result.get("recommended_wines", []))
        print(f"Wines    : {names or 'none'}")
        print(f"Source   : {result.get('source')}")
        print(f"Why      : {result.get('explanation', 'N/A')}")
    print()


async def main() -> None:
    config = SommelierConfig(log_level="WARNING")

    async with Sommelier(config, llm_provider=MockLLMProvider()) as sommelier:
        show("Ingredients", await sommelier.recommend({"ingredients": ["lamb"]}))
        show(
            "Free text",
            await sommelier.recommend({"message": "Something white under $30 for oysters"}),
        )
        show("Empty request", await sommelier.recommend({}))
        show("Over the bus", await sommelier.recommend_via_bus({"preferences": {"wineType": "red"}}))

        print(f"Dead letters queued: {len(sommelier.dead_letter_queue)}")


if __name__ == "__main__":
    asyncio.run(main())
