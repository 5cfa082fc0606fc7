"""
Custom Agent Example — Extending CommunicatingAgent
=====================================================

This example shows how to add your own agent to the bus by subclassing
CommunicatingAgent. A custom agent implements one method:

    _register_handlers()  — Map message types to async handlers.

Each handler receives an AgentMessage and returns a Result:
    Ok(message.create_response(...))  — reply to the sender
    Ok(None)                          — no reply
    Err(AgentError(...))              — reply with an ERROR envelope

In this example, we build a CellarAgent that answers stock queries, then
ask it a question from a second agent using request/response.

Usage:
    python examples/custom_agent.py
"""

from __future__ import annotations

import asyncio
from typing import Any

from sommelier.agents.base import CommunicatingAgent
from sommelier.core.exceptions import AgentError
from sommelier.core.messages import AgentMessage
from sommelier.core.result import Err, Ok
from sommelier.orchestration.enhanced_bus import EnhancedAgentCommunicationBus


# =============================================================================
# Custom Agent: CellarAgent
# =============================================================================
class CellarAgent(CommunicatingAgent):
    """Knows how many bottles of each wine are in the cellar."""

    def __init__(self, bus: EnhancedAgentCommunicationBus, stock: dict[str, int]) -> None:
        self.stock = stock
        super().__init__("cellar-agent", bus, capabilities=["stock-lookup"])

    def _register_handlers(self):
        return {"check-stock": self._handle_check_stock}

    async def _handle_check_stock(self, message: AgentMessage):
        wine = (message.payload or {}).get("wine")
        if wine not in self.stock:
            return Err(
                AgentError(
                    f"No record of {wine!r} in the cellar",
                    error_code="UNKNOWN_WINE",
                    agent_id=self.agent_id,
                    correlation_id=message.correlation_id,
                )
            )
        return Ok(message.create_response("stock-result", {"wine": wine, "bottles": self.stock[wine]}, self.agent_id))


class WaiterAgent(CommunicatingAgent):
    """Asks the cellar before promising a bottle."""

    def _register_handlers(self):
        return {}

    async def ask(self, wine: str) -> Any:
        return await self.send_to_agent("cellar-agent", "check-stock", {"wine": wine})


async def main() -> None:
    """Register two agents and run a couple of stock queries."""
    bus = EnhancedAgentCommunicationBus(default_timeout=2.0)
    CellarAgent(bus, {"Malbec Reserva": 12, "Sancerre": 3})
    waiter = WaiterAgent("waiter-agent", bus)

    print("Cellar Queries")
    print("-" * 40)
    for wine in ("Malbec Reserva", "Sancerre", "Barolo"):
        result = await waiter.ask(wine)
        if result.success:
            print(f"{wine:<16}: {result.data.payload['bottles']} bottles")
        else:
            print(f"{wine:<16}: error {result.error.code} ({result.error.message})")

    await bus.close()


if __name__ == "__main__":
    asyncio.run(main())
