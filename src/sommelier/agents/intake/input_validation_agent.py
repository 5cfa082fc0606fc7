"""
sommelier.agents.intake.input_validation_agent - Free-Text Request Validation
===============================================================================

Checks a user's free-text request and pulls out the pieces the rest of the
pipeline can act on: ingredients mentioned in the text and simple wine
preferences (type, budget).

Architecture Context:

    ┌─────────────┐  validate_input   ┌──────────────────────┐
    │ Coordinator │ ────────────────> │ InputValidationAgent │
    │             │ <──────────────── │                      │
    └─────────────┘ validation_result └──────────────────────┘

    Input payload:
        {"message": "What goes with grilled lamb? Under $30, red please."}

    Output payload (validation_result):
        {
            "isValid": true,
            "processedInput": {
                "message": "What goes with grilled lamb? ...",
                "ingredients": ["lamb"],
                "preferences": {"wineType": "red", "maxPrice": 30.0},
            },
        }

    Failures:
        no payload                  MISSING_PAYLOAD
        payload without a message   INVALID_PAYLOAD
        blank or too long message   INPUT_VALIDATION_FAILED
"""

from __future__ import annotations

import re
from typing import Any, Optional

import structlog

from sommelier.agents.base import CommunicatingAgent, HandlerTable
from sommelier.core.config import ValidationConfig
from sommelier.core.enums import AgentId, ErrorCode, MessageType
from sommelier.core.exceptions import AgentError
from sommelier.core.messages import AgentMessage
from sommelier.core.result import Err, Ok, Result
from sommelier.orchestration.enhanced_bus import EnhancedAgentCommunicationBus, HandlerResult

logger = structlog.get_logger()


# =============================================================================
# Vocabulary
# =============================================================================

KNOWN_INGREDIENTS: frozenset[str] = frozenset(
    {
        "beef", "steak", "lamb", "pork", "chicken", "duck", "turkey", "barbecue",
        "fish", "salmon", "tuna", "oysters", "seafood", "shrimp", "lobster", "caviar",
        "pasta", "pizza", "tomato", "mushroom", "asparagus", "salad", "tapas",
        "cheese", "goat cheese", "blue cheese", "foie gras", "dessert", "chocolate",
        "spicy", "thai", "curry", "fried",
    }
)

# Surface forms mapped to the catalogue's wine types.
WINE_TYPES: dict[str, str] = {
    "red": "red",
    "white": "white",
    "rosé": "rosé",
    "rose": "rosé",
    "sparkling": "sparkling",
    "champagne": "sparkling",
    "dessert wine": "dessert",
    "sweet": "dessert",
}

_BUDGET_PATTERN = re.compile(r"(?:under|below|less than|max(?:imum)?|up to)\s*\$?\s*(\d+(?:\.\d+)?)")
_PRICE_PATTERN = re.compile(r"\$\s*(\d+(?:\.\d+)?)")


def extract_ingredients(text: str) -> list[str]:
    """Return known ingredients mentioned in ``text``, in order of first mention."""
    lowered = text.lower()
    found: list[tuple[int, str]] = []
    for ingredient in KNOWN_INGREDIENTS:
        match = re.search(rf"\b{re.escape(ingredient)}s?\b", lowered)
        if match:
            found.append((match.start(), ingredient))
    found.sort()

    # Drop single words already covered by a longer phrase ("cheese" in "goat cheese").
    names = [name for _, name in found]
    return [
        name
        for name in names
        if not any(name != other and name in other for other in names)
    ]


def extract_preferences(text: str) -> dict[str, Any]:
    """Pull a wine type and a price ceiling out of ``text`` when present."""
    lowered = text.lower()
    preferences: dict[str, Any] = {}

    for surface, wine_type in WINE_TYPES.items():
        if re.search(rf"\b{re.escape(surface)}\b", lowered):
            preferences["wineType"] = wine_type
            break

    budget = _BUDGET_PATTERN.search(lowered) or _PRICE_PATTERN.search(lowered)
    if budget:
        preferences["maxPrice"] = float(budget.group(1))

    return preferences


class InputValidationAgent(CommunicatingAgent):
    """Validates free-text requests and extracts ingredients and preferences.

    Attributes:
        config: Length limits for incoming messages.
    """

    def __init__(
        self,
        bus: EnhancedAgentCommunicationBus,
        config: Optional[ValidationConfig] = None,
    ) -> None:
        self.config = config or ValidationConfig()
        super().__init__(
            AgentId.INPUT_VALIDATION.value,
            bus,
            name="InputValidationAgent",
            capabilities=["input-validation", "ingredient-extraction", "preference-extraction"],
        )

    def _register_handlers(self) -> HandlerTable:
        return {MessageType.VALIDATE_INPUT: self._handle_validate_input}

    async def _handle_validate_input(self, message: AgentMessage) -> HandlerResult:
        result = self.validate(message.payload, message.correlation_id)
        if not result.success:
            self._logger.warning(
                "input_validation_failed",
                correlation_id=message.correlation_id,
                error_code=result.error.code,
                reason=result.error.message,
            )
            return result

        self._logger.info(
            "input_validated",
            correlation_id=message.correlation_id,
            ingredients=result.data["processedInput"]["ingredients"],
        )
        return Ok(
            message.create_response(
                MessageType.VALIDATION_RESULT,
                result.data,
                self.agent_id,
            )
        )

    def validate(
        self,
        payload: Any,
        correlation_id: Optional[str] = None,
    ) -> Result[dict[str, Any], AgentError]:
        """Check ``payload`` and build the validation_result body."""
        if payload is None:
            return Err(self._error("Missing payload in validation request", ErrorCode.MISSING_PAYLOAD, correlation_id))

        message = payload.get("message") if isinstance(payload, dict) else None
        if not isinstance(message, str):
            return Err(
                self._error(
                    "Validation request must carry a 'message' string",
                    ErrorCode.INVALID_PAYLOAD,
                    correlation_id,
                )
            )

        text = message.strip()
        if not text:
            return Err(self._error("Message must not be empty", ErrorCode.INPUT_VALIDATION_FAILED, correlation_id))
        if len(text) > self.config.max_message_length:
            return Err(
                self._error(
                    f"Message exceeds {self.config.max_message_length} characters",
                    ErrorCode.INPUT_VALIDATION_FAILED,
                    correlation_id,
                    details={"length": len(text)},
                )
            )

        return Ok(
            {
                "isValid": True,
                "processedInput": {
                    "message": text,
                    "ingredients": extract_ingredients(text),
                    "preferences": extract_preferences(text),
                },
            }
        )

    def _error(
        self,
        message: str,
        code: ErrorCode,
        correlation_id: Optional[str],
        details: Optional[dict[str, Any]] = None,
    ) -> AgentError:
        return AgentError(
            message,
            error_code=code,
            agent_id=self.agent_id,
            correlation_id=correlation_id,
            details=details,
        )
