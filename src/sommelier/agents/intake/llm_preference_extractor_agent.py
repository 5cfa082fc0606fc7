"""
sommelier.agents.intake.llm_preference_extractor_agent - LLM Preference Extraction
====================================================================================

Reads a free-text request together with the user's recent conversation and
asks the LLM which ingredients and wine preferences it expresses. Extracted
preferences are normalized and merged into the preferences the
UserPreferenceAgent keeps for that user.

Message Types:
    preference_extraction_request
        payload  {"input": "no reds, something bone dry", "user_id": "u1",
                  "history": [{"role": "user", "content": "..."}]}
        reply    preference_extraction_result
                 {"is_valid": true, "ingredients": [...],
                  "preferences": {"sweetness": "dry"},
                  "excluded": {"wineType": "red"}, "user_id": "u1"}

    ``message`` is accepted in place of ``input``. Without ``history`` the
    turns stored for the user in the ConversationHistoryStore are used.

Normalization:
    strings          trimmed, lowercased, mapped through the synonym table
    "not <value>"    moved to ``excluded`` and never stored
    priceRange       [min, max] of numbers, or one number as [n, n]
    other values     strings, numbers, booleans and lists kept; anything
                     else dropped

Failure Handling:
    LLM call failed         dead-letter stage "PreferenceExtractionCall"
    output did not parse    dead-letter stage "PreferenceExtractionParsing"
    LLM judged it invalid   INPUT_VALIDATION_FAILED, nothing dead-lettered

    In each case the caller receives the error envelope.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field

from sommelier.agents.base import CommunicatingAgent, HandlerTable
from sommelier.agents.enrichment.user_preference_agent import preferences_key
from sommelier.core.enums import AgentId, ErrorCode, MessageType
from sommelier.core.exceptions import AgentError
from sommelier.core.messages import AgentMessage
from sommelier.core.result import Err, Ok
from sommelier.integrations.llm.base import BaseLLMProvider
from sommelier.orchestration.conversation_history import ConversationHistoryStore
from sommelier.orchestration.dead_letter import DeadLetterProcessor
from sommelier.orchestration.enhanced_bus import EnhancedAgentCommunicationBus, HandlerResult

SYSTEM_PROMPT = (
    "You extract wine preferences from restaurant guests' requests. "
    "Reply with JSON only, no prose around it."
)

HISTORY_TURNS = 10

SYNONYMS: dict[str, dict[str, str]] = {
    "wineType": {
        "red": "red",
        "white": "white",
        "rose": "rose",
        "rosé": "rose",
        "sparkling": "sparkling",
        "bubbly": "sparkling",
    },
    "sweetness": {
        "dry": "dry",
        "bone dry": "dry",
        "off-dry": "off-dry",
        "sweet": "sweet",
        "very sweet": "sweet",
    },
    "body": {
        "light": "light",
        "light-bodied": "light",
        "medium": "medium",
        "medium-bodied": "medium",
        "full": "full",
        "full-bodied": "full",
    },
    "region": {
        "france": "France",
        "italy": "Italy",
        "spain": "Spain",
        "usa": "USA",
        "australia": "Australia",
    },
}


class ExtractedPreferences(BaseModel):
    """Shape the LLM must answer with."""

    is_valid: bool = Field(default=True, validation_alias=AliasChoices("isValid", "is_valid"))
    ingredients: list[str] = Field(default_factory=list)
    preferences: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


def normalize_preferences(raw: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split ``raw`` into (preferences, excluded), normalizing each value.

    Example:
        >>> normalize_preferences({"wineType": "Not Red", "body": "Full-Bodied"})
        ({'body': 'full'}, {'wineType': 'red'})
    """
    preferences: dict[str, Any] = {}
    excluded: dict[str, Any] = {}

    for key, value in raw.items():
        negated = False
        if isinstance(value, str):
            value = value.strip().lower()
            if value.startswith("not "):
                negated = True
                value = value[4:].strip()
            value = SYNONYMS.get(key, {}).get(value, value)

        if key == "priceRange":
            if isinstance(value, bool):
                continue
            if isinstance(value, (int, float)):
                value = [value, value]
            elif not (
                isinstance(value, list)
                and 0 < len(value) <= 2
                and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value)
            ):
                continue
        elif not isinstance(value, (str, int, float, bool, list)):
            continue

        (excluded if negated else preferences)[key] = value

    return preferences, excluded


class LLMPreferenceExtractorAgent(CommunicatingAgent):
    """Extracts structured wine preferences from free text with the LLM."""

    def __init__(
        self,
        bus: EnhancedAgentCommunicationBus,
        llm_provider: BaseLLMProvider,
        dead_letter_processor: DeadLetterProcessor,
        history: Optional[ConversationHistoryStore] = None,
    ) -> None:
        self.llm_provider = llm_provider
        self.dead_letter_processor = dead_letter_processor
        self.history = history or ConversationHistoryStore()
        super().__init__(
            AgentId.LLM_PREFERENCE_EXTRACTOR.value,
            bus,
            name="LLMPreferenceExtractorAgent",
            capabilities=["preference-extraction", "llm-integration"],
        )

    def _register_handlers(self) -> HandlerTable:
        return {MessageType.PREFERENCE_EXTRACTION_REQUEST: self._handle_extract}

    async def _handle_extract(self, message: AgentMessage) -> HandlerResult:
        correlation_id = message.correlation_id
        payload = message.payload if isinstance(message.payload, dict) else {}
        text = payload.get("input") or payload.get("message")
        if not isinstance(text, str) or not text.strip():
            return Err(
                AgentError(
                    "Preference extraction needs a non-empty 'input' string",
                    error_code=ErrorCode.INVALID_PAYLOAD,
                    agent_id=self.agent_id,
                    correlation_id=correlation_id,
                )
            )

        user_id: Optional[str] = payload.get("user_id") or payload.get("userId") or message.user_id
        history = payload.get("history")
        if history is None and user_id:
            history = [turn.model_dump(include={"role", "content"}) for turn in self.history.get_history(user_id)]

        result = await self.llm_provider.send_structured_prompt(
            self._build_prompt(text, history or []),
            ExtractedPreferences,
            correlation_id=correlation_id,
            system_prompt=SYSTEM_PROMPT,
        )

        if not result.success:
            error = result.error
            stage = (
                "PreferenceExtractionParsing"
                if error.details.get("stage") == "parsing"
                else "PreferenceExtractionCall"
            )
            await self.dead_letter_processor.process(
                payload,
                error,
                {"source": self.get_name(), "stage": stage, "correlation_id": correlation_id},
            )
            self._logger.warning(
                "preference_extraction_failed",
                correlation_id=correlation_id,
                stage=stage,
                error=error.message,
            )
            return Err(error)

        extracted = result.data
        if not extracted.is_valid:
            return Err(
                AgentError(
                    extracted.error or "Request is not a wine recommendation request",
                    error_code=ErrorCode.INPUT_VALIDATION_FAILED,
                    agent_id=self.agent_id,
                    correlation_id=correlation_id,
                    recoverable=False,
                )
            )

        preferences, excluded = normalize_preferences(extracted.preferences)
        if user_id and preferences:
            self._persist(user_id, preferences, correlation_id)

        self._logger.info(
            "preferences_extracted",
            correlation_id=correlation_id,
            user_id=user_id,
            keys=sorted(preferences),
            excluded=sorted(excluded),
        )
        return Ok(
            message.create_response(
                MessageType.PREFERENCE_EXTRACTION_RESULT,
                {
                    "is_valid": True,
                    "ingredients": extracted.ingredients,
                    "preferences": preferences,
                    "excluded": excluded,
                    "user_id": user_id,
                },
                self.agent_id,
            )
        )

    def _persist(self, user_id: str, preferences: dict[str, Any], correlation_id: str) -> None:
        owner = AgentId.USER_PREFERENCE.value
        stored = self.bus.get_context(owner, preferences_key(user_id)) or {}
        self.bus.set_context(
            owner,
            preferences_key(user_id),
            {**stored, **preferences},
            metadata={"correlation_id": correlation_id, "source": "llm"},
        )

    @staticmethod
    def _build_prompt(text: str, history: list[dict[str, Any]]) -> str:
        lines = [
            "Analyze the guest's input for a wine recommendation request, "
            "considering the conversation so far. Decide whether it is a valid "
            "request and extract ingredients and wine preferences.",
            'Respond with JSON: {"isValid": <bool>, "ingredients": [<strings>], '
            '"preferences": {<name>: <value>}, "error": <string or null>}',
        ]
        for turn in history[-HISTORY_TURNS:]:
            lines.append(f"{turn.get('role', 'user')}: {turn.get('content', '')}")
        lines.append(f'User input: "{text}"')
        return "\n".join(lines)
