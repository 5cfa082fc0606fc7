"""
sommelier.agents.intake - Request Intake Agents
=================================================

    - InputValidationAgent: checks free-text requests and extracts
      ingredients and wine preferences from them.
    - LLMPreferenceExtractorAgent: asks the LLM for the preferences a
      request expresses, using the user's conversation so far.
"""

from sommelier.agents.intake.input_validation_agent import (
    InputValidationAgent,
    extract_ingredients,
    extract_preferences,
)
from sommelier.agents.intake.llm_preference_extractor_agent import (
    LLMPreferenceExtractorAgent,
    normalize_preferences,
)

__all__ = [
    "InputValidationAgent",
    "extract_ingredients",
    "extract_preferences",
    "LLMPreferenceExtractorAgent",
    "normalize_preferences",
]
