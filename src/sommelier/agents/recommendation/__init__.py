"""
sommelier.agents.recommendation - Recommendation Stage Agents
===============================================================

    - RecommendationAgent:     wines from the knowledge graph (default)
    - LLMRecommendationAgent:  wines from the LLM, structured output
    - ExplanationAgent:        prose explaining the chosen wines
"""

from sommelier.agents.recommendation.explanation_agent import ExplanationAgent
from sommelier.agents.recommendation.llm_recommendation_agent import (
    LLMRecommendation,
    LLMRecommendationAgent,
)
from sommelier.agents.recommendation.recommendation_agent import RecommendationAgent

__all__ = [
    "ExplanationAgent",
    "LLMRecommendation",
    "LLMRecommendationAgent",
    "RecommendationAgent",
]
