"""
sommelier.orchestration.conversation_history - Per-User Conversation Turns
============================================================================

Keeps the recent back-and-forth of each user so that later requests (and the
LLM preference extractor) can see what was said before.

    user u1 ──> [user: "Something white under $30"]
                [assistant: "Sancerre, Chablis"]
                [user: "What about with oysters?"]
                ...                       at most ``max_turns``, oldest dropped

The store is process-local and unbounded in the number of users. A request
that carries its own ``conversation_history`` does not read from it.

Usage:
    >>> history = ConversationHistoryStore(max_turns=20)
    >>> history.add_turn("u1", "user", "Something white under $30")
    >>> [turn.content for turn in history.get_history("u1")]
    ['Something white under $30']
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

logger = structlog.get_logger()

Role = Literal["user", "assistant"]


class ConversationTurn(BaseModel):
    """One message in a user's conversation."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ConversationHistoryStore:
    """In-memory conversation turns keyed by user id.

    Attributes:
        max_turns: Turns kept per user. Older turns are dropped first.
    """

    def __init__(self, max_turns: int = 50) -> None:
        if max_turns < 1:
            raise ValueError(f"max_turns must be at least 1, got {max_turns}")
        self.max_turns = max_turns
        self._turns: dict[str, list[ConversationTurn]] = {}
        self._logger = logger.bind(component="conversation_history")

    def add_turn(self, user_id: str, role: Role, content: str) -> ConversationTurn:
        turn = ConversationTurn(role=role, content=content)
        turns = self._turns.setdefault(user_id, [])
        turns.append(turn)
        if len(turns) > self.max_turns:
            del turns[: len(turns) - self.max_turns]
        self._logger.debug("conversation_turn_added", user_id=user_id, role=role, size=len(turns))
        return turn

    def get_history(self, user_id: str, limit: Optional[int] = None) -> list[ConversationTurn]:
        """Return a copy of the user's turns, oldest first.

        Args:
            user_id: User whose turns to read. Unknown users have none.
            limit: When given, only the most recent ``limit`` turns.
        """
        turns = list(self._turns.get(user_id, []))
        if limit is not None:
            turns = turns[-limit:] if limit > 0 else []
        return turns

    def clear(self, user_id: str) -> None:
        self._turns.pop(user_id, None)

    def __len__(self) -> int:
        return len(self._turns)
