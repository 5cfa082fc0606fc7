"""
sommelier.orchestration.context_memory - Per-Agent Shared Context
===================================================================

A small key/value store partitioned by agent id. Agents use it to remember
things across requests (a user's preferences, their recommendation
history) and to hand context to one another through the bus.

Every write is also appended to a per-key version history, so callers can
see how a key evolved across all agents that wrote it.
"""

from __future__ import annotations

import base64
import json
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


def version_hash(value: Any) -> str:
    """Short content fingerprint: base64 of the JSON form, first 16 chars."""
    if isinstance(value, (dict, list, tuple)):
        text = json.dumps(value, default=str)
    else:
        text = str(value)
    return base64.b64encode(text.encode("utf-8")).decode("ascii")[:16]


class ContextEntry(BaseModel):
    """Current value of one key for one agent."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    value: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_now)
    version_hash: str = ""


class ContextVersion(BaseModel):
    """One historical write of a key."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    value: Any = None
    timestamp: datetime = Field(default_factory=_now)
    version_hash: str = ""


class SharedContextMemory:
    """In-process context store keyed by (owner, key)."""

    def __init__(self) -> None:
        self._contexts: dict[str, dict[str, ContextEntry]] = {}
        self._version_history: dict[str, list[ContextVersion]] = {}

    def set_context(
        self,
        owner: str,
        key: str,
        value: Any,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ContextEntry:
        digest = version_hash(value)
        entry = ContextEntry(value=value, metadata=dict(metadata or {}), version_hash=digest)
        self._contexts.setdefault(owner, {})[key] = entry
        self._version_history.setdefault(key, []).append(
            ContextVersion(value=value, timestamp=entry.timestamp, version_hash=digest)
        )
        return entry

    def get_context(self, owner: str, key: str) -> Optional[ContextEntry]:
        return self._contexts.get(owner, {}).get(key)

    def get_version_history(self, key: str) -> list[ContextVersion]:
        return list(self._version_history.get(key, []))

    def forget_owner(self, owner: str) -> None:
        self._contexts.pop(owner, None)
