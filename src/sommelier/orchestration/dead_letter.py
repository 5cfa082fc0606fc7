"""
sommelier.orchestration.dead_letter - Dead-Letter Queue and Processor
=======================================================================

Failed work that the pipeline chose to tolerate is handed to the
dead-letter processor instead of being dropped on the floor.

Architecture Context:

    ┌──────────────┐ process(msg, err, meta) ┌──────────────────────┐
    │ Coordinator  │ ──────────────────────> │ DeadLetterProcessor  │
    │ / agents     │      (never raises)     │                      │
    └──────────────┘                         │  RetryManager        │
                                             │   └─ gather(handlers)│
                                             └──────────┬───────────┘
                                                        │ handlers keep failing
                                                        v
                                             _handle_permanent_failure
                                                        │
                                                        v
                                             ┌──────────────────────┐
                                             │ InMemoryDeadLetterQ. │
                                             │  [DeadLetterRecord]  │
                                             └──────────────────────┘

Handlers get the first shot at a failure (alerting, logging, forwarding).
A DeadLetterRecord is kept only when the handlers themselves fail after all
retry attempts; ``add_to_dlq`` appends one directly.
``replay`` runs the handlers again for queued records, giving each record at
most ``max_replay_attempts`` replays before it is left in the queue for good.

Usage:
    >>> queue = InMemoryDeadLetterQueue()
    >>> processor = BasicDeadLetterProcessor(queue, BasicRetryManager())
    >>> await processor.process(request, error, {"stage": "ValueAnalysisAgent"})
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from sommelier.core.exceptions import SommelierError
from sommelier.orchestration.retry_manager import RetryManager

# =============================================================================
# Logger Setup
# =============================================================================
logger = structlog.get_logger()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Dead-Letter Record
# =============================================================================
class DeadLetterRecord(BaseModel):
    """One permanently failed piece of work.

    Attributes:
        message: The original object that failed, kept as-is.
        error: The error's message string.
        metadata: Caller-supplied context (source, stage, correlation_id).
        timestamp: ISO-8601 UTC time the record was appended.
        replay_count: Times ``replay`` has re-run the handlers for it.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    message: Any = Field(description="The original failed message, unchanged")
    error: str = Field(description="Error message")
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=_now_iso)
    replay_count: int = Field(default=0, ge=0)


# =============================================================================
# Queue
# =============================================================================
class InMemoryDeadLetterQueue:
    """Append-only, unbounded, process-local store of DeadLetterRecords."""

    def __init__(self) -> None:
        self._records: list[DeadLetterRecord] = []

    def add(self, record: DeadLetterRecord) -> None:
        self._records.append(record)

    def get_all(self) -> list[DeadLetterRecord]:
        """Return a copy of the stored records, oldest first."""
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()

    def size(self) -> int:
        return len(self._records)

    def __len__(self) -> int:
        return len(self._records)


# =============================================================================
# Handlers
# =============================================================================
class DeadLetterHandler(ABC):
    """Reacts to a dead-lettered failure. May raise; the processor retries."""

    @abstractmethod
    async def handle(
        self,
        message: Any,
        error: BaseException,
        metadata: dict[str, Any],
    ) -> None:
        ...


class LoggingDeadLetterHandler(DeadLetterHandler):
    """Writes the failure to the structured log. Never raises."""

    def __init__(self) -> None:
        self._logger = logger.bind(component="dead_letter_handler")

    async def handle(
        self,
        message: Any,
        error: BaseException,
        metadata: dict[str, Any],
    ) -> None:
        self._logger.error(
            "dead_letter_received",
            error=str(error),
            error_type=type(error).__name__,
            error_code=getattr(error, "error_code", None),
            source=metadata.get("source"),
            stage=metadata.get("stage"),
            correlation_id=metadata.get("correlation_id"),
        )


# =============================================================================
# Processors
# =============================================================================
class DeadLetterProcessor(ABC):
    """Fans a failure out to handlers, retrying them as a group.

    ``process`` is the dead-letter boundary: it never raises to its caller.
    """

    def __init__(
        self,
        retry_manager: RetryManager,
        handlers: Iterable[DeadLetterHandler],
        max_replay_attempts: int = 3,
    ) -> None:
        self.retry_manager = retry_manager
        self.handlers: list[DeadLetterHandler] = list(handlers)
        self.max_replay_attempts = max_replay_attempts
        self._logger = logger.bind(component="dead_letter_processor")

    async def process(
        self,
        message: Any,
        error: BaseException,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """Run every handler concurrently through the retry manager.

        If the handlers still fail after retries, the permanent-failure hook
        takes over. Any error from the hook itself is logged and swallowed.
        """
        metadata = dict(metadata or {})

        async def run_handlers() -> None:
            await asyncio.gather(
                *(handler.handle(message, error, metadata) for handler in self.handlers)
            )

        try:
            await self.retry_manager.execute_with_retry(run_handlers)
        except Exception as handler_error:
            self._logger.warning(
                "dead_letter_handlers_failed",
                error=str(error),
                handler_error=str(handler_error),
                stage=metadata.get("stage"),
            )
            try:
                await self._handle_permanent_failure(message, error, metadata)
            except Exception as hook_error:
                self._logger.error(
                    "dead_letter_permanent_failure_hook_failed",
                    error=str(error),
                    hook_error=str(hook_error),
                )

    @abstractmethod
    async def _handle_permanent_failure(
        self,
        message: Any,
        error: BaseException,
        metadata: dict[str, Any],
    ) -> None:
        ...


class BasicDeadLetterProcessor(DeadLetterProcessor):
    """Keeps permanently failed work in an InMemoryDeadLetterQueue.

    Example:
        >>> processor = BasicDeadLetterProcessor(queue, BasicRetryManager())
        >>> processor.add_to_dlq(error, request, {"stage": "InputValidation"})
        >>> len(queue)
        1
    """

    def __init__(
        self,
        queue: InMemoryDeadLetterQueue,
        retry_manager: RetryManager,
        handlers: Optional[Iterable[DeadLetterHandler]] = None,
        max_replay_attempts: int = 3,
    ) -> None:
        super().__init__(
            retry_manager=retry_manager,
            handlers=handlers if handlers is not None else [LoggingDeadLetterHandler()],
            max_replay_attempts=max_replay_attempts,
        )
        self.queue = queue

    async def _handle_permanent_failure(
        self,
        message: Any,
        error: BaseException,
        metadata: dict[str, Any],
    ) -> None:
        self.add_to_dlq(error, message, metadata)

    def add_to_dlq(
        self,
        error: BaseException,
        message: Any,
        metadata: Optional[dict[str, Any]] = None,
    ) -> DeadLetterRecord:
        """Append a record for ``message`` straight to the queue."""
        record = DeadLetterRecord(
            message=message,
            error=str(error),
            metadata=dict(metadata or {}),
        )
        self.queue.add(record)
        self._logger.error(
            "dead_letter_recorded",
            error=record.error,
            stage=record.metadata.get("stage"),
            dlq_size=len(self.queue),
        )
        return record

    async def replay(self) -> dict[str, int]:
        """Run the handlers again for every queued record.

        A record whose handlers now succeed leaves the queue. A record that
        fails again stays with its ``replay_count`` bumped. Records that
        already used ``max_replay_attempts`` replays are skipped.

        Returns:
            Counts of ``replayed``, ``failed`` and ``exhausted`` records.
        """
        records = self.queue.get_all()
        self.queue.clear()
        summary = {"replayed": 0, "failed": 0, "exhausted": 0}

        for record in records:
            if record.replay_count >= self.max_replay_attempts:
                summary["exhausted"] += 1
                self.queue.add(record)
                continue

            error = SommelierError(record.error, error_code="DEAD_LETTER_REPLAY")
            metadata = dict(record.metadata)

            async def run_handlers() -> None:
                await asyncio.gather(
                    *(handler.handle(record.message, error, metadata) for handler in self.handlers)
                )

            try:
                await self.retry_manager.execute_with_retry(run_handlers)
            except Exception as handler_error:
                summary["failed"] += 1
                self.queue.add(record.model_copy(update={"replay_count": record.replay_count + 1}))
                self._logger.warning(
                    "dead_letter_replay_failed",
                    error=record.error,
                    handler_error=str(handler_error),
                    stage=record.metadata.get("stage"),
                    replay_count=record.replay_count + 1,
                )
            else:
                summary["replayed"] += 1

        self._logger.info("dead_letter_replay_complete", dlq_size=len(self.queue), **summary)
        return summary
