"""
sommelier.orchestration.enhanced_bus - Correlated Request/Response Routing
============================================================================

Adds typed message handlers and correlation-id based request/response on top
of the base ``AgentCommunicationBus``.

Request/Response Flow:

    caller                         EnhancedAgentCommunicationBus                target agent
      │ send_message_and_wait_for_response(target, msg)                              │
      │ ──────────────────────────> │ 1. pending[corr_id] = (future, timer)         │
      │                             │ 2. route in a background task ──────────────> │ handler(msg)
      │                             │                                               │
      │                             │ <──────────── Ok(response) / Err / raise ──── │
      │                             │ 3. send_response(): pop pending[corr_id],     │
      │                             │    cancel timer, resolve future               │
      │ <──── Ok(envelope) / Err ── │                                               │
      │                             │                                               │
      │        (timer fires first)  │ pending popped → Err(TIMEOUT_ERROR)           │

Routing failures never raise. They become ``ERROR`` envelopes addressed to
the sender, which resolve the sender's pending request as
``Err(AgentError)``:

    NO_HANDLER_REGISTERED    target agent has no handlers at all
    NO_MESSAGE_TYPE_HANDLER  target has no handler for message.type
    HANDLER_EXECUTION_ERROR  the handler raised
    (handler's own code)     the handler returned Err

Usage:
    >>> bus = EnhancedAgentCommunicationBus(default_timeout=5.0)
    >>> bus.register_message_handler("explanation-agent", MessageType.GENERATE_EXPLANATION, handler)
    >>> result = await bus.send_message_and_wait_for_response("explanation-agent", msg)
    >>> if result.success:
    ...     print(result.data.payload)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine, Optional, Union

import structlog

from sommelier.core.enums import ErrorCode, MessageType, as_str
from sommelier.core.exceptions import AgentError, MessageBusError
from sommelier.core.messages import AgentMessage, create_agent_message
from sommelier.core.result import Err, Ok, Result
from sommelier.integrations.llm.base import BaseLLMProvider
from sommelier.orchestration.communication_bus import AgentCommunicationBus

# =============================================================================
# Logger Setup
# =============================================================================
logger = structlog.get_logger()

HandlerResult = Result[Optional[AgentMessage], AgentError]
MessageHandler = Callable[[AgentMessage], Awaitable[HandlerResult]]

BROADCAST_TARGET = "*"


@dataclass
class _PendingResponse:
    future: asyncio.Future
    timer: asyncio.TimerHandle


class EnhancedAgentCommunicationBus(AgentCommunicationBus):
    """Message bus with per-agent handler tables and awaited responses.

    Attributes:
        default_timeout: Seconds ``send_message_and_wait_for_response``
            waits when the caller passes no timeout.
    """

    def __init__(
        self,
        llm_provider: Optional[BaseLLMProvider] = None,
        default_timeout: float = 10.0,
    ) -> None:
        super().__init__(llm_provider=llm_provider)
        self.default_timeout = default_timeout

        # agent id → message type → handler
        self._handlers: dict[str, dict[str, MessageHandler]] = {}
        # correlation id → awaiting caller
        self._pending: dict[str, _PendingResponse] = {}
        # background routing tasks, held until done
        self._in_flight: set[asyncio.Task] = set()
        self._closed = False

        self._logger = logger.bind(component="enhanced_bus")

    # =========================================================================
    # Identity
    # =========================================================================

    def get_name(self) -> str:
        return "EnhancedAgentCommunicationBus"

    def get_capabilities(self) -> list[str]:
        return ["message-routing", "response-handling", "error-handling"]

    @property
    def pending_count(self) -> int:
        """Number of requests still waiting for a response."""
        return len(self._pending)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise MessageBusError(
                f"Cannot {operation}: the communication bus is closed",
                details={"operation": operation},
            )

    # =========================================================================
    # Handler Registration
    # =========================================================================

    def register_message_handler(
        self,
        agent_id: str,
        message_type: Union[str, Enum],
        handler: MessageHandler,
    ) -> None:
        """Install ``handler`` for (agent_id, message_type). Last write wins.

        Raises:
            MessageBusError: The bus has been closed.
        """
        self._ensure_open("register a message handler")
        key = as_str(message_type)
        self._handlers.setdefault(agent_id, {})[key] = handler
        self._logger.debug("message_handler_registered", agent_id=agent_id, message_type=key)

    def has_handler(self, agent_id: str, message_type: Union[str, Enum]) -> bool:
        return as_str(message_type) in self._handlers.get(agent_id, {})

    # =========================================================================
    # Request / Response
    # =========================================================================

    async def send_message_and_wait_for_response(
        self,
        target_agent_id: str,
        message: AgentMessage,
        timeout: Optional[float] = None,
    ) -> HandlerResult:
        """Route ``message`` to ``target_agent_id`` and await the paired response.

        Args:
            target_agent_id: Agent whose handler should process the message.
            message: Request envelope. Its correlation_id pairs the response;
                when empty, the message id is used instead.
            timeout: Seconds to wait. Defaults to ``default_timeout``.

        Returns:
            Ok(response envelope) on success, or Err(AgentError) on routing
            failure, handler failure, ERROR response or timeout. Never raises.
        """
        if self._closed:
            return Err(
                AgentError(
                    "Communication bus is closed",
                    error_code=ErrorCode.COMMUNICATION_ERROR,
                    agent_id=self.get_name(),
                    correlation_id=message.correlation_id or message.id,
                    recoverable=False,
                )
            )
        if not message.correlation_id:
            message = message.model_copy(update={"correlation_id": message.id})
        correlation_id = message.correlation_id

        if correlation_id in self._pending:
            self._logger.warning(
                "duplicate_correlation_id_rejected",
                correlation_id=correlation_id,
                target_agent=target_agent_id,
            )
            return Err(
                AgentError(
                    f"A request with correlation id {correlation_id} is already in flight",
                    error_code=ErrorCode.DUPLICATE_CORRELATION_ID,
                    agent_id=self.get_name(),
                    correlation_id=correlation_id,
                    recoverable=False,
                )
            )

        wait_seconds = self.default_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        timer = loop.call_later(
            wait_seconds,
            self._on_timeout,
            correlation_id,
            target_agent_id,
            message.source_agent,
            wait_seconds,
        )
        self._pending[correlation_id] = _PendingResponse(future=future, timer=timer)

        self._logger.debug(
            "request_sent",
            correlation_id=correlation_id,
            target_agent=target_agent_id,
            message_type=message.type,
            timeout_seconds=wait_seconds,
        )
        self._spawn(self._route_message(target_agent_id, message))

        try:
            return await future
        except asyncio.CancelledError:
            entry = self._pending.get(correlation_id)
            if entry is not None and entry.future is future:
                entry.timer.cancel()
                del self._pending[correlation_id]
            raise

    def _on_timeout(
        self,
        correlation_id: str,
        target_agent_id: str,
        source_agent: str,
        wait_seconds: float,
    ) -> None:
        entry = self._pending.pop(correlation_id, None)
        if entry is None or entry.future.done():
            return
        self._logger.warning(
            "request_timed_out",
            correlation_id=correlation_id,
            target_agent=target_agent_id,
            timeout_seconds=wait_seconds,
        )
        entry.future.set_result(
            Err(
                AgentError(
                    f"Timeout waiting for response from {target_agent_id} "
                    f"for correlation id {correlation_id}",
                    error_code=ErrorCode.TIMEOUT_ERROR,
                    agent_id=source_agent,
                    correlation_id=correlation_id,
                )
            )
        )

    async def send_response(self, target_agent_id: str, response: AgentMessage) -> None:
        """Deliver a response to whoever is waiting on its correlation id.

        With no matching pending request (late reply, unsolicited message),
        the response is routed to ``target_agent_id`` as a fresh message.
        """
        entry = self._pending.pop(response.correlation_id, None) if response.correlation_id else None
        if entry is not None:
            entry.timer.cancel()
            if not entry.future.done():
                entry.future.set_result(self._as_result(response))
            self._logger.debug(
                "response_delivered",
                correlation_id=response.correlation_id,
                message_type=response.type,
            )
            return

        self._logger.debug(
            "response_without_pending_request",
            correlation_id=response.correlation_id,
            target_agent=target_agent_id,
            message_type=response.type,
        )
        await self._route_message(target_agent_id, response)

    def _as_result(self, response: AgentMessage) -> HandlerResult:
        if response.type == MessageType.ERROR.value:
            return Err(
                AgentError.from_payload(
                    response.payload,
                    agent_id=response.source_agent,
                    correlation_id=response.correlation_id,
                )
            )
        return Ok(response)

    # =========================================================================
    # Fire-and-Forget
    # =========================================================================

    def publish_to_agent(self, target_agent_id: str, message: AgentMessage) -> None:
        """Route ``message`` without waiting for (or expecting) a response.

        ``"*"`` routes to every agent with a handler for ``message.type``,
        the sender included. Routing happens in background tasks; use
        ``drain()`` to wait for them.

        Raises:
            MessageBusError: The bus has been closed.
        """
        self._ensure_open("publish a message")
        if target_agent_id != BROADCAST_TARGET:
            self._spawn(self._route_message(target_agent_id, message))
            return

        recipients = [
            agent_id
            for agent_id, handlers in self._handlers.items()
            if message.type in handlers
        ]
        self._logger.debug(
            "message_broadcast",
            message_type=message.type,
            recipients=recipients,
        )
        for agent_id in recipients:
            self._spawn(self._route_message(agent_id, message))

    def broadcast(self, message: AgentMessage) -> None:
        self.publish_to_agent(BROADCAST_TARGET, message)

    async def drain(self) -> None:
        """Wait until every background routing task has finished."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    # =========================================================================
    # Routing
    # =========================================================================

    async def _route_message(self, target_agent_id: str, message: AgentMessage) -> None:
        handlers = self._handlers.get(target_agent_id)
        if handlers is None:
            await self._reply_with_error(
                message,
                AgentError(
                    f"No handlers registered for agent: {target_agent_id}",
                    error_code=ErrorCode.NO_HANDLER_REGISTERED,
                    agent_id=self.get_name(),
                    correlation_id=message.correlation_id,
                ),
            )
            return

        handler = handlers.get(message.type)
        if handler is None:
            await self._reply_with_error(
                message,
                AgentError(
                    f"No handler for message type {message.type} in agent {target_agent_id}",
                    error_code=ErrorCode.NO_MESSAGE_TYPE_HANDLER,
                    agent_id=self.get_name(),
                    correlation_id=message.correlation_id,
                ),
            )
            return

        try:
            result = await handler(message)
        except Exception as exc:
            self._logger.error(
                "handler_execution_error",
                target_agent=target_agent_id,
                message_type=message.type,
                correlation_id=message.correlation_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self._reply_with_error(
                message,
                AgentError(
                    str(exc),
                    error_code=ErrorCode.HANDLER_EXECUTION_ERROR,
                    agent_id=self.get_name(),
                    correlation_id=message.correlation_id,
                    details={"error_type": type(exc).__name__},
                ),
            )
            return

        if isinstance(result, Err):
            self._logger.warning(
                "handler_returned_error",
                target_agent=target_agent_id,
                message_type=message.type,
                correlation_id=message.correlation_id,
                error_code=getattr(result.error, "error_code", None),
                error=str(result.error),
            )
            await self._reply_with_error(message, result.error)
            return

        if result.data is None:
            self._logger.debug(
                "handler_returned_no_response",
                target_agent=target_agent_id,
                message_type=message.type,
                correlation_id=message.correlation_id,
            )
            return

        await self.send_response(message.source_agent, result.data)

    async def _reply_with_error(self, message: AgentMessage, error: AgentError) -> None:
        # An ERROR that cannot be delivered is not answered with another ERROR.
        if message.type == MessageType.ERROR.value:
            self._logger.warning(
                "undeliverable_error_dropped",
                source_agent=message.source_agent,
                correlation_id=message.correlation_id,
                error_code=error.error_code,
            )
            return

        envelope = create_agent_message(
            type=MessageType.ERROR,
            payload=error.to_payload(),
            source_agent=self.get_name(),
            conversation_id=message.conversation_id,
            correlation_id=message.correlation_id,
            target_agent=message.source_agent,
            user_id=message.user_id,
        )
        await self.send_response(message.source_agent, envelope)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def close(self) -> None:
        """Fail every pending request and cancel outstanding routing tasks.

        Afterwards the bus refuses new handlers and messages.
        """
        self._closed = True
        pending, self._pending = self._pending, {}
        for correlation_id, entry in pending.items():
            entry.timer.cancel()
            if not entry.future.done():
                entry.future.set_result(
                    Err(
                        AgentError(
                            "Communication bus closed before a response arrived",
                            error_code=ErrorCode.COMMUNICATION_ERROR,
                            agent_id=self.get_name(),
                            correlation_id=correlation_id,
                        )
                    )
                )

        tasks = list(self._in_flight)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._logger.info("bus_closed", failed_pending=len(pending), cancelled_tasks=len(tasks))
