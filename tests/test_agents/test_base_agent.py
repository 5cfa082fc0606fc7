"""
Tests for sommelier.agents.base - CommunicatingAgent
======================================================

These tests use a concrete EchoAgent to verify what every agent gets from
the base class:
    - Registration on the bus (registry entry + one handler per type)
    - Default handlers: error, broadcast, broadcast-ack
    - Subclass handlers replacing defaults
    - Dispatch of unknown types
    - send_to_agent request/response, correlation ids, broadcast

Since CommunicatingAgent is abstract, we create a concrete EchoAgent for
testing.
"""

import re

import pytest

from sommelier.agents.base import CommunicatingAgent
from sommelier.core.enums import ErrorCode, MessageType
from sommelier.core.messages import AgentMessage, create_agent_message
from sommelier.core.result import Ok
from sommelier.orchestration.enhanced_bus import EnhancedAgentCommunicationBus


# =============================================================================
# EchoAgent: Concrete implementation for testing
# =============================================================================
class EchoAgent(CommunicatingAgent):
    """Replies to "echo" with its payload; records the acks it receives."""

    def __init__(self, agent_id: str, bus: EnhancedAgentCommunicationBus, **kwargs) -> None:
        self.acks: list[AgentMessage] = []
        super().__init__(agent_id, bus, **kwargs)

    def _register_handlers(self):
        return {
            "echo": self._handle_echo,
            MessageType.BROADCAST_ACK: self._record_ack,
        }

    async def _handle_echo(self, message: AgentMessage):
        return Ok(message.create_response("echo-result", message.payload, self.agent_id))

    async def _record_ack(self, message: AgentMessage):
        self.acks.append(message)
        return Ok(None)


class SilentAgent(CommunicatingAgent):
    def _register_handlers(self):
        return {}


def _envelope(message_type, source="tester", payload=None) -> AgentMessage:
    return create_agent_message(
        type=message_type,
        payload=payload,
        source_agent=source,
        conversation_id="conv",
        correlation_id="corr",
    )


# =============================================================================
# Test: Registration
# =============================================================================
class TestRegistration:
    async def test_registers_in_bus_registry(self, bus: EnhancedAgentCommunicationBus) -> None:
        agent = EchoAgent("echo-agent", bus, name="Echo", capabilities=["echo"])

        info = bus.get_agent_info("echo-agent")
        assert info.name == "Echo"
        assert info.capabilities == ["echo"]
        assert agent.get_name() == "Echo"
        assert agent.get_capabilities() == ["echo"]

    async def test_name_and_capabilities_default(self, bus: EnhancedAgentCommunicationBus) -> None:
        agent = SilentAgent("silent", bus)
        assert agent.get_name() == "SilentAgent"
        assert agent.get_capabilities() == ["communication"]

    async def test_handlers_registered_for_every_type(self, bus: EnhancedAgentCommunicationBus) -> None:
        agent = EchoAgent("echo-agent", bus)

        assert agent.handled_types == ["broadcast", "broadcast-ack", "echo", "error"]
        for message_type in agent.handled_types:
            assert bus.has_handler("echo-agent", message_type)

    async def test_repr(self, bus: EnhancedAgentCommunicationBus) -> None:
        assert repr(SilentAgent("silent", bus)) == "SilentAgent(agent_id='silent')"


# =============================================================================
# Test: Dispatch and Default Handlers
# =============================================================================
class TestDispatch:
    async def test_custom_handler(self, bus: EnhancedAgentCommunicationBus) -> None:
        agent = EchoAgent("echo-agent", bus)

        result = await agent.handle_message(_envelope("echo", payload={"n": 1}))

        assert result.data.type == "echo-result"
        assert result.data.payload == {"n": 1}

    async def test_unknown_type_is_err(self, bus: EnhancedAgentCommunicationBus) -> None:
        agent = SilentAgent("silent", bus)

        result = await agent.handle_message(_envelope("mystery"))

        assert result.error.code == ErrorCode.UNHANDLED_MESSAGE_TYPE.value
        assert result.error.recoverable is False

    async def test_error_handler_sends_nothing(self, bus: EnhancedAgentCommunicationBus) -> None:
        agent = SilentAgent("silent", bus)
        result = await agent.handle_message(_envelope(MessageType.ERROR, payload={"message": "x"}))
        assert result.success and result.data is None

    async def test_broadcast_is_acknowledged(self, bus: EnhancedAgentCommunicationBus) -> None:
        agent = SilentAgent("silent", bus)

        result = await agent.handle_message(_envelope(MessageType.BROADCAST, source="announcer"))

        assert result.data.type == MessageType.BROADCAST_ACK.value
        assert result.data.payload == {"status": "acknowledged"}
        assert result.data.target_agent == "announcer"

    async def test_broadcast_ack_default_sends_nothing(self, bus: EnhancedAgentCommunicationBus) -> None:
        agent = SilentAgent("silent", bus)
        result = await agent.handle_message(_envelope(MessageType.BROADCAST_ACK))
        assert result.data is None


# =============================================================================
# Test: Sending
# =============================================================================
class TestSending:
    async def test_send_to_agent_round_trip(self, bus: EnhancedAgentCommunicationBus) -> None:
        EchoAgent("echo-agent", bus)
        sender = SilentAgent("sender", bus)

        result = await sender.send_to_agent("echo-agent", "echo", {"wine": "Rioja"}, user_id="u1")

        assert result.success
        assert result.data.payload == {"wine": "Rioja"}
        assert result.data.target_agent == "sender"
        assert result.data.user_id == "u1"

    async def test_send_to_agent_uses_given_ids(self, bus: EnhancedAgentCommunicationBus) -> None:
        EchoAgent("echo-agent", bus)
        sender = SilentAgent("sender", bus)

        result = await sender.send_to_agent(
            "echo-agent", "echo", None, correlation_id="corr-9", conversation_id="conv-9"
        )

        assert result.data.correlation_id == "corr-9"
        assert result.data.conversation_id == "conv-9"

    async def test_conversation_defaults_to_correlation(self, bus: EnhancedAgentCommunicationBus) -> None:
        EchoAgent("echo-agent", bus)
        sender = SilentAgent("sender", bus)

        result = await sender.send_to_agent("echo-agent", "echo", None)

        assert result.data.conversation_id == result.data.correlation_id

    async def test_send_to_unknown_agent_is_err(self, bus: EnhancedAgentCommunicationBus) -> None:
        sender = SilentAgent("sender", bus)
        result = await sender.send_to_agent("ghost", "echo", None)
        assert result.error.code == ErrorCode.NO_HANDLER_REGISTERED.value

    async def test_send_to_agent_timeout(self, bus: EnhancedAgentCommunicationBus) -> None:
        class Mute(CommunicatingAgent):
            def _register_handlers(self):
                return {"echo": self._ignore}

            async def _ignore(self, message):
                return Ok(None)

        Mute("mute", bus)
        sender = SilentAgent("sender", bus)

        result = await sender.send_to_agent("mute", "echo", None, timeout=0.02)

        assert result.error.code == ErrorCode.TIMEOUT_ERROR.value

    async def test_bus_exception_becomes_communication_error(self, bus: EnhancedAgentCommunicationBus) -> None:
        sender = SilentAgent("sender", bus)

        async def broken(*args, **kwargs):
            raise RuntimeError("socket closed")

        bus.send_message_and_wait_for_response = broken

        result = await sender.send_to_agent("anyone", "echo", None)

        assert result.error.code == ErrorCode.COMMUNICATION_ERROR.value
        assert "socket closed" in result.error.message

    async def test_broadcast_collects_acks(self, bus: EnhancedAgentCommunicationBus) -> None:
        """Everyone acks a broadcast; the acks come back to the sender."""
        announcer = EchoAgent("announcer", bus)
        SilentAgent("a", bus)
        SilentAgent("b", bus)

        message = announcer.broadcast(MessageType.BROADCAST, {"news": "new vintage"})
        await bus.drain()

        assert message.target_agent == "*"
        assert sorted(ack.source_agent for ack in announcer.acks) == ["a", "announcer", "b"]

    async def test_correlation_id_format(self, bus: EnhancedAgentCommunicationBus) -> None:
        agent = SilentAgent("silent", bus)

        first, second = agent.generate_correlation_id(), agent.generate_correlation_id()

        assert re.fullmatch(r"silent-\d{13}-[0-9a-f]{8}", first)
        assert first != second


@pytest.mark.parametrize("message_type", [MessageType.ERROR, MessageType.BROADCAST, MessageType.BROADCAST_ACK])
async def test_defaults_present_without_subclass_entries(bus, message_type) -> None:
    agent = SilentAgent("silent", bus)
    assert message_type.value in agent.handled_types
