"""
Tests for sommelier.core.messages — AgentMessage envelope
===========================================================

What's Being Tested:
    - Envelope defaults (id, timestamp, priority, broadcast target)
    - Enum message types are stored as their plain string value
    - Immutability (frozen model)
    - create_response: same correlation/conversation/user, swapped direction
    - create_agent_message factory
"""

import pytest
from pydantic import ValidationError

from sommelier.core.enums import MessageType, Priority
from sommelier.core.messages import AgentMessage, create_agent_message


def _request(**overrides) -> AgentMessage:
    fields = dict(
        type=MessageType.ANALYZE_VALUE,
        payload={"preferences": {"wineType": "red"}},
        source_agent="sommelier-coordinator",
        target_agent="value-analysis-agent",
        conversation_id="conv-1",
        correlation_id="corr-1",
        user_id="user-42",
    )
    fields.update(overrides)
    return create_agent_message(**fields)


# =============================================================================
# Test: Envelope Fields
# =============================================================================
class TestAgentMessage:
    """Tests for AgentMessage construction."""

    def test_defaults(self) -> None:
        """A bare envelope gets an id, a UTC timestamp and NORMAL priority."""
        msg = AgentMessage(type="ping", source_agent="a")

        assert len(msg.id) == 32, "id should be a uuid4 hex string"
        assert msg.timestamp.tzinfo is not None
        assert msg.priority == Priority.NORMAL
        assert msg.target_agent == "*"
        assert msg.payload is None
        assert msg.user_id is None

    def test_ids_are_unique(self) -> None:
        ids = {AgentMessage(type="ping", source_agent="a").id for _ in range(50)}
        assert len(ids) == 50

    def test_enum_type_stored_as_string(self) -> None:
        """MessageType members are normalised so handler lookup is by str."""
        msg = _request()
        assert msg.type == "analyze_value"
        assert type(msg.type) is str

    def test_plain_string_type_accepted(self) -> None:
        msg = AgentMessage(type="custom-event", source_agent="a")
        assert msg.type == "custom-event"

    def test_envelope_is_immutable(self) -> None:
        msg = _request()
        with pytest.raises(ValidationError):
            msg.payload = {"changed": True}

    def test_payload_carried_as_is(self) -> None:
        """The bus does not validate payloads; any shape passes through."""
        for payload in (None, "text", [1, 2], {"nested": {"x": 1}}):
            assert _request(payload=payload).payload == payload


# =============================================================================
# Test: Responses
# =============================================================================
class TestCreateResponse:
    """Tests for AgentMessage.create_response()."""

    def test_response_is_paired_with_request(self) -> None:
        request = _request()
        reply = request.create_response(
            MessageType.VALUE_ANALYSIS_RESULT, {"analysis": "good"}, "value-analysis-agent"
        )

        assert reply.correlation_id == request.correlation_id
        assert reply.conversation_id == request.conversation_id
        assert reply.user_id == request.user_id
        assert reply.id != request.id, "a reply is a new envelope"

    def test_response_direction_is_reversed(self) -> None:
        request = _request()
        reply = request.create_response("value_analysis_result", {}, "value-analysis-agent")

        assert reply.source_agent == "value-analysis-agent"
        assert reply.target_agent == "sommelier-coordinator"
        assert reply.type == "value_analysis_result"

    def test_response_keeps_priority(self) -> None:
        request = _request(priority=Priority.HIGH)
        reply = request.create_response("x", None, "b")
        assert reply.priority == Priority.HIGH


# =============================================================================
# Test: Factory
# =============================================================================
class TestCreateAgentMessage:
    """Tests for create_agent_message()."""

    def test_factory_sets_every_field(self) -> None:
        msg = _request(metadata={"attempt": 1})

        assert msg.source_agent == "sommelier-coordinator"
        assert msg.target_agent == "value-analysis-agent"
        assert msg.conversation_id == "conv-1"
        assert msg.correlation_id == "corr-1"
        assert msg.metadata == {"attempt": 1}

    def test_factory_defaults_to_broadcast_target(self) -> None:
        msg = create_agent_message(
            type=MessageType.BROADCAST,
            payload=None,
            source_agent="a",
            conversation_id="c",
            correlation_id="c",
        )
        assert msg.target_agent == "*"
