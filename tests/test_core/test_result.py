"""
Tests for sommelier.core.result and sommelier.core.exceptions
================================================================

What's Being Tested:
    - Ok / Err: success flag, unwrap, immutability, pattern matching
    - SommelierError hierarchy: codes, details, to_dict
    - AgentError: ERROR payload round trip, non-dict payloads
    - RecommendationFailedError: fixed code, never recoverable
"""

import dataclasses

import pytest

from sommelier.core.enums import ErrorCode
from sommelier.core.exceptions import (
    AgentError,
    CircuitOpenError,
    ConfigurationError,
    MessageBusError,
    RecommendationFailedError,
    SommelierError,
)
from sommelier.core.result import Err, Ok


# =============================================================================
# Test: Result
# =============================================================================
class TestResult:
    """Tests for Ok and Err."""

    def test_ok_carries_data(self) -> None:
        result = Ok({"analysis": "good"})
        assert result.success is True
        assert result.data == {"analysis": "good"}
        assert result.unwrap() == {"analysis": "good"}

    def test_ok_may_carry_none(self) -> None:
        """Ok(None) is how a handler says 'nothing to send back'."""
        assert Ok(None).success is True

    def test_err_carries_error(self) -> None:
        error = AgentError("boom", error_code=ErrorCode.LLM_SERVICE_ERROR)
        result = Err(error)
        assert result.success is False
        assert result.error is error

    def test_err_unwrap_raises_the_error(self) -> None:
        error = AgentError("boom")
        with pytest.raises(AgentError) as exc_info:
            Err(error).unwrap()
        assert exc_info.value is error

    def test_results_are_frozen(self) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            Ok(1).data = 2

    def test_structural_pattern_matching(self) -> None:
        def describe(result) -> str:
            match result:
                case Ok(data=data):
                    return f"ok:{data}"
                case Err(error=error):
                    return f"err:{error.error_code}"
            return "unreachable"

        assert describe(Ok(3)) == "ok:3"
        assert describe(Err(AgentError("x", error_code="X"))) == "err:X"


# =============================================================================
# Test: Exception Hierarchy
# =============================================================================
class TestExceptionHierarchy:
    """Tests for SommelierError and its subclasses."""

    @pytest.mark.parametrize(
        "error_cls, code",
        [
            (ConfigurationError, "CONFIG_ERROR"),
            (MessageBusError, "MESSAGE_BUS_ERROR"),
            (CircuitOpenError, "CIRCUIT_OPEN"),
            (AgentError, "AGENT_ERROR"),
        ],
    )
    def test_default_codes(self, error_cls, code) -> None:
        error = error_cls("message")
        assert isinstance(error, SommelierError)
        assert error.error_code == code

    def test_enum_codes_stored_as_strings(self) -> None:
        error = SommelierError("x", error_code=ErrorCode.TIMEOUT_ERROR)
        assert error.error_code == "TIMEOUT_ERROR"

    def test_to_dict(self) -> None:
        error = ConfigurationError("bad yaml", details={"path": "sommelier.yaml"})
        assert error.to_dict() == {
            "error_type": "ConfigurationError",
            "message": "bad yaml",
            "error_code": "CONFIG_ERROR",
            "details": {"path": "sommelier.yaml"},
        }

    def test_str_is_the_message(self) -> None:
        assert str(AgentError("no handler")) == "no handler"


# =============================================================================
# Test: AgentError payloads
# =============================================================================
class TestAgentErrorPayload:
    """Tests for the ERROR envelope payload round trip."""

    def test_round_trip(self) -> None:
        original = AgentError(
            "LLM down",
            error_code=ErrorCode.LLM_SERVICE_ERROR,
            agent_id="value-analysis-agent",
            correlation_id="c-1",
            recoverable=False,
            details={"attempt": 2},
        )

        rebuilt = AgentError.from_payload(original.to_payload())

        assert rebuilt.message == "LLM down"
        assert rebuilt.code == "LLM_SERVICE_ERROR"
        assert rebuilt.agent_id == "value-analysis-agent"
        assert rebuilt.correlation_id == "c-1"
        assert rebuilt.recoverable is False
        assert rebuilt.details == {"attempt": 2}

    def test_from_payload_fills_missing_ids(self) -> None:
        rebuilt = AgentError.from_payload(
            {"message": "x", "code": "X"},
            agent_id="enhanced-bus",
            correlation_id="c-2",
        )
        assert rebuilt.agent_id == "enhanced-bus"
        assert rebuilt.correlation_id == "c-2"
        assert rebuilt.recoverable is True

    @pytest.mark.parametrize("payload, message", [("plain text", "plain text"), (None, "Unknown error")])
    def test_from_non_dict_payload(self, payload, message) -> None:
        rebuilt = AgentError.from_payload(payload)
        assert rebuilt.message == message
        assert rebuilt.code == ErrorCode.COMMUNICATION_ERROR.value

    def test_to_dict_includes_agent_fields(self) -> None:
        data = AgentError("x", agent_id="a", correlation_id="c").to_dict()
        assert data["agent_id"] == "a"
        assert data["correlation_id"] == "c"
        assert data["recoverable"] is True


class TestRecommendationFailedError:
    """Tests for the load-bearing stage failure."""

    def test_fixed_code_and_not_recoverable(self) -> None:
        error = RecommendationFailedError("Recommendation failed: graph down", correlation_id="c")
        assert isinstance(error, AgentError)
        assert error.code == "RECOMMENDATION_FAILED"
        assert error.recoverable is False
        assert error.agent_id == "sommelier-coordinator"
