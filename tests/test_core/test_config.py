"""
Tests for sommelier.core.config
=================================

These tests verify that the configuration system works correctly:
    - Default values are sensible and complete
    - Environment variables override defaults (nested ones included)
    - YAML files are parsed correctly
    - Validation catches invalid values

All tests are unit tests — they don't need any external service.
"""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from sommelier.core.config import (
    DEFAULT_FALLBACK_RESPONSE,
    CircuitBreakerConfig,
    CoordinatorConfig,
    SommelierConfig,
    get_default_config,
    load_config,
)
from sommelier.core.enums import RecommendationSource
from sommelier.core.exceptions import ConfigurationError


# =============================================================================
# Test: Default Configuration
# =============================================================================
# SommelierConfig() must be usable with zero configuration: the facade
# builds the whole system from it.
# =============================================================================
class TestDefaultConfig:
    """Tests for default configuration values."""

    def test_default_config_creates_successfully(self) -> None:
        """SommelierConfig() should work with no arguments."""
        config = SommelierConfig()
        assert config.environment == "dev"
        assert config.log_level == "INFO"
        assert config.log_format == "console"

    def test_default_bus_timeout(self) -> None:
        """The request/response timeout defaults to ten seconds."""
        assert SommelierConfig().bus.request_timeout_seconds == 10.0

    def test_default_circuit_breaker(self) -> None:
        """Breakers open after 5 failures and close after 2 trial calls."""
        breaker = SommelierConfig().circuit_breaker
        assert breaker.failure_threshold == 5
        assert breaker.success_threshold == 2
        assert breaker.timeout_seconds == 60.0

    def test_default_recommendation_source_is_graph(self) -> None:
        """The knowledge graph backs the Recommendation stage by default."""
        config = SommelierConfig()
        assert config.coordinator.recommendation_source == RecommendationSource.KNOWLEDGE_GRAPH
        assert config.coordinator.stage_timeout_seconds is None
        assert config.coordinator.history_max_turns == 50

    def test_default_fallback_response(self) -> None:
        """The default fallback sentence is the apology string."""
        assert SommelierConfig().fallback.default_response == DEFAULT_FALLBACK_RESPONSE

    def test_default_llm_is_mock(self) -> None:
        """Development uses the in-process mock LLM."""
        llm = SommelierConfig().llm
        assert llm.provider == "mock"
        assert llm.api_key is None

    def test_get_default_config_convenience(self) -> None:
        """get_default_config() is a shortcut for SommelierConfig()."""
        assert get_default_config() == SommelierConfig()


# =============================================================================
# Test: Overrides and Validation
# =============================================================================
class TestConfigOverrides:
    """Tests for explicit overrides and field validation."""

    def test_override_nested_sections_with_dicts(self) -> None:
        """Nested sections accept plain dicts."""
        config = SommelierConfig(
            bus={"request_timeout_seconds": 0.5},
            coordinator={"recommendation_source": "llm"},
        )
        assert config.bus.request_timeout_seconds == 0.5
        assert config.coordinator.recommendation_source == RecommendationSource.LLM

    def test_override_nested_sections_with_models(self) -> None:
        """Nested sections accept model instances."""
        config = SommelierConfig(
            circuit_breaker=CircuitBreakerConfig(failure_threshold=1),
            coordinator=CoordinatorConfig(stage_timeout_seconds=2.0),
        )
        assert config.circuit_breaker.failure_threshold == 1
        assert config.coordinator.stage_timeout_seconds == 2.0

    def test_invalid_environment_rejected(self) -> None:
        """Only dev, staging and prod are valid environments."""
        with pytest.raises(ValidationError):
            SommelierConfig(environment="qa")

    def test_zero_timeout_rejected(self) -> None:
        """A zero request timeout would time out every request."""
        with pytest.raises(ValidationError):
            SommelierConfig(bus={"request_timeout_seconds": 0})

    def test_failure_threshold_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            CircuitBreakerConfig(failure_threshold=0)

    def test_unknown_recommendation_source_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CoordinatorConfig(recommendation_source="crystal_ball")


# =============================================================================
# Test: Environment Variables
# =============================================================================
class TestEnvVarLoading:
    """Tests for SOMMELIER_* environment variables."""

    def test_env_var_overrides_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SOMMELIER_LOG_LEVEL", "DEBUG")
        assert SommelierConfig().log_level == "DEBUG"

    def test_nested_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Double underscore reaches into nested sections."""
        monkeypatch.setenv("SOMMELIER_BUS__REQUEST_TIMEOUT_SECONDS", "3.5")
        monkeypatch.setenv("SOMMELIER_COORDINATOR__RECOMMENDATION_SOURCE", "llm")
        config = SommelierConfig()
        assert config.bus.request_timeout_seconds == 3.5
        assert config.coordinator.recommendation_source == RecommendationSource.LLM


# =============================================================================
# Test: YAML Loading
# =============================================================================
class TestYamlLoading:
    """Tests for load_config()."""

    def test_load_valid_yaml(self, tmp_path: Path) -> None:
        """Values in the YAML file end up in the config."""
        path = tmp_path / "sommelier.yaml"
        path.write_text(
            yaml.dump(
                {
                    "environment": "staging",
                    "circuit_breaker": {"failure_threshold": 2, "timeout_seconds": 5},
                    "fallback": {"default_response": "Try a Rioja."},
                }
            )
        )

        config = load_config(str(path))

        assert config.environment == "staging"
        assert config.circuit_breaker.failure_threshold == 2
        assert config.circuit_breaker.timeout_seconds == 5.0
        assert config.fallback.default_response == "Try a Rioja."

    def test_load_nonexistent_file_raises(self) -> None:
        with pytest.raises(FileNotFoundError):
            load_config("/nonexistent/sommelier.yaml")

    def test_load_empty_yaml_uses_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)).bus.request_timeout_seconds == 10.0

    def test_non_mapping_yaml_raises_configuration_error(self, tmp_path: Path) -> None:
        """A YAML list at the top level is not a configuration."""
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(str(path))

        assert exc_info.value.details["found"] == "list"

    def test_unparseable_yaml_raises_configuration_error(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("bus: [unclosed\n")

        with pytest.raises(ConfigurationError):
            load_config(str(path))

    def test_invalid_values_raise_configuration_error(self, tmp_path: Path) -> None:
        """Validation errors are wrapped with their count and details."""
        path = tmp_path / "invalid.yaml"
        path.write_text(yaml.dump({"bus": {"request_timeout_seconds": -1}}))

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(str(path))

        assert exc_info.value.details["errors"], "validation errors should be attached"

    def test_load_config_no_path_uses_defaults(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        """With no path and no sommelier.yaml in the cwd, defaults apply."""
        monkeypatch.chdir(tmp_path)
        assert load_config().environment == "dev"

    def test_load_config_picks_up_default_file(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        """sommelier.yaml in the cwd is read when no path is given."""
        (tmp_path / "sommelier.yaml").write_text(yaml.dump({"log_format": "json"}))
        monkeypatch.chdir(tmp_path)
        assert load_config().log_format == "json"
