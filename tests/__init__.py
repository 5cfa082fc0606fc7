"""
Sommelier Test Suite
====================

Test organization mirrors the source code structure:
    tests/
    ├── test_core/          → Tests for sommelier.core (messages, result, errors, config)
    ├── test_agents/        → Tests for sommelier.agents (base + stage agents)
    ├── test_orchestration/ → Tests for sommelier.orchestration (bus, breaker, retry, DLQ)
    ├── test_integrations/  → Tests for sommelier.integrations (LLM, knowledge graph)
    ├── test_integration/   → End-to-end pipeline tests through the facade
    └── conftest.py         → Shared pytest fixtures

Running Tests:
    pytest                          # Run all tests
    pytest tests/test_core/         # Run only core tests
    pytest --cov=sommelier          # Run with coverage report
"""
