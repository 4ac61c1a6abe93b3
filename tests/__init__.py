"""
Deployer Test Suite
===================

Test organization mirrors the source code structure:
    tests/
    ├── test_core/           → Tests for deployer.core (config, models, exceptions, logging)
    ├── test_infrastructure/ → Tests for deployer.infrastructure (marker stores)
    ├── test_integrations/   → Tests for deployer.integrations (git client, diff parsing)
    ├── test_processors/     → Tests for deployer.processors (git_pull, file_output, registry)
    ├── test_orchestration/  → Tests for deployer.orchestration (executor, pipeline, locks)
    ├── test_integration/    → End-to-end tests against real git repositories
    └── conftest.py          → Shared pytest fixtures

Running Tests:
    pytest                          # Run all tests
    pytest tests/test_core/         # Run only core tests
    pytest tests/test_integration/  # Run only end-to-end tests (needs a git binary)
"""
