"""
MedAdhere Test Suite
====================

This package contains all tests for the MedAdhere medication adherence backend.

Test Structure:
- test_api/: API endpoint tests for FastAPI routes
- test_services/: Service tests against an in-memory database
- test_tools/: Period, duration, scheduler and delivery tests
- conftest.py: Shared pytest fixtures

Running Tests:
    # Run all tests
    pytest

    # Run specific test module
    pytest tests/test_api/

    # Run only marked tests
    pytest -m "unit"
    pytest -m "integration"
"""

# Test configuration
TEST_DATABASE_URL = "sqlite:///:memory:"

__all__ = [
    "TEST_DATABASE_URL",
]
