# ===============================================================================
# PYTEST CONFIGURATION FOR THE PROMOTIONS SERVICE
# ===============================================================================
"""
Global test configuration.

Test Structure:
- tests/ mirrors apps/ structure for app-specific tests
- tests/factories/ holds builders for engine snapshots and database rows

Settings come from ``[tool.pytest.ini_options]`` (config.settings.test).
"""

import pytest

from apps.common.logging import clear_request_context


@pytest.fixture(autouse=True)
def _clean_request_context():
    """Request context is thread-local; never leak it between tests."""
    yield
    clear_request_context()
