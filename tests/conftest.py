"""
Root conftest.py - Global fixtures and configuration for all test layers.

Test Layers (Top-Down TDD):
    - api/        : HTTP contract tests (in-process app over httpx, in-memory store)
    - component/  : Service tests (mocked repository, event bus and providers)
    - unit/       : Pure functions (geometry, penalties, models, templates)
    - integration/: Repository against a real PostgreSQL (marked requires_db)
"""
import os
import sys

import pytest

# Set testing environment BEFORE any project imports
os.environ.setdefault("ENV", "testing")
os.environ.setdefault("NATS_ENABLED", "false")

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from tests.contracts.marketplace.data_contract import MarketplaceTestDataFactory


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def data_factory() -> type:
    """Marketplace test data factory"""
    return MarketplaceTestDataFactory


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "api: API contract tests")
    config.addinivalue_line("markers", "component: Component tests")
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests against real infrastructure")
    config.addinivalue_line("markers", "requires_db: Tests requiring PostgreSQL")


def pytest_collection_modifyitems(config, items):
    """Modify test collection based on markers and environment"""
    skip_db = pytest.mark.skip(reason="PostgreSQL not available")

    for item in items:
        if "requires_db" in item.keywords and os.getenv("SKIP_DB_TESTS"):
            item.add_marker(skip_db)
