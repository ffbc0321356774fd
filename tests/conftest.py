# Statify Engine - Pytest Configuration
# Shared fixtures and configuration for all tests

import sys
import os

import pytest

# Add parent to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


# =============================================================================
# Synthetic Data Generator Fixtures
# =============================================================================

@pytest.fixture(scope='session')
def synthetic_generator():
    """Session-scoped synthetic data generator."""
    from tests.synthetic_data_generator import SyntheticDataGenerator
    return SyntheticDataGenerator(seed=42)


@pytest.fixture(scope='session')
def random_walk(synthetic_generator):
    """Session-scoped non-stationary series."""
    return synthetic_generator.generate_random_walk(n=150)


@pytest.fixture(scope='session')
def stationary_series(synthetic_generator):
    """Session-scoped AR(1) series."""
    return synthetic_generator.generate_stationary_series(n=150, phi=0.2)


# =============================================================================
# Variable Fixtures
# =============================================================================

@pytest.fixture
def scale_variable():
    from statengine.stats.data_model import Variable
    return Variable.from_dict({"name": "score", "type": "NUMERIC", "measure": "scale", "label": "Test Score"})


@pytest.fixture
def nominal_variable():
    from statengine.stats.data_model import Variable
    return Variable.from_dict({"name": "region", "type": "STRING", "measure": "nominal"})


@pytest.fixture
def coded_variable():
    """Scale variable with 99 declared user-missing."""
    from statengine.stats.data_model import Variable
    return Variable.from_dict({
        "name": "income",
        "type": "NUMERIC",
        "measure": "scale",
        "missing": {"discrete": [99]},
    })


# =============================================================================
# Edge Case Fixtures
# =============================================================================

@pytest.fixture
def constant_series():
    """25 identical rows of 3."""
    return [3] * 25


@pytest.fixture
def all_blank_column():
    return ["", None, "", None]


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "edge_case: marks tests for edge case scenarios"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection."""
    # Add slow marker to tests with 'slow' in name
    for item in items:
        if 'slow' in item.name.lower():
            item.add_marker(pytest.mark.slow)
