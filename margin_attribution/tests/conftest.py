"""
Pytest Configuration and Shared Fixtures for Margin Attribution Tests.

This module provides fixtures and configuration for all tests, supporting:
- Async test execution with pytest-asyncio
- The worked three-component portfolio (Tacos, Sides, Drinks) as records,
  as a DataFrame and as CSV bytes (with cost columns instead of profit)
- A settings fixture and a FastAPI TestClient with settings overridden

Worked portfolio (profit = revenue - cost):

    component  rev t0  rev t1  cost t0  cost t1  margin t0  margin t1
    Tacos      15000   20000   12450    16600    17%        17%
    Sides      15000   10000   12000    7800     20%        22%
    Drinks     5000    5000    3400     4250     32%        15%

Portfolio margin moves from 20.43% to 18.14% (-228.57 bps):
- Tacos   perf   0.00  mix -16.33  total  -16.33
- Sides   perf  85.71  mix -55.10  total   30.61
- Drinks  perf -242.86 mix   0.00  total -242.86

Dependency References:
- margin_attribution/core/config.py: Settings for the API tests
- margin_attribution/core/dependencies.py: get_settings_dependency override
- margin_attribution/main.py: FastAPI app
"""

from typing import Any, Dict, Generator, List

import pandas as pd
import pytest
from fastapi.testclient import TestClient

from margin_attribution.core.config import Settings
from margin_attribution.models import ComponentRecord


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - slow: Marks tests as slow (deselect with -m "not slow")
    """
    config.addinivalue_line(
        'markers',
        'slow: marks tests as slow (deselect with -m "not slow")'
    )


# ============================================================
# WORKED PORTFOLIO FIXTURES
# ============================================================

# Expected effects of the worked portfolio, in bps
WORKED_EXAMPLE_EFFECTS: Dict[str, Dict[str, float]] = {
    'Tacos': {'performance': 0.0, 'mix': -16.3265, 'total': -16.3265},
    'Sides': {'performance': 85.7143, 'mix': -55.1020, 'total': 30.6122},
    'Drinks': {'performance': -242.8571, 'mix': 0.0, 'total': -242.8571},
}
WORKED_EXAMPLE_CHANGE_BPS: float = -228.5714


@pytest.fixture
def worked_rows() -> List[Dict[str, Any]]:
    """Worked portfolio as plain mappings, profit = revenue - cost."""
    return [
        {'id': 'Tacos', 'revenue_prior': 15000.0, 'revenue_current': 20000.0,
         'profit_prior': 15000.0 - 12450.0, 'profit_current': 20000.0 - 16600.0},
        {'id': 'Sides', 'revenue_prior': 15000.0, 'revenue_current': 10000.0,
         'profit_prior': 15000.0 - 12000.0, 'profit_current': 10000.0 - 7800.0},
        {'id': 'Drinks', 'revenue_prior': 5000.0, 'revenue_current': 5000.0,
         'profit_prior': 5000.0 - 3400.0, 'profit_current': 5000.0 - 4250.0},
    ]


@pytest.fixture
def worked_records(worked_rows: List[Dict[str, Any]]) -> List[ComponentRecord]:
    """Worked portfolio as ComponentRecord objects."""
    return [ComponentRecord(**row) for row in worked_rows]


@pytest.fixture
def grouped_rows(worked_rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Worked portfolio with Tacos and Sides in 'Food' and Drinks in 'Beverage'."""
    groups = {'Tacos': 'Food', 'Sides': 'Food', 'Drinks': 'Beverage'}
    return [{**row, 'group': groups[row['id']]} for row in worked_rows]


@pytest.fixture
def worked_cost_df() -> pd.DataFrame:
    """Worked portfolio as a raw table with cost columns under their short aliases."""
    return pd.DataFrame({
        'Category': ['Tacos', 'Sides', 'Drinks'],
        'rev_t0': [15000, 15000, 5000],
        'rev_t1': [20000, 10000, 5000],
        'cost_t0': [12450, 12000, 3400],
        'cost_t1': [16600, 7800, 4250],
    })


@pytest.fixture
def worked_profit_df(worked_rows: List[Dict[str, Any]]) -> pd.DataFrame:
    """Worked portfolio as a canonical table with profit columns."""
    return pd.DataFrame(worked_rows)


@pytest.fixture
def worked_csv_bytes(worked_cost_df: pd.DataFrame) -> bytes:
    """Worked portfolio as CSV bytes, as a user would upload it."""
    return create_csv_bytes(worked_cost_df)


# ============================================================
# SETTINGS AND APP FIXTURES
# ============================================================

@pytest.fixture
def test_settings() -> Settings:
    """Settings with defaults and a small upload cap for size-limit tests."""
    return Settings(max_upload_bytes=10_000)


@pytest.fixture
def client(test_settings: Settings) -> Generator[TestClient, None, None]:
    """
    FastAPI TestClient with settings injected through dependency override.

    Overrides are cleared after the test.
    """
    from margin_attribution.core.dependencies import get_settings_dependency
    from margin_attribution.main import app

    app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ============================================================
# HELPER FUNCTIONS
# ============================================================

def create_csv_bytes(df: pd.DataFrame) -> bytes:
    """
    Convert DataFrame to CSV bytes for upload testing.

    The output excludes the DataFrame index to match the expected upload format.
    """
    return df.to_csv(index=False).encode('utf-8')


def assert_close(
    actual: float,
    expected: float,
    tolerance: float = 0.001
) -> None:
    """
    Assert two floats are close within tolerance.

    Raises:
        AssertionError: If values differ by more than tolerance
    """
    assert abs(actual - expected) <= tolerance, (
        f"{actual} not close to {expected} within tolerance {tolerance}"
    )
