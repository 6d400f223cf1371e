"""
Fixtures for adversarial concurrency tests.

Every test starts from empty tables and gets a fresh repository on the
shared pool.
"""

import pytest
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import PostgresRegistrationRepository


@pytest.fixture(autouse=True)
def _empty_tables(clean_database: None) -> None:
    """Apply clean_database to every adversarial test."""


@pytest.fixture
def repository(pool: ConnectionPool) -> PostgresRegistrationRepository:
    return PostgresRegistrationRepository(pool)
