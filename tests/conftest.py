"""
Shared test fixtures.

Database-backed suites (integration, adversarial) run against the
PostgreSQL database configured by DATABASE_URL and are skipped when it
cannot be reached. Unit tests never request these fixtures.
"""

from collections.abc import Generator

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from src.adapters.repository.postgres import run_migrations
from src.config.settings import get_settings


def clean_tables(pool: ConnectionPool) -> None:
    with pool.connection() as conn:
        conn.execute("DELETE FROM registrations")
        conn.execute("DELETE FROM users")
        conn.execute("DELETE FROM settings")
        conn.commit()


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Open a migrated pool on the test database, skipping if it is unreachable."""
    settings = get_settings()
    pool = ConnectionPool(conninfo=settings.database_url, min_size=1, max_size=10, open=True)
    try:
        pool.wait(timeout=5)
    except PoolTimeout:
        pool.close()
        pytest.skip("PostgreSQL is not reachable")
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Empty the tables before a test."""
    clean_tables(pool)
    yield
