"""Repository adapters - Database implementations."""

from .postgres import PostgresFeeRateProvider, PostgresRegistrationRepository, run_migrations

__all__ = ["PostgresFeeRateProvider", "PostgresRegistrationRepository", "run_migrations"]
