"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

from fastapi import Query, Request
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import PostgresFeeRateProvider, PostgresRegistrationRepository
from src.adapters.smtp.console import ConsoleNotificationSender
from src.adapters.storage.local import LocalFileStorage
from src.config.settings import get_settings
from src.domain.expiry import ExpiryNotifier
from src.domain.models import Requester
from src.domain.registration import RegistrationService
from src.domain.state_machine import RegistrationStateMachine

# Module-level singleton - ConsoleNotificationSender is stateless
_notification_sender = ConsoleNotificationSender()


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_repository(request: Request) -> PostgresRegistrationRepository:
    """Create repository with connection pool from app state."""
    pool = get_pool(request)
    return PostgresRegistrationRepository(pool)


def get_fee_rate_provider(request: Request) -> PostgresFeeRateProvider:
    """Create fee rate provider reading the settings table, with configured defaults."""
    return PostgresFeeRateProvider(get_pool(request), get_settings().default_fee_rates())


def get_notification_sender() -> ConsoleNotificationSender:
    """Get console notification sender (singleton)."""
    return _notification_sender


def get_file_storage() -> LocalFileStorage:
    return LocalFileStorage(get_settings().uploads_dir)


def get_registration_service(request: Request) -> RegistrationService:
    """
    Create registration service with injected dependencies.

    Wires the repository, fee rates, notification sender and file storage
    into the state machine, expiry notifier and domain service.
    """
    settings = get_settings()
    repository = get_repository(request)
    sender = get_notification_sender()
    return RegistrationService(
        repository=repository,
        state_machine=RegistrationStateMachine(
            repository=repository,
            fee_rates=get_fee_rate_provider(request),
            tz=settings.tzinfo,
        ),
        notifier=ExpiryNotifier(repository=repository, sender=sender, tz=settings.tzinfo),
        file_storage=get_file_storage(),
        notification_sender=sender,
        expiry_check_batch_size=settings.expiry_check_batch_size,
    )


def get_requester(
    user_id: str | None = Query(default=None, alias="userId"),
    user_email: str | None = Query(default=None, alias="userEmail"),
) -> Requester:
    """
    Build the requester identity from query parameters.

    Authentication happens upstream. A request without either parameter is
    an administrative request and sees every registration.
    """
    email = user_email.strip().lower() if user_email else None
    return Requester(user_id=user_id or None, email=email or None)
