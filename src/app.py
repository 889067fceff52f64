"""
Application wiring - builds the registration service from settings.

Manages the infrastructure lifecycle around the domain:
- Creates the database connection pool and runs migrations
- Provisions count rows for every configured package
- Creates the HTTP client shared by the ledger and mail adapters
- Closes everything again on exit
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import httpx
from psycopg_pool import ConnectionPool

from src.adapters.ledger.http import HttpTransactionLedger
from src.adapters.mail.console import ConsoleNotificationSender
from src.adapters.mail.http import HttpNotificationSender
from src.adapters.repository.postgres import PostgresAttendeeStore, run_migrations
from src.config.settings import Settings, configure_logging, get_settings
from src.domain.models import COUNT_AREA_PACKAGE, Count
from src.domain.ports import NotificationSender
from src.domain.registration import RegistrationService

logger = logging.getLogger(__name__)


def build_notifier(settings: Settings, client: httpx.Client) -> NotificationSender:
    """Mail service client if configured, console logging otherwise."""
    if settings.mail_service_url:
        return HttpNotificationSender(client, settings.mail_service_url, settings.api_token)
    logger.info("No mail service configured, notifications are logged to the console")
    return ConsoleNotificationSender()


def provision_counts(store: PostgresAttendeeStore, settings: Settings) -> None:
    """Make sure every configured package has a count row."""
    for code in sorted(settings.packages):
        store.create_count(Count(area=COUNT_AREA_PACKAGE, name=code))


@contextmanager
def registration_service(settings: Settings | None = None) -> Iterator[RegistrationService]:
    """
    Context manager yielding a fully wired RegistrationService.

    Usage:
        with registration_service() as service:
            service.change_status(actor, attendee_id, Status.APPROVED)
    """
    settings = settings or get_settings()
    configure_logging(settings)

    logger.info("Connecting to database...")
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
    )
    client = httpx.Client(timeout=settings.http_timeout_seconds)
    try:
        logger.info("Running database migrations...")
        run_migrations(pool)

        store = PostgresAttendeeStore(pool)
        provision_counts(store, settings)

        service = RegistrationService(
            store=store,
            ledger=HttpTransactionLedger(client, settings.payment_service_url, settings.api_token),
            notifier=build_notifier(settings, client),
            policy=settings.dues_policy(),
        )
        logger.info("Registration service ready")
        yield service
    finally:
        logger.info("Shutting down registration service...")
        client.close()
        pool.close()
        logger.info("Database connection pool closed")
