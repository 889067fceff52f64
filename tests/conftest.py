"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- The dues policy snapshot used across domain tests
- In-memory ledger and attendee store adapters
- A mocked notification sender and the wired registration service
"""

from unittest.mock import Mock

import pytest

from src.adapters.ledger.memory import InMemoryTransactionLedger
from src.adapters.repository.memory import InMemoryAttendeeStore
from src.domain.dues import DuesReconciler
from src.domain.limits import AllocationLimiter
from src.domain.models import COUNT_AREA_PACKAGE, Count
from src.domain.policy import DuesPolicy
from src.domain.registration import RegistrationService
from src.domain.status import StatusMachine
from tests.factories import make_policy


@pytest.fixture
def policy() -> DuesPolicy:
    return make_policy()


@pytest.fixture
def ledger() -> InMemoryTransactionLedger:
    return InMemoryTransactionLedger()


@pytest.fixture
def store(policy: DuesPolicy) -> InMemoryAttendeeStore:
    """Store with count rows provisioned for every limited package."""
    store = InMemoryAttendeeStore()
    for code in policy.limited_packages():
        store.create_count(Count(area=COUNT_AREA_PACKAGE, name=code))
    return store


@pytest.fixture
def notifier() -> Mock:
    return Mock()


@pytest.fixture
def reconciler(ledger: InMemoryTransactionLedger, policy: DuesPolicy) -> DuesReconciler:
    return DuesReconciler(ledger, policy)


@pytest.fixture
def status_machine(
    store: InMemoryAttendeeStore, reconciler: DuesReconciler, notifier: Mock, policy: DuesPolicy
) -> StatusMachine:
    return StatusMachine(store, reconciler, notifier, policy)


@pytest.fixture
def limiter(store: InMemoryAttendeeStore, policy: DuesPolicy) -> AllocationLimiter:
    return AllocationLimiter(store, policy)


@pytest.fixture
def service(
    store: InMemoryAttendeeStore, ledger: InMemoryTransactionLedger, notifier: Mock, policy: DuesPolicy
) -> RegistrationService:
    return RegistrationService(store=store, ledger=ledger, notifier=notifier, policy=policy)
