"""
Unit tests for RegistrationService domain logic.

Tests verify:
- Email normalization and ownership on registration
- Duplicate detection
- Package allocation limits on registration, update and status change
- Dues re-booking on attendee and admin info updates
- Status change orchestration and exception handling
"""

from dataclasses import replace
from unittest.mock import Mock

import pytest

from src.adapters.ledger.memory import InMemoryTransactionLedger
from src.adapters.repository.memory import InMemoryAttendeeStore
from src.domain.exceptions import (
    DuplicateAttendeeError,
    InsufficientPaymentError,
    LedgerUnavailable,
    MailUnavailable,
    OverrunError,
    StatusChangeForbidden,
)
from src.domain.models import COUNT_AREA_PACKAGE, Actor, AdminInfo, Count
from src.domain.ports import Status
from src.domain.registration import RegistrationService
from tests.factories import attendee, make_policy, payment

ADMIN = Actor(subject="admin-1", is_admin=True)
USER = Actor(subject="user-7")


def stage_count(store: InMemoryAttendeeStore) -> Count:
    return store.get_count(COUNT_AREA_PACKAGE, "stage")


class TestEmailNormalization:
    """Tests for email normalization."""

    def _register_with_mocks(self, email: str) -> Mock:
        store = Mock()
        store.count_attendees_by_nickname_zip_email.return_value = 0
        store.add_attendee.return_value = 1
        service = RegistrationService(store=store, ledger=Mock(), notifier=Mock(), policy=make_policy())

        service.register(USER, attendee(email=email, packages={"attendance": 1}))
        return store

    def test_normalize_email_strips_whitespace(self) -> None:
        """Email normalization removes leading/trailing whitespace."""
        store = self._register_with_mocks("  user@example.com  ")

        assert store.add_attendee.call_args[0][0].email == "user@example.com"

    def test_normalize_email_lowercases(self) -> None:
        """Email normalization converts to lowercase."""
        store = self._register_with_mocks("USER@EXAMPLE.COM")

        assert store.add_attendee.call_args[0][0].email == "user@example.com"

    def test_duplicate_check_uses_normalized_email(self) -> None:
        store = self._register_with_mocks("  User@Example.COM  ")

        store.count_attendees_by_nickname_zip_email.assert_called_once_with(
            "Squirrel", "12345", "user@example.com"
        )


class TestRegister:
    """Tests for the registration flow."""

    def test_register_assigns_identity_and_status_new(
        self, service: RegistrationService, store: InMemoryAttendeeStore
    ) -> None:
        """The caller's subject owns the registration, which starts as new."""
        attendee_id = service.register(USER, attendee(identity="spoofed"))

        stored = store.get_attendee(attendee_id)
        assert stored.identity == "user-7"
        assert service.status_machine.current_status(stored) == Status.NEW
        assert [c.comment for c in service.status_history(attendee_id)] == ["registration"]

    def test_register_ignores_cached_balances(
        self, service: RegistrationService, store: InMemoryAttendeeStore
    ) -> None:
        attendee_id = service.register(USER, attendee(cache_total_dues=99, cache_payment_balance=99))

        stored = store.get_attendee(attendee_id)
        assert (stored.cache_total_dues, stored.cache_payment_balance) == (0, 0)

    def test_register_books_no_dues(
        self, service: RegistrationService, ledger: InMemoryTransactionLedger, notifier: Mock
    ) -> None:
        service.register(USER, attendee())

        assert ledger.recording() == []
        notifier.send_notification.assert_not_called()

    def test_register_duplicate_rejected(self, service: RegistrationService) -> None:
        """Same nickname, zip and email cannot register twice."""
        service.register(USER, attendee())

        with pytest.raises(DuplicateAttendeeError):
            service.register(Actor(subject="user-8"), attendee(email="SQUIRREL@example.com"))

    def test_register_counts_pending(
        self, service: RegistrationService, store: InMemoryAttendeeStore
    ) -> None:
        service.register(USER, attendee(packages={"attendance": 1, "stage": 2}))

        assert stage_count(store) == Count(area=COUNT_AREA_PACKAGE, name="stage", pending=2)

    def test_register_overrun_stores_nothing(
        self, service: RegistrationService, store: InMemoryAttendeeStore
    ) -> None:
        """An overrun rejects the registration before anything is written."""
        store.reset_count(Count(area=COUNT_AREA_PACKAGE, name="stage", pending=4))

        with pytest.raises(OverrunError):
            service.register(USER, attendee(packages={"stage": 1}))

        assert store.count_attendees_by_nickname_zip_email("Squirrel", "12345", "squirrel@example.com") == 0
        assert stage_count(store).pending == 4


class TestUpdateAttendee:
    """Tests for attendee edits."""

    def test_package_change_rebooks_dues_and_counts(
        self,
        service: RegistrationService,
        store: InMemoryAttendeeStore,
        ledger: InMemoryTransactionLedger,
    ) -> None:
        attendee_id = service.register(USER, attendee(packages={"attendance": 1}))
        service.change_status(ADMIN, attendee_id, Status.APPROVED)
        stored = store.get_attendee(attendee_id)

        result = service.update_attendee(USER, replace(stored, packages={"attendance": 1, "stage": 1}))

        assert [t.amount.gross_cent for t in ledger.recording()] == [12000, 2500]
        assert result.attendee.cache_total_dues == 14500
        assert stage_count(store) == Count(area=COUNT_AREA_PACKAGE, name="stage", attending=1)

    def test_caller_cannot_overwrite_protected_fields(
        self, service: RegistrationService, store: InMemoryAttendeeStore
    ) -> None:
        """Identity and cached balances always come from the stored record."""
        attendee_id = service.register(USER, attendee())
        stored = store.get_attendee(attendee_id)

        service.update_attendee(
            USER, replace(stored, nickname="Chipmunk", identity="intruder", cache_payment_balance=50000)
        )

        updated = store.get_attendee(attendee_id)
        assert updated.nickname == "Chipmunk"
        assert updated.identity == "user-7"
        assert updated.cache_payment_balance == 0

    def test_update_colliding_with_other_registration(
        self, service: RegistrationService, store: InMemoryAttendeeStore
    ) -> None:
        service.register(USER, attendee(nickname="Squirrel"))
        other_id = service.register(Actor(subject="user-8"), attendee(nickname="Otter"))
        other = store.get_attendee(other_id)

        with pytest.raises(DuplicateAttendeeError):
            service.update_attendee(Actor(subject="user-8"), replace(other, nickname="Squirrel"))

    def test_update_overrun_leaves_record_unchanged(
        self, service: RegistrationService, store: InMemoryAttendeeStore
    ) -> None:
        attendee_id = service.register(USER, attendee(packages={"attendance": 1}))
        store.reset_count(Count(area=COUNT_AREA_PACKAGE, name="stage", pending=4))
        stored = store.get_attendee(attendee_id)

        with pytest.raises(OverrunError):
            service.update_attendee(USER, replace(stored, packages={"attendance": 1, "stage": 1}))

        assert store.get_attendee(attendee_id).package_count("stage") == 0


class TestUpdateAdminInfo:
    """Tests for admin info changes."""

    def test_guest_flag_removes_dues(
        self, service: RegistrationService, ledger: InMemoryTransactionLedger
    ) -> None:
        """Making an approved attendee a guest compensates dues and resolves to paid."""
        attendee_id = service.register(USER, attendee())
        service.change_status(ADMIN, attendee_id, Status.APPROVED)

        result = service.update_admin_info(
            ADMIN, AdminInfo(attendee_id=attendee_id, flags=frozenset({"guest"}))
        )

        assert [t.amount.gross_cent for t in ledger.recording()] == [12000, -12000]
        assert result.status == Status.PAID
        assert service.status_machine.current_status(result.attendee) == Status.PAID

    def test_manual_dues_use_description_as_comment(
        self, service: RegistrationService, ledger: InMemoryTransactionLedger
    ) -> None:
        attendee_id = service.register(USER, attendee())
        service.change_status(ADMIN, attendee_id, Status.APPROVED)

        service.update_admin_info(
            ADMIN,
            AdminInfo(attendee_id=attendee_id, manual_dues=1500, manual_dues_description="late registration"),
        )

        last = ledger.recording()[-1]
        assert (last.amount.gross_cent, last.comment) == (1500, "late registration")
        assert service.get_admin_info(attendee_id).manual_dues == 1500

    def test_admin_info_before_approval_books_nothing(
        self, service: RegistrationService, ledger: InMemoryTransactionLedger
    ) -> None:
        attendee_id = service.register(USER, attendee())

        service.update_admin_info(ADMIN, AdminInfo(attendee_id=attendee_id, manual_dues=1500))

        assert ledger.recording() == []


class TestChangeStatus:
    """Tests for explicit status change requests."""

    def test_full_lifecycle(
        self,
        service: RegistrationService,
        store: InMemoryAttendeeStore,
        ledger: InMemoryTransactionLedger,
    ) -> None:
        """new -> approved -> paid -> checked in, with counts following along."""
        attendee_id = service.register(USER, attendee(packages={"attendance": 1, "stage": 1}))

        service.change_status(ADMIN, attendee_id, Status.APPROVED)
        ledger.inject(payment(14500, debitor_id=attendee_id))
        service.change_status(ADMIN, attendee_id, Status.PAID)
        service.change_status(ADMIN, attendee_id, Status.CHECKED_IN)

        assert [c.status for c in service.status_history(attendee_id)] == [
            Status.NEW,
            Status.APPROVED,
            Status.PAID,
            Status.CHECKED_IN,
        ]
        assert stage_count(store) == Count(area=COUNT_AREA_PACKAGE, name="stage", attending=1)

    def test_self_cancellation_releases_package(
        self, service: RegistrationService, store: InMemoryAttendeeStore
    ) -> None:
        attendee_id = service.register(USER, attendee(packages={"stage": 1}))

        result = service.change_status(USER, attendee_id, Status.CANCELLED, "changed my mind")

        assert result.status == Status.CANCELLED
        assert stage_count(store).total == 0

    def test_forbidden_change_touches_nothing(
        self,
        service: RegistrationService,
        store: InMemoryAttendeeStore,
        ledger: InMemoryTransactionLedger,
    ) -> None:
        attendee_id = service.register(USER, attendee(packages={"stage": 1}))

        with pytest.raises(StatusChangeForbidden):
            service.change_status(USER, attendee_id, Status.APPROVED)

        assert ledger.recording() == []
        assert stage_count(store).pending == 1
        assert service.status_machine.current_status(store.get_attendee(attendee_id)) == Status.NEW

    def test_precondition_failure(self, service: RegistrationService) -> None:
        attendee_id = service.register(USER, attendee())
        service.change_status(ADMIN, attendee_id, Status.APPROVED)

        with pytest.raises(InsufficientPaymentError):
            service.change_status(ADMIN, attendee_id, Status.PAID)

    def test_overrun_on_reactivation(
        self, service: RegistrationService, store: InMemoryAttendeeStore
    ) -> None:
        """Leaving cancelled re-allocates packages and can overrun."""
        attendee_id = service.register(USER, attendee(packages={"stage": 1}))
        service.change_status(ADMIN, attendee_id, Status.CANCELLED)
        store.reset_count(Count(area=COUNT_AREA_PACKAGE, name="stage", attending=4))

        with pytest.raises(OverrunError):
            service.change_status(ADMIN, attendee_id, Status.APPROVED)

    def test_ledger_failure_records_no_counts(
        self,
        service: RegistrationService,
        store: InMemoryAttendeeStore,
        ledger: InMemoryTransactionLedger,
    ) -> None:
        """Count deltas are not recorded when booking dues fails."""
        attendee_id = service.register(USER, attendee(packages={"stage": 1}))
        ledger.simulate_append_error = LedgerUnavailable("payment service down")

        with pytest.raises(LedgerUnavailable):
            service.change_status(ADMIN, attendee_id, Status.APPROVED)

        assert stage_count(store) == Count(area=COUNT_AREA_PACKAGE, name="stage", pending=1)

    def test_mail_failure_still_records_counts(
        self, service: RegistrationService, store: InMemoryAttendeeStore, notifier: Mock
    ) -> None:
        """Counts follow the stored status even if the status mail cannot be sent."""
        attendee_id = service.register(USER, attendee(packages={"stage": 1}))
        notifier.send_notification.side_effect = MailUnavailable("mail service down")

        with pytest.raises(MailUnavailable):
            service.change_status(ADMIN, attendee_id, Status.APPROVED)

        assert service.status_machine.current_status(service.get_attendee(attendee_id)) == Status.APPROVED
        assert stage_count(store) == Count(area=COUNT_AREA_PACKAGE, name="stage", attending=1)

    def test_dues_within_grace_resolve_to_paid(
        self, service: RegistrationService, ledger: InMemoryTransactionLedger
    ) -> None:
        """Approving an attendee who owes less than the grace amount resolves to paid."""
        attendee_id = service.register(USER, attendee(packages={}))
        service.update_admin_info(ADMIN, AdminInfo(attendee_id=attendee_id, manual_dues=50))

        result = service.change_status(ADMIN, attendee_id, Status.APPROVED)

        assert [t.amount.gross_cent for t in ledger.recording()] == [50]
        assert (result.status, result.status_changed) == (Status.PAID, True)
        assert service.status_history(attendee_id)[-1].status == Status.PAID


class TestMaintenance:
    """Tests for mail resend and count repair."""

    def test_resend_status_mail(self, service: RegistrationService, notifier: Mock) -> None:
        attendee_id = service.register(USER, attendee())
        service.change_status(ADMIN, attendee_id, Status.APPROVED)
        notifier.reset_mock()

        assert service.resend_status_mail(attendee_id) is True
        notifier.send_notification.assert_called_once()

    def test_recalculate_limit(self, service: RegistrationService, store: InMemoryAttendeeStore) -> None:
        attendee_id = service.register(USER, attendee(packages={"stage": 2}))
        service.change_status(ADMIN, attendee_id, Status.APPROVED)
        store.reset_count(Count(area=COUNT_AREA_PACKAGE, name="stage"))

        result = service.recalculate_limit("stage")

        assert result == Count(area=COUNT_AREA_PACKAGE, name="stage", attending=2)
