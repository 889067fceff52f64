"""
Domain exceptions - Semantic error types for attendee registration.

Two families are defined here:

- Rejections (RegistrationError subclasses) are expected outcomes of a
  request, such as a failed payment precondition or an exhausted package.
  Callers translate them into a client facing message; they are never
  logged as system errors.
- Downstream failures (DownstreamError subclasses) mean a collaborator
  was unavailable. They propagate unchanged, the domain never retries.
"""


class RegistrationError(Exception):
    """Base class for registration domain rejections."""

    pass


class StatusChangeError(RegistrationError):
    """A requested status change is not possible in the current state."""

    pass


class SameStatusError(StatusChangeError):
    """Old and new status are identical."""

    def __init__(self) -> None:
        super().__init__("old and new status are the same")


class HasPaymentBalanceError(StatusChangeError):
    """Target status requires that no payments have been made."""

    def __init__(self) -> None:
        super().__init__("there is a non-zero payment balance, please use partially paid, or refund")


class InsufficientPaymentError(StatusChangeError):
    """Payment balance does not satisfy the target status."""

    def __init__(self) -> None:
        super().__init__("payment amount not sufficient for this status")


class GoToApprovedFirstError(StatusChangeError):
    """Payment statuses can only be reached after approval."""

    def __init__(self) -> None:
        super().__init__("must use approved status to produce a dues transaction first")


class CannotDeleteError(StatusChangeError):
    """Attendees with valid payments cannot be deleted."""

    def __init__(self) -> None:
        super().__init__("cannot delete attendee for legal reasons (there were payments or invoices)")


class UnknownStatusError(StatusChangeError):
    """The requested status is not part of the status workflow."""

    def __init__(self, status: str) -> None:
        super().__init__(f"unknown status value {status!r}")
        self.status = status


class StatusChangeForbidden(RegistrationError):
    """The caller is not allowed to perform this status transition."""

    pass


class OverrunError(RegistrationError):
    """Allocating a package would exceed its configured capacity limit."""

    def __init__(self, package: str) -> None:
        super().__init__(
            f"cannot allocate package '{package}', allocation limit reached - "
            "please remove this package to continue"
        )
        self.package = package


class DuplicateAttendeeError(RegistrationError):
    """Another registration with the same nickname, zip and email exists."""

    pass


class DownstreamError(Exception):
    """Base class for failures of collaborating services or storage."""

    pass


class LedgerUnavailable(DownstreamError):
    """The transaction ledger could not be reached or rejected the request."""

    pass


class MailUnavailable(DownstreamError):
    """The notification service could not accept a request."""

    pass


class CountNotInitialized(DownstreamError):
    """A count row was never provisioned by the store."""

    def __init__(self, area: str, name: str) -> None:
        super().__init__(f"count for area {area} name {name} was never initialized")
        self.area = area
        self.name = name


class AttendeeNotFound(DownstreamError):
    """The store holds no attendee with the given id."""

    def __init__(self, attendee_id: int) -> None:
        super().__init__(f"attendee {attendee_id} not found")
        self.attendee_id = attendee_id


class DebitorNotFound(Exception):
    """
    The ledger has no transactions for this debitor.

    Not an error for balance computations, which treat it as an empty ledger.
    """

    def __init__(self, debitor_id: int) -> None:
        super().__init__(f"debitor {debitor_id} not found")
        self.debitor_id = debitor_id
