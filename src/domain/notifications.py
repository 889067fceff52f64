"""Status notification payloads."""

from .models import Attendee
from .policy import DuesPolicy
from .ports import Status

_CHECKSUM_LETTERS = "FJQCEKNTWLVGYHSZXDBUARP"
_CHECKSUM_WEIGHTS = (3, 7, 11, 13, 17)

GUEST_TEMPLATE = "guest"


def badge_checksum(attendee_id: int) -> str:
    total = 0
    for weight in _CHECKSUM_WEIGHTS:
        if attendee_id <= 0:
            break
        total += (attendee_id % 10) * weight
        attendee_id //= 10
    return _CHECKSUM_LETTERS[total % len(_CHECKSUM_LETTERS)]


def badge_id(attendee_id: int) -> str:
    """Badge number followed by its check letter, e.g. 42 -> '42G'."""
    return f"{attendee_id}{badge_checksum(attendee_id)}"


def status_template(status: Status) -> str:
    return f"change-status-{status.value}"


def status_mail_variables(
    attendee: Attendee, policy: DuesPolicy, status: Status, comment: str
) -> dict[str, str]:
    """Template variables describing the attendee's status and dues."""
    remaining = attendee.cache_total_dues - attendee.cache_payment_balance
    due_date = ""
    if remaining > 0 and attendee.cache_due_date is not None:
        due_date = attendee.cache_due_date.strftime(policy.human_date_format)

    return {
        "badge_number": str(attendee.id),
        "badge_number_with_checksum": badge_id(attendee.id),
        "nickname": attendee.nickname,
        "email": attendee.email,
        "reason": comment if status == Status.CANCELLED else "",
        "remaining_dues": policy.format_cents(remaining),
        "total_dues": policy.format_cents(attendee.cache_total_dues),
        "pending_payments": policy.format_cents(attendee.cache_open_balance),
        "due_date": due_date,
        "regsys_url": policy.public_url,
    }
