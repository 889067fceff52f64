"""
Package allocation limits - pending/attending occupancy per package.

Attendees in pre-approval statuses (new, waiting) count as pending for
the packages they hold, approved and later statuses count as attending.
Counts are changed by atomic deltas applied by the store; a change is
rejected if it would push pending + attending beyond the package limit.
"""

import logging
from collections.abc import Sequence

from .exceptions import OverrunError
from .models import COUNT_AREA_PACKAGE, Attendee, Count, CountDelta
from .policy import DuesPolicy
from .ports import AttendeeStore, Status

logger = logging.getLogger(__name__)

_PENDING = frozenset({Status.NEW, Status.WAITING})
_ATTENDING = frozenset({Status.APPROVED, Status.PARTIALLY_PAID, Status.PAID, Status.CHECKED_IN})


def pending_multiplier(status: Status) -> int:
    return 1 if status in _PENDING else 0


def attending_multiplier(status: Status) -> int:
    return 1 if status in _ATTENDING else 0


class AllocationLimiter:
    """Detects and records package allocation changes against capacity limits."""

    def __init__(self, store: AttendeeStore, policy: DuesPolicy) -> None:
        self._store = store
        self._policy = policy

    def would_exceed_limit(
        self,
        old_state: Attendee,
        new_state: Attendee,
        old_status: Status,
        new_status: Status,
    ) -> list[CountDelta]:
        """
        Compute count deltas for a change, rejecting it if a limit would overrun.

        Only a delta that adds occupancy can introduce an overrun. Releases are
        never rejected, even if the stored counts are already above the limit,
        but they are still returned as deltas.

        Returns:
            Non-empty deltas to apply via record_limit_changes()

        Raises:
            OverrunError: Applying the deltas would exceed a package limit
            CountNotInitialized: A limited package has no count row
        """
        deltas: list[CountDelta] = []
        for code, conf in sorted(self._policy.limited_packages().items()):
            old_count = old_state.package_count(code)
            new_count = new_state.package_count(code)
            delta = CountDelta(
                area=COUNT_AREA_PACKAGE,
                name=code,
                pending=new_count * pending_multiplier(new_status)
                - old_count * pending_multiplier(old_status),
                attending=new_count * attending_multiplier(new_status)
                - old_count * attending_multiplier(old_status),
            )
            if delta.is_empty():
                continue

            if delta.pending + delta.attending > 0:
                current = self._store.get_count(COUNT_AREA_PACKAGE, code)
                if current.total + delta.pending + delta.attending > conf.limit:
                    raise OverrunError(code)

            deltas.append(delta)
        return deltas

    def record_limit_changes(self, deltas: Sequence[CountDelta]) -> list[Count]:
        """Apply deltas atomically, one store increment per package."""
        return [self._store.add_count(delta) for delta in deltas]

    def recalculate_limit(self, package: str) -> Count:
        """
        Re-derive the counts of a package from all attendees holding it.

        Used to repair drift. Logs a warning if stored and derived counts differ.
        """
        pending = 0
        attending = 0
        for attendee in self._store.find_by_package(package):
            status = self._current_status(attendee)
            count = attendee.package_count(package)
            pending += count * pending_multiplier(status)
            attending += count * attending_multiplier(status)

        recalculated = Count(area=COUNT_AREA_PACKAGE, name=package, pending=pending, attending=attending)
        stored = self._store.get_count(COUNT_AREA_PACKAGE, package)
        if (stored.pending, stored.attending) != (pending, attending):
            logger.warning(
                "count drift for package %s: stored pending %d attending %d, "
                "recalculated pending %d attending %d",
                package,
                stored.pending,
                stored.attending,
                pending,
                attending,
            )
        self._store.reset_count(recalculated)
        return recalculated

    def _current_status(self, attendee: Attendee) -> Status:
        changes = self._store.get_status_changes(attendee.id)
        return changes[-1].status if changes else Status.NEW
