"""
OVERLAP VALIDATOR
=================

A member may hold at most one live membership (and one live add-on) for
any given day. Ranges are closed on both ends at day granularity:
[1 Jan, 31 Jan] and [31 Jan, 28 Feb] overlap.
"""

from datetime import date, datetime

from gym_billing.clock import get_clock
from gym_billing.models import BillingStatus
from gym_billing.services.errors import (
    InvalidDateRangeError, PastEndDateError, OverlappingRangeError
)
from gym_billing.services.kinds import resolve_kind


def to_date(value):
    """Normalise a date, datetime or ISO-8601 string to a plain date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip().replace('Z', '+00:00')).date()
        except ValueError:
            raise InvalidDateRangeError(f"Invalid date: {value!r}")
    raise InvalidDateRangeError(f"Invalid date: {value!r}")


def is_overlapping(candidate, existing_ranges):
    """True when the closed range ``candidate`` shares a day with any of ``existing_ranges``."""
    s1, e1 = to_date(candidate[0]), to_date(candidate[1])
    return any(
        s1 <= to_date(e2) and to_date(s2) <= e1
        for s2, e2 in existing_ranges
    )


def find_overlapping(kind, tenant_id, member_id, start, end, exclude_id=None):
    """Return the first live entity of ``kind`` whose range meets [start, end]."""
    kind = resolve_kind(kind)
    model = kind.model

    query = model.query.filter(
        model.user_id == tenant_id,
        model.member_id == member_id,
        model.status != BillingStatus.CANCELLED.value,
        model.start_date <= end,
        model.end_date >= start,
    )
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)

    return query.order_by(model.start_date).first()


def validate_new_range(kind, tenant_id, member_id, start, end, exclude_id=None, clock=None):
    """
    Check that [start, end] may be booked for the member.

    Raises InvalidDateRangeError, PastEndDateError or OverlappingRangeError.
    Returns the normalised (start, end) pair.
    """
    kind = resolve_kind(kind)
    start = to_date(start)
    end = to_date(end)

    if start is None or end is None:
        raise InvalidDateRangeError("Start and end dates are required")

    if start >= end:
        raise InvalidDateRangeError("End date must be after start date")

    today = get_clock(clock).today()
    if end < today:
        raise PastEndDateError("End date cannot be in the past")

    conflict = find_overlapping(kind, tenant_id, member_id, start, end, exclude_id)
    if conflict is not None:
        raise OverlappingRangeError(
            f"{kind.label} dates overlap with an existing {kind.label.lower()} for this member "
            f"({conflict.start_date.isoformat()} to {conflict.end_date.isoformat()})",
            conflicting_id=conflict.id,
        )

    return start, end
