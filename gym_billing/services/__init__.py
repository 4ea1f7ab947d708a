"""
Services Package
================

Business logic layer for gym billing.

All money movement goes through these services.
Routes should call them, not manipulate models directly.
"""

from gym_billing.services.errors import (
    BillingError,
    NotFoundError,
    InvalidDateRangeError,
    PastEndDateError,
    OverlappingRangeError,
    InvalidRefundError,
    InvalidAmountError,
    ConstraintViolationError,
    LedgerImmutableError
)

from gym_billing.services.kinds import (
    MEMBERSHIP,
    MEMBER_ADDON,
    resolve_kind
)

from gym_billing.services.balance_service import (
    apply_payment,
    apply_refund,
    apply_offering_change,
    expense_balance
)

from gym_billing.services.overlap_service import (
    is_overlapping,
    validate_new_range
)

from gym_billing.services.billing_service import (
    create_billable,
    get_billable,
    list_billables,
    update_billable,
    add_payment,
    refund,
    cancel_billable,
    delete_billable
)

from gym_billing.services.expense_service import (
    create_expense,
    get_expense,
    list_expenses,
    update_expense,
    add_expense_payment,
    delete_expense
)

from gym_billing.services.ledger_service import (
    record_entry,
    entries_for,
    ledger_paid,
    reconcile_billable,
    payment_history,
    financial_summary
)

from gym_billing.services.member_service import (
    delete_member
)
