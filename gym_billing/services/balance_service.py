"""
BALANCE RECONCILIATION ENGINE
=============================

Pure functions that turn (price, paid, discount) plus one money event into
the new cached balance of a membership or member add-on. No database access:
billing_service loads the row, calls in here, and writes the result back in
the same transaction as the ledger entry.

RULES:
1. pending = max(price - paid - discount, 0), always recomputed from scratch
2. Refunds subtract from paid; they never touch discount
3. A refund can never take paid below zero
4. An explicit status override wins for the call that carries it
"""

from collections import namedtuple

from gym_billing.models import BillingStatus, ExpenseStatus
from gym_billing.services.errors import BillingError, InvalidRefundError

Balance = namedtuple('Balance', ['price', 'paid', 'discount', 'pending', 'status'])
ExpenseBalance = namedtuple('ExpenseBalance', ['amount', 'paid', 'pending', 'status'])


def round_money(value):
    """Money is kept to 2 decimal places; anything smaller rounds away."""
    return round(float(value or 0), 2)


def compute_pending(price, paid, discount):
    """Amount still owed, floored at zero."""
    return max(round_money(round_money(price) - round_money(paid) - round_money(discount)), 0.0)


def normalize_status(status):
    """Return the stored value of a BillingStatus, its name, or None."""
    if status is None:
        return None
    if isinstance(status, BillingStatus):
        return status.value
    try:
        return BillingStatus(str(status).upper()).value
    except ValueError:
        raise BillingError(f"Unknown status: {status!r}")


# ============================================================
# PAYMENT
# ============================================================

def apply_payment(price, paid, discount, amount_paid, amount_discount=0, status_override=None):
    """
    Apply a payment (and optional extra discount) to a balance.

    Status, in order:
    - nothing pending            -> ACTIVE
    - pending and something paid -> PARTIAL_PAID when the caller asked for
                                    partial-paid semantics, else INACTIVE
    - nothing paid               -> INACTIVE

    ``status_override`` (BillingStatus or its value) replaces the derived
    status for this call only.
    """
    override = normalize_status(status_override)

    new_paid = round_money(paid) + round_money(amount_paid)
    new_discount = round_money(discount) + round_money(amount_discount)
    new_pending = compute_pending(price, new_paid, new_discount)

    if new_pending <= 0:
        status = BillingStatus.ACTIVE.value
    elif new_paid > 0:
        if override == BillingStatus.PARTIAL_PAID.value:
            status = BillingStatus.PARTIAL_PAID.value
        else:
            status = BillingStatus.INACTIVE.value
    else:
        status = BillingStatus.INACTIVE.value

    if override is not None:
        status = override

    return Balance(round_money(price), round_money(new_paid), round_money(new_discount), new_pending, status)


# ============================================================
# REFUND
# ============================================================

def apply_refund(price, paid, discount, refund_amount):
    """
    Take ``refund_amount`` back out of ``paid``.

    A full refund leaves the entity INACTIVE, not CANCELLED; cancelling is
    its own operation in billing_service.
    """
    refund_amount = round_money(refund_amount)
    current_paid = round_money(paid)

    if refund_amount <= 0:
        raise InvalidRefundError("Refund amount must be greater than 0")
    if refund_amount > current_paid:
        raise InvalidRefundError(
            f"Refund amount cannot exceed total paid amount ({current_paid:.2f})"
        )

    new_paid = round_money(current_paid - refund_amount)
    new_pending = compute_pending(price, new_paid, discount)

    if new_pending <= 0:
        status = BillingStatus.ACTIVE.value
    elif new_paid > 0:
        status = BillingStatus.PARTIAL_PAID.value
    else:
        status = BillingStatus.INACTIVE.value

    return Balance(round_money(price), new_paid, round_money(discount), new_pending, status)


# ============================================================
# OFFERING CHANGE
# ============================================================

def apply_offering_change(paid, discount, new_price):
    """Re-price an entity after its plan/add-on is swapped. History is not touched."""
    new_pending = compute_pending(new_price, paid, discount)
    status = BillingStatus.ACTIVE.value if new_pending <= 0 else BillingStatus.INACTIVE.value
    return Balance(round_money(new_price), round_money(paid), round_money(discount), new_pending, status)


# ============================================================
# EXPENSE
# ============================================================

def expense_balance(amount, paid):
    """PENDING -> PARTIAL_PAID -> PAID ladder for expenses."""
    new_pending = max(round_money(round_money(amount) - round_money(paid)), 0.0)

    if new_pending <= 0:
        status = ExpenseStatus.PAID.value
    elif round_money(paid) > 0:
        status = ExpenseStatus.PARTIAL_PAID.value
    else:
        status = ExpenseStatus.PENDING.value

    return ExpenseBalance(round_money(amount), round_money(paid), new_pending, status)
