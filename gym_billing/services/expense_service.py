"""
EXPENSE SERVICE
===============

Expenses are the outgoing side of the ledger: one status ladder
(PENDING -> PARTIAL_PAID -> PAID), no date-overlap rules, no offering.

Sign convention: the Expense row keeps non-negative amount / paid /
pending; each payment is recorded in the ledger as a NEGATIVE entry so
income minus outgo is a plain sum over Payment.amount.
"""

from gym_billing.clock import get_clock
from gym_billing.extensions import db
from gym_billing.logging_config import get_logger
from gym_billing.models import Expense
from gym_billing.services import balance_service
from gym_billing.services.errors import InvalidAmountError, BillingError
from gym_billing.services.ledger_service import record_entry, payment_to_dict
from gym_billing.services.overlap_service import to_date
from gym_billing.services.scope import get_expense as _get_owned_expense
from gym_billing.services.transaction import atomic

logger = get_logger("expense")

UPDATABLE_FIELDS = ('title', 'category', 'description', 'expense_date', 'amount')


def _positive_amount(amount, message):
    try:
        amount = balance_service.round_money(amount)
    except (TypeError, ValueError):
        raise InvalidAmountError(message)
    if amount <= 0:
        raise InvalidAmountError(message)
    return amount


# ============================================================
# CREATE
# ============================================================

def create_expense(tenant_id, title, category, amount, description=None,
                   expense_date=None, clock=None):
    """Record a new, unpaid expense."""
    amount = _positive_amount(amount, "Expense amount must be greater than 0")
    if not title or not category:
        raise BillingError("Expense title and category are required")

    with atomic("Expense creation"):
        balance = balance_service.expense_balance(amount, 0)
        expense = Expense(
            user_id=tenant_id,
            title=title.strip(),
            category=category.strip(),
            description=description,
            amount=balance.amount,
            paid=balance.paid,
            pending=balance.pending,
            status=balance.status,
            expense_date=to_date(expense_date) or get_clock(clock).today(),
        )
        db.session.add(expense)

    logger.info(
        "Expense recorded",
        extra={"tenant_id": tenant_id, "expense_id": expense.id, "amount": expense.amount},
    )
    return expense


# ============================================================
# READ
# ============================================================

def get_expense(tenant_id, expense_id):
    return _get_owned_expense(expense_id, tenant_id)


def list_expenses(tenant_id, category=None, status=None):
    """Tenant's expenses, latest expense date first."""
    query = Expense.query.filter(Expense.user_id == tenant_id)
    if category:
        query = query.filter(Expense.category == category)
    if status:
        query = query.filter(Expense.status == str(status).upper())
    return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()


# ============================================================
# UPDATE
# ============================================================

def update_expense(tenant_id, expense_id, **fields):
    """
    Edit descriptive fields or the amount.

    A new amount re-derives pending and status from what is already paid.
    """
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise BillingError(f"Cannot update expense field(s): {', '.join(sorted(unknown))}")

    with atomic("Expense update"):
        expense = _get_owned_expense(expense_id, tenant_id, lock=True)

        for name in ('title', 'category', 'description'):
            if fields.get(name) is not None:
                setattr(expense, name, fields[name])

        if fields.get('expense_date') is not None:
            expense.expense_date = to_date(fields['expense_date'])

        if fields.get('amount') is not None:
            amount = _positive_amount(fields['amount'], "Expense amount must be greater than 0")
            balance = balance_service.expense_balance(amount, expense.paid)
            expense.amount = balance.amount
            expense.pending = balance.pending
            expense.status = balance.status

    return expense


# ============================================================
# ADD PAYMENT (ATOMIC)
# ============================================================

def add_expense_payment(tenant_id, expense_id, amount, method=None, notes=None, clock=None):
    """
    Pay (part of) an expense.

    ATOMIC: negative ledger entry + expense totals in one commit.
    """
    amount = _positive_amount(amount, "Payment amount must be greater than 0")

    with atomic("Expense payment"):
        expense = _get_owned_expense(expense_id, tenant_id, lock=True)

        balance = balance_service.expense_balance(expense.amount, expense.paid + amount)

        record_entry(
            tenant_id, -abs(amount), method=method, clock=clock,
            notes=notes or 'Expense payment',
            expense_id=expense.id,
        )

        expense.paid = balance.paid
        expense.pending = balance.pending
        expense.status = balance.status

    logger.info(
        "Expense payment recorded",
        extra={
            "tenant_id": tenant_id,
            "expense_id": expense.id,
            "amount": amount,
            "pending": expense.pending,
            "status": expense.status,
        },
    )
    return expense


# ============================================================
# DELETE
# ============================================================

def delete_expense(tenant_id, expense_id):
    with atomic("Expense deletion"):
        expense = _get_owned_expense(expense_id, tenant_id, lock=True)
        for entry in list(expense.payments):
            db.session.delete(entry)
        db.session.flush()
        db.session.delete(expense)

    logger.info("Expense deleted", extra={"tenant_id": tenant_id, "expense_id": expense_id})
    return True


def expense_to_dict(expense, include_payments=True):
    data = {
        'id': expense.id,
        'title': expense.title,
        'category': expense.category,
        'description': expense.description,
        'amount': expense.amount,
        'paid': expense.paid,
        'pending': expense.pending,
        'status': expense.status,
        'expense_date': expense.expense_date.isoformat(),
    }
    if include_payments:
        data['payments'] = [payment_to_dict(p) for p in expense.payments]
    return data
