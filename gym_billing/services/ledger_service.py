"""
LEDGER SERVICE
==============

The Payment table is the single source of truth for money movement.

CRITICAL RULES:
1. Entries are append-only; a refund is a new negative entry
2. record_entry() never commits; the caller's atomic() block does
3. The cached paid/pending on an entity can always be rebuilt from here
"""

from datetime import datetime, time, timedelta

from sqlalchemy import or_, select

from gym_billing.clock import get_clock
from gym_billing.extensions import db
from gym_billing.logging_config import get_logger
from gym_billing.models import (
    Payment, PaymentMethod, Membership, MemberAddon, Expense
)
from gym_billing.services import balance_service
from gym_billing.services.errors import BillingError, InvalidAmountError
from gym_billing.services.kinds import resolve_kind
from gym_billing.services.overlap_service import to_date
from gym_billing.services.scope import get_owned
from gym_billing.services.transaction import atomic

logger = get_logger("ledger")

LINK_FIELDS = ('membership_id', 'member_addon_id', 'expense_id')


# ============================================================
# APPEND
# ============================================================

def record_entry(tenant_id, amount, method=None, notes=None, clock=None, **link):
    """
    Append one ledger entry to the current session.

    ``link`` holds at most one of membership_id / member_addon_id /
    expense_id. The row is flushed so it has an id, but not committed.
    """
    unknown = set(link) - set(LINK_FIELDS)
    if unknown:
        raise ValueError(f"Unknown ledger link: {', '.join(sorted(unknown))}")

    targets = [name for name, value in link.items() if value is not None]
    if len(targets) > 1:
        raise BillingError("A ledger entry can finance only one entity")

    amount = balance_service.round_money(amount)
    if not amount:
        raise InvalidAmountError("Ledger entry amount cannot be zero")

    entry = Payment(
        user_id=tenant_id,
        amount=amount,
        method=PaymentMethod.coerce(method),
        notes=notes,
        payment_date=get_clock(clock).now().replace(tzinfo=None),
        **link
    )
    db.session.add(entry)
    db.session.flush()

    logger.info(
        "Ledger entry recorded",
        extra={
            "tenant_id": tenant_id,
            "payment_id": entry.id,
            "amount": entry.amount,
            "method": entry.method,
            "target": targets[0] if targets else None,
        },
    )
    return entry


# ============================================================
# READ
# ============================================================

def entries_for(kind, entity_id):
    """All entries financing one membership / member add-on, oldest first."""
    kind = resolve_kind(kind)
    column = getattr(Payment, kind.ledger_fk)
    return Payment.query.filter(column == entity_id) \
        .order_by(Payment.payment_date, Payment.id).all()


def ledger_paid(kind, entity_id):
    """Signed sum of the entries linked to an entity (payments minus refunds)."""
    kind = resolve_kind(kind)
    column = getattr(Payment, kind.ledger_fk)
    total = db.session.query(db.func.sum(Payment.amount)) \
        .filter(column == entity_id).scalar()
    return round(total or 0.0, 2)


# ============================================================
# AUDIT / RECONCILIATION
# ============================================================

def reconcile_billable(kind, tenant_id, entity_id):
    """
    Recalculate an entity's paid/pending/status from its ledger entries.

    The cached fields are rewritten only when they drift by more than 0.01.
    A CANCELLED entity keeps its status.
    """
    kind = resolve_kind(kind)

    with atomic(f"{kind.label} reconciliation"):
        entity = get_owned(kind.model, entity_id, tenant_id, kind.label, lock=True)

        calculated_paid = ledger_paid(kind, entity.id)
        previous_paid = entity.paid
        difference = round(calculated_paid - previous_paid, 2)

        was_corrected = False
        if abs(difference) > 0.01:
            balance = balance_service.apply_payment(
                entity.price, calculated_paid, entity.discount, 0
            )
            entity.paid = balance.paid
            entity.pending = balance.pending
            if not entity.is_cancelled:
                entity.status = balance.status
            was_corrected = True

            logger.warning(
                "Cached balance drifted from ledger; corrected",
                extra={
                    "tenant_id": tenant_id,
                    "kind": kind.name,
                    "entity_id": entity.id,
                    "previous_paid": previous_paid,
                    "calculated_paid": calculated_paid,
                },
            )

        report = {
            'kind': kind.name,
            'entity_id': entity.id,
            'previous_paid': previous_paid,
            'calculated_paid': calculated_paid,
            'difference': difference,
            'was_corrected': was_corrected,
            'pending': entity.pending,
            'status': entity.status,
        }

    return report


# ============================================================
# PAYMENT HISTORY
# ============================================================

def _history_row(payment):
    membership = payment.membership
    member_addon = payment.member_addon

    owner = membership or member_addon
    member = owner.member if owner is not None else None
    member_info = {
        'id': member.id,
        'name': member.full_name,
        'email': member.email,
    } if member is not None else None

    row = {
        'id': payment.id,
        'amount': payment.amount,
        'payment_date': payment.payment_date,
        'method': payment.method,
        'notes': payment.notes,
        'type': 'unknown',
        'member': member_info,
        'plan': None,
        'membership_id': None,
        'addon_id': None,
        'addon_name': None,
        'trainer': None,
        'expense_id': None,
    }

    if membership is not None:
        row.update(
            type='membership',
            plan=membership.plan.name if membership.plan else None,
            membership_id=payment.membership_id,
        )
    elif member_addon is not None:
        trainer = member_addon.trainer
        row.update(
            type='addon',
            addon_id=payment.member_addon_id,
            addon_name=member_addon.addon.name if member_addon.addon else None,
            trainer={'id': trainer.id, 'name': trainer.full_name} if trainer else None,
        )
    elif payment.expense_id is not None:
        row.update(type='expense', expense_id=payment.expense_id)

    return row


def payment_history(tenant_id, member_id=None, start_date=None, end_date=None,
                    method=None, page=1, limit=10):
    """
    Paginated ledger listing for one tenant, newest first.

    ``member_id`` matches entries of the member's memberships OR add-ons.
    Date bounds are inclusive days.
    """
    page = max(int(page or 1), 1)
    limit = max(int(limit or 10), 1)

    query = Payment.query.filter(Payment.user_id == tenant_id)

    if method:
        try:
            method = PaymentMethod(str(method).upper()).value
        except ValueError:
            raise BillingError(f"Unknown payment method: {method!r}")
        query = query.filter(Payment.method == method)

    start = to_date(start_date)
    end = to_date(end_date)
    if start is not None:
        query = query.filter(Payment.payment_date >= datetime.combine(start, time.min))
    if end is not None:
        query = query.filter(Payment.payment_date < datetime.combine(end + timedelta(days=1), time.min))

    if member_id is not None:
        membership_ids = select(Membership.id).where(
            Membership.user_id == tenant_id, Membership.member_id == member_id
        )
        addon_ids = select(MemberAddon.id).where(
            MemberAddon.user_id == tenant_id, MemberAddon.member_id == member_id
        )
        query = query.filter(or_(
            Payment.membership_id.in_(membership_ids),
            Payment.member_addon_id.in_(addon_ids),
        ))

    payments = query.order_by(Payment.payment_date.desc(), Payment.id.desc()) \
        .paginate(page=page, per_page=limit, error_out=False)

    return {
        'data': [_history_row(p) for p in payments.items],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': payments.total,
            'total_pages': payments.pages,
        },
    }


# ============================================================
# SUMMARY
# ============================================================

def financial_summary(tenant_id):
    """Income (positive entries), outgo (negative entries) and net balance."""
    income = db.session.query(db.func.sum(Payment.amount)).filter(
        Payment.user_id == tenant_id, Payment.amount > 0
    ).scalar() or 0.0

    outgo = db.session.query(db.func.sum(Payment.amount)).filter(
        Payment.user_id == tenant_id, Payment.amount < 0
    ).scalar() or 0.0

    expense_count = Expense.query.filter_by(user_id=tenant_id).count()

    return {
        'total_income': round(income, 2),
        'total_expense': round(abs(outgo), 2),
        'net_balance': round(income + outgo, 2),
        'expense_count': expense_count,
    }


# ============================================================
# SERIALIZATION
# ============================================================

def payment_to_dict(payment):
    return {
        'id': payment.id,
        'amount': payment.amount,
        'method': payment.method,
        'notes': payment.notes,
        'payment_date': payment.payment_date.isoformat() if payment.payment_date else None,
        'membership_id': payment.membership_id,
        'member_addon_id': payment.member_addon_id,
        'expense_id': payment.expense_id,
    }
