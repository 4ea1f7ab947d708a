"""
BILLING SERVICE - MEMBERSHIPS & MEMBER ADD-ONS
==============================================

One implementation for both billable kinds (see kinds.py). A membership
sells a Plan; a member add-on sells an Addon and may name a trainer.

CRITICAL BUSINESS RULES:
1. paid / discount / pending / status change ONLY together with a Payment row
2. Every mutation runs inside atomic(): entity + ledger commit as one unit
3. The entity row is read with SELECT ... FOR UPDATE before any
   read-modify-write of its balance
4. Every lookup filters by tenant; another tenant's row is "not found"
5. No two live (non-cancelled) entities of one kind overlap for a member
6. A full refund leaves the entity INACTIVE; CANCELLED needs cancel_billable()
"""

from datetime import timedelta

from gym_billing.clock import get_clock
from gym_billing.extensions import db
from gym_billing.logging_config import get_logger
from gym_billing.models import BillingStatus
from gym_billing.services import balance_service
from gym_billing.services.errors import (
    BillingError, InvalidAmountError, InvalidDateRangeError
)
from gym_billing.services.kinds import resolve_kind
from gym_billing.services.ledger_service import record_entry, entries_for, payment_to_dict
from gym_billing.services.overlap_service import to_date, validate_new_range
from gym_billing.services.scope import get_owned, get_member, get_trainer
from gym_billing.services.transaction import atomic

logger = get_logger("billing")

# Marker for "argument not given" where None is meaningful (clearing a trainer)
UNSET = object()


# ============================================================
# HELPERS
# ============================================================

def _load(kind, tenant_id, entity_id, lock=False):
    return get_owned(kind.model, entity_id, tenant_id, kind.label, lock=lock)


def _resolve_offering(kind, offering_id, tenant_id):
    return get_owned(kind.offering_model, offering_id, tenant_id, kind.offering_label)


def _check_trainer(kind, trainer_id, tenant_id):
    if not kind.allows_trainer:
        raise BillingError(f"A {kind.label.lower()} cannot have a trainer")
    return get_trainer(trainer_id, tenant_id)


def _non_negative(value, name):
    value = float(value or 0)
    if value < 0:
        raise InvalidAmountError(f"{name} cannot be negative")
    return value


def _write_balance(entity, balance, keep_cancelled=True):
    entity.price = balance.price
    entity.paid = balance.paid
    entity.discount = balance.discount
    entity.pending = balance.pending
    if not (keep_cancelled and entity.is_cancelled):
        entity.status = balance.status


# ============================================================
# CREATE (ATOMIC)
# ============================================================

def create_billable(kind, tenant_id, member_id, offering_id, start_date=None, end_date=None,
                    paid=0, discount=0, method=None, trainer_id=None, clock=None):
    """
    Sell a plan / add-on to a member.

    ATOMIC OPERATION:
    1. Resolve member, offering (and trainer) inside the tenant
    2. Default the end date from the offering's duration when omitted
    3. Validate the date range (order, not past, no overlap)
    4. Snapshot the price and derive the opening balance
    5. Insert the entity and, if something was paid, a +paid ledger entry

    Returns: the new Membership / MemberAddon
    """
    kind = resolve_kind(kind)
    clock = get_clock(clock)
    paid = _non_negative(paid, "Paid amount")
    discount = _non_negative(discount, "Discount")

    with atomic(f"{kind.label} creation"):
        # Locking the member serialises overlap checks for that member
        member = get_member(member_id, tenant_id, lock=True)
        offering = _resolve_offering(kind, offering_id, tenant_id)
        if trainer_id is not None:
            _check_trainer(kind, trainer_id, tenant_id)

        start = to_date(start_date) or clock.today()
        end = to_date(end_date)
        if end is None:
            if not offering.duration_days:
                raise InvalidDateRangeError(
                    f"{kind.offering_label} must have a duration or an end date must be given"
                )
            end = start + timedelta(days=offering.duration_days)

        start, end = validate_new_range(kind, tenant_id, member.id, start, end, clock=clock)

        balance = balance_service.apply_payment(offering.price, 0, 0, paid, discount)

        fields = {
            'user_id': tenant_id,
            'member_id': member.id,
            kind.offering_fk: offering.id,
            'start_date': start,
            'end_date': end,
            'price': balance.price,
            'paid': balance.paid,
            'discount': balance.discount,
            'pending': balance.pending,
            'status': balance.status,
        }
        if kind.allows_trainer:
            fields['trainer_id'] = trainer_id

        entity = kind.model(**fields)
        db.session.add(entity)
        db.session.flush()

        if balance.paid > 0:
            record_entry(
                tenant_id, balance.paid, method=method, clock=clock,
                **{kind.ledger_fk: entity.id}
            )

    logger.info(
        "%s created", kind.label,
        extra={
            "tenant_id": tenant_id,
            "entity_id": entity.id,
            "member_id": member_id,
            "price": entity.price,
            "paid": entity.paid,
            "status": entity.status,
        },
    )
    return entity


# ============================================================
# READ
# ============================================================

def get_billable(kind, tenant_id, entity_id):
    kind = resolve_kind(kind)
    return _load(kind, tenant_id, entity_id)


def list_billables(kind, tenant_id, member_id=None, status=None):
    """All entities of ``kind`` for a tenant, newest start date first."""
    kind = resolve_kind(kind)
    model = kind.model

    query = model.query.filter(model.user_id == tenant_id)
    if member_id is not None:
        query = query.filter(model.member_id == member_id)
    if status is not None:
        query = query.filter(model.status == balance_service.normalize_status(status))

    return query.order_by(model.start_date.desc(), model.id.desc()).all()


# ============================================================
# UPDATE (ATOMIC)
# ============================================================

def update_billable(kind, tenant_id, entity_id, start_date=None, end_date=None,
                    offering_id=None, trainer_id=UNSET, clock=None):
    """
    Move dates, swap the plan / add-on, or change the trainer.

    - Date or offering change re-runs range validation (self excluded)
    - Offering change re-prices: new price snapshot, pending recomputed,
      status ACTIVE when settled else INACTIVE
    - ``trainer_id=None`` clears the trainer; leave it out to keep it
    """
    kind = resolve_kind(kind)
    clock = get_clock(clock)

    with atomic(f"{kind.label} update"):
        entity = _load(kind, tenant_id, entity_id, lock=True)

        offering_changed = offering_id is not None and offering_id != entity.offering_id
        dates_changed = start_date is not None or end_date is not None
        offering = _resolve_offering(kind, offering_id, tenant_id) if offering_changed else None

        if dates_changed or offering_changed:
            get_member(entity.member_id, tenant_id, lock=True)
            start = to_date(start_date) or entity.start_date
            end = to_date(end_date) or entity.end_date
            start, end = validate_new_range(
                kind, tenant_id, entity.member_id, start, end,
                exclude_id=entity.id, clock=clock
            )
            entity.start_date = start
            entity.end_date = end

        if offering is not None:
            balance = balance_service.apply_offering_change(
                entity.paid, entity.discount, offering.price
            )
            setattr(entity, kind.offering_fk, offering.id)
            _write_balance(entity, balance)

        if trainer_id is not UNSET and trainer_id != entity.trainer_id:
            if trainer_id is None:
                entity.trainer_id = None
            else:
                entity.trainer_id = _check_trainer(kind, trainer_id, tenant_id).id

    logger.info(
        "%s updated", kind.label,
        extra={"tenant_id": tenant_id, "entity_id": entity.id, "status": entity.status},
    )
    return entity


# ============================================================
# ADD PAYMENT (ATOMIC)
# ============================================================

def add_payment(kind, tenant_id, entity_id, amount=None, discount=0, method=None,
                status_override=None, clock=None):
    """
    Record a payment (plus optional extra discount) against an entity.

    A call without a positive amount (after rounding to cents) or without a
    method changes no money and writes no ledger entry; only
    ``status_override`` is applied.

    An override that brings a CANCELLED entity back to life re-runs the
    overlap check, since its range stopped being reserved on cancellation.
    """
    kind = resolve_kind(kind)
    override = balance_service.normalize_status(status_override)
    discount = _non_negative(discount, "Discount")
    if amount is not None:
        amount = balance_service.round_money(amount)

    with atomic(f"{kind.label} payment"):
        entity = _load(kind, tenant_id, entity_id, lock=True)

        if entity.is_cancelled and override not in (None, BillingStatus.CANCELLED.value):
            get_member(entity.member_id, tenant_id, lock=True)
            validate_new_range(
                kind, tenant_id, entity.member_id, entity.start_date, entity.end_date,
                exclude_id=entity.id, clock=clock
            )

        if amount is not None and method and amount > 0:
            balance = balance_service.apply_payment(
                entity.price, entity.paid, entity.discount,
                amount, discount, status_override=override
            )
            record_entry(
                tenant_id, amount, method=method, clock=clock,
                **{kind.ledger_fk: entity.id}
            )
            _write_balance(entity, balance, keep_cancelled=override is None)

            logger.info(
                "Payment added to %s", kind.label.lower(),
                extra={
                    "tenant_id": tenant_id,
                    "entity_id": entity.id,
                    "amount": amount,
                    "pending": entity.pending,
                    "status": entity.status,
                },
            )
        elif override is not None:
            entity.status = override

    return entity


# ============================================================
# REFUND (ATOMIC)
# ============================================================

def refund(kind, tenant_id, entity_id, amount, method=None, reason=None, clock=None):
    """
    Give money back to the member.

    Appends a -amount ledger entry and takes the amount out of paid.
    Fails with InvalidRefundError when amount <= 0 or amount > paid.

    Returns: (Payment, entity)
    """
    kind = resolve_kind(kind)

    with atomic(f"{kind.label} refund"):
        entity = _load(kind, tenant_id, entity_id, lock=True)

        balance = balance_service.apply_refund(
            entity.price, entity.paid, entity.discount, amount
        )
        refund_amount = round(entity.paid - balance.paid, 2)

        entry = record_entry(
            tenant_id, -refund_amount, method=method, clock=clock,
            notes=f"Refund: {reason}" if reason else "Refund issued",
            **{kind.ledger_fk: entity.id}
        )
        _write_balance(entity, balance)

    logger.info(
        "Refund issued on %s", kind.label.lower(),
        extra={
            "tenant_id": tenant_id,
            "entity_id": entity.id,
            "amount": refund_amount,
            "paid": entity.paid,
            "status": entity.status,
        },
    )
    return entry, entity


# ============================================================
# CANCEL (ATOMIC)
# ============================================================

def cancel_billable(kind, tenant_id, entity_id, refund_paid=False, method=None,
                    reason=None, clock=None):
    """
    Terminate an entity without deleting its history.

    CANCELLED entities no longer block their date range. With
    ``refund_paid=True`` everything paid so far is refunded in the same
    transaction. Cancelling twice is a no-op.
    """
    kind = resolve_kind(kind)

    with atomic(f"{kind.label} cancellation"):
        entity = _load(kind, tenant_id, entity_id, lock=True)

        if entity.is_cancelled:
            return entity

        if refund_paid and entity.paid > 0:
            refund_amount = entity.paid
            balance = balance_service.apply_refund(
                entity.price, entity.paid, entity.discount, refund_amount
            )
            record_entry(
                tenant_id, -refund_amount, method=method, clock=clock,
                notes=f"Refund: {reason}" if reason else "Cancellation refund",
                **{kind.ledger_fk: entity.id}
            )
            _write_balance(entity, balance)

        entity.status = BillingStatus.CANCELLED.value

    logger.info(
        "%s cancelled", kind.label,
        extra={"tenant_id": tenant_id, "entity_id": entity.id, "refunded": refund_paid},
    )
    return entity


# ============================================================
# DELETE (ATOMIC)
# ============================================================

def delete_billable(kind, tenant_id, entity_id):
    """Hard delete: the entity's ledger entries go first, then the row."""
    kind = resolve_kind(kind)

    with atomic(f"{kind.label} deletion"):
        entity = _load(kind, tenant_id, entity_id, lock=True)

        removed = 0
        for entry in entries_for(kind, entity.id):
            db.session.delete(entry)
            removed += 1
        db.session.flush()

        db.session.delete(entity)

    logger.info(
        "%s deleted", kind.label,
        extra={"tenant_id": tenant_id, "entity_id": entity_id, "ledger_entries_removed": removed},
    )
    return True


# ============================================================
# SERIALIZATION
# ============================================================

def billable_to_dict(entity, include_payments=True):
    """Plain record of an entity with its offering, member, trainer and entries."""
    offering = entity.offering
    member = entity.member
    trainer = entity.trainer

    data = {
        'id': entity.id,
        'member_id': entity.member_id,
        'offering_id': entity.offering_id,
        'trainer_id': entity.trainer_id,
        'start_date': entity.start_date.isoformat(),
        'end_date': entity.end_date.isoformat(),
        'price': entity.price,
        'paid': entity.paid,
        'discount': entity.discount,
        'pending': entity.pending,
        'status': entity.status,
        'offering': {
            'id': offering.id,
            'name': offering.name,
            'price': offering.price,
        } if offering is not None else None,
        'member': {
            'id': member.id,
            'name': member.full_name,
            'email': member.email,
        } if member is not None else None,
        'trainer': {
            'id': trainer.id,
            'name': trainer.full_name,
        } if trainer is not None else None,
    }

    if include_payments:
        data['payments'] = [payment_to_dict(p) for p in entity.payments]

    return data
