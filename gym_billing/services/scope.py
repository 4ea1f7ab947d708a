"""
Tenant-scoped lookups.

The tenant id is always part of the query predicate. A row owned by another
tenant is indistinguishable from a missing one: both raise NotFoundError.
"""

from gym_billing.models import Member, Plan, Addon, Trainer, Expense
from gym_billing.services.errors import NotFoundError


def owned_query(model, entity_id, tenant_id, lock=False):
    query = model.query.filter(model.id == entity_id, model.user_id == tenant_id)
    if lock:
        query = query.with_for_update()
    return query


def get_owned(model, entity_id, tenant_id, label=None, lock=False):
    """Fetch ``model`` row ``entity_id`` owned by ``tenant_id`` or raise NotFoundError.

    With ``lock=True`` the row is read with SELECT ... FOR UPDATE so a
    concurrent writer blocks until this transaction finishes.
    """
    if entity_id is None:
        raise NotFoundError(label or model.__name__)

    row = owned_query(model, entity_id, tenant_id, lock=lock).first()
    if row is None:
        raise NotFoundError(label or model.__name__, entity_id)
    return row


def get_member(member_id, tenant_id, lock=False):
    return get_owned(Member, member_id, tenant_id, 'Member', lock=lock)


def get_trainer(trainer_id, tenant_id):
    return get_owned(Trainer, trainer_id, tenant_id, 'Trainer')


def get_plan(plan_id, tenant_id):
    return get_owned(Plan, plan_id, tenant_id, 'Plan')


def get_addon(addon_id, tenant_id):
    return get_owned(Addon, addon_id, tenant_id, 'Addon')


def get_expense(expense_id, tenant_id, lock=False):
    return get_owned(Expense, expense_id, tenant_id, 'Expense', lock=lock)
