"""
Billable kinds.

Memberships and member add-ons follow the same billing rules; a
BillableKind tells the generic service which tables and columns to use.
"""

from collections import namedtuple

from gym_billing.models import Membership, MemberAddon, Plan, Addon

BillableKind = namedtuple('BillableKind', [
    'name',             # short key used in URLs and history rows
    'label',            # human label used in error messages
    'model',            # entity table
    'offering_model',   # Plan or Addon
    'offering_label',
    'offering_fk',      # entity column pointing at the offering
    'ledger_fk',        # Payment column pointing at the entity
    'allows_trainer',
])

MEMBERSHIP = BillableKind(
    name='membership',
    label='Membership',
    model=Membership,
    offering_model=Plan,
    offering_label='Plan',
    offering_fk='plan_id',
    ledger_fk='membership_id',
    allows_trainer=False,
)

MEMBER_ADDON = BillableKind(
    name='addon',
    label='Member addon',
    model=MemberAddon,
    offering_model=Addon,
    offering_label='Addon',
    offering_fk='addon_id',
    ledger_fk='member_addon_id',
    allows_trainer=True,
)

KINDS = {kind.name: kind for kind in (MEMBERSHIP, MEMBER_ADDON)}


def resolve_kind(kind):
    """Accept a BillableKind or its name."""
    if isinstance(kind, BillableKind):
        return kind
    try:
        return KINDS[kind]
    except KeyError:
        raise ValueError(f"Unknown billable kind: {kind!r}")
