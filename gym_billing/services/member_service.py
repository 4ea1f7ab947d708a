"""
MEMBER SERVICE
==============

Only the part of member management the ledger depends on: a member that
still owns memberships or add-ons cannot be deleted.
"""

from gym_billing.extensions import db
from gym_billing.logging_config import get_logger
from gym_billing.models import Membership, MemberAddon
from gym_billing.services.errors import ConstraintViolationError
from gym_billing.services.scope import get_member
from gym_billing.services.transaction import atomic

logger = get_logger("member")


def get_member_dependents(tenant_id, member_id):
    """Count billable rows still pointing at a member."""
    return {
        'memberships': Membership.query.filter_by(user_id=tenant_id, member_id=member_id).count(),
        'member_addons': MemberAddon.query.filter_by(user_id=tenant_id, member_id=member_id).count(),
    }


def delete_member(tenant_id, member_id):
    """
    Delete a member with no billing history.

    Raises ConstraintViolationError while memberships or add-ons reference
    the member; delete or reassign those first.
    """
    with atomic("Member deletion"):
        member = get_member(member_id, tenant_id, lock=True)

        dependents = get_member_dependents(tenant_id, member.id)
        if any(dependents.values()):
            raise ConstraintViolationError(
                f"Member {member.id} still has {dependents['memberships']} membership(s) "
                f"and {dependents['member_addons']} add-on(s)"
            )

        db.session.delete(member)

    logger.info("Member deleted", extra={"tenant_id": tenant_id, "member_id": member_id})
    return True
