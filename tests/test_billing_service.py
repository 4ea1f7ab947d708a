"""
Memberships and member add-ons: creation, payments, refunds, cancellation.

Ledger rules checked throughout:
- pending == max(price - paid - discount, 0)
- paid == signed sum of the entity's ledger entries
"""

from datetime import date

import pytest

from gym_billing.extensions import db
from gym_billing.models import BillingStatus, Payment
from gym_billing.services import billing_service
from gym_billing.services.balance_service import compute_pending
from gym_billing.services.errors import (
    BillingError, NotFoundError, InvalidRefundError, OverlappingRangeError,
    PastEndDateError, InvalidDateRangeError, InvalidAmountError,
)
from gym_billing.services.kinds import MEMBERSHIP, MEMBER_ADDON
from gym_billing.services.ledger_service import entries_for, ledger_paid


def assert_consistent(kind, entity):
    assert entity.pending == compute_pending(entity.price, entity.paid, entity.discount)
    assert entity.paid == ledger_paid(kind, entity.id)


@pytest.fixture
def paid_membership(tenant, member, plan):
    return billing_service.create_billable(
        MEMBERSHIP, tenant.id, member.id, plan.id, paid=1200, method='CASH'
    )


@pytest.fixture
def partial_membership(tenant, member, plan):
    return billing_service.create_billable(
        MEMBERSHIP, tenant.id, member.id, plan.id, paid=500, method='UPI'
    )


# ============================================================
# CREATE
# ============================================================

class TestCreate:

    def test_fully_paid_membership(self, tenant, paid_membership):
        assert paid_membership.status == BillingStatus.ACTIVE.value
        assert paid_membership.pending == 0
        entries = entries_for(MEMBERSHIP, paid_membership.id)
        assert [e.amount for e in entries] == [1200]
        assert entries[0].user_id == tenant.id
        assert_consistent(MEMBERSHIP, paid_membership)

    def test_partially_paid_membership(self, partial_membership):
        assert partial_membership.status == BillingStatus.INACTIVE.value
        assert partial_membership.pending == 700
        assert_consistent(MEMBERSHIP, partial_membership)

    def test_dates_default_from_today_and_plan_duration(self, paid_membership):
        assert paid_membership.start_date == date(2025, 1, 15)
        assert paid_membership.end_date == date(2026, 1, 15)

    def test_unpaid_creation_writes_no_ledger_entry(self, tenant, member, plan):
        membership = billing_service.create_billable(
            MEMBERSHIP, tenant.id, member.id, plan.id,
            start_date='2025-02-01', end_date='2025-02-28'
        )
        assert membership.paid == 0
        assert membership.pending == 1200
        assert entries_for(MEMBERSHIP, membership.id) == []

    def test_discount_at_creation(self, tenant, member, plan):
        membership = billing_service.create_billable(
            MEMBERSHIP, tenant.id, member.id, plan.id, paid=1000, discount=200, method='CARD'
        )
        assert membership.pending == 0
        assert membership.status == BillingStatus.ACTIVE.value
        assert_consistent(MEMBERSHIP, membership)

    def test_price_is_a_snapshot(self, tenant, plan, partial_membership):
        plan.price = 5000
        db.session.commit()
        assert billing_service.get_billable(MEMBERSHIP, tenant.id, partial_membership.id).price == 1200

    def test_overlapping_membership_is_rejected(self, tenant, member, plan, paid_membership):
        with pytest.raises(OverlappingRangeError):
            billing_service.create_billable(
                MEMBERSHIP, tenant.id, member.id, plan.id,
                start_date='2025-06-01', end_date='2025-12-31', paid=100, method='CASH'
            )
        # Nothing from the failed call was kept
        assert Payment.query.count() == 1

    def test_past_end_date_is_rejected(self, tenant, member, plan):
        with pytest.raises(PastEndDateError):
            billing_service.create_billable(
                MEMBERSHIP, tenant.id, member.id, plan.id,
                start_date='2024-01-01', end_date='2024-12-31'
            )

    def test_missing_duration_and_end_date(self, tenant, member, plan):
        plan.duration_days = None
        db.session.commit()
        with pytest.raises(InvalidDateRangeError):
            billing_service.create_billable(MEMBERSHIP, tenant.id, member.id, plan.id)

    def test_negative_paid_is_rejected(self, tenant, member, plan):
        with pytest.raises(InvalidAmountError):
            billing_service.create_billable(MEMBERSHIP, tenant.id, member.id, plan.id, paid=-1)

    def test_other_tenants_member_is_not_found(self, tenant, foreign_member, plan):
        with pytest.raises(NotFoundError):
            billing_service.create_billable(MEMBERSHIP, tenant.id, foreign_member.id, plan.id)

    def test_other_tenants_plan_is_not_found(self, tenant, member, foreign_plan):
        with pytest.raises(NotFoundError):
            billing_service.create_billable(MEMBERSHIP, tenant.id, member.id, foreign_plan.id)

    def test_membership_cannot_have_trainer(self, tenant, member, plan, trainer):
        with pytest.raises(BillingError):
            billing_service.create_billable(
                MEMBERSHIP, tenant.id, member.id, plan.id, trainer_id=trainer.id
            )

    def test_addon_with_trainer(self, tenant, member, addon, trainer):
        member_addon = billing_service.create_billable(
            MEMBER_ADDON, tenant.id, member.id, addon.id,
            paid=500, method='CARD', trainer_id=trainer.id
        )
        assert member_addon.trainer_id == trainer.id
        assert member_addon.end_date == date(2025, 2, 14)
        assert member_addon.status == BillingStatus.ACTIVE.value
        assert [e.amount for e in entries_for(MEMBER_ADDON, member_addon.id)] == [500]

    def test_addon_and_membership_may_share_dates(self, tenant, member, addon, paid_membership):
        member_addon = billing_service.create_billable(
            MEMBER_ADDON, tenant.id, member.id, addon.id
        )
        assert member_addon.id is not None


# ============================================================
# READ
# ============================================================

class TestRead:

    def test_other_tenant_cannot_read(self, other_tenant, paid_membership):
        with pytest.raises(NotFoundError):
            billing_service.get_billable(MEMBERSHIP, other_tenant.id, paid_membership.id)

    def test_list_filters(self, tenant, member, second_member, plan, paid_membership):
        billing_service.create_billable(MEMBERSHIP, tenant.id, second_member.id, plan.id)

        assert len(billing_service.list_billables(MEMBERSHIP, tenant.id)) == 2
        assert len(billing_service.list_billables(MEMBERSHIP, tenant.id, member_id=member.id)) == 1
        inactive = billing_service.list_billables(MEMBERSHIP, tenant.id, status='inactive')
        assert [m.member_id for m in inactive] == [second_member.id]

    def test_to_dict(self, paid_membership):
        data = billing_service.billable_to_dict(paid_membership)
        assert data['offering']['name'] == 'Annual'
        assert data['member']['name'] == 'Asha Rao'
        assert data['trainer'] is None
        assert data['start_date'] == '2025-01-15'
        assert [p['amount'] for p in data['payments']] == [1200]


# ============================================================
# PAYMENTS
# ============================================================

class TestAddPayment:

    def test_completing_payment(self, tenant, partial_membership):
        membership = billing_service.add_payment(
            MEMBERSHIP, tenant.id, partial_membership.id, amount=700, method='CASH'
        )
        assert membership.pending == 0
        assert membership.status == BillingStatus.ACTIVE.value
        assert [e.amount for e in entries_for(MEMBERSHIP, membership.id)] == [500, 700]
        assert_consistent(MEMBERSHIP, membership)

    def test_partial_paid_status_on_request(self, tenant, partial_membership):
        membership = billing_service.add_payment(
            MEMBERSHIP, tenant.id, partial_membership.id,
            amount=100, method='CASH', status_override='PARTIAL_PAID'
        )
        assert membership.paid == 600
        assert membership.status == BillingStatus.PARTIAL_PAID.value

    def test_extra_discount(self, tenant, partial_membership):
        membership = billing_service.add_payment(
            MEMBERSHIP, tenant.id, partial_membership.id, amount=600, discount=100, method='CARD'
        )
        assert membership.discount == 100
        assert membership.pending == 0
        assert membership.status == BillingStatus.ACTIVE.value
        assert_consistent(MEMBERSHIP, membership)

    def test_without_method_is_a_no_op(self, tenant, partial_membership):
        membership = billing_service.add_payment(
            MEMBERSHIP, tenant.id, partial_membership.id, amount=700
        )
        assert membership.paid == 500
        assert len(entries_for(MEMBERSHIP, membership.id)) == 1

    def test_non_positive_amount_only_applies_status(self, tenant, partial_membership):
        membership = billing_service.add_payment(
            MEMBERSHIP, tenant.id, partial_membership.id,
            amount=0, method='CASH', status_override='partial_paid'
        )
        assert membership.paid == 500
        assert membership.status == BillingStatus.PARTIAL_PAID.value
        assert len(entries_for(MEMBERSHIP, membership.id)) == 1

    def test_unknown_status_is_rejected(self, tenant, partial_membership):
        with pytest.raises(BillingError):
            billing_service.add_payment(
                MEMBERSHIP, tenant.id, partial_membership.id,
                amount=100, method='CASH', status_override='FROZEN'
            )

    def test_other_tenant_cannot_pay(self, other_tenant, partial_membership):
        with pytest.raises(NotFoundError):
            billing_service.add_payment(
                MEMBERSHIP, other_tenant.id, partial_membership.id, amount=700, method='CASH'
            )
        assert Payment.query.count() == 1

    def test_payment_on_cancelled_keeps_status(self, tenant, partial_membership):
        billing_service.cancel_billable(MEMBERSHIP, tenant.id, partial_membership.id)
        membership = billing_service.add_payment(
            MEMBERSHIP, tenant.id, partial_membership.id, amount=700, method='CASH'
        )
        assert membership.paid == 1200
        assert membership.status == BillingStatus.CANCELLED.value

    def test_reviving_cancelled_entity_into_taken_range_fails(self, tenant, member, plan):
        first = billing_service.create_billable(
            MEMBERSHIP, tenant.id, member.id, plan.id,
            start_date='2025-02-01', end_date='2025-12-31'
        )
        billing_service.cancel_billable(MEMBERSHIP, tenant.id, first.id)
        billing_service.create_billable(
            MEMBERSHIP, tenant.id, member.id, plan.id,
            start_date='2025-03-01', end_date='2025-06-30'
        )

        with pytest.raises(OverlappingRangeError):
            billing_service.add_payment(
                MEMBERSHIP, tenant.id, first.id, amount=100, method='CASH',
                status_override='ACTIVE'
            )

        live = [m for m in billing_service.list_billables(MEMBERSHIP, tenant.id, member_id=member.id)
                if not m.is_cancelled]
        assert len(live) == 1
        assert billing_service.get_billable(MEMBERSHIP, tenant.id, first.id).paid == 0

    def test_reviving_cancelled_entity_with_free_range(self, tenant, partial_membership):
        billing_service.cancel_billable(MEMBERSHIP, tenant.id, partial_membership.id)
        membership = billing_service.add_payment(
            MEMBERSHIP, tenant.id, partial_membership.id, status_override='ACTIVE'
        )
        assert membership.status == BillingStatus.ACTIVE.value

    def test_sub_cent_amount_is_a_no_op(self, tenant, partial_membership):
        membership = billing_service.add_payment(
            MEMBERSHIP, tenant.id, partial_membership.id, amount=0.004, method='CASH'
        )
        assert membership.paid == 500
        assert [e.amount for e in entries_for(MEMBERSHIP, membership.id)] == [500]

    def test_payment_reads_entity_with_row_lock(self, tenant, partial_membership, monkeypatch):
        calls = []
        original = billing_service.get_owned

        def recording_get_owned(model, entity_id, tenant_id, label=None, lock=False):
            calls.append((model.__name__, lock))
            return original(model, entity_id, tenant_id, label, lock=lock)

        monkeypatch.setattr(billing_service, 'get_owned', recording_get_owned)
        billing_service.add_payment(
            MEMBERSHIP, tenant.id, partial_membership.id, amount=100, method='CASH'
        )
        assert ('Membership', True) in calls


# ============================================================
# REFUNDS
# ============================================================

class TestRefund:

    def test_refund_more_than_paid_fails(self, tenant, paid_membership):
        with pytest.raises(InvalidRefundError):
            billing_service.refund(MEMBERSHIP, tenant.id, paid_membership.id, 1300)

        membership = billing_service.get_billable(MEMBERSHIP, tenant.id, paid_membership.id)
        assert membership.paid == 1200
        assert len(entries_for(MEMBERSHIP, membership.id)) == 1

    def test_full_refund(self, tenant, paid_membership):
        entry, membership = billing_service.refund(
            MEMBERSHIP, tenant.id, paid_membership.id, 1200, method='CASH'
        )
        assert entry.amount == -1200
        assert entry.notes == 'Refund issued'
        assert membership.paid == 0
        assert membership.pending == 1200
        assert membership.status == BillingStatus.INACTIVE.value
        assert [e.amount for e in entries_for(MEMBERSHIP, membership.id)] == [1200, -1200]
        assert_consistent(MEMBERSHIP, membership)

    def test_partial_refund_with_reason(self, tenant, paid_membership):
        entry, membership = billing_service.refund(
            MEMBERSHIP, tenant.id, paid_membership.id, 200, reason='Relocating'
        )
        assert entry.notes == 'Refund: Relocating'
        assert entry.is_refund
        assert membership.paid == 1000
        assert membership.status == BillingStatus.PARTIAL_PAID.value
        assert_consistent(MEMBERSHIP, membership)

    def test_zero_refund_fails(self, tenant, paid_membership):
        with pytest.raises(InvalidRefundError):
            billing_service.refund(MEMBERSHIP, tenant.id, paid_membership.id, 0)

    def test_addon_refund(self, tenant, member, addon):
        member_addon = billing_service.create_billable(
            MEMBER_ADDON, tenant.id, member.id, addon.id, paid=500, method='CASH'
        )
        _, member_addon = billing_service.refund(MEMBER_ADDON, tenant.id, member_addon.id, 500)
        assert member_addon.status == BillingStatus.INACTIVE.value
        assert ledger_paid(MEMBER_ADDON, member_addon.id) == 0


# ============================================================
# UPDATE
# ============================================================

class TestUpdate:

    def test_offering_change_reprices(self, tenant, paid_membership, premium_plan):
        membership = billing_service.update_billable(
            MEMBERSHIP, tenant.id, paid_membership.id, offering_id=premium_plan.id
        )
        assert membership.plan_id == premium_plan.id
        assert membership.price == 2000
        assert membership.pending == 800
        assert membership.status == BillingStatus.INACTIVE.value
        # History is untouched
        assert [e.amount for e in entries_for(MEMBERSHIP, membership.id)] == [1200]
        assert_consistent(MEMBERSHIP, membership)

    def test_moving_onto_another_membership_fails(self, tenant, member, plan, paid_membership):
        later = billing_service.create_billable(
            MEMBERSHIP, tenant.id, member.id, plan.id,
            start_date='2026-02-01', end_date='2026-12-31'
        )
        with pytest.raises(OverlappingRangeError):
            billing_service.update_billable(
                MEMBERSHIP, tenant.id, later.id, start_date='2025-12-01'
            )

    def test_shrinking_own_range(self, tenant, paid_membership):
        membership = billing_service.update_billable(
            MEMBERSHIP, tenant.id, paid_membership.id, end_date='2025-06-30'
        )
        assert membership.end_date == date(2025, 6, 30)

    def test_unknown_offering(self, tenant, paid_membership, foreign_plan):
        with pytest.raises(NotFoundError):
            billing_service.update_billable(
                MEMBERSHIP, tenant.id, paid_membership.id, offering_id=foreign_plan.id
            )

    def test_trainer_set_and_cleared(self, tenant, member, addon, trainer):
        member_addon = billing_service.create_billable(
            MEMBER_ADDON, tenant.id, member.id, addon.id
        )
        member_addon = billing_service.update_billable(
            MEMBER_ADDON, tenant.id, member_addon.id, trainer_id=trainer.id
        )
        assert member_addon.trainer_id == trainer.id

        member_addon = billing_service.update_billable(MEMBER_ADDON, tenant.id, member_addon.id)
        assert member_addon.trainer_id == trainer.id

        member_addon = billing_service.update_billable(
            MEMBER_ADDON, tenant.id, member_addon.id, trainer_id=None
        )
        assert member_addon.trainer_id is None


# ============================================================
# CANCEL / DELETE
# ============================================================

class TestCancel:

    def test_cancel_frees_the_range(self, tenant, member, plan, paid_membership):
        membership = billing_service.cancel_billable(MEMBERSHIP, tenant.id, paid_membership.id)
        assert membership.status == BillingStatus.CANCELLED.value
        assert membership.paid == 1200

        replacement = billing_service.create_billable(
            MEMBERSHIP, tenant.id, member.id, plan.id, start_date='2025-03-01', end_date='2025-12-31'
        )
        assert replacement.id != membership.id

    def test_cancel_with_refund(self, tenant, paid_membership):
        membership = billing_service.cancel_billable(
            MEMBERSHIP, tenant.id, paid_membership.id, refund_paid=True
        )
        assert membership.status == BillingStatus.CANCELLED.value
        assert membership.paid == 0
        entries = entries_for(MEMBERSHIP, membership.id)
        assert [e.amount for e in entries] == [1200, -1200]
        assert entries[-1].notes == 'Cancellation refund'

    def test_cancel_twice_is_a_no_op(self, tenant, paid_membership):
        billing_service.cancel_billable(MEMBERSHIP, tenant.id, paid_membership.id, refund_paid=True)
        billing_service.cancel_billable(MEMBERSHIP, tenant.id, paid_membership.id, refund_paid=True)
        assert len(entries_for(MEMBERSHIP, paid_membership.id)) == 2


class TestDelete:

    def test_delete_removes_entries(self, tenant, paid_membership):
        membership_id = paid_membership.id
        assert billing_service.delete_billable(MEMBERSHIP, tenant.id, membership_id) is True

        assert Payment.query.count() == 0
        with pytest.raises(NotFoundError):
            billing_service.get_billable(MEMBERSHIP, tenant.id, membership_id)

    def test_other_tenant_cannot_delete(self, other_tenant, paid_membership):
        with pytest.raises(NotFoundError):
            billing_service.delete_billable(MEMBERSHIP, other_tenant.id, paid_membership.id)
        assert Payment.query.count() == 1
