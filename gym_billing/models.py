from datetime import datetime
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import event
from werkzeug.security import generate_password_hash, check_password_hash

from gym_billing.extensions import db


# ============================================================
# ENUMS
# ============================================================

class BillingStatus(Enum):
    """Status of a membership or member add-on."""
    ACTIVE = 'ACTIVE'
    PARTIAL_PAID = 'PARTIAL_PAID'
    INACTIVE = 'INACTIVE'
    CANCELLED = 'CANCELLED'


class ExpenseStatus(Enum):
    PENDING = 'PENDING'
    PARTIAL_PAID = 'PARTIAL_PAID'
    PAID = 'PAID'


class PaymentMethod(Enum):
    CASH = 'CASH'
    CARD = 'CARD'
    UPI = 'UPI'
    ONLINE = 'ONLINE'

    @classmethod
    def coerce(cls, value):
        """Return a valid method value, falling back to CASH."""
        if isinstance(value, cls):
            return value.value
        if value in cls._value2member_map_:
            return value
        return cls.CASH.value


# ============================================================
# USER (TENANT) MODEL
# ============================================================
class User(UserMixin, db.Model):
    """
    The owning business account.
    Every member, offering and ledger row is scoped to one user.
    """
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def set_password(self, password):
        """Hash and set the user's password."""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Verify password against stored hash."""
        return check_password_hash(self.password_hash, password)

    def __repr__(self):
        return f'<User {self.email}>'


# ============================================================
# MEMBER MODEL
# ============================================================
class Member(db.Model):
    """A payer identity owned by one tenant."""
    __tablename__ = 'members'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False, default='')
    phone = db.Column(db.String(30), nullable=False)
    email = db.Column(db.String(120))
    address = db.Column(db.String(255))
    gender = db.Column(db.String(20))
    notes = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'.strip()

    def __repr__(self):
        return f'<Member {self.full_name}>'


# ============================================================
# TRAINER MODEL
# ============================================================
class Trainer(db.Model):
    __tablename__ = 'trainers'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False, default='')
    email = db.Column(db.String(120))
    phone = db.Column(db.String(30))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'.strip()

    def __repr__(self):
        return f'<Trainer {self.full_name}>'


# ============================================================
# OFFERINGS (PLAN / ADDON)
# ============================================================
class Plan(db.Model):
    """
    A membership plan. Memberships copy the plan price at creation,
    so editing it later does not touch existing memberships.
    """
    __tablename__ = 'plans'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500))
    price = db.Column(db.Float, nullable=False)
    duration_days = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<Plan {self.name} price={self.price}>'


class Addon(db.Model):
    """A priced extra (personal training, locker, ...) sold on top of a plan."""
    __tablename__ = 'addons'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500))
    price = db.Column(db.Float, nullable=False)
    duration_days = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<Addon {self.name} price={self.price}>'


# ============================================================
# BILLABLE ENTITIES
# ============================================================
class BillableMixin:
    """
    Columns shared by Membership and MemberAddon.

    CRITICAL: paid / discount / pending / status are a cache of the
    Payment ledger. They are ONLY written by billing_service, always in
    the same transaction as the Payment row that justifies them.
    """

    id = db.Column(db.Integer, primary_key=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)

    # Price snapshot taken from the offering at creation time
    price = db.Column(db.Float, nullable=False, default=0.0)
    paid = db.Column(db.Float, nullable=False, default=0.0)
    discount = db.Column(db.Float, nullable=False, default=0.0)
    pending = db.Column(db.Float, nullable=False, default=0.0)
    status = db.Column(db.String(20), nullable=False, default=BillingStatus.INACTIVE.value)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_cancelled(self):
        return self.status == BillingStatus.CANCELLED.value


class Membership(BillableMixin, db.Model):
    __tablename__ = 'memberships'

    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'), nullable=False, index=True)
    plan_id = db.Column(db.Integer, db.ForeignKey('plans.id'), nullable=False)

    member = db.relationship('Member', backref=db.backref('memberships', lazy='dynamic',
                                                          passive_deletes='all'))
    plan = db.relationship('Plan')
    payments = db.relationship('Payment', backref='membership', lazy='select',
                               order_by='Payment.id',
                               passive_deletes='all')

    # Generic accessors used by billing_service
    @property
    def offering(self):
        return self.plan

    @property
    def offering_id(self):
        return self.plan_id

    trainer = None
    trainer_id = None

    def __repr__(self):
        return f'<Membership member={self.member_id} plan={self.plan_id} status={self.status}>'


class MemberAddon(BillableMixin, db.Model):
    __tablename__ = 'member_addons'

    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'), nullable=False, index=True)
    addon_id = db.Column(db.Integer, db.ForeignKey('addons.id'), nullable=False)
    trainer_id = db.Column(db.Integer, db.ForeignKey('trainers.id'), nullable=True)

    member = db.relationship('Member', backref=db.backref('member_addons', lazy='dynamic',
                                                          passive_deletes='all'))
    addon = db.relationship('Addon')
    trainer = db.relationship('Trainer')
    payments = db.relationship('Payment', backref='member_addon', lazy='select',
                               order_by='Payment.id',
                               passive_deletes='all')

    @property
    def offering(self):
        return self.addon

    @property
    def offering_id(self):
        return self.addon_id

    def __repr__(self):
        return f'<MemberAddon member={self.member_id} addon={self.addon_id} status={self.status}>'


# ============================================================
# EXPENSE MODEL
# ============================================================
class Expense(db.Model):
    """
    Outgoing spend (rent, equipment, salaries).
    amount / paid / pending are always non-negative; the matching
    Payment rows carry a negative amount.
    """
    __tablename__ = 'expenses'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    title = db.Column(db.String(150), nullable=False)
    category = db.Column(db.String(80), nullable=False)
    description = db.Column(db.String(500))
    amount = db.Column(db.Float, nullable=False)
    paid = db.Column(db.Float, nullable=False, default=0.0)
    pending = db.Column(db.Float, nullable=False, default=0.0)
    status = db.Column(db.String(20), nullable=False, default=ExpenseStatus.PENDING.value)
    expense_date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    payments = db.relationship('Payment', backref='expense', lazy='select',
                               order_by='Payment.id',
                               passive_deletes='all')

    def __repr__(self):
        return f'<Expense {self.title} amount={self.amount} status={self.status}>'


# ============================================================
# PAYMENT MODEL (LEDGER)
# ============================================================
class Payment(db.Model):
    """
    CRITICAL: This is the single source of truth for all money movement.

    - amount > 0: payment received for a membership / add-on
    - amount < 0: refund, or money paid out for an expense

    Rows are append-only. A refund is a NEW negative row, never an edit.
    A row finances at most one of membership, member add-on or expense.
    """
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    amount = db.Column(db.Float, nullable=False)
    method = db.Column(db.String(20), nullable=False, default=PaymentMethod.CASH.value)
    notes = db.Column(db.String(255), nullable=True)
    payment_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    membership_id = db.Column(db.Integer, db.ForeignKey('memberships.id'), nullable=True, index=True)
    member_addon_id = db.Column(db.Integer, db.ForeignKey('member_addons.id'), nullable=True, index=True)
    expense_id = db.Column(db.Integer, db.ForeignKey('expenses.id'), nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint(
            '(CASE WHEN membership_id IS NULL THEN 0 ELSE 1 END)'
            ' + (CASE WHEN member_addon_id IS NULL THEN 0 ELSE 1 END)'
            ' + (CASE WHEN expense_id IS NULL THEN 0 ELSE 1 END) <= 1',
            name='payment_single_target'
        ),
    )

    @property
    def is_refund(self):
        return self.amount < 0 and self.expense_id is None

    def __repr__(self):
        return f'<Payment amount={self.amount} method={self.method}>'


@event.listens_for(Payment, 'before_update')
def _reject_payment_update(mapper, connection, target):
    from gym_billing.services.errors import LedgerImmutableError
    raise LedgerImmutableError(f"Payment {target.id} is immutable; record a new entry instead")
