"""
Pytest fixtures for the billing test suite.

Provides:
- a Flask app on in-memory SQLite with a FixedClock (today = 2025-01-15)
- an active app context for service-level tests
- one tenant with a member, plan, add-on and trainer, plus a second tenant
"""

from datetime import datetime, timezone

import pytest

from config import TestConfig
from gym_billing import create_app
from gym_billing.clock import FixedClock
from gym_billing.extensions import db
from gym_billing.models import User, Member, Plan, Addon, Trainer


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc))


@pytest.fixture
def app(clock):
    app = create_app(TestConfig, clock=clock)
    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(name, email, password='secret123'):
    user = User(name=name, email=email)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def tenant(app):
    return make_user('Iron Temple', 'owner@irontemple.test')


@pytest.fixture
def other_tenant(app):
    return make_user('Other Gym', 'owner@othergym.test')


@pytest.fixture
def member(tenant):
    m = Member(user_id=tenant.id, first_name='Asha', last_name='Rao',
               phone='9000000001', email='asha@example.test')
    db.session.add(m)
    db.session.commit()
    return m


@pytest.fixture
def second_member(tenant):
    m = Member(user_id=tenant.id, first_name='Vikram', last_name='Shah', phone='9000000002')
    db.session.add(m)
    db.session.commit()
    return m


@pytest.fixture
def plan(tenant):
    p = Plan(user_id=tenant.id, name='Annual', price=1200.0, duration_days=365)
    db.session.add(p)
    db.session.commit()
    return p


@pytest.fixture
def premium_plan(tenant):
    p = Plan(user_id=tenant.id, name='Annual Premium', price=2000.0, duration_days=365)
    db.session.add(p)
    db.session.commit()
    return p


@pytest.fixture
def addon(tenant):
    a = Addon(user_id=tenant.id, name='Personal Training', price=500.0, duration_days=30)
    db.session.add(a)
    db.session.commit()
    return a


@pytest.fixture
def trainer(tenant):
    t = Trainer(user_id=tenant.id, first_name='Kiran', last_name='Das')
    db.session.add(t)
    db.session.commit()
    return t


@pytest.fixture
def foreign_member(other_tenant):
    m = Member(user_id=other_tenant.id, first_name='Nope', last_name='Other', phone='9111111111')
    db.session.add(m)
    db.session.commit()
    return m


@pytest.fixture
def foreign_plan(other_tenant):
    p = Plan(user_id=other_tenant.id, name='Foreign', price=999.0)
    db.session.add(p)
    db.session.commit()
    return p
