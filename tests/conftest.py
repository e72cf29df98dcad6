"""
Pytest configuration and fixtures for Outreach Schedule API tests.

This module provides:
- Test database setup and teardown
- Flask test client and JWT headers
- Users with each role, sending accounts and customers
"""

import os

# The module-level app in src.main reads FLASK_ENV at import time
os.environ.setdefault('FLASK_ENV', 'testing')

import pytest
from datetime import datetime
from flask_jwt_extended import create_access_token

from src.main import create_app
from src.extensions import db
from src.models import (
    User, MessagingAccount, SessionAccount, AccountPermission,
    Customer, CustomerIdentity
)
from src.models.user import ROLE_ADMIN, ROLE_SALE

# Fixed clock used by the service-level tests
NOW = datetime(2024, 1, 1, 9, 0, 0)


@pytest.fixture
def app():
    """Create and configure a new app instance for each test."""
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()

@pytest.fixture
def db_session(app):
    """Database session for tests."""
    return db.session

@pytest.fixture
def now():
    return NOW

@pytest.fixture
def admin_user(db_session):
    user = User(name='Alice Admin', email='admin@example.com', api_key='admin-key', roles=[ROLE_ADMIN])
    db_session.add(user)
    db_session.commit()
    return user

@pytest.fixture
def sale_user(db_session):
    user = User(name='Sam Sale', email='sale@example.com', api_key='sale-key', roles=[ROLE_SALE])
    db_session.add(user)
    db_session.commit()
    return user

@pytest.fixture
def viewer_user(db_session):
    """A user with no scheduling role."""
    user = User(name='Val Viewer', email='viewer@example.com', api_key='viewer-key', roles=[])
    db_session.add(user)
    db_session.commit()
    return user

@pytest.fixture
def legacy_account(db_session):
    account = MessagingAccount(
        uid='legacy-uid-1',
        name='Legacy Sender',
        phone='0911111111',
        avatar='https://example.com/legacy.png',
        rate_limit_per_hour=30,
        rate_limit_per_day=200
    )
    db_session.add(account)
    db_session.commit()
    return account

@pytest.fixture
def session_account(db_session):
    account = SessionAccount(
        account_key='session-key-1',
        display_name='Session Sender',
        avatar='https://example.com/session.png'
    )
    db_session.add(account)
    db_session.commit()
    return account

@pytest.fixture
def customers(db_session, legacy_account):
    """Three customers; the first two have an identity handle on the legacy account."""
    created = []
    for index in range(1, 4):
        customer = Customer(name=f'Customer {index}', phone=f'090000000{index}', kind='lead')
        if index < 3:
            customer.identities.append(CustomerIdentity(
                account_ref=legacy_account.id,
                uid=f'external-{index}'
            ))
        db_session.add(customer)
        created.append(customer)
    db_session.commit()
    return created

@pytest.fixture
def sale_permission(db_session, sale_user, legacy_account):
    """Delegate the legacy account to the sale user."""
    permission = AccountPermission(account_ref=legacy_account.id, user_id=sale_user.id)
    db_session.add(permission)
    db_session.commit()
    return permission

def _auth_headers(user):
    token = create_access_token(identity=user.id, additional_claims={'roles': list(user.roles)})
    return {
        'Content-Type': 'application/json',
        'Authorization': f'Bearer {token}'
    }

@pytest.fixture
def auth_headers(admin_user):
    """Headers for authenticated requests as the admin user."""
    return _auth_headers(admin_user)

@pytest.fixture
def sale_headers(sale_user):
    return _auth_headers(sale_user)

@pytest.fixture
def viewer_headers(viewer_user):
    return _auth_headers(viewer_user)

@pytest.fixture
def json_headers():
    """Headers for JSON requests."""
    return {
        'Content-Type': 'application/json'
    }
