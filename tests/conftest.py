"""
Pytest fixtures for the DistriFin test suite.

Provides:
- A Flask app per test on an in-memory SQLite database
- Seeded users (one per role), routes, customers and settings
- Token helpers for hitting the HTTP layer as a given user
"""

from datetime import date
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from distrifin import create_app, db
from distrifin.crud.settings_crud import SETTINGS_ID, SettingsSnapshot
from distrifin.models import Customer, CustomerStatus, GlobalSettings, Route, User, UserRole

PASSWORD = 'secret-pass'


@pytest.fixture
def app():
    app = create_app('distrifin.config.TestingConfig')
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _make_user(name, email, role, permissions=None):
    user = User(name=name, email=email, role=role, permissions=permissions, is_active=True)
    user.set_password(PASSWORD)
    db.session.add(user)
    return user


@pytest.fixture
def users(app):
    created = {
        'admin': _make_user('Ada Admin', 'admin@example.com', UserRole.ADMIN.value),
        'accounts': _make_user('Ali Accounts', 'accounts@example.com', UserRole.ACCOUNTS.value),
        'collector': _make_user('Cole Collector', 'collector@example.com', UserRole.COLLECTOR.value),
    }
    db.session.commit()
    return created


@pytest.fixture
def routes(app):
    north = Route(id='R1', route_name='North Loop')
    south = Route(id='R2', route_name='South Loop')
    db.session.add_all([north, south])
    db.session.commit()
    return {'north': north, 'south': south}


@pytest.fixture
def customers(app, routes):
    c1 = Customer(id='C1', customer_name='Jane Doe', business_name='Acme Store',
                  phone_number='0771234567', route_id='R1',
                  credit_limit=Decimal('50000'), credit_period_days=30,
                  status=CustomerStatus.ACTIVE.value, is_active=True)
    c2 = Customer(id='C2', customer_name='John Roe', business_name='Beta Traders',
                  phone_number='0777654321', route_id='R1',
                  credit_limit=Decimal('20000'), credit_period_days=14,
                  status=CustomerStatus.ACTIVE.value, is_active=True)
    c3 = Customer(id='C3', customer_name='Mia Poe', business_name='Corner Mart',
                  phone_number='0712223334', route_id='R2',
                  credit_limit=Decimal('10000'), credit_period_days=7,
                  status=CustomerStatus.ACTIVE.value, is_active=True)
    db.session.add_all([c1, c2, c3])
    db.session.commit()
    return {'c1': c1, 'c2': c2, 'c3': c3}


@pytest.fixture
def settings_row(app):
    row = GlobalSettings(id=SETTINGS_ID, default_credit_limit=Decimal('50000'),
                         default_credit_period=30, enable_cheque_camera=True,
                         currency_code='USD', country='')
    db.session.add(row)
    db.session.commit()
    return row


@pytest.fixture
def settings():
    return SettingsSnapshot()


@pytest.fixture
def today():
    return date(2025, 2, 1)


@pytest.fixture
def auth_headers(app, users):
    """Return a function building Authorization headers for a seeded user key"""
    def _headers(key):
        token = create_access_token(identity=users[key])
        return {'Authorization': f'Bearer {token}'}
    return _headers


@pytest.fixture
def cheque_payload():
    def _payload(customer_id='C1', cheque_number='001', amount=5000, realize_date='2025-03-01', **extra):
        data = {
            'customer_id': customer_id,
            'payment_type': 'Cheque',
            'amount': amount,
            'cheque_number': cheque_number,
            'bank': 'First Bank',
            'branch': 'Main',
            'realize_date': realize_date,
        }
        data.update(extra)
        return data
    return _payload
