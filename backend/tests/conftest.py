"""
Pytest fixtures for storefront backend tests.

Provides test database setup, user factories per role, session contexts and
bearer-token headers for the Flask test client.
"""

import pytest

from storefront import create_app
from storefront.extensions import change_feed, db
from storefront.models import Product, User, UserRole
from storefront.roles import ROLE_ADMIN, ROLE_DELIVERY, ROLE_EMPLOYEE
from storefront.services.auth_service import hash_password
from storefront.services.session_service import context_for_user, create_session


TEST_PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        # Fast hashes; strength is not under test here
        'BCRYPT_ROUNDS': 4,
        'ADMINS_SEE_EMPLOYEE_BROADCASTS': True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        change_feed.clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        change_feed.clear()


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory: make_user("a@x.com", roles=("employee",), full_name=..., is_restricted=...)."""
    password_hash = hash_password(TEST_PASSWORD)

    def _make_user(email, roles=(), full_name=None, is_restricted=False):
        user = User(
            email=email,
            password_hash=password_hash,
            full_name=full_name,
            is_restricted=is_restricted,
        )
        db_session.add(user)
        db_session.commit()
        for role in roles:
            db_session.add(UserRole(user_id=user.id, role=role))
        db_session.commit()
        return user

    return _make_user


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user("admin@storefront.test", roles=(ROLE_ADMIN,), full_name="Ada Admin")


@pytest.fixture(scope='function')
def admin2(make_user):
    return make_user("admin2@storefront.test", roles=(ROLE_ADMIN,), full_name="Abe Admin")


@pytest.fixture(scope='function')
def employee(make_user):
    return make_user("emp@storefront.test", roles=(ROLE_EMPLOYEE,), full_name="Eve Employee")


@pytest.fixture(scope='function')
def employee2(make_user):
    return make_user("emp2@storefront.test", roles=(ROLE_EMPLOYEE,), full_name="Eli Employee")


@pytest.fixture(scope='function')
def courier(make_user):
    return make_user("rider@storefront.test", roles=(ROLE_DELIVERY,), full_name="Dan Delivery")


@pytest.fixture(scope='function')
def customer(make_user):
    return make_user("cust@storefront.test", full_name="Cora Customer")


@pytest.fixture(scope='function')
def customer2(make_user):
    return make_user("cust2@storefront.test", full_name="Cal Customer")


@pytest.fixture(scope='function')
def ctx(db_session):
    """Factory: ctx(user) -> SessionContext for direct service calls."""
    def _ctx(user):
        return context_for_user(user)
    return _ctx


@pytest.fixture(scope='function')
def auth_headers(db_session):
    """Factory: auth_headers(user) -> Authorization header with a fresh session token."""
    def _auth_headers(user):
        _, token = create_session(user.id, user_agent="pytest", ip_address="127.0.0.1")
        return {'Authorization': f'Bearer {token}'}
    return _auth_headers


@pytest.fixture(scope='function')
def burger(db_session):
    product = Product(name="Chicken Burger", price_cents=35000, category="burgers")
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def fries(db_session):
    product = Product(name="French Fries", price_cents=15000, category="sides")
    db_session.add(product)
    db_session.commit()
    return product
