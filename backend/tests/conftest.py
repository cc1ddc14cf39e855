"""
Pytest fixtures for coop_pos backend tests.

Provides an in-memory application, a cleaned session per test and small
factories for operators, products and members.
"""

import pytest

from coop_pos import create_app
from coop_pos.extensions import db
from coop_pos.models import User, Product, Member
from coop_pos.services.notification_service import NotificationDispatcher, Notifier
from coop_pos.services.sales_service import TransactionCoordinator


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SALE_RETRY_BACKOFF': 0,
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

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def operator(db_session):
    user = User(name="Cashier One", email="cashier1@coop.local")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def make_product(db_session):
    counter = {"n": 0}

    def _make(stock=10, price_cents=5000, base_price_cents=3000, is_active=True, name=None):
        counter["n"] += 1
        product = Product(
            sku=f"SKU-{counter['n']:03d}",
            name=name or f"Product {counter['n']}",
            price_cents=price_cents,
            base_price_cents=base_price_cents,
            stock_quantity=stock,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_member(db_session):
    counter = {"n": 0}

    def _make(limit_cents=100000, balance_cents=0, name=None):
        counter["n"] += 1
        member = Member(
            name=name or f"Member {counter['n']}",
            email=f"member{counter['n']}@coop.local",
            credit_limit_cents=limit_cents,
            credit_balance_cents=balance_cents,
        )
        db_session.add(member)
        db_session.commit()
        return member

    return _make


class RecordingNotifier(Notifier):
    """Collects notifications; can be told to blow up."""

    def __init__(self, fail=False):
        self.fail = fail
        self.low_stock = []
        self.purchases = []

    def notify_low_stock(self, product_id, name, remaining_stock):
        if self.fail:
            raise RuntimeError("notifier down")
        self.low_stock.append((product_id, name, remaining_stock))

    def notify_purchase(self, transaction_id, customer_name, total, item_count):
        if self.fail:
            raise RuntimeError("notifier down")
        self.purchases.append((transaction_id, customer_name, total, item_count))


@pytest.fixture(scope='function')
def notifier():
    return RecordingNotifier()


@pytest.fixture(scope='function')
def dispatcher():
    return NotificationDispatcher()


@pytest.fixture(scope='function')
def coordinator(db_session, dispatcher, notifier):
    return TransactionCoordinator(
        db_session,
        dispatcher=dispatcher,
        notifier=notifier,
        low_stock_threshold=5,
        retry_backoff=0,
    )


@pytest.fixture(scope='function')
def stock_of(db_session):
    def _stock(product_id):
        db_session.expire_all()
        return db_session.get(Product, product_id).stock_quantity
    return _stock


@pytest.fixture(scope='function')
def balance_of(db_session):
    def _balance(member_id):
        db_session.expire_all()
        return db_session.get(Member, member_id).credit_balance_cents
    return _balance
