from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from checkout_service.catalog import SqlCatalog
from checkout_service.db import (
    Medicine,
    Order,
    User,
    WalletTransaction,
    create_store_engine,
    init_db,
    make_session_factory,
)
from checkout_service.ledger import LedgerStore
from checkout_service.main import create_app
from checkout_service.models import OrderItem, PaymentMethod
from checkout_service.workflow import CheckoutWorkflow

ALICE = 1     # balance 50.00
BOB = 2       # balance 10.00
CAROL = 3     # balance 100.00
ADMIN = 99

PARACETAMOL = 1
IBUPROFEN = 2
INSULIN = 3   # out of stock


@pytest.fixture()
def engine(tmp_path):
    # File-backed, so several connections and threads share one database.
    engine = create_store_engine(f"sqlite:///{tmp_path / 'checkout.db'}", timeout=30)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    factory = make_session_factory(engine)
    with factory.begin() as session:
        session.add_all([
            User(id=ALICE, fullname="Alice Adeyemi", email="alice@example.com", wallet_balance_cents=5000),
            User(id=BOB, fullname="Bob Okafor", email="bob@example.com", wallet_balance_cents=1000),
            User(id=CAROL, fullname="Carol Nwosu", email="carol@example.com", wallet_balance_cents=10000),
            User(id=ADMIN, fullname="Store Admin", email="admin@example.com", role="admin"),
            Medicine(id=PARACETAMOL, name="Paracetamol 500mg", price_cents=450),
            Medicine(id=IBUPROFEN, name="Ibuprofen 400mg", price_cents=620),
            Medicine(id=INSULIN, name="Insulin Glargine", price_cents=4800, in_stock=False),
        ])
    return factory


@pytest.fixture()
def workflow(session_factory):
    return CheckoutWorkflow(session_factory, catalog=SqlCatalog(session_factory))


@pytest.fixture()
def client(session_factory):
    app = create_app(session_factory=session_factory, catalog=SqlCatalog(session_factory))
    return TestClient(app)


@pytest.fixture()
def cart():
    """Builds place_order keyword arguments for a single-line cart worth `total`."""
    def _cart(total, payment_method=PaymentMethod.WALLET, medicine_id=PARACETAMOL, fee="0.00"):
        total = Decimal(str(total))
        fee = Decimal(fee)
        subtotal = total - fee
        return dict(
            items=[OrderItem(medicine_id=medicine_id, quantity=2, price=subtotal / 2)],
            subtotal=subtotal,
            service_fee=fee,
            total_amount=total,
            payment_method=payment_method,
        )
    return _cart


@pytest.fixture()
def balance_of(session_factory):
    def _balance(user_id):
        with session_factory() as session:
            return LedgerStore().get_balance(session, user_id)
    return _balance


@pytest.fixture()
def order_count(session_factory):
    def _count(user_id=None):
        query = select(func.count(Order.id))
        if user_id is not None:
            query = query.where(Order.user_id == user_id)
        with session_factory() as session:
            return session.scalar(query)
    return _count


@pytest.fixture()
def debits_of(session_factory):
    def _debits(user_id):
        with session_factory() as session:
            return session.scalars(
                select(WalletTransaction)
                .where(WalletTransaction.user_id == user_id, WalletTransaction.transaction_type == "debit")
            ).all()
    return _debits
