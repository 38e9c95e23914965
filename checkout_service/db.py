"""
db.py — Relational Store for Wallets and Orders

This module holds the SQLAlchemy schema shared by the Ledger Store and the
Order Repository, plus the engine and unit-of-work helpers. Both stores live
in the same database, so a checkout runs as one database transaction.

Tables:
    - users: owner of the wallet balance (integer cents, never negative)
    - medicines: local copy of the catalog used for name resolution
    - orders / order_items: orders and their immutable line items
    - wallet_transactions: append-only trail of every balance change
"""

import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    create_engine,
    event,
    exc,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker

from .errors import StoreUnavailable
from .logging_config import get_logger

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./checkout.db")
DATABASE_TIMEOUT = float(os.environ.get("DATABASE_TIMEOUT", "30"))

log = get_logger(__name__)


def _utcnow():
    # Naive UTC, so values read back from any backend compare equal.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("wallet_balance_cents >= 0", name="ck_users_wallet_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    fullname: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    role: Mapped[str] = mapped_column(String(20), default="user", nullable=False)
    wallet_balance_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)


class Medicine(Base):
    __tablename__ = "medicines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    in_stock: Mapped[bool] = mapped_column(default=True, nullable=False)


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    subtotal_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    service_fee_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="Pending", index=True, nullable=False)
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)

    user: Mapped[User] = relationship()
    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    # Weak reference: a medicine may disappear from the catalog after ordering.
    medicine_id: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")


class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(10), nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reference: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)


# --- Engine & Sessions ---

def create_store_engine(url: str = DATABASE_URL, timeout: float = DATABASE_TIMEOUT):
    """
    Creates the SQLAlchemy engine for the store.

    For SQLite the driver's own transaction handling is replaced by
    `BEGIN IMMEDIATE`, so every transaction takes the database write lock up
    front and concurrent writers queue on the busy timeout instead of failing
    with a lock upgrade error. Other backends rely on row locks taken by the
    statements themselves.

    Args:
        url (str): SQLAlchemy database URL.
        timeout (float): Seconds to wait for a lock before giving up.

    Returns:
        sqlalchemy.engine.Engine: The configured engine.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, pool_timeout=timeout)

    engine = create_engine(url, connect_args={"timeout": timeout, "check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def init_db(engine):
    """Creates all tables that do not exist yet."""
    Base.metadata.create_all(engine)


def make_session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def unit_of_work(session_factory):
    """
    Runs the enclosed block inside one database transaction.

    Commits when the block finishes, rolls back on any exception. Transient
    infrastructure failures are re-raised as StoreUnavailable; nothing is
    retried here, because a blind retry of a checkout could debit twice.

    Raises:
        StoreUnavailable: If the database cannot be reached, a lock wait
            timed out, or the connection pool is exhausted.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except (exc.OperationalError, exc.InterfaceError, exc.TimeoutError) as e:
        session.rollback()
        log.error(f"Store unavailable, transaction rolled back: {e}")
        raise StoreUnavailable("The order store is temporarily unavailable.") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
