"""
service.py — Read Operations and Wallet Administration

Thin entry points that open a unit of work around the stores for the
operations that are not part of checkout.
"""

from decimal import Decimal
from typing import List, Optional

from .db import unit_of_work
from .ledger import LedgerStore
from .logging_config import get_logger
from .models import OrderStatus, OrderSummary, OrderView, WalletView
from .repository import OrderRepository
from .status import require_admin

log = get_logger(__name__)


def get_order(session_factory, order_id: int, repository: OrderRepository = None) -> OrderView:
    repository = repository or OrderRepository()
    with unit_of_work(session_factory) as session:
        return repository.get_by_id(session, order_id)


def list_orders(session_factory, status: Optional[OrderStatus] = None,
                repository: OrderRepository = None) -> List[OrderSummary]:
    repository = repository or OrderRepository()
    with unit_of_work(session_factory) as session:
        return repository.list_orders(session, status)


def get_wallet(session_factory, user_id: int, ledger: LedgerStore = None) -> WalletView:
    ledger = ledger or LedgerStore()
    with unit_of_work(session_factory) as session:
        return WalletView(user_id=user_id, wallet_balance=ledger.get_balance(session, user_id))


def credit_wallet(session_factory, user_id: int, amount: Decimal, requester_role: str,
                  reason: Optional[str] = None, ledger: LedgerStore = None) -> WalletView:
    """
    Tops up a user's wallet. Administrators only.

    Raises:
        Forbidden: If the requester is not an administrator.
        ValidationError: If `amount` is not positive.
        NotFound: If the user does not exist.
    """
    require_admin(requester_role)
    ledger = ledger or LedgerStore()
    with unit_of_work(session_factory) as session:
        balance = ledger.credit(session, user_id, amount, reference=f"admin:{reason or 'top-up'}")
    return WalletView(user_id=user_id, wallet_balance=balance)
