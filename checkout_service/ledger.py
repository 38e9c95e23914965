"""
ledger.py — Ledger Store (Wallet Balances)

The only component allowed to change a user's wallet balance. Every method
takes the caller's session so that a debit can share one transaction with
the order insert that depends on it.
"""

from decimal import Decimal

from sqlalchemy import select, update

from .db import User, WalletTransaction
from .errors import InsufficientFunds, NotFound, ValidationError
from .logging_config import get_logger
from .models import from_cents, to_cents

log = get_logger(__name__)


class LedgerStore:
    """
    Authoritative holder of wallet balances.

    Debits are a single conditional UPDATE, so the sufficiency check and the
    decrement happen against the same row version. Two concurrent debits on
    one wallet are serialized by the row lock the UPDATE takes; the second
    one re-evaluates the condition against the committed balance.
    """

    def get_balance(self, session, user_id: int) -> Decimal:
        """
        Returns the current wallet balance of a user.

        Raises:
            NotFound: If the user does not exist.
        """
        cents = session.scalar(select(User.wallet_balance_cents).where(User.id == user_id))
        if cents is None:
            raise NotFound(f"User {user_id} not found.")
        return from_cents(cents)

    def debit(self, session, user_id: int, amount: Decimal, reference: str) -> Decimal:
        """
        Atomically decreases the balance if it covers `amount`.

        Args:
            session: Open session; the debit commits or rolls back with it.
            user_id (int): Wallet owner.
            amount (Decimal): Amount to take, must be positive.
            reference (str): Audit reference, usually the order number.

        Returns:
            Decimal: The balance after the debit.

        Raises:
            ValidationError: If `amount` is not positive.
            NotFound: If the user does not exist.
            InsufficientFunds: If the balance at the moment of the update is lower than `amount`.
        """
        cents = to_cents(amount)
        if cents <= 0:
            raise ValidationError("Debit amount must be greater than zero.")

        result = session.execute(
            update(User)
            .where(User.id == user_id, User.wallet_balance_cents >= cents)
            .values(wallet_balance_cents=User.wallet_balance_cents - cents)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            balance = self.get_balance(session, user_id)
            log.warning(f"[User: {user_id}] Debit of {amount} rejected, balance is {balance}.")
            raise InsufficientFunds("Insufficient wallet balance.")

        return self._record(session, user_id, "debit", cents, reference)

    def credit(self, session, user_id: int, amount: Decimal, reference: str) -> Decimal:
        """
        Increases the balance by `amount`.

        Raises:
            ValidationError: If `amount` is not positive.
            NotFound: If the user does not exist.
        """
        cents = to_cents(amount)
        if cents <= 0:
            raise ValidationError("Credit amount must be greater than zero.")

        result = session.execute(
            update(User)
            .where(User.id == user_id)
            .values(wallet_balance_cents=User.wallet_balance_cents + cents)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFound(f"User {user_id} not found.")

        return self._record(session, user_id, "credit", cents, reference)

    def _record(self, session, user_id, transaction_type, cents, reference) -> Decimal:
        balance_cents = session.scalar(select(User.wallet_balance_cents).where(User.id == user_id))
        session.add(WalletTransaction(
            user_id=user_id,
            transaction_type=transaction_type,
            amount_cents=cents,
            balance_after_cents=balance_cents,
            reference=reference,
        ))
        log.info(f"[User: {user_id}] Wallet {transaction_type} of {from_cents(cents)} ({reference}), "
                 f"new balance {from_cents(balance_cents)}.")
        return from_cents(balance_cents)
