"""
workflow.py — Core Orchestration Logic for Order Placement

This module contains the checkout workflow. It composes the Ledger Store and
the Order Repository into one all-or-nothing unit of work per request.

Workflow Overview:
1. Validate the cart (no store access)
2. Check the medicines against the Catalog Reference
3. In one database transaction:
   a. Deduplicate by idempotency key
   b. Debit the wallet (wallet payments only)
   c. Insert the order with its items
4. Commit and return the order

Because the debit and the insert share one transaction, a failure at any
step rolls back both: there is never a debit without an order, nor a wallet
order without its debit.
"""

import uuid
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import exc

from .db import unit_of_work
from .errors import CheckoutError, EmptyCart, StoreUnavailable, ValidationError
from .ledger import LedgerStore
from .logging_config import get_logger
from .models import OrderItem, OrderView, PaymentMethod, to_cents
from .repository import OrderRepository

log = get_logger(__name__)


def new_order_number() -> str:
    return uuid.uuid4().hex[:12].upper()


class CheckoutWorkflow:
    """
    Order Placement Orchestrator.

    Holds no mutable state between calls; every checkout is an independent
    unit of work against the injected store.
    """

    def __init__(self, session_factory, catalog=None, ledger: LedgerStore = None,
                 repository: OrderRepository = None):
        """
        Args:
            session_factory: Callable returning a new SQLAlchemy session.
            catalog: Optional Catalog Reference with a `lookup(ids)` method.
            ledger (LedgerStore): Wallet store, defaults to a new LedgerStore.
            repository (OrderRepository): Order store, defaults to a new OrderRepository.
        """
        self.session_factory = session_factory
        self.catalog = catalog
        self.ledger = ledger or LedgerStore()
        self.repository = repository or OrderRepository()

    def place_order(
            self,
            user_id: int,
            items: List[OrderItem],
            subtotal: Decimal,
            service_fee: Decimal,
            total_amount: Decimal,
            payment_method: PaymentMethod,
            idempotency_key: Optional[str] = None,
    ) -> OrderView:
        """
        Executes a complete checkout for one user.

        Args:
            user_id (int): Requesting user, as established by the auth layer.
            items (List[OrderItem]): Cart lines with snapshot unit prices.
            subtotal (Decimal): Caller-computed sum of the lines.
            service_fee (Decimal): Fee on top of the subtotal.
            total_amount (Decimal): Must equal subtotal + service_fee.
            payment_method (PaymentMethod): 'wallet' debits total_amount from the wallet.
            idempotency_key (str): Optional caller token; a repeated key returns
                the order created by the first request instead of debiting again.

        Returns:
            OrderView: The committed order, status Pending.

        Raises:
            EmptyCart: If `items` is empty.
            ValidationError: If an item or amount is malformed, or the catalog rejects a medicine.
            NotFound: If the user does not exist.
            InsufficientFunds: If the wallet cannot cover total_amount.
            StoreUnavailable: On transient store or catalog failures. Nothing is retried.
        """
        order_number = new_order_number()
        log_prefix = f"[Order: {order_number}][User: {user_id}]"

        # --- 1. Validation (fail fast, no side effects) ---
        try:
            payment_method = self._validate(items, subtotal, service_fee, total_amount, payment_method)
        except CheckoutError as e:
            log.warning(f"{log_prefix} Checkout rejected before touching the store: {e.message}")
            raise
        log.info(f"{log_prefix} Checkout started ({len(items)} item(s), {payment_method.value}, total {total_amount}).")

        # --- 2. Catalog Reference ---
        if self.catalog is not None:
            self._check_catalog(items, log_prefix)

        # --- 3. Debit + insert as one transaction ---
        try:
            with unit_of_work(self.session_factory) as session:
                if idempotency_key:
                    existing = self.repository.find_by_idempotency_key(session, idempotency_key)
                    if existing is not None:
                        return self._replay(session, existing, user_id, idempotency_key, log_prefix)

                if payment_method is PaymentMethod.WALLET:
                    log.info(f"{log_prefix} Debiting wallet...")
                    self.ledger.debit(session, user_id, total_amount, reference=f"order:{order_number}")
                else:
                    # Raises NotFound for an unknown user.
                    self.ledger.get_balance(session, user_id)

                order = self.repository.create_with_items(
                    session,
                    user_id=user_id,
                    items=items,
                    subtotal=subtotal,
                    service_fee=service_fee,
                    total_amount=total_amount,
                    payment_method=payment_method,
                    order_number=order_number,
                    idempotency_key=idempotency_key,
                )
                view = self.repository.get_by_id(session, order.id)

        except exc.IntegrityError as e:
            # The whole transaction, debit included, is rolled back at this point.
            if idempotency_key:
                log.warning(f"{log_prefix} Concurrent request with the same idempotency key, returning its order.")
                with unit_of_work(self.session_factory) as session:
                    existing = self.repository.find_by_idempotency_key(session, idempotency_key)
                    if existing is not None:
                        return self._replay(session, existing, user_id, idempotency_key, log_prefix)
            log.error(f"{log_prefix} Checkout rolled back, integrity error: {e.orig}")
            raise ValidationError("The order violates a store constraint.")

        except StoreUnavailable:
            log.error(f"{log_prefix} Checkout failed, store unavailable. Neither debit nor order were kept.")
            raise

        except CheckoutError as e:
            log.warning(f"{log_prefix} Checkout rejected: {e.code} - {e.message}")
            raise

        log.info(f"{log_prefix} Checkout committed as order {view.id}.")
        return view

    def _validate(self, items, subtotal, service_fee, total_amount, payment_method) -> PaymentMethod:
        if not items:
            raise EmptyCart("No items in the order.")
        for item in items:
            if item.quantity <= 0:
                raise ValidationError(f"Quantity for medicine {item.medicine_id} must be greater than zero.")
            if item.price < 0:
                raise ValidationError(f"Price for medicine {item.medicine_id} must not be negative.")
            to_cents(item.price)
        if subtotal < 0 or service_fee < 0:
            raise ValidationError("Subtotal and service fee must not be negative.")
        if total_amount <= 0:
            raise ValidationError("Total amount must be greater than zero.")
        if total_amount != subtotal + service_fee:
            raise ValidationError("Total amount must equal subtotal plus service fee.")
        for amount in (subtotal, service_fee, total_amount):
            to_cents(amount)
        try:
            return PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(f"Unknown payment method: {payment_method}.")

    def _check_catalog(self, items, log_prefix):
        known = self.catalog.lookup(item.medicine_id for item in items)
        for item in items:
            medicine = known.get(item.medicine_id)
            if medicine is None:
                log.warning(f"{log_prefix} Medicine {item.medicine_id} not in catalog.")
                raise ValidationError(f"Medicine {item.medicine_id} does not exist.")
            if not medicine.in_stock:
                log.warning(f"{log_prefix} Medicine {item.medicine_id} is out of stock.")
                raise ValidationError(f"Medicine {medicine.name} is out of stock.")

    def _replay(self, session, existing, user_id, idempotency_key, log_prefix) -> OrderView:
        if existing.user_id != user_id:
            raise ValidationError("Idempotency key already used by another user.")
        log.info(f"{log_prefix} Idempotency key {idempotency_key} already used by order {existing.id}, no new debit.")
        return self.repository.get_by_id(session, existing.id)
