"""
repository.py — Order Repository

Durable storage of orders and their line items. Writes run inside the
caller's session; the caller's unit of work decides when they become
visible, so readers never see an order without its items.
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from .db import Medicine, Order, OrderItem, User
from .errors import NotFound, ValidationError
from .logging_config import get_logger
from .models import (
    OrderItemView,
    OrderStatus,
    OrderSummary,
    OrderView,
    PaymentMethod,
    check_transition,
    from_cents,
    to_cents,
)

log = get_logger(__name__)

UNKNOWN_MEDICINE = "Unknown Medicine"
UNKNOWN_USER = "Unknown"


class OrderRepository:

    def create_with_items(
            self,
            session,
            user_id: int,
            items: list,
            subtotal: Decimal,
            service_fee: Decimal,
            total_amount: Decimal,
            payment_method: PaymentMethod,
            order_number: str,
            idempotency_key: Optional[str] = None,
    ) -> Order:
        """
        Inserts an order together with all of its items.

        The rows are flushed but not committed, so they share the fate of the
        surrounding transaction.

        Args:
            items (list): Objects with `medicine_id`, `quantity` and `price`.

        Returns:
            Order: The flushed row, with generated `id` and `created_at`.

        Raises:
            ValidationError: If `items` is empty or an item has quantity <= 0.
        """
        if not items:
            raise ValidationError("An order needs at least one item.")
        for item in items:
            if item.quantity <= 0:
                raise ValidationError(f"Quantity for medicine {item.medicine_id} must be greater than zero.")

        order = Order(
            order_number=order_number,
            user_id=user_id,
            subtotal_cents=to_cents(subtotal),
            service_fee_cents=to_cents(service_fee),
            total_amount_cents=to_cents(total_amount),
            payment_method=PaymentMethod(payment_method).value,
            status=OrderStatus.PENDING.value,
            idempotency_key=idempotency_key,
            items=[
                OrderItem(medicine_id=item.medicine_id, quantity=item.quantity, price_cents=to_cents(item.price))
                for item in items
            ],
        )
        session.add(order)
        session.flush()
        log.info(f"[Order: {order_number}] Inserted order {order.id} with {len(items)} item(s).")
        return order

    def update_status(self, session, order_id: int, new_status: OrderStatus):
        """
        Moves an order to `new_status` if the lifecycle allows it.

        The row is locked for the rest of the transaction where the backend
        supports `SELECT ... FOR UPDATE`, so two admins cannot both move the
        same order out of one state.

        Raises:
            NotFound: If the order does not exist.
            InvalidTransition: If `new_status` is not reachable from the current status.
        """
        order = session.scalar(select(Order).where(Order.id == order_id).with_for_update())
        if order is None:
            raise NotFound(f"Order {order_id} not found.")

        current = OrderStatus(order.status)
        check_transition(current, new_status)
        order.status = new_status.value
        session.flush()
        log.info(f"[Order: {order.order_number}] Status {current.value} -> {new_status.value}.")

    def find_by_idempotency_key(self, session, key: str) -> Optional[Order]:
        return session.scalar(select(Order).where(Order.idempotency_key == key))

    def get_by_id(self, session, order_id: int) -> OrderView:
        """
        Reads an order with its items, the owner's name and the medicine names.

        Raises:
            NotFound: If the order does not exist.
        """
        order = session.scalar(
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.items), selectinload(Order.user))
        )
        if order is None:
            raise NotFound(f"Order {order_id} not found.")
        names = self._medicine_names(session, {item.medicine_id for item in order.items})
        return _to_view(order, names)

    def list_orders(self, session, status: Optional[OrderStatus] = None) -> List[OrderSummary]:
        """Returns admin summaries of all orders, newest first."""
        query = (
            select(Order)
            .options(selectinload(Order.items), selectinload(Order.user))
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        if status is not None:
            query = query.where(Order.status == status.value)
        orders = session.scalars(query).all()

        names = self._medicine_names(session, {item.medicine_id for o in orders for item in o.items})
        return [
            OrderSummary(
                id=o.id,
                order_number=o.order_number,
                user_fullname=o.user.fullname if o.user else UNKNOWN_USER,
                total_amount=from_cents(o.total_amount_cents),
                status=OrderStatus(o.status),
                created_at=o.created_at,
                product_names=[names.get(item.medicine_id, UNKNOWN_MEDICINE) for item in o.items],
            )
            for o in orders
        ]

    def _medicine_names(self, session, medicine_ids) -> dict:
        if not medicine_ids:
            return {}
        rows = session.execute(select(Medicine.id, Medicine.name).where(Medicine.id.in_(medicine_ids)))
        return {row.id: row.name for row in rows}


def _to_view(order: Order, names: dict) -> OrderView:
    return OrderView(
        id=order.id,
        order_number=order.order_number,
        user_id=order.user_id,
        user_fullname=order.user.fullname if order.user else UNKNOWN_USER,
        subtotal=from_cents(order.subtotal_cents),
        service_fee=from_cents(order.service_fee_cents),
        total_amount=from_cents(order.total_amount_cents),
        payment_method=PaymentMethod(order.payment_method),
        status=OrderStatus(order.status),
        created_at=order.created_at,
        items=[
            OrderItemView(
                id=item.id,
                medicine_id=item.medicine_id,
                medicine_name=names.get(item.medicine_id, UNKNOWN_MEDICINE),
                quantity=item.quantity,
                price=from_cents(item.price_cents),
            )
            for item in order.items
        ],
    )
