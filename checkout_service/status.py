"""
status.py — Order Status Manager

Admin-facing lifecycle of existing orders:

    Pending ──> Packed ──> Delivered
       │          │
       └──────────┴──> Cancelled

Delivered and Cancelled are terminal. Cancelling does not refund a wallet
payment; a refund is an explicit wallet credit by an administrator.
"""

from .db import unit_of_work
from .errors import Forbidden, ValidationError
from .logging_config import get_logger
from .models import OrderStatus
from .repository import OrderRepository

ADMIN_ROLE = "admin"

log = get_logger(__name__)


def require_admin(requester_role: str):
    if requester_role != ADMIN_ROLE:
        raise Forbidden("Access denied. Admins only.")


class OrderStatusManager:

    def __init__(self, session_factory, repository: OrderRepository = None):
        self.session_factory = session_factory
        self.repository = repository or OrderRepository()

    def update_status(self, order_id: int, new_status, requester_role: str):
        """
        Applies one lifecycle transition to an order.

        Args:
            order_id (int): Target order.
            new_status (OrderStatus | str): Requested status.
            requester_role (str): Role supplied by the auth layer.

        Raises:
            Forbidden: If the requester is not an administrator.
            ValidationError: If `new_status` is not a known status.
            NotFound: If the order does not exist.
            InvalidTransition: If the lifecycle does not allow the change.
        """
        require_admin(requester_role)
        try:
            new_status = OrderStatus(new_status)
        except ValueError:
            raise ValidationError(f"Invalid status value: {new_status}.")

        with unit_of_work(self.session_factory) as session:
            self.repository.update_status(session, order_id, new_status)
        log.info(f"[Order: {order_id}] Status update to {new_status.value} committed.")
