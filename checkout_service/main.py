"""
main.py — FastAPI Entry Point for the Checkout Service

This module provides the REST API of the medicine storefront checkout core.
It binds the transport-agnostic operations to HTTP:

Responsibilities:
    • Place orders (wallet debit + order insert as one unit of work)
    • Read single orders and the admin order list
    • Apply admin status transitions
    • Show and top up wallet balances
    • Provide system health information

Authentication happens upstream. The gateway forwards the verified identity
in the `X-User-Id` and `X-User-Role` headers; this service trusts them as given.
"""

from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .catalog import CATALOG_SERVICE_URL, CatalogClient, SqlCatalog
from .db import create_store_engine, init_db, make_session_factory
from .errors import CheckoutError, Forbidden
from .logging_config import setup_logging, get_logger
from .models import (
    NewOrderRequest,
    OrderStatus,
    OrderSummary,
    OrderView,
    StatusUpdateRequest,
    WalletCreditRequest,
    WalletView,
)
from . import service
from .status import ADMIN_ROLE, OrderStatusManager
from .workflow import CheckoutWorkflow

# Initialization
setup_logging()
log = get_logger(__name__)


class Requester(BaseModel):
    user_id: int
    role: str


def get_requester(
        x_user_id: Optional[int] = Header(None),
        x_user_role: str = Header("user"),
) -> Requester:
    """Reads the identity forwarded by the authentication layer."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required.")
    return Requester(user_id=x_user_id, role=x_user_role)


def create_app(session_factory=None, catalog=None) -> FastAPI:
    """
    Builds the FastAPI application around an injected store.

    Args:
        session_factory: SQLAlchemy session factory. When omitted, an engine is
            created from DATABASE_URL and its tables are created on startup.
        catalog: Catalog Reference. When omitted, CATALOG_SERVICE_URL selects the
            remote CatalogClient, otherwise the local medicines table is used.

    Returns:
        FastAPI: The configured application.
    """
    engine = None
    if session_factory is None:
        engine = create_store_engine()
        session_factory = make_session_factory(engine)
    owned_client = None
    if catalog is None:
        if CATALOG_SERVICE_URL:
            catalog = owned_client = CatalogClient(CATALOG_SERVICE_URL)
        else:
            catalog = SqlCatalog(session_factory)

    workflow = CheckoutWorkflow(session_factory, catalog=catalog)
    status_manager = OrderStatusManager(session_factory)
    app = FastAPI(title="Medicine Storefront Checkout Service")

    @app.on_event("startup")
    def on_startup():
        """Creates missing tables when the app owns its engine."""
        log.info("Checkout service starting...")
        if engine is not None:
            init_db(engine)
            log.info("Database schema ready.")

    @app.on_event("shutdown")
    def on_shutdown():
        """Closes the catalog HTTP client when the app created it."""
        if owned_client is not None:
            owned_client.close()
            log.info("Catalog client closed.")

    @app.exception_handler(CheckoutError)
    async def checkout_error_handler(request: Request, exc: CheckoutError):
        return JSONResponse(status_code=exc.http_status, content={"error": exc.message, "code": exc.code})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        log.critical(f"Unexpected error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    # API Endpoint: storefront → checkout
    @app.post("/v1/orders", status_code=201, response_model=OrderView)
    def place_order(
            order: NewOrderRequest,
            requester: Requester = Depends(get_requester),
            idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    ):
        """
        Places an order for the requesting user.

        With payment_method 'wallet' the total is debited from the user's
        wallet in the same transaction that stores the order.

        Returns:
            OrderView: The created order, status Pending.
        """
        log.info(f"[User: {requester.user_id}] New order received from storefront.")
        return workflow.place_order(
            user_id=requester.user_id,
            items=order.items,
            subtotal=order.subtotal,
            service_fee=order.service_fee,
            total_amount=order.total_amount,
            payment_method=order.payment_method,
            idempotency_key=idempotency_key,
        )

    @app.get("/v1/orders/{order_id}", response_model=OrderView)
    def get_order(order_id: int, requester: Requester = Depends(get_requester)):
        """Returns one order. Users see their own orders, admins see all."""
        order = service.get_order(workflow.session_factory, order_id)
        if requester.role != ADMIN_ROLE and order.user_id != requester.user_id:
            raise Forbidden("Access denied.")
        return order

    @app.get("/v1/admin/orders", response_model=List[OrderSummary])
    def list_orders(status: Optional[OrderStatus] = None, requester: Requester = Depends(get_requester)):
        if requester.role != ADMIN_ROLE:
            raise Forbidden("Access denied. Admins only.")
        return service.list_orders(workflow.session_factory, status)

    @app.put("/v1/admin/orders/{order_id}/status")
    def update_order_status(
            order_id: int,
            update: StatusUpdateRequest,
            requester: Requester = Depends(get_requester),
    ):
        """
        Applies an admin status transition.

        Returns:
            dict: Acknowledgement with the new status.
        """
        status_manager.update_status(order_id, update.status, requester.role)
        return {"message": "Order status updated", "status": update.status.value}

    @app.get("/v1/wallet", response_model=WalletView)
    def get_wallet(requester: Requester = Depends(get_requester)):
        return service.get_wallet(workflow.session_factory, requester.user_id)

    @app.post("/v1/admin/users/{user_id}/wallet/credit", response_model=WalletView)
    def credit_wallet(
            user_id: int,
            credit: WalletCreditRequest,
            requester: Requester = Depends(get_requester),
    ):
        log.info(f"[User: {user_id}] Wallet top-up of {credit.amount} requested by admin {requester.user_id}.")
        return service.credit_wallet(workflow.session_factory, user_id, credit.amount, requester.role, credit.reason)

    # Health Check Endpoint
    @app.get("/health")
    def health_check():
        """
        Simple health check endpoint for monitoring systems and container orchestrators.
        """
        return {"status": "ok"}

    return app


app = create_app()
