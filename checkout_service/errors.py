"""
errors.py — Failure taxonomy of the checkout core

Every error carries a machine-readable `code` and the HTTP status the API
layer answers with. Business-rule failures (InsufficientFunds,
InvalidTransition) are surfaced verbatim and never retried by the service.
"""


class CheckoutError(Exception):
    code = "checkout_error"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class EmptyCart(CheckoutError):
    code = "empty_cart"
    http_status = 400


class ValidationError(CheckoutError):
    code = "validation_error"
    http_status = 400


class InsufficientFunds(CheckoutError):
    code = "insufficient_funds"
    http_status = 409


class NotFound(CheckoutError):
    code = "not_found"
    http_status = 404


class InvalidTransition(CheckoutError):
    code = "invalid_transition"
    http_status = 409


class Forbidden(CheckoutError):
    code = "forbidden"
    http_status = 403


class StoreUnavailable(CheckoutError):
    """Transient infrastructure failure. The caller may retry with an idempotency key."""
    code = "store_unavailable"
    http_status = 503
