"""Typed errors raised by the ledger, cart, catalog and order services.

Every failure that crosses the service boundary is a ``ShopError``. Routers
map ``status_code`` onto the HTTP response and send ``to_dict()`` as the
detail, so clients get a stable ``code`` plus whatever numbers they need to
explain the failure (e.g. the stock or balance shortfall).
"""
from typing import Any, Dict, Optional


class ShopError(Exception):
    """Base class for all domain errors."""

    code = "ERROR"
    status_code = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFound(ShopError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidArgument(ShopError):
    code = "INVALID_ARGUMENT"
    status_code = 400


class InvalidFormat(InvalidArgument):
    code = "INVALID_FORMAT"


class InvalidState(ShopError):
    code = "INVALID_STATE"
    status_code = 400


class InsufficientStock(ShopError):
    code = "INSUFFICIENT_STOCK"
    status_code = 400

    def __init__(self, product_id: str, required: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"required {required}, available {available}",
            product_id=product_id,
            required=required,
            available=available,
        )
        self.product_id = product_id
        self.required = required
        self.available = available


class InsufficientBalance(ShopError):
    code = "INSUFFICIENT_BALANCE"
    status_code = 400

    def __init__(self, wallet_id: str, required: int, available: int):
        super().__init__(
            f"Insufficient balance in wallet {wallet_id}: "
            f"required {required}, available {available}",
            wallet_id=wallet_id,
            required=required,
            available=available,
        )
        self.wallet_id = wallet_id
        self.required = required
        self.available = available


class Forbidden(ShopError):
    code = "FORBIDDEN"
    status_code = 403


class Duplicate(ShopError):
    code = "DUPLICATE"
    status_code = 409


class Conflict(ShopError):
    code = "CONFLICT"
    status_code = 409


class ConcurrentModification(Conflict):
    """A guarded write lost a race or the database refused to serialize."""

    code = "CONCURRENT_MODIFICATION"

    def __init__(self, message: str = "Resource was modified concurrently", **details: Any):
        super().__init__(message, **details)


class StoreUnavailable(ShopError):
    code = "STORE_UNAVAILABLE"
    status_code = 503

    def __init__(self, message: str = "Storage is temporarily unavailable", operation: Optional[str] = None):
        if operation:
            super().__init__(message, operation=operation)
        else:
            super().__init__(message)
