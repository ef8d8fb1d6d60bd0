"""
Domain Exceptions

Every error raised by the service layer derives from StorefrontError and
carries the HTTP status code it maps to. The FastAPI exception handler in
app.main renders them as ``{"error": message}``.

Not-found and not-owned resources raise the same exception so responses
never reveal whether a row belongs to someone else.
"""

from typing import Optional


class StorefrontError(Exception):
    """Base class for all storefront domain errors."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# =============================================================================
# AUTHENTICATION / AUTHORIZATION
# =============================================================================

class AuthenticationError(StorefrontError):
    """Missing, malformed or rejected access token."""
    status_code = 401
    default_message = "Unauthorized"


class PermissionDeniedError(StorefrontError):
    """Authenticated user lacks the admin role required for the action."""
    status_code = 403
    default_message = "Forbidden"


# =============================================================================
# NOT FOUND
# =============================================================================

class NotFoundError(StorefrontError):
    """Requested row does not exist or is not visible to the caller."""
    status_code = 404
    default_message = "Not found"


class OrderNotFoundError(NotFoundError):
    default_message = "Order not found"


class AddressNotFoundError(NotFoundError):
    default_message = "Address not found"


class PromotionNotFoundError(NotFoundError):
    default_message = "Promotion not found"


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationError(StorefrontError):
    """Request is well-formed JSON but violates a business rule."""
    status_code = 400
    default_message = "Invalid request"


class InvalidStatusError(ValidationError):
    """Status value is not one of the known order statuses."""
    default_message = "Invalid status"


class EmptyCartError(ValidationError):
    """Checkout attempted without any purchasable cart line."""
    default_message = "Cart is empty"


# =============================================================================
# CONFLICTS
# =============================================================================

class ConflictError(StorefrontError):
    status_code = 409
    default_message = "Conflict"


class InvalidStatusTransition(ConflictError):
    """Target status is not reachable from the current one."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change order status from '{current}' to '{target}'")


class StaleOrderError(ConflictError):
    """Order row changed since it was read (optimistic version check failed)."""
    default_message = "Order was modified by another request, reload and try again"


class AlreadyPaidError(ConflictError):
    """Payment requested for an order whose payment is already recorded."""
    default_message = "Order is already paid"


# =============================================================================
# DATA / DOWNSTREAM
# =============================================================================

class DataIntegrityError(StorefrontError):
    """Stored row is missing a join it must have (e.g. item without product)."""
    status_code = 500
    default_message = "Internal server error"


class PaymentError(StorefrontError):
    """Payment processor rejected or failed the charge."""
    status_code = 502
    default_message = "Payment processing failed"
