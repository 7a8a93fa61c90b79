"""Exceptions raised by the storefront services.

Every error carries a ``kind``; the REST and GraphQL layers translate the kind
into their own representation, so services never know which protocol called
them.
"""


class ShopError(Exception):
    """Base exception for all storefront errors."""

    kind = "internal"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ShopError):
    """Raised when input is malformed or missing."""

    kind = "validation"


class NotFoundError(ShopError):
    """Raised when a referenced entity does not exist."""

    kind = "not_found"
    entity = "Resource"

    def __init__(self, entity_id: str | None = None):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found")


class CustomerNotFound(NotFoundError):
    entity = "Customer"


class ProductNotFound(NotFoundError):
    entity = "Product"

    def __init__(self, entity_id: str | None = None):
        super().__init__(entity_id)
        if entity_id:
            self.message = f"Product with ID {entity_id} not found"
            self.args = (self.message,)


class OrderNotFound(NotFoundError):
    entity = "Order"


class ConflictError(ShopError):
    """Raised when a request collides with the current state."""

    kind = "conflict"


class DuplicateEmail(ConflictError):
    def __init__(self, email: str):
        self.email = email
        super().__init__("Customer with this email already exists")


class InsufficientInventory(ConflictError):
    def __init__(self, product_id: str, requested: int, available: int | None = None, name: str | None = None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(f"Not enough inventory for product {name or product_id}")


class InvalidTransition(ConflictError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change order status from '{current}' to '{requested}'")


class CustomerHasOrders(ConflictError):
    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__("Cannot delete customer with existing orders")


class ProductInUse(ConflictError):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__("Cannot delete product referenced by open orders")


class ImmutableOrderState(ShopError):
    """Raised when a delivered or cancelled order is mutated."""

    kind = "immutable_order_state"

    def __init__(self, status: str, action: str):
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} a {status} order")


class ServiceUnavailable(ShopError):
    """Raised when an upstream provider fails or times out."""

    kind = "service_unavailable"

    def __init__(self, service: str, detail: str | None = None):
        self.service = service
        self.detail = detail
        super().__init__(
            detail or f"Unable to retrieve {service} information at this time"
        )


class InternalError(ShopError):
    """Raised for unexpected persistence failures."""

    kind = "internal"
