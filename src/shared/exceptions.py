"""Typed failures raised by the cart, inventory and ordering contexts.

Every error carries a ``messages`` mapping shaped like ``{field: [message, ...]}``
so that the HTTP layer can render it without knowing the concrete type.
Storage failures (``redis.exceptions.ConnectionError`` and friends) are not
wrapped here and propagate unchanged.
"""


class DomainError(Exception):
    code = "domain_error"
    status_code = 400

    def __init__(self, messages: dict[str, list[str]]):
        self.messages = messages
        super().__init__(messages)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.code, "messages": self.messages}


class InvalidQuantity(DomainError):
    code = "invalid_quantity"
    status_code = 422


class InvalidActor(DomainError):
    code = "invalid_actor"
    status_code = 400


class ProductUnavailable(DomainError):
    code = "product_unavailable"
    status_code = 404

    def __init__(self, product_id: str, messages: dict[str, list[str]] | None = None):
        self.product_id = product_id
        super().__init__(messages or {"product_id": [f"Product {product_id} is not available"]})


class OutOfStock(DomainError):
    """Raised by cart operations when the requested quantity exceeds stock."""

    code = "out_of_stock"
    status_code = 409

    def __init__(self, product_id: str, available: int, requested: int):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            {"quantity": [f"Insufficient stock for {product_id}: {available} available, {requested} requested"]}
        )


class InsufficientStock(DomainError):
    """Raised by the ledger and by order assembly when stock cannot cover a line."""

    code = "insufficient_stock"
    status_code = 409

    def __init__(self, product_id: str, available: int, requested: int):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            {"quantity": [f"Insufficient stock for {product_id}: {available} available, {requested} requested"]}
        )


class EmptyCart(DomainError):
    code = "empty_cart"
    status_code = 400


class LineNotFound(DomainError):
    code = "line_not_found"
    status_code = 404

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__({"product_id": [f"Product {product_id} is not in the cart"]})


class OrderNotFound(DomainError):
    code = "order_not_found"
    status_code = 404

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__({"order_id": [f"Order {order_id} not found"]})


class ActorMismatch(DomainError):
    # Reported as not-found so that order ids of other actors are not disclosed
    code = "actor_mismatch"
    status_code = 404

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__({"order_id": [f"Order {order_id} not found"]})


class NotCancellable(DomainError):
    code = "not_cancellable"
    status_code = 409


class StockContention(DomainError):
    code = "stock_contention"
    status_code = 503


class CartContention(DomainError):
    code = "cart_contention"
    status_code = 503


class OrderContention(DomainError):
    code = "order_contention"
    status_code = 503
