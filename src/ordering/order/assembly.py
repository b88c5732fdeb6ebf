"""OrderAssembler: turns an actor's cart into a placed order.

Checkout is all-or-nothing. Every cart line is validated against the catalogue
and the stock ledger before anything is written. The writes themselves run as
a sequence of steps (one stock decrement per line, saving the order, taking
the ordered lines out of the cart), and a failure in any step compensates the
steps that already completed in reverse order. The caller either gets a
persisted order with its stock taken, or an error with stock and orders as
before and the ordered lines back in the cart. Cart edits made while the order
was being placed are kept either way.

Checkouts for one actor are serialized by a lock held in the store
(``checkout:<actor>``), so two workers cannot place the same cart twice.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

import redis
import structlog
from pydantic import BaseModel

from inventory.stock.ledger import StockLedger
from ordering.cart.cart import Cart
from ordering.cart.store import CartStore, ProductLookup
from ordering.order.order import Address, Order, OrderLine, PaymentMethod
from ordering.order.repository import OrderRepository
from shared.actor import ActorRef
from shared.config import Settings
from shared.exceptions import EmptyCart, InsufficientStock, ProductUnavailable
from shared.money import ZERO, to_money
from shared.redis import key

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------
class OrderPricing(BaseModel):
    subtotal: Decimal
    shipping_cost: Decimal
    tax: Decimal

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.shipping_cost + self.tax


class PricingPolicy:
    """Free shipping above a threshold, a flat fee below it, and a flat tax rate."""

    def __init__(self, free_shipping_threshold: Decimal, flat_shipping_fee: Decimal, tax_rate: Decimal):
        self.free_shipping_threshold = free_shipping_threshold
        self.flat_shipping_fee = flat_shipping_fee
        self.tax_rate = tax_rate

    @classmethod
    def from_settings(cls, settings: Settings) -> "PricingPolicy":
        return cls(
            free_shipping_threshold=settings.free_shipping_threshold,
            flat_shipping_fee=settings.flat_shipping_fee,
            tax_rate=settings.tax_rate,
        )

    def shipping_cost(self, subtotal: Decimal) -> Decimal:
        if subtotal >= self.free_shipping_threshold:
            return ZERO
        return to_money(self.flat_shipping_fee)

    def tax(self, subtotal: Decimal) -> Decimal:
        return to_money(subtotal * self.tax_rate)

    def price(self, lines: list[OrderLine]) -> OrderPricing:
        subtotal = to_money(sum((line.line_total for line in lines), ZERO))
        return OrderPricing(subtotal=subtotal, shipping_cost=self.shipping_cost(subtotal), tax=self.tax(subtotal))


# ---------------------------------------------------------------------------
# Checkout steps
# ---------------------------------------------------------------------------
class CheckoutStep(ABC):
    def __init__(self, actor: ActorRef, order: Order):
        self.actor = actor
        self.order = order

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def execute(self) -> None: ...

    @abstractmethod
    def compensate(self) -> None: ...

    def run(self) -> None:
        self.execute()
        logger.debug("checkout_step_done", step=self.name(), order_id=self.order.id, actor=self.actor.key)

    def run_compensation(self) -> None:
        self.compensate()
        logger.info("checkout_step_compensated", step=self.name(), order_id=self.order.id, actor=self.actor.key)


class TakeStock(CheckoutStep):
    def __init__(self, actor: ActorRef, order: Order, ledger: StockLedger, line: OrderLine):
        super().__init__(actor, order)
        self.ledger = ledger
        self.line = line

    def name(self) -> str:
        return f"TakeStock[{self.line.product_id}]"

    def execute(self) -> None:
        self.ledger.decrement(self.line.product_id, self.line.quantity)

    def compensate(self) -> None:
        self.ledger.increment(self.line.product_id, self.line.quantity)


class SaveOrder(CheckoutStep):
    def __init__(self, actor: ActorRef, order: Order, orders: OrderRepository):
        super().__init__(actor, order)
        self.orders = orders

    def name(self) -> str:
        return "SaveOrder"

    def execute(self) -> None:
        self.orders.add(self.order)

    def compensate(self) -> None:
        self.orders.remove(self.order)


class ClearCart(CheckoutStep):
    def __init__(self, actor: ActorRef, order: Order, carts: CartStore, snapshot: Cart):
        super().__init__(actor, order)
        self.carts = carts
        self.snapshot = snapshot

    def name(self) -> str:
        return "ClearCart"

    def execute(self) -> None:
        self.carts.remove_ordered(self.actor, self.snapshot)

    def compensate(self) -> None:
        self.carts.put_back(self.actor, self.snapshot)


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------
class OrderAssembler:
    def __init__(
        self,
        carts: CartStore,
        catalog: ProductLookup,
        ledger: StockLedger,
        orders: OrderRepository,
        pricing: PricingPolicy,
        client: redis.Redis,
        lock_seconds: int = 30,
    ):
        self._carts = carts
        self._catalog = catalog
        self._ledger = ledger
        self._orders = orders
        self._pricing = pricing
        self._redis = client
        self._lock_seconds = lock_seconds

    def _validate_and_price(self, cart: Cart) -> list[OrderLine]:
        """Check every line against the catalogue and the ledger; no writes happen here.

        Lines are priced at today's catalogue price, which may differ from the
        price frozen in the cart when the line was added.
        """
        lines = []
        for cart_line in cart.lines:
            product = self._catalog.get_product(cart_line.product_id)
            if product is None or not product.is_active:
                raise ProductUnavailable(
                    cart_line.product_id,
                    {"product_id": [f"Product {cart_line.display_name} is no longer available"]},
                )

            available = self._ledger.available(product.id)
            if available < cart_line.quantity:
                raise InsufficientStock(product.id, available=available, requested=cart_line.quantity)

            if product.final_price != cart_line.unit_price:
                logger.warning(
                    "cart_price_changed",
                    actor=cart.owner.key,
                    product_id=product.id,
                    cart_price=str(cart_line.unit_price),
                    current_price=str(product.final_price),
                )

            lines.append(OrderLine.priced(product.id, product.name, cart_line.quantity, product.final_price))
        return lines

    def create_order(
        self,
        actor: ActorRef,
        shipping_address: Address,
        payment_method: PaymentMethod,
        billing_address: Address | None = None,
        notes: str | None = None,
        shipping_method: str = "standard",
    ) -> Order:
        # One checkout per actor at a time across every worker, so the same cart cannot be spent twice
        with self._redis.lock(key("checkout", actor.key), timeout=self._lock_seconds):
            cart = self._carts.get(actor)
            if cart.is_empty:
                raise EmptyCart({"cart": ["Cannot place an order from an empty cart"]})

            lines = self._validate_and_price(cart)
            pricing = self._pricing.price(lines)
            order = Order.create(
                owner=actor,
                lines=lines,
                shipping_address=shipping_address,
                billing_address=billing_address,
                payment_method=PaymentMethod(payment_method),
                shipping_cost=pricing.shipping_cost,
                tax=pricing.tax,
                shipping_method=shipping_method,
                notes=notes,
            )

            steps: list[CheckoutStep] = [TakeStock(actor, order, self._ledger, line) for line in order.lines]
            steps.append(SaveOrder(actor, order, self._orders))
            steps.append(ClearCart(actor, order, self._carts, cart))

            completed: list[CheckoutStep] = []
            try:
                for step in steps:
                    step.run()
                    completed.append(step)
            except Exception as exc:
                logger.warning(
                    "checkout_failed",
                    actor=actor.key,
                    order_id=order.id,
                    error=str(exc),
                    completed_steps=[step.name() for step in completed],
                )
                self._roll_back(completed, order)
                raise

            logger.info(
                "order_created",
                actor=actor.key,
                order_id=order.id,
                order_number=order.order_number,
                lines=len(order.lines),
                total=str(order.total),
            )
            return order

    def _roll_back(self, completed: list[CheckoutStep], order: Order) -> None:
        for step in reversed(completed):
            try:
                step.run_compensation()
            except Exception:
                logger.exception("checkout_compensation_failed", step=step.name(), order_id=order.id)
