"""CartMerger: folds an anonymous session cart into a user's cart at login."""

from enum import Enum

import structlog
from pydantic import BaseModel

from ordering.cart.cart import Cart
from ordering.cart.store import CartStore
from shared.actor import ActorRef
from shared.exceptions import InvalidActor, OutOfStock, ProductUnavailable

logger = structlog.get_logger(__name__)


class LineMergeStatus(Enum):
    MERGED = "merged"
    SKIPPED = "skipped"


class LineMergeResult(BaseModel):
    product_id: str
    requested: int
    status: LineMergeStatus
    reason: str | None = None


class MergeResult(BaseModel):
    cart: Cart
    lines: list[LineMergeResult]

    @property
    def merged(self) -> list[LineMergeResult]:
        return [line for line in self.lines if line.status == LineMergeStatus.MERGED]

    @property
    def skipped(self) -> list[LineMergeResult]:
        return [line for line in self.lines if line.status == LineMergeStatus.SKIPPED]


class CartMerger:
    def __init__(self, carts: CartStore):
        self._carts = carts

    def merge(self, source: ActorRef, target: ActorRef) -> MergeResult:
        """Add every line of ``source``'s cart to ``target``'s cart, then discard the source.

        Lines that fail the stock or availability check are skipped and
        reported, the rest of the merge goes ahead.
        """
        if source == target:
            raise InvalidActor({"source": ["Cannot merge a cart into itself"]})

        source_cart = self._carts.get(source)
        results: list[LineMergeResult] = []

        for line in source_cart.lines:
            try:
                self._carts.add_line(target, line.product_id, line.quantity)
            except (OutOfStock, ProductUnavailable) as exc:
                reason = exc.code
                results.append(
                    LineMergeResult(
                        product_id=line.product_id,
                        requested=line.quantity,
                        status=LineMergeStatus.SKIPPED,
                        reason=reason,
                    )
                )
                logger.warning(
                    "cart_merge_line_skipped",
                    source=source.key,
                    target=target.key,
                    product_id=line.product_id,
                    reason=reason,
                )
                continue

            results.append(
                LineMergeResult(product_id=line.product_id, requested=line.quantity, status=LineMergeStatus.MERGED)
            )

        self._carts.discard(source)
        result = MergeResult(cart=self._carts.get(target), lines=results)

        logger.info(
            "cart_merged",
            source=source.key,
            target=target.key,
            merged=len(result.merged),
            skipped=len(result.skipped),
        )
        return result
