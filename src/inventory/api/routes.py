"""FastAPI routes for the Inventory domain: stock levels."""

import structlog
from fastapi import APIRouter, Depends

from inventory.api.schemas import ReceiveStockRequest, SetStockRequest, StockLevelResponse
from ordering.domain import Storefront
from shared.web import get_storefront, require_admin

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Inventory Router
# ---------------------------------------------------------------------------
inventory_router = APIRouter(prefix="/inventory", tags=["inventory"])


@inventory_router.get("/{product_id}", response_model=StockLevelResponse)
def get_stock_level(product_id: str, storefront: Storefront = Depends(get_storefront)) -> StockLevelResponse:
    storefront.catalog.get(product_id)
    return StockLevelResponse(product_id=product_id, available=storefront.ledger.available(product_id))


@inventory_router.put("/{product_id}", response_model=StockLevelResponse, dependencies=[Depends(require_admin)])
def set_stock_level(
    product_id: str, body: SetStockRequest, storefront: Storefront = Depends(get_storefront)
) -> StockLevelResponse:
    """Overwrite the count after a stock take."""
    storefront.catalog.get(product_id)
    quantity = storefront.ledger.set_quantity(product_id, body.quantity)
    return StockLevelResponse(product_id=product_id, available=quantity)


@inventory_router.post(
    "/{product_id}/receive", response_model=StockLevelResponse, dependencies=[Depends(require_admin)]
)
def receive_stock(
    product_id: str, body: ReceiveStockRequest, storefront: Storefront = Depends(get_storefront)
) -> StockLevelResponse:
    storefront.catalog.get(product_id)
    quantity = storefront.ledger.increment(product_id, body.quantity)
    logger.info("stock_received", product_id=product_id, amount=body.quantity, reference=body.reference)
    return StockLevelResponse(product_id=product_id, available=quantity)
