"""FastAPI endpoints for the Catalogue domain."""

from fastapi import APIRouter, Depends

from catalogue.api.schemas import CreateProductRequest, ProductResponse, SetActiveRequest, UpdatePricingRequest
from ordering.domain import Storefront
from shared.web import get_storefront, require_admin

product_router = APIRouter(prefix="/products", tags=["products"])


def _respond(storefront: Storefront, product) -> ProductResponse:
    return ProductResponse.from_product(product, storefront.ledger.available(product.id))


# --- Product endpoints ---


@product_router.post(
    "", status_code=201, response_model=ProductResponse, dependencies=[Depends(require_admin)]
)
def create_product(body: CreateProductRequest, storefront: Storefront = Depends(get_storefront)) -> ProductResponse:
    product = storefront.catalog.register(
        name=body.name,
        sku=body.sku,
        price=body.price,
        discount_price=body.discount_price,
        initial_stock=body.initial_stock,
        images=[image.model_dump() for image in body.images],
        is_active=body.is_active,
    )
    return _respond(storefront, product)


@product_router.get("/{product_id}", response_model=ProductResponse)
def get_product(product_id: str, storefront: Storefront = Depends(get_storefront)) -> ProductResponse:
    return _respond(storefront, storefront.catalog.get(product_id))


@product_router.put(
    "/{product_id}/pricing", response_model=ProductResponse, dependencies=[Depends(require_admin)]
)
def update_pricing(
    product_id: str, body: UpdatePricingRequest, storefront: Storefront = Depends(get_storefront)
) -> ProductResponse:
    product = storefront.catalog.update_pricing(product_id, body.price, body.discount_price)
    return _respond(storefront, product)


@product_router.put("/{product_id}/active", response_model=ProductResponse, dependencies=[Depends(require_admin)])
def set_active(product_id: str, body: SetActiveRequest, storefront: Storefront = Depends(get_storefront)) -> ProductResponse:
    product = storefront.catalog.set_active(product_id, body.is_active)
    return _respond(storefront, product)
