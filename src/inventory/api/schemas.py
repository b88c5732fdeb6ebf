"""Pydantic request/response schemas for the Inventory API."""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Stock Request Schemas
# ---------------------------------------------------------------------------
class SetStockRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"quantity": 120}]}}

    quantity: int = Field(ge=0)


class ReceiveStockRequest(BaseModel):
    quantity: int = Field(ge=1)
    reference: str | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class StockLevelResponse(BaseModel):
    product_id: str
    available: int
