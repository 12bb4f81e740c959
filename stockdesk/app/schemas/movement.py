from datetime import datetime

from pydantic import BaseModel

from stockdesk.app.db.models.core_types import MovementType


class StockMovementRead(BaseModel):
    id: int
    product_id: int
    product_name: str
    product_sku: str | None = None
    product_variant_id: int | None = None
    product_variant_name: str | None = None
    product_variant_sku: str | None = None

    movement_type: MovementType
    quantity: int
    old_value: int
    new_value: int
    difference: int  # new_value - old_value, signed
    reason: str | None = None
    reference: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaginationRead(BaseModel):
    page: int
    page_size: int
    total_count: int
    total_pages: int

    class Config:
        from_attributes = True


class StockMovementPage(BaseModel):
    items: list[StockMovementRead]
    pagination: PaginationRead

    class Config:
        from_attributes = True


class MovementApplied(BaseModel):
    movement_id: int | None  # None when an adjustment already matched its target
    product_id: int
    product_variant_id: int | None = None
    old_stock: int
    new_stock: int


class AdjustmentOutcomeRead(BaseModel):
    product_id: int
    variant_id: int | None = None
    success: bool
    old_stock: int | None = None
    new_stock: int | None = None
    movement_id: int | None = None
    error: dict | None = None

    class Config:
        from_attributes = True


class BulkAdjustmentRead(BaseModel):
    reference: str
    total: int
    successful: int
    failed: int
    results: list[AdjustmentOutcomeRead]

    class Config:
        from_attributes = True
