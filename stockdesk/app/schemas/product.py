from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from stockdesk.app.db.models.core_types import StockStatus


class VariantRead(BaseModel):
    id: int
    product_id: int
    name: str
    sku: str | None = None
    stock: int
    price: Decimal | None = None
    options: dict[str, str]

    # derived
    stock_value: Decimal
    status: StockStatus

    class Config:
        from_attributes = True


class ProductRead(BaseModel):
    id: int
    sku: str | None = None
    name: str
    price: Decimal
    cost: Decimal | None = None
    manual_stock: int
    low_stock_threshold: int
    track_stock: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime

    # derived
    total_stock: int
    status: StockStatus
    variants: list[VariantRead]
