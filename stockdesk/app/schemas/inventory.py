from decimal import Decimal

from pydantic import BaseModel

from stockdesk.app.db.models.core_types import AlertLevel, StockStatus
from stockdesk.app.schemas.movement import StockMovementRead


class VariantStockRead(BaseModel):
    id: int
    name: str
    sku: str | None = None
    stock: int
    price: Decimal | None = None
    stock_value: Decimal
    status: StockStatus

    class Config:
        from_attributes = True


class ProductStockRead(BaseModel):
    id: int
    name: str
    sku: str | None = None
    manual_stock: int
    low_stock_threshold: int
    track_stock: bool
    is_active: bool
    price: Decimal
    cost: Decimal | None = None

    # READ ONLY, derived on every read
    total_stock: int
    stock_value: Decimal
    status: StockStatus
    has_variants: bool
    variant_count: int
    variant_stock_sum: int
    variants: list[VariantStockRead]

    class Config:
        from_attributes = True


class InventorySnapshotRead(BaseModel):
    total_products: int
    total_stock: int
    total_value: Decimal
    low_stock_count: int
    out_of_stock_count: int
    in_stock_count: int
    products_with_variants: int
    recent_movement_count: int
    recent_movements: list[StockMovementRead]
    top_products: list[ProductStockRead]

    class Config:
        from_attributes = True


class StockAlertRead(BaseModel):
    id: int
    name: str
    sku: str | None = None
    total_stock: int
    low_stock_threshold: int
    price: Decimal
    status: StockStatus
    level: AlertLevel

    class Config:
        from_attributes = True


class StockAlertReportRead(BaseModel):
    alerts: list[StockAlertRead]
    out_of_stock: int
    low_stock: int
    total: int
    estimated_loss: Decimal

    class Config:
        from_attributes = True
