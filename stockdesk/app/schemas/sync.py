from pydantic import BaseModel

from stockdesk.app.db.models.core_types import SyncAction


class InconsistentProductRead(BaseModel):
    id: int
    name: str
    manual_stock: int
    variant_count: int
    variant_stock_sum: int
    issue: str

    class Config:
        from_attributes = True


class ConsistencyReportRead(BaseModel):
    total: int
    with_variants: int
    with_inconsistencies: int
    needs_sync: int
    inconsistent_products: list[InconsistentProductRead]

    class Config:
        from_attributes = True


class SyncDetailRead(BaseModel):
    product_id: int
    product_name: str
    action: SyncAction
    old_stock: int
    new_stock: int
    variant_count: int
    reason: str
    movement_id: int | None = None

    class Config:
        from_attributes = True


class SyncResultRead(BaseModel):
    run_id: str
    total: int
    updated: int
    skipped: int
    errors: int
    aborted: bool
    details: list[SyncDetailRead]

    class Config:
        from_attributes = True
