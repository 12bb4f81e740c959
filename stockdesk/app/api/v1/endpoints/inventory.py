from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockdesk.app.api.deps import get_db
from stockdesk.app.schemas.inventory import InventorySnapshotRead, ProductStockRead, StockAlertReportRead
from stockdesk.services.snapshot import get_inventory_snapshot, list_inventory_products, list_stock_alerts

router = APIRouter(prefix="/inventory")


@router.get("/snapshot", response_model=InventorySnapshotRead)
def get_snapshot(db: Session = Depends(get_db)):
    """
    Dashboard figures (READ ONLY)
    - totals over active products
    - low / out-of-stock counts only for products tracking stock
    """
    return InventorySnapshotRead.model_validate(get_inventory_snapshot(db))


@router.get("/alerts", response_model=StockAlertReportRead)
def get_alerts(db: Session = Depends(get_db)):
    return StockAlertReportRead.model_validate(list_stock_alerts(db))


@router.get("/products", response_model=list[ProductStockRead])
def get_inventory_products(active_only: bool = False, db: Session = Depends(get_db)):
    lines = list_inventory_products(db, active_only=active_only)
    return [ProductStockRead.model_validate(line) for line in lines]
