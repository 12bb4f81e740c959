"""
Inventory snapshot for dashboards.

Built from stock aggregation over the catalog plus a ledger read. Read-only;
no transaction spans the whole catalog, so figures may lag concurrent writes.
Products with ``track_stock = False`` count towards totals but are left out
of the status counts and never raise alerts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from stockdesk.app.config import settings
from stockdesk.app.db.base import utcnow
from stockdesk.app.db.models.core_types import AlertLevel, StockStatus
from stockdesk.app.db.models.models_v1 import Product, ProductVariant
from stockdesk.services.inventory import alert_level, product_stock_figures, variant_stock_figures
from stockdesk.services.ledger import MovementView, count_movements_since, recent_movements


@dataclass(frozen=True)
class VariantStockLine:
    id: int
    name: str
    sku: str | None
    stock: int
    price: Decimal | None
    stock_value: Decimal
    status: StockStatus


@dataclass(frozen=True)
class ProductStockLine:
    id: int
    name: str
    sku: str | None
    manual_stock: int
    low_stock_threshold: int
    track_stock: bool
    is_active: bool
    price: Decimal
    cost: Decimal | None
    total_stock: int
    stock_value: Decimal
    status: StockStatus
    has_variants: bool
    variant_count: int
    variant_stock_sum: int
    variants: list[VariantStockLine]


@dataclass(frozen=True)
class InventorySnapshot:
    total_products: int
    total_stock: int
    total_value: Decimal
    low_stock_count: int
    out_of_stock_count: int
    in_stock_count: int
    products_with_variants: int
    recent_movement_count: int
    recent_movements: list[MovementView]
    top_products: list[ProductStockLine]


@dataclass(frozen=True)
class StockAlert:
    id: int
    name: str
    sku: str | None
    total_stock: int
    low_stock_threshold: int
    price: Decimal
    status: StockStatus
    level: AlertLevel


@dataclass(frozen=True)
class StockAlertReport:
    alerts: list[StockAlert]
    out_of_stock: int
    low_stock: int
    total: int
    estimated_loss: Decimal


def _load_products(db: Session, *, active_only: bool) -> list[Product]:
    stmt = select(Product).options(selectinload(Product.variants)).order_by(Product.name, Product.id)
    if active_only:
        stmt = stmt.where(Product.is_active.is_(True))
    return list(db.execute(stmt).scalars().all())


def _to_variant_line(variant: ProductVariant, product: Product) -> VariantStockLine:
    figures = variant_stock_figures(variant, product)
    return VariantStockLine(
        id=variant.id,
        name=variant.name,
        sku=variant.sku,
        stock=figures.stock,
        price=variant.price,
        stock_value=figures.stock_value,
        status=figures.status,
    )


def _to_line(product: Product) -> ProductStockLine:
    figures = product_stock_figures(product)
    return ProductStockLine(
        id=product.id,
        name=product.name,
        sku=product.sku,
        manual_stock=product.manual_stock,
        low_stock_threshold=product.low_stock_threshold,
        track_stock=product.track_stock,
        is_active=product.is_active,
        price=product.price,
        cost=product.cost,
        total_stock=figures.total_stock,
        stock_value=figures.stock_value,
        status=figures.status,
        has_variants=figures.has_variants,
        variant_count=figures.variant_count,
        variant_stock_sum=figures.variant_stock_sum,
        variants=[_to_variant_line(v, product) for v in product.variants],
    )


def list_inventory_products(db: Session, *, active_only: bool = False) -> list[ProductStockLine]:
    return [_to_line(p) for p in _load_products(db, active_only=active_only)]


def get_inventory_snapshot(
    db: Session,
    *,
    recent_limit: int | None = None,
    recent_days: int | None = None,
    top_limit: int | None = None,
    now: datetime | None = None,
) -> InventorySnapshot:
    recent_limit = settings.RECENT_MOVEMENTS_LIMIT if recent_limit is None else recent_limit
    recent_days = settings.RECENT_ACTIVITY_DAYS if recent_days is None else recent_days
    top_limit = settings.TOP_PRODUCTS_LIMIT if top_limit is None else top_limit

    lines = list_inventory_products(db, active_only=True)
    tracked = [line for line in lines if line.track_stock]

    top_products = sorted(lines, key=lambda line: line.total_stock, reverse=True)[:top_limit]
    since = (now or utcnow()) - timedelta(days=recent_days)

    return InventorySnapshot(
        total_products=len(lines),
        total_stock=sum(line.total_stock for line in lines),
        total_value=sum((line.stock_value for line in lines), Decimal("0")),
        low_stock_count=sum(1 for line in tracked if line.status == StockStatus.low_stock),
        out_of_stock_count=sum(1 for line in tracked if line.status == StockStatus.out_of_stock),
        in_stock_count=sum(1 for line in tracked if line.status == StockStatus.in_stock),
        products_with_variants=sum(1 for line in lines if line.has_variants),
        recent_movement_count=count_movements_since(db, since),
        recent_movements=recent_movements(db, recent_limit),
        top_products=top_products,
    )


def _alert_sort_key(alert: StockAlert) -> tuple:
    # out of stock first, then critical before warning, then lowest stock
    return (
        alert.status != StockStatus.out_of_stock,
        alert.level != AlertLevel.critical,
        alert.total_stock,
    )


def list_stock_alerts(db: Session) -> StockAlertReport:
    alerts: list[StockAlert] = []
    for line in list_inventory_products(db, active_only=True):
        if not line.track_stock:
            continue
        level = alert_level(line.total_stock, line.low_stock_threshold)
        if level is None:
            continue
        alerts.append(
            StockAlert(
                id=line.id,
                name=line.name,
                sku=line.sku,
                total_stock=line.total_stock,
                low_stock_threshold=line.low_stock_threshold,
                price=line.price,
                status=line.status,
                level=level,
            )
        )
    alerts.sort(key=_alert_sort_key)

    out_of_stock = [a for a in alerts if a.status == StockStatus.out_of_stock]
    return StockAlertReport(
        alerts=alerts,
        out_of_stock=len(out_of_stock),
        low_stock=len(alerts) - len(out_of_stock),
        total=len(alerts),
        # missed sales estimate: one threshold's worth of units at list price
        estimated_loss=sum((a.low_stock_threshold * Decimal(a.price) for a in out_of_stock), Decimal("0")),
    )
