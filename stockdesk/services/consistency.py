"""
Consistency audit.

Read-only scan over tracked products looking for variant-bearing products
whose manual stock is not 0. The report is a point-in-time snapshot: it takes
no locks and may be stale by the time anyone acts on it, so reconciliation
always re-reads the product before writing.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockdesk.app.db.models.models_v1 import Product, ProductVariant
from stockdesk.services.inventory import needs_stock_sync


@dataclass(frozen=True)
class InconsistentProduct:
    id: int
    name: str
    manual_stock: int
    variant_count: int
    variant_stock_sum: int
    issue: str


@dataclass
class ConsistencyReport:
    total: int = 0
    with_variants: int = 0
    with_inconsistencies: int = 0
    needs_sync: int = 0
    inconsistent_products: list[InconsistentProduct] = field(default_factory=list)


def describe_issue(manual_stock: int, variant_count: int, variant_stock_sum: int) -> str:
    return (
        f"Manual stock ({manual_stock}) should be 0 because the product has "
        f"{variant_count} variants (variant stock: {variant_stock_sum})"
    )


def analyze_inconsistencies(db: Session) -> ConsistencyReport:
    variant_totals = (
        select(
            ProductVariant.product_id.label("product_id"),
            func.count(ProductVariant.id).label("variant_count"),
            func.coalesce(func.sum(ProductVariant.stock), 0).label("variant_stock_sum"),
        )
        .group_by(ProductVariant.product_id)
        .subquery()
    )

    rows = db.execute(
        select(
            Product.id,
            Product.name,
            Product.manual_stock,
            func.coalesce(variant_totals.c.variant_count, 0),
            func.coalesce(variant_totals.c.variant_stock_sum, 0),
        )
        .outerjoin(variant_totals, variant_totals.c.product_id == Product.id)
        .where(Product.track_stock.is_(True))
        .order_by(Product.id)
    ).all()

    report = ConsistencyReport(total=len(rows))
    for product_id, name, manual_stock, variant_count, variant_stock_sum in rows:
        variant_count = int(variant_count)
        variant_stock_sum = int(variant_stock_sum)
        if variant_count == 0:
            continue

        report.with_variants += 1
        if needs_stock_sync(manual_stock, variant_count):
            report.inconsistent_products.append(
                InconsistentProduct(
                    id=product_id,
                    name=name,
                    manual_stock=manual_stock,
                    variant_count=variant_count,
                    variant_stock_sum=variant_stock_sum,
                    issue=describe_issue(manual_stock, variant_count, variant_stock_sum),
                )
            )

    report.with_inconsistencies = len(report.inconsistent_products)
    report.needs_sync = report.with_inconsistencies
    return report
