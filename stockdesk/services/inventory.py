"""
Stock aggregation.

Single rule for a product's canonical stock:

    product WITH variants    -> total_stock = SUM(variant.stock), manual_stock must be 0
    product WITHOUT variants -> total_stock = manual_stock

Everything here is pure: no session, no writes. Totals, values and statuses
are derived on every read and never persisted.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from stockdesk.app.db.models.core_types import AlertLevel, StockStatus
from stockdesk.app.db.models.models_v1 import Product, ProductVariant


@dataclass(frozen=True)
class StockFigures:
    total_stock: int
    stock_value: Decimal
    status: StockStatus
    has_variants: bool
    variant_stock_sum: int
    variant_count: int


def classify_stock(total_stock: int, low_stock_threshold: int) -> StockStatus:
    """OUT at zero, LOW in (0, threshold], IN above the threshold."""
    if total_stock == 0:
        return StockStatus.out_of_stock
    if total_stock <= low_stock_threshold:
        return StockStatus.low_stock
    return StockStatus.in_stock


def alert_level(total_stock: int, low_stock_threshold: int) -> AlertLevel | None:
    status = classify_stock(total_stock, low_stock_threshold)
    if status == StockStatus.out_of_stock:
        return AlertLevel.critical
    if status == StockStatus.low_stock:
        if total_stock <= math.ceil(low_stock_threshold / 2):
            return AlertLevel.critical
        return AlertLevel.warning
    return None


def valuation_basis(price: Decimal, cost: Decimal | None) -> Decimal:
    return Decimal(cost if cost is not None else price)


def needs_stock_sync(manual_stock: int, variant_count: int) -> bool:
    """True when a variant-bearing product still carries a manual quantity."""
    return variant_count > 0 and manual_stock != 0


def compute_stock_figures(
    *,
    manual_stock: int,
    variant_stocks: Iterable[int],
    price: Decimal,
    cost: Decimal | None,
    low_stock_threshold: int,
) -> StockFigures:
    stocks = [int(s or 0) for s in variant_stocks]
    has_variants = len(stocks) > 0
    variant_stock_sum = sum(stocks)

    total_stock = variant_stock_sum if has_variants else int(manual_stock)

    return StockFigures(
        total_stock=total_stock,
        stock_value=total_stock * valuation_basis(price, cost),
        status=classify_stock(total_stock, low_stock_threshold),
        has_variants=has_variants,
        variant_stock_sum=variant_stock_sum,
        variant_count=len(stocks),
    )


def product_stock_figures(product: Product) -> StockFigures:
    return compute_stock_figures(
        manual_stock=product.manual_stock,
        variant_stocks=[v.stock for v in product.variants],
        price=product.price,
        cost=product.cost,
        low_stock_threshold=product.low_stock_threshold,
    )


@dataclass(frozen=True)
class VariantFigures:
    stock: int
    stock_value: Decimal
    status: StockStatus


def variant_stock_figures(variant: ProductVariant, product: Product) -> VariantFigures:
    """Per-variant view; the product's threshold applies to each variant."""
    # a variant price overrides the product's valuation basis
    if variant.price is not None:
        basis = Decimal(variant.price)
    else:
        basis = valuation_basis(product.price, product.cost)
    stock = int(variant.stock or 0)
    return VariantFigures(
        stock=stock,
        stock_value=stock * basis,
        status=classify_stock(stock, product.low_stock_threshold),
    )
