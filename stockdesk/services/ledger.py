"""
Stock movement ledger.

``apply_movement`` is the only way a stored quantity (``Product.manual_stock``
or ``ProductVariant.stock``) changes. In one transaction it:

    1. locks and re-reads the target row (SELECT ... FOR UPDATE)
    2. computes the new quantity
    3. writes it back
    4. appends a StockMovement carrying the requested quantity, old and new values

Quantity rule:
    IN          new = old + quantity
    OUT         new = max(0, old - quantity) under CLAMP, InsufficientStock under REJECT
    ADJUSTMENT  quantity is the *target*; new = target, recorded quantity = |target - old|

Movements are append-only; reads never lock.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stockdesk.app.config import settings
from stockdesk.app.db.models.core_types import MovementType, OverdrawPolicy
from stockdesk.app.db.models.models_v1 import Product, ProductVariant, StockMovement
from stockdesk.services.errors import (
    InsufficientStock,
    InvalidInput,
    NotFound,
    StockError,
    TransactionFailure,
)

logger = logging.getLogger(__name__)

REASON_MAX_LENGTH = 255
REFERENCE_MAX_LENGTH = 64
DELETED_PRODUCT_NAME = "Deleted product"


@dataclass(frozen=True)
class MovementResult:
    movement: StockMovement | None  # None when an adjustment changed nothing
    old_stock: int
    new_stock: int


@dataclass(frozen=True)
class MovementView:
    id: int
    product_id: int
    product_name: str
    product_sku: str | None
    product_variant_id: int | None
    product_variant_name: str | None
    product_variant_sku: str | None
    movement_type: MovementType
    quantity: int
    old_value: int
    new_value: int
    reason: str | None
    reference: str | None
    created_at: datetime

    @property
    def difference(self) -> int:
        return self.new_value - self.old_value


@dataclass(frozen=True)
class Pagination:
    page: int
    page_size: int
    total_count: int
    total_pages: int


@dataclass(frozen=True)
class MovementPage:
    items: list[MovementView]
    pagination: Pagination


# ---------- Validation ----------
def parse_movement_type(value: MovementType | str | None) -> MovementType:
    if isinstance(value, MovementType):
        return value
    try:
        return MovementType(value)
    except ValueError:
        allowed = ", ".join(m.value for m in MovementType)
        raise InvalidInput(
            f"Unknown movement type {value!r} (expected one of {allowed})",
            movement_type=value,
        ) from None


def _require_int(value, field: str) -> int:
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{field} must be an integer", **{field: value})
    return value


def _check_text(value: str | None, field: str, max_length: int) -> None:
    if value is not None and len(value) > max_length:
        raise InvalidInput(f"{field} must be at most {max_length} characters", **{field: value[:32]})


def validate_movement(
    *,
    product_id,
    movement_type: MovementType | str | None,
    quantity,
    reason: str | None = None,
    reference: str | None = None,
) -> MovementType:
    if product_id is None:
        raise InvalidInput("product_id is required")
    mtype = parse_movement_type(movement_type)
    quantity = _require_int(quantity, "quantity")

    if mtype == MovementType.adjustment:
        if quantity < 0:
            raise InvalidInput("Adjustment target must be zero or positive", quantity=quantity)
    elif quantity <= 0:
        raise InvalidInput(f"{mtype.value} quantity must be positive", quantity=quantity)

    _check_text(reason, "reason", REASON_MAX_LENGTH)
    _check_text(reference, "reference", REFERENCE_MAX_LENGTH)
    return mtype


def compute_new_quantity(
    movement_type: MovementType,
    old: int,
    quantity: int,
    *,
    overdraw_policy: OverdrawPolicy = OverdrawPolicy.clamp,
) -> tuple[int, int]:
    """Return ``(new_quantity, recorded_quantity)``; never a negative quantity."""
    if movement_type == MovementType.inbound:
        return old + quantity, quantity

    if movement_type == MovementType.outbound:
        if quantity > old and overdraw_policy == OverdrawPolicy.reject:
            raise InsufficientStock(
                f"Cannot take {quantity} out of {old} in stock",
                available=old,
                requested=quantity,
            )
        return max(0, old - quantity), quantity

    target = max(0, quantity)
    return target, abs(target - old)


# ---------- Write path ----------
def _load_product(db: Session, product_id: int, *, lock: bool) -> Product:
    stmt = select(Product).where(Product.id == product_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    product = db.execute(stmt).scalars().first()
    if product is None:
        raise NotFound(f"Product {product_id} not found", product_id=product_id)
    return product


def lock_product(db: Session, product_id: int) -> Product:
    """SELECT ... FOR UPDATE on the product row; NotFound if missing."""
    return _load_product(db, product_id, lock=True)


def _lock_variant(db: Session, product: Product, variant_id: int) -> ProductVariant:
    variant = (
        db.execute(
            select(ProductVariant)
            .where(ProductVariant.id == variant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .first()
    )
    if variant is None or variant.product_id != product.id:
        raise NotFound(
            f"Variant {variant_id} not found for product {product.id}",
            product_id=product.id,
            variant_id=variant_id,
        )
    return variant


def count_variants(db: Session, product_id: int) -> int:
    return db.scalar(
        select(func.count()).select_from(ProductVariant).where(ProductVariant.product_id == product_id)
    ) or 0


def stage_movement(
    db: Session,
    *,
    product_id: int,
    variant_id: int | None = None,
    movement_type: MovementType | str,
    quantity: int,
    reason: str | None = None,
    reference: str | None = None,
    overdraw_policy: OverdrawPolicy | str | None = None,
) -> MovementResult:
    """
    Apply a movement inside the caller's transaction (flush, no commit).

    Used directly by callers composing several writes into one unit
    (reconciliation, product creation); everyone else uses ``apply_movement``.
    """
    mtype = validate_movement(
        product_id=product_id,
        movement_type=movement_type,
        quantity=quantity,
        reason=reason,
        reference=reference,
    )
    try:
        policy = OverdrawPolicy(overdraw_policy or settings.OVERDRAW_POLICY)
    except ValueError:
        raise InvalidInput(f"Unknown overdraw policy {overdraw_policy!r}", overdraw_policy=overdraw_policy) from None

    variant: ProductVariant | None = None

    if variant_id is not None:
        # only the variant row is locked; writers on sibling variants never wait on the product
        product = _load_product(db, product_id, lock=False)
        variant = _lock_variant(db, product, variant_id)
        old = variant.stock
    else:
        product = lock_product(db, product_id)
        variant_count = count_variants(db, product.id)
        # Only the reset to zero may touch manual stock once variants exist
        if variant_count and not (mtype == MovementType.adjustment and quantity == 0):
            raise InvalidInput(
                f"Stock of product {product.id} is managed by its {variant_count} variants; "
                "target a variant instead",
                product_id=product.id,
                variant_count=variant_count,
            )
        old = product.manual_stock

    new, recorded = compute_new_quantity(mtype, old, quantity, overdraw_policy=policy)

    if mtype == MovementType.adjustment and new == old:
        return MovementResult(movement=None, old_stock=old, new_stock=old)

    if mtype == MovementType.outbound and quantity > old:
        logger.warning(
            "OUT of %s on product %s (variant %s) clamped to 0 from %s",
            quantity,
            product.id,
            variant_id,
            old,
        )

    if variant is not None:
        variant.stock = new
    else:
        product.manual_stock = new

    movement = StockMovement(
        product_id=product.id,
        product_variant_id=variant.id if variant is not None else None,
        movement_type=mtype,
        quantity=recorded,
        old_value=old,
        new_value=new,
        reason=reason,
        reference=reference,
    )
    db.add(movement)
    db.flush()
    return MovementResult(movement=movement, old_stock=old, new_stock=new)


def apply_movement(
    db: Session,
    *,
    product_id: int,
    variant_id: int | None = None,
    movement_type: MovementType | str,
    quantity: int,
    reason: str | None = None,
    reference: str | None = None,
    overdraw_policy: OverdrawPolicy | str | None = None,
) -> MovementResult:
    """Apply one movement as its own transaction and commit it."""
    try:
        result = stage_movement(
            db,
            product_id=product_id,
            variant_id=variant_id,
            movement_type=movement_type,
            quantity=quantity,
            reason=reason,
            reference=reference,
            overdraw_policy=overdraw_policy,
        )
        db.commit()
    except StockError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Stock movement on product %s (variant %s) failed: %s", product_id, variant_id, exc)
        raise TransactionFailure(product_id=product_id, variant_id=variant_id) from exc

    if result.movement is not None:
        logger.info(
            "%s %s on product %s (variant %s): %s -> %s",
            result.movement.movement_type.value,
            result.movement.quantity,
            product_id,
            variant_id,
            result.old_stock,
            result.new_stock,
        )
    return result


# ---------- Read path ----------
def _movement_query():
    return (
        select(
            StockMovement,
            Product.name.label("product_name"),
            Product.sku.label("product_sku"),
            ProductVariant.name.label("variant_name"),
            ProductVariant.sku.label("variant_sku"),
        )
        .outerjoin(Product, Product.id == StockMovement.product_id)
        .outerjoin(ProductVariant, ProductVariant.id == StockMovement.product_variant_id)
    )


def _to_view(row) -> MovementView:
    mv: StockMovement = row[0]
    return MovementView(
        id=mv.id,
        product_id=mv.product_id,
        product_name=row.product_name or DELETED_PRODUCT_NAME,
        product_sku=row.product_sku,
        product_variant_id=mv.product_variant_id,
        product_variant_name=row.variant_name,
        product_variant_sku=row.variant_sku,
        movement_type=mv.movement_type,
        quantity=mv.quantity,
        old_value=mv.old_value,
        new_value=mv.new_value,
        reason=mv.reason,
        reference=mv.reference,
        created_at=mv.created_at,
    )


def _movement_filters(
    *,
    product_id: int | None,
    movement_type: MovementType | str | None,
    start: datetime | None,
    end: datetime | None,
) -> list:
    filters = []
    if product_id is not None:
        filters.append(StockMovement.product_id == product_id)
    if movement_type is not None and movement_type != "all":
        filters.append(StockMovement.movement_type == parse_movement_type(movement_type))
    if start is not None:
        filters.append(StockMovement.created_at >= start)
    if end is not None:
        filters.append(StockMovement.created_at <= end)
    return filters


def list_movements(
    db: Session,
    *,
    product_id: int | None = None,
    movement_type: MovementType | str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    page_size: int | None = None,
) -> MovementPage:
    """Newest-first page of movements with product and variant names."""
    page_size = settings.MOVEMENTS_PAGE_SIZE if page_size is None else page_size
    if page < 1:
        raise InvalidInput("page must be >= 1", page=page)
    if not 1 <= page_size <= settings.MOVEMENTS_MAX_PAGE_SIZE:
        raise InvalidInput(
            f"page_size must be between 1 and {settings.MOVEMENTS_MAX_PAGE_SIZE}",
            page_size=page_size,
        )
    if start is not None and end is not None and start > end:
        raise InvalidInput("start must not be after end", start=start, end=end)

    filters = _movement_filters(product_id=product_id, movement_type=movement_type, start=start, end=end)

    total_count = db.scalar(select(func.count()).select_from(StockMovement).where(*filters)) or 0
    rows = db.execute(
        _movement_query()
        .where(*filters)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()

    return MovementPage(
        items=[_to_view(row) for row in rows],
        pagination=Pagination(
            page=page,
            page_size=page_size,
            total_count=total_count,
            total_pages=math.ceil(total_count / page_size),
        ),
    )


def recent_movements(db: Session, limit: int) -> list[MovementView]:
    rows = db.execute(
        _movement_query().order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(limit)
    ).all()
    return [_to_view(row) for row in rows]


def count_movements_since(db: Session, since: datetime) -> int:
    return db.scalar(
        select(func.count()).select_from(StockMovement).where(StockMovement.created_at >= since)
    ) or 0
