"""
Catalog writes.

Products and variants are created with zero quantities; any initial stock is
booked through the ledger as IN movements so every unit on hand has a
movement behind it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from stockdesk.app.db.models.core_types import MovementType
from stockdesk.app.db.models.models_v1 import Product, ProductVariant
from stockdesk.services.errors import DuplicateSku, InvalidInput, NotFound, StockError, TransactionFailure
from stockdesk.services.ledger import lock_product, stage_movement
from stockdesk.services.reconcile import SyncResult, new_sync_run_id, stage_sync

logger = logging.getLogger(__name__)

INITIAL_STOCK_REASON = "initial stock"
OPTION_KEY_MAX_LENGTH = 64
OPTION_VALUE_MAX_LENGTH = 255
MAX_OPTIONS = 20


@dataclass(frozen=True)
class VariantDraft:
    name: str
    sku: str | None = None
    stock: int = 0
    price: Decimal | None = None
    options: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class VariantCreated:
    variant: ProductVariant
    sync: SyncResult


# ---------- Validation ----------
def validate_options(options: Mapping[str, Any] | None) -> dict[str, str]:
    """Variant options are a flat ``{attribute: value}`` mapping of strings."""
    if options is None:
        return {}
    if not isinstance(options, Mapping):
        raise InvalidInput("options must be a mapping of attribute to value")
    if len(options) > MAX_OPTIONS:
        raise InvalidInput(f"At most {MAX_OPTIONS} options per variant", count=len(options))

    cleaned: dict[str, str] = {}
    for key, value in options.items():
        if not isinstance(key, str) or not key.strip():
            raise InvalidInput("Option names must be non-empty strings", option=key)
        if len(key) > OPTION_KEY_MAX_LENGTH:
            raise InvalidInput(f"Option names must be at most {OPTION_KEY_MAX_LENGTH} characters", option=key[:32])
        if not isinstance(value, str):
            raise InvalidInput(f"Option {key!r} must have a string value", option=key)
        if len(value) > OPTION_VALUE_MAX_LENGTH:
            raise InvalidInput(
                f"Option values must be at most {OPTION_VALUE_MAX_LENGTH} characters",
                option=key,
            )
        cleaned[key.strip()] = value
    return cleaned


def _check_quantity(value: int, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidInput(f"{field_name} must be a non-negative integer", **{field_name: value})
    return value


def _check_sku_free(db: Session, sku: str | None) -> None:
    if sku is None:
        return
    taken = db.scalar(select(Product.id).where(Product.sku == sku)) or db.scalar(
        select(ProductVariant.id).where(ProductVariant.sku == sku)
    )
    if taken:
        raise DuplicateSku(f"SKU {sku!r} already exists", sku=sku)


# ---------- Reads ----------
def get_product(db: Session, product_id: int) -> Product:
    product = db.execute(
        select(Product).options(selectinload(Product.variants)).where(Product.id == product_id)
    ).scalar_one_or_none()
    if product is None:
        raise NotFound(f"Product {product_id} not found", product_id=product_id)
    return product


def list_products(db: Session, *, active_only: bool = False) -> list[Product]:
    stmt = select(Product).options(selectinload(Product.variants)).order_by(Product.name, Product.id)
    if active_only:
        stmt = stmt.where(Product.is_active.is_(True))
    return list(db.execute(stmt).scalars().all())


# ---------- Writes ----------
def _stage_variant(db: Session, product: Product, draft: VariantDraft, reference: str | None) -> ProductVariant:
    stock = _check_quantity(draft.stock, "stock")
    variant = ProductVariant(
        product_id=product.id,
        name=draft.name,
        sku=draft.sku,
        stock=0,
        price=draft.price,
        options=validate_options(draft.options),
    )
    db.add(variant)
    db.flush()
    if stock:
        stage_movement(
            db,
            product_id=product.id,
            variant_id=variant.id,
            movement_type=MovementType.inbound,
            quantity=stock,
            reason=INITIAL_STOCK_REASON,
            reference=reference,
        )
    return variant


def create_product(
    db: Session,
    *,
    name: str,
    price: Decimal,
    sku: str | None = None,
    cost: Decimal | None = None,
    manual_stock: int = 0,
    low_stock_threshold: int = 5,
    track_stock: bool = True,
    is_active: bool = True,
    variants: Iterable[VariantDraft] = (),
) -> Product:
    """Insert a product and its variants with their initial stock, in one transaction."""
    drafts = list(variants)
    _check_quantity(manual_stock, "manual_stock")
    _check_quantity(low_stock_threshold, "low_stock_threshold")
    if drafts and manual_stock:
        raise InvalidInput(
            "A product with variants keeps its stock on the variants; manual_stock must be 0",
            manual_stock=manual_stock,
        )
    skus = [sku] + [d.sku for d in drafts]
    given = [s for s in skus if s is not None]
    if len(given) != len(set(given)):
        raise DuplicateSku("SKUs must be unique within the product", sku=",".join(given))

    try:
        for s in given:
            _check_sku_free(db, s)

        product = Product(
            sku=sku,
            name=name,
            price=price,
            cost=cost,
            manual_stock=0,
            low_stock_threshold=low_stock_threshold,
            track_stock=track_stock,
            is_active=is_active,
        )
        db.add(product)
        db.flush()

        for draft in drafts:
            _stage_variant(db, product, draft, sku)

        if manual_stock:
            stage_movement(
                db,
                product_id=product.id,
                movement_type=MovementType.inbound,
                quantity=manual_stock,
                reason=INITIAL_STOCK_REASON,
                reference=sku,
            )
        db.commit()
    except StockError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Creating product %r failed: %s", name, exc)
        raise TransactionFailure(sku=sku) from exc

    logger.info("Created product %s (%s) with %s variants", product.id, name, len(drafts))
    return get_product(db, product.id)


def add_variant(db: Session, product_id: int, draft: VariantDraft) -> VariantCreated:
    """
    Add a variant to an existing product and reconcile the product, in one
    transaction.

    A product gaining its first variant still carries its manual stock; the
    same commit moves it to 0 with an ADJUSTMENT movement, so the variant is
    never visible next to a stale manual quantity.
    """
    result = SyncResult(run_id=new_sync_run_id(), total=1)
    try:
        product = lock_product(db, product_id)
        _check_sku_free(db, draft.sku)
        variant = _stage_variant(db, product, draft, draft.sku)
        detail = stage_sync(db, product, result.run_id)
        db.commit()
    except StockError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Adding variant to product %s failed: %s", product_id, exc)
        raise TransactionFailure(product_id=product_id) from exc

    result.record(detail)
    logger.info(
        "Added variant %s to product %s (sync %s: %s)",
        variant.id,
        product_id,
        result.run_id,
        detail.action.value,
    )
    db.refresh(variant)
    return VariantCreated(variant=variant, sync=result)
