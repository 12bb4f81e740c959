"""
Stock reconciliation.

Rewrites ``manual_stock`` to 0 on products that own variants, always through
the ledger so each correction leaves an ADJUSTMENT movement behind.

Properties:
- idempotent: a consistent product is skipped, a second run updates nothing
- one transaction per product, never one for the whole catalog
- each product is re-read under lock right before it is written
- products without variants are never touched
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stockdesk.app.config import settings
from stockdesk.app.db.models.core_types import MovementType, SyncAction
from stockdesk.app.db.models.models_v1 import Product, ProductVariant
from stockdesk.services.consistency import InconsistentProduct, analyze_inconsistencies
from stockdesk.services.errors import InvalidInput, StockError, TransactionFailure
from stockdesk.services.inventory import needs_stock_sync
from stockdesk.services.ledger import lock_product, stage_movement

logger = logging.getLogger(__name__)

AUTO_SYNC_REASON = "auto-sync"


@dataclass(frozen=True)
class SyncDetail:
    product_id: int
    product_name: str
    action: SyncAction
    old_stock: int
    new_stock: int
    variant_count: int
    reason: str
    movement_id: int | None = None


@dataclass
class SyncResult:
    run_id: str
    total: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    aborted: bool = False
    details: list[SyncDetail] = field(default_factory=list)

    def record(self, detail: SyncDetail) -> None:
        self.details.append(detail)
        if detail.action == SyncAction.updated:
            self.updated += 1
        elif detail.action == SyncAction.skipped:
            self.skipped += 1
        else:
            self.errors += 1


def new_sync_run_id() -> str:
    return f"sync-{uuid.uuid4().hex[:12]}"


def _variant_totals(db: Session, product_id: int) -> tuple[int, int]:
    count, total = db.execute(
        select(
            func.count(ProductVariant.id),
            func.coalesce(func.sum(ProductVariant.stock), 0),
        ).where(ProductVariant.product_id == product_id)
    ).one()
    return int(count), int(total)


def stage_sync(db: Session, product: Product, run_id: str) -> SyncDetail:
    """
    Reconcile a product the caller has already locked, inside the caller's
    transaction (flush, no commit).
    """
    name = product.name
    old_stock = product.manual_stock
    variant_count, variant_stock_sum = _variant_totals(db, product.id)

    if not needs_stock_sync(old_stock, variant_count):
        if variant_count == 0:
            reason = f"No variants: manual stock ({old_stock}) is authoritative"
        else:
            reason = f"Already consistent: stock managed by {variant_count} variants"
        return SyncDetail(
            product_id=product.id,
            product_name=name,
            action=SyncAction.skipped,
            old_stock=old_stock,
            new_stock=old_stock,
            variant_count=variant_count,
            reason=reason,
        )

    result = stage_movement(
        db,
        product_id=product.id,
        movement_type=MovementType.adjustment,
        quantity=0,
        reason=AUTO_SYNC_REASON,
        reference=run_id,
    )
    return SyncDetail(
        product_id=product.id,
        product_name=name,
        action=SyncAction.updated,
        old_stock=old_stock,
        new_stock=0,
        variant_count=variant_count,
        reason=(
            f"Product with {variant_count} variants: manual stock {old_stock} -> 0 "
            f"(variant stock: {variant_stock_sum})"
        ),
        movement_id=result.movement.id if result.movement is not None else None,
    )


def _sync_product(db: Session, product_id: int, run_id: str) -> SyncDetail:
    """Reconcile one product in its own transaction."""
    try:
        detail = stage_sync(db, lock_product(db, product_id), run_id)
        if detail.action == SyncAction.skipped:
            db.rollback()
            return detail
        db.commit()
    except StockError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise TransactionFailure(product_id=product_id, run_id=run_id) from exc

    logger.info(
        "Sync %s: product %s manual stock %s -> 0 (%s variants)",
        run_id,
        product_id,
        detail.old_stock,
        detail.variant_count,
    )
    return detail


def sync_single(db: Session, product_id: int, *, run_id: str | None = None) -> SyncResult:
    """Reconcile one product, re-read fresh. Raises NotFound for an unknown id."""
    result = SyncResult(run_id=run_id or new_sync_run_id(), total=1)
    result.record(_sync_product(db, product_id, result.run_id))
    return result


def _error_detail(flagged: InconsistentProduct, message: str) -> SyncDetail:
    return SyncDetail(
        product_id=flagged.id,
        product_name=flagged.name,
        action=SyncAction.error,
        old_stock=flagged.manual_stock,
        new_stock=flagged.manual_stock,
        variant_count=flagged.variant_count,
        reason=f"Error: {message}",
    )


def sync_all(
    db: Session,
    *,
    batch_size: int | None = None,
    max_consecutive_errors: int | None = None,
    run_id: str | None = None,
) -> SyncResult:
    """
    Reconcile every product flagged by a fresh consistency scan.

    Failures are recorded per product and the run goes on, unless
    ``max_consecutive_errors`` failures happen in a row (0 disables the stop).
    """
    batch_size = settings.SYNC_BATCH_SIZE if batch_size is None else batch_size
    if max_consecutive_errors is None:
        max_consecutive_errors = settings.SYNC_MAX_CONSECUTIVE_ERRORS
    if batch_size < 1:
        raise InvalidInput("batch_size must be >= 1", batch_size=batch_size)
    if max_consecutive_errors < 0:
        raise InvalidInput("max_consecutive_errors must be >= 0", max_consecutive_errors=max_consecutive_errors)

    report = analyze_inconsistencies(db)
    flagged = report.inconsistent_products
    result = SyncResult(run_id=run_id or new_sync_run_id(), total=len(flagged))
    logger.info("Sync %s: %s of %s tracked products need sync", result.run_id, len(flagged), report.total)

    consecutive_errors = 0
    for start in range(0, len(flagged), batch_size):
        for item in flagged[start : start + batch_size]:
            try:
                detail = _sync_product(db, item.id, result.run_id)
            except StockError as exc:
                logger.error("Sync %s: product %s failed: %s", result.run_id, item.id, exc.message)
                detail = _error_detail(item, exc.message)
            except Exception as exc:
                db.rollback()
                logger.exception("Sync %s: product %s failed unexpectedly", result.run_id, item.id)
                detail = _error_detail(item, str(exc) or type(exc).__name__)

            result.record(detail)
            consecutive_errors = consecutive_errors + 1 if detail.action == SyncAction.error else 0
            if max_consecutive_errors and consecutive_errors >= max_consecutive_errors:
                result.aborted = True
                break

        if result.aborted:
            logger.warning(
                "Sync %s aborted after %s consecutive errors (%s of %s processed)",
                result.run_id,
                consecutive_errors,
                len(result.details),
                result.total,
            )
            break
        db.expire_all()

    logger.info(
        "Sync %s done: updated=%s skipped=%s errors=%s",
        result.run_id,
        result.updated,
        result.skipped,
        result.errors,
    )
    return result
